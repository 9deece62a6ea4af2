# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Error handling middleware with structured HAL responses.

Backend failures are mapped onto a small taxonomy of exceptions so the
scanner and list screens can tell "not found", "not eligible", "already
recorded" and "backend unreachable" apart.
"""

from flask import Flask, request, jsonify
from werkzeug.exceptions import HTTPException
from typing import Dict, Any, List, Optional, Tuple
from opentelemetry import trace
import logging

from ..services.hal import HalFormatter

tracer = trace.get_tracer(__name__)
logger = logging.getLogger(__name__)


class CustomException(Exception):
    """Base for station errors; carries the HTTP status and problem type."""

    retryable = False

    def __init__(self, message: str, status_code: int = 500, error_type: str = "application-error"):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.error_type = error_type


class ValidationException(CustomException):
    """A request or snapshot draft failed validation."""

    def __init__(self, message: str, validation_errors: Optional[List[Any]] = None):
        super().__init__(message, 400, "validation-error")
        self.validation_errors = validation_errors or []


class AuthenticationException(CustomException):
    """The backend rejected the station's API token."""

    def __init__(self, message: str):
        super().__init__(message, 401, "authentication-required")


class ForbiddenException(CustomException):
    """The member is not eligible for the requested benefit or action."""

    def __init__(self, message: str):
        super().__init__(message, 403, "not-eligible")


class NotFoundException(CustomException):
    """A member, benefit, event or scan session does not exist."""

    def __init__(self, message: str):
        super().__init__(message, 404, "resource-not-found")


class ConflictException(CustomException):
    """The action conflicts with current state, e.g. already recorded."""

    def __init__(self, message: str):
        super().__init__(message, 409, "resource-conflict")


class NetworkFailureException(CustomException):
    """The backend could not be reached or answered with a server error."""

    retryable = True

    def __init__(self, message: str, status_code: int = 503):
        super().__init__(message, status_code, "network-failure")


class ErrorHandlerMiddleware:
    """
    Turns every failure into an RFC 7807 problem document with HAL links.

    HTTP errors raised by Flask itself (unknown route, wrong method) and
    unexpected exceptions are handled here; station exceptions are handled
    by ``register_custom_error_handlers``.
    """

    PROBLEM_TYPES = {
        400: ("bad-request", "Bad Request"),
        401: ("authentication-required", "Authentication Required"),
        403: ("not-eligible", "Not Eligible"),
        404: ("resource-not-found", "Resource Not Found"),
        405: ("method-not-allowed", "Method Not Allowed"),
        409: ("resource-conflict", "Resource Conflict"),
        422: ("validation-error", "Validation Error"),
        500: ("internal-server-error", "Internal Server Error"),
        502: ("bad-gateway", "Bad Gateway"),
        503: ("service-unavailable", "Service Unavailable"),
        504: ("gateway-timeout", "Gateway Timeout"),
    }

    def __init__(self, app: Flask, hal_formatter: HalFormatter):
        self.app = app
        self.hal_formatter = hal_formatter
        self.register_error_handlers()

    def register_error_handlers(self):
        """Register error handlers with Flask application."""
        for code in self.PROBLEM_TYPES:
            self.app.register_error_handler(code, self.handle_http_error)
        self.app.register_error_handler(Exception, self.handle_exception)

    def handle_exception(self, error: Exception) -> Tuple[Dict[str, Any], int]:
        if isinstance(error, HTTPException):
            return self.handle_http_error(error)
        return self.handle_unexpected_error(error)

    def handle_http_error(self, error: HTTPException) -> Tuple[Dict[str, Any], int]:
        """Problem document for an HTTP error raised by Flask or werkzeug."""
        status = error.code or 500
        error_type, title = self.PROBLEM_TYPES.get(status, ("http-error", error.name))
        detail = str(error.description) if error.description else title

        with tracer.start_as_current_span("error_handler.http_error") as span:
            span.set_attributes({
                "error.type": error_type,
                "error.status": status,
                "http.method": request.method,
                "http.path": request.path
            })

            log = logger.error if status >= 500 else logger.warning
            log(
                f"{title}: {request.method} {request.path}",
                extra={"error_type": error_type, "status_code": status, "detail": detail}
            )

            if status >= 500:
                if self._hide_details():
                    detail = "An internal server error occurred"
                return self.hal_formatter.format_server_error(detail, request.path, status), status
            return self.hal_formatter.builder.build_error_response(
                error_type, title, status, detail, request.path
            ), status

    def handle_unexpected_error(self, error: Exception) -> Tuple[Dict[str, Any], int]:
        """Handle exceptions nothing else caught; details are hidden in production."""
        with tracer.start_as_current_span("error_handler.unexpected_error") as span:
            span.set_attributes({
                "error.type": "unexpected-error",
                "error.class": error.__class__.__name__,
                "http.method": request.method,
                "http.path": request.path
            })
            span.record_exception(error)

            logger.error(
                f"Unexpected {error.__class__.__name__} on {request.method} {request.path}",
                extra={"error_type": "unexpected-error", "error_class": error.__class__.__name__},
                exc_info=True
            )

            detail = "An unexpected error occurred"
            if not self._hide_details():
                detail = f"{error.__class__.__name__}: {str(error)}"
            return self.hal_formatter.format_server_error(detail, request.path), 500

    def _hide_details(self) -> bool:
        return self.app.config.get('ENV') == 'production'


def register_custom_error_handlers(app: Flask, hal_formatter: HalFormatter):
    """
    Register the handler for station exceptions.

    Args:
        app: Flask application
        hal_formatter: HAL formatter instance
    """

    @app.errorhandler(CustomException)
    def handle_custom_exception(error: CustomException):
        with tracer.start_as_current_span("error_handler.custom_exception") as span:
            span.set_attributes({
                "error.type": error.error_type,
                "error.status": error.status_code,
                "error.retryable": error.retryable,
                "http.path": request.path
            })

            logger.warning(
                f"{error.error_type}: {error.message}",
                extra={
                    "error_type": error.error_type,
                    "status_code": error.status_code,
                    "path": request.path,
                    "method": request.method
                }
            )

            if isinstance(error, ValidationException):
                body = hal_formatter.format_validation_error(error.message, request.path, error.validation_errors)
            else:
                body = hal_formatter.format_problem(error.error_type, error.message, request.path, error.status_code)

            return jsonify(body), error.status_code
