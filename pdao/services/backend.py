# SPDX-License-Identifier: Apache-2.0

"""
HTTP client for the PDAO backend.

Every call carries the station's bearer token and the configured timeout.
Transport failures and 5xx answers become ``NetworkFailureException``;
4xx answers are mapped onto the station's exception taxonomy. Claim and
attendance writes return a ``ClaimResponse`` for 201/409/403 instead of
raising, since "already recorded" and "not eligible" are expected outcomes.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import requests
from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode

from ..config import BackendConfig
from ..middleware.error_handler import (
    AuthenticationException,
    ConflictException,
    ForbiddenException,
    NetworkFailureException,
    NotFoundException,
    ValidationException,
)
from ..models.enums import ClaimOutcome

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

RECORD_KEYS = ("record", "attendance", "claim", "benefit", "data")


@dataclass
class ClaimResponse:
    """Result of a claim or attendance write."""
    outcome: ClaimOutcome
    message: str
    record: Optional[Dict[str, Any]] = None


def _message(body: Any, default: str) -> str:
    if isinstance(body, dict) and body.get("message"):
        return str(body["message"])
    return default


def _record(body: Any) -> Optional[Dict[str, Any]]:
    """Pull the echoed record out of a write response."""
    if not isinstance(body, dict):
        return None
    for key in RECORD_KEYS:
        if isinstance(body.get(key), dict):
            return body[key]
    if "id" in body:
        return body
    return None


def _items(body: Any) -> List[Dict[str, Any]]:
    """List endpoints answer either ``[...]`` or ``{"data": [...]}``."""
    if isinstance(body, dict):
        body = body.get("data", [])
    if not isinstance(body, list):
        return []
    return [item for item in body if isinstance(item, dict)]


class BackendClient:
    """Thin wrapper over ``requests.Session`` for the PDAO REST API."""

    def __init__(self, config: BackendConfig, session: Optional[requests.Session] = None):
        self.config = config
        self.base_url = config.url.rstrip("/")
        self.session = session or requests.Session()
        self.session.headers.update({
            "Accept": "application/json",
            "Content-Type": "application/json",
        })
        if config.token:
            self.session.headers["Authorization"] = f"Bearer {config.token}"

    def _request(
        self,
        method: str,
        path: str,
        expected: tuple = (200, 201),
        passthrough: tuple = (),
        **kwargs
    ) -> requests.Response:
        """
        Send one request and map failures onto the exception taxonomy.

        Status codes in ``passthrough`` are returned to the caller instead
        of raising.
        """
        url = f"{self.base_url}/{path.lstrip('/')}"
        with tracer.start_as_current_span(f"backend.{method.lower()}") as span:
            span.set_attributes({
                "http.method": method,
                "http.url": url,
            })
            try:
                response = self.session.request(method, url, timeout=self.config.timeout, **kwargs)
            except requests.Timeout as e:
                span.set_status(Status(StatusCode.ERROR, "timeout"))
                logger.warning(f"Backend request timed out: {method} {path}")
                raise NetworkFailureException("The server did not respond in time. Please try again.") from e
            except requests.ConnectionError as e:
                span.set_status(Status(StatusCode.ERROR, "connection"))
                logger.warning(f"Backend unreachable: {method} {path}: {str(e)}")
                raise NetworkFailureException("Network unavailable. Check the connection and try again.") from e
            except requests.RequestException as e:
                span.set_status(Status(StatusCode.ERROR, type(e).__name__))
                logger.warning(f"Backend request failed: {method} {path}: {type(e).__name__}: {str(e)}")
                raise NetworkFailureException("The server response could not be read. Please try again.") from e

            span.set_attribute("http.status_code", response.status_code)

            if response.status_code in expected or response.status_code in passthrough:
                return response

            body = self._json(response)
            status = response.status_code
            logger.info(
                f"Backend answered {status} for {method} {path}",
                extra={"status_code": status, "path": path, "method": method}
            )

            if status == 401:
                raise AuthenticationException(_message(body, "Station session expired. Sign in again."))
            if status == 403:
                raise ForbiddenException(_message(body, "Not allowed."))
            if status == 404:
                raise NotFoundException(_message(body, "Resource not found."))
            if status == 409:
                raise ConflictException(_message(body, "Resource conflict."))
            if status in (400, 422):
                errors = body.get("errors") if isinstance(body, dict) else None
                raise ValidationException(
                    _message(body, "The backend rejected the request."),
                    self._flatten_errors(errors)
                )

            span.set_status(Status(StatusCode.ERROR, f"status {status}"))
            raise NetworkFailureException(_message(body, f"Backend error ({status}). Please try again."))

    @staticmethod
    def _json(response: requests.Response) -> Any:
        try:
            return response.json()
        except ValueError:
            return None

    @staticmethod
    def _flatten_errors(errors: Any) -> List[Dict[str, Any]]:
        # Laravel style: {"field": ["message", ...]}
        if not isinstance(errors, dict):
            return []
        flat = []
        for field_name, messages in errors.items():
            for message in messages if isinstance(messages, list) else [messages]:
                flat.append({"field": field_name, "message": str(message)})
        return flat

    def _get_json(self, path: str, **kwargs) -> Any:
        return self._json(self._request("GET", path, **kwargs))

    # Identity lookup and writes

    def scan_member(self, id_number: str) -> Dict[str, Any]:
        """Resolve a decoded identifier to a member record; 404 raises NotFound."""
        body = self._get_json("/scanMember", params={"id_number": id_number})
        member = body.get("member") if isinstance(body, dict) and "member" in body else body
        if not isinstance(member, dict):
            raise NotFoundException("Member not found in system.")
        return member

    def _write_claim(self, path: str, payload: Dict[str, Any], default_success: str) -> ClaimResponse:
        response = self._request("POST", path, passthrough=(403, 409), json=payload)
        body = self._json(response)

        if response.status_code == 409:
            return ClaimResponse(ClaimOutcome.ALREADY_RECORDED, _message(body, "Already recorded."), _record(body))
        if response.status_code == 403:
            return ClaimResponse(ClaimOutcome.NOT_ELIGIBLE, _message(body, "Not eligible."), None)
        return ClaimResponse(ClaimOutcome.CREATED, _message(body, default_success), _record(body))

    def claim_benefit(self, benefit_id: str, user_id: str) -> ClaimResponse:
        with tracer.start_as_current_span("backend.claim_benefit") as span:
            span.set_attributes({"benefit.id": benefit_id, "member.id": user_id})
            result = self._write_claim(
                f"/benefits/{benefit_id}/claims", {"user_id": user_id}, "Benefit claimed."
            )
            span.set_attribute("claim.outcome", result.outcome.value)
            return result

    def record_attendance(self, event_id: str, user_id: str) -> ClaimResponse:
        with tracer.start_as_current_span("backend.record_attendance") as span:
            span.set_attributes({"event.id": event_id, "member.id": user_id})
            result = self._write_claim(
                f"/events/{event_id}/attendances",
                {"user_id": user_id, "status": "present"},
                "Attendance recorded."
            )
            span.set_attribute("claim.outcome", result.outcome.value)
            return result

    def create_benefit(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        body = self._json(self._request("POST", "/benefits", json=payload))
        return _record(body) or {}

    def add_participants(self, benefit_id: str, user_ids: List[str]) -> Dict[str, Any]:
        body = self._json(self._request(
            "POST", f"/benefits/{benefit_id}/participants", json={"user_ids": user_ids}
        ))
        return body if isinstance(body, dict) else {}

    def remove_participants(self, benefit_id: str, user_ids: List[str]) -> Dict[str, Any]:
        body = self._json(self._request(
            "DELETE", f"/benefits/{benefit_id}/participants", expected=(200, 204), json={"user_ids": user_ids}
        ))
        return body if isinstance(body, dict) else {}

    # Read-only lists

    def list_members(self) -> List[Dict[str, Any]]:
        return _items(self._get_json("/users", params={"role": "member"}))

    def list_events(self) -> List[Dict[str, Any]]:
        return _items(self._get_json("/events"))

    def list_benefits(self) -> List[Dict[str, Any]]:
        return _items(self._get_json("/benefits-lists"))

    def list_event_attendances(self, event_id: str) -> List[Dict[str, Any]]:
        return _items(self._get_json(f"/events/{event_id}/attendances"))

    def list_benefit_records(self) -> List[Dict[str, Any]]:
        return _items(self._get_json("/benefit-records"))

    def get_current_user(self) -> Dict[str, Any]:
        body = self._get_json("/user")
        return body if isinstance(body, dict) else {}

    def list_benefit_participants(self, benefit_id: str) -> List[Dict[str, Any]]:
        return _items(self._get_json(f"/benefits/{benefit_id}/participants"))

    def list_benefit_claims(self, benefit_id: str) -> List[Dict[str, Any]]:
        return _items(self._get_json(f"/benefits/{benefit_id}/claims"))

    def check_user_claim(self, benefit_id: str, user_id: str) -> bool:
        body = self._get_json(f"/benefits/{benefit_id}/check-claim/{user_id}")
        return bool(isinstance(body, dict) and body.get("claimed"))

    def bulk_check_attendance(self, event_id: str, user_ids: List[str]) -> Dict[str, bool]:
        body = self._json(self._request(
            "POST", f"/events/{event_id}/attendances/bulk-check", json={"user_ids": user_ids}
        ))
        if not isinstance(body, dict):
            return {}
        return {str(k): bool(v) for k, v in body.items()}

    def ping(self) -> bool:
        """Cheap reachability probe used by the health endpoint."""
        try:
            self._request("GET", "/user", expected=(200,), passthrough=(401, 403, 404))
            return True
        except NetworkFailureException:
            return False


def create_backend_client(config: BackendConfig) -> BackendClient:
    """Factory function to create the backend client."""
    logger.info(f"Backend client configured for {config.url}")
    return BackendClient(config)
