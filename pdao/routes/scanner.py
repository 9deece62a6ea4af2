# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Scan session endpoints.

The device has at most one open scan session. Every action answers with
the session view so the operator screen always shows the current outcome.
"""

from flask import current_app, jsonify
from flask_openapi3 import APIBlueprint, Tag
from opentelemetry import trace
import logging

from ..middleware.error_handler import ConflictException
from ..models.requests import DecodeRequest, OpenScanSessionRequest
from ..models.responses import ErrorResponse, ScanSessionResponse, ValidationErrorResponse

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

scanner_tag = Tag(name="Scanner", description="Scan, resolve and claim")
scanner_bp = APIBlueprint(
    'scanner',
    __name__,
    url_prefix='/api/scan-sessions',
    abp_tags=[scanner_tag]
)


def _session_response(machine, status: int = 200, accepted: bool = None):
    view = machine.view()
    if accepted is not None:
        view["accepted"] = accepted
    return jsonify(current_app.hal_formatter.format_scan_session(view)), status


@scanner_bp.post('', responses={201: ScanSessionResponse, 400: ValidationErrorResponse})
def open_session(body: OpenScanSessionRequest):
    """Open the scanner on a benefit or event, closing any previous session."""
    with tracer.start_as_current_span(
        "scanner.open",
        attributes={"scan.target_type": body.target_type.value, "scan.target_id": body.target_id}
    ):
        machine = current_app.scan_sessions.open(body.target_type, body.target_id, body.auto_claim)
        return _session_response(machine, 201)


@scanner_bp.get('/current', responses={200: ScanSessionResponse, 404: ErrorResponse})
def get_session():
    """Current scanner state."""
    return _session_response(current_app.scan_sessions.current())


@scanner_bp.post('/current/decode', responses={200: ScanSessionResponse, 404: ErrorResponse})
def decode(body: DecodeRequest):
    """
    Deliver a payload read by the device.

    Payloads arriving while the decoder is disabled are dropped and
    reported with ``accepted: false``.
    """
    accepted = current_app.scan_sessions.decode(body.payload)
    return _session_response(current_app.scan_sessions.current(), accepted=accepted)


@scanner_bp.post('/current/confirm', responses={200: ScanSessionResponse, 409: ErrorResponse})
def confirm():
    """Submit the claim for an eligible member."""
    machine = current_app.scan_sessions.current()
    if not machine.confirm():
        raise ConflictException(f"Nothing to confirm in state {machine.state.value}")
    return _session_response(machine)


@scanner_bp.post('/current/retry', responses={200: ScanSessionResponse, 409: ErrorResponse})
def retry():
    """Repeat a failed lookup or claim."""
    machine = current_app.scan_sessions.current()
    if not machine.retry():
        raise ConflictException(f"Nothing to retry in state {machine.state.value}")
    return _session_response(machine)


@scanner_bp.post('/current/scan-again', responses={200: ScanSessionResponse, 409: ErrorResponse})
def scan_again():
    """Clear the outcome and re-enable the decoder."""
    machine = current_app.scan_sessions.current()
    if not machine.scan_again():
        raise ConflictException(f"Cannot reset while {machine.state.value}")
    return _session_response(machine)


@scanner_bp.delete('/current')
def close_session():
    """Leave the scanner and release the decoder."""
    current_app.scan_sessions.current()
    current_app.scan_sessions.close()
    return '', 204
