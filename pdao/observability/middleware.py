# SPDX-License-Identifier: Apache-2.0

"""
Request instrumentation for the field station.

Every request span is tagged with the scan session it touched, so a claim
can be followed from the operator's decode through to the backend write.
"""

import logging
import time

from flask import Flask, current_app, g, request
from opentelemetry import trace
from opentelemetry.instrumentation.flask import FlaskInstrumentor

logger = logging.getLogger(__name__)

QUIET_PATHS = ("/api/healthz",)


def _scan_attributes():
    registry = getattr(current_app, "scan_sessions", None)
    machine = registry.machine if registry is not None else None
    if machine is None:
        return {}
    return {
        "scan.target_type": machine.target_type.value,
        "scan.target_id": machine.target_id,
        "scan.state": machine.state.value,
    }


def add_observability_middleware(app: Flask):
    """Instrument the app with OpenTelemetry and log one line per request."""

    FlaskInstrumentor().instrument_app(app)

    @app.before_request
    def start_request_timer():
        g.request_started = time.monotonic()
        g.trace_id = None

        span = trace.get_current_span()
        if span.is_recording():
            g.trace_id = format(span.get_span_context().trace_id, "032x")
            span.set_attribute("station.path", request.path)

    @app.after_request
    def record_request(response):
        elapsed_ms = round((time.monotonic() - g.get('request_started', time.monotonic())) * 1000, 2)
        scan = _scan_attributes()

        span = trace.get_current_span()
        if span.is_recording():
            span.set_attributes({"http.status_code": response.status_code, "station.duration_ms": elapsed_ms})
            span.set_attributes(scan)

        # Health probes run every few seconds
        level = logging.DEBUG if request.path in QUIET_PATHS else logging.INFO
        logger.log(
            level,
            f"{request.method} {request.path} -> {response.status_code}",
            extra={
                "method": request.method,
                "path": request.path,
                "status_code": response.status_code,
                "duration_ms": elapsed_ms,
                "trace_id": g.get('trace_id'),
                "scan_state": scan.get("scan.state"),
            }
        )

        if g.get('trace_id'):
            response.headers['X-Trace-Id'] = g.trace_id
        return response
