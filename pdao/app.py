# SPDX-License-Identifier: Apache-2.0

"""
PDAO Field Station - Flask Application Entry Point

This module builds the Flask application that runs next to a scanning
device: it owns the scan-resolve-claim machine, the entitlement snapshot
service and the cached list views, and talks to the PDAO backend over
HTTP.
"""

import os
import time
from datetime import datetime, timezone
from typing import Optional

import psutil
from flask import jsonify, request
from flask_openapi3 import OpenAPI, Info, Tag
from pydantic import ValidationError

from .config import StationConfig
from .middleware.error_handler import ErrorHandlerMiddleware, register_custom_error_handlers
from .observability.config import setup_observability
from .observability.middleware import add_observability_middleware
from .services.backend import BackendClient, create_backend_client
from .services.cache import LocalCache, create_cache
from .services.hal import create_hal_formatter
from .services.poll_sync import SyncRegistry
from .services.scanner import ScanSessionRegistry
from .services.snapshot import EntitlementSnapshotService

info = Info(
    title="PDAO Field Station API",
    version="1.0.0",
    description="Benefit distribution and event attendance scanning for PDAO staff"
)

health_tag = Tag(name="Health", description="Station health and status")


def _validation_error_response(e: ValidationError):
    """Render request validation failures as HAL validation errors."""
    from flask import current_app

    errors = [
        {"field": ".".join(str(part) for part in err["loc"]), "message": err["msg"]}
        for err in e.errors()
    ]
    body = current_app.hal_formatter.format_validation_error("Request validation failed", request.path, errors)
    response = jsonify(body)
    response.status_code = 400
    return response


def create_app(
    config: Optional[StationConfig] = None,
    backend: Optional[BackendClient] = None,
    cache: Optional[LocalCache] = None
) -> OpenAPI:
    """
    Application factory.

    ``backend`` and ``cache`` may be injected; otherwise they are built
    from ``config``.
    """
    config = config or StationConfig.from_env()

    app = OpenAPI(
        __name__,
        info=info,
        doc_ui=config.docs_enabled,
        validation_error_status=400,
        validation_error_callback=_validation_error_response
    )

    add_observability_middleware(app)

    app.config['ENVIRONMENT'] = config.environment
    app.config['ENV'] = config.environment
    app.config['DEBUG'] = config.environment == 'development'
    app.config['DOCS_ENABLED'] = config.docs_enabled
    app.config['BASE_URL'] = config.base_url
    app.config['PDAO_API_URL'] = config.backend.url
    app.config['PDAO_CACHE_BACKEND'] = config.cache_backend
    app.config['STATION_CONFIG'] = config

    # Initialize services
    backend = backend or create_backend_client(config.backend)
    cache = cache or create_cache(config.cache_backend, config.redis_url,
                                  default_ttl_ms=config.sync.list_ttl_ms)
    sync_registry = SyncRegistry(backend, cache, config.sync)
    members_view = sync_registry.get("members")

    snapshot_service = EntitlementSnapshotService(
        backend,
        roster_source=members_view.read,
        on_change=lambda: sync_registry.expire("benefits", "benefit-records")
    )
    scan_sessions = ScanSessionRegistry(backend, roster_source=members_view.read)

    hal_formatter = create_hal_formatter(config.base_url)
    error_handler = ErrorHandlerMiddleware(app, hal_formatter)
    register_custom_error_handlers(app, hal_formatter)

    # Make services available to routes
    app.backend_client = backend
    app.local_cache = cache
    app.sync_registry = sync_registry
    app.snapshot_service = snapshot_service
    app.scan_sessions = scan_sessions
    app.hal_formatter = hal_formatter
    app.error_handler = error_handler

    from .routes.benefits import benefits_bp
    from .routes.lists import lists_bp
    from .routes.scanner import scanner_bp

    app.register_api(scanner_bp)
    app.register_api(benefits_bp)
    app.register_api(lists_bp)

    @app.get('/api/healthz', tags=[health_tag])
    def health_check():
        """Station health with backend reachability and cache status."""
        backend_ok = app.backend_client.ping()
        machine = app.scan_sessions.machine

        status = {
            "status": "healthy" if backend_ok else "degraded",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "version": info.version,
            "environment": app.config['ENVIRONMENT'],
            "checks": {
                "backend": {"reachable": backend_ok, "url": app.config['PDAO_API_URL']},
                "cache": {
                    "backend": app.config['PDAO_CACHE_BACKEND'],
                    "available": app.local_cache.store.is_available()
                },
            },
            "sync": [view.status() for view in app.sync_registry.views.values()],
            "scan_session": machine.view() if machine is not None else None,
            "uptime": _get_application_uptime(),
        }
        body = app.hal_formatter.builder.build_resource_response(status, "/api/healthz")
        return jsonify(body), 200 if backend_ok else 503

    return app


def _get_application_uptime():
    """Get application uptime information."""
    process = psutil.Process(os.getpid())
    create_time = process.create_time()
    return {
        "uptime_seconds": round(time.time() - create_time, 2),
        "started_at": datetime.fromtimestamp(create_time, tz=timezone.utc).isoformat(),
        "process_id": os.getpid()
    }


def main():
    """Run the field station development server."""
    config = StationConfig.from_env()
    setup_observability(config.environment)
    app = create_app(config)
    # One request at a time: the scan machine relies on a single event loop
    app.run(
        host='0.0.0.0',
        port=config.port,
        debug=app.config['DEBUG'],
        threaded=False
    )


if __name__ == '__main__':
    main()
