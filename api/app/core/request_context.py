"""
Request context middleware.

Every request gets a correlation id (propagated from ``X-Request-ID`` or
generated), bound into structlog contextvars for the lifetime of the
request and echoed back on the response. Timing and status are recorded
into the application's injected ``MetricsCollector``.
"""
import time
import uuid

import structlog
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from app.core.metrics import MetricsCollector, normalize_route

logger = structlog.get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Request id propagation, access logging and HTTP metrics."""

    # Scrapes and health checks are neither logged nor counted
    SKIP_PATHS = frozenset([
        "/healthz",
        "/readyz",
        "/metrics",
        "/internal-metrics",
    ])

    def __init__(self, app, metrics: MetricsCollector):
        super().__init__(app)
        self.metrics = metrics

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        request.state.request_id = request_id

        if request.url.path in self.SKIP_PATHS:
            response = await call_next(request)
            response.headers[REQUEST_ID_HEADER] = request_id
            return response

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            workspace_slug=_slug_from_path(request.url.path),
        )

        start_time = time.perf_counter()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
        finally:
            duration = time.perf_counter() - start_time
            route = self._route_pattern(request)
            self.metrics.record_request(request.method, route, status_code, duration)
            logger.info(
                "http.request.completed",
                method=request.method,
                path=request.url.path,
                route=route,
                status_code=status_code,
                duration_ms=round(duration * 1000, 2),
                client_ip=request.client.host if request.client else None,
            )
            structlog.contextvars.clear_contextvars()

        response.headers[REQUEST_ID_HEADER] = request_id
        return response

    @staticmethod
    def _route_pattern(request: Request) -> str:
        route = request.scope.get("route")
        template = getattr(route, "path", None)
        if template:
            return template
        return normalize_route(request.url.path)


def _slug_from_path(path: str) -> str | None:
    """Extract the workspace slug from ``/c/{slug}/...`` or ``/admin/c/{slug}/...``."""
    parts = [p for p in path.split("/") if p]
    for i, part in enumerate(parts):
        if part == "c" and i + 1 < len(parts):
            return parts[i + 1]
    return None
