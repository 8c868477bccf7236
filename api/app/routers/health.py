from fastapi import APIRouter, Request, Response

from app.core.config import settings
from app.db.session import check_db

router = APIRouter(tags=["health"])


@router.get("/health")
def health():
    """Health check used by API clients."""
    return {"status": "ok", "version": settings.APP_VERSION}


@router.get("/healthz")
def healthz():
    """Liveness check - Is the service alive?"""
    return {"ok": True}


@router.get("/readyz")
def readyz():
    """Readiness check - Is the service ready to accept traffic?"""
    db_ok = check_db()
    return {"ok": db_ok, "db": db_ok}


def _render_metrics(request: Request) -> Response:
    collector = request.app.state.metrics
    return Response(content=collector.render(), media_type=collector.content_type)


@router.get("/metrics")
def metrics(request: Request):
    """
    Prometheus metrics endpoint.

    Exposed metrics:
    - http_server_requests_total{method, route, status_code}
    - http_server_requests_duration_seconds{method, route, status_code}
    """
    return _render_metrics(request)


@router.get("/internal-metrics", include_in_schema=False)
def internal_metrics(request: Request):
    """Same exposition as /metrics, for scrapers on the internal network."""
    return _render_metrics(request)
