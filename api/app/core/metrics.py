"""Prometheus metrics for observability.

The collector owns its own ``CollectorRegistry`` and is created per
application (``app.state.metrics``), so tests and multiple apps in one
process never share counters.
"""
import re

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)

HTTP_DURATION_BUCKETS = [0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1, 2.5, 5, 10]

_NUMERIC_SEGMENT = re.compile(r"^\d+$")
_UUID_SEGMENT = re.compile(
    r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$"
)


def normalize_route(path: str) -> str:
    """Collapse numeric and UUID path segments to ``{id}``."""
    segments = [
        "{id}" if _NUMERIC_SEGMENT.match(s) or _UUID_SEGMENT.match(s) else s
        for s in path.split("/")
    ]
    return "/".join(segments) or "/"


class MetricsCollector:
    """HTTP request counters and latency histograms."""

    def __init__(self, registry: CollectorRegistry | None = None):
        self.registry = registry or CollectorRegistry()

        self.http_requests_total = Counter(
            "http_server_requests_total",
            "Total number of HTTP requests",
            ["method", "route", "status_code"],
            registry=self.registry,
        )

        self.http_request_duration_seconds = Histogram(
            "http_server_requests_duration_seconds",
            "Duration of HTTP requests in seconds",
            ["method", "route", "status_code"],
            buckets=HTTP_DURATION_BUCKETS,
            registry=self.registry,
        )

    def record_request(self, method: str, route: str, status_code: int, duration_seconds: float) -> None:
        labels = {
            "method": method,
            "route": route,
            "status_code": str(status_code),
        }
        self.http_requests_total.labels(**labels).inc()
        self.http_request_duration_seconds.labels(**labels).observe(duration_seconds)

    def render(self) -> bytes:
        """Prometheus text exposition of this collector's registry."""
        return generate_latest(self.registry)

    @property
    def content_type(self) -> str:
        return CONTENT_TYPE_LATEST
