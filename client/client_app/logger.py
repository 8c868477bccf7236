"""
In-memory API request log with simple performance metrics.

Entries are capped at ``max_entries`` (oldest evicted first) and mirrored
to structlog.
"""
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

import structlog

from shared.ids import generate_prefixed_id

logger = structlog.get_logger("client_app.api")

LEVELS = ("debug", "info", "warn", "error")

_STRUCTLOG_METHOD = {
    "debug": "debug",
    "info": "info",
    "warn": "warning",
    "error": "error",
}


@dataclass
class LogEntry:
    level: str
    type: str  # request | response | error
    url: str
    method: Optional[str] = None
    status: Optional[int] = None
    duration_ms: Optional[float] = None
    request_id: Optional[str] = None
    error: Optional[dict[str, Any]] = None
    metadata: dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=lambda: generate_prefixed_id("log"))
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())


@dataclass
class EndpointMetrics:
    count: int = 0
    average_ms: float = 0.0
    errors: int = 0


class ApiLogger:
    def __init__(
        self,
        enabled: bool = True,
        level: str = "info",
        max_entries: int = 1000,
        include_request_body: bool = False,
        include_response_body: bool = False,
    ):
        self.enabled = enabled
        self.level = level
        self.include_request_body = include_request_body
        self.include_response_body = include_response_body
        self._entries: deque[LogEntry] = deque(maxlen=max_entries)
        self._reset_metrics()

    @classmethod
    def from_config(cls, config) -> "ApiLogger":
        return cls(
            enabled=config.API_LOGGING_ENABLED,
            level=config.API_LOG_LEVEL,
            max_entries=config.API_LOG_MAX_ENTRIES,
            include_request_body=config.API_LOG_REQUEST_BODY,
            include_response_body=config.API_LOG_RESPONSE_BODY,
        )

    def _reset_metrics(self) -> None:
        self.total_requests = 0
        self.failed_requests = 0
        self._total_ms = 0.0
        self.status_codes: dict[int, int] = {}
        self.endpoints: dict[str, EndpointMetrics] = {}

    @property
    def max_entries(self) -> int:
        return self._entries.maxlen or 0

    def add(self, entry: LogEntry) -> None:
        if not self.enabled:
            return
        if LEVELS.index(entry.level) < LEVELS.index(self.level):
            return

        self._entries.append(entry)
        getattr(logger, _STRUCTLOG_METHOD[entry.level])(
            f"client.{entry.type}",
            method=entry.method,
            url=entry.url,
            status=entry.status,
            duration_ms=entry.duration_ms,
            request_id=entry.request_id,
            error=entry.error,
        )
        self._track(entry)

    def log_request(self, method: str, url: str, request_id: Optional[str], body: Any = None) -> None:
        metadata = {"body": body} if self.include_request_body and body is not None else {}
        self.add(LogEntry("debug", "request", url, method=method, request_id=request_id, metadata=metadata))

    def log_response(
        self,
        method: str,
        url: str,
        status: int,
        duration_ms: float,
        request_id: Optional[str],
        body: Any = None,
    ) -> None:
        metadata = {"body": body} if self.include_response_body and body is not None else {}
        self.add(LogEntry(
            "info", "response", url,
            method=method, status=status, duration_ms=duration_ms,
            request_id=request_id, metadata=metadata,
        ))

    def log_error(
        self,
        method: str,
        url: str,
        error: Exception,
        duration_ms: Optional[float],
        request_id: Optional[str],
    ) -> None:
        status = getattr(error, "status_code", None)
        self.add(LogEntry(
            "error", "error", url,
            method=method, status=status, duration_ms=duration_ms, request_id=request_id,
            error={"type": type(error).__name__, "message": str(error), "code": getattr(error, "code", None)},
        ))

    def _track(self, entry: LogEntry) -> None:
        if entry.type == "request" or entry.duration_ms is None:
            return
        self.total_requests += 1
        self._total_ms += entry.duration_ms
        failed = entry.type == "error" or (entry.status is not None and entry.status >= 400)
        if failed:
            self.failed_requests += 1
        if entry.status is not None:
            self.status_codes[entry.status] = self.status_codes.get(entry.status, 0) + 1

        key = f"{entry.method} {entry.url}" if entry.method else entry.url
        endpoint = self.endpoints.setdefault(key, EndpointMetrics())
        endpoint.count += 1
        endpoint.average_ms += (entry.duration_ms - endpoint.average_ms) / endpoint.count
        if failed:
            endpoint.errors += 1

    def get_logs(
        self,
        level: Optional[str] = None,
        type: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> list[LogEntry]:
        """Entries oldest first; ``limit`` keeps the most recent ones."""
        entries = [
            e for e in self._entries
            if (level is None or e.level == level) and (type is None or e.type == type)
        ]
        if limit is not None:
            entries = entries[-limit:] if limit > 0 else []
        return entries

    def clear(self) -> None:
        self._entries.clear()
        self._reset_metrics()

    def get_metrics(self) -> dict[str, Any]:
        return {
            "total_requests": self.total_requests,
            "successful_requests": self.total_requests - self.failed_requests,
            "failed_requests": self.failed_requests,
            "average_response_ms": self._total_ms / self.total_requests if self.total_requests else 0.0,
            "error_rate": self.failed_requests / self.total_requests if self.total_requests else 0.0,
            "status_codes": dict(self.status_codes),
            "endpoints": {k: vars(v).copy() for k, v in self.endpoints.items()},
        }
