"""
Session signals.

A failed token refresh anywhere in the client publishes
``session_invalidated``; the auth session store subscribes and drops to
logged-out. Subscribers are called synchronously in subscription order.
"""
from typing import Callable

import structlog

logger = structlog.get_logger(__name__)

SessionListener = Callable[[str], None]


class SessionEvents:
    def __init__(self):
        self._listeners: dict[int, SessionListener] = {}
        self._next_id = 0

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        """Register a listener; returns a callable that unsubscribes it."""
        handle = self._next_id
        self._next_id += 1
        self._listeners[handle] = listener

        def unsubscribe() -> None:
            self._listeners.pop(handle, None)

        return unsubscribe

    def publish_session_invalidated(self, reason: str = "refresh_failed") -> None:
        logger.info("client.session.invalidated", reason=reason, listeners=len(self._listeners))
        for handle, listener in list(self._listeners.items()):
            try:
                listener(reason)
            except Exception as e:
                logger.error("client.session.listener_failed", handle=handle, error=str(e))
