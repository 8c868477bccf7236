"""Prefixed identifier generation.

Database rows use UUID primary keys; these ids label transient things that
cross process boundaries (request correlation ids, client log entries).
"""

import secrets
import time
from typing import Literal

ID_PREFIXES = {
    "request": "req",
    "log": "log",
}

IdKind = Literal["request", "log"]


def generate_id(length: int = 22) -> str:
    """Generate a random URL-safe ID."""
    return secrets.token_urlsafe(length)[:length]


def generate_prefixed_id(kind: IdKind) -> str:
    """Generate an id of the form ``{prefix}_{timestamp_hex}_{random}``.

    The millisecond timestamp keeps ids roughly sortable by creation time.

    Example:
        >>> generate_prefixed_id("request")
        'req_18d4f8a1c2_xK9mN2pQ'
    """
    prefix = ID_PREFIXES[kind]
    timestamp_hex = format(int(time.time() * 1000), "x")
    random_part = secrets.token_urlsafe(8)[:8]
    return f"{prefix}_{timestamp_hex}_{random_part}"


def extract_prefix(value: str) -> str | None:
    """Return the prefix of a prefixed id, or None."""
    if "_" in value:
        return value.split("_")[0]
    return None


def validate_prefixed_id(value: str, expected: IdKind) -> bool:
    """Check that an id carries the prefix for its kind."""
    prefix = ID_PREFIXES.get(expected)
    if not prefix:
        return False
    return value.startswith(f"{prefix}_")
