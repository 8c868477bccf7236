"""
Activity log.

Entries are append-only. ``record`` never raises: a failed write is rolled
back and reported through structlog so the user action that triggered it
still succeeds. Listing is keyset-paginated on ``(created_at, id)``
descending; the cursor is an opaque urlsafe-base64 JSON blob.
"""
import base64
import binascii
import json
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any

import structlog
from fastapi import Request
from sqlalchemy import and_, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.errors import BadRequestError
from app.models.activity import Activity
from shared.enums import ActivityScope, ActivityType

logger = structlog.get_logger(__name__)

SENSITIVE_KEYS = frozenset(["password", "password_hash", "token", "refresh_token", "secret"])


@dataclass
class ActivityPage:
    items: list[Activity]
    next_cursor: str | None


def record(
    db: Session,
    owner_id: uuid.UUID,
    activity_type: ActivityType,
    message: str,
    workspace_id: uuid.UUID | None = None,
    metadata: dict[str, Any] | None = None,
    scope: ActivityScope | None = None,
    request: Request | None = None,
) -> Activity | None:
    """
    Append an activity entry and commit it.

    Call after the primary change has been committed. Returns the entry,
    or None when the write failed.
    """
    details = None
    if metadata:
        details = {k: v for k, v in metadata.items() if k not in SENSITIVE_KEYS}
    if request is not None:
        details = details or {}
        details["request_id"] = getattr(request.state, "request_id", None) or request.headers.get("X-Request-ID")
        details["ip"] = request.client.host if request.client else None

    entry = Activity(
        owner_id=owner_id,
        workspace_id=workspace_id,
        scope=(scope or activity_type.default_scope).value,
        type=activity_type.value,
        message=message,
        details=details,
    )

    try:
        db.add(entry)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(
            "activity.record.failed",
            activity_type=activity_type.value,
            owner_id=str(owner_id),
            workspace_id=str(workspace_id) if workspace_id else None,
            error=str(e),
        )
        return None

    logger.debug("activity.recorded", activity_type=activity_type.value, activity_id=str(entry.id))
    return entry


def encode_cursor(activity: Activity) -> str:
    raw = json.dumps({"t": activity.created_at.isoformat(), "id": str(activity.id)})
    return base64.urlsafe_b64encode(raw.encode()).decode().rstrip("=")


def decode_cursor(cursor: str) -> tuple[datetime, uuid.UUID]:
    """Decode a cursor into its ``(created_at, id)`` position.

    Raises BadRequestError for anything that was not produced by encode_cursor.
    """
    try:
        padded = cursor + "=" * (-len(cursor) % 4)
        data = json.loads(base64.urlsafe_b64decode(padded.encode()))
        return datetime.fromisoformat(data["t"]), uuid.UUID(data["id"])
    except (binascii.Error, UnicodeDecodeError, ValueError, KeyError, TypeError):
        raise BadRequestError("Invalid cursor", code="INVALID_CURSOR") from None


def list_activities(
    db: Session,
    limit: int,
    cursor: str | None = None,
    owner_id: uuid.UUID | None = None,
    workspace_id: uuid.UUID | None = None,
    scope: ActivityScope | None = None,
) -> ActivityPage:
    """Return up to ``limit`` entries older than ``cursor``, newest first."""
    query = select(Activity)
    if owner_id is not None:
        query = query.where(Activity.owner_id == owner_id)
    if workspace_id is not None:
        query = query.where(Activity.workspace_id == workspace_id)
    if scope is not None:
        query = query.where(Activity.scope == scope.value)

    if cursor:
        created_at, last_id = decode_cursor(cursor)
        query = query.where(
            or_(
                Activity.created_at < created_at,
                and_(Activity.created_at == created_at, Activity.id < last_id),
            )
        )

    # One extra row tells whether an older page exists
    rows = db.execute(
        query.order_by(Activity.created_at.desc(), Activity.id.desc()).limit(limit + 1)
    ).scalars().all()

    items = list(rows[:limit])
    next_cursor = encode_cursor(items[-1]) if len(rows) > limit else None
    return ActivityPage(items=items, next_cursor=next_cursor)
