"""Shared utilities for the workspace platform."""

from shared.enums import (
    ActivityScope,
    ActivityType,
    ConnectionStatus,
    PlatformRole,
    WorkspaceRole,
)
from shared.ids import generate_id, generate_prefixed_id

__all__ = [
    "ActivityScope",
    "ActivityType",
    "ConnectionStatus",
    "PlatformRole",
    "WorkspaceRole",
    "generate_id",
    "generate_prefixed_id",
]
