"""Enumerations shared across the workspace platform."""

from enum import Enum


class PlatformRole(str, Enum):
    """Global role attached to a user, independent of any workspace."""

    ADMIN = "Admin"
    USER = "User"

    @classmethod
    def parse(cls, value: "str | PlatformRole") -> "PlatformRole":
        """Resolve any accepted spelling to the canonical role.

        Raises ValueError for unknown input.
        """
        if isinstance(value, cls):
            return value
        try:
            return PLATFORM_ROLE_ALIASES[str(value).strip().lower()]
        except KeyError:
            raise ValueError(f"Unknown platform role: {value!r}") from None


class WorkspaceRole(str, Enum):
    """Roles within a workspace."""

    OWNER = "Owner"
    AUTHOR = "Author"
    MEMBER = "Member"

    @property
    def level(self) -> int:
        return WORKSPACE_ROLE_LEVELS[self]

    def at_least(self, other: "WorkspaceRole") -> bool:
        return self.level >= other.level

    @classmethod
    def parse(cls, value: "str | WorkspaceRole") -> "WorkspaceRole":
        """Resolve any accepted spelling to the canonical role.

        Accepts any casing of Owner/Author/Member. The retired workspace
        level ``Admin`` role resolves to Author.

        Raises ValueError for unknown input.
        """
        if isinstance(value, cls):
            return value
        try:
            return WORKSPACE_ROLE_ALIASES[str(value).strip().lower()]
        except KeyError:
            raise ValueError(f"Unknown workspace role: {value!r}") from None


# Lower-cased input spelling -> canonical variant
PLATFORM_ROLE_ALIASES = {
    "admin": PlatformRole.ADMIN,
    "administrator": PlatformRole.ADMIN,
    "user": PlatformRole.USER,
}

WORKSPACE_ROLE_ALIASES = {
    "owner": WorkspaceRole.OWNER,
    "author": WorkspaceRole.AUTHOR,
    "admin": WorkspaceRole.AUTHOR,
    "member": WorkspaceRole.MEMBER,
}

WORKSPACE_ROLE_LEVELS = {
    WorkspaceRole.OWNER: 3,
    WorkspaceRole.AUTHOR: 2,
    WorkspaceRole.MEMBER: 1,
}

# Roles that may be granted through the regular add-member flow
ASSIGNABLE_MEMBER_ROLES = frozenset([WorkspaceRole.AUTHOR, WorkspaceRole.MEMBER])


class ActivityScope(str, Enum):
    """Audience of an activity entry."""

    USER = "user"
    WORKSPACE = "workspace"


class ActivityType(str, Enum):
    """Types of events recorded in the activity log."""

    # Account
    LOGIN_SUCCESS = "login_success"
    PROFILE_UPDATED = "profile_updated"
    PASSWORD_CHANGED = "password_changed"
    AVATAR_UPDATED = "avatar_updated"

    # Platform administration
    USER_CREATED = "user_created"
    USER_STATUS_CHANGED = "user_status_changed"
    USER_ROLE_CHANGED = "user_role_changed"

    # Workspace
    WORKSPACE_CREATED = "workspace_created"
    WORKSPACE_UPDATED = "workspace_updated"
    WORKSPACE_DELETED = "workspace_deleted"
    MEMBER_ADDED = "member_added"
    MEMBER_ROLE_CHANGED = "member_role_changed"
    MEMBER_STATUS_CHANGED = "member_status_changed"
    MEMBER_REMOVED = "member_removed"
    OWNER_REPLACED = "owner_replaced"
    ENVIRONMENT_CREATED = "environment_created"
    ENVIRONMENT_UPDATED = "environment_updated"
    ENVIRONMENT_DELETED = "environment_deleted"
    ENVIRONMENT_TESTED = "environment_tested"

    # SQL editor
    SQL_PROCEDURE_CREATED = "sql_procedure_created"
    SQL_PROCEDURE_UPDATED = "sql_procedure_updated"
    SQL_PROCEDURE_DELETED = "sql_procedure_deleted"
    SQL_PROCEDURE_PUBLISHED = "sql_procedure_published"
    SQL_PROCEDURE_UNPUBLISHED = "sql_procedure_unpublished"
    SQL_PROCEDURE_PUBLISH_FAILED = "sql_procedure_publish_failed"
    SQL_PROCEDURE_EXECUTED = "sql_procedure_executed"
    SQL_PROCEDURE_EXECUTION_FAILED = "sql_procedure_execution_failed"
    SQL_PROCEDURE_VERSION_CREATED = "sql_procedure_version_created"
    SQL_PROCEDURE_VERSION_ROLLED_BACK = "sql_procedure_version_rolled_back"

    @property
    def default_scope(self) -> ActivityScope:
        if self in USER_SCOPED_ACTIVITIES:
            return ActivityScope.USER
        return ActivityScope.WORKSPACE


USER_SCOPED_ACTIVITIES = frozenset([
    ActivityType.LOGIN_SUCCESS,
    ActivityType.PROFILE_UPDATED,
    ActivityType.PASSWORD_CHANGED,
    ActivityType.AVATAR_UPDATED,
    ActivityType.USER_CREATED,
    ActivityType.USER_STATUS_CHANGED,
    ActivityType.USER_ROLE_CHANGED,
])


class ConnectionStatus(str, Enum):
    """Cached result of the last environment connection test."""

    UNKNOWN = "unknown"
    CONNECTED = "connected"
    FAILED = "failed"


class ProcedureStatus(str, Enum):
    """Lifecycle of a stored procedure kept in the SQL editor."""

    DRAFT = "draft"
    PUBLISHED = "published"


class VersionSource(str, Enum):
    DRAFT = "draft"
    PUBLISHED = "published"
