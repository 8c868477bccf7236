from dataclasses import dataclass
from typing import Annotated
from uuid import UUID

from fastapi import Depends, HTTPException, Path, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.core.security import decode_access_token
from app.models.user import User
from app.models.workspace import Workspace, WorkspaceMember
from app.services import membership
from shared.enums import WorkspaceRole

security = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
    db: Annotated[Session, Depends(get_db)],
) -> User:
    """Get current authenticated user from JWT token."""
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    payload = decode_access_token(credentials.credentials)
    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        user_id = UUID(payload.get("sub", ""))
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
        )

    user = db.execute(select(User).where(User.id == user_id)).scalar_one_or_none()

    if user is None or not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found or inactive",
        )

    return user


CurrentUser = Annotated[User, Depends(get_current_user)]
DbSession = Annotated[Session, Depends(get_db)]


def require_platform_admin(user: CurrentUser) -> User:
    """Gate for the /admin family and user administration."""
    if not user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Platform admin access required",
        )
    return user


AdminUser = Annotated[User, Depends(require_platform_admin)]


def get_admin_workspace(
    slug: Annotated[str, Path()],
    admin: AdminUser,
    db: DbSession,
) -> Workspace:
    """Resolve ``{slug}`` for platform admins, including inactive workspaces."""
    return membership.get_workspace_by_slug(db, slug, include_inactive=True)


AdminWorkspace = Annotated[Workspace, Depends(get_admin_workspace)]


@dataclass
class WorkspaceContext:
    workspace: Workspace
    membership: WorkspaceMember
    user: User

    @property
    def role(self) -> WorkspaceRole:
        return self.membership.workspace_role


class WorkspaceRoleChecker:
    """
    Resolve ``{slug}`` and check the caller's workspace role.

    Only an active membership counts; platform Admins without one are
    refused here and use the /admin endpoints instead.
    """

    def __init__(self, min_role: WorkspaceRole):
        self.min_role = min_role

    def __call__(
        self,
        slug: Annotated[str, Path()],
        user: CurrentUser,
        db: DbSession,
    ) -> WorkspaceContext:
        workspace = membership.get_workspace_by_slug(db, slug)
        member = membership.get_membership(db, workspace.id, user.id)

        if member is None or not member.is_active:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Not a member of this workspace",
            )

        if not member.workspace_role.at_least(self.min_role):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Requires {self.min_role.value} role or higher",
            )

        return WorkspaceContext(workspace=workspace, membership=member, user=user)


# Pre-configured role checkers
require_member = WorkspaceRoleChecker(WorkspaceRole.MEMBER)
require_author = WorkspaceRoleChecker(WorkspaceRole.AUTHOR)
require_owner = WorkspaceRoleChecker(WorkspaceRole.OWNER)

MemberContext = Annotated[WorkspaceContext, Depends(require_member)]
AuthorContext = Annotated[WorkspaceContext, Depends(require_author)]
OwnerContext = Annotated[WorkspaceContext, Depends(require_owner)]
