"""
Platform administration of workspaces.

Every route requires the platform Admin role and works regardless of the
admin's own membership. Workspaces are addressed by slug.
"""
from typing import Optional
from uuid import UUID

import structlog
from fastapi import APIRouter, HTTPException, Query, Request, status
from pydantic import BaseModel, Field, field_validator, model_validator
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.deps import AdminUser, AdminWorkspace, DbSession
from app.core.security import hash_password
from app.models.user import Role, User
from app.schemas import MemberResponse, MessageResponse, WorkspaceResponse, WorkspaceStatsResponse
from app.services import activity, membership
from shared.enums import ActivityType, PlatformRole, WorkspaceRole

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/admin", tags=["admin-workspaces"])

SLUG_PATTERN = r"^[a-z0-9]+(?:-[a-z0-9]+)*$"


# =============================================================================
# Schemas
# =============================================================================

class WorkspaceCreateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    slug: str = Field(min_length=2, max_length=100, pattern=SLUG_PATTERN)


class WorkspaceUpdateRequest(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    is_active: Optional[bool] = None


class WorkspaceListResponse(BaseModel):
    items: list[WorkspaceResponse]
    total: int
    page: int
    limit: int


class RoleField(BaseModel):
    @field_validator("role", mode="before", check_fields=False)
    @classmethod
    def canonical_role(cls, value):
        return WorkspaceRole.parse(value)


class AdminAddMemberRequest(RoleField):
    """Add an existing user by id, or by username; unknown usernames are created when a password is given."""
    user_id: Optional[UUID] = None
    username: Optional[str] = Field(default=None, min_length=3, max_length=100)
    name: Optional[str] = None
    password: Optional[str] = Field(default=None, min_length=6)
    role: WorkspaceRole = WorkspaceRole.MEMBER

    @model_validator(mode="after")
    def user_reference(self):
        if self.user_id is None and not self.username:
            raise ValueError("Either user_id or username is required")
        return self


class MemberRoleRequest(RoleField):
    role: WorkspaceRole


class MemberStatusRequest(BaseModel):
    is_active: bool


class ReplaceOwnerRequest(BaseModel):
    new_owner_id: UUID


class ReplaceOwnerResponse(BaseModel):
    new_owner: MemberResponse
    previous_owner_ids: list[UUID]


# =============================================================================
# Workspaces
# =============================================================================

@router.get("/workspaces", response_model=WorkspaceListResponse)
def list_workspaces(
    admin: AdminUser,
    db: DbSession,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    search: Optional[str] = None,
    is_active: Optional[bool] = None,
):
    """List all workspaces."""
    items, total = membership.list_workspaces(db, page=page, limit=limit, search=search, is_active=is_active)
    return {
        "items": [WorkspaceResponse.model_validate(w) for w in items],
        "total": total,
        "page": page,
        "limit": limit,
    }


@router.post("/workspaces", response_model=WorkspaceResponse, status_code=status.HTTP_201_CREATED)
def create_workspace(
    data: WorkspaceCreateRequest,
    request: Request,
    admin: AdminUser,
    db: DbSession,
):
    """Create a workspace; the creating admin becomes its Owner."""
    workspace = membership.create_workspace(db, name=data.name, slug=data.slug, creator=admin)
    db.commit()
    db.refresh(workspace)

    activity.record(
        db,
        owner_id=admin.id,
        workspace_id=workspace.id,
        activity_type=ActivityType.WORKSPACE_CREATED,
        message=f"Created workspace {workspace.name}",
        metadata={"slug": workspace.slug},
        request=request,
    )
    return workspace


@router.get("/c/{slug}", response_model=WorkspaceResponse)
def get_workspace(workspace: AdminWorkspace):
    """Get a workspace by slug."""
    return workspace


@router.patch("/c/{slug}", response_model=WorkspaceResponse)
def update_workspace(
    data: WorkspaceUpdateRequest,
    request: Request,
    workspace: AdminWorkspace,
    admin: AdminUser,
    db: DbSession,
):
    """Rename or (de)activate a workspace. The slug is immutable.

    Inactive workspaces stay manageable here but disappear from the
    workspace-scoped endpoints.
    """
    changes = data.model_dump(exclude_unset=True, exclude_none=True)
    for field, value in changes.items():
        setattr(workspace, field, value)
    workspace.updated_by = admin.id
    db.commit()
    db.refresh(workspace)

    activity.record(
        db,
        owner_id=admin.id,
        workspace_id=workspace.id,
        activity_type=ActivityType.WORKSPACE_UPDATED,
        message=f"Updated workspace {workspace.name}",
        metadata={"changes": changes},
        request=request,
    )
    return workspace


@router.delete("/c/{slug}", response_model=MessageResponse)
def delete_workspace(
    request: Request,
    workspace: AdminWorkspace,
    admin: AdminUser,
    db: DbSession,
):
    """Delete a workspace together with its memberships and environment."""
    name, slug = workspace.name, workspace.slug
    db.delete(workspace)
    db.commit()

    logger.info("workspace.deleted", slug=slug, admin_id=str(admin.id))
    activity.record(
        db,
        owner_id=admin.id,
        activity_type=ActivityType.WORKSPACE_DELETED,
        message=f"Deleted workspace {name}",
        metadata={"slug": slug},
        request=request,
    )
    return {"message": f"Workspace '{slug}' deleted"}


@router.get("/c/{slug}/stats", response_model=WorkspaceStatsResponse)
def workspace_stats(workspace: AdminWorkspace, db: DbSession):
    """Membership statistics for a workspace."""
    return membership.workspace_stats(db, workspace)


# =============================================================================
# Members
# =============================================================================

@router.get("/c/{slug}/users", response_model=list[MemberResponse])
def list_members(workspace: AdminWorkspace, db: DbSession):
    """List all members, active and inactive."""
    return [MemberResponse.from_member(m) for m in membership.list_members(db, workspace.id)]


def _resolve_or_create_user(db: Session, data: AdminAddMemberRequest) -> User:
    if data.user_id is not None:
        user = db.get(User, data.user_id)
        if user is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
        return user

    user = db.execute(select(User).where(User.username == data.username)).scalar_one_or_none()
    if user is not None:
        return user

    if not data.password:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"User '{data.username}' not found; supply a password to create it",
        )

    role = db.execute(select(Role).where(Role.name == PlatformRole.USER.value)).scalar_one_or_none()
    user = User(
        username=data.username,
        name=data.name or data.username,
        password_hash=hash_password(data.password),
        role_id=role.id if role else None,
        is_active=True,
    )
    db.add(user)
    db.flush()
    logger.info("user.created.for_workspace", user_id=str(user.id))
    return user


@router.post("/c/{slug}/users", response_model=MemberResponse, status_code=status.HTTP_201_CREATED)
def add_member(
    data: AdminAddMemberRequest,
    request: Request,
    workspace: AdminWorkspace,
    admin: AdminUser,
    db: DbSession,
):
    """Add a member. Owner may be granted only while the workspace has none."""
    user = _resolve_or_create_user(db, data)
    member = membership.add_member(db, workspace, user.id, data.role, allow_owner=True)
    db.commit()
    db.refresh(member)

    activity.record(
        db,
        owner_id=admin.id,
        workspace_id=workspace.id,
        activity_type=ActivityType.MEMBER_ADDED,
        message=f"Added {user.username} as {member.role}",
        metadata={"user_id": str(user.id), "role": member.role},
        request=request,
    )
    return MemberResponse.from_member(member)


@router.patch("/c/{slug}/users/{user_id}/role", response_model=MemberResponse)
def update_member_role(
    user_id: UUID,
    data: MemberRoleRequest,
    request: Request,
    workspace: AdminWorkspace,
    admin: AdminUser,
    db: DbSession,
):
    """Change a member's workspace role."""
    member = membership.update_member_role(db, workspace, user_id, data.role, allow_owner=True)
    db.commit()
    db.refresh(member)

    activity.record(
        db,
        owner_id=admin.id,
        workspace_id=workspace.id,
        activity_type=ActivityType.MEMBER_ROLE_CHANGED,
        message=f"Changed role of {member.user.username} to {member.role}",
        metadata={"user_id": str(user_id), "role": member.role},
        request=request,
    )
    return MemberResponse.from_member(member)


@router.patch("/c/{slug}/users/{user_id}/status", response_model=MemberResponse)
def update_member_status(
    user_id: UUID,
    data: MemberStatusRequest,
    request: Request,
    workspace: AdminWorkspace,
    admin: AdminUser,
    db: DbSession,
):
    """Activate or deactivate a membership."""
    member = membership.set_member_status(db, workspace, user_id, data.is_active)
    db.commit()
    db.refresh(member)

    activity.record(
        db,
        owner_id=admin.id,
        workspace_id=workspace.id,
        activity_type=ActivityType.MEMBER_STATUS_CHANGED,
        message=f"{'Activated' if member.is_active else 'Deactivated'} {member.user.username}",
        metadata={"user_id": str(user_id), "is_active": member.is_active},
        request=request,
    )
    return MemberResponse.from_member(member)


@router.delete("/c/{slug}/users/{user_id}", response_model=MessageResponse)
def remove_member(
    user_id: UUID,
    request: Request,
    workspace: AdminWorkspace,
    admin: AdminUser,
    db: DbSession,
):
    """Remove a member from the workspace."""
    membership.remove_member(db, workspace, user_id)
    db.commit()

    activity.record(
        db,
        owner_id=admin.id,
        workspace_id=workspace.id,
        activity_type=ActivityType.MEMBER_REMOVED,
        message="Removed a member",
        metadata={"user_id": str(user_id)},
        request=request,
    )
    return {"message": "Member removed"}


@router.post("/c/{slug}/users/replace-owner", response_model=ReplaceOwnerResponse)
def replace_owner(
    data: ReplaceOwnerRequest,
    request: Request,
    workspace: AdminWorkspace,
    admin: AdminUser,
    db: DbSession,
):
    """Transfer ownership to an active member; the previous owner becomes Author."""
    transfer = membership.replace_owner(db, workspace, data.new_owner_id)
    db.commit()
    db.refresh(transfer.new_owner)

    activity.record(
        db,
        owner_id=admin.id,
        workspace_id=workspace.id,
        activity_type=ActivityType.OWNER_REPLACED,
        message=f"Transferred ownership to {transfer.new_owner.user.username}",
        metadata={
            "new_owner_id": str(data.new_owner_id),
            "previous_owner_ids": [str(i) for i in transfer.previous_owner_ids],
        },
        request=request,
    )
    return {
        "new_owner": MemberResponse.from_member(transfer.new_owner),
        "previous_owner_ids": transfer.previous_owner_ids,
    }
