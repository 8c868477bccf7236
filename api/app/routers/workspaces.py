"""
Workspace-scoped endpoints (``/c/{slug}/...``).

Access is decided by the caller's own active membership:
    - Member: read members and stats
    - Author: add members as Author or Member
    - Owner: change roles, (de)activate, remove, transfer ownership
"""
from datetime import datetime
from typing import Optional
from uuid import UUID

import structlog
from fastapi import APIRouter, Request, status
from pydantic import BaseModel, field_validator

from app.core.deps import AuthorContext, CurrentUser, DbSession, MemberContext, OwnerContext
from app.schemas import MemberResponse, MessageResponse, WorkspaceStatsResponse
from app.services import activity, membership
from shared.enums import ActivityType, WorkspaceRole

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["workspaces"])


class MyWorkspaceResponse(BaseModel):
    id: UUID
    name: str
    slug: str
    role: str
    member_count: int


class WorkspaceProfileResponse(BaseModel):
    id: UUID
    username: str
    name: str
    avatar: Optional[str] = None
    global_role: Optional[str] = None
    workspace_role: str
    workspace_id: UUID
    joined_at: datetime


class AddMemberRequest(BaseModel):
    user_id: UUID
    role: WorkspaceRole = WorkspaceRole.MEMBER

    @field_validator("role", mode="before")
    @classmethod
    def canonical_role(cls, value):
        return WorkspaceRole.parse(value)


class MemberRoleRequest(BaseModel):
    role: WorkspaceRole

    @field_validator("role", mode="before")
    @classmethod
    def canonical_role(cls, value):
        return WorkspaceRole.parse(value)


class MemberStatusRequest(BaseModel):
    is_active: bool


class ReplaceOwnerRequest(BaseModel):
    new_owner_id: UUID


# =============================================================================
# Caller's workspaces
# =============================================================================

@router.get("/workspaces", response_model=list[MyWorkspaceResponse])
def list_my_workspaces(current_user: CurrentUser, db: DbSession):
    """Workspaces the current user is an active member of."""
    return [
        MyWorkspaceResponse(
            id=m.workspace.id,
            name=m.workspace.name,
            slug=m.workspace.slug,
            role=m.role,
            member_count=m.workspace.member_count,
        )
        for m in membership.list_user_memberships(db, current_user.id)
    ]


@router.get("/c/{slug}/auth/profile", response_model=WorkspaceProfileResponse)
def workspace_profile(ctx: MemberContext):
    """Current user together with their role in this workspace."""
    return WorkspaceProfileResponse(
        id=ctx.user.id,
        username=ctx.user.username,
        name=ctx.user.name,
        avatar=ctx.user.avatar,
        global_role=ctx.user.role_name,
        workspace_role=ctx.membership.role,
        workspace_id=ctx.workspace.id,
        joined_at=ctx.membership.joined_at,
    )


# =============================================================================
# Members
# =============================================================================

@router.get("/c/{slug}/users", response_model=list[MemberResponse])
def list_members(ctx: MemberContext, db: DbSession):
    """List workspace members."""
    return [MemberResponse.from_member(m) for m in membership.list_members(db, ctx.workspace.id)]


@router.get("/c/{slug}/stats", response_model=WorkspaceStatsResponse)
def workspace_stats(ctx: MemberContext, db: DbSession):
    """Membership statistics for this workspace."""
    return membership.workspace_stats(db, ctx.workspace)


@router.post("/c/{slug}/users", response_model=MemberResponse, status_code=status.HTTP_201_CREATED)
def add_member(
    data: AddMemberRequest,
    request: Request,
    ctx: AuthorContext,
    db: DbSession,
):
    """Add a member as Author or Member."""
    member = membership.add_member(db, ctx.workspace, data.user_id, data.role)
    db.commit()
    db.refresh(member)

    activity.record(
        db,
        owner_id=ctx.user.id,
        workspace_id=ctx.workspace.id,
        activity_type=ActivityType.MEMBER_ADDED,
        message=f"Added {member.user.username} as {member.role}",
        metadata={"user_id": str(member.user_id), "role": member.role},
        request=request,
    )
    return MemberResponse.from_member(member)


@router.patch("/c/{slug}/users/{user_id}/role", response_model=MemberResponse)
def update_member_role(
    user_id: UUID,
    data: MemberRoleRequest,
    request: Request,
    ctx: OwnerContext,
    db: DbSession,
):
    """Change a member's role. Ownership moves only through replace-owner."""
    member = membership.update_member_role(db, ctx.workspace, user_id, data.role)
    db.commit()
    db.refresh(member)

    activity.record(
        db,
        owner_id=ctx.user.id,
        workspace_id=ctx.workspace.id,
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
    ctx: OwnerContext,
    db: DbSession,
):
    """Activate or deactivate a member."""
    member = membership.set_member_status(db, ctx.workspace, user_id, data.is_active)
    db.commit()
    db.refresh(member)

    activity.record(
        db,
        owner_id=ctx.user.id,
        workspace_id=ctx.workspace.id,
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
    ctx: OwnerContext,
    db: DbSession,
):
    """Remove a member."""
    membership.remove_member(db, ctx.workspace, user_id)
    db.commit()

    activity.record(
        db,
        owner_id=ctx.user.id,
        workspace_id=ctx.workspace.id,
        activity_type=ActivityType.MEMBER_REMOVED,
        message="Removed a member",
        metadata={"user_id": str(user_id)},
        request=request,
    )
    return {"message": "Member removed"}


@router.post("/c/{slug}/users/replace-owner", response_model=MemberResponse)
def replace_owner(
    data: ReplaceOwnerRequest,
    request: Request,
    ctx: OwnerContext,
    db: DbSession,
):
    """Hand ownership to another active member; the caller becomes Author."""
    transfer = membership.replace_owner(db, ctx.workspace, data.new_owner_id)
    db.commit()
    db.refresh(transfer.new_owner)

    activity.record(
        db,
        owner_id=ctx.user.id,
        workspace_id=ctx.workspace.id,
        activity_type=ActivityType.OWNER_REPLACED,
        message=f"Transferred ownership to {transfer.new_owner.user.username}",
        metadata={"new_owner_id": str(data.new_owner_id)},
        request=request,
    )
    return MemberResponse.from_member(transfer.new_owner)
