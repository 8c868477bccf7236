"""Response models shared by several routers."""
from datetime import date, datetime
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from app.models.workspace import WorkspaceMember


class UserResponse(BaseModel):
    id: UUID
    username: str
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    bio: Optional[str] = None
    date_of_birth: Optional[date] = None
    avatar: Optional[str] = None
    role: Optional[str] = Field(default=None, validation_alias="role_name")
    is_active: bool
    last_login_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class WorkspaceResponse(BaseModel):
    id: UUID
    name: str
    slug: str
    is_active: bool
    member_count: int
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class MemberResponse(BaseModel):
    id: UUID
    user_id: UUID
    username: str
    name: str
    avatar: Optional[str] = None
    role: str
    is_active: bool
    joined_at: datetime
    last_login_at: Optional[datetime] = None

    @classmethod
    def from_member(cls, member: WorkspaceMember) -> "MemberResponse":
        return cls(
            id=member.id,
            user_id=member.user_id,
            username=member.user.username,
            name=member.user.name,
            avatar=member.user.avatar,
            role=member.role,
            is_active=member.is_active,
            joined_at=member.joined_at,
            last_login_at=member.user.last_login_at,
        )


class WorkspaceStatsResponse(BaseModel):
    total_members: int
    active_members: int
    inactive_members: int
    owners: int
    authors: int
    members: int
    recently_active: int


class ActivityResponse(BaseModel):
    id: UUID
    owner_id: UUID
    workspace_id: Optional[UUID] = None
    scope: str
    type: str
    message: str
    metadata: Optional[dict[str, Any]] = Field(default=None, validation_alias="details")
    created_at: datetime

    class Config:
        from_attributes = True


class ActivityPageResponse(BaseModel):
    items: list[ActivityResponse]
    next_cursor: Optional[str] = None


class MessageResponse(BaseModel):
    message: str
