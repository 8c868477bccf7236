"""
User profile and platform user administration.

Self-service endpoints work for any authenticated user; listing, creating
and changing the status or role of other users needs the platform Admin role.
"""
import base64
from datetime import date
from typing import Annotated, Optional
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, File, HTTPException, Query, Request, UploadFile, status
from pydantic import BaseModel, Field, field_validator
from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.deps import AdminUser, CurrentUser
from app.core.security import hash_password
from app.db.session import get_db
from app.models.user import Role, User
from app.schemas import UserResponse
from app.services import activity
from shared.enums import ActivityType, PlatformRole

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/users", tags=["users"])

ALLOWED_AVATAR_TYPES = frozenset(["image/jpeg", "image/png", "image/gif", "image/webp"])


class ProfileUpdateRequest(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    email: Optional[str] = Field(default=None, max_length=255)
    phone: Optional[str] = Field(default=None, max_length=50)
    bio: Optional[str] = None
    date_of_birth: Optional[date] = None


class CreateUserRequest(BaseModel):
    username: str = Field(min_length=3, max_length=100, pattern=r"^[A-Za-z0-9_.-]+$")
    name: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=6)
    email: Optional[str] = None
    role: PlatformRole = PlatformRole.USER

    @field_validator("role", mode="before")
    @classmethod
    def canonical_role(cls, value):
        return PlatformRole.parse(value)


class UserStatusRequest(BaseModel):
    is_active: bool


class UserRoleRequest(BaseModel):
    role: PlatformRole

    @field_validator("role", mode="before")
    @classmethod
    def canonical_role(cls, value):
        return PlatformRole.parse(value)


class UserListResponse(BaseModel):
    items: list[UserResponse]
    total: int
    page: int
    limit: int


class RoleResponse(BaseModel):
    id: UUID
    name: str
    description: Optional[str] = None

    class Config:
        from_attributes = True


def get_role(db: Session, role: PlatformRole) -> Role:
    found = db.execute(select(Role).where(Role.name == role.value)).scalar_one_or_none()
    if found is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Role '{role.value}' is not configured",
        )
    return found


def count_active_admins(db: Session) -> int:
    return db.execute(
        select(func.count())
        .select_from(User)
        .join(Role, Role.id == User.role_id)
        .where(Role.name == PlatformRole.ADMIN.value, User.is_active.is_(True))
    ).scalar_one()


def get_user_or_404(db: Session, user_id: UUID) -> User:
    user = db.get(User, user_id)
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return user


# =============================================================================
# Self-service
# =============================================================================

@router.put("/profile", response_model=UserResponse)
def update_profile(
    data: ProfileUpdateRequest,
    request: Request,
    current_user: CurrentUser,
    db: Annotated[Session, Depends(get_db)],
):
    """Update the current user's profile. The username cannot be changed."""
    changes = data.model_dump(exclude_unset=True)
    for field, value in changes.items():
        setattr(current_user, field, value)
    db.commit()
    db.refresh(current_user)

    if changes:
        activity.record(
            db,
            owner_id=current_user.id,
            activity_type=ActivityType.PROFILE_UPDATED,
            message="Profile updated",
            metadata={"fields": sorted(changes)},
            request=request,
        )
    return current_user


@router.put("/avatar", response_model=UserResponse)
def upload_avatar(
    request: Request,
    current_user: CurrentUser,
    db: Annotated[Session, Depends(get_db)],
    avatar: UploadFile = File(...),
):
    """Upload an avatar image, stored inline as a data URI."""
    if avatar.content_type not in ALLOWED_AVATAR_TYPES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Avatar must be a JPEG, PNG, GIF or WebP image",
        )

    content = avatar.file.read(settings.AVATAR_MAX_BYTES + 1)
    if len(content) > settings.AVATAR_MAX_BYTES:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail="Avatar must be 2MB or smaller",
        )
    if not content:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Avatar file is empty")

    encoded = base64.b64encode(content).decode("ascii")
    current_user.avatar = f"data:{avatar.content_type};base64,{encoded}"
    db.commit()
    db.refresh(current_user)

    activity.record(
        db,
        owner_id=current_user.id,
        activity_type=ActivityType.AVATAR_UPDATED,
        message="Avatar updated",
        metadata={"content_type": avatar.content_type, "size": len(content)},
        request=request,
    )
    return current_user


@router.get("/roles", response_model=list[RoleResponse])
def list_roles(
    current_user: CurrentUser,
    db: Annotated[Session, Depends(get_db)],
):
    """List platform roles."""
    return db.execute(select(Role).order_by(Role.name)).scalars().all()


# =============================================================================
# Administration
# =============================================================================

@router.get("", response_model=UserListResponse)
def list_users(
    admin: AdminUser,
    db: Annotated[Session, Depends(get_db)],
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    search: Optional[str] = None,
):
    """List platform users."""
    query = select(User)
    if search:
        pattern = f"%{search.lower()}%"
        query = query.where(
            or_(func.lower(User.username).like(pattern), func.lower(User.name).like(pattern))
        )

    total = db.execute(select(func.count()).select_from(query.subquery())).scalar_one()
    users = db.execute(
        query.order_by(User.created_at.desc(), User.username).offset((page - 1) * limit).limit(limit)
    ).scalars().all()

    return {
        "items": [UserResponse.model_validate(u) for u in users],
        "total": total,
        "page": page,
        "limit": limit,
    }


@router.post("", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
def create_user(
    data: CreateUserRequest,
    request: Request,
    admin: AdminUser,
    db: Annotated[Session, Depends(get_db)],
):
    """Create a platform user."""
    existing = db.execute(select(User.id).where(User.username == data.username)).scalar_one_or_none()
    if existing:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Username already exists",
        )

    user = User(
        username=data.username,
        name=data.name,
        email=data.email,
        password_hash=hash_password(data.password),
        role_id=get_role(db, data.role).id,
        is_active=True,
    )
    db.add(user)
    db.commit()
    db.refresh(user)

    activity.record(
        db,
        owner_id=admin.id,
        activity_type=ActivityType.USER_CREATED,
        message=f"Created user {user.username}",
        metadata={"user_id": str(user.id), "role": data.role.value},
        request=request,
    )
    return user


@router.patch("/{user_id}/status", response_model=UserResponse)
def update_user_status(
    user_id: UUID,
    data: UserStatusRequest,
    request: Request,
    admin: AdminUser,
    db: Annotated[Session, Depends(get_db)],
):
    """Activate or deactivate a user."""
    user = get_user_or_404(db, user_id)

    if not data.is_active:
        if user.id == admin.id:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="You cannot deactivate your own account",
            )
        if user.is_admin and user.is_active and count_active_admins(db) <= 1:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Cannot deactivate the last active admin",
            )

    user.is_active = data.is_active
    db.commit()
    db.refresh(user)

    activity.record(
        db,
        owner_id=admin.id,
        activity_type=ActivityType.USER_STATUS_CHANGED,
        message=f"{'Activated' if data.is_active else 'Deactivated'} user {user.username}",
        metadata={"user_id": str(user.id), "is_active": data.is_active},
        request=request,
    )
    return user


@router.patch("/{user_id}/role", response_model=UserResponse)
def update_user_role(
    user_id: UUID,
    data: UserRoleRequest,
    request: Request,
    admin: AdminUser,
    db: Annotated[Session, Depends(get_db)],
):
    """Change a user's platform role."""
    user = get_user_or_404(db, user_id)

    if user.id == admin.id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="You cannot change your own role",
        )
    if (
        user.is_admin
        and data.role != PlatformRole.ADMIN
        and user.is_active
        and count_active_admins(db) <= 1
    ):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Cannot demote the last active admin",
        )

    user.role_id = get_role(db, data.role).id
    db.commit()
    db.refresh(user)

    activity.record(
        db,
        owner_id=admin.id,
        activity_type=ActivityType.USER_ROLE_CHANGED,
        message=f"Changed role of {user.username} to {data.role.value}",
        metadata={"user_id": str(user.id), "role": data.role.value},
        request=request,
    )
    return user
