from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status, Request
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.orm import Session

import structlog

from app.db.base import utcnow
from app.db.session import get_db
from app.core.deps import CurrentUser
from app.core.security import (
    REFRESH_TOKEN_TYPE,
    create_access_token,
    create_refresh_token,
    decode_token,
    hash_password,
    verify_password,
)
from app.models.user import User
from app.schemas import MessageResponse, UserResponse
from app.services import activity
from shared.enums import ActivityType

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


class LoginRequest(BaseModel):
    username: str = Field(min_length=1, max_length=100)
    password: str = Field(min_length=1)


class RefreshRequest(BaseModel):
    refresh_token: str


class ChangePasswordRequest(BaseModel):
    current_password: str
    new_password: str = Field(min_length=6)


class TokenResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"


class LoginResponse(TokenResponse):
    user: UserResponse


def issue_tokens(user: User) -> dict:
    return {
        "access_token": create_access_token(user.id, user.username, user.role_name),
        "refresh_token": create_refresh_token(user.id),
        "token_type": "bearer",
    }


@router.post("/login", response_model=LoginResponse)
def login(
    data: LoginRequest,
    request: Request,
    db: Annotated[Session, Depends(get_db)],
):
    """Login with username and password."""
    user = db.execute(select(User).where(User.username == data.username)).scalar_one_or_none()

    if not user or not user.is_active or not verify_password(data.password, user.password_hash):
        logger.info("auth.login.failed", username=data.username)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid credentials",
        )

    user.last_login_at = utcnow()
    db.commit()
    db.refresh(user)

    activity.record(
        db,
        owner_id=user.id,
        activity_type=ActivityType.LOGIN_SUCCESS,
        message="Signed in",
        request=request,
    )

    logger.info("auth.login.succeeded", user_id=str(user.id))
    return {**issue_tokens(user), "user": UserResponse.model_validate(user)}


@router.post("/refresh", response_model=TokenResponse)
def refresh(
    data: RefreshRequest,
    db: Annotated[Session, Depends(get_db)],
):
    """Exchange a refresh token for a new token pair."""
    payload = decode_token(data.refresh_token, REFRESH_TOKEN_TYPE)
    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired refresh token",
        )

    try:
        user_id = UUID(payload.get("sub", ""))
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
        )

    user = db.get(User, user_id)
    if user is None or not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found or inactive",
        )

    return issue_tokens(user)


@router.get("/profile", response_model=UserResponse)
def profile(current_user: CurrentUser):
    """Get current user profile."""
    return current_user


@router.post("/change-password", response_model=MessageResponse)
def change_password(
    data: ChangePasswordRequest,
    request: Request,
    current_user: CurrentUser,
    db: Annotated[Session, Depends(get_db)],
):
    """Change the current user's password."""
    if not verify_password(data.current_password, current_user.password_hash):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Current password is incorrect",
        )
    if data.current_password == data.new_password:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="New password must be different from the current password",
        )

    current_user.password_hash = hash_password(data.new_password)
    db.commit()

    activity.record(
        db,
        owner_id=current_user.id,
        activity_type=ActivityType.PASSWORD_CHANGED,
        message="Password changed",
        request=request,
    )
    return {"message": "Password changed successfully"}
