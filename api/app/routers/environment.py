"""
Workspace environment (external database connection profile).

Members may read it; Owners and Authors may change or test it. The stored
password is never returned.
"""
from datetime import datetime
from typing import Annotated, Optional
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, Request, Response, status
from pydantic import BaseModel, Field

from app.core.deps import AuthorContext, DbSession, MemberContext
from app.core.errors import BadRequestError
from app.models.environment import Environment
from app.schemas import MessageResponse
from app.services import activity
from app.services import environment as env_service
from app.services.environment import (
    PASSWORD_MASK,
    ConnectionProfile,
    ConnectionTester,
    get_connection_tester,
)
from shared.enums import ActivityType

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/c/{slug}/environment", tags=["environment"])


class EnvironmentCreateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    host: str = Field(min_length=1, max_length=255)
    port: int = Field(default=1433, ge=1, le=65535)
    database: str = Field(min_length=1, max_length=255)
    username: str = Field(min_length=1, max_length=255)
    password: Optional[str] = None
    connection_timeout: int = Field(default=30000, ge=1000, le=300000)
    encrypt: bool = True
    trust_server_certificate: bool = False


class EnvironmentUpdateRequest(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    host: Optional[str] = Field(default=None, min_length=1, max_length=255)
    port: Optional[int] = Field(default=None, ge=1, le=65535)
    database: Optional[str] = Field(default=None, min_length=1, max_length=255)
    username: Optional[str] = Field(default=None, min_length=1, max_length=255)
    password: Optional[str] = None
    connection_timeout: Optional[int] = Field(default=None, ge=1000, le=300000)
    encrypt: Optional[bool] = None
    trust_server_certificate: Optional[bool] = None


class ConnectionTestRequest(BaseModel):
    """Profile to test; omitted fields fall back to the stored environment."""
    host: Optional[str] = None
    port: Optional[int] = Field(default=None, ge=1, le=65535)
    database: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None
    connection_timeout: Optional[int] = Field(default=None, ge=1000, le=300000)
    encrypt: Optional[bool] = None
    trust_server_certificate: Optional[bool] = None


class EnvironmentResponse(BaseModel):
    id: UUID
    workspace_id: UUID
    name: str
    host: str
    port: int
    database: str
    username: str
    password: Optional[str] = None
    connection_timeout: int
    encrypt: bool
    trust_server_certificate: bool
    status: str
    last_tested_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_environment(cls, env: Environment) -> "EnvironmentResponse":
        return cls(
            id=env.id,
            workspace_id=env.workspace_id,
            name=env.name,
            host=env.host,
            port=env.port,
            database=env.database,
            username=env.username,
            password=PASSWORD_MASK if env.password else None,
            connection_timeout=env.connection_timeout,
            encrypt=env.encrypt,
            trust_server_certificate=env.trust_server_certificate,
            status=env.status,
            last_tested_at=env.last_tested_at,
            created_at=env.created_at,
            updated_at=env.updated_at,
        )


class ConnectionTestResponse(BaseModel):
    success: bool
    message: str
    latency_ms: Optional[float] = None
    error: Optional[str] = None


@router.get("", response_model=EnvironmentResponse)
def get_environment(ctx: MemberContext, db: DbSession):
    """Get the workspace environment."""
    return EnvironmentResponse.from_environment(env_service.require_environment(db, ctx.workspace.id))


@router.post("", response_model=EnvironmentResponse, status_code=status.HTTP_201_CREATED)
def create_environment(
    data: EnvironmentCreateRequest,
    request: Request,
    ctx: AuthorContext,
    db: DbSession,
):
    """Create the workspace environment."""
    env = env_service.create_environment(db, ctx.workspace.id, data.model_dump(), ctx.user.id)
    db.commit()
    db.refresh(env)

    activity.record(
        db,
        owner_id=ctx.user.id,
        workspace_id=ctx.workspace.id,
        activity_type=ActivityType.ENVIRONMENT_CREATED,
        message=f"Configured environment {env.name}",
        metadata={"host": env.host, "database": env.database},
        request=request,
    )
    return EnvironmentResponse.from_environment(env)


@router.put("", response_model=EnvironmentResponse)
def update_environment(
    data: EnvironmentUpdateRequest,
    request: Request,
    response: Response,
    ctx: AuthorContext,
    db: DbSession,
):
    """Update the workspace environment, creating it when missing."""
    env, created = env_service.upsert_environment(
        db, ctx.workspace.id, data.model_dump(exclude_unset=True), ctx.user.id
    )
    db.commit()
    db.refresh(env)

    if created:
        response.status_code = status.HTTP_201_CREATED

    activity.record(
        db,
        owner_id=ctx.user.id,
        workspace_id=ctx.workspace.id,
        activity_type=ActivityType.ENVIRONMENT_CREATED if created else ActivityType.ENVIRONMENT_UPDATED,
        message=f"{'Configured' if created else 'Updated'} environment {env.name}",
        metadata={"fields": sorted(data.model_dump(exclude_unset=True, exclude={"password"}))},
        request=request,
    )
    return EnvironmentResponse.from_environment(env)


@router.delete("", response_model=MessageResponse)
def delete_environment(
    request: Request,
    ctx: AuthorContext,
    db: DbSession,
):
    """Delete the workspace environment."""
    env = env_service.require_environment(db, ctx.workspace.id)
    name = env.name
    db.delete(env)
    db.commit()

    activity.record(
        db,
        owner_id=ctx.user.id,
        workspace_id=ctx.workspace.id,
        activity_type=ActivityType.ENVIRONMENT_DELETED,
        message=f"Deleted environment {name}",
        request=request,
    )
    return {"message": "Environment deleted"}


@router.post("/test", response_model=ConnectionTestResponse)
def test_connection(
    request: Request,
    ctx: AuthorContext,
    db: DbSession,
    tester: Annotated[ConnectionTester, Depends(get_connection_tester)],
    data: Optional[ConnectionTestRequest] = None,
):
    """
    Test a connection profile.

    The submitted fields override the stored environment; a masked or
    missing password uses the stored secret. The result is cached on the
    stored environment when one exists.
    """
    env = env_service.get_environment(db, ctx.workspace.id)
    submitted = data.model_dump(exclude_none=True) if data else {}

    base = {}
    if env is not None:
        base = {
            "host": env.host,
            "port": env.port,
            "database": env.database,
            "username": env.username,
            "connection_timeout": env.connection_timeout,
            "encrypt": env.encrypt,
            "trust_server_certificate": env.trust_server_certificate,
        }
    merged = {**base, **{k: v for k, v in submitted.items() if k != "password"}}

    missing = [f for f in ("host", "database", "username") if not merged.get(f)]
    if missing:
        raise BadRequestError(f"Missing connection fields: {', '.join(missing)}")

    profile = ConnectionProfile(
        password=env_service.resolve_password(submitted.get("password"), env.password if env else None),
        port=merged.pop("port", 1433),
        **merged,
    )
    result = tester.test(profile)

    if env is not None:
        env_service.apply_connection_result(env, result)
        db.commit()

    logger.info(
        "environment.connection.tested",
        workspace_id=str(ctx.workspace.id),
        success=result.success,
    )
    activity.record(
        db,
        owner_id=ctx.user.id,
        workspace_id=ctx.workspace.id,
        activity_type=ActivityType.ENVIRONMENT_TESTED,
        message=result.message,
        metadata={"success": result.success, "host": profile.host},
        request=request,
    )
    return ConnectionTestResponse(
        success=result.success,
        message=result.message,
        latency_ms=result.latency_ms,
        error=result.error,
    )
