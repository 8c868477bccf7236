"""
SQL editor: stored procedures of a workspace.

Members may read procedures, their versions and validation results; Owners
and Authors may change, publish and execute them. Publishing and execution
run against the workspace environment.
"""
from datetime import datetime
from typing import Annotated, Any, Optional
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, Request, Response, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.deps import AuthorContext, DbSession, MemberContext
from app.core.errors import BadRequestError
from app.services import activity
from app.services import environment as env_service
from app.services import sql_editor
from app.services.environment import ConnectionProfile
from app.services.sql_editor import ProcedureRunner, get_procedure_runner
from app.services.sql_validation import validate_sql
from shared.enums import ActivityType, VersionSource

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/c/{slug}/sql-editor", tags=["sql-editor"])

Runner = Annotated[ProcedureRunner, Depends(get_procedure_runner)]


class ProcedureCreateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    sql_draft: str = ""


class ProcedureUpdateRequest(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    sql_draft: Optional[str] = None


class DuplicateRequest(BaseModel):
    name: str = Field(max_length=255)


class RollbackRequest(BaseModel):
    version: int = Field(ge=1)


class ExecuteRequest(BaseModel):
    parameters: dict[str, Any] = Field(default_factory=dict)
    timeout: int = Field(default=settings.SQL_EDITOR_DEFAULT_TIMEOUT, ge=1, le=settings.SQL_EDITOR_MAX_TIMEOUT)


class SqlContentRequest(BaseModel):
    sql_content: str


class ProcedureResponse(BaseModel):
    id: UUID
    workspace_id: UUID
    name: str
    status: str
    sql_draft: str
    sql_published: Optional[str] = None
    published_at: Optional[datetime] = None
    created_by: Optional[UUID] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class ProcedureStatsResponse(BaseModel):
    total: int
    draft: int
    published: int


class VersionResponse(BaseModel):
    id: UUID
    procedure_id: UUID
    version: int
    source: str
    name: str
    sql_text: str
    created_by: Optional[UUID] = None
    created_at: datetime

    class Config:
        from_attributes = True


class ValidationResponse(BaseModel):
    valid: bool
    errors: list[str] = []
    warnings: list[str] = []


class PublishResponse(BaseModel):
    success: bool
    procedure: Optional[ProcedureResponse] = None
    version: Optional[int] = None
    error: Optional[str] = None


class ColumnInfo(BaseModel):
    name: str
    type: str


class ExecuteResponse(BaseModel):
    success: bool
    procedure_name: str
    data: list[dict[str, Any]] = []
    columns: list[ColumnInfo] = []
    row_count: int = 0
    execution_time_ms: float
    error: Optional[str] = None


def _environment_profile(db: Session, workspace_id: UUID) -> ConnectionProfile:
    env = env_service.get_environment(db, workspace_id)
    if env is None:
        raise BadRequestError("Configure the workspace environment first", code="NO_ENVIRONMENT")
    return ConnectionProfile.from_environment(env)


# =============================================================================
# Procedures
# =============================================================================

@router.get("", response_model=list[ProcedureResponse])
def list_procedures(ctx: MemberContext, db: DbSession):
    """List the workspace's procedures, most recently changed first."""
    return sql_editor.list_procedures(db, ctx.workspace.id)


@router.get("/stats", response_model=ProcedureStatsResponse)
def procedure_stats(ctx: MemberContext, db: DbSession):
    return sql_editor.procedure_stats(db, ctx.workspace.id)


@router.post("/validate", response_model=ValidationResponse)
def validate_sql_content(data: SqlContentRequest, ctx: MemberContext):
    """Validate SQL that is not stored yet."""
    return validate_sql(data.sql_content).as_dict()


@router.post("", response_model=ProcedureResponse, status_code=status.HTTP_201_CREATED)
def create_procedure(
    data: ProcedureCreateRequest,
    request: Request,
    ctx: AuthorContext,
    db: DbSession,
):
    procedure = sql_editor.create_procedure(db, ctx.workspace.id, data.name, data.sql_draft, ctx.user.id)
    db.commit()
    db.refresh(procedure)

    activity.record(
        db,
        owner_id=ctx.user.id,
        workspace_id=ctx.workspace.id,
        activity_type=ActivityType.SQL_PROCEDURE_CREATED,
        message=f"Created stored procedure {procedure.name}",
        metadata={"procedure_id": str(procedure.id), "procedure_name": procedure.name},
        request=request,
    )
    return procedure


@router.get("/{procedure_id}", response_model=ProcedureResponse)
def get_procedure(procedure_id: UUID, ctx: MemberContext, db: DbSession):
    return sql_editor.require_procedure(db, ctx.workspace.id, procedure_id)


@router.put("/{procedure_id}", response_model=ProcedureResponse)
def update_procedure(
    procedure_id: UUID,
    data: ProcedureUpdateRequest,
    request: Request,
    ctx: AuthorContext,
    db: DbSession,
):
    """Rename a procedure or replace its draft; a published procedure stays published."""
    procedure = sql_editor.require_procedure(db, ctx.workspace.id, procedure_id)
    changes = data.model_dump(exclude_unset=True)
    sql_editor.update_procedure(db, procedure, changes)
    db.commit()
    db.refresh(procedure)

    activity.record(
        db,
        owner_id=ctx.user.id,
        workspace_id=ctx.workspace.id,
        activity_type=ActivityType.SQL_PROCEDURE_UPDATED,
        message=f"Updated stored procedure {procedure.name}",
        metadata={"procedure_id": str(procedure.id), "fields": sorted(changes)},
        request=request,
    )
    return procedure


@router.delete("/{procedure_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_procedure(
    procedure_id: UUID,
    request: Request,
    ctx: AuthorContext,
    db: DbSession,
):
    """Delete a procedure and its versions. A deployed copy is left in place."""
    procedure = sql_editor.require_procedure(db, ctx.workspace.id, procedure_id)
    name = procedure.name
    db.delete(procedure)
    db.commit()

    activity.record(
        db,
        owner_id=ctx.user.id,
        workspace_id=ctx.workspace.id,
        activity_type=ActivityType.SQL_PROCEDURE_DELETED,
        message=f"Deleted stored procedure {name}",
        metadata={"procedure_id": str(procedure_id), "procedure_name": name},
        request=request,
    )
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{procedure_id}/duplicate", response_model=ProcedureResponse, status_code=status.HTTP_201_CREATED)
def duplicate_procedure(
    procedure_id: UUID,
    data: DuplicateRequest,
    request: Request,
    ctx: AuthorContext,
    db: DbSession,
):
    source = sql_editor.require_procedure(db, ctx.workspace.id, procedure_id)
    copy = sql_editor.duplicate_procedure(db, source, data.name, ctx.user.id)
    db.commit()
    db.refresh(copy)

    activity.record(
        db,
        owner_id=ctx.user.id,
        workspace_id=ctx.workspace.id,
        activity_type=ActivityType.SQL_PROCEDURE_CREATED,
        message=f"Duplicated stored procedure {source.name} as {copy.name}",
        metadata={"procedure_id": str(copy.id), "source_procedure_id": str(source.id)},
        request=request,
    )
    return copy


@router.post("/{procedure_id}/validate", response_model=ValidationResponse)
def validate_procedure(procedure_id: UUID, ctx: MemberContext, db: DbSession):
    """Validate the stored draft."""
    procedure = sql_editor.require_procedure(db, ctx.workspace.id, procedure_id)
    return sql_editor.validate_draft(procedure).as_dict()


# =============================================================================
# Publishing and execution
# =============================================================================

@router.post("/{procedure_id}/publish", response_model=PublishResponse)
def publish_procedure(
    procedure_id: UUID,
    request: Request,
    ctx: AuthorContext,
    db: DbSession,
    runner: Runner,
):
    """
    Deploy the draft to the workspace environment.

    Deployment problems are reported in the body with ``success: false``
    and recorded as a failed publish; the procedure is left unchanged.
    """
    procedure = sql_editor.require_procedure(db, ctx.workspace.id, procedure_id)
    profile = _environment_profile(db, ctx.workspace.id)

    outcome = sql_editor.publish_procedure(db, procedure, runner, profile, ctx.user.id)
    if not outcome.success:
        activity.record(
            db,
            owner_id=ctx.user.id,
            workspace_id=ctx.workspace.id,
            activity_type=ActivityType.SQL_PROCEDURE_PUBLISH_FAILED,
            message=f"Failed to publish stored procedure {procedure.name}",
            metadata={"procedure_id": str(procedure.id), "error": outcome.error},
            request=request,
        )
        return PublishResponse(success=False, error=outcome.error)

    version = outcome.version.version
    db.commit()
    db.refresh(procedure)

    activity.record(
        db,
        owner_id=ctx.user.id,
        workspace_id=ctx.workspace.id,
        activity_type=ActivityType.SQL_PROCEDURE_PUBLISHED,
        message=f"Published stored procedure {procedure.name}",
        metadata={"procedure_id": str(procedure.id), "version": version},
        request=request,
    )
    activity.record(
        db,
        owner_id=ctx.user.id,
        workspace_id=ctx.workspace.id,
        activity_type=ActivityType.SQL_PROCEDURE_VERSION_CREATED,
        message=f"Created version {version} of stored procedure {procedure.name}",
        metadata={"procedure_id": str(procedure.id), "version": version, "source": VersionSource.PUBLISHED.value},
        request=request,
    )
    return PublishResponse(success=True, procedure=ProcedureResponse.model_validate(procedure), version=version)


@router.post("/{procedure_id}/unpublish", response_model=ProcedureResponse)
def unpublish_procedure(
    procedure_id: UUID,
    request: Request,
    ctx: AuthorContext,
    db: DbSession,
    runner: Runner,
):
    """Drop the deployed procedure and return it to draft."""
    procedure = sql_editor.require_procedure(db, ctx.workspace.id, procedure_id)
    profile = _environment_profile(db, ctx.workspace.id)

    sql_editor.unpublish_procedure(db, procedure, runner, profile)
    db.commit()
    db.refresh(procedure)

    activity.record(
        db,
        owner_id=ctx.user.id,
        workspace_id=ctx.workspace.id,
        activity_type=ActivityType.SQL_PROCEDURE_UNPUBLISHED,
        message=f"Unpublished stored procedure {procedure.name}",
        metadata={"procedure_id": str(procedure.id)},
        request=request,
    )
    return procedure


@router.post("/{procedure_id}/execute", response_model=ExecuteResponse)
def execute_procedure(
    procedure_id: UUID,
    request: Request,
    ctx: AuthorContext,
    db: DbSession,
    runner: Runner,
    data: Optional[ExecuteRequest] = None,
):
    """Run the published procedure. At most ``SQL_EDITOR_MAX_RESULT_ROWS`` rows come back."""
    data = data or ExecuteRequest()
    procedure = sql_editor.require_procedure(db, ctx.workspace.id, procedure_id)
    profile = _environment_profile(db, ctx.workspace.id)

    outcome = sql_editor.execute_procedure(procedure, runner, profile, data.parameters, data.timeout)
    metadata = {
        "procedure_id": str(procedure.id),
        "procedure_name": outcome.procedure_name,
        "execution_time_ms": outcome.execution_time_ms,
        "parameters": sql_editor.sanitize_parameters(data.parameters),
    }

    if not outcome.success:
        activity.record(
            db,
            owner_id=ctx.user.id,
            workspace_id=ctx.workspace.id,
            activity_type=ActivityType.SQL_PROCEDURE_EXECUTION_FAILED,
            message=f"Failed to execute stored procedure {procedure.name}",
            metadata={**metadata, "error": outcome.error},
            request=request,
        )
        return ExecuteResponse(
            success=False,
            procedure_name=outcome.procedure_name,
            execution_time_ms=outcome.execution_time_ms,
            error=outcome.error,
        )

    result = outcome.result
    activity.record(
        db,
        owner_id=ctx.user.id,
        workspace_id=ctx.workspace.id,
        activity_type=ActivityType.SQL_PROCEDURE_EXECUTED,
        message=f"Executed stored procedure {procedure.name}",
        metadata={**metadata, "row_count": result.row_count},
        request=request,
    )
    return ExecuteResponse(
        success=True,
        procedure_name=outcome.procedure_name,
        data=result.rows,
        columns=result.columns,
        row_count=result.row_count,
        execution_time_ms=outcome.execution_time_ms,
    )


# =============================================================================
# Versions
# =============================================================================

@router.get("/{procedure_id}/versions", response_model=list[VersionResponse])
def list_versions(procedure_id: UUID, ctx: MemberContext, db: DbSession):
    """Published versions, newest first."""
    procedure = sql_editor.require_procedure(db, ctx.workspace.id, procedure_id)
    return sql_editor.list_versions(db, procedure)


@router.get("/{procedure_id}/versions/{version}", response_model=VersionResponse)
def get_version(procedure_id: UUID, version: int, ctx: MemberContext, db: DbSession):
    procedure = sql_editor.require_procedure(db, ctx.workspace.id, procedure_id)
    return sql_editor.require_version(db, procedure, version)


@router.post("/{procedure_id}/rollback", response_model=ProcedureResponse)
def rollback_procedure(
    procedure_id: UUID,
    data: RollbackRequest,
    request: Request,
    ctx: AuthorContext,
    db: DbSession,
):
    """Copy a version into the draft; publish again to deploy it."""
    procedure = sql_editor.require_procedure(db, ctx.workspace.id, procedure_id)
    sql_editor.rollback_to_version(db, procedure, data.version)
    db.commit()
    db.refresh(procedure)

    activity.record(
        db,
        owner_id=ctx.user.id,
        workspace_id=ctx.workspace.id,
        activity_type=ActivityType.SQL_PROCEDURE_VERSION_ROLLED_BACK,
        message=f"Rolled back stored procedure {procedure.name} to version {data.version}",
        metadata={"procedure_id": str(procedure.id), "version": data.version},
        request=request,
    )
    return procedure
