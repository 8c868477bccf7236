"""
SQL editor: stored procedures kept per workspace.

A procedure has an editable draft and, once published, the text last
deployed to the workspace environment. Publishing snapshots the deployed
text as a numbered version; rolling back copies a version into the draft.
Deployment and execution go through a ``ProcedureRunner`` bound to the
workspace's environment profile.
"""
import time
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any

import structlog
from sqlalchemy import create_engine, func, select, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.pool import NullPool

from app.core.config import settings
from app.core.errors import BadRequestError, ConflictError, NotFoundError
from app.db.base import utcnow
from app.models.procedure import StoredProcedure, StoredProcedureVersion
from app.services.environment import ConnectionProfile, ConnectionTester
from app.services.sql_validation import IDENTIFIER_RE, ValidationResult, extract_procedure_name, validate_sql
from shared.enums import ProcedureStatus, VersionSource

logger = structlog.get_logger(__name__)

EMPTY_DRAFT_MESSAGE = "Procedure draft cannot be empty"
SENSITIVE_PARAMETER_HINTS = ("password", "secret", "token")


class ProcedureRunError(Exception):
    """The environment rejected a deploy, drop or execute."""


@dataclass
class ExecutionResult:
    columns: list[dict[str, str]] = field(default_factory=list)
    rows: list[dict[str, Any]] = field(default_factory=list)

    @property
    def row_count(self) -> int:
        return len(self.rows)


def infer_column_type(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, int):
        return "integer"
    if isinstance(value, (float, Decimal)):
        return "decimal"
    if isinstance(value, (datetime, date)):
        return "datetime"
    if isinstance(value, str):
        return "string"
    return "unknown"


class ProcedureRunner:
    """Deploys, drops and executes procedures on an environment profile."""

    def __init__(self, driver: str | None = None, max_rows: int | None = None):
        self.connections = ConnectionTester(driver)
        self.max_rows = max_rows or settings.SQL_EDITOR_MAX_RESULT_ROWS

    def _engine(self, profile: ConnectionProfile, timeout_seconds: int | None = None) -> Engine:
        connect_args = self.connections.connect_args(profile)
        if timeout_seconds and "timeout" in connect_args:
            connect_args["timeout"] = timeout_seconds
        return create_engine(
            self.connections.build_url(profile),
            connect_args=connect_args,
            poolclass=NullPool,
        )

    def deploy(self, profile: ConnectionProfile, sql: str) -> None:
        engine = self._engine(profile)
        try:
            with engine.begin() as conn:
                conn.exec_driver_sql(sql)
        except (SQLAlchemyError, ImportError) as e:
            raise ProcedureRunError(str(e)) from e
        finally:
            engine.dispose()

    def exists(self, profile: ConnectionProfile, name: str) -> bool:
        engine = self._engine(profile)
        try:
            with engine.connect() as conn:
                row = conn.execute(
                    text(
                        "SELECT 1 FROM INFORMATION_SCHEMA.ROUTINES "
                        "WHERE ROUTINE_TYPE = 'PROCEDURE' AND ROUTINE_NAME = :name"
                    ),
                    {"name": name},
                ).first()
        except (SQLAlchemyError, ImportError) as e:
            raise ProcedureRunError(str(e)) from e
        finally:
            engine.dispose()
        return row is not None

    def drop(self, profile: ConnectionProfile, name: str) -> None:
        self.deploy(profile, f"DROP PROCEDURE IF EXISTS [{name}]")

    def execute(
        self,
        profile: ConnectionProfile,
        name: str,
        parameters: dict[str, Any],
        timeout_seconds: int,
    ) -> ExecutionResult:
        assignments = ", ".join(f"@{key} = :{key}" for key in parameters)
        statement = text(f"EXEC [{name}] {assignments}".strip())

        engine = self._engine(profile, timeout_seconds)
        try:
            with engine.begin() as conn:
                result = conn.execute(statement, parameters)
                if not result.returns_rows:
                    return ExecutionResult()
                keys = list(result.keys())
                rows = [dict(row._mapping) for row in result.fetchmany(self.max_rows)]
        except (SQLAlchemyError, ImportError) as e:
            raise ProcedureRunError(str(e)) from e
        finally:
            engine.dispose()

        first = rows[0] if rows else {}
        columns = [{"name": key, "type": infer_column_type(first.get(key))} for key in keys]
        return ExecutionResult(columns=columns, rows=rows)


def get_procedure_runner() -> ProcedureRunner:
    """Dependency; overridden in tests."""
    return ProcedureRunner()


# =============================================================================
# Procedures
# =============================================================================

def list_procedures(db: Session, workspace_id: uuid.UUID) -> list[StoredProcedure]:
    return list(db.execute(
        select(StoredProcedure)
        .where(StoredProcedure.workspace_id == workspace_id)
        .order_by(StoredProcedure.updated_at.desc(), StoredProcedure.name)
    ).scalars().all())


def procedure_stats(db: Session, workspace_id: uuid.UUID) -> dict[str, int]:
    counts = dict(db.execute(
        select(StoredProcedure.status, func.count(StoredProcedure.id))
        .where(StoredProcedure.workspace_id == workspace_id)
        .group_by(StoredProcedure.status)
    ).all())
    draft = counts.get(ProcedureStatus.DRAFT.value, 0)
    published = counts.get(ProcedureStatus.PUBLISHED.value, 0)
    return {"total": draft + published, "draft": draft, "published": published}


def require_procedure(db: Session, workspace_id: uuid.UUID, procedure_id: uuid.UUID) -> StoredProcedure:
    procedure = db.execute(
        select(StoredProcedure).where(
            StoredProcedure.id == procedure_id,
            StoredProcedure.workspace_id == workspace_id,
        )
    ).scalar_one_or_none()
    if procedure is None:
        raise NotFoundError("Stored procedure not found")
    return procedure


def _clean_name(name: str | None) -> str:
    cleaned = (name or "").strip()
    if not cleaned:
        raise BadRequestError("Procedure name is required")
    return cleaned


def _check_name_free(
    db: Session,
    workspace_id: uuid.UUID,
    name: str,
    exclude_id: uuid.UUID | None = None,
) -> None:
    query = select(StoredProcedure.id).where(
        StoredProcedure.workspace_id == workspace_id,
        StoredProcedure.name == name,
    )
    if exclude_id is not None:
        query = query.where(StoredProcedure.id != exclude_id)
    if db.execute(query).first() is not None:
        raise ConflictError(f"A stored procedure named '{name}' already exists in this workspace")


def create_procedure(
    db: Session,
    workspace_id: uuid.UUID,
    name: str,
    sql_draft: str,
    actor_id: uuid.UUID,
) -> StoredProcedure:
    name = _clean_name(name)
    _check_name_free(db, workspace_id, name)

    procedure = StoredProcedure(
        workspace_id=workspace_id,
        name=name,
        sql_draft=sql_draft or "",
        status=ProcedureStatus.DRAFT.value,
        created_by=actor_id,
    )
    db.add(procedure)
    db.flush()
    return procedure


def update_procedure(db: Session, procedure: StoredProcedure, data: dict[str, Any]) -> StoredProcedure:
    """
    Rename and/or replace the draft.

    A published procedure stays published: the deployed text only changes
    on the next publish.
    """
    if data.get("name") is not None:
        name = _clean_name(data["name"])
        if name != procedure.name:
            _check_name_free(db, procedure.workspace_id, name, exclude_id=procedure.id)
            procedure.name = name
    if data.get("sql_draft") is not None:
        procedure.sql_draft = data["sql_draft"]
    db.flush()
    return procedure


def duplicate_procedure(
    db: Session,
    procedure: StoredProcedure,
    name: str,
    actor_id: uuid.UUID,
) -> StoredProcedure:
    """Copy the draft under a new name; the copy is always a draft."""
    return create_procedure(db, procedure.workspace_id, name, procedure.sql_draft, actor_id)


def validate_draft(procedure: StoredProcedure) -> ValidationResult:
    return validate_sql(procedure.sql_draft, empty_message=EMPTY_DRAFT_MESSAGE)


# =============================================================================
# Versions
# =============================================================================

def create_version(
    db: Session,
    procedure: StoredProcedure,
    sql_text: str,
    source: VersionSource,
    actor_id: uuid.UUID | None,
) -> StoredProcedureVersion:
    latest = db.execute(
        select(func.max(StoredProcedureVersion.version)).where(
            StoredProcedureVersion.procedure_id == procedure.id
        )
    ).scalar()
    version = StoredProcedureVersion(
        procedure_id=procedure.id,
        workspace_id=procedure.workspace_id,
        version=(latest or 0) + 1,
        source=source.value,
        name=procedure.name,
        sql_text=sql_text,
        created_by=actor_id,
    )
    db.add(version)
    db.flush()
    return version


def list_versions(db: Session, procedure: StoredProcedure) -> list[StoredProcedureVersion]:
    """Published snapshots, newest first."""
    return list(db.execute(
        select(StoredProcedureVersion)
        .where(
            StoredProcedureVersion.procedure_id == procedure.id,
            StoredProcedureVersion.source == VersionSource.PUBLISHED.value,
        )
        .order_by(StoredProcedureVersion.version.desc())
    ).scalars().all())


def require_version(db: Session, procedure: StoredProcedure, version: int) -> StoredProcedureVersion:
    found = db.execute(
        select(StoredProcedureVersion).where(
            StoredProcedureVersion.procedure_id == procedure.id,
            StoredProcedureVersion.version == version,
        )
    ).scalar_one_or_none()
    if found is None:
        raise NotFoundError(f"Version {version} not found")
    return found


def rollback_to_version(db: Session, procedure: StoredProcedure, version: int) -> StoredProcedureVersion:
    """Copy a version's text into the draft. The deployed text is untouched."""
    snapshot = require_version(db, procedure, version)
    procedure.sql_draft = snapshot.sql_text
    db.flush()
    return snapshot


# =============================================================================
# Publishing and execution
# =============================================================================

@dataclass
class PublishOutcome:
    success: bool
    error: str | None = None
    version: StoredProcedureVersion | None = None


def publish_procedure(
    db: Session,
    procedure: StoredProcedure,
    runner: ProcedureRunner,
    profile: ConnectionProfile,
    actor_id: uuid.UUID,
) -> PublishOutcome:
    """
    Precheck, deploy and verify the draft, then mark it published.

    Failures come back as an unsuccessful outcome and leave the procedure
    unchanged.
    """
    sql = procedure.sql_draft
    if not sql or not sql.strip():
        return PublishOutcome(success=False, error="Cannot publish procedure with empty draft content")

    precheck = validate_sql(sql)
    if not precheck.valid:
        return PublishOutcome(success=False, error=f"Precheck validation failed: {'; '.join(precheck.errors)}")

    deployed_name = extract_procedure_name(sql) or procedure.name
    try:
        runner.deploy(profile, sql)
    except ProcedureRunError as e:
        logger.warning("sql_editor.deploy.failed", procedure_id=str(procedure.id), error=str(e))
        return PublishOutcome(success=False, error=f"Deployment failed: {e}")

    try:
        verified = runner.exists(profile, deployed_name)
    except ProcedureRunError as e:
        return PublishOutcome(success=False, error=f"Verification failed: {e}")
    if not verified:
        return PublishOutcome(
            success=False,
            error=f"Verification failed: Procedure {deployed_name} not found after deployment",
        )

    procedure.status = ProcedureStatus.PUBLISHED.value
    procedure.sql_published = sql
    procedure.published_at = utcnow()
    version = create_version(db, procedure, sql, VersionSource.PUBLISHED, actor_id)
    logger.info(
        "sql_editor.published",
        procedure_id=str(procedure.id),
        deployed_name=deployed_name,
        version=version.version,
    )
    return PublishOutcome(success=True, version=version)


def unpublish_procedure(
    db: Session,
    procedure: StoredProcedure,
    runner: ProcedureRunner,
    profile: ConnectionProfile,
) -> StoredProcedure:
    if procedure.procedure_status != ProcedureStatus.PUBLISHED:
        raise BadRequestError("Procedure is not published", code="NOT_PUBLISHED")

    deployed_name = extract_procedure_name(procedure.sql_published or "") or procedure.name
    try:
        runner.drop(profile, deployed_name)
    except ProcedureRunError as e:
        raise BadRequestError(f"Failed to unpublish procedure: {e}", code="UNPUBLISH_FAILED") from e

    procedure.status = ProcedureStatus.DRAFT.value
    procedure.sql_published = None
    procedure.published_at = None
    db.flush()
    return procedure


@dataclass
class ExecutionOutcome:
    success: bool
    execution_time_ms: float
    procedure_name: str
    result: ExecutionResult | None = None
    error: str | None = None


def sanitize_parameters(parameters: dict[str, Any]) -> dict[str, Any]:
    """Parameters as they may appear in the activity log."""
    sanitized = {}
    for key, value in parameters.items():
        if any(hint in key.lower() for hint in SENSITIVE_PARAMETER_HINTS):
            sanitized[key] = "[REDACTED]"
        elif isinstance(value, str) and len(value) > 100:
            sanitized[key] = value[:100] + "..."
        else:
            sanitized[key] = value
    return sanitized


def execute_procedure(
    procedure: StoredProcedure,
    runner: ProcedureRunner,
    profile: ConnectionProfile,
    parameters: dict[str, Any],
    timeout_seconds: int,
) -> ExecutionOutcome:
    if procedure.procedure_status != ProcedureStatus.PUBLISHED or not (procedure.sql_published or "").strip():
        raise BadRequestError(
            "Cannot execute procedure in draft status. Please publish the procedure first.",
            code="NOT_PUBLISHED",
        )
    invalid = [key for key in parameters if not IDENTIFIER_RE.match(key)]
    if invalid:
        raise BadRequestError(f"Invalid parameter names: {', '.join(invalid)}")

    deployed_name = extract_procedure_name(procedure.sql_published) or procedure.name
    start = time.perf_counter()
    try:
        result = runner.execute(profile, deployed_name, parameters, timeout_seconds)
    except ProcedureRunError as e:
        elapsed = round((time.perf_counter() - start) * 1000, 2)
        logger.warning("sql_editor.execute.failed", procedure_id=str(procedure.id), error=str(e))
        return ExecutionOutcome(
            success=False,
            execution_time_ms=elapsed,
            procedure_name=deployed_name,
            error=f"Procedure execution failed: {e}",
        )

    elapsed = round((time.perf_counter() - start) * 1000, 2)
    return ExecutionOutcome(success=True, execution_time_ms=elapsed, procedure_name=deployed_name, result=result)
