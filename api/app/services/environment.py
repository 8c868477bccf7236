"""
Workspace environment: the stored connection profile to a workspace's
external database, with a cached result of the last connection test.
"""
import time
import uuid
from dataclasses import dataclass
from typing import Any

import structlog
from sqlalchemy import create_engine, select, text
from sqlalchemy.engine import URL
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.pool import NullPool

from app.core.config import settings
from app.core.errors import BadRequestError, ConflictError, NotFoundError
from app.db.base import utcnow
from app.models.environment import Environment
from shared.enums import ConnectionStatus

logger = structlog.get_logger(__name__)

# Shown instead of the stored password; sent back unchanged it means "keep it"
PASSWORD_MASK = "•••••"

PROFILE_FIELDS = (
    "name",
    "host",
    "port",
    "database",
    "username",
    "connection_timeout",
    "encrypt",
    "trust_server_certificate",
)

REQUIRED_FIELDS = ("name", "host", "database", "username")


@dataclass
class ConnectionProfile:
    host: str
    port: int
    database: str
    username: str
    password: str | None
    connection_timeout: int = 30000
    encrypt: bool = True
    trust_server_certificate: bool = False

    @classmethod
    def from_environment(cls, env: Environment) -> "ConnectionProfile":
        return cls(
            host=env.host,
            port=env.port,
            database=env.database,
            username=env.username,
            password=env.password,
            connection_timeout=env.connection_timeout,
            encrypt=env.encrypt,
            trust_server_certificate=env.trust_server_certificate,
        )


@dataclass
class ConnectionResult:
    success: bool
    message: str
    latency_ms: float | None = None
    error: str | None = None


class ConnectionTester:
    """Opens a throwaway connection to a profile and runs ``SELECT 1``."""

    def __init__(self, driver: str | None = None):
        self.driver = driver or settings.ENVIRONMENT_DB_DRIVER

    def build_url(self, profile: ConnectionProfile) -> URL:
        return URL.create(
            self.driver,
            username=profile.username,
            password=profile.password,
            host=profile.host,
            port=profile.port,
            database=profile.database,
        )

    def connect_args(self, profile: ConnectionProfile) -> dict[str, Any]:
        seconds = max(1, profile.connection_timeout // 1000)
        if self.driver.startswith("mssql+pymssql"):
            return {"login_timeout": seconds, "timeout": seconds}
        if self.driver.startswith("postgresql"):
            return {"connect_timeout": seconds}
        return {}

    def test(self, profile: ConnectionProfile) -> ConnectionResult:
        start = time.perf_counter()
        try:
            engine = create_engine(
                self.build_url(profile),
                connect_args=self.connect_args(profile),
                poolclass=NullPool,
            )
            try:
                with engine.connect() as conn:
                    conn.execute(text("SELECT 1"))
            finally:
                engine.dispose()
        except (SQLAlchemyError, ImportError) as e:
            logger.warning(
                "environment.connection.failed",
                host=profile.host,
                database=profile.database,
                error=str(e),
            )
            return ConnectionResult(success=False, message="Connection test failed", error=str(e))

        latency_ms = round((time.perf_counter() - start) * 1000, 2)
        return ConnectionResult(success=True, message="Connection test successful", latency_ms=latency_ms)


def get_connection_tester() -> ConnectionTester:
    """Dependency; overridden in tests."""
    return ConnectionTester()


# =============================================================================
# Persistence
# =============================================================================

def get_environment(db: Session, workspace_id: uuid.UUID) -> Environment | None:
    return db.execute(
        select(Environment).where(Environment.workspace_id == workspace_id)
    ).scalar_one_or_none()


def require_environment(db: Session, workspace_id: uuid.UUID) -> Environment:
    env = get_environment(db, workspace_id)
    if env is None:
        raise NotFoundError("Environment configuration not found")
    return env


def resolve_password(submitted: str | None, stored: str | None) -> str | None:
    """An absent password or the mask keeps whatever is stored."""
    if submitted is None or submitted == PASSWORD_MASK:
        return stored
    return submitted


def create_environment(
    db: Session,
    workspace_id: uuid.UUID,
    data: dict[str, Any],
    actor_id: uuid.UUID,
) -> Environment:
    if get_environment(db, workspace_id) is not None:
        raise ConflictError("Environment already configured for this workspace")

    missing = [f for f in REQUIRED_FIELDS if not data.get(f)]
    if missing:
        raise BadRequestError(f"Missing environment fields: {', '.join(missing)}")

    env = Environment(
        workspace_id=workspace_id,
        password=resolve_password(data.get("password"), None),
        status=ConnectionStatus.UNKNOWN.value,
        created_by=actor_id,
        updated_by=actor_id,
        **{k: data[k] for k in PROFILE_FIELDS if data.get(k) is not None},
    )
    db.add(env)
    db.flush()
    return env


def upsert_environment(
    db: Session,
    workspace_id: uuid.UUID,
    data: dict[str, Any],
    actor_id: uuid.UUID,
) -> tuple[Environment, bool]:
    """Update the workspace's environment, creating it if missing.

    Returns ``(environment, created)``. Any update resets the cached status.
    """
    env = get_environment(db, workspace_id)
    if env is None:
        return create_environment(db, workspace_id, data, actor_id), True

    for field in PROFILE_FIELDS:
        if data.get(field) is not None:
            setattr(env, field, data[field])
    env.password = resolve_password(data.get("password"), env.password)
    env.status = ConnectionStatus.UNKNOWN.value
    env.last_tested_at = None
    env.updated_by = actor_id
    db.flush()
    return env, False


def apply_connection_result(env: Environment, result: ConnectionResult) -> None:
    env.status = (ConnectionStatus.CONNECTED if result.success else ConnectionStatus.FAILED).value
    env.last_tested_at = utcnow()
