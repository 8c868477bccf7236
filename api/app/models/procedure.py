import uuid
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import (
    JSON,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base, TimestampMixin, utcnow
from shared.enums import ProcedureStatus


class StoredProcedure(TimestampMixin, Base):
    """A workspace's stored procedure: an editable draft plus the last published text."""
    __tablename__ = "stored_procedures"
    __table_args__ = (
        UniqueConstraint("workspace_id", "name", name="uq_stored_procedures_workspace_name"),
        CheckConstraint("status IN ('draft', 'published')", name="valid_procedure_status"),
        Index("ix_stored_procedures_workspace_updated", "workspace_id", "updated_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    workspace_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("workspaces.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), default=ProcedureStatus.DRAFT.value, nullable=False
    )
    sql_draft: Mapped[str] = mapped_column(Text, default="", nullable=False)
    sql_published: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    published_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )

    workspace = relationship("Workspace", back_populates="procedures")
    versions = relationship(
        "StoredProcedureVersion",
        back_populates="procedure",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="StoredProcedureVersion.version.desc()",
    )

    @property
    def procedure_status(self) -> ProcedureStatus:
        return ProcedureStatus(self.status)


class StoredProcedureVersion(Base):
    """Immutable snapshot of a procedure's SQL; numbered per procedure from 1."""
    __tablename__ = "stored_procedure_versions"
    __table_args__ = (
        UniqueConstraint("procedure_id", "version", name="uq_procedure_version"),
        CheckConstraint("source IN ('draft', 'published')", name="valid_version_source"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    procedure_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("stored_procedures.id", ondelete="CASCADE"), nullable=False, index=True
    )
    workspace_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("workspaces.id", ondelete="CASCADE"), nullable=False
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    source: Mapped[str] = mapped_column(String(20), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    sql_text: Mapped[str] = mapped_column(Text, nullable=False)
    created_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
    )

    procedure = relationship("StoredProcedure", back_populates="versions")


class ProcedureTemplate(TimestampMixin, Base):
    """Platform-wide starting point for new procedures, with declared parameters."""
    __tablename__ = "procedure_templates"
    __table_args__ = (
        CheckConstraint("length(trim(sql_template)) > 0", name="sql_template_not_empty"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    sql_template: Mapped[str] = mapped_column(Text, nullable=False)
    # {param_name: {name, type, required, default, description, constraints}}
    params_schema: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON, nullable=True)
    created_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
