"""
Procedure templates, managed by platform Admins.
"""
from datetime import datetime
from typing import Any, Optional
from uuid import UUID

import structlog
from fastapi import APIRouter, Response, status
from pydantic import BaseModel, Field

from app.core.deps import AdminUser, DbSession
from app.services import templates

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/admin/templates", tags=["admin-templates"])


class TemplateCreateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None
    sql_template: str
    params_schema: Optional[dict[str, dict[str, Any]]] = None


class TemplateUpdateRequest(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = None
    sql_template: Optional[str] = None
    params_schema: Optional[dict[str, dict[str, Any]]] = None


class RenderRequest(BaseModel):
    procedure_name: str = Field(min_length=1, max_length=255, pattern=r"^[A-Za-z0-9_]+$")
    parameters: dict[str, Any] = Field(default_factory=dict)


class TemplateResponse(BaseModel):
    id: UUID
    name: str
    description: Optional[str] = None
    sql_template: str
    params_schema: Optional[dict[str, Any]] = None
    created_by: Optional[UUID] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class TemplateValidationResponse(BaseModel):
    valid: bool
    errors: list[str] = []
    warnings: list[str] = []


class RenderResponse(BaseModel):
    rendered_sql: str
    validation: TemplateValidationResponse


@router.get("", response_model=list[TemplateResponse])
def list_templates(admin: AdminUser, db: DbSession):
    return templates.list_templates(db)


@router.get("/{template_id}", response_model=TemplateResponse)
def get_template(template_id: UUID, admin: AdminUser, db: DbSession):
    return templates.require_template(db, template_id)


@router.post("", response_model=TemplateResponse, status_code=status.HTTP_201_CREATED)
def create_template(data: TemplateCreateRequest, admin: AdminUser, db: DbSession):
    """Create a template; it must pass validation."""
    template = templates.create_template(db, data.model_dump(), admin.id)
    db.commit()
    db.refresh(template)
    return template


@router.patch("/{template_id}", response_model=TemplateResponse)
def update_template(template_id: UUID, data: TemplateUpdateRequest, admin: AdminUser, db: DbSession):
    template = templates.require_template(db, template_id)
    templates.update_template(db, template, data.model_dump(exclude_unset=True))
    db.commit()
    db.refresh(template)
    return template


@router.delete("/{template_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_template(template_id: UUID, admin: AdminUser, db: DbSession):
    template = templates.require_template(db, template_id)
    db.delete(template)
    db.commit()
    logger.info("template.deleted", template_id=str(template_id), admin_id=str(admin.id))
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{template_id}/validate", response_model=TemplateValidationResponse)
def validate_template(template_id: UUID, admin: AdminUser, db: DbSession):
    """Re-check a stored template, e.g. after the rules changed."""
    template = templates.require_template(db, template_id)
    return templates.validate_template(template.sql_template, template.params_schema).as_dict()


@router.post("/{template_id}/render", response_model=RenderResponse)
def render_template(template_id: UUID, data: RenderRequest, admin: AdminUser, db: DbSession):
    """
    Render a template for a procedure name.

    Rejected parameters give an empty ``rendered_sql`` with the reasons in
    ``validation``.
    """
    template = templates.require_template(db, template_id)
    rendered, validation = templates.render_template(template, data.procedure_name, data.parameters)
    return {"rendered_sql": rendered, "validation": validation.as_dict()}
