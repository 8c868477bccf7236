"""
Procedure templates.

A template is SQL with ``{{placeholder}}`` markers. ``{{procedureName}}`` is
mandatory and must sit in the CREATE [OR ALTER] PROCEDURE header; every
other placeholder must be declared in ``params_schema``, keyed by the
parameter's own ``name``. Parameter types are ``string``, ``number`` and
``identifier`` (``[A-Za-z0-9_]+``).
"""
import re
import uuid
from typing import Any

import structlog
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.errors import BadRequestError, ConflictError, NotFoundError
from app.models.procedure import ProcedureTemplate
from app.services.sql_validation import IDENTIFIER_RE, ValidationResult

logger = structlog.get_logger(__name__)

PROCEDURE_NAME = "procedureName"
PARAMETER_TYPES = ("string", "number", "identifier")

PLACEHOLDER_RE = re.compile(r"\{\{([A-Za-z0-9_]+)\}\}")
HEADER_RE = re.compile(r"CREATE\s+(?:OR\s+ALTER\s+)?PROCEDURE\s+\{\{procedureName\}\}", re.IGNORECASE)


def extract_placeholders(sql_template: str) -> list[str]:
    """Placeholder names in first-seen order, without duplicates."""
    return list(dict.fromkeys(PLACEHOLDER_RE.findall(sql_template)))


def validate_template(sql_template: str | None, params_schema: dict[str, Any] | None) -> ValidationResult:
    result = ValidationResult()
    if not sql_template or not sql_template.strip():
        result.errors.append("SQL template cannot be empty")
        return result

    placeholders = extract_placeholders(sql_template)
    if PROCEDURE_NAME not in placeholders:
        result.errors.append("Template must contain {{procedureName}} placeholder in the procedure header")
    if not HEADER_RE.search(sql_template):
        result.errors.append("Template must contain a valid CREATE [OR ALTER] PROCEDURE {{procedureName}} header")

    if params_schema:
        declared = list(params_schema)
        undeclared = [p for p in placeholders if p != PROCEDURE_NAME and p not in params_schema]
        if undeclared:
            result.errors.append(f"Undeclared placeholders found: {', '.join(undeclared)}")

        unused = [p for p in declared if p not in placeholders]
        if unused:
            result.warnings.append(f"Unused parameters found: {', '.join(unused)}")

        for param_name, definition in params_schema.items():
            definition = definition or {}
            if definition.get("name") != param_name:
                result.errors.append(f'Parameter definition key "{param_name}" must match its name property')
            if definition.get("type") not in PARAMETER_TYPES:
                result.errors.append(
                    f'Parameter "{param_name}" has unsupported type. Expected one of {", ".join(PARAMETER_TYPES)}'
                )
            if definition.get("type") == "identifier" and definition.get("required") is not False:
                result.warnings.append(
                    f'Identifier parameter "{param_name}" should typically be optional with a default value'
                )

    return result


# =============================================================================
# Rendering
# =============================================================================

def _type_matches(value: Any, param_type: str | None) -> bool:
    if param_type == "string":
        return isinstance(value, str)
    if param_type == "number":
        return isinstance(value, (int, float)) and not isinstance(value, bool)
    if param_type == "identifier":
        return isinstance(value, str) and bool(IDENTIFIER_RE.match(value))
    return False


def _constraint_errors(name: str, value: Any, definition: dict[str, Any]) -> list[str]:
    constraints = definition.get("constraints") or {}
    errors = []
    if definition.get("type") == "number":
        if constraints.get("min") is not None and value < constraints["min"]:
            errors.append(f'Parameter "{name}" must be at least {constraints["min"]}')
        if constraints.get("max") is not None and value > constraints["max"]:
            errors.append(f'Parameter "{name}" must be at most {constraints["max"]}')
    if definition.get("type") == "string" and constraints.get("pattern"):
        try:
            matched = re.search(constraints["pattern"], value) is not None
        except re.error:
            matched = False
        if not matched:
            errors.append(f'Parameter "{name}" does not match required pattern')
    return errors


def resolve_parameters(
    params_schema: dict[str, Any] | None,
    provided: dict[str, Any],
) -> tuple[dict[str, Any], ValidationResult]:
    """Check ``provided`` against the schema, filling declared defaults."""
    result = ValidationResult()
    values = dict(provided)
    for name, definition in (params_schema or {}).items():
        definition = definition or {}
        if name not in values:
            if definition.get("default") is not None:
                values[name] = definition["default"]
            elif definition.get("required"):
                result.errors.append(f'Required parameter "{name}" is missing')
            continue

        value = values[name]
        if not _type_matches(value, definition.get("type")):
            result.errors.append(f'Parameter "{name}" has invalid type. Expected {definition.get("type")}')
            continue
        result.errors.extend(_constraint_errors(name, value, definition))
    return values, result


def render_sql(sql_template: str, procedure_name: str, parameters: dict[str, Any]) -> str:
    rendered = sql_template.replace("{{" + PROCEDURE_NAME + "}}", procedure_name)
    for key, value in parameters.items():
        rendered = rendered.replace("{{" + key + "}}", str(value))
    return rendered


def render_template(
    template: ProcedureTemplate,
    procedure_name: str,
    parameters: dict[str, Any],
) -> tuple[str, ValidationResult]:
    """Returns ``("", validation)`` when the parameters are rejected."""
    if not IDENTIFIER_RE.match(procedure_name):
        raise BadRequestError("Procedure name may only contain letters, digits and underscores")

    values, validation = resolve_parameters(template.params_schema, parameters)
    if not validation.valid:
        return "", validation
    return render_sql(template.sql_template, procedure_name, values), validation


# =============================================================================
# Persistence
# =============================================================================

def list_templates(db: Session) -> list[ProcedureTemplate]:
    return list(db.execute(
        select(ProcedureTemplate).order_by(ProcedureTemplate.updated_at.desc(), ProcedureTemplate.name)
    ).scalars().all())


def require_template(db: Session, template_id: uuid.UUID) -> ProcedureTemplate:
    template = db.get(ProcedureTemplate, template_id)
    if template is None:
        raise NotFoundError("Procedure template not found")
    return template


def _check_name_free(db: Session, name: str, exclude_id: uuid.UUID | None = None) -> None:
    query = select(ProcedureTemplate.id).where(ProcedureTemplate.name == name)
    if exclude_id is not None:
        query = query.where(ProcedureTemplate.id != exclude_id)
    if db.execute(query).first() is not None:
        raise ConflictError(f"Template with name '{name}' already exists")


def _ensure_valid(sql_template: str, params_schema: dict[str, Any] | None) -> None:
    validation = validate_template(sql_template, params_schema)
    if not validation.valid:
        raise BadRequestError(
            f"Template validation failed: {', '.join(validation.errors)}",
            code="INVALID_TEMPLATE",
        )


def create_template(db: Session, data: dict[str, Any], actor_id: uuid.UUID) -> ProcedureTemplate:
    _ensure_valid(data["sql_template"], data.get("params_schema"))
    _check_name_free(db, data["name"])

    template = ProcedureTemplate(
        name=data["name"],
        description=data.get("description"),
        sql_template=data["sql_template"],
        params_schema=data.get("params_schema"),
        created_by=actor_id,
    )
    db.add(template)
    db.flush()
    logger.info("template.created", template_id=str(template.id), name=template.name)
    return template


def update_template(db: Session, template: ProcedureTemplate, data: dict[str, Any]) -> ProcedureTemplate:
    """Apply a partial update; the merged template must still validate."""
    sql_template = data.get("sql_template", template.sql_template)
    params_schema = data["params_schema"] if "params_schema" in data else template.params_schema
    _ensure_valid(sql_template, params_schema)

    if data.get("name") and data["name"] != template.name:
        _check_name_free(db, data["name"], exclude_id=template.id)
        template.name = data["name"]
    if "description" in data:
        template.description = data["description"]
    template.sql_template = sql_template
    template.params_schema = params_schema
    db.flush()
    logger.info("template.updated", template_id=str(template.id), fields=sorted(data))
    return template
