"""
Static checks for stored procedure source.

Nothing here touches a database: structural problems are errors, style
problems are warnings. Compilation against the real server happens when a
procedure is published.
"""
import re
from dataclasses import dataclass, field

IDENTIFIER_RE = re.compile(r"^[A-Za-z0-9_]+$")

_NAME_PATTERNS = (
    re.compile(r"create\s+or\s+alter\s+(?:procedure|proc)\s+(?:\[?\w+\]?\.)?\[?(\w+)\]?", re.IGNORECASE),
    re.compile(r"create\s+(?:procedure|proc)\s+(?:\[?\w+\]?\.)?\[?(\w+)\]?", re.IGNORECASE),
    re.compile(r"alter\s+(?:procedure|proc)\s+(?:\[?\w+\]?\.)?\[?(\w+)\]?", re.IGNORECASE),
)

_PROCEDURE_PREFIXES = (
    "create procedure",
    "create proc",
    "alter procedure",
    "alter proc",
    "create or alter procedure",
    "create or alter proc",
)

_STRING_LITERAL_RE = re.compile(r"'(?:[^']|'')*'")


@dataclass
class ValidationResult:
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.errors

    def as_dict(self) -> dict:
        return {"valid": self.valid, "errors": self.errors, "warnings": self.warnings}


def extract_procedure_name(sql: str) -> str | None:
    """Name declared by the first CREATE/ALTER PROCEDURE header, schema stripped."""
    for pattern in _NAME_PATTERNS:
        match = pattern.search(sql)
        if match:
            return match.group(1)
    return None


def is_procedure_definition(sql: str) -> bool:
    normalized = " ".join(sql.split()).lower()
    return normalized.startswith(_PROCEDURE_PREFIXES)


def best_practice_warnings(sql: str) -> list[str]:
    normalized = sql.lower()
    warnings = []

    if "select *" in normalized:
        warnings.append("Avoid using SELECT * in stored procedures - specify explicit columns")
    if "set nocount" not in normalized:
        warnings.append("Consider adding SET NOCOUNT ON for better performance")
    if "begin" not in normalized and "as" not in normalized:
        warnings.append("Procedure should contain BEGIN...END block or AS keyword")
    if "exec(" in normalized or "execute(" in normalized:
        warnings.append(
            "Dynamic SQL execution detected - ensure proper parameterization to prevent SQL injection"
        )
    if "try" not in normalized and "catch" not in normalized:
        warnings.append("Consider adding TRY...CATCH block for proper error handling")
    if len(_STRING_LITERAL_RE.findall(sql)) > 2:
        warnings.append("Multiple hardcoded string literals found - consider using parameters instead")

    return warnings


def validate_sql(sql: str | None, empty_message: str = "SQL content cannot be empty") -> ValidationResult:
    if not sql or not sql.strip():
        return ValidationResult(errors=[empty_message])

    result = ValidationResult(warnings=best_practice_warnings(sql))
    if not is_procedure_definition(sql):
        result.errors.append("SQL must be a CREATE, ALTER, or CREATE OR ALTER PROCEDURE statement")
    elif extract_procedure_name(sql) is None:
        result.errors.append("Could not determine the procedure name from its header")
    return result
