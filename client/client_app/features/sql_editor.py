"""SQL editor procedures and the admin-managed procedure templates."""
from typing import Any, Optional

from client_app.errors import AdminApiError, WorkspaceApiError
from client_app.features.base import FeatureApi


class SqlEditorApi(FeatureApi):
    """Stored procedures of a workspace, under ``/c/{slug}/sql-editor``."""

    error_class = WorkspaceApiError

    @staticmethod
    def _base(slug: str) -> str:
        return f"/c/{slug}/sql-editor"

    async def list_procedures(self, slug: str) -> list[dict]:
        return await self._call("Failed to list procedures", "GET", self._base(slug))

    async def get_stats(self, slug: str) -> dict:
        return await self._call("Failed to load procedure stats", "GET", f"{self._base(slug)}/stats")

    async def get_procedure(self, slug: str, procedure_id: str) -> dict:
        return await self._call("Failed to load procedure", "GET", f"{self._base(slug)}/{procedure_id}")

    async def create_procedure(self, slug: str, name: str, sql_draft: str = "") -> dict:
        return await self._call(
            "Failed to create procedure", "POST", self._base(slug), json={"name": name, "sql_draft": sql_draft}
        )

    async def update_procedure(
        self,
        slug: str,
        procedure_id: str,
        name: Optional[str] = None,
        sql_draft: Optional[str] = None,
    ) -> dict:
        body = {k: v for k, v in {"name": name, "sql_draft": sql_draft}.items() if v is not None}
        return await self._call(
            "Failed to update procedure", "PUT", f"{self._base(slug)}/{procedure_id}", json=body
        )

    async def delete_procedure(self, slug: str, procedure_id: str) -> None:
        await self._call("Failed to delete procedure", "DELETE", f"{self._base(slug)}/{procedure_id}")

    async def duplicate_procedure(self, slug: str, procedure_id: str, name: str) -> dict:
        return await self._call(
            "Failed to duplicate procedure",
            "POST",
            f"{self._base(slug)}/{procedure_id}/duplicate",
            json={"name": name},
        )

    async def validate_procedure(self, slug: str, procedure_id: str) -> dict:
        return await self._call(
            "Failed to validate procedure", "POST", f"{self._base(slug)}/{procedure_id}/validate"
        )

    async def validate_sql(self, slug: str, sql_content: str) -> dict:
        return await self._call(
            "Failed to validate SQL", "POST", f"{self._base(slug)}/validate", json={"sql_content": sql_content}
        )

    async def publish(self, slug: str, procedure_id: str) -> dict:
        """Returns ``{"success", "procedure", "version", "error"}``; a failed deploy is not an error."""
        return await self._call("Failed to publish procedure", "POST", f"{self._base(slug)}/{procedure_id}/publish")

    async def unpublish(self, slug: str, procedure_id: str) -> dict:
        return await self._call(
            "Failed to unpublish procedure", "POST", f"{self._base(slug)}/{procedure_id}/unpublish"
        )

    async def execute(
        self,
        slug: str,
        procedure_id: str,
        parameters: Optional[dict[str, Any]] = None,
        timeout: Optional[int] = None,
    ) -> dict:
        body: dict[str, Any] = {"parameters": parameters or {}}
        if timeout is not None:
            body["timeout"] = timeout
        return await self._call(
            "Failed to execute procedure", "POST", f"{self._base(slug)}/{procedure_id}/execute", json=body
        )

    async def list_versions(self, slug: str, procedure_id: str) -> list[dict]:
        return await self._call("Failed to list versions", "GET", f"{self._base(slug)}/{procedure_id}/versions")

    async def get_version(self, slug: str, procedure_id: str, version: int) -> dict:
        return await self._call(
            "Failed to load version", "GET", f"{self._base(slug)}/{procedure_id}/versions/{version}"
        )

    async def rollback(self, slug: str, procedure_id: str, version: int) -> dict:
        return await self._call(
            "Failed to roll back procedure",
            "POST",
            f"{self._base(slug)}/{procedure_id}/rollback",
            json={"version": version},
        )


class ProcedureTemplatesApi(FeatureApi):
    error_class = AdminApiError

    async def list_templates(self) -> list[dict]:
        return await self._call("Failed to list templates", "GET", "/admin/templates")

    async def get_template(self, template_id: str) -> dict:
        return await self._call("Failed to load template", "GET", f"/admin/templates/{template_id}")

    async def create_template(
        self,
        name: str,
        sql_template: str,
        description: Optional[str] = None,
        params_schema: Optional[dict[str, Any]] = None,
    ) -> dict:
        body = {"name": name, "sql_template": sql_template, "description": description, "params_schema": params_schema}
        return await self._call("Failed to create template", "POST", "/admin/templates", json=body)

    async def update_template(self, template_id: str, **fields: Any) -> dict:
        return await self._call(
            "Failed to update template", "PATCH", f"/admin/templates/{template_id}", json=fields
        )

    async def delete_template(self, template_id: str) -> None:
        await self._call("Failed to delete template", "DELETE", f"/admin/templates/{template_id}")

    async def validate_template(self, template_id: str) -> dict:
        return await self._call("Failed to validate template", "POST", f"/admin/templates/{template_id}/validate")

    async def render(self, template_id: str, procedure_name: str, parameters: Optional[dict[str, Any]] = None) -> dict:
        """Returns ``{"rendered_sql", "validation"}``; rejected parameters render ``""``."""
        return await self._call(
            "Failed to render template",
            "POST",
            f"/admin/templates/{template_id}/render",
            json={"procedure_name": procedure_name, "parameters": parameters or {}},
        )
