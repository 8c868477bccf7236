from typing import Any

from client_app.errors import WorkspaceApiError
from client_app.features.base import FeatureApi


class WorkspaceApi(FeatureApi):
    """Workspace-scoped calls for a member, under ``/c/{slug}``."""

    error_class = WorkspaceApiError

    async def my_workspaces(self) -> list[dict]:
        return await self._call("Failed to load workspaces", "GET", "/workspaces")

    async def get_profile(self, slug: str) -> dict:
        return await self._call("Failed to load workspace profile", "GET", f"/c/{slug}/auth/profile")

    async def list_members(self, slug: str) -> list[dict]:
        return await self._call("Failed to list members", "GET", f"/c/{slug}/users")

    async def get_stats(self, slug: str) -> dict:
        return await self._call("Failed to load workspace stats", "GET", f"/c/{slug}/stats")

    async def add_member(self, slug: str, user_id: str, role: str = "Member") -> dict:
        return await self._call(
            "Failed to add member", "POST", f"/c/{slug}/users", json={"user_id": user_id, "role": role}
        )

    async def set_member_role(self, slug: str, user_id: str, role: str) -> dict:
        return await self._call(
            "Failed to update member role", "PATCH", f"/c/{slug}/users/{user_id}/role", json={"role": role}
        )

    async def set_member_status(self, slug: str, user_id: str, is_active: bool) -> dict:
        return await self._call(
            "Failed to update member status",
            "PATCH",
            f"/c/{slug}/users/{user_id}/status",
            json={"is_active": is_active},
        )

    async def remove_member(self, slug: str, user_id: str) -> str:
        data = await self._call("Failed to remove member", "DELETE", f"/c/{slug}/users/{user_id}")
        return data["message"]

    async def replace_owner(self, slug: str, new_owner_id: str) -> dict:
        return await self._call(
            "Failed to replace owner",
            "POST",
            f"/c/{slug}/users/replace-owner",
            json={"new_owner_id": new_owner_id},
        )


class EnvironmentApi(FeatureApi):
    """The workspace's database connection profile."""

    error_class = WorkspaceApiError

    async def get(self, slug: str) -> dict:
        return await self._call("Failed to load environment", "GET", f"/c/{slug}/environment")

    async def create(self, slug: str, **fields: Any) -> dict:
        return await self._call("Failed to create environment", "POST", f"/c/{slug}/environment", json=fields)

    async def update(self, slug: str, **fields: Any) -> dict:
        return await self._call("Failed to update environment", "PUT", f"/c/{slug}/environment", json=fields)

    async def delete(self, slug: str) -> str:
        data = await self._call("Failed to delete environment", "DELETE", f"/c/{slug}/environment")
        return data["message"]

    async def test_connection(self, slug: str, **overrides: Any) -> dict:
        """Returns ``{"success", "message", "latency_ms", "error"}``; a failed connection is not an error."""
        return await self._call(
            "Failed to test connection", "POST", f"/c/{slug}/environment/test", json=overrides or None
        )
