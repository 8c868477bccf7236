"""Platform administration: users and workspaces."""
from typing import Any, Optional

from client_app.errors import AdminApiError
from client_app.features.base import FeatureApi
from client_app.models import User


def _page_params(page: int, limit: int, **filters: Any) -> dict[str, Any]:
    params = {"page": page, "limit": limit}
    params.update({k: v for k, v in filters.items() if v is not None})
    return params


class AdminUsersApi(FeatureApi):
    error_class = AdminApiError

    async def list_users(self, page: int = 1, limit: int = 20, search: Optional[str] = None) -> dict:
        return await self._call(
            "Failed to list users", "GET", "/users", params=_page_params(page, limit, search=search)
        )

    async def create_user(
        self,
        username: str,
        name: str,
        password: str,
        email: Optional[str] = None,
        role: str = "User",
    ) -> User:
        body = {"username": username, "name": name, "password": password, "email": email, "role": role}
        return User.model_validate(await self._call("Failed to create user", "POST", "/users", json=body))

    async def set_user_status(self, user_id: str, is_active: bool) -> User:
        data = await self._call(
            "Failed to update user status", "PATCH", f"/users/{user_id}/status", json={"is_active": is_active}
        )
        return User.model_validate(data)

    async def set_user_role(self, user_id: str, role: str) -> User:
        data = await self._call("Failed to update user role", "PATCH", f"/users/{user_id}/role", json={"role": role})
        return User.model_validate(data)


class AdminWorkspacesApi(FeatureApi):
    error_class = AdminApiError

    async def list_workspaces(
        self,
        page: int = 1,
        limit: int = 20,
        search: Optional[str] = None,
        is_active: Optional[bool] = None,
    ) -> dict:
        params = _page_params(page, limit, search=search, is_active=is_active)
        return await self._call("Failed to list workspaces", "GET", "/admin/workspaces", params=params)

    async def create_workspace(self, name: str, slug: str) -> dict:
        return await self._call(
            "Failed to create workspace", "POST", "/admin/workspaces", json={"name": name, "slug": slug}
        )

    async def get_workspace(self, slug: str) -> dict:
        return await self._call("Failed to load workspace", "GET", f"/admin/c/{slug}")

    async def update_workspace(self, slug: str, name: Optional[str] = None, is_active: Optional[bool] = None) -> dict:
        body = {k: v for k, v in {"name": name, "is_active": is_active}.items() if v is not None}
        return await self._call("Failed to update workspace", "PATCH", f"/admin/c/{slug}", json=body)

    async def delete_workspace(self, slug: str) -> str:
        data = await self._call("Failed to delete workspace", "DELETE", f"/admin/c/{slug}")
        return data["message"]

    async def get_stats(self, slug: str) -> dict:
        return await self._call("Failed to load workspace stats", "GET", f"/admin/c/{slug}/stats")

    async def list_members(self, slug: str) -> list[dict]:
        return await self._call("Failed to list members", "GET", f"/admin/c/{slug}/users")

    async def add_member(
        self,
        slug: str,
        user_id: Optional[str] = None,
        username: Optional[str] = None,
        role: str = "Member",
        name: Optional[str] = None,
        password: Optional[str] = None,
    ) -> dict:
        """Add an existing user by id or username, or create one when ``password`` is given."""
        body = {"user_id": user_id, "username": username, "role": role, "name": name, "password": password}
        body = {k: v for k, v in body.items() if v is not None}
        return await self._call("Failed to add member", "POST", f"/admin/c/{slug}/users", json=body)

    async def set_member_role(self, slug: str, user_id: str, role: str) -> dict:
        return await self._call(
            "Failed to update member role", "PATCH", f"/admin/c/{slug}/users/{user_id}/role", json={"role": role}
        )

    async def set_member_status(self, slug: str, user_id: str, is_active: bool) -> dict:
        return await self._call(
            "Failed to update member status",
            "PATCH",
            f"/admin/c/{slug}/users/{user_id}/status",
            json={"is_active": is_active},
        )

    async def remove_member(self, slug: str, user_id: str) -> str:
        data = await self._call("Failed to remove member", "DELETE", f"/admin/c/{slug}/users/{user_id}")
        return data["message"]

    async def replace_owner(self, slug: str, new_owner_id: str) -> dict:
        return await self._call(
            "Failed to replace owner",
            "POST",
            f"/admin/c/{slug}/users/replace-owner",
            json={"new_owner_id": new_owner_id},
        )
