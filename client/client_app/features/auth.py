from typing import Any, BinaryIO, Union

from client_app.client import RequestOptions
from client_app.features.base import FeatureApi
from client_app.models import LoginResult, User


class AuthApi(FeatureApi):
    """Login and the current user's own account."""

    async def login(self, username: str, password: str) -> LoginResult:
        data = await self._call(
            "Login failed",
            "POST",
            "/auth/login",
            json={"username": username, "password": password},
            options=RequestOptions(skip_auth=True),
        )
        return LoginResult.model_validate(data)

    async def get_profile(self) -> User:
        return User.model_validate(await self._call("Failed to load profile", "GET", "/auth/profile"))

    async def change_password(self, current_password: str, new_password: str) -> str:
        data = await self._call(
            "Failed to change password",
            "POST",
            "/auth/change-password",
            json={"current_password": current_password, "new_password": new_password},
        )
        return data["message"]

    async def update_profile(self, **fields: Any) -> User:
        data = await self._call("Failed to update profile", "PUT", "/users/profile", json=fields)
        return User.model_validate(data)

    async def upload_avatar(
        self,
        content: Union[bytes, BinaryIO],
        filename: str = "avatar.png",
        content_type: str = "image/png",
    ) -> User:
        files = {"avatar": (filename, content, content_type)}
        data = await self._call(
            "Failed to upload avatar",
            "PUT",
            "/users/avatar",
            files=files,
        )
        return User.model_validate(data)

    async def list_roles(self) -> list[dict]:
        return await self._call("Failed to load roles", "GET", "/users/roles")
