"""Shared plumbing for the feature APIs."""
from typing import Any

from client_app.client import ApiClient
from client_app.errors import ApiError


class FeatureApi:
    """
    Thin wrapper over ``ApiClient``.

    A plain ``ApiError`` is re-raised as ``error_class`` with ``context``
    prefixed to the message, keeping status and code. Typed errors
    (``AuthError``, ``NotFoundError`` ...) pass through unchanged.
    """

    error_class: type[ApiError] = ApiError

    def __init__(self, client: ApiClient):
        self.client = client

    async def _call(self, context: str, method: str, path: str, **kwargs) -> Any:
        try:
            response = await self.client.request(method, path, **kwargs)
        except ApiError as e:
            if type(e) is not ApiError:
                raise
            raise self.error_class(f"{context}: {e.message}", e.code, e.status_code, e.response) from e
        return response.data
