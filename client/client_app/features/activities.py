from typing import Optional

from client_app.features.base import FeatureApi
from client_app.models import ActivityPage


class ActivitiesApi(FeatureApi):
    async def list_mine(self, limit: Optional[int] = None, cursor: Optional[str] = None) -> ActivityPage:
        return await self._page("/activities", limit, cursor)

    async def list_workspace(self, slug: str, limit: Optional[int] = None, cursor: Optional[str] = None) -> ActivityPage:
        return await self._page(f"/c/{slug}/activities", limit, cursor)

    async def _page(self, path: str, limit: Optional[int], cursor: Optional[str]) -> ActivityPage:
        params = {k: v for k, v in {"limit": limit, "cursor": cursor}.items() if v is not None}
        data = await self._call("Failed to load activities", "GET", path, params=params)
        return ActivityPage.model_validate(data)
