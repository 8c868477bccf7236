from typing import Optional

from fastapi import APIRouter, Query

from app.core.config import settings
from app.core.deps import CurrentUser, DbSession, MemberContext
from app.schemas import ActivityPageResponse, ActivityResponse
from app.services import activity
from shared.enums import ActivityScope

router = APIRouter(tags=["activities"])


def _page_response(page: activity.ActivityPage) -> ActivityPageResponse:
    return ActivityPageResponse(
        items=[ActivityResponse.model_validate(a) for a in page.items],
        next_cursor=page.next_cursor,
    )


@router.get("/activities", response_model=ActivityPageResponse)
def list_my_activities(
    current_user: CurrentUser,
    db: DbSession,
    limit: int = Query(settings.ACTIVITY_PAGE_DEFAULT, ge=1, le=settings.ACTIVITY_PAGE_MAX),
    cursor: Optional[str] = None,
):
    """The current user's own activity, newest first."""
    page = activity.list_activities(
        db,
        limit=limit,
        cursor=cursor,
        owner_id=current_user.id,
        scope=ActivityScope.USER,
    )
    return _page_response(page)


@router.get("/c/{slug}/activities", response_model=ActivityPageResponse)
def list_workspace_activities(
    ctx: MemberContext,
    db: DbSession,
    limit: int = Query(settings.ACTIVITY_PAGE_DEFAULT, ge=1, le=settings.ACTIVITY_PAGE_MAX),
    cursor: Optional[str] = None,
):
    """Activity recorded against this workspace, newest first."""
    page = activity.list_activities(
        db,
        limit=limit,
        cursor=cursor,
        workspace_id=ctx.workspace.id,
    )
    return _page_response(page)
