from typing import Annotated
import logging
import uuid

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth import dependencies
from app.core.responses import PaginatedResponse, StandardResponse
from app.database import get_db
from app.models.enums import SubjectType
from app.models.user import User
from app.schemas.activity import ActivityResponse
from app.services.activity_service import ALL_SUBJECTS, ActivityService

logger = logging.getLogger(__name__)

router = APIRouter()


def _serialize(activities) -> list[ActivityResponse]:
    return [ActivityResponse.model_validate(activity) for activity in activities]


@router.get("/recent", response_model=StandardResponse[list[ActivityResponse]])
async def get_recent_activities(
    current_user: Annotated[User, Depends(dependencies.get_current_active_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
    limit: Annotated[int, Query(ge=1, le=100)] = 10,
):
    """Most recent activities for the dashboard feed."""
    activities = await ActivityService.recent_activities(db, limit=limit)
    return StandardResponse(data=_serialize(activities))


@router.get("/user/{user_id}", response_model=StandardResponse[list[ActivityResponse]])
async def get_user_activities(
    user_id: uuid.UUID,
    current_user: Annotated[User, Depends(dependencies.get_current_active_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
    limit: Annotated[int, Query(ge=1, le=100)] = 20,
):
    activities = await ActivityService.activities_by_actor(db, user_id, limit=limit)
    return StandardResponse(data=_serialize(activities))


@router.get("/entity/{subject_type}/{subject_id}", response_model=StandardResponse[list[ActivityResponse]])
async def get_entity_activities(
    subject_type: SubjectType,
    subject_id: uuid.UUID,
    current_user: Annotated[User, Depends(dependencies.get_current_active_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
    limit: Annotated[int, Query(ge=1, le=100)] = 20,
):
    activities = await ActivityService.activities_by_entity(db, subject_type, subject_id, limit=limit)
    return StandardResponse(data=_serialize(activities))


@router.get("/all", response_model=PaginatedResponse[ActivityResponse])
async def get_all_activities(
    current_user: Annotated[User, Depends(dependencies.get_current_active_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=100)] = 20,
    subject_filter: Annotated[str, Query(alias="filter")] = ALL_SUBJECTS,
):
    """Paginated audit browsing; `filter` is a subject type or "all"."""
    result = await ActivityService.all_activities(db, page=page, limit=limit, subject_type_filter=subject_filter)
    return PaginatedResponse[ActivityResponse](
        data=_serialize(result.records),
        total=result.total_count,
        page=result.page,
        limit=result.limit,
        total_pages=result.total_pages,
    )


@router.delete("/delete-all", response_model=StandardResponse[dict])
async def delete_all_activities(
    current_user: Annotated[User, Depends(dependencies.get_current_active_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Remove the whole activity log. Administrators only."""
    deleted = await ActivityService.delete_all(db, requested_by=current_user)
    return StandardResponse(
        data={"deleted_count": deleted},
        message=f"Successfully deleted {deleted} activities",
    )
