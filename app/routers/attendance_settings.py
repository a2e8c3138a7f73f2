from typing import Annotated
from dataclasses import asdict
from datetime import date
import logging

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth import dependencies
from app.core.responses import StandardResponse
from app.database import get_db
from app.models.user import User
from app.schemas.attendance import (
    AttendanceSettingsResponse,
    AttendanceSettingsUpdate,
    AutoAbsenceLogEntry,
)
from app.schemas.scheduler import SchedulerStatus
from app.services.absence_scheduler import AbsenceMarkingScheduler
from app.services.absence_service import AbsenceService
from app.services.attendance_settings_service import (
    DEFAULT_AUTO_CHECKOUT_HOURS,
    AttendanceSettingsService,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def get_absence_scheduler(request: Request) -> AbsenceMarkingScheduler:
    return request.app.state.absence_scheduler


@router.get("/auto-checkout-hours", response_model=StandardResponse[dict])
async def get_auto_checkout_hours(
    current_user: Annotated[User, Depends(dependencies.get_current_active_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    settings = await AttendanceSettingsService.get(db)
    hours = settings.auto_checkout_hours if settings else DEFAULT_AUTO_CHECKOUT_HOURS
    return StandardResponse(data={"auto_checkout_hours": hours})


@router.get("", response_model=StandardResponse[AttendanceSettingsResponse])
async def get_attendance_settings(
    current_user: Annotated[User, Depends(dependencies.get_current_hr)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    settings = await AttendanceSettingsService.get_or_create(db)
    return StandardResponse(data=AttendanceSettingsResponse.model_validate(settings))


@router.put("", response_model=StandardResponse[AttendanceSettingsResponse])
async def update_attendance_settings(
    payload: AttendanceSettingsUpdate,
    current_user: Annotated[User, Depends(dependencies.get_current_hr)],
    db: Annotated[AsyncSession, Depends(get_db)],
    scheduler: Annotated[AbsenceMarkingScheduler, Depends(get_absence_scheduler)],
):
    settings = await AttendanceSettingsService.update(db, payload, updated_by_id=current_user.id)
    await scheduler.reschedule()
    return StandardResponse(
        data=AttendanceSettingsResponse.model_validate(settings),
        message="Attendance settings updated successfully",
    )


@router.post("/mark-absences", response_model=StandardResponse[dict])
async def mark_absences(
    current_user: Annotated[User, Depends(dependencies.get_current_hr)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Manual run; not counted in the scheduler's run history."""
    logger.info("Manual absence marking requested by %s", current_user.email)
    summary = await AbsenceService.mark_absences_for_today(db)
    await db.commit()
    return StandardResponse(data=summary.to_dict(), message="Absence marking completed")


@router.get("/absence-stats", response_model=StandardResponse[dict])
async def get_absence_stats(
    current_user: Annotated[User, Depends(dependencies.get_current_hr)],
    db: Annotated[AsyncSession, Depends(get_db)],
    target_date: Annotated[date | None, Query(alias="date")] = None,
):
    stats = await AbsenceService.absence_stats(db, target_date)
    return StandardResponse(data=asdict(stats))


@router.get("/cron-status", response_model=StandardResponse[SchedulerStatus])
async def get_cron_status(
    current_user: Annotated[User, Depends(dependencies.get_current_hr)],
    scheduler: Annotated[AbsenceMarkingScheduler, Depends(get_absence_scheduler)],
):
    return StandardResponse(data=scheduler.status())


@router.post("/cron-restart", response_model=StandardResponse[SchedulerStatus])
async def restart_cron(
    current_user: Annotated[User, Depends(dependencies.get_current_hr)],
    scheduler: Annotated[AbsenceMarkingScheduler, Depends(get_absence_scheduler)],
):
    logger.info("Absence marking scheduler restart requested by %s", current_user.email)
    await scheduler.restart()
    return StandardResponse(data=scheduler.status(), message="Cron service restarted successfully")


@router.get("/cron-logs", response_model=StandardResponse[dict])
async def get_cron_logs(
    current_user: Annotated[User, Depends(dependencies.get_current_hr)],
    db: Annotated[AsyncSession, Depends(get_db)],
    limit: Annotated[int, Query(ge=1, le=100)] = 10,
):
    """Attendance rows written by automatic absence marking, newest first."""
    records = await AbsenceService.recent_auto_absences(db, limit=limit)
    logs = [
        AutoAbsenceLogEntry(
            id=record.id,
            employee_name=record.employee.full_name if record.employee else "Unknown",
            date=record.date.isoformat(),
            marked_at=record.created_at,
            notes=record.notes,
        )
        for record in records
    ]
    return StandardResponse(data={"logs": [log.model_dump(mode="json") for log in logs], "total": len(logs)})
