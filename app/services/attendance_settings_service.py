import logging
import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.attendance import AttendanceSettings
from app.schemas.attendance import AttendanceSettingsUpdate

logger = logging.getLogger(__name__)

SETTINGS_ID = 1
DEFAULT_AUTO_CHECKOUT_HOURS = 16


class AttendanceSettingsService:
    @staticmethod
    async def get(db: AsyncSession) -> AttendanceSettings | None:
        result = await db.execute(select(AttendanceSettings).where(AttendanceSettings.id == SETTINGS_ID))
        return result.scalar_one_or_none()

    @staticmethod
    async def get_or_create(db: AsyncSession) -> AttendanceSettings:
        settings = await AttendanceSettingsService.get(db)
        if settings is None:
            settings = AttendanceSettings(id=SETTINGS_ID)
            db.add(settings)
            await db.commit()
            await db.refresh(settings)
            logger.info("Created default attendance settings")
        return settings

    @staticmethod
    async def update(
        db: AsyncSession,
        data: AttendanceSettingsUpdate,
        updated_by_id: uuid.UUID,
    ) -> AttendanceSettings:
        settings = await AttendanceSettingsService.get(db)
        if settings is None:
            settings = AttendanceSettings(id=SETTINGS_ID)
            db.add(settings)

        update_data = data.model_dump(exclude_unset=True, exclude_none=True)
        working_hours = update_data.pop("working_hours", None) or {}
        if working_hours.get("start_time"):
            settings.work_start_time = working_hours["start_time"]
        if working_hours.get("end_time"):
            settings.work_end_time = working_hours["end_time"]
        for field, value in update_data.items():
            setattr(settings, field, value)
        settings.updated_by_id = updated_by_id

        await db.commit()
        await db.refresh(settings)
        logger.info(
            "Attendance settings updated by %s: auto_absence_enabled=%s absence_marking_time=%s",
            updated_by_id,
            settings.auto_absence_enabled,
            settings.absence_marking_time,
        )
        return settings
