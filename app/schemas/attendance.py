import re
import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

HHMM_PATTERN = re.compile(r"^([01]?[0-9]|2[0-3]):[0-5][0-9]$")


def _validate_hhmm(value: Optional[str]) -> Optional[str]:
    if value is None:
        return value
    if not HHMM_PATTERN.match(value):
        raise ValueError("Time must be in HH:MM format (24-hour)")
    return value


class WorkingHours(BaseModel):
    start_time: Optional[str] = None
    end_time: Optional[str] = None

    @field_validator("start_time", "end_time")
    @classmethod
    def validate_times(cls, value: Optional[str]) -> Optional[str]:
        return _validate_hhmm(value)


class AttendanceSettingsUpdate(BaseModel):
    auto_absence_enabled: Optional[bool] = None
    absence_marking_time: Optional[str] = None
    working_hours: Optional[WorkingHours] = None
    late_threshold_minutes: Optional[int] = Field(default=None, ge=0, le=480)
    half_day_threshold_hours: Optional[int] = Field(default=None, ge=1, le=12)
    auto_checkout_hours: Optional[int] = Field(default=None, ge=1, le=48)
    description: Optional[str] = None

    @field_validator("absence_marking_time")
    @classmethod
    def validate_absence_marking_time(cls, value: Optional[str]) -> Optional[str]:
        return _validate_hhmm(value)


class AttendanceSettingsResponse(BaseModel):
    auto_absence_enabled: bool
    absence_marking_time: str
    formatted_absence_marking_time: str
    work_start_time: str
    work_end_time: str
    late_threshold_minutes: int
    half_day_threshold_hours: int
    auto_checkout_hours: int
    description: str
    updated_by_id: uuid.UUID | None = None
    updated_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class AutoAbsenceLogEntry(BaseModel):
    id: uuid.UUID
    employee_name: str
    date: str
    marked_at: datetime
    notes: str | None = None
