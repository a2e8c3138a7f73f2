import uuid
from datetime import date, datetime, timezone
from sqlalchemy import Boolean, Date, DateTime, Enum as SAEnum, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship
from app.database import Base
from app.models.enums import AttendanceStatus


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def format_12h(value: str | None) -> str:
    """'13:05' -> '1:05 PM'."""
    if not value:
        return ""
    hours, minutes = value.split(":")
    hour = int(hours)
    ampm = "PM" if hour >= 12 else "AM"
    display_hour = hour % 12 or 12
    return f"{display_hour}:{minutes} {ampm}"


class AttendanceSettings(Base):
    __tablename__ = "attendance_settings"

    # Singleton row
    id: Mapped[int] = mapped_column(Integer, primary_key=True, default=1)
    auto_absence_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    absence_marking_time: Mapped[str] = mapped_column(String(5), nullable=False, default="12:00")
    work_start_time: Mapped[str] = mapped_column(String(5), nullable=False, default="09:00")
    work_end_time: Mapped[str] = mapped_column(String(5), nullable=False, default="18:00")
    late_threshold_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=15)
    half_day_threshold_hours: Mapped[int] = mapped_column(Integer, nullable=False, default=4)
    auto_checkout_hours: Mapped[int] = mapped_column(Integer, nullable=False, default=16)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    updated_by_id: Mapped[uuid.UUID | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    @property
    def formatted_absence_marking_time(self) -> str:
        return format_12h(self.absence_marking_time)


class Attendance(Base):
    __tablename__ = "attendance"
    __table_args__ = (
        Index("ix_attendance_employee_date", "employee_id", "date"),
    )

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    employee_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("users.id"), nullable=False)
    # Calendar date in the company time zone
    date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[AttendanceStatus] = mapped_column(SAEnum(AttendanceStatus, native_enum=False), nullable=False)
    check_in: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    check_out: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)

    employee = relationship("User")


class Holiday(Base):
    __tablename__ = "holidays"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
