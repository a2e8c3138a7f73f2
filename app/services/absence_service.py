from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import date, datetime, timezone
import logging

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.models.attendance import Attendance, Holiday
from app.models.enums import AttendanceStatus, LeaveStatus, Role
from app.models.hr import LeaveRequest
from app.models.user import User
from app.services.attendance_settings_service import AttendanceSettingsService
from app.services.timezone_service import get_company_timezone, now_in_company_tz, parse_hhmm

logger = logging.getLogger(__name__)

AUTO_ABSENT_NOTE_PREFIX = "Automatically marked absent"
SUNDAY = 6


@dataclass
class AbsenceMarkingSummary:
    marked: int
    skipped: int
    total_employees: int = 0
    reason: str | None = None
    marked_time: str | None = None
    marked_time_local: str | None = None

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class AbsenceStats:
    date: str
    total_employees: int
    on_time: int
    absent: int
    late: int
    half_day: int
    not_marked: int
    present: int


class AbsenceService:
    @staticmethod
    async def mark_absences_for_today(db: AsyncSession, *, now_utc: datetime | None = None) -> AbsenceMarkingSummary:
        """
        Insert an Absent attendance row for every active, non-admin employee
        with no attendance and no approved leave for the company-local date.

        The caller commits.
        """
        settings = await AttendanceSettingsService.get(db)
        if settings is None or not settings.auto_absence_enabled:
            logger.info("Automatic absence marking is disabled")
            return AbsenceMarkingSummary(marked=0, skipped=0, reason="Feature disabled")

        tz = get_company_timezone()
        now_utc = now_utc or datetime.now(timezone.utc)
        now_local = now_utc.astimezone(tz)
        today = now_local.date()

        if today.weekday() == SUNDAY:
            logger.info("Today (%s) is Sunday; skipping absence marking", today)
            return AbsenceMarkingSummary(marked=0, skipped=0, reason="Sunday")

        holiday = (await db.execute(select(Holiday).where(Holiday.date == today))).scalars().first()
        if holiday is not None:
            logger.info("Today (%s) is a holiday (%s); skipping absence marking", today, holiday.name)
            return AbsenceMarkingSummary(marked=0, skipped=0, reason="Holiday")

        cutoff = parse_hhmm(settings.absence_marking_time)
        if now_local.time() < cutoff:
            logger.info("Not yet time to mark absences (now=%s cutoff=%s)", now_local.time(), cutoff)
            return AbsenceMarkingSummary(marked=0, skipped=0, reason="Before marking time")

        employees = (
            await db.execute(
                select(User).where(User.is_active.is_(True), User.role != Role.ADMIN)
            )
        ).scalars().all()
        logger.info("Found %s active employees for absence marking on %s", len(employees), today)

        note = f"{AUTO_ABSENT_NOTE_PREFIX} - no check-in by {settings.formatted_absence_marking_time} ({tz.key})"
        marked = 0
        skipped = 0
        # Plain values: a rolled-back savepoint must not force attribute reloads.
        roster = [(employee.id, employee.full_name) for employee in employees]
        for employee_id, employee_name in roster:
            try:
                # One savepoint per employee; a failed insert only loses that row.
                async with db.begin_nested():
                    if await AbsenceService._is_excused(db, employee_id, employee_name, today):
                        skipped += 1
                        continue
                    db.add(
                        Attendance(
                            employee_id=employee_id,
                            date=today,
                            status=AttendanceStatus.ABSENT,
                            notes=note,
                            is_active=True,
                        )
                    )
                    await db.flush()
                marked += 1
            except Exception:
                logger.exception("Error processing employee %s during absence marking", employee_name)
                skipped += 1

        logger.info("Absence marking completed: %s marked, %s skipped", marked, skipped)
        return AbsenceMarkingSummary(
            marked=marked,
            skipped=skipped,
            total_employees=len(employees),
            marked_time=now_utc.isoformat(),
            marked_time_local=now_local.strftime("%Y-%m-%d %I:%M:%S %p %Z"),
        )

    @staticmethod
    async def _is_excused(db: AsyncSession, employee_id, employee_name: str, today: date) -> bool:
        existing = (
            await db.execute(
                select(Attendance.id).where(
                    Attendance.employee_id == employee_id,
                    Attendance.date == today,
                    Attendance.is_active.is_(True),
                )
            )
        ).first()
        if existing is not None:
            return True

        on_leave = (
            await db.execute(
                select(LeaveRequest.id).where(
                    LeaveRequest.employee_id == employee_id,
                    LeaveRequest.status == LeaveStatus.APPROVED,
                    LeaveRequest.start_date <= today,
                    LeaveRequest.end_date >= today,
                    LeaveRequest.is_deleted.is_(False),
                )
            )
        ).first()
        if on_leave is not None:
            logger.info("Employee %s is on approved leave; skipping", employee_name)
            return True
        return False

    @staticmethod
    async def absence_stats(db: AsyncSession, target_date: date | None = None) -> AbsenceStats:
        target_date = target_date or now_in_company_tz().date()

        total_employees = (
            await db.execute(select(func.count(User.id)).where(User.is_active.is_(True)))
        ).scalar_one()
        rows = (
            await db.execute(
                select(Attendance.status, func.count(Attendance.id))
                .where(Attendance.date == target_date, Attendance.is_active.is_(True))
                .group_by(Attendance.status)
            )
        ).all()
        counts = {status: count for status, count in rows}

        on_time = counts.get(AttendanceStatus.ON_TIME, 0) + counts.get(AttendanceStatus.PRESENT, 0)
        absent = counts.get(AttendanceStatus.ABSENT, 0)
        late = counts.get(AttendanceStatus.LATE, 0)
        half_day = counts.get(AttendanceStatus.HALF_DAY, 0)
        return AbsenceStats(
            date=target_date.isoformat(),
            total_employees=total_employees,
            on_time=on_time,
            absent=absent,
            late=late,
            half_day=half_day,
            not_marked=total_employees - (on_time + absent + late + half_day),
            present=on_time + late,
        )

    @staticmethod
    async def recent_auto_absences(db: AsyncSession, limit: int = 10) -> list[Attendance]:
        stmt = (
            select(Attendance)
            .options(selectinload(Attendance.employee))
            .where(
                Attendance.status == AttendanceStatus.ABSENT,
                Attendance.notes.startswith(AUTO_ABSENT_NOTE_PREFIX),
                Attendance.is_active.is_(True),
            )
            .order_by(Attendance.created_at.desc())
            .limit(limit)
        )
        return list((await db.execute(stmt)).scalars().all())
