from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date, datetime, timezone
import logging
from typing import Any
import uuid

import pydantic
from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.exceptions import AuthorizationError, ValidationError
from app.models.activity import Activity
from app.models.enums import ActivityAction, Role, SubjectType
from app.models.user import User
from app.schemas.activity import ActivityActor, activity_details_adapter

logger = logging.getLogger(__name__)

ALL_SUBJECTS = "all"


@dataclass
class ActivityPage:
    records: list[Activity]
    total_count: int
    page: int
    limit: int

    @property
    def total_pages(self) -> int:
        return -(-self.total_count // self.limit) if self.total_count else 0


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _coerce_enum(enum_cls, value, field: str):
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        raise ValidationError(f"Invalid {field}: {value!r}") from None


def _coerce_uuid(value, field: str) -> uuid.UUID:
    if isinstance(value, uuid.UUID):
        return value
    if value is None or value == "":
        raise ValidationError(f"{field} is required")
    try:
        return uuid.UUID(str(value))
    except ValueError:
        raise ValidationError(f"Invalid {field}: {value!r}") from None


def _require_text(value: str | None, field: str) -> str:
    if value is None or not str(value).strip():
        raise ValidationError(f"{field} is required")
    return str(value)


def _check_limit(limit: int) -> int:
    if limit < 1:
        raise ValidationError("limit must be a positive integer")
    return min(limit, settings.ACTIVITY_MAX_PAGE_SIZE)


def _as_date(value: date | datetime | str) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, str):
        try:
            return date.fromisoformat(value[:10])
        except ValueError:
            raise ValidationError(f"Invalid date: {value!r}") from None
    return value


def _format_date(value: date) -> str:
    # US short date, e.g. 3/7/2025
    return f"{value.month}/{value.day}/{value.year}"


class ActivityService:
    @staticmethod
    async def record(
        db: AsyncSession,
        actor_id: uuid.UUID | str,
        action: ActivityAction | str,
        subject_type: SubjectType | str,
        subject_id: uuid.UUID | str,
        subject_name: str,
        description: str,
        details: dict[str, Any] | pydantic.BaseModel | None = None,
        *,
        now: datetime | None = None,
    ) -> Activity:
        """
        Append one immutable activity record.

        The record joins the caller's transaction: it is flushed here and
        committed by the caller. `now` defaults to the current UTC time.
        Invalid input raises ValidationError and nothing is added to the
        session.
        """
        actor_id = _coerce_uuid(actor_id, "actor_id")
        action = _coerce_enum(ActivityAction, action, "action")
        subject_type = _coerce_enum(SubjectType, subject_type, "subject_type")
        subject_id = _coerce_uuid(subject_id, "subject_id")
        subject_name = _require_text(subject_name, "subject_name")
        description = _require_text(description, "description")

        if isinstance(details, pydantic.BaseModel):
            details = details.model_dump(mode="json", exclude_none=True)
        payload = {**(details or {}), "action": action.value}
        try:
            parsed = activity_details_adapter.validate_python(payload)
        except pydantic.ValidationError as exc:
            raise ValidationError(f"Invalid details for {action.value}: {exc.errors()[0]['msg']}") from exc

        now = now or _utcnow()
        activity = Activity(
            actor_id=actor_id,
            action=action,
            subject_type=subject_type,
            subject_id=subject_id,
            subject_name=subject_name,
            description=description,
            details=parsed.model_dump(mode="json", exclude={"action"}, exclude_none=True),
            timestamp=now,
            created_at=now,
            updated_at=now,
        )
        db.add(activity)
        await db.flush()
        logger.debug("Recorded activity %s on %s %s", action.value, subject_type.value, subject_id)
        return activity

    # Reads

    @staticmethod
    async def _attach_actors(db: AsyncSession, activities: Sequence[Activity]) -> list[Activity]:
        actor_ids = {activity.actor_id for activity in activities}
        actors: dict[uuid.UUID, ActivityActor] = {}
        if actor_ids:
            try:
                result = await db.execute(select(User).where(User.id.in_(actor_ids)))
                actors = {user.id: ActivityActor.model_validate(user) for user in result.scalars().all()}
            except Exception:
                logger.exception("Actor lookup failed; returning activities without actor details")
        for activity in activities:
            activity.actor = actors.get(activity.actor_id)
        return list(activities)

    @staticmethod
    def _newest_first(stmt):
        return stmt.order_by(Activity.timestamp.desc(), Activity.id.desc())

    @staticmethod
    async def recent_activities(db: AsyncSession, limit: int = 10) -> list[Activity]:
        stmt = ActivityService._newest_first(select(Activity)).limit(_check_limit(limit))
        result = await db.execute(stmt)
        return await ActivityService._attach_actors(db, result.scalars().all())

    @staticmethod
    async def activities_by_actor(db: AsyncSession, actor_id: uuid.UUID | str, limit: int = 20) -> list[Activity]:
        actor_id = _coerce_uuid(actor_id, "actor_id")
        stmt = ActivityService._newest_first(
            select(Activity).where(Activity.actor_id == actor_id)
        ).limit(_check_limit(limit))
        result = await db.execute(stmt)
        return await ActivityService._attach_actors(db, result.scalars().all())

    @staticmethod
    async def activities_by_entity(
        db: AsyncSession,
        subject_type: SubjectType | str,
        subject_id: uuid.UUID | str,
        limit: int = 20,
    ) -> list[Activity]:
        subject_type = _coerce_enum(SubjectType, subject_type, "subject_type")
        subject_id = _coerce_uuid(subject_id, "subject_id")
        stmt = ActivityService._newest_first(
            select(Activity).where(
                Activity.subject_type == subject_type,
                Activity.subject_id == subject_id,
            )
        ).limit(_check_limit(limit))
        result = await db.execute(stmt)
        return await ActivityService._attach_actors(db, result.scalars().all())

    @staticmethod
    async def all_activities(
        db: AsyncSession,
        page: int = 1,
        limit: int = 20,
        subject_type_filter: str = ALL_SUBJECTS,
    ) -> ActivityPage:
        if page < 1:
            raise ValidationError("page must be a positive integer")
        limit = _check_limit(limit)

        conditions = []
        if subject_type_filter != ALL_SUBJECTS:
            try:
                conditions.append(Activity.subject_type == SubjectType(subject_type_filter))
            except ValueError:
                # Unknown subject type: nothing can match.
                return ActivityPage(records=[], total_count=0, page=page, limit=limit)

        total = (await db.execute(select(func.count(Activity.id)).where(*conditions))).scalar_one()
        stmt = (
            ActivityService._newest_first(select(Activity).where(*conditions))
            .offset((page - 1) * limit)
            .limit(limit)
        )
        result = await db.execute(stmt)
        records = await ActivityService._attach_actors(db, result.scalars().all())
        return ActivityPage(records=records, total_count=int(total), page=page, limit=limit)

    @staticmethod
    async def delete_all(db: AsyncSession, requested_by: User) -> int:
        """
        Irreversibly remove every activity record. Administrators only.

        Commits immediately and returns the number of records deleted.
        """
        try:
            role = Role(requested_by.role)
        except ValueError:
            role = None
        if role != Role.ADMIN:
            raise AuthorizationError("Only administrators can delete all activities")
        result = await db.execute(delete(Activity))
        await db.commit()
        deleted = result.rowcount or 0
        logger.warning("Activity log cleared by %s: %s records deleted", requested_by.email, deleted)
        return deleted

    # Convenience wrappers

    @staticmethod
    async def log_employee_added(db: AsyncSession, actor_id, employee_id, employee_name: str) -> Activity:
        return await ActivityService.record(
            db, actor_id, ActivityAction.EMPLOYEE_ADDED, SubjectType.EMPLOYEE,
            employee_id, employee_name, f"Added new employee {employee_name}",
        )

    @staticmethod
    async def log_employee_updated(db: AsyncSession, actor_id, employee_id, employee_name: str) -> Activity:
        return await ActivityService.record(
            db, actor_id, ActivityAction.EMPLOYEE_UPDATED, SubjectType.EMPLOYEE,
            employee_id, employee_name, f"Updated employee {employee_name}",
        )

    @staticmethod
    async def log_candidate_added(db: AsyncSession, actor_id, candidate_id, candidate_name: str) -> Activity:
        return await ActivityService.record(
            db, actor_id, ActivityAction.CANDIDATE_ADDED, SubjectType.CANDIDATE,
            candidate_id, candidate_name, f"Added new candidate {candidate_name}",
        )

    @staticmethod
    async def log_candidate_updated(db: AsyncSession, actor_id, candidate_id, candidate_name: str) -> Activity:
        return await ActivityService.record(
            db, actor_id, ActivityAction.CANDIDATE_UPDATED, SubjectType.CANDIDATE,
            candidate_id, candidate_name, f"Updated candidate {candidate_name}",
        )

    @staticmethod
    async def log_candidate_assigned(
        db: AsyncSession, actor_id, candidate_id, candidate_name: str, assigned_to_name: str
    ) -> Activity:
        return await ActivityService.record(
            db, actor_id, ActivityAction.CANDIDATE_ASSIGNED, SubjectType.CANDIDATE,
            candidate_id, candidate_name, f"Assigned candidate {candidate_name} to {assigned_to_name}",
            {"assigned_to_name": assigned_to_name},
        )

    @staticmethod
    async def log_interview_scheduled(
        db: AsyncSession, actor_id, interview_id, candidate_name: str, scheduled_date: date | datetime | str
    ) -> Activity:
        day = _as_date(scheduled_date)
        return await ActivityService.record(
            db, actor_id, ActivityAction.INTERVIEW_SCHEDULED, SubjectType.INTERVIEW,
            interview_id, candidate_name, f"Scheduled interview for {candidate_name} on {_format_date(day)}",
            {"scheduled_date": day},
        )

    @staticmethod
    async def log_interview_updated(
        db: AsyncSession, actor_id, interview_id, candidate_name: str, interview_level: str
    ) -> Activity:
        return await ActivityService.record(
            db, actor_id, ActivityAction.INTERVIEW_UPDATED, SubjectType.INTERVIEW,
            interview_id, candidate_name, f"Updated {interview_level} interview for {candidate_name}",
            {"interview_level": interview_level},
        )

    @staticmethod
    async def log_interview_stage_changed(
        db: AsyncSession, actor_id, interview_id, candidate_name: str, old_stage: str, new_stage: str
    ) -> Activity:
        return await ActivityService.record(
            db, actor_id, ActivityAction.INTERVIEW_STAGE_CHANGED, SubjectType.INTERVIEW,
            interview_id, candidate_name,
            f"Changed interview stage for {candidate_name} from {old_stage} to {new_stage}",
            {"old_stage": old_stage, "new_stage": new_stage},
        )

    @staticmethod
    async def log_notes_added(
        db: AsyncSession, actor_id, entity_id, entity_name: str, subject_type: SubjectType | str
    ) -> Activity:
        return await ActivityService.record(
            db, actor_id, ActivityAction.NOTES_ADDED, subject_type,
            entity_id, entity_name, f"Added notes to {entity_name}",
        )

    @staticmethod
    async def log_notes_updated(
        db: AsyncSession, actor_id, entity_id, entity_name: str, subject_type: SubjectType | str
    ) -> Activity:
        return await ActivityService.record(
            db, actor_id, ActivityAction.NOTES_UPDATED, subject_type,
            entity_id, entity_name, f"Updated notes for {entity_name}",
        )

    @staticmethod
    async def log_attachment_added(
        db: AsyncSession, actor_id, entity_id, entity_name: str, subject_type: SubjectType | str, file_name: str
    ) -> Activity:
        return await ActivityService.record(
            db, actor_id, ActivityAction.ATTACHMENT_ADDED, subject_type,
            entity_id, entity_name, f'Added attachment "{file_name}" to {entity_name}',
            {"file_name": file_name},
        )

    @staticmethod
    async def log_leave_requested(db: AsyncSession, actor_id, leave_id, employee_name: str) -> Activity:
        return await ActivityService.record(
            db, actor_id, ActivityAction.LEAVE_REQUESTED, SubjectType.LEAVE,
            leave_id, employee_name, f"Requested leave for {employee_name}",
        )

    @staticmethod
    async def log_leave_approved(db: AsyncSession, actor_id, leave_id, employee_name: str) -> Activity:
        return await ActivityService.record(
            db, actor_id, ActivityAction.LEAVE_APPROVED, SubjectType.LEAVE,
            leave_id, employee_name, f"Approved leave for {employee_name}",
        )

    @staticmethod
    async def log_leave_rejected(db: AsyncSession, actor_id, leave_id, employee_name: str) -> Activity:
        return await ActivityService.record(
            db, actor_id, ActivityAction.LEAVE_REJECTED, SubjectType.LEAVE,
            leave_id, employee_name, f"Rejected leave for {employee_name}",
        )

    @staticmethod
    async def log_attendance_marked(
        db: AsyncSession, actor_id, attendance_id, employee_name: str, attendance_action: str
    ) -> Activity:
        if attendance_action == "checkout":
            action_text = "checked out"
        else:
            action_text = f"marked attendance as {attendance_action}"
        return await ActivityService.record(
            db, actor_id, ActivityAction.ATTENDANCE_MARKED, SubjectType.ATTENDANCE,
            attendance_id, employee_name, f"{action_text} for {employee_name}",
            {"attendance_action": attendance_action},
        )

    @staticmethod
    async def log_todo_created(db: AsyncSession, actor_id, todo_id, todo_title: str) -> Activity:
        return await ActivityService.record(
            db, actor_id, ActivityAction.TODO_CREATED, SubjectType.TODO,
            todo_id, todo_title, f"Created todo: {todo_title}",
        )

    @staticmethod
    async def log_todo_completed(db: AsyncSession, actor_id, todo_id, todo_title: str) -> Activity:
        return await ActivityService.record(
            db, actor_id, ActivityAction.TODO_COMPLETED, SubjectType.TODO,
            todo_id, todo_title, f"Completed todo: {todo_title}",
        )

    @staticmethod
    async def log_project_created(db: AsyncSession, actor_id, project_id, project_name: str) -> Activity:
        return await ActivityService.record(
            db, actor_id, ActivityAction.PROJECT_CREATED, SubjectType.PROJECT,
            project_id, project_name, f"Created project {project_name}",
        )

    @staticmethod
    async def log_project_updated(db: AsyncSession, actor_id, project_id, project_name: str) -> Activity:
        return await ActivityService.record(
            db, actor_id, ActivityAction.PROJECT_UPDATED, SubjectType.PROJECT,
            project_id, project_name, f"Updated project {project_name}",
        )

    @staticmethod
    async def log_offer_details_added(db: AsyncSession, actor_id, candidate_id, candidate_name: str) -> Activity:
        return await ActivityService.record(
            db, actor_id, ActivityAction.OFFER_DETAILS_ADDED, SubjectType.CANDIDATE,
            candidate_id, candidate_name, f"Added offer details for {candidate_name}",
        )

    @staticmethod
    async def log_offer_details_updated(db: AsyncSession, actor_id, candidate_id, candidate_name: str) -> Activity:
        return await ActivityService.record(
            db, actor_id, ActivityAction.OFFER_DETAILS_UPDATED, SubjectType.CANDIDATE,
            candidate_id, candidate_name, f"Updated offer details for {candidate_name}",
        )

    @staticmethod
    async def log_submission_added(
        db: AsyncSession, actor_id, candidate_id, candidate_name: str, submission_number: int
    ) -> Activity:
        return await ActivityService.record(
            db, actor_id, ActivityAction.SUBMISSION_ADDED, SubjectType.CANDIDATE,
            candidate_id, candidate_name, f"Added submission #{submission_number} for {candidate_name}",
            {"submission_number": submission_number},
        )

    @staticmethod
    async def log_submission_updated(
        db: AsyncSession, actor_id, candidate_id, candidate_name: str, submission_number: int
    ) -> Activity:
        return await ActivityService.record(
            db, actor_id, ActivityAction.SUBMISSION_UPDATED, SubjectType.CANDIDATE,
            candidate_id, candidate_name, f"Updated submission #{submission_number} for {candidate_name}",
            {"submission_number": submission_number},
        )

    @staticmethod
    async def log_bg_check_note_added(db: AsyncSession, actor_id, candidate_id, candidate_name: str) -> Activity:
        return await ActivityService.record(
            db, actor_id, ActivityAction.BG_CHECK_NOTE_ADDED, SubjectType.CANDIDATE,
            candidate_id, candidate_name, f"Added background check note for {candidate_name}",
        )

    @staticmethod
    async def log_bg_check_note_updated(db: AsyncSession, actor_id, candidate_id, candidate_name: str) -> Activity:
        return await ActivityService.record(
            db, actor_id, ActivityAction.BG_CHECK_NOTE_UPDATED, SubjectType.CANDIDATE,
            candidate_id, candidate_name, f"Updated background check note for {candidate_name}",
        )
