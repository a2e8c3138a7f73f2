import uuid
from datetime import date, datetime
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from app.models.enums import ActivityAction, SubjectType


class _DetailsBase(BaseModel):
    model_config = ConfigDict(extra="allow")


class InterviewScheduledDetails(_DetailsBase):
    action: Literal["interview_scheduled"]
    scheduled_date: Optional[date] = None


class InterviewUpdatedDetails(_DetailsBase):
    action: Literal["interview_updated"]
    interview_level: Optional[str] = None


class InterviewStageChangedDetails(_DetailsBase):
    action: Literal["interview_stage_changed"]
    old_stage: Optional[str] = None
    new_stage: Optional[str] = None


class AttendanceMarkedDetails(_DetailsBase):
    action: Literal["attendance_marked"]
    attendance_action: Optional[str] = None


class AttachmentAddedDetails(_DetailsBase):
    action: Literal["attachment_added"]
    file_name: Optional[str] = None


class CandidateAssignedDetails(_DetailsBase):
    action: Literal["candidate_assigned"]
    assigned_to_name: Optional[str] = None


class SubmissionDetails(_DetailsBase):
    action: Literal["submission_added", "submission_updated"]
    submission_number: Optional[int] = None


class GenericDetails(_DetailsBase):
    action: Literal[
        "employee_added",
        "employee_updated",
        "candidate_added",
        "candidate_updated",
        "notes_added",
        "notes_updated",
        "leave_requested",
        "leave_approved",
        "leave_rejected",
        "todo_created",
        "todo_completed",
        "project_created",
        "project_updated",
        "offer_details_added",
        "offer_details_updated",
        "bg_check_note_added",
        "bg_check_note_updated",
    ]


ActivityDetails = Annotated[
    Union[
        InterviewScheduledDetails,
        InterviewUpdatedDetails,
        InterviewStageChangedDetails,
        AttendanceMarkedDetails,
        AttachmentAddedDetails,
        CandidateAssignedDetails,
        SubmissionDetails,
        GenericDetails,
    ],
    Field(discriminator="action"),
]

activity_details_adapter: TypeAdapter[Any] = TypeAdapter(ActivityDetails)


class ActivityActor(BaseModel):
    id: uuid.UUID
    first_name: str
    last_name: str
    profile_image: str | None = None

    model_config = ConfigDict(from_attributes=True)


class ActivityResponse(BaseModel):
    id: int
    actor_id: uuid.UUID
    actor: ActivityActor | None = None
    action: ActivityAction
    subject_type: SubjectType
    subject_id: uuid.UUID
    subject_name: str
    description: str
    details: dict[str, Any] = {}
    timestamp: datetime
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)
