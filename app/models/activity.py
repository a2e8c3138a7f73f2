import uuid
from datetime import datetime, timezone
from typing import Any
from sqlalchemy import JSON, DateTime, Enum as SAEnum, Index, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column
from app.database import Base
from app.models.enums import ActivityAction, SubjectType


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Activity(Base):
    __tablename__ = "activities"
    __table_args__ = (
        Index("ix_activities_timestamp", "timestamp"),
        Index("ix_activities_actor_timestamp", "actor_id", "timestamp"),
        Index("ix_activities_subject", "subject_type", "subject_id"),
    )

    # Insertion sequence; breaks ties between equal timestamps.
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    # No FK: the log outlives deleted users.
    actor_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    action: Mapped[ActivityAction] = mapped_column(SAEnum(ActivityAction, native_enum=False, length=40), nullable=False)
    subject_type: Mapped[SubjectType] = mapped_column(SAEnum(SubjectType, native_enum=False, length=20), nullable=False)
    subject_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    subject_name: Mapped[str] = mapped_column(String, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    details: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
