import uuid
from datetime import date
from sqlalchemy import Boolean, Enum as SAEnum, ForeignKey, Date
from sqlalchemy.orm import Mapped, mapped_column, relationship
from app.database import Base
from app.models.enums import LeaveStatus, LeaveType

class LeaveRequest(Base):
    __tablename__ = "leave_requests"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    employee_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)

    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)

    leave_type: Mapped[LeaveType] = mapped_column(SAEnum(LeaveType, native_enum=False), default=LeaveType.SICK, nullable=False)
    status: Mapped[LeaveStatus] = mapped_column(SAEnum(LeaveStatus, native_enum=False), default=LeaveStatus.PENDING, nullable=False)

    reason: Mapped[str] = mapped_column(nullable=True)
    is_deleted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    employee = relationship("User")
