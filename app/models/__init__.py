from app.models.activity import Activity
from app.models.attendance import Attendance, AttendanceSettings, Holiday
from app.models.hr import LeaveRequest
from app.models.user import User


__all__ = [
    "Activity",
    "Attendance",
    "AttendanceSettings",
    "Holiday",
    "LeaveRequest",
    "User",
]
