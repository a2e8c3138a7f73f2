from enum import Enum

class Role(str, Enum):
    ADMIN = "ADMIN"
    HR = "HR"
    TEAM_LEAD = "TEAM_LEAD"
    EMPLOYEE = "EMPLOYEE"


class SubjectType(str, Enum):
    EMPLOYEE = "employee"
    CANDIDATE = "candidate"
    INTERVIEW = "interview"
    LEAVE = "leave"
    ATTENDANCE = "attendance"
    TODO = "todo"
    PROJECT = "project"


class ActivityAction(str, Enum):
    EMPLOYEE_ADDED = "employee_added"
    EMPLOYEE_UPDATED = "employee_updated"
    CANDIDATE_ADDED = "candidate_added"
    CANDIDATE_UPDATED = "candidate_updated"
    CANDIDATE_ASSIGNED = "candidate_assigned"
    INTERVIEW_SCHEDULED = "interview_scheduled"
    INTERVIEW_UPDATED = "interview_updated"
    INTERVIEW_STAGE_CHANGED = "interview_stage_changed"
    NOTES_ADDED = "notes_added"
    NOTES_UPDATED = "notes_updated"
    ATTACHMENT_ADDED = "attachment_added"
    LEAVE_REQUESTED = "leave_requested"
    LEAVE_APPROVED = "leave_approved"
    LEAVE_REJECTED = "leave_rejected"
    ATTENDANCE_MARKED = "attendance_marked"
    TODO_CREATED = "todo_created"
    TODO_COMPLETED = "todo_completed"
    PROJECT_CREATED = "project_created"
    PROJECT_UPDATED = "project_updated"
    OFFER_DETAILS_ADDED = "offer_details_added"
    OFFER_DETAILS_UPDATED = "offer_details_updated"
    SUBMISSION_ADDED = "submission_added"
    SUBMISSION_UPDATED = "submission_updated"
    BG_CHECK_NOTE_ADDED = "bg_check_note_added"
    BG_CHECK_NOTE_UPDATED = "bg_check_note_updated"


class AttendanceStatus(str, Enum):
    ON_TIME = "On Time"
    PRESENT = "Present"
    LATE = "Late"
    HALF_DAY = "Half Day"
    ABSENT = "Absent"


class LeaveStatus(str, Enum):
    PENDING = "Pending"
    APPROVED = "Approved"
    REJECTED = "Rejected"


class LeaveType(str, Enum):
    SICK = "Sick"
    CASUAL = "Casual"
    VACATION = "Vacation"
    OTHER = "Other"
