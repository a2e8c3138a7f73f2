from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel


class JobState(str, Enum):
    STOPPED = "stopped"
    SCHEDULED = "scheduled"
    EXECUTING = "executing"


class JobHealth(str, Enum):
    STOPPED = "stopped"
    DISABLED = "disabled"
    UNHEALTHY = "unhealthy"
    WARNING = "warning"
    HEALTHY = "healthy"


class RunOutcome(BaseModel):
    fired_at: datetime
    success: bool
    result: Any = None
    error: str | None = None


class AbsenceMarkingJobInfo(BaseModel):
    enabled: bool
    running: bool
    schedule: str | None = None
    timezone: str


class SchedulerStatus(BaseModel):
    initialized: bool
    state: JobState
    absence_marking_job: AbsenceMarkingJobInfo
    last_run_at: datetime | None = None
    last_run_outcome: RunOutcome | None = None
    next_run_at: datetime | None = None
    run_count: int = 0
    error_count: int = 0
    health: JobHealth
    recent_runs: list[RunOutcome] = []
