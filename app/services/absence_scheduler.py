from __future__ import annotations

import asyncio
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime, time, timedelta, timezone
import logging
from typing import Any
from zoneinfo import ZoneInfo

from app.core.exceptions import ExecutionError, SchedulingError
from app.schemas.scheduler import (
    AbsenceMarkingJobInfo,
    JobHealth,
    JobState,
    RunOutcome,
    SchedulerStatus,
)
from app.services.timezone_service import parse_hhmm

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScheduleConfig:
    enabled: bool
    marking_time: str

    @property
    def at(self) -> time:
        return parse_hhmm(self.marking_time)


SettingsReader = Callable[[], Awaitable[ScheduleConfig | None]]
ScheduledAction = Callable[[], Awaitable[Any]]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def next_run_after(now_utc: datetime, at: time, tz: ZoneInfo) -> datetime:
    """First wall-clock occurrence of `at` in `tz` strictly after `now_utc`."""
    now_local = now_utc.astimezone(tz)
    target_local = now_local.replace(hour=at.hour, minute=at.minute, second=0, microsecond=0)
    if now_local >= target_local:
        target_local += timedelta(days=1)
    return target_local.astimezone(timezone.utc)


class AbsenceMarkingScheduler:
    """
    Runs the absence-marking action once a day at the configured local time.

    Owns a single timer task. `reschedule()` swaps it under a lock after
    re-reading settings; firings run in their own task and are shielded from
    timer cancellation, so a reschedule only affects the next firing.
    Run bookkeeping lives in memory and resets with the process.
    """

    def __init__(
        self,
        settings_reader: SettingsReader,
        action: ScheduledAction,
        tz: ZoneInfo,
        *,
        clock: Callable[[], datetime] | None = None,
        sleep: Callable[[float], Awaitable[Any]] | None = None,
        history_size: int = 20,
        log: logging.Logger | None = None,
    ) -> None:
        self._settings_reader = settings_reader
        self._action = action
        self._tz = tz
        self._clock = clock or _utcnow
        self._sleep = sleep or asyncio.sleep
        self._log = log or logger

        self._lock = asyncio.Lock()
        self._initialized = False
        self._config: ScheduleConfig | None = None
        self._timer_task: asyncio.Task | None = None
        self._firing_task: asyncio.Future | None = None
        self._executing = False
        self._last_target: datetime | None = None

        self._run_count = 0
        self._error_count = 0
        self._last_run: RunOutcome | None = None
        self._history: deque[RunOutcome] = deque(maxlen=history_size)

    # Lifecycle

    async def initialize(self) -> None:
        async with self._lock:
            if self._initialized:
                self._log.info("Absence marking scheduler already initialized")
                return
            try:
                config = await self._read_config()
                self._config = config
                if config is not None and config.enabled:
                    await self._arm(config)
                else:
                    self._log.info("Automatic absence marking is disabled")
            except Exception:
                self._log.exception("Failed to initialize absence marking scheduler")
                await self._cancel_timer()
                return
            self._initialized = True
            self._log.info("Absence marking scheduler initialized (state=%s)", self.state.value)

    async def reschedule(self) -> None:
        """
        Re-read settings and re-arm. On failure the current schedule is kept.

        Ignored until `initialize()` has succeeded.
        """
        async with self._lock:
            if not self._initialized:
                self._log.info("Absence marking scheduler not initialized; ignoring reschedule")
                return
            try:
                config = await self._read_config()
            except Exception:
                self._log.exception("Could not reload attendance settings; keeping current absence marking schedule")
                return

            await self._cancel_timer()
            self._config = config
            if config is None or not config.enabled:
                self._log.info("Automatic absence marking is disabled; job stopped")
                return
            try:
                await self._arm(config)
            except SchedulingError:
                self._log.exception("Failed to arm absence marking job")

    async def shutdown(self) -> None:
        async with self._lock:
            await self._cancel_timer()
            firing = self._firing_task
            self._firing_task = None
            if firing is not None and not firing.done():
                firing.cancel()
                try:
                    await firing
                except asyncio.CancelledError:
                    pass
            self._initialized = False
            self._log.info("Absence marking scheduler stopped")

    async def restart(self) -> None:
        await self.shutdown()
        await self.initialize()

    # Firing

    async def run_once(self) -> RunOutcome | None:
        """
        Execute the action now and record the outcome.

        Returns None without running when a firing is already executing.
        Failures are recorded and logged, never raised.
        """
        if self._executing:
            self._log.warning("Absence marking still executing; skipping overlapping firing")
            return None
        self._executing = True
        fired_at = self._clock()
        try:
            try:
                result = await self._action()
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                error = exc if isinstance(exc, ExecutionError) else ExecutionError(str(exc) or type(exc).__name__)
                outcome = RunOutcome(fired_at=fired_at, success=False, error=error.message)
                self._error_count += 1
                self._log.exception("Scheduled absence marking failed")
            else:
                outcome = RunOutcome(fired_at=fired_at, success=True, result=result)
                self._log.info("Scheduled absence marking completed: %s", result)
            self._run_count += 1
            self._last_run = outcome
            self._history.append(outcome)
            return outcome
        finally:
            self._executing = False

    async def _timer_loop(self, config: ScheduleConfig) -> None:
        at = config.at
        while True:
            reference = self._clock()
            if self._last_target is not None and reference < self._last_target:
                # Wall clock stepped back; never target the slot just fired.
                reference = self._last_target
            target = next_run_after(reference, at, self._tz)
            delay = max((target - self._clock()).total_seconds(), 0.0)
            await self._sleep(delay)
            while self._clock() < target:
                # Monotonic sleep can run ahead of the wall clock.
                await self._sleep((target - self._clock()).total_seconds())
            self._last_target = target

            if self._executing:
                self._log.warning("Previous absence marking still executing; skipping %s", target.isoformat())
                continue
            firing = asyncio.ensure_future(self.run_once())
            self._firing_task = firing
            try:
                await asyncio.shield(firing)
            except asyncio.CancelledError:
                raise
            except Exception:
                self._log.exception("Absence marking iteration failed")

    # Internals

    async def _read_config(self) -> ScheduleConfig | None:
        config = await self._settings_reader()
        if config is not None and config.enabled:
            try:
                parse_hhmm(config.marking_time)
            except ValueError as exc:
                raise SchedulingError(str(exc)) from exc
        return config

    async def _arm(self, config: ScheduleConfig) -> None:
        # Never leave a second timer running.
        await self._cancel_timer()
        try:
            self._timer_task = asyncio.get_running_loop().create_task(
                self._timer_loop(config), name="absence-marking-timer"
            )
        except RuntimeError as exc:
            raise SchedulingError(f"Could not arm absence marking timer: {exc}") from exc
        self._log.info(
            "Absence marking job scheduled daily at %s (%s)", config.marking_time, self._tz.key
        )

    async def _cancel_timer(self) -> None:
        task = self._timer_task
        self._timer_task = None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    # Introspection

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def armed(self) -> bool:
        return self._timer_task is not None and not self._timer_task.done()

    @property
    def state(self) -> JobState:
        if self._executing:
            return JobState.EXECUTING
        if self.armed:
            return JobState.SCHEDULED
        return JobState.STOPPED

    @property
    def health(self) -> JobHealth:
        if not self._initialized:
            return JobHealth.STOPPED
        if self._config is None or not self._config.enabled:
            return JobHealth.DISABLED
        if self._run_count and self._error_count / self._run_count > 0.5:
            return JobHealth.UNHEALTHY
        if self._error_count:
            return JobHealth.WARNING
        return JobHealth.HEALTHY

    def next_run_at(self) -> datetime | None:
        if not self.armed or self._config is None:
            return None
        reference = self._clock()
        if self._last_target is not None and reference < self._last_target:
            reference = self._last_target
        return next_run_after(reference, self._config.at, self._tz)

    def status(self) -> SchedulerStatus:
        config = self._config
        return SchedulerStatus(
            initialized=self._initialized,
            state=self.state,
            absence_marking_job=AbsenceMarkingJobInfo(
                enabled=bool(config and config.enabled),
                running=self.armed,
                schedule=config.marking_time if config else None,
                timezone=self._tz.key,
            ),
            last_run_at=self._last_run.fired_at if self._last_run else None,
            last_run_outcome=self._last_run,
            next_run_at=self.next_run_at(),
            run_count=self._run_count,
            error_count=self._error_count,
            health=self.health,
            recent_runs=list(reversed(self._history)),
        )
