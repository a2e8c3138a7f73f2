import asyncio
from datetime import datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from app.schemas.scheduler import JobHealth, JobState
from app.services.absence_scheduler import AbsenceMarkingScheduler, ScheduleConfig, next_run_after

CHICAGO = ZoneInfo("America/Chicago")
# Tuesday 09:00 in Chicago (CST, UTC-6)
NOW = datetime(2025, 3, 4, 15, 0, tzinfo=timezone.utc)


class FakeSettings:
    def __init__(self, config: ScheduleConfig | None = None, error: Exception | None = None):
        self.config = config
        self.error = error
        self.reads = 0

    async def __call__(self):
        self.reads += 1
        if self.error is not None:
            raise self.error
        return self.config


class FakeAction:
    """Returns queued outcomes in order; exceptions in the queue are raised."""

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.calls = 0
        self.gate: asyncio.Event | None = None
        self.started = asyncio.Event()

    async def __call__(self):
        self.calls += 1
        self.started.set()
        if self.gate is not None:
            await self.gate.wait()
        outcome = self.outcomes.pop(0) if self.outcomes else {"marked": 0, "skipped": 0}
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class FakeClock:
    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


class ManualSleep:
    """
    Records requested delays and blocks until the test releases it.

    On release the clock moves forward by the requested delay, less `early`
    seconds to imitate a timer that wakes before the wall clock catches up.
    """

    def __init__(self, clock: FakeClock):
        self.clock = clock
        self.delays: list[float] = []
        self._releases: asyncio.Queue = asyncio.Queue()

    async def __call__(self, delay: float):
        self.delays.append(delay)
        early = await self._releases.get()
        self.clock.now += timedelta(seconds=delay - early)

    def release(self, early: float = 0.0):
        self._releases.put_nowait(early)


async def wait_for(predicate, attempts: int = 500):
    for _ in range(attempts):
        if predicate():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition not reached")


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sleep(clock):
    return ManualSleep(clock)


@pytest.fixture
async def make_scheduler(clock, sleep):
    created = []

    def _make(settings_reader, action=None):
        scheduler = AbsenceMarkingScheduler(
            settings_reader,
            action or FakeAction(),
            CHICAGO,
            clock=clock,
            sleep=sleep,
            history_size=5,
        )
        created.append(scheduler)
        return scheduler

    yield _make
    for scheduler in created:
        await scheduler.shutdown()


def test_next_run_after_same_day_and_rollover():
    assert next_run_after(NOW, time(12, 0), CHICAGO) == datetime(2025, 3, 4, 18, 0, tzinfo=timezone.utc)
    # 13:00 local, already past noon
    later = datetime(2025, 3, 4, 19, 0, tzinfo=timezone.utc)
    assert next_run_after(later, time(12, 0), CHICAGO) == datetime(2025, 3, 5, 18, 0, tzinfo=timezone.utc)
    # Exactly at the slot moves to tomorrow
    at_slot = datetime(2025, 3, 4, 18, 0, tzinfo=timezone.utc)
    assert next_run_after(at_slot, time(12, 0), CHICAGO) == datetime(2025, 3, 5, 18, 0, tzinfo=timezone.utc)


def test_next_run_after_follows_daylight_saving():
    # Saturday 13:00 CST; Sunday noon is CDT (UTC-5)
    saturday = datetime(2025, 3, 8, 19, 0, tzinfo=timezone.utc)
    assert next_run_after(saturday, time(12, 0), CHICAGO) == datetime(2025, 3, 9, 17, 0, tzinfo=timezone.utc)


@pytest.mark.asyncio
async def test_initialize_is_idempotent(make_scheduler, sleep):
    reader = FakeSettings(ScheduleConfig(enabled=True, marking_time="12:00"))
    scheduler = make_scheduler(reader)

    await scheduler.initialize()
    await scheduler.initialize()
    await wait_for(lambda: sleep.delays)

    assert reader.reads == 1
    assert scheduler.initialized is True
    assert scheduler.state == JobState.SCHEDULED
    assert sleep.delays == [3 * 3600.0]

    status = scheduler.status()
    assert status.absence_marking_job.enabled is True
    assert status.absence_marking_job.running is True
    assert status.absence_marking_job.schedule == "12:00"
    assert status.absence_marking_job.timezone == "America/Chicago"
    assert status.next_run_at == datetime(2025, 3, 4, 18, 0, tzinfo=timezone.utc)
    assert status.health == JobHealth.HEALTHY
    assert status.run_count == 0


@pytest.mark.asyncio
@pytest.mark.parametrize("config", [ScheduleConfig(enabled=False, marking_time="12:00"), None])
async def test_initialize_disabled_does_not_arm(make_scheduler, config):
    scheduler = make_scheduler(FakeSettings(config))
    await scheduler.initialize()

    status = scheduler.status()
    assert status.initialized is True
    assert status.state == JobState.STOPPED
    assert status.absence_marking_job.enabled is False
    assert status.absence_marking_job.running is False
    assert status.next_run_at is None
    assert status.health == JobHealth.DISABLED


@pytest.mark.asyncio
async def test_initialize_failure_leaves_scheduler_stopped(make_scheduler):
    reader = FakeSettings(error=RuntimeError("database unavailable"))
    scheduler = make_scheduler(reader)

    await scheduler.initialize()
    assert scheduler.initialized is False
    assert scheduler.state == JobState.STOPPED
    assert scheduler.health == JobHealth.STOPPED

    reader.error = None
    reader.config = ScheduleConfig(enabled=True, marking_time="12:00")
    await scheduler.initialize()
    assert scheduler.initialized is True
    assert scheduler.armed is True


@pytest.mark.asyncio
async def test_reschedule_enables_and_disables(make_scheduler, sleep):
    reader = FakeSettings(ScheduleConfig(enabled=False, marking_time="12:00"))
    scheduler = make_scheduler(reader)
    await scheduler.initialize()
    assert scheduler.armed is False

    reader.config = ScheduleConfig(enabled=True, marking_time="10:30")
    await scheduler.reschedule()
    await wait_for(lambda: sleep.delays)
    assert scheduler.armed is True
    assert scheduler.status().absence_marking_job.schedule == "10:30"
    assert sleep.delays == [1.5 * 3600]

    reader.config = ScheduleConfig(enabled=False, marking_time="10:30")
    await scheduler.reschedule()
    assert scheduler.armed is False
    assert scheduler.state == JobState.STOPPED
    assert scheduler.health == JobHealth.DISABLED


@pytest.mark.asyncio
async def test_reschedule_with_invalid_time_keeps_current_schedule(make_scheduler):
    reader = FakeSettings(ScheduleConfig(enabled=True, marking_time="12:00"))
    scheduler = make_scheduler(reader)
    await scheduler.initialize()

    reader.config = ScheduleConfig(enabled=True, marking_time="25:99")
    await scheduler.reschedule()

    assert scheduler.armed is True
    assert scheduler.status().absence_marking_job.schedule == "12:00"


@pytest.mark.asyncio
async def test_reschedule_after_settings_read_failure_keeps_current_schedule(make_scheduler):
    reader = FakeSettings(ScheduleConfig(enabled=True, marking_time="12:00"))
    scheduler = make_scheduler(reader)
    await scheduler.initialize()

    reader.error = RuntimeError("connection reset")
    await scheduler.reschedule()

    assert scheduler.armed is True
    assert scheduler.status().next_run_at == datetime(2025, 3, 4, 18, 0, tzinfo=timezone.utc)


@pytest.mark.asyncio
async def test_timer_fires_and_rearms_for_next_day(make_scheduler, sleep):
    reader = FakeSettings(ScheduleConfig(enabled=True, marking_time="12:00"))
    action = FakeAction({"marked": 3, "skipped": 1})
    scheduler = make_scheduler(reader, action=action)
    await scheduler.initialize()
    await wait_for(lambda: sleep.delays)

    sleep.release()
    await wait_for(lambda: len(sleep.delays) == 2)

    status = scheduler.status()
    assert action.calls == 1
    assert status.run_count == 1
    assert status.error_count == 0
    assert status.last_run_outcome.success is True
    assert status.last_run_outcome.result == {"marked": 3, "skipped": 1}
    assert status.last_run_at == datetime(2025, 3, 4, 18, 0, tzinfo=timezone.utc)
    assert status.state == JobState.SCHEDULED
    assert sleep.delays[1] == 24 * 3600.0
    assert status.next_run_at == datetime(2025, 3, 5, 18, 0, tzinfo=timezone.utc)


@pytest.mark.asyncio
async def test_failed_firing_is_recorded_and_job_stays_armed(make_scheduler, sleep):
    reader = FakeSettings(ScheduleConfig(enabled=True, marking_time="12:00"))
    action = FakeAction(RuntimeError("db down"))
    scheduler = make_scheduler(reader, action=action)
    await scheduler.initialize()
    await wait_for(lambda: sleep.delays)

    sleep.release()
    await wait_for(lambda: len(sleep.delays) == 2)

    status = scheduler.status()
    assert status.run_count == 1
    assert status.error_count == 1
    assert status.last_run_outcome.success is False
    assert status.last_run_outcome.error == "db down"
    assert status.state == JobState.SCHEDULED
    assert status.health == JobHealth.UNHEALTHY


@pytest.mark.asyncio
async def test_health_warns_on_occasional_errors(make_scheduler):
    reader = FakeSettings(ScheduleConfig(enabled=True, marking_time="12:00"))
    action = FakeAction(RuntimeError("timeout"), {"marked": 1}, {"marked": 2})
    scheduler = make_scheduler(reader, action=action)
    await scheduler.initialize()

    for _ in range(3):
        await scheduler.run_once()

    status = scheduler.status()
    assert status.run_count == 3
    assert status.error_count == 1
    assert status.health == JobHealth.WARNING
    assert [run.success for run in status.recent_runs] == [True, True, False]


@pytest.mark.asyncio
async def test_run_history_is_bounded(make_scheduler):
    scheduler = make_scheduler(FakeSettings(ScheduleConfig(enabled=True, marking_time="12:00")))
    await scheduler.initialize()

    for _ in range(8):
        await scheduler.run_once()

    status = scheduler.status()
    assert status.run_count == 8
    assert len(status.recent_runs) == 5


@pytest.mark.asyncio
async def test_overlapping_run_is_skipped(make_scheduler):
    action = FakeAction()
    action.gate = asyncio.Event()
    scheduler = make_scheduler(FakeSettings(ScheduleConfig(enabled=True, marking_time="12:00")), action=action)
    await scheduler.initialize()

    first = asyncio.create_task(scheduler.run_once())
    await action.started.wait()
    assert scheduler.state == JobState.EXECUTING

    assert await scheduler.run_once() is None

    action.gate.set()
    outcome = await first
    assert outcome.success is True
    assert action.calls == 1
    assert scheduler.status().run_count == 1


@pytest.mark.asyncio
async def test_reschedule_does_not_cancel_running_firing(make_scheduler, sleep):
    reader = FakeSettings(ScheduleConfig(enabled=True, marking_time="12:00"))
    action = FakeAction({"marked": 4})
    action.gate = asyncio.Event()
    scheduler = make_scheduler(reader, action=action)
    await scheduler.initialize()
    await wait_for(lambda: sleep.delays)

    sleep.release()
    await action.started.wait()
    assert scheduler.state == JobState.EXECUTING

    reader.config = ScheduleConfig(enabled=True, marking_time="13:00")
    await scheduler.reschedule()
    assert scheduler.state == JobState.EXECUTING

    action.gate.set()
    await wait_for(lambda: scheduler.status().run_count == 1)

    status = scheduler.status()
    assert status.last_run_outcome.success is True
    assert status.last_run_outcome.result == {"marked": 4}
    assert status.absence_marking_job.schedule == "13:00"
    assert status.state == JobState.SCHEDULED
    assert status.next_run_at == datetime(2025, 3, 4, 19, 0, tzinfo=timezone.utc)


@pytest.mark.asyncio
async def test_shutdown_and_restart(make_scheduler):
    reader = FakeSettings(ScheduleConfig(enabled=True, marking_time="12:00"))
    scheduler = make_scheduler(reader)
    await scheduler.initialize()

    await scheduler.shutdown()
    assert scheduler.initialized is False
    assert scheduler.armed is False
    assert scheduler.health == JobHealth.STOPPED

    reader.config = ScheduleConfig(enabled=True, marking_time="08:15")
    await scheduler.restart()
    assert scheduler.initialized is True
    assert scheduler.armed is True
    assert scheduler.status().absence_marking_job.schedule == "08:15"
    assert reader.reads == 2


@pytest.mark.asyncio
async def test_early_wake_waits_for_marking_time(make_scheduler, sleep, clock):
    reader = FakeSettings(ScheduleConfig(enabled=True, marking_time="12:00"))
    fired_at = []

    async def action():
        fired_at.append(clock())
        return {"marked": 2}

    scheduler = make_scheduler(reader, action=action)
    await scheduler.initialize()
    await wait_for(lambda: sleep.delays)

    sleep.release(early=0.3)
    await wait_for(lambda: len(sleep.delays) == 2)
    assert fired_at == []
    assert sleep.delays[1] == pytest.approx(0.3)

    sleep.release()
    await wait_for(lambda: len(sleep.delays) == 3)

    slot = datetime(2025, 3, 4, 18, 0, tzinfo=timezone.utc)
    assert fired_at == [slot]
    status = scheduler.status()
    assert status.run_count == 1
    assert status.last_run_at == slot
    assert status.next_run_at == datetime(2025, 3, 5, 18, 0, tzinfo=timezone.utc)


@pytest.mark.asyncio
async def test_reschedule_before_initialize_arms_nothing(make_scheduler):
    reader = FakeSettings(ScheduleConfig(enabled=True, marking_time="12:00"))
    scheduler = make_scheduler(reader)

    await scheduler.reschedule()
    assert reader.reads == 0
    assert scheduler.armed is False
    assert scheduler.status().absence_marking_job.running is False

    await scheduler.initialize()
    timers = [t for t in asyncio.all_tasks() if t.get_name() == "absence-marking-timer" and not t.done()]
    assert len(timers) == 1

    await scheduler.shutdown()
    timers = [t for t in asyncio.all_tasks() if t.get_name() == "absence-marking-timer" and not t.done()]
    assert timers == []
