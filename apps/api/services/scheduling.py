"""Cron-driven asyncio job loops with an injectable clock.

Each registered job gets its own loop task that sleeps until the next fire
time and then launches the tick as a separate task, so a slow tick never
delays the cadence. A job whose previous tick is still in flight skips the
new one instead of running twice. Fire times come from APScheduler triggers;
the loops themselves stay on the injected clock.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Any, Awaitable, Callable, Dict, Optional, Protocol, Set, Union
from zoneinfo import ZoneInfo

from apscheduler.triggers.combining import OrTrigger
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

logger = logging.getLogger(__name__)

JobTask = Callable[[], Awaitable[Any]]


class Clock(Protocol):
    def now(self) -> datetime:
        ...

    async def sleep(self, seconds: float) -> None:
        ...


class SystemClock:
    """Wall clock in UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(max(float(seconds), 0.0))


def resolve_timezone(name: Optional[str]) -> tzinfo:
    key = str(name or "UTC").strip()
    if key.upper() in {"UTC", "Z", "ETC/UTC"}:
        return timezone.utc
    return ZoneInfo(key)


def _crontab_day_of_week(field: str) -> str:
    """Rewrite a crontab day-of-week field (0 or 7 = Sunday) for APScheduler 3 (0 = Monday)."""
    if field == "*" or any(char.isalpha() for char in field):
        return field
    days: Set[int] = set()
    for part in field.split(","):
        base, _, step = part.partition("/")
        if base == "*":
            first, last = 0, 6
        elif "-" in base:
            first_text, last_text = base.split("-", 1)
            first, last = int(first_text), int(last_text)
        else:
            first = int(base)
            last = 7 if step else first
        if first < 0 or last > 7 or first > last:
            raise ValueError(f"Cron day-of-week out of range: '{field}'")
        days.update(range(first, last + 1, int(step or 1)))
    return ",".join(str(day) for day in sorted({(day + 6) % 7 for day in days}))


class CronSchedule:
    """Five-field cron expression (minute hour day-of-month month day-of-week).

    Day-of-week counts from 0 = Sunday, 7 is also Sunday. When both day fields
    are restricted a day matches if either one does, as in classic cron.
    """

    def __init__(self, expression: str, tz: Union[str, tzinfo, None] = None) -> None:
        fields = str(expression or "").split()
        if len(fields) != 5:
            raise ValueError(f"Cron expression must have 5 fields: '{expression}'")
        self.expression = " ".join(fields)
        self.tz = tz if isinstance(tz, tzinfo) else resolve_timezone(tz)
        minute, hour, day, month, weekday_text = fields
        day_of_week = _crontab_day_of_week(weekday_text)

        def trigger(day_field: str, weekday_field: str) -> CronTrigger:
            return CronTrigger(
                minute=minute,
                hour=hour,
                day=day_field,
                month=month,
                day_of_week=weekday_field,
                timezone=self.tz,
            )

        if not day.startswith("*") and not weekday_text.startswith("*"):
            self.trigger = OrTrigger([trigger(day, "*"), trigger("*", day_of_week)])
        else:
            self.trigger = trigger(day, day_of_week)

    def __repr__(self) -> str:
        return f"CronSchedule({self.expression!r})"

    def next_after(self, moment: datetime) -> datetime:
        """First matching minute strictly after ``moment``, in the schedule timezone."""
        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=timezone.utc)
        fire_at = self.trigger.get_next_fire_time(None, moment + timedelta(microseconds=1))
        if fire_at is None:
            raise ValueError(f"Cron expression never fires: '{self.expression}'")
        return fire_at


class IntervalSchedule:
    """Fixed period between fires, used for per-user timers."""

    def __init__(self, seconds: float, tz: Union[str, tzinfo, None] = None) -> None:
        if seconds <= 0:
            raise ValueError("Interval must be positive.")
        self.seconds = float(seconds)
        self.expression = f"every {int(self.seconds)}s"
        self.trigger = IntervalTrigger(
            seconds=self.seconds,
            timezone=tz if isinstance(tz, tzinfo) else resolve_timezone(tz),
        )

    def next_after(self, moment: datetime) -> datetime:
        return self.trigger.get_next_fire_time(moment, moment)


Schedule = Union[CronSchedule, IntervalSchedule]


class PeriodicJob:
    """A named task with an in-flight guard and run bookkeeping."""

    def __init__(self, name: str, schedule: Schedule, task: JobTask, clock: Clock) -> None:
        self.name = name
        self.schedule = schedule
        self.task = task
        self.clock = clock
        self.is_running = False
        self.run_count = 0
        self.skip_count = 0
        self.error_count = 0
        self.last_started_at: Optional[datetime] = None
        self.last_finished_at: Optional[datetime] = None
        self.last_duration_ms: Optional[int] = None
        self.last_error: Optional[str] = None
        self.last_result: Any = None
        self.next_run_at: Optional[datetime] = None

    async def run_once(self) -> bool:
        """Run the task unless a previous run is in flight. Never raises task errors."""
        if self.is_running:
            self.skip_count += 1
            logger.warning("scheduler_job_skipped job=%s reason=already_running", self.name)
            return False

        self.is_running = True
        started = self.clock.now()
        self.last_started_at = started
        logger.info("scheduler_job_started job=%s", self.name)
        try:
            self.last_result = await self.task()
            self.last_error = None
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            self.error_count += 1
            self.last_error = str(exc) or exc.__class__.__name__
            logger.exception("scheduler_job_failed job=%s", self.name)
        finally:
            finished = self.clock.now()
            self.is_running = False
            self.run_count += 1
            self.last_finished_at = finished
            self.last_duration_ms = int(max((finished - started).total_seconds(), 0.0) * 1000)
        logger.info(
            "scheduler_job_finished job=%s duration_ms=%s error=%s",
            self.name,
            self.last_duration_ms,
            self.last_error,
        )
        return True

    def status(self) -> Dict[str, Any]:
        return {
            "schedule": self.schedule.expression,
            "is_running": self.is_running,
            "run_count": self.run_count,
            "skip_count": self.skip_count,
            "error_count": self.error_count,
            "last_started_at": self.last_started_at.isoformat() if self.last_started_at else None,
            "last_finished_at": self.last_finished_at.isoformat() if self.last_finished_at else None,
            "last_duration_ms": self.last_duration_ms,
            "last_error": self.last_error,
            "next_run_at": self.next_run_at.isoformat() if self.next_run_at else None,
        }


class SchedulerState:
    """Owns a set of jobs and their loop tasks; start/stop are idempotent."""

    def __init__(self, name: str, clock: Optional[Clock] = None, tz: Union[str, tzinfo, None] = None) -> None:
        self.name = name
        self.clock: Clock = clock or SystemClock()
        self.tz = tz if isinstance(tz, tzinfo) else resolve_timezone(tz)
        self.is_running = False
        self.jobs: Dict[str, PeriodicJob] = {}
        self._loops: Dict[str, asyncio.Task] = {}
        self._ticks: Set[asyncio.Task] = set()

    def register(self, name: str, schedule: Union[str, Schedule], task: JobTask) -> PeriodicJob:
        """Add a job, replacing (and cancelling) any prior job of the same name."""
        if isinstance(schedule, str):
            schedule = CronSchedule(schedule, self.tz)
        self._cancel_loop(name)
        job = PeriodicJob(name, schedule, task, self.clock)
        self.jobs[name] = job
        if self.is_running:
            self._spawn_loop(job)
        return job

    def unregister(self, name: str) -> bool:
        self._cancel_loop(name)
        return self.jobs.pop(name, None) is not None

    def start(self) -> None:
        if self.is_running:
            return
        self.is_running = True
        for job in self.jobs.values():
            self._spawn_loop(job)
        logger.info("scheduler_started scheduler=%s jobs=%s", self.name, ",".join(self.jobs))

    def stop(self) -> None:
        """Cancel the timers; ticks already in flight run to completion."""
        if not self.is_running:
            return
        self.is_running = False
        for name in list(self._loops):
            self._cancel_loop(name)
        logger.info("scheduler_stopped scheduler=%s in_flight=%s", self.name, len(self._ticks))

    async def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """Wait for in-flight ticks; True when none remain."""
        pending = {tick for tick in self._ticks if not tick.done()}
        if not pending:
            return True
        _, still_pending = await asyncio.wait(pending, timeout=timeout)
        if still_pending:
            logger.warning(
                "scheduler_wait_idle_timeout scheduler=%s pending=%s",
                self.name,
                len(still_pending),
            )
        return not still_pending

    async def run_job(self, name: str) -> bool:
        job = self.jobs.get(name)
        if job is None:
            raise KeyError(f"Unknown job: {name}")
        return await job.run_once()

    def status(self) -> Dict[str, Any]:
        return {
            "is_running": self.is_running,
            "active_jobs": sorted(name for name, loop in self._loops.items() if not loop.done()),
            "job_count": len(self.jobs),
            "running_jobs": sorted(name for name, job in self.jobs.items() if job.is_running),
            "jobs": {name: job.status() for name, job in self.jobs.items()},
        }

    def _spawn_loop(self, job: PeriodicJob) -> None:
        self._loops[job.name] = asyncio.create_task(self._run_loop(job), name=f"{self.name}:{job.name}")

    def _cancel_loop(self, name: str) -> None:
        loop = self._loops.pop(name, None)
        if loop is not None and not loop.done():
            loop.cancel()

    async def _run_loop(self, job: PeriodicJob) -> None:
        while self.is_running and self.jobs.get(job.name) is job:
            now = self.clock.now()
            fire_at = job.schedule.next_after(now)
            job.next_run_at = fire_at
            await self.clock.sleep((fire_at - now).total_seconds())
            if not self.is_running or self.jobs.get(job.name) is not job:
                break
            tick = asyncio.create_task(job.run_once(), name=f"{self.name}:{job.name}:tick")
            self._ticks.add(tick)
            tick.add_done_callback(self._ticks.discard)
