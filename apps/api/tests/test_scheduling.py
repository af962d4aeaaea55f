import asyncio
from datetime import datetime, timezone

import pytest

from services.scheduling import CronSchedule, IntervalSchedule, PeriodicJob, SchedulerState


MONDAY = datetime(2026, 10, 19, 0, 0, tzinfo=timezone.utc)


def test_cron_every_two_hours():
    schedule = CronSchedule("0 */2 * * *")
    assert schedule.next_after(MONDAY) == datetime(2026, 10, 19, 2, 0, tzinfo=timezone.utc)
    assert schedule.next_after(datetime(2026, 10, 19, 23, 30, tzinfo=timezone.utc)) == datetime(
        2026, 10, 20, 0, 0, tzinfo=timezone.utc
    )


def test_cron_next_fire_is_strictly_after_the_given_moment():
    schedule = CronSchedule("0 1 * * *")
    assert schedule.next_after(datetime(2026, 10, 19, 0, 30, tzinfo=timezone.utc)) == datetime(
        2026, 10, 19, 1, 0, tzinfo=timezone.utc
    )
    assert schedule.next_after(datetime(2026, 10, 19, 1, 0, tzinfo=timezone.utc)) == datetime(
        2026, 10, 20, 1, 0, tzinfo=timezone.utc
    )


def test_cron_weekly_sunday_and_seven_alias():
    sunday_two_am = datetime(2026, 10, 25, 2, 0, tzinfo=timezone.utc)
    assert CronSchedule("0 2 * * 0").next_after(MONDAY) == sunday_two_am
    assert CronSchedule("0 2 * * 7").next_after(MONDAY) == sunday_two_am


def test_cron_either_day_field_matches_when_both_are_restricted():
    schedule = CronSchedule("0 0 1 * 1")
    assert schedule.next_after(MONDAY) == datetime(2026, 10, 26, 0, 0, tzinfo=timezone.utc)
    assert schedule.next_after(datetime(2026, 10, 27, 0, 0, tzinfo=timezone.utc)) == datetime(
        2026, 11, 1, 0, 0, tzinfo=timezone.utc
    )


def test_cron_stepped_day_field_is_not_a_restriction():
    # odd days of the month that are also Mondays
    schedule = CronSchedule("0 0 */2 * 1")
    assert schedule.next_after(MONDAY) == datetime(2026, 11, 9, 0, 0, tzinfo=timezone.utc)


def test_cron_weekday_ranges_count_from_sunday():
    saturday = datetime(2026, 10, 24, 12, 0, tzinfo=timezone.utc)
    assert CronSchedule("0 9 * * 1-5").next_after(saturday) == datetime(2026, 10, 26, 9, 0, tzinfo=timezone.utc)
    assert CronSchedule("0 9 * * 5-7").next_after(MONDAY) == datetime(2026, 10, 23, 9, 0, tzinfo=timezone.utc)
    assert CronSchedule("30 6 * * 0,6").next_after(MONDAY) == datetime(2026, 10, 24, 6, 30, tzinfo=timezone.utc)


def test_cron_respects_schedule_timezone():
    schedule = CronSchedule("0 9 * * *", "America/New_York")
    fire = schedule.next_after(datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc))
    assert fire.astimezone(timezone.utc) == datetime(2026, 10, 19, 13, 0, tzinfo=timezone.utc)


@pytest.mark.parametrize("expression", ["* * *", "61 * * * *", "0 25 * * *", "0 0 * * 8", "*/0 * * * *", "a * * * *"])
def test_cron_rejects_invalid_expressions(expression):
    with pytest.raises(ValueError):
        CronSchedule(expression)


def test_interval_schedule():
    schedule = IntervalSchedule(90)
    assert schedule.next_after(MONDAY) == datetime(2026, 10, 19, 0, 1, 30, tzinfo=timezone.utc)
    assert schedule.expression == "every 90s"
    with pytest.raises(ValueError):
        IntervalSchedule(0)


@pytest.mark.asyncio
async def test_job_skips_a_tick_while_the_previous_one_is_in_flight(manual_clock):
    release = asyncio.Event()
    calls = []

    async def slow_task():
        calls.append(manual_clock.now())
        await release.wait()
        return "done"

    job = PeriodicJob("slow", IntervalSchedule(60), slow_task, manual_clock)
    first = asyncio.create_task(job.run_once())
    await asyncio.sleep(0)

    assert job.is_running is True
    assert await job.run_once() is False
    assert job.skip_count == 1

    release.set()
    assert await first is True
    assert len(calls) == 1
    assert job.run_count == 1
    assert job.last_result == "done"
    assert job.is_running is False


@pytest.mark.asyncio
async def test_job_records_errors_without_raising(manual_clock):
    async def broken():
        raise RuntimeError("upstream down")

    job = PeriodicJob("broken", IntervalSchedule(60), broken, manual_clock)
    assert await job.run_once() is True
    assert job.error_count == 1
    assert job.last_error == "upstream down"
    assert job.status()["last_error"] == "upstream down"


@pytest.mark.asyncio
async def test_scheduler_fires_on_cadence_and_stops_cleanly(manual_clock):
    runs = []

    async def tick():
        runs.append(manual_clock.now())

    state = SchedulerState("test", manual_clock)
    state.register("hourly", "0 * * * *", tick)
    state.start()
    state.start()
    await manual_clock.advance(0)

    assert state.status()["active_jobs"] == ["hourly"]
    assert state.jobs["hourly"].next_run_at == datetime(2026, 10, 19, 1, 0, tzinfo=timezone.utc)

    await manual_clock.advance(3600)
    assert runs == [datetime(2026, 10, 19, 1, 0, tzinfo=timezone.utc)]

    state.stop()
    state.stop()
    await manual_clock.advance(3600)
    assert len(runs) == 1
    status = state.status()
    assert status["is_running"] is False
    assert status["active_jobs"] == []
    assert status["jobs"]["hourly"]["run_count"] == 1


@pytest.mark.asyncio
async def test_stop_lets_in_flight_ticks_finish(manual_clock):
    release = asyncio.Event()

    async def slow_tick():
        await release.wait()

    state = SchedulerState("test", manual_clock)
    state.register("slow", IntervalSchedule(60), slow_tick)
    state.start()
    await manual_clock.advance(0)
    await manual_clock.advance(60)

    job = state.jobs["slow"]
    assert job.is_running is True

    state.stop()
    assert await state.wait_idle(0.01) is False
    release.set()
    assert await state.wait_idle(1) is True
    assert job.run_count == 1
    assert job.last_error is None


@pytest.mark.asyncio
async def test_register_replaces_the_previous_job_of_the_same_name(manual_clock):
    old_runs, new_runs = [], []

    async def old_task():
        old_runs.append(1)

    async def new_task():
        new_runs.append(1)

    state = SchedulerState("test", manual_clock)
    state.register("user", IntervalSchedule(60), old_task)
    state.start()
    await manual_clock.advance(0)
    state.register("user", IntervalSchedule(120), new_task)
    await manual_clock.advance(0)

    assert state.status()["job_count"] == 1
    assert state.status()["active_jobs"] == ["user"]

    await manual_clock.advance(120)
    assert old_runs == []
    assert new_runs == [1]

    assert state.unregister("user") is True
    assert state.unregister("user") is False
    state.stop()


@pytest.mark.asyncio
async def test_run_job_rejects_unknown_names(manual_clock):
    state = SchedulerState("test", manual_clock)
    with pytest.raises(KeyError):
        await state.run_job("missing")
