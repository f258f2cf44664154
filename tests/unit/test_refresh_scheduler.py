"""Unit tests for librus_ics.domain.refresh_scheduler.RefreshScheduler."""

import asyncio
import datetime
from unittest.mock import AsyncMock

import pytest

from librus_ics.calendar.encoder import IcsEncoder
from librus_ics.core.exceptions import UpstreamError
from librus_ics.core.health_tracker import HealthTracker
from librus_ics.domain.fragment_cache import Feed
from librus_ics.domain.refresh_scheduler import BatchKind, RefreshScheduler
from librus_ics.domain.week_window import all_school_weeks, far_weeks, near_weeks
from tests.fixtures.librus_data import lesson_slot

pytestmark = pytest.mark.unit

NOW = datetime.datetime(2024, 10, 16, 10, 0)
NEAR = near_weeks(NOW)


@pytest.fixture
def health() -> HealthTracker:
    return HealthTracker()


@pytest.fixture
def scheduler(lesson_fetcher, health) -> RefreshScheduler:
    return RefreshScheduler(
        lesson_fetcher,
        health_tracker=health,
        near_interval_seconds=3600,
        far_interval_seconds=3600,
        now=lambda: NOW,
    )


async def test_refresh_near_when_called_then_fetches_exactly_three_weeks(
    scheduler, fake_gateway
) -> None:
    report = await scheduler.refresh_near()

    assert fake_gateway.timetable_calls() == [
        datetime.date(2024, 10, 14),
        datetime.date(2024, 10, 21),
        datetime.date(2024, 10, 28),
    ]
    assert (report.kind, report.requested, report.refreshed, report.failed) == (
        BatchKind.NEAR,
        3,
        3,
        0,
    )
    assert report.compiled
    assert scheduler.fetcher.artifacts.get(Feed.LESSONS) is not None


async def test_startup_when_called_then_near_weeks_first_and_compiled_per_phase(
    scheduler, fake_gateway, fake_encoder
) -> None:
    report = await scheduler.startup()

    calls = fake_gateway.timetable_calls()
    assert calls[:3] == NEAR
    assert sorted(calls) == list(all_school_weeks(NOW))
    assert report.requested == 44
    assert fake_encoder.calls == 2


async def test_refresh_far_when_called_then_only_far_weeks(scheduler, fake_gateway) -> None:
    report = await scheduler.refresh_far()

    calls = fake_gateway.timetable_calls()
    assert calls == far_weeks(NOW)
    assert not set(calls) & set(NEAR)
    assert report.requested == 41


async def test_batch_when_every_week_fails_then_artifact_untouched(
    scheduler, fake_gateway, fake_encoder
) -> None:
    await scheduler.refresh_near()
    before = scheduler.fetcher.artifacts.get(Feed.LESSONS)
    for week in NEAR:
        fake_gateway.week_failures[week] = UpstreamError("HTTP 502")

    report = await scheduler.refresh_near()

    assert report.refreshed == 0
    assert report.failed == 3
    assert not report.compiled
    assert fake_encoder.calls == 1
    assert scheduler.fetcher.artifacts.get(Feed.LESSONS) is before


async def test_batch_when_partial_failure_then_still_compiles(scheduler, fake_gateway) -> None:
    fake_gateway.week_failures[NEAR[1]] = UpstreamError("HTTP 502")

    report = await scheduler.refresh_near()

    assert (report.refreshed, report.failed, report.compiled) == (2, 1, True)


async def test_refresh_near_when_already_running_then_joins_running_batch(
    scheduler, fake_gateway
) -> None:
    first, second = await asyncio.gather(scheduler.refresh_near(), scheduler.refresh_near())

    assert first is second
    assert len(fake_gateway.timetable_calls()) == 3


async def test_tick_when_same_kind_running_then_skipped(scheduler, fake_gateway) -> None:
    running = asyncio.create_task(scheduler.refresh_near())
    await asyncio.sleep(0)

    assert scheduler.is_running(BatchKind.NEAR)
    assert await scheduler.tick(BatchKind.NEAR) is None

    await running
    assert len(fake_gateway.timetable_calls()) == 3
    assert not scheduler.is_running(BatchKind.NEAR)


async def test_batches_when_different_kinds_then_run_one_after_another(
    scheduler, fake_gateway
) -> None:
    near_report, far_report = await asyncio.gather(scheduler.refresh_near(), scheduler.refresh_far())

    calls = fake_gateway.timetable_calls()
    assert calls[:3] == NEAR
    assert calls[3:] == far_weeks(NOW)
    assert near_report.compiled and far_report.compiled


async def test_batch_when_refreshed_then_health_tracker_updated(scheduler, health) -> None:
    await scheduler.refresh_near()

    status = health.get_health_status("2024-10-16T08:00:00+00:00")
    assert status.status == "ok"
    assert status.fragment_count == 3
    assert status.event_count == 3
    assert status.last_batch == "near"


async def test_run_when_stop_already_set_then_startup_only(scheduler, fake_gateway) -> None:
    stop_event = asyncio.Event()
    stop_event.set()

    await scheduler.run(stop_event)

    assert len(fake_gateway.timetable_calls()) == 44
    assert scheduler.fetcher.artifacts.get(Feed.LESSONS) is not None


async def test_run_when_startup_crashes_then_loop_keeps_running(lesson_fetcher, health) -> None:
    lesson_fetcher.fetch_week = AsyncMock(side_effect=RuntimeError("bug"))
    scheduler = RefreshScheduler(
        lesson_fetcher,
        health_tracker=health,
        near_interval_seconds=0.01,
        far_interval_seconds=3600,
        now=lambda: NOW,
    )
    stop_event = asyncio.Event()

    runner = asyncio.create_task(scheduler.run(stop_event))
    await asyncio.sleep(0.05)
    stop_event.set()
    await asyncio.wait_for(runner, timeout=1)

    # Startup plus at least one periodic near attempt
    assert lesson_fetcher.fetch_week.await_count >= 2


async def test_run_when_periodic_near_ticks_then_near_weeks_refetched(scheduler, fake_gateway) -> None:
    scheduler.near_interval_seconds = 0.01
    stop_event = asyncio.Event()

    runner = asyncio.create_task(scheduler.run(stop_event))
    await asyncio.sleep(0.1)
    stop_event.set()
    await asyncio.wait_for(runner, timeout=1)

    calls = fake_gateway.timetable_calls()
    assert len(calls) > 44
    assert set(calls[44:]) <= set(NEAR)


async def test_ensure_lessons_when_startup_running_then_returns_after_near_phase(
    scheduler, fake_gateway
) -> None:
    fake_gateway.timetable_delay = 0.01
    startup = asyncio.create_task(scheduler.startup())
    await asyncio.sleep(0)

    await asyncio.wait_for(scheduler.ensure_lessons(), timeout=1)

    assert scheduler.fetcher.artifacts.get(Feed.LESSONS) is not None
    assert scheduler.is_running(BatchKind.STARTUP)
    assert len(fake_gateway.timetable_calls()) < 10

    await startup
    assert len(fake_gateway.timetable_calls()) == 44


async def test_ensure_lessons_when_compiled_while_waiting_then_skips_near_batch(
    scheduler, fake_gateway
) -> None:
    await asyncio.gather(scheduler.refresh_far(), scheduler.ensure_lessons())

    assert fake_gateway.timetable_calls() == far_weeks(NOW)
    assert scheduler.fetcher.artifacts.get(Feed.LESSONS) is not None


async def test_ensure_lessons_when_cold_and_idle_then_runs_near_batch(scheduler, fake_gateway) -> None:
    await scheduler.ensure_lessons()

    assert fake_gateway.timetable_calls() == NEAR
    assert scheduler.fetcher.artifacts.get(Feed.LESSONS) is not None


async def test_startup_when_near_phase_crashes_then_waiters_released(lesson_fetcher, health) -> None:
    lesson_fetcher.fetch_week = AsyncMock(side_effect=RuntimeError("bug"))
    scheduler = RefreshScheduler(lesson_fetcher, health_tracker=health, now=lambda: NOW)

    startup = asyncio.create_task(scheduler.startup())
    await asyncio.sleep(0)
    await asyncio.wait_for(scheduler.ensure_lessons(), timeout=1)

    with pytest.raises(RuntimeError):
        await startup
    assert scheduler.fetcher.artifacts.get(Feed.LESSONS) is None


async def test_refresh_near_when_split_groups_then_real_calendar_compiles(
    scheduler, fake_gateway
) -> None:
    scheduler.fetcher.encoder = IcsEncoder()
    fake_gateway.timetables[NEAR[0]] = {
        "2024-10-14": [[lesson_slot("Matematyka"), lesson_slot("Fizyka")]]
    }

    report = await scheduler.refresh_near()

    assert report.compiled
    document = scheduler.fetcher.artifacts.get(Feed.LESSONS).document
    assert b"2024-10-14-08:00@lessons.librus" in document
    assert b"2024-10-14-08:00-2@lessons.librus" in document


async def test_refresh_near_when_week_has_garbage_slot_then_batch_completes(
    scheduler, fake_gateway
) -> None:
    fake_gateway.timetables[NEAR[0]] = {"2024-10-14": [[None], [lesson_slot("Fizyka")]]}
    fake_gateway.timetables[NEAR[1]] = ["unexpected"]

    report = await scheduler.refresh_near()

    assert fake_gateway.timetable_calls() == NEAR
    assert (report.refreshed, report.failed, report.compiled) == (2, 1, True)
    assert [r.title for r in scheduler.fetcher.fragments.get(NEAR[0]).events] == ["Fizyka"]
