"""Startup, near and far refresh cycles of the lessons cache."""

from __future__ import annotations

import asyncio
import datetime
import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from librus_ics.core.health_tracker import HealthTracker
from librus_ics.core.monitoring_logging import log_monitoring_event
from librus_ics.domain.fragment_cache import Feed
from librus_ics.domain.lesson_fetcher import LessonFetcher
from librus_ics.domain.week_window import (
    NEAR_WEEKS_AHEAD,
    all_school_weeks,
    far_weeks,
    near_weeks,
    week_key_str,
)

logger = logging.getLogger(__name__)

DEFAULT_NEAR_INTERVAL_SECONDS = 30 * 60
DEFAULT_FAR_INTERVAL_SECONDS = 12 * 60 * 60


class BatchKind(str, Enum):
    """Kinds of refresh batches."""

    STARTUP = "startup"
    NEAR = "near"
    FAR = "far"


@dataclass
class BatchReport:
    """Summary of one finished batch."""

    kind: BatchKind
    requested: int
    refreshed: int
    failed: int
    compiled: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "requested": self.requested,
            "refreshed": self.refreshed,
            "failed": self.failed,
            "compiled": self.compiled,
        }


class RefreshScheduler:
    """Runs refresh batches one at a time and on a fixed schedule.

    A batch fetches its weeks sequentially through the LessonFetcher and
    recompiles the lessons artifact whenever a phase refreshed something. The
    startup batch has two phases (near weeks, then the rest of the school
    year); the others have one. Batches of the same kind never overlap: a
    second request for a running kind joins the running batch.
    """

    def __init__(
        self,
        fetcher: LessonFetcher,
        health_tracker: Optional[HealthTracker] = None,
        near_interval_seconds: float = DEFAULT_NEAR_INTERVAL_SECONDS,
        far_interval_seconds: float = DEFAULT_FAR_INTERVAL_SECONDS,
        weeks_ahead: int = NEAR_WEEKS_AHEAD,
        now: Optional[Callable[[], datetime.datetime]] = None,
    ) -> None:
        """Initialize scheduler.

        Args:
            fetcher: Week fetcher and artifact compiler
            health_tracker: Optional tracker updated after every batch
            near_interval_seconds: Period of the near cycle
            far_interval_seconds: Period of the far cycle
            weeks_ahead: Weeks after the current one treated as near
            now: Clock returning local "now" (injectable for tests)
        """
        self.fetcher = fetcher
        self.health_tracker = health_tracker
        self.near_interval_seconds = near_interval_seconds
        self.far_interval_seconds = far_interval_seconds
        self.weeks_ahead = weeks_ahead
        self._now = now or datetime.datetime.now
        self._batch_lock = asyncio.Lock()
        self._in_flight: dict[BatchKind, asyncio.Task[BatchReport]] = {}
        self._near_phase_done = asyncio.Event()

    def is_running(self, kind: BatchKind) -> bool:
        """True if a batch of ``kind`` is queued or running."""
        task = self._in_flight.get(kind)
        return task is not None and not task.done()

    def _phases_for(self, kind: BatchKind, now: datetime.datetime) -> list[list[datetime.date]]:
        """Week lists fetched by one batch, each followed by a compile.

        Startup fetches the near weeks first so the lessons feed is usable
        before the rest of the school year arrives.
        """
        near = near_weeks(now, self.weeks_ahead)
        if kind is BatchKind.STARTUP:
            rest = [week for week in all_school_weeks(now) if week not in near]
            return [near, rest]
        if kind is BatchKind.NEAR:
            return [near]
        return [far_weeks(now, self.weeks_ahead)]

    def _start(self, kind: BatchKind, skip_if_compiled: bool = False) -> asyncio.Task[BatchReport]:
        task = self._in_flight.get(kind)
        if task is not None and not task.done():
            logger.debug("Joining running %s batch", kind.value)
            return task

        task = asyncio.create_task(
            self._run_batch(kind, skip_if_compiled), name=f"refresh-{kind.value}"
        )
        self._in_flight[kind] = task
        task.add_done_callback(lambda t, k=kind: self._forget(k, t))
        return task

    def _forget(self, kind: BatchKind, task: asyncio.Task[BatchReport]) -> None:
        if self._in_flight.get(kind) is task:
            del self._in_flight[kind]

    def _compile(self) -> bool:
        compiled = self.fetcher.compile_artifact()
        if self.health_tracker is not None:
            self.health_tracker.record_refresh_success(
                len(self.fetcher.fragments), self.fetcher.fragments.event_count()
            )
        return compiled

    async def _run_batch(self, kind: BatchKind, skip_if_compiled: bool = False) -> BatchReport:
        async with self._batch_lock:
            if skip_if_compiled and self.fetcher.artifacts.get(Feed.LESSONS) is not None:
                logger.debug("Lessons calendar compiled meanwhile, skipping %s batch", kind.value)
                return BatchReport(kind=kind, requested=0, refreshed=0, failed=0, compiled=False)

            # Week lists are computed when the batch actually starts
            phases = self._phases_for(kind, self._now())
            weeks = [week for phase in phases for week in phase]

            if self.health_tracker is not None:
                self.health_tracker.record_refresh_attempt(kind.value)

            log_monitoring_event(
                "refresh.batch.start",
                f"Starting {kind.value} refresh of {len(weeks)} weeks",
                "DEBUG",
                details={
                    "kind": kind.value,
                    "first_week": week_key_str(min(weeks)) if weeks else None,
                    "last_week": week_key_str(max(weeks)) if weeks else None,
                },
            )

            refreshed = 0
            failed = 0
            compiled = False
            if kind is BatchKind.STARTUP:
                self._near_phase_done.clear()
            try:
                for index, phase in enumerate(phases):
                    phase_refreshed = 0
                    for week_key in phase:
                        result = await self.fetcher.fetch_week(week_key)
                        if result.fresh:
                            phase_refreshed += 1
                        else:
                            failed += 1

                    if phase_refreshed:
                        compiled = self._compile() or compiled
                    refreshed += phase_refreshed

                    if kind is BatchKind.STARTUP and index == 0:
                        self._near_phase_done.set()
            finally:
                if kind is BatchKind.STARTUP:
                    self._near_phase_done.set()

        report = BatchReport(
            kind=kind,
            requested=len(weeks),
            refreshed=refreshed,
            failed=failed,
            compiled=compiled,
        )

        if refreshed:
            log_monitoring_event(
                "refresh.batch.complete",
                f"{kind.value} refresh finished: {refreshed}/{len(weeks)} weeks refreshed",
                "WARNING" if failed else "INFO",
                details=report.to_dict(),
            )
        else:
            log_monitoring_event(
                "refresh.batch.failed",
                f"{kind.value} refresh refreshed no weeks, keeping cached calendar",
                "ERROR" if weeks else "WARNING",
                details=report.to_dict(),
            )
        return report

    async def startup(self) -> BatchReport:
        """Fetch the near weeks and compile, then the rest of the school year and compile again."""
        return await asyncio.shield(self._start(BatchKind.STARTUP))

    async def refresh_near(self) -> BatchReport:
        """Refresh the near weeks now, joining a running near batch if any."""
        return await asyncio.shield(self._start(BatchKind.NEAR))

    async def refresh_far(self) -> BatchReport:
        """Refresh every far week now, joining a running far batch if any."""
        return await asyncio.shield(self._start(BatchKind.FAR))

    async def ensure_lessons(self) -> None:
        """Bring a cold lessons feed up as quickly as possible.

        While startup is running this only waits for its near phase. Otherwise
        a near batch runs, unless another batch compiled the feed while this
        one waited for the batch lock.
        """
        if self.is_running(BatchKind.STARTUP):
            await self._near_phase_done.wait()
            return
        await asyncio.shield(self._start(BatchKind.NEAR, skip_if_compiled=True))

    async def tick(self, kind: BatchKind) -> Optional[BatchReport]:
        """Periodic trigger: skipped when a batch of the same kind is running."""
        if self.health_tracker is not None:
            self.health_tracker.record_scheduler_heartbeat()

        if self.is_running(kind):
            logger.info("Skipping %s tick, previous %s batch still running", kind.value, kind.value)
            return None
        return await self._start(kind)

    async def _periodic(
        self, kind: BatchKind, interval: float, stop_event: asyncio.Event
    ) -> None:
        logger.debug("%s refresh loop starting with interval %d seconds", kind.value, interval)
        while not stop_event.is_set():
            try:
                await asyncio.sleep(interval)
                if stop_event.is_set():
                    break
                await self.tick(kind)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("%s refresh loop unexpected error", kind.value)

    async def run(self, stop_event: asyncio.Event) -> None:
        """Startup batch, then near and far loops until ``stop_event`` is set."""
        if self.health_tracker is not None:
            self.health_tracker.record_scheduler_heartbeat()

        try:
            await self.startup()
        except Exception:
            logger.exception("Startup refresh failed")

        loops = [
            asyncio.create_task(
                self._periodic(BatchKind.NEAR, self.near_interval_seconds, stop_event),
                name="refresh-near-loop",
            ),
            asyncio.create_task(
                self._periodic(BatchKind.FAR, self.far_interval_seconds, stop_event),
                name="refresh-far-loop",
            ),
        ]

        try:
            await stop_event.wait()
        finally:
            for task in loops:
                task.cancel()
            await asyncio.gather(*loops, return_exceptions=True)
            logger.debug("Refresh loops stopped")

    async def close(self) -> None:
        """Cancel batches still in flight (shutdown only)."""
        tasks = [task for task in self._in_flight.values() if not task.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
