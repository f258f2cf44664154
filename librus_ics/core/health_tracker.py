"""Health tracking and monitoring for the librus_ics server."""

from __future__ import annotations

import os
import time
from dataclasses import dataclass
from typing import Any, Optional

# A refresh older than this marks the service degraded (two missed near cycles).
DEFAULT_STALE_AFTER_SECONDS = 60 * 60

# Scheduler heartbeat older than this marks the background task stale.
HEARTBEAT_STALE_SECONDS = 60 * 60


@dataclass
class HealthStatus:
    """Health status information for the server."""

    status: str  # "ok" or "degraded"
    server_time_iso: str
    uptime_seconds: int
    pid: int
    fragment_count: int
    event_count: int
    last_refresh_success_age_seconds: Optional[int]
    last_batch: Optional[str]
    background_tasks: list[dict[str, Any]]


@dataclass
class SystemDiagnostics:
    """System diagnostics information."""

    platform: str
    python_version: str
    event_loop_running: bool


class HealthTracker:
    """In-memory health tracking for the refresh pipeline."""

    def __init__(self, stale_after_seconds: float = DEFAULT_STALE_AFTER_SECONDS) -> None:
        """Initialize health tracker with default values."""
        self.stale_after_seconds = stale_after_seconds
        self._start_time: float = time.time()
        self._last_refresh_attempt: Optional[float] = None
        self._last_refresh_success: Optional[float] = None
        self._fragment_count: int = 0
        self._event_count: int = 0
        self._last_batch: Optional[str] = None
        self._scheduler_heartbeat: Optional[float] = None

    def record_refresh_attempt(self, batch: str) -> None:
        """Record that a refresh batch started.

        Args:
            batch: Batch kind ("startup", "near" or "far")
        """
        self._last_refresh_attempt = time.time()
        self._last_batch = batch

    def record_refresh_success(self, fragment_count: int, event_count: int) -> None:
        """Record a batch that refreshed at least one fragment.

        Args:
            fragment_count: Number of weeks cached after the batch
            event_count: Number of lesson events across all fragments
        """
        self._last_refresh_success = time.time()
        self._fragment_count = fragment_count
        self._event_count = event_count

    def record_scheduler_heartbeat(self) -> None:
        """Record that the scheduler loop is alive."""
        self._scheduler_heartbeat = time.time()

    def get_uptime_seconds(self) -> int:
        """Get server uptime in seconds."""
        return int(time.time() - self._start_time)

    def get_last_refresh_age_seconds(self) -> Optional[int]:
        """Get age of last successful refresh in seconds, or None if never refreshed."""
        if self._last_refresh_success is None:
            return None
        return int(time.time() - self._last_refresh_success)

    def get_background_task_status(self) -> dict[str, Any]:
        """Get refresh scheduler task status."""
        if self._scheduler_heartbeat is None:
            return {
                "name": "refresh_scheduler",
                "status": "unknown",
                "last_heartbeat_age_s": None,
            }

        heartbeat_age = int(time.time() - self._scheduler_heartbeat)
        status = "running" if heartbeat_age < HEARTBEAT_STALE_SECONDS else "stale"

        return {
            "name": "refresh_scheduler",
            "status": status,
            "last_heartbeat_age_s": heartbeat_age,
        }

    def determine_overall_status(self) -> str:
        """Determine overall health status: "ok" or "degraded"."""
        last_success_age = self.get_last_refresh_age_seconds()

        if last_success_age is None:
            return "degraded"

        if last_success_age > self.stale_after_seconds:
            return "degraded"

        return "ok"

    def get_health_status(self, current_time_iso: str) -> HealthStatus:
        """Get comprehensive health status.

        Args:
            current_time_iso: Current time in ISO format

        Returns:
            HealthStatus object with all health information
        """
        return HealthStatus(
            status=self.determine_overall_status(),
            server_time_iso=current_time_iso,
            uptime_seconds=self.get_uptime_seconds(),
            pid=os.getpid(),
            fragment_count=self._fragment_count,
            event_count=self._event_count,
            last_refresh_success_age_seconds=self.get_last_refresh_age_seconds(),
            last_batch=self._last_batch,
            background_tasks=[self.get_background_task_status()],
        )


def get_system_diagnostics() -> SystemDiagnostics:
    """Get system diagnostics information."""
    import asyncio
    import platform
    import sys

    event_loop_running = False
    try:
        asyncio.get_running_loop()
        event_loop_running = True
    except RuntimeError:
        pass

    return SystemDiagnostics(
        platform=platform.platform(),
        python_version=sys.version.split()[0],
        event_loop_running=event_loop_running,
    )
