"""Operational API routes for librus_ics."""

from __future__ import annotations

import datetime
import logging
from typing import Any

from librus_ics.core.health_tracker import get_system_diagnostics
from librus_ics.domain.fragment_cache import Feed

logger = logging.getLogger(__name__)


def _artifact_age(deps: Any, feed: Feed, now: float) -> int | None:
    artifact = deps.artifacts.get(feed)
    if artifact is None:
        return None
    return int(artifact.age_seconds(now))


def register_api_routes(app: Any, deps: Any) -> None:
    """Register operational API routes.

    Args:
        app: aiohttp web application
        deps: AppDependencies container
    """
    from aiohttp import web

    async def health_check(_request: Any) -> Any:
        """Health check endpoint for monitoring system status."""
        now = datetime.datetime.now(datetime.UTC)
        now_iso = now.replace(microsecond=0).isoformat()
        now_ts = now.timestamp()

        health_status = deps.health_tracker.get_health_status(now_iso)
        diag = get_system_diagnostics()

        health_data = {
            "status": health_status.status,
            "server_time_iso": health_status.server_time_iso,
            "server_status": {
                "uptime_s": health_status.uptime_seconds,
                "pid": health_status.pid,
            },
            "data_status": {
                "fragment_count": health_status.fragment_count,
                "event_count": health_status.event_count,
                "last_refresh_success_age_s": health_status.last_refresh_success_age_seconds,
                "last_batch": health_status.last_batch,
                "lessons_artifact_age_s": _artifact_age(deps, Feed.LESSONS, now_ts),
                "events_artifact_age_s": _artifact_age(deps, Feed.EVENTS, now_ts),
            },
            "upstream_status": {
                "session_valid": deps.token.is_valid,
                "auth_attempts": deps.token.auth_attempts,
                "queue_pending": deps.queue.pending,
                "queue_processing": deps.queue.is_processing,
            },
            "background_tasks": health_status.background_tasks,
            "system_diagnostics": {
                "platform": diag.platform,
                "python_version": diag.python_version,
                "event_loop_running": diag.event_loop_running,
            },
        }

        http_status = 200 if health_status.status == "ok" else 503
        return web.json_response(health_data, status=http_status)

    app.router.add_get("/api/health", health_check)
