"""Calendar feed routes: events, lessons and the legacy /calendar alias."""

from __future__ import annotations

import logging
from typing import Any

from librus_ics.core.exceptions import LibrusIcsError, NotReadyError
from librus_ics.domain.fragment_cache import Feed

logger = logging.getLogger(__name__)

CALENDAR_CONTENT_TYPE = "text/calendar"
NOT_READY_MESSAGE = "Calendar data not ready yet, please try again in a moment"
NOT_READY_RETRY_AFTER_SECONDS = 30


def register_feed_routes(app: Any, deps: Any) -> None:
    """Register calendar feed routes.

    Args:
        app: aiohttp web application
        deps: AppDependencies with events_feed, artifacts and scheduler
    """
    from aiohttp import web

    def _calendar_response(document: bytes, filename: str) -> Any:
        return web.Response(
            body=document,
            content_type=CALENDAR_CONTENT_TYPE,
            charset="utf-8",
            headers={"Content-Disposition": f'inline; filename="{filename}"'},
        )

    async def events(_request: Any) -> Any:
        """Homework and announced tests, refreshed at most once per TTL."""
        try:
            document = await deps.events_feed.get_document()
        except LibrusIcsError:
            logger.exception("Failed to fetch events")
            return web.Response(status=500, text="Failed to fetch events")
        return _calendar_response(document, "events.ics")

    async def _lessons_document() -> bytes:
        artifact = deps.artifacts.get(Feed.LESSONS)
        if artifact is None:
            logger.info("Lessons calendar requested before first compile, refreshing near weeks")
            await deps.scheduler.ensure_lessons()
            artifact = deps.artifacts.get(Feed.LESSONS)
        if artifact is None:
            raise NotReadyError("No lessons calendar compiled yet")
        return artifact.document

    async def lessons(_request: Any) -> Any:
        """Compiled lessons calendar; triggers a near refresh if nothing is cached yet."""
        try:
            document = await _lessons_document()
        except NotReadyError:
            return web.Response(
                status=503,
                text=NOT_READY_MESSAGE,
                headers={"Retry-After": str(NOT_READY_RETRY_AFTER_SECONDS)},
            )
        except Exception:
            logger.exception("Failed to fetch lessons")
            return web.Response(status=500, text="Failed to fetch lessons")

        return _calendar_response(document, "lessons.ics")

    app.router.add_get("/events", events)
    app.router.add_get("/calendar", events)
    app.router.add_get("/lessons", lessons)
