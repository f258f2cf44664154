"""Homework and announced-test feed with a TTL-gated direct fetch path."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable

from librus_ics.calendar.encoder import CalendarEncoder
from librus_ics.calendar.normalization import normalize_homeworks
from librus_ics.core.exceptions import LibrusIcsError
from librus_ics.core.upstream_session import UpstreamSession
from librus_ics.domain.fragment_cache import ArtifactCache, Feed
from librus_ics.upstream.gateway import UpstreamGateway

logger = logging.getLogger(__name__)

DEFAULT_EVENTS_TTL_SECONDS = 30 * 60


class EventsFeed:
    """Serves the events document, fetching upstream at most once per TTL.

    Concurrent requests that miss the cache share a single fetch. When a
    fetch fails and an older document exists, the older document is served.
    """

    def __init__(
        self,
        session: UpstreamSession,
        gateway: UpstreamGateway,
        artifacts: ArtifactCache,
        encoder: CalendarEncoder,
        ttl_seconds: float = DEFAULT_EVENTS_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.session = session
        self.gateway = gateway
        self.artifacts = artifacts
        self.encoder = encoder
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._lock = asyncio.Lock()

    def _fresh_document(self) -> bytes | None:
        artifact = self.artifacts.get(Feed.EVENTS)
        if artifact is not None and artifact.age_seconds(self._clock()) < self.ttl_seconds:
            return artifact.document
        return None

    async def get_document(self) -> bytes:
        """Return the events document.

        Raises:
            LibrusIcsError: Fetch or encode failed and nothing was cached before
        """
        document = self._fresh_document()
        if document is not None:
            return document

        async with self._lock:
            # Another request may have refreshed while we waited
            document = self._fresh_document()
            if document is not None:
                return document

            try:
                return await self._refresh()
            except LibrusIcsError as e:
                stale = self.artifacts.get(Feed.EVENTS)
                if stale is None:
                    raise
                logger.warning(
                    "Events refresh failed, serving document from %.0fs ago: %s",
                    stale.age_seconds(self._clock()),
                    e,
                )
                return stale.document

    async def _refresh(self) -> bytes:
        categories = await self.session.call(
            self.gateway.fetch_homework_categories, description="homework categories"
        )
        subjects = await self.session.call(self.gateway.fetch_subjects, description="subjects")
        homeworks = await self.session.call(self.gateway.fetch_homeworks, description="homeworks")

        records = normalize_homeworks(categories, subjects, homeworks)
        document = self.encoder.encode(records)
        self.artifacts.replace(Feed.EVENTS, document)
        logger.info("Events calendar refreshed with %d entries", len(records))
        return document
