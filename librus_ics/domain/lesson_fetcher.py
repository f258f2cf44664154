"""Per-week timetable fetching and lessons artifact compilation."""

from __future__ import annotations

import datetime
import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Optional

from librus_ics.calendar.encoder import CalendarEncoder
from librus_ics.calendar.models import EventRecord
from librus_ics.calendar.normalization import normalize_timetable
from librus_ics.core.exceptions import FormatError, UpstreamError
from librus_ics.core.upstream_session import UpstreamSession
from librus_ics.domain.fragment_cache import ArtifactCache, Feed, WeekFragmentCache
from librus_ics.domain.week_window import week_key_str
from librus_ics.upstream.gateway import UpstreamGateway

logger = logging.getLogger(__name__)


@dataclass
class WeekFetchResult:
    """Outcome of one week fetch.

    ``fresh`` is True only when the fragment was replaced in this call. On
    failure ``events`` holds the previously cached events (possibly empty)
    and ``error`` the reason.
    """

    week_key: datetime.date
    events: list[EventRecord] = field(default_factory=list)
    fresh: bool = False
    error: Optional[Exception] = None


class LessonFetcher:
    """Fetches timetable weeks into the fragment cache and compiles the lessons feed."""

    def __init__(
        self,
        session: UpstreamSession,
        gateway: UpstreamGateway,
        fragments: WeekFragmentCache,
        artifacts: ArtifactCache,
        encoder: CalendarEncoder,
        excluded_subjects: Iterable[str] = (),
    ) -> None:
        self.session = session
        self.gateway = gateway
        self.fragments = fragments
        self.artifacts = artifacts
        self.encoder = encoder
        self.excluded_subjects = tuple(excluded_subjects)

    async def fetch_week(self, week_key: datetime.date) -> WeekFetchResult:
        """Fetch one week and replace its fragment.

        Upstream failures and unreadable pages never propagate: the previous
        fragment is kept and its events are returned together with the error.
        """
        label = week_key_str(week_key)

        try:
            timetable = await self.session.call(
                lambda: self.gateway.fetch_timetable_week(week_key),
                description=f"timetable week {label}",
            )
        except UpstreamError as e:
            logger.warning("Failed to fetch timetable week %s: %s", label, e)
            return self._keep_previous(week_key, e)

        try:
            events = normalize_timetable(timetable, self.excluded_subjects)
        except Exception as e:
            logger.exception("Unreadable timetable for week %s, keeping cached lessons", label)
            return self._keep_previous(week_key, e)

        self.fragments.put(week_key, events)
        logger.debug("Week %s refreshed with %d lessons", label, len(events))
        return WeekFetchResult(week_key=week_key, events=events, fresh=True)

    def _keep_previous(self, week_key: datetime.date, error: Exception) -> WeekFetchResult:
        previous = self.fragments.get(week_key)
        events = list(previous.events) if previous else []
        return WeekFetchResult(week_key=week_key, events=events, error=error)

    def compile_artifact(self) -> bool:
        """Encode every cached lesson into the lessons artifact.

        Returns:
            True if the artifact was replaced, False if encoding failed and
            the previous artifact was kept
        """
        events = self.fragments.all_events()
        try:
            document = self.encoder.encode(events)
        except FormatError as e:
            logger.error("Failed to compile lessons calendar, keeping previous one: %s", e)
            return False

        self.artifacts.replace(Feed.LESSONS, document)
        logger.info(
            "Compiled lessons calendar: %d events from %d weeks", len(events), len(self.fragments)
        )
        return True
