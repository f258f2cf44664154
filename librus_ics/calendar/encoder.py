"""iCalendar encoding of normalized event records."""

from __future__ import annotations

import datetime
import logging
import zoneinfo
from collections.abc import Sequence
from typing import Callable, Optional, Protocol

from icalendar import Calendar, Event

from librus_ics.calendar.models import EventRecord
from librus_ics.core.exceptions import FormatError

logger = logging.getLogger(__name__)

PRODID = "-//librus-ics//Librus Synergia calendar//PL"


class CalendarEncoder(Protocol):
    """Turns event records into a calendar document."""

    def encode(self, records: Sequence[EventRecord]) -> bytes:
        """Encode ``records``; raise FormatError if the set cannot be encoded."""
        ...


class IcsEncoder:
    """RFC 5545 encoder backed by icalendar.

    Record times are local wall-clock values in ``timezone``; they are written
    as UTC so no VTIMEZONE block is needed. Events are emitted in
    chronological order.
    """

    def __init__(
        self,
        timezone: str = "Europe/Warsaw",
        calendar_name: Optional[str] = None,
        now: Optional[Callable[[], datetime.datetime]] = None,
    ) -> None:
        """Initialize encoder.

        Args:
            timezone: IANA zone the record tuples are expressed in
            calendar_name: Optional X-WR-CALNAME shown by calendar clients
            now: Clock for DTSTAMP (injectable for tests)

        Raises:
            zoneinfo.ZoneInfoNotFoundError: Unknown timezone name
        """
        self.tz = zoneinfo.ZoneInfo(timezone)
        self.calendar_name = calendar_name
        self._now = now or (lambda: datetime.datetime.now(datetime.UTC))

    def _to_utc(self, local: datetime.datetime) -> datetime.datetime:
        return local.replace(tzinfo=self.tz).astimezone(datetime.UTC)

    def encode(self, records: Sequence[EventRecord]) -> bytes:
        """Encode records into an iCalendar document.

        Raises:
            FormatError: Duplicate uid, impossible date, or end before start
        """
        seen: set[str] = set()
        timed: list[tuple[datetime.datetime, datetime.datetime, EventRecord]] = []

        for record in records:
            if record.uid in seen:
                raise FormatError(f"Duplicate event uid {record.uid!r}")
            seen.add(record.uid)

            try:
                start = self._to_utc(record.start_datetime())
                end = self._to_utc(record.end_datetime())
            except ValueError as e:
                raise FormatError(f"Invalid date in event {record.uid!r}: {e}") from e

            if end < start:
                raise FormatError(f"Event {record.uid!r} ends before it starts")

            timed.append((start, end, record))

        timed.sort(key=lambda item: (item[0], item[2].uid))

        cal = Calendar()
        cal.add("prodid", PRODID)
        cal.add("version", "2.0")
        cal.add("calscale", "GREGORIAN")
        cal.add("method", "PUBLISH")
        if self.calendar_name:
            cal.add("x-wr-calname", self.calendar_name)

        stamp = self._now()
        for start, end, record in timed:
            event = Event()
            event.add("uid", record.uid)
            event.add("summary", record.title)
            if record.description:
                event.add("description", record.description)
            event.add("dtstart", start)
            event.add("dtend", end)
            event.add("dtstamp", stamp)
            cal.add_component(event)

        logger.debug("Encoded %d events into iCalendar document", len(timed))
        return cal.to_ical()
