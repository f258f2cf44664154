"""In-memory stores for per-week fragments and compiled feed documents.

Both stores are written only by the refresh pipeline (one batch at a time)
and read without locks by request handlers. Every write is a single
dict-item or attribute assignment of an immutable value, so readers see
either the old or the new value, never a mix.
"""

from __future__ import annotations

import datetime
import time
from collections.abc import Iterator
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from librus_ics.calendar.models import EventRecord


class Feed(str, Enum):
    """Logical calendar feeds served to clients."""

    LESSONS = "lessons"
    EVENTS = "events"


@dataclass(frozen=True)
class WeekFragment:
    """Normalized events of one week plus the time they were fetched.

    Attributes:
        week_key: Monday identifying the week
        events: Lesson records of that week
        fetched_at: Epoch seconds of the successful fetch
    """

    week_key: datetime.date
    events: tuple[EventRecord, ...]
    fetched_at: float


@dataclass(frozen=True)
class CompiledArtifact:
    """Client-ready encoded document of one feed."""

    document: bytes
    compiled_at: float

    def age_seconds(self, now: float) -> float:
        """Seconds elapsed since compilation."""
        return now - self.compiled_at


class WeekFragmentCache:
    """Week key to fragment mapping; the unit of incremental storage."""

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._fragments: dict[datetime.date, WeekFragment] = {}

    def get(self, week_key: datetime.date) -> Optional[WeekFragment]:
        """Return the fragment of ``week_key`` if one was ever fetched."""
        return self._fragments.get(week_key)

    def put(self, week_key: datetime.date, events: list[EventRecord]) -> WeekFragment:
        """Replace the fragment of ``week_key`` wholesale with fresh events."""
        fragment = WeekFragment(week_key=week_key, events=tuple(events), fetched_at=self._clock())
        self._fragments[week_key] = fragment
        return fragment

    def week_keys(self) -> list[datetime.date]:
        """Cached week keys in chronological order."""
        return sorted(self._fragments)

    def all_events(self) -> list[EventRecord]:
        """Concatenation of every fragment's events (order across weeks is irrelevant)."""
        events: list[EventRecord] = []
        for fragment in list(self._fragments.values()):
            events.extend(fragment.events)
        return events

    def event_count(self) -> int:
        """Total number of events across fragments."""
        return sum(len(fragment.events) for fragment in list(self._fragments.values()))

    def __contains__(self, week_key: object) -> bool:
        return week_key in self._fragments

    def __len__(self) -> int:
        return len(self._fragments)

    def __iter__(self) -> Iterator[WeekFragment]:
        return iter(list(self._fragments.values()))


class ArtifactCache:
    """Latest compiled document per feed."""

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._artifacts: dict[Feed, CompiledArtifact] = {}

    def get(self, feed: Feed) -> Optional[CompiledArtifact]:
        """Return the current artifact of ``feed``, or None before the first compile."""
        return self._artifacts.get(feed)

    def replace(self, feed: Feed, document: bytes) -> CompiledArtifact:
        """Atomically swap in a freshly compiled document."""
        artifact = CompiledArtifact(document=document, compiled_at=self._clock())
        self._artifacts[feed] = artifact
        return artifact

    def is_fresh(self, feed: Feed, ttl_seconds: float) -> bool:
        """True if ``feed`` has an artifact younger than ``ttl_seconds``."""
        artifact = self._artifacts.get(feed)
        return artifact is not None and artifact.age_seconds(self._clock()) < ttl_seconds
