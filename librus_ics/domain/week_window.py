"""Week boundaries, school-year span and near/far week classification.

Pure functions: "now" is always passed in, nothing here reads the clock or
performs I/O. Weeks are identified by the ``datetime.date`` of their Monday
(a date is implicitly local midnight).
"""

from __future__ import annotations

import datetime
from collections.abc import Iterator
from enum import Enum
from typing import Union

DateLike = Union[datetime.date, datetime.datetime]

ONE_WEEK = datetime.timedelta(days=7)

# Current week plus this many weeks ahead are refreshed frequently
NEAR_WEEKS_AHEAD = 2

SCHOOL_YEAR_START_MONTH = 9
SCHOOL_YEAR_START_DAY = 1
SCHOOL_YEAR_END_MONTH = 6
SCHOOL_YEAR_END_DAY = 30


class WeekBucket(str, Enum):
    """Refresh class of a week relative to now."""

    NEAR = "near"
    FAR = "far"


def _as_date(d: DateLike) -> datetime.date:
    if isinstance(d, datetime.datetime):
        return d.date()
    return d


def monday_of(d: DateLike) -> datetime.date:
    """Return the Monday of the week containing ``d``.

    Sunday is the last day of its week, so a Sunday maps to the preceding
    Monday rather than the following one.
    """
    day = _as_date(d)
    return day - datetime.timedelta(days=day.weekday())


def week_start(offset_weeks: int, now: DateLike) -> datetime.date:
    """Monday of the current week shifted by ``offset_weeks`` (may be negative)."""
    return monday_of(now) + offset_weeks * ONE_WEEK


def week_key_str(week_key: datetime.date) -> str:
    """Canonical ``YYYY-MM-DD`` form of a week key."""
    return week_key.isoformat()


def _school_year_first_calendar_year(now: DateLike) -> int:
    today = _as_date(now)
    if today.month < SCHOOL_YEAR_START_MONTH:
        return today.year - 1
    return today.year


def school_year_start(now: DateLike) -> datetime.date:
    """First Monday on or after September 1 of the current school year."""
    year = _school_year_first_calendar_year(now)
    first_day = datetime.date(year, SCHOOL_YEAR_START_MONTH, SCHOOL_YEAR_START_DAY)
    return first_day + datetime.timedelta(days=(7 - first_day.weekday()) % 7)


def school_year_end(now: DateLike) -> datetime.date:
    """Monday of the week containing June 30 that closes the current school year."""
    year = _school_year_first_calendar_year(now) + 1
    return monday_of(datetime.date(year, SCHOOL_YEAR_END_MONTH, SCHOOL_YEAR_END_DAY))


class SchoolWeeks:
    """Every week key of a school year, first to last inclusive.

    A finite, restartable sequence: each iteration starts again from the first
    Monday, and ``len()`` is known without iterating.
    """

    def __init__(self, start: datetime.date, end: datetime.date) -> None:
        self.start = start
        self.end = end

    def __iter__(self) -> Iterator[datetime.date]:
        current = self.start
        while current <= self.end:
            yield current
            current += ONE_WEEK

    def __len__(self) -> int:
        if self.end < self.start:
            return 0
        return (self.end - self.start).days // 7 + 1

    def __contains__(self, week_key: object) -> bool:
        if not isinstance(week_key, datetime.date):
            return False
        return self.start <= week_key <= self.end and (week_key - self.start).days % 7 == 0

    def __repr__(self) -> str:
        return f"SchoolWeeks({self.start.isoformat()}..{self.end.isoformat()}, {len(self)} weeks)"


def all_school_weeks(now: DateLike) -> SchoolWeeks:
    """All week keys of the school year that ``now`` falls in."""
    return SchoolWeeks(school_year_start(now), school_year_end(now))


def classify(
    week_key: datetime.date, now: DateLike, weeks_ahead: int = NEAR_WEEKS_AHEAD
) -> WeekBucket:
    """Classify a week as NEAR (current week through ``weeks_ahead``) or FAR."""
    current = week_start(0, now)
    if current <= week_key <= current + weeks_ahead * ONE_WEEK:
        return WeekBucket.NEAR
    return WeekBucket.FAR


def near_weeks(now: DateLike, weeks_ahead: int = NEAR_WEEKS_AHEAD) -> list[datetime.date]:
    """Week keys refreshed by the near cycle: offsets 0 through ``weeks_ahead``."""
    return [week_start(offset, now) for offset in range(weeks_ahead + 1)]


def far_weeks(now: DateLike, weeks_ahead: int = NEAR_WEEKS_AHEAD) -> list[datetime.date]:
    """School-year week keys that are not near."""
    return [
        week
        for week in all_school_weeks(now)
        if classify(week, now, weeks_ahead) is WeekBucket.FAR
    ]
