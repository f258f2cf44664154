"""Mapping of raw Librus records into :class:`EventRecord` objects.

Two shapes are handled:

- a weekly timetable, ``{"YYYY-MM-DD": [[slot, ...], ...]}`` with one inner
  list per lesson number (empty for free periods);
- the homework listing together with the category and subject dictionaries
  it references by numeric id.

Individual malformed entries are skipped with a warning so one odd slot
does not cost the whole week.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from typing import Any, Optional

from pydantic import ValidationError

from librus_ics.calendar.models import (
    EVENTS_UID_DOMAIN,
    LESSONS_UID_DOMAIN,
    DateTimeTuple,
    EventRecord,
)

logger = logging.getLogger(__name__)

# Title used when a homework references a category we do not know
UNKNOWN_CATEGORY_TITLE = "Zadanie domowe"


def parse_date(value: str) -> tuple[int, int, int]:
    """Parse ``YYYY-MM-DD`` into a (year, month, day) tuple."""
    year, month, day = (int(part) for part in value.split("-"))
    return year, month, day


def parse_clock(value: str) -> tuple[int, int]:
    """Parse ``HH:MM`` (seconds, if present, are ignored) into (hour, minute)."""
    parts = value.split(":")
    return int(parts[0]), int(parts[1])


def combine(date_value: str, clock_value: str) -> DateTimeTuple:
    """Combine a date and a clock string into a (y, m, d, h, min) tuple."""
    return (*parse_date(date_value), *parse_clock(clock_value))


def _teacher_name(slot: Mapping[str, Any]) -> str:
    teacher = slot.get("Teacher") or {}
    return f"{teacher.get('FirstName', '')} {teacher.get('LastName', '')}".strip()


def _lesson_uid(day: str, hour_from: str, taken: set[str]) -> str:
    """``{date}-{HourFrom}@...``; later slots of the same start get ``-2``, ``-3``..."""
    uid = f"{day}-{hour_from}@{LESSONS_UID_DOMAIN}"
    suffix = 1
    while uid in taken:
        suffix += 1
        uid = f"{day}-{hour_from}-{suffix}@{LESSONS_UID_DOMAIN}"
    return uid


def normalize_timetable(
    timetable: Mapping[str, Iterable[Iterable[Mapping[str, Any]]]],
    excluded_subjects: Iterable[str] = (),
) -> list[EventRecord]:
    """Turn one week of timetable slots into lesson records.

    Slots whose subject is excluded, and cancelled slots, are dropped. Split
    groups put several slots in one lesson number; each keeps its own record
    with a distinct uid.

    Args:
        timetable: Slots keyed by ``YYYY-MM-DD``
        excluded_subjects: Subject names that never appear on the calendar

    Returns:
        Lesson records, uid ``{date}-{HourFrom}@lessons.librus``
    """
    excluded = set(excluded_subjects)
    records: list[EventRecord] = []
    uids: set[str] = set()

    for day, lesson_numbers in timetable.items():
        for slots in lesson_numbers or ():
            for slot in slots or ():
                try:
                    subject = (slot.get("Subject") or {}).get("Name")
                    if subject in excluded or slot.get("IsCancelled"):
                        continue

                    hour_from = slot["HourFrom"]
                    record = EventRecord(
                        uid=_lesson_uid(day, hour_from, uids),
                        title=subject or "",
                        description=_teacher_name(slot),
                        start=combine(day, hour_from),
                        end=combine(day, slot["HourTo"]),
                    )
                except (AttributeError, KeyError, TypeError, ValueError, ValidationError) as e:
                    logger.warning("Skipping malformed timetable slot on %s: %s", day, e)
                    continue

                if record.uid != f"{day}-{hour_from}@{LESSONS_UID_DOMAIN}":
                    logger.warning(
                        "Several lessons start at %s %s, storing %r as %s",
                        day,
                        hour_from,
                        record.title,
                        record.uid,
                    )
                uids.add(record.uid)
                records.append(record)

    return records


def build_lookup(items: Iterable[Mapping[str, Any]]) -> dict[int, Mapping[str, Any]]:
    """Index upstream dictionary entries by their numeric ``Id``."""
    lookup: dict[int, Mapping[str, Any]] = {}
    for item in items:
        try:
            lookup[int(item["Id"])] = item
        except (KeyError, TypeError, ValueError):
            logger.debug("Ignoring dictionary entry without numeric Id: %r", item)
    return lookup


def _ref_id(ref: Optional[Mapping[str, Any]]) -> Optional[int]:
    if not ref:
        return None
    try:
        return int(ref["Id"])
    except (KeyError, TypeError, ValueError):
        return None


def homework_title(
    homework: Mapping[str, Any],
    categories: Mapping[int, Mapping[str, Any]],
    subjects: Mapping[int, Mapping[str, Any]],
) -> str:
    """Category name, suffixed with ``" - " + subject`` when a subject is set."""
    category = categories.get(_ref_id(homework.get("Category")))  # type: ignore[arg-type]
    title = (category or {}).get("Name") or UNKNOWN_CATEGORY_TITLE

    subject_id = _ref_id(homework.get("Subject"))
    if subject_id is not None:
        subject = subjects.get(subject_id)
        if subject and subject.get("Name"):
            title = f"{title} - {subject['Name']}"

    return title


def normalize_homeworks(
    categories: Iterable[Mapping[str, Any]],
    subjects: Iterable[Mapping[str, Any]],
    homeworks: Iterable[Mapping[str, Any]],
) -> list[EventRecord]:
    """Turn the homework listing into event-feed records.

    Returns:
        Records with uid ``{Id}@events.librus``
    """
    category_lookup = build_lookup(categories)
    subject_lookup = build_lookup(subjects)
    records: list[EventRecord] = []
    uids: set[str] = set()

    for homework in homeworks:
        try:
            day = homework["Date"]
            record = EventRecord(
                uid=f"{int(homework['Id'])}@{EVENTS_UID_DOMAIN}",
                title=homework_title(homework, category_lookup, subject_lookup),
                description=homework.get("Content") or "",
                start=combine(day, homework["TimeFrom"]),
                end=combine(day, homework["TimeTo"]),
            )
        except (AttributeError, KeyError, TypeError, ValueError, ValidationError) as e:
            homework_id = homework.get("Id") if isinstance(homework, Mapping) else None
            logger.warning("Skipping malformed homework %r: %s", homework_id, e)
            continue

        if record.uid in uids:
            logger.warning("Skipping duplicate homework %s", record.uid)
            continue
        uids.add(record.uid)
        records.append(record)

    return records
