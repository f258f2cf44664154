"""Unit tests for librus_ics.calendar.normalization."""

import pytest

from librus_ics.calendar.normalization import (
    UNKNOWN_CATEGORY_TITLE,
    build_lookup,
    combine,
    normalize_homeworks,
    normalize_timetable,
)
from librus_ics.core.config_manager import DEFAULT_EXCLUDED_SUBJECTS
from tests.fixtures.librus_data import lesson_slot

pytestmark = [pytest.mark.unit, pytest.mark.fast]


def test_normalize_timetable_when_only_excluded_and_cancelled_then_no_events() -> None:
    timetable = {
        "2024-09-02": [
            [lesson_slot("Programowanie aplikacji mobilnych")],
            [lesson_slot("Matematyka", "08:55", "09:40", cancelled=True)],
        ]
    }

    assert normalize_timetable(timetable, DEFAULT_EXCLUDED_SUBJECTS) == []


def test_normalize_timetable_when_regular_slot_then_lesson_record() -> None:
    timetable = {"2024-09-02": [[], [lesson_slot("Matematyka", "08:55", "09:40")]]}

    [record] = normalize_timetable(timetable)

    assert record.uid == "2024-09-02-08:55@lessons.librus"
    assert record.title == "Matematyka"
    assert record.description == "Anna Nowak"
    assert record.start == (2024, 9, 2, 8, 55)
    assert record.end == (2024, 9, 2, 9, 40)


def test_normalize_timetable_when_several_days_then_every_slot_kept() -> None:
    timetable = {
        "2024-09-02": [[lesson_slot("Matematyka")], [lesson_slot("Fizyka", "08:55", "09:40")]],
        "2024-09-03": [[lesson_slot("Chemia")]],
        "2024-09-04": [],
    }

    uids = {r.uid for r in normalize_timetable(timetable)}

    assert uids == {
        "2024-09-02-08:00@lessons.librus",
        "2024-09-02-08:55@lessons.librus",
        "2024-09-03-08:00@lessons.librus",
    }


def test_normalize_timetable_when_slot_malformed_then_skipped_with_warning(caplog) -> None:
    broken = lesson_slot("Fizyka")
    del broken["HourTo"]
    timetable = {"2024-09-02": [[broken], [lesson_slot("Matematyka", "08:55", "09:40")]]}

    records = normalize_timetable(timetable)

    assert [r.title for r in records] == ["Matematyka"]
    assert "Skipping malformed timetable slot" in caplog.text


def test_normalize_timetable_when_teacher_missing_then_empty_description() -> None:
    slot = lesson_slot("Matematyka")
    slot["Teacher"] = None

    [record] = normalize_timetable({"2024-09-02": [[slot]]})

    assert record.description == ""


def test_combine_when_clock_has_seconds_then_ignored() -> None:
    assert combine("2024-09-02", "08:00:00") == (2024, 9, 2, 8, 0)


def test_build_lookup_when_ids_mixed_then_indexed_by_int() -> None:
    lookup = build_lookup([{"Id": "3", "Name": "Zadanie"}, {"Name": "no id"}])
    assert list(lookup) == [3]


def test_normalize_timetable_when_split_groups_share_lesson_number_then_uids_unique() -> None:
    timetable = {
        "2024-10-14": [
            [lesson_slot("Matematyka"), lesson_slot("Fizyka"), lesson_slot("Chemia")],
            [lesson_slot("Historia", "08:55", "09:40")],
        ]
    }

    records = normalize_timetable(timetable)

    assert [(r.uid, r.title) for r in records] == [
        ("2024-10-14-08:00@lessons.librus", "Matematyka"),
        ("2024-10-14-08:00-2@lessons.librus", "Fizyka"),
        ("2024-10-14-08:00-3@lessons.librus", "Chemia"),
        ("2024-10-14-08:55@lessons.librus", "Historia"),
    ]


def test_normalize_timetable_when_split_group_partly_excluded_then_kept_uid_has_no_suffix() -> None:
    timetable = {
        "2024-10-14": [[lesson_slot("Programowanie aplikacji mobilnych"), lesson_slot("Fizyka")]]
    }

    [record] = normalize_timetable(timetable, DEFAULT_EXCLUDED_SUBJECTS)

    assert record.uid == "2024-10-14-08:00@lessons.librus"
    assert record.title == "Fizyka"


@pytest.mark.parametrize(
    "broken",
    [
        None,
        "08:00 Matematyka",
        {**lesson_slot("Fizyka"), "Subject": "Fizyka"},
        {**lesson_slot("Fizyka"), "Teacher": "Anna Nowak"},
    ],
)
def test_normalize_timetable_when_slot_not_a_mapping_then_skipped(broken) -> None:
    timetable = {"2024-10-14": [[broken], [lesson_slot("Matematyka", "08:55", "09:40")]]}

    records = normalize_timetable(timetable)

    assert [r.title for r in records] == ["Matematyka"]


def _homework(**overrides):
    homework = {
        "Id": 100,
        "Category": {"Id": 3},
        "Content": "Zadania 1-5",
        "Date": "2024-09-10",
        "TimeFrom": "08:00",
        "TimeTo": "08:45",
    }
    homework.update(overrides)
    return homework


def test_normalize_homeworks_when_no_subject_then_title_is_category() -> None:
    [record] = normalize_homeworks([{"Id": 3, "Name": "Zadanie"}], [], [_homework()])

    assert record.uid == "100@events.librus"
    assert record.title == "Zadanie"
    assert record.description == "Zadania 1-5"
    assert record.start == (2024, 9, 10, 8, 0)
    assert record.end == (2024, 9, 10, 8, 45)


def test_normalize_homeworks_when_subject_set_then_suffixed() -> None:
    [record] = normalize_homeworks(
        [{"Id": 3, "Name": "Sprawdzian"}],
        [{"Id": 7, "Name": "Fizyka"}],
        [_homework(Subject={"Id": 7})],
    )

    assert record.title == "Sprawdzian - Fizyka"


def test_normalize_homeworks_when_unknown_category_then_fallback_title() -> None:
    [record] = normalize_homeworks([], [], [_homework(Category={"Id": 99})])

    assert record.title == UNKNOWN_CATEGORY_TITLE


def test_normalize_homeworks_when_unknown_subject_then_no_suffix() -> None:
    [record] = normalize_homeworks(
        [{"Id": 3, "Name": "Zadanie"}], [], [_homework(Subject={"Id": 42})]
    )

    assert record.title == "Zadanie"


def test_normalize_homeworks_when_content_missing_then_empty_description() -> None:
    [record] = normalize_homeworks([{"Id": 3, "Name": "Zadanie"}], [], [_homework(Content=None)])

    assert record.description == ""


def test_normalize_homeworks_when_entry_malformed_then_skipped() -> None:
    records = normalize_homeworks(
        [{"Id": 3, "Name": "Zadanie"}],
        [],
        [_homework(Id=1, TimeFrom="later"), _homework(Id=2)],
    )

    assert [r.uid for r in records] == ["2@events.librus"]


def test_normalize_homeworks_when_entry_not_a_mapping_then_skipped() -> None:
    records = normalize_homeworks([{"Id": 3, "Name": "Zadanie"}], [], [None, "100", _homework()])

    assert [r.uid for r in records] == ["100@events.librus"]


def test_normalize_homeworks_when_id_repeated_then_first_kept() -> None:
    records = normalize_homeworks(
        [{"Id": 3, "Name": "Zadanie"}],
        [],
        [_homework(Content="first"), _homework(Content="second")],
    )

    assert [(r.uid, r.description) for r in records] == [("100@events.librus", "first")]
