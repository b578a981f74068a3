from __future__ import annotations

import datetime as dt

from slotboard.civil_clock import CivilClock
from slotboard.grouping import group_slots
from slotboard.slots import build_slot

CLOCK = CivilClock("America/New_York")


def _slot(*fields: int):
    start = CLOCK.from_civil(*fields)
    return build_slot(CLOCK, start, start + dt.timedelta(minutes=30))


def test_groups_by_week_then_day_in_input_order() -> None:
    slots = [
        _slot(2026, 3, 2, 8, 0),
        _slot(2026, 3, 2, 8, 15),
        _slot(2026, 3, 4, 9, 0),
        _slot(2026, 3, 9, 10, 0),  # next week, after the DST change
    ]

    weeks = group_slots(slots)

    assert list(weeks) == ["2026-03-02", "2026-03-09"]
    first = weeks["2026-03-02"]
    assert first.label == "Week of March 2"
    assert list(first.days) == ["2026-03-02", "2026-03-04"]
    assert first.days["2026-03-02"].label == "Monday, March 2"
    assert [s.label for s in first.days["2026-03-02"].slots] == ["8:00 AM", "8:15 AM"]

    second = weeks["2026-03-09"]
    assert second.label == "Week of March 9"
    assert [s.label for s in second.days["2026-03-09"].slots] == ["10:00 AM"]


def test_sunday_slots_join_the_week_that_started_monday() -> None:
    weeks = group_slots([_slot(2026, 3, 6, 9, 0), _slot(2026, 3, 8, 9, 0)])

    assert list(weeks) == ["2026-03-02"]
    assert list(weeks["2026-03-02"].days) == ["2026-03-06", "2026-03-08"]


def test_grouping_keeps_insertion_order_and_does_not_sort() -> None:
    # Ordering comes from the generator; grouping must not reorder.
    later, earlier = _slot(2026, 3, 10, 9, 0), _slot(2026, 3, 3, 9, 0)

    weeks = group_slots([later, earlier])

    assert list(weeks) == ["2026-03-09", "2026-03-02"]


def test_empty_input_gives_empty_grouping() -> None:
    assert group_slots([]) == {}
