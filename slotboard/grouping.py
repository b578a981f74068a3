from __future__ import annotations

from typing import Iterable

from slotboard.domain import DayGroup, Slot, WeekGroup


def group_slots(slots: Iterable[Slot]) -> dict[str, WeekGroup]:
    """Fold slots into week key -> date key -> slots.

    The input must already be chronological: weeks, days and slots keep
    insertion order and nothing here sorts them.
    """
    weeks: dict[str, WeekGroup] = {}
    for slot in slots:
        week = weeks.get(slot.week_key)
        if week is None:
            week = weeks[slot.week_key] = WeekGroup(label=slot.week_label)

        day = week.days.get(slot.date_key)
        if day is None:
            day = week.days[slot.date_key] = DayGroup(label=slot.date_long)

        day.slots.append(slot)
    return weeks
