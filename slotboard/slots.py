from __future__ import annotations

import datetime as dt
import logging
from typing import Mapping, Sequence

from slotboard.civil_clock import AmbiguousCivilTimeError, CivilClock
from slotboard.domain import BusyInterval, SessionType, Slot

logger = logging.getLogger(__name__)

# Candidate start times step by this much, whatever the session duration.
GRID_MINUTES = 15


def _has_conflict(check_start: dt.datetime, check_end: dt.datetime, busy: Sequence[BusyInterval]) -> bool:
    return any(check_start < b.end and check_end > b.start for b in busy)


def _civil_minutes(clock: CivilClock, instant: dt.datetime, day: dt.date) -> int:
    """Wall-clock minutes of ``instant`` counted from midnight of ``day``."""
    civil = clock.to_civil(instant)
    return (civil.date - day).days * 24 * 60 + civil.hour * 60 + civil.minute


def build_slot(clock: CivilClock, start: dt.datetime, end: dt.datetime) -> Slot:
    return Slot(
        start=start,
        end=end,
        label=clock.time_label(start),
        date_key=clock.date_key(start),
        date_long=clock.date_long(start),
        week_key=clock.week_key(start),
        week_label=clock.week_label(start),
        google_start=clock.compact(start),
        google_end=clock.compact(end),
    )


def _slots_for_day(
    session_type: SessionType,
    day: dt.date,
    *,
    lead_cutoff: dt.datetime,
    busy: Sequence[BusyInterval],
    clock: CivilClock,
) -> list[Slot]:
    duration = dt.timedelta(minutes=session_type.duration)
    buffer = dt.timedelta(minutes=session_type.buffer)
    window_end = session_type.window_end_minutes

    accepted: list[Slot] = []
    candidate = session_type.window_start_minutes

    while len(accepted) < session_type.max_per_day:
        if candidate + session_type.duration > window_end or candidate >= window_end:
            break

        hour, minute = divmod(candidate, 60)
        try:
            slot_start = clock.from_civil(day.year, day.month, day.day, hour, minute)
        except AmbiguousCivilTimeError as e:
            logger.warning("%s: skipping candidate (%s)", session_type.key, e)
            candidate += GRID_MINUTES
            continue
        slot_end = slot_start + duration

        # Candidates rejected for lead time, conflicts or a civil end past the
        # window (spring-forward day) still use up a grid step but never
        # count against max_per_day.
        if (
            slot_start >= lead_cutoff
            and _civil_minutes(clock, slot_end, day) <= window_end
            and not _has_conflict(slot_start - buffer, slot_end + buffer, busy)
        ):
            accepted.append(build_slot(clock, slot_start, slot_end))

        candidate += GRID_MINUTES

    return accepted


def generate_slots(
    session_type: SessionType,
    *,
    now: dt.datetime,
    horizon_end: dt.datetime,
    busy: Sequence[BusyInterval],
    clock: CivilClock,
) -> list[Slot]:
    """Bookable slots for one session type between ``now`` and ``horizon_end``.

    Walks civil days from today, then the 15-minute grid inside the working
    window. The result is chronological by construction and is not sorted
    afterwards. ``busy`` does not need to be sorted.
    """
    lead_cutoff = now + dt.timedelta(hours=session_type.lead_time_hours)

    slots: list[Slot] = []
    day = clock.civil_date(now)
    while clock.midnight(day) < horizon_end:
        if day.isoweekday() % 7 in session_type.days:
            slots.extend(
                _slots_for_day(session_type, day, lead_cutoff=lead_cutoff, busy=busy, clock=clock)
            )
        day += dt.timedelta(days=1)

    return slots


def generate_all(
    session_types: Mapping[str, SessionType],
    *,
    now: dt.datetime,
    horizon_end: dt.datetime,
    busy: Sequence[BusyInterval],
    clock: CivilClock,
) -> dict[str, list[Slot]]:
    result: dict[str, list[Slot]] = {}
    for key, session_type in session_types.items():
        slots = generate_slots(session_type, now=now, horizon_end=horizon_end, busy=busy, clock=clock)
        logger.info("%s: %d available slots", session_type.name, len(slots))
        result[key] = slots
    return result
