from __future__ import annotations

import datetime as dt
import logging
from dataclasses import dataclass

from slotboard.config import Settings
from slotboard.domain import Slot, WeekGroup
from slotboard.grouping import group_slots
from slotboard.ics_feed import expand_busy_intervals, fetch_ics_with_retry, filter_ics_data
from slotboard.page import render_page, write_page
from slotboard.slots import generate_all

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GenerationResult:
    slots: dict[str, list[Slot]]
    grouped: dict[str, dict[str, WeekGroup]]
    slot_counts: dict[str, int]
    output_path: str


def _format_counts(settings: Settings, slot_counts: dict[str, int]) -> str:
    return ", ".join(f"{settings.session_types[key].name}={count}" for key, count in slot_counts.items())


def run_generation(settings: Settings, *, now: dt.datetime | None = None, ics_text: str | None = None) -> GenerationResult:
    """Fetch busy time, compute slots for every session type and write the page."""
    now = now or dt.datetime.now(dt.timezone.utc)
    clock = settings.clock()

    if ics_text is None:
        logger.info("Fetching calendar data...")
        ics_text = fetch_ics_with_retry(settings)
        logger.info("Fetched %.1f MB of iCal data", len(ics_text) / 1024 / 1024)

    filtered = filter_ics_data(ics_text, min_year=settings.ics_min_year)
    logger.info("Filtered to %.0f KB of relevant iCal data", len(filtered) / 1024)

    busy = expand_busy_intervals(
        filtered,
        window_start=now,
        window_end=settings.date_end,
        tz=clock.tz,
        max_iterations=settings.ics_max_iterations,
    )
    logger.info("Found %d calendar events in range", len(busy))

    slots = generate_all(settings.session_types, now=now, horizon_end=settings.date_end, busy=busy, clock=clock)
    grouped = {key: group_slots(type_slots) for key, type_slots in slots.items()}
    slot_counts = {key: len(type_slots) for key, type_slots in slots.items()}

    html = render_page(
        grouped,
        session_types=settings.session_types,
        settings=settings,
        generated_at=clock.generated_label(now),
        slot_counts=slot_counts,
    )
    write_page(settings.output_path, html)
    logger.info("Generated %s (%.1f KB)", settings.output_path, len(html) / 1024)
    logger.info("Slots: %s", _format_counts(settings, slot_counts))

    return GenerationResult(slots=slots, grouped=grouped, slot_counts=slot_counts, output_path=settings.output_path)
