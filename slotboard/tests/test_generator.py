from __future__ import annotations

import datetime as dt
from unittest.mock import patch

from slotboard.config import Settings
from slotboard.domain import DEFAULT_SESSION_TYPES
from slotboard.generator import run_generation

UTC = dt.timezone.utc

_CALENDAR = """BEGIN:VCALENDAR
VERSION:2.0
PRODID:-//slotboard tests//EN
BEGIN:VEVENT
UID:busy-monday
DTSTART;TZID=America/New_York:20260302T090000
DTEND;TZID=America/New_York:20260302T093000
SUMMARY:Busy
END:VEVENT
END:VCALENDAR
"""


def _settings(tmp_path) -> Settings:
    # Tests must not reach the network.
    return Settings(
        ical_url="https://example.test/cal.ics",
        date_end=dt.datetime(2026, 3, 7, 5, 0, tzinfo=UTC),
        output_path=str(tmp_path / "index.html"),
    )


def test_run_generation_from_local_calendar_writes_page(tmp_path) -> None:
    settings = _settings(tmp_path)
    now = dt.datetime(2026, 3, 2, 12, 0, tzinfo=UTC)  # Monday 07:00 in New York

    with patch("slotboard.generator.fetch_ics_with_retry") as fetch:
        result = run_generation(settings, now=now, ics_text=_CALENDAR)
        fetch.assert_not_called()

    assert list(result.slot_counts) == list(DEFAULT_SESSION_TYPES)
    standard = result.slots["standard-checkin"]
    assert [s.label for s in standard if s.date_key == "2026-03-02"] == [
        "11:00 AM",
        "11:15 AM",
        "11:30 AM",
        "11:45 AM",
    ]
    assert result.slot_counts["standard-checkin"] == len(standard)
    assert list(result.grouped["standard-checkin"]) == ["2026-03-02"]

    html = (tmp_path / "index.html").read_text(encoding="utf-8")
    assert "Standard Check-in" in html
    assert "Availability last updated: Monday, March 2, 2026 at 7:00 AM" in html


def test_run_generation_fetches_when_no_calendar_given(tmp_path) -> None:
    settings = _settings(tmp_path)
    now = dt.datetime(2026, 3, 2, 12, 0, tzinfo=UTC)

    with patch("slotboard.generator.fetch_ics_with_retry", return_value=_CALENDAR) as fetch:
        result = run_generation(settings, now=now)

    fetch.assert_called_once_with(settings)
    assert result.output_path == settings.output_path
