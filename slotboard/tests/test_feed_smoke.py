"""Smoke/integration test for the calendar feed.

- Hits the real feed configured in ICAL_URL.
- Skipped by default.

Run:
ICAL_URL="https://..." python -m pytest -q -m feed
"""

from __future__ import annotations

import datetime as dt
import os

import pytest

from slotboard.civil_clock import CivilClock
from slotboard.ics_feed import expand_busy_intervals, fetch_ics, filter_ics_data

pytestmark = pytest.mark.feed


@pytest.mark.skipif(not os.getenv("ICAL_URL"), reason="Set ICAL_URL to run the feed smoke test")
def test_feed_fetch_and_expand_smoke() -> None:
    raw = fetch_ics(os.environ["ICAL_URL"], timeout_seconds=60)
    assert "BEGIN:VCALENDAR" in raw

    now = dt.datetime.now(dt.timezone.utc)
    busy = expand_busy_intervals(
        filter_ics_data(raw, min_year=now.year),
        window_start=now,
        window_end=now + dt.timedelta(days=30),
        tz=CivilClock(os.getenv("TIMEZONE", "America/New_York")).tz,
    )
    assert all(b.start < b.end for b in busy)
