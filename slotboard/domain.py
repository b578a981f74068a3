from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime


@dataclass(frozen=True)
class SessionType:
    """Booking rules for one kind of session.

    ``days`` uses Sunday = 0 ... Saturday = 6. The working window is civil
    wall-clock time in the page's timezone.
    """

    key: str
    name: str
    duration: int  # minutes
    buffer: int  # minutes, applied on both sides
    days: frozenset[int]
    start_hour: int
    start_min: int
    end_hour: int
    end_min: int
    max_per_day: int
    lead_time_hours: float
    description: str = ""
    duration_label: str = ""

    def __post_init__(self) -> None:
        if self.duration <= 0:
            raise ValueError(f"{self.key}: duration must be > 0")
        if self.buffer < 0:
            raise ValueError(f"{self.key}: buffer must be >= 0")
        if self.max_per_day < 0:
            raise ValueError(f"{self.key}: max_per_day must be >= 0")
        if self.lead_time_hours < 0:
            raise ValueError(f"{self.key}: lead_time_hours must be >= 0")
        if any(d not in range(7) for d in self.days):
            raise ValueError(f"{self.key}: days must be weekday numbers 0-6 (Sunday=0)")
        for hour, minute in ((self.start_hour, self.start_min), (self.end_hour, self.end_min)):
            if not (0 <= hour <= 24 and 0 <= minute < 60) or (hour == 24 and minute):
                raise ValueError(f"{self.key}: invalid window bound {hour:02d}:{minute:02d}")
        if self.window_start_minutes >= self.window_end_minutes:
            raise ValueError(f"{self.key}: window start must be before window end")

    @property
    def window_start_minutes(self) -> int:
        return self.start_hour * 60 + self.start_min

    @property
    def window_end_minutes(self) -> int:
        return self.end_hour * 60 + self.end_min


@dataclass(frozen=True, order=True)
class BusyInterval:
    """Already-committed time, ``[start, end)``."""

    start: datetime
    end: datetime

    def __post_init__(self) -> None:
        if self.start.tzinfo is None or self.end.tzinfo is None:
            raise ValueError("BusyInterval bounds must be timezone-aware")
        if not self.start < self.end:
            raise ValueError(f"BusyInterval start must be before end ({self.start} >= {self.end})")


@dataclass(frozen=True)
class Slot:
    start: datetime
    end: datetime
    label: str  # 9:15 AM
    date_key: str  # YYYY-MM-DD (civil)
    date_long: str
    week_key: str  # date key of the week's Monday
    week_label: str
    google_start: str  # YYYYMMDDTHHMMSS (civil)
    google_end: str


@dataclass
class DayGroup:
    label: str
    slots: list[Slot] = field(default_factory=list)


@dataclass
class WeekGroup:
    label: str
    # Insertion order is presentation order.
    days: dict[str, DayGroup] = field(default_factory=dict)


class FeedError(RuntimeError):
    """The calendar feed could not be fetched or parsed.

    Raised at the boundary with the feed; the slot engine never sees
    partial busy data.
    """


_WEEKDAYS = frozenset({1, 2, 3, 4, 5})

DEFAULT_SESSION_TYPES: dict[str, SessionType] = {
    "quick-checkin": SessionType(
        key="quick-checkin",
        name="Quick Check-in",
        duration=15,
        buffer=5,
        days=_WEEKDAYS,
        start_hour=8,
        start_min=0,
        end_hour=16,
        end_min=0,
        max_per_day=6,
        lead_time_hours=4,
        description="Quick questions, status updates, or minor clarifications. Get in, get answers, get back to work.",
        duration_label="15 min",
    ),
    "standard-checkin": SessionType(
        key="standard-checkin",
        name="Standard Check-in",
        duration=30,
        buffer=10,
        days=_WEEKDAYS,
        start_hour=8,
        start_min=0,
        end_hour=16,
        end_min=0,
        max_per_day=4,
        lead_time_hours=4,
        description="Regular progress check, discuss next steps, review recent data. The go-to session for most needs.",
        duration_label="30 min",
    ),
    "working-session": SessionType(
        key="working-session",
        name="Working Session",
        duration=60,
        buffer=15,
        days=_WEEKDAYS,
        start_hour=8,
        start_min=30,
        end_hour=15,
        end_min=0,
        max_per_day=2,
        lead_time_hours=24,
        description="Collaborative work on Playbook tasks, deeper problem-solving, or building out a plan together.",
        duration_label="1 hour",
    ),
    "deep-dive": SessionType(
        key="deep-dive",
        name="Deep Dive",
        duration=120,
        buffer=15,
        days=frozenset({2, 3, 4}),
        start_hour=9,
        start_min=0,
        end_hour=14,
        end_min=0,
        max_per_day=1,
        lead_time_hours=48,
        description="Comprehensive planning, complex problem-solving, or team facilitation for bigger initiatives.",
        duration_label="2 hours",
    ),
}
