from __future__ import annotations

import datetime as dt
from dataclasses import dataclass
from enum import Enum
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

UTC = dt.timezone.utc

# How many discrepancy shifts ``resolve`` may apply. One shift is enough away
# from a transition; a second absorbs a whole-hour offset change crossed by the
# first shift.
_MAX_CORRECTIONS = 2

# en-US names, indexed the way the rest of the module counts.
_MONTH_NAMES = (
    "January",
    "February",
    "March",
    "April",
    "May",
    "June",
    "July",
    "August",
    "September",
    "October",
    "November",
    "December",
)
_DAY_NAMES = ("Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday")


@dataclass(frozen=True)
class CivilDateTime:
    year: int
    month: int
    day: int
    hour: int
    minute: int
    weekday: int  # Sunday = 0

    @property
    def date(self) -> dt.date:
        return dt.date(self.year, self.month, self.day)


class CivilStatus(Enum):
    EXACT = "exact"
    # Wall time skipped by a spring-forward transition.
    NONEXISTENT = "nonexistent"
    # Wall time repeated by a fall-back transition; the first occurrence is returned.
    AMBIGUOUS = "ambiguous"


@dataclass(frozen=True)
class CivilResolution:
    instant: dt.datetime
    status: CivilStatus

    @property
    def exact(self) -> bool:
        return self.status is CivilStatus.EXACT


class AmbiguousCivilTimeError(ValueError):
    def __init__(self, wall: dt.datetime, status: CivilStatus, tz_name: str):
        super().__init__(f"{wall:%Y-%m-%d %H:%M} is {status.value} in {tz_name}")
        self.wall = wall
        self.status = status


class CivilClock:
    """Wall-clock arithmetic in one fixed IANA timezone.

    Instants are timezone-aware datetimes; everything returned is in UTC.
    """

    def __init__(self, tz_name: str):
        try:
            self.tz = ZoneInfo(tz_name)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise RuntimeError(f"Unknown timezone: {tz_name!r}") from e
        self.tz_name = tz_name

    def __repr__(self) -> str:
        return f"CivilClock({self.tz_name!r})"

    def _local(self, instant: dt.datetime) -> dt.datetime:
        if instant.tzinfo is None:
            raise ValueError(f"Expected a timezone-aware instant, got naive {instant!r}")
        return instant.astimezone(self.tz)

    def _wall(self, instant: dt.datetime) -> dt.datetime:
        return self._local(instant).replace(tzinfo=None, fold=0)

    def to_civil(self, instant: dt.datetime) -> CivilDateTime:
        local = self._local(instant)
        return CivilDateTime(
            year=local.year,
            month=local.month,
            day=local.day,
            hour=local.hour,
            minute=local.minute,
            weekday=local.isoweekday() % 7,
        )

    def resolve(self, year: int, month: int, day: int, hour: int, minute: int) -> CivilResolution:
        """Find the instant whose wall-clock fields are the requested ones.

        Starts from the fields read as UTC and shifts by the observed
        wall-clock discrepancy, at most ``_MAX_CORRECTIONS`` times. A request
        that still does not round-trip falls in a DST gap.
        """
        wanted = dt.datetime(year, month, day, hour, minute)
        guess = wanted.replace(tzinfo=UTC)

        for _ in range(_MAX_CORRECTIONS):
            drift = wanted - self._wall(guess)
            if not drift:
                break
            guess += drift

        if self._wall(guess) != wanted:
            return CivilResolution(guess, CivilStatus.NONEXISTENT)

        first = wanted.replace(tzinfo=self.tz, fold=0)
        second = wanted.replace(tzinfo=self.tz, fold=1)
        if first.utcoffset() != second.utcoffset():
            # Converged on one of two instants; report the earlier one.
            return CivilResolution(first.astimezone(UTC), CivilStatus.AMBIGUOUS)

        return CivilResolution(guess, CivilStatus.EXACT)

    def from_civil(self, year: int, month: int, day: int, hour: int, minute: int) -> dt.datetime:
        resolution = self.resolve(year, month, day, hour, minute)
        if not resolution.exact:
            raise AmbiguousCivilTimeError(
                dt.datetime(year, month, day, hour, minute), resolution.status, self.tz_name
            )
        return resolution.instant

    def civil_date(self, instant: dt.datetime) -> dt.date:
        return self._local(instant).date()

    def midnight(self, day: dt.date) -> dt.datetime:
        # Midnight can itself sit in a gap in a few zones; the nearest
        # resolved instant is good enough for horizon checks.
        return self.resolve(day.year, day.month, day.day, 0, 0).instant

    def date_key(self, instant: dt.datetime) -> str:
        return self.civil_date(instant).isoformat()

    def week_start(self, instant: dt.datetime) -> dt.date:
        """Monday of the civil week containing ``instant``.

        Sunday belongs to the week that started six days earlier.
        """
        c = self.to_civil(instant)
        offset = 6 if c.weekday == 0 else c.weekday - 1
        return c.date - dt.timedelta(days=offset)

    def week_key(self, instant: dt.datetime) -> str:
        return self.week_start(instant).isoformat()

    # Presentation helpers (en-US).

    def time_label(self, instant: dt.datetime) -> str:
        c = self.to_civil(instant)
        return _clock_12(c.hour, c.minute)

    def date_long(self, instant: dt.datetime) -> str:
        c = self.to_civil(instant)
        return f"{_DAY_NAMES[c.weekday]}, {_MONTH_NAMES[c.month - 1]} {c.day}"

    def week_label(self, instant: dt.datetime) -> str:
        monday = self.week_start(instant)
        return f"Week of {_MONTH_NAMES[monday.month - 1]} {monday.day}"

    def generated_label(self, instant: dt.datetime) -> str:
        c = self.to_civil(instant)
        return (
            f"{_DAY_NAMES[c.weekday]}, {_MONTH_NAMES[c.month - 1]} {c.day}, {c.year} "
            f"at {_clock_12(c.hour, c.minute)}"
        )

    def compact(self, instant: dt.datetime) -> str:
        """Civil time as YYYYMMDDTHHMMSS (Google Calendar ``dates`` form)."""
        c = self.to_civil(instant)
        return f"{c.year:04d}{c.month:02d}{c.day:02d}T{c.hour:02d}{c.minute:02d}00"


def _clock_12(hour: int, minute: int) -> str:
    suffix = "AM" if hour < 12 else "PM"
    return f"{hour % 12 or 12}:{minute:02d} {suffix}"
