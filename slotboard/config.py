from __future__ import annotations

import datetime as dt
import json
import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

from slotboard.civil_clock import CivilClock
from slotboard.domain import DEFAULT_SESSION_TYPES, SessionType

_SESSION_TYPE_FIELDS = (
    "name",
    "duration",
    "buffer",
    "days",
    "start_hour",
    "start_min",
    "end_hour",
    "end_min",
    "max_per_day",
    "lead_time_hours",
)


def _parse_date_end(raw: str) -> dt.datetime:
    # DATE_END accepts ISO 8601; a trailing Z and naive values both mean UTC.
    #   DATE_END=2026-04-01T00:00:00Z
    #   DATE_END=2026-04-01
    value = raw.strip()
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    try:
        parsed = dt.datetime.fromisoformat(value)
    except ValueError as e:
        raise RuntimeError(f"Invalid DATE_END value: {raw!r}. Expected ISO 8601 date or datetime.") from e

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=dt.timezone.utc)
    return parsed.astimezone(dt.timezone.utc)


def _parse_session_type(key: str, raw: object) -> SessionType:
    if not isinstance(raw, dict):
        raise RuntimeError(f"Session type {key!r} must be a JSON object")

    missing = [name for name in _SESSION_TYPE_FIELDS if name not in raw]
    if missing:
        raise RuntimeError(f"Session type {key!r} is missing: {', '.join(missing)}")

    try:
        return SessionType(
            key=key,
            name=str(raw["name"]),
            duration=int(raw["duration"]),
            buffer=int(raw["buffer"]),
            days=frozenset(int(d) for d in raw["days"]),
            start_hour=int(raw["start_hour"]),
            start_min=int(raw["start_min"]),
            end_hour=int(raw["end_hour"]),
            end_min=int(raw["end_min"]),
            max_per_day=int(raw["max_per_day"]),
            lead_time_hours=float(raw["lead_time_hours"]),
            description=str(raw.get("description", "")),
            duration_label=str(raw.get("duration_label", "")),
        )
    except (TypeError, ValueError) as e:
        raise RuntimeError(f"Invalid session type {key!r}: {e}") from e


def load_session_types(path: str) -> dict[str, SessionType]:
    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = json.load(f)
    except OSError as e:
        raise RuntimeError(f"Cannot read SESSION_TYPES_FILE {path!r}: {e}") from e
    except json.JSONDecodeError as e:
        raise RuntimeError(f"SESSION_TYPES_FILE {path!r} is not valid JSON: {e}") from e

    if not isinstance(raw, dict) or not raw:
        raise RuntimeError(f"SESSION_TYPES_FILE {path!r} must be a non-empty JSON object keyed by type")

    return {str(key): _parse_session_type(str(key), value) for key, value in raw.items()}


@dataclass(frozen=True)
class Settings:
    ical_url: str | None

    timezone: str = "America/New_York"
    date_end: dt.datetime = dt.datetime(2026, 4, 1, tzinfo=dt.timezone.utc)

    output_path: str = "index.html"

    # Feed tuning
    fetch_timeout_seconds: float = 60.0
    # How many times the feed download is attempted before giving up.
    fetch_retry_attempts: int = 3
    # Per-event cap on expanded recurrences.
    ics_max_iterations: int = 2000
    # One-off events that start before this year are dropped before parsing.
    ics_min_year: int = 2026

    # Invite link / page text
    organizer_email: str = ""
    meeting_location: str = "Zoom (link will be shared)"
    page_title: str = "Playbook Support Sessions"

    session_types: dict[str, SessionType] = field(default_factory=lambda: dict(DEFAULT_SESSION_TYPES))

    def clock(self) -> CivilClock:
        return CivilClock(self.timezone)


def _require(name: str) -> str:
    value = os.getenv(name)
    if not value:
        raise RuntimeError(f"Missing required environment variable: {name}")
    return value


def _int_env(name: str, default: str, *, minimum: int) -> int:
    raw = os.getenv(name, default)
    try:
        value = int(raw)
    except ValueError as e:
        raise RuntimeError(f"Invalid {name} value: {raw!r}. Expected an integer.") from e
    if value < minimum:
        raise RuntimeError(f"{name} must be >= {minimum}")
    return value


def load_settings(dotenv_path: str | None = None, *, require_ical_url: bool = True) -> Settings:
    # Prefer .env in repo root; dotenv_path allows overriding in tests.
    load_dotenv(dotenv_path=dotenv_path, override=False)

    ical_url = _require("ICAL_URL") if require_ical_url else (os.getenv("ICAL_URL") or None)

    timezone = os.getenv("TIMEZONE", "America/New_York").strip()
    # Fail early on an unknown zone name.
    CivilClock(timezone)

    raw_timeout = os.getenv("FETCH_TIMEOUT_SECONDS", "60")
    try:
        fetch_timeout_seconds = float(raw_timeout)
    except ValueError as e:
        raise RuntimeError(f"Invalid FETCH_TIMEOUT_SECONDS value: {raw_timeout!r}") from e
    if fetch_timeout_seconds <= 0:
        raise RuntimeError("FETCH_TIMEOUT_SECONDS must be > 0")

    session_types_file = os.getenv("SESSION_TYPES_FILE")
    session_types = load_session_types(session_types_file) if session_types_file else dict(DEFAULT_SESSION_TYPES)

    return Settings(
        ical_url=ical_url,
        timezone=timezone,
        date_end=_parse_date_end(os.getenv("DATE_END", "2026-04-01T00:00:00Z")),
        output_path=os.getenv("OUTPUT_PATH", "index.html"),
        fetch_timeout_seconds=fetch_timeout_seconds,
        fetch_retry_attempts=_int_env("FETCH_RETRY_ATTEMPTS", "3", minimum=1),
        ics_max_iterations=_int_env("ICS_MAX_ITERATIONS", "2000", minimum=1),
        ics_min_year=_int_env("ICS_MIN_YEAR", "2026", minimum=1),
        organizer_email=os.getenv("ORGANIZER_EMAIL", "").strip(),
        meeting_location=os.getenv("MEETING_LOCATION", "Zoom (link will be shared)"),
        page_title=os.getenv("PAGE_TITLE", "Playbook Support Sessions"),
        session_types=session_types,
    )
