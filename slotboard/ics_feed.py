from __future__ import annotations

import datetime as dt
import logging
import re
from typing import Iterator
from zoneinfo import ZoneInfo

import httpx
from dateutil.rrule import rrulestr
from icalendar import Calendar
from tenacity import RetryCallState, retry, stop_after_attempt, wait_exponential

from slotboard.config import Settings
from slotboard.domain import BusyInterval, FeedError

logger = logging.getLogger(__name__)

UTC = dt.timezone.utc

_UNTIL_RE = re.compile(r"UNTIL=(\d{8})")
_DTSTART_YEAR_RE = re.compile(r"DTSTART[^:]*:(\d{4})")


def normalize_feed_url(url: str) -> str:
    # Calendar apps hand out webcal:// links; they are plain HTTPS underneath.
    if url.lower().startswith("webcal://"):
        return "https://" + url[len("webcal://") :]
    return url


def fetch_ics(url: str, *, timeout_seconds: float = 60.0) -> str:
    with httpx.Client(timeout=timeout_seconds, follow_redirects=True) as client:
        r = client.get(normalize_feed_url(url))
        if r.is_error:
            raise FeedError(f"Failed to fetch calendar: {r.status_code} {r.reason_phrase}")
        return r.text


def _short_exc(retry_state: RetryCallState) -> str | None:
    if retry_state.outcome is None or not retry_state.outcome.failed:
        return None
    exc = retry_state.outcome.exception()
    if exc is None:
        return None
    msg = str(exc).strip()
    return f"{type(exc).__name__}: {msg}" if msg else type(exc).__name__


def _log_before_attempt(retry_state: RetryCallState) -> None:
    logger.info("Fetch attempt %s: start", retry_state.attempt_number)


def _log_after_attempt(retry_state: RetryCallState) -> None:
    if retry_state.outcome is not None and retry_state.outcome.failed:
        reason = _short_exc(retry_state)
        if reason:
            logger.warning("Fetch attempt %s failed (%s)", retry_state.attempt_number, reason)
        else:
            logger.warning("Fetch attempt %s failed", retry_state.attempt_number)


def _log_before_sleep(retry_state: RetryCallState) -> None:
    sleep_seconds = getattr(retry_state.next_action, "sleep", None)
    if sleep_seconds is None:
        logger.info("Waiting before the next fetch attempt...")
        return
    logger.info("Waiting %.0f s before fetch attempt %s", sleep_seconds, retry_state.attempt_number + 1)


def fetch_ics_with_retry(settings: Settings) -> str:
    if not settings.ical_url:
        raise FeedError("ICAL_URL is not configured")

    decorated = retry(
        stop=stop_after_attempt(settings.fetch_retry_attempts),
        wait=wait_exponential(multiplier=2, min=2, max=10),
        before=_log_before_attempt,
        after=_log_after_attempt,
        before_sleep=_log_before_sleep,
        reraise=True,
    )(fetch_ics)

    return decorated(settings.ical_url, timeout_seconds=settings.fetch_timeout_seconds)


def _keep_event(event_text: str, min_year: int) -> bool:
    if "RRULE:" in event_text:
        # Recurring events stay unless their UNTIL proves they ended.
        until = _UNTIL_RE.search(event_text)
        if until:
            return int(until.group(1)[:4]) >= min_year
        return True

    dtstart = _DTSTART_YEAR_RE.search(event_text)
    if dtstart:
        return int(dtstart.group(1)) >= min_year
    return False


def filter_ics_data(raw: str, *, min_year: int) -> str:
    """Drop VEVENTs that cannot produce busy time in or after ``min_year``.

    Large feeds carry years of history; parsing only what can matter keeps
    memory bounded. Everything before the first VEVENT (including
    VTIMEZONE blocks) is kept as the header.
    """
    header: list[str] = []
    kept: list[str] = []
    current: list[str] = []
    in_event = False
    in_header = True

    for line in re.split(r"\r?\n", raw):
        if line == "BEGIN:VEVENT":
            in_event = True
            in_header = False
            current = [line]
        elif line == "END:VEVENT":
            current.append(line)
            in_event = False
            if _keep_event("\n".join(current), min_year):
                kept.append("\r\n".join(current))
            current = []
        elif in_event:
            current.append(line)
        elif in_header:
            header.append(line)

    header_str = "\r\n".join(header)
    if "BEGIN:VCALENDAR" not in header_str:
        header_str = "BEGIN:VCALENDAR\r\nVERSION:2.0\r\n" + header_str

    return header_str + "\r\n" + "\r\n".join(kept) + "\r\nEND:VCALENDAR"


def _localize(value: dt.date | dt.datetime, tz: ZoneInfo) -> dt.datetime:
    # All-day dates and floating times are read in the page's timezone.
    if not isinstance(value, dt.datetime):
        value = dt.datetime.combine(value, dt.time.min)
    if value.tzinfo is None:
        value = value.replace(tzinfo=tz)
    return value.astimezone(UTC)


def _native(value: dt.date | dt.datetime) -> dt.datetime:
    if not isinstance(value, dt.datetime):
        return dt.datetime.combine(value, dt.time.min)
    return value


def _elapsed(start: dt.date | dt.datetime, end: dt.date | dt.datetime) -> dt.timedelta:
    if isinstance(start, dt.datetime) and isinstance(end, dt.datetime) and start.tzinfo and end.tzinfo:
        return end.astimezone(UTC) - start.astimezone(UTC)
    return _native(end) - _native(start)


def _event_bounds(event) -> tuple[dt.datetime, dt.timedelta] | None:
    start_prop = event.get("DTSTART")
    if start_prop is None:
        return None
    start = start_prop.dt

    end_prop = event.get("DTEND")
    if end_prop is not None:
        duration = _elapsed(start, end_prop.dt)
    elif event.get("DURATION") is not None:
        duration = event.get("DURATION").dt
    elif isinstance(start, dt.datetime):
        duration = dt.timedelta(0)
    else:
        duration = dt.timedelta(days=1)

    return _native(start), duration


def _date_list(event, name: str) -> list[dt.datetime]:
    prop = event.get(name)
    if prop is None:
        return []
    props = prop if isinstance(prop, list) else [prop]

    result: list[dt.datetime] = []
    for p in props:
        for item in p.dts:
            # RDATE;VALUE=PERIOD entries come back as tuples; skip them.
            if isinstance(item.dt, (dt.date, dt.datetime)):
                result.append(_native(item.dt))
    return result


def _exclusions(event, tz: ZoneInfo) -> tuple[set[dt.datetime], set[dt.date]]:
    """EXDATE instants, plus whole dates from ``VALUE=DATE`` entries."""
    prop = event.get("EXDATE")
    if prop is None:
        return set(), set()
    props = prop if isinstance(prop, list) else [prop]

    instants: set[dt.datetime] = set()
    dates: set[dt.date] = set()
    for p in props:
        for item in p.dts:
            if isinstance(item.dt, dt.datetime):
                instants.add(_localize(item.dt, tz))
            elif isinstance(item.dt, dt.date):
                dates.add(item.dt)
    return instants, dates


def _occurrences(
    event,
    start: dt.datetime,
    *,
    tz: ZoneInfo,
    window_end: dt.datetime,
    max_iterations: int,
) -> Iterator[dt.datetime]:
    """Occurrence starts in the event's own frame; the rule stops at ``window_end``."""
    extra = _date_list(event, "RDATE")
    rrule = event.get("RRULE")
    if isinstance(rrule, list):
        # Only the first RRULE is expanded.
        rrule = rrule[0]
    if not rrule:
        yield start
        yield from extra
        return

    excluded, excluded_dates = _exclusions(event, tz)

    def is_excluded(occ: dt.datetime) -> bool:
        # Date-only exclusions match on the occurrence's date in its own frame.
        return _localize(occ, tz) in excluded or occ.date() in excluded_dates

    try:
        rule = rrulestr(rrule.to_ical().decode("utf-8"), dtstart=start)
    except (ValueError, TypeError) as e:
        logger.warning("Could not parse recurrence rule for %r (%s)", str(event.get("SUMMARY", "?")), e)
        yield start
        return

    for seen, occ in enumerate(rule):
        if seen >= max_iterations or _localize(occ, tz) >= window_end:
            break
        if not is_excluded(occ):
            yield occ
    for occ in extra:
        if not is_excluded(occ):
            yield occ


def expand_busy_intervals(
    ics_text: str,
    *,
    window_start: dt.datetime,
    window_end: dt.datetime,
    tz: ZoneInfo,
    max_iterations: int = 2000,
) -> list[BusyInterval]:
    """Concrete busy intervals overlapping ``[window_start, window_end)``.

    Recurrences are expanded with dateutil; occurrences replaced by a
    RECURRENCE-ID override come from the override instead. Zero-length
    events block nothing and are dropped.
    """
    try:
        cal = Calendar.from_ical(ics_text)
    except ValueError as e:
        raise FeedError(f"Calendar data could not be parsed: {e}") from e

    events = list(cal.walk("VEVENT"))

    overridden: set[tuple[str, dt.datetime]] = set()
    for event in events:
        rid = event.get("RECURRENCE-ID")
        if rid is not None:
            overridden.add((str(event.get("UID", "")), _localize(rid.dt, tz)))

    busy: list[BusyInterval] = []
    for event in events:
        bounds = _event_bounds(event)
        if bounds is None:
            logger.debug("Skipping event without DTSTART: %r", str(event.get("SUMMARY", "?")))
            continue
        start, duration = bounds
        if duration <= dt.timedelta(0):
            continue

        uid = str(event.get("UID", ""))
        summary = str(event.get("SUMMARY", "?"))
        is_override = event.get("RECURRENCE-ID") is not None
        # Timed events last a fixed elapsed time; all-day events span civil days.
        all_day = not isinstance(event.get("DTSTART").dt, dt.datetime)
        occurrences = _occurrences(event, start, tz=tz, window_end=window_end, max_iterations=max_iterations)
        for occ in occurrences:
            occ_start = _localize(occ, tz)
            if not is_override and (uid, occ_start) in overridden:
                continue
            occ_end = _localize(occ + duration, tz) if all_day else occ_start + duration
            if occ_end <= occ_start:
                logger.warning("Skipping occurrence of %r with no duration at %s", summary, occ_start.isoformat())
                continue
            if occ_start < window_end and occ_end > window_start:
                busy.append(BusyInterval(start=occ_start, end=occ_end))

    busy.sort()
    return busy
