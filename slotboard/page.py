from __future__ import annotations

import os
import tempfile
from pathlib import Path
from typing import Mapping
from urllib.parse import urlencode

from jinja2 import Environment, FileSystemLoader, select_autoescape

from slotboard.config import Settings
from slotboard.domain import SessionType, Slot, WeekGroup

GOOGLE_CALENDAR_URL = "https://calendar.google.com/calendar/render"
TEMPLATES_DIR = Path(__file__).resolve().parent / "templates"


def google_calendar_link(session_type: SessionType, slot: Slot, *, settings: Settings, details: str = "") -> str:
    """Pre-filled "add event" link; times are civil, ``ctz`` names the zone."""
    params = {
        "action": "TEMPLATE",
        "text": session_type.name,
        "dates": f"{slot.google_start}/{slot.google_end}",
        "ctz": settings.timezone,
        "details": details or session_type.description,
        "location": settings.meeting_location,
    }
    if settings.organizer_email:
        params["add"] = settings.organizer_email
    return f"{GOOGLE_CALENDAR_URL}?{urlencode(params)}"


def build_environment() -> Environment:
    return Environment(
        loader=FileSystemLoader(TEMPLATES_DIR),
        autoescape=select_autoescape(["html", "j2"]),
        keep_trailing_newline=True,
    )


def render_page(
    grouped: Mapping[str, Mapping[str, WeekGroup]],
    *,
    session_types: Mapping[str, SessionType],
    settings: Settings,
    generated_at: str,
    slot_counts: Mapping[str, int],
) -> str:
    template = build_environment().get_template("page.html.j2")
    return template.render(
        title=settings.page_title,
        session_types=session_types,
        grouped=grouped,
        slot_counts=slot_counts,
        generated_at=generated_at,
        timezone=settings.timezone,
        organizer_email=settings.organizer_email,
        meeting_location=settings.meeting_location,
        calendar_link=lambda session_type, slot: google_calendar_link(session_type, slot, settings=settings),
    )


def write_page(path: str, html: str) -> None:
    folder = os.path.dirname(os.path.abspath(path))
    if folder and not os.path.exists(folder):
        os.makedirs(folder, exist_ok=True)

    # Atomic write
    with tempfile.NamedTemporaryFile("w", delete=False, encoding="utf-8", dir=folder, suffix=".tmp") as tf:
        tf.write(html)
        tmp_name = tf.name

    os.replace(tmp_name, path)
