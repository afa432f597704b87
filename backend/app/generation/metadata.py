"""
metadata.py — Timestamps and the metadata block attached to every response.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from backend.app.generation.models import ResponseMetadata


def as_utc(moment: datetime) -> datetime:
    """Aware copy of ``moment``; naive values are taken to be UTC."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


def format_display_time(moment: datetime, tz_name: str = "UTC") -> str:
    """Render a moment as a 12-hour clock time, e.g. ``3:05 PM``."""
    local = as_utc(moment).astimezone(ZoneInfo(tz_name))
    hour = local.hour % 12 or 12
    meridiem = "AM" if local.hour < 12 else "PM"
    return f"{hour}:{local.minute:02d} {meridiem}"


def format_iso_timestamp(moment: datetime) -> str:
    """UTC ISO-8601 with millisecond precision and a ``Z`` suffix."""
    utc = as_utc(moment).astimezone(timezone.utc)
    return utc.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def build_metadata(
    sender: str,
    tone: str,
    *,
    now: Optional[datetime] = None,
    tz_name: str = "UTC",
) -> ResponseMetadata:
    """
    Build the metadata block for one request.

    Both timestamp fields derive from the same instant, so they always
    agree with each other.
    """
    moment = as_utc(now) if now else datetime.now(timezone.utc)
    return ResponseMetadata(
        timestamp_iso=format_iso_timestamp(moment),
        formatted_time=format_display_time(moment, tz_name),
        sender=sender,
        tone=tone,
    )
