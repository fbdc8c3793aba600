"""
Time helpers for business-hours arithmetic

Appointment times are local wall-clock "HH:MM" strings; all arithmetic is done
in minutes since midnight. Sync timestamps are UTC-aware datetimes.
"""

from datetime import date, datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo
import re

WEEKDAY_NAMES = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]

_TIME_RE = re.compile(r"^(\d{1,2}):(\d{2})$")


def parse_time(value: str) -> int:
    """
    Parse a 24-hour "HH:MM" string into minutes since midnight.

    Raises:
        ValueError: if the string is not a valid time of day
    """
    match = _TIME_RE.match(value.strip()) if isinstance(value, str) else None
    if not match:
        raise ValueError(f"Invalid time string: {value!r}")

    hours, minutes = int(match.group(1)), int(match.group(2))
    if hours > 23 or minutes > 59:
        raise ValueError(f"Invalid time string: {value!r}")
    return hours * 60 + minutes


def format_minutes(total_minutes: int) -> str:
    """Format minutes since midnight as zero-padded "HH:MM"."""
    hours, minutes = divmod(total_minutes, 60)
    return f"{hours:02d}:{minutes:02d}"


def normalize_time(value: str) -> str:
    """Normalize "9:00" to "09:00"."""
    return format_minutes(parse_time(value))


def format_24_to_12(value: str) -> str:
    """Convert "14:30" to "2:30 PM" for display."""
    try:
        total = parse_time(value)
    except ValueError:
        return value
    hours, minutes = divmod(total, 60)
    period = "PM" if hours >= 12 else "AM"
    return f"{hours % 12 or 12}:{minutes:02d} {period}"


def weekday_name(day: date) -> str:
    """Lowercase English weekday name for a date."""
    return WEEKDAY_NAMES[day.weekday()]


def utc_now() -> datetime:
    """Current UTC time (timezone-aware)."""
    return datetime.now(timezone.utc)


def local_now(timezone_str: Optional[str] = None) -> datetime:
    """
    Current wall-clock time as a naive datetime.

    Args:
        timezone_str: Business timezone; server local time when omitted
    """
    if timezone_str:
        return datetime.now(ZoneInfo(timezone_str)).replace(tzinfo=None)
    return datetime.now()


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_timestamp(value) -> datetime:
    """Parse an ISO timestamp (accepting a trailing 'Z') into a UTC-aware datetime."""
    if isinstance(value, datetime):
        return ensure_utc(value)
    if not value:
        return datetime(1970, 1, 1, tzinfo=timezone.utc)
    text = str(value)
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return ensure_utc(datetime.fromisoformat(text))
