"""
Date Normalization - calendar-day arithmetic for scheduling.

All scheduling comparisons (is_today, is_due_today, equality) work on
calendar dates, never on instants. Timezone-aware timestamps are first
converted to the reference zone so "today" has one meaning everywhere.

The reference zone defaults to Europe/Brussels and is set once per
process from Settings.timezone (see set_reference_zone).
"""

from __future__ import annotations

import re
from datetime import date, datetime, timedelta
from functools import lru_cache
from zoneinfo import ZoneInfo

DEFAULT_TIMEZONE = "Europe/Brussels"

# fromisoformat before 3.11 only takes 3 or 6 fractional digits
_FRACTION = re.compile(r"\.(\d+)")

_reference_zone = DEFAULT_TIMEZONE


@lru_cache(maxsize=8)
def _zone(name: str) -> ZoneInfo:
    return ZoneInfo(name)


def set_reference_zone(tz: str | ZoneInfo | None) -> ZoneInfo:
    """
    Make `tz` the zone every normalization and "today" default to.

    None restores the default zone.

    Raises:
        zoneinfo.ZoneInfoNotFoundError: unknown zone name
    """
    global _reference_zone
    zone = tz if isinstance(tz, ZoneInfo) else _zone(tz or DEFAULT_TIMEZONE)
    _reference_zone = zone.key
    return zone


def reference_zone() -> ZoneInfo:
    return _zone(_reference_zone)


def _resolve(tz: str | ZoneInfo | None) -> ZoneInfo:
    if isinstance(tz, ZoneInfo):
        return tz
    return _zone(tz or _reference_zone)


def _six_digits(match: re.Match) -> str:
    return "." + (match.group(1) + "000000")[:6]


def parse_timestamp(text: str) -> datetime:
    """Parse an ISO-8601 timestamp, accepting a trailing Z and 7-digit fractions."""
    text = _FRACTION.sub(_six_digits, text.strip().replace("Z", "+00:00"), count=1)
    return datetime.fromisoformat(text)


def normalize(value: date | datetime | str, tz: str | ZoneInfo | None = None) -> date:
    """
    Strip the time of day from a timestamp.

    Aware datetimes are converted to the reference zone first; naive
    datetimes are taken at face value. ISO strings are parsed. Normalizing
    an already normalized date returns it unchanged.
    """
    if isinstance(value, str):
        value = parse_timestamp(value)
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(_resolve(tz))
        return value.date()
    if isinstance(value, date):
        return value
    raise TypeError(f"Cannot normalize {type(value).__name__} to a date")


def normalize_optional(
    value: date | datetime | str | None, tz: str | ZoneInfo | None = None
) -> date | None:
    """Normalize, preserving None."""
    if value is None or value == "":
        return None
    return normalize(value, tz)


def today(tz: str | ZoneInfo | None = None) -> date:
    """Current calendar date in the reference zone."""
    return datetime.now(_resolve(tz)).date()


def is_today(value: date | datetime | str, current: date | None = None) -> bool:
    return normalize(value) == (current or today())


def add_days(value: date | datetime | str, days: int) -> date:
    return normalize(value) + timedelta(days=days)


def days_between(start: date | datetime | str, end: date | datetime | str) -> int:
    """Whole calendar days from start to end (negative when end is earlier)."""
    return (normalize(end) - normalize(start)).days
