"""Conversions between wire strings and integer minutes.

Every parser here is total: malformed input maps to an explicit default so a
bad historical record can never break a schedule.
"""

from __future__ import annotations

import re

from itinerary.models.activity import DEFAULT_START_MIN


MINUTES_PER_DAY = 24 * 60

_TIME_RE = re.compile(r"^\s*(\d{1,2})\s*:\s*(\d{1,2})(?:\s*([AaPp])\.?\s*[Mm]\.?)?\s*$")
_HOURS_RE = re.compile(r"(\d+)\s*h", re.IGNORECASE)
_MINUTES_RE = re.compile(r"(\d+)\s*m", re.IGNORECASE)


def parse_time(value: str | None, default: int = DEFAULT_START_MIN) -> int:
    """Parse ``"9:00 AM"``, ``"09:05 PM"`` or 24h ``"14:30"`` into minutes since midnight."""
    if not value:
        return default
    text = str(value)
    if text.startswith("NaN"):
        return default
    match = _TIME_RE.match(text)
    if match is None:
        return default

    hours = int(match.group(1))
    minutes = int(match.group(2))
    period = (match.group(3) or "").upper()
    if minutes > 59:
        return default
    if period:
        if hours < 1 or hours > 12:
            return default
        if period == "P" and hours != 12:
            hours += 12
        if period == "A" and hours == 12:
            hours = 0
    elif hours > 23:
        return default
    return hours * 60 + minutes


def format_time(minutes: int) -> str:
    total = int(minutes) % MINUTES_PER_DAY
    hours, mins = divmod(total, 60)
    period = "PM" if hours >= 12 else "AM"
    display = hours % 12 or 12
    return f"{display}:{mins:02d} {period}"


def hhmm_to_minutes(value: str, default: int = DEFAULT_START_MIN) -> int:
    """Time-picker input (``"HH:MM"``, 24h)."""
    parts = str(value or "").strip().split(":")
    if len(parts) != 2 or not all(part.isdigit() for part in parts):
        return default
    hours, mins = int(parts[0]), int(parts[1])
    if hours > 23 or mins > 59:
        return default
    return hours * 60 + mins


def parse_duration(value: str | int | None, default: int) -> int:
    """Parse ``"1h 30m"``, ``"45m"`` or ``"2h"``.

    ``default`` is mandatory: callers pick 60 for a new activity's dwell and 0
    for a missing travel leg.
    """
    if value is None:
        return default
    if isinstance(value, int):
        return max(0, value)
    text = str(value).strip()
    if not text:
        return default
    if text.isdigit():
        return int(text)

    hours = _HOURS_RE.search(text)
    minutes = _MINUTES_RE.search(text)
    if hours is None and minutes is None:
        return default
    total = 0
    if hours is not None:
        total += int(hours.group(1)) * 60
    if minutes is not None:
        total += int(minutes.group(1))
    return total


def parse_optional_duration(value: str | int | None) -> int | None:
    """Travel legs: ``None`` when there is no leg, 0 when the leg is unreadable."""
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    return parse_duration(value, default=0)


def format_duration(minutes: int) -> str:
    if minutes <= 0:
        return "0m"
    hours, mins = divmod(int(minutes), 60)
    if hours > 0:
        return f"{hours}h {mins}m" if mins else f"{hours}h"
    return f"{mins}m"


def format_duration_short(minutes: int) -> str:
    hours, mins = divmod(max(0, int(minutes)), 60)
    if hours > 0:
        return f"{hours}h {mins}m"
    return f"{mins}m"


def seconds_to_minutes(seconds: int) -> int:
    if seconds <= 0:
        return 0
    return max(1, (int(seconds) + 30) // 60)


def format_distance(meters: float | None) -> str | None:
    if meters is None:
        return None
    meters = max(0.0, float(meters))
    if meters < 1000:
        return f"{int(round(meters))} m"
    return f"{meters / 1000:.1f} km"
