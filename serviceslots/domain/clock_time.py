"""
Clock-time arithmetic on minutes since midnight.

All scheduling math runs on integers in ``[0, 1440)``; ``HH:MM`` strings are
only the external representation.
"""

import re

from .exceptions import InvalidTimeFormat, TimeOutOfRange

MINUTES_PER_DAY = 24 * 60

_CLOCK_PATTERN = re.compile(r"^(\d{1,2}):(\d{2})$")
_LABEL_PATTERN = re.compile(r"^\s*(\d{1,2}):(\d{2})\s*([AaPp][Mm])?")


def parse_time(value: str) -> int:
    """
    Parse a 24-hour ``HH:MM`` string into minutes since midnight.

    Raises:
        InvalidTimeFormat: If the value is not numeric or out of range
    """
    if not isinstance(value, str):
        raise InvalidTimeFormat(f"Time must be a string in HH:MM format, got {value!r}")

    match = _CLOCK_PATTERN.match(value.strip())
    if not match:
        raise InvalidTimeFormat(f"Time must be in HH:MM format, got '{value}'")

    hours, minutes = int(match.group(1)), int(match.group(2))
    if hours > 23 or minutes > 59:
        raise InvalidTimeFormat(f"Time out of range: '{value}'")

    return hours * 60 + minutes


def format_time(minutes: int) -> str:
    """Format minutes since midnight as a zero-padded ``HH:MM`` string."""
    if not 0 <= minutes < MINUTES_PER_DAY:
        raise TimeOutOfRange(f"{minutes} minutes is outside a single day")
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def add_minutes(value: str, delta: int) -> str:
    """
    Shift a clock time by ``delta`` minutes.

    There is no wraparound: a result past 23:59 (or before 00:00) raises
    ``TimeOutOfRange``.
    """
    total = parse_time(value) + delta
    if not 0 <= total < MINUTES_PER_DAY:
        raise TimeOutOfRange(
            f"Adding {delta} minutes to {value} leaves the calendar day"
        )
    return format_time(total)


def to_display(value: str) -> str:
    """Format a clock time for display, e.g. ``13:05`` -> ``1:05 PM``."""
    minutes = parse_time(value)
    hours, mins = divmod(minutes, 60)
    period = "PM" if hours >= 12 else "AM"
    display_hours = hours % 12 or 12
    return f"{display_hours}:{mins:02d} {period}"


def intervals_overlap(start_a: int, end_a: int, start_b: int, end_b: int) -> bool:
    """Half-open overlap check; back-to-back intervals do not overlap."""
    return start_a < end_b and end_a > start_b


def parse_time_label(label: str | None) -> int | None:
    """
    Extract the leading clock time from a free-text window label.

    Accepts ``"10:00"``, ``"9:30 AM"`` or ``"09:00 AM - 11:00 AM"``.
    Returns None when the label does not start with a usable time.
    """
    if not label:
        return None

    match = _LABEL_PATTERN.match(label)
    if not match:
        return None

    hours, minutes = int(match.group(1)), int(match.group(2))
    period = (match.group(3) or "").upper()

    if period:
        if not 1 <= hours <= 12:
            return None
        hours = hours % 12 + (12 if period == "PM" else 0)

    if hours > 23 or minutes > 59:
        return None

    return hours * 60 + minutes
