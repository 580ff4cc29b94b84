"""
Injected notion of "now" and of the calendar's time zone.

The calendar time zone decides what "today" is, where a day starts and ends,
and how a date plus a clock time becomes an instant. It is configuration,
never inferred from the host or the customer.
"""

from datetime import date
from typing import Protocol

import pendulum
from pendulum import DateTime

from .exceptions import InvalidDate


class Clock(Protocol):
    """Source of the current instant in the calendar time zone."""

    timezone: str

    def now(self) -> DateTime:
        """Return the current instant."""


class SystemClock:
    """Wall clock in a fixed IANA time zone."""

    def __init__(self, timezone: str = "Europe/London"):
        self.timezone = timezone

    def now(self) -> DateTime:
        return pendulum.now(self.timezone)


class FixedClock:
    """Clock pinned to one instant, for tests and replays."""

    def __init__(self, instant: DateTime, timezone: str | None = None):
        self.timezone = timezone or instant.timezone_name
        self._instant = instant.in_timezone(self.timezone)

    def now(self) -> DateTime:
        return self._instant


def at_clock_time(day: date, minutes: int, timezone: str) -> DateTime:
    """Combine a calendar date and minutes since midnight into an instant."""
    return pendulum.datetime(
        day.year, day.month, day.day, minutes // 60, minutes % 60, tz=timezone
    )


def day_bounds(day: date, timezone: str) -> tuple[DateTime, DateTime]:
    """Inclusive start and end instants of a calendar day."""
    start = pendulum.datetime(day.year, day.month, day.day, tz=timezone)
    return start.start_of("day"), start.end_of("day")


def parse_date(value: str) -> date:
    """Parse a ``YYYY-MM-DD`` string into a calendar date."""
    try:
        return pendulum.from_format(value.strip(), "YYYY-MM-DD").date()
    except ValueError as exc:
        raise InvalidDate(f"Date must be in YYYY-MM-DD format, got '{value}'") from exc
