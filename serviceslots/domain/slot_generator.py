"""
Core business logic for generating candidate appointment slots.

Pure domain logic without any external dependencies (no store lookups,
no I/O). Capacity annotation happens in the service layer.
"""

from datetime import date
from typing import List

from .clock_time import format_time, intervals_overlap
from .exceptions import InvalidDuration
from .models import BusinessCalendar, MultiVehicleStrategy, Slot


class SlotGenerator:
    """
    Builds the slot grid for one day from the business calendar.

    Algorithm:
    1. Closed or blocked days yield no slots
    2. Walk opening hours in steps of the calendar's slot duration
    3. Drop candidates that run into the lunch break
    4. Drop candidates that would end after closing time
    5. Return the survivors in ascending start order
    """

    def __init__(self, calendar: BusinessCalendar):
        self.calendar = calendar

    def generate_slots(self, day: date, service_duration: int) -> List[Slot]:
        """
        Generate all candidate slots for a given date.

        Args:
            day: The calendar date to generate slots for
            service_duration: Length of the requested service in minutes

        Returns:
            Ordered list of Slot objects with placeholder capacity
        """
        ensure_positive_duration(service_duration)

        if not self.calendar.is_working_day(day):
            return []

        if self.calendar.is_blocked_date(day):
            return []

        slots: List[Slot] = []
        capacity = self.calendar.max_concurrent_appointments

        # Step size is the grid granularity, not the service length
        for start in range(
            self.calendar.opening_time,
            self.calendar.closing_time,
            self.calendar.slot_duration,
        ):
            if self.overlaps_lunch_break(start, service_duration):
                continue

            if not self.fits_before_closing(start, service_duration):
                continue

            slots.append(
                Slot(
                    start_time=format_time(start),
                    end_time=format_time(start + service_duration),
                    duration=service_duration,
                    capacity_total=capacity,
                    capacity_remaining=capacity,
                )
            )

        return slots

    def overlaps_lunch_break(self, start: int, duration: int) -> bool:
        """Check if ``[start, start+duration)`` runs into the lunch break."""
        lunch = self.calendar.lunch_break
        if not lunch.enabled:
            return False
        return intervals_overlap(start, start + duration, lunch.start, lunch.end)

    def fits_before_closing(self, start: int, duration: int) -> bool:
        """Check if the service finishes no later than closing time."""
        return start + duration <= self.calendar.closing_time

    def scale_duration(self, base_minutes: int, vehicle_count: int) -> int:
        """
        Total service time for several vehicles booked together.

        Sequential work multiplies the duration; parallel work assumes enough
        technicians and keeps it unchanged. The size of the technician pool
        is not checked.
        """
        ensure_positive_duration(base_minutes)

        if vehicle_count <= 1:
            return base_minutes

        if self.calendar.multi_vehicle_strategy == MultiVehicleStrategy.SEQUENTIAL:
            return base_minutes * vehicle_count

        return base_minutes


def ensure_positive_duration(duration: int) -> int:
    """Reject durations that are not a positive whole number of minutes."""
    if isinstance(duration, bool) or not isinstance(duration, int) or duration <= 0:
        raise InvalidDuration(
            f"Duration must be a positive number of minutes, got {duration!r}"
        )
    return duration
