"""
Application services for answering "is this slot bookable, and how often?".

The service coordinates fetching existing appointments via a store adapter
and delegates grid construction to the domain-level ``SlotGenerator``.
Dependency inversion toward a protocol makes it easy to plug in the HTTP
store or the in-memory store used in tests.

Capacity is read-then-decide: nothing here reserves capacity, so two
callers can both see the last free place before either books it.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Collection, List, Optional, Protocol, Sequence

from pendulum import DateTime

from ..domain.clock import Clock, at_clock_time, day_bounds
from ..domain.clock_time import intervals_overlap, parse_time
from ..domain.exceptions import AppointmentStoreError
from ..domain.models import (
    DEFAULT_APPOINTMENT_DURATION,
    DEFAULT_APPOINTMENT_TIME,
    TERMINAL_STATUSES,
    AppointmentRecord,
    BusinessCalendar,
    CapacityResult,
    DateAvailability,
    DaySlots,
    SlotCheck,
    ValidationResult,
)
from ..domain.slot_generator import SlotGenerator, ensure_positive_duration

logger = logging.getLogger(__name__)

MSG_PAST = "Cannot book appointments in the past"
MSG_BEYOND_WINDOW = "Cannot book more than {days} days in advance"
MSG_MINIMUM_NOTICE = "Appointments must be booked at least {hours} hours in advance"
MSG_NOT_WORKING_DAY = "Selected date is not a working day"
MSG_BLOCKED = "Selected date is not available (holiday or closure)"
MSG_LUNCH = "Selected time overlaps with lunch break"
MSG_AFTER_CLOSING = "Service duration extends beyond business hours"
MSG_NO_SLOTS = "No available time slots for the selected date"


class AppointmentStoreProtocol(Protocol):
    """Protocol describing the appointment lookups needed by the services."""

    def find_appointments(
        self,
        *,
        start: DateTime,
        end: DateTime,
        exclude_statuses: Collection[str],
        vehicle_ids: Optional[Sequence[str]] = None,
    ) -> Sequence[AppointmentRecord]:
        """
        Return appointments whose scheduled or preferred date lies within
        ``[start, end]``, skipping the given statuses and, when given,
        limited to the listed vehicles.
        """


class AvailabilityService:
    """
    Temporal legality and capacity checks for one business calendar.

    The calendar, store and clock are injected; the service keeps no state
    between calls.
    """

    def __init__(
        self,
        calendar: BusinessCalendar,
        store: AppointmentStoreProtocol,
        clock: Clock,
        *,
        default_time: str = DEFAULT_APPOINTMENT_TIME,
        default_duration: int = DEFAULT_APPOINTMENT_DURATION,
        limited_slots_threshold: int = 3,
    ) -> None:
        self.calendar = calendar
        self._store = store
        self._clock = clock
        self._slot_generator = SlotGenerator(calendar)
        self.default_time = default_time
        self.default_duration = default_duration
        self.limited_slots_threshold = limited_slots_threshold

    def now(self) -> DateTime:
        return self._clock.now().in_timezone(self.calendar.timezone)

    def today(self) -> date:
        return self.now().date()

    def scale_duration(self, base_minutes: int, vehicle_count: int) -> int:
        return self._slot_generator.scale_duration(base_minutes, vehicle_count)

    def validate_time(self, day: date, time: str, duration: int) -> ValidationResult:
        """
        Check every calendar rule for a requested start and duration.

        All violated rules are reported together, each once.

        Raises:
            InputError: If the time or duration is malformed
        """
        start = parse_time(time)
        ensure_positive_duration(duration)

        result = ValidationResult()
        calendar = self.calendar
        now = self._clock.now()
        starts_at = at_clock_time(day, start, calendar.timezone)
        day_start, _ = day_bounds(day, calendar.timezone)

        if starts_at < now:
            result.add_error(MSG_PAST)

        if day_start > now.add(days=calendar.advance_booking_days):
            result.add_error(MSG_BEYOND_WINDOW.format(days=calendar.advance_booking_days))

        if starts_at < now.add(hours=calendar.minimum_notice_hours):
            result.add_error(MSG_MINIMUM_NOTICE.format(hours=calendar.minimum_notice_hours))

        if not calendar.is_working_day(day):
            result.add_error(MSG_NOT_WORKING_DAY)

        if calendar.is_blocked_date(day):
            result.add_error(MSG_BLOCKED)

        if self._slot_generator.overlaps_lunch_break(start, duration):
            result.add_error(MSG_LUNCH)

        if not self._slot_generator.fits_before_closing(start, duration):
            result.add_error(MSG_AFTER_CLOSING)

        return result

    def check_capacity(self, day: date, time: str, duration: int) -> CapacityResult:
        """
        Count active appointments overlapping the requested interval.

        Raises:
            InputError: If the time or duration is malformed
            AppointmentStoreError: If the store cannot be queried
        """
        start = parse_time(time)
        ensure_positive_duration(duration)

        appointments = self.fetch_day_appointments(day)
        return self._capacity_for(appointments, start, start + duration)

    def fetch_day_appointments(
        self,
        day: date,
        vehicle_ids: Optional[Sequence[str]] = None,
    ) -> List[AppointmentRecord]:
        """Fetch the active appointments of one calendar day."""
        start, end = day_bounds(day, self.calendar.timezone)

        try:
            appointments = self._store.find_appointments(
                start=start,
                end=end,
                exclude_statuses=TERMINAL_STATUSES,
                vehicle_ids=list(vehicle_ids) if vehicle_ids is not None else None,
            )
        except AppointmentStoreError:
            logger.exception("Error loading appointments for %s", day.isoformat())
            raise
        except Exception as exc:
            logger.exception("Error loading appointments for %s", day.isoformat())
            raise AppointmentStoreError(
                f"Could not load appointments for {day.isoformat()}: {exc}"
            ) from exc

        return [apt for apt in appointments if apt.is_active]

    def conflicting_appointments(
        self,
        appointments: Sequence[AppointmentRecord],
        start: int,
        end: int,
    ) -> List[AppointmentRecord]:
        """Appointments whose effective interval overlaps ``[start, end)``."""
        conflicts: List[AppointmentRecord] = []

        for apt in appointments:
            apt_start = apt.effective_time(self.default_time)
            apt_end = apt_start + apt.effective_duration(self.default_duration)

            if intervals_overlap(start, end, apt_start, apt_end):
                conflicts.append(apt)

        return conflicts

    def _capacity_for(
        self,
        appointments: Sequence[AppointmentRecord],
        start: int,
        end: int,
    ) -> CapacityResult:
        conflict_count = len(self.conflicting_appointments(appointments, start, end))
        total = self.calendar.max_concurrent_appointments
        remaining = max(0, total - conflict_count)

        logger.debug(
            "Capacity %d-%d: %d conflicting of %d allowed", start, end, conflict_count, total
        )

        return CapacityResult(
            is_available=remaining > 0,
            capacity_used=conflict_count,
            capacity_total=total,
            capacity_remaining=remaining,
        )

    def get_day_slots(
        self,
        day: date,
        service_duration: int,
        vehicle_count: int = 1,
    ) -> DaySlots:
        """
        Build the annotated booking grid for one date.

        Slots on today's date are limited to those that still meet the
        minimum notice.
        """
        duration = self.scale_duration(service_duration, vehicle_count)

        if not self.calendar.is_working_day(day):
            return DaySlots(date=day, message=MSG_NOT_WORKING_DAY)

        if self.calendar.is_blocked_date(day):
            return DaySlots(date=day, message=MSG_BLOCKED)

        slots = self._slot_generator.generate_slots(day, duration)
        if not slots:
            return DaySlots(date=day, message=MSG_NO_SLOTS)

        # One store read per day; every slot is measured against it
        appointments = self.fetch_day_appointments(day)
        for slot in slots:
            slot.apply_capacity(
                self._capacity_for(appointments, slot.start_minutes, slot.end_minutes)
            )

        if day == self.today():
            earliest = self._clock.now().add(hours=self.calendar.minimum_notice_hours)
            slots = [
                slot for slot in slots
                if at_clock_time(day, slot.start_minutes, self.calendar.timezone) >= earliest
            ]

        grid = DaySlots(date=day, slots=slots)
        if not grid.bookable:
            grid.message = MSG_NO_SLOTS
        return grid

    def get_available_dates(
        self,
        service_duration: int,
        vehicle_count: int = 1,
        days: Optional[int] = None,
    ) -> List[DateAvailability]:
        """
        Summarise each open date from today to the end of the booking window.

        Closed and blocked dates are left out; fully booked dates are kept
        and flagged.
        """
        horizon = self.calendar.advance_booking_days if days is None else days
        today = self.today()
        dates: List[DateAvailability] = []

        for offset in range(horizon + 1):
            day = today.add(days=offset)

            if not self.calendar.is_working_day(day) or self.calendar.is_blocked_date(day):
                continue

            grid = self.get_day_slots(day, service_duration, vehicle_count)
            available = len(grid.bookable)

            dates.append(
                DateAvailability(
                    date=day,
                    available_slots=available,
                    total_slots=len(grid.slots),
                    is_fully_booked=available == 0,
                    is_limited=0 < available <= self.limited_slots_threshold,
                )
            )

        return dates

    def check_slot(
        self,
        day: date,
        time: str,
        service_duration: int,
        vehicle_count: int = 1,
    ) -> SlotCheck:
        """Validate one specific date and time, then measure its capacity."""
        duration = self.scale_duration(service_duration, vehicle_count)
        validation = self.validate_time(day, time, duration)

        if not validation.is_valid:
            return SlotCheck(validation=validation)

        return SlotCheck(
            validation=validation,
            capacity=self.check_capacity(day, time, duration),
        )
