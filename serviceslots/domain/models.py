"""
Domain models for business calendar, slot and capacity calculations.
"""

import re
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional

from pendulum import DateTime

from .clock_time import format_time, parse_time, parse_time_label, to_display
from .exceptions import InvalidTimeFormat

DEFAULT_APPOINTMENT_TIME = "09:00"
DEFAULT_APPOINTMENT_DURATION = 60

TERMINAL_STATUSES: FrozenSet[str] = frozenset({"cancelled", "completed"})
CHANGEABLE_STATUSES: FrozenSet[str] = frozenset({"pending", "confirmed"})

_LEADING_INT = re.compile(r"^\s*(\d+)")


class MultiVehicleStrategy(str, Enum):
    """How service time scales when several vehicles are booked together."""
    SEQUENTIAL = "sequential"
    PARALLEL = "parallel"


class SlotBucket(str, Enum):
    """Classification of an annotated slot in the booking grid."""
    AVAILABLE = "available"
    LIMITED = "limited"
    FULLY_BOOKED = "fully_booked"


@dataclass(frozen=True)
class LunchBreak:
    """Daily break during which no appointment may run."""
    enabled: bool = True
    start: int = 12 * 60
    end: int = 13 * 60

    def __post_init__(self):
        if self.enabled and self.start >= self.end:
            raise ValueError(
                f"Lunch break start {format_time(self.start)} must be before "
                f"end {format_time(self.end)}"
            )


@dataclass(frozen=True)
class CancellationRules:
    free_until_hours: int = 48
    fee_percentage: int = 50


@dataclass(frozen=True)
class ModificationRules:
    allowed_until_hours: int = 24
    max_modifications: int = 2


@dataclass(frozen=True)
class BusinessCalendar:
    """
    Immutable operating policy of the service center.

    Clock values are minutes since midnight. Weekdays follow
    ``date.weekday()``: 0=Monday, 6=Sunday.

    Invariant: opening time is before closing time.
    """
    opening_time: int = 9 * 60
    closing_time: int = 18 * 60
    operating_days: FrozenSet[int] = frozenset(range(6))
    lunch_break: LunchBreak = LunchBreak()
    slot_duration: int = 30
    max_concurrent_appointments: int = 3
    advance_booking_days: int = 30
    minimum_notice_hours: int = 2
    blocked_dates: FrozenSet[date] = frozenset()
    multi_vehicle_strategy: MultiVehicleStrategy = MultiVehicleStrategy.SEQUENTIAL
    buffer_time: int = 0  # not applied anywhere yet
    cancellation: CancellationRules = CancellationRules()
    modification: ModificationRules = ModificationRules()
    timezone: str = "Europe/London"

    def __post_init__(self):
        if self.opening_time >= self.closing_time:
            raise ValueError(
                f"Opening time {format_time(self.opening_time)} must be before "
                f"closing time {format_time(self.closing_time)}"
            )
        if self.slot_duration <= 0:
            raise ValueError("slot_duration must be greater than zero")
        if self.max_concurrent_appointments <= 0:
            raise ValueError("max_concurrent_appointments must be greater than zero")

    def is_working_day(self, day: date) -> bool:
        """Check if a given date falls on an operating weekday."""
        return day.weekday() in self.operating_days

    def is_blocked_date(self, day: date) -> bool:
        """Check if a given date is a holiday or closure."""
        return date(day.year, day.month, day.day) in self.blocked_dates


@dataclass(frozen=True)
class CapacityResult:
    """Outcome of counting concurrent bookings against slot capacity."""
    is_available: bool
    capacity_used: int
    capacity_total: int
    capacity_remaining: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "isAvailable": self.is_available,
            "capacityUsed": self.capacity_used,
            "capacityTotal": self.capacity_total,
            "capacityRemaining": self.capacity_remaining,
        }


@dataclass
class ValidationResult:
    """
    Accumulated outcome of a validation run.

    A result is valid exactly when it carries no errors; warnings never
    invalidate it.
    """
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    @classmethod
    def failure(cls, message: str) -> "ValidationResult":
        return cls(errors=[message])

    def add_error(self, message: str) -> None:
        if message not in self.errors:
            self.errors.append(message)

    def add_warning(self, message: str) -> None:
        if message not in self.warnings:
            self.warnings.append(message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "isValid": self.is_valid,
            "errors": list(self.errors),
            "warnings": list(self.warnings),
        }


@dataclass
class Slot:
    """
    A candidate appointment start within one business day.

    Generated with placeholder capacity; ``apply_capacity`` fills in the
    real numbers once existing bookings have been counted.
    """
    start_time: str
    end_time: str
    duration: int
    capacity_total: int
    capacity_used: int = 0
    capacity_remaining: int = 0
    is_available: bool = True

    @property
    def start_minutes(self) -> int:
        return parse_time(self.start_time)

    @property
    def end_minutes(self) -> int:
        return self.start_minutes + self.duration

    @property
    def display_time(self) -> str:
        return to_display(self.start_time)

    @property
    def display_end_time(self) -> str:
        return to_display(self.end_time)

    @property
    def bucket(self) -> SlotBucket:
        if not self.is_available:
            return SlotBucket.FULLY_BOOKED
        if self.capacity_remaining == 1:
            return SlotBucket.LIMITED
        return SlotBucket.AVAILABLE

    def apply_capacity(self, capacity: CapacityResult) -> None:
        self.capacity_used = capacity.capacity_used
        self.capacity_total = capacity.capacity_total
        self.capacity_remaining = capacity.capacity_remaining
        self.is_available = capacity.is_available

    def format_display(self) -> str:
        """
        Format the slot for display.
        Format: h:mm AM – h:mm PM (N min) | free/total free
        """
        return (
            f"{self.display_time} – {self.display_end_time} ({self.duration} min) | "
            f"{self.capacity_remaining}/{self.capacity_total} free"
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "startTime": self.start_time,
            "endTime": self.end_time,
            "displayTime": self.display_time,
            "displayEndTime": self.display_end_time,
            "duration": self.duration,
            "isAvailable": self.is_available,
            "capacityUsed": self.capacity_used,
            "capacityRemaining": self.capacity_remaining,
            "totalCapacity": self.capacity_total,
        }


@dataclass(frozen=True)
class AppointmentRecord:
    """
    An existing booking as returned by the appointment store.

    ``estimated_duration`` is whatever the store holds: minutes as an int or
    free text such as ``"90"`` or ``"~ 2 hours"``.
    """
    id: str
    preferred_date: DateTime
    status: str = "pending"
    scheduled_date: Optional[DateTime] = None
    scheduled_time: Optional[str] = None
    time_window: Optional[str] = None
    estimated_duration: Any = None
    vehicle_id: Optional[str] = None
    customer_id: Optional[str] = None
    service_type: str = ""
    modification_count: int = 0

    @property
    def effective_date(self) -> DateTime:
        return self.scheduled_date or self.preferred_date

    @property
    def is_active(self) -> bool:
        return self.status not in TERMINAL_STATUSES

    def effective_time(self, default_time: str = DEFAULT_APPOINTMENT_TIME) -> int:
        """Scheduled time, else the start of the preferred window, else the default."""
        if self.scheduled_time:
            try:
                return parse_time(self.scheduled_time)
            except InvalidTimeFormat:
                pass
        window_start = parse_time_label(self.time_window)
        if window_start is not None:
            return window_start
        return parse_time(default_time)

    def effective_duration(self, default_duration: int = DEFAULT_APPOINTMENT_DURATION) -> int:
        """Stored estimate in minutes, else the default."""
        value = self.estimated_duration
        if isinstance(value, bool):
            return default_duration
        if isinstance(value, (int, float)):
            minutes = int(value)
        elif isinstance(value, str):
            match = _LEADING_INT.match(value)
            minutes = int(match.group(1)) if match else 0
        else:
            minutes = 0
        return minutes if minutes > 0 else default_duration

    def start_instant(self, default_time: str = DEFAULT_APPOINTMENT_TIME) -> DateTime:
        """Effective date and time as a single instant."""
        minutes = self.effective_time(default_time)
        return self.effective_date.start_of("day").add(minutes=minutes)


@dataclass(frozen=True)
class VehicleRecord:
    id: str
    owner_id: str
    is_active: bool = True
    vehicle_number: str = ""


@dataclass(frozen=True)
class ServiceRecord:
    id: str
    name: str = ""
    estimated_duration: int = DEFAULT_APPOINTMENT_DURATION
    is_active: bool = True


@dataclass(frozen=True)
class VehicleConflict:
    vehicle_id: Optional[str]
    existing_time: str
    existing_service: str


@dataclass(frozen=True)
class VehicleAvailability:
    is_available: bool
    conflicts: List[VehicleConflict] = field(default_factory=list)


@dataclass(frozen=True)
class BookingRequest:
    """Parameters of a booking attempt, as received from the caller."""
    appointment_date: date
    appointment_time: str
    duration: int
    customer_id: Optional[str] = None
    vehicle_ids: Optional[List[str]] = None
    service_ids: Optional[List[str]] = None


@dataclass
class DaySlots:
    """Annotated booking grid for one date."""
    date: date
    slots: List[Slot] = field(default_factory=list)
    message: str = ""

    def in_bucket(self, bucket: SlotBucket) -> List[Slot]:
        return [slot for slot in self.slots if slot.bucket == bucket]

    @property
    def available(self) -> List[Slot]:
        return self.in_bucket(SlotBucket.AVAILABLE)

    @property
    def limited(self) -> List[Slot]:
        return self.in_bucket(SlotBucket.LIMITED)

    @property
    def fully_booked(self) -> List[Slot]:
        return self.in_bucket(SlotBucket.FULLY_BOOKED)

    @property
    def bookable(self) -> List[Slot]:
        return [slot for slot in self.slots if slot.is_available]


@dataclass(frozen=True)
class DateAvailability:
    """Summary of one date in the booking horizon."""
    date: date
    available_slots: int
    total_slots: int
    is_fully_booked: bool
    is_limited: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "date": self.date.isoformat(),
            "availableSlots": self.available_slots,
            "totalSlots": self.total_slots,
            "isFullyBooked": self.is_fully_booked,
            "isLimited": self.is_limited,
        }


@dataclass(frozen=True)
class SlotCheck:
    """Answer for one specific date and time."""
    validation: ValidationResult
    capacity: Optional[CapacityResult] = None

    @property
    def is_bookable(self) -> bool:
        return self.validation.is_valid and bool(self.capacity and self.capacity.is_available)
