"""
Domain layer - Pure scheduling logic without external dependencies.
"""

from .booking_rules import (
    CancellationQuote,
    can_be_cancelled,
    can_be_rescheduled,
    cancellation_quote,
    check_modification,
)
from .clock import Clock, FixedClock, SystemClock
from .models import (
    AppointmentRecord,
    BookingRequest,
    BusinessCalendar,
    CapacityResult,
    Slot,
    SlotBucket,
    ValidationResult,
)
from .slot_generator import SlotGenerator

__all__ = [
    "AppointmentRecord",
    "BookingRequest",
    "BusinessCalendar",
    "CancellationQuote",
    "CapacityResult",
    "Clock",
    "FixedClock",
    "Slot",
    "SlotBucket",
    "SlotGenerator",
    "SystemClock",
    "ValidationResult",
    "can_be_cancelled",
    "can_be_rescheduled",
    "cancellation_quote",
    "check_modification",
]
