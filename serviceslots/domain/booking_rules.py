"""
Cancellation and modification rules for existing appointments.
"""

from dataclasses import dataclass
from typing import Any, Dict

from pendulum import DateTime

from .models import (
    CHANGEABLE_STATUSES,
    DEFAULT_APPOINTMENT_TIME,
    AppointmentRecord,
    BusinessCalendar,
    ValidationResult,
)


@dataclass(frozen=True)
class CancellationQuote:
    allowed: bool
    fee_percentage: int
    hours_until: float
    reason: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "canCancel": self.allowed,
            "feePercentage": self.fee_percentage,
            "hoursUntil": round(self.hours_until, 1),
            "reason": self.reason,
        }


def can_be_cancelled(record: AppointmentRecord) -> bool:
    return record.status in CHANGEABLE_STATUSES


def can_be_rescheduled(record: AppointmentRecord) -> bool:
    return record.status in CHANGEABLE_STATUSES


def _hours_until(record: AppointmentRecord, now: DateTime, default_time: str) -> float:
    start = record.start_instant(default_time)
    return (start - now).total_seconds() / 3600


def cancellation_quote(
    record: AppointmentRecord,
    calendar: BusinessCalendar,
    now: DateTime,
    default_time: str = DEFAULT_APPOINTMENT_TIME,
) -> CancellationQuote:
    """
    Decide whether an appointment can be cancelled and at what fee.

    Cancelling at least ``free_until_hours`` ahead is free; later
    cancellations carry ``fee_percentage`` of the estimated cost.
    """
    hours_until = _hours_until(record, now, default_time)

    if not can_be_cancelled(record):
        return CancellationQuote(
            allowed=False,
            fee_percentage=0,
            hours_until=hours_until,
            reason="This appointment cannot be cancelled",
        )

    rules = calendar.cancellation
    fee = 0 if hours_until >= rules.free_until_hours else rules.fee_percentage
    return CancellationQuote(allowed=True, fee_percentage=fee, hours_until=hours_until)


def check_modification(
    record: AppointmentRecord,
    calendar: BusinessCalendar,
    now: DateTime,
    default_time: str = DEFAULT_APPOINTMENT_TIME,
) -> ValidationResult:
    """Validate that an appointment may still be rescheduled."""
    result = ValidationResult()
    rules = calendar.modification

    if not can_be_rescheduled(record):
        result.add_error("This appointment cannot be rescheduled")

    if _hours_until(record, now, default_time) < rules.allowed_until_hours:
        result.add_error(
            f"Appointments can only be modified up to {rules.allowed_until_hours} "
            "hours in advance"
        )

    if record.modification_count >= rules.max_modifications:
        result.add_error(
            f"Appointments can be modified at most {rules.max_modifications} times"
        )

    return result
