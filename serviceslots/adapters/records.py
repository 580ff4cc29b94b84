"""
Conversion of raw store payloads into domain records.

Payloads use the booking backend's camelCase field names.
"""

from typing import Any, Dict, Optional

import pendulum
from pendulum import DateTime

from ..domain.models import TERMINAL_STATUSES, AppointmentRecord, ServiceRecord, VehicleRecord


def parse_instant(value: Any, timezone: str) -> DateTime:
    """
    Parse an ISO 8601 date or datetime into the calendar time zone.

    Bare dates and naive datetimes are read as calendar-local.
    """
    if not isinstance(value, str) or not value:
        raise ValueError(f"Expected an ISO 8601 string, got {value!r}")

    dt = pendulum.parse(value, tz=timezone)

    if isinstance(dt, DateTime):
        return dt.in_timezone(timezone)

    raise ValueError(f"Could not parse datetime: {value}")


def _identifier(value: Any) -> Optional[str]:
    # Populated references arrive as nested documents
    if isinstance(value, dict):
        value = value.get("_id") or value.get("id")
    return str(value) if value not in (None, "") else None


def appointment_from_payload(payload: Dict[str, Any], timezone: str) -> AppointmentRecord:
    """
    Build an AppointmentRecord from a store document.

    Raises:
        KeyError: If the preferred date is missing
        ValueError: If a date cannot be parsed
    """
    scheduled = payload.get("scheduledDate")

    return AppointmentRecord(
        id=_identifier(payload.get("_id") or payload.get("id")) or "",
        preferred_date=parse_instant(payload["preferredDate"], timezone),
        scheduled_date=parse_instant(scheduled, timezone) if scheduled else None,
        scheduled_time=payload.get("scheduledTime") or None,
        time_window=payload.get("timeWindow") or None,
        estimated_duration=payload.get("estimatedDuration"),
        status=str(payload.get("status", "pending")).lower(),
        vehicle_id=_identifier(payload.get("vehicleId")),
        customer_id=_identifier(payload.get("customerId")),
        service_type=payload.get("serviceType", ""),
        modification_count=int(payload.get("modificationCount", 0)),
    )


def vehicle_from_payload(payload: Dict[str, Any]) -> VehicleRecord:
    return VehicleRecord(
        id=_identifier(payload.get("_id") or payload.get("id")) or "",
        owner_id=_identifier(payload.get("ownerId")) or "",
        is_active=bool(payload.get("isActive", True)),
        vehicle_number=payload.get("vehicleNumber", ""),
    )


def service_from_payload(payload: Dict[str, Any]) -> ServiceRecord:
    return ServiceRecord(
        id=_identifier(payload.get("_id") or payload.get("id")) or "",
        name=payload.get("name", ""),
        estimated_duration=int(payload.get("estimatedDuration", 60)),
        is_active=bool(payload.get("isActive", True)),
    )


def is_terminal_payload(payload: Dict[str, Any]) -> bool:
    """Check if a raw document is cancelled or completed and so holds no capacity."""
    return str(payload.get("status", "pending")).lower() in TERMINAL_STATUSES
