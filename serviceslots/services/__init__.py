"""
Service layer helpers that orchestrate adapters and domain logic.
"""

from .availability import AppointmentStoreProtocol, AvailabilityService
from .booking import (
    AppointmentLookupProtocol,
    BookingOrchestrator,
    BookingOutcome,
    ServiceDirectoryProtocol,
    VehicleDirectoryProtocol,
)

__all__ = [
    "AppointmentLookupProtocol",
    "AppointmentStoreProtocol",
    "AvailabilityService",
    "BookingOrchestrator",
    "BookingOutcome",
    "ServiceDirectoryProtocol",
    "VehicleDirectoryProtocol",
]
