"""
In-memory appointment store and directories, optionally seeded from JSON.
"""

import json
import logging
from pathlib import Path
from typing import Any, Collection, Dict, Iterable, List, Optional, Sequence

from pendulum import DateTime

from ..domain.exceptions import AppointmentStoreError
from ..domain.models import AppointmentRecord, ServiceRecord, VehicleRecord
from .records import (
    appointment_from_payload,
    is_terminal_payload,
    service_from_payload,
    vehicle_from_payload,
)

logger = logging.getLogger(__name__)


class InMemoryAppointmentStore:
    """
    Store that keeps appointments, vehicles and services in process memory.

    It implements the appointment store, vehicle directory and service
    directory protocols, so one instance can back every service. Seed files
    use the same JSON documents as the booking backend.
    """

    def __init__(
        self,
        appointments: Iterable[AppointmentRecord] = (),
        vehicles: Iterable[VehicleRecord] = (),
        services: Iterable[ServiceRecord] = (),
    ):
        self.appointments: List[AppointmentRecord] = list(appointments)
        self.vehicles: List[VehicleRecord] = list(vehicles)
        self.services: List[ServiceRecord] = list(services)

    @classmethod
    def from_json(cls, data_file: Path, timezone: str) -> "InMemoryAppointmentStore":
        """
        Load records from a JSON file with ``appointments``, ``vehicles``
        and ``services`` arrays.

        Raises:
            AppointmentStoreError: If the file cannot be read or is not JSON,
                or an active appointment in it cannot be parsed
        """
        try:
            with open(data_file, "r", encoding="utf-8") as f:
                data: Dict[str, Any] = json.load(f)
        except (OSError, json.JSONDecodeError) as exc:
            raise AppointmentStoreError(f"Could not load data file {data_file}: {exc}") from exc

        if not isinstance(data, dict):
            raise AppointmentStoreError("Data file must contain a mapping at the root level.")

        appointments: List[AppointmentRecord] = []
        for payload in data.get("appointments", []):
            try:
                appointments.append(appointment_from_payload(payload, timezone))
            except (KeyError, ValueError, TypeError) as exc:
                # An unreadable active booking would silently free its capacity
                if not is_terminal_payload(payload):
                    raise AppointmentStoreError(
                        f"Invalid appointment {payload.get('_id', '?')} in {data_file}: {exc}"
                    ) from exc
                logger.warning("Skipping appointment %s: %s", payload.get("_id", "?"), exc)

        vehicles = [vehicle_from_payload(p) for p in data.get("vehicles", [])]
        services = [service_from_payload(p) for p in data.get("services", [])]

        return cls(appointments=appointments, vehicles=vehicles, services=services)

    def add_appointment(self, record: AppointmentRecord) -> AppointmentRecord:
        self.appointments.append(record)
        return record

    def get_appointment(self, appointment_id: str) -> Optional[AppointmentRecord]:
        return next((apt for apt in self.appointments if apt.id == appointment_id), None)

    def find_appointments(
        self,
        *,
        start: DateTime,
        end: DateTime,
        exclude_statuses: Collection[str],
        vehicle_ids: Optional[Sequence[str]] = None,
    ) -> List[AppointmentRecord]:
        """Appointments with a scheduled or preferred date inside ``[start, end]``."""
        wanted = set(vehicle_ids) if vehicle_ids is not None else None
        found: List[AppointmentRecord] = []

        for apt in list(self.appointments):
            if apt.status in exclude_statuses:
                continue
            if wanted is not None and apt.vehicle_id not in wanted:
                continue

            dates = [apt.preferred_date, apt.scheduled_date]
            if any(d is not None and start <= d <= end for d in dates):
                found.append(apt)

        return found

    def find_vehicles(
        self,
        *,
        ids: Sequence[str],
        owner_id: Optional[str] = None,
        active_only: bool = True,
    ) -> List[VehicleRecord]:
        wanted = set(ids)
        return [
            vehicle for vehicle in self.vehicles
            if vehicle.id in wanted
            and (owner_id is None or vehicle.owner_id == owner_id)
            and (vehicle.is_active or not active_only)
        ]

    def find_services(
        self,
        *,
        ids: Sequence[str],
        active_only: bool = True,
    ) -> List[ServiceRecord]:
        wanted = set(ids)
        return [
            service for service in self.services
            if service.id in wanted and (service.is_active or not active_only)
        ]
