"""
Booking-time validation: calendar rules, capacity, vehicles and services.

``BookingOrchestrator.validate_booking`` is the single pass/fail decision
made before an appointment is persisted. Infrastructure failures are logged
here with their traceback and reported to the caller as one generic error.

Concurrency: by default validation and commit are not serialized, so two
requests racing for the last place in a slot can both pass and overbook it.
With ``serialize=True`` the validate-and-commit step of ``book`` holds a
per-day lock, which is sufficient only when every booking for the store
goes through this process.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date
from typing import Any, Callable, Dict, Iterator, List, Optional, Protocol, Sequence

from ..domain import booking_rules
from ..domain.booking_rules import CancellationQuote
from ..domain.clock_time import format_time, parse_time
from ..domain.exceptions import (
    AppointmentNotFound,
    AppointmentStoreError,
    DirectoryError,
    InputError,
    SchedulingError,
)
from ..domain.models import (
    AppointmentRecord,
    BookingRequest,
    ServiceRecord,
    ValidationResult,
    VehicleAvailability,
    VehicleConflict,
    VehicleRecord,
)
from ..domain.slot_generator import ensure_positive_duration
from .availability import AvailabilityService

logger = logging.getLogger(__name__)

MSG_FULLY_BOOKED = "Selected time slot is fully booked"
MSG_LAST_SLOT = "Only 1 slot remaining at this time"
MSG_VEHICLE_CONFLICT = "One or more vehicles already have an appointment at this time"
MSG_NO_VEHICLES = "No vehicles selected"
MSG_VEHICLES_NOT_OWNED = "One or more vehicles not found or do not belong to you"
MSG_NO_SERVICES = "No services selected"
MSG_SERVICES_UNAVAILABLE = "One or more services not found or inactive"
MSG_VALIDATION_ERROR = "Validation error occurred"


class VehicleDirectoryProtocol(Protocol):
    """Protocol describing the vehicle lookups needed by the orchestrator."""

    def find_vehicles(
        self,
        *,
        ids: Sequence[str],
        owner_id: Optional[str] = None,
        active_only: bool = True,
    ) -> Sequence[VehicleRecord]:
        """Return the vehicles among ``ids`` matching owner and activity."""


class AppointmentLookupProtocol(Protocol):
    """Protocol describing single-appointment lookups."""

    def get_appointment(self, appointment_id: str) -> Optional[AppointmentRecord]:
        """Return the appointment with this id, or None when unknown."""


class ServiceDirectoryProtocol(Protocol):
    """Protocol describing the service catalogue lookups."""

    def find_services(
        self,
        *,
        ids: Sequence[str],
        active_only: bool = True,
    ) -> Sequence[ServiceRecord]:
        """Return the services among ``ids``, optionally only active ones."""


@dataclass(frozen=True)
class BookingOutcome:
    validation: ValidationResult
    committed: Any = None


class BookingOrchestrator:
    """
    Composes availability checks with vehicle and service checks.

    ``diagnostics`` receives the real cause of any failure that is
    reported to the caller only as a generic validation error.
    ``appointments`` is needed only for the cancellation and modification
    checks on stored appointments.
    """

    def __init__(
        self,
        availability: AvailabilityService,
        vehicles: VehicleDirectoryProtocol,
        services: ServiceDirectoryProtocol,
        *,
        appointments: Optional[AppointmentLookupProtocol] = None,
        diagnostics: Optional[logging.Logger] = None,
        serialize: bool = False,
    ) -> None:
        self._availability = availability
        self._vehicles = vehicles
        self._services = services
        self._appointments = appointments
        self._diagnostics = diagnostics or logger
        self._serialize = serialize
        self._day_locks: Dict[date, threading.Lock] = {}
        self._day_locks_guard = threading.Lock()

    def validate_booking(self, request: BookingRequest) -> ValidationResult:
        """
        Run every booking check and collect all errors and warnings.

        Capacity is only measured once the time itself is legal.
        """
        try:
            return self._run_checks(request)
        except InputError as exc:
            return ValidationResult.failure(str(exc))
        except (AppointmentStoreError, DirectoryError):
            self._diagnostics.exception(
                "Booking validation failed for %s %s",
                request.appointment_date,
                request.appointment_time,
            )
            return ValidationResult.failure(MSG_VALIDATION_ERROR)

    def _run_checks(self, request: BookingRequest) -> ValidationResult:
        result = ValidationResult()
        day, time, duration = request.appointment_date, request.appointment_time, request.duration

        # 1. Calendar rules
        time_check = self._availability.validate_time(day, time, duration)
        for error in time_check.errors:
            result.add_error(error)

        # 2. Capacity
        if time_check.is_valid:
            capacity = self._availability.check_capacity(day, time, duration)
            if not capacity.is_available:
                result.add_error(MSG_FULLY_BOOKED)
            elif capacity.capacity_remaining == 1:
                result.add_warning(MSG_LAST_SLOT)

        # 3. Vehicles already booked at this time
        if request.vehicle_ids:
            vehicle_check = self.check_vehicle_availability(
                request.vehicle_ids, day, time, duration
            )
            if not vehicle_check.is_available:
                result.add_error(MSG_VEHICLE_CONFLICT)

        # 4. Vehicle ownership
        if request.customer_id and request.vehicle_ids is not None:
            for error in self.verify_vehicle_ownership(
                request.vehicle_ids, request.customer_id
            ).errors:
                result.add_error(error)

        # 5. Services
        if request.service_ids is not None:
            for error in self.verify_services(request.service_ids).errors:
                result.add_error(error)

        return result

    def check_vehicle_availability(
        self,
        vehicle_ids: Sequence[str],
        day: date,
        time: str,
        duration: int,
    ) -> VehicleAvailability:
        """
        Find appointments of the given vehicles overlapping the request.

        Raises:
            AppointmentStoreError: If the store cannot be queried
        """
        if not vehicle_ids:
            return VehicleAvailability(is_available=True)

        start = parse_time(time)
        ensure_positive_duration(duration)

        appointments = self._availability.fetch_day_appointments(day, vehicle_ids=vehicle_ids)
        wanted = set(vehicle_ids)
        own = [apt for apt in appointments if apt.vehicle_id in wanted]

        conflicts: List[VehicleConflict] = [
            VehicleConflict(
                vehicle_id=apt.vehicle_id,
                existing_time=format_time(apt.effective_time(self._availability.default_time)),
                existing_service=apt.service_type,
            )
            for apt in self._availability.conflicting_appointments(own, start, start + duration)
        ]

        return VehicleAvailability(is_available=not conflicts, conflicts=conflicts)

    def verify_vehicle_ownership(
        self,
        vehicle_ids: Sequence[str],
        customer_id: str,
    ) -> ValidationResult:
        """
        Check that every vehicle exists, is active and belongs to the customer.

        Any shortfall is a single error, not one per vehicle.
        """
        if not vehicle_ids:
            return ValidationResult.failure(MSG_NO_VEHICLES)

        vehicles = self._lookup(
            "vehicles",
            lambda: self._vehicles.find_vehicles(
                ids=list(vehicle_ids), owner_id=customer_id, active_only=True
            ),
        )

        if len(vehicles) != len(vehicle_ids):
            return ValidationResult.failure(MSG_VEHICLES_NOT_OWNED)

        return ValidationResult()

    def verify_services(self, service_ids: Sequence[str]) -> ValidationResult:
        """Check that every requested service exists and is active."""
        if not service_ids:
            return ValidationResult.failure(MSG_NO_SERVICES)

        services = self._lookup(
            "services",
            lambda: self._services.find_services(ids=list(service_ids), active_only=True),
        )

        if len(services) != len(service_ids):
            return ValidationResult.failure(MSG_SERVICES_UNAVAILABLE)

        return ValidationResult()

    def _lookup(self, what: str, query: Callable[[], Sequence[Any]]) -> Sequence[Any]:
        try:
            return query()
        except SchedulingError:
            raise
        except Exception as exc:
            logger.exception("Error looking up %s", what)
            raise DirectoryError(f"Could not look up {what}: {exc}") from exc

    def book(
        self,
        request: BookingRequest,
        commit: Callable[[BookingRequest], Any],
    ) -> BookingOutcome:
        """
        Validate a booking and hand it to ``commit`` only when it passes.

        Errors raised by ``commit`` propagate to the caller.
        """
        with self._serialized(request.appointment_date):
            validation = self.validate_booking(request)
            if not validation.is_valid:
                return BookingOutcome(validation=validation)
            return BookingOutcome(validation=validation, committed=commit(request))

    @contextmanager
    def _serialized(self, day: date) -> Iterator[None]:
        if not self._serialize:
            yield
            return

        # A whole day is one key: overlapping requests can start at different times
        with self._day_locks_guard:
            if day not in self._day_locks:
                self._prune_day_locks()
            lock = self._day_locks.setdefault(day, threading.Lock())

        with lock:
            yield

    def _prune_day_locks(self) -> None:
        # Past days can no longer be booked, so their locks are never contended again
        today = self._availability.today()
        for day in [d for d in self._day_locks if d < today]:
            del self._day_locks[day]

    def get_appointment(self, appointment_id: str) -> AppointmentRecord:
        """
        Load one existing appointment.

        Raises:
            AppointmentNotFound: If the store does not know the id
            AppointmentStoreError: If no lookup is configured or the store fails
        """
        if self._appointments is None:
            raise AppointmentStoreError("No appointment store configured for lookups")

        record = self._appointments.get_appointment(appointment_id)
        if record is None:
            raise AppointmentNotFound(f"Appointment {appointment_id} not found")
        return record

    def cancellation_quote(self, appointment_id: str) -> CancellationQuote:
        """Whether an existing appointment can be cancelled now, and at what fee."""
        record = self.get_appointment(appointment_id)
        return booking_rules.cancellation_quote(
            record,
            self._availability.calendar,
            self._availability.now(),
            self._availability.default_time,
        )

    def check_modification(self, appointment_id: str) -> ValidationResult:
        """Whether an existing appointment can still be rescheduled."""
        record = self.get_appointment(appointment_id)
        return booking_rules.check_modification(
            record,
            self._availability.calendar,
            self._availability.now(),
            self._availability.default_time,
        )
