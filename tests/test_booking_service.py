"""
Tests for BookingOrchestrator: composed validation, failures and races.
"""

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor

import pendulum
import pytest

from serviceslots.domain.exceptions import AppointmentNotFound, AppointmentStoreError
from serviceslots.domain.models import BookingRequest
from serviceslots.services.availability import (
    MSG_LUNCH,
    MSG_MINIMUM_NOTICE,
    MSG_NOT_WORKING_DAY,
    AvailabilityService,
)
from serviceslots.services.booking import (
    MSG_FULLY_BOOKED,
    MSG_LAST_SLOT,
    MSG_NO_SERVICES,
    MSG_NO_VEHICLES,
    MSG_SERVICES_UNAVAILABLE,
    MSG_VALIDATION_ERROR,
    MSG_VEHICLE_CONFLICT,
    MSG_VEHICLES_NOT_OWNED,
    BookingOrchestrator,
)

LAST_SUNDAY = pendulum.date(2026, 10, 18)
MONDAY = pendulum.date(2026, 10, 19)
TUESDAY = pendulum.date(2026, 10, 20)
WEDNESDAY = pendulum.date(2026, 10, 21)
SUNDAY = pendulum.date(2026, 10, 25)


def _request(day=WEDNESDAY, time="10:00", duration=60, **kwargs) -> BookingRequest:
    return BookingRequest(appointment_date=day, appointment_time=time, duration=duration, **kwargs)


class RecordingStore:
    """Wraps a store and counts appointment queries."""

    def __init__(self, inner):
        self.inner = inner
        self.appointment_calls = 0

    def find_appointments(self, **kwargs):
        self.appointment_calls += 1
        return self.inner.find_appointments(**kwargs)


class BrokenDirectory:
    def find_vehicles(self, **kwargs):
        raise RuntimeError("directory offline")

    def find_services(self, **kwargs):
        raise RuntimeError("directory offline")


class FailingStore:
    def find_appointments(self, **kwargs):
        raise AppointmentStoreError("connection refused")


@pytest.fixture
def orchestrator(availability, store):
    return BookingOrchestrator(availability, vehicles=store, services=store)


class TestValidateBooking:
    """Tests for the composed booking decision."""

    def test_valid_booking(self, orchestrator):
        result = orchestrator.validate_booking(
            _request(customer_id="cust-1", vehicle_ids=["veh-1", "veh-2"], service_ids=["svc-oil"])
        )
        assert result.is_valid
        assert result.errors == []
        assert result.warnings == []

    def test_time_errors_are_all_reported(self, orchestrator):
        result = orchestrator.validate_booking(_request(day=SUNDAY, time="11:30"))
        assert result.errors == [MSG_NOT_WORKING_DAY, MSG_LUNCH]

    def test_capacity_skipped_when_time_invalid(self, calendar, store, clock):
        recording = RecordingStore(store)
        availability = AvailabilityService(calendar=calendar, store=recording, clock=clock)
        orchestrator = BookingOrchestrator(availability, vehicles=store, services=store)

        result = orchestrator.validate_booking(_request(day=MONDAY, time="09:00"))

        assert result.errors == [MSG_MINIMUM_NOTICE.format(hours=2)]
        assert recording.appointment_calls == 0

    def test_fully_booked(self, orchestrator, store, make_appointment):
        for _ in range(3):
            store.add_appointment(make_appointment(WEDNESDAY, "10:00"))

        result = orchestrator.validate_booking(_request())

        assert result.errors == [MSG_FULLY_BOOKED]

    def test_last_place_is_a_warning(self, orchestrator, store, make_appointment):
        for _ in range(2):
            store.add_appointment(make_appointment(WEDNESDAY, "10:00"))

        result = orchestrator.validate_booking(_request())

        assert result.is_valid
        assert result.warnings == [MSG_LAST_SLOT]

    def test_malformed_time_is_a_single_error(self, orchestrator):
        result = orchestrator.validate_booking(_request(time="9am"))
        assert result.errors == ["Time must be in HH:MM format, got '9am'"]

    def test_invalid_duration_is_a_single_error(self, orchestrator):
        result = orchestrator.validate_booking(_request(duration=0))
        assert len(result.errors) == 1
        assert "Duration must be a positive number of minutes" in result.errors[0]


class TestVehicleChecks:
    """Tests for vehicle conflicts and ownership."""

    def test_vehicle_already_booked(self, orchestrator, store, make_appointment):
        store.add_appointment(
            make_appointment(WEDNESDAY, "10:00", vehicle_id="veh-1", service_type="Oil change")
        )

        result = orchestrator.validate_booking(
            _request(time="10:30", customer_id="cust-1", vehicle_ids=["veh-1"])
        )

        assert result.errors == [MSG_VEHICLE_CONFLICT]

    def test_conflict_details(self, orchestrator, store, make_appointment):
        store.add_appointment(
            make_appointment(WEDNESDAY, "10:00", vehicle_id="veh-1", service_type="Oil change")
        )
        store.add_appointment(make_appointment(WEDNESDAY, "10:00", vehicle_id="veh-3"))

        availability = orchestrator.check_vehicle_availability(
            ["veh-1", "veh-2"], WEDNESDAY, "10:30", 60
        )

        assert not availability.is_available
        assert len(availability.conflicts) == 1
        conflict = availability.conflicts[0]
        assert conflict.vehicle_id == "veh-1"
        assert conflict.existing_time == "10:00"
        assert conflict.existing_service == "Oil change"

    def test_other_vehicles_do_not_conflict(self, orchestrator, store, make_appointment):
        store.add_appointment(make_appointment(WEDNESDAY, "10:00", vehicle_id="veh-3"))

        availability = orchestrator.check_vehicle_availability(["veh-1"], WEDNESDAY, "10:00", 60)

        assert availability.is_available
        assert availability.conflicts == []

    def test_cancelled_bookings_do_not_conflict(self, orchestrator, store, make_appointment):
        store.add_appointment(
            make_appointment(WEDNESDAY, "10:00", vehicle_id="veh-1", status="cancelled")
        )
        assert orchestrator.check_vehicle_availability(["veh-1"], WEDNESDAY, "10:00", 60).is_available

    def test_no_vehicles_means_no_conflicts(self, orchestrator):
        assert orchestrator.check_vehicle_availability([], WEDNESDAY, "10:00", 60).is_available

    @pytest.mark.parametrize(
        "vehicle_ids",
        [["veh-3"], ["veh-1", "veh-3"], ["veh-4"], ["veh-unknown"]],
    )
    def test_vehicles_must_belong_to_customer(self, orchestrator, vehicle_ids):
        result = orchestrator.validate_booking(
            _request(customer_id="cust-1", vehicle_ids=vehicle_ids)
        )
        assert result.errors == [MSG_VEHICLES_NOT_OWNED]

    def test_empty_vehicle_list(self, orchestrator):
        result = orchestrator.validate_booking(_request(customer_id="cust-1", vehicle_ids=[]))
        assert result.errors == [MSG_NO_VEHICLES]

    def test_ownership_not_checked_without_customer(self, orchestrator):
        result = orchestrator.validate_booking(_request(vehicle_ids=["veh-3"]))
        assert result.is_valid


class TestServiceChecks:
    """Tests for the service catalogue check."""

    def test_empty_service_list(self, orchestrator):
        result = orchestrator.validate_booking(_request(service_ids=[]))
        assert result.errors == [MSG_NO_SERVICES]

    @pytest.mark.parametrize(
        "service_ids",
        [["svc-detailing"], ["svc-oil", "svc-unknown"]],
    )
    def test_inactive_or_unknown_services(self, orchestrator, service_ids):
        result = orchestrator.validate_booking(_request(service_ids=service_ids))
        assert result.errors == [MSG_SERVICES_UNAVAILABLE]

    def test_errors_from_every_check_are_combined(self, orchestrator, store, make_appointment):
        for _ in range(3):
            store.add_appointment(make_appointment(WEDNESDAY, "10:00"))

        result = orchestrator.validate_booking(
            _request(customer_id="cust-1", vehicle_ids=["veh-3"], service_ids=["svc-detailing"])
        )

        assert result.errors == [
            MSG_FULLY_BOOKED,
            MSG_VEHICLES_NOT_OWNED,
            MSG_SERVICES_UNAVAILABLE,
        ]


class TestInfrastructureFailures:
    """Store and directory failures become one generic error."""

    def test_store_failure(self, calendar, store, clock, caplog):
        availability = AvailabilityService(calendar=calendar, store=FailingStore(), clock=clock)
        diagnostics = logging.getLogger("tests.diagnostics")
        orchestrator = BookingOrchestrator(
            availability, vehicles=store, services=store, diagnostics=diagnostics
        )

        with caplog.at_level(logging.ERROR):
            result = orchestrator.validate_booking(_request())

        assert result.errors == [MSG_VALIDATION_ERROR]
        diagnostic_records = [r for r in caplog.records if r.name == "tests.diagnostics"]
        assert len(diagnostic_records) == 1
        assert diagnostic_records[0].exc_info is not None
        assert "connection refused" in caplog.text

    def test_directory_failure(self, availability, caplog):
        orchestrator = BookingOrchestrator(
            availability, vehicles=BrokenDirectory(), services=BrokenDirectory()
        )

        with caplog.at_level(logging.ERROR):
            result = orchestrator.validate_booking(
                _request(customer_id="cust-1", vehicle_ids=["veh-1"])
            )

        assert result.errors == [MSG_VALIDATION_ERROR]
        assert "directory offline" in caplog.text


class TestBook:
    """Tests for validate-then-commit."""

    def test_commits_valid_booking(self, orchestrator):
        committed = []

        outcome = orchestrator.book(_request(), commit=lambda req: committed.append(req) or "apt-new")

        assert outcome.validation.is_valid
        assert outcome.committed == "apt-new"
        assert len(committed) == 1

    def test_does_not_commit_invalid_booking(self, orchestrator):
        committed = []

        outcome = orchestrator.book(_request(day=SUNDAY), commit=committed.append)

        assert not outcome.validation.is_valid
        assert outcome.committed is None
        assert committed == []

    def test_commit_errors_propagate(self, orchestrator):
        def commit(_request):
            raise RuntimeError("write failed")

        with pytest.raises(RuntimeError, match="write failed"):
            orchestrator.book(_request(), commit=commit)


class BarrierStore:
    """Holds every reader until two have arrived, so both see the same state."""

    def __init__(self, inner):
        self.inner = inner
        self.barrier = threading.Barrier(2, timeout=5)

    def find_appointments(self, **kwargs):
        snapshot = self.inner.find_appointments(**kwargs)
        self.barrier.wait()
        return snapshot


class SlowStore:
    """Widens the gap between reading capacity and committing."""

    def __init__(self, inner):
        self.inner = inner

    def find_appointments(self, **kwargs):
        snapshot = self.inner.find_appointments(**kwargs)
        time.sleep(0.05)
        return snapshot


class TestConcurrentBookings:
    """Two requests racing for the last place in a slot."""

    def _race(self, orchestrator, store, make_appointment):
        def commit(_request):
            return store.add_appointment(make_appointment(WEDNESDAY, "10:00"))

        with ThreadPoolExecutor(max_workers=2) as pool:
            futures = [pool.submit(orchestrator.book, _request(), commit) for _ in range(2)]
            return [future.result() for future in futures]

    def test_unserialized_bookings_can_overbook(self, calendar, store, clock, make_appointment):
        for _ in range(2):
            store.add_appointment(make_appointment(WEDNESDAY, "10:00"))
        availability = AvailabilityService(calendar=calendar, store=BarrierStore(store), clock=clock)
        orchestrator = BookingOrchestrator(availability, vehicles=store, services=store)

        outcomes = self._race(orchestrator, store, make_appointment)

        assert all(outcome.validation.is_valid for outcome in outcomes)
        assert len(store.appointments) == 4

    def test_serialized_bookings_admit_one(self, calendar, store, clock, make_appointment):
        for _ in range(2):
            store.add_appointment(make_appointment(WEDNESDAY, "10:00"))
        availability = AvailabilityService(calendar=calendar, store=SlowStore(store), clock=clock)
        orchestrator = BookingOrchestrator(availability, vehicles=store, services=store, serialize=True)

        outcomes = self._race(orchestrator, store, make_appointment)

        accepted = [o for o in outcomes if o.validation.is_valid]
        rejected = [o for o in outcomes if not o.validation.is_valid]
        assert len(accepted) == 1
        assert len(rejected) == 1
        assert rejected[0].validation.errors == [MSG_FULLY_BOOKED]
        assert len(store.appointments) == 3

    def test_locks_for_past_days_are_dropped(self, availability, store):
        orchestrator = BookingOrchestrator(availability, vehicles=store, services=store, serialize=True)

        orchestrator.book(_request(day=LAST_SUNDAY), commit=lambda req: None)
        assert LAST_SUNDAY in orchestrator._day_locks

        orchestrator.book(_request(day=MONDAY, time="14:00"), commit=lambda req: None)
        orchestrator.book(_request(), commit=lambda req: None)

        assert set(orchestrator._day_locks) == {MONDAY, WEDNESDAY}


class TestExistingAppointments:
    """Cancellation and modification checks for stored appointments."""

    @pytest.fixture
    def orchestrator(self, availability, store):
        return BookingOrchestrator(availability, vehicles=store, services=store, appointments=store)

    def test_free_cancellation(self, orchestrator, store, make_appointment):
        record = store.add_appointment(make_appointment(WEDNESDAY, "10:00"))

        quote = orchestrator.cancellation_quote(record.id)

        assert quote.allowed
        assert quote.fee_percentage == 0
        assert quote.hours_until == 50

    def test_late_cancellation_carries_fee(self, orchestrator, store, make_appointment):
        record = store.add_appointment(make_appointment(TUESDAY, "10:00", status="pending"))

        quote = orchestrator.cancellation_quote(record.id)

        assert quote.allowed
        assert quote.fee_percentage == 50
        assert quote.to_dict()["hoursUntil"] == 26.0

    def test_cancelled_appointment_cannot_be_cancelled(self, orchestrator, store, make_appointment):
        record = store.add_appointment(make_appointment(WEDNESDAY, status="cancelled"))

        quote = orchestrator.cancellation_quote(record.id)

        assert not quote.allowed
        assert quote.reason == "This appointment cannot be cancelled"

    def test_modification_allowed(self, orchestrator, store, make_appointment):
        record = store.add_appointment(make_appointment(WEDNESDAY, "10:00"))
        assert orchestrator.check_modification(record.id).is_valid

    def test_modification_rules_combined(self, orchestrator, store, make_appointment):
        record = store.add_appointment(
            make_appointment(MONDAY, "14:00", status="in-service", modification_count=2)
        )

        result = orchestrator.check_modification(record.id)

        assert result.errors == [
            "This appointment cannot be rescheduled",
            "Appointments can only be modified up to 24 hours in advance",
            "Appointments can be modified at most 2 times",
        ]

    def test_unknown_appointment(self, orchestrator):
        with pytest.raises(AppointmentNotFound, match="apt-missing"):
            orchestrator.cancellation_quote("apt-missing")
        with pytest.raises(AppointmentNotFound):
            orchestrator.check_modification("apt-missing")

    def test_lookup_requires_a_store(self, availability, store):
        orchestrator = BookingOrchestrator(availability, vehicles=store, services=store)

        with pytest.raises(AppointmentStoreError, match="No appointment store"):
            orchestrator.cancellation_quote("apt-1")
