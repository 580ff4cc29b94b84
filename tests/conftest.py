"""
Shared fixtures for the slot engine tests.

"Now" is pinned to Monday 2026-10-19 08:00 Europe/London.
"""

from itertools import count

import pendulum
import pytest

from serviceslots.adapters.memory_store import InMemoryAppointmentStore
from serviceslots.domain.clock import FixedClock
from serviceslots.domain.models import (
    AppointmentRecord,
    BusinessCalendar,
    ServiceRecord,
    VehicleRecord,
)
from serviceslots.services.availability import AvailabilityService

TZ = "Europe/London"


@pytest.fixture
def now():
    return pendulum.datetime(2026, 10, 19, 8, 0, tz=TZ)


@pytest.fixture
def clock(now):
    return FixedClock(now)


@pytest.fixture
def calendar():
    """Default policy with Friday 2026-10-23 closed."""
    return BusinessCalendar(
        blocked_dates=frozenset({pendulum.date(2026, 10, 23)}),
        timezone=TZ,
    )


@pytest.fixture
def make_appointment():
    """Factory for appointments scheduled on a given date and time."""
    ids = count(1)

    def _make(day, time="10:00", duration=60, status="confirmed", vehicle_id=None, **kwargs):
        instant = pendulum.datetime(day.year, day.month, day.day, tz=TZ)
        return AppointmentRecord(
            id=f"apt-{next(ids)}",
            preferred_date=kwargs.pop("preferred_date", instant),
            scheduled_date=kwargs.pop("scheduled_date", instant),
            scheduled_time=time,
            estimated_duration=duration,
            status=status,
            vehicle_id=vehicle_id,
            **kwargs,
        )

    return _make


@pytest.fixture
def store():
    return InMemoryAppointmentStore(
        vehicles=[
            VehicleRecord(id="veh-1", owner_id="cust-1"),
            VehicleRecord(id="veh-2", owner_id="cust-1"),
            VehicleRecord(id="veh-3", owner_id="cust-2"),
            VehicleRecord(id="veh-4", owner_id="cust-1", is_active=False),
        ],
        services=[
            ServiceRecord(id="svc-oil", name="Oil change"),
            ServiceRecord(id="svc-brakes", name="Brake inspection", estimated_duration=90),
            ServiceRecord(id="svc-detailing", name="Detailing", is_active=False),
        ],
    )


@pytest.fixture
def availability(calendar, store, clock):
    return AvailabilityService(calendar=calendar, store=store, clock=clock)
