"""
Tests for cancellation and modification rules.
"""

import pendulum
import pytest

from serviceslots.domain import (
    can_be_cancelled,
    can_be_rescheduled,
    cancellation_quote,
    check_modification,
)
from serviceslots.domain.models import BusinessCalendar, CancellationRules, ModificationRules

TUESDAY = pendulum.date(2026, 10, 20)
WEDNESDAY = pendulum.date(2026, 10, 21)


class TestStatusRules:
    @pytest.mark.parametrize("status", ["pending", "confirmed"])
    def test_changeable_statuses(self, make_appointment, status):
        record = make_appointment(WEDNESDAY, status=status)
        assert can_be_cancelled(record)
        assert can_be_rescheduled(record)

    @pytest.mark.parametrize("status", ["in-service", "completed", "cancelled"])
    def test_locked_statuses(self, make_appointment, status):
        record = make_appointment(WEDNESDAY, status=status)
        assert not can_be_cancelled(record)
        assert not can_be_rescheduled(record)


class TestCancellationQuote:
    """Tests for cancellation fees."""

    def test_free_when_far_enough_ahead(self, make_appointment, calendar, now):
        # Wednesday 10:00 is 50 hours after Monday 08:00
        quote = cancellation_quote(make_appointment(WEDNESDAY, "10:00"), calendar, now)

        assert quote.allowed
        assert quote.fee_percentage == 0
        assert quote.hours_until == pytest.approx(50)

    def test_fee_inside_free_period(self, make_appointment, calendar, now):
        quote = cancellation_quote(make_appointment(TUESDAY, "10:00"), calendar, now)

        assert quote.allowed
        assert quote.fee_percentage == 50
        assert quote.hours_until == pytest.approx(26)

    def test_custom_rules(self, make_appointment, now):
        calendar = BusinessCalendar(cancellation=CancellationRules(free_until_hours=24, fee_percentage=25))

        quote = cancellation_quote(make_appointment(TUESDAY, "07:00"), calendar, now)

        assert quote.fee_percentage == 25

    def test_completed_appointment_cannot_be_cancelled(self, make_appointment, calendar, now):
        quote = cancellation_quote(make_appointment(WEDNESDAY, status="completed"), calendar, now)

        assert not quote.allowed
        assert quote.reason == "This appointment cannot be cancelled"


class TestModification:
    """Tests for rescheduling limits."""

    def test_allowed(self, make_appointment, calendar, now):
        assert check_modification(make_appointment(TUESDAY, "10:00"), calendar, now).is_valid

    def test_too_close_to_start(self, make_appointment, calendar, now):
        result = check_modification(make_appointment(TUESDAY, "07:00"), calendar, now)
        assert result.errors == ["Appointments can only be modified up to 24 hours in advance"]

    def test_too_many_modifications(self, make_appointment, calendar, now):
        record = make_appointment(WEDNESDAY, modification_count=2)
        result = check_modification(record, calendar, now)
        assert result.errors == ["Appointments can be modified at most 2 times"]

    def test_all_problems_reported(self, make_appointment, now):
        calendar = BusinessCalendar(modification=ModificationRules(allowed_until_hours=72, max_modifications=1))
        record = make_appointment(WEDNESDAY, status="in-service", modification_count=1)

        result = check_modification(record, calendar, now)

        assert result.errors == [
            "This appointment cannot be rescheduled",
            "Appointments can only be modified up to 72 hours in advance",
            "Appointments can be modified at most 1 times",
        ]

    def test_untimed_appointment_uses_default_time(self, make_appointment, calendar, now):
        record = make_appointment(TUESDAY, time=None)
        # Tuesday 09:00 is 25 hours away; at 07:00 it would be 23
        assert check_modification(record, calendar, now).is_valid
        assert not check_modification(record, calendar, now, default_time="07:00").is_valid
