"""
Unit tests for collect-all booking validation.
"""

import pytest
from datetime import date, time

from services.booking_conflict_service import (
    BUSINESS_ID_REQUIRED_MESSAGE,
    INVALID_DATE_MESSAGE,
    INVALID_START_TIME_MESSAGE,
    PAST_MIDNIGHT_MESSAGE,
    SERVICE_ID_REQUIRED_MESSAGE,
)
from services.booking_policy import (
    APPOINTMENT_CONFLICT_MESSAGE,
    DAY_UNAVAILABLE_MESSAGE,
    PAST_MESSAGE,
    SERVICE_UNAVAILABLE_MESSAGE,
)
from shared_types.availability import NextAvailableSlot
from shared_types.booking import BookingRequest

NEXT_MONDAY = date(2030, 1, 14)


def validate(services, db, business_id, service_id, appointment_date, start_time, exclude=None):
    return services.conflicts.validate_booking_request(
        db,
        BookingRequest(
            business_id=business_id,
            service_id=service_id,
            appointment_date=appointment_date,
            start_time=start_time,
            exclude_appointment_id=exclude,
        ),
    )


class TestScenarios:
    """Reference booking scenarios."""

    def test_overlapping_confirmed_appointment(self, services, db_session, business, service, monday_hours, add_appointment):
        """Test booking 10:30-11:30 over a confirmed 10:00-11:00 appointment is refused."""
        add_appointment(business, service, NEXT_MONDAY, time(10, 0), time(11, 0))

        result = validate(services, db_session, business.id, service.id, "2030-01-14", "10:30")

        assert result.is_available is False
        assert APPOINTMENT_CONFLICT_MESSAGE in result.conflicts

    def test_past_date(self, services, db_session, business, service, monday_hours):
        """Test a past date is always reported, whatever else fails."""
        result = validate(services, db_session, business.id, service.id, "2030-01-06", "10:00")

        assert result.is_available is False
        assert PAST_MESSAGE in result.conflicts

    def test_day_without_weekly_rule(self, services, db_session, business, service, monday_hours):
        """Test a Tuesday request against a Monday-only schedule."""
        result = validate(services, db_session, business.id, service.id, "2030-01-15", "10:00")

        assert result.is_available is False
        assert DAY_UNAVAILABLE_MESSAGE in result.conflicts


class TestValidation:
    def test_available_slot(self, services, db_session, business, service, monday_hours):
        result = validate(services, db_session, business.id, service.id, "2030-01-14", "10:00")

        assert result.is_available is True
        assert result.conflicts == []
        assert result.next_available_slot is None
        assert result.to_dict() == {"is_available": True, "conflicts": []}

    def test_all_failures_are_collected(self, services, db_session, business, service, monday_hours, add_appointment):
        """Test every failing rule contributes its reason, in rule order."""
        add_appointment(business, service, date(2030, 1, 6), time(10, 0), time(11, 0))

        result = validate(services, db_session, business.id, service.id, "2030-01-06", "10:00")

        assert result.conflicts == [PAST_MESSAGE, DAY_UNAVAILABLE_MESSAGE, APPOINTMENT_CONFLICT_MESSAGE]

    def test_malformed_input_reported_together(self, services, db_session):
        """Test input errors are all listed and stop further validation."""
        result = validate(services, db_session, 0, 0, "14/01/2030", "10am")

        assert result.is_available is False
        assert result.conflicts == [
            BUSINESS_ID_REQUIRED_MESSAGE,
            SERVICE_ID_REQUIRED_MESSAGE,
            INVALID_DATE_MESSAGE,
            INVALID_START_TIME_MESSAGE,
        ]
        assert result.next_available_slot is None

    def test_non_calendar_date_rejected(self, services, db_session, business, service):
        result = validate(services, db_session, business.id, service.id, "2030-02-30", "10:00")
        assert result.conflicts == [INVALID_DATE_MESSAGE]

    def test_unknown_service(self, services, db_session, business, monday_hours):
        result = validate(services, db_session, business.id, 9999, "2030-01-14", "10:00")

        assert result.conflicts == [SERVICE_UNAVAILABLE_MESSAGE]
        assert result.next_available_slot is None

    def test_appointment_may_not_cross_midnight(self, services, db_session, business, service, add_weekly_rule):
        add_weekly_rule(business, 1, time(9, 0), time(23, 59))

        result = validate(services, db_session, business.id, service.id, "2030-01-14", "23:30")

        assert PAST_MIDNIGHT_MESSAGE in result.conflicts

    def test_rescheduling_ignores_own_appointment(self, services, db_session, business, service, monday_hours, add_appointment):
        existing = add_appointment(business, service, NEXT_MONDAY, time(10, 0), time(11, 0))

        result = validate(services, db_session, business.id, service.id, "2030-01-14", "10:30", exclude=existing.id)
        assert result.is_available is True


class TestSuggestions:
    """Test the next available slot offered with a refusal."""

    def test_suggests_next_free_slot_same_day(self, services, db_session, business, service, monday_hours, add_appointment):
        add_appointment(business, service, NEXT_MONDAY, time(9, 0), time(11, 0))

        result = validate(services, db_session, business.id, service.id, "2030-01-14", "10:00")

        assert result.next_available_slot == NextAvailableSlot("2030-01-14", "11:00", "12:00")
        assert result.to_dict()["suggestions"] == {
            "next_available_slot": {"date": "2030-01-14", "start_time": "11:00", "end_time": "12:00"}
        }

    def test_past_request_searches_from_today(self, services, db_session, business, service, monday_hours):
        result = validate(services, db_session, business.id, service.id, "2030-01-06", "10:00")
        assert result.next_available_slot == NextAvailableSlot("2030-01-07", "09:00", "10:00")

    def test_suggestion_looks_one_week_ahead(self, services, db_session, business, service, monday_hours):
        result = validate(services, db_session, business.id, service.id, "2030-01-15", "10:00")
        assert result.next_available_slot == NextAvailableSlot("2030-01-21", "09:00", "10:00")

    def test_no_suggestion_when_nothing_free(self, services, db_session, business, service, monday_hours, add_exception):
        add_exception(business, date(2030, 1, 21), is_available=False)

        result = validate(services, db_session, business.id, service.id, "2030-01-15", "10:00")
        assert result.is_available is False
        assert result.next_available_slot is None
