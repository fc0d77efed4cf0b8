"""
Integration tests for concurrent bookings of the same slot.

These run real threads against a file-backed SQLite database, so the
booking guard's BEGIN IMMEDIATE transactions contend for the write lock
exactly as concurrent API requests would.
"""

import threading
from datetime import date, time
from typing import List
from unittest.mock import Mock

import pytest
from sqlalchemy.exc import OperationalError

from core.exceptions import ConflictError
from models import Appointment
from services.booking_guard import RACE_MESSAGE

SLOT_DATE = date(2030, 1, 14)
THREADS = 5


def _run_concurrently(target, count: int):
    """Start ``count`` threads that call ``target`` at the same moment."""
    barrier = threading.Barrier(count)
    successes: List[Appointment] = []
    failures: List[BaseException] = []
    lock = threading.Lock()

    def worker():
        barrier.wait()
        try:
            result = target()
            with lock:
                successes.append(result)
        except Exception as e:
            with lock:
                failures.append(e)

    threads = [threading.Thread(target=worker) for _ in range(count)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=30)
    return successes, failures


def _active_appointments(session_factory) -> List[Appointment]:
    with session_factory() as db:
        return db.query(Appointment).filter(Appointment.status.in_(("pending", "confirmed"))).all()


class TestConcurrentBooking:
    """Exactly one of several simultaneous bookings for a slot may succeed."""

    def test_concurrent_create_books_slot_once(self, services, session_factory, business, service, monday_hours):
        successes, failures = _run_concurrently(
            lambda: services.appointments.create_appointment(business.id, service.id, "2030-01-14", "10:00"),
            THREADS,
        )

        assert len(successes) == 1
        assert len(failures) == THREADS - 1
        assert all(isinstance(error, ConflictError) for error in failures)
        assert len(_active_appointments(session_factory)) == 1

    def test_concurrent_overlapping_starts(self, services, session_factory, business, service, monday_hours):
        """Test bookings that only partly overlap are serialized as well."""
        starts = iter(["10:00", "10:15", "10:30", "10:45"])
        start_lock = threading.Lock()

        def book():
            with start_lock:
                start = next(starts)
            return services.appointments.create_appointment(business.id, service.id, "2030-01-14", start)

        successes, failures = _run_concurrently(book, 4)

        assert len(successes) == 1
        assert all(isinstance(error, ConflictError) for error in failures)
        assert len(_active_appointments(session_factory)) == 1

    def test_concurrent_guard_inserts(self, services, session_factory, business, service, monday_hours):
        """Test the guard alone refuses all but one writer and flags the race."""
        successes, failures = _run_concurrently(
            lambda: services.guard.insert_appointment(
                business.id, service.id, SLOT_DATE, time(10, 0), time(11, 0)
            ),
            THREADS,
        )

        assert len(successes) == 1
        assert len(failures) == THREADS - 1
        for error in failures:
            assert isinstance(error, ConflictError)
            assert error.is_race is True
            assert error.message == RACE_MESSAGE


class TestTwoPhaseCheck:
    """The stale pre-check followed by the in-transaction re-check."""

    def test_slot_taken_between_check_and_insert(
        self, services, db_session, business, service, monday_hours, notifications
    ):
        """Test a booking that passed validation is refused when another commits first."""
        from shared_types.booking import BookingRequest

        request = BookingRequest(
            business_id=business.id, service_id=service.id, appointment_date="2030-01-14", start_time="10:00"
        )
        assert services.conflicts.validate_booking_request(db_session, request).is_available is True

        services.guard.insert_appointment(business.id, service.id, SLOT_DATE, time(10, 30), time(11, 30))

        with pytest.raises(ConflictError) as exc_info:
            services.guard.insert_appointment(business.id, service.id, SLOT_DATE, time(10, 0), time(11, 0))

        assert exc_info.value.is_race is True
        assert exc_info.value.to_dict()["is_race"] is True

    def test_precheck_conflict_is_not_a_race(self, services, business, service, monday_hours):
        services.appointments.create_appointment(business.id, service.id, "2030-01-14", "10:00")

        with pytest.raises(ConflictError) as exc_info:
            services.appointments.create_appointment(business.id, service.id, "2030-01-14", "10:00")

        assert exc_info.value.is_race is False
        assert exc_info.value.next_available_slot is not None

    def test_concurrent_reschedules_into_same_slot(self, services, session_factory, business, service, monday_hours):
        first = services.appointments.create_appointment(business.id, service.id, "2030-01-14", "09:00")
        second = services.appointments.create_appointment(business.id, service.id, "2030-01-14", "13:00")
        ids = iter([first.id, second.id])
        id_lock = threading.Lock()

        def move():
            with id_lock:
                appointment_id = next(ids)
            return services.appointments.reschedule_appointment(appointment_id, business.id, "2030-01-14", "15:00")

        successes, failures = _run_concurrently(move, 2)

        assert len(successes) == 1
        assert len(failures) == 1
        assert isinstance(failures[0], ConflictError)
        starts = sorted(a.start_time for a in _active_appointments(session_factory))
        assert starts.count(time(15, 0)) == 1


class TestSerializationFailure:
    """PostgreSQL serialization failures surface as races."""

    def test_serialization_failure_becomes_race(self, services):
        orig = Mock(pgcode="40001")

        with pytest.raises(ConflictError) as exc_info:
            with services.guard.transaction():
                raise OperationalError("COMMIT", {}, orig)

        assert exc_info.value.is_race is True

    def test_other_database_errors_propagate(self, services):
        orig = Mock(pgcode="23505", sqlstate=None)

        with pytest.raises(OperationalError):
            with services.guard.transaction():
                raise OperationalError("INSERT", {}, orig)
