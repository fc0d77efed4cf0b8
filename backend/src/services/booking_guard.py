"""
Transactional booking guard.

The second half of the two-phase booking check. The conflict service
validates a request outside any transaction; by the time the booking is
written another request may have taken the slot. The guard therefore opens
its own transaction, re-runs the overlap query against live data and only
then writes, all before committing.

Isolation:
- PostgreSQL: the transaction runs SERIALIZABLE; a serialization failure on
  commit means a concurrent booking won and is reported as a race.
- SQLite: the transaction starts with BEGIN IMMEDIATE, which takes the write
  lock up front, so concurrent guards run one after the other and the
  second one's overlap query sees the first one's row.
"""

import logging
from contextlib import contextmanager
from datetime import date, time
from typing import Generator, Optional

from sqlalchemy.exc import DBAPIError
from sqlalchemy.orm import Session, sessionmaker

from core.constants import APPOINTMENT_STATUS_PENDING
from core.database import SQLITE_BEGIN_IMMEDIATE
from core.exceptions import ConflictError, NotFoundError, ValidationError
from models import Appointment
from shared_types.booking import CustomerDetails
from utils.appointment_queries import has_overlapping_appointment
from utils.booking_logging import CONFLICT_RACE, CONFLICT_VERSION, log_conflict_detection

logger = logging.getLogger(__name__)

RACE_MESSAGE = "This time slot is no longer available"
VERSION_MISMATCH_MESSAGE = "Appointment was modified by another request. Please reload and try again"
APPOINTMENT_NOT_FOUND_MESSAGE = "Appointment not found"

# PostgreSQL SQLSTATEs raised when concurrent serializable transactions collide
_SERIALIZATION_FAILURE_CODES = {"40001", "40P01"}


def _is_serialization_failure(error: DBAPIError) -> bool:
    code = getattr(error.orig, "pgcode", None) or getattr(error.orig, "sqlstate", None)
    return code in _SERIALIZATION_FAILURE_CODES


class BookingGuard:
    """
    Writes appointments inside a transaction that re-checks for overlap.

    Every method opens, commits and closes its own session, so the overlap
    check and the write always share one transaction.
    """

    def __init__(self, session_factory: sessionmaker[Session]):
        self.session_factory = session_factory

    @contextmanager
    def transaction(self) -> Generator[Session, None, None]:
        """
        Open a session whose transaction serializes against other bookings.

        Commits on success and rolls back on any error. A serialization
        failure is converted into a race ConflictError.
        """
        db = self.session_factory()
        try:
            if db.get_bind().dialect.name == "sqlite":
                db.connection(execution_options={SQLITE_BEGIN_IMMEDIATE: True})
            else:
                db.connection(execution_options={"isolation_level": "SERIALIZABLE"})
            yield db
            db.commit()
        except DBAPIError as e:
            db.rollback()
            if _is_serialization_failure(e):
                log_conflict_detection(CONFLICT_RACE, {"cause": "serialization_failure"})
                raise ConflictError(RACE_MESSAGE, is_race=True) from e
            raise
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def insert_appointment(
        self,
        business_id: int,
        service_id: int,
        appointment_date: date,
        start_time: time,
        end_time: time,
        customer: Optional[CustomerDetails] = None,
    ) -> Appointment:
        """
        Re-check the interval and insert a pending appointment in one transaction.

        Must be called after a successful pre-check; a conflict found here
        means a concurrent booking committed in between.

        Returns:
            The committed appointment

        Raises:
            ConflictError: With ``is_race=True`` if the slot was taken meanwhile
        """
        customer = customer or CustomerDetails()
        with self.transaction() as db:
            if has_overlapping_appointment(db, business_id, appointment_date, start_time, end_time):
                self._raise_race(business_id, appointment_date, start_time, end_time)

            appointment = Appointment(
                business_id=business_id,
                service_id=service_id,
                appointment_date=appointment_date,
                start_time=start_time,
                end_time=end_time,
                status=APPOINTMENT_STATUS_PENDING,
                customer_name=customer.name,
                customer_email=customer.email,
                customer_phone=customer.phone,
                notes=customer.notes,
                version=1,
            )
            db.add(appointment)
            db.flush()

        logger.info(
            f"Booked appointment {appointment.id} for business {business_id} "
            f"on {appointment_date} {start_time}-{end_time}"
        )
        return appointment

    def move_appointment(
        self,
        appointment_id: int,
        business_id: int,
        appointment_date: date,
        start_time: time,
        end_time: time,
        expected_version: Optional[int] = None,
    ) -> Appointment:
        """
        Re-check and move an appointment to a new interval in one transaction.

        The appointment's own current interval is ignored by the overlap check.

        Raises:
            NotFoundError: If the appointment does not exist for this business
            ValidationError: If the appointment is cancelled or completed
            ConflictError: On a version mismatch, or with ``is_race=True`` if
                the new slot was taken meanwhile
        """
        with self.transaction() as db:
            appointment = db.query(Appointment).filter(
                Appointment.id == appointment_id,
                Appointment.business_id == business_id,
            ).first()
            if appointment is None:
                raise NotFoundError(APPOINTMENT_NOT_FOUND_MESSAGE)
            if not appointment.is_active:
                raise ValidationError(
                    f"Cannot reschedule a {appointment.status} appointment", field="status"
                )
            if expected_version is not None and appointment.version != expected_version:
                log_conflict_detection(CONFLICT_VERSION, {
                    "appointment_id": appointment_id,
                    "expected_version": expected_version,
                    "actual_version": appointment.version,
                })
                raise ConflictError(VERSION_MISMATCH_MESSAGE)

            if has_overlapping_appointment(
                db, business_id, appointment_date, start_time, end_time,
                exclude_appointment_id=appointment_id,
            ):
                self._raise_race(business_id, appointment_date, start_time, end_time)

            appointment.appointment_date = appointment_date
            appointment.start_time = start_time
            appointment.end_time = end_time
            appointment.version += 1

        logger.info(f"Moved appointment {appointment_id} to {appointment_date} {start_time}-{end_time}")
        return appointment

    @staticmethod
    def _raise_race(business_id: int, appointment_date: date, start_time: time, end_time: time) -> None:
        log_conflict_detection(CONFLICT_RACE, {
            "business_id": business_id,
            "date": appointment_date,
            "start_time": start_time,
            "end_time": end_time,
        })
        raise ConflictError(RACE_MESSAGE, is_race=True)
