"""
Appointment service for booking, rescheduling and cancelling appointments.

Every booking write follows the same sequence:

1. validate the request with the booking conflict service (read-only,
   outside any transaction, may be stale)
2. write through the booking guard, which repeats the overlap check inside
   the insert/update transaction
3. after the commit, invalidate the availability cache and send
   notifications; neither can change the outcome of the booking
"""

import logging
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from core.constants import (
    APPOINTMENT_STATUS_CANCELLED,
    APPOINTMENT_STATUS_TRANSITIONS,
    APPOINTMENT_STATUSES,
)
from core.exceptions import ConflictError, NotFoundError, ValidationError
from models import Appointment
from services.availability_cache_service import AvailabilityCacheService
from services.booking_conflict_service import BookingConflictService
from services.booking_guard import APPOINTMENT_NOT_FOUND_MESSAGE, BookingGuard
from services.booking_policy import SERVICE_UNAVAILABLE_MESSAGE
from services.notification_service import NotificationService
from shared_types.availability import BookingValidationResult
from shared_types.booking import BookingRequest, CustomerDetails
from utils.booking_logging import log_execution
from utils.booking_validators import require_business_id, require_service_id
from utils.service_queries import get_active_service
from utils.time_utils import format_date, minutes_to_time, parse_date, parse_time, time_to_minutes

logger = logging.getLogger(__name__)


def _raise_for_conflicts(result: BookingValidationResult) -> None:
    if result.is_available:
        return
    raise ConflictError(
        result.conflicts[0],
        conflicts=result.conflicts,
        next_available_slot=result.next_available_slot,
    )


class AppointmentService:
    """
    Booking flows built on the conflict service and the booking guard.

    Each flow manages its own short-lived sessions so that the read-only
    pre-check never holds a transaction open while the guard writes.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        conflicts: BookingConflictService,
        guard: BookingGuard,
        cache: AvailabilityCacheService,
        notifications: NotificationService,
    ):
        self.session_factory = session_factory
        self.conflicts = conflicts
        self.guard = guard
        self.cache = cache
        self.notifications = notifications

    @log_execution("create_appointment")
    def create_appointment(
        self,
        business_id: int,
        service_id: int,
        appointment_date: str,
        start_time: str,
        customer: Optional[CustomerDetails] = None,
    ) -> Appointment:
        """
        Book a new appointment.

        Args:
            business_id: Business to book with
            service_id: Service to book; its duration sets the end time
            appointment_date: "YYYY-MM-DD" date
            start_time: "HH:MM" start
            customer: Optional contact details and notes

        Returns:
            The created appointment, status "pending"

        Raises:
            ValidationError: If any input is malformed
            NotFoundError: If the service is missing, inactive or not the business's
            ConflictError: If the slot is unavailable (with all reasons and a
                suggested slot), or with ``is_race=True`` if a concurrent
                booking took it between the check and the insert
        """
        require_business_id(business_id)
        require_service_id(service_id)
        requested_date = parse_date(appointment_date, "appointment_date")
        start = parse_time(start_time, "start_time")

        with self.session_factory() as db:
            service = get_active_service(db, business_id, service_id)
            if service is None:
                raise NotFoundError(SERVICE_UNAVAILABLE_MESSAGE)
            duration = service.duration_minutes
            result = self.conflicts.validate_booking_request(
                db,
                BookingRequest(
                    business_id=business_id,
                    service_id=service_id,
                    appointment_date=format_date(requested_date),
                    start_time=start_time,
                ),
            )
        _raise_for_conflicts(result)

        appointment = self.guard.insert_appointment(
            business_id,
            service_id,
            requested_date,
            start,
            minutes_to_time(time_to_minutes(start) + duration),
            customer,
        )
        self._after_write(appointment)
        self.notifications.booking_created(appointment)
        return appointment

    @log_execution("reschedule_appointment")
    def reschedule_appointment(
        self,
        appointment_id: int,
        business_id: int,
        appointment_date: str,
        start_time: str,
        expected_version: Optional[int] = None,
    ) -> Appointment:
        """
        Move an active appointment to a new date and time.

        The appointment's current slot does not count as a conflict with
        its new one.

        Args:
            appointment_id: Appointment to move
            business_id: Owning business
            appointment_date: New "YYYY-MM-DD" date
            start_time: New "HH:MM" start
            expected_version: If given, the move fails unless the appointment
                is still at this version

        Raises:
            ValidationError: If any input is malformed or the appointment is
                cancelled or completed
            NotFoundError: If the appointment does not exist for this business
                or its service is no longer active
            ConflictError: If the new slot is unavailable, taken concurrently
                or the appointment was changed by someone else
        """
        require_business_id(business_id)
        requested_date = parse_date(appointment_date, "appointment_date")
        start = parse_time(start_time, "start_time")

        with self.session_factory() as db:
            current = self.get_appointment(db, appointment_id, business_id)
            if not current.is_active:
                raise ValidationError(f"Cannot reschedule a {current.status} appointment", field="status")
            service_id = current.service_id
            service = get_active_service(db, business_id, service_id)
            if service is None:
                raise NotFoundError(SERVICE_UNAVAILABLE_MESSAGE)
            duration = service.duration_minutes
            result = self.conflicts.validate_booking_request(
                db,
                BookingRequest(
                    business_id=business_id,
                    service_id=service_id,
                    appointment_date=format_date(requested_date),
                    start_time=start_time,
                    exclude_appointment_id=appointment_id,
                ),
            )
        _raise_for_conflicts(result)

        appointment = self.guard.move_appointment(
            appointment_id,
            business_id,
            requested_date,
            start,
            minutes_to_time(time_to_minutes(start) + duration),
            expected_version,
        )
        self._after_write(appointment)
        self.notifications.booking_rescheduled(appointment)
        return appointment

    def cancel_appointment(
        self, appointment_id: int, business_id: int, reason: Optional[str] = None
    ) -> Appointment:
        """Cancel an appointment, freeing its slot."""
        appointment = self._change_status(appointment_id, business_id, APPOINTMENT_STATUS_CANCELLED)
        self._after_write(appointment)
        self.notifications.booking_cancelled(appointment, reason)
        return appointment

    def update_status(self, appointment_id: int, business_id: int, status: str) -> Appointment:
        """
        Move an appointment along its status lifecycle.

        pending -> confirmed, cancelled or completed; confirmed -> cancelled or
        completed. Cancelled and completed are terminal, so a status change
        never re-occupies a slot and needs no overlap check.

        Raises:
            ValidationError: If the status is unknown or the transition is not allowed
            NotFoundError: If the appointment does not exist for this business
        """
        if status not in APPOINTMENT_STATUSES:
            raise ValidationError(f"Invalid appointment status: {status}", field="status")
        appointment = self._change_status(appointment_id, business_id, status)
        self._after_write(appointment)
        self.notifications.status_changed(appointment)
        return appointment

    def get_appointment(self, db: Session, appointment_id: int, business_id: int) -> Appointment:
        require_business_id(business_id)
        appointment = db.query(Appointment).filter(
            Appointment.id == appointment_id,
            Appointment.business_id == business_id,
        ).first()
        if appointment is None:
            raise NotFoundError(APPOINTMENT_NOT_FOUND_MESSAGE)
        return appointment

    def list_appointments(
        self, db: Session, business_id: int, appointment_date: Optional[str] = None
    ) -> List[Appointment]:
        require_business_id(business_id)
        query = db.query(Appointment).filter(Appointment.business_id == business_id)
        if appointment_date is not None:
            query = query.filter(Appointment.appointment_date == parse_date(appointment_date, "appointment_date"))
        return query.order_by(Appointment.appointment_date, Appointment.start_time).all()

    def _change_status(self, appointment_id: int, business_id: int, status: str) -> Appointment:
        with self.session_factory() as db:
            appointment = self.get_appointment(db, appointment_id, business_id)
            if status not in APPOINTMENT_STATUS_TRANSITIONS[appointment.status]:
                raise ValidationError(
                    f"Cannot change appointment status from {appointment.status} to {status}", field="status"
                )
            appointment.status = status
            appointment.version += 1
            try:
                db.commit()
            except SQLAlchemyError:
                db.rollback()
                raise
        logger.info(f"Appointment {appointment_id} is now {status}")
        return appointment

    def _after_write(self, appointment: Appointment) -> None:
        """Drop cached availability of the business; any booking narrows every service's slots."""
        self.cache.invalidate_business_cache(appointment.business_id)
