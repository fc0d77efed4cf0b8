"""
Booking conflict service: the user-facing validation run before a booking.

Unlike the single-slot check, validation here collects every applicable
reason so the caller can show all of them at once, and suggests the next
free slot when the requested one is refused.

This check runs outside any transaction and may be stale by the time the
booking is written; the booking guard repeats the overlap check inside the
insert transaction.
"""

import logging
from datetime import datetime, time
from typing import Callable, List, Optional

from sqlalchemy.orm import Session

from core.constants import LAST_MINUTE_OF_DAY
from services.availability_service import AvailabilityService
from services.booking_policy import APPOINTMENT_CONFLICT_MESSAGE, BookingPolicy, SlotRequest
from shared_types.availability import BookingValidationResult, NextAvailableSlot
from shared_types.booking import BookingRequest
from utils.booking_logging import CONFLICT_OVERLAP, CONFLICT_UNAVAILABLE, log_conflict_detection, log_execution
from utils.booking_validators import is_valid_id
from utils.datetime_utils import app_now
from utils.service_queries import get_active_service
from utils.time_utils import (
    FormatError,
    format_date,
    is_valid_time_format,
    minutes_to_time,
    parse_date,
    time_string_to_minutes,
)

logger = logging.getLogger(__name__)

BUSINESS_ID_REQUIRED_MESSAGE = "Business ID is required"
SERVICE_ID_REQUIRED_MESSAGE = "Service ID is required"
INVALID_DATE_MESSAGE = "Invalid appointment date format"
INVALID_START_TIME_MESSAGE = "Invalid start time format"
PAST_MIDNIGHT_MESSAGE = "Appointment must end on the same day it starts"


class BookingConflictService:
    """Collect-all booking validation with next-slot suggestions."""

    def __init__(
        self,
        availability: AvailabilityService,
        policy: BookingPolicy,
        now_provider: Callable[[], datetime] = app_now,
    ):
        self.availability = availability
        self.policy = policy
        self.now_provider = now_provider

    @log_execution("validate_booking_request")
    def validate_booking_request(self, db: Session, request: BookingRequest) -> BookingValidationResult:
        """
        Validate a booking request against every availability rule.

        Malformed input is reported first and stops validation, since no
        other rule can run without a business, a service, a date and a time.
        Otherwise every rule runs and every failure is reported.

        Args:
            db: Database session
            request: Business, service, date, start time and optionally the
                appointment being rescheduled

        Returns:
            Availability flag, all conflict reasons and, when unavailable and
            the service is known, the next available slot
        """
        input_errors = self._validate_input(request)
        if input_errors:
            return BookingValidationResult(is_available=False, conflicts=input_errors)

        requested_date = parse_date(request.appointment_date, "appointment_date")
        start_minutes = time_string_to_minutes(request.start_time)

        conflicts: List[str] = []
        end_time: Optional[time] = None
        service = get_active_service(db, request.business_id, request.service_id)
        if service is not None:
            end_minutes = start_minutes + service.duration_minutes
            if end_minutes > LAST_MINUTE_OF_DAY:
                conflicts.append(PAST_MIDNIGHT_MESSAGE)
            else:
                end_time = minutes_to_time(end_minutes)

        conflicts.extend(self.policy.evaluate(
            db,
            SlotRequest(
                business_id=request.business_id,
                date=requested_date,
                start_time=minutes_to_time(start_minutes),
                end_time=end_time,
                service_id=request.service_id,
                exclude_appointment_id=request.exclude_appointment_id,
            ),
            fail_fast=False,
        ))

        if not conflicts:
            return BookingValidationResult(is_available=True)

        kind = CONFLICT_OVERLAP if APPOINTMENT_CONFLICT_MESSAGE in conflicts else CONFLICT_UNAVAILABLE
        log_conflict_detection(kind, {
            "business_id": request.business_id,
            "service_id": request.service_id,
            "date": request.appointment_date,
            "start_time": request.start_time,
            "conflicts": conflicts,
        })

        suggestion: Optional[NextAvailableSlot] = None
        if service is not None:
            search_from = max(requested_date, self.now_provider().date())
            suggestion = self.availability.get_next_available_slot(
                db, request.business_id, request.service_id, format_date(search_from)
            )
        return BookingValidationResult(
            is_available=False,
            conflicts=conflicts,
            next_available_slot=suggestion,
        )

    @staticmethod
    def _validate_input(request: BookingRequest) -> List[str]:
        errors: List[str] = []
        if not is_valid_id(request.business_id):
            errors.append(BUSINESS_ID_REQUIRED_MESSAGE)
        if not is_valid_id(request.service_id):
            errors.append(SERVICE_ID_REQUIRED_MESSAGE)
        try:
            parse_date(request.appointment_date, "appointment_date")
        except FormatError:
            errors.append(INVALID_DATE_MESSAGE)
        if not is_valid_time_format(request.start_time):
            errors.append(INVALID_START_TIME_MESSAGE)
        return errors
