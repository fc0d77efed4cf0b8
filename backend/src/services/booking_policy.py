"""
Booking policy shared by the single-slot check and the booking validation.

The policy is one ordered list of rules. Each rule looks at a requested
interval and either passes or returns a user-facing reason. The list is
evaluated in one of two modes:

- fail-fast: stop at the first failing rule (used by ``is_time_slot_available``)
- collect-all: run every rule and report every reason (used by
  ``validate_booking_request`` to build user-facing conflict messages)

Rule order: past date, exception day, weekly hours, appointment overlap,
service active.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time
from typing import Callable, List, Optional, Tuple

from sqlalchemy.orm import Session

from models import AvailabilityException, WeeklyAvailability
from services.availability_exception_service import AvailabilityExceptionService
from services.weekly_availability_service import WeeklyAvailabilityService
from shared_types.availability import Closed, OpenCustomHours
from utils.appointment_queries import has_overlapping_appointment
from utils.datetime_utils import app_now
from utils.service_queries import get_active_service
from utils.time_utils import day_of_week, time_string_to_minutes, time_to_minutes

logger = logging.getLogger(__name__)

PAST_MESSAGE = "Cannot book appointments in the past"
CLOSED_MESSAGE = "Business is closed on this date"
OUTSIDE_SPECIAL_HOURS_MESSAGE = "Requested time is outside of business's special hours"
DAY_UNAVAILABLE_MESSAGE = "Business is not available on this day of the week"
APPOINTMENT_CONFLICT_MESSAGE = "This time slot conflicts with existing appointments"
SERVICE_UNAVAILABLE_MESSAGE = "Service not found or inactive"


def business_hours_message(windows: List[Tuple[str, str]]) -> str:
    hours = ", ".join(f"{start} to {end}" for start, end in windows)
    return f"Business hours are {hours} on this day"


@dataclass
class SlotRequest:
    """
    A requested interval to check against the policy.

    ``end_time`` may be None when the service (and therefore the duration)
    could not be resolved; rules that need the end then only look at the start.
    """
    business_id: int
    date: date
    start_time: time
    end_time: Optional[time] = None
    service_id: Optional[int] = None
    exclude_appointment_id: Optional[int] = None

    @property
    def start_minutes(self) -> int:
        return time_to_minutes(self.start_time)

    @property
    def end_minutes(self) -> Optional[int]:
        return time_to_minutes(self.end_time) if self.end_time is not None else None

    def fits_within(self, open_minutes: int, close_minutes: int) -> bool:
        if self.end_minutes is None:
            return open_minutes <= self.start_minutes < close_minutes
        return open_minutes <= self.start_minutes and self.end_minutes <= close_minutes


@dataclass
class _PolicyContext:
    """Per-evaluation state so rules share one exception lookup."""
    db: Session
    request: SlotRequest
    now: datetime
    exception: Optional[AvailabilityException] = None
    weekly_rules: List[WeeklyAvailability] = field(default_factory=list)


PolicyRule = Callable[[_PolicyContext], Optional[str]]


def _check_past(ctx: _PolicyContext) -> Optional[str]:
    today = ctx.now.date()
    request = ctx.request
    if request.date < today:
        return PAST_MESSAGE
    if request.date == today and request.start_minutes <= ctx.now.hour * 60 + ctx.now.minute:
        return PAST_MESSAGE
    return None


def _check_exception(ctx: _PolicyContext) -> Optional[str]:
    if ctx.exception is None:
        return None
    hours = ctx.exception.hours
    if isinstance(hours, Closed):
        return CLOSED_MESSAGE
    if isinstance(hours, OpenCustomHours):
        if not ctx.request.fits_within(
            time_string_to_minutes(hours.start_time), time_string_to_minutes(hours.end_time)
        ):
            return OUTSIDE_SPECIAL_HOURS_MESSAGE
    return None


def _check_weekly_hours(ctx: _PolicyContext) -> Optional[str]:
    if ctx.exception is not None and isinstance(ctx.exception.hours, (Closed, OpenCustomHours)):
        # A closure or special hours on this date replace the weekly schedule
        return None

    open_rules = [rule for rule in ctx.weekly_rules if rule.is_available]
    if not open_rules:
        return DAY_UNAVAILABLE_MESSAGE

    for rule in open_rules:
        if ctx.request.fits_within(time_to_minutes(rule.start_time), time_to_minutes(rule.end_time)):
            return None
    return business_hours_message([(rule.start_time_str, rule.end_time_str) for rule in open_rules])


def _check_overlap(ctx: _PolicyContext) -> Optional[str]:
    request = ctx.request
    if request.end_time is None:
        return None
    if has_overlapping_appointment(
        ctx.db,
        request.business_id,
        request.date,
        request.start_time,
        request.end_time,
        request.exclude_appointment_id,
    ):
        return APPOINTMENT_CONFLICT_MESSAGE
    return None


def _check_service(ctx: _PolicyContext) -> Optional[str]:
    request = ctx.request
    if request.service_id is None:
        return None
    if get_active_service(ctx.db, request.business_id, request.service_id) is None:
        return SERVICE_UNAVAILABLE_MESSAGE
    return None


DEFAULT_RULES: Tuple[PolicyRule, ...] = (
    _check_past,
    _check_exception,
    _check_weekly_hours,
    _check_overlap,
    _check_service,
)


class BookingPolicy:
    """
    Ordered availability rules evaluated against live data.

    Never reads from the availability cache.
    """

    def __init__(
        self,
        weekly_availability: WeeklyAvailabilityService,
        availability_exceptions: AvailabilityExceptionService,
        now_provider: Callable[[], datetime] = app_now,
        rules: Tuple[PolicyRule, ...] = DEFAULT_RULES,
    ):
        self.weekly_availability = weekly_availability
        self.availability_exceptions = availability_exceptions
        self.now_provider = now_provider
        self.rules = rules

    def evaluate(self, db: Session, request: SlotRequest, fail_fast: bool = True) -> List[str]:
        """
        Run the rules against a requested interval.

        Args:
            db: Database session
            request: The interval to check
            fail_fast: Stop at the first failing rule instead of collecting all

        Returns:
            The failure reasons in rule order; empty when the slot is bookable
        """
        ctx = _PolicyContext(
            db=db,
            request=request,
            now=self.now_provider(),
            exception=self.availability_exceptions.find_by_business_id_and_date(
                db, request.business_id, request.date
            ),
            weekly_rules=self.weekly_availability.find_by_business_id_and_day(
                db, request.business_id, day_of_week(request.date)
            ),
        )

        reasons: List[str] = []
        for rule in self.rules:
            reason = rule(ctx)
            if reason is None:
                continue
            reasons.append(reason)
            if fail_fast:
                break

        if reasons:
            logger.debug(
                f"Slot {request.date} {request.start_time} refused for business {request.business_id}: {reasons}"
            )
        return reasons
