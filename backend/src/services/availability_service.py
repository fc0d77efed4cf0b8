"""
Availability service: the free/busy calculation engine.

Combines a business's weekly schedule, its date exceptions and its existing
appointments into bookable slots. Exceptions and appointments for the whole
window are fetched up front, one query each, instead of once per day.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Callable, List, Optional, Tuple

from sqlalchemy.orm import Session

from core.constants import (
    DEFAULT_AVAILABILITY_DAYS,
    DEFAULT_BUFFER_MINUTES,
    DEFAULT_SLOT_DURATION_MINUTES,
    DEFAULT_WINDOW_END,
    DEFAULT_WINDOW_START,
    MAX_AVAILABILITY_DAYS,
    NEXT_SLOT_SEARCH_DAYS,
)
from core.exceptions import NotFoundError, ValidationError
from models import AvailabilityException, WeeklyAvailability
from services.availability_exception_service import AvailabilityExceptionService
from services.booking_policy import BookingPolicy, SlotRequest, SERVICE_UNAVAILABLE_MESSAGE
from services.weekly_availability_service import WeeklyAvailabilityService
from shared_types.availability import (
    AvailabilityOptions,
    AvailabilitySlot,
    Closed,
    NextAvailableSlot,
    OpenCustomHours,
    SlotAvailability,
    TimeSlot,
)
from utils.appointment_queries import BookedWindow, fetch_booked_windows
from utils.booking_validators import require_business_id
from utils.datetime_utils import app_now
from utils.service_queries import get_active_service, get_business
from utils.time_utils import (
    DateLike,
    format_date,
    generate_date_range,
    get_day_of_week_from_date,
    intervals_overlap,
    minutes_to_time_string,
    parse_date,
    parse_time,
    time_string_to_minutes,
    time_to_minutes,
)

logger = logging.getLogger(__name__)

# (open_minute, close_minute) of one effective opening interval
OpenInterval = Tuple[int, int]


@dataclass
class ResolvedOptions:
    """Calculation options after defaults, service lookup and clamping."""
    slot_duration: int
    buffer_time: int
    start_date: date
    days: int
    window_start: int
    window_end: int

    @property
    def end_date(self) -> date:
        return self.start_date + timedelta(days=self.days - 1)


def _require_int_at_least(value: object, field: str, minimum: int) -> int:
    if not isinstance(value, int) or isinstance(value, bool) or value < minimum:
        raise ValidationError(f"{field.replace('_', ' ').capitalize()} must be an integer of at least {minimum}", field=field)
    return value


def generate_slot_starts(
    open_minute: int,
    close_minute: int,
    slot_duration: int,
    buffer_time: int,
    window_start: int = 0,
    window_end: int = 24 * 60,
) -> List[int]:
    """
    Start minutes of consecutive slots inside an opening interval.

    The first slot starts at the later of the opening time and the window
    start. Slots are ``slot_duration`` long and separated by ``buffer_time``;
    the last slot must end by the earlier of the closing time and window end.

    Args:
        open_minute: Opening time in minutes since midnight
        close_minute: Closing time in minutes since midnight
        slot_duration: Length of each slot in minutes
        buffer_time: Gap between consecutive slots in minutes
        window_start: Earliest allowed slot start
        window_end: Latest allowed slot end

    Returns:
        Ascending list of slot start minutes
    """
    starts: List[int] = []
    current = max(open_minute, window_start)
    limit = min(close_minute, window_end)
    step = slot_duration + buffer_time
    while current + slot_duration <= limit:
        starts.append(current)
        current += step
    return starts


class AvailabilityService:
    """
    Calculation engine for business availability.

    ``calculate_availability`` is the multi-day free/busy query and may be
    served from the availability cache. ``is_time_slot_available`` always
    reads live data.
    """

    def __init__(
        self,
        weekly_availability: WeeklyAvailabilityService,
        availability_exceptions: AvailabilityExceptionService,
        policy: BookingPolicy,
        now_provider: Callable[[], datetime] = app_now,
    ):
        self.weekly_availability = weekly_availability
        self.availability_exceptions = availability_exceptions
        self.policy = policy
        self.now_provider = now_provider

    def resolve_options(
        self,
        db: Session,
        business_id: int,
        service_id: Optional[int] = None,
        options: Optional[AvailabilityOptions] = None,
    ) -> ResolvedOptions:
        """
        Apply defaults and validate calculation options.

        Raises:
            ValidationError: If an option is malformed
            NotFoundError: If service_id is given but no active service matches
        """
        options = options or AvailabilityOptions()

        slot_duration = DEFAULT_SLOT_DURATION_MINUTES
        buffer_time = DEFAULT_BUFFER_MINUTES
        if service_id is not None:
            service = get_active_service(db, business_id, service_id)
            if service is None:
                raise NotFoundError(SERVICE_UNAVAILABLE_MESSAGE)
            slot_duration = service.duration_minutes
            buffer_time = service.buffer_minutes or 0

        if options.slot_duration is not None:
            slot_duration = _require_int_at_least(options.slot_duration, "slot_duration", 1)
        if options.buffer_time is not None:
            buffer_time = _require_int_at_least(options.buffer_time, "buffer_time", 0)

        days = DEFAULT_AVAILABILITY_DAYS
        if options.days is not None:
            days = min(_require_int_at_least(options.days, "days", 1), MAX_AVAILABILITY_DAYS)

        if options.start_date is not None:
            start_date = parse_date(options.start_date, "start_date")
        else:
            start_date = self.now_provider().date()

        window_start = time_string_to_minutes(
            format_time_option(options.start_time, DEFAULT_WINDOW_START, "start_time")
        )
        window_end = time_string_to_minutes(
            format_time_option(options.end_time, DEFAULT_WINDOW_END, "end_time")
        )
        if window_end <= window_start:
            raise ValidationError("End time must be after start time", field="end_time")

        return ResolvedOptions(
            slot_duration=slot_duration,
            buffer_time=buffer_time,
            start_date=start_date,
            days=days,
            window_start=window_start,
            window_end=window_end,
        )

    def calculate_availability(
        self,
        db: Session,
        business_id: int,
        service_id: Optional[int] = None,
        options: Optional[AvailabilityOptions] = None,
    ) -> List[AvailabilitySlot]:
        """
        Compute bookable slots per date for a business.

        Args:
            db: Database session
            business_id: Business ID
            service_id: Optional service whose duration and buffer size the slots
            options: Optional overrides (duration, buffer, start date, days, window)

        Returns:
            One AvailabilitySlot per date in ascending order; an empty slot list
            means closed, outside the weekly schedule or fully booked. A business
            with no weekly rules at all gets an empty list.

        Raises:
            ValidationError: If business_id or an option is malformed
            NotFoundError: If the business does not exist, or service_id is given
                but no active service of the business matches
        """
        require_business_id(business_id)
        if get_business(db, business_id) is None:
            raise NotFoundError("Business not found")
        resolved = self.resolve_options(db, business_id, service_id, options)

        rules_by_day = self.weekly_availability.group_by_day(db, business_id)
        if not rules_by_day:
            return []

        exceptions = self.availability_exceptions.map_by_date(
            db, business_id, resolved.start_date, resolved.end_date
        )
        booked = fetch_booked_windows(db, business_id, resolved.start_date, resolved.end_date)

        now = self.now_provider()
        today = now.date()
        now_minute = now.hour * 60 + now.minute

        results: List[AvailabilitySlot] = []
        for date_str in generate_date_range(resolved.start_date, resolved.end_date):
            day_of_week = get_day_of_week_from_date(date_str)
            if day_of_week == -1:
                continue
            current_date = parse_date(date_str)

            if current_date < today:
                results.append(AvailabilitySlot(date=date_str, day_of_week=day_of_week, slots=[]))
                continue

            intervals = self._effective_intervals(
                exceptions.get(current_date), rules_by_day.get(day_of_week, [])
            )
            slots = self._build_slots(
                date_str,
                intervals,
                resolved,
                booked.get(current_date, []),
                now_minute if current_date == today else None,
            )
            results.append(AvailabilitySlot(date=date_str, day_of_week=day_of_week, slots=slots))

        total = sum(len(day.slots) for day in results)
        logger.debug(
            f"Calculated {total} slots over {len(results)} days for business {business_id} (service {service_id})"
        )
        return results

    def get_next_available_slot(
        self,
        db: Session,
        business_id: int,
        service_id: Optional[int],
        start_date: Optional[DateLike] = None,
    ) -> Optional[NextAvailableSlot]:
        """
        Find the earliest bookable slot in the next week.

        Args:
            db: Database session
            business_id: Business ID
            service_id: Service to size the slot for
            start_date: First date to search (default today)

        Returns:
            The first slot in date-then-time order, or None if the week is full
        """
        search_start = format_date(parse_date(start_date, "start_date")) if start_date is not None else None
        days = self.calculate_availability(
            db,
            business_id,
            service_id,
            AvailabilityOptions(start_date=search_start, days=NEXT_SLOT_SEARCH_DAYS),
        )
        for day in days:
            if day.slots:
                first = day.slots[0]
                return NextAvailableSlot(date=first.date, start_time=first.start_time, end_time=first.end_time)
        return None

    def is_time_slot_available(
        self,
        db: Session,
        business_id: int,
        appointment_date: DateLike,
        start_time: str,
        end_time: str,
        service_id: Optional[int] = None,
        exclude_appointment_id: Optional[int] = None,
    ) -> SlotAvailability:
        """
        Check one interval against live data, stopping at the first failure.

        Checks, in order: past date, exception day, weekly hours, overlapping
        pending/confirmed appointments (ignoring ``exclude_appointment_id``),
        and service active when service_id is given.

        Raises:
            ValidationError: If any input is malformed
        """
        require_business_id(business_id)
        requested_date = parse_date(appointment_date, "appointment_date")
        start = parse_time(start_time, "start_time")
        end = parse_time(end_time, "end_time")
        if time_to_minutes(end) <= time_to_minutes(start):
            raise ValidationError("End time must be after start time", field="end_time")

        reasons = self.policy.evaluate(
            db,
            SlotRequest(
                business_id=business_id,
                date=requested_date,
                start_time=start,
                end_time=end,
                service_id=service_id,
                exclude_appointment_id=exclude_appointment_id,
            ),
            fail_fast=True,
        )
        if reasons:
            return SlotAvailability(available=False, reason=reasons[0])
        return SlotAvailability(available=True)

    @staticmethod
    def _effective_intervals(
        exception: Optional[AvailabilityException],
        day_rules: List[WeeklyAvailability],
    ) -> List[OpenInterval]:
        """Opening intervals for one date after applying its exception."""
        if exception is not None:
            hours = exception.hours
            if isinstance(hours, Closed):
                return []
            if isinstance(hours, OpenCustomHours):
                return [(time_string_to_minutes(hours.start_time), time_string_to_minutes(hours.end_time))]
        return [
            (time_to_minutes(rule.start_time), time_to_minutes(rule.end_time))
            for rule in day_rules
            if rule.is_available
        ]

    @staticmethod
    def _build_slots(
        date_str: str,
        intervals: List[OpenInterval],
        resolved: ResolvedOptions,
        booked: List[BookedWindow],
        now_minute: Optional[int],
    ) -> List[TimeSlot]:
        slots: List[TimeSlot] = []
        for open_minute, close_minute in sorted(intervals):
            for start in generate_slot_starts(
                open_minute,
                close_minute,
                resolved.slot_duration,
                resolved.buffer_time,
                resolved.window_start,
                resolved.window_end,
            ):
                end = start + resolved.slot_duration
                if now_minute is not None and start <= now_minute:
                    continue
                if any(intervals_overlap(start, end, booked_start, booked_end) for booked_start, booked_end in booked):
                    continue
                slots.append(TimeSlot(
                    date=date_str,
                    start_time=minutes_to_time_string(start),
                    end_time=minutes_to_time_string(end),
                ))
        return slots


def format_time_option(value: Optional[str], default: str, field: str) -> str:
    """Validate an optional "HH:MM" option, falling back to its default."""
    if value is None:
        return default
    parse_time(value, field)
    return value
