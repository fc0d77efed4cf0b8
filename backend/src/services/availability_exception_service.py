"""
Availability exception service for date-specific schedule overrides.

One exception per (business, date) is a hard constraint: ``create`` refuses a
second one, ``upsert`` updates the existing row in place, and the database
backs both with a unique constraint.
"""

import logging
from datetime import date, time
from typing import Dict, List, Optional, Tuple

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from core.exceptions import ConflictError, NotFoundError, ValidationError
from core.sentinels import MISSING
from models import AvailabilityException
from utils.booking_validators import require_business_id
from utils.time_utils import DateLike, format_date, parse_date, parse_time, time_to_minutes, time_to_string

logger = logging.getLogger(__name__)

DUPLICATE_MESSAGE = "An exception already exists for this date"
NOT_FOUND_MESSAGE = "Availability exception not found or access denied"


def _normalize_reason(reason: Optional[str]) -> Optional[str]:
    if reason is None:
        return None
    reason = reason.strip()
    return reason or None


def _validate_hours(
    start_time: Optional[str], end_time: Optional[str]
) -> Tuple[Optional[time], Optional[time]]:
    """Validate an optional start/end pair: both present or both absent."""
    if start_time is None and end_time is None:
        return None, None
    if start_time is None or end_time is None:
        raise ValidationError(
            "Start time and end time must both be provided or both be omitted", field="start_time"
        )
    start = parse_time(start_time, "start_time")
    end = parse_time(end_time, "end_time")
    if time_to_minutes(end) <= time_to_minutes(start):
        raise ValidationError("End time must be after start time", field="end_time")
    return start, end


class AvailabilityExceptionService:
    """Store for AvailabilityException rows, scoped by business."""

    def create(
        self,
        db: Session,
        business_id: int,
        exception_date: DateLike,
        start_time: Optional[str] = None,
        end_time: Optional[str] = None,
        is_available: bool = False,
        reason: Optional[str] = None,
    ) -> AvailabilityException:
        """
        Create an exception for a date that has none yet.

        Args:
            db: Database session
            business_id: Owning business
            exception_date: "YYYY-MM-DD" date
            start_time: Special opening time, paired with end_time
            end_time: Special closing time, paired with start_time
            is_available: False closes the business for the whole date
            reason: Optional note, trimmed; blank becomes None

        Returns:
            The created exception

        Raises:
            ValidationError: If any input is malformed
            ConflictError: If an exception already exists for the date
        """
        require_business_id(business_id)
        day = parse_date(exception_date)
        start, end = _validate_hours(start_time, end_time)

        if self.find_by_business_id_and_date(db, business_id, day) is not None:
            raise ConflictError(DUPLICATE_MESSAGE)

        exception = AvailabilityException(
            business_id=business_id,
            date=day,
            start_time=start,
            end_time=end,
            is_available=is_available,
            reason=_normalize_reason(reason),
        )
        db.add(exception)
        try:
            db.commit()
        except IntegrityError:
            # A concurrent writer created the same date first
            db.rollback()
            raise ConflictError(DUPLICATE_MESSAGE)
        logger.info(f"Created availability exception {exception.id} for business {business_id} on {format_date(day)}")
        return exception

    def find_by_id(self, db: Session, exception_id: int) -> Optional[AvailabilityException]:
        return db.query(AvailabilityException).filter(AvailabilityException.id == exception_id).first()

    def find_by_id_and_business_id(
        self, db: Session, exception_id: int, business_id: int
    ) -> Optional[AvailabilityException]:
        return db.query(AvailabilityException).filter(
            AvailabilityException.id == exception_id,
            AvailabilityException.business_id == business_id,
        ).first()

    def find_by_business_id(self, db: Session, business_id: int) -> List[AvailabilityException]:
        require_business_id(business_id)
        return db.query(AvailabilityException).filter(
            AvailabilityException.business_id == business_id
        ).order_by(AvailabilityException.date).all()

    def find_by_business_id_and_date(
        self, db: Session, business_id: int, exception_date: DateLike
    ) -> Optional[AvailabilityException]:
        require_business_id(business_id)
        return db.query(AvailabilityException).filter(
            AvailabilityException.business_id == business_id,
            AvailabilityException.date == parse_date(exception_date),
        ).first()

    def find_by_business_id_and_date_range(
        self, db: Session, business_id: int, start_date: DateLike, end_date: DateLike
    ) -> List[AvailabilityException]:
        """List the exceptions between two dates (inclusive), ordered by date."""
        require_business_id(business_id)
        return db.query(AvailabilityException).filter(
            AvailabilityException.business_id == business_id,
            AvailabilityException.date >= parse_date(start_date, "start_date"),
            AvailabilityException.date <= parse_date(end_date, "end_date"),
        ).order_by(AvailabilityException.date).all()

    def map_by_date(
        self, db: Session, business_id: int, start_date: DateLike, end_date: DateLike
    ) -> Dict[date, AvailabilityException]:
        """Exceptions in a date range keyed by date, fetched in one query."""
        return {
            exception.date: exception
            for exception in self.find_by_business_id_and_date_range(db, business_id, start_date, end_date)
        }

    def update(
        self,
        db: Session,
        exception_id: int,
        business_id: int,
        exception_date: DateLike = MISSING,
        start_time: Optional[str] = MISSING,
        end_time: Optional[str] = MISSING,
        is_available: bool = MISSING,
        reason: Optional[str] = MISSING,
    ) -> AvailabilityException:
        """
        Partially update an exception. Omitted fields keep their value;
        passing None for both times clears the special hours.

        Raises:
            ValidationError: If any given field is malformed
            NotFoundError: If the exception does not exist for this business
            ConflictError: If moving to a date that already has an exception
        """
        require_business_id(business_id)
        exception = self.find_by_id_and_business_id(db, exception_id, business_id)
        if exception is None:
            raise NotFoundError(NOT_FOUND_MESSAGE)

        # Nothing is assigned until every field has validated
        new_date = exception.date
        if exception_date is not MISSING:
            new_date = parse_date(exception_date)
            if new_date != exception.date:
                if self.find_by_business_id_and_date(db, business_id, new_date) is not None:
                    raise ConflictError(DUPLICATE_MESSAGE)

        new_start, new_end = exception.start_time, exception.end_time
        if start_time is not MISSING or end_time is not MISSING:
            current_start = time_to_string(exception.start_time) if exception.start_time else None
            current_end = time_to_string(exception.end_time) if exception.end_time else None
            new_start, new_end = _validate_hours(
                current_start if start_time is MISSING else start_time,
                current_end if end_time is MISSING else end_time,
            )

        exception.date = new_date
        exception.start_time, exception.end_time = new_start, new_end
        if is_available is not MISSING:
            exception.is_available = is_available
        if reason is not MISSING:
            exception.reason = _normalize_reason(reason)

        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            raise ConflictError(DUPLICATE_MESSAGE)
        logger.info(f"Updated availability exception {exception.id} for business {business_id}")
        return exception

    def delete(self, db: Session, exception_id: int, business_id: int) -> None:
        """
        Delete one exception.

        Raises:
            NotFoundError: If the exception does not exist for this business
        """
        require_business_id(business_id)
        exception = self.find_by_id_and_business_id(db, exception_id, business_id)
        if exception is None:
            raise NotFoundError(NOT_FOUND_MESSAGE)
        db.delete(exception)
        self._commit(db)

    def delete_all_for_business(self, db: Session, business_id: int) -> int:
        require_business_id(business_id)
        deleted = db.query(AvailabilityException).filter(
            AvailabilityException.business_id == business_id
        ).delete(synchronize_session="fetch")
        self._commit(db)
        return deleted

    def delete_by_date_range(
        self, db: Session, business_id: int, start_date: DateLike, end_date: DateLike
    ) -> int:
        """Delete the exceptions between two dates (inclusive) and return the count."""
        require_business_id(business_id)
        deleted = db.query(AvailabilityException).filter(
            AvailabilityException.business_id == business_id,
            AvailabilityException.date >= parse_date(start_date, "start_date"),
            AvailabilityException.date <= parse_date(end_date, "end_date"),
        ).delete(synchronize_session="fetch")
        self._commit(db)
        logger.info(f"Deleted {deleted} availability exceptions for business {business_id}")
        return deleted

    def upsert(
        self,
        db: Session,
        business_id: int,
        exception_date: DateLike,
        start_time: Optional[str] = None,
        end_time: Optional[str] = None,
        is_available: bool = False,
        reason: Optional[str] = None,
    ) -> AvailabilityException:
        """
        Create the exception for a date, or replace the existing one in place.

        This is the normal write path; it never produces a second row for
        the same date.
        """
        require_business_id(business_id)
        existing = self.find_by_business_id_and_date(db, business_id, exception_date)
        if existing is None:
            return self.create(db, business_id, exception_date, start_time, end_time, is_available, reason)

        existing.start_time, existing.end_time = _validate_hours(start_time, end_time)
        existing.is_available = is_available
        existing.reason = _normalize_reason(reason)
        self._commit(db)
        return existing

    @staticmethod
    def _commit(db: Session) -> None:
        try:
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            raise
