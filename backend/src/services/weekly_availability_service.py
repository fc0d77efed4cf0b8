"""
Weekly availability service for a business's recurring opening hours.

Every write validates its input and rejects intervals that overlap another
rule of the same (business, day) before touching the database, so the
stored schedule never holds two overlapping rules for one day.
"""

import logging
from datetime import time
from typing import Dict, List, Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from core.exceptions import ConflictError, NotFoundError, ValidationError
from core.sentinels import MISSING
from models import WeeklyAvailability
from shared_types.availability import WeeklyAvailabilityEntry
from utils.booking_validators import require_business_id
from utils.time_utils import (
    intervals_overlap,
    is_valid_day_of_week,
    parse_time,
    time_to_minutes,
)

logger = logging.getLogger(__name__)

OVERLAP_MESSAGE = "This time range overlaps with existing availability for this day"
NOT_FOUND_MESSAGE = "Weekly availability not found or access denied"


def _validate_day(day_of_week: int) -> int:
    if not is_valid_day_of_week(day_of_week):
        raise ValidationError(
            "Day of week must be between 0 (Sunday) and 6 (Saturday)", field="day_of_week"
        )
    return day_of_week


def _validate_interval(start_time: str, end_time: str) -> tuple[time, time]:
    start = parse_time(start_time, "start_time")
    end = parse_time(end_time, "end_time")
    if time_to_minutes(end) <= time_to_minutes(start):
        raise ValidationError("End time must be after start time", field="end_time")
    return start, end


def _overlaps(rule: WeeklyAvailability, start: time, end: time) -> bool:
    return intervals_overlap(
        time_to_minutes(rule.start_time),
        time_to_minutes(rule.end_time),
        time_to_minutes(start),
        time_to_minutes(end),
    )


class WeeklyAvailabilityService:
    """
    Store for WeeklyAvailability rules.

    All mutations take the business ID explicitly and only ever touch rows
    owned by that business.
    """

    def create(
        self,
        db: Session,
        business_id: int,
        day_of_week: int,
        start_time: str,
        end_time: str,
        is_available: bool = True,
    ) -> WeeklyAvailability:
        """
        Create a weekly availability rule.

        Args:
            db: Database session
            business_id: Owning business
            day_of_week: 0 (Sunday) to 6 (Saturday)
            start_time: "HH:MM" start
            end_time: "HH:MM" end, after start_time
            is_available: Whether the interval produces slots

        Returns:
            The created rule

        Raises:
            ValidationError: If any input is malformed
            ConflictError: If the interval overlaps another rule of the same day
        """
        require_business_id(business_id)
        _validate_day(day_of_week)
        start, end = _validate_interval(start_time, end_time)

        self._ensure_no_overlap(db, business_id, day_of_week, start, end)

        rule = WeeklyAvailability(
            business_id=business_id,
            day_of_week=day_of_week,
            start_time=start,
            end_time=end,
            is_available=is_available,
        )
        db.add(rule)
        self._commit(db)
        logger.info(f"Created weekly availability {rule.id} for business {business_id} on day {day_of_week}")
        return rule

    def find_by_id(self, db: Session, rule_id: int) -> Optional[WeeklyAvailability]:
        return db.query(WeeklyAvailability).filter(WeeklyAvailability.id == rule_id).first()

    def find_by_id_and_business_id(
        self, db: Session, rule_id: int, business_id: int
    ) -> Optional[WeeklyAvailability]:
        return db.query(WeeklyAvailability).filter(
            WeeklyAvailability.id == rule_id,
            WeeklyAvailability.business_id == business_id,
        ).first()

    def find_by_business_id(
        self, db: Session, business_id: int, only_available: bool = False
    ) -> List[WeeklyAvailability]:
        """
        List all rules of a business ordered by day then start time.

        Args:
            db: Database session
            business_id: Business ID
            only_available: Skip rules with is_available=False
        """
        require_business_id(business_id)
        query = db.query(WeeklyAvailability).filter(WeeklyAvailability.business_id == business_id)
        if only_available:
            query = query.filter(WeeklyAvailability.is_available == True)  # noqa: E712
        return query.order_by(WeeklyAvailability.day_of_week, WeeklyAvailability.start_time).all()

    def find_by_business_id_and_day(
        self, db: Session, business_id: int, day_of_week: int
    ) -> List[WeeklyAvailability]:
        """List the rules of one day ordered by start time."""
        require_business_id(business_id)
        _validate_day(day_of_week)
        return db.query(WeeklyAvailability).filter(
            WeeklyAvailability.business_id == business_id,
            WeeklyAvailability.day_of_week == day_of_week,
        ).order_by(WeeklyAvailability.start_time).all()

    def group_by_day(self, db: Session, business_id: int) -> Dict[int, List[WeeklyAvailability]]:
        """All rules of a business keyed by day of week, each list ordered by start time."""
        grouped: Dict[int, List[WeeklyAvailability]] = {}
        for rule in self.find_by_business_id(db, business_id):
            grouped.setdefault(rule.day_of_week, []).append(rule)
        return grouped

    def update(
        self,
        db: Session,
        rule_id: int,
        business_id: int,
        day_of_week: int = MISSING,
        start_time: str = MISSING,
        end_time: str = MISSING,
        is_available: bool = MISSING,
    ) -> WeeklyAvailability:
        """
        Partially update a rule. Omitted fields keep their current value.

        The merged interval is validated and checked for overlap against the
        other rules of its (possibly new) day, excluding the rule itself.

        Raises:
            ValidationError: If any given field is malformed
            NotFoundError: If the rule does not exist for this business
            ConflictError: If the updated interval overlaps a sibling rule
        """
        require_business_id(business_id)
        rule = self.find_by_id_and_business_id(db, rule_id, business_id)
        if rule is None:
            raise NotFoundError(NOT_FOUND_MESSAGE)

        new_day = rule.day_of_week if day_of_week is MISSING else _validate_day(day_of_week)
        new_start = rule.start_time_str if start_time is MISSING else start_time
        new_end = rule.end_time_str if end_time is MISSING else end_time
        start, end = _validate_interval(new_start, new_end)

        self._ensure_no_overlap(db, business_id, new_day, start, end, exclude_rule_id=rule.id)

        rule.day_of_week = new_day
        rule.start_time = start
        rule.end_time = end
        if is_available is not MISSING:
            rule.is_available = is_available
        self._commit(db)
        logger.info(f"Updated weekly availability {rule.id} for business {business_id}")
        return rule

    def delete(self, db: Session, rule_id: int, business_id: int) -> None:
        """
        Delete one rule.

        Raises:
            NotFoundError: If the rule does not exist for this business
        """
        require_business_id(business_id)
        rule = self.find_by_id_and_business_id(db, rule_id, business_id)
        if rule is None:
            raise NotFoundError(NOT_FOUND_MESSAGE)
        db.delete(rule)
        self._commit(db)
        logger.info(f"Deleted weekly availability {rule_id} for business {business_id}")

    def delete_all_for_business(self, db: Session, business_id: int) -> int:
        """Delete every rule of a business and return how many were removed."""
        require_business_id(business_id)
        deleted = db.query(WeeklyAvailability).filter(
            WeeklyAvailability.business_id == business_id
        ).delete(synchronize_session="fetch")
        self._commit(db)
        return deleted

    def upsert(
        self,
        db: Session,
        business_id: int,
        day_of_week: int,
        start_time: str,
        end_time: str,
        is_available: bool = True,
    ) -> WeeklyAvailability:
        """
        Create a rule, or update the availability flag of an identical one.

        An existing rule with exactly the same interval has its is_available
        flag updated. A different interval overlapping an existing rule is
        rejected. Anything else is inserted.

        Raises:
            ValidationError: If any input is malformed
            ConflictError: If a non-identical overlapping rule exists
        """
        require_business_id(business_id)
        _validate_day(day_of_week)
        start, end = _validate_interval(start_time, end_time)

        for rule in self.find_by_business_id_and_day(db, business_id, day_of_week):
            if rule.start_time == start and rule.end_time == end:
                rule.is_available = is_available
                self._commit(db)
                return rule

        return self.create(db, business_id, day_of_week, start_time, end_time, is_available)

    def bulk_set(
        self, db: Session, business_id: int, entries: Sequence[WeeklyAvailabilityEntry]
    ) -> List[WeeklyAvailability]:
        """
        Replace the whole weekly schedule of a business atomically.

        Every entry is validated first, including overlap between entries of
        the same day. Only then are the old rules deleted and the new ones
        inserted, in one transaction: either all entries are stored or the
        previous schedule is left untouched.

        Args:
            db: Database session
            business_id: Business ID
            entries: The complete new schedule

        Returns:
            The newly created rules

        Raises:
            ValidationError: If the batch is empty, an entry is malformed or
                two entries of the same day overlap
        """
        require_business_id(business_id)
        if not entries:
            raise ValidationError("At least one availability entry is required", field="entries")

        parsed: List[tuple[int, time, time, bool]] = []
        by_day: Dict[int, List[tuple[time, time]]] = {}
        for entry in entries:
            day = _validate_day(entry.day_of_week)
            start, end = _validate_interval(entry.start_time, entry.end_time)
            for other_start, other_end in by_day.get(day, []):
                if intervals_overlap(
                    time_to_minutes(start), time_to_minutes(end),
                    time_to_minutes(other_start), time_to_minutes(other_end),
                ):
                    raise ValidationError(f"Overlapping time ranges for day {day}", field="entries")
            by_day.setdefault(day, []).append((start, end))
            parsed.append((day, start, end, entry.is_available))

        try:
            db.query(WeeklyAvailability).filter(
                WeeklyAvailability.business_id == business_id
            ).delete(synchronize_session="fetch")
            rules = [
                WeeklyAvailability(
                    business_id=business_id,
                    day_of_week=day,
                    start_time=start,
                    end_time=end,
                    is_available=is_available,
                )
                for day, start, end, is_available in parsed
            ]
            db.add_all(rules)
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            logger.exception(f"Bulk weekly availability replace failed for business {business_id}")
            raise

        logger.info(f"Replaced weekly availability for business {business_id} with {len(rules)} rules")
        return rules

    def has_availability(self, db: Session, business_id: int) -> bool:
        """Whether the business has at least one available weekly rule."""
        require_business_id(business_id)
        return bool(db.query(
            db.query(WeeklyAvailability).filter(
                WeeklyAvailability.business_id == business_id,
                WeeklyAvailability.is_available == True,  # noqa: E712
            ).exists()
        ).scalar())

    def _ensure_no_overlap(
        self,
        db: Session,
        business_id: int,
        day_of_week: int,
        start: time,
        end: time,
        exclude_rule_id: Optional[int] = None,
    ) -> None:
        for sibling in self.find_by_business_id_and_day(db, business_id, day_of_week):
            if sibling.id == exclude_rule_id:
                continue
            if _overlaps(sibling, start, end):
                raise ConflictError(OVERLAP_MESSAGE)

    @staticmethod
    def _commit(db: Session) -> None:
        try:
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            raise
