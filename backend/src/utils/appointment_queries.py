"""
Utility functions for consistent appointment queries.

Both the read-only pre-check and the in-transaction booking guard ask the
same question ("does an active appointment overlap this interval?"), so the
SQL predicate lives here once.
"""

from collections import defaultdict
from datetime import date, datetime, time
from typing import Dict, List, Optional, Tuple

from sqlalchemy.orm import Session, Query

from core.constants import ACTIVE_APPOINTMENT_STATUSES
from models import Appointment
from utils.time_utils import time_to_minutes

# (start_minute, end_minute) of one booked interval
BookedWindow = Tuple[int, int]


def filter_active_appointments(query: Query[Appointment]) -> Query[Appointment]:
    """
    Restrict a query to appointments that occupy time (pending or confirmed).

    Args:
        query: Base query for Appointment

    Returns:
        Query filtered to active statuses
    """
    return query.filter(Appointment.status.in_(ACTIVE_APPOINTMENT_STATUSES))


def overlapping_appointments_query(
    db: Session,
    business_id: int,
    appointment_date: date,
    start_time: time,
    end_time: time,
    exclude_appointment_id: Optional[int] = None,
) -> Query[Appointment]:
    """
    Build the query for active appointments overlapping [start_time, end_time).

    Two intervals overlap when each starts before the other ends, so an
    appointment ending exactly at ``start_time`` is not a conflict.

    Args:
        db: Database session
        business_id: Business ID
        appointment_date: Date of the requested interval
        start_time: Requested start (inclusive)
        end_time: Requested end (exclusive)
        exclude_appointment_id: Appointment to ignore, for rescheduling itself

    Returns:
        Query over the overlapping appointments
    """
    query = db.query(Appointment).filter(
        Appointment.business_id == business_id,
        Appointment.appointment_date == appointment_date,
        Appointment.start_time < end_time,
        Appointment.end_time > start_time,
    )
    if exclude_appointment_id is not None:
        query = query.filter(Appointment.id != exclude_appointment_id)
    return filter_active_appointments(query)


def has_overlapping_appointment(
    db: Session,
    business_id: int,
    appointment_date: date,
    start_time: time,
    end_time: time,
    exclude_appointment_id: Optional[int] = None,
) -> bool:
    """Check whether any active appointment overlaps the interval."""
    query = overlapping_appointments_query(
        db, business_id, appointment_date, start_time, end_time, exclude_appointment_id
    )
    return bool(db.query(query.exists()).scalar())


def fetch_booked_windows(
    db: Session,
    business_id: int,
    start_date: date,
    end_date: date,
) -> Dict[date, List[BookedWindow]]:
    """
    Fetch every active appointment interval in a date window in one query.

    Only (date, start, end) columns are loaded.

    Args:
        db: Database session
        business_id: Business ID
        start_date: First date of the window (inclusive)
        end_date: Last date of the window (inclusive)

    Returns:
        Mapping of date to a list of (start_minute, end_minute) tuples
    """
    rows = db.query(
        Appointment.appointment_date,
        Appointment.start_time,
        Appointment.end_time,
    ).filter(
        Appointment.business_id == business_id,
        Appointment.appointment_date >= start_date,
        Appointment.appointment_date <= end_date,
        Appointment.status.in_(ACTIVE_APPOINTMENT_STATUSES),
    ).all()

    windows: Dict[date, List[BookedWindow]] = defaultdict(list)
    for appointment_date, start_time, end_time in rows:
        windows[appointment_date].append((time_to_minutes(start_time), time_to_minutes(end_time)))
    return dict(windows)


def find_businesses_with_recent_bookings(db: Session, since: datetime) -> List[int]:
    """IDs of businesses that received active bookings at or after ``since``."""
    rows = filter_active_appointments(
        db.query(Appointment.business_id).filter(Appointment.created_at >= since)
    ).distinct().all()
    return [business_id for (business_id,) in rows]
