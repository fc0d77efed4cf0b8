"""
Utility functions for consistent business and service lookups.

A service only counts when it is active and belongs to the business it is
requested for; these helpers apply that rule everywhere.
"""

from typing import List, Optional
from sqlalchemy.orm import Session, Query

from models import Business, Service


def filter_active_services(query: Query[Service]) -> Query[Service]:
    """
    Apply the active filter to service queries.

    Args:
        query: Base query for Service

    Returns:
        Query filtered to active services
    """
    return query.filter(Service.is_active == True)  # noqa: E712


def get_active_service(db: Session, business_id: int, service_id: int) -> Optional[Service]:
    """
    Get an active service owned by the business.

    Args:
        db: Database session
        business_id: Business ID
        service_id: Service ID

    Returns:
        The service, or None if it does not exist, is inactive or belongs
        to another business
    """
    query = db.query(Service).filter(Service.id == service_id, Service.business_id == business_id)
    return filter_active_services(query).first()


def get_active_services_for_business(db: Session, business_id: int) -> List[Service]:
    query = db.query(Service).filter(Service.business_id == business_id)
    return filter_active_services(query).order_by(Service.id.asc()).all()


def get_business(db: Session, business_id: int) -> Optional[Business]:
    return db.query(Business).filter(Business.id == business_id).first()


def get_active_business_ids(db: Session) -> List[int]:
    rows = db.query(Business.id).filter(Business.is_active == True).order_by(Business.id).all()  # noqa: E712
    return [business_id for (business_id,) in rows]
