# pyright: reportMissingTypeStubs=false
"""
Availability API endpoints.

Covers the free/busy calculation, single-slot checks, the weekly schedule,
date exceptions and cache administration. Every write to the schedule or
its exceptions drops the business's cached availability.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from api.dependencies import get_services
from api.responses import (
    AvailabilityDayResponse,
    AvailabilityExceptionListResponse,
    AvailabilityExceptionResponse,
    AvailabilityResponse,
    CacheStatsResponse,
    CacheWarmResponse,
    DeletedCountResponse,
    NextAvailableSlotResponse,
    NextSlotResponse,
    SlotCheckResponse,
    WeeklyAvailabilityListResponse,
    WeeklyAvailabilityResponse,
)
from core.constants import MAX_REASON_LENGTH
from core.database import get_db
from core.exceptions import BookingError
from core.sentinels import MISSING
from services.availability_cache_service import WARMING_IN_PROGRESS_MESSAGE
from services.registry import ServiceRegistry
from shared_types.availability import AvailabilityOptions, WeeklyAvailabilityEntry

logger = logging.getLogger(__name__)

router = APIRouter()


# ===== Request Models =====

class SlotCheckRequest(BaseModel):
    """Request model for a single-slot check."""
    date: str  # Format: "YYYY-MM-DD"
    start_time: str  # Format: "HH:MM"
    end_time: str  # Format: "HH:MM"
    service_id: Optional[int] = None
    exclude_appointment_id: Optional[int] = None


class WeeklyAvailabilityCreateRequest(BaseModel):
    """Request model for one weekly rule."""
    day_of_week: int  # Sunday = 0
    start_time: str
    end_time: str
    is_available: bool = True


class WeeklyAvailabilityUpdateRequest(BaseModel):
    """Request model for a partial rule update; omitted fields are unchanged."""
    day_of_week: Optional[int] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    is_available: Optional[bool] = None


class WeeklyScheduleRequest(BaseModel):
    """Request model for replacing the whole weekly schedule."""
    entries: List[WeeklyAvailabilityCreateRequest]


class AvailabilityExceptionRequest(BaseModel):
    """Request model for creating or replacing a date exception."""
    date: str
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    is_available: bool = False
    reason: Optional[str] = Field(default=None, max_length=MAX_REASON_LENGTH)


class AvailabilityExceptionUpdateRequest(BaseModel):
    """Request model for a partial exception update."""
    date: Optional[str] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    is_available: Optional[bool] = None
    reason: Optional[str] = Field(default=None, max_length=MAX_REASON_LENGTH)


def _given(model: BaseModel, name: str) -> object:
    """Field value if the client sent it, else MISSING."""
    return getattr(model, name) if name in model.model_fields_set else MISSING


# ===== Free/busy =====

@router.get(
    "/{business_id}/availability",
    summary="Get bookable slots",
    response_model=AvailabilityResponse,
)
async def get_availability(
    business_id: int,
    service_id: Optional[int] = Query(None, description="Size slots for this service"),
    start_date: Optional[str] = Query(None, description="First date (YYYY-MM-DD), default today"),
    days: Optional[int] = Query(None, description="Number of days, at most 30"),
    slot_duration: Optional[int] = Query(None, description="Slot length in minutes"),
    buffer_time: Optional[int] = Query(None, description="Gap after each slot in minutes"),
    start_time: Optional[str] = Query(None, description="Earliest slot start (HH:MM)"),
    end_time: Optional[str] = Query(None, description="Latest slot end (HH:MM)"),
    services: ServiceRegistry = Depends(get_services),
    db: Session = Depends(get_db),
) -> AvailabilityResponse:
    """
    Get bookable slots per date.

    Served from the availability cache when possible.
    """
    try:
        options = AvailabilityOptions(
            slot_duration=slot_duration,
            buffer_time=buffer_time,
            start_date=start_date,
            days=days,
            start_time=start_time,
            end_time=end_time,
        )
        result = services.cached_calculation(db, business_id, service_id, options)
        return AvailabilityResponse(
            business_id=business_id,
            service_id=service_id,
            days=[AvailabilityDayResponse(**day.to_dict()) for day in result],
        )
    except BookingError:
        raise
    except Exception as e:
        logger.exception(f"Failed to calculate availability for business {business_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to calculate availability",
        )


@router.get(
    "/{business_id}/availability/next",
    summary="Find the next available slot",
    response_model=NextSlotResponse,
)
async def get_next_available_slot(
    business_id: int,
    service_id: int = Query(..., description="Service to book"),
    start_date: Optional[str] = Query(None, description="First date to search (YYYY-MM-DD)"),
    services: ServiceRegistry = Depends(get_services),
    db: Session = Depends(get_db),
) -> NextSlotResponse:
    """Find the earliest free slot for a service within the next week."""
    slot = services.availability.get_next_available_slot(db, business_id, service_id, start_date)
    if slot is None:
        return NextSlotResponse()
    return NextSlotResponse(next_available_slot=NextAvailableSlotResponse(**slot.to_dict()))


@router.post(
    "/{business_id}/availability/check",
    summary="Check one time slot",
    response_model=SlotCheckResponse,
)
async def check_time_slot(
    business_id: int,
    request: SlotCheckRequest,
    services: ServiceRegistry = Depends(get_services),
    db: Session = Depends(get_db),
) -> SlotCheckResponse:
    """
    Check whether an interval can be booked right now.

    Always reads live data; returns the first reason the slot is refused.
    """
    result = services.availability.is_time_slot_available(
        db,
        business_id,
        request.date,
        request.start_time,
        request.end_time,
        service_id=request.service_id,
        exclude_appointment_id=request.exclude_appointment_id,
    )
    return SlotCheckResponse(**result.to_dict())


# ===== Weekly schedule =====

@router.get(
    "/{business_id}/weekly-availability",
    summary="List weekly availability rules",
    response_model=WeeklyAvailabilityListResponse,
)
async def list_weekly_availability(
    business_id: int,
    day_of_week: Optional[int] = Query(None, description="Only this day (0 = Sunday)"),
    services: ServiceRegistry = Depends(get_services),
    db: Session = Depends(get_db),
) -> WeeklyAvailabilityListResponse:
    if day_of_week is not None:
        rules = services.weekly_availability.find_by_business_id_and_day(db, business_id, day_of_week)
    else:
        rules = services.weekly_availability.find_by_business_id(db, business_id)
    return WeeklyAvailabilityListResponse(
        rules=[WeeklyAvailabilityResponse(**rule.to_dict()) for rule in rules]
    )


@router.post(
    "/{business_id}/weekly-availability",
    summary="Add a weekly availability rule",
    response_model=WeeklyAvailabilityResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_weekly_availability(
    business_id: int,
    request: WeeklyAvailabilityCreateRequest,
    services: ServiceRegistry = Depends(get_services),
    db: Session = Depends(get_db),
) -> WeeklyAvailabilityResponse:
    rule = services.weekly_availability.create(
        db,
        business_id,
        request.day_of_week,
        request.start_time,
        request.end_time,
        request.is_available,
    )
    services.cache.invalidate_business_cache(business_id)
    return WeeklyAvailabilityResponse(**rule.to_dict())


@router.put(
    "/{business_id}/weekly-availability",
    summary="Replace the weekly schedule",
    response_model=WeeklyAvailabilityListResponse,
)
async def replace_weekly_schedule(
    business_id: int,
    request: WeeklyScheduleRequest,
    services: ServiceRegistry = Depends(get_services),
    db: Session = Depends(get_db),
) -> WeeklyAvailabilityListResponse:
    """
    Replace every weekly rule of the business in one transaction.

    Either all entries are stored or the previous schedule is kept.
    """
    rules = services.weekly_availability.bulk_set(
        db,
        business_id,
        [WeeklyAvailabilityEntry(**entry.model_dump()) for entry in request.entries],
    )
    services.cache.invalidate_business_cache(business_id)
    return WeeklyAvailabilityListResponse(
        rules=[WeeklyAvailabilityResponse(**rule.to_dict()) for rule in rules]
    )


@router.put(
    "/{business_id}/weekly-availability/{rule_id}",
    summary="Update a weekly availability rule",
    response_model=WeeklyAvailabilityResponse,
)
async def update_weekly_availability(
    business_id: int,
    rule_id: int,
    request: WeeklyAvailabilityUpdateRequest,
    services: ServiceRegistry = Depends(get_services),
    db: Session = Depends(get_db),
) -> WeeklyAvailabilityResponse:
    rule = services.weekly_availability.update(
        db,
        rule_id,
        business_id,
        day_of_week=_given(request, "day_of_week"),
        start_time=_given(request, "start_time"),
        end_time=_given(request, "end_time"),
        is_available=_given(request, "is_available"),
    )
    services.cache.invalidate_business_cache(business_id)
    return WeeklyAvailabilityResponse(**rule.to_dict())


@router.delete(
    "/{business_id}/weekly-availability/{rule_id}",
    summary="Delete a weekly availability rule",
    status_code=status.HTTP_204_NO_CONTENT,
)
async def delete_weekly_availability(
    business_id: int,
    rule_id: int,
    services: ServiceRegistry = Depends(get_services),
    db: Session = Depends(get_db),
) -> None:
    services.weekly_availability.delete(db, rule_id, business_id)
    services.cache.invalidate_business_cache(business_id)


# ===== Date exceptions =====

@router.get(
    "/{business_id}/availability-exceptions",
    summary="List date exceptions",
    response_model=AvailabilityExceptionListResponse,
)
async def list_availability_exceptions(
    business_id: int,
    start_date: Optional[str] = Query(None, description="First date (YYYY-MM-DD)"),
    end_date: Optional[str] = Query(None, description="Last date (YYYY-MM-DD)"),
    services: ServiceRegistry = Depends(get_services),
    db: Session = Depends(get_db),
) -> AvailabilityExceptionListResponse:
    """List exceptions, optionally only those between two dates (inclusive)."""
    if (start_date is None) != (end_date is None):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="start_date and end_date must be given together",
        )
    if start_date is not None and end_date is not None:
        exceptions = services.availability_exceptions.find_by_business_id_and_date_range(
            db, business_id, start_date, end_date
        )
    else:
        exceptions = services.availability_exceptions.find_by_business_id(db, business_id)
    return AvailabilityExceptionListResponse(
        exceptions=[AvailabilityExceptionResponse(**exception.to_dict()) for exception in exceptions]
    )


@router.post(
    "/{business_id}/availability-exceptions",
    summary="Add a date exception",
    response_model=AvailabilityExceptionResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_availability_exception(
    business_id: int,
    request: AvailabilityExceptionRequest,
    services: ServiceRegistry = Depends(get_services),
    db: Session = Depends(get_db),
) -> AvailabilityExceptionResponse:
    """Add an exception for a date that has none; 409 if one exists."""
    exception = services.availability_exceptions.create(
        db,
        business_id,
        request.date,
        request.start_time,
        request.end_time,
        request.is_available,
        request.reason,
    )
    services.cache.invalidate_business_cache(business_id)
    return AvailabilityExceptionResponse(**exception.to_dict())


@router.put(
    "/{business_id}/availability-exceptions",
    summary="Create or replace the exception for a date",
    response_model=AvailabilityExceptionResponse,
)
async def upsert_availability_exception(
    business_id: int,
    request: AvailabilityExceptionRequest,
    services: ServiceRegistry = Depends(get_services),
    db: Session = Depends(get_db),
) -> AvailabilityExceptionResponse:
    exception = services.availability_exceptions.upsert(
        db,
        business_id,
        request.date,
        request.start_time,
        request.end_time,
        request.is_available,
        request.reason,
    )
    services.cache.invalidate_business_cache(business_id)
    return AvailabilityExceptionResponse(**exception.to_dict())


@router.put(
    "/{business_id}/availability-exceptions/{exception_id}",
    summary="Update a date exception",
    response_model=AvailabilityExceptionResponse,
)
async def update_availability_exception(
    business_id: int,
    exception_id: int,
    request: AvailabilityExceptionUpdateRequest,
    services: ServiceRegistry = Depends(get_services),
    db: Session = Depends(get_db),
) -> AvailabilityExceptionResponse:
    exception = services.availability_exceptions.update(
        db,
        exception_id,
        business_id,
        exception_date=_given(request, "date"),
        start_time=_given(request, "start_time"),
        end_time=_given(request, "end_time"),
        is_available=_given(request, "is_available"),
        reason=_given(request, "reason"),
    )
    services.cache.invalidate_business_cache(business_id)
    return AvailabilityExceptionResponse(**exception.to_dict())


@router.delete(
    "/{business_id}/availability-exceptions/{exception_id}",
    summary="Delete a date exception",
    status_code=status.HTTP_204_NO_CONTENT,
)
async def delete_availability_exception(
    business_id: int,
    exception_id: int,
    services: ServiceRegistry = Depends(get_services),
    db: Session = Depends(get_db),
) -> None:
    services.availability_exceptions.delete(db, exception_id, business_id)
    services.cache.invalidate_business_cache(business_id)


@router.delete(
    "/{business_id}/availability-exceptions",
    summary="Delete the date exceptions in a range",
    response_model=DeletedCountResponse,
)
async def delete_availability_exceptions_in_range(
    business_id: int,
    start_date: str = Query(..., description="First date (YYYY-MM-DD)"),
    end_date: str = Query(..., description="Last date (YYYY-MM-DD)"),
    services: ServiceRegistry = Depends(get_services),
    db: Session = Depends(get_db),
) -> DeletedCountResponse:
    deleted = services.availability_exceptions.delete_by_date_range(db, business_id, start_date, end_date)
    services.cache.invalidate_business_cache(business_id)
    return DeletedCountResponse(deleted=deleted)


# ===== Cache administration =====

@router.get(
    "/{business_id}/availability-cache",
    summary="Get availability cache statistics",
    response_model=CacheStatsResponse,
)
async def get_cache_stats(
    business_id: int,
    services: ServiceRegistry = Depends(get_services),
) -> CacheStatsResponse:
    return CacheStatsResponse(**services.cache.get_cache_stats(business_id).to_dict())


@router.post(
    "/{business_id}/availability-cache/warm",
    summary="Precompute common availability queries",
    response_model=CacheWarmResponse,
)
async def warm_business_cache(
    business_id: int,
    services: ServiceRegistry = Depends(get_services),
    db: Session = Depends(get_db),
) -> CacheWarmResponse:
    """Returns 409 when another warming run is in progress."""
    result = services.cache.warm_business(db, business_id, services.availability.calculate_availability)
    if result.errors == [WARMING_IN_PROGRESS_MESSAGE]:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=result.errors[0])
    return CacheWarmResponse(**result.to_dict())


@router.delete(
    "/{business_id}/availability-cache",
    summary="Drop cached availability of a business",
    response_model=DeletedCountResponse,
)
async def invalidate_business_cache(
    business_id: int,
    service_id: Optional[int] = Query(None, description="Only this service (plus all-services entries)"),
    services: ServiceRegistry = Depends(get_services),
) -> DeletedCountResponse:
    if service_id is not None:
        deleted = services.cache.invalidate_service_cache(service_id, business_id)
    else:
        deleted = services.cache.invalidate_business_cache(business_id)
    return DeletedCountResponse(deleted=deleted)


cache_router = APIRouter()


@cache_router.post(
    "/warm",
    summary="Warm the availability cache for many businesses",
    response_model=CacheWarmResponse,
)
async def warm_cache(
    active_only: bool = Query(False, description="Only businesses with recent bookings"),
    services: ServiceRegistry = Depends(get_services),
    db: Session = Depends(get_db),
) -> CacheWarmResponse:
    """
    Warm every active business, or only those booked in the last day.

    Returns 409 when another warming run is in progress.
    """
    calculation = services.availability.calculate_availability
    if active_only:
        result = services.cache.warm_active_businesses(db, calculation)
    else:
        result = services.cache.warm_all_businesses(db, calculation)
    if result.errors == [WARMING_IN_PROGRESS_MESSAGE]:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=result.errors[0])
    return CacheWarmResponse(**result.to_dict())


@cache_router.delete(
    "",
    summary="Drop every cached availability calculation",
    response_model=DeletedCountResponse,
)
async def invalidate_all_cache(
    services: ServiceRegistry = Depends(get_services),
) -> DeletedCountResponse:
    return DeletedCountResponse(deleted=services.cache.invalidate_all_cache())
