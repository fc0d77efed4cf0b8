# pyright: reportMissingTypeStubs=false
"""
Appointment API endpoints.

Booking, rescheduling and cancelling go through the appointment service,
which validates against every availability rule and then writes inside a
transaction that re-checks for overlapping bookings.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from api.dependencies import get_services
from api.responses import AppointmentListResponse, AppointmentResponse, BookingValidationResponse
from core.constants import MAX_REASON_LENGTH, MAX_STRING_LENGTH
from core.database import get_db
from services.registry import ServiceRegistry
from shared_types.booking import BookingRequest, CustomerDetails

logger = logging.getLogger(__name__)

router = APIRouter()


# ===== Request Models =====

class BookingValidationRequest(BaseModel):
    """Request model for validating a booking without creating it."""
    service_id: int
    appointment_date: str  # Format: "YYYY-MM-DD"
    start_time: str  # Format: "HH:MM"
    exclude_appointment_id: Optional[int] = None


class AppointmentCreateRequest(BaseModel):
    """Request model for booking an appointment."""
    service_id: int
    appointment_date: str
    start_time: str
    customer_name: Optional[str] = Field(default=None, max_length=MAX_STRING_LENGTH)
    customer_email: Optional[str] = Field(default=None, max_length=MAX_STRING_LENGTH)
    customer_phone: Optional[str] = Field(default=None, max_length=MAX_STRING_LENGTH)
    notes: Optional[str] = Field(default=None, max_length=MAX_REASON_LENGTH)


class AppointmentRescheduleRequest(BaseModel):
    """Request model for moving an appointment."""
    appointment_date: str
    start_time: str
    expected_version: Optional[int] = None  # Reject the move if the appointment changed since read


class AppointmentStatusRequest(BaseModel):
    status: str


@router.post(
    "/{business_id}/appointments/validate",
    summary="Validate a booking request",
    response_model=BookingValidationResponse,
    response_model_exclude_none=True,
)
async def validate_booking(
    business_id: int,
    request: BookingValidationRequest,
    services: ServiceRegistry = Depends(get_services),
    db: Session = Depends(get_db),
) -> BookingValidationResponse:
    """
    Check a booking against every availability rule.

    Returns every reason the slot is refused plus, when possible, the next
    free slot. Nothing is written.
    """
    result = services.conflicts.validate_booking_request(
        db,
        BookingRequest(
            business_id=business_id,
            service_id=request.service_id,
            appointment_date=request.appointment_date,
            start_time=request.start_time,
            exclude_appointment_id=request.exclude_appointment_id,
        ),
    )
    return BookingValidationResponse(**result.to_dict())


@router.post(
    "/{business_id}/appointments",
    summary="Book an appointment",
    response_model=AppointmentResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_appointment(
    business_id: int,
    request: AppointmentCreateRequest,
    services: ServiceRegistry = Depends(get_services),
) -> AppointmentResponse:
    """
    Book an appointment.

    Responds 409 with all conflict reasons when the slot is unavailable, and
    409 with ``is_race`` set when a concurrent booking took it first.
    """
    appointment = services.appointments.create_appointment(
        business_id,
        request.service_id,
        request.appointment_date,
        request.start_time,
        CustomerDetails(
            name=request.customer_name,
            email=request.customer_email,
            phone=request.customer_phone,
            notes=request.notes,
        ),
    )
    return AppointmentResponse(**appointment.to_dict())


@router.get(
    "/{business_id}/appointments",
    summary="List appointments",
    response_model=AppointmentListResponse,
)
async def list_appointments(
    business_id: int,
    appointment_date: Optional[str] = Query(None, alias="date", description="Only this date (YYYY-MM-DD)"),
    services: ServiceRegistry = Depends(get_services),
    db: Session = Depends(get_db),
) -> AppointmentListResponse:
    appointments = services.appointments.list_appointments(db, business_id, appointment_date)
    return AppointmentListResponse(
        appointments=[AppointmentResponse(**appointment.to_dict()) for appointment in appointments]
    )


@router.get(
    "/{business_id}/appointments/{appointment_id}",
    summary="Get appointment details",
    response_model=AppointmentResponse,
)
async def get_appointment(
    business_id: int,
    appointment_id: int,
    services: ServiceRegistry = Depends(get_services),
    db: Session = Depends(get_db),
) -> AppointmentResponse:
    appointment = services.appointments.get_appointment(db, appointment_id, business_id)
    return AppointmentResponse(**appointment.to_dict())


@router.put(
    "/{business_id}/appointments/{appointment_id}",
    summary="Reschedule an appointment",
    response_model=AppointmentResponse,
)
async def reschedule_appointment(
    business_id: int,
    appointment_id: int,
    request: AppointmentRescheduleRequest,
    services: ServiceRegistry = Depends(get_services),
) -> AppointmentResponse:
    appointment = services.appointments.reschedule_appointment(
        appointment_id,
        business_id,
        request.appointment_date,
        request.start_time,
        request.expected_version,
    )
    return AppointmentResponse(**appointment.to_dict())


@router.put(
    "/{business_id}/appointments/{appointment_id}/status",
    summary="Change appointment status",
    response_model=AppointmentResponse,
)
async def update_appointment_status(
    business_id: int,
    appointment_id: int,
    request: AppointmentStatusRequest,
    services: ServiceRegistry = Depends(get_services),
) -> AppointmentResponse:
    appointment = services.appointments.update_status(appointment_id, business_id, request.status)
    return AppointmentResponse(**appointment.to_dict())


@router.delete(
    "/{business_id}/appointments/{appointment_id}",
    summary="Cancel an appointment",
    response_model=AppointmentResponse,
)
async def cancel_appointment(
    business_id: int,
    appointment_id: int,
    reason: Optional[str] = Query(None, max_length=MAX_REASON_LENGTH, description="Shown in the cancellation notice"),
    services: ServiceRegistry = Depends(get_services),
) -> AppointmentResponse:
    appointment = services.appointments.cancel_appointment(appointment_id, business_id, reason)
    logger.info(f"Appointment {appointment_id} cancelled via API")
    return AppointmentResponse(**appointment.to_dict())
