"""
Shared response models for API endpoints.

This module contains Pydantic response models that are shared across
the availability and appointment endpoints to keep payloads consistent.
"""

from typing import List, Optional

from pydantic import BaseModel


class TimeSlotResponse(BaseModel):
    """Response model for one bookable slot."""
    date: str
    start_time: str
    end_time: str
    available: bool = True


class AvailabilityDayResponse(BaseModel):
    """Response model for the slots of one date."""
    date: str
    day_of_week: int  # Sunday = 0
    slots: List[TimeSlotResponse]


class AvailabilityResponse(BaseModel):
    """Response model for a multi-day availability query."""
    business_id: int
    service_id: Optional[int] = None
    days: List[AvailabilityDayResponse]


class NextAvailableSlotResponse(BaseModel):
    """Response model for a suggested slot."""
    date: str
    start_time: str
    end_time: str


class NextSlotResponse(BaseModel):
    """Response model for the next-slot search; null when the week is full."""
    next_available_slot: Optional[NextAvailableSlotResponse] = None


class SlotCheckResponse(BaseModel):
    """Response model for a single-slot availability check."""
    available: bool
    reason: Optional[str] = None


class BookingSuggestions(BaseModel):
    next_available_slot: NextAvailableSlotResponse


class BookingValidationResponse(BaseModel):
    """Response model for booking validation."""
    is_available: bool
    conflicts: List[str]
    suggestions: Optional[BookingSuggestions] = None


class WeeklyAvailabilityResponse(BaseModel):
    """Response model for a weekly availability rule."""
    id: int
    business_id: int
    day_of_week: int
    start_time: str
    end_time: str
    is_available: bool


class WeeklyAvailabilityListResponse(BaseModel):
    rules: List[WeeklyAvailabilityResponse]


class AvailabilityExceptionResponse(BaseModel):
    """Response model for a date exception."""
    id: int
    business_id: int
    date: str
    start_time: Optional[str] = None  # Only set for special hours
    end_time: Optional[str] = None
    is_available: bool
    reason: Optional[str] = None


class AvailabilityExceptionListResponse(BaseModel):
    exceptions: List[AvailabilityExceptionResponse]


class AppointmentResponse(BaseModel):
    """Response model for an appointment."""
    id: int
    business_id: int
    service_id: int
    appointment_date: str
    start_time: str
    end_time: str
    status: str
    customer_name: Optional[str] = None
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    notes: Optional[str] = None
    version: int


class AppointmentListResponse(BaseModel):
    appointments: List[AppointmentResponse]


class CacheStatsResponse(BaseModel):
    """Response model for per-business cache statistics."""
    business_id: int
    cache_hits: int
    cache_misses: int
    cached_entries: int
    last_invalidation: Optional[str] = None


class CacheWarmResponse(BaseModel):
    """Response model for a cache warming run."""
    success: bool
    businesses_warmed: int
    entries_warmed: int
    errors: List[str]
    duration_ms: int


class DeletedCountResponse(BaseModel):
    """Response model for bulk deletes and cache invalidation."""
    deleted: int
