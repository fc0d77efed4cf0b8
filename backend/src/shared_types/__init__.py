"""
Shared type definitions for the booking engine backend.

This module contains dataclasses and types that are used across multiple services.
"""

from shared_types.booking import BookingRequest, CustomerDetails
from shared_types.availability import (
    AvailabilityOptions,
    AvailabilitySlot,
    BookingValidationResult,
    CacheStats,
    CacheWarmResult,
    Closed,
    ExceptionHours,
    NextAvailableSlot,
    OpenAllDay,
    OpenCustomHours,
    SlotAvailability,
    TimeSlot,
    WeeklyAvailabilityEntry,
)

__all__ = [
    "BookingRequest",
    "CustomerDetails",
    "AvailabilityOptions",
    "AvailabilitySlot",
    "BookingValidationResult",
    "CacheStats",
    "CacheWarmResult",
    "Closed",
    "ExceptionHours",
    "NextAvailableSlot",
    "OpenAllDay",
    "OpenCustomHours",
    "SlotAvailability",
    "TimeSlot",
    "WeeklyAvailabilityEntry",
]
