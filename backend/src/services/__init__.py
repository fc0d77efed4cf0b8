"""
Services package for business logic.

Service objects are created once by ``build_service_registry`` and passed to
their callers.
"""

from .weekly_availability_service import WeeklyAvailabilityService
from .availability_exception_service import AvailabilityExceptionService
from .booking_policy import BookingPolicy, SlotRequest
from .availability_service import AvailabilityService
from .availability_cache_service import AvailabilityCacheService
from .booking_conflict_service import BookingConflictService
from .booking_guard import BookingGuard
from .notification_service import NotificationService
from .appointment_service import AppointmentService
from .registry import ServiceRegistry, build_service_registry

__all__ = [
    "WeeklyAvailabilityService",
    "AvailabilityExceptionService",
    "BookingPolicy",
    "SlotRequest",
    "AvailabilityService",
    "AvailabilityCacheService",
    "BookingConflictService",
    "BookingGuard",
    "NotificationService",
    "AppointmentService",
    "ServiceRegistry",
    "build_service_registry",
]
