"""
Service registry: builds every service object once per process.

Callers receive the registry (FastAPI reads it from ``app.state``) instead
of importing module-level singletons, so tests can build a registry around
their own database and Redis.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from redis import Redis
from sqlalchemy.orm import Session, sessionmaker

from core.config import AVAILABILITY_CACHE_TTL_SECONDS, BYPASS_AVAILABILITY_CACHE
from services.appointment_service import AppointmentService
from services.availability_cache_service import AvailabilityCacheService, CalculationFn
from services.availability_exception_service import AvailabilityExceptionService
from services.availability_service import AvailabilityService
from services.booking_conflict_service import BookingConflictService
from services.booking_guard import BookingGuard
from services.booking_policy import BookingPolicy
from services.notification_service import NotificationService
from services.weekly_availability_service import WeeklyAvailabilityService
from utils.datetime_utils import app_now

logger = logging.getLogger(__name__)


@dataclass
class ServiceRegistry:
    weekly_availability: WeeklyAvailabilityService
    availability_exceptions: AvailabilityExceptionService
    policy: BookingPolicy
    availability: AvailabilityService
    cache: AvailabilityCacheService
    cached_calculation: CalculationFn
    conflicts: BookingConflictService
    guard: BookingGuard
    notifications: NotificationService
    appointments: AppointmentService


def build_service_registry(
    session_factory: sessionmaker[Session],
    redis_client: Optional[Redis] = None,
    notifications: Optional[NotificationService] = None,
    now_provider: Callable[[], datetime] = app_now,
    cache_ttl_seconds: int = AVAILABILITY_CACHE_TTL_SECONDS,
    bypass_cache: bool = BYPASS_AVAILABILITY_CACHE,
) -> ServiceRegistry:
    """
    Wire up all services.

    Args:
        session_factory: Session factory for flows that open their own transactions
        redis_client: Redis client for the availability cache; None disables caching
        notifications: Notification sink; defaults to the logging sink
        now_provider: Clock used for past-slot checks and "today"
        cache_ttl_seconds: Lifetime of cached calculations
        bypass_cache: Skip cache reads and writes

    Returns:
        Registry holding one instance of each service
    """
    weekly_availability = WeeklyAvailabilityService()
    availability_exceptions = AvailabilityExceptionService()
    policy = BookingPolicy(weekly_availability, availability_exceptions, now_provider)
    availability = AvailabilityService(weekly_availability, availability_exceptions, policy, now_provider)
    cache = AvailabilityCacheService(redis_client, cache_ttl_seconds, bypass_cache, now_provider)
    conflicts = BookingConflictService(availability, policy, now_provider)
    guard = BookingGuard(session_factory)
    notifications = notifications or NotificationService()
    appointments = AppointmentService(session_factory, conflicts, guard, cache, notifications)

    if redis_client is None:
        logger.info("Availability cache disabled: no Redis client configured")

    return ServiceRegistry(
        weekly_availability=weekly_availability,
        availability_exceptions=availability_exceptions,
        policy=policy,
        availability=availability,
        cache=cache,
        cached_calculation=cache.create_cached_calculation(availability.calculate_availability),
        conflicts=conflicts,
        guard=guard,
        notifications=notifications,
        appointments=appointments,
    )
