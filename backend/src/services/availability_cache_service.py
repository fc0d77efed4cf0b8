"""
Availability cache backed by Redis.

Memoizes the multi-day free/busy calculation. Every entry is tagged with its
business and, when present, its service, so that writes to rules, exceptions
or appointments can drop exactly the affected entries.

The cache is never a correctness boundary. Every Redis fault is logged and
swallowed: a failed read is a miss, a failed write or invalidation is
skipped, and the single-slot booking checks never consult the cache.
"""

import json
import logging
import threading
import time
from datetime import datetime, timedelta
from functools import wraps
from typing import Callable, List, Optional

from redis import Redis
from redis.exceptions import RedisError
from sqlalchemy.orm import Session

from core.config import AVAILABILITY_CACHE_TTL_SECONDS, BYPASS_AVAILABILITY_CACHE
from core.constants import (
    CACHE_KEY_PREFIX,
    CACHE_STATS_KEY_PREFIX,
    CACHE_TAG_KEY_PREFIX,
    CACHE_WARM_ACTIVE_HOURS_BACK,
    CACHE_WARM_DAY_WINDOWS,
    CACHE_WARM_SERVICE_DAY_WINDOWS,
    DEFAULT_AVAILABILITY_DAYS,
    DEFAULT_WINDOW_END,
    DEFAULT_WINDOW_START,
    MAX_AVAILABILITY_DAYS,
)
from core.exceptions import CacheError
from shared_types.availability import (
    AvailabilityOptions,
    AvailabilitySlot,
    CacheStats,
    CacheWarmResult,
)
from utils.appointment_queries import find_businesses_with_recent_bookings
from utils.datetime_utils import app_now
from utils.service_queries import get_active_business_ids, get_active_services_for_business
from utils.time_utils import format_date

logger = logging.getLogger(__name__)

WARMING_IN_PROGRESS_MESSAGE = "Cache warming already in progress"

CalculationFn = Callable[[Session, int, Optional[int], Optional[AvailabilityOptions]], List[AvailabilitySlot]]


class AvailabilityCacheService:
    """
    Tagged TTL cache for availability calculations.

    Args:
        redis_client: Redis client, or None to run with caching disabled
        ttl_seconds: Lifetime of each cached calculation
        bypass: Skip reads and writes entirely (invalidation still runs)
        now_provider: Clock used to resolve "today" in cache keys
    """

    def __init__(
        self,
        redis_client: Optional[Redis],
        ttl_seconds: int = AVAILABILITY_CACHE_TTL_SECONDS,
        bypass: bool = BYPASS_AVAILABILITY_CACHE,
        now_provider: Callable[[], datetime] = app_now,
    ):
        self.redis = redis_client
        self.ttl_seconds = ttl_seconds
        self.bypass = bypass
        self.now_provider = now_provider
        self._warming_lock = threading.Lock()

    # Keys

    def build_key(
        self,
        business_id: int,
        service_id: Optional[int] = None,
        options: Optional[AvailabilityOptions] = None,
    ) -> str:
        """
        Cache key for one calculation.

        Omitted options are resolved to the values the calculation will use,
        so "no start date" and "today's date" share an entry.
        """
        options = options or AvailabilityOptions()
        start_date = options.start_date or format_date(self.now_provider().date())
        days = min(options.days, MAX_AVAILABILITY_DAYS) if options.days is not None else DEFAULT_AVAILABILITY_DAYS
        slot_duration = "default" if options.slot_duration is None else options.slot_duration
        buffer_time = "default" if options.buffer_time is None else options.buffer_time
        window = f"{options.start_time or DEFAULT_WINDOW_START}-{options.end_time or DEFAULT_WINDOW_END}"
        return (
            f"{CACHE_KEY_PREFIX}:{business_id}:{service_id if service_id is not None else 'all'}:"
            f"{start_date}:{days}:{slot_duration}:{buffer_time}:{window}"
        )

    @staticmethod
    def _business_tag(business_id: int) -> str:
        return f"{CACHE_TAG_KEY_PREFIX}:business:{business_id}"

    @staticmethod
    def _service_tag(service_id: int) -> str:
        return f"{CACHE_TAG_KEY_PREFIX}:service:{service_id}"

    @staticmethod
    def _stats_key(business_id: int) -> str:
        return f"{CACHE_STATS_KEY_PREFIX}:{business_id}"

    # Low-level access; each raises CacheError on any backend fault

    def _client(self) -> Redis:
        if self.redis is None:
            raise CacheError("Availability cache has no Redis client")
        return self.redis

    def _read(self, key: str) -> Optional[List[AvailabilitySlot]]:
        try:
            raw = self._client().get(key)
            if raw is None:
                return None
            return [AvailabilitySlot.from_dict(day) for day in json.loads(raw)]
        except (RedisError, ValueError, KeyError, TypeError) as e:
            raise CacheError(f"Cache read failed for {key}: {e}") from e

    def _write(self, key: str, value: List[AvailabilitySlot], business_id: int, service_id: Optional[int]) -> None:
        try:
            payload = json.dumps([day.to_dict() for day in value])
            pipe = self._client().pipeline()
            pipe.setex(key, self.ttl_seconds, payload)
            tags = [self._business_tag(business_id)]
            if service_id is not None:
                tags.append(self._service_tag(service_id))
            for tag in tags:
                pipe.sadd(tag, key)
                pipe.expire(tag, self.ttl_seconds)
            pipe.execute()
        except (RedisError, TypeError, ValueError) as e:
            raise CacheError(f"Cache write failed for {key}: {e}") from e

    def _record(self, business_id: int, counter: str) -> None:
        try:
            self._client().hincrby(self._stats_key(business_id), counter, 1)
        except RedisError as e:
            raise CacheError(f"Cache stats update failed: {e}") from e

    def _drop_tag(self, tag: str) -> int:
        try:
            client = self._client()
            keys = list(client.smembers(tag))
            if not keys:
                client.delete(tag)
                return 0
            removed = client.delete(*keys)
            client.delete(tag)
            return removed
        except RedisError as e:
            raise CacheError(f"Cache invalidation failed for {tag}: {e}") from e

    def _mark_invalidated(self, business_id: int) -> None:
        try:
            self._client().hset(
                self._stats_key(business_id), "last_invalidation", self.now_provider().isoformat()
            )
        except RedisError as e:
            raise CacheError(f"Cache stats update failed: {e}") from e

    # Public API

    def create_cached_calculation(self, calculation: CalculationFn) -> CalculationFn:
        """
        Wrap a calculation function with this cache.

        The wrapped function has the calculation's signature
        ``(db, business_id, service_id=None, options=None)``. Errors raised by
        the calculation itself propagate; cache faults never do.
        """
        @wraps(calculation)
        def cached_calculation(
            db: Session,
            business_id: int,
            service_id: Optional[int] = None,
            options: Optional[AvailabilityOptions] = None,
        ) -> List[AvailabilitySlot]:
            if self.bypass or self.redis is None:
                return calculation(db, business_id, service_id, options)

            key = self.build_key(business_id, service_id, options)
            try:
                cached = self._read(key)
                if cached is not None:
                    self._record(business_id, "hits")
                    logger.debug(f"Availability cache hit: {key}")
                    return cached
                self._record(business_id, "misses")
            except CacheError as e:
                logger.warning(f"Availability cache unavailable, computing live: {e}")

            result = calculation(db, business_id, service_id, options)

            try:
                self._write(key, result, business_id, service_id)
            except CacheError as e:
                logger.warning(f"Availability cache not updated: {e}")
            return result

        return cached_calculation

    def invalidate_business_cache(self, business_id: int) -> int:
        """Drop every cached calculation of a business. Returns the number removed."""
        if self.redis is None:
            return 0
        try:
            removed = self._drop_tag(self._business_tag(business_id))
            self._mark_invalidated(business_id)
            logger.debug(f"Invalidated {removed} availability cache entries for business {business_id}")
            return removed
        except CacheError as e:
            logger.warning(f"Business cache invalidation skipped: {e}")
            return 0

    def invalidate_service_cache(self, service_id: int, business_id: int) -> int:
        """
        Drop the cached calculations of one service plus the business-wide
        ("all services") entries, which are sized by the same bookings.
        """
        if self.redis is None:
            return 0
        try:
            removed = self._drop_tag(self._service_tag(service_id))
            client = self._client()
            general_keys = [
                key for key in client.smembers(self._business_tag(business_id))
                if key.startswith(f"{CACHE_KEY_PREFIX}:{business_id}:all:")
            ]
            if general_keys:
                removed += client.delete(*general_keys)
                client.srem(self._business_tag(business_id), *general_keys)
            self._mark_invalidated(business_id)
            return removed
        except (CacheError, RedisError) as e:
            logger.warning(f"Service cache invalidation skipped: {e}")
            return 0

    def invalidate_all_cache(self) -> int:
        """Drop every cached calculation and tag. Statistics are kept."""
        if self.redis is None:
            return 0
        try:
            client = self._client()
            removed = 0
            for pattern in (f"{CACHE_KEY_PREFIX}:*", f"{CACHE_TAG_KEY_PREFIX}:*"):
                keys = list(client.scan_iter(match=pattern))
                if keys:
                    removed += client.delete(*keys)
            logger.info(f"Invalidated all availability cache entries ({removed} keys)")
            return removed
        except (CacheError, RedisError) as e:
            logger.warning(f"Full cache invalidation skipped: {e}")
            return 0

    def get_cache_stats(self, business_id: int) -> CacheStats:
        """Hit/miss counters, live entry count and last invalidation time."""
        stats = CacheStats(business_id=business_id)
        try:
            client = self._client()
            raw = client.hgetall(self._stats_key(business_id))
            stats.cache_hits = int(raw.get("hits", 0))
            stats.cache_misses = int(raw.get("misses", 0))
            stats.last_invalidation = raw.get("last_invalidation")
            members = list(client.smembers(self._business_tag(business_id)))
            stats.cached_entries = client.exists(*members) if members else 0
        except (CacheError, RedisError, ValueError) as e:
            logger.warning(f"Cache stats unavailable for business {business_id}: {e}")
        return stats

    def warm_up_cache(self, db: Session, business_id: int, calculation: CalculationFn) -> int:
        """
        Precompute the common calculations of one business.

        Warms 7, 14 and 30 day windows without a service, plus 7 and 14 day
        windows for each active service. A failing scenario is logged and
        skipped.

        Returns:
            Number of scenarios computed
        """
        cached_calculation = self.create_cached_calculation(calculation)
        scenarios: List[tuple[Optional[int], int]] = [(None, days) for days in CACHE_WARM_DAY_WINDOWS]
        for service in get_active_services_for_business(db, business_id):
            scenarios.extend((service.id, days) for days in CACHE_WARM_SERVICE_DAY_WINDOWS)

        warmed = 0
        for service_id, days in scenarios:
            try:
                cached_calculation(db, business_id, service_id, AvailabilityOptions(days=days))
                warmed += 1
            except Exception as e:
                logger.warning(
                    f"Cache warm-up failed for business {business_id}, service {service_id}, {days} days: {e}"
                )
        logger.info(f"Warmed {warmed}/{len(scenarios)} availability scenarios for business {business_id}")
        return warmed

    def warm_business(self, db: Session, business_id: int, calculation: CalculationFn) -> CacheWarmResult:
        """Warm one business, sharing the lock with the multi-business runs."""
        return self._warm_many(db, calculation, lambda: [business_id])

    def warm_all_businesses(self, db: Session, calculation: CalculationFn) -> CacheWarmResult:
        """Warm the cache for every active business."""
        return self._warm_many(db, calculation, lambda: get_active_business_ids(db))

    def warm_active_businesses(
        self,
        db: Session,
        calculation: CalculationFn,
        hours_back: int = CACHE_WARM_ACTIVE_HOURS_BACK,
    ) -> CacheWarmResult:
        """Warm the cache for businesses that received bookings in the last ``hours_back`` hours."""
        since = self.now_provider() - timedelta(hours=hours_back)
        return self._warm_many(db, calculation, lambda: find_businesses_with_recent_bookings(db, since))

    def is_warming(self) -> bool:
        return self._warming_lock.locked()

    def _warm_many(
        self,
        db: Session,
        calculation: CalculationFn,
        business_ids: Callable[[], List[int]],
    ) -> CacheWarmResult:
        if not self._warming_lock.acquire(blocking=False):
            return CacheWarmResult(success=False, errors=[WARMING_IN_PROGRESS_MESSAGE])

        started = time.perf_counter()
        result = CacheWarmResult(success=True)
        try:
            for business_id in business_ids():
                try:
                    result.entries_warmed += self.warm_up_cache(db, business_id, calculation)
                    result.businesses_warmed += 1
                except Exception as e:
                    result.errors.append(f"Business {business_id}: {e}")
                    logger.exception(f"Cache warming failed for business {business_id}")
        finally:
            self._warming_lock.release()

        result.success = not result.errors
        result.duration_ms = int((time.perf_counter() - started) * 1000)
        logger.info(
            f"Cache warming finished: {result.businesses_warmed} businesses, "
            f"{result.entries_warmed} entries, {len(result.errors)} errors in {result.duration_ms}ms"
        )
        return result
