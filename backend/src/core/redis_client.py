"""
Redis client construction for the availability cache.

The client is created lazily by redis-py: building it never opens a
connection, so an unreachable Redis only surfaces as cache misses.
"""

import logging

import redis

from core.config import REDIS_URL

logger = logging.getLogger(__name__)

REDIS_SOCKET_TIMEOUT_SECONDS = 2


def _mask_url(url: str) -> str:
    if "@" not in url:
        return url
    scheme = url.split(":", 1)[0]
    return f"{scheme}://****@{url.split('@', 1)[1]}"


def create_redis_client(url: str = REDIS_URL) -> redis.Redis:
    """
    Create a Redis client for the given URL.

    Args:
        url: Redis connection URL

    Returns:
        Redis client returning ``str`` values
    """
    logger.info(f"Using Redis for availability cache: {_mask_url(url)}")
    return redis.from_url(
        url,
        decode_responses=True,
        socket_connect_timeout=REDIS_SOCKET_TIMEOUT_SECONDS,
        socket_timeout=REDIS_SOCKET_TIMEOUT_SECONDS,
    )
