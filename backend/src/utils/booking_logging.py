"""
Structured logging helpers for the booking path.

Refused slots are logged with their kind and context so that conflicts,
closures and lost races can be told apart in the logs.
"""

import functools
import logging
import time
from typing import Any, Callable, Dict, TypeVar, cast

logger = logging.getLogger("booking")

F = TypeVar("F", bound=Callable[..., Any])

# Kinds of refusal reported by log_conflict_detection
CONFLICT_OVERLAP = "overlap"
CONFLICT_UNAVAILABLE = "unavailable"
CONFLICT_RACE = "race"
CONFLICT_VERSION = "version"


def log_conflict_detection(kind: str, context: Dict[str, Any]) -> None:
    """
    Log a refused booking attempt.

    Args:
        kind: One of the CONFLICT_* kinds
        context: Identifying fields (business, date, times, reasons)
    """
    details = ", ".join(f"{key}={value}" for key, value in context.items())
    logger.warning(f"Booking conflict detected [{kind}]: {details}")


def log_execution(operation: str) -> Callable[[F], F]:
    """
    Decorator logging the duration of a booking operation.

    Successful calls are logged at DEBUG. Failures are logged at WARNING with
    the error type and re-raised unchanged.
    """
    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            started = time.perf_counter()
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                elapsed_ms = (time.perf_counter() - started) * 1000
                logger.warning(f"{operation} failed after {elapsed_ms:.1f}ms: {type(e).__name__}: {e}")
                raise
            elapsed_ms = (time.perf_counter() - started) * 1000
            logger.debug(f"{operation} completed in {elapsed_ms:.1f}ms")
            return result
        return cast(F, wrapper)
    return decorator
