"""
Booking error taxonomy.

Every refusal the engine produces is one of these errors. Each carries the
HTTP status it maps to, a machine-readable code and a message that is safe
to show to the end user; ``main.py`` turns them into JSON responses.
"""

from typing import Any, Dict, List, Optional


class BookingError(Exception):
    """Base class for all booking and availability errors."""

    status_code = 500
    code = "BOOKING_ERROR"

    def __init__(self, message: str, user_message: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.user_message = user_message or message

    def to_dict(self) -> Dict[str, Any]:
        return {
            "detail": self.user_message,
            "type": self.code.lower(),
        }


class ValidationError(BookingError):
    """Malformed or out-of-range input."""

    status_code = 400
    code = "VALIDATION_ERROR"

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field

    def to_dict(self) -> Dict[str, Any]:
        payload = super().to_dict()
        if self.field:
            payload["field"] = self.field
        return payload


class NotFoundError(BookingError):
    """A referenced record does not exist or belongs to another business."""

    status_code = 404
    code = "NOT_FOUND"


class ConflictError(BookingError):
    """
    The requested slot cannot be booked.

    ``is_race`` is True only when the in-transaction re-check refused a slot
    that the read-only pre-check had accepted, i.e. a concurrent booking won.
    """

    status_code = 409
    code = "BOOKING_CONFLICT"

    def __init__(
        self,
        message: str,
        conflicts: Optional[List[str]] = None,
        next_available_slot: Optional[Any] = None,
        is_race: bool = False,
    ):
        super().__init__(message)
        self.conflicts = conflicts if conflicts is not None else [message]
        self.next_available_slot = next_available_slot
        self.is_race = is_race

    def to_dict(self) -> Dict[str, Any]:
        payload = super().to_dict()
        payload["conflicts"] = list(self.conflicts)
        payload["is_race"] = self.is_race
        if self.next_available_slot is not None:
            payload["suggestions"] = {"next_available_slot": self.next_available_slot.to_dict()}
        return payload


class CacheError(BookingError):
    """A cache backend fault. Never escapes the cache layer."""

    code = "CACHE_ERROR"
