"""
Shared types for availability-related functionality.

This module contains the data classes passed between the availability stores,
the calculation engine, the conflict service and the cache, so that every
layer speaks the same slot and result shapes.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Union


@dataclass(frozen=True)
class Closed:
    """The business is closed all day, whatever times were recorded."""


@dataclass(frozen=True)
class OpenAllDay:
    """Open on the date with no special hours; the weekly schedule applies."""


@dataclass(frozen=True)
class OpenCustomHours:
    """Open on the date with these hours only, replacing the weekly schedule."""
    start_time: str  # Format: "HH:MM"
    end_time: str  # Format: "HH:MM"


ExceptionHours = Union[Closed, OpenAllDay, OpenCustomHours]


@dataclass
class TimeSlot:
    """A bookable interval on one date."""
    date: str  # Format: "YYYY-MM-DD"
    start_time: str  # Format: "HH:MM"
    end_time: str  # Format: "HH:MM"
    available: bool = True

    def to_dict(self) -> dict[str, str | bool]:
        """Convert to dictionary format."""
        return {
            "date": self.date,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "available": self.available,
        }

    @classmethod
    def from_dict(cls, data: dict[str, str | bool]) -> "TimeSlot":
        """Create TimeSlot from dictionary."""
        return cls(
            date=str(data["date"]),
            start_time=str(data["start_time"]),
            end_time=str(data["end_time"]),
            available=bool(data.get("available", True)),
        )


@dataclass
class AvailabilitySlot:
    """All bookable slots for one date. An empty list means closed or fully booked."""
    date: str
    day_of_week: int  # Sunday = 0
    slots: List[TimeSlot] = field(default_factory=list)

    def to_dict(self) -> dict[str, object]:
        """Convert to dictionary format."""
        return {
            "date": self.date,
            "day_of_week": self.day_of_week,
            "slots": [slot.to_dict() for slot in self.slots],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "AvailabilitySlot":
        """Create AvailabilitySlot from dictionary."""
        return cls(
            date=data["date"],
            day_of_week=int(data["day_of_week"]),
            slots=[TimeSlot.from_dict(slot) for slot in data.get("slots", [])],
        )


@dataclass
class AvailabilityOptions:
    """
    Options for a free/busy calculation. ``None`` means "use the default":
    service duration (or 60) for slot_duration, service buffer (or 0) for
    buffer_time, today for start_date, 30 for days, full day for the window.
    """
    slot_duration: Optional[int] = None
    buffer_time: Optional[int] = None
    start_date: Optional[str] = None
    days: Optional[int] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None

    def to_dict(self) -> dict[str, str | int | None]:
        return {
            "slot_duration": self.slot_duration,
            "buffer_time": self.buffer_time,
            "start_date": self.start_date,
            "days": self.days,
            "start_time": self.start_time,
            "end_time": self.end_time,
        }


@dataclass
class NextAvailableSlot:
    """The earliest bookable slot found by a forward search."""
    date: str
    start_time: str
    end_time: str

    def to_dict(self) -> dict[str, str]:
        return {"date": self.date, "start_time": self.start_time, "end_time": self.end_time}


@dataclass
class SlotAvailability:
    """Result of a fail-fast single-slot check."""
    available: bool
    reason: Optional[str] = None

    def to_dict(self) -> dict[str, str | bool | None]:
        return {"available": self.available, "reason": self.reason}


@dataclass
class BookingValidationResult:
    """Result of a collect-all booking validation."""
    is_available: bool
    conflicts: List[str] = field(default_factory=list)
    next_available_slot: Optional[NextAvailableSlot] = None

    def to_dict(self) -> dict[str, object]:
        result: dict[str, object] = {
            "is_available": self.is_available,
            "conflicts": list(self.conflicts),
        }
        if self.next_available_slot is not None:
            result["suggestions"] = {"next_available_slot": self.next_available_slot.to_dict()}
        return result


@dataclass
class CacheStats:
    """Per-business cache counters."""
    business_id: int
    cache_hits: int = 0
    cache_misses: int = 0
    cached_entries: int = 0
    last_invalidation: Optional[str] = None  # ISO 8601 timestamp

    def to_dict(self) -> dict[str, int | str | None]:
        return {
            "business_id": self.business_id,
            "cache_hits": self.cache_hits,
            "cache_misses": self.cache_misses,
            "cached_entries": self.cached_entries,
            "last_invalidation": self.last_invalidation,
        }


@dataclass
class CacheWarmResult:
    """Outcome of a cache warming run."""
    success: bool
    businesses_warmed: int = 0
    entries_warmed: int = 0
    errors: List[str] = field(default_factory=list)
    duration_ms: int = 0

    def to_dict(self) -> dict[str, object]:
        return {
            "success": self.success,
            "businesses_warmed": self.businesses_warmed,
            "entries_warmed": self.entries_warmed,
            "errors": list(self.errors),
            "duration_ms": self.duration_ms,
        }


@dataclass
class WeeklyAvailabilityEntry:
    """One entry of a bulk weekly schedule replacement."""
    day_of_week: int  # Sunday = 0
    start_time: str  # Format: "HH:MM"
    end_time: str  # Format: "HH:MM"
    is_available: bool = True
