"""
Shared types for booking requests.

These are the service-layer shapes; the HTTP layer validates its own pydantic
models and converts them into these.
"""

from dataclasses import dataclass
from typing import Optional


@dataclass
class BookingRequest:
    """A request to book (or move) an appointment, as raw caller input."""
    business_id: int
    service_id: int
    appointment_date: str  # Format: "YYYY-MM-DD"
    start_time: str  # Format: "HH:MM"
    exclude_appointment_id: Optional[int] = None


@dataclass
class CustomerDetails:
    """Contact details stored on a new appointment."""
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    notes: Optional[str] = None
