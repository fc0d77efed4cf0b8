"""
Input validators shared by the availability and booking services.

Each validator raises ValidationError before any database work is done.
"""

from typing import Optional

from core.exceptions import ValidationError


def _is_positive_int(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


def require_business_id(business_id: Optional[int]) -> int:
    """Validate a business ID."""
    if not _is_positive_int(business_id):
        raise ValidationError("Business ID is required", field="business_id")
    return business_id  # type: ignore[return-value]


def require_service_id(service_id: Optional[int]) -> int:
    """Validate a service ID."""
    if not _is_positive_int(service_id):
        raise ValidationError("Service ID is required", field="service_id")
    return service_id  # type: ignore[return-value]


def is_valid_id(value: object) -> bool:
    return _is_positive_int(value)
