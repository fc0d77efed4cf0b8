"""
Utility modules for the booking engine.

This package contains shared utility functions and helpers used across
the application, including time arithmetic, datetime utilities, validation
helpers, and database query helpers.
"""

from utils.time_utils import (
    FormatError,
    format_date,
    minutes_to_time,
    parse_date,
    parse_time,
    time_to_minutes,
)

__all__ = [
    'FormatError',
    'format_date',
    'minutes_to_time',
    'parse_date',
    'parse_time',
    'time_to_minutes',
]
