"""
Pure time and date helpers for availability calculations.

Times travel through the engine as "HH:MM" strings (24-hour, zero padded)
and are compared as minutes since midnight. Dates are "YYYY-MM-DD" strings.
Day-of-week numbering is Sunday = 0 through Saturday = 6.
"""

import re
from datetime import date, datetime, time, timedelta
from typing import List, Union

from core.constants import MAX_DAY_OF_WEEK, MIN_DAY_OF_WEEK
from core.exceptions import ValidationError

TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")
DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")

DateLike = Union[str, date]


class FormatError(ValidationError):
    """A time or date string does not have the expected shape."""


def is_valid_time_format(value: str) -> bool:
    """Check that a string is a 24-hour "HH:MM" time."""
    return isinstance(value, str) and TIME_PATTERN.match(value) is not None


def is_valid_date_format(value: str) -> bool:
    """
    Check that a string has the "YYYY-MM-DD" shape.

    Only the shape is checked: "2024-02-30" passes here. Use
    ``parse_date`` where a real calendar date is required.
    """
    return isinstance(value, str) and DATE_PATTERN.match(value) is not None


def time_string_to_minutes(value: str) -> int:
    """
    Convert "HH:MM" into minutes since midnight.

    Args:
        value: Time string in 24-hour "HH:MM" format

    Returns:
        Minutes since midnight in [0, 1439]

    Raises:
        FormatError: If the string is not a valid "HH:MM" time
    """
    match = TIME_PATTERN.match(value) if isinstance(value, str) else None
    if match is None:
        raise FormatError(f"Invalid time format: {value!r} (expected HH:MM)")
    return int(match.group(1)) * 60 + int(match.group(2))


def minutes_to_time_string(minutes: int) -> str:
    """Convert minutes since midnight into a zero-padded "HH:MM" string."""
    if minutes < 0 or minutes >= 24 * 60:
        raise FormatError(f"Minutes out of range for a time of day: {minutes}")
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def time_to_string(value: time) -> str:
    return value.strftime("%H:%M")


def time_to_minutes(value: time) -> int:
    return value.hour * 60 + value.minute


def minutes_to_time(minutes: int) -> time:
    return time(minutes // 60, minutes % 60)


def parse_time(value: str, field: str = "time") -> time:
    """
    Parse "HH:MM" into a ``datetime.time``.

    Raises:
        FormatError: If the string is not a valid "HH:MM" time
    """
    if not is_valid_time_format(value):
        raise FormatError(f"{field.replace('_', ' ').capitalize()} must be in HH:MM format")
    return minutes_to_time(time_string_to_minutes(value))


def parse_date(value: DateLike, field: str = "date") -> date:
    """
    Parse a "YYYY-MM-DD" string into a calendar date.

    Strings that have the right shape but name no real day (month 13,
    February 30th) are rejected rather than normalized.

    Raises:
        FormatError: If the string is malformed or not a calendar date
    """
    if isinstance(value, date):
        return value
    if not is_valid_date_format(value):
        raise FormatError(f"Invalid {field.replace('_', ' ')} format (expected YYYY-MM-DD)")
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError:
        raise FormatError(f"Invalid {field.replace('_', ' ')}: {value} is not a calendar date")


def format_date(value: date) -> str:
    return value.strftime("%Y-%m-%d")


def day_of_week(value: date) -> int:
    """Day of week with Sunday = 0."""
    return (value.weekday() + 1) % 7


def get_day_of_week_from_date(value: DateLike) -> int:
    """
    Get the day of week (Sunday = 0 ... Saturday = 6) for a date.

    Returns:
        Day of week, or -1 when the date cannot be parsed
    """
    try:
        return day_of_week(parse_date(value))
    except FormatError:
        return -1


def is_valid_day_of_week(value: int) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and MIN_DAY_OF_WEEK <= value <= MAX_DAY_OF_WEEK


def add_days(value: DateLike, days: int) -> str:
    """Add a number of days to a date and return it as "YYYY-MM-DD"."""
    return format_date(parse_date(value) + timedelta(days=days))


def generate_date_range(start: DateLike, end: DateLike) -> List[str]:
    """
    List every date from ``start`` to ``end``, both inclusive, ascending.

    Returns an empty list when ``start`` is after ``end``.
    """
    start_date = parse_date(start, "start_date")
    end_date = parse_date(end, "end_date")
    span = (end_date - start_date).days
    return [format_date(start_date + timedelta(days=offset)) for offset in range(span + 1)]


def is_end_time_after_start_time(start: str, end: str) -> bool:
    return time_string_to_minutes(end) > time_string_to_minutes(start)


def is_time_overlapping(a_start: str, a_end: str, b_start: str, b_end: str) -> bool:
    """
    Half-open interval overlap test on "HH:MM" strings.

    [a_start, a_end) and [b_start, b_end) overlap when each starts before the
    other ends. Intervals that only touch (10:00-11:00, 11:00-12:00) do not.
    """
    return intervals_overlap(
        time_string_to_minutes(a_start),
        time_string_to_minutes(a_end),
        time_string_to_minutes(b_start),
        time_string_to_minutes(b_end),
    )


def intervals_overlap(a_start: int, a_end: int, b_start: int, b_end: int) -> bool:
    return a_start < b_end and a_end > b_start


def calculate_duration_in_minutes(start: str, end: str) -> int:
    return time_string_to_minutes(end) - time_string_to_minutes(start)
