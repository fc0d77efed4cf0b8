"""
Datetime utilities for consistent "now" handling across the application.

Business timezones are stored as opaque strings and are not converted. The
engine decides what "now" and "today" mean using one fixed UTC offset,
configured by APP_TIMEZONE_OFFSET_HOURS.
"""

from datetime import datetime, timedelta, timezone

from core.config import APP_TIMEZONE_OFFSET_HOURS

APP_TZ = timezone(timedelta(hours=APP_TIMEZONE_OFFSET_HOURS))


def app_now() -> datetime:
    """
    Get the current datetime in the application timezone.

    Returns:
        Timezone-aware current datetime
    """
    return datetime.now(APP_TZ)
