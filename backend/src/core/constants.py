"""Application constants and configuration values."""

from core.config import FRONTEND_URL

# Database field lengths
MAX_STRING_LENGTH = 255
MAX_REASON_LENGTH = 500  # Free-text reason on availability exceptions

# Database connection settings
DB_POOL_RECYCLE_SECONDS = 300  # 5 minutes

# CORS origins for development and production
_CORS_ORIGINS_RAW = [
    "http://localhost:5173",      # React dev server (Vite) - localhost
    FRONTEND_URL,
]

# Filter out None values and empty strings to avoid CORS errors
CORS_ORIGINS = [origin for origin in _CORS_ORIGINS_RAW if origin and origin.strip()]

# Day-of-week numbering (Sunday = 0 ... Saturday = 6)
MIN_DAY_OF_WEEK = 0
MAX_DAY_OF_WEEK = 6

# Slot calculation defaults
DEFAULT_SLOT_DURATION_MINUTES = 60
DEFAULT_BUFFER_MINUTES = 0
DEFAULT_AVAILABILITY_DAYS = 30
MAX_AVAILABILITY_DAYS = 30  # Longer windows are capped, not rejected
DEFAULT_WINDOW_START = "00:00"
DEFAULT_WINDOW_END = "23:59"
NEXT_SLOT_SEARCH_DAYS = 7
LAST_MINUTE_OF_DAY = 23 * 60 + 59

# Appointment statuses
APPOINTMENT_STATUS_PENDING = "pending"
APPOINTMENT_STATUS_CONFIRMED = "confirmed"
APPOINTMENT_STATUS_CANCELLED = "cancelled"
APPOINTMENT_STATUS_COMPLETED = "completed"
APPOINTMENT_STATUSES = (
    APPOINTMENT_STATUS_PENDING,
    APPOINTMENT_STATUS_CONFIRMED,
    APPOINTMENT_STATUS_CANCELLED,
    APPOINTMENT_STATUS_COMPLETED,
)
# Only these statuses occupy time on the calendar
ACTIVE_APPOINTMENT_STATUSES = (APPOINTMENT_STATUS_PENDING, APPOINTMENT_STATUS_CONFIRMED)

# Cancelled and completed are terminal
APPOINTMENT_STATUS_TRANSITIONS = {
    APPOINTMENT_STATUS_PENDING: (
        APPOINTMENT_STATUS_CONFIRMED,
        APPOINTMENT_STATUS_CANCELLED,
        APPOINTMENT_STATUS_COMPLETED,
    ),
    APPOINTMENT_STATUS_CONFIRMED: (APPOINTMENT_STATUS_CANCELLED, APPOINTMENT_STATUS_COMPLETED),
    APPOINTMENT_STATUS_CANCELLED: (),
    APPOINTMENT_STATUS_COMPLETED: (),
}

# Availability cache
CACHE_KEY_PREFIX = "availability"
CACHE_STATS_KEY_PREFIX = "availability-stats"
CACHE_TAG_KEY_PREFIX = "availability-tag"
CACHE_WARM_DAY_WINDOWS = (7, 14, 30)  # Windows warmed without a service filter
CACHE_WARM_SERVICE_DAY_WINDOWS = (7, 14)  # Windows warmed for each active service
CACHE_WARM_ACTIVE_HOURS_BACK = 24
