"""
Application configuration using python-dotenv.

This module loads environment variables from .env file into os.environ
for use throughout the application.
"""

import os
import pathlib
from dotenv import load_dotenv


# Determine if we're running in a test environment
# Don't load .env file during testing to ensure predictable test behavior
is_testing = os.getenv("PYTEST_VERSION") is not None or any("pytest" in str(frame) for frame in __import__('inspect').stack(0))

# Load .env file into os.environ (only outside of testing)
if not is_testing:
    possible_paths = [
        pathlib.Path(__file__).parent.parent.parent / ".env",  # backend/.env (when run from backend/src)
        pathlib.Path(__file__).parent.parent.parent.parent / ".env",  # .env at repository root
        pathlib.Path.cwd() / ".env",
    ]

    for env_path in possible_paths:
        if env_path.exists():
            load_dotenv(env_path)
            break


def _env_flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


# Configuration constants with defaults
# These match the environment variables defined in .env.example
def get_database_url():
    """Get the database URL from environment."""
    return os.getenv(
        "DATABASE_URL",
        "postgresql://localhost/booking_engine_dev"
    )

DATABASE_URL = get_database_url()
REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")

# Availability cache
AVAILABILITY_CACHE_TTL_SECONDS = int(os.getenv("AVAILABILITY_CACHE_TTL_SECONDS", "300"))
BYPASS_AVAILABILITY_CACHE = _env_flag("BYPASS_AVAILABILITY_CACHE")

# Fixed UTC offset used to decide "now" and "today" for past-slot checks
APP_TIMEZONE_OFFSET_HOURS = float(os.getenv("APP_TIMEZONE_OFFSET_HOURS", "0"))

# How long a SQLite writer waits for the database lock before giving up
SQLITE_BUSY_TIMEOUT_SECONDS = float(os.getenv("SQLITE_BUSY_TIMEOUT_SECONDS", "15"))

FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:5173")
