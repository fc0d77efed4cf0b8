"""
Test configuration and shared fixtures for the booking engine test suite.

Every test gets its own SQLite database file (so the booking guard's
BEGIN IMMEDIATE transactions behave exactly as they would against a real
file database), its own fake Redis and a clock frozen at Monday 2030-01-07
08:00 in the application timezone.
"""

import os

# Must be set before any application module builds the default engine
os.environ["DATABASE_URL"] = "sqlite:///:memory:"

from datetime import date, datetime, time
from typing import Callable, Generator, List, Optional, Tuple

import fakeredis
import pytest
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from core.constants import APPOINTMENT_STATUS_CONFIRMED
from core.database import create_db_engine, create_session_factory, create_tables, drop_tables
from models import Appointment, AvailabilityException, Business, Service, WeeklyAvailability
from services.notification_service import BookingEvent, NotificationService
from services.registry import ServiceRegistry, build_service_registry
from utils.datetime_utils import APP_TZ


FIXED_NOW = datetime(2030, 1, 7, 8, 0, tzinfo=APP_TZ)


class FrozenClock:
    """Callable clock whose time tests can move."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


class RecordingNotificationService(NotificationService):
    """Notification sink that remembers what it was asked to send."""

    def __init__(self) -> None:
        self.sent: List[Tuple[BookingEvent, int, Optional[str]]] = []

    def deliver(self, event: BookingEvent, appointment: Appointment, note: Optional[str]) -> None:
        self.sent.append((event, appointment.id, note))


@pytest.fixture
def db_engine(tmp_path) -> Generator[Engine, None, None]:
    """Create a fresh file-backed SQLite database with the full schema."""
    engine = create_db_engine(f"sqlite:///{tmp_path / 'booking_engine_test.db'}")
    create_tables(bind=engine)
    yield engine
    drop_tables(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(db_engine) -> sessionmaker[Session]:
    return create_session_factory(db_engine)


@pytest.fixture
def db_session(session_factory) -> Generator[Session, None, None]:
    """Provide a database session for a test."""
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(FIXED_NOW)


@pytest.fixture
def redis_client() -> fakeredis.FakeRedis:
    return fakeredis.FakeRedis(decode_responses=True)


@pytest.fixture
def notifications() -> RecordingNotificationService:
    return RecordingNotificationService()


@pytest.fixture
def services(session_factory, redis_client, notifications, clock) -> ServiceRegistry:
    """Service registry wired to the test database, fake Redis and frozen clock."""
    return build_service_registry(
        session_factory,
        redis_client,
        notifications=notifications,
        now_provider=clock,
        bypass_cache=False,
    )


@pytest.fixture
def business(db_session) -> Business:
    b = Business(name="Test Studio", timezone="UTC")
    db_session.add(b)
    db_session.commit()
    return b


@pytest.fixture
def service(db_session, business) -> Service:
    """A 60 minute service without buffer."""
    s = Service(business_id=business.id, name="Consultation", duration_minutes=60, buffer_minutes=0)
    db_session.add(s)
    db_session.commit()
    return s


@pytest.fixture
def add_weekly_rule(db_session) -> Callable[..., WeeklyAvailability]:
    """Insert a weekly rule directly, bypassing the store's validation."""
    def _add(
        business: Business,
        day_of_week: int,
        start: time,
        end: time,
        is_available: bool = True,
    ) -> WeeklyAvailability:
        rule = WeeklyAvailability(
            business_id=business.id,
            day_of_week=day_of_week,
            start_time=start,
            end_time=end,
            is_available=is_available,
        )
        db_session.add(rule)
        db_session.commit()
        return rule
    return _add


@pytest.fixture
def add_exception(db_session) -> Callable[..., AvailabilityException]:
    def _add(
        business: Business,
        exception_date: date,
        is_available: bool = False,
        start: Optional[time] = None,
        end: Optional[time] = None,
        reason: Optional[str] = None,
    ) -> AvailabilityException:
        exception = AvailabilityException(
            business_id=business.id,
            date=exception_date,
            start_time=start,
            end_time=end,
            is_available=is_available,
            reason=reason,
        )
        db_session.add(exception)
        db_session.commit()
        return exception
    return _add


@pytest.fixture
def add_appointment(db_session) -> Callable[..., Appointment]:
    def _add(
        business: Business,
        service: Service,
        appointment_date: date,
        start: time,
        end: time,
        status: str = APPOINTMENT_STATUS_CONFIRMED,
    ) -> Appointment:
        appointment = Appointment(
            business_id=business.id,
            service_id=service.id,
            appointment_date=appointment_date,
            start_time=start,
            end_time=end,
            status=status,
        )
        db_session.add(appointment)
        db_session.commit()
        return appointment
    return _add


@pytest.fixture
def monday_hours(business, add_weekly_rule) -> WeeklyAvailability:
    """Monday 09:00-17:00, the business's only weekly rule."""
    return add_weekly_rule(business, 1, time(9, 0), time(17, 0))
