# pyright: reportMissingTypeStubs=false
"""
Database configuration and session management.

This module sets up SQLAlchemy database connection, session management,
and provides dependency injection for database sessions in FastAPI routes.

Booking writes need a transaction that serializes against concurrent
bookings. On PostgreSQL the booking guard asks for SERIALIZABLE isolation.
SQLite's driver normally issues its own deferred BEGIN, so engines built by
``create_db_engine`` take over transaction demarcation and emit
``BEGIN IMMEDIATE`` when a connection carries the
``sqlite_begin_immediate`` execution option.
"""

import logging
from contextlib import contextmanager
from typing import Any, Generator

from fastapi import HTTPException
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from core.config import DATABASE_URL, SQLITE_BUSY_TIMEOUT_SECONDS
from core.constants import DB_POOL_RECYCLE_SECONDS
from core.exceptions import BookingError

logger = logging.getLogger(__name__)

SQLITE_BEGIN_IMMEDIATE = "sqlite_begin_immediate"


def _enable_sqlite_transaction_control(engine: Engine, use_wal: bool) -> None:
    """Let SQLAlchemy, not pysqlite, decide when and how transactions begin."""

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):  # type: ignore
        # Disable pysqlite's implicit BEGIN; the "begin" hook below emits it
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        if use_wal:
            cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):  # type: ignore
        if conn.get_execution_options().get(SQLITE_BEGIN_IMMEDIATE):
            conn.exec_driver_sql("BEGIN IMMEDIATE")
        else:
            conn.exec_driver_sql("BEGIN")


def create_db_engine(url: str, **kwargs: Any) -> Engine:
    """
    Create an engine for the given database URL.

    Args:
        url: SQLAlchemy database URL (PostgreSQL or SQLite)
        **kwargs: Extra keyword arguments forwarded to ``create_engine``

    Returns:
        Configured SQLAlchemy engine
    """
    if url.startswith("sqlite"):
        connect_args = kwargs.pop("connect_args", {})
        connect_args.setdefault("check_same_thread", False)
        connect_args.setdefault("timeout", SQLITE_BUSY_TIMEOUT_SECONDS)
        engine = create_engine(url, connect_args=connect_args, future=True, **kwargs)
        _enable_sqlite_transaction_control(engine, use_wal=":memory:" not in url)
        return engine

    return create_engine(
        url,
        pool_pre_ping=True,  # Verify connections before use
        pool_recycle=DB_POOL_RECYCLE_SECONDS,
        echo=False,
        future=True,
        **kwargs,
    )


def create_session_factory(bind: Engine) -> sessionmaker[Session]:
    """Create a session factory with the application's session settings."""
    return sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=bind,
        expire_on_commit=False,  # Don't expire objects after commit
    )


engine = create_db_engine(DATABASE_URL)

SessionLocal = create_session_factory(engine)


class Base(DeclarativeBase):
    """Base class for all database models."""
    pass


@event.listens_for(Base, "before_insert", propagate=True)  # type: ignore
def receive_before_insert(mapper, connection, target):  # type: ignore
    """Set created_at and updated_at on insert."""
    # Import here to avoid circular import
    from utils.datetime_utils import app_now
    now = app_now()
    for column_name in ("created_at", "updated_at"):
        if column_name in mapper.columns and getattr(target, column_name, None) is None:
            setattr(target, column_name, now)


@event.listens_for(Base, "before_update", propagate=True)  # type: ignore
def receive_before_update(mapper, connection, target):  # type: ignore
    """Set updated_at on update."""
    from utils.datetime_utils import app_now
    if "updated_at" in mapper.columns:
        setattr(target, "updated_at", app_now())


def get_db() -> Generator[Session, None, None]:
    """
    FastAPI dependency to provide database sessions.

    Yields a database session that is automatically closed after the request.
    Handles cleanup even if an exception occurs during request processing.

    Yields:
        Session: SQLAlchemy database session
    """
    db = SessionLocal()
    try:
        yield db
    except SQLAlchemyError as e:
        logger.exception(f"Database error: {e}")
        db.rollback()
        raise
    except (HTTPException, BookingError):
        # Expected business outcomes, not errors worth a traceback
        db.rollback()
        raise
    except Exception as e:
        logger.exception(f"Unexpected error in database session: {e}")
        db.rollback()
        raise
    finally:
        db.close()


@contextmanager
def get_db_context() -> Generator[Session, None, None]:
    """
    Context manager for database sessions outside of FastAPI dependency injection.

    Useful for background tasks and scripts such as cache warming.

    Yields:
        Session: SQLAlchemy database session
    """
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except (HTTPException, BookingError):
        db.rollback()
        raise
    except Exception as e:
        db.rollback()
        logger.exception(f"Database transaction failed: {e}")
        raise
    finally:
        db.close()


def create_tables(bind: Engine = engine) -> None:
    """
    Create all database tables defined in SQLAlchemy models.

    Safe to call multiple times - will not recreate existing tables.
    """
    # Register every model on Base.metadata before creating
    import models  # noqa: F401
    try:
        Base.metadata.create_all(bind=bind)
        logger.info("Database tables created successfully")
    except SQLAlchemyError as e:
        logger.exception(f"Failed to create database tables: {e}")
        raise


def drop_tables(bind: Engine = engine) -> None:
    """
    Drop all database tables defined in SQLAlchemy models.

    WARNING: This will permanently delete all data in the tables!
    """
    import models  # noqa: F401
    try:
        Base.metadata.drop_all(bind=bind)
        logger.info("Database tables dropped successfully")
    except SQLAlchemyError as e:
        logger.exception(f"Failed to drop database tables: {e}")
        raise
