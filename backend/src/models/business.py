"""
Business model representing a tenant that offers bookable services.

Each business owns its weekly availability, its availability exceptions,
its services and the appointments booked against them.
"""

from datetime import datetime
from typing import Optional
from sqlalchemy import String, Boolean, TIMESTAMP
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.database import Base


class Business(Base):
    """Business entity (tenant) that owns schedules, services and appointments."""

    __tablename__ = "businesses"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    """Unique identifier for the business."""

    name: Mapped[str] = mapped_column(String(255))
    """Display name of the business."""

    timezone: Mapped[str] = mapped_column(String(64), default="UTC")
    """IANA timezone name. Stored for callers; the engine does not convert with it."""

    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    """Inactive businesses are skipped by cache warming."""

    created_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    updated_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), nullable=True)

    services = relationship("Service", back_populates="business", cascade="all, delete-orphan")
    weekly_availability = relationship("WeeklyAvailability", back_populates="business", cascade="all, delete-orphan")
    availability_exceptions = relationship("AvailabilityException", back_populates="business", cascade="all, delete-orphan")

    def __repr__(self) -> str:
        return f"<Business(id={self.id}, name='{self.name}')>"
