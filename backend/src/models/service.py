"""
Service model representing something a business offers for booking.

The service fixes the appointment length and the buffer that separates
consecutive slots when availability is computed for it.
"""

from datetime import datetime
from typing import Optional
from sqlalchemy import String, Boolean, Integer, ForeignKey, TIMESTAMP, CheckConstraint, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.database import Base


class Service(Base):
    """Bookable service with a fixed duration."""

    __tablename__ = "services"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    """Unique identifier for the service."""

    business_id: Mapped[int] = mapped_column(ForeignKey("businesses.id", ondelete="CASCADE"))
    """Business offering this service."""

    name: Mapped[str] = mapped_column(String(255))
    """Service name shown to customers."""

    duration_minutes: Mapped[int] = mapped_column(Integer)
    """Length of one appointment for this service."""

    buffer_minutes: Mapped[int] = mapped_column(Integer, default=0)
    """Gap kept free after each slot when generating availability."""

    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    """Inactive services cannot be booked and are treated as not found."""

    created_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    updated_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), nullable=True)

    business = relationship("Business", back_populates="services")

    __table_args__ = (
        CheckConstraint("duration_minutes > 0", name="check_service_duration_positive"),
        CheckConstraint("buffer_minutes >= 0", name="check_service_buffer_non_negative"),
        Index("idx_services_business_active", "business_id", "is_active"),
    )

    def __repr__(self) -> str:
        return f"<Service(id={self.id}, business_id={self.business_id}, duration={self.duration_minutes})>"
