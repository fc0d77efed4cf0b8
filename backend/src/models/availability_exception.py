"""
Availability exception model for date-specific overrides of the weekly schedule.

An exception either closes the business for a whole date or, when it is
marked available and carries a start/end pair, replaces that date's weekly
hours. At most one exception exists per (business, date).
"""

from datetime import date as date_type, time, datetime
from typing import Optional
from sqlalchemy import Boolean, Date, String, Time, TIMESTAMP, ForeignKey, Index, CheckConstraint, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.constants import MAX_REASON_LENGTH
from core.database import Base
from shared_types.availability import Closed, ExceptionHours, OpenAllDay, OpenCustomHours
from utils.time_utils import format_date, time_to_string


class AvailabilityException(Base):
    """
    Date-specific availability override.

    ``is_available=False`` means closed all day, whatever times are stored.
    ``is_available=True`` with both times set means open with those hours only.
    ``is_available=True`` without times leaves the weekly schedule in charge.
    """

    __tablename__ = "availability_exceptions"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    """Unique identifier for the availability exception."""

    business_id: Mapped[int] = mapped_column(ForeignKey("businesses.id", ondelete="CASCADE"))
    """Owning business."""

    date: Mapped[date_type] = mapped_column(Date)
    """Calendar date the exception applies to."""

    start_time: Mapped[Optional[time]] = mapped_column(Time, nullable=True)
    """Special opening time. Set together with end_time or not at all."""

    end_time: Mapped[Optional[time]] = mapped_column(Time, nullable=True)
    """Special closing time. Set together with start_time or not at all."""

    is_available: Mapped[bool] = mapped_column(Boolean, default=False)
    """Defaults to closed."""

    reason: Mapped[Optional[str]] = mapped_column(String(MAX_REASON_LENGTH), nullable=True)
    """Optional note such as "Public holiday"."""

    created_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    updated_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), nullable=True)

    business = relationship("Business", back_populates="availability_exceptions")

    __table_args__ = (
        UniqueConstraint("business_id", "date", name="uq_availability_exception_business_date"),
        CheckConstraint(
            "(start_time IS NULL AND end_time IS NULL) OR (start_time IS NOT NULL AND end_time IS NOT NULL)",
            name="check_exception_hours_pair",
        ),
        CheckConstraint(
            "start_time IS NULL OR end_time > start_time",
            name="check_exception_valid_time_range",
        ),
        Index("idx_availability_exceptions_business_date", "business_id", "date"),
    )

    @property
    def hours(self) -> ExceptionHours:
        """The exception as a closed / open-all-day / custom-hours variant."""
        if not self.is_available:
            return Closed()
        if self.start_time is not None and self.end_time is not None:
            return OpenCustomHours(time_to_string(self.start_time), time_to_string(self.end_time))
        return OpenAllDay()

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "business_id": self.business_id,
            "date": format_date(self.date),
            "start_time": time_to_string(self.start_time) if self.start_time else None,
            "end_time": time_to_string(self.end_time) if self.end_time else None,
            "is_available": self.is_available,
            "reason": self.reason,
        }

    def __repr__(self) -> str:
        return f"<AvailabilityException(id={self.id}, business_id={self.business_id}, date={self.date}, hours={self.hours})>"
