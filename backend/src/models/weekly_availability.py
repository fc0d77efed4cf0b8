"""
Weekly availability model for a business's recurring opening hours.

Each record says "the business is open (or explicitly not) on weekday D from
T1 to T2". Several records per day are allowed, e.g. a morning and an
afternoon session. Overlap between records of the same day is rejected by
the weekly availability service before any write.
"""

from datetime import time, datetime
from typing import Optional
from sqlalchemy import Boolean, Integer, Time, TIMESTAMP, ForeignKey, Index, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.database import Base
from utils.time_utils import time_to_string


DAY_NAMES = ["Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday"]


class WeeklyAvailability(Base):
    """Recurring opening interval for one day of the week."""

    __tablename__ = "weekly_availability"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    """Unique identifier for the availability record."""

    business_id: Mapped[int] = mapped_column(ForeignKey("businesses.id", ondelete="CASCADE"))
    """Owning business."""

    day_of_week: Mapped[int] = mapped_column(Integer)
    """Day of the week (0=Sunday, 1=Monday, ..., 6=Saturday)."""

    start_time: Mapped[time] = mapped_column(Time)
    """Start of the interval (inclusive)."""

    end_time: Mapped[time] = mapped_column(Time)
    """End of the interval (exclusive)."""

    is_available: Mapped[bool] = mapped_column(Boolean, default=True)
    """False keeps the row but produces no slots."""

    created_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    updated_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), nullable=True)

    business = relationship("Business", back_populates="weekly_availability")

    __table_args__ = (
        CheckConstraint("day_of_week >= 0 AND day_of_week <= 6", name="check_weekly_day_of_week"),
        CheckConstraint("end_time > start_time", name="check_weekly_valid_time_range"),
        Index("idx_weekly_availability_business_day", "business_id", "day_of_week"),
        Index("idx_weekly_availability_business_day_time", "business_id", "day_of_week", "start_time"),
    )

    @property
    def day_name(self) -> str:
        """Get the day name for display."""
        return DAY_NAMES[self.day_of_week]

    @property
    def start_time_str(self) -> str:
        return time_to_string(self.start_time)

    @property
    def end_time_str(self) -> str:
        return time_to_string(self.end_time)

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "business_id": self.business_id,
            "day_of_week": self.day_of_week,
            "start_time": self.start_time_str,
            "end_time": self.end_time_str,
            "is_available": self.is_available,
        }

    def __repr__(self) -> str:
        return (
            f"<WeeklyAvailability(id={self.id}, business_id={self.business_id}, "
            f"day={self.day_name}, {self.start_time_str}-{self.end_time_str}, available={self.is_available})>"
        )
