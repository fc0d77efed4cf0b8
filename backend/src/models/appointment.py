"""
Appointment model representing a booked interval for a business service.

Only pending and confirmed appointments occupy time. The booking guard keeps
active appointments of one business and date from overlapping.
"""

from datetime import date as date_type, time, datetime
from typing import Optional
from sqlalchemy import Date, Integer, String, Time, TIMESTAMP, ForeignKey, Index, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.constants import ACTIVE_APPOINTMENT_STATUSES, APPOINTMENT_STATUS_PENDING
from core.database import Base
from utils.time_utils import format_date, time_to_string


class Appointment(Base):
    """Customer booking of one service at one time."""

    __tablename__ = "appointments"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    """Unique identifier for the appointment."""

    business_id: Mapped[int] = mapped_column(ForeignKey("businesses.id", ondelete="CASCADE"))
    """Business the appointment is booked with."""

    service_id: Mapped[int] = mapped_column(ForeignKey("services.id"))
    """Service being booked."""

    appointment_date: Mapped[date_type] = mapped_column(Date)
    """Date of the appointment."""

    start_time: Mapped[time] = mapped_column(Time)
    """Start of the appointment (inclusive)."""

    end_time: Mapped[time] = mapped_column(Time)
    """End of the appointment (exclusive), start plus the service duration."""

    status: Mapped[str] = mapped_column(String(20), default=APPOINTMENT_STATUS_PENDING)
    """One of 'pending', 'confirmed', 'cancelled', 'completed'."""

    customer_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    customer_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    customer_phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    notes: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    """Optional customer-provided notes."""

    version: Mapped[int] = mapped_column(Integer, default=1)
    """Incremented on every change; used for optimistic concurrency on reschedule."""

    created_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    updated_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), nullable=True)

    service = relationship("Service")

    __table_args__ = (
        CheckConstraint("end_time > start_time", name="check_appointment_valid_time_range"),
        CheckConstraint(
            "status IN ('pending', 'confirmed', 'cancelled', 'completed')",
            name="check_appointment_status",
        ),
        Index("idx_appointments_business_date_status", "business_id", "appointment_date", "status"),
    )

    @property
    def is_active(self) -> bool:
        """Whether the appointment currently occupies its time slot."""
        return self.status in ACTIVE_APPOINTMENT_STATUSES

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "business_id": self.business_id,
            "service_id": self.service_id,
            "appointment_date": format_date(self.appointment_date),
            "start_time": time_to_string(self.start_time),
            "end_time": time_to_string(self.end_time),
            "status": self.status,
            "customer_name": self.customer_name,
            "customer_email": self.customer_email,
            "customer_phone": self.customer_phone,
            "notes": self.notes,
            "version": self.version,
        }

    def __repr__(self) -> str:
        return (
            f"<Appointment(id={self.id}, business_id={self.business_id}, "
            f"date={self.appointment_date}, {self.start_time}-{self.end_time}, status='{self.status}')>"
        )
