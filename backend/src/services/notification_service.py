import logging
from enum import Enum
from typing import Optional

from models import Appointment

logger = logging.getLogger(__name__)


class BookingEvent(Enum):
    CREATED = "created"
    RESCHEDULED = "rescheduled"
    CANCELLED = "cancelled"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"


class NotificationService:
    """
    Sink for booking notifications.

    The booking flow calls these hooks after a successful commit and never
    waits on them for correctness. Delivery channels (email, SMS, push) plug
    in by subclassing and overriding ``deliver``; the default only logs.
    """

    def notify(self, event: BookingEvent, appointment: Appointment, note: Optional[str] = None) -> bool:
        """
        Send a notification for a booking event.

        Returns:
            True if the notification was handed off, False if it failed
        """
        try:
            self.deliver(event, appointment, note)
            return True
        except Exception as e:
            logger.exception(f"Failed to send {event.value} notification for appointment {appointment.id}: {e}")
            return False

    def deliver(self, event: BookingEvent, appointment: Appointment, note: Optional[str]) -> None:
        logger.info(
            f"Appointment {appointment.id} {event.value}: business {appointment.business_id}, "
            f"{appointment.appointment_date} {appointment.start_time}-{appointment.end_time}"
            + (f" ({note})" if note else "")
        )

    def booking_created(self, appointment: Appointment) -> bool:
        return self.notify(BookingEvent.CREATED, appointment)

    def booking_rescheduled(self, appointment: Appointment) -> bool:
        return self.notify(BookingEvent.RESCHEDULED, appointment)

    def booking_cancelled(self, appointment: Appointment, reason: Optional[str] = None) -> bool:
        return self.notify(BookingEvent.CANCELLED, appointment, reason)

    def status_changed(self, appointment: Appointment) -> bool:
        return self.notify(BookingEvent(appointment.status), appointment)
