# irepair/services/notifications.py
"""
In-app notifications. Delivery is fire-and-forget: a failure is logged and
swallowed so it never blocks the booking operation that triggered it.
"""
import logging
from typing import Optional

from sqlalchemy.orm import Session

from irepair.db.models.notification import Notification

logger = logging.getLogger(__name__)


class NotificationService:
    def __init__(self, db: Session):
        self.db = db

    def send_notification(self, recipient_type: str, recipient_id: int, message: str, type: str = "appointment") -> None:
        try:
            self.db.add(
                Notification(
                    recipient_type=recipient_type,
                    recipient_id=recipient_id,
                    type=type,
                    message=message,
                )
            )
            self.db.commit()
            logger.info(f"Notification sent: {type} -> {recipient_type} {recipient_id}")
        except Exception:
            self.db.rollback()
            logger.exception(f"Failed to send notification to {recipient_type} {recipient_id}")

    def send_appointment_confirmation_notification(self, user_id: int, technician_name: str, appointment_date: str) -> None:
        self.send_notification(
            "user",
            user_id,
            f"Your appointment with {technician_name} has been successfully booked for {appointment_date}. "
            "We'll send you a reminder closer to the date!",
        )

    def send_appointment_cancellation_notification(
        self,
        technician_id: int,
        customer_name: str,
        appointment_date: str,
        cancellation_reason: Optional[str] = None,
    ) -> None:
        message = (
            f"Appointment cancelled by {customer_name} for {appointment_date}. "
            "The customer has cancelled their repair request."
        )
        if cancellation_reason:
            message += f"\n\nReason: {cancellation_reason}"
        self.send_notification("technician", technician_id, message)

    def send_appointment_rejection_notification(
        self,
        user_id: int,
        technician_name: str,
        appointment_date: str,
        rejection_reason: Optional[str] = None,
    ) -> None:
        message = (
            f"Appointment rejected by {technician_name} for {appointment_date}. "
            "The technician has declined your repair request."
        )
        if rejection_reason:
            message += f"\n\nReason: {rejection_reason}"
        self.send_notification("user", user_id, message)

    def send_repair_status_notification(self, user_id: int, message: str) -> None:
        self.send_notification("user", user_id, message)
