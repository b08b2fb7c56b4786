# irepair/services/appointments.py
"""
Appointment lifecycle.

    Scheduled -> Accepted -> Repairing -> Testing -> Completed
    Scheduled -> Rejected   (technician declines)
    Scheduled -> Cancelled  (user cancels)

A user holds at most one appointment outside Completed/Cancelled/Rejected.
The rule is checked when booking (read, then write); two devices booking for
the same user at the same moment can both get through.
"""
import copy
import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Mapping, Optional, Sequence

from sqlalchemy.orm import Session

from irepair.core.clock import Clock, ensure_utc, format_civil_datetime, to_civil_time, utcnow
from irepair.core.config import CANCEL_DEADLINE_MINUTES
from irepair.core.errors import (
    AppointmentNotFound,
    ConfirmationRequired,
    DayUnavailable,
    DuplicateActiveAppointment,
    InvalidCancellationReason,
    InvalidSchedule,
    InvalidTransition,
    PendingFeedback,
    TechnicianUnavailable,
    TimeUnavailable,
)
from irepair.db.models.appointment import Appointment
from irepair.db.models.rating import Rating
from irepair.db.models.technician import Technician
from irepair.db.models.user import User
from irepair.services.availability import DAY_NAMES, availability_summary, is_day_available, is_time_available
from irepair.services.directory import is_approved, is_restricted, resolve_schedule, technician_distance
from irepair.services.notifications import NotificationService
from irepair.services.ratings import RatingService

logger = logging.getLogger(__name__)

SCHEDULED = "Scheduled"
ACCEPTED = "Accepted"
REPAIRING = "Repairing"
TESTING = "Testing"
COMPLETED = "Completed"
REJECTED = "Rejected"
CANCELLED = "Cancelled"
# spellings found in older records
LEGACY_CANCELED = "Canceled"
LEGACY_PENDING = "pending"

# no longer counts against the one-active-appointment rule
TERMINAL_STATUSES = frozenset({COMPLETED, CANCELLED, LEGACY_CANCELED, REJECTED})
# never shown as the user's current appointment (a Rejected one still is, until rebooked)
CLOSED_STATUSES = frozenset({COMPLETED, CANCELLED, LEGACY_CANCELED})
CANCELLABLE_STATUSES = frozenset({SCHEDULED, LEGACY_PENDING})

TRANSITIONS = {
    SCHEDULED: {ACCEPTED, REJECTED, CANCELLED},
    LEGACY_PENDING: {ACCEPTED, REJECTED, CANCELLED},
    ACCEPTED: {REPAIRING},
    REPAIRING: {TESTING},
    TESTING: {COMPLETED},
}

# (user view, technician view)
STATUS_VIEWS = {
    SCHEDULED: ("Waiting for technician to accept", "Request pending"),
    ACCEPTED: ("Waiting for repair to start", "Appointment accepted - ready to start repair"),
    REPAIRING: ("Technician is working on your device", "Repair in progress"),
    TESTING: ("Testing in progress - Quality check in progress", "Testing phase - Quality assurance"),
    COMPLETED: ("Repair completed! Your appliance is ready.", "Repair completed"),
    REJECTED: ("Technician declined your appointment", "Appointment declined"),
    CANCELLED: ("Appointment cancelled", "Appointment cancelled by user"),
}

OTHER_REASON = "Others"
CANCELLATION_REASONS = (
    "Device is already fixed",
    "Schedule conflict",
    "Found a better technician",
    "Changed my mind",
    OTHER_REASON,
)
REJECTION_REASONS = (
    "Not available at that time",
    "Outside my service area",
    "Personal emergency",
    "Schedule conflict",
    OTHER_REASON,
)


@dataclass
class BookingDraft:
    """What the booking form is refilled with after a cancel or a declined request."""
    diagnosis: Optional[Dict[str, Any]]
    scheduled_date: datetime
    service_type: str
    declined_technician_id: Optional[int] = None


def resolve_reason(reason: Optional[str], custom_reason: Optional[str], allowed: Sequence[str], action: str) -> str:
    if not reason or reason not in allowed:
        raise InvalidCancellationReason(f"Please select a {action} reason", allowed_reasons=list(allowed))
    if reason == OTHER_REASON:
        custom_reason = (custom_reason or "").strip()
        if not custom_reason:
            raise InvalidCancellationReason(f"Please provide a reason for {action}")
        return custom_reason
    return reason


class AppointmentService:
    def __init__(
        self,
        db: Session,
        clock: Clock = utcnow,
        notifier: Optional[NotificationService] = None,
        ratings: Optional[RatingService] = None,
    ):
        self.db = db
        self.clock = clock
        self.notifier = notifier or NotificationService(db)
        self.ratings = ratings or RatingService(db, clock=clock)

    # --- queries ---

    def get(self, appointment_id: int) -> Appointment:
        appointment = self.db.query(Appointment).filter(Appointment.id == appointment_id).first()
        if not appointment:
            raise AppointmentNotFound()
        return appointment

    def list_for_user(self, user_id: int, include_hidden: bool = False) -> List[Appointment]:
        q = self.db.query(Appointment).filter(Appointment.user_id == user_id)
        if not include_hidden:
            q = q.filter(Appointment.hidden_from_user == False)
        return q.order_by(Appointment.created_at.desc(), Appointment.id.desc()).all()

    def list_for_technician(self, technician_id: int, statuses: Optional[Sequence[str]] = None) -> List[Appointment]:
        q = self.db.query(Appointment).filter(Appointment.technician_id == technician_id)
        if statuses:
            q = q.filter(Appointment.status_global.in_(list(statuses)))
        return q.order_by(Appointment.scheduled_date.asc(), Appointment.id.asc()).all()

    def current_for_user(self, user_id: int) -> Optional[Appointment]:
        """Most recent appointment the booking screen should show instead of the booking form."""
        return (
            self.db.query(Appointment)
            .filter(
                Appointment.user_id == user_id,
                Appointment.hidden_from_user == False,
                Appointment.status_global.not_in(list(CLOSED_STATUSES)),
            )
            .order_by(Appointment.created_at.desc(), Appointment.id.desc())
            .first()
        )

    def has_active_appointment(self, user_id: int) -> bool:
        return (
            self.db.query(Appointment.id)
            .filter(
                Appointment.user_id == user_id,
                Appointment.status_global.not_in(list(TERMINAL_STATUSES)),
            )
            .first()
            is not None
        )

    def has_pending_feedback(self, user_id: int) -> bool:
        return (
            self.db.query(Appointment.id)
            .filter(
                Appointment.user_id == user_id,
                Appointment.status_global == COMPLETED,
                Appointment.rated == False,
                Appointment.hidden_from_user == False,
            )
            .first()
            is not None
        )

    def previously_declined(self, user_id: int, technician_id: int) -> bool:
        """The caller warns ("this technician declined you before") but may still book."""
        return (
            self.db.query(Appointment.id)
            .filter(
                Appointment.user_id == user_id,
                Appointment.technician_id == technician_id,
                Appointment.status_global == REJECTED,
            )
            .first()
            is not None
        )

    # --- user side ---

    def create(
        self,
        user: User,
        technician: Technician,
        diagnosis: Optional[Mapping[str, Any]],
        scheduled_date: datetime,
        service_type: str = "walk-in",
    ) -> Appointment:
        # only technicians the directory would offer can be booked
        if not is_approved(technician) or is_restricted(technician):
            logger.info(f"User {user.id} tried to book unavailable technician {technician.id}")
            raise TechnicianUnavailable()

        now = self.clock()
        scheduled_date = ensure_utc(scheduled_date)

        if scheduled_date <= now:
            raise InvalidSchedule()

        schedule = resolve_schedule(technician)
        summary = availability_summary(technician.type, schedule.working_days, schedule.working_hours)

        if not is_day_available(scheduled_date, schedule.working_days):
            day = DAY_NAMES[to_civil_time(scheduled_date).weekday()]
            raise DayUnavailable(
                f"The technician is not available on {day}.",
                availability_summary=summary,
            )

        if not is_time_available(scheduled_date, schedule.hours):
            raise TimeUnavailable(availability_summary=summary)

        if self.has_active_appointment(user.id):
            raise DuplicateActiveAppointment()

        if self.has_pending_feedback(user.id):
            raise PendingFeedback()

        user_location = (user.latitude, user.longitude) if user.has_location else None
        distance = technician_distance(technician, user_location)

        if service_type == "home-service":
            service_location = user.address or "User's Location"
        else:
            shop = technician.shop
            service_location = (shop.address if technician.type == "shop" and shop is not None else None) or technician.address

        user_view, technician_view = STATUS_VIEWS[SCHEDULED]
        appointment = Appointment(
            user_id=user.id,
            technician_id=technician.id,
            technician_type=technician.type,
            service_type=service_type,
            service_location=service_location,
            scheduled_date=scheduled_date,
            cancel_deadline=scheduled_date - timedelta(minutes=CANCEL_DEADLINE_MINUTES),
            status_global=SCHEDULED,
            status_user_view=user_view,
            status_technician_view=technician_view,
            diagnosis_data=copy.deepcopy(dict(diagnosis)) if diagnosis else None,
            technician_details={
                "name": technician.username,
                "full_name": technician.full_name,
                "phone": technician.phone,
                "rating": technician.average_rating or 0.0,
                "shop_name": schedule.shop_name or None,
                "distance_km": distance,
            },
            user_details={
                "name": user.username or "User",
                "phone": user.phone or "",
                "email": user.email or "",
            },
            rated=False,
            hidden_from_user=False,
            created_at=now,
        )
        self.db.add(appointment)
        self.db.commit()
        self.db.refresh(appointment)
        logger.info(f"Appointment {appointment.id} scheduled: user {user.id} with technician {technician.id}")

        self.notifier.send_appointment_confirmation_notification(
            user.id, technician.username, format_civil_datetime(scheduled_date)
        )
        return appointment

    def cancel(self, appointment: Appointment, reason: Optional[str], custom_reason: Optional[str] = None) -> BookingDraft:
        if appointment.status_global not in CANCELLABLE_STATUSES:
            raise InvalidTransition(f"Cannot cancel appointment because it is already {appointment.status_global}")
        final_reason = resolve_reason(reason, custom_reason, CANCELLATION_REASONS, "cancellation")

        now = self.clock()
        self._set_status(appointment, CANCELLED, now)
        appointment.cancelled_at = now
        appointment.cancelled_by = "user"
        appointment.cancellation_reason = final_reason
        self.db.commit()
        self.db.refresh(appointment)
        logger.info(f"Appointment {appointment.id} cancelled by user: {final_reason}")

        customer_name = (appointment.user_details or {}).get("name") or "User"
        self.notifier.send_appointment_cancellation_notification(
            appointment.technician_id,
            customer_name,
            format_civil_datetime(ensure_utc(appointment.scheduled_date)),
            final_reason,
        )
        return self.draft_from(appointment)

    def rebook_after_rejection(self, appointment: Appointment) -> BookingDraft:
        """
        Take a declined appointment off the user's screen and hand back its
        details for a new booking. The record stays for the technician's history.
        """
        if appointment.status_global != REJECTED:
            raise InvalidTransition("Only a declined appointment can be booked again")
        appointment.hidden_from_user = True
        appointment.updated_at = self.clock()
        self.db.commit()
        self.db.refresh(appointment)
        return self.draft_from(appointment, declined_technician_id=appointment.technician_id)

    def hide(self, appointment: Appointment) -> Appointment:
        if appointment.status_global not in TERMINAL_STATUSES:
            raise InvalidTransition("Only finished, cancelled or declined appointments can be removed")
        appointment.hidden_from_user = True
        appointment.updated_at = self.clock()
        self.db.commit()
        self.db.refresh(appointment)
        return appointment

    def delete(self, appointment: Appointment, confirmed: bool = False) -> None:
        if not confirmed:
            raise ConfirmationRequired()
        if appointment.status_global not in TERMINAL_STATUSES:
            raise InvalidTransition("Only finished, cancelled or declined appointments can be deleted")
        appointment_id = appointment.id
        self.db.delete(appointment)
        self.db.commit()
        logger.info(f"Appointment {appointment_id} permanently deleted")

    def rate(self, appointment: Appointment, rating: int, comment: Optional[str] = None) -> Rating:
        """Close out the feedback for a completed repair; this lifts the booking gate."""
        if appointment.status_global != COMPLETED:
            raise InvalidTransition("Can only rate completed appointments")
        if appointment.rated:
            raise InvalidTransition("This appointment has already been rated")

        record = self.ratings.submit(
            appointment.technician_id, appointment.user_id, rating, comment, appointment.id
        )

        now = self.clock()
        appointment.user_rating = rating
        appointment.rated_at = now
        appointment.rated = True
        appointment.updated_at = now
        self._save(appointment)
        return record

    # --- technician side ---

    def accept(self, appointment: Appointment) -> Appointment:
        now = self._transition(appointment, ACCEPTED)
        appointment.accepted_at = now
        return self._save(appointment)

    def reject(self, appointment: Appointment, reason: Optional[str], custom_reason: Optional[str] = None) -> Appointment:
        if REJECTED not in TRANSITIONS.get(appointment.status_global, ()):
            raise InvalidTransition(f"Cannot reject appointment because it is already {appointment.status_global}")
        final_reason = resolve_reason(reason, custom_reason, REJECTION_REASONS, "rejection")

        now = self._transition(appointment, REJECTED)
        appointment.rejected_at = now
        appointment.rejected_by = "technician"
        appointment.rejection_reason = final_reason
        self._save(appointment)
        logger.info(f"Appointment {appointment.id} rejected by technician: {final_reason}")

        technician_name = (appointment.technician_details or {}).get("name") or "Technician"
        self.notifier.send_appointment_rejection_notification(
            appointment.user_id,
            technician_name,
            format_civil_datetime(ensure_utc(appointment.scheduled_date)),
            final_reason,
        )
        return appointment

    def start_repair(self, appointment: Appointment, estimated_completion: Optional[date] = None) -> Appointment:
        now = self._transition(appointment, REPAIRING)
        appointment.repair_started_at = now
        appointment.estimated_completion = estimated_completion
        self._save(appointment)
        self.notifier.send_repair_status_notification(
            appointment.user_id, "Your repair has started! The technician is now working on your device."
        )
        return appointment

    def start_testing(self, appointment: Appointment) -> Appointment:
        now = self._transition(appointment, TESTING)
        appointment.testing_started_at = now
        return self._save(appointment)

    def complete(self, appointment: Appointment) -> Appointment:
        now = self._transition(appointment, COMPLETED)
        appointment.completed_at = now
        self._save(appointment)
        self.notifier.send_repair_status_notification(
            appointment.user_id, "Your repair is complete! Please rate your technician."
        )
        return appointment

    # --- helpers ---

    def draft_from(self, appointment: Appointment, declined_technician_id: Optional[int] = None) -> BookingDraft:
        return BookingDraft(
            diagnosis=copy.deepcopy(appointment.diagnosis_data) if appointment.diagnosis_data else None,
            scheduled_date=ensure_utc(appointment.scheduled_date),
            service_type=appointment.service_type,
            declined_technician_id=declined_technician_id,
        )

    def _transition(self, appointment: Appointment, target: str) -> datetime:
        current = appointment.status_global
        if target not in TRANSITIONS.get(current, ()):
            raise InvalidTransition(f"Cannot move appointment from {current} to {target}")
        now = self.clock()
        self._set_status(appointment, target, now)
        return now

    def _set_status(self, appointment: Appointment, status: str, now: datetime) -> None:
        user_view, technician_view = STATUS_VIEWS[status]
        appointment.status_global = status
        appointment.status_user_view = user_view
        appointment.status_technician_view = technician_view
        appointment.updated_at = now

    def _save(self, appointment: Appointment) -> Appointment:
        self.db.commit()
        self.db.refresh(appointment)
        return appointment
