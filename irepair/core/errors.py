"""
Domain errors raised by the booking engine.

Every error carries the HTTP status the API answers with, a stable machine
code for clients, and an optional payload (for example the technician's
availability summary on DayUnavailable/TimeUnavailable).
"""
from typing import Any, Dict, Optional


class BookingError(Exception):
    status_code = 400
    code = "booking_error"
    default_message = "Booking request could not be processed"

    def __init__(self, message: Optional[str] = None, **payload: Any):
        self.message = message or self.default_message
        self.payload: Dict[str, Any] = payload
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {"detail": self.message, "code": self.code, **self.payload}


class LocationRequired(BookingError):
    code = "location_required"
    default_message = (
        "Please set your location first to find nearby technicians. "
        "We need your location to show you the closest available technicians."
    )


class InvalidSchedule(BookingError):
    code = "invalid_schedule"
    default_message = "The scheduled date and time must be in the future."


class DayUnavailable(BookingError):
    code = "day_unavailable"
    default_message = "The technician is not available on that day."


class TimeUnavailable(BookingError):
    code = "time_unavailable"
    default_message = "The technician is not available at that time."


class DuplicateActiveAppointment(BookingError):
    status_code = 409
    code = "duplicate_active_appointment"
    default_message = (
        "You already have an active appointment. "
        "Please wait for it to be completed before booking a new one."
    )


class PendingFeedback(BookingError):
    status_code = 409
    code = "pending_feedback"
    default_message = (
        "Please complete your service feedback for the previous repair "
        "before booking a new one."
    )


class InvalidRating(BookingError):
    status_code = 422
    code = "invalid_rating"
    default_message = "Rating must be between 1 and 5"


class InvalidCancellationReason(BookingError):
    status_code = 422
    code = "invalid_reason"
    default_message = "Please select a valid reason"


class InvalidTransition(BookingError):
    status_code = 409
    code = "invalid_transition"
    default_message = "Appointment cannot move to that status"


class ConfirmationRequired(BookingError):
    code = "confirmation_required"
    default_message = "Deleting an appointment cannot be undone and must be confirmed"


class TechnicianUnavailable(BookingError):
    status_code = 409
    code = "technician_unavailable"
    default_message = "This technician is not accepting bookings right now. Please choose another technician."


class TechnicianNotFound(BookingError):
    status_code = 404
    code = "technician_not_found"
    default_message = "Technician not found"


class AppointmentNotFound(BookingError):
    status_code = 404
    code = "appointment_not_found"
    default_message = "Appointment not found"


class MalformedAvailabilityData(ValueError):
    """Working days/hours that cannot be interpreted. Never leaves the evaluator."""
