from datetime import date, datetime, timedelta, timezone

import pytest

from irepair.core.clock import ensure_utc
from irepair.core.errors import (
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
from irepair.db.models.notification import Notification
from irepair.services.notifications import NotificationService
from irepair.services.appointments import (
    ACCEPTED,
    CANCELLED,
    COMPLETED,
    REJECTED,
    REPAIRING,
    SCHEDULED,
    TESTING,
    AppointmentService,
)

from conftest import NOW, TUESDAY_1030

DIAGNOSIS = {
    "category": "Smartphone",
    "brand": "Samsung",
    "model": "Galaxy S21",
    "issue": "Cracked screen",
    "diagnosis": "Display assembly replacement",
    "estimated_cost": 4500,
    "is_custom_issue": False,
}

# Sunday 2026-10-25 10:30 in Manila
SUNDAY_1030 = datetime(2026, 10, 25, 2, 30, tzinfo=timezone.utc)


@pytest.fixture
def service(db, clock):
    return AppointmentService(db, clock=clock)


@pytest.fixture
def user(make_user):
    return make_user()


@pytest.fixture
def technician(make_technician):
    return make_technician()


def book(service, user, technician, when=TUESDAY_1030, **kwargs):
    return service.create(user, technician, DIAGNOSIS, when, **kwargs)


def messages(db, recipient_type, recipient_id):
    rows = (
        db.query(Notification)
        .filter(Notification.recipient_type == recipient_type, Notification.recipient_id == recipient_id)
        .order_by(Notification.id)
        .all()
    )
    return [n.message for n in rows]


def run_to_completion(service, appointment):
    service.accept(appointment)
    service.start_repair(appointment)
    service.start_testing(appointment)
    return service.complete(appointment)


class TestCreate:
    def test_scheduled(self, db, service, user, technician):
        appointment = book(service, user, technician)

        assert appointment.status_global == SCHEDULED
        assert appointment.status_user_view == "Waiting for technician to accept"
        assert appointment.status_technician_view == "Request pending"
        assert appointment.rated is False
        assert ensure_utc(appointment.scheduled_date) == TUESDAY_1030
        assert ensure_utc(appointment.cancel_deadline) == TUESDAY_1030 - timedelta(hours=2, minutes=25)
        assert ensure_utc(appointment.created_at) == NOW
        assert appointment.service_type == "walk-in"
        assert appointment.service_location == technician.address
        assert appointment.technician_details["name"] == technician.username
        assert appointment.technician_details["distance_km"] == pytest.approx(1.11, abs=0.01)
        assert appointment.user_details["email"] == user.email

    def test_diagnosis_is_a_snapshot(self, service, user, technician):
        diagnosis = dict(DIAGNOSIS)
        appointment = service.create(user, technician, diagnosis, TUESDAY_1030)
        diagnosis["issue"] = "Battery drain"
        assert appointment.diagnosis_data["issue"] == "Cracked screen"

    def test_confirmation_notification(self, db, service, user, technician):
        book(service, user, technician)
        assert messages(db, "user", user.id) == [
            f"Your appointment with {technician.username} has been successfully booked for "
            "Tuesday, October 20, 2026 at 10:30 AM. We'll send you a reminder closer to the date!"
        ]

    def test_home_service_uses_user_address(self, service, user, technician):
        appointment = book(service, user, technician, service_type="home-service")
        assert appointment.service_location == "Ermita, Manila"

    def test_walk_in_at_shop(self, service, user, make_technician, make_shop):
        shop_owner = make_technician(type="shop")
        make_shop(shop_owner, working_days=["Tue"])
        appointment = book(service, user, shop_owner)
        assert appointment.service_location == "Quiapo, Manila"
        assert appointment.technician_details["shop_name"] == "FixIt Shop"

    @pytest.mark.parametrize(
        "overrides",
        [
            {"status": "pending"},
            {"status": "rejected"},
            {"is_suspended": True},
            {"is_banned": True},
            {"is_blocked": True},
            {"is_deleted": True},
        ],
    )
    def test_technician_must_be_bookable(self, db, service, user, make_technician, overrides):
        with pytest.raises(TechnicianUnavailable):
            book(service, user, make_technician(**overrides))
        assert db.query(Appointment).count() == 0

    @pytest.mark.parametrize("when", [NOW, NOW - timedelta(days=1)])
    def test_must_be_in_future(self, service, user, technician, when):
        with pytest.raises(InvalidSchedule):
            book(service, user, technician, when=when)

    def test_naive_datetime_is_utc(self, service, user, technician):
        appointment = book(service, user, technician, when=TUESDAY_1030.replace(tzinfo=None))
        assert ensure_utc(appointment.scheduled_date) == TUESDAY_1030

    def test_day_unavailable(self, db, service, user, technician):
        with pytest.raises(DayUnavailable) as exc:
            book(service, user, technician, when=SUNDAY_1030)
        assert "Sunday" in exc.value.message
        assert exc.value.payload["availability_summary"] == (
            "Working Days: Mon, Tue, Wed, Thu, Fri, Sat\nWorking Hours: 08:00 - 17:00"
        )
        assert db.query(Appointment).count() == 0

    def test_time_unavailable(self, service, user, technician):
        # 18:00 Manila
        with pytest.raises(TimeUnavailable) as exc:
            book(service, user, technician, when=datetime(2026, 10, 20, 10, 0, tzinfo=timezone.utc))
        assert "availability_summary" in exc.value.payload

    def test_no_working_hours(self, service, user, make_technician):
        with pytest.raises(TimeUnavailable):
            book(service, user, make_technician(working_hours=None))

    def test_one_active_appointment(self, service, user, technician, make_technician):
        book(service, user, technician)
        with pytest.raises(DuplicateActiveAppointment):
            book(service, user, make_technician(), when=TUESDAY_1030 + timedelta(days=1))

    def test_other_users_are_independent(self, service, user, technician, make_user):
        book(service, user, technician)
        assert book(service, make_user(), technician).status_global == SCHEDULED

    def test_pending_feedback_blocks(self, service, user, technician):
        run_to_completion(service, book(service, user, technician))
        with pytest.raises(PendingFeedback):
            book(service, user, technician, when=TUESDAY_1030 + timedelta(days=1))

    def test_rating_lifts_feedback_gate(self, service, user, technician):
        appointment = run_to_completion(service, book(service, user, technician))
        service.rate(appointment, 5)
        again = book(service, user, technician, when=TUESDAY_1030 + timedelta(days=1))
        assert again.status_global == SCHEDULED

    def test_cancelled_allows_new_booking(self, service, user, technician):
        service.cancel(book(service, user, technician), "Changed my mind")
        assert book(service, user, technician).status_global == SCHEDULED


class TestCancel:
    def test_cancel(self, db, service, user, technician):
        appointment = book(service, user, technician)
        draft = service.cancel(appointment, "Schedule conflict")

        assert appointment.status_global == CANCELLED
        assert appointment.status_user_view == "Appointment cancelled"
        assert appointment.cancelled_by == "user"
        assert appointment.cancellation_reason == "Schedule conflict"
        assert draft.diagnosis == DIAGNOSIS
        assert draft.scheduled_date == TUESDAY_1030
        assert draft.declined_technician_id is None

        [message] = messages(db, "technician", technician.id)
        assert message.startswith(f"Appointment cancelled by {user.username} for Tuesday, October 20, 2026 at 10:30 AM.")
        assert message.endswith("Reason: Schedule conflict")

    def test_custom_reason(self, service, user, technician):
        appointment = book(service, user, technician)
        service.cancel(appointment, "Others", "  Moving abroad ")
        assert appointment.cancellation_reason == "Moving abroad"

    @pytest.mark.parametrize("reason,custom", [(None, None), ("Bored", None), ("Others", "   ")])
    def test_invalid_reason(self, service, user, technician, reason, custom):
        appointment = book(service, user, technician)
        with pytest.raises(InvalidCancellationReason):
            service.cancel(appointment, reason, custom)
        assert appointment.status_global == SCHEDULED

    def test_cannot_cancel_after_accept(self, service, user, technician):
        appointment = book(service, user, technician)
        service.accept(appointment)
        with pytest.raises(InvalidTransition):
            service.cancel(appointment, "Changed my mind")


class TestRejection:
    def test_reject_and_rebook(self, db, service, user, technician):
        appointment = book(service, user, technician)
        service.reject(appointment, "Personal emergency")

        assert appointment.status_global == REJECTED
        assert appointment.rejected_by == "technician"
        assert messages(db, "user", user.id)[-1].endswith("Reason: Personal emergency")
        assert service.previously_declined(user.id, technician.id)
        assert service.current_for_user(user.id).id == appointment.id

        draft = service.rebook_after_rejection(appointment)
        assert appointment.hidden_from_user is True
        assert draft.declined_technician_id == technician.id
        assert draft.diagnosis == DIAGNOSIS
        assert service.current_for_user(user.id) is None

    def test_rejected_does_not_block_booking(self, service, user, technician, make_technician):
        service.reject(book(service, user, technician), "Outside my service area")
        assert book(service, user, make_technician()).status_global == SCHEDULED

    def test_reject_requires_reason(self, service, user, technician):
        appointment = book(service, user, technician)
        with pytest.raises(InvalidCancellationReason):
            service.reject(appointment, "Others")

    def test_rebook_only_declined(self, service, user, technician):
        with pytest.raises(InvalidTransition):
            service.rebook_after_rejection(book(service, user, technician))


class TestProgress:
    def test_full_lifecycle(self, db, service, user, technician):
        appointment = book(service, user, technician)

        service.accept(appointment)
        assert appointment.status_global == ACCEPTED
        assert appointment.status_user_view == "Waiting for repair to start"

        service.start_repair(appointment, date(2026, 10, 22))
        assert appointment.status_global == REPAIRING
        assert appointment.estimated_completion == date(2026, 10, 22)

        service.start_testing(appointment)
        assert appointment.status_global == TESTING

        service.complete(appointment)
        assert appointment.status_global == COMPLETED
        assert appointment.status_user_view == "Repair completed! Your appliance is ready."
        assert ensure_utc(appointment.completed_at) == NOW
        assert messages(db, "user", user.id)[-1] == "Your repair is complete! Please rate your technician."

    @pytest.mark.parametrize("step", ["start_repair", "start_testing", "complete"])
    def test_cannot_skip_steps(self, service, user, technician, step):
        appointment = book(service, user, technician)
        with pytest.raises(InvalidTransition):
            getattr(service, step)(appointment)
        assert appointment.status_global == SCHEDULED

    def test_cannot_accept_cancelled(self, service, user, technician):
        appointment = book(service, user, technician)
        service.cancel(appointment, "Device is already fixed")
        with pytest.raises(InvalidTransition):
            service.accept(appointment)


class TestRate:
    def test_rate_completed(self, db, service, user, technician):
        appointment = run_to_completion(service, book(service, user, technician))
        record = service.rate(appointment, 4, "Quick fix")

        assert appointment.rated is True
        assert appointment.user_rating == 4
        assert record.appointment_id == appointment.id
        db.refresh(technician)
        assert technician.average_rating == 4.0
        assert technician.total_ratings == 1

    def test_rate_requires_completion(self, service, user, technician):
        with pytest.raises(InvalidTransition):
            service.rate(book(service, user, technician), 5)


class TestHideAndDelete:
    def test_hide_terminal(self, service, user, technician):
        appointment = book(service, user, technician)
        service.cancel(appointment, "Changed my mind")
        service.hide(appointment)
        assert service.list_for_user(user.id) == []
        assert [a.id for a in service.list_for_user(user.id, include_hidden=True)] == [appointment.id]

    def test_cannot_hide_active(self, service, user, technician):
        with pytest.raises(InvalidTransition):
            service.hide(book(service, user, technician))

    def test_delete_needs_confirmation(self, db, service, user, technician):
        appointment = book(service, user, technician)
        service.cancel(appointment, "Changed my mind")
        with pytest.raises(ConfirmationRequired):
            service.delete(appointment)
        service.delete(appointment, confirmed=True)
        assert db.query(Appointment).count() == 0

    def test_cannot_delete_active(self, service, user, technician):
        with pytest.raises(InvalidTransition):
            service.delete(book(service, user, technician), confirmed=True)


def test_technician_list_filters_by_status(service, user, technician, make_user):
    first = book(service, user, technician)
    second = book(service, make_user(), technician, when=TUESDAY_1030 + timedelta(hours=1))
    service.accept(second)
    assert [a.id for a in service.list_for_technician(technician.id)] == [first.id, second.id]
    assert [a.id for a in service.list_for_technician(technician.id, [ACCEPTED])] == [second.id]


def test_rate_only_once(service, user, technician):
    appointment = run_to_completion(service, book(service, user, technician))
    service.rate(appointment, 5)
    with pytest.raises(InvalidTransition):
        service.rate(appointment, 1)
    assert appointment.user_rating == 5


class BrokenCommitSession:
    """Session stand-in whose commit always fails; everything else goes to the real session."""

    def __init__(self, db):
        self._db = db

    def __getattr__(self, name):
        return getattr(self._db, name)

    def commit(self):
        raise RuntimeError("database is locked")


class TestNotificationFailures:
    @pytest.fixture
    def service(self, db, clock):
        notifier = NotificationService(BrokenCommitSession(db))
        return AppointmentService(db, clock=clock, notifier=notifier)

    def test_create_cancel_and_reject_still_succeed(self, db, service, user, technician, make_user, caplog):
        cancelled = book(service, user, technician)
        service.cancel(cancelled, "Changed my mind")

        rejected = book(service, make_user(), technician)
        service.reject(rejected, "Personal emergency")

        stored = {a.id: a.status_global for a in db.query(Appointment).all()}
        assert stored == {cancelled.id: CANCELLED, rejected.id: REJECTED}
        assert db.query(Notification).count() == 0
        assert caplog.text.count("Failed to send notification") == 4
