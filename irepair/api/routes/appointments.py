# irepair/api/routes/appointments.py
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session
from typing import List, Optional

from irepair.core.clock import Clock, get_clock
from irepair.core.security import get_current_technician, get_current_user
from irepair.db.base import get_db
from irepair.db.models.appointment import Appointment
from irepair.db.models.technician import Technician
from irepair.db.models.user import User
from irepair.schemas.appointment import (
    AppointmentCreate,
    AppointmentListResponse,
    AppointmentResponse,
    BookingDraftResponse,
    CancelRequest,
    RateAppointmentRequest,
    RejectRequest,
    StartRepairRequest,
)
from irepair.schemas.rating import RatingResponse
from irepair.services.appointments import AppointmentService, BookingDraft
from irepair.services.directory import TechnicianDirectory

router = APIRouter(prefix="/appointments", tags=["appointments"])


def _get_service(db: Session = Depends(get_db), clock: Clock = Depends(get_clock)) -> AppointmentService:
    return AppointmentService(db, clock=clock)


def _own_appointment(service: AppointmentService, appointment_id: int, user: User) -> Appointment:
    appointment = service.get(appointment_id)
    if appointment.user_id != user.id:
        raise HTTPException(status_code=403, detail="Not your appointment")
    return appointment


def _assigned_appointment(service: AppointmentService, appointment_id: int, technician: Technician) -> Appointment:
    appointment = service.get(appointment_id)
    if appointment.technician_id != technician.id:
        raise HTTPException(status_code=403, detail="Not assigned to you")
    return appointment


def _draft_response(draft: BookingDraft) -> BookingDraftResponse:
    return BookingDraftResponse(
        diagnosis=draft.diagnosis,
        scheduled_date=draft.scheduled_date,
        service_type=draft.service_type,
        declined_technician_id=draft.declined_technician_id,
    )


# ---------- user side ----------

@router.post("/", response_model=AppointmentResponse, status_code=status.HTTP_201_CREATED)
def create_appointment(
    payload: AppointmentCreate,
    db: Session = Depends(get_db),
    service: AppointmentService = Depends(_get_service),
    current_user: User = Depends(get_current_user),
):
    technician = TechnicianDirectory(db).get(payload.technician_id)
    appointment = service.create(
        current_user,
        technician,
        payload.diagnosis.model_dump(),
        payload.scheduled_date,
        payload.service_type,
    )
    return AppointmentResponse.from_appointment(appointment)


@router.get("/me", response_model=AppointmentListResponse)
def list_my_appointments(
    include_hidden: bool = Query(False),
    service: AppointmentService = Depends(_get_service),
    current_user: User = Depends(get_current_user),
):
    items = [AppointmentResponse.from_appointment(a) for a in service.list_for_user(current_user.id, include_hidden)]
    return AppointmentListResponse(total=len(items), items=items)


# What the booking screen shows instead of the booking form, if anything
@router.get("/me/current", response_model=Optional[AppointmentResponse])
def get_current_appointment(
    service: AppointmentService = Depends(_get_service),
    current_user: User = Depends(get_current_user),
):
    appointment = service.current_for_user(current_user.id)
    if appointment is None:
        return None
    return AppointmentResponse.from_appointment(appointment)


@router.get("/{appointment_id}", response_model=AppointmentResponse)
def get_appointment(
    appointment_id: int,
    service: AppointmentService = Depends(_get_service),
    current_user: User = Depends(get_current_user),
):
    return AppointmentResponse.from_appointment(_own_appointment(service, appointment_id, current_user))


@router.post("/{appointment_id}/cancel", response_model=BookingDraftResponse)
def cancel_appointment(
    appointment_id: int,
    payload: CancelRequest,
    service: AppointmentService = Depends(_get_service),
    current_user: User = Depends(get_current_user),
):
    appointment = _own_appointment(service, appointment_id, current_user)
    return _draft_response(service.cancel(appointment, payload.reason, payload.custom_reason))


# "Book Again" after the technician declined
@router.post("/{appointment_id}/rebook", response_model=BookingDraftResponse)
def rebook_appointment(
    appointment_id: int,
    service: AppointmentService = Depends(_get_service),
    current_user: User = Depends(get_current_user),
):
    appointment = _own_appointment(service, appointment_id, current_user)
    return _draft_response(service.rebook_after_rejection(appointment))


@router.post("/{appointment_id}/hide", response_model=AppointmentResponse)
def hide_appointment(
    appointment_id: int,
    service: AppointmentService = Depends(_get_service),
    current_user: User = Depends(get_current_user),
):
    appointment = _own_appointment(service, appointment_id, current_user)
    return AppointmentResponse.from_appointment(service.hide(appointment))


@router.post("/{appointment_id}/rate", response_model=RatingResponse)
def rate_appointment(
    appointment_id: int,
    payload: RateAppointmentRequest,
    service: AppointmentService = Depends(_get_service),
    current_user: User = Depends(get_current_user),
):
    appointment = _own_appointment(service, appointment_id, current_user)
    return service.rate(appointment, payload.rating, payload.comment)


@router.delete("/{appointment_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_appointment(
    appointment_id: int,
    confirm: bool = Query(False),
    service: AppointmentService = Depends(_get_service),
    current_user: User = Depends(get_current_user),
):
    appointment = _own_appointment(service, appointment_id, current_user)
    service.delete(appointment, confirmed=confirm)
    return


# ---------- technician side ----------

@router.get("/technician/me", response_model=AppointmentListResponse)
def list_technician_appointments(
    status_filter: Optional[List[str]] = Query(None, alias="status"),
    service: AppointmentService = Depends(_get_service),
    technician: Technician = Depends(get_current_technician),
):
    items = [AppointmentResponse.from_appointment(a) for a in service.list_for_technician(technician.id, status_filter)]
    return AppointmentListResponse(total=len(items), items=items)


@router.post("/{appointment_id}/accept", response_model=AppointmentResponse)
def accept_appointment(
    appointment_id: int,
    service: AppointmentService = Depends(_get_service),
    technician: Technician = Depends(get_current_technician),
):
    appointment = _assigned_appointment(service, appointment_id, technician)
    return AppointmentResponse.from_appointment(service.accept(appointment))


@router.post("/{appointment_id}/reject", response_model=AppointmentResponse)
def reject_appointment(
    appointment_id: int,
    payload: RejectRequest,
    service: AppointmentService = Depends(_get_service),
    technician: Technician = Depends(get_current_technician),
):
    appointment = _assigned_appointment(service, appointment_id, technician)
    return AppointmentResponse.from_appointment(service.reject(appointment, payload.reason, payload.custom_reason))


@router.post("/{appointment_id}/start-repair", response_model=AppointmentResponse)
def start_repair(
    appointment_id: int,
    payload: StartRepairRequest,
    service: AppointmentService = Depends(_get_service),
    technician: Technician = Depends(get_current_technician),
):
    appointment = _assigned_appointment(service, appointment_id, technician)
    return AppointmentResponse.from_appointment(service.start_repair(appointment, payload.estimated_completion))


@router.post("/{appointment_id}/start-testing", response_model=AppointmentResponse)
def start_testing(
    appointment_id: int,
    service: AppointmentService = Depends(_get_service),
    technician: Technician = Depends(get_current_technician),
):
    appointment = _assigned_appointment(service, appointment_id, technician)
    return AppointmentResponse.from_appointment(service.start_testing(appointment))


@router.post("/{appointment_id}/complete", response_model=AppointmentResponse)
def complete_appointment(
    appointment_id: int,
    service: AppointmentService = Depends(_get_service),
    technician: Technician = Depends(get_current_technician),
):
    appointment = _assigned_appointment(service, appointment_id, technician)
    return AppointmentResponse.from_appointment(service.complete(appointment))
