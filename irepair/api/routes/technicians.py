# irepair/api/routes/technicians.py
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from datetime import datetime
from typing import List, Optional

from irepair.core.clock import ensure_utc
from irepair.core.security import get_current_user
from irepair.db.base import get_db
from irepair.db.models.user import User
from irepair.schemas.technician import (
    AvailabilityCheckResponse,
    TechnicianMatchResponse,
    TechnicianSearchResponse,
)
from irepair.services.appointments import AppointmentService
from irepair.services.availability import availability_summary, format_working_hours, is_day_available, is_time_available
from irepair.services.directory import TechnicianDirectory, TechnicianMatch, resolve_schedule, technician_distance
from irepair.services.ratings import format_rating

router = APIRouter(prefix="/technicians", tags=["technicians"])


def _to_response(match: TechnicianMatch, previously_declined: bool = False) -> TechnicianMatchResponse:
    t = match.technician
    return TechnicianMatchResponse(
        id=t.id,
        username=t.username,
        full_name=t.full_name,
        phone=t.phone,
        type=t.type,
        shop_name=match.schedule.shop_name or None,
        address=t.address,
        latitude=t.latitude,
        longitude=t.longitude,
        categories=t.categories or [],
        working_days=match.schedule.working_days,
        working_hours=format_working_hours(match.schedule.working_hours),
        rating=t.average_rating or 0.0,
        rating_display=format_rating(t.average_rating),
        total_ratings=t.total_ratings or 0,
        years_in_service=t.years_in_service,
        distance_km=round(match.distance_km, 2) if match.distance_km is not None else None,
        completed_repairs=match.completed_repairs,
        previously_declined=previously_declined,
    )


# Technicians near the current user who handle the diagnosed category, nearest first
@router.get("/search", response_model=TechnicianSearchResponse)
def search_technicians(
    category: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    matches = TechnicianDirectory(db).search(current_user, category)
    appointments = AppointmentService(db)
    items = [
        _to_response(m, appointments.previously_declined(current_user.id, m.technician.id))
        for m in matches
    ]
    return TechnicianSearchResponse(category=category, total=len(items), items=items)


# Home screen highlight: best rated technicians, nearest distance shown when known
@router.get("/top-rated", response_model=List[TechnicianMatchResponse])
def top_rated_technicians(
    limit: int = Query(3, ge=1, le=20),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return [_to_response(m) for m in TechnicianDirectory(db).top_rated(current_user, limit)]


@router.get("/{technician_id}", response_model=TechnicianMatchResponse)
def get_technician(
    technician_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    technician = TechnicianDirectory(db).get(technician_id)
    user_location = (current_user.latitude, current_user.longitude) if current_user.has_location else None
    match = TechnicianMatch(
        technician=technician,
        schedule=resolve_schedule(technician),
        distance_km=technician_distance(technician, user_location),
    )
    declined = AppointmentService(db).previously_declined(current_user.id, technician.id)
    return _to_response(match, declined)


# Booking form pre-check: is the technician working at this instant?
@router.get("/{technician_id}/availability", response_model=AvailabilityCheckResponse)
def check_availability(
    technician_id: int,
    at: datetime = Query(...),
    db: Session = Depends(get_db),
):
    technician = TechnicianDirectory(db).get(technician_id)
    schedule = resolve_schedule(technician)
    at = ensure_utc(at)
    return AvailabilityCheckResponse(
        technician_id=technician.id,
        at=at,
        day_available=is_day_available(at, schedule.working_days),
        time_available=is_time_available(at, schedule.hours),
        availability_summary=availability_summary(technician.type, schedule.working_days, schedule.working_hours),
    )
