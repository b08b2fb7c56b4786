# irepair/api/routes/ratings.py
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from typing import List

from irepair.core.clock import Clock, get_clock
from irepair.core.security import get_current_user
from irepair.db.base import get_db
from irepair.db.models.user import User
from irepair.schemas.rating import RatingCreate, RatingResponse, RatingStatsResponse
from irepair.services.appointments import AppointmentService
from irepair.services.directory import TechnicianDirectory
from irepair.services.ratings import RatingService, format_rating

router = APIRouter(prefix="/ratings", tags=["ratings"])


# Submit or replace the current user's rating of a technician
@router.post("/", response_model=RatingResponse, status_code=status.HTTP_201_CREATED)
def submit_rating(
    rating_in: RatingCreate,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    current_user: User = Depends(get_current_user),
):
    if rating_in.appointment_id is not None:
        appointment = AppointmentService(db, clock=clock).get(rating_in.appointment_id)
        if appointment.user_id != current_user.id:
            raise HTTPException(status_code=403, detail="Appointment does not belong to you")
        if appointment.technician_id != rating_in.technician_id:
            raise HTTPException(status_code=403, detail="Appointment is not with this technician")

    return RatingService(db, clock=clock).submit(
        rating_in.technician_id,
        current_user.id,
        rating_in.rating,
        rating_in.comment,
        rating_in.appointment_id,
    )


@router.get("/technician/{technician_id}", response_model=List[RatingResponse])
def list_technician_ratings(technician_id: int, db: Session = Depends(get_db)):
    TechnicianDirectory(db).get(technician_id)
    return RatingService(db).list_for_technician(technician_id)


@router.get("/technician/{technician_id}/stats", response_model=RatingStatsResponse)
def technician_rating_stats(technician_id: int, db: Session = Depends(get_db)):
    TechnicianDirectory(db).get(technician_id)
    stats = RatingService(db).stats(technician_id)
    return RatingStatsResponse(
        technician_id=technician_id,
        average_rating_display=format_rating(stats["average_rating"]),
        **stats,
    )
