# irepair/schemas/rating.py
from pydantic import BaseModel, Field, conint
from typing import Dict, Optional
from datetime import datetime


class RatingCreate(BaseModel):
    technician_id: int
    rating: conint(ge=1, le=5) = Field(..., description="Rating 1-5")
    comment: Optional[str] = None
    appointment_id: Optional[int] = None


class RatingResponse(BaseModel):
    id: int
    technician_id: int
    user_id: int
    appointment_id: Optional[int]
    rating: int
    comment: Optional[str]
    created_at: Optional[datetime]
    updated_at: Optional[datetime]

    class Config:
        from_attributes = True


class RatingStatsResponse(BaseModel):
    technician_id: int
    average_rating: float
    average_rating_display: str
    total_ratings: int
    rating_breakdown: Dict[int, int]
