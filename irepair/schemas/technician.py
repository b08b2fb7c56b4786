# irepair/schemas/technician.py
from pydantic import BaseModel
from typing import List, Optional
from datetime import datetime


class TechnicianMatchResponse(BaseModel):
    id: int
    username: str
    full_name: Optional[str] = None
    phone: Optional[str] = None
    type: str
    shop_name: Optional[str] = None
    address: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    categories: List[str] = []
    working_days: List[str] = []
    working_hours: str
    rating: float = 0.0
    rating_display: str = "0.0"
    total_ratings: int = 0
    years_in_service: Optional[int] = None
    distance_km: Optional[float] = None
    completed_repairs: int = 0
    previously_declined: bool = False


class TechnicianSearchResponse(BaseModel):
    category: Optional[str]
    total: int
    items: List[TechnicianMatchResponse]


class AvailabilityCheckResponse(BaseModel):
    technician_id: int
    at: datetime
    day_available: bool
    time_available: bool
    availability_summary: str
