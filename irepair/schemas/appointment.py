# irepair/schemas/appointment.py
from pydantic import BaseModel, ConfigDict, Field, conint
from datetime import date, datetime
from typing import Any, Dict, List, Literal, Optional

from irepair.core.clock import ensure_utc


class DiagnosisSnapshot(BaseModel):
    category: str
    brand: Optional[str] = None
    model: Optional[str] = None
    issue: Optional[str] = None
    diagnosis: Optional[str] = None
    estimated_cost: Optional[float] = None
    is_custom_issue: bool = False


# --- CREATE ---
class AppointmentCreate(BaseModel):
    technician_id: int
    diagnosis: DiagnosisSnapshot
    scheduled_date: datetime
    service_type: Literal["walk-in", "home-service"] = "walk-in"


# --- ACTIONS ---
class CancelRequest(BaseModel):
    reason: str = Field(..., description="Device is already fixed | Schedule conflict | Found a better technician | Changed my mind | Others")
    custom_reason: Optional[str] = None


class RejectRequest(BaseModel):
    reason: str = Field(..., description="Not available at that time | Outside my service area | Personal emergency | Schedule conflict | Others")
    custom_reason: Optional[str] = None


class StartRepairRequest(BaseModel):
    estimated_completion: Optional[date] = None


class RateAppointmentRequest(BaseModel):
    rating: conint(ge=1, le=5) = Field(..., description="Rating 1-5")
    comment: Optional[str] = None


# --- RESPONSE ---
class AppointmentStatus(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    global_: str = Field(..., alias="global")
    user_view: Optional[str] = None
    technician_view: Optional[str] = None
    rated: bool = False


class AppointmentResponse(BaseModel):
    id: int
    user_id: int
    technician_id: int
    technician_type: Optional[str]
    service_type: str
    service_location: Optional[str]
    scheduled_date: datetime
    cancel_deadline: Optional[datetime]
    status: AppointmentStatus
    diagnosis: Optional[Dict[str, Any]]
    technician_details: Optional[Dict[str, Any]]
    cancellation_reason: Optional[str] = None
    rejection_reason: Optional[str] = None
    user_rating: Optional[int] = None
    estimated_completion: Optional[date] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

    @classmethod
    def from_appointment(cls, appointment) -> "AppointmentResponse":
        return cls(
            id=appointment.id,
            user_id=appointment.user_id,
            technician_id=appointment.technician_id,
            technician_type=appointment.technician_type,
            service_type=appointment.service_type,
            service_location=appointment.service_location,
            scheduled_date=ensure_utc(appointment.scheduled_date),
            cancel_deadline=ensure_utc(appointment.cancel_deadline),
            status=AppointmentStatus(
                global_=appointment.status_global,
                user_view=appointment.status_user_view,
                technician_view=appointment.status_technician_view,
                rated=bool(appointment.rated),
            ),
            diagnosis=appointment.diagnosis_data,
            technician_details=appointment.technician_details,
            cancellation_reason=appointment.cancellation_reason,
            rejection_reason=appointment.rejection_reason,
            user_rating=appointment.user_rating,
            estimated_completion=appointment.estimated_completion,
            created_at=ensure_utc(appointment.created_at),
            updated_at=ensure_utc(appointment.updated_at),
        )


class BookingDraftResponse(BaseModel):
    diagnosis: Optional[Dict[str, Any]]
    scheduled_date: datetime
    service_type: str
    declined_technician_id: Optional[int] = None


class AppointmentListResponse(BaseModel):
    total: int
    items: List[AppointmentResponse]
