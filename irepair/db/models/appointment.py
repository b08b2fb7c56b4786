# irepair/db/models/appointment.py
from sqlalchemy import JSON, Boolean, Column, Date, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship
from irepair.db.base import Base


class Appointment(Base):
    __tablename__ = "appointments"

    id = Column(Integer, primary_key=True, index=True)

    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    technician_id = Column(Integer, ForeignKey("technicians.id", ondelete="CASCADE"), nullable=False, index=True)
    technician_type = Column(String, nullable=True)

    service_type = Column(String, nullable=False, default="walk-in")  # walk-in | home-service
    service_location = Column(String, nullable=True)
    scheduled_date = Column(DateTime(timezone=True), nullable=False)
    cancel_deadline = Column(DateTime(timezone=True), nullable=True)

    # tri-part status: global drives the lifecycle, the views are display text per side
    status_global = Column(String, nullable=False, default="Scheduled")
    status_user_view = Column(String, nullable=True)
    status_technician_view = Column(String, nullable=True)

    # copied at booking time, never a live reference
    diagnosis_data = Column(JSON, nullable=True)
    technician_details = Column(JSON, nullable=True)
    user_details = Column(JSON, nullable=True)

    cancellation_reason = Column(String, nullable=True)
    cancelled_by = Column(String, nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)

    rejection_reason = Column(String, nullable=True)
    rejected_by = Column(String, nullable=True)
    rejected_at = Column(DateTime(timezone=True), nullable=True)

    accepted_at = Column(DateTime(timezone=True), nullable=True)
    repair_started_at = Column(DateTime(timezone=True), nullable=True)
    estimated_completion = Column(Date, nullable=True)
    testing_started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    rated = Column(Boolean, nullable=False, default=False)
    user_rating = Column(Integer, nullable=True)  # 1..5
    rated_at = Column(DateTime(timezone=True), nullable=True)

    hidden_from_user = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=True)

    user = relationship("User", back_populates="appointments")
    technician = relationship("Technician", foreign_keys=[technician_id], lazy="selectin")
