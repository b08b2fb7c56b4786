# irepair/db/models/rating.py
from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, UniqueConstraint, func
from sqlalchemy.orm import relationship
from irepair.db.base import Base


class Rating(Base):
    """One rating per (technician, user); a second submission updates this row."""
    __tablename__ = "ratings"
    __table_args__ = (
        UniqueConstraint("technician_id", "user_id", name="uq_rating_technician_user"),
    )

    id = Column(Integer, primary_key=True, index=True)
    technician_id = Column(Integer, ForeignKey("technicians.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    appointment_id = Column(Integer, ForeignKey("appointments.id", ondelete="SET NULL"), nullable=True)

    rating = Column(Integer, nullable=False)   # 1..5
    comment = Column(String, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=True)

    technician = relationship("Technician", back_populates="ratings")
