# irepair/db/models/technician.py
from sqlalchemy import JSON, Boolean, Column, DateTime, Float, Integer, String, func
from sqlalchemy.orm import relationship
from irepair.db.base import Base


class Technician(Base):
    """
    A freelance technician or a shop owner.
    categories: list of diagnosis categories, ["All"], or empty (handles anything)
    working_days: ["Mon", "Tue", ...] or full weekday names
    working_hours: {"startTime": "09:00", "endTime": "17:00"} or "9:00 AM - 5:00 PM"
    For type == "shop" the linked Shop row is authoritative for hours/days/name.
    """
    __tablename__ = "technicians"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String, nullable=False)
    full_name = Column(String, nullable=True)
    phone = Column(String, nullable=True)
    email = Column(String, nullable=True)

    address = Column(String, nullable=True)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)

    categories = Column(JSON, nullable=True, default=list)
    type = Column(String, nullable=False, default="freelance")  # freelance | shop
    working_days = Column(JSON, nullable=True)
    working_hours = Column(JSON, nullable=True)
    working_time = Column(String, nullable=True)  # legacy free-text hours
    years_in_service = Column(Integer, nullable=True)

    status = Column(String, nullable=False, default="pending")  # pending | approved | rejected
    is_suspended = Column(Boolean, default=False)
    is_banned = Column(Boolean, default=False)
    is_blocked = Column(Boolean, default=False)
    is_deleted = Column(Boolean, default=False)

    # derived from the ratings table, maintained by RatingService
    average_rating = Column(Float, nullable=False, default=0.0)
    total_ratings = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    shop = relationship("Shop", back_populates="technician", uselist=False, lazy="selectin")
    ratings = relationship("Rating", back_populates="technician", lazy="selectin")
