# irepair/db/models/shop.py
from sqlalchemy import JSON, Column, ForeignKey, Integer, String
from sqlalchemy.orm import relationship
from irepair.db.base import Base


class Shop(Base):
    __tablename__ = "shops"

    id = Column(Integer, primary_key=True, index=True)
    technician_id = Column(Integer, ForeignKey("technicians.id", ondelete="CASCADE"), nullable=False, unique=True)

    name = Column(String, nullable=False)
    address = Column(String, nullable=True)

    working_hours = Column(JSON, nullable=True)   # same shapes as Technician.working_hours
    opening_hours = Column(String, nullable=True)  # legacy free text
    working_days = Column(JSON, nullable=True)

    technician = relationship("Technician", back_populates="shop")
