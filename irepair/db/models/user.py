# irepair/db/models/user.py
from sqlalchemy import Column, DateTime, Float, Integer, String, func
from sqlalchemy.orm import relationship
from irepair.db.base import Base


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True, nullable=False)
    username = Column(String, nullable=False)
    full_name = Column(String, nullable=True)
    phone = Column(String, nullable=True)

    # set from the location picker; booking search refuses to run without it
    address = Column(String, nullable=True)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    appointments = relationship("Appointment", back_populates="user", lazy="selectin")

    @property
    def has_location(self) -> bool:
        return self.latitude is not None and self.longitude is not None
