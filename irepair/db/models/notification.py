# irepair/db/models/notification.py
from sqlalchemy import Boolean, Column, DateTime, Integer, String, func
from irepair.db.base import Base


class Notification(Base):
    """In-app notification; recipient is a user or a technician."""
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True)
    recipient_type = Column(String, nullable=False)  # user | technician
    recipient_id = Column(Integer, nullable=False, index=True)
    type = Column(String, nullable=False, default="appointment")
    message = Column(String, nullable=False)
    read = Column(Boolean, default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
