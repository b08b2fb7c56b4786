# irepair/core/security.py
# Sign-in happens upstream; requests arrive with the caller's id in a header.
from typing import Optional

from fastapi import Depends, Header, HTTPException
from sqlalchemy.orm import Session

from irepair.db.base import get_db
from irepair.db.models.technician import Technician
from irepair.db.models.user import User


def get_current_user(
    x_user_id: Optional[int] = Header(default=None),
    db: Session = Depends(get_db),
) -> User:
    if x_user_id is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    user = db.query(User).filter(User.id == x_user_id).first()
    if not user:
        raise HTTPException(status_code=401, detail="User not authenticated")
    return user


def get_current_technician(
    x_technician_id: Optional[int] = Header(default=None),
    db: Session = Depends(get_db),
) -> Technician:
    if x_technician_id is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    technician = db.query(Technician).filter(Technician.id == x_technician_id).first()
    if not technician:
        raise HTTPException(status_code=401, detail="Technician not authenticated")
    return technician
