# irepair/api/routes/users.py
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from irepair.core.security import get_current_user
from irepair.db.base import get_db
from irepair.db.models.user import User
from irepair.schemas.user import UserLocationUpdate, UserResponse

router = APIRouter(prefix="/users", tags=["users"])


@router.get("/me", response_model=UserResponse)
def get_me(current_user: User = Depends(get_current_user)):
    return current_user


# location picker: the technician search needs this set first
@router.put("/me/location", response_model=UserResponse)
def update_my_location(
    payload: UserLocationUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    current_user.latitude = payload.latitude
    current_user.longitude = payload.longitude
    if payload.address is not None:
        current_user.address = payload.address
    db.commit()
    db.refresh(current_user)
    return current_user
