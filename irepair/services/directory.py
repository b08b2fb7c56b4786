# irepair/services/directory.py
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session

from irepair.core.config import MAX_MATCH_DISTANCE_KM
from irepair.core.errors import LocationRequired, MalformedAvailabilityData, TechnicianNotFound
from irepair.db.models.appointment import Appointment
from irepair.db.models.technician import Technician
from irepair.db.models.user import User
from irepair.services.availability import WorkingHours, parse_working_hours
from irepair.services.geo import distance_km

logger = logging.getLogger(__name__)

WILDCARD_CATEGORY = "All"
RESTRICTION_FLAGS = ("is_suspended", "is_banned", "is_blocked", "is_deleted")


@dataclass
class Schedule:
    """Effective schedule of a technician after shop overrides."""
    working_days: List[str] = field(default_factory=list)
    working_hours: Any = None            # raw shape, kept for display
    hours: Optional[WorkingHours] = None  # canonical form, None when missing/unparseable
    shop_name: str = ""
    shop_hours: str = ""


@dataclass
class TechnicianMatch:
    technician: Any
    schedule: Schedule
    distance_km: Optional[float] = None
    completed_repairs: int = 0


def resolve_schedule(technician) -> Schedule:
    """
    Shop technicians take hours, days and name from their shop row when one
    exists; freelancers (and shops without a shop row) use their own fields.
    """
    shop = getattr(technician, "shop", None)
    shop_name = (shop.name or "") if shop is not None else ""
    shop_hours = (shop.opening_hours or "") if shop is not None else ""

    if technician.type == "shop" and shop is not None:
        working_hours = shop.working_hours or shop.opening_hours
        working_days = shop.working_days or []
    else:
        working_hours = technician.working_hours or technician.working_time
        working_days = technician.working_days or []

    try:
        hours = parse_working_hours(working_hours)
    except MalformedAvailabilityData:
        hours = None

    return Schedule(
        working_days=list(working_days) if isinstance(working_days, (list, tuple)) else [],
        working_hours=working_hours or None,
        hours=hours,
        shop_name=shop_name,
        shop_hours=shop_hours,
    )


# --- matching policies ---

def is_approved(technician) -> bool:
    return technician.status == "approved"


def handles_category(technician, category: Optional[str]) -> bool:
    # empty category list is a wildcard: incomplete profiles still get matched
    categories = technician.categories if isinstance(technician.categories, (list, tuple)) else []
    if not categories:
        return True
    return WILDCARD_CATEGORY in categories or category in categories


def category_pass(technicians: Sequence, category: Optional[str]) -> list:
    return [t for t in technicians if handles_category(t, category)]


def degraded_match(approved: Sequence, matched: Sequence) -> list:
    """No technician handles the category: offer every approved technician instead of nobody."""
    if matched:
        return list(matched)
    logger.info("No category match found, falling back to all approved technicians")
    return list(approved)


def is_restricted(technician) -> bool:
    return any(bool(getattr(technician, flag, False)) for flag in RESTRICTION_FLAGS)


def within_range(distance: Optional[float], max_distance_km: float) -> bool:
    # unknown distance stays eligible
    return distance is None or distance <= max_distance_km


def technician_distance(technician, user_location: Optional[Tuple[float, float]]) -> Optional[float]:
    if user_location is None or technician.latitude is None or technician.longitude is None:
        return None
    return distance_km(user_location[0], user_location[1], technician.latitude, technician.longitude)


def sort_by_distance(matches: List[TechnicianMatch]) -> List[TechnicianMatch]:
    # sorted() is stable; undefined distances go last
    return sorted(matches, key=lambda m: (m.distance_km is None, m.distance_km or 0.0))


def rank_by_rating(matches: List[TechnicianMatch]) -> List[TechnicianMatch]:
    """Highest average rating first; more completed repairs wins a tie."""
    return sorted(
        matches,
        key=lambda m: (-(m.technician.average_rating or 0.0), -m.completed_repairs),
    )


def find_eligible(
    diagnosis_category: Optional[str],
    user_location: Optional[Tuple[float, float]],
    technicians: Sequence,
    max_distance_km: float = MAX_MATCH_DISTANCE_KM,
) -> List[TechnicianMatch]:
    approved = [t for t in technicians if is_approved(t)]
    candidates = degraded_match(approved, category_pass(approved, diagnosis_category))

    matches = [
        TechnicianMatch(
            technician=t,
            schedule=resolve_schedule(t),
            distance_km=technician_distance(t, user_location),
        )
        for t in candidates
    ]
    matches = [m for m in matches if not is_restricted(m.technician)]
    matches = [m for m in matches if within_range(m.distance_km, max_distance_km)]

    logger.info(
        f"Found {len(matches)} available technicians within {max_distance_km:g}km "
        f"({len(approved)} approved, {len(candidates)} candidates)"
    )
    return sort_by_distance(matches)


class TechnicianDirectory:
    """Looks up bookable technicians near a user."""

    def __init__(self, db: Session):
        self.db = db

    def get(self, technician_id: int) -> Technician:
        technician = self.db.query(Technician).filter(Technician.id == technician_id).first()
        if not technician:
            raise TechnicianNotFound()
        return technician

    def search(self, user: User, diagnosis_category: Optional[str]) -> List[TechnicianMatch]:
        # hard precondition: no location, no query
        if not user.has_location:
            logger.info(f"User {user.id} has no location set, refusing technician search")
            raise LocationRequired()

        approved = self.db.query(Technician).filter(Technician.status == "approved").all()
        return find_eligible(diagnosis_category, (user.latitude, user.longitude), approved)

    def completed_repair_counts(self) -> Dict[int, int]:
        rows = (
            self.db.query(Appointment.technician_id, func.count(Appointment.id))
            .filter(Appointment.status_global == "Completed")
            .group_by(Appointment.technician_id)
            .all()
        )
        return {technician_id: count for technician_id, count in rows}

    def top_rated(self, user: Optional[User] = None, limit: int = 3) -> List[TechnicianMatch]:
        """Best rated bookable technicians, with distance when the user has a location."""
        user_location = (user.latitude, user.longitude) if user is not None and user.has_location else None
        counts = self.completed_repair_counts()
        approved = self.db.query(Technician).filter(Technician.status == "approved").all()

        matches = [
            TechnicianMatch(
                technician=t,
                schedule=resolve_schedule(t),
                distance_km=technician_distance(t, user_location),
                completed_repairs=counts.get(t.id, 0),
            )
            for t in approved
            if not is_restricted(t)
        ]
        return rank_by_rating(matches)[:limit]
