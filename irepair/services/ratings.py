# irepair/services/ratings.py
import logging
import math
from typing import Dict, List, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from irepair.core.clock import Clock, utcnow
from irepair.core.errors import InvalidRating, TechnicianNotFound
from irepair.db.models.rating import Rating
from irepair.db.models.technician import Technician

logger = logging.getLogger(__name__)


def round_rating(value: float) -> float:
    """One decimal, half rounds up (4.25 -> 4.3)."""
    return math.floor(value * 10 + 0.5) / 10


def format_rating(value: Optional[float]) -> str:
    if not value:
        return "0.0"
    return f"{round_rating(value):.1f}"


def is_valid_rating(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and 1 <= value <= 5


def calculate_new_average(current_average: float, current_total: int, new_rating: int) -> Tuple[float, int]:
    new_total = current_total + 1
    new_average = (current_average * current_total + new_rating) / new_total
    return round_rating(new_average), new_total


def calculate_updated_average(current_average: float, current_total: int, old_rating: int, new_rating: int) -> Tuple[float, int]:
    """Swap one existing rating for another; the count stays the same."""
    if current_total <= 0:
        # aggregate lost track of an existing rating; it is the only one we know of
        return round_rating(new_rating), 1
    total_sum = current_average * current_total - old_rating + new_rating
    return round_rating(total_sum / current_total), current_total


class RatingService:
    """
    Keeps technicians' average_rating/total_ratings in step with the ratings
    table. A (technician, user) pair has at most one rating; submitting again
    updates it instead of counting twice.
    """

    def __init__(self, db: Session, clock: Clock = utcnow):
        self.db = db
        self.clock = clock

    def submit(
        self,
        technician_id: int,
        user_id: int,
        rating: int,
        comment: Optional[str] = None,
        appointment_id: Optional[int] = None,
    ) -> Rating:
        if not is_valid_rating(rating):
            raise InvalidRating()
        comment = (comment or "").strip()

        try:
            record = self._apply(technician_id, user_id, rating, comment, appointment_id)
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            # only a row stored for the same (technician, user) from another session is recoverable
            if self._existing(technician_id, user_id) is None:
                raise
            logger.warning(f"Concurrent rating insert for technician {technician_id} by user {user_id}, retrying as update")
            record = self._apply(technician_id, user_id, rating, comment, appointment_id)
            self.db.commit()

        self.db.refresh(record)
        return record

    def _apply(self, technician_id: int, user_id: int, rating: int, comment: str, appointment_id: Optional[int]) -> Rating:
        technician = self.db.query(Technician).filter(Technician.id == technician_id).first()
        if not technician:
            raise TechnicianNotFound()

        current_average = technician.average_rating or 0.0
        current_total = technician.total_ratings or 0
        existing = self._existing(technician_id, user_id)

        if existing:
            old_rating = existing.rating
            logger.info(f"Updating rating for technician {technician_id} by user {user_id}: {old_rating} -> {rating}")
            existing.rating = rating
            existing.comment = comment
            if appointment_id is not None:
                existing.appointment_id = appointment_id
            existing.updated_at = self.clock()
            technician.average_rating, technician.total_ratings = calculate_updated_average(
                current_average, current_total, old_rating, rating
            )
            return existing

        logger.info(f"Adding new rating for technician {technician_id} by user {user_id}: {rating}")
        record = Rating(
            technician_id=technician_id,
            user_id=user_id,
            appointment_id=appointment_id,
            rating=rating,
            comment=comment,
            created_at=self.clock(),
        )
        self.db.add(record)
        technician.average_rating, technician.total_ratings = calculate_new_average(
            current_average, current_total, rating
        )
        return record

    def _existing(self, technician_id: int, user_id: int) -> Optional[Rating]:
        return (
            self.db.query(Rating)
            .filter(Rating.technician_id == technician_id, Rating.user_id == user_id)
            .first()
        )

    def list_for_technician(self, technician_id: int) -> List[Rating]:
        return (
            self.db.query(Rating)
            .filter(Rating.technician_id == technician_id)
            .order_by(Rating.created_at.desc(), Rating.id.desc())
            .all()
        )

    def stats(self, technician_id: int) -> Dict:
        """Recomputed from the ratings themselves, independent of the stored aggregate."""
        values = [r.rating for r in self.list_for_technician(technician_id)]
        breakdown = {star: 0 for star in range(1, 6)}
        for value in values:
            if value in breakdown:
                breakdown[value] += 1
        if not values:
            return {"average_rating": 0.0, "total_ratings": 0, "rating_breakdown": breakdown}
        return {
            "average_rating": round_rating(sum(values) / len(values)),
            "total_ratings": len(values),
            "rating_breakdown": breakdown,
        }
