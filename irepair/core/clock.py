import logging
from datetime import datetime, timezone
from typing import Callable, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from irepair.core.config import CIVIL_TIMEZONE

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def get_clock() -> Clock:
    """FastAPI dependency; tests override it with a fixed clock."""
    return utcnow


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands datetimes back naive; everything is stored as UTC
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_civil_time(instant: datetime, tz_name: Optional[str] = None) -> datetime:
    """
    Wall-clock representation of `instant` in the civil timezone.
    Never raises: if the conversion fails the original instant is returned
    and treated as if it were already civil time.
    """
    tz_name = tz_name or CIVIL_TIMEZONE
    try:
        return ensure_utc(instant).astimezone(ZoneInfo(tz_name))
    except (ZoneInfoNotFoundError, ValueError, TypeError, AttributeError, OverflowError) as e:
        logger.warning(f"Civil time conversion to {tz_name!r} failed, using original instant: {e}")
        return instant


def format_civil_datetime(instant: Optional[datetime], tz_name: Optional[str] = None) -> str:
    """e.g. 'Tuesday, October 20, 2026 at 10:30 AM'"""
    if instant is None:
        return "Unknown date"
    local = to_civil_time(instant, tz_name)
    hour = local.hour % 12 or 12
    return f"{local:%A, %B} {local.day}, {local.year} at {hour}:{local:%M} {local:%p}"
