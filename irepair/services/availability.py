# irepair/services/availability.py
"""
Working-day / working-hour checks against a technician's declared schedule.

Schedules come in several historical shapes:
  - working days as abbreviations ("Mon") or full names ("Monday")
  - working hours as {"startTime": "09:00", "endTime": "17:00"}
  - working hours as free text: "9:00 AM - 5:00 PM", "09:00 - 17:00", "8 AM - 12 PM"

Hours are parsed once into WorkingHours (minutes since midnight) and every
comparison runs on that. Both checks are total: anything that cannot be
interpreted means "not available", never an exception.
"""
import logging
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable, List, Optional

from irepair.core.clock import to_civil_time
from irepair.core.errors import MalformedAvailabilityData

logger = logging.getLogger(__name__)

DAY_NAMES = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]
DAY_ABBREVIATIONS = {name[:3]: name for name in DAY_NAMES}

_CLOCK_RE = re.compile(r"^\s*(\d{1,2})(?::(\d{2}))?\s*(AM|PM)?\s*$", re.IGNORECASE)
_RANGE_RE = re.compile(
    r"(\d{1,2})(?::(\d{2}))?\s*(AM|PM)?\s*[-–]\s*(\d{1,2})(?::(\d{2}))?\s*(AM|PM)?",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class WorkingHours:
    start: int  # minutes since midnight, inclusive
    end: int    # minutes since midnight, inclusive

    def contains(self, minute_of_day: int) -> bool:
        return self.start <= minute_of_day <= self.end


def _to_minutes(hour_text: str, minute_text: Optional[str], meridiem: Optional[str]) -> int:
    hour = int(hour_text)
    minute = int(minute_text) if minute_text else 0
    if minute > 59:
        raise MalformedAvailabilityData(f"minute out of range: {minute}")
    if meridiem:
        if not 1 <= hour <= 12:
            raise MalformedAvailabilityData(f"12-hour clock out of range: {hour}")
        meridiem = meridiem.upper()
        if meridiem == "PM" and hour != 12:
            hour += 12
        elif meridiem == "AM" and hour == 12:
            hour = 0
    elif hour > 23:
        raise MalformedAvailabilityData(f"hour out of range: {hour}")
    return hour * 60 + minute


def parse_clock(value: Any) -> int:
    """'09:00', '17:30', '9:00 AM' -> minutes since midnight."""
    if not isinstance(value, str):
        raise MalformedAvailabilityData(f"not a time string: {value!r}")
    match = _CLOCK_RE.match(value)
    if not match:
        raise MalformedAvailabilityData(f"unparseable time: {value!r}")
    return _to_minutes(*match.groups())


def parse_working_hours(raw: Any) -> WorkingHours:
    """
    Canonicalize any supported working-hours shape.
    Raises MalformedAvailabilityData for missing or unparseable data.
    """
    if isinstance(raw, WorkingHours):
        return raw
    if not raw:
        raise MalformedAvailabilityData("no working hours set")

    if isinstance(raw, dict):
        start, end = raw.get("startTime"), raw.get("endTime")
        if not start or not end:
            raise MalformedAvailabilityData(f"incomplete working hours: {raw!r}")
        return WorkingHours(parse_clock(start), parse_clock(end))

    if isinstance(raw, str):
        match = _RANGE_RE.search(raw)
        if not match:
            raise MalformedAvailabilityData(f"unparseable working hours: {raw!r}")
        h1, m1, ap1, h2, m2, ap2 = match.groups()
        return WorkingHours(_to_minutes(h1, m1, ap1), _to_minutes(h2, m2, ap2))

    raise MalformedAvailabilityData(f"unsupported working hours shape: {type(raw).__name__}")


def normalize_day(token: Any) -> Optional[str]:
    if not isinstance(token, str):
        return None
    token = token.strip()
    if not token:
        return None
    title = token.title()
    if title in DAY_NAMES:
        return title
    return DAY_ABBREVIATIONS.get(title)


def normalize_days(working_days: Any) -> List[str]:
    if not working_days or isinstance(working_days, (str, bytes, dict)):
        return []
    try:
        tokens = list(working_days)
    except TypeError:
        return []
    return [day for day in (normalize_day(t) for t in tokens) if day]


def is_day_available(instant: datetime, working_days: Optional[Iterable[str]], tz_name: Optional[str] = None) -> bool:
    """True when the civil weekday of `instant` is one of the working days. No days set = closed."""
    days = normalize_days(working_days)
    if not days:
        logger.debug("No working days set, defaulting to not available")
        return False
    if not isinstance(instant, datetime):
        return False
    selected_day = DAY_NAMES[to_civil_time(instant, tz_name).weekday()]
    return selected_day in days


def is_time_available(instant: datetime, working_hours: Any, tz_name: Optional[str] = None) -> bool:
    """True when the civil time of `instant` falls inside the working hours, both ends inclusive."""
    try:
        hours = parse_working_hours(working_hours)
    except MalformedAvailabilityData as e:
        logger.debug(f"Working hours unusable, defaulting to not available: {e}")
        return False
    if not isinstance(instant, datetime):
        return False
    local = to_civil_time(instant, tz_name)
    return hours.contains(local.hour * 60 + local.minute)


def format_working_hours(raw: Any) -> str:
    if not raw:
        return "Not specified"
    if isinstance(raw, str):
        return raw
    if isinstance(raw, dict) and raw.get("startTime") and raw.get("endTime"):
        return f"{raw['startTime']} - {raw['endTime']}"
    return "Not specified"


def availability_summary(technician_type: str, working_days: Any, working_hours: Any) -> str:
    """Text shown to the user next to a 'day/time not available' answer."""
    days = working_days if isinstance(working_days, (list, tuple)) else []
    days_text = ", ".join(str(d) for d in days) if days else "Not specified"
    hours_text = format_working_hours(working_hours)
    if technician_type == "shop":
        return f"Opening Days: {days_text}\nShop Hours: {hours_text}"
    if technician_type == "freelance":
        return f"Working Days: {days_text}\nWorking Hours: {hours_text}"
    return "Availability not specified"
