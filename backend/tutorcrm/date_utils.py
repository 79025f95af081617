# backend/tutorcrm/date_utils.py
from datetime import datetime, date, time, timedelta
from typing import Iterator, Optional, Union

from .errors import ValidationError

DATE_FORMAT = "%Y-%m-%d"
TIME_FORMATS = ("%H:%M", "%H:%M:%S")


def parse_iso_date(s: Optional[Union[str, date]], field: str = "date") -> Optional[date]:
    """Parse a yyyy-mm-dd string into a date, or return None for falsy input."""
    if s is None or s == "":
        return None
    if isinstance(s, datetime):
        return s.date()
    if isinstance(s, date):
        return s
    if not isinstance(s, str):
        raise ValidationError(f"Invalid {field}, expected YYYY-MM-DD: {s!r}")
    try:
        return datetime.strptime(s, DATE_FORMAT).date()
    except ValueError:
        pass
    # allow other ISO-like input (e.g. a full timestamp from a date picker)
    try:
        return datetime.fromisoformat(s.replace("Z", "+00:00")).date()
    except ValueError:
        raise ValidationError(f"Invalid {field}, expected YYYY-MM-DD: {s!r}")


def parse_time_of_day(s: Optional[Union[str, time]], field: str = "time") -> Optional[time]:
    """Parse "HH:MM" / "HH:MM:SS", or take the time part of an ISO datetime."""
    if s is None or s == "":
        return None
    if isinstance(s, time):
        return s
    if not isinstance(s, str):
        raise ValidationError(f"Invalid {field}, expected HH:MM: {s!r}")
    for fmt in TIME_FORMATS:
        try:
            return datetime.strptime(s, fmt).time()
        except ValueError:
            continue
    try:
        return datetime.fromisoformat(s.replace("Z", "+00:00")).time().replace(tzinfo=None)
    except ValueError:
        raise ValidationError(f"Invalid {field}, expected HH:MM: {s!r}")


def ensure_end_after_start(start: Optional[date], end: Optional[date], label: str = "end_date") -> None:
    """Raise ValidationError if end exists and is before start."""
    if start and end and end < start:
        raise ValidationError(f"{label} must be the same as or after start_date.")


def daterange(start: date, end: date) -> Iterator[date]:
    d = start
    while d <= end:
        yield d
        d += timedelta(days=1)


def day_of_week(d: date) -> int:
    # 0=Sunday, 1=Monday, ..., 6=Saturday
    return (d.weekday() + 1) % 7


def minutes_between(start: time, end: time) -> int:
    return (end.hour * 60 + end.minute) - (start.hour * 60 + start.minute)
