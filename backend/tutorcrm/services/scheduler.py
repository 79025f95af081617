# backend/tutorcrm/services/scheduler.py
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Iterable, List

from ..date_utils import daterange, day_of_week


@dataclass(frozen=True)
class Occurrence:
    start_at: datetime
    end_at: datetime

    @property
    def date(self) -> date:
        return self.start_at.date()


# ---------------------------------------------------------
# Expand "these weekdays between these dates" into lessons
# ---------------------------------------------------------
def expand_occurrences(
    start_date: date,
    end_date: date,
    weekdays: Iterable[int],
    time_of_day: time,
    duration_minutes: int,
) -> List[Occurrence]:
    """
    One occurrence per calendar day in [start_date, end_date] whose weekday
    (0=Sunday..6=Saturday) is in `weekdays`, ordered by date.

    An empty weekday set gives an empty list; callers reject that as invalid input.
    """
    days = set(weekdays)
    if not days or end_date < start_date:
        return []

    length = timedelta(minutes=duration_minutes)
    results: List[Occurrence] = []
    for d in daterange(start_date, end_date):
        if day_of_week(d) in days:
            start_at = datetime.combine(d, time_of_day)
            results.append(Occurrence(start_at=start_at, end_at=start_at + length))

    return results


def preview(occurrences: List[Occurrence], limit: int) -> List[Occurrence]:
    # the persisted set is never truncated, only what we show
    return occurrences[:limit]
