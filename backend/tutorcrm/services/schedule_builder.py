# backend/tutorcrm/services/schedule_builder.py
"""
Turns a subscription creation request into a validated, immutable plan.

Nothing here touches the database: the whole request is checked up front so
a broken day in the last week rejects the request before the subscription
row exists.
"""
import logging
import math
from dataclasses import dataclass, field
from datetime import date, time
from typing import Optional, Sequence, Tuple, Union

from .. import schemas
from ..date_utils import parse_iso_date, parse_time_of_day, ensure_end_after_start, minutes_between
from ..errors import ValidationError
from ..models import LOCATIONS, PAYMENT_STATUSES

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DayPlan:
    weekday: int
    position: int
    start_time: time
    end_time: time
    cost: float
    location: str
    notes: Optional[str] = None

    @property
    def duration_minutes(self) -> int:
        return minutes_between(self.start_time, self.end_time)


@dataclass(frozen=True)
class WeekPlan:
    week_number: int
    start_date: date
    end_date: date
    days: Tuple[DayPlan, ...]

    @property
    def cost(self) -> float:
        return sum(d.cost for d in self.days)


@dataclass(frozen=True)
class SubscriptionPlan:
    name: str
    student_id: int
    staff_id: int
    start_date: date
    end_date: date
    payment_status: str
    weeks: Tuple[WeekPlan, ...]
    description: Optional[str] = None
    paid_days: Tuple[Union[int, str], ...] = field(default_factory=tuple)

    @property
    def total_cost(self) -> float:
        return total_cost(self.weeks)


def total_cost(weeks: Sequence[WeekPlan]) -> float:
    return sum(w.cost for w in weeks)


def parse_cost(raw: Optional[Union[float, int, str]]) -> float:
    """Numbers and numeric strings pass through; anything unparsable counts as 0."""
    if raw is None or isinstance(raw, bool):
        return 0.0
    try:
        value = float(raw)
    except (TypeError, ValueError):
        logger.info("Unparsable day cost %r, using 0", raw)
        return 0.0
    if not math.isfinite(value):
        logger.info("Non-finite day cost %r, using 0", raw)
        return 0.0
    return value


def _build_day(raw: schemas.DayRuleIn, week_no: int, position: int) -> DayPlan:
    where = f"week {week_no}, day {position + 1}"

    if raw.weekday is None:
        raise ValidationError(f"Day of week is required ({where})")
    if not 0 <= raw.weekday <= 6:
        raise ValidationError(f"Day of week must be between 0 (Sunday) and 6 (Saturday) ({where})")

    if not raw.start_time or not raw.end_time:
        raise ValidationError(f"Start and end time are required ({where})")
    start_time = parse_time_of_day(raw.start_time, f"start time ({where})")
    end_time = parse_time_of_day(raw.end_time, f"end time ({where})")
    if end_time <= start_time:
        raise ValidationError(f"End time must be after start time ({where})")

    cost = parse_cost(raw.cost)
    if cost < 0:
        raise ValidationError(f"Cost cannot be negative ({where})")

    location = (raw.location or "office").strip().lower()
    if location not in LOCATIONS:
        raise ValidationError(f"Unknown location {raw.location!r} ({where})")

    return DayPlan(
        weekday=raw.weekday,
        position=position,
        start_time=start_time,
        end_time=end_time,
        cost=cost,
        location=location,
        notes=raw.notes,
    )


def _build_week(raw: schemas.WeekBlockIn, index: int, window: Tuple[date, date]) -> WeekPlan:
    week_no = index + 1
    if raw.week_number is not None and raw.week_number != week_no:
        # numbering follows the order of the list, not what the client typed
        logger.info("Week number %s sent at position %s, storing as week %s",
                    raw.week_number, index, week_no)

    if not raw.start_date or not raw.end_date:
        raise ValidationError(f"Start and end date are required for week {week_no}")
    start = parse_iso_date(raw.start_date, f"start date of week {week_no}")
    end = parse_iso_date(raw.end_date, f"end date of week {week_no}")
    ensure_end_after_start(start, end, f"end date of week {week_no}")

    sub_start, sub_end = window
    if start < sub_start or end > sub_end:
        raise ValidationError(f"Week {week_no} must fall within the subscription dates")

    if not raw.days:
        raise ValidationError(f"Week {week_no} must have at least one day")

    days = tuple(_build_day(d, week_no, pos) for pos, d in enumerate(raw.days))
    return WeekPlan(week_number=week_no, start_date=start, end_date=end, days=days)


def build_subscription_plan(payload: schemas.SubscriptionCreate) -> SubscriptionPlan:
    """Validate the whole request; raise ValidationError on the first broken rule."""
    name = (payload.name or "").strip()
    if not name or not payload.student_id or not payload.staff_id \
            or not payload.start_date or not payload.end_date:
        raise ValidationError("Name, student, staff member, start date and end date are required")

    start = parse_iso_date(payload.start_date, "start_date")
    end = parse_iso_date(payload.end_date, "end_date")
    ensure_end_after_start(start, end)

    if not payload.weeks:
        raise ValidationError("At least one week of schedule is required")

    status = (payload.payment_status or "unpaid").strip().lower()
    if status not in PAYMENT_STATUSES:
        raise ValidationError(f"Unknown payment status {payload.payment_status!r}")

    weeks = tuple(_build_week(w, i, (start, end)) for i, w in enumerate(payload.weeks))

    return SubscriptionPlan(
        name=name,
        student_id=payload.student_id,
        staff_id=payload.staff_id,
        start_date=start,
        end_date=end,
        payment_status=status,
        weeks=weeks,
        description=payload.description,
        paid_days=tuple(payload.paid_days or ()),
    )
