# backend/tutorcrm/services/allocation.py
"""
Paid-day allocation for subscriptions.

During creation the client has no day-rule ids yet, so it refers to the days
it wants marked as paid by position:

  * "2-1"  -> third week, second day of that week (both zero-based)
  * 3      -> a bare number always means week 1; the *position of the
              identifier in the list* is the day index, its value is ignored

Both forms are resolved against the canonical ordering of the rows that were
just written (week number, then the day's position inside the week).
"""
import logging
import re
from collections import OrderedDict
from typing import Dict, List, Optional, Sequence, Tuple, Union

from sqlalchemy.orm import Session

from .. import models

logger = logging.getLogger(__name__)

Identifier = Union[int, str]

_COMPOSITE = re.compile(r"^\s*(\d+)\s*-\s*(\d+)\s*$")
_BARE = re.compile(r"^\s*(\d+)\s*$")


# ---------------------------------------------------------
# Canonical ordering
# ---------------------------------------------------------
def canonical_day_order(db: Session, subscription_id: int) -> List[models.DayRule]:
    """All day rules of a subscription: week number, then position in the week."""
    return (
        db.query(models.DayRule)
        .join(models.WeekBlock, models.DayRule.week_block_id == models.WeekBlock.id)
        .filter(models.WeekBlock.subscription_id == subscription_id)
        .order_by(models.WeekBlock.week_number, models.DayRule.position, models.DayRule.id)
        .all()
    )


def group_by_week(days: Sequence[models.DayRule]) -> Dict[int, List[models.DayRule]]:
    grouped: Dict[int, List[models.DayRule]] = OrderedDict()
    for day in days:
        grouped.setdefault(day.week_block.week_number, []).append(day)
    return grouped


# ---------------------------------------------------------
# Identifier parsing
# ---------------------------------------------------------
def parse_identifier(raw: Identifier, list_position: int) -> Optional[Tuple[int, int]]:
    """Return (week_number, day_index) or None if the token is not understood."""
    if isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        return 1, list_position
    if not isinstance(raw, str):
        return None

    m = _COMPOSITE.match(raw)
    if m:
        return int(m.group(1)) + 1, int(m.group(2))
    if _BARE.match(raw):
        return 1, list_position
    return None


# ---------------------------------------------------------
# Resolver
# ---------------------------------------------------------
def resolve_paid_days(
    days_by_week: Dict[int, List[models.DayRule]],
    identifiers: Sequence[Identifier],
) -> List[models.DayRule]:
    """
    Map identifiers to day rules. Misses are logged and skipped; a day rule
    hit twice is kept once, at its first position.
    """
    resolved: List[models.DayRule] = []
    seen = set()

    for position, raw in enumerate(identifiers):
        target = parse_identifier(raw, position)
        if target is None:
            logger.warning("Paid day %r is not a valid identifier, skipped", raw)
            continue

        week_number, day_index = target
        week_days = days_by_week.get(week_number, [])
        if day_index >= len(week_days):
            logger.warning("Paid day %r (week %s, day %s) matches no day, skipped",
                           raw, week_number, day_index)
            continue

        day = week_days[day_index]
        if day.id in seen:
            logger.info("Paid day %r resolves to day %s again, skipped", raw, day.id)
            continue
        seen.add(day.id)
        resolved.append(day)

    return resolved


def allocate_paid_days(
    db: Session,
    subscription: models.Subscription,
    identifiers: Sequence[Identifier],
) -> List[models.PaidDayAllocation]:
    """Create one allocation per resolved day. Caller owns the transaction."""
    ordered = canonical_day_order(db, subscription.id)
    days = resolve_paid_days(group_by_week(ordered), identifiers)

    allocations = []
    for day in days:
        allocation = models.PaidDayAllocation(
            subscription_id=subscription.id,
            day_rule_id=day.id,
            is_paid=True,
            payment_amount=day.cost,
        )
        db.add(allocation)
        allocations.append(allocation)

    logger.info("Subscription %s: %d of %d paid-day identifiers allocated",
                subscription.id, len(allocations), len(identifiers))
    return allocations
