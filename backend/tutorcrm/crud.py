# backend/tutorcrm/crud.py
import logging
from contextlib import contextmanager
from datetime import datetime, time
from typing import List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from . import models, schemas
from .config import settings
from .date_utils import parse_iso_date, parse_time_of_day, ensure_end_after_start
from .errors import ValidationError, ReferenceNotFoundError, TransactionFailure
from .services.allocation import allocate_paid_days, canonical_day_order
from .services.schedule_builder import build_subscription_plan
from .services.scheduler import Occurrence, expand_occurrences, preview

logger = logging.getLogger(__name__)


@contextmanager
def atomic(db: Session, action: str):
    """Commit on success; roll back everything on any error."""
    try:
        yield
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Rolled back %s", action)
        raise TransactionFailure(f"Could not {action}") from exc
    except Exception:
        db.rollback()
        logger.info("Rolled back %s", action)
        raise


# ---------- STUDENTS / STAFF ----------
def create_student(db: Session, payload: schemas.StudentCreate) -> models.Student:
    student = models.Student(**payload.model_dump())
    with atomic(db, "create student"):
        db.add(student)
    db.refresh(student)
    return student


def get_student(db: Session, student_id: int) -> Optional[models.Student]:
    return db.query(models.Student).filter(models.Student.id == student_id).first()


def get_all_students(db: Session) -> List[models.Student]:
    return db.query(models.Student).order_by(models.Student.name).all()


def delete_student(db: Session, student: models.Student) -> None:
    has_subscriptions = (
        db.query(models.Subscription.id)
        .filter(models.Subscription.student_id == student.id)
        .first()
    )
    if has_subscriptions:
        raise ValidationError("Student has subscriptions; delete them first")
    has_payments = db.query(models.Payment.id).filter(models.Payment.student_id == student.id).first()
    if has_payments:
        raise ValidationError("Student has payments and cannot be deleted")

    with atomic(db, "delete student"):
        db.query(models.Lesson).filter(
            models.Lesson.student_id == student.id
        ).delete(synchronize_session=False)
        db.delete(student)


def create_staff(db: Session, payload: schemas.StaffCreate) -> models.StaffMember:
    staff = models.StaffMember(**payload.model_dump())
    with atomic(db, "create staff member"):
        db.add(staff)
    db.refresh(staff)
    return staff


def get_staff(db: Session, staff_id: int) -> Optional[models.StaffMember]:
    return db.query(models.StaffMember).filter(models.StaffMember.id == staff_id).first()


def get_all_staff(db: Session) -> List[models.StaffMember]:
    return db.query(models.StaffMember).order_by(models.StaffMember.name).all()


def _require_student(db: Session, student_id: int) -> models.Student:
    student = get_student(db, student_id)
    if not student:
        raise ReferenceNotFoundError("Student not found")
    return student


def _require_staff(db: Session, staff_id: int) -> models.StaffMember:
    staff = get_staff(db, staff_id)
    if not staff:
        raise ReferenceNotFoundError("Staff member not found")
    return staff


# ---------- SUBSCRIPTIONS ----------
def create_subscription(db: Session, payload: schemas.SubscriptionCreate) -> models.Subscription:
    """
    Create a subscription with its whole week/day tree in one transaction.
    When it is created as partially paid, the client's positional paid-day
    identifiers are resolved against the rows written here and turned into
    allocations. Either everything is stored or nothing is.
    """
    plan = build_subscription_plan(payload)
    _require_student(db, plan.student_id)
    _require_staff(db, plan.staff_id)

    subscription = models.Subscription(
        name=plan.name,
        student_id=plan.student_id,
        staff_id=plan.staff_id,
        start_date=plan.start_date,
        end_date=plan.end_date,
        total_cost=plan.total_cost,
        payment_status=plan.payment_status,
        description=plan.description,
    )

    with atomic(db, "create subscription"):
        db.add(subscription)
        db.flush()  # ensure subscription.id is available

        for week in plan.weeks:
            block = models.WeekBlock(
                subscription_id=subscription.id,
                week_number=week.week_number,
                start_date=week.start_date,
                end_date=week.end_date,
            )
            db.add(block)
            db.flush()

            for day in week.days:
                db.add(models.DayRule(
                    week_block_id=block.id,
                    weekday=day.weekday,
                    position=day.position,
                    start_time=day.start_time,
                    end_time=day.end_time,
                    cost=day.cost,
                    location=day.location,
                    notes=day.notes,
                ))
        db.flush()

        if plan.payment_status == "partial" and plan.paid_days:
            allocate_paid_days(db, subscription, plan.paid_days)

    logger.info(
        "Created subscription %s for student %s: %d weeks, total %.2f, status %s",
        subscription.id, plan.student_id, len(plan.weeks), plan.total_cost, plan.payment_status,
    )
    return get_subscription(db, subscription.id)


def get_subscription(db: Session, subscription_id: int) -> Optional[models.Subscription]:
    return (
        db.query(models.Subscription)
        .options(
            selectinload(models.Subscription.week_blocks)
            .selectinload(models.WeekBlock.day_rules),
            selectinload(models.Subscription.paid_days),
        )
        .filter(models.Subscription.id == subscription_id)
        .populate_existing()
        .first()
    )


def list_subscriptions(db: Session, student_id: Optional[int] = None) -> List[models.Subscription]:
    q = db.query(models.Subscription).options(
        selectinload(models.Subscription.week_blocks)
        .selectinload(models.WeekBlock.day_rules),
        selectinload(models.Subscription.paid_days),
    )
    if student_id is not None:
        q = q.filter(models.Subscription.student_id == student_id)
    return q.order_by(models.Subscription.created_at.desc(), models.Subscription.id.desc()).all()


def update_subscription(
    db: Session, subscription: models.Subscription, payload: schemas.SubscriptionUpdate
) -> models.Subscription:
    # dates and the week/day tree are fixed once created
    changes = {
        k: v for k, v in payload.model_dump(exclude_unset=True).items()
        if v is not None or k == "description"
    }
    if "name" in changes and not (changes["name"] or "").strip():
        raise ValidationError("Name cannot be empty")

    with atomic(db, "update subscription"):
        for k, v in changes.items():
            setattr(subscription, k, v)
    return get_subscription(db, subscription.id)


def delete_subscription(db: Session, subscription: models.Subscription) -> None:
    """Children first: allocations, day rules, week blocks, then the subscription."""
    sub_id = subscription.id
    week_ids = [
        w_id for (w_id,) in db.query(models.WeekBlock.id)
        .filter(models.WeekBlock.subscription_id == sub_id)
    ]

    with atomic(db, "delete subscription"):
        db.query(models.PaidDayAllocation).filter(
            models.PaidDayAllocation.subscription_id == sub_id
        ).delete(synchronize_session=False)
        if week_ids:
            db.query(models.DayRule).filter(
                models.DayRule.week_block_id.in_(week_ids)
            ).delete(synchronize_session=False)
        db.query(models.WeekBlock).filter(
            models.WeekBlock.subscription_id == sub_id
        ).delete(synchronize_session=False)

        # generated lessons and payments outlive the subscription
        db.query(models.Lesson).filter(
            models.Lesson.subscription_id == sub_id
        ).update({models.Lesson.subscription_id: None}, synchronize_session=False)
        db.query(models.Payment).filter(
            models.Payment.subscription_id == sub_id
        ).update({models.Payment.subscription_id: None}, synchronize_session=False)

        db.query(models.Subscription).filter(
            models.Subscription.id == sub_id
        ).delete(synchronize_session=False)
    logger.info("Deleted subscription %s", sub_id)


# ---------- SUBSCRIPTION PAYMENTS ----------
def _check_payment(payload: schemas.PaymentCreate):
    if not payload.amount or not payload.date:
        raise ValidationError("Payment amount and date are required")
    if payload.amount <= 0:
        raise ValidationError("Amount must be greater than 0")
    return parse_iso_date(payload.date, "payment date")


def list_subscription_payments(db: Session, subscription: models.Subscription) -> List[models.Payment]:
    return (
        db.query(models.Payment)
        .filter(models.Payment.subscription_id == subscription.id)
        .order_by(models.Payment.date.desc(), models.Payment.id.desc())
        .all()
    )


def add_subscription_payment(
    db: Session, subscription: models.Subscription, payload: schemas.PaymentCreate
) -> models.Payment:
    paid_on = _check_payment(payload)
    payment = models.Payment(
        student_id=subscription.student_id,
        subscription_id=subscription.id,
        amount=payload.amount,
        date=paid_on,
        description=payload.description or f'Payment for subscription "{subscription.name}"',
        type="payment",
    )

    with atomic(db, "add payment"):
        db.add(payment)
        db.flush()

        total_paid = (
            db.query(func.coalesce(func.sum(models.Payment.amount), 0.0))
            .filter(models.Payment.subscription_id == subscription.id)
            .scalar()
        )
        if total_paid >= subscription.total_cost and subscription.payment_status != "paid":
            subscription.payment_status = "paid"
            logger.info("Subscription %s fully paid (%.2f)", subscription.id, total_paid)

    db.refresh(payment)
    return payment


def create_subscription_prepayment(
    db: Session, subscription: models.Subscription, payload: schemas.SubscriptionPrepaymentCreate
) -> dict:
    """
    Prepay specific days (durable day-rule ids) or, without ids, every day
    that has no allocation yet. Days already allocated are not allocated twice.
    """
    paid_on = _check_payment(payload)

    days = canonical_day_order(db, subscription.id)
    allocated = {
        a.day_rule_id for a in db.query(models.PaidDayAllocation)
        .filter(models.PaidDayAllocation.subscription_id == subscription.id)
    }

    if payload.paid_day_ids:
        wanted = set(payload.paid_day_ids)
        to_pay = [d for d in days if d.id in wanted]
    else:
        to_pay = [d for d in days if d.id not in allocated]

    if not to_pay:
        raise ValidationError("No days to pay")

    cost = sum(d.cost for d in to_pay)
    payment = models.Payment(
        student_id=subscription.student_id,
        subscription_id=subscription.id,
        amount=payload.amount,
        date=paid_on,
        description=payload.description
        or f'Prepayment for {len(to_pay)} days of subscription "{subscription.name}"',
        type="prepayment",
    )

    created = []
    with atomic(db, "create prepayment"):
        db.add(payment)
        for day in to_pay:
            if day.id in allocated:
                continue
            allocation = models.PaidDayAllocation(
                subscription_id=subscription.id,
                day_rule_id=day.id,
                is_paid=True,
                payment_amount=day.cost,
            )
            db.add(allocation)
            created.append(allocation)
            allocated.add(day.id)

        if len(allocated) >= len(days):
            subscription.payment_status = "paid"
        elif payload.paid_day_ids:
            subscription.payment_status = "partial"
        else:
            subscription.payment_status = "paid"

    db.refresh(payment)
    return {
        "payment": payment,
        "paid_days": created,
        "total_cost": cost,
        "days_count": len(to_pay),
        "payment_status": subscription.payment_status,
    }


# ---------- LESSON GENERATION ----------
def generate_subscription_lessons(db: Session, subscription: models.Subscription) -> List[models.Lesson]:
    """
    Expand every day rule over its week's dates (clipped to the subscription
    window) and store the lessons. Lessons that already exist for the same
    subscription and start time are left alone, so this can be re-run.
    """
    paid_day_ids = {
        a.day_rule_id for a in subscription.paid_days if a.is_paid
    }
    existing = {
        start_at for (start_at,) in db.query(models.Lesson.start_at)
        .filter(models.Lesson.subscription_id == subscription.id)
    }

    lessons = []
    for week in subscription.week_blocks:
        start = max(week.start_date, subscription.start_date)
        end = min(week.end_date, subscription.end_date)
        for day in week.day_rules:
            duration = (
                datetime.combine(start, day.end_time) - datetime.combine(start, day.start_time)
            ).seconds // 60

            if subscription.payment_status == "paid":
                is_paid = True
            elif subscription.payment_status == "partial":
                is_paid = day.id in paid_day_ids
            else:
                is_paid = False

            for occ in expand_occurrences(start, end, {day.weekday}, day.start_time, duration):
                if occ.start_at in existing:
                    continue
                existing.add(occ.start_at)
                lessons.append(models.Lesson(
                    student_id=subscription.student_id,
                    staff_id=subscription.staff_id,
                    subscription_id=subscription.id,
                    start_at=occ.start_at,
                    end_at=occ.end_at,
                    cost=day.cost,
                    lesson_type="individual",
                    location=day.location,
                    notes=day.notes,
                    is_paid=is_paid,
                ))

    if not lessons:
        raise ValidationError("No lessons to generate for this period")

    with atomic(db, "generate lessons"):
        db.add_all(lessons)
    for lesson in lessons:
        db.refresh(lesson)

    logger.info("Subscription %s: generated %d lessons", subscription.id, len(lessons))
    return sorted(lessons, key=lambda l: l.start_at)


# ---------- BULK LESSONS ----------
def expand_pattern(pattern: schemas.SchedulePattern) -> List[Occurrence]:
    if not pattern.start_date or not pattern.end_date:
        raise ValidationError("Start and end dates are required")
    start = parse_iso_date(pattern.start_date, "start_date")
    end = parse_iso_date(pattern.end_date, "end_date")
    ensure_end_after_start(start, end)

    if not pattern.days:
        raise ValidationError("Select at least one day of the week")
    if any(not 0 <= d <= 6 for d in pattern.days):
        raise ValidationError("Days of the week must be between 0 (Sunday) and 6 (Saturday)")

    if not pattern.time:
        raise ValidationError("Lesson time is required")
    at: time = parse_time_of_day(pattern.time, "lesson time")

    if pattern.duration <= 0:
        raise ValidationError("Duration must be greater than 0")

    return expand_occurrences(start, end, pattern.days, at, pattern.duration)


def preview_bulk_lessons(pattern: schemas.SchedulePattern) -> Tuple[int, List[Occurrence]]:
    occurrences = expand_pattern(pattern)
    return len(occurrences), preview(occurrences, settings.PREVIEW_LIMIT)


def create_bulk_lessons(db: Session, payload: schemas.BulkLessonCreate) -> List[int]:
    """One lesson per occurrence per student; group lessons fan out over student_ids."""
    occurrences = expand_pattern(payload.schedule_pattern)

    if not payload.cost or payload.cost <= 0:
        raise ValidationError("Cost must be greater than 0")
    if not payload.staff_id:
        raise ValidationError("A staff member is required")

    if payload.lesson_type == "group":
        student_ids = list(dict.fromkeys(payload.student_ids))
    else:
        student_ids = [payload.student_id] if payload.student_id else []
    if not student_ids:
        raise ValidationError("Select at least one student")

    if not occurrences:
        raise ValidationError("No lessons fall within the selected period")

    _require_staff(db, payload.staff_id)
    found = db.query(models.Student.id).filter(models.Student.id.in_(student_ids)).count()
    if found != len(student_ids):
        raise ReferenceNotFoundError("One or more students not found")

    lessons = [
        models.Lesson(
            student_id=student_id,
            staff_id=payload.staff_id,
            start_at=occ.start_at,
            end_at=occ.end_at,
            cost=payload.cost,
            lesson_type=payload.lesson_type,
            notes=payload.notes,
            is_paid=payload.is_paid,
        )
        for occ in occurrences
        for student_id in student_ids
    ]

    with atomic(db, "create lessons"):
        db.add_all(lessons)
        db.flush()
        ids = [l.id for l in lessons]

    logger.info("Bulk-created %d %s lessons for %d student(s)",
                len(ids), payload.lesson_type, len(student_ids))
    return ids


# ---------- LUMP PREPAYMENT ----------
def create_student_prepayment(db: Session, payload: schemas.StudentPrepaymentCreate) -> dict:
    """Pay every unpaid, non-cancelled lesson of a student inside a date range."""
    if not payload.student_id or not payload.period.start_date or not payload.period.end_date:
        raise ValidationError("Student, amount, date and period are required")
    paid_on = _check_payment(payload)

    start = parse_iso_date(payload.period.start_date, "period start")
    end = parse_iso_date(payload.period.end_date, "period end")
    if end <= start:
        raise ValidationError("Period end must be after period start")

    _require_student(db, payload.student_id)

    unpaid = (
        db.query(models.Lesson)
        .filter(
            models.Lesson.student_id == payload.student_id,
            models.Lesson.is_paid == False,  # noqa: E712
            models.Lesson.is_cancelled == False,  # noqa: E712
            models.Lesson.start_at >= datetime.combine(start, time.min),
            models.Lesson.start_at <= datetime.combine(end, time.max),
        )
        .order_by(models.Lesson.start_at)
        .all()
    )
    if not unpaid:
        raise ValidationError("No unpaid lessons in this period")

    payment = models.Payment(
        student_id=payload.student_id,
        amount=payload.amount,
        date=paid_on,
        description=payload.description
        or f"Prepayment for {start.isoformat()} to {end.isoformat()}",
        type="prepayment",
    )

    with atomic(db, "create prepayment"):
        db.add(payment)
        payment.lessons.extend(unpaid)
        for lesson in unpaid:
            lesson.is_paid = True

    db.refresh(payment)
    return {
        "payment": payment,
        "lesson_ids": [l.id for l in unpaid],
        "total_cost": sum(l.cost for l in unpaid),
        "lessons_count": len(unpaid),
    }
