# backend/tutorcrm/routers/subscriptions.py
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session
from typing import List, Optional

from ..db import get_db
from .. import crud, schemas

router = APIRouter(prefix="/subscriptions", tags=["Subscriptions"])


def _get_or_404(db: Session, subscription_id: int):
    sub = crud.get_subscription(db, subscription_id)
    if not sub:
        raise HTTPException(status_code=404, detail="Subscription not found")
    return sub


# =========================================================
# CREATE / READ
# =========================================================
@router.post("/", response_model=schemas.SubscriptionOut, status_code=201)
def create_subscription(payload: schemas.SubscriptionCreate, db: Session = Depends(get_db)):
    return crud.create_subscription(db, payload)


@router.get("", response_model=List[schemas.SubscriptionOut])
@router.get("/", response_model=List[schemas.SubscriptionOut])
def list_subscriptions(
    student_id: Optional[int] = Query(None),
    db: Session = Depends(get_db),
):
    return crud.list_subscriptions(db, student_id)


@router.get("/{subscription_id}", response_model=schemas.SubscriptionOut)
def get_subscription(subscription_id: int, db: Session = Depends(get_db)):
    return _get_or_404(db, subscription_id)


# =========================================================
# UPDATE / DELETE
# =========================================================
@router.patch("/{subscription_id}", response_model=schemas.SubscriptionOut)
def update_subscription(
    subscription_id: int,
    payload: schemas.SubscriptionUpdate,
    db: Session = Depends(get_db),
):
    sub = _get_or_404(db, subscription_id)
    return crud.update_subscription(db, sub, payload)


@router.delete("/{subscription_id}")
def delete_subscription(subscription_id: int, db: Session = Depends(get_db)):
    sub = _get_or_404(db, subscription_id)
    crud.delete_subscription(db, sub)
    return {"status": "deleted", "subscription_id": subscription_id}


# =========================================================
# PAYMENTS
# =========================================================
@router.get("/{subscription_id}/payments", response_model=List[schemas.PaymentOut])
def list_payments(subscription_id: int, db: Session = Depends(get_db)):
    sub = _get_or_404(db, subscription_id)
    return crud.list_subscription_payments(db, sub)


@router.post("/{subscription_id}/payments", response_model=schemas.PaymentOut, status_code=201)
def add_payment(
    subscription_id: int,
    payload: schemas.PaymentCreate,
    db: Session = Depends(get_db),
):
    sub = _get_or_404(db, subscription_id)
    return crud.add_subscription_payment(db, sub, payload)


@router.post(
    "/{subscription_id}/prepayment",
    response_model=schemas.SubscriptionPrepaymentOut,
    status_code=201,
)
def create_prepayment(
    subscription_id: int,
    payload: schemas.SubscriptionPrepaymentCreate,
    db: Session = Depends(get_db),
):
    sub = _get_or_404(db, subscription_id)
    return crud.create_subscription_prepayment(db, sub, payload)


# =========================================================
# LESSONS
# =========================================================
@router.post(
    "/{subscription_id}/generate-lessons",
    response_model=schemas.GeneratedLessonsOut,
    status_code=201,
)
def generate_lessons(subscription_id: int, db: Session = Depends(get_db)):
    sub = _get_or_404(db, subscription_id)
    lessons = crud.generate_subscription_lessons(db, sub)
    return {"count": len(lessons), "lessons": lessons}
