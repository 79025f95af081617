# backend/tutorcrm/routers/payments.py
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..db import get_db
from .. import crud, schemas

router = APIRouter(prefix="/payments", tags=["Payments"])


@router.post("/prepayment", response_model=schemas.StudentPrepaymentOut, status_code=201)
def create_prepayment(payload: schemas.StudentPrepaymentCreate, db: Session = Depends(get_db)):
    # lump sum over flat lessons, matched by date range
    return crud.create_student_prepayment(db, payload)
