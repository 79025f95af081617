# backend/tutorcrm/routers/students.py
from fastapi import APIRouter, HTTPException, Depends
from sqlalchemy.orm import Session

from .. import crud, schemas
from ..db import get_db

router = APIRouter(prefix="/students", tags=["students"])
staff_router = APIRouter(prefix="/staff", tags=["staff"])


@router.post("/", response_model=schemas.StudentOut, status_code=201)
def create_student(payload: schemas.StudentCreate, db: Session = Depends(get_db)):
    return crud.create_student(db, payload)


@router.get("", response_model=list[schemas.StudentOut])
@router.get("/", response_model=list[schemas.StudentOut])
def list_students(db: Session = Depends(get_db)):
    return crud.get_all_students(db)


@router.get("/{student_id}", response_model=schemas.StudentOut)
def get_student(student_id: int, db: Session = Depends(get_db)):
    student = crud.get_student(db, student_id)
    if not student:
        raise HTTPException(status_code=404, detail="Student not found")
    return student


@router.delete("/{student_id}")
def delete_student(student_id: int, db: Session = Depends(get_db)):
    student = crud.get_student(db, student_id)
    if not student:
        raise HTTPException(status_code=404, detail="Student not found")
    crud.delete_student(db, student)
    return {"status": "ok", "student_id": student_id}


# ---------------------------------------------------------
# staff members (teachers / admins the subscriptions belong to)
# ---------------------------------------------------------
@staff_router.post("/", response_model=schemas.StaffOut, status_code=201)
def create_staff(payload: schemas.StaffCreate, db: Session = Depends(get_db)):
    return crud.create_staff(db, payload)


@staff_router.get("", response_model=list[schemas.StaffOut])
@staff_router.get("/", response_model=list[schemas.StaffOut])
def list_staff(db: Session = Depends(get_db)):
    return crud.get_all_staff(db)


@staff_router.get("/{staff_id}", response_model=schemas.StaffOut)
def get_staff(staff_id: int, db: Session = Depends(get_db)):
    staff = crud.get_staff(db, staff_id)
    if not staff:
        raise HTTPException(status_code=404, detail="Staff member not found")
    return staff
