# backend/tutorcrm/routers/lessons.py
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session
from typing import List, Optional

from ..db import get_db
from .. import crud, models, schemas

router = APIRouter(prefix="/lessons", tags=["Lessons"])


@router.post("/bulk/preview", response_model=schemas.BulkPreviewOut)
def preview_bulk(pattern: schemas.SchedulePattern):
    total, shown = crud.preview_bulk_lessons(pattern)
    return {
        "total": total,
        "occurrences": [{"start_at": o.start_at, "end_at": o.end_at} for o in shown],
    }


@router.post("/bulk", response_model=schemas.BulkLessonResult, status_code=201)
def create_bulk(payload: schemas.BulkLessonCreate, db: Session = Depends(get_db)):
    ids = crud.create_bulk_lessons(db, payload)
    return {"count": len(ids), "lesson_ids": ids}


@router.get("", response_model=List[schemas.LessonOut])
@router.get("/", response_model=List[schemas.LessonOut])
def list_lessons(
    student_id: Optional[int] = Query(None),
    subscription_id: Optional[int] = Query(None),
    db: Session = Depends(get_db),
):
    q = db.query(models.Lesson)
    if student_id is not None:
        q = q.filter(models.Lesson.student_id == student_id)
    if subscription_id is not None:
        q = q.filter(models.Lesson.subscription_id == subscription_id)
    return q.order_by(models.Lesson.start_at, models.Lesson.id).all()


@router.get("/{lesson_id}", response_model=schemas.LessonOut)
def get_lesson(lesson_id: int, db: Session = Depends(get_db)):
    lesson = db.query(models.Lesson).filter(models.Lesson.id == lesson_id).first()
    if not lesson:
        raise HTTPException(status_code=404, detail="Lesson not found")
    return lesson
