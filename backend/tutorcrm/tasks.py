# backend/tutorcrm/tasks.py
import logging

from celery import Celery
from .config import settings
from .db import SessionLocal
from .errors import ValidationError
from . import crud

logger = logging.getLogger(__name__)

celery_app = Celery(
    "tutorcrm_tasks",
    broker=settings.REDIS_URL,
    backend=settings.REDIS_URL
)


@celery_app.task
def generate_subscription_lessons_task(subscription_id: int):
    db = SessionLocal()
    try:
        sub = crud.get_subscription(db, subscription_id)
        if not sub:
            return {"status": "not_found", "subscription_id": subscription_id}
        try:
            lessons = crud.generate_subscription_lessons(db, sub)
        except ValidationError as exc:
            logger.info("Subscription %s: %s", subscription_id, exc)
            return {"status": "skipped", "subscription_id": subscription_id, "created": 0}
    finally:
        db.close()

    return {"status": "ok", "subscription_id": subscription_id, "created": len(lessons)}
