# backend/tutorcrm/config.py
from typing import List, Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # DB URL used by SQLAlchemy. Adjust if you used a different DB name.
    DATABASE_URL: str = "postgresql+psycopg2://postgres:postgres@db:5432/tutorcrm"
    # Leave empty for SQLite / the connection's default search_path
    DB_SCHEMA: Optional[str] = None

    # Redis for Celery/background tasks
    REDIS_URL: str = "redis://redis:6379/0"

    # App options (used by db.py and elsewhere)
    DEBUG: bool = False
    SECRET_KEY: str = "change-me"
    LOG_LEVEL: str = "INFO"

    # how many occurrences the bulk-lesson preview shows
    PREVIEW_LIMIT: int = 20

    CORS_ORIGINS: List[str] = [
        "http://localhost:5173",
        "http://127.0.0.1:5173",
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
