# backend/tutorcrm/db.py
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base
from urllib.parse import urlparse, parse_qs
from .config import settings

DATABASE_URL = settings.DATABASE_URL


def _should_use_ssl(url: str) -> bool:
    parsed = urlparse(url)
    if not parsed.scheme.startswith("postgresql"):
        return False
    q = parse_qs(parsed.query or "")
    if any(v and v[0].lower() == "require" for k, v in q.items() if k == "sslmode"):
        return True
    host = (parsed.hostname or "").lower()
    return any(h in host for h in ("supabase.co", "neon.tech", "neon.aws", "railway"))


def _connect_args(url: str) -> dict:
    if url.startswith("sqlite"):
        return {"check_same_thread": False}
    if _should_use_ssl(url):
        return {"sslmode": "require"}
    return {}


# ALWAYS pass a dict (empty or with options) — do NOT pass None
engine = create_engine(
    DATABASE_URL,
    echo=settings.DEBUG,
    future=True,
    connect_args=_connect_args(DATABASE_URL),
)

SessionLocal = sessionmaker(
    bind=engine,
    autoflush=False,
    autocommit=False,
    future=True
)

Base = declarative_base()
if settings.DB_SCHEMA:
    Base.metadata.schema = settings.DB_SCHEMA


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
