from __future__ import annotations

import os

# must be set before tutorcrm.config is imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("DEBUG", "false")

from typing import Any, Callable

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from tutorcrm.db import Base, get_db
from tutorcrm.main import app


@pytest.fixture()
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)
    yield factory
    engine.dispose()


@pytest.fixture()
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture()
def client(session_factory):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture()
def student_id(client: TestClient) -> int:
    response = client.post("/students/", json={"name": "Anna Petrova"})
    assert response.status_code == 201
    return response.json()["id"]


@pytest.fixture()
def staff_id(client: TestClient) -> int:
    response = client.post("/staff/", json={"name": "Olga Teacher"})
    assert response.status_code == 201
    return response.json()["id"]


@pytest.fixture()
def subscription_payload(student_id: int, staff_id: int) -> Callable[..., dict[str, Any]]:
    """Two weeks starting Monday 2024-01-01: week 1 Mon 1000, week 2 Mon 1500 + Wed 2000."""

    def build(**overrides: Any) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "name": "January intensive",
            "student_id": student_id,
            "staff_id": staff_id,
            "start_date": "2024-01-01",
            "end_date": "2024-01-14",
            "description": "two weeks",
            "weeks": [
                {
                    "week_number": 1,
                    "start_date": "2024-01-01",
                    "end_date": "2024-01-07",
                    "days": [
                        {"weekday": 1, "start_time": "10:00", "end_time": "11:00",
                         "cost": 1000, "location": "office"},
                    ],
                },
                {
                    "week_number": 2,
                    "start_date": "2024-01-08",
                    "end_date": "2024-01-14",
                    "days": [
                        {"weekday": 1, "start_time": "10:00", "end_time": "11:00",
                         "cost": "1500", "location": "online"},
                        {"weekday": 3, "start_time": "16:30", "end_time": "17:15",
                         "cost": 2000, "location": "home", "notes": "bring workbook"},
                    ],
                },
            ],
            "payment_status": "unpaid",
        }
        payload.update(overrides)
        return payload

    return build
