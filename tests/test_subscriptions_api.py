from __future__ import annotations

from typing import Any, Callable

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from tutorcrm import crud, models

PayloadFactory = Callable[..., dict[str, Any]]


def _row_counts(db: Session) -> dict[str, int]:
    return {
        "subscriptions": db.query(models.Subscription).count(),
        "week_blocks": db.query(models.WeekBlock).count(),
        "day_rules": db.query(models.DayRule).count(),
        "allocations": db.query(models.PaidDayAllocation).count(),
    }


def _day_ids(body: dict[str, Any]) -> list[list[int]]:
    return [[d["id"] for d in w["day_rules"]] for w in body["week_blocks"]]


def test_create_subscription_returns_tree(client: TestClient, subscription_payload: PayloadFactory) -> None:
    response = client.post("/subscriptions/", json=subscription_payload())

    assert response.status_code == 201
    body = response.json()
    assert body["name"] == "January intensive"
    assert body["total_cost"] == 4500
    assert body["payment_status"] == "unpaid"
    assert body["is_paid"] is False
    assert [w["week_number"] for w in body["week_blocks"]] == [1, 2]

    week2 = body["week_blocks"][1]["day_rules"]
    assert [d["weekday"] for d in week2] == [1, 3]
    assert [d["position"] for d in week2] == [0, 1]
    assert week2[1]["start_time"] == "16:30:00"
    assert week2[1]["location"] == "home"
    assert week2[1]["notes"] == "bring workbook"
    assert body["paid_days"] == []


def test_total_cost_ignores_client_total(client: TestClient, subscription_payload: PayloadFactory) -> None:
    response = client.post("/subscriptions/", json=subscription_payload(total_cost=1))
    assert response.json()["total_cost"] == 4500


def test_partial_payment_allocates_resolved_days(
    client: TestClient, subscription_payload: PayloadFactory
) -> None:
    payload = subscription_payload(payment_status="partial", paid_days=["0-0", "1-1"])
    body = client.post("/subscriptions/", json=payload).json()

    day_ids = _day_ids(body)
    paid = {(a["day_rule_id"], a["payment_amount"]) for a in body["paid_days"]}
    assert paid == {(day_ids[0][0], 1000), (day_ids[1][1], 2000)}
    assert body["payment_status"] == "partial"


def test_duplicate_identifiers_give_one_allocation(
    client: TestClient, subscription_payload: PayloadFactory, db: Session
) -> None:
    payload = subscription_payload(payment_status="partial", paid_days=["0-0", "0-0"])
    body = client.post("/subscriptions/", json=payload).json()

    assert len(body["paid_days"]) == 1
    assert db.query(models.PaidDayAllocation).count() == 1


def test_unresolvable_identifier_is_dropped(
    client: TestClient, subscription_payload: PayloadFactory
) -> None:
    payload = subscription_payload(payment_status="partial", paid_days=["5-0"])
    response = client.post("/subscriptions/", json=payload)

    assert response.status_code == 201
    assert response.json()["paid_days"] == []


def test_bare_numbers_pin_to_week_one(client: TestClient, subscription_payload: PayloadFactory) -> None:
    payload = subscription_payload(payment_status="partial", paid_days=[3])
    body = client.post("/subscriptions/", json=payload).json()

    assert [a["day_rule_id"] for a in body["paid_days"]] == [_day_ids(body)[0][0]]


def test_identifiers_ignored_unless_partial(
    client: TestClient, subscription_payload: PayloadFactory
) -> None:
    for status in ("unpaid", "paid"):
        body = client.post(
            "/subscriptions/", json=subscription_payload(payment_status=status, paid_days=["0-0"])
        ).json()
        assert body["paid_days"] == []
        assert body["payment_status"] == status


def test_missing_day_field_persists_nothing(
    client: TestClient, subscription_payload: PayloadFactory, db: Session
) -> None:
    payload = subscription_payload(payment_status="partial", paid_days=["0-0"])
    del payload["weeks"][1]["days"][1]["end_time"]

    response = client.post("/subscriptions/", json=payload)

    assert response.status_code == 400
    assert "week 2, day 2" in response.json()["detail"]
    assert _row_counts(db) == {"subscriptions": 0, "week_blocks": 0, "day_rules": 0, "allocations": 0}


def test_store_failure_rolls_back_whole_tree(
    client: TestClient,
    subscription_payload: PayloadFactory,
    db: Session,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    def failing_allocate(*args: Any, **kwargs: Any) -> None:
        raise OperationalError("INSERT INTO paid_day_allocations", {}, Exception("disk I/O error"))

    # weeks and days are already flushed when allocation runs
    monkeypatch.setattr(crud, "allocate_paid_days", failing_allocate)
    payload = subscription_payload(payment_status="partial", paid_days=["0-0"])

    response = client.post("/subscriptions/", json=payload)

    assert response.status_code == 500
    assert response.json() == {"detail": "Internal server error"}
    assert _row_counts(db) == {"subscriptions": 0, "week_blocks": 0, "day_rules": 0, "allocations": 0}


def test_infinite_cost_counts_as_zero(client: TestClient, subscription_payload: PayloadFactory) -> None:
    payload = subscription_payload()
    payload["weeks"][0]["days"][0]["cost"] = "Infinity"

    response = client.post("/subscriptions/", json=payload)

    assert response.status_code == 201
    body = response.json()
    assert body["total_cost"] == 3500
    assert body["week_blocks"][0]["day_rules"][0]["cost"] == 0


def test_validation_failures_are_bad_requests(
    client: TestClient, subscription_payload: PayloadFactory
) -> None:
    cases = [
        subscription_payload(name=None),
        subscription_payload(weeks=[]),
        subscription_payload(start_date="not-a-date"),
        subscription_payload(student_id="abc"),
    ]
    for payload in cases:
        response = client.post("/subscriptions/", json=payload)
        assert response.status_code == 400
        assert isinstance(response.json()["detail"], str)


def test_unknown_student_or_staff_is_not_found(
    client: TestClient, subscription_payload: PayloadFactory, db: Session
) -> None:
    response = client.post("/subscriptions/", json=subscription_payload(student_id=999))
    assert response.status_code == 404
    assert response.json()["detail"] == "Student not found"

    response = client.post("/subscriptions/", json=subscription_payload(staff_id=999))
    assert response.status_code == 404
    assert response.json()["detail"] == "Staff member not found"

    assert _row_counts(db)["subscriptions"] == 0


def test_get_list_update_delete(
    client: TestClient, subscription_payload: PayloadFactory, student_id: int, db: Session
) -> None:
    first = client.post("/subscriptions/", json=subscription_payload()).json()
    second = client.post("/subscriptions/", json=subscription_payload(name="February")).json()

    listed = client.get("/subscriptions/", params={"student_id": student_id}).json()
    assert {s["id"] for s in listed} == {first["id"], second["id"]}
    assert client.get("/subscriptions/", params={"student_id": 999}).json() == []

    assert client.get(f"/subscriptions/{first['id']}").json()["name"] == "January intensive"
    assert client.get("/subscriptions/12345").status_code == 404

    patched = client.patch(
        f"/subscriptions/{first['id']}",
        json={"name": "Renamed", "payment_status": "paid", "start_date": "2020-01-01"},
    ).json()
    assert patched["name"] == "Renamed"
    assert patched["is_paid"] is True
    assert patched["start_date"] == "2024-01-01"

    assert client.delete(f"/subscriptions/{first['id']}").status_code == 200
    assert client.get(f"/subscriptions/{first['id']}").status_code == 404
    assert _row_counts(db) == {"subscriptions": 1, "week_blocks": 2, "day_rules": 3, "allocations": 0}


def test_delete_removes_allocations(
    client: TestClient, subscription_payload: PayloadFactory, db: Session
) -> None:
    body = client.post(
        "/subscriptions/", json=subscription_payload(payment_status="partial", paid_days=["0-0"])
    ).json()

    client.delete(f"/subscriptions/{body['id']}")

    assert _row_counts(db) == {"subscriptions": 0, "week_blocks": 0, "day_rules": 0, "allocations": 0}


def test_payments_mark_subscription_paid(
    client: TestClient, subscription_payload: PayloadFactory
) -> None:
    sub = client.post("/subscriptions/", json=subscription_payload()).json()
    url = f"/subscriptions/{sub['id']}/payments"

    assert client.post(url, json={"amount": 0, "date": "2024-01-01"}).status_code == 400
    assert client.post(url, json={"amount": 2000}).status_code == 400

    first = client.post(url, json={"amount": 2000, "date": "2024-01-01"})
    assert first.status_code == 201
    assert client.get(f"/subscriptions/{sub['id']}").json()["payment_status"] == "unpaid"

    client.post(url, json={"amount": 2500, "date": "2024-01-05"})
    assert client.get(f"/subscriptions/{sub['id']}").json()["payment_status"] == "paid"
    assert [p["amount"] for p in client.get(url).json()] == [2500, 2000]


def test_prepayment_for_chosen_days(client: TestClient, subscription_payload: PayloadFactory) -> None:
    sub = client.post("/subscriptions/", json=subscription_payload()).json()
    week2 = _day_ids(sub)[1]
    url = f"/subscriptions/{sub['id']}/prepayment"

    response = client.post(url, json={"amount": 3500, "date": "2024-01-01", "paid_day_ids": week2})
    assert response.status_code == 201
    body = response.json()
    assert body["days_count"] == 2
    assert body["total_cost"] == 3500
    assert body["payment_status"] == "partial"
    assert body["payment"]["type"] == "prepayment"

    # paying the same days again adds no allocations
    again = client.post(url, json={"amount": 3500, "date": "2024-01-02", "paid_day_ids": week2}).json()
    assert again["paid_days"] == []

    # the rest
    rest = client.post(url, json={"amount": 1000, "date": "2024-01-03"}).json()
    assert rest["days_count"] == 1
    assert rest["payment_status"] == "paid"

    assert client.post(url, json={"amount": 10, "date": "2024-01-04"}).status_code == 400
    assert len(client.get(f"/subscriptions/{sub['id']}").json()["paid_days"]) == 3


def test_generate_lessons_uses_allocations(
    client: TestClient, subscription_payload: PayloadFactory
) -> None:
    sub = client.post(
        "/subscriptions/", json=subscription_payload(payment_status="partial", paid_days=["0-0"])
    ).json()

    response = client.post(f"/subscriptions/{sub['id']}/generate-lessons")

    assert response.status_code == 201
    body = response.json()
    assert body["count"] == 3
    lessons = body["lessons"]
    assert [l["start_at"] for l in lessons] == [
        "2024-01-01T10:00:00",
        "2024-01-08T10:00:00",
        "2024-01-10T16:30:00",
    ]
    assert lessons[2]["end_at"] == "2024-01-10T17:15:00"
    assert [l["is_paid"] for l in lessons] == [True, False, False]
    assert [l["cost"] for l in lessons] == [1000, 1500, 2000]
    assert lessons[1]["location"] == "online"

    # nothing new the second time round
    assert client.post(f"/subscriptions/{sub['id']}/generate-lessons").status_code == 400


def test_generate_lessons_for_paid_subscription(
    client: TestClient, subscription_payload: PayloadFactory
) -> None:
    sub = client.post("/subscriptions/", json=subscription_payload(payment_status="paid")).json()
    lessons = client.post(f"/subscriptions/{sub['id']}/generate-lessons").json()["lessons"]
    assert all(l["is_paid"] for l in lessons)


def test_generate_lessons_follows_week_dates(
    client: TestClient, subscription_payload: PayloadFactory
) -> None:
    day = {"start_time": "10:00", "end_time": "11:00", "cost": 500}
    weeks = [
        # Monday to Wednesday: the Friday day has no date inside this week
        {"start_date": "2024-01-01", "end_date": "2024-01-03",
         "days": [{**day, "weekday": 1}, {**day, "weekday": 5}]},
        # a ten-day week holds its Thursday twice
        {"start_date": "2024-01-04", "end_date": "2024-01-13", "days": [{**day, "weekday": 4}]},
    ]
    sub = client.post("/subscriptions/", json=subscription_payload(weeks=weeks)).json()

    lessons = client.post(f"/subscriptions/{sub['id']}/generate-lessons").json()["lessons"]

    assert [l["start_at"] for l in lessons] == [
        "2024-01-01T10:00:00",
        "2024-01-04T10:00:00",
        "2024-01-11T10:00:00",
    ]
