import asyncio
import re
from unittest.mock import AsyncMock

from archetype_quiz.errors import StorageUnavailable

ALL_LEADER = {str(qid): "Leader" for qid in range(1, 11)}


def submit(client, email="ada@example.com", name="Ada", answers=ALL_LEADER, ip="203.0.113.10"):
    return client.post(
        "/api/quiz/submit",
        json={"answers": answers, "email": email, "name": name},
        headers={"X-Forwarded-For": f"{ip}, 10.0.0.1"},
    )


def test_get_questions(client):
    response = client.get("/api/quiz/questions")

    assert response.status_code == 200
    questions = response.json()
    assert len(questions) == 10
    assert questions[0]["id"] == 1
    assert {"text", "archetype"} == set(questions[0]["options"][0])


def test_submit_returns_score_result(client):
    response = submit(client)

    assert response.status_code == 200
    body = response.json()
    assert set(body) == {"archetype", "description", "scores", "confidence", "completionTime"}
    assert body["archetype"] == "Leader"
    assert body["confidence"] == "High"
    assert body["scores"]["Leader"] == 100
    assert len(body["scores"]) == 8
    assert re.fullmatch(r"\d:\d{2}", body["completionTime"])


def test_submit_records_forwarded_client_ip(client, seeded_storage):
    submit(client, ip="198.51.100.23")

    stored = asyncio.run(seeded_storage.find_submission_by_email("ada@example.com"))
    assert stored.ip_address == "198.51.100.23"


def test_submit_missing_fields(client):
    response = client.post("/api/quiz/submit", json={"answers": ALL_LEADER, "email": "ada@example.com"})

    assert response.status_code == 400
    assert response.json()["detail"] == {"code": "VALIDATION_ERROR", "message": "Missing required fields"}


def test_duplicate_submission_conflicts(client):
    assert submit(client).status_code == 200
    response = submit(client, email="ADA@example.com", answers={"1": "Analyst"})

    assert response.status_code == 409
    assert response.json()["detail"]["code"] == "DUPLICATE_SUBMISSION"


def test_fourth_submission_is_rate_limited(client):
    for i in range(3):
        assert submit(client, email=f"user{i}@example.com").status_code == 200

    response = submit(client, email="user3@example.com")

    assert response.status_code == 429
    detail = response.json()["detail"]
    assert detail["code"] == "RATE_LIMIT_EXCEEDED"
    assert isinstance(detail["resetTime"], int)
    assert 0 < int(response.headers["Retry-After"]) <= 3600

    # A different client is unaffected
    assert submit(client, email="user3@example.com", ip="203.0.113.99").status_code == 200


def test_storage_failure_is_generic_500(client, seeded_storage):
    seeded_storage.find_submission_by_email = AsyncMock(side_effect=StorageUnavailable("db exploded"))

    response = submit(client)

    assert response.status_code == 500
    assert response.json()["detail"] == {"code": "INTERNAL_ERROR", "message": "Internal server error"}


def test_save_session(client, seeded_storage):
    response = client.post("/api/quiz/session", json={"email": "ada@example.com", "progress": 3, "answers": {"1": "Leader"}})

    assert response.status_code == 200
    assert response.json() == {"success": True}
    session = asyncio.run(seeded_storage.get_session("ada@example.com"))
    assert session.progress == 3


def test_save_session_requires_email(client):
    response = client.post("/api/quiz/session", json={"progress": 3})

    assert response.status_code == 400
    assert response.json()["detail"]["code"] == "VALIDATION_ERROR"


def test_submit_clears_session(client, seeded_storage):
    client.post("/api/quiz/session", json={"email": "ada@example.com", "progress": 9, "answers": ALL_LEADER})
    submit(client)

    assert asyncio.run(seeded_storage.get_session("ada@example.com")) is None
