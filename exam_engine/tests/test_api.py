"""
HTTP-level tests: routing, identity headers and the response envelope.
"""

import datetime

import pytest
from fastapi.testclient import TestClient

from exam_engine.assessments.memory_repository import MemoryAssessmentRepository, MemoryAttemptRepository
from exam_engine.assessments.models import AssessmentDefinition, RevealPolicy
from exam_engine.assessments.service import AssessmentEngine
from exam_engine.common.clock import FixedClock
from exam_engine.common.shuffler import IdentityShuffler
from exam_engine.main import create_app

NOW = datetime.datetime(2026, 3, 2, 9, 0, 0)
BASE = "/api/v1/assessments"

STUDENT = {"X-Participant-Id": "student-1", "X-Participant-Role": "student"}
GUEST = {"X-Participant-Id": "guest-1", "X-Participant-Role": "guest"}
ADMIN = {"X-Participant-Id": "admin-1", "X-Participant-Role": "admin"}


@pytest.fixture
def api_clock():
    return FixedClock(NOW)


@pytest.fixture
def client(api_clock, question_repository):
    definitions = [
        AssessmentDefinition(
            definition_id="exam-1",
            title="General knowledge",
            question_refs=["q-capital", "q-orbit"],
            attempts_allowed=1,
            time_limit_minutes=30,
            reveal_policy=RevealPolicy.IMMEDIATE,
            published=True,
            created_at=NOW,
            updated_at=NOW
        ),
        AssessmentDefinition(
            definition_id="draft",
            title="Draft",
            question_refs=["q-capital"],
            created_at=NOW,
            updated_at=NOW
        ),
    ]
    engine = AssessmentEngine(
        question_repository=question_repository,
        assessment_repository=MemoryAssessmentRepository(definitions),
        attempt_repository=MemoryAttemptRepository(),
        clock=api_clock,
        shuffler=IdentityShuffler()
    )
    return TestClient(create_app(engine=engine))


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_identity_headers_are_required(client):
    response = client.get(f"{BASE}/")
    assert response.status_code == 401

    response = client.get(f"{BASE}/", headers={"X-Participant-Id": "student-1"})
    assert response.status_code == 401


def test_list_hides_drafts_from_students(client):
    response = client.get(f"{BASE}/", headers=STUDENT)

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "success"
    assert [item["definition_id"] for item in body["data"]["items"]] == ["exam-1"]

    admin_view = client.get(f"{BASE}/", headers=ADMIN).json()["data"]
    assert admin_view["total"] == 2


def test_start_and_submit(client, api_clock):
    started = client.post(f"{BASE}/exam-1/start", headers=STUDENT)
    assert started.status_code == 200
    body = started.json()
    assert body["message"] == "Attempt started"
    questions = body["data"]["questions"]
    assert [q["question_id"] for q in questions] == ["q-capital", "q-orbit"]
    assert all("correct_answer" not in q for q in questions)

    resumed = client.post(f"{BASE}/exam-1/start", headers=STUDENT).json()
    assert resumed["message"] == "Resuming attempt in progress"

    api_clock.advance(minutes=10)
    status = client.get(f"{BASE}/exam-1/attempt-status", headers=STUDENT).json()["data"]
    # the deadline includes the one minute grace
    assert status["remaining_seconds"] == 21 * 60

    submitted = client.post(
        f"{BASE}/exam-1/submit",
        headers=STUDENT,
        json={"answers": [
            {"question_id": "q-capital", "given_answer": "Paris"},
            {"question_id": "q-orbit", "given_answer": False}
        ]}
    )
    assert submitted.status_code == 200
    result = submitted.json()["data"]
    assert result["score_percent"] == 50
    assert result["passed"] is False
    assert result["attempts_remaining"] == 0
    assert [d["question_id"] for d in result["detail"]] == ["q-capital", "q-orbit"]

    again = client.post(f"{BASE}/exam-1/submit", headers=STUDENT, json={"answers": {"q-capital": "Paris"}})
    assert again.status_code == 400
    assert again.json()["code"] == "no_active_attempt"

    exhausted = client.post(f"{BASE}/exam-1/start", headers=STUDENT)
    assert exhausted.status_code == 400
    assert exhausted.json()["code"] == "attempts_exhausted"


def test_forwarded_ip_is_recorded(client):
    client.post(f"{BASE}/exam-1/start", headers={**STUDENT, "X-Forwarded-For": "203.0.113.9, 10.0.0.1"})

    attempts = client.get(f"{BASE}/exam-1/attempts", headers=ADMIN).json()["data"]
    assert attempts["items"][0]["origin_ip"] == "203.0.113.9"


def test_error_envelope(client):
    missing = client.get(f"{BASE}/nope", headers=STUDENT)
    assert missing.status_code == 404
    assert missing.json()["status"] == "error"
    assert missing.json()["code"] == "not_found"

    role = client.post(f"{BASE}/exam-1/start", headers=GUEST)
    assert role.status_code == 403
    assert role.json()["code"] == "role_not_allowed"

    draft = client.post(f"{BASE}/draft/start", headers=STUDENT)
    assert draft.status_code == 403
    assert draft.json()["code"] == "not_published"

    forbidden = client.get(f"{BASE}/exam-1/attempts", headers=STUDENT)
    assert forbidden.status_code == 403
    assert forbidden.json()["code"] == "forbidden"


def test_malformed_submission_is_rejected(client):
    client.post(f"{BASE}/exam-1/start", headers=STUDENT)

    response = client.post(f"{BASE}/exam-1/submit", headers=STUDENT, json={"answers": "Paris"})
    assert response.status_code == 422
    assert response.json()["code"] == "validation_error"

    duplicated = client.post(
        f"{BASE}/exam-1/submit",
        headers=STUDENT,
        json={"answers": [
            {"question_id": "q-capital", "given_answer": "Paris"},
            {"question_id": "q-capital", "given_answer": "Lyon"}
        ]}
    )
    assert duplicated.status_code == 400
    assert duplicated.json()["details"]["errors"]["duplicate_question_ids"] == ["q-capital"]


def test_admin_manages_definitions(client):
    created = client.post(
        f"{BASE}/",
        headers=ADMIN,
        json={"title": "Quiz", "question_refs": ["q-hexagon"], "published": True}
    )
    assert created.status_code == 201
    definition = created.json()["data"]
    assert definition["creator_id"] == "admin-1"

    updated = client.put(f"{BASE}/{definition['definition_id']}", headers=ADMIN, json={"attempts_allowed": 3})
    assert updated.json()["data"]["attempts_allowed"] == 3

    unknown = client.put(f"{BASE}/{definition['definition_id']}", headers=ADMIN, json={"bogus": 1})
    assert unknown.status_code == 422

    deleted = client.delete(f"{BASE}/{definition['definition_id']}", headers=ADMIN)
    assert deleted.json()["data"]["active"] is False

    student_create = client.post(f"{BASE}/", headers=STUDENT, json={"title": "x", "question_refs": ["q-hexagon"]})
    assert student_create.status_code == 403


def test_unknown_question_reference_is_rejected(client):
    response = client.post(f"{BASE}/", headers=ADMIN, json={"title": "Quiz", "question_refs": ["q-missing"]})
    assert response.status_code == 400
    assert response.json()["code"] == "validation_error"
