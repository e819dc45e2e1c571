"""
API tests for the gradebook routes.

The application is built around an in-memory service, so every test runs
the real routing, identity and error handling without a database.
"""

import logging

import pytest
from fastapi.testclient import TestClient

from gradebook.assessments.service import GradebookService
from gradebook.config import settings
from gradebook.main import create_app

API = "/api/v1"


def headers(user_id, roles=None):
    result = {"Authorization": f"Bearer {user_id}"}
    if roles:
        result["X-User-Roles"] = roles
    return result


INSTRUCTOR = headers("instructor-1", "instructor")
GRADER = headers("grader-1", "grader")
LEARNER = headers("learner-1")
OTHER_LEARNER = headers("learner-2", "student")

CHOICES = [
    {"id": "a", "text": "Paris", "is_correct": True},
    {"id": "b", "text": "Lyon"},
    {"id": "c", "text": "Nice"},
]


@pytest.fixture
def client():
    app = create_app(GradebookService.in_memory())
    with TestClient(app) as test_client:
        yield test_client


def create_published_assessment(client, **fields):
    body = {"course_id": "course-1", "title": "Geography", "passing_score": 60}
    body.update(fields)
    response = client.post(f"{API}/assessments", json=body, headers=INSTRUCTOR)
    assert response.status_code == 201
    assessment_id = response.json()["data"]["id"]

    mc = client.post(f"{API}/assessments/{assessment_id}/questions", json={
        "question_type": "multiple_choice",
        "question_text": "Capital of France?",
        "question_data": {"options": CHOICES},
        "points": 5,
    }, headers=INSTRUCTOR).json()["data"]
    essay = client.post(f"{API}/assessments/{assessment_id}/questions", json={
        "question_type": "essay",
        "question_text": "Describe the Loire valley",
        "points": 5,
    }, headers=INSTRUCTOR).json()["data"]

    published = client.post(f"{API}/assessments/{assessment_id}/publish", headers=INSTRUCTOR)
    assert published.status_code == 200
    return assessment_id, mc["id"], essay["id"]


class TestNormalOperation:
    def test_root(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert "version" in response.json()

    def test_full_attempt_lifecycle(self, client):
        assessment_id, mc_id, essay_id = create_published_assessment(client)

        view = client.get(f"{API}/assessments/{assessment_id}", headers=LEARNER).json()["data"]
        assert view["total_points"] == 10
        assert [q["id"] for q in view["questions"]] == [mc_id, essay_id]
        assert all("is_correct" not in option for option in view["questions"][0]["question_data"]["options"])

        started = client.post(f"{API}/assessments/{assessment_id}/attempts", headers=LEARNER)
        assert started.status_code == 201
        attempt_id = started.json()["data"]["id"]
        assert started.json()["data"]["attempt_number"] == 1

        saved = client.put(
            f"{API}/attempts/{attempt_id}/responses/{mc_id}",
            json={"answer_data": {"option_id": "a"}},
            headers=LEARNER
        )
        assert saved.status_code == 200
        assert saved.json()["data"]["is_correct"] is None

        submitted = client.post(
            f"{API}/attempts/{attempt_id}/submit",
            json={"responses": [{"question_id": essay_id, "answer_data": {"text": "Castles and vineyards"}}]},
            headers=LEARNER
        ).json()["data"]
        assert submitted["status"] == "submitted"
        assert submitted["score"] == 5

        pending = client.get(f"{API}/grading/pending", headers=GRADER).json()["data"]
        assert [item["attempt"]["id"] for item in pending] == [attempt_id]

        graded = client.post(
            f"{API}/attempts/{attempt_id}/grade",
            json={"grades": [{"question_id": essay_id, "points_earned": 3}], "feedback": "Nice"},
            headers=GRADER
        )
        assert graded.status_code == 200
        data = graded.json()["data"]
        assert data["status"] == "graded"
        assert data["score"] == 8
        assert data["percentage"] == 80
        assert data["passed"] is True
        assert data["graded_by"] == "grader-1"

        analytics = client.get(f"{API}/assessments/{assessment_id}/analytics", headers=INSTRUCTOR).json()["data"]
        assert analytics["total_attempts"] == 1
        assert analytics["average_score"] == 80
        assert analytics["attempt_distribution"] == {"1": 1}

    def test_list_and_expire_attempts(self, client):
        assessment_id, _, _ = create_published_assessment(client)
        mine = client.post(f"{API}/assessments/{assessment_id}/attempts", headers=LEARNER).json()["data"]
        client.post(f"{API}/assessments/{assessment_id}/attempts", headers=OTHER_LEARNER)

        listed = client.get(f"{API}/attempts", params={"assessment_id": assessment_id}, headers=LEARNER)
        assert [a["id"] for a in listed.json()["data"]] == [mine["id"]]

        expired = client.post(f"{API}/attempts/{mine['id']}/expire", headers=LEARNER).json()["data"]
        assert expired["status"] == "expired"

        in_progress = client.get(
            f"{API}/attempts", params={"assessment_id": assessment_id, "status": "in_progress"}, headers=GRADER
        ).json()["data"]
        assert len(in_progress) == 1

    def test_rubrics(self, client):
        created = client.post(f"{API}/rubrics", json={
            "title": "Essay rubric",
            "criteria": [
                {"name": "Content", "max_points": 6},
                {"name": "Style", "levels": [{"name": "plain", "points": 1}, {"name": "vivid", "points": 4}]},
            ],
        }, headers=INSTRUCTOR)
        assert created.status_code == 201
        rubric = created.json()["data"]
        assert rubric["total_points"] == 10

        fetched = client.get(f"{API}/rubrics/{rubric['id']}", headers=GRADER).json()["data"]
        assert fetched["id"] == rubric["id"]

        score = client.post(
            f"{API}/rubrics/{rubric['id']}/evaluate",
            json={"selections": {"Content": 5, "Style": "vivid"}},
            headers=GRADER
        ).json()["data"]
        assert score["total"] == 9
        assert score["percentage"] == 90


class TestErrors:
    def test_missing_identity(self, client):
        response = client.post(f"{API}/assessments", json={"course_id": "c", "title": "t"})
        assert response.status_code == 401
        assert response.json()["code"] == "not_authenticated"

    def test_learner_cannot_author(self, client):
        response = client.post(f"{API}/assessments", json={"course_id": "c", "title": "t"}, headers=LEARNER)
        assert response.status_code == 403
        assert response.json()["status"] == "error"
        assert response.json()["code"] == "not_authorized"

    def test_unknown_attempt(self, client):
        response = client.get(f"{API}/attempts/missing", headers=GRADER)
        assert response.status_code == 404
        assert response.json()["details"]["resource_id"] == "missing"

    def test_attempt_limit(self, client):
        assessment_id, _, _ = create_published_assessment(client, max_attempts=1)
        assert client.post(f"{API}/assessments/{assessment_id}/attempts", headers=LEARNER).status_code == 201

        response = client.post(f"{API}/assessments/{assessment_id}/attempts", headers=LEARNER)
        assert response.status_code == 409
        assert response.json()["code"] == "attempt_limit_exceeded"

    def test_double_submit(self, client):
        assessment_id, mc_id, _ = create_published_assessment(client)
        attempt_id = client.post(f"{API}/assessments/{assessment_id}/attempts", headers=LEARNER).json()["data"]["id"]

        assert client.post(f"{API}/attempts/{attempt_id}/submit", headers=LEARNER).status_code == 200
        response = client.post(f"{API}/attempts/{attempt_id}/submit", headers=LEARNER)
        assert response.status_code == 409
        assert response.json()["code"] == "attempt_not_editable"

    def test_bad_answer(self, client):
        assessment_id, mc_id, _ = create_published_assessment(client)
        attempt_id = client.post(f"{API}/assessments/{assessment_id}/attempts", headers=LEARNER).json()["data"]["id"]

        response = client.put(
            f"{API}/attempts/{attempt_id}/responses/{mc_id}",
            json={"answer_data": {"option_id": "z"}},
            headers=LEARNER
        )
        assert response.status_code == 422
        assert response.json()["code"] == "validation_error"

    def test_request_validation(self, client):
        response = client.post(f"{API}/assessments", json={"course_id": "c", "title": ""}, headers=INSTRUCTOR)
        assert response.status_code == 422
        assert response.json()["message"] == "Validation error"

    def test_grade_with_both_points_and_rubric(self, client):
        assessment_id, _, essay_id = create_published_assessment(client)
        attempt_id = client.post(f"{API}/assessments/{assessment_id}/attempts", headers=LEARNER).json()["data"]["id"]
        client.post(f"{API}/attempts/{attempt_id}/submit", headers=LEARNER)

        response = client.post(f"{API}/attempts/{attempt_id}/grade", json={"grades": [
            {"question_id": essay_id, "points_earned": 2, "rubric_id": "r1", "selections": {"x": 1}},
        ]}, headers=GRADER)
        assert response.status_code == 422


def test_startup_warns_when_identity_is_unverified(monkeypatch, caplog):
    monkeypatch.setattr(settings, "JWT_SECRET", None)
    with caplog.at_level(logging.WARNING):
        with TestClient(create_app(GradebookService.in_memory())):
            pass
    assert any("JWT_SECRET is not set" in r.getMessage() for r in caplog.records)

    caplog.clear()
    monkeypatch.setattr(settings, "JWT_SECRET", "test-secret")
    with caplog.at_level(logging.WARNING):
        with TestClient(create_app(GradebookService.in_memory())):
            pass
    assert not any("JWT_SECRET is not set" in r.getMessage() for r in caplog.records)
