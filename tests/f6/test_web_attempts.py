"""Tests for attempt endpoints."""

import pytest
from fastapi.testclient import TestClient

from progression.web.api import create_app

HEADERS = {"X-Student-Id": "stu01"}
ALL_RIGHT = {"q1": "x = 3", "q2": "True", "q3": "x+1"}


@pytest.fixture
def client(enrolled, data_dir):
    """Test client with an enrolled student and the test catalog."""
    return TestClient(create_app())


@pytest.fixture
def quiz_ready(client, complete):
    complete("c1", content_type="video")
    complete("c2")
    return client


def _start(client):
    return client.post("/api/contents/quiz1/attempts", headers=HEADERS)


class TestStartEndpoint:
    """Tests for POST /api/contents/{id}/attempts."""

    def test_requires_student_header(self, client):
        response = client.post("/api/contents/quiz1/attempts")
        assert response.status_code == 401

    def test_start(self, quiz_ready):
        response = _start(quiz_ready)
        assert response.status_code == 200

        data = response.json()
        assert data["contentId"] == "quiz1"
        assert data["attemptNumber"] == 1
        assert data["status"] == "in_progress"
        assert data["timing"]["durationMinutes"] == 30
        assert data["timing"]["isExpired"] is False
        assert len(data["questions"]) == 3

    def test_questions_carry_no_answer_key(self, quiz_ready):
        for question in _start(quiz_ready).json()["questions"]:
            assert set(question) == {
                "id",
                "questionType",
                "text",
                "image",
                "points",
                "displayIndex",
                "originalIndex",
                "options",
            }

    def test_start_twice_returns_same_attempt(self, quiz_ready):
        first = _start(quiz_ready).json()
        second = _start(quiz_ready).json()
        assert second["attemptNumber"] == first["attemptNumber"]
        assert [q["id"] for q in second["questions"]] == [q["id"] for q in first["questions"]]

    def test_locked(self, client):
        response = _start(client)
        assert response.status_code == 403

        data = response.json()
        assert data["success"] is False
        assert data["message"] == 'Complete "Intro video" first'
        assert data["missingContent"] == "c1"
        assert data["missingContentTitle"] == "Intro video"

    def test_not_enrolled(self, client):
        response = client.post("/api/contents/quiz1/attempts", headers={"X-Student-Id": "stu02"})
        assert response.status_code == 403
        assert response.json()["success"] is False

    def test_unknown_content(self, client):
        response = client.post("/api/contents/ghost/attempts", headers=HEADERS)
        assert response.status_code == 404

    def test_not_an_assessment(self, client):
        response = client.post("/api/contents/c1/attempts", headers=HEADERS)
        assert response.status_code == 400
        assert response.json()["contentType"] == "video"


class TestResumeAndQuestionEndpoints:
    """Tests for current attempt and single-question fetch."""

    def test_current(self, quiz_ready):
        started = _start(quiz_ready).json()
        response = quiz_ready.get("/api/contents/quiz1/attempts/current", headers=HEADERS)

        assert response.status_code == 200
        data = response.json()
        assert data["attemptNumber"] == started["attemptNumber"]
        assert 0 < data["timing"]["remainingSeconds"] <= 30 * 60

    def test_current_without_attempt(self, quiz_ready):
        response = quiz_ready.get("/api/contents/quiz1/attempts/current", headers=HEADERS)
        assert response.status_code == 404

    def test_question_by_display_index(self, quiz_ready):
        started = _start(quiz_ready).json()
        response = quiz_ready.get(
            "/api/contents/quiz1/attempts/1/questions/1", headers=HEADERS
        )
        assert response.status_code == 200
        assert response.json() == started["questions"][1]

    def test_question_out_of_range(self, quiz_ready):
        _start(quiz_ready)
        response = quiz_ready.get(
            "/api/contents/quiz1/attempts/1/questions/9", headers=HEADERS
        )
        assert response.status_code == 404
        assert response.json()["success"] is False


class TestSubmitEndpoint:
    """Tests for POST /api/contents/{id}/attempts/{n}/submit."""

    def test_submit(self, quiz_ready):
        _start(quiz_ready)
        response = quiz_ready.post(
            "/api/contents/quiz1/attempts/1/submit",
            headers=HEADERS,
            json={"answers": ALL_RIGHT, "timeSpent": 120},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["score"] == 100
        assert data["passed"] is True
        assert data["correctAnswers"] == 3
        assert data["nextContentId"] == "c3"
        assert data["courseProgress"] == 50
        assert data["alreadySubmitted"] is False

    def test_resubmit_returns_stored_result(self, quiz_ready):
        _start(quiz_ready)
        url = "/api/contents/quiz1/attempts/1/submit"
        quiz_ready.post(url, headers=HEADERS, json={"answers": {"q1": "x = 3"}})
        retry = quiz_ready.post(url, headers=HEADERS, json={"answers": ALL_RIGHT})

        assert retry.status_code == 200
        assert retry.json()["alreadySubmitted"] is True
        assert retry.json()["score"] == 33

    def test_negative_time_rejected(self, quiz_ready):
        _start(quiz_ready)
        response = quiz_ready.post(
            "/api/contents/quiz1/attempts/1/submit",
            headers=HEADERS,
            json={"answers": ALL_RIGHT, "timeSpent": -5},
        )
        assert response.status_code == 400
        assert response.json()["errors"][0]["field"] == "timeSpent"

    def test_unknown_attempt(self, quiz_ready):
        response = quiz_ready.post(
            "/api/contents/quiz1/attempts/3/submit", headers=HEADERS, json={"answers": {}}
        )
        assert response.status_code == 404

    def test_attempt_limit(self, quiz_ready):
        for number in (1, 2):
            _start(quiz_ready)
            quiz_ready.post(
                f"/api/contents/quiz1/attempts/{number}/submit",
                headers=HEADERS,
                json={"answers": {}},
            )

        response = _start(quiz_ready)
        assert response.status_code == 403
        assert response.json()["maxAttempts"] == 2


class TestResultsEndpoint:
    """Tests for GET /api/contents/{id}/results."""

    def test_answer_key_hidden_after_failure(self, quiz_ready):
        _start(quiz_ready)
        quiz_ready.post(
            "/api/contents/quiz1/attempts/1/submit", headers=HEADERS, json={"answers": {}}
        )

        data = quiz_ready.get("/api/contents/quiz1/results", headers=HEADERS).json()
        assert data["showCorrectAnswers"] is False
        assert data["attemptsRemaining"] == 1
        for answer in data["latestAttempt"]["answers"]:
            assert "correctAnswer" not in answer
            assert "explanation" not in answer

    def test_answer_key_revealed_after_pass(self, quiz_ready):
        _start(quiz_ready)
        quiz_ready.post(
            "/api/contents/quiz1/attempts/1/submit",
            headers=HEADERS,
            json={"answers": ALL_RIGHT},
        )

        data = quiz_ready.get("/api/contents/quiz1/results", headers=HEADERS).json()
        assert data["showCorrectAnswers"] is True
        q1 = next(a for a in data["latestAttempt"]["answers"] if a["questionId"] == "q1")
        assert q1["correctAnswer"] == "x = 3"
        assert q1["explanation"] == "Subtract 4 then divide by 2."
