"""Tests for progress, unlock and course progress endpoints."""

import json

import pytest
from fastapi.testclient import TestClient

from conftest import NOW, bundle_course_dict
from progression.db.enrollment_repository import enroll, update_course_progress
from progression.web.api import create_app

HEADERS = {"X-Student-Id": "stu01"}
FULL_WATCH = {"segments": [[0, 10], [9, 20]], "videoDuration": 20, "frontendPercentage": 100}


@pytest.fixture
def client(enrolled, data_dir):
    return TestClient(create_app())


def _complete_video(client, watch=FULL_WATCH):
    return client.post(
        "/api/contents/c1/progress",
        headers=HEADERS,
        json={"completionStatus": "completed", "watchData": watch},
    )


class TestProgressEndpoint:
    """Tests for POST /api/contents/{id}/progress."""

    def test_video_completion(self, client):
        response = _complete_video(client)
        assert response.status_code == 200

        data = response.json()
        assert data["success"] is True
        assert data["isNewCompletion"] is True
        assert data["contentProgress"]["completionStatus"] == "completed"
        assert data["contentProgress"]["watchCount"] == 1
        assert data["watchValidation"]["actualPercentage"] == 100
        assert data["courseProgress"]["progress"] == 17

    def test_insufficient_coverage(self, client):
        watch = {"segments": [[0, 5]], "videoDuration": 20, "frontendPercentage": 100}
        response = _complete_video(client, watch)

        assert response.status_code == 400
        data = response.json()
        assert data["success"] is False
        assert data["actualPercentage"] == 25
        assert data["requiredPercentage"] == 85

    def test_watch_limit(self, client):
        _complete_video(client)
        _complete_video(client)
        response = _complete_video(client)

        assert response.status_code == 400
        data = response.json()
        assert data["limitReached"] is True
        assert data["watchCount"] == 2
        assert data["maxWatchCount"] == 2

    def test_locked_completion(self, client):
        response = client.post(
            "/api/contents/c2/progress", headers=HEADERS, json={"completionStatus": "completed"}
        )
        assert response.status_code == 403
        assert response.json()["missingContent"] == "c1"

    def test_quiz_completion_rejected(self, client):
        response = client.post(
            "/api/contents/quiz1/progress", headers=HEADERS, json={"completionStatus": "completed"}
        )
        assert response.status_code == 400

    def test_percentage_out_of_range(self, client):
        response = client.post(
            "/api/contents/c2/progress", headers=HEADERS, json={"progressPercentage": 150}
        )
        assert response.status_code == 400
        data = response.json()
        assert data["success"] is False
        assert data["message"] == "Invalid request"
        assert data["errors"][0]["field"] == "progressPercentage"
        assert data["errors"][0]["type"] == "less_than_equal"

    def test_malformed_json_body(self, client):
        response = client.post(
            "/api/contents/c2/progress",
            headers={**HEADERS, "Content-Type": "application/json"},
            content="{not json",
        )
        assert response.status_code == 400
        assert response.json()["success"] is False
        assert response.json()["errors"]

    def test_requires_student_header(self, client):
        response = client.post("/api/contents/c1/progress", json={})
        assert response.status_code == 401
        assert response.json() == {"success": False, "message": "Missing X-Student-Id header"}


class TestUnlockStatusEndpoint:
    """Tests for GET /api/contents/{id}/unlock-status."""

    def test_first_item_unlocked(self, client):
        data = client.get("/api/contents/c1/unlock-status", headers=HEADERS).json()
        assert data["unlocked"] is True

    def test_locked_names_missing_item(self, client):
        data = client.get("/api/contents/c2/unlock-status", headers=HEADERS).json()
        assert data == {
            "unlocked": False,
            "reason": 'Complete "Intro video" first',
            "missingContent": "c1",
            "missingContentTitle": "Intro video",
        }

    def test_unlocks_after_completion(self, client):
        _complete_video(client)
        data = client.get("/api/contents/c2/unlock-status", headers=HEADERS).json()
        assert data["unlocked"] is True

    def test_unknown_content(self, client):
        response = client.get("/api/contents/ghost/unlock-status", headers=HEADERS)
        assert response.status_code == 200
        assert response.json()["unlocked"] is False
        assert response.json()["reason"] == "Content not found"

    def test_not_enrolled(self, client):
        response = client.get(
            "/api/contents/c1/unlock-status", headers={"X-Student-Id": "stu02"}
        )
        assert response.status_code == 403


class TestCourseProgressEndpoint:
    """Tests for GET /api/courses/{id}/progress."""

    def test_course_progress(self, client):
        _complete_video(client)
        response = client.get("/api/courses/course-1/progress", headers=HEADERS)

        assert response.status_code == 200
        data = response.json()
        assert data["courseId"] == "course-1"
        assert data["progress"] == 17
        assert data["status"] == "active"
        assert [t["topicId"] for t in data["topics"]] == ["t1", "t2"]
        assert data["contents"][0]["contentId"] == "c1"

    def test_not_enrolled(self, client):
        response = client.get("/api/courses/course-1/progress", headers={"X-Student-Id": "x"})
        assert response.status_code == 403


@pytest.fixture
def bundle_client(client, data_dir):
    for course_id, title, order in [("week-1", "Week 1", 0), ("week-2", "Week 2", 1)]:
        data = bundle_course_dict(course_id, title, order)
        (data_dir / "courses" / f"{course_id}.json").write_text(json.dumps(data))
        enroll("stu01", course_id, now=NOW)
    return client


class TestCourseUnlockEndpoint:
    """Tests for GET /api/courses/{id}/unlock-status and course locks."""

    def test_course_outside_bundle(self, client):
        data = client.get("/api/courses/course-1/unlock-status", headers=HEADERS).json()
        assert data == {"unlocked": True, "reason": "No sequential requirement"}

    def test_locked_names_missing_course(self, bundle_client):
        response = bundle_client.get("/api/courses/week-2/unlock-status", headers=HEADERS)
        assert response.status_code == 200
        assert response.json() == {
            "unlocked": False,
            "reason": 'Complete "Week 1" first',
            "missingCourse": "week-1",
            "missingCourseTitle": "Week 1",
            "missingCourseOrder": 0,
        }

    def test_unknown_course(self, client):
        response = client.get("/api/courses/week-9/unlock-status", headers=HEADERS)
        assert response.status_code == 404
        assert response.json()["success"] is False

    def test_locked_course_content_rejected(self, bundle_client):
        response = bundle_client.post(
            "/api/contents/week-2-notes/progress",
            headers=HEADERS,
            json={"completionStatus": "in_progress"},
        )

        assert response.status_code == 403
        data = response.json()
        assert data["success"] is False
        assert data["message"] == 'Complete "Week 1" first'
        assert data["missingCourse"] == "week-1"
        assert data["missingCourseTitle"] == "Week 1"
        assert data["missingCourseOrder"] == 0

    def test_content_status_reports_course(self, bundle_client):
        data = bundle_client.get(
            "/api/contents/week-2-notes/unlock-status", headers=HEADERS
        ).json()
        assert data["unlocked"] is False
        assert data["missingCourse"] == "week-1"
        assert "missingContent" not in data

    def test_opens_after_previous_course(self, bundle_client):
        update_course_progress("stu01", "week-1", 100, ["week-1-t1"], now=NOW)
        data = bundle_client.get("/api/courses/week-2/unlock-status", headers=HEADERS).json()
        assert data["unlocked"] is True
