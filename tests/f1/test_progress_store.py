"""Tests for enrollments and content_progress repositories."""

import sqlite3

import pytest

from progression.core.errors import NotEnrolledError, WatchLimitExceededError
from progression.db.database import get_db
from progression.db.enrollment_repository import (
    enroll,
    get_enrollment,
    list_enrolled_course_ids,
    require_enrollment,
    update_course_progress,
)
from progression.db.models import CompletionStatus
from progression.db.progress_repository import (
    ProgressUpdate,
    apply_progress_update,
    get_completed_content_ids,
    get_content_progress,
    resolve_status,
    touch_content_progress,
)

STUDENT = "stu01"
COURSE = "course-1"


def _update(content_id="c1", content_type="video", **kwargs):
    return apply_progress_update(
        STUDENT, COURSE, "t1", content_id, content_type, ProgressUpdate(**kwargs)
    )


class TestEnrollments:
    """Tests for enrollment repository."""

    def test_enroll_is_idempotent(self, db):
        first = enroll(STUDENT, COURSE)
        second = enroll(STUDENT, COURSE)
        assert first.enrolled_at == second.enrolled_at
        assert list_enrolled_course_ids(STUDENT) == [COURSE]

    def test_require_enrollment_raises(self, db):
        with pytest.raises(NotEnrolledError) as exc_info:
            require_enrollment(STUDENT, COURSE)
        assert exc_info.value.status_code == 403
        assert exc_info.value.context["course_id"] == COURSE

    def test_update_course_progress_clamps_and_completes(self, enrolled):
        update_course_progress(STUDENT, COURSE, 140, ["t1", "t2"])
        enrollment = get_enrollment(STUDENT, COURSE)
        assert enrollment.progress == 100
        assert enrollment.status == "completed"
        assert enrollment.completed_topics == ["t1", "t2"]

    def test_progress_below_100_stays_active(self, enrolled):
        update_course_progress(STUDENT, COURSE, 50, [])
        assert get_enrollment(STUDENT, COURSE).status == "active"


class TestResolveStatus:
    """Tests for the forward-only status rule."""

    @pytest.mark.parametrize(
        "current,requested,expected",
        [
            (CompletionStatus.NOT_STARTED, CompletionStatus.IN_PROGRESS, CompletionStatus.IN_PROGRESS),
            (CompletionStatus.IN_PROGRESS, CompletionStatus.COMPLETED, CompletionStatus.COMPLETED),
            (CompletionStatus.COMPLETED, CompletionStatus.IN_PROGRESS, CompletionStatus.COMPLETED),
            (CompletionStatus.COMPLETED, CompletionStatus.FAILED, CompletionStatus.COMPLETED),
            (CompletionStatus.IN_PROGRESS, CompletionStatus.NOT_STARTED, CompletionStatus.IN_PROGRESS),
            (CompletionStatus.FAILED, CompletionStatus.IN_PROGRESS, CompletionStatus.FAILED),
            (CompletionStatus.FAILED, CompletionStatus.COMPLETED, CompletionStatus.COMPLETED),
            (CompletionStatus.IN_PROGRESS, None, CompletionStatus.IN_PROGRESS),
        ],
    )
    def test_transitions(self, current, requested, expected):
        assert resolve_status(current, requested) is expected


class TestContentProgress:
    """Tests for content progress updates."""

    def test_record_created_lazily(self, enrolled):
        assert get_content_progress(STUDENT, "c1") is None
        record = touch_content_progress(STUDENT, COURSE, "t1", "c1", "video")
        assert record.completion_status is CompletionStatus.NOT_STARTED
        assert record.attempts == 0

    def test_completion_sets_percentage_and_completed_at(self, enrolled):
        result = _update(completion_status=CompletionStatus.COMPLETED)
        assert result.record.progress_percentage == 100
        assert result.record.completed_at is not None
        assert result.is_new_completion is True

    def test_completed_never_regresses(self, enrolled):
        _update(completion_status=CompletionStatus.COMPLETED)
        result = _update(completion_status=CompletionStatus.IN_PROGRESS, progress_percentage=10)
        assert result.record.completion_status is CompletionStatus.COMPLETED
        assert result.record.progress_percentage == 100
        assert result.is_new_completion is False

    def test_percentage_never_decreases(self, enrolled):
        _update(completion_status=CompletionStatus.IN_PROGRESS, progress_percentage=60)
        result = _update(progress_percentage=30)
        assert result.record.progress_percentage == 60

    def test_percentage_is_clamped(self, enrolled):
        result = _update(progress_percentage=250)
        assert result.record.progress_percentage == 100

    def test_watch_count_increments(self, enrolled):
        result = _update(increment_watch_count=True, max_watch_count=2)
        assert result.record.watch_count == 1

    def test_watch_limit_rejects_and_leaves_count(self, enrolled):
        """maxWatchCount=2 and watchCount=2: rejected, count unchanged."""
        _update(increment_watch_count=True, max_watch_count=2)
        _update(increment_watch_count=True, max_watch_count=2)

        with pytest.raises(WatchLimitExceededError) as exc_info:
            _update(
                completion_status=CompletionStatus.COMPLETED,
                increment_watch_count=True,
                max_watch_count=2,
            )

        assert exc_info.value.context["limit_reached"] is True
        record = get_content_progress(STUDENT, "c1")
        assert record.watch_count == 2
        assert record.completion_status is CompletionStatus.NOT_STARTED

    def test_completed_ids(self, enrolled):
        _update("c1", completion_status=CompletionStatus.COMPLETED)
        _update("c2", "pdf", completion_status=CompletionStatus.IN_PROGRESS)
        assert get_completed_content_ids(STUDENT, COURSE) == {"c1"}

    def test_progress_requires_enrollment(self, db):
        """Foreign key to enrollments rejects orphan progress."""
        with pytest.raises(sqlite3.IntegrityError):
            _update(completion_status=CompletionStatus.IN_PROGRESS)


class TestSchema:
    """Tests for schema constraints."""

    def test_one_in_progress_attempt_per_content(self, enrolled):
        touch_content_progress(STUDENT, COURSE, "t1", "quiz1", "quiz")
        insert = (
            "INSERT INTO attempts (student_id, content_id, attempt_number, status,"
            " started_at, passing_score) VALUES (?, ?, ?, 'in_progress', '2026-01-01', 60)"
        )
        with get_db() as conn:
            conn.execute(insert, (STUDENT, "quiz1", 1))

        with pytest.raises(sqlite3.IntegrityError):
            with get_db() as conn:
                conn.execute(insert, (STUDENT, "quiz1", 2))
