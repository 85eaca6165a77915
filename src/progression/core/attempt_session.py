"""Attempt session manager.

Responsibilities:
- Start timed quiz/homework attempts (idempotent while one is in progress)
- Resume attempts with remaining time and lazy expiry
- Deliver questions through the attempt's shuffle plan
- Grade and finalize submissions exactly once
- Report attempt history and results
- Run the same lifecycle for standalone quizzes, which skip every lock

Lifecycle:
    not_started -> in_progress -> completed | failed | timed_out

There are no timers. Expiry is detected whenever an attempt is read: an
attempt past its deadline plus the grace window is moved to timed_out on
the next start, resume, question fetch, submit or results call.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

import structlog

from progression.config.app_config import load_app_config
from progression.core.access import (
    locate_for_student,
    locate_quiz_for_student,
    require_assessment,
    require_quiz_available,
    require_unlocked,
)
from progression.core.content_graph import ContentLocation
from progression.core.errors import (
    AttemptExpiredError,
    AttemptNotFoundError,
    ValidationError,
)
from progression.core.grader import grade_submission
from progression.core.notifications import notify_completion
from progression.core.progress_aggregator import refresh_course_progress
from progression.core.secure_delivery import (
    SecureQuestion,
    build_secure_questions,
    get_secure_question,
)
from progression.core.shuffle_engine import get_or_create_shuffle_plan
from progression.core.unlock_resolver import resolve_unlock
from progression.db.attempt_repository import (
    AttemptOutcome,
    create_attempt,
    finalize_attempt,
    get_attempt,
    get_in_progress_attempt,
    get_progress_with_attempts,
)
from progression.db.models import AttemptRecord, AttemptStatus
from progression.db.progress_repository import get_completed_content_ids

logger = structlog.get_logger(__name__)

# =============================================================================
# DATA CLASSES
# =============================================================================


@dataclass
class AttemptTiming:
    """Timing information of an attempt as seen by the client."""

    duration_minutes: int
    remaining_seconds: int | None
    is_expired: bool
    passing_score: int
    expected_end: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "duration_minutes": self.duration_minutes,
            "remaining_seconds": self.remaining_seconds,
            "is_expired": self.is_expired,
            "passing_score": self.passing_score,
            "expected_end": self.expected_end.isoformat() if self.expected_end else None,
        }


@dataclass
class AttemptView:
    """An attempt with its timing and secure questions."""

    content_id: str
    title: str
    attempt: AttemptRecord
    timing: AttemptTiming
    questions: list[SecureQuestion] = field(default_factory=list)
    created: bool = False

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "content_id": self.content_id,
            "title": self.title,
            "attempt_number": self.attempt.attempt_number,
            "status": self.attempt.status.value,
            "started_at": self.attempt.started_at.isoformat(),
            "timing": self.timing.to_dict(),
            "questions": [q.to_dict() for q in self.questions],
        }


@dataclass
class SubmissionResult:
    """Outcome of a submission."""

    attempt_number: int
    status: AttemptStatus
    score: int
    correct_answers: int
    total_questions: int
    points: int
    passed: bool
    passing_score: int
    next_content_id: str | None = None
    course_progress: int | None = None
    aggregate_error: str | None = None
    already_submitted: bool = False

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result = {
            "attempt_number": self.attempt_number,
            "status": self.status.value,
            "score": self.score,
            "correct_answers": self.correct_answers,
            "total_questions": self.total_questions,
            "points": self.points,
            "passed": self.passed,
            "passing_score": self.passing_score,
            "next_content_id": self.next_content_id,
            "course_progress": self.course_progress,
            "already_submitted": self.already_submitted,
        }
        if self.aggregate_error is not None:
            result["aggregate_error"] = self.aggregate_error
        return result


@dataclass
class AttemptResults:
    """Attempt history of a student on one assessment."""

    content_id: str
    title: str
    completion_status: str
    best_score: int
    attempts_used: int
    max_attempts: int
    passing_score: int
    attempts: list[AttemptRecord]
    reveal_answers: bool
    explanations: dict[str, str] = field(default_factory=dict)

    @property
    def latest(self) -> AttemptRecord | None:
        return self.attempts[-1] if self.attempts else None

    def _attempt_dict(self, attempt: AttemptRecord) -> dict[str, Any]:
        answers = []
        for answer in attempt.answers:
            entry = {
                "question_id": answer.question_id,
                "selected_answer": answer.selected_answer,
                "is_correct": answer.is_correct,
                "points": answer.points,
                "question_type": answer.question_type,
            }
            if self.reveal_answers:
                entry["correct_answer"] = answer.correct_answer
                entry["explanation"] = self.explanations.get(answer.question_id, "")
            answers.append(entry)

        return {
            "attempt_number": attempt.attempt_number,
            "status": attempt.status.value,
            "started_at": attempt.started_at.isoformat(),
            "completed_at": attempt.completed_at.isoformat() if attempt.completed_at else None,
            "time_spent": attempt.time_spent,
            "score": attempt.score,
            "correct_answers": attempt.correct_answers,
            "total_questions": attempt.total_questions,
            "points": attempt.points,
            "passed": attempt.passed,
            "passing_score": attempt.passing_score,
            "answers": answers,
        }

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        latest = self.latest
        return {
            "content_id": self.content_id,
            "title": self.title,
            "completion_status": self.completion_status,
            "best_score": self.best_score,
            "attempts_used": self.attempts_used,
            "max_attempts": self.max_attempts,
            "attempts_remaining": max(self.max_attempts - self.attempts_used, 0),
            "passing_score": self.passing_score,
            "show_correct_answers": self.reveal_answers,
            "latest_attempt": self._attempt_dict(latest) if latest else None,
            "attempts": [self._attempt_dict(a) for a in self.attempts],
        }


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================


def _now(now: datetime | None) -> datetime:
    return now or datetime.now(timezone.utc)


def _grace() -> timedelta:
    return timedelta(seconds=load_app_config().attempts.submission_grace_seconds)


def _is_past_grace(attempt: AttemptRecord, now: datetime) -> bool:
    return attempt.expected_end is not None and now > attempt.expected_end + _grace()


def compute_timing(
    attempt: AttemptRecord, duration_minutes: int, now: datetime
) -> AttemptTiming:
    """Remaining time of an attempt; untimed attempts never expire."""
    if attempt.expected_end is None:
        return AttemptTiming(
            duration_minutes=duration_minutes,
            remaining_seconds=None,
            is_expired=False,
            passing_score=attempt.passing_score,
        )

    remaining = max(0, int((attempt.expected_end - now).total_seconds()))
    is_expired = remaining == 0 or attempt.status is AttemptStatus.TIMED_OUT
    return AttemptTiming(
        duration_minutes=duration_minutes,
        remaining_seconds=remaining,
        is_expired=is_expired,
        passing_score=attempt.passing_score,
        expected_end=attempt.expected_end,
    )


def _expire(location: ContentLocation, attempt: AttemptRecord, now: datetime) -> AttemptRecord:
    """Move an expired attempt to timed_out and return the stored attempt."""
    elapsed = int(((attempt.expected_end or now) - attempt.started_at).total_seconds())
    result = finalize_attempt(
        attempt.student_id,
        attempt.content_id,
        attempt.attempt_number,
        AttemptOutcome(
            status=AttemptStatus.TIMED_OUT,
            score=0,
            correct_answers=0,
            total_questions=len(location.item.selected_questions),
            points=0,
            passed=False,
            time_spent=max(elapsed, 0),
        ),
        now=now,
    )
    if result is None:
        raise AttemptNotFoundError(
            "Attempt not found", attempt_number=attempt.attempt_number
        )

    if result.transitioned:
        logger.info(
            "attempt_timed_out",
            student_id=attempt.student_id,
            content_id=attempt.content_id,
            attempt_number=attempt.attempt_number,
        )
    return result.attempt


def _reclaim_expired(
    location: ContentLocation, student_id: str, now: datetime
) -> AttemptRecord | None:
    """Return the in-progress attempt, timing it out first if it expired.

    Returns:
        The live in-progress attempt, or None when there is none
    """
    attempt = get_in_progress_attempt(student_id, location.item.content_id)
    if attempt is not None and _is_past_grace(attempt, now):
        _expire(location, attempt, now)
        return None
    return attempt


def _view(
    location: ContentLocation,
    attempt: AttemptRecord,
    now: datetime,
    created: bool = False,
    with_questions: bool = True,
) -> AttemptView:
    item = location.item
    questions: list[SecureQuestion] = []
    if with_questions:
        plan = get_or_create_shuffle_plan(location.course, item, attempt)
        questions = build_secure_questions(location.course, item, plan)

    return AttemptView(
        content_id=item.content_id,
        title=item.title,
        attempt=attempt,
        timing=compute_timing(attempt, item.settings.duration_minutes, now),
        questions=questions,
        created=created,
    )


def _stored_result(attempt: AttemptRecord) -> SubmissionResult:
    """Result of an attempt that is already terminal."""
    if attempt.status is AttemptStatus.TIMED_OUT:
        raise AttemptExpiredError(
            "Time is up for this attempt", attempt_number=attempt.attempt_number
        )
    return SubmissionResult(
        attempt_number=attempt.attempt_number,
        status=attempt.status,
        score=attempt.score or 0,
        correct_answers=attempt.correct_answers or 0,
        total_questions=attempt.total_questions or 0,
        points=attempt.points or 0,
        passed=bool(attempt.passed),
        passing_score=attempt.passing_score,
        already_submitted=True,
    )


def _next_unlocked_content_id(location: ContentLocation, student_id: str) -> str | None:
    next_item = location.course.next_content(location.item.content_id)
    if next_item is None:
        return None
    completed = get_completed_content_ids(student_id, location.course.course_id)
    status = resolve_unlock(location.course, next_item.content_id, completed)
    return next_item.content_id if status.unlocked else None


# =============================================================================
# SESSION OPERATIONS
# =============================================================================


def _start(location: ContentLocation, student_id: str, now: datetime) -> AttemptView:
    _reclaim_expired(location, student_id, now)

    item = location.item
    settings = item.settings
    result = create_attempt(
        student_id=student_id,
        course_id=location.course.course_id,
        topic_id=location.topic_id,
        content_id=item.content_id,
        content_type=item.type,
        passing_score=settings.passing_score,
        max_attempts=settings.max_attempts,
        duration_minutes=settings.duration_minutes,
        now=now,
    )

    logger.info(
        "attempt_started" if result.created else "attempt_resumed",
        student_id=student_id,
        content_id=item.content_id,
        attempt_number=result.attempt.attempt_number,
        standalone=location.is_standalone,
    )
    return _view(location, result.attempt, now, created=result.created)


def _resume(location: ContentLocation, student_id: str, now: datetime) -> AttemptView:
    content_id = location.item.content_id
    attempt = get_in_progress_attempt(student_id, content_id)
    if attempt is None:
        raise AttemptNotFoundError("No attempt in progress", content_id=content_id)

    if _is_past_grace(attempt, now):
        expired = _expire(location, attempt, now)
        return _view(location, expired, now, with_questions=False)

    return _view(location, attempt, now)


def _question(
    location: ContentLocation,
    student_id: str,
    attempt_number: int,
    display_index: int,
    now: datetime,
) -> SecureQuestion:
    attempt = get_attempt(student_id, location.item.content_id, attempt_number)
    if attempt is None:
        raise AttemptNotFoundError("Attempt not found", attempt_number=attempt_number)

    if attempt.status is AttemptStatus.IN_PROGRESS and _is_past_grace(attempt, now):
        attempt = _expire(location, attempt, now)
    if attempt.status is AttemptStatus.TIMED_OUT:
        raise AttemptExpiredError("Time is up for this attempt", attempt_number=attempt_number)
    if attempt.status.is_terminal:
        raise ValidationError(
            "Attempt was already submitted", attempt_number=attempt_number
        )

    plan = get_or_create_shuffle_plan(location.course, location.item, attempt)
    return get_secure_question(location.course, location.item, plan, display_index)


def _submit(
    location: ContentLocation,
    student_id: str,
    attempt_number: int,
    answers: dict[str, Any],
    time_spent: int | None,
    now: datetime,
) -> SubmissionResult:
    item = location.item
    content_id = item.content_id

    attempt = get_attempt(student_id, content_id, attempt_number)
    if attempt is None:
        raise AttemptNotFoundError("Attempt not found", attempt_number=attempt_number)

    if attempt.status.is_terminal:
        logger.info(
            "attempt_resubmitted",
            student_id=student_id,
            content_id=content_id,
            attempt_number=attempt_number,
        )
        return _stored_result(attempt)

    if _is_past_grace(attempt, now):
        _expire(location, attempt, now)
        raise AttemptExpiredError(
            "Time is up for this attempt", attempt_number=attempt_number
        )

    report = grade_submission(location.course, item, answers or {}, attempt.passing_score)

    if time_spent is None or time_spent < 0:
        time_spent = int((now - attempt.started_at).total_seconds())

    finalized = finalize_attempt(
        student_id,
        content_id,
        attempt_number,
        AttemptOutcome(
            status=AttemptStatus.COMPLETED if report.passed else AttemptStatus.FAILED,
            score=report.score,
            correct_answers=report.correct_answers,
            total_questions=report.total_questions,
            points=report.points,
            passed=report.passed,
            time_spent=max(int(time_spent), 0),
            answers=report.answers,
        ),
        now=now,
    )
    if finalized is None:
        raise AttemptNotFoundError("Attempt not found", attempt_number=attempt_number)
    if not finalized.transitioned:
        return _stored_result(finalized.attempt)

    if finalized.is_new_completion:
        notify_completion(student_id, item.title, item.type, location.course.title)

    result = SubmissionResult(
        attempt_number=attempt_number,
        status=finalized.attempt.status,
        score=report.score,
        correct_answers=report.correct_answers,
        total_questions=report.total_questions,
        points=report.points,
        passed=report.passed,
        passing_score=report.passing_score,
    )

    # Standalone quizzes sit outside the linear order and course progress
    if not location.is_standalone:
        aggregate = refresh_course_progress(student_id, location.course)
        result.next_content_id = _next_unlocked_content_id(location, student_id)
        if aggregate.course_progress is not None:
            result.course_progress = aggregate.course_progress.progress
        result.aggregate_error = aggregate.error

    logger.info(
        "attempt_submitted",
        student_id=student_id,
        content_id=content_id,
        attempt_number=attempt_number,
        score=result.score,
        passed=result.passed,
        next_content_id=result.next_content_id,
    )
    return result


def _results(location: ContentLocation, student_id: str, now: datetime) -> AttemptResults:
    item = location.item
    settings = item.settings

    _reclaim_expired(location, student_id, now)

    progress = get_progress_with_attempts(student_id, item.content_id)
    attempts = [a for a in progress.quiz_attempts if a.status.is_terminal] if progress else []
    latest = attempts[-1] if attempts else None
    reveal = bool(settings.show_correct_answers and latest is not None and latest.passed)

    explanations = {}
    if reveal:
        for slot in item.selected_questions:
            question = location.course.get_question(slot.question_id)
            if question is not None:
                explanations[question.question_id] = question.explanation

    return AttemptResults(
        content_id=item.content_id,
        title=item.title,
        completion_status=(
            progress.completion_status.value if progress else "not_started"
        ),
        best_score=progress.best_score if progress else 0,
        attempts_used=progress.attempts if progress else 0,
        max_attempts=settings.max_attempts,
        passing_score=settings.passing_score,
        attempts=attempts,
        reveal_answers=reveal,
        explanations=explanations,
    )


# =============================================================================
# PUBLIC API
# =============================================================================


def _locate_assessment(
    student_id: str, content_id: str, data_dir: Path | None
) -> ContentLocation:
    location = locate_for_student(student_id, content_id, data_dir)
    require_assessment(location)
    return location


def start_attempt(
    student_id: str,
    content_id: str,
    data_dir: Path | None = None,
    now: datetime | None = None,
) -> AttemptView:
    """Start an attempt, or return the one already in progress.

    Raises:
        ContentNotFoundError: If the content does not exist
        NotEnrolledError: If the student is not enrolled in the course
        CourseLockedError: If an earlier course of the bundle is unfinished
        ValidationError: If the content is not a quiz or homework
        ContentLockedError: If earlier content is not completed
        ContentAlreadyCompletedError: If the assessment was already passed
        AttemptLimitExceededError: If no attempts remain
    """
    location = _locate_assessment(student_id, content_id, data_dir)
    require_unlocked(student_id, location)
    return _start(location, student_id, _now(now))


def resume_attempt(
    student_id: str,
    content_id: str,
    data_dir: Path | None = None,
    now: datetime | None = None,
) -> AttemptView:
    """Return the current attempt with remaining time.

    An attempt past its deadline plus grace is timed out and returned with
    ``is_expired=True`` and no questions.

    Raises:
        AttemptNotFoundError: If no attempt was ever started
    """
    location = _locate_assessment(student_id, content_id, data_dir)
    return _resume(location, student_id, _now(now))


def get_attempt_question(
    student_id: str,
    content_id: str,
    attempt_number: int,
    display_index: int,
    data_dir: Path | None = None,
    now: datetime | None = None,
) -> SecureQuestion:
    """Fetch one question of an in-progress attempt by display index.

    Raises:
        AttemptNotFoundError: If the attempt does not exist
        AttemptExpiredError: If the attempt expired
        ValidationError: If the attempt is already submitted
        QuestionNotFoundError: If the index is out of range
    """
    location = _locate_assessment(student_id, content_id, data_dir)
    return _question(location, student_id, attempt_number, display_index, _now(now))


def submit_attempt(
    student_id: str,
    content_id: str,
    attempt_number: int,
    answers: dict[str, Any],
    time_spent: int | None = None,
    data_dir: Path | None = None,
    now: datetime | None = None,
) -> SubmissionResult:
    """Grade and finalize a submission.

    Submissions are accepted until the deadline plus the grace window. A
    retried submission of an already finalized attempt returns the stored
    result without regrading.

    Raises:
        AttemptNotFoundError: If the attempt does not exist
        AttemptExpiredError: If the submission arrived after the grace window
        QuestionNotFoundError: If a selected question is missing from the bank
    """
    location = _locate_assessment(student_id, content_id, data_dir)
    return _submit(location, student_id, attempt_number, answers, time_spent, _now(now))


def get_attempt_results(
    student_id: str,
    content_id: str,
    data_dir: Path | None = None,
    now: datetime | None = None,
) -> AttemptResults:
    """Attempt history with answer keys when the latest attempt passed.

    Answer keys are revealed only when the assessment allows showing correct
    answers and the latest finished attempt passed.
    """
    location = _locate_assessment(student_id, content_id, data_dir)
    return _results(location, student_id, _now(now))


# Standalone quizzes: same attempt lifecycle, no content or bundle locks


def start_quiz_attempt(
    student_id: str,
    quiz_id: str,
    data_dir: Path | None = None,
    now: datetime | None = None,
) -> AttemptView:
    """Start an attempt on a standalone quiz.

    Raises:
        ContentNotFoundError: If no course publishes the quiz
        NotEnrolledError: If the student is not enrolled in its course
        ValidationError: If the quiz is not active
        ContentAlreadyCompletedError: If the quiz was already passed
        AttemptLimitExceededError: If no attempts remain
    """
    location = locate_quiz_for_student(student_id, quiz_id, data_dir)
    require_quiz_available(location)
    return _start(location, student_id, _now(now))


def resume_quiz_attempt(
    student_id: str,
    quiz_id: str,
    data_dir: Path | None = None,
    now: datetime | None = None,
) -> AttemptView:
    location = locate_quiz_for_student(student_id, quiz_id, data_dir)
    return _resume(location, student_id, _now(now))


def get_quiz_question(
    student_id: str,
    quiz_id: str,
    attempt_number: int,
    display_index: int,
    data_dir: Path | None = None,
    now: datetime | None = None,
) -> SecureQuestion:
    location = locate_quiz_for_student(student_id, quiz_id, data_dir)
    return _question(location, student_id, attempt_number, display_index, _now(now))


def submit_quiz_attempt(
    student_id: str,
    quiz_id: str,
    attempt_number: int,
    answers: dict[str, Any],
    time_spent: int | None = None,
    data_dir: Path | None = None,
    now: datetime | None = None,
) -> SubmissionResult:
    """Grade and finalize a standalone quiz submission.

    A quiz deactivated after the attempt started still accepts the
    submission of that attempt.
    """
    location = locate_quiz_for_student(student_id, quiz_id, data_dir)
    return _submit(location, student_id, attempt_number, answers, time_spent, _now(now))


def get_quiz_results(
    student_id: str,
    quiz_id: str,
    data_dir: Path | None = None,
    now: datetime | None = None,
) -> AttemptResults:
    location = locate_quiz_for_student(student_id, quiz_id, data_dir)
    return _results(location, student_id, _now(now))
