"""Attempt repository module.

Responsibilities:
- Create timed attempts (one in-progress attempt per student and content)
- Persist shuffle plans write-once per attempt
- Finalize attempts with a conditional update keyed on the in-progress status
- Load attempts and attempt history

Concurrency guards:
- Partial unique index idx_attempts_one_in_progress on (student_id, content_id)
- UPDATE ... WHERE status = 'in_progress' for every terminal transition
- UPDATE ... WHERE shuffled_question_order IS NULL for shuffle plans
"""

from __future__ import annotations

import json
import sqlite3
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import structlog

from progression.core.errors import (
    AttemptLimitExceededError,
    ContentAlreadyCompletedError,
)
from progression.db.database import get_db
from progression.db.models import (
    AnswerRecord,
    AttemptRecord,
    AttemptStatus,
    CompletionStatus,
    ContentProgressRecord,
    parse_timestamp,
)
from progression.db.progress_repository import ensure_progress_row, fetch_progress_row

logger = structlog.get_logger(__name__)

# =============================================================================
# DATA CLASSES
# =============================================================================


@dataclass
class AttemptStartResult:
    """Result of attempt creation."""

    attempt: AttemptRecord
    created: bool


@dataclass
class AttemptOutcome:
    """Grading outcome to persist on a terminal transition."""

    status: AttemptStatus
    score: int
    correct_answers: int
    total_questions: int
    points: int
    passed: bool
    time_spent: int = 0
    answers: list[AnswerRecord] | None = None


@dataclass
class FinalizeResult:
    """Result of a terminal transition."""

    attempt: AttemptRecord
    # False when the attempt was already terminal (retried submission)
    transitioned: bool
    previous_status: CompletionStatus
    progress: ContentProgressRecord

    @property
    def is_new_completion(self) -> bool:
        return (
            self.transitioned
            and self.previous_status is not CompletionStatus.COMPLETED
            and self.progress.completion_status is CompletionStatus.COMPLETED
        )


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================


def _fetch_attempt(
    conn: sqlite3.Connection, student_id: str, content_id: str, attempt_number: int
) -> AttemptRecord | None:
    row = conn.execute(
        """
        SELECT * FROM attempts
        WHERE student_id = ? AND content_id = ? AND attempt_number = ?
        """,
        (student_id, content_id, attempt_number),
    ).fetchone()
    return _row_to_record(row) if row is not None else None


def _fetch_in_progress(
    conn: sqlite3.Connection, student_id: str, content_id: str
) -> AttemptRecord | None:
    row = conn.execute(
        "SELECT * FROM attempts WHERE student_id = ? AND content_id = ? AND status = ?",
        (student_id, content_id, AttemptStatus.IN_PROGRESS.value),
    ).fetchone()
    return _row_to_record(row) if row is not None else None


def _next_attempt_number(conn: sqlite3.Connection, student_id: str, content_id: str) -> int:
    row = conn.execute(
        "SELECT MAX(attempt_number) AS n FROM attempts WHERE student_id = ? AND content_id = ?",
        (student_id, content_id),
    ).fetchone()
    return (row["n"] or 0) + 1


# =============================================================================
# LOAD FUNCTIONS
# =============================================================================


def get_attempt(student_id: str, content_id: str, attempt_number: int) -> AttemptRecord | None:
    """Load one attempt.

    Returns:
        AttemptRecord or None if not found
    """
    with get_db() as conn:
        return _fetch_attempt(conn, student_id, content_id, attempt_number)


def get_in_progress_attempt(student_id: str, content_id: str) -> AttemptRecord | None:
    """Load the single in-progress attempt, if any."""
    with get_db() as conn:
        return _fetch_in_progress(conn, student_id, content_id)


def list_attempts(student_id: str, content_id: str) -> list[AttemptRecord]:
    """Load attempt history ordered by attempt number."""
    with get_db() as conn:
        rows = conn.execute(
            """
            SELECT * FROM attempts WHERE student_id = ? AND content_id = ?
            ORDER BY attempt_number
            """,
            (student_id, content_id),
        ).fetchall()

    return [_row_to_record(row) for row in rows]


def get_progress_with_attempts(
    student_id: str, content_id: str
) -> ContentProgressRecord | None:
    """Load a progress record with its attempt history in ``quiz_attempts``."""
    with get_db() as conn:
        record = fetch_progress_row(conn, student_id, content_id)
    if record is None:
        return None
    record.quiz_attempts = list_attempts(student_id, content_id)
    return record


# =============================================================================
# MUTATIONS
# =============================================================================


def create_attempt(
    student_id: str,
    course_id: str,
    topic_id: str,
    content_id: str,
    content_type: str,
    passing_score: int,
    max_attempts: int,
    duration_minutes: int,
    now: datetime | None = None,
) -> AttemptStartResult:
    """Create a new in-progress attempt, or return the existing one.

    Runs in a single immediate transaction: the existence check, the limit
    check and the insert cannot interleave with another start for the same
    student and content.

    Args:
        duration_minutes: Attempt duration; 0 means the attempt never expires

    Returns:
        AttemptStartResult with ``created=False`` when an in-progress
        attempt already existed

    Raises:
        ContentAlreadyCompletedError: If the content is already completed
        AttemptLimitExceededError: If all attempts are used
    """
    now = now or datetime.now(timezone.utc)

    with get_db() as conn:
        conn.execute("BEGIN IMMEDIATE")
        ensure_progress_row(conn, student_id, course_id, topic_id, content_id, content_type, now)

        existing = _fetch_in_progress(conn, student_id, content_id)
        if existing is not None:
            return AttemptStartResult(attempt=existing, created=False)

        progress = fetch_progress_row(conn, student_id, content_id)
        if progress.completion_status is CompletionStatus.COMPLETED:
            raise ContentAlreadyCompletedError(
                "You have already completed this content successfully",
                content_id=content_id,
            )
        if progress.attempts >= max_attempts:
            raise AttemptLimitExceededError(
                f"Maximum attempts ({max_attempts}) reached",
                attempts=progress.attempts,
                max_attempts=max_attempts,
            )

        attempt_number = _next_attempt_number(conn, student_id, content_id)
        expected_end = now + timedelta(minutes=duration_minutes) if duration_minutes > 0 else None

        conn.execute(
            """
            INSERT INTO attempts (
                student_id, content_id, attempt_number, status,
                started_at, expected_end, passing_score
            ) VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                student_id,
                content_id,
                attempt_number,
                AttemptStatus.IN_PROGRESS.value,
                now.isoformat(),
                expected_end.isoformat() if expected_end else None,
                passing_score,
            ),
        )
        conn.execute(
            """
            UPDATE content_progress
            SET completion_status = ?, expected_end = ?, last_accessed = ?
            WHERE student_id = ? AND content_id = ?
            """,
            (
                CompletionStatus.IN_PROGRESS.value,
                expected_end.isoformat() if expected_end else None,
                now.isoformat(),
                student_id,
                content_id,
            ),
        )
        attempt = _fetch_attempt(conn, student_id, content_id, attempt_number)

    logger.info(
        "attempt_created",
        student_id=student_id,
        content_id=content_id,
        attempt_number=attempt_number,
        expected_end=attempt.expected_end.isoformat() if attempt.expected_end else None,
    )
    return AttemptStartResult(attempt=attempt, created=True)


def save_shuffle_plan(
    student_id: str,
    content_id: str,
    attempt_number: int,
    question_order: list[int],
    option_orders: dict[str, list[int]],
) -> AttemptRecord | None:
    """Persist a shuffle plan unless one is already stored.

    Returns:
        The attempt as stored after the call (its plan may be a plan
        written earlier by a concurrent request), or None if the attempt
        does not exist
    """
    with get_db() as conn:
        cursor = conn.execute(
            """
            UPDATE attempts
            SET shuffled_question_order = ?, shuffled_option_orders = ?
            WHERE student_id = ? AND content_id = ? AND attempt_number = ?
              AND shuffled_question_order IS NULL
            """,
            (
                json.dumps(question_order),
                json.dumps(option_orders),
                student_id,
                content_id,
                attempt_number,
            ),
        )
        attempt = _fetch_attempt(conn, student_id, content_id, attempt_number)

    if cursor.rowcount:
        logger.debug(
            "shuffle_plan_saved",
            student_id=student_id,
            content_id=content_id,
            attempt_number=attempt_number,
        )
    return attempt


def finalize_attempt(
    student_id: str,
    content_id: str,
    attempt_number: int,
    outcome: AttemptOutcome,
    now: datetime | None = None,
) -> FinalizeResult | None:
    """Move an in-progress attempt to a terminal status.

    The attempt update is conditional on ``status = 'in_progress'``; only the
    request that wins it increments ``attempts`` and updates the progress
    record. Losing requests get the stored attempt back with
    ``transitioned=False``.

    Returns:
        FinalizeResult, or None if the attempt does not exist
    """
    now = now or datetime.now(timezone.utc)
    answers = outcome.answers or []

    with get_db() as conn:
        conn.execute("BEGIN IMMEDIATE")
        progress = fetch_progress_row(conn, student_id, content_id)
        if progress is None:
            return None

        cursor = conn.execute(
            """
            UPDATE attempts
            SET status = ?, completed_at = ?, time_spent = ?, score = ?,
                correct_answers = ?, total_questions = ?, points = ?,
                passed = ?, answers = ?
            WHERE student_id = ? AND content_id = ? AND attempt_number = ?
              AND status = ?
            """,
            (
                outcome.status.value,
                now.isoformat(),
                outcome.time_spent,
                outcome.score,
                outcome.correct_answers,
                outcome.total_questions,
                outcome.points,
                int(outcome.passed),
                json.dumps([a.to_dict() for a in answers]),
                student_id,
                content_id,
                attempt_number,
                AttemptStatus.IN_PROGRESS.value,
            ),
        )

        if cursor.rowcount == 0:
            attempt = _fetch_attempt(conn, student_id, content_id, attempt_number)
            if attempt is None:
                return None
            return FinalizeResult(
                attempt=attempt,
                transitioned=False,
                previous_status=progress.completion_status,
                progress=progress,
            )

        if outcome.passed:
            new_status = CompletionStatus.COMPLETED
        elif progress.completion_status is CompletionStatus.COMPLETED:
            new_status = CompletionStatus.COMPLETED
        else:
            new_status = CompletionStatus.FAILED

        percentage = 100.0 if new_status is CompletionStatus.COMPLETED else max(
            progress.progress_percentage, float(outcome.score)
        )
        completed_at = progress.completed_at
        if new_status is CompletionStatus.COMPLETED and completed_at is None:
            completed_at = now

        conn.execute(
            """
            UPDATE content_progress
            SET completion_status = ?, attempts = attempts + 1,
                best_score = MAX(best_score, ?), progress_percentage = ?,
                time_spent = time_spent + ?, completed_at = ?,
                expected_end = NULL, last_accessed = ?
            WHERE student_id = ? AND content_id = ?
            """,
            (
                new_status.value,
                outcome.score,
                percentage,
                outcome.time_spent,
                completed_at.isoformat() if completed_at else None,
                now.isoformat(),
                student_id,
                content_id,
            ),
        )

        attempt = _fetch_attempt(conn, student_id, content_id, attempt_number)
        updated = fetch_progress_row(conn, student_id, content_id)

    logger.info(
        "attempt_finalized",
        student_id=student_id,
        content_id=content_id,
        attempt_number=attempt_number,
        status=outcome.status.value,
        score=outcome.score,
        attempts=updated.attempts,
    )

    return FinalizeResult(
        attempt=attempt,
        transitioned=True,
        previous_status=progress.completion_status,
        progress=updated,
    )


def _row_to_record(row: sqlite3.Row) -> AttemptRecord:
    """Convert database row to AttemptRecord."""
    option_orders = row["shuffled_option_orders"]
    question_order = row["shuffled_question_order"]
    passed = row["passed"]
    return AttemptRecord(
        student_id=row["student_id"],
        content_id=row["content_id"],
        attempt_number=row["attempt_number"],
        status=AttemptStatus(row["status"]),
        started_at=parse_timestamp(row["started_at"]),
        passing_score=row["passing_score"],
        expected_end=parse_timestamp(row["expected_end"]),
        completed_at=parse_timestamp(row["completed_at"]),
        time_spent=row["time_spent"],
        score=row["score"],
        correct_answers=row["correct_answers"],
        total_questions=row["total_questions"],
        points=row["points"],
        passed=bool(passed) if passed is not None else None,
        answers=[AnswerRecord.from_dict(a) for a in json.loads(row["answers"] or "[]")],
        shuffled_question_order=json.loads(question_order) if question_order else None,
        shuffled_option_orders=json.loads(option_orders) if option_orders else None,
    )
