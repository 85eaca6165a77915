"""Repository functions for content_progress table.

Provides the per-student-per-content progress store:
- Lazy creation of progress records on first interaction
- Forward-only completion status updates
- Watch count increments guarded against the configured cap
"""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass
from datetime import datetime, timezone

import structlog

from progression.core.errors import WatchLimitExceededError
from progression.db.database import get_db
from progression.db.models import (
    STATUS_RANK,
    CompletionStatus,
    ContentProgressRecord,
    parse_timestamp,
)

logger = structlog.get_logger(__name__)


@dataclass
class ProgressUpdate:
    """Fields a progress update may change. None means "leave as is"."""

    completion_status: CompletionStatus | None = None
    progress_percentage: float | None = None
    time_spent: int | None = None
    last_position: float | None = None
    increment_watch_count: bool = False
    max_watch_count: int | None = None


@dataclass
class ProgressUpdateResult:
    """Outcome of a progress update."""

    record: ContentProgressRecord
    previous_status: CompletionStatus

    @property
    def is_new_completion(self) -> bool:
        """True when this update moved the content into completed."""
        return (
            self.previous_status is not CompletionStatus.COMPLETED
            and self.record.completion_status is CompletionStatus.COMPLETED
        )


# =============================================================================
# CONNECTION-LEVEL HELPERS (shared with attempt_repository)
# =============================================================================


def ensure_progress_row(
    conn: sqlite3.Connection,
    student_id: str,
    course_id: str,
    topic_id: str,
    content_id: str,
    content_type: str,
    now: datetime,
) -> None:
    """Create the progress row if it does not exist yet."""
    conn.execute(
        """
        INSERT OR IGNORE INTO content_progress (
            student_id, course_id, topic_id, content_id, content_type, last_accessed
        ) VALUES (?, ?, ?, ?, ?, ?)
        """,
        (student_id, course_id, topic_id, content_id, content_type, now.isoformat()),
    )


def fetch_progress_row(
    conn: sqlite3.Connection, student_id: str, content_id: str
) -> ContentProgressRecord | None:
    """Read a progress row inside an open transaction."""
    row = conn.execute(
        "SELECT * FROM content_progress WHERE student_id = ? AND content_id = ?",
        (student_id, content_id),
    ).fetchone()
    return _row_to_record(row) if row is not None else None


def resolve_status(
    current: CompletionStatus, requested: CompletionStatus | None
) -> CompletionStatus:
    """Apply the forward-only rule to a requested status change.

    completed never regresses; a lower-ranked status is ignored.
    failed -> completed is allowed (a later successful attempt).
    """
    if requested is None or current is CompletionStatus.COMPLETED:
        return current
    if STATUS_RANK[requested] < STATUS_RANK[current]:
        return current
    if current is CompletionStatus.FAILED and requested is not CompletionStatus.COMPLETED:
        return current
    return requested


# =============================================================================
# PUBLIC API
# =============================================================================


def get_content_progress(student_id: str, content_id: str) -> ContentProgressRecord | None:
    """Get progress for one content item.

    Returns:
        ContentProgressRecord or None if the student never interacted with it
    """
    with get_db() as conn:
        return fetch_progress_row(conn, student_id, content_id)


def list_course_progress(student_id: str, course_id: str) -> list[ContentProgressRecord]:
    """Get all progress records of a student in a course."""
    with get_db() as conn:
        rows = conn.execute(
            "SELECT * FROM content_progress WHERE student_id = ? AND course_id = ?",
            (student_id, course_id),
        ).fetchall()

    return [_row_to_record(row) for row in rows]


def get_completed_content_ids(student_id: str, course_id: str) -> set[str]:
    """Content ids with a satisfied terminal status (completed)."""
    with get_db() as conn:
        rows = conn.execute(
            """
            SELECT content_id FROM content_progress
            WHERE student_id = ? AND course_id = ? AND completion_status = ?
            """,
            (student_id, course_id, CompletionStatus.COMPLETED.value),
        ).fetchall()

    return {row["content_id"] for row in rows}


def touch_content_progress(
    student_id: str,
    course_id: str,
    topic_id: str,
    content_id: str,
    content_type: str,
    now: datetime | None = None,
) -> ContentProgressRecord:
    """Lazily create the progress record and refresh last_accessed."""
    now = now or datetime.now(timezone.utc)
    with get_db() as conn:
        ensure_progress_row(conn, student_id, course_id, topic_id, content_id, content_type, now)
        conn.execute(
            "UPDATE content_progress SET last_accessed = ? WHERE student_id = ? AND content_id = ?",
            (now.isoformat(), student_id, content_id),
        )
        return fetch_progress_row(conn, student_id, content_id)


def apply_progress_update(
    student_id: str,
    course_id: str,
    topic_id: str,
    content_id: str,
    content_type: str,
    update: ProgressUpdate,
    now: datetime | None = None,
) -> ProgressUpdateResult:
    """Apply a progress update atomically.

    The read-modify-write runs under an immediate transaction so that two
    concurrent completions of the same video cannot both pass the watch
    limit check.

    Raises:
        WatchLimitExceededError: If ``increment_watch_count`` is set and the
            cap is already reached (nothing is written)
    """
    now = now or datetime.now(timezone.utc)

    with get_db() as conn:
        conn.execute("BEGIN IMMEDIATE")
        ensure_progress_row(conn, student_id, course_id, topic_id, content_id, content_type, now)
        current = fetch_progress_row(conn, student_id, content_id)

        watch_count = current.watch_count
        if update.increment_watch_count:
            cap = update.max_watch_count
            if cap is not None and watch_count >= cap:
                raise WatchLimitExceededError(
                    f"You have reached the maximum watch limit ({cap} times) for this video.",
                    watch_count=watch_count,
                    max_watch_count=cap,
                    limit_reached=True,
                )
            watch_count = watch_count + 1 if cap is None else min(watch_count + 1, cap)

        status = resolve_status(current.completion_status, update.completion_status)

        percentage = current.progress_percentage
        if update.progress_percentage is not None:
            percentage = max(percentage, min(max(float(update.progress_percentage), 0.0), 100.0))
        if status is CompletionStatus.COMPLETED:
            percentage = 100.0

        completed_at = current.completed_at
        if status is CompletionStatus.COMPLETED and completed_at is None:
            completed_at = now

        conn.execute(
            """
            UPDATE content_progress
            SET completion_status = ?, progress_percentage = ?, watch_count = ?,
                time_spent = ?, last_position = ?, last_accessed = ?, completed_at = ?
            WHERE student_id = ? AND content_id = ?
            """,
            (
                status.value,
                percentage,
                watch_count,
                update.time_spent if update.time_spent is not None else current.time_spent,
                update.last_position if update.last_position is not None else current.last_position,
                now.isoformat(),
                completed_at.isoformat() if completed_at else None,
                student_id,
                content_id,
            ),
        )
        record = fetch_progress_row(conn, student_id, content_id)

    if status is not current.completion_status:
        logger.info(
            "content_progress.status_changed",
            student_id=student_id,
            content_id=content_id,
            previous=current.completion_status.value,
            status=status.value,
        )
    elif update.completion_status is not None and update.completion_status is not status:
        logger.debug(
            "content_progress.regression_ignored",
            student_id=student_id,
            content_id=content_id,
            current=status.value,
            requested=update.completion_status.value,
        )

    return ProgressUpdateResult(record=record, previous_status=current.completion_status)


def _row_to_record(row: sqlite3.Row) -> ContentProgressRecord:
    """Convert database row to ContentProgressRecord."""
    return ContentProgressRecord(
        student_id=row["student_id"],
        course_id=row["course_id"],
        topic_id=row["topic_id"],
        content_id=row["content_id"],
        content_type=row["content_type"],
        completion_status=CompletionStatus(row["completion_status"]),
        progress_percentage=row["progress_percentage"],
        attempts=row["attempts"],
        best_score=row["best_score"],
        watch_count=row["watch_count"],
        time_spent=row["time_spent"],
        last_position=row["last_position"],
        last_accessed=parse_timestamp(row["last_accessed"]),
        completed_at=parse_timestamp(row["completed_at"]),
        expected_end=parse_timestamp(row["expected_end"]),
    )
