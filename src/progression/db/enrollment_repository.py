"""Repository functions for enrollments table.

Provides enrollment lookup and course-level progress persistence.
"""

from __future__ import annotations

import json
import sqlite3
from datetime import datetime, timezone

import structlog

from progression.core.errors import NotEnrolledError
from progression.db.database import get_db
from progression.db.models import EnrollmentRecord, parse_timestamp

logger = structlog.get_logger(__name__)


def enroll(
    student_id: str,
    course_id: str,
    now: datetime | None = None,
    starting_order: int | None = None,
) -> EnrollmentRecord:
    """Enroll a student in a course.

    Enrolling twice is a no-op and returns the existing enrollment.

    Args:
        student_id: Student identifier
        course_id: Course identifier
        now: Enrollment timestamp (defaults to current UTC time)
        starting_order: Bundle order the student joins from; earlier courses
            of a sequential bundle stay closed unless already started

    Returns:
        The EnrollmentRecord
    """
    now = now or datetime.now(timezone.utc)
    with get_db() as conn:
        conn.execute(
            """
            INSERT OR IGNORE INTO enrollments (
                student_id, course_id, enrolled_at, last_accessed, starting_order
            ) VALUES (?, ?, ?, ?, ?)
            """,
            (student_id, course_id, now.isoformat(), now.isoformat(), starting_order),
        )

    logger.debug("enrollments.inserted", student_id=student_id, course_id=course_id)
    return get_enrollment(student_id, course_id)


def get_enrollment(student_id: str, course_id: str) -> EnrollmentRecord | None:
    """Get enrollment by student and course.

    Returns:
        EnrollmentRecord if found, None otherwise
    """
    with get_db() as conn:
        row = conn.execute(
            "SELECT * FROM enrollments WHERE student_id = ? AND course_id = ?",
            (student_id, course_id),
        ).fetchone()

    if row is None:
        return None

    return _row_to_record(row)


def require_enrollment(student_id: str, course_id: str) -> EnrollmentRecord:
    """Get enrollment or raise NotEnrolledError."""
    enrollment = get_enrollment(student_id, course_id)
    if enrollment is None:
        raise NotEnrolledError(
            "You are not enrolled in this course", course_id=course_id
        )
    return enrollment


def list_enrolled_course_ids(student_id: str) -> list[str]:
    """List course ids the student is enrolled in, oldest enrollment first."""
    with get_db() as conn:
        rows = conn.execute(
            "SELECT course_id FROM enrollments WHERE student_id = ? ORDER BY enrolled_at, course_id",
            (student_id,),
        ).fetchall()

    return [row["course_id"] for row in rows]


def list_enrollments(student_id: str) -> list[EnrollmentRecord]:
    """All enrollments of a student, oldest first."""
    with get_db() as conn:
        rows = conn.execute(
            "SELECT * FROM enrollments WHERE student_id = ? ORDER BY enrolled_at, course_id",
            (student_id,),
        ).fetchall()

    return [_row_to_record(row) for row in rows]


def update_course_progress(
    student_id: str,
    course_id: str,
    progress: int,
    completed_topics: list[str],
    now: datetime | None = None,
) -> None:
    """Persist derived course progress.

    Progress is clamped to 0..100; reaching 100 marks the enrollment completed.
    """
    now = now or datetime.now(timezone.utc)
    progress = min(max(int(progress), 0), 100)
    status = "completed" if progress == 100 else "active"

    with get_db() as conn:
        conn.execute(
            """
            UPDATE enrollments
            SET progress = ?, completed_topics = ?, status = ?, last_accessed = ?
            WHERE student_id = ? AND course_id = ?
            """,
            (
                progress,
                json.dumps(completed_topics),
                status,
                now.isoformat(),
                student_id,
                course_id,
            ),
        )

    logger.debug(
        "enrollments.progress_updated",
        student_id=student_id,
        course_id=course_id,
        progress=progress,
    )


def _row_to_record(row: sqlite3.Row) -> EnrollmentRecord:
    """Convert database row to EnrollmentRecord."""
    return EnrollmentRecord(
        student_id=row["student_id"],
        course_id=row["course_id"],
        progress=row["progress"],
        completed_topics=json.loads(row["completed_topics"] or "[]"),
        status=row["status"],
        enrolled_at=parse_timestamp(row["enrolled_at"]),
        last_accessed=parse_timestamp(row["last_accessed"]),
        starting_order=row["starting_order"],
    )
