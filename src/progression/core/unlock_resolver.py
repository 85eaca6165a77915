"""Unlock resolver module.

Responsibilities:
- Decide whether a content item is accessible to a student
- Report the first missing item by title when it is not

Rules:
- Linear order is published topics by order, then content by order
- An item is unlocked iff every earlier item is completed and every
  explicit prerequisite is completed
- The first item of the course is always unlocked
- Unknown content, or content in an unpublished topic, is locked

Course rules (bundles with requires_sequential):
- Courses of a bundle are taken in bundle order; the first is always open
- A course opens once every earlier course of the bundle is completed
- A student enrolled from a later starting order skips the courses before
  it, and those stay closed unless the student already has progress there
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

import structlog

from progression.core.content_graph import Course, load_bundle_courses, load_course
from progression.db.enrollment_repository import list_enrollments
from progression.db.models import EnrollmentRecord
from progression.db.progress_repository import get_completed_content_ids

logger = structlog.get_logger(__name__)


@dataclass
class UnlockStatus:
    """Accessibility of a content item or a course for one student."""

    unlocked: bool
    reason: str
    missing_content_id: str | None = None
    missing_content_title: str | None = None
    missing_course_id: str | None = None
    missing_course_title: str | None = None
    missing_course_order: int | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result: dict[str, Any] = {"unlocked": self.unlocked, "reason": self.reason}
        if self.missing_content_id is not None:
            result["missing_content"] = self.missing_content_id
            result["missing_content_title"] = self.missing_content_title
        if self.missing_course_id is not None:
            result["missing_course"] = self.missing_course_id
            result["missing_course_title"] = self.missing_course_title
            result["missing_course_order"] = self.missing_course_order
        return result


def _locked_by(course: Course, content_id: str) -> UnlockStatus:
    item = course.get_content(content_id)
    title = item.title if item is not None and item.title else content_id
    return UnlockStatus(
        unlocked=False,
        reason=f'Complete "{title}" first',
        missing_content_id=content_id,
        missing_content_title=title,
    )


def resolve_unlock(course: Course, content_id: str, completed_ids: set[str]) -> UnlockStatus:
    """Resolve accessibility from a course graph and a completion set.

    Pure function: no I/O.

    Args:
        course: Course graph
        content_id: Content to check
        completed_ids: Content ids the student has completed

    Returns:
        UnlockStatus
    """
    ordered = course.ordered_content()
    position = next(
        (i for i, item in enumerate(ordered) if item.content_id == content_id), None
    )

    if position is None:
        if course.get_content(content_id) is not None:
            return UnlockStatus(unlocked=False, reason="Content is not published yet")
        return UnlockStatus(unlocked=False, reason="Content not found")

    for earlier in ordered[:position]:
        if earlier.content_id not in completed_ids:
            return _locked_by(course, earlier.content_id)

    for prerequisite_id in ordered[position].prerequisites:
        if prerequisite_id in completed_ids:
            continue
        if course.get_content(prerequisite_id) is None:
            logger.warning(
                "unknown_prerequisite",
                course_id=course.course_id,
                content_id=content_id,
                prerequisite_id=prerequisite_id,
            )
        return _locked_by(course, prerequisite_id)

    return UnlockStatus(unlocked=True, reason="Content is unlocked")


def get_unlock_status(
    student_id: str,
    course_id: str,
    content_id: str,
    data_dir: Path | None = None,
) -> UnlockStatus:
    """Resolve accessibility for a student using stored progress.

    Args:
        student_id: Student identifier
        course_id: Course owning the content
        content_id: Content to check
        data_dir: Base data directory

    Returns:
        UnlockStatus (locked when the course catalog is missing)
    """
    course = load_course(course_id, data_dir)
    if course is None:
        return UnlockStatus(unlocked=False, reason="Content not found")

    status = resolve_unlock(
        course, content_id, get_completed_content_ids(student_id, course_id)
    )
    logger.debug(
        "unlock_resolved",
        student_id=student_id,
        content_id=content_id,
        unlocked=status.unlocked,
        missing=status.missing_content_id,
    )
    return status


def _bundle_starting_order(
    bundle: list[Course], enrollments: dict[str, EnrollmentRecord]
) -> int | None:
    """Lowest starting order set on any enrollment in the bundle."""
    orders = [
        enrollments[c.course_id].starting_order
        for c in bundle
        if c.course_id in enrollments and enrollments[c.course_id].starting_order is not None
    ]
    return min(orders) if orders else None


def resolve_course_unlock(
    course: Course,
    bundle: list[Course],
    enrollments: dict[str, EnrollmentRecord],
) -> UnlockStatus:
    """Resolve whether a course of a sequential bundle is open.

    Pure function: no I/O.

    Args:
        course: Course to check
        bundle: Courses sharing the course's bundle
        enrollments: The student's enrollments keyed by course id

    Returns:
        UnlockStatus naming the first unfinished earlier course
    """
    if not course.requires_sequential or not course.bundle_id:
        return UnlockStatus(unlocked=True, reason="No sequential requirement")

    ordered = sorted(
        {c.course_id: c for c in [*bundle, course]}.values(),
        key=lambda c: (c.order, c.course_id),
    )
    position = next(i for i, c in enumerate(ordered) if c.course_id == course.course_id)
    if position == 0:
        return UnlockStatus(unlocked=True, reason="First course in bundle")

    earlier = ordered[:position]
    starting_order = _bundle_starting_order(ordered, enrollments)
    if starting_order is not None:
        if course.order < starting_order:
            own = enrollments.get(course.course_id)
            if own is not None and own.progress > 0:
                return UnlockStatus(
                    unlocked=True,
                    reason=f"Course already started with {own.progress}% progress",
                )
            return UnlockStatus(
                unlocked=False,
                reason=(
                    f"You were enrolled from week {starting_order + 1}. "
                    "This course is from an earlier week."
                ),
            )
        earlier = [c for c in earlier if c.order >= starting_order]

    for previous in earlier:
        enrollment = enrollments.get(previous.course_id)
        if enrollment is None or enrollment.status != "completed":
            title = previous.title or previous.course_id
            return UnlockStatus(
                unlocked=False,
                reason=f'Complete "{title}" first',
                missing_course_id=previous.course_id,
                missing_course_title=title,
                missing_course_order=previous.order,
            )

    return UnlockStatus(unlocked=True, reason="All earlier courses completed")


def get_course_unlock_status(
    student_id: str, course: Course, data_dir: Path | None = None
) -> UnlockStatus:
    """Resolve course accessibility from the bundle catalogs and enrollments."""
    if not course.requires_sequential or not course.bundle_id:
        return resolve_course_unlock(course, [], {})

    bundle = load_bundle_courses(course.bundle_id, data_dir)
    enrollments = {e.course_id: e for e in list_enrollments(student_id)}
    status = resolve_course_unlock(course, bundle, enrollments)
    logger.debug(
        "course_unlock_resolved",
        student_id=student_id,
        course_id=course.course_id,
        bundle_id=course.bundle_id,
        unlocked=status.unlocked,
        missing=status.missing_course_id,
    )
    return status
