"""Content access checks shared by attempt sessions and progress updates."""

from __future__ import annotations

from pathlib import Path

from progression.core.content_graph import (
    ContentLocation,
    Course,
    list_course_ids,
    load_course,
    locate_content,
    locate_quiz,
)
from progression.core.errors import (
    ContentNotFoundError,
    ContentLockedError,
    CourseLockedError,
    ValidationError,
)
from progression.core.unlock_resolver import (
    UnlockStatus,
    get_course_unlock_status,
    resolve_unlock,
)
from progression.db.enrollment_repository import list_enrolled_course_ids, require_enrollment
from progression.db.progress_repository import get_completed_content_ids


def _search_order(student_id: str, data_dir: Path | None) -> list[str]:
    enrolled = list_enrolled_course_ids(student_id)
    return enrolled + [c for c in list_course_ids(data_dir) if c not in enrolled]


def _locate_enrolled(
    student_id: str, content_id: str, data_dir: Path | None
) -> ContentLocation:
    location = locate_content(content_id, _search_order(student_id, data_dir), data_dir)
    require_enrollment(student_id, location.course.course_id)
    return location


def locate_for_student(
    student_id: str, content_id: str, data_dir: Path | None = None
) -> ContentLocation:
    """Find a content item and check the student may enter its course.

    Enrolled courses are searched first, then every other catalog so that
    content from a course the student has not joined is reported as
    not enrolled rather than not found.

    Raises:
        ContentNotFoundError: If no catalog contains the item
        NotEnrolledError: If the student is not enrolled in its course
        CourseLockedError: If an earlier course of a sequential bundle is unfinished
    """
    location = _locate_enrolled(student_id, content_id, data_dir)
    require_course_unlocked(student_id, location.course, data_dir)
    return location


def locate_quiz_for_student(
    student_id: str, quiz_id: str, data_dir: Path | None = None
) -> ContentLocation:
    """Find a standalone quiz and check the student's enrollment.

    Standalone quizzes are open to every enrolled student: neither the
    content order nor the bundle order applies to them.

    Raises:
        ContentNotFoundError: If no catalog publishes the quiz
        NotEnrolledError: If the student is not enrolled in its course
    """
    location = locate_quiz(quiz_id, _search_order(student_id, data_dir), data_dir)
    require_enrollment(student_id, location.course.course_id)
    return location


def require_assessment(location: ContentLocation) -> None:
    """Raise ValidationError unless the item is a quiz or homework."""
    if not location.item.is_assessment:
        raise ValidationError(
            "Content is not a quiz or homework",
            content_id=location.item.content_id,
            content_type=location.item.type,
        )


def require_quiz_available(location: ContentLocation) -> None:
    """Raise ValidationError unless the standalone quiz is active."""
    if location.quiz is not None and not location.quiz.is_active:
        raise ValidationError(
            "This quiz is not currently available",
            quiz_id=location.quiz.quiz_id,
            status=location.quiz.status,
        )


def require_course_unlocked(
    student_id: str, course: Course, data_dir: Path | None = None
) -> None:
    """Raise CourseLockedError naming the first unfinished earlier course."""
    status = get_course_unlock_status(student_id, course, data_dir)
    if not status.unlocked:
        raise CourseLockedError(status.reason, **status.to_dict())


def require_unlocked(student_id: str, location: ContentLocation) -> None:
    """Raise ContentLockedError naming the first missing item."""
    completed = get_completed_content_ids(student_id, location.course.course_id)
    status = resolve_unlock(location.course, location.item.content_id, completed)
    if not status.unlocked:
        raise ContentLockedError(status.reason, **status.to_dict())


def content_unlock_status(
    student_id: str, content_id: str, data_dir: Path | None = None
) -> UnlockStatus:
    """Unlock status of a content item; unknown content is locked.

    A closed course reports the earlier course to finish.

    Raises:
        NotEnrolledError: If the student is not enrolled in the owning course
    """
    try:
        location = _locate_enrolled(student_id, content_id, data_dir)
    except ContentNotFoundError:
        return UnlockStatus(unlocked=False, reason="Content not found")

    course_status = get_course_unlock_status(student_id, location.course, data_dir)
    if not course_status.unlocked:
        return course_status

    completed = get_completed_content_ids(student_id, location.course.course_id)
    return resolve_unlock(location.course, content_id, completed)


def course_unlock_status(
    student_id: str, course_id: str, data_dir: Path | None = None
) -> UnlockStatus:
    """Whether a course is open to the student within its bundle.

    Raises:
        ContentNotFoundError: If the course catalog does not exist
    """
    course = load_course(course_id, data_dir)
    if course is None:
        raise ContentNotFoundError("Course not found", course_id=course_id)
    return get_course_unlock_status(student_id, course, data_dir)
