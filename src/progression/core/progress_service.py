"""Progress service module.

Orchestrates a progress update for non-assessment content:
1. Locate the content and check enrollment
2. Reject completions of quiz/homework (graded only through attempts)
3. Check unlock for completions
4. Validate video completions (watch limit, then coverage)
5. Persist the forward-only update
6. Recompute course progress (retried once, never fails the update)
7. Notify on the first completion
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import structlog

from progression.core.access import locate_for_student, require_unlocked
from progression.core.content_graph import load_course
from progression.core.errors import ContentNotFoundError, ValidationError
from progression.core.notifications import notify_completion
from progression.core.progress_aggregator import (
    CourseProgress,
    compute_course_progress,
    refresh_course_progress,
)
from progression.core.watch_validator import WatchValidation, parse_segments, validate_watch
from progression.db.enrollment_repository import require_enrollment
from progression.db.models import CompletionStatus, ContentProgressRecord
from progression.db.progress_repository import (
    ProgressUpdate,
    apply_progress_update,
    get_completed_content_ids,
    get_content_progress,
    list_course_progress,
)

logger = structlog.get_logger(__name__)


@dataclass
class WatchData:
    """Client-reported playback data for a video."""

    segments: list[Any] | None = None
    video_duration: float | None = None
    frontend_percentage: float | None = None


@dataclass
class ProgressData:
    """A progress update as sent by the client."""

    completion_status: str | None = None
    progress_percentage: float | None = None
    time_spent: int | None = None
    last_position: float | None = None
    watch_data: WatchData | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ProgressData:
        watch = data.get("watch_data")
        return cls(
            completion_status=data.get("completion_status"),
            progress_percentage=data.get("progress_percentage"),
            time_spent=data.get("time_spent"),
            last_position=data.get("last_position"),
            watch_data=WatchData(
                segments=watch.get("segments"),
                video_duration=watch.get("video_duration"),
                frontend_percentage=watch.get("frontend_percentage"),
            )
            if watch is not None
            else None,
        )


@dataclass
class ProgressResult:
    """Outcome of update_progress."""

    content_progress: ContentProgressRecord
    course_progress: CourseProgress | None
    is_new_completion: bool = False
    watch_validation: WatchValidation | None = None
    aggregate_error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result: dict[str, Any] = {
            "success": True,
            "content_progress": self.content_progress.to_dict(),
            "course_progress": self.course_progress.to_dict() if self.course_progress else None,
            "is_new_completion": self.is_new_completion,
        }
        if self.watch_validation is not None:
            result["watch_validation"] = self.watch_validation.to_dict()
        if self.aggregate_error is not None:
            result["aggregate_error"] = self.aggregate_error
        return result


def _parse_status(value: str | None) -> CompletionStatus | None:
    if value is None:
        return None
    try:
        return CompletionStatus(value)
    except ValueError:
        raise ValidationError(
            f"Invalid completion status: {value}", completion_status=value
        ) from None


def update_progress(
    student_id: str,
    content_id: str,
    data: ProgressData,
    data_dir: Path | None = None,
    now: datetime | None = None,
) -> ProgressResult:
    """Record progress on a content item.

    Raises:
        ContentNotFoundError: If the content does not exist
        NotEnrolledError: If the student is not enrolled in the course
        CourseLockedError: If an earlier course of the bundle is unfinished
        ValidationError: For invalid statuses, assessment completions or
            missing watch data
        ContentLockedError: If a completion targets locked content
        WatchLimitExceededError: If the video reached its watch cap
        InsufficientWatchCoverageError: If the video was not watched enough
    """
    now = now or datetime.now(timezone.utc)
    location = locate_for_student(student_id, content_id, data_dir)
    item = location.item

    requested = _parse_status(data.completion_status)
    completing = requested is CompletionStatus.COMPLETED

    if item.is_assessment and requested in (CompletionStatus.COMPLETED, CompletionStatus.FAILED):
        raise ValidationError(
            "Quiz and homework results are recorded by submitting an attempt",
            content_id=content_id,
        )

    if completing:
        require_unlocked(student_id, location)

    validation = None
    if completing and item.type == "video":
        existing = get_content_progress(student_id, content_id)
        watch = data.watch_data or WatchData()
        validation = validate_watch(
            parse_segments(watch.segments) if watch.segments is not None else None,
            watch.video_duration,
            watch.frontend_percentage,
            watch_count=existing.watch_count if existing else 0,
            max_watch_count=item.max_watch_count,
            fallback_duration=item.duration,
        )

    percentage = data.progress_percentage
    if validation is not None:
        percentage = max(percentage or 0, validation.actual_percentage)

    update_result = apply_progress_update(
        student_id=student_id,
        course_id=location.course.course_id,
        topic_id=location.topic_id,
        content_id=content_id,
        content_type=item.type,
        update=ProgressUpdate(
            completion_status=requested,
            progress_percentage=percentage,
            time_spent=data.time_spent,
            last_position=data.last_position,
            increment_watch_count=validation is not None,
            max_watch_count=item.max_watch_count,
        ),
        now=now,
    )

    aggregate = refresh_course_progress(student_id, location.course)

    if update_result.is_new_completion:
        notify_completion(student_id, item.title, item.type, location.course.title)

    logger.info(
        "progress_updated",
        student_id=student_id,
        content_id=content_id,
        status=update_result.record.completion_status.value,
        new_completion=update_result.is_new_completion,
        watch_count=update_result.record.watch_count,
    )

    return ProgressResult(
        content_progress=update_result.record,
        course_progress=aggregate.course_progress,
        is_new_completion=update_result.is_new_completion,
        watch_validation=validation,
        aggregate_error=aggregate.error,
    )


@dataclass
class CourseProgressReport:
    """Course progress with the per-content records behind it."""

    course_progress: CourseProgress
    contents: list[ContentProgressRecord]
    aggregate_error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result = {
            **self.course_progress.to_dict(),
            "contents": [c.to_dict() for c in self.contents],
        }
        if self.aggregate_error is not None:
            result["aggregate_error"] = self.aggregate_error
        return result


def get_course_progress(
    student_id: str, course_id: str, data_dir: Path | None = None
) -> CourseProgressReport:
    """Recompute and report a student's progress in a course.

    Raises:
        NotEnrolledError: If the student is not enrolled in the course
        ContentNotFoundError: If the course catalog does not exist
    """
    require_enrollment(student_id, course_id)
    course = load_course(course_id, data_dir)
    if course is None:
        raise ContentNotFoundError("Course not found", course_id=course_id)

    aggregate = refresh_course_progress(student_id, course)
    course_progress = aggregate.course_progress or compute_course_progress(
        course, get_completed_content_ids(student_id, course_id)
    )
    return CourseProgressReport(
        course_progress=course_progress,
        contents=list_course_progress(student_id, course_id),
        aggregate_error=aggregate.error,
    )
