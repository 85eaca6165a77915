"""Progress aggregator module.

Responsibilities:
- Topic progress: completed required content / total required content
- Course progress: mean of topic percentages over published topics with
  required content
- Persist the derived course progress on the enrollment

Aggregation is pull-based: it is always recomputed from content progress
records, so repeating it is idempotent.
"""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass, field
from typing import Any

import structlog

from progression.core.content_graph import Course, Topic
from progression.core.grader import round_half_up
from progression.db.enrollment_repository import update_course_progress
from progression.db.progress_repository import get_completed_content_ids

logger = structlog.get_logger(__name__)

AGGREGATE_ERROR_MESSAGE = "Progress saved, but course progress could not be updated"


@dataclass
class TopicProgress:
    topic_id: str
    title: str
    completed_required: int
    total_required: int
    percentage: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "topic_id": self.topic_id,
            "title": self.title,
            "completed_required": self.completed_required,
            "total_required": self.total_required,
            "percentage": self.percentage,
        }


@dataclass
class CourseProgress:
    """Derived progress of a student in a course."""

    course_id: str
    progress: int
    completed_topics: list[str] = field(default_factory=list)
    topics: list[TopicProgress] = field(default_factory=list)

    @property
    def is_completed(self) -> bool:
        return self.progress == 100

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "course_id": self.course_id,
            "progress": self.progress,
            "completed_topics": list(self.completed_topics),
            "status": "completed" if self.is_completed else "active",
            "topics": [t.to_dict() for t in self.topics],
        }


@dataclass
class AggregateResult:
    """Course progress, or the error flag when recomputation failed."""

    course_progress: CourseProgress | None
    error: str | None = None


def compute_topic_progress(topic: Topic, completed_ids: set[str]) -> TopicProgress | None:
    """Progress of one topic, or None when it has no required content."""
    required = [c for c in topic.content if c.is_required]
    if not required:
        return None
    done = sum(1 for c in required if c.content_id in completed_ids)
    return TopicProgress(
        topic_id=topic.topic_id,
        title=topic.title,
        completed_required=done,
        total_required=len(required),
        percentage=round_half_up(done / len(required) * 100),
    )


def compute_course_progress(course: Course, completed_ids: set[str]) -> CourseProgress:
    """Aggregate topic percentages into course progress. Pure function."""
    topics = [
        progress
        for topic in course.published_topics
        if (progress := compute_topic_progress(topic, completed_ids)) is not None
    ]

    if topics:
        mean = sum(t.percentage for t in topics) / len(topics)
        percentage = min(round_half_up(mean), 100)
    else:
        percentage = 0

    return CourseProgress(
        course_id=course.course_id,
        progress=percentage,
        completed_topics=[t.topic_id for t in topics if t.percentage == 100],
        topics=topics,
    )


def recompute_course_progress(student_id: str, course: Course) -> CourseProgress:
    """Recompute and persist course progress for a student."""
    completed_ids = get_completed_content_ids(student_id, course.course_id)
    progress = compute_course_progress(course, completed_ids)
    update_course_progress(
        student_id, course.course_id, progress.progress, progress.completed_topics
    )

    logger.info(
        "course_progress_recomputed",
        student_id=student_id,
        course_id=course.course_id,
        progress=progress.progress,
        completed_topics=len(progress.completed_topics),
    )
    return progress


def refresh_course_progress(student_id: str, course: Course) -> AggregateResult:
    """Recompute course progress, retrying once.

    Called after a mutation has already been committed, so a failure here
    is logged and reported through ``AggregateResult.error`` instead of
    being raised.
    """
    for attempt in (1, 2):
        try:
            return AggregateResult(course_progress=recompute_course_progress(student_id, course))
        except sqlite3.Error as e:
            logger.warning(
                "course_progress_recompute_failed",
                student_id=student_id,
                course_id=course.course_id,
                attempt=attempt,
                error=str(e),
            )

    logger.error(
        "course_progress_unavailable", student_id=student_id, course_id=course.course_id
    )
    return AggregateResult(course_progress=None, error=AGGREGATE_ERROR_MESSAGE)
