"""Persistent record types.

Tables (see database.py):
- enrollments: EnrollmentRecord
- content_progress: ContentProgressRecord
- attempts: AttemptRecord (answers stored as AnswerRecord JSON)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class CompletionStatus(str, Enum):
    """Per-content completion status. Only moves forward."""

    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


class AttemptStatus(str, Enum):
    """Attempt lifecycle states."""

    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    TIMED_OUT = "timed_out"
    ABANDONED = "abandoned"

    @property
    def is_terminal(self) -> bool:
        return self is not AttemptStatus.IN_PROGRESS


# Forward-only ordering of completion statuses
STATUS_RANK = {
    CompletionStatus.NOT_STARTED: 0,
    CompletionStatus.IN_PROGRESS: 1,
    CompletionStatus.COMPLETED: 2,
    CompletionStatus.FAILED: 2,
}


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


@dataclass
class AnswerRecord:
    """A graded answer to a single question."""

    question_id: str
    selected_answer: Any
    correct_answer: Any
    is_correct: bool
    points: int
    question_type: str

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "question_id": self.question_id,
            "selected_answer": self.selected_answer,
            "correct_answer": self.correct_answer,
            "is_correct": self.is_correct,
            "points": self.points,
            "question_type": self.question_type,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AnswerRecord:
        return cls(
            question_id=data["question_id"],
            selected_answer=data.get("selected_answer"),
            correct_answer=data.get("correct_answer"),
            is_correct=bool(data.get("is_correct", False)),
            points=int(data.get("points", 0)),
            question_type=data.get("question_type", ""),
        )


@dataclass
class AttemptRecord:
    """One timed trial of an assessment by a student."""

    student_id: str
    content_id: str
    attempt_number: int
    status: AttemptStatus
    started_at: datetime
    passing_score: int
    expected_end: datetime | None = None
    completed_at: datetime | None = None
    time_spent: int = 0
    score: int | None = None
    correct_answers: int | None = None
    total_questions: int | None = None
    points: int | None = None
    passed: bool | None = None
    answers: list[AnswerRecord] = field(default_factory=list)
    shuffled_question_order: list[int] | None = None
    shuffled_option_orders: dict[str, list[int]] | None = None

    @property
    def has_shuffle_plan(self) -> bool:
        return self.shuffled_question_order is not None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "student_id": self.student_id,
            "content_id": self.content_id,
            "attempt_number": self.attempt_number,
            "status": self.status.value,
            "started_at": _iso(self.started_at),
            "expected_end": _iso(self.expected_end),
            "completed_at": _iso(self.completed_at),
            "time_spent": self.time_spent,
            "score": self.score,
            "correct_answers": self.correct_answers,
            "total_questions": self.total_questions,
            "points": self.points,
            "passed": self.passed,
            "passing_score": self.passing_score,
            "answers": [a.to_dict() for a in self.answers],
            "shuffled_question_order": self.shuffled_question_order,
            "shuffled_option_orders": self.shuffled_option_orders,
        }


@dataclass
class ContentProgressRecord:
    """Per-student progress on one content item."""

    student_id: str
    course_id: str
    topic_id: str
    content_id: str
    content_type: str
    completion_status: CompletionStatus = CompletionStatus.NOT_STARTED
    progress_percentage: float = 0
    attempts: int = 0
    best_score: int = 0
    watch_count: int = 0
    time_spent: int = 0
    last_position: float = 0
    last_accessed: datetime | None = None
    completed_at: datetime | None = None
    expected_end: datetime | None = None
    quiz_attempts: list[AttemptRecord] = field(default_factory=list)

    @property
    def is_completed(self) -> bool:
        return self.completion_status is CompletionStatus.COMPLETED

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "content_id": self.content_id,
            "topic_id": self.topic_id,
            "content_type": self.content_type,
            "completion_status": self.completion_status.value,
            "progress_percentage": self.progress_percentage,
            "attempts": self.attempts,
            "best_score": self.best_score,
            "watch_count": self.watch_count,
            "time_spent": self.time_spent,
            "last_position": self.last_position,
            "last_accessed": _iso(self.last_accessed),
            "completed_at": _iso(self.completed_at),
            "expected_end": _iso(self.expected_end),
        }


@dataclass
class EnrollmentRecord:
    """Student enrollment in a course."""

    student_id: str
    course_id: str
    progress: int = 0
    completed_topics: list[str] = field(default_factory=list)
    status: str = "active"
    enrolled_at: datetime | None = None
    last_accessed: datetime | None = None
    starting_order: int | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "student_id": self.student_id,
            "course_id": self.course_id,
            "progress": self.progress,
            "completed_topics": list(self.completed_topics),
            "status": self.status,
            "enrolled_at": _iso(self.enrolled_at),
            "last_accessed": _iso(self.last_accessed),
            "starting_order": self.starting_order,
        }


def parse_timestamp(value: str | None) -> datetime | None:
    """Parse an ISO-8601 timestamp stored in the database."""
    return datetime.fromisoformat(value) if value else None
