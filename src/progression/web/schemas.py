"""Pydantic schemas for the Web API.

All payloads are camelCase on the wire and snake_case in Python.
Response models are built from the domain objects' ``to_dict()`` output.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model serialized with camelCase aliases."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# =============================================================================
# HEALTH
# =============================================================================


class HealthResponse(CamelModel):
    """Health check response."""

    status: str
    version: str
    timestamp: str


# =============================================================================
# ATTEMPT SCHEMAS
# =============================================================================


class SecureOptionResponse(CamelModel):
    id: str
    text: str
    image: str | None = None


class SecureQuestionResponse(CamelModel):
    """A question without its answer key."""

    id: str
    question_type: str
    text: str
    image: str | None = None
    points: int
    display_index: int
    original_index: int
    options: list[SecureOptionResponse] = Field(default_factory=list)


class TimingResponse(CamelModel):
    duration_minutes: int
    remaining_seconds: int | None = None
    is_expired: bool
    passing_score: int
    expected_end: str | None = None


class AttemptResponse(CamelModel):
    """Response for start and resume."""

    content_id: str
    title: str
    attempt_number: int
    status: str
    started_at: str
    timing: TimingResponse
    questions: list[SecureQuestionResponse] = Field(default_factory=list)


class SubmitRequest(CamelModel):
    """Request body for submitting an attempt."""

    answers: dict[str, Any] = Field(default_factory=dict)
    time_spent: int | None = Field(default=None, ge=0)


class SubmitResponse(CamelModel):
    """Response for a graded submission."""

    attempt_number: int
    status: str
    score: int
    correct_answers: int
    total_questions: int
    points: int
    passed: bool
    passing_score: int
    next_content_id: str | None = None
    course_progress: int | None = None
    already_submitted: bool = False
    aggregate_error: str | None = None


class AnswerResultResponse(CamelModel):
    """A graded answer; answer key fields only present when revealed."""

    question_id: str
    selected_answer: Any = None
    is_correct: bool
    points: int
    question_type: str
    correct_answer: Any = None
    explanation: str | None = None


class AttemptSummaryResponse(CamelModel):
    attempt_number: int
    status: str
    started_at: str
    completed_at: str | None = None
    time_spent: int
    score: int | None = None
    correct_answers: int | None = None
    total_questions: int | None = None
    points: int | None = None
    passed: bool | None = None
    passing_score: int
    answers: list[AnswerResultResponse] = Field(default_factory=list)


class ResultsResponse(CamelModel):
    """Attempt history for one assessment."""

    content_id: str
    title: str
    completion_status: str
    best_score: int
    attempts_used: int
    max_attempts: int
    attempts_remaining: int
    passing_score: int
    show_correct_answers: bool
    latest_attempt: AttemptSummaryResponse | None = None
    attempts: list[AttemptSummaryResponse] = Field(default_factory=list)


# =============================================================================
# PROGRESS SCHEMAS
# =============================================================================


class WatchDataRequest(CamelModel):
    """Playback data reported by the video player."""

    segments: list[Any] | None = None
    video_duration: float | None = None
    frontend_percentage: float | None = None


class ProgressRequest(CamelModel):
    """Request body for a progress update."""

    completion_status: str | None = None
    progress_percentage: float | None = Field(default=None, ge=0, le=100)
    time_spent: int | None = Field(default=None, ge=0)
    last_position: float | None = Field(default=None, ge=0)
    watch_data: WatchDataRequest | None = None


class ContentProgressResponse(CamelModel):
    content_id: str
    topic_id: str
    content_type: str
    completion_status: str
    progress_percentage: float
    attempts: int
    best_score: int
    watch_count: int
    time_spent: int
    last_position: float
    last_accessed: str | None = None
    completed_at: str | None = None
    expected_end: str | None = None


class TopicProgressResponse(CamelModel):
    topic_id: str
    title: str
    completed_required: int
    total_required: int
    percentage: int


class CourseProgressResponse(CamelModel):
    """Aggregated course progress."""

    course_id: str
    progress: int
    completed_topics: list[str] = Field(default_factory=list)
    status: str
    topics: list[TopicProgressResponse] = Field(default_factory=list)
    contents: list[ContentProgressResponse] | None = None
    aggregate_error: str | None = None


class WatchValidationResponse(CamelModel):
    accepted: bool
    total_watched_time: float
    actual_percentage: float
    frontend_percentage: float
    video_duration: float
    merged_segments: list[list[float]]


class ProgressResponse(CamelModel):
    """Response for a progress update."""

    success: bool = True
    content_progress: ContentProgressResponse
    course_progress: CourseProgressResponse | None = None
    is_new_completion: bool = False
    watch_validation: WatchValidationResponse | None = None
    aggregate_error: str | None = None


class UnlockStatusResponse(CamelModel):
    unlocked: bool
    reason: str
    missing_content: str | None = None
    missing_content_title: str | None = None
    missing_course: str | None = None
    missing_course_title: str | None = None
    missing_course_order: int | None = None
