"""Domain error taxonomy.

Every error carries an HTTP status code and a context dict that the web
layer merges into the ``{success: false, message, ...}`` response body.
"""

from __future__ import annotations

from typing import Any


class ProgressionError(Exception):
    """Base class for all domain errors."""

    status_code: int = 400

    def __init__(self, message: str, **context: Any):
        self.message = message
        self.context = context
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Convert to response payload."""
        return {"success": False, "message": self.message, **self.context}


class ValidationError(ProgressionError):
    """Request failed a domain validation rule."""

    status_code = 400


class NotEnrolledError(ProgressionError):
    """Student is not enrolled in the course owning the content."""

    status_code = 403


class ContentLockedError(ProgressionError):
    """Content is not unlocked for the student yet."""

    status_code = 403


class CourseLockedError(ContentLockedError):
    """An earlier course of a sequential bundle is not finished."""


class AttemptLimitExceededError(ProgressionError):
    """No attempts remain for the assessment."""

    status_code = 403


class WatchLimitExceededError(ValidationError):
    """Video reached its maximum watch count."""


class InsufficientWatchCoverageError(ValidationError):
    """Reported play segments do not cover enough of the video."""


class AttemptExpiredError(ValidationError):
    """Submission arrived after the attempt deadline and grace window."""


class ContentAlreadyCompletedError(ValidationError):
    """Assessment was already completed successfully."""


class ContentNotFoundError(ProgressionError):
    """Content id does not exist in any course visible to the student."""

    status_code = 404


class AttemptNotFoundError(ProgressionError):
    """Attempt number does not exist for this student and content."""

    status_code = 404


class GradingError(ProgressionError):
    """Error during grading."""

    status_code = 500


class QuestionNotFoundError(GradingError):
    """Selected question is missing from the question bank."""

    status_code = 404
