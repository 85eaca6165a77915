"""Grading module.

Responsibilities:
- Grade MCQ and TrueFalse questions by option text or original option index
- Grade Written questions against accepted answer variants
- Compute score, points and pass/fail for a submission

Comparison strategies for choice questions are tried in priority order
(BY_TEXT, then BY_INDEX); an answer is correct if any strategy matches.
Text matching is stable under option shuffling; index matching accepts
submissions made against the original option order.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable

import structlog

from progression.core.content_graph import ContentItem, Course, Question
from progression.core.errors import GradingError, QuestionNotFoundError
from progression.core.shuffle_engine import ordered_questions
from progression.db.models import AnswerRecord

logger = structlog.get_logger(__name__)

# =============================================================================
# DATA CLASSES
# =============================================================================


class AnswerComparisonStrategy(str, Enum):
    """How a choice answer is compared with the answer key."""

    BY_TEXT = "by_text"
    BY_INDEX = "by_index"


@dataclass
class GradeReport:
    """Grading result for one submission."""

    answers: list[AnswerRecord]
    correct_answers: int
    total_questions: int
    score: int
    points: int
    passed: bool
    passing_score: int

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "score": self.score,
            "correct_answers": self.correct_answers,
            "total_questions": self.total_questions,
            "points": self.points,
            "passed": self.passed,
            "passing_score": self.passing_score,
            "answers": [a.to_dict() for a in self.answers],
        }


@dataclass
class _Tally:
    correct: int = 0
    points: int = 0
    answers: list[AnswerRecord] = field(default_factory=list)


# =============================================================================
# NORMALIZATION
# =============================================================================


def _normalize_mcq_response(response: Any) -> int | None:
    """Normalize MCQ response to int index or None if invalid/empty.

    Args:
        response: Student's raw response (int, str, or None)

    Returns:
        Integer index or None if response is empty/invalid
    """
    if response is None or isinstance(response, bool):
        return None
    if isinstance(response, int):
        return response
    if isinstance(response, str):
        stripped = response.strip().lower()
        if stripped == "" or stripped in ("null", "none"):
            return None
        try:
            return int(stripped)
        except ValueError:
            return None
    return None


def _normalize_tf_response(response: Any) -> bool | None:
    """Normalize TF response to bool or None if invalid/empty.

    Args:
        response: Student's raw response (bool, str, int, or None)

    Returns:
        Boolean or None if response is empty/invalid
    """
    if response is None:
        return None
    if isinstance(response, bool):
        return response
    if isinstance(response, str):
        stripped = response.strip().lower()
        if stripped == "" or stripped in ("null", "none"):
            return None
        if stripped in ("true", "yes", "1", "t", "y"):
            return True
        if stripped in ("false", "no", "0", "f", "n"):
            return False
        return None
    if isinstance(response, int):
        return response != 0
    return None


def _normalize_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip().casefold()


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero for positives."""
    return int(math.floor(value + 0.5))


def compute_score(correct: int, total: int) -> int:
    """Percentage of correct answers, 0 when there are no questions."""
    if total <= 0:
        return 0
    return round_half_up(correct / total * 100)


# =============================================================================
# ANSWER KEY
# =============================================================================


def correct_option_index(question: Question) -> int | None:
    """Original index of the correct option, if it can be determined."""
    key = question.correct_answer
    if isinstance(key, bool):
        for i, option in enumerate(question.options):
            if _normalize_tf_response(option.text) is key:
                return i
        return None

    index = _normalize_mcq_response(key)
    if index is not None:
        return index if 0 <= index < len(question.options) else None

    if isinstance(key, str) and key.strip():
        wanted = _normalize_text(key)
        for i, option in enumerate(question.options):
            if _normalize_text(option.text) == wanted:
                return i
    return None


def correct_option_text(question: Question) -> str | None:
    """Text of the correct option, if it can be determined."""
    index = correct_option_index(question)
    if index is not None:
        return question.options[index].text
    key = question.correct_answer
    if isinstance(key, str) and key.strip() and _normalize_mcq_response(key) is None:
        return key.strip()
    return None


def accepted_variants(question: Question) -> list[str]:
    """Normalized accepted answers of a Written question.

    Each accepted entry may itself be a comma-separated list of
    interchangeable variants.
    """
    entries = list(question.correct_answers)
    if not entries and isinstance(question.correct_answer, str):
        entries = [question.correct_answer]

    variants: list[str] = []
    for entry in entries:
        for part in str(entry).split(","):
            normalized = _normalize_text(part)
            if normalized:
                variants.append(normalized)
    return variants


def expected_answer(question: Question) -> Any:
    """Answer key as recorded on graded answers."""
    if question.question_type == "Written":
        return list(question.correct_answers) or (
            [question.correct_answer] if question.correct_answer is not None else []
        )
    text = correct_option_text(question)
    return text if text is not None else question.correct_answer


# =============================================================================
# COMPARATORS
# =============================================================================


def matches_by_text(question: Question, submitted: Any) -> bool:
    """Submitted value equals the correct option's text (case-insensitive)."""
    if not isinstance(submitted, str):
        return False
    expected = correct_option_text(question)
    given = _normalize_text(submitted)
    return bool(given) and expected is not None and given == _normalize_text(expected)


def matches_by_index(question: Question, submitted: Any) -> bool:
    """Submitted value is the original index of the correct option."""
    given = _normalize_mcq_response(submitted)
    expected = correct_option_index(question)
    return given is not None and expected is not None and given == expected


COMPARATORS: dict[AnswerComparisonStrategy, Callable[[Question, Any], bool]] = {
    AnswerComparisonStrategy.BY_TEXT: matches_by_text,
    AnswerComparisonStrategy.BY_INDEX: matches_by_index,
}

COMPARISON_PRIORITY = (AnswerComparisonStrategy.BY_TEXT, AnswerComparisonStrategy.BY_INDEX)


def matching_strategy(question: Question, submitted: Any) -> AnswerComparisonStrategy | None:
    """First strategy in priority order that accepts the answer."""
    for strategy in COMPARISON_PRIORITY:
        if COMPARATORS[strategy](question, submitted):
            return strategy
    return None


def is_correct_choice_answer(question: Question, submitted: Any) -> bool:
    """Grade an MCQ or TrueFalse answer."""
    if matching_strategy(question, submitted) is not None:
        return True

    # TrueFalse keys and answers may be plain booleans
    if question.question_type == "TrueFalse" and (
        isinstance(submitted, bool) or not question.options
    ):
        given = _normalize_tf_response(submitted)
        key = correct_option_text(question) if question.options else question.correct_answer
        expected = _normalize_tf_response(key)
        return given is not None and expected is not None and given == expected

    return False


def is_correct_written_answer(question: Question, submitted: Any) -> bool:
    """Grade a Written answer.

    Case-insensitive and trimmed; accepts equality or containment in either
    direction. An empty submission never matches.
    """
    given = _normalize_text(submitted)
    if not given:
        return False
    return any(
        given == variant or variant in given or given in variant
        for variant in accepted_variants(question)
    )


# =============================================================================
# GRADING FUNCTIONS
# =============================================================================


def grade_answer(question: Question, points: int, submitted: Any) -> AnswerRecord:
    """Grade one answer.

    Raises:
        GradingError: If the question type is unknown
    """
    if question.question_type == "Written":
        is_correct = is_correct_written_answer(question, submitted)
    elif question.question_type in ("MCQ", "TrueFalse"):
        is_correct = is_correct_choice_answer(question, submitted)
    else:
        raise GradingError(
            f"Unknown question type: {question.question_type}",
            question_id=question.question_id,
        )

    return AnswerRecord(
        question_id=question.question_id,
        selected_answer=submitted,
        correct_answer=expected_answer(question),
        is_correct=is_correct,
        points=points if is_correct else 0,
        question_type=question.question_type,
    )


def grade_submission(
    course: Course,
    item: ContentItem,
    answers: dict[str, Any],
    passing_score: int | None = None,
) -> GradeReport:
    """Grade a submission for a quiz/homework item.

    Args:
        course: Course owning the item and the question bank
        item: Assessment content item
        answers: question_id -> submitted answer; missing entries count as wrong
        passing_score: Override for the item's configured passing score

    Returns:
        GradeReport

    Raises:
        QuestionNotFoundError: If a selected question is missing from the bank
        GradingError: If a question has an unknown type
    """
    if passing_score is None:
        if item.settings is None:
            raise GradingError("Content is not an assessment", content_id=item.content_id)
        passing_score = item.settings.passing_score

    tally = _Tally()
    selected = ordered_questions(item)
    for slot in selected:
        question = course.get_question(slot.question_id)
        if question is None:
            raise QuestionNotFoundError("Question not found", question_id=slot.question_id)

        record = grade_answer(question, slot.points, answers.get(slot.question_id))
        if record.is_correct:
            tally.correct += 1
            tally.points += slot.points
        tally.answers.append(record)

    total = len(selected)
    score = compute_score(tally.correct, total)
    report = GradeReport(
        answers=tally.answers,
        correct_answers=tally.correct,
        total_questions=total,
        score=score,
        points=tally.points,
        passed=score >= passing_score,
        passing_score=passing_score,
    )

    logger.info(
        "submission_graded",
        content_id=item.content_id,
        score=report.score,
        correct=report.correct_answers,
        total=report.total_questions,
        passed=report.passed,
    )
    return report
