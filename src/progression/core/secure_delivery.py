"""Secure question delivery.

Maps bank questions through an attempt's shuffle plan into client payloads
that carry no answer key: no correct option index or text, no accepted
answers for written questions, no explanation.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from progression.core.content_graph import ContentItem, Course
from progression.core.errors import QuestionNotFoundError
from progression.core.shuffle_engine import ShufflePlan, ordered_questions


@dataclass
class SecureOption:
    option_id: str
    text: str
    image: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.option_id, "text": self.text, "image": self.image}


@dataclass
class SecureQuestion:
    """A question as shown to the student during an attempt."""

    question_id: str
    question_type: str
    text: str
    image: str | None
    points: int
    display_index: int
    original_index: int
    options: list[SecureOption] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "id": self.question_id,
            "question_type": self.question_type,
            "text": self.text,
            "image": self.image,
            "points": self.points,
            "display_index": self.display_index,
            "original_index": self.original_index,
            "options": [o.to_dict() for o in self.options],
        }


def _secure_question(
    course: Course, item: ContentItem, plan: ShufflePlan, display_index: int
) -> SecureQuestion:
    selected = ordered_questions(item)
    original_index = plan.question_order[display_index]
    slot = selected[original_index]

    question = course.get_question(slot.question_id)
    if question is None:
        raise QuestionNotFoundError(
            "Question not found", question_id=slot.question_id
        )

    option_order = plan.option_order(question.question_id, len(question.options))
    options = [
        SecureOption(
            option_id=question.options[i].option_id,
            text=question.options[i].text,
            image=question.options[i].image,
        )
        for i in option_order
    ]

    return SecureQuestion(
        question_id=question.question_id,
        question_type=question.question_type,
        text=question.text,
        image=question.image,
        points=slot.points,
        display_index=display_index,
        original_index=original_index,
        options=options,
    )


def build_secure_questions(
    course: Course, item: ContentItem, plan: ShufflePlan
) -> list[SecureQuestion]:
    """All questions of an assessment in display order.

    Raises:
        QuestionNotFoundError: If a selected question is missing from the bank
    """
    return [
        _secure_question(course, item, plan, display_index)
        for display_index in range(len(plan.question_order))
    ]


def get_secure_question(
    course: Course, item: ContentItem, plan: ShufflePlan, display_index: int
) -> SecureQuestion:
    """One question by display index.

    Raises:
        QuestionNotFoundError: If the index is out of range or the question is
            missing from the bank
    """
    if not 0 <= display_index < len(plan.question_order):
        raise QuestionNotFoundError(
            "Question not found",
            display_index=display_index,
            total_questions=len(plan.question_order),
        )
    return _secure_question(course, item, plan, display_index)
