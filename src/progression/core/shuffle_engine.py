"""Shuffle engine module.

Responsibilities:
- Derive a stable seed from (student_id, content_id, attempt_number)
- Produce Fisher-Yates permutations of question and option indices
- Persist the plan on first computation and reuse it afterwards

A plan, once stored on an attempt, is never recomputed: changes to this
module must not reorder an attempt that is already in progress.

Plan structure:
- question_order: display position -> index into the ordered selected questions
- option_orders: question_id -> display position -> original option index
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from typing import Any

import structlog

from progression.core.content_graph import ContentItem, Course, SelectedQuestion
from progression.db.attempt_repository import save_shuffle_plan
from progression.db.models import AttemptRecord

logger = structlog.get_logger(__name__)

_MASK64 = (1 << 64) - 1


def stable_seed(*parts: Any) -> int:
    """Stable 64-bit seed from the SHA-256 digest of the given parts."""
    payload = "\x1f".join(str(p) for p in parts).encode("utf-8")
    return int.from_bytes(hashlib.sha256(payload).digest()[:8], "big")


class SplitMix64:
    """SplitMix64 pseudo-random generator.

    Small, fast and fully determined by its 64-bit state.
    """

    def __init__(self, seed: int):
        self.state = seed & _MASK64

    def next_u64(self) -> int:
        self.state = (self.state + 0x9E3779B97F4A7C15) & _MASK64
        z = self.state
        z = ((z ^ (z >> 30)) * 0xBF58476D1CE4E5B9) & _MASK64
        z = ((z ^ (z >> 27)) * 0x94D049BB133111EB) & _MASK64
        return z ^ (z >> 31)

    def next_below(self, bound: int) -> int:
        """Uniform integer in [0, bound) using rejection sampling."""
        if bound <= 0:
            raise ValueError("bound must be positive")
        limit = (1 << 64) - ((1 << 64) % bound)
        while True:
            value = self.next_u64()
            if value < limit:
                return value % bound


def fisher_yates(n: int, rng: SplitMix64) -> list[int]:
    """Permutation of range(n)."""
    order = list(range(n))
    for i in range(n - 1, 0, -1):
        j = rng.next_below(i + 1)
        order[i], order[j] = order[j], order[i]
    return order


@dataclass
class ShufflePlan:
    """Display order of questions and options for one attempt."""

    question_order: list[int]
    option_orders: dict[str, list[int]] = field(default_factory=dict)

    def option_order(self, question_id: str, option_count: int) -> list[int]:
        """Option order for a question, identity when none is stored."""
        order = self.option_orders.get(question_id)
        if order is None or len(order) != option_count:
            return list(range(option_count))
        return list(order)


def ordered_questions(item: ContentItem) -> list[SelectedQuestion]:
    """Selected questions in their authored order."""
    return sorted(item.selected_questions, key=lambda q: q.order)


def identity_plan(course: Course, item: ContentItem) -> ShufflePlan:
    """Plan that keeps authored order."""
    selected = ordered_questions(item)
    option_orders = {}
    for slot in selected:
        question = course.get_question(slot.question_id)
        if question is not None and question.options:
            option_orders[slot.question_id] = list(range(len(question.options)))
    return ShufflePlan(question_order=list(range(len(selected))), option_orders=option_orders)


def compute_shuffle_plan(
    course: Course,
    item: ContentItem,
    student_id: str,
    attempt_number: int,
) -> ShufflePlan:
    """Compute the deterministic plan for an attempt.

    Questions are permuted when ``shuffle_questions`` is set; options of each
    question are permuted with a per-question seed when ``shuffle_options``
    is set. Disabled dimensions keep the identity order.
    """
    settings = item.settings
    plan = identity_plan(course, item)
    if settings is None:
        return plan

    seed = stable_seed(student_id, item.content_id, attempt_number)

    if settings.shuffle_questions:
        plan.question_order = fisher_yates(len(plan.question_order), SplitMix64(seed))

    if settings.shuffle_options:
        for question_id, identity in plan.option_orders.items():
            rng = SplitMix64(stable_seed(seed, question_id))
            plan.option_orders[question_id] = fisher_yates(len(identity), rng)

    return plan


def get_or_create_shuffle_plan(
    course: Course, item: ContentItem, attempt: AttemptRecord
) -> ShufflePlan:
    """Return the attempt's plan, computing and persisting it on first use.

    When a plan is already stored it is returned as-is. When neither shuffle
    flag is enabled the identity plan is returned without persisting.
    If two requests race, the write-once update keeps the first plan and
    both return the stored value.
    """
    if attempt.has_shuffle_plan:
        return ShufflePlan(
            question_order=list(attempt.shuffled_question_order),
            option_orders=dict(attempt.shuffled_option_orders or {}),
        )

    settings = item.settings
    if settings is None or not (settings.shuffle_questions or settings.shuffle_options):
        return identity_plan(course, item)

    plan = compute_shuffle_plan(course, item, attempt.student_id, attempt.attempt_number)
    stored = save_shuffle_plan(
        attempt.student_id,
        attempt.content_id,
        attempt.attempt_number,
        plan.question_order,
        plan.option_orders,
    )
    if stored is None or not stored.has_shuffle_plan:
        return plan

    logger.debug(
        "shuffle_plan_ready",
        student_id=attempt.student_id,
        content_id=attempt.content_id,
        attempt_number=attempt.attempt_number,
        questions=len(stored.shuffled_question_order),
    )
    return ShufflePlan(
        question_order=list(stored.shuffled_question_order),
        option_orders=dict(stored.shuffled_option_orders or {}),
    )
