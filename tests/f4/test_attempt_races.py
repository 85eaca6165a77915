"""Concurrent start and submit against the attempt store."""

import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta

import pytest

from conftest import NOW
from progression.core.attempt_session import start_attempt, submit_attempt
from progression.db.attempt_repository import list_attempts
from progression.db.models import AttemptStatus
from progression.db.progress_repository import get_content_progress

WORKERS = 8
ALL_RIGHT = {"q1": "x = 3", "q2": "True", "q3": "x+1"}


@pytest.fixture
def quiz_ready(enrolled, complete):
    complete("c1", content_type="video")
    complete("c2")
    return enrolled


def _race(func):
    """Run ``func`` on every worker at once and collect results."""
    barrier = threading.Barrier(WORKERS)

    def _run():
        barrier.wait(timeout=10)
        return func()

    with ThreadPoolExecutor(max_workers=WORKERS) as pool:
        futures = [pool.submit(_run) for _ in range(WORKERS)]
        return [future.result(timeout=30) for future in futures]


class TestConcurrentStart:
    """Racing start_attempt calls share one attempt."""

    def test_single_attempt_row(self, quiz_ready, data_dir):
        views = _race(lambda: start_attempt("stu01", "quiz1", data_dir, now=NOW))

        attempts = list_attempts("stu01", "quiz1")
        assert len(attempts) == 1
        assert attempts[0].status is AttemptStatus.IN_PROGRESS
        assert sum(1 for view in views if view.created) == 1
        assert {view.attempt.attempt_number for view in views} == {1}

    def test_same_question_order(self, quiz_ready, data_dir):
        views = _race(lambda: start_attempt("stu01", "quiz1", data_dir, now=NOW))

        orders = {tuple(q.question_id for q in view.questions) for view in views}
        assert len(orders) == 1
        stored = list_attempts("stu01", "quiz1")[0].shuffled_question_order
        assert tuple(stored) in orders


class TestConcurrentSubmit:
    """Racing submit_attempt calls finalize the attempt once."""

    def test_single_transition(self, quiz_ready, data_dir):
        start_attempt("stu01", "quiz1", data_dir, now=NOW)

        results = _race(
            lambda: submit_attempt(
                "stu01",
                "quiz1",
                1,
                ALL_RIGHT,
                data_dir=data_dir,
                now=NOW + timedelta(minutes=5),
            )
        )

        fresh = [result for result in results if not result.already_submitted]
        assert len(fresh) == 1
        assert all(result.score == 100 for result in results)

        progress = get_content_progress("stu01", "quiz1")
        assert progress.attempts == 1
        assert progress.best_score == 100

        attempts = list_attempts("stu01", "quiz1")
        assert len(attempts) == 1
        assert attempts[0].status is AttemptStatus.COMPLETED
