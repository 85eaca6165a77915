"""Attempt endpoints: start, resume, question fetch, submit, results."""

from pathlib import Path

from fastapi import APIRouter, Depends
from starlette.concurrency import run_in_threadpool

from progression.core.attempt_session import (
    get_attempt_question,
    get_attempt_results,
    resume_attempt,
    start_attempt,
    submit_attempt,
)
from progression.web.dependencies import get_data_dir, get_student_id
from progression.web.locks import get_keyed_locks
from progression.web.schemas import (
    AttemptResponse,
    ResultsResponse,
    SecureQuestionResponse,
    SubmitRequest,
    SubmitResponse,
)

router = APIRouter(prefix="/api/contents", tags=["attempts"])


@router.post("/{content_id}/attempts", response_model=AttemptResponse)
async def start(
    content_id: str,
    student_id: str = Depends(get_student_id),
    data_dir: Path = Depends(get_data_dir),
) -> AttemptResponse:
    """Start an attempt, or return the one in progress."""
    async with get_keyed_locks().hold(student_id, content_id):
        view = await run_in_threadpool(start_attempt, student_id, content_id, data_dir)
    return AttemptResponse.model_validate(view.to_dict())


@router.get("/{content_id}/attempts/current", response_model=AttemptResponse)
async def current(
    content_id: str,
    student_id: str = Depends(get_student_id),
    data_dir: Path = Depends(get_data_dir),
) -> AttemptResponse:
    """Resume the in-progress attempt with remaining time."""
    async with get_keyed_locks().hold(student_id, content_id):
        view = await run_in_threadpool(resume_attempt, student_id, content_id, data_dir)
    return AttemptResponse.model_validate(view.to_dict())


@router.get(
    "/{content_id}/attempts/{attempt_number}/questions/{display_index}",
    response_model=SecureQuestionResponse,
)
async def question(
    content_id: str,
    attempt_number: int,
    display_index: int,
    student_id: str = Depends(get_student_id),
    data_dir: Path = Depends(get_data_dir),
) -> SecureQuestionResponse:
    """Fetch one question by display position."""
    async with get_keyed_locks().hold(student_id, content_id):
        secure = await run_in_threadpool(
            get_attempt_question,
            student_id,
            content_id,
            attempt_number,
            display_index,
            data_dir,
        )
    return SecureQuestionResponse.model_validate(secure.to_dict())


@router.post("/{content_id}/attempts/{attempt_number}/submit", response_model=SubmitResponse)
async def submit(
    content_id: str,
    attempt_number: int,
    body: SubmitRequest,
    student_id: str = Depends(get_student_id),
    data_dir: Path = Depends(get_data_dir),
) -> SubmitResponse:
    """Grade and finalize an attempt."""
    async with get_keyed_locks().hold(student_id, content_id):
        result = await run_in_threadpool(
            submit_attempt,
            student_id,
            content_id,
            attempt_number,
            body.answers,
            body.time_spent,
            data_dir,
        )
    return SubmitResponse.model_validate(result.to_dict())


@router.get(
    "/{content_id}/results",
    response_model=ResultsResponse,
    response_model_exclude_unset=True,
)
async def results(
    content_id: str,
    student_id: str = Depends(get_student_id),
    data_dir: Path = Depends(get_data_dir),
) -> ResultsResponse:
    """Attempt history; answer keys only after a passing latest attempt."""
    async with get_keyed_locks().hold(student_id, content_id):
        history = await run_in_threadpool(get_attempt_results, student_id, content_id, data_dir)
    return ResultsResponse.model_validate(history.to_dict())
