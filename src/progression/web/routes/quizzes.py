"""Standalone quiz endpoints: start, resume, question fetch, submit, results."""

from pathlib import Path

from fastapi import APIRouter, Depends
from starlette.concurrency import run_in_threadpool

from progression.core.attempt_session import (
    get_quiz_question,
    get_quiz_results,
    resume_quiz_attempt,
    start_quiz_attempt,
    submit_quiz_attempt,
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

router = APIRouter(prefix="/api/quizzes", tags=["quizzes"])


@router.post("/{quiz_id}/attempts", response_model=AttemptResponse)
async def start(
    quiz_id: str,
    student_id: str = Depends(get_student_id),
    data_dir: Path = Depends(get_data_dir),
) -> AttemptResponse:
    """Start a quiz attempt, or return the one in progress."""
    async with get_keyed_locks().hold(student_id, quiz_id):
        view = await run_in_threadpool(start_quiz_attempt, student_id, quiz_id, data_dir)
    return AttemptResponse.model_validate(view.to_dict())


@router.get("/{quiz_id}/attempts/current", response_model=AttemptResponse)
async def current(
    quiz_id: str,
    student_id: str = Depends(get_student_id),
    data_dir: Path = Depends(get_data_dir),
) -> AttemptResponse:
    async with get_keyed_locks().hold(student_id, quiz_id):
        view = await run_in_threadpool(resume_quiz_attempt, student_id, quiz_id, data_dir)
    return AttemptResponse.model_validate(view.to_dict())


@router.get(
    "/{quiz_id}/attempts/{attempt_number}/questions/{display_index}",
    response_model=SecureQuestionResponse,
)
async def question(
    quiz_id: str,
    attempt_number: int,
    display_index: int,
    student_id: str = Depends(get_student_id),
    data_dir: Path = Depends(get_data_dir),
) -> SecureQuestionResponse:
    async with get_keyed_locks().hold(student_id, quiz_id):
        secure = await run_in_threadpool(
            get_quiz_question,
            student_id,
            quiz_id,
            attempt_number,
            display_index,
            data_dir,
        )
    return SecureQuestionResponse.model_validate(secure.to_dict())


@router.post("/{quiz_id}/attempts/{attempt_number}/submit", response_model=SubmitResponse)
async def submit(
    quiz_id: str,
    attempt_number: int,
    body: SubmitRequest,
    student_id: str = Depends(get_student_id),
    data_dir: Path = Depends(get_data_dir),
) -> SubmitResponse:
    """Grade and finalize a quiz attempt."""
    async with get_keyed_locks().hold(student_id, quiz_id):
        result = await run_in_threadpool(
            submit_quiz_attempt,
            student_id,
            quiz_id,
            attempt_number,
            body.answers,
            body.time_spent,
            data_dir,
        )
    return SubmitResponse.model_validate(result.to_dict())


@router.get(
    "/{quiz_id}/results",
    response_model=ResultsResponse,
    response_model_exclude_unset=True,
)
async def results(
    quiz_id: str,
    student_id: str = Depends(get_student_id),
    data_dir: Path = Depends(get_data_dir),
) -> ResultsResponse:
    async with get_keyed_locks().hold(student_id, quiz_id):
        history = await run_in_threadpool(get_quiz_results, student_id, quiz_id, data_dir)
    return ResultsResponse.model_validate(history.to_dict())
