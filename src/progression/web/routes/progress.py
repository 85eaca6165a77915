"""Progress and unlock endpoints."""

from pathlib import Path

from fastapi import APIRouter, Depends
from starlette.concurrency import run_in_threadpool

from progression.core.access import content_unlock_status, course_unlock_status
from progression.core.progress_service import ProgressData, get_course_progress, update_progress
from progression.web.dependencies import get_data_dir, get_student_id
from progression.web.locks import get_keyed_locks
from progression.web.schemas import (
    CourseProgressResponse,
    ProgressRequest,
    ProgressResponse,
    UnlockStatusResponse,
)

router = APIRouter(tags=["progress"])


@router.post("/api/contents/{content_id}/progress", response_model=ProgressResponse)
async def post_progress(
    content_id: str,
    body: ProgressRequest,
    student_id: str = Depends(get_student_id),
    data_dir: Path = Depends(get_data_dir),
) -> ProgressResponse:
    """Record progress on a content item."""
    data = ProgressData.from_dict(body.model_dump())
    async with get_keyed_locks().hold(student_id, content_id):
        result = await run_in_threadpool(update_progress, student_id, content_id, data, data_dir)
    return ProgressResponse.model_validate(result.to_dict())


@router.get(
    "/api/contents/{content_id}/unlock-status",
    response_model=UnlockStatusResponse,
    response_model_exclude_none=True,
)
async def unlock_status(
    content_id: str,
    student_id: str = Depends(get_student_id),
    data_dir: Path = Depends(get_data_dir),
) -> UnlockStatusResponse:
    """Whether the content is accessible, naming the first missing item."""
    status = await run_in_threadpool(content_unlock_status, student_id, content_id, data_dir)
    return UnlockStatusResponse.model_validate(status.to_dict())


@router.get("/api/courses/{course_id}/progress", response_model=CourseProgressResponse)
async def course_progress(
    course_id: str,
    student_id: str = Depends(get_student_id),
    data_dir: Path = Depends(get_data_dir),
) -> CourseProgressResponse:
    """Aggregated progress of the student in a course."""
    report = await run_in_threadpool(get_course_progress, student_id, course_id, data_dir)
    return CourseProgressResponse.model_validate(report.to_dict())


@router.get(
    "/api/courses/{course_id}/unlock-status",
    response_model=UnlockStatusResponse,
    response_model_exclude_none=True,
)
async def course_unlock(
    course_id: str,
    student_id: str = Depends(get_student_id),
    data_dir: Path = Depends(get_data_dir),
) -> UnlockStatusResponse:
    """Whether the course is open, naming the earlier course to finish."""
    status = await run_in_threadpool(course_unlock_status, student_id, course_id, data_dir)
    return UnlockStatusResponse.model_validate(status.to_dict())
