"""FastAPI application factory.

Main entry point for the Progression Engine Web API.
"""

from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic.alias_generators import to_camel
from starlette.exceptions import HTTPException as StarletteHTTPException

from progression.config.app_config import load_app_config
from progression.core.content_graph import list_course_ids
from progression.core.errors import ProgressionError
from progression.db.database import init_db, is_initialized
from progression.web.routes import (
    attempts_router,
    health_router,
    progress_router,
    quizzes_router,
)

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Lifespan context manager for startup/shutdown events."""
    # Startup
    config = load_app_config()
    if not is_initialized():
        init_db(Path(config.paths["db_path"]))
    data_dir = Path(config.paths["data_dir"])
    course_ids = list_course_ids(data_dir)
    logger.info(
        "api_startup",
        courses_found=len(course_ids),
        courses_dir=str((data_dir / "courses").absolute()),
        course_ids=course_ids,
    )
    yield


async def progression_error_handler(request: Request, exc: ProgressionError) -> JSONResponse:
    """Render domain errors as ``{success: false, message, ...context}``."""
    logger.info(
        "request_rejected",
        path=request.url.path,
        error=type(exc).__name__,
        status_code=exc.status_code,
        message=exc.message,
    )
    content = {to_camel(key): value for key, value in exc.to_dict().items()}
    return JSONResponse(status_code=exc.status_code, content=content)


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Report malformed request bodies, params and headers as a 400."""
    errors = [
        {
            "field": ".".join(str(part) for part in error.get("loc", ()) if part != "body"),
            "message": error.get("msg", ""),
            "type": error.get("type", ""),
        }
        for error in exc.errors()
    ]
    logger.info("request_invalid", path=request.url.path, errors=len(errors))
    return JSONResponse(
        status_code=400,
        content={"success": False, "message": "Invalid request", "errors": errors},
    )


async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    logger.info("request_rejected", path=request.url.path, status_code=exc.status_code)
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "message": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Hide internals of unexpected failures behind a generic message."""
    logger.exception("request_failed", path=request.url.path, error=str(exc))
    return JSONResponse(
        status_code=500,
        content={"success": False, "message": "An unexpected error occurred"},
    )


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        Configured FastAPI app instance
    """
    app = FastAPI(
        title="Progression Engine API",
        description="Content progression and assessment engine",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # CORS middleware for web clients
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(ProgressionError, progression_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(Exception, unexpected_error_handler)

    # Include routers
    app.include_router(health_router)
    app.include_router(attempts_router)
    app.include_router(progress_router)
    app.include_router(quizzes_router)

    return app


# Default app instance for uvicorn
app = create_app()
