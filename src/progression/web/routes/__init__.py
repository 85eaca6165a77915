"""Route handlers for the Web API."""

from progression.web.routes.health import router as health_router
from progression.web.routes.attempts import router as attempts_router
from progression.web.routes.progress import router as progress_router
from progression.web.routes.quizzes import router as quizzes_router

__all__ = [
    "health_router",
    "attempts_router",
    "progress_router",
    "quizzes_router",
]
