"""FastAPI dependencies for learner progress.

Provides dependency injection for:
- Progress service
- Learner identity (resolved upstream, forwarded in a header)
- Error handlers
"""

from typing import Annotated
from uuid import UUID

from fastapi import Depends, HTTPException, Request, status

from src.config import get_settings
from src.core.context import set_learner_id
from src.core.database.errors import TransientStorageError
from src.courses.service import CourseError

from .service import ProgressError, ProgressService


async def get_progress_service(request: Request) -> ProgressService:
    """Get progress service from app state.

    Args:
        request: FastAPI request

    Returns:
        ProgressService instance
    """
    app_state = request.app.state
    if not hasattr(app_state, "progress_service") or not app_state.progress_service:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Progress service not available",
        )
    return app_state.progress_service


async def get_learner_id(request: Request) -> UUID:
    """Learner id forwarded by the gateway.

    The caller has already authenticated and authorized the learner; this
    only parses the identifier and binds it to the logging context.
    """
    header = get_settings().learner_id_header
    raw = request.headers.get(header)
    if not raw:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Missing {header} header",
        )
    try:
        learner_id = UUID(raw)
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid {header} header",
        ) from e

    set_learner_id(str(learner_id))
    return learner_id


# Type aliases for dependency injection
ProgressServiceDep = Annotated[ProgressService, Depends(get_progress_service)]
LearnerId = Annotated[UUID, Depends(get_learner_id)]


def handle_progress_error(
    error: ProgressError | CourseError | TransientStorageError,
) -> HTTPException:
    """Convert engine errors to HTTP exceptions.

    Args:
        error: Progress, hierarchy or storage error

    Returns:
        HTTPException with appropriate status code
    """
    status_map = {
        "course_not_found": status.HTTP_404_NOT_FOUND,
        "lesson_not_found": status.HTTP_404_NOT_FOUND,
        "content_block_not_found": status.HTTP_404_NOT_FOUND,
        "not_enrolled": status.HTTP_404_NOT_FOUND,
        "already_enrolled": status.HTTP_409_CONFLICT,
        "lesson_incomplete": status.HTTP_412_PRECONDITION_FAILED,
        "prerequisites_not_met": status.HTTP_412_PRECONDITION_FAILED,
        "storage_unavailable": status.HTTP_503_SERVICE_UNAVAILABLE,
    }

    status_code = status_map.get(error.code, status.HTTP_500_INTERNAL_SERVER_ERROR)

    headers = None
    if status_code == status.HTTP_503_SERVICE_UNAVAILABLE:
        headers = {"Retry-After": "1"}

    return HTTPException(
        status_code=status_code,
        detail=error.message,
        headers=headers,
    )
