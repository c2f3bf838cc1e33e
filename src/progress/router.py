"""Learner progress API endpoints.

Provides routes for:
- Course catalog and learner course view
- Course progress summary and enrollment listing
- Enrollment (with prerequisite checks) and my enrollments
- Lesson content with navigation
- Content progress updates and lesson completion
"""

from uuid import UUID

from fastapi import APIRouter, Depends, status

from src.core.database.errors import TransientStorageError
from src.courses.service import CourseError

from .dependencies import LearnerId, ProgressServiceDep, get_learner_id, handle_progress_error
from .schemas import (
    CatalogCourseResponse,
    CatalogResponse,
    ContentProgressUpdateResponse,
    CourseProgressSummaryResponse,
    EnrollmentListResponse,
    EnrollmentResponse,
    EnrollRequest,
    LearnerCourseResponse,
    LessonCompleteResponse,
    LessonContentResponse,
    UpdateContentProgressRequest,
)
from .service import ProgressError


router = APIRouter(prefix="/v1/learning", tags=["learning"])

ENGINE_ERRORS = (ProgressError, CourseError, TransientStorageError)


# ==============================================================================
# Course Endpoints
# ==============================================================================


@router.get(
    "/courses",
    response_model=CatalogResponse,
    summary="List available courses",
)
async def list_courses(
    progress_service: ProgressServiceDep,
    learner_id: LearnerId,
) -> CatalogResponse:
    """Published courses with the learner's enrollment, if any."""
    try:
        entries = await progress_service.get_available_courses(learner_id)
    except ENGINE_ERRORS as e:
        raise handle_progress_error(e) from e
    return CatalogResponse(
        items=[CatalogCourseResponse.from_entry(entry) for entry in entries],
        total=len(entries),
    )


@router.get(
    "/courses/{course_id}",
    response_model=LearnerCourseResponse,
    summary="Get course with learner progress",
)
async def get_course(
    course_id: UUID,
    progress_service: ProgressServiceDep,
    learner_id: LearnerId,
) -> LearnerCourseResponse:
    """Full module/lesson tree with per-lesson status.

    ``enrollment`` is null when the learner is not enrolled.
    """
    try:
        view = await progress_service.get_course_for_learner(learner_id, course_id)
    except ENGINE_ERRORS as e:
        raise handle_progress_error(e) from e
    return LearnerCourseResponse.from_view(view)


@router.get(
    "/courses/{course_id}/progress-summary",
    response_model=CourseProgressSummaryResponse,
    summary="Get course progress summary",
    dependencies=[Depends(get_learner_id)],
)
async def get_course_progress_summary(
    course_id: UUID,
    progress_service: ProgressServiceDep,
) -> CourseProgressSummaryResponse:
    """Enrollment counts, completion rate and average progress of a course."""
    try:
        summary = await progress_service.get_course_progress_summary(course_id)
    except ENGINE_ERRORS as e:
        raise handle_progress_error(e) from e
    return CourseProgressSummaryResponse.from_summary(summary)


@router.get(
    "/courses/{course_id}/enrollments",
    response_model=EnrollmentListResponse,
    summary="List course enrollments",
    dependencies=[Depends(get_learner_id)],
)
async def get_course_enrollments(
    course_id: UUID,
    progress_service: ProgressServiceDep,
) -> EnrollmentListResponse:
    """Every enrollment in a course, most recent first."""
    try:
        enrollments = await progress_service.get_course_enrollments(course_id)
    except ENGINE_ERRORS as e:
        raise handle_progress_error(e) from e
    return EnrollmentListResponse(
        items=[EnrollmentResponse.from_entity(e) for e in enrollments],
        total=len(enrollments),
    )


# ==============================================================================
# Enrollment Endpoints
# ==============================================================================


@router.post(
    "/enrollments",
    response_model=EnrollmentResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Enroll in course",
)
async def enroll_in_course(
    data: EnrollRequest,
    progress_service: ProgressServiceDep,
    learner_id: LearnerId,
) -> EnrollmentResponse:
    """Enroll the learner in a course.

    Fails with 409 if already enrolled and 412 if a prerequisite course is
    not completed.
    """
    try:
        enrollment = await progress_service.enroll(learner_id, data.course_id)
    except ENGINE_ERRORS as e:
        raise handle_progress_error(e) from e
    return EnrollmentResponse.from_entity(enrollment)


@router.get(
    "/enrollments",
    response_model=EnrollmentListResponse,
    summary="Get my enrollments",
)
async def get_my_enrollments(
    progress_service: ProgressServiceDep,
    learner_id: LearnerId,
) -> EnrollmentListResponse:
    """Enrollments of the learner, most recently accessed first."""
    try:
        enrollments = await progress_service.get_my_enrollments(learner_id)
    except ENGINE_ERRORS as e:
        raise handle_progress_error(e) from e
    return EnrollmentListResponse(
        items=[EnrollmentResponse.from_entity(e) for e in enrollments],
        total=len(enrollments),
    )


# ==============================================================================
# Lesson Endpoints
# ==============================================================================


@router.get(
    "/lessons/{lesson_id}",
    response_model=LessonContentResponse,
    summary="Get lesson content",
)
async def get_lesson_content(
    lesson_id: UUID,
    progress_service: ProgressServiceDep,
    learner_id: LearnerId,
) -> LessonContentResponse:
    """Lesson blocks with progress and previous/next navigation."""
    try:
        view = await progress_service.get_lesson_content(learner_id, lesson_id)
    except ENGINE_ERRORS as e:
        raise handle_progress_error(e) from e
    return LessonContentResponse.from_view(view)


@router.post(
    "/lessons/{lesson_id}/complete",
    response_model=LessonCompleteResponse,
    status_code=status.HTTP_200_OK,
    summary="Mark lesson as complete",
)
async def mark_lesson_complete(
    lesson_id: UUID,
    progress_service: ProgressServiceDep,
    learner_id: LearnerId,
) -> LessonCompleteResponse:
    """Complete a lesson whose content blocks are all completed (412 otherwise)."""
    try:
        result = await progress_service.mark_lesson_complete(learner_id, lesson_id)
    except ENGINE_ERRORS as e:
        raise handle_progress_error(e) from e
    return LessonCompleteResponse.from_result(result)


# ==============================================================================
# Content Progress Endpoints
# ==============================================================================


@router.put(
    "/content/{content_block_id}/progress",
    response_model=ContentProgressUpdateResponse,
    summary="Update content progress",
)
async def update_content_progress(
    content_block_id: UUID,
    data: UpdateContentProgressRequest,
    progress_service: ProgressServiceDep,
    learner_id: LearnerId,
) -> ContentProgressUpdateResponse:
    """Report progress on a content block.

    Video progress is max-merged, so out-of-order or repeated reports are
    safe to send.
    """
    try:
        result = await progress_service.update_content_progress(
            learner_id,
            content_block_id,
            progress_value=data.progress_value,
            force_complete=data.force_complete,
        )
    except ENGINE_ERRORS as e:
        raise handle_progress_error(e) from e
    return ContentProgressUpdateResponse.from_result(result)
