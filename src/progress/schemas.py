"""Pydantic schemas for learner progress tracking.

Request and response models for:
- Content progress updates
- Lesson completion
- Course enrollment
- Learner course, lesson and catalog views
- Course progress reports
"""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from src.courses.schemas import ContentBlockDetail, ContentBlockOutline, CourseSummary

from .models import ContentProgress, Enrollment, EnrollmentStatus, LessonProgress, ProgressStatus
from .navigation import LessonLink, LessonNavigation
from .service import (
    CatalogEntry,
    ContentProgressResult,
    CourseProgressSummary,
    LearnerCourseView,
    LessonCompletionResult,
    LessonContentView,
)


# ==============================================================================
# Progress Schemas
# ==============================================================================


class UpdateContentProgressRequest(BaseModel):
    """Progress report for a content block.

    ``progress_value`` is only meaningful for video blocks and is clamped to
    0-100. ``force_complete`` completes any block type.
    """

    progress_value: float | None = Field(
        None, allow_inf_nan=False, description="Watched percentage (video only)"
    )
    force_complete: bool = Field(False, description="Mark the block as completed")


class ContentProgressResponse(BaseModel):
    """Content block progress."""

    model_config = ConfigDict(from_attributes=True)

    content_block_id: UUID
    status: ProgressStatus
    progress_value: int | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None

    @classmethod
    def from_entity(cls, entity: ContentProgress) -> "ContentProgressResponse":
        """Create response from entity."""
        return cls(
            content_block_id=entity.content_block_id,
            status=ProgressStatus(entity.status),
            progress_value=entity.progress_value,
            started_at=entity.started_at,
            completed_at=entity.completed_at,
        )


class LessonProgressResponse(BaseModel):
    """Lesson progress."""

    model_config = ConfigDict(from_attributes=True)

    lesson_id: UUID
    module_id: UUID
    status: ProgressStatus
    started_at: datetime | None = None
    completed_at: datetime | None = None

    @classmethod
    def from_entity(cls, entity: LessonProgress) -> "LessonProgressResponse":
        """Create response from entity."""
        return cls(
            lesson_id=entity.lesson_id,
            module_id=entity.module_id,
            status=ProgressStatus(entity.status),
            started_at=entity.started_at,
            completed_at=entity.completed_at,
        )


# ==============================================================================
# Enrollment Schemas
# ==============================================================================


class EnrollRequest(BaseModel):
    """Request to enroll in a course."""

    course_id: UUID = Field(..., description="Course UUID")


class EnrollmentResponse(BaseModel):
    """Enrollment response."""

    model_config = ConfigDict(from_attributes=True)

    course_id: UUID
    user_id: UUID
    status: EnrollmentStatus
    progress_percent: int = Field(ge=0, le=100, description="0-100 percentage")
    lessons_completed: int
    lessons_total: int
    enrolled_at: datetime | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    last_accessed_at: datetime | None = None
    last_lesson_id: UUID | None = None

    @classmethod
    def from_entity(cls, entity: Enrollment) -> "EnrollmentResponse":
        """Create response from entity."""
        return cls(
            course_id=entity.course_id,
            user_id=entity.user_id,
            status=EnrollmentStatus(entity.status),
            progress_percent=entity.progress_percent,
            lessons_completed=entity.lessons_completed,
            lessons_total=entity.lessons_total,
            enrolled_at=entity.enrolled_at,
            started_at=entity.started_at,
            completed_at=entity.completed_at,
            last_accessed_at=entity.last_accessed_at,
            last_lesson_id=entity.last_lesson_id,
        )


class EnrollmentListResponse(BaseModel):
    """List of enrollments."""

    items: list[EnrollmentResponse]
    total: int


# ==============================================================================
# Mutation Results
# ==============================================================================


class ContentProgressUpdateResponse(BaseModel):
    """Result of a content progress report."""

    success: bool = True
    content: ContentProgressResponse
    lesson: LessonProgressResponse
    enrollment: EnrollmentResponse

    @classmethod
    def from_result(cls, result: ContentProgressResult) -> "ContentProgressUpdateResponse":
        return cls(
            content=ContentProgressResponse.from_entity(result.content),
            lesson=LessonProgressResponse.from_entity(result.lesson),
            enrollment=EnrollmentResponse.from_entity(result.enrollment),
        )


class LessonCompleteResponse(BaseModel):
    """Result of an explicit lesson completion."""

    success: bool = True
    lesson: LessonProgressResponse
    enrollment: EnrollmentResponse

    @classmethod
    def from_result(cls, result: LessonCompletionResult) -> "LessonCompleteResponse":
        return cls(
            lesson=LessonProgressResponse.from_entity(result.lesson),
            enrollment=EnrollmentResponse.from_entity(result.enrollment),
        )


# ==============================================================================
# Lesson Content Schemas
# ==============================================================================


class LessonLinkResponse(BaseModel):
    id: UUID
    title: str
    module_id: UUID

    @classmethod
    def from_link(cls, link: LessonLink | None) -> "LessonLinkResponse | None":
        if link is None:
            return None
        return cls(id=link.id, title=link.title, module_id=link.module_id)


class NavigationResponse(BaseModel):
    """Previous / next lesson in course order."""

    prev_lesson: LessonLinkResponse | None = None
    next_lesson: LessonLinkResponse | None = None
    current_index: int = Field(ge=1, description="1-based position in the course")
    total_lessons: int

    @classmethod
    def from_navigation(cls, navigation: LessonNavigation) -> "NavigationResponse":
        return cls(
            prev_lesson=LessonLinkResponse.from_link(navigation.prev_lesson),
            next_lesson=LessonLinkResponse.from_link(navigation.next_lesson),
            current_index=navigation.current_index,
            total_lessons=navigation.total_lessons,
        )


class ContentBlockWithProgress(ContentBlockDetail):
    """Content block payload with the learner's progress."""

    progress: ContentProgressResponse


class LessonContentResponse(BaseModel):
    """Lesson page: blocks, progress and navigation."""

    id: UUID
    course_id: UUID
    module_id: UUID
    module_title: str
    title: str
    description: str | None = None
    estimated_duration_minutes: int | None = None
    progress: LessonProgressResponse
    content_blocks: list[ContentBlockWithProgress]
    navigation: NavigationResponse

    @classmethod
    def from_view(cls, view: LessonContentView) -> "LessonContentResponse":
        return cls(
            id=view.lesson.id,
            course_id=view.course_id,
            module_id=view.module.id,
            module_title=view.module.title,
            title=view.lesson.title,
            description=view.lesson.description,
            estimated_duration_minutes=view.lesson.estimated_duration_minutes,
            progress=LessonProgressResponse.from_entity(view.lesson_progress),
            content_blocks=[
                ContentBlockWithProgress(
                    **ContentBlockDetail.from_entity(block).model_dump(),
                    progress=ContentProgressResponse.from_entity(progress),
                )
                for block, progress in view.blocks
            ],
            navigation=NavigationResponse.from_navigation(view.navigation),
        )


# ==============================================================================
# Course View Schemas
# ==============================================================================


class LessonOutline(BaseModel):
    id: UUID
    title: str
    estimated_duration_minutes: int | None = None
    status: ProgressStatus = ProgressStatus.NOT_STARTED
    completed_at: datetime | None = None
    content_blocks: list[ContentBlockOutline] = Field(default_factory=list)


class ModuleOutline(BaseModel):
    id: UUID
    title: str
    description: str | None = None
    status: ProgressStatus = ProgressStatus.NOT_STARTED
    lessons_completed: int = 0
    lessons_total: int = 0
    progress_percent: int = 0
    lessons: list[LessonOutline] = Field(default_factory=list)


class LearnerCourseResponse(BaseModel):
    """Course tree with the learner's progress."""

    course: CourseSummary
    modules: list[ModuleOutline]
    total_lessons: int
    enrollment: EnrollmentResponse | None = None
    resume_lesson_id: UUID | None = None

    @classmethod
    def from_view(cls, view: LearnerCourseView) -> "LearnerCourseResponse":
        rollup = view.rollup
        module_rollups = {m.module_id: m for m in rollup.modules} if rollup else {}

        modules = []
        for module in view.course.modules:
            lessons = []
            for lesson in module.lessons:
                progress = rollup.lessons.get(lesson.id) if rollup else None
                lessons.append(
                    LessonOutline(
                        id=lesson.id,
                        title=lesson.title,
                        estimated_duration_minutes=lesson.estimated_duration_minutes,
                        status=ProgressStatus(progress.status)
                        if progress
                        else ProgressStatus.NOT_STARTED,
                        completed_at=progress.completed_at if progress else None,
                        content_blocks=[
                            ContentBlockOutline.from_entity(block)
                            for block in lesson.content_blocks
                        ],
                    )
                )

            summary = module_rollups.get(module.id)
            modules.append(
                ModuleOutline(
                    id=module.id,
                    title=module.title,
                    description=module.description,
                    status=ProgressStatus(summary.status)
                    if summary
                    else ProgressStatus.NOT_STARTED,
                    lessons_completed=summary.lessons_completed if summary else 0,
                    lessons_total=len(module.lessons),
                    progress_percent=summary.progress_percent if summary else 0,
                    lessons=lessons,
                )
            )

        return cls(
            course=CourseSummary.from_entity(view.course),
            modules=modules,
            total_lessons=len(view.course.lessons_in_order()),
            enrollment=EnrollmentResponse.from_entity(view.enrollment)
            if view.enrollment
            else None,
            resume_lesson_id=view.resume_lesson_id,
        )


# ==============================================================================
# Catalog Schemas
# ==============================================================================


class CatalogCourseResponse(BaseModel):
    course: CourseSummary
    module_count: int
    lesson_count: int
    enrollment: EnrollmentResponse | None = None

    @classmethod
    def from_entry(cls, entry: CatalogEntry) -> "CatalogCourseResponse":
        return cls(
            course=CourseSummary.from_entity(entry.course),
            module_count=entry.module_count,
            lesson_count=entry.lesson_count,
            enrollment=EnrollmentResponse.from_entity(entry.enrollment)
            if entry.enrollment
            else None,
        )


class CatalogResponse(BaseModel):
    items: list[CatalogCourseResponse]
    total: int


# ==============================================================================
# Course Report Schemas
# ==============================================================================


class CourseProgressSummaryResponse(BaseModel):
    """Enrollment roll-up across all learners of a course."""

    course: CourseSummary
    module_count: int
    lesson_count: int
    total_enrollments: int
    completed_enrollments: int
    in_progress_enrollments: int
    not_started_enrollments: int
    completion_rate: int = Field(ge=0, le=100, description="Completed share, 0-100")
    avg_progress_percent: int = Field(ge=0, le=100, description="Mean enrollment progress")

    @classmethod
    def from_summary(cls, summary: CourseProgressSummary) -> "CourseProgressSummaryResponse":
        return cls(
            course=CourseSummary.from_entity(summary.course),
            module_count=len(summary.course.modules),
            lesson_count=len(summary.course.lessons_in_order()),
            total_enrollments=summary.total_enrollments,
            completed_enrollments=summary.completed_enrollments,
            in_progress_enrollments=summary.in_progress_enrollments,
            not_started_enrollments=summary.not_started_enrollments,
            completion_rate=summary.completion_rate,
            avg_progress_percent=summary.avg_progress_percent,
        )
