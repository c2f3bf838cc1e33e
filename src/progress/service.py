"""Learner progress service layer.

Business logic for:
- Enrollment lifecycle (enroll, prerequisites, completion)
- Content progress updates with max-merge and threshold completion
- Lesson completion and course roll-up
- Learner read paths (course view, lesson content, my enrollments, catalog)
- Reconciliation of cached roll-ups against content progress
- Course reports (enrollment counts, average progress, enrollment listing)
"""

from collections.abc import Callable
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from decimal import Decimal
from uuid import UUID

import structlog

from src.core.database.errors import TransientStorageError
from src.courses.models import DEFAULT_COMPLETION_THRESHOLD, ContentBlock, Course, Lesson, Module
from src.courses.service import (
    ContentBlockNotFoundError,
    CourseHierarchyService,
    LessonNotFoundError,
)

from .aggregator import (
    CourseRollup,
    apply_content_update,
    apply_rollup,
    changed_lessons,
    compute_course_rollup,
    content_state_changed,
    derive_lesson_status,
    enrollment_drift,
    incomplete_content_blocks,
    index_content_progress,
    next_lesson_progress,
    percentage,
    round_half_up,
)
from .models import (
    ContentProgress,
    Enrollment,
    EnrollmentStatus,
    LessonProgress,
    ProgressStatus,
)
from .navigation import LessonNavigation, resolve_navigation
from .repository import ProgressRepository


logger = structlog.get_logger(__name__)

_NEVER = datetime.min.replace(tzinfo=UTC)


# ==============================================================================
# Custom Exceptions
# ==============================================================================


class ProgressError(Exception):
    """Base progress error."""

    def __init__(self, message: str, code: str = "progress_error"):
        self.message = message
        self.code = code
        super().__init__(message)


class NotEnrolledError(ProgressError):
    """Learner not enrolled in course."""

    def __init__(self, message: str = "Learner is not enrolled in this course"):
        super().__init__(message, "not_enrolled")


class AlreadyEnrolledError(ProgressError):
    """Learner already enrolled."""

    def __init__(self, message: str = "Learner is already enrolled in this course"):
        super().__init__(message, "already_enrolled")


class PreconditionFailedError(ProgressError):
    """Operation not allowed in the current progress state."""


class LessonIncompleteError(PreconditionFailedError):
    """Lesson still has content blocks that are not completed."""

    def __init__(self, incomplete_block_ids: list[UUID] | None = None):
        self.incomplete_block_ids = incomplete_block_ids or []
        super().__init__(
            "All content blocks must be completed before completing the lesson",
            "lesson_incomplete",
        )


class PrerequisitesNotMetError(PreconditionFailedError):
    """Prerequisite courses not completed."""

    def __init__(self, missing_course_ids: list[UUID] | None = None):
        self.missing_course_ids = missing_course_ids or []
        super().__init__(
            "Prerequisite courses must be completed before enrolling",
            "prerequisites_not_met",
        )


# ==============================================================================
# Results
# ==============================================================================


@dataclass
class RollupOutcome:
    """Result of one persisted roll-up."""

    previous: Enrollment
    enrollment: Enrollment
    rollup: CourseRollup
    lessons_written: list[LessonProgress] = field(default_factory=list)

    @property
    def completed_now(self) -> bool:
        return not self.previous.is_completed and self.enrollment.is_completed

    @property
    def drift(self) -> dict[str, tuple]:
        return enrollment_drift(self.previous, self.enrollment)


@dataclass
class ContentProgressResult:
    content: ContentProgress
    lesson: LessonProgress
    enrollment: Enrollment


@dataclass
class LessonCompletionResult:
    lesson: LessonProgress
    enrollment: Enrollment


@dataclass
class LearnerCourseView:
    """Course tree plus the learner's snapshot (None when not enrolled)."""

    course: Course
    enrollment: Enrollment | None
    rollup: CourseRollup | None
    resume_lesson_id: UUID | None


@dataclass
class LessonContentView:
    course_id: UUID
    module: Module
    lesson: Lesson
    lesson_progress: LessonProgress
    blocks: list[tuple[ContentBlock, ContentProgress]]
    navigation: LessonNavigation


@dataclass
class CatalogEntry:
    course: Course
    module_count: int
    lesson_count: int
    enrollment: Enrollment | None


@dataclass
class CourseReconcileSummary:
    course_id: UUID
    enrollments_checked: int = 0
    enrollments_repaired: int = 0


@dataclass
class CourseProgressSummary:
    """Enrollment counts and average progress across a course."""

    course: Course
    total_enrollments: int = 0
    completed_enrollments: int = 0
    in_progress_enrollments: int = 0
    not_started_enrollments: int = 0
    avg_progress_percent: int = 0

    @property
    def completion_rate(self) -> int:
        return percentage(self.completed_enrollments, self.total_enrollments)


# ==============================================================================
# Progress Service
# ==============================================================================


class ProgressService:
    """Service for learner progress tracking."""

    def __init__(
        self,
        hierarchy: CourseHierarchyService,
        repository: ProgressRepository,
        default_completion_threshold: int = DEFAULT_COMPLETION_THRESHOLD,
        clock: Callable[[], datetime] | None = None,
    ):
        self.hierarchy = hierarchy
        self.repository = repository
        self.default_completion_threshold = default_completion_threshold
        self._clock = clock or (lambda: datetime.now(UTC))

    def _now(self) -> datetime:
        return self._clock()

    async def _require_enrollment(self, user_id: UUID, course_id: UUID) -> Enrollment:
        enrollment = await self.repository.get_enrollment(user_id, course_id)
        if enrollment is None:
            raise NotEnrolledError
        return enrollment

    # ==========================================================================
    # Enrollment Operations
    # ==========================================================================

    async def enroll(self, user_id: UUID, course_id: UUID) -> Enrollment:
        """Enroll a learner in a course.

        Args:
            user_id: Learner UUID
            course_id: Course UUID

        Returns:
            New enrollment (NOT_STARTED, 0%)

        Raises:
            CourseNotFoundError: If the course does not exist
            PrerequisitesNotMetError: If a prerequisite course is not completed
            AlreadyEnrolledError: If the learner is already enrolled
        """
        course = await self.hierarchy.get_course_hierarchy(course_id)

        missing = []
        for prerequisite_id in sorted(course.prerequisite_ids, key=str):
            prerequisite = await self.repository.get_enrollment(user_id, prerequisite_id)
            if prerequisite is None or not prerequisite.is_completed:
                missing.append(prerequisite_id)
        if missing:
            raise PrerequisitesNotMetError(missing)

        enrollment = Enrollment(
            course_id=course_id,
            user_id=user_id,
            status=EnrollmentStatus.NOT_STARTED.value,
            enrolled_at=self._now(),
            lessons_total=len(course.lessons_in_order()),
        )
        if not await self.repository.create_enrollment(enrollment):
            raise AlreadyEnrolledError

        logger.info(
            "learner_enrolled",
            user_id=str(user_id),
            course_id=str(course_id),
            lessons_total=enrollment.lessons_total,
        )
        return enrollment

    async def get_my_enrollments(self, user_id: UUID) -> list[Enrollment]:
        """Enrollments of a learner, most recently accessed first."""
        enrollments = await self.repository.list_user_enrollments(user_id)
        return sorted(
            enrollments,
            key=lambda e: (
                e.last_accessed_at is not None,
                e.last_accessed_at or _NEVER,
                e.enrolled_at or _NEVER,
            ),
            reverse=True,
        )

    # ==========================================================================
    # Read Paths
    # ==========================================================================

    async def get_available_courses(self, user_id: UUID) -> list[CatalogEntry]:
        """Published courses with the learner's enrollment, in catalog order."""
        enrollments = {
            e.course_id: e for e in await self.repository.list_user_enrollments(user_id)
        }
        entries = []
        for summary in await self.hierarchy.list_published_courses():
            course = await self.hierarchy.get_course_hierarchy(summary.id)
            entries.append(
                CatalogEntry(
                    course=course,
                    module_count=len(course.modules),
                    lesson_count=len(course.lessons_in_order()),
                    enrollment=enrollments.get(course.id),
                )
            )
        return entries

    async def get_course_for_learner(
        self, user_id: UUID, course_id: UUID
    ) -> LearnerCourseView:
        """Course tree with per-lesson status and the resume lesson."""
        course = await self.hierarchy.get_course_hierarchy(course_id)
        enrollment = await self.repository.get_enrollment(user_id, course_id)
        if enrollment is None:
            return LearnerCourseView(course, None, None, None)

        rollup = compute_course_rollup(
            course,
            user_id,
            await self.repository.list_content_progress(user_id, course_id),
            await self.repository.list_lesson_progress(user_id, course_id),
            self._now(),
        )
        return LearnerCourseView(
            course=course,
            enrollment=enrollment,
            rollup=rollup,
            resume_lesson_id=self._resume_lesson_id(course, enrollment, rollup),
        )

    @staticmethod
    def _resume_lesson_id(
        course: Course, enrollment: Enrollment, rollup: CourseRollup
    ) -> UUID | None:
        if enrollment.last_lesson_id and course.find_lesson(enrollment.last_lesson_id):
            return enrollment.last_lesson_id
        lessons = course.lessons_in_order()
        for lesson in lessons:
            if not rollup.lessons[lesson.id].is_completed:
                return lesson.id
        return lessons[0].id if lessons else None

    async def get_lesson_content(self, user_id: UUID, lesson_id: UUID) -> LessonContentView:
        """Lesson with its blocks, the learner's progress and navigation.

        Records the lesson as the learner's last accessed lesson.

        Raises:
            LessonNotFoundError: If the lesson does not exist
            NotEnrolledError: If the learner is not enrolled in the course
        """
        location = await self.hierarchy.locate_lesson(lesson_id)
        course = await self.hierarchy.get_course_hierarchy(location.course_id)
        found = course.find_lesson(lesson_id)
        if found is None:
            raise LessonNotFoundError
        module, lesson = found

        enrollment = await self._require_enrollment(user_id, course.id)
        content = index_content_progress(
            await self.repository.list_content_progress(user_id, course.id)
        )
        recorded = {
            row.lesson_id: row
            for row in await self.repository.list_lesson_progress(user_id, course.id)
        }.get(lesson.id)

        now = self._now()
        lesson_progress = next_lesson_progress(
            recorded
            or LessonProgress.not_started(user_id, course.id, module.id, lesson.id),
            derive_lesson_status(lesson, content, recorded),
            now,
        )
        blocks = [
            (
                block,
                content.get(block.id)
                or ContentProgress.not_started(user_id, course.id, lesson.id, block.id),
            )
            for block in lesson.content_blocks
        ]

        await self.repository.touch_enrollment(enrollment, lesson.id, module.id, now)

        return LessonContentView(
            course_id=course.id,
            module=module,
            lesson=lesson,
            lesson_progress=lesson_progress,
            blocks=blocks,
            navigation=resolve_navigation(course, lesson.id),
        )

    # ==========================================================================
    # Progress Updates
    # ==========================================================================

    async def update_content_progress(
        self,
        user_id: UUID,
        content_block_id: UUID,
        progress_value: float | None = None,
        force_complete: bool = False,
    ) -> ContentProgressResult:
        """Record progress on a content block and roll it up.

        Safe to retry: the stored value is max-merged under compare-and-set.

        Raises:
            ContentBlockNotFoundError: If the block does not exist
            NotEnrolledError: If the learner is not enrolled in the course
            TransientStorageError: On storage failure or persistent contention
        """
        location = await self.hierarchy.locate_content_block(content_block_id)
        course = await self.hierarchy.get_course_hierarchy(location.course_id)
        found = course.find_content_block(content_block_id)
        if found is None:
            raise ContentBlockNotFoundError
        lesson, block = found

        await self._require_enrollment(user_id, course.id)
        now = self._now()

        content = await self._merge_content_progress(
            user_id, course.id, lesson.id, block, now, progress_value, force_complete
        )
        outcome = await self._roll_up(course, user_id, now)

        return ContentProgressResult(
            content=content,
            lesson=outcome.rollup.lessons[lesson.id],
            enrollment=outcome.enrollment,
        )

    async def _merge_content_progress(
        self,
        user_id: UUID,
        course_id: UUID,
        lesson_id: UUID,
        block: ContentBlock,
        now: datetime,
        progress_value: float | None,
        force_complete: bool,
    ) -> ContentProgress:
        for attempt in range(1, self.repository.max_cas_attempts + 1):
            current = await self.repository.get_content_progress(
                user_id, course_id, lesson_id, block.id
            )
            updated = apply_content_update(
                current,
                block,
                now,
                progress_value=progress_value,
                force_complete=force_complete,
                default_threshold=self.default_completion_threshold,
            )
            if not content_state_changed(current, updated):
                return current

            stored = await self.repository.compare_and_set_content_progress(
                current, updated
            )
            if stored is not None:
                logger.info(
                    "content_progress_updated",
                    user_id=str(user_id),
                    content_block_id=str(block.id),
                    status=stored.status,
                    progress_value=stored.progress_value,
                )
                return stored

            logger.info(
                "progress_cas_conflict",
                target="content_progress",
                content_block_id=str(block.id),
                attempt=attempt,
            )

        raise TransientStorageError(
            "Too many concurrent updates to this content block, retry the request"
        )

    async def mark_lesson_complete(
        self, user_id: UUID, lesson_id: UUID
    ) -> LessonCompletionResult:
        """Explicitly complete a lesson whose content blocks are all completed.

        Raises:
            LessonNotFoundError: If the lesson does not exist
            NotEnrolledError: If the learner is not enrolled in the course
            LessonIncompleteError: If a content block is not completed
        """
        location = await self.hierarchy.locate_lesson(lesson_id)
        course = await self.hierarchy.get_course_hierarchy(location.course_id)
        found = course.find_lesson(lesson_id)
        if found is None:
            raise LessonNotFoundError
        module, lesson = found

        await self._require_enrollment(user_id, course.id)
        content = index_content_progress(
            await self.repository.list_content_progress(user_id, course.id)
        )
        incomplete = incomplete_content_blocks(lesson, content)
        if incomplete:
            raise LessonIncompleteError(incomplete)

        outcome = await self._roll_up(
            course, user_id, self._now(), completed_lesson=(module.id, lesson.id)
        )
        return LessonCompletionResult(
            lesson=outcome.rollup.lessons[lesson.id],
            enrollment=outcome.enrollment,
        )

    # ==========================================================================
    # Roll-up
    # ==========================================================================

    async def _roll_up(
        self,
        course: Course,
        user_id: UUID,
        now: datetime,
        completed_lesson: tuple[UUID, UUID] | None = None,
    ) -> RollupOutcome:
        """Recompute lesson and enrollment state from a fresh snapshot.

        The enrollment is read before the snapshot and written with a
        compare-and-set on its revision, so a writer holding a stale snapshot
        always loses and retries.
        """
        for attempt in range(1, self.repository.max_cas_attempts + 1):
            enrollment = await self._require_enrollment(user_id, course.id)
            content_rows = await self.repository.list_content_progress(user_id, course.id)
            lesson_rows = await self.repository.list_lesson_progress(user_id, course.id)

            snapshot = lesson_rows
            if completed_lesson is not None:
                snapshot = self._with_lesson_completed(
                    lesson_rows, user_id, course.id, completed_lesson, now
                )

            rollup = compute_course_rollup(course, user_id, content_rows, snapshot, now)
            updated = apply_rollup(enrollment, rollup, now)
            lessons = changed_lessons(rollup, lesson_rows)

            if not lessons and not enrollment_drift(enrollment, updated):
                return RollupOutcome(enrollment, enrollment, rollup)

            saved = await self.repository.save_rollup(enrollment, updated, lessons)
            if saved is not None:
                outcome = RollupOutcome(enrollment, saved, rollup, lessons)
                self._log_transitions(course.id, user_id, outcome)
                return outcome

            logger.info(
                "progress_cas_conflict",
                target="enrollment",
                course_id=str(course.id),
                user_id=str(user_id),
                attempt=attempt,
            )

        raise TransientStorageError(
            "Too many concurrent updates to this enrollment, retry the request"
        )

    @staticmethod
    def _with_lesson_completed(
        lesson_rows: list[LessonProgress],
        user_id: UUID,
        course_id: UUID,
        completed_lesson: tuple[UUID, UUID],
        now: datetime,
    ) -> list[LessonProgress]:
        module_id, lesson_id = completed_lesson
        rows = {row.lesson_id: row for row in lesson_rows}
        current = rows.get(lesson_id) or LessonProgress.not_started(
            user_id, course_id, module_id, lesson_id
        )
        if not current.is_completed:
            rows[lesson_id] = replace(
                current,
                status=ProgressStatus.COMPLETED.value,
                started_at=current.started_at or now,
                completed_at=now,
                updated_at=now,
            )
        return list(rows.values())

    @staticmethod
    def _log_transitions(course_id: UUID, user_id: UUID, outcome: RollupOutcome) -> None:
        for lesson in outcome.lessons_written:
            if lesson.is_completed:
                logger.info(
                    "lesson_completed",
                    user_id=str(user_id),
                    course_id=str(course_id),
                    lesson_id=str(lesson.lesson_id),
                )
        if outcome.completed_now:
            logger.info(
                "course_completed",
                user_id=str(user_id),
                course_id=str(course_id),
                completed_at=outcome.enrollment.completed_at.isoformat(),
            )

    # ==========================================================================
    # Reconciliation
    # ==========================================================================

    async def reconcile_enrollment(self, user_id: UUID, course_id: UUID) -> RollupOutcome:
        """Rewrite cached lesson and enrollment state that drifted from content progress.

        Raises:
            CourseNotFoundError: If the course does not exist
            NotEnrolledError: If the learner is not enrolled in the course
        """
        course = await self.hierarchy.get_course_hierarchy(course_id)
        return await self._reconcile(course, user_id)

    async def _reconcile(self, course: Course, user_id: UUID) -> RollupOutcome:
        outcome = await self._roll_up(course, user_id, self._now())
        if outcome.drift or outcome.lessons_written:
            logger.info(
                "enrollment_reconciled",
                user_id=str(user_id),
                course_id=str(course.id),
                drift={k: [str(v) for v in pair] for k, pair in outcome.drift.items()},
                lessons_rewritten=len(outcome.lessons_written),
            )
        return outcome

    async def reconcile_course(self, course_id: UUID) -> CourseReconcileSummary:
        """Reconcile every enrollment of a course."""
        course = await self.hierarchy.get_course_hierarchy(course_id)
        summary = CourseReconcileSummary(course_id=course_id)
        for enrollment in await self.repository.list_course_enrollments(course_id):
            try:
                outcome = await self._reconcile(course, enrollment.user_id)
            except NotEnrolledError:
                continue
            summary.enrollments_checked += 1
            if outcome.drift or outcome.lessons_written:
                summary.enrollments_repaired += 1
        return summary

    # ==========================================================================
    # Course Reports
    # ==========================================================================

    async def get_course_progress_summary(self, course_id: UUID) -> CourseProgressSummary:
        """Roll enrollment progress up across every learner of a course.

        Raises:
            CourseNotFoundError: If the course does not exist
        """
        course = await self.hierarchy.get_course_hierarchy(course_id)
        enrollments = await self.repository.list_course_enrollments(course_id)

        summary = CourseProgressSummary(course=course, total_enrollments=len(enrollments))
        for enrollment in enrollments:
            if enrollment.status == EnrollmentStatus.COMPLETED.value:
                summary.completed_enrollments += 1
            elif enrollment.status == EnrollmentStatus.IN_PROGRESS.value:
                summary.in_progress_enrollments += 1
            else:
                summary.not_started_enrollments += 1
        if enrollments:
            summary.avg_progress_percent = round_half_up(
                Decimal(sum(e.progress_percent for e in enrollments)) / len(enrollments)
            )
        return summary

    async def get_course_enrollments(self, course_id: UUID) -> list[Enrollment]:
        """Enrollments of a course, most recent first.

        Raises:
            CourseNotFoundError: If the course does not exist
        """
        await self.hierarchy.get_course_hierarchy(course_id)
        enrollments = await self.repository.list_course_enrollments(course_id)
        return sorted(enrollments, key=lambda e: e.enrolled_at or _NEVER, reverse=True)
