"""Content hierarchy store.

Read-only access to Course -> Module -> Lesson -> ContentBlock trees,
ordered by sort key at every level, plus locators that resolve a lesson or
content block id to its owning course.
"""

from typing import TYPE_CHECKING, NamedTuple
from uuid import UUID

import structlog

from src.core.database.errors import translate_storage_errors
from src.courses.models import ContentBlock, Course, CourseStatus, Lesson, Module


if TYPE_CHECKING:
    from cassandra.cluster import Session

logger = structlog.get_logger(__name__)


# ==============================================================================
# Custom Exceptions
# ==============================================================================


class CourseError(Exception):
    """Base course error."""

    def __init__(self, message: str, code: str = "course_error"):
        self.message = message
        self.code = code
        super().__init__(message)


class CourseNotFoundError(CourseError):
    """Course not found."""

    def __init__(self, message: str = "Course not found"):
        super().__init__(message, "course_not_found")


class LessonNotFoundError(CourseError):
    """Lesson not found."""

    def __init__(self, message: str = "Lesson not found"):
        super().__init__(message, "lesson_not_found")


class ContentBlockNotFoundError(CourseError):
    """Content block not found."""

    def __init__(self, message: str = "Content block not found"):
        super().__init__(message, "content_block_not_found")


class LessonLocation(NamedTuple):
    course_id: UUID
    module_id: UUID
    lesson_id: UUID


class ContentBlockLocation(NamedTuple):
    course_id: UUID
    module_id: UUID
    lesson_id: UUID
    content_block_id: UUID


# ==============================================================================
# Hierarchy Service
# ==============================================================================


class CourseHierarchyService:
    """Read-only access to course hierarchies."""

    def __init__(self, session: "Session", keyspace: str):
        """Initialize with Cassandra session."""
        self.session = session
        self.keyspace = keyspace
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        """Prepare CQL statements."""
        self._get_course_by_id = self.session.prepare(
            f"SELECT * FROM {self.keyspace}.courses WHERE id = ?"
        )
        self._get_courses_by_status = self.session.prepare(
            f"SELECT course_id FROM {self.keyspace}.courses_by_status WHERE status = ?"
        )
        self._get_course_modules = self.session.prepare(
            f"SELECT * FROM {self.keyspace}.course_modules WHERE course_id = ?"
        )
        self._get_module_lessons = self.session.prepare(
            f"SELECT * FROM {self.keyspace}.module_lessons WHERE module_id = ?"
        )
        self._get_lesson_content_blocks = self.session.prepare(
            f"SELECT * FROM {self.keyspace}.lesson_content_blocks WHERE lesson_id = ?"
        )
        self._locate_lesson = self.session.prepare(
            f"SELECT * FROM {self.keyspace}.lessons WHERE id = ?"
        )
        self._locate_content_block = self.session.prepare(
            f"SELECT * FROM {self.keyspace}.content_blocks WHERE id = ?"
        )

    async def _execute(self, statement, params: list):
        with translate_storage_errors("hierarchy_read"):
            return await self.session.aexecute(statement, params)

    # ==========================================================================
    # Courses
    # ==========================================================================

    async def get_course(self, course_id: UUID) -> Course | None:
        """Get a course without its module tree."""
        result = await self._execute(self._get_course_by_id, [course_id])
        row = result.one()
        return Course.from_row(row) if row else None

    async def get_course_hierarchy(self, course_id: UUID) -> Course:
        """Load the full Module/Lesson/ContentBlock tree of a course.

        Raises:
            CourseNotFoundError: If the course does not exist
        """
        course = await self.get_course(course_id)
        if course is None:
            raise CourseNotFoundError

        modules: list[Module] = []
        for module_row in await self._execute(self._get_course_modules, [course_id]):
            module = Module.from_row(module_row)
            lessons: list[Lesson] = []
            for lesson_row in await self._execute(
                self._get_module_lessons, [module.id]
            ):
                lesson = Lesson.from_row(lesson_row)
                block_rows = await self._execute(
                    self._get_lesson_content_blocks, [lesson.id]
                )
                lesson.content_blocks = sorted(
                    (ContentBlock.from_row(row) for row in block_rows),
                    key=lambda b: b.sort_key,
                )
                lessons.append(lesson)
            module.lessons = sorted(lessons, key=lambda lesson: lesson.sort_key)
            modules.append(module)

        course.modules = sorted(modules, key=lambda m: m.sort_key)

        logger.debug(
            "course_hierarchy_loaded",
            course_id=str(course_id),
            modules=len(course.modules),
            lessons=len(course.lessons_in_order()),
        )
        return course

    async def list_published_courses(self) -> list[Course]:
        """Published courses in catalog order (flat, no module tree)."""
        rows = await self._execute(
            self._get_courses_by_status, [CourseStatus.PUBLISHED.value]
        )
        courses = []
        for row in rows:
            course = await self.get_course(row.course_id)
            if course and course.is_published:
                courses.append(course)
        return courses

    # ==========================================================================
    # Locators
    # ==========================================================================

    async def locate_lesson(self, lesson_id: UUID) -> LessonLocation:
        """Resolve a lesson to its course and module.

        Raises:
            LessonNotFoundError: If the lesson does not exist
        """
        result = await self._execute(self._locate_lesson, [lesson_id])
        row = result.one()
        if row is None:
            raise LessonNotFoundError
        return LessonLocation(row.course_id, row.module_id, row.id)

    async def locate_content_block(self, content_block_id: UUID) -> ContentBlockLocation:
        """Resolve a content block to its course, module and lesson.

        Raises:
            ContentBlockNotFoundError: If the block does not exist
        """
        result = await self._execute(self._locate_content_block, [content_block_id])
        row = result.one()
        if row is None:
            raise ContentBlockNotFoundError
        return ContentBlockLocation(row.course_id, row.module_id, row.lesson_id, row.id)
