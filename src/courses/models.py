"""Database models for the content hierarchy (read side).

Cassandra table definitions for:
- Courses: Main course table plus a status lookup for the catalog
- Children tables: course_modules, module_lessons, lesson_content_blocks,
  clustered by (sort_order, created_at, id) so every level reads back in a
  total, deterministic order
- Locator tables: lessons, content_blocks (child id -> owning ancestors)

The hierarchy is authored elsewhere; this service only reads it.
"""

from datetime import UTC, datetime
from enum import Enum
from typing import Any
from uuid import UUID

import orjson


class CourseStatus(str, Enum):
    """Course publication status."""

    DRAFT = "draft"
    PUBLISHED = "published"
    ARCHIVED = "archived"


class ContentBlockType(str, Enum):
    """Content block type."""

    VIDEO = "video"
    TEXT = "text"
    QUIZ = "quiz"
    DOCUMENT = "document"

    @property
    def tracks_progress_value(self) -> bool:
        """Only video blocks report a 0-100 progress value."""
        return self is ContentBlockType.VIDEO


DEFAULT_COMPLETION_THRESHOLD = 100


# ==============================================================================
# CQL Table Definitions
# ==============================================================================

COURSE_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.courses (
    id UUID PRIMARY KEY,
    title TEXT,
    description TEXT,
    thumbnail_url TEXT,
    status TEXT,
    estimated_duration_minutes INT,
    prerequisite_ids SET<UUID>,
    sort_order INT,
    published_at TIMESTAMP,
    created_at TIMESTAMP,
    updated_at TIMESTAMP
)
"""

# Catalog: published courses by sort order, newest publication first
COURSES_BY_STATUS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.courses_by_status (
    status TEXT,
    sort_order INT,
    published_at TIMESTAMP,
    course_id UUID,
    PRIMARY KEY (status, sort_order, published_at, course_id)
) WITH CLUSTERING ORDER BY (sort_order ASC, published_at DESC, course_id ASC)
"""

COURSE_MODULES_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.course_modules (
    course_id UUID,
    sort_order INT,
    created_at TIMESTAMP,
    module_id UUID,
    title TEXT,
    description TEXT,
    PRIMARY KEY (course_id, sort_order, created_at, module_id)
) WITH CLUSTERING ORDER BY (sort_order ASC, created_at ASC, module_id ASC)
"""

MODULE_LESSONS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.module_lessons (
    module_id UUID,
    sort_order INT,
    created_at TIMESTAMP,
    lesson_id UUID,
    title TEXT,
    description TEXT,
    estimated_duration_minutes INT,
    PRIMARY KEY (module_id, sort_order, created_at, lesson_id)
) WITH CLUSTERING ORDER BY (sort_order ASC, created_at ASC, lesson_id ASC)
"""

LESSON_CONTENT_BLOCKS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.lesson_content_blocks (
    lesson_id UUID,
    sort_order INT,
    created_at TIMESTAMP,
    content_block_id UUID,
    title TEXT,
    block_type TEXT,
    content TEXT,
    completion_threshold INT,
    PRIMARY KEY (lesson_id, sort_order, created_at, content_block_id)
) WITH CLUSTERING ORDER BY (sort_order ASC, created_at ASC, content_block_id ASC)
"""

# Locators: resolve a child id to its ancestors
LESSONS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.lessons (
    id UUID PRIMARY KEY,
    course_id UUID,
    module_id UUID
)
"""

CONTENT_BLOCKS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.content_blocks (
    id UUID PRIMARY KEY,
    course_id UUID,
    module_id UUID,
    lesson_id UUID
)
"""

COURSES_TABLES_CQL = [
    COURSE_TABLE_CQL,
    COURSES_BY_STATUS_TABLE_CQL,
    COURSE_MODULES_TABLE_CQL,
    MODULE_LESSONS_TABLE_CQL,
    LESSON_CONTENT_BLOCKS_TABLE_CQL,
    LESSONS_TABLE_CQL,
    CONTENT_BLOCKS_TABLE_CQL,
]


# ==============================================================================
# Helper Functions
# ==============================================================================


def ensure_utc_aware(dt: datetime | None) -> datetime | None:
    """Ensure datetime is UTC-aware (Cassandra returns naive datetimes)."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt


_EPOCH = datetime(1970, 1, 1, tzinfo=UTC)


def hierarchy_sort_key(
    sort_order: int, created_at: datetime | None, item_id: UUID
) -> tuple[int, datetime, str]:
    """Total order for siblings: sort order, then creation time, then id."""
    return (sort_order, created_at or _EPOCH, str(item_id))


def _load_content(raw: str | None) -> dict[str, Any]:
    if not raw:
        return {}
    return orjson.loads(raw)


# ==============================================================================
# Entity Classes
# ==============================================================================


class ContentBlock:
    """Smallest consumable unit inside a lesson.

    Attributes:
        id: Content block UUID
        lesson_id: Owning lesson UUID
        title: Display title
        block_type: video, text, quiz or document
        content: Type-specific payload (URL, markdown body, quiz id...)
        completion_threshold: Percentage watched that completes a video
            (None means the default, 100)
        sort_order: Position within the lesson
        created_at: Creation timestamp (tie-breaker for ordering)
    """

    def __init__(
        self,
        id: UUID,
        lesson_id: UUID,
        block_type: str,
        title: str = "",
        content: dict[str, Any] | None = None,
        completion_threshold: int | None = None,
        sort_order: int = 0,
        created_at: datetime | None = None,
    ):
        self.id = id
        self.lesson_id = lesson_id
        self.block_type = ContentBlockType(block_type)
        self.title = title
        self.content = content or {}
        self.completion_threshold = completion_threshold
        self.sort_order = sort_order
        self.created_at = ensure_utc_aware(created_at)

    @property
    def sort_key(self) -> tuple[int, datetime, str]:
        return hierarchy_sort_key(self.sort_order, self.created_at, self.id)

    @classmethod
    def from_row(cls, row: Any) -> "ContentBlock":
        """Create ContentBlock from a lesson_content_blocks row."""
        return cls(
            id=row.content_block_id,
            lesson_id=row.lesson_id,
            block_type=row.block_type,
            title=row.title or "",
            content=_load_content(row.content),
            completion_threshold=row.completion_threshold,
            sort_order=row.sort_order or 0,
            created_at=row.created_at,
        )

    def __repr__(self) -> str:
        return f"<ContentBlock {self.id} ({self.block_type.value})>"


class Lesson:
    """Lesson entity with its ordered content blocks."""

    def __init__(
        self,
        id: UUID,
        module_id: UUID,
        title: str = "",
        description: str | None = None,
        estimated_duration_minutes: int | None = None,
        sort_order: int = 0,
        created_at: datetime | None = None,
        content_blocks: list[ContentBlock] | None = None,
    ):
        self.id = id
        self.module_id = module_id
        self.title = title
        self.description = description
        self.estimated_duration_minutes = estimated_duration_minutes
        self.sort_order = sort_order
        self.created_at = ensure_utc_aware(created_at)
        self.content_blocks = sorted(content_blocks or [], key=lambda b: b.sort_key)

    @property
    def sort_key(self) -> tuple[int, datetime, str]:
        return hierarchy_sort_key(self.sort_order, self.created_at, self.id)

    @property
    def content_block_ids(self) -> list[UUID]:
        return [block.id for block in self.content_blocks]

    @classmethod
    def from_row(cls, row: Any) -> "Lesson":
        """Create Lesson from a module_lessons row (without blocks)."""
        return cls(
            id=row.lesson_id,
            module_id=row.module_id,
            title=row.title or "",
            description=row.description,
            estimated_duration_minutes=row.estimated_duration_minutes,
            sort_order=row.sort_order or 0,
            created_at=row.created_at,
        )

    def __repr__(self) -> str:
        return f"<Lesson {self.title} ({len(self.content_blocks)} blocks)>"


class Module:
    """Module entity with its ordered lessons."""

    def __init__(
        self,
        id: UUID,
        course_id: UUID,
        title: str = "",
        description: str | None = None,
        sort_order: int = 0,
        created_at: datetime | None = None,
        lessons: list[Lesson] | None = None,
    ):
        self.id = id
        self.course_id = course_id
        self.title = title
        self.description = description
        self.sort_order = sort_order
        self.created_at = ensure_utc_aware(created_at)
        self.lessons = sorted(lessons or [], key=lambda lesson: lesson.sort_key)

    @property
    def sort_key(self) -> tuple[int, datetime, str]:
        return hierarchy_sort_key(self.sort_order, self.created_at, self.id)

    @classmethod
    def from_row(cls, row: Any) -> "Module":
        """Create Module from a course_modules row (without lessons)."""
        return cls(
            id=row.module_id,
            course_id=row.course_id,
            title=row.title or "",
            description=row.description,
            sort_order=row.sort_order or 0,
            created_at=row.created_at,
        )

    def __repr__(self) -> str:
        return f"<Module {self.title} ({len(self.lessons)} lessons)>"


class Course:
    """Course entity, optionally carrying its full module tree.

    Attributes:
        id: Course UUID
        title: Course title
        description: Course description
        thumbnail_url: Cover image URL
        status: Publication status
        estimated_duration_minutes: Authoring estimate
        prerequisite_ids: Courses that must be completed before enrolling
        sort_order: Catalog position
        published_at: Publication timestamp
        modules: Ordered modules (empty when loaded flat)
    """

    def __init__(
        self,
        id: UUID,
        title: str = "",
        description: str | None = None,
        thumbnail_url: str | None = None,
        status: str = CourseStatus.DRAFT.value,
        estimated_duration_minutes: int | None = None,
        prerequisite_ids: set[UUID] | None = None,
        sort_order: int = 0,
        published_at: datetime | None = None,
        created_at: datetime | None = None,
        modules: list[Module] | None = None,
    ):
        self.id = id
        self.title = title
        self.description = description
        self.thumbnail_url = thumbnail_url
        self.status = status
        self.estimated_duration_minutes = estimated_duration_minutes
        self.prerequisite_ids = set(prerequisite_ids or ())
        self.sort_order = sort_order
        self.published_at = ensure_utc_aware(published_at)
        self.created_at = ensure_utc_aware(created_at)
        self.modules = sorted(modules or [], key=lambda m: m.sort_key)

    @property
    def is_published(self) -> bool:
        return self.status == CourseStatus.PUBLISHED.value

    def lessons_in_order(self) -> list[Lesson]:
        """Flatten Module -> Lesson into the single course sequence.

        Navigation and course roll-up both walk this sequence.
        """
        return [lesson for module in self.modules for lesson in module.lessons]

    def find_lesson(self, lesson_id: UUID) -> tuple[Module, Lesson] | None:
        for module in self.modules:
            for lesson in module.lessons:
                if lesson.id == lesson_id:
                    return module, lesson
        return None

    def find_content_block(
        self, content_block_id: UUID
    ) -> tuple[Lesson, ContentBlock] | None:
        for lesson in self.lessons_in_order():
            for block in lesson.content_blocks:
                if block.id == content_block_id:
                    return lesson, block
        return None

    @classmethod
    def from_row(cls, row: Any) -> "Course":
        """Create Course instance from Cassandra row."""
        return cls(
            id=row.id,
            title=row.title or "",
            description=row.description,
            thumbnail_url=row.thumbnail_url,
            status=row.status or CourseStatus.DRAFT.value,
            estimated_duration_minutes=row.estimated_duration_minutes,
            prerequisite_ids=row.prerequisite_ids,
            sort_order=row.sort_order or 0,
            published_at=row.published_at,
            created_at=row.created_at,
        )

    def __repr__(self) -> str:
        return f"<Course {self.title} ({self.status})>"
