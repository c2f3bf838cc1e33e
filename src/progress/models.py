"""Database models for learner progress tracking.

Cassandra table definitions for:
- Content progress: per learner, per content block (source of truth)
- Lesson progress: per learner, per lesson (derived cache)
- Enrollments: per learner, per course, with the cached percentage
- Enrollment lookup by learner

Progress rows are partitioned by (user_id, course_id) so one partition read
returns everything the roll-up needs for a learner in a course.
"""

from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import Any
from uuid import UUID


class EnrollmentStatus(str, Enum):
    """Course enrollment status."""

    NOT_STARTED = "not_started"  # Enrolled, nothing consumed yet
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"  # Every lesson completed (monotonic)


class ProgressStatus(str, Enum):
    """Lesson and content block progress status."""

    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


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


# ==============================================================================
# CQL Table Definitions
# ==============================================================================

# version is the compare-and-set guard for the max-merge (0 = never written)
CONTENT_PROGRESS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.content_progress (
    user_id UUID,
    course_id UUID,
    lesson_id UUID,
    content_block_id UUID,
    status TEXT,
    progress_value INT,
    version INT,
    started_at TIMESTAMP,
    completed_at TIMESTAMP,
    updated_at TIMESTAMP,
    PRIMARY KEY ((user_id, course_id), lesson_id, content_block_id)
)
"""

LESSON_PROGRESS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.lesson_progress (
    user_id UUID,
    course_id UUID,
    module_id UUID,
    lesson_id UUID,
    status TEXT,
    started_at TIMESTAMP,
    completed_at TIMESTAMP,
    updated_at TIMESTAMP,
    PRIMARY KEY ((user_id, course_id), module_id, lesson_id)
)
"""

# Partitioned by course_id for "who is enrolled in this course" scans.
# revision guards roll-up writes (compare-and-set)
ENROLLMENTS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.enrollments (
    course_id UUID,
    user_id UUID,
    status TEXT,
    enrolled_at TIMESTAMP,
    started_at TIMESTAMP,
    completed_at TIMESTAMP,
    progress_percent INT,
    lessons_completed INT,
    lessons_total INT,
    last_accessed_at TIMESTAMP,
    last_lesson_id UUID,
    last_module_id UUID,
    revision INT,
    PRIMARY KEY (course_id, user_id)
)
"""

# Lookup: enrollments of a learner
ENROLLMENTS_BY_USER_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.enrollments_by_user (
    user_id UUID,
    course_id UUID,
    status TEXT,
    enrolled_at TIMESTAMP,
    completed_at TIMESTAMP,
    progress_percent INT,
    lessons_completed INT,
    lessons_total INT,
    last_accessed_at TIMESTAMP,
    PRIMARY KEY (user_id, course_id)
)
"""

PROGRESS_TABLES_CQL = [
    CONTENT_PROGRESS_TABLE_CQL,
    LESSON_PROGRESS_TABLE_CQL,
    ENROLLMENTS_TABLE_CQL,
    ENROLLMENTS_BY_USER_TABLE_CQL,
]


# ==============================================================================
# Entity Classes
# ==============================================================================


@dataclass
class ContentProgress:
    """Learner progress on one content block.

    A missing row is materialized with ``not_started`` (version 0), so callers
    never special-case absence.
    """

    user_id: UUID
    course_id: UUID
    lesson_id: UUID
    content_block_id: UUID
    status: str = ProgressStatus.NOT_STARTED.value
    progress_value: int | None = None
    version: int = 0
    started_at: datetime | None = None
    completed_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def is_completed(self) -> bool:
        return self.status == ProgressStatus.COMPLETED.value

    @property
    def is_persisted(self) -> bool:
        return self.version > 0

    @classmethod
    def not_started(
        cls, user_id: UUID, course_id: UUID, lesson_id: UUID, content_block_id: UUID
    ) -> "ContentProgress":
        """Default state of a block the learner has never touched."""
        return cls(
            user_id=user_id,
            course_id=course_id,
            lesson_id=lesson_id,
            content_block_id=content_block_id,
        )

    @classmethod
    def from_row(cls, row: Any) -> "ContentProgress":
        """Create ContentProgress instance from Cassandra row."""
        return cls(
            user_id=row.user_id,
            course_id=row.course_id,
            lesson_id=row.lesson_id,
            content_block_id=row.content_block_id,
            status=row.status or ProgressStatus.NOT_STARTED.value,
            progress_value=row.progress_value,
            version=row.version or 0,
            started_at=ensure_utc_aware(row.started_at),
            completed_at=ensure_utc_aware(row.completed_at),
            updated_at=ensure_utc_aware(row.updated_at),
        )


@dataclass
class LessonProgress:
    """Learner progress on one lesson (derived from its content blocks)."""

    user_id: UUID
    course_id: UUID
    module_id: UUID
    lesson_id: UUID
    status: str = ProgressStatus.NOT_STARTED.value
    started_at: datetime | None = None
    completed_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def is_completed(self) -> bool:
        return self.status == ProgressStatus.COMPLETED.value

    @classmethod
    def not_started(
        cls, user_id: UUID, course_id: UUID, module_id: UUID, lesson_id: UUID
    ) -> "LessonProgress":
        """Default state of a lesson the learner has never touched."""
        return cls(
            user_id=user_id,
            course_id=course_id,
            module_id=module_id,
            lesson_id=lesson_id,
        )

    @classmethod
    def from_row(cls, row: Any) -> "LessonProgress":
        """Create LessonProgress instance from Cassandra row."""
        return cls(
            user_id=row.user_id,
            course_id=row.course_id,
            module_id=row.module_id,
            lesson_id=row.lesson_id,
            status=row.status or ProgressStatus.NOT_STARTED.value,
            started_at=ensure_utc_aware(row.started_at),
            completed_at=ensure_utc_aware(row.completed_at),
            updated_at=ensure_utc_aware(row.updated_at),
        )


@dataclass
class Enrollment:
    """Course enrollment with the cached roll-up.

    ``progress_percent`` is derived (round-half-up of completed / total
    lessons) and can always be recomputed from content progress.
    """

    course_id: UUID
    user_id: UUID
    status: str = EnrollmentStatus.NOT_STARTED.value
    enrolled_at: datetime | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    progress_percent: int = 0
    lessons_completed: int = 0
    lessons_total: int = 0
    last_accessed_at: datetime | None = None
    last_lesson_id: UUID | None = None
    last_module_id: UUID | None = None
    revision: int = 0

    @property
    def is_completed(self) -> bool:
        return self.status == EnrollmentStatus.COMPLETED.value

    @classmethod
    def from_row(cls, row: Any) -> "Enrollment":
        """Create Enrollment instance from Cassandra row."""
        return cls(
            course_id=row.course_id,
            user_id=row.user_id,
            status=row.status or EnrollmentStatus.NOT_STARTED.value,
            enrolled_at=ensure_utc_aware(row.enrolled_at),
            started_at=ensure_utc_aware(row.started_at),
            completed_at=ensure_utc_aware(row.completed_at),
            progress_percent=row.progress_percent or 0,
            lessons_completed=row.lessons_completed or 0,
            lessons_total=row.lessons_total or 0,
            last_accessed_at=ensure_utc_aware(row.last_accessed_at),
            last_lesson_id=row.last_lesson_id,
            last_module_id=row.last_module_id,
            revision=row.revision or 0,
        )

    @classmethod
    def from_lookup_row(cls, row: Any) -> "Enrollment":
        """Create Enrollment from an enrollments_by_user row."""
        return cls(
            course_id=row.course_id,
            user_id=row.user_id,
            status=row.status or EnrollmentStatus.NOT_STARTED.value,
            enrolled_at=ensure_utc_aware(row.enrolled_at),
            completed_at=ensure_utc_aware(row.completed_at),
            progress_percent=row.progress_percent or 0,
            lessons_completed=row.lessons_completed or 0,
            lessons_total=row.lessons_total or 0,
            last_accessed_at=ensure_utc_aware(row.last_accessed_at),
        )

    def __repr__(self) -> str:
        return (
            f"<Enrollment user={self.user_id} course={self.course_id} "
            f"{self.status} {self.progress_percent}%>"
        )
