"""Cassandra persistence for learner progress.

Content rows are written with lightweight transactions keyed on ``version``;
the enrollment cache is written with a compare-and-set on ``revision``.
Derived lesson rows are written in a LOGGED batch before the enrollment, and
the by-learner lookup follows once the enrollment write has been applied.

Every driver call goes through ``translate_storage_errors`` so callers only
ever see ``TransientStorageError``.
"""

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

import structlog
from cassandra.query import BatchStatement, BatchType

from src.core.database.errors import translate_storage_errors

from .models import ContentProgress, Enrollment, LessonProgress


if TYPE_CHECKING:
    from cassandra.cluster import Session

logger = structlog.get_logger(__name__)


class ProgressRepository:
    """Reads and conditional writes of progress rows."""

    def __init__(
        self,
        session: "Session",
        keyspace: str,
        max_cas_attempts: int = 5,
        page_size: int = 100,
    ):
        """Initialize with Cassandra session."""
        self.session = session
        self.keyspace = keyspace
        self.max_cas_attempts = max_cas_attempts
        self.page_size = page_size
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        """Prepare CQL statements for efficient execution."""
        # Content progress
        self._get_content_progress = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.content_progress
            WHERE user_id = ? AND course_id = ? AND lesson_id = ? AND content_block_id = ?
        """)

        self._get_course_content_progress = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.content_progress
            WHERE user_id = ? AND course_id = ?
        """)

        self._insert_content_progress = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.content_progress
            (user_id, course_id, lesson_id, content_block_id, status, progress_value,
             version, started_at, completed_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            IF NOT EXISTS
        """)

        self._update_content_progress = self.session.prepare(f"""
            UPDATE {self.keyspace}.content_progress
            SET status = ?, progress_value = ?, version = ?,
                started_at = ?, completed_at = ?, updated_at = ?
            WHERE user_id = ? AND course_id = ? AND lesson_id = ? AND content_block_id = ?
            IF version = ?
        """)

        # Lesson progress
        self._get_course_lesson_progress = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.lesson_progress
            WHERE user_id = ? AND course_id = ?
        """)

        self._upsert_lesson_progress = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.lesson_progress
            (user_id, course_id, module_id, lesson_id, status,
             started_at, completed_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """)

        # Enrollments
        self._get_enrollment = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.enrollments
            WHERE course_id = ? AND user_id = ?
        """)

        self._get_course_enrollments = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.enrollments
            WHERE course_id = ?
        """)
        self._get_course_enrollments.fetch_size = self.page_size

        self._insert_enrollment = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.enrollments
            (course_id, user_id, status, enrolled_at, progress_percent,
             lessons_completed, lessons_total, revision)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            IF NOT EXISTS
        """)

        self._update_enrollment_rollup = self.session.prepare(f"""
            UPDATE {self.keyspace}.enrollments
            SET status = ?, started_at = ?, completed_at = ?, progress_percent = ?,
                lessons_completed = ?, lessons_total = ?, revision = ?
            WHERE course_id = ? AND user_id = ?
            IF revision = ?
        """)

        self._touch_enrollment = self.session.prepare(f"""
            UPDATE {self.keyspace}.enrollments
            SET last_accessed_at = ?, last_lesson_id = ?, last_module_id = ?
            WHERE course_id = ? AND user_id = ?
        """)

        # Enrollments by user (lookup)
        self._get_user_enrollments = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.enrollments_by_user
            WHERE user_id = ?
        """)

        self._upsert_enrollment_by_user = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.enrollments_by_user
            (user_id, course_id, status, enrolled_at, completed_at, progress_percent,
             lessons_completed, lessons_total, last_accessed_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
        """)

        self._update_enrollment_by_user_rollup = self.session.prepare(f"""
            UPDATE {self.keyspace}.enrollments_by_user
            SET status = ?, enrolled_at = ?, completed_at = ?, progress_percent = ?,
                lessons_completed = ?, lessons_total = ?
            WHERE user_id = ? AND course_id = ?
        """)

        self._touch_enrollment_by_user = self.session.prepare(f"""
            UPDATE {self.keyspace}.enrollments_by_user
            SET last_accessed_at = ?
            WHERE user_id = ? AND course_id = ?
        """)

    async def _execute(self, operation: str, statement, params: list | None = None):
        with translate_storage_errors(operation):
            return await self.session.aexecute(statement, params)

    # ==========================================================================
    # Content Progress
    # ==========================================================================

    async def get_content_progress(
        self, user_id: UUID, course_id: UUID, lesson_id: UUID, content_block_id: UUID
    ) -> ContentProgress:
        """Get a content progress row, materialized as not started if absent."""
        result = await self._execute(
            "get_content_progress",
            self._get_content_progress,
            [user_id, course_id, lesson_id, content_block_id],
        )
        row = result.one()
        if row is None:
            return ContentProgress.not_started(
                user_id, course_id, lesson_id, content_block_id
            )
        return ContentProgress.from_row(row)

    async def list_content_progress(
        self, user_id: UUID, course_id: UUID
    ) -> list[ContentProgress]:
        """All stored content progress of a learner in a course."""
        rows = await self._execute(
            "list_content_progress",
            self._get_course_content_progress,
            [user_id, course_id],
        )
        return [ContentProgress.from_row(row) for row in rows]

    async def compare_and_set_content_progress(
        self, current: ContentProgress, updated: ContentProgress
    ) -> ContentProgress | None:
        """Write ``updated`` only if the row is still at ``current.version``.

        Returns:
            The stored state with its new version, or None if another writer
            got there first
        """
        new_version = current.version + 1
        if current.is_persisted:
            statement = self._update_content_progress
            params = [
                updated.status,
                updated.progress_value,
                new_version,
                updated.started_at,
                updated.completed_at,
                updated.updated_at,
                updated.user_id,
                updated.course_id,
                updated.lesson_id,
                updated.content_block_id,
                current.version,
            ]
        else:
            statement = self._insert_content_progress
            params = [
                updated.user_id,
                updated.course_id,
                updated.lesson_id,
                updated.content_block_id,
                updated.status,
                updated.progress_value,
                new_version,
                updated.started_at,
                updated.completed_at,
                updated.updated_at,
            ]

        result = await self._execute("write_content_progress", statement, params)
        if not result.was_applied:
            return None

        updated.version = new_version
        return updated

    # ==========================================================================
    # Lesson Progress
    # ==========================================================================

    async def list_lesson_progress(
        self, user_id: UUID, course_id: UUID
    ) -> list[LessonProgress]:
        """All stored lesson progress of a learner in a course."""
        rows = await self._execute(
            "list_lesson_progress",
            self._get_course_lesson_progress,
            [user_id, course_id],
        )
        return [LessonProgress.from_row(row) for row in rows]

    # ==========================================================================
    # Enrollments
    # ==========================================================================

    async def get_enrollment(self, user_id: UUID, course_id: UUID) -> Enrollment | None:
        """Get enrollment by learner and course."""
        result = await self._execute(
            "get_enrollment", self._get_enrollment, [course_id, user_id]
        )
        row = result.one()
        return Enrollment.from_row(row) if row else None

    async def create_enrollment(self, enrollment: Enrollment) -> bool:
        """Insert an enrollment unless one already exists.

        Returns:
            False if the learner was already enrolled
        """
        result = await self._execute(
            "create_enrollment",
            self._insert_enrollment,
            [
                enrollment.course_id,
                enrollment.user_id,
                enrollment.status,
                enrollment.enrolled_at,
                enrollment.progress_percent,
                enrollment.lessons_completed,
                enrollment.lessons_total,
                1,
            ],
        )
        if not result.was_applied:
            return False

        enrollment.revision = 1
        await self._execute(
            "create_enrollment_lookup",
            self._upsert_enrollment_by_user,
            self._lookup_params(enrollment),
        )
        return True

    async def save_rollup(
        self,
        current: Enrollment,
        updated: Enrollment,
        lessons: list[LessonProgress],
    ) -> Enrollment | None:
        """Persist a recomputed roll-up.

        Derived lesson rows go first in one LOGGED batch, so any roll-up that
        reads after the enrollment write already sees them. The enrollment row
        is then written only if it is still at ``current.revision``, and the
        lookup row follows once that write has been applied.

        Returns:
            The stored enrollment with its new revision, or None on conflict
        """
        if lessons:
            batch = BatchStatement(batch_type=BatchType.LOGGED)
            for lesson in lessons:
                batch.add(
                    self._upsert_lesson_progress,
                    [
                        lesson.user_id,
                        lesson.course_id,
                        lesson.module_id,
                        lesson.lesson_id,
                        lesson.status,
                        lesson.started_at,
                        lesson.completed_at,
                        lesson.updated_at,
                    ],
                )
            await self._execute("save_lesson_rollup", batch)

        new_revision = current.revision + 1
        result = await self._execute(
            "save_enrollment_rollup",
            self._update_enrollment_rollup,
            [
                updated.status,
                updated.started_at,
                updated.completed_at,
                updated.progress_percent,
                updated.lessons_completed,
                updated.lessons_total,
                new_revision,
                updated.course_id,
                updated.user_id,
                current.revision,
            ],
        )
        if not result.was_applied:
            return None
        updated.revision = new_revision

        await self._execute(
            "save_enrollment_lookup",
            self._update_enrollment_by_user_rollup,
            [
                updated.status,
                updated.enrolled_at,
                updated.completed_at,
                updated.progress_percent,
                updated.lessons_completed,
                updated.lessons_total,
                updated.user_id,
                updated.course_id,
            ],
        )
        return updated

    async def touch_enrollment(
        self,
        enrollment: Enrollment,
        lesson_id: UUID,
        module_id: UUID,
        accessed_at: datetime,
    ) -> Enrollment:
        """Record the last lesson a learner opened (no status change)."""
        batch = BatchStatement(batch_type=BatchType.LOGGED)
        batch.add(
            self._touch_enrollment,
            [accessed_at, lesson_id, module_id, enrollment.course_id, enrollment.user_id],
        )
        batch.add(
            self._touch_enrollment_by_user,
            [accessed_at, enrollment.user_id, enrollment.course_id],
        )
        await self._execute("touch_enrollment", batch)

        enrollment.last_accessed_at = accessed_at
        enrollment.last_lesson_id = lesson_id
        enrollment.last_module_id = module_id
        return enrollment

    async def list_user_enrollments(self, user_id: UUID) -> list[Enrollment]:
        """All enrollments of a learner (lookup table)."""
        rows = await self._execute(
            "list_user_enrollments", self._get_user_enrollments, [user_id]
        )
        return [Enrollment.from_lookup_row(row) for row in rows]

    async def list_course_enrollments(self, course_id: UUID) -> list[Enrollment]:
        """All enrollments in a course, fetched in pages of ``page_size``."""
        rows = await self._execute(
            "list_course_enrollments", self._get_course_enrollments, [course_id]
        )
        with translate_storage_errors("list_course_enrollments"):
            return [Enrollment.from_row(row) for row in rows]

    @staticmethod
    def _lookup_params(enrollment: Enrollment) -> list:
        return [
            enrollment.user_id,
            enrollment.course_id,
            enrollment.status,
            enrollment.enrolled_at,
            enrollment.completed_at,
            enrollment.progress_percent,
            enrollment.lessons_completed,
            enrollment.lessons_total,
            enrollment.last_accessed_at,
        ]
