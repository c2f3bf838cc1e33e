"""Tests for ProgressRepository against a mocked Cassandra session."""

from datetime import UTC, datetime
from types import SimpleNamespace
from unittest.mock import AsyncMock, Mock, patch
from uuid import UUID, uuid4

import pytest
from cassandra import OperationTimedOut
from cassandra.cluster import NoHostAvailable, Session

from src.core.database.errors import TransientStorageError
from src.progress.models import ContentProgress, Enrollment, LessonProgress, ProgressStatus
from src.progress.repository import ProgressRepository


NOW = datetime(2025, 6, 1, 12, 0, tzinfo=UTC)


@pytest.fixture
def mock_session():
    """Mock Cassandra session with one distinct prepared statement per query."""
    session = Mock(spec=Session)
    session.prepare = Mock(side_effect=lambda cql: Mock(name="prepared", query_string=cql))
    # Make aexecute awaitable (cassandra-asyncio-driver)
    session.aexecute = AsyncMock(return_value=Mock())
    return session


@pytest.fixture
def repository(mock_session) -> ProgressRepository:
    return ProgressRepository(session=mock_session, keyspace="test_keyspace", page_size=50)


@pytest.fixture
def user_id() -> UUID:
    return uuid4()


@pytest.fixture
def course_id() -> UUID:
    return uuid4()


def lwt_result(applied: bool) -> Mock:
    result = Mock()
    result.was_applied = applied
    return result


def executed(mock_session, call_index: int = -1) -> tuple[str, list]:
    """(query text, params) of an aexecute call."""
    args = mock_session.aexecute.call_args_list[call_index].args
    return args[0].query_string, args[1]


class TestPreparedStatements:
    def test_statements_use_keyspace(self, repository, mock_session):
        queries = [call.args[0] for call in mock_session.prepare.call_args_list]

        assert queries
        assert all("test_keyspace." in query for query in queries)

    def test_course_scan_is_paged(self, repository):
        assert repository._get_course_enrollments.fetch_size == 50


class TestContentProgress:
    @pytest.mark.asyncio
    async def test_missing_row_is_not_started(self, repository, mock_session, user_id, course_id):
        mock_session.aexecute.return_value.one.return_value = None
        lesson_id, block_id = uuid4(), uuid4()

        progress = await repository.get_content_progress(user_id, course_id, lesson_id, block_id)

        assert progress.status == ProgressStatus.NOT_STARTED.value
        assert progress.version == 0
        assert not progress.is_persisted

    @pytest.mark.asyncio
    async def test_first_write_inserts_if_not_exists(
        self, repository, mock_session, user_id, course_id
    ):
        mock_session.aexecute.return_value = lwt_result(True)
        current = ContentProgress.not_started(user_id, course_id, uuid4(), uuid4())
        updated = ContentProgress(
            user_id=user_id,
            course_id=course_id,
            lesson_id=current.lesson_id,
            content_block_id=current.content_block_id,
            status=ProgressStatus.IN_PROGRESS.value,
            progress_value=40,
            started_at=NOW,
            updated_at=NOW,
        )

        stored = await repository.compare_and_set_content_progress(current, updated)

        query, params = executed(mock_session)
        assert "IF NOT EXISTS" in query
        assert params[4:7] == [ProgressStatus.IN_PROGRESS.value, 40, 1]
        assert stored.version == 1

    @pytest.mark.asyncio
    async def test_later_write_is_conditional_on_version(
        self, repository, mock_session, user_id, course_id
    ):
        mock_session.aexecute.return_value = lwt_result(True)
        lesson_id, block_id = uuid4(), uuid4()
        current = ContentProgress(
            user_id=user_id,
            course_id=course_id,
            lesson_id=lesson_id,
            content_block_id=block_id,
            status=ProgressStatus.IN_PROGRESS.value,
            progress_value=40,
            version=3,
        )
        updated = ContentProgress(
            user_id=user_id,
            course_id=course_id,
            lesson_id=lesson_id,
            content_block_id=block_id,
            status=ProgressStatus.COMPLETED.value,
            progress_value=95,
            version=3,
            completed_at=NOW,
        )

        stored = await repository.compare_and_set_content_progress(current, updated)

        query, params = executed(mock_session)
        assert "IF version = ?" in query
        assert params[:3] == [ProgressStatus.COMPLETED.value, 95, 4]
        assert params[-1] == 3
        assert stored.version == 4

    @pytest.mark.asyncio
    async def test_lost_race_returns_none(self, repository, mock_session, user_id, course_id):
        mock_session.aexecute.return_value = lwt_result(False)
        current = ContentProgress.not_started(user_id, course_id, uuid4(), uuid4())
        updated = ContentProgress.not_started(user_id, course_id, current.lesson_id, uuid4())

        assert await repository.compare_and_set_content_progress(current, updated) is None
        assert updated.version == 0

    @pytest.mark.asyncio
    async def test_driver_timeout_is_transient(self, repository, mock_session, user_id, course_id):
        mock_session.aexecute.side_effect = OperationTimedOut("timed out")

        with pytest.raises(TransientStorageError) as exc_info:
            await repository.list_content_progress(user_id, course_id)

        assert isinstance(exc_info.value.__cause__, OperationTimedOut)

    @pytest.mark.asyncio
    async def test_naive_timestamps_become_utc(self, repository, mock_session, user_id, course_id):
        row = SimpleNamespace(
            user_id=user_id,
            course_id=course_id,
            lesson_id=uuid4(),
            content_block_id=uuid4(),
            status=ProgressStatus.COMPLETED.value,
            progress_value=100,
            version=2,
            started_at=datetime(2025, 6, 1, 11, 0),
            completed_at=datetime(2025, 6, 1, 12, 0),
            updated_at=datetime(2025, 6, 1, 12, 0),
        )
        mock_session.aexecute.return_value = [row]

        rows = await repository.list_content_progress(user_id, course_id)

        assert rows[0].completed_at == NOW
        assert rows[0].version == 2


class TestEnrollments:
    @pytest.mark.asyncio
    async def test_create_enrollment_writes_lookup(
        self, repository, mock_session, user_id, course_id
    ):
        mock_session.aexecute.return_value = lwt_result(True)
        enrollment = Enrollment(course_id=course_id, user_id=user_id, enrolled_at=NOW, lessons_total=4)

        assert await repository.create_enrollment(enrollment) is True

        assert mock_session.aexecute.await_count == 2
        insert, insert_params = executed(mock_session, 0)
        lookup, lookup_params = executed(mock_session, 1)
        assert "IF NOT EXISTS" in insert
        assert insert_params[-1] == 1
        assert "enrollments_by_user" in lookup
        assert lookup_params[:2] == [user_id, course_id]
        assert enrollment.revision == 1

    @pytest.mark.asyncio
    async def test_create_existing_enrollment(self, repository, mock_session, user_id, course_id):
        mock_session.aexecute.return_value = lwt_result(False)
        enrollment = Enrollment(course_id=course_id, user_id=user_id, enrolled_at=NOW)

        assert await repository.create_enrollment(enrollment) is False
        assert mock_session.aexecute.await_count == 1

    @pytest.mark.asyncio
    async def test_save_rollup_writes_lessons_before_enrollment(
        self, repository, mock_session, user_id, course_id
    ):
        mock_session.aexecute.return_value = lwt_result(True)
        current = Enrollment(course_id=course_id, user_id=user_id, revision=2)
        updated = Enrollment(
            course_id=course_id,
            user_id=user_id,
            status="in_progress",
            progress_percent=25,
            lessons_completed=1,
            lessons_total=4,
            revision=2,
        )
        lesson = LessonProgress(
            user_id=user_id,
            course_id=course_id,
            module_id=uuid4(),
            lesson_id=uuid4(),
            status=ProgressStatus.COMPLETED.value,
            completed_at=NOW,
        )

        with patch("src.progress.repository.BatchStatement") as batch_cls:
            saved = await repository.save_rollup(current, updated, [lesson])

        batch = batch_cls.return_value
        added = [call.args[0].query_string for call in batch.add.call_args_list]
        assert len(added) == 1
        assert "lesson_progress" in added[0]
        assert mock_session.aexecute.call_args_list[0].args[0] is batch

        query, params = executed(mock_session, 1)
        assert "IF revision = ?" in query
        assert params[6] == 3
        assert params[-1] == 2
        assert saved.revision == 3

        query, params = executed(mock_session, 2)
        assert "enrollments_by_user" in query
        assert params[-2:] == [user_id, course_id]

    @pytest.mark.asyncio
    async def test_save_rollup_conflict_skips_lookup(
        self, repository, mock_session, user_id, course_id
    ):
        mock_session.aexecute.return_value = lwt_result(False)
        current = Enrollment(course_id=course_id, user_id=user_id, revision=2)
        updated = Enrollment(course_id=course_id, user_id=user_id, revision=2, progress_percent=50)

        assert await repository.save_rollup(current, updated, []) is None
        assert mock_session.aexecute.await_count == 1
        assert updated.revision == 2

    @pytest.mark.asyncio
    async def test_unavailable_cluster_is_transient(self, repository, mock_session, user_id, course_id):
        mock_session.aexecute.side_effect = NoHostAvailable("no hosts", {})
        enrollment = Enrollment(course_id=course_id, user_id=user_id)

        with pytest.raises(TransientStorageError):
            await repository.save_rollup(enrollment, enrollment, [])

    @pytest.mark.asyncio
    async def test_missing_enrollment(self, repository, mock_session, user_id, course_id):
        mock_session.aexecute.return_value.one.return_value = None

        assert await repository.get_enrollment(user_id, course_id) is None
        _, params = executed(mock_session)
        assert params == [course_id, user_id]
