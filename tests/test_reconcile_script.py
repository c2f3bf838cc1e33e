"""Tests for the reconcile_progress script."""

from uuid import uuid4

import pytest

from scripts.reconcile_progress import parse_args, reconcile
from src.core.database.errors import TransientStorageError
from tests.fakes import block_of


def test_parse_repeatable_course_ids():
    first, second = uuid4(), uuid4()

    args = parse_args(["--course-id", str(first), "--course-id", str(second)])

    assert args.course_ids == [first, second]
    assert args.user_id is None


def test_course_id_is_required():
    with pytest.raises(SystemExit):
        parse_args([])


@pytest.mark.asyncio
async def test_reconcile_counts_repaired_enrollments(service, repository, course, learner_id):
    await service.enroll(learner_id, course.id)
    await service.enroll(uuid4(), course.id)
    repository.fail_next_rollup = True
    with pytest.raises(TransientStorageError):
        await service.update_content_progress(learner_id, block_of(course, 0).id, force_complete=True)

    assert await reconcile(service, [course.id]) == 1
    assert await reconcile(service, [course.id]) == 0


@pytest.mark.asyncio
async def test_reconcile_single_learner(service, repository, course, learner_id):
    await service.enroll(learner_id, course.id)
    repository.fail_next_rollup = True
    with pytest.raises(TransientStorageError):
        await service.update_content_progress(learner_id, block_of(course, 0).id, force_complete=True)

    assert await reconcile(service, [course.id], user_id=learner_id) == 1
    assert repository.enrollment(learner_id, course.id).progress_percent == 25
