"""Shared fixtures for the progress engine tests."""

from collections.abc import Iterator
from uuid import UUID, uuid4

import pytest
from fastapi.testclient import TestClient

from src.courses.models import Course
from src.main import app
from src.progress.service import ProgressService
from tests.fakes import FakeClock, InMemoryHierarchy, InMemoryProgressRepository, build_course


# ==============================================================================
# Fixtures
# ==============================================================================


@pytest.fixture
def learner_id() -> UUID:
    return uuid4()


@pytest.fixture
def course() -> Course:
    """2 modules x 2 lessons, one video block (threshold 90) per lesson."""
    return build_course()


@pytest.fixture
def hierarchy(course: Course) -> InMemoryHierarchy:
    return InMemoryHierarchy(course)


@pytest.fixture
def repository() -> InMemoryProgressRepository:
    return InMemoryProgressRepository()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def service(
    hierarchy: InMemoryHierarchy, repository: InMemoryProgressRepository, clock: FakeClock
) -> ProgressService:
    return ProgressService(hierarchy=hierarchy, repository=repository, clock=clock)


@pytest.fixture
def client() -> Iterator[TestClient]:
    """Client over the app without the lifespan (no database)."""
    app.state.progress_service = None
    yield TestClient(app)
    app.state.progress_service = None
