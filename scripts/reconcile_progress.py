"""Reconcile cached progress against content progress.

Recomputes lesson progress and enrollment roll-ups from content progress
rows and rewrites whatever drifted (for example after a crash between the
content write and the roll-up write).

Usage:
    uv run python -m scripts.reconcile_progress --course-id <uuid> [--course-id <uuid> ...]
    uv run python -m scripts.reconcile_progress --course-id <uuid> --user-id <uuid>
"""

import argparse
import asyncio
import sys
from pathlib import Path
from uuid import UUID, uuid4

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

import structlog

from src.config.settings import get_settings
from src.core.context import RequestContext
from src.core.database import AsyncCassandraConnection
from src.courses.service import CourseHierarchyService
from src.progress.repository import ProgressRepository
from src.progress.service import ProgressService


logger = structlog.get_logger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument(
        "--course-id",
        dest="course_ids",
        type=UUID,
        action="append",
        required=True,
        help="Course to reconcile (repeatable)",
    )
    parser.add_argument(
        "--user-id",
        type=UUID,
        default=None,
        help="Only reconcile this learner's enrollment",
    )
    return parser.parse_args(argv)


async def reconcile(
    service: ProgressService, course_ids: list[UUID], user_id: UUID | None = None
) -> int:
    """Reconcile the given courses.

    Returns:
        Number of enrollments rewritten
    """
    repaired = 0
    for course_id in course_ids:
        if user_id is not None:
            outcome = await service.reconcile_enrollment(user_id, course_id)
            repaired += bool(outcome.drift or outcome.lessons_written)
            continue

        summary = await service.reconcile_course(course_id)
        logger.info(
            "course_reconciled",
            course_id=str(course_id),
            checked=summary.enrollments_checked,
            repaired=summary.enrollments_repaired,
        )
        repaired += summary.enrollments_repaired
    return repaired


async def run_reconcile(args: argparse.Namespace) -> None:
    """Connect, reconcile and disconnect."""
    settings = get_settings()
    keyspace = settings.cassandra_keyspace

    logger.info(
        "reconcile_starting",
        keyspace=keyspace,
        hosts=settings.cassandra_hosts,
        courses=[str(c) for c in args.course_ids],
    )

    # LWT writes: same session and consistency levels as the API
    session = AsyncCassandraConnection.connect()
    session.set_keyspace(keyspace)

    try:
        service = ProgressService(
            hierarchy=CourseHierarchyService(session, keyspace),
            repository=ProgressRepository(
                session,
                keyspace,
                max_cas_attempts=settings.progress_cas_max_attempts,
                page_size=settings.progress_reconcile_page_size,
            ),
            default_completion_threshold=settings.progress_default_completion_threshold,
        )
        with RequestContext(request_id=f"reconcile-{uuid4()}"):
            repaired = await reconcile(service, args.course_ids, args.user_id)
        logger.info("reconcile_completed", repaired=repaired)
    finally:
        AsyncCassandraConnection.disconnect()


if __name__ == "__main__":
    asyncio.run(run_reconcile(parse_args()))
