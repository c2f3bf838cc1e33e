"""Progress roll-up computation.

Pure functions over a snapshot of progress rows:
- Content block update with max-merge and threshold completion
- Lesson status derived from its content blocks
- Module and course roll-up (lesson-count percentage, round half up)
- Enrollment state transitions (monotonic completion)

Nothing here touches storage; the service loads a snapshot, calls these
functions and persists the result.
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from uuid import UUID

from src.courses.models import DEFAULT_COMPLETION_THRESHOLD, ContentBlock, Course, Lesson

from .models import (
    ContentProgress,
    Enrollment,
    EnrollmentStatus,
    LessonProgress,
    ProgressStatus,
)


PERCENT_MIN = 0
PERCENT_MAX = 100


# ==============================================================================
# Numeric helpers
# ==============================================================================


def round_half_up(value: Decimal | float | int) -> int:
    """Round to the nearest integer, halves away from zero (0.5 -> 1)."""
    return int(Decimal(str(value)).quantize(Decimal(1), rounding=ROUND_HALF_UP))


def clamp_progress_value(value: float | int) -> float | int:
    """Bound a reported progress value to [0, 100] without rounding."""
    return max(PERCENT_MIN, min(PERCENT_MAX, value))


def stored_progress_value(value: float | int, threshold: int) -> int:
    """Integer value to persist for a clamped report.

    Rounds half up, but a report below the threshold never rounds up to it.
    """
    stored = round_half_up(value)
    if value < threshold:
        stored = min(stored, threshold - 1)
    return stored


def percentage(part: int, whole: int) -> int:
    """Integer percentage of part over whole; 0 when whole is 0."""
    if whole <= 0:
        return 0
    return min(PERCENT_MAX, round_half_up(Decimal(100 * part) / Decimal(whole)))


def completion_threshold(
    block: ContentBlock, default: int = DEFAULT_COMPLETION_THRESHOLD
) -> int:
    """Threshold a video block must reach to be completed."""
    threshold = default if block.completion_threshold is None else block.completion_threshold
    return max(PERCENT_MIN, min(PERCENT_MAX, threshold))


# ==============================================================================
# Content level
# ==============================================================================


def apply_content_update(
    current: ContentProgress,
    block: ContentBlock,
    now: datetime,
    progress_value: float | None = None,
    force_complete: bool = False,
    default_threshold: int = DEFAULT_COMPLETION_THRESHOLD,
) -> ContentProgress:
    """Compute the next state of a content progress row.

    - ``force_complete`` completes the block with value 100.
    - A progress value on a video block is max-merged with the stored value
      and completes the block once it reaches the threshold.
    - Anything else marks the block as started.

    A completed block never goes back to in progress.
    """
    status = current.status
    value = current.progress_value

    if force_complete:
        status = ProgressStatus.COMPLETED.value
        value = PERCENT_MAX
    elif progress_value is not None and block.block_type.tracks_progress_value:
        threshold = completion_threshold(block, default_threshold)
        reported = clamp_progress_value(progress_value)
        value = max(current.progress_value or 0, stored_progress_value(reported, threshold))
        if reported >= threshold or value >= threshold:
            status = ProgressStatus.COMPLETED.value
        elif not current.is_completed:
            status = ProgressStatus.IN_PROGRESS.value
    elif not current.is_completed:
        status = ProgressStatus.IN_PROGRESS.value

    completed = status == ProgressStatus.COMPLETED.value
    return replace(
        current,
        status=status,
        progress_value=value,
        started_at=current.started_at or now,
        completed_at=(current.completed_at or now) if completed else None,
        updated_at=now,
    )


def content_state_changed(before: ContentProgress, after: ContentProgress) -> bool:
    """Whether an update changed anything worth persisting."""
    return (
        not before.is_persisted
        or before.status != after.status
        or before.progress_value != after.progress_value
    )


# ==============================================================================
# Lesson level
# ==============================================================================


def derive_lesson_status(
    lesson: Lesson,
    content: Mapping[UUID, ContentProgress],
    recorded: LessonProgress | None = None,
) -> str:
    """Lesson status from its content blocks.

    COMPLETED iff every block is completed; IN_PROGRESS if any block was
    touched; otherwise NOT_STARTED. A lesson without blocks is only completed
    by an explicit mark, so its recorded status is kept.
    """
    if not lesson.content_blocks:
        return recorded.status if recorded else ProgressStatus.NOT_STARTED.value

    states = [content.get(block_id) for block_id in lesson.content_block_ids]
    if all(state is not None and state.is_completed for state in states):
        return ProgressStatus.COMPLETED.value
    if any(
        state is not None and state.status != ProgressStatus.NOT_STARTED.value
        for state in states
    ):
        return ProgressStatus.IN_PROGRESS.value
    return ProgressStatus.NOT_STARTED.value


def incomplete_content_blocks(
    lesson: Lesson, content: Mapping[UUID, ContentProgress]
) -> list[UUID]:
    """Ids of the lesson's blocks that are not completed yet."""
    return [
        block_id
        for block_id in lesson.content_block_ids
        if not (block_id in content and content[block_id].is_completed)
    ]


def next_lesson_progress(
    recorded: LessonProgress, status: str, now: datetime
) -> LessonProgress:
    """Recorded lesson row moved to ``status``, stamping started/completed times."""
    if status == recorded.status:
        return recorded
    started = status != ProgressStatus.NOT_STARTED.value
    completed = status == ProgressStatus.COMPLETED.value
    return replace(
        recorded,
        status=status,
        started_at=(recorded.started_at or now) if started else recorded.started_at,
        completed_at=(recorded.completed_at or now) if completed else None,
        updated_at=now,
    )


# ==============================================================================
# Module / course level
# ==============================================================================


@dataclass(frozen=True)
class ModuleRollup:
    """Derived progress of one module."""

    module_id: UUID
    status: str
    lessons_completed: int
    lessons_total: int

    @property
    def progress_percent(self) -> int:
        return percentage(self.lessons_completed, self.lessons_total)


@dataclass(frozen=True)
class CourseRollup:
    """Derived progress of a course for one learner.

    ``lessons`` holds the derived LessonProgress of every lesson in course
    order (materialized with defaults where no row exists).
    """

    lessons: dict[UUID, LessonProgress] = field(default_factory=dict)
    modules: list[ModuleRollup] = field(default_factory=list)
    lessons_completed: int = 0
    lessons_total: int = 0
    has_activity: bool = False

    @property
    def progress_percent(self) -> int:
        return percentage(self.lessons_completed, self.lessons_total)

    @property
    def is_complete(self) -> bool:
        return self.lessons_total > 0 and self.lessons_completed == self.lessons_total


def index_content_progress(
    rows: Iterable[ContentProgress],
) -> dict[UUID, ContentProgress]:
    return {row.content_block_id: row for row in rows}


def compute_course_rollup(
    course: Course,
    user_id: UUID,
    content_rows: Iterable[ContentProgress],
    lesson_rows: Iterable[LessonProgress],
    now: datetime,
) -> CourseRollup:
    """Roll content progress up to lessons, modules and the course."""
    content = index_content_progress(content_rows)
    recorded_lessons = {row.lesson_id: row for row in lesson_rows}

    lessons: dict[UUID, LessonProgress] = {}
    modules: list[ModuleRollup] = []
    for module in course.modules:
        completed = 0
        touched = False
        for lesson in module.lessons:
            recorded = recorded_lessons.get(lesson.id) or LessonProgress.not_started(
                user_id, course.id, module.id, lesson.id
            )
            status = derive_lesson_status(lesson, content, recorded_lessons.get(lesson.id))
            progress = next_lesson_progress(recorded, status, now)
            lessons[lesson.id] = progress
            completed += progress.is_completed
            touched = touched or status != ProgressStatus.NOT_STARTED.value

        total = len(module.lessons)
        if total and completed == total:
            module_status = ProgressStatus.COMPLETED.value
        elif touched:
            module_status = ProgressStatus.IN_PROGRESS.value
        else:
            module_status = ProgressStatus.NOT_STARTED.value
        modules.append(ModuleRollup(module.id, module_status, completed, total))

    return CourseRollup(
        lessons=lessons,
        modules=modules,
        lessons_completed=sum(m.lessons_completed for m in modules),
        lessons_total=sum(m.lessons_total for m in modules),
        has_activity=any(m.status != ProgressStatus.NOT_STARTED.value for m in modules),
    )


def changed_lessons(
    rollup: CourseRollup, lesson_rows: Iterable[LessonProgress]
) -> list[LessonProgress]:
    """Derived lesson rows that differ from what is stored.

    Untouched lessons without a stored row stay unmaterialized.
    """
    stored = {row.lesson_id: row for row in lesson_rows}
    changed = []
    for lesson_id, derived in rollup.lessons.items():
        current = stored.get(lesson_id)
        if current is None:
            if derived.status != ProgressStatus.NOT_STARTED.value:
                changed.append(derived)
        elif (current.status, current.completed_at) != (
            derived.status,
            derived.completed_at,
        ):
            changed.append(derived)
    return changed


# ==============================================================================
# Enrollment level
# ==============================================================================


def apply_rollup(
    enrollment: Enrollment, rollup: CourseRollup, now: datetime
) -> Enrollment:
    """Next enrollment state for a roll-up.

    NOT_STARTED -> IN_PROGRESS on the first activity, -> COMPLETED when every
    lesson is completed. COMPLETED is kept even if the percentage later
    drops, and ``completed_at`` is never overwritten once set.
    """
    status = enrollment.status
    stamp = enrollment.completed_at

    if enrollment.is_completed:
        pass
    elif rollup.is_complete:
        status = EnrollmentStatus.COMPLETED.value
        stamp = stamp or now
    elif rollup.has_activity:
        status = EnrollmentStatus.IN_PROGRESS.value

    started_at = enrollment.started_at
    if status != EnrollmentStatus.NOT_STARTED.value and started_at is None:
        started_at = now

    return replace(
        enrollment,
        status=status,
        started_at=started_at,
        completed_at=stamp,
        progress_percent=rollup.progress_percent,
        lessons_completed=rollup.lessons_completed,
        lessons_total=rollup.lessons_total,
    )


def enrollment_drift(stored: Enrollment, derived: Enrollment) -> dict[str, tuple]:
    """Fields where the stored enrollment cache disagrees with the roll-up."""
    fields = ("status", "progress_percent", "lessons_completed", "lessons_total")
    return {
        name: (getattr(stored, name), getattr(derived, name))
        for name in fields
        if getattr(stored, name) != getattr(derived, name)
    }
