"""Lesson navigation over the flattened course sequence."""

from dataclasses import dataclass
from uuid import UUID

from src.courses.models import Course, Lesson
from src.courses.service import LessonNotFoundError


@dataclass(frozen=True)
class LessonLink:
    """Neighbouring lesson reference."""

    id: UUID
    title: str
    module_id: UUID

    @classmethod
    def from_lesson(cls, lesson: Lesson) -> "LessonLink":
        return cls(id=lesson.id, title=lesson.title, module_id=lesson.module_id)


@dataclass(frozen=True)
class LessonNavigation:
    """Position of a lesson in its course.

    ``current_index`` is 1-based; prev/next cross module boundaries.
    """

    prev_lesson: LessonLink | None
    next_lesson: LessonLink | None
    current_index: int
    total_lessons: int


def resolve_navigation(course: Course, lesson_id: UUID) -> LessonNavigation:
    """Previous / next lesson of ``lesson_id`` in course order.

    Raises:
        LessonNotFoundError: If the lesson is not part of the course
    """
    lessons = course.lessons_in_order()
    position = next(
        (i for i, lesson in enumerate(lessons) if lesson.id == lesson_id), None
    )
    if position is None:
        raise LessonNotFoundError

    prev_lesson = lessons[position - 1] if position > 0 else None
    next_lesson = lessons[position + 1] if position + 1 < len(lessons) else None

    return LessonNavigation(
        prev_lesson=LessonLink.from_lesson(prev_lesson) if prev_lesson else None,
        next_lesson=LessonLink.from_lesson(next_lesson) if next_lesson else None,
        current_index=position + 1,
        total_lessons=len(lessons),
    )
