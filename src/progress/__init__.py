"""Learner progress tracking module.

Provides:
- Content block progress with max-merge and completion thresholds
- Lesson, module and course roll-up
- Course enrollment lifecycle
- Lesson navigation across module boundaries
"""

from .models import (
    PROGRESS_TABLES_CQL,
    ContentProgress,
    Enrollment,
    EnrollmentStatus,
    LessonProgress,
    ProgressStatus,
)


__all__ = [
    "PROGRESS_TABLES_CQL",
    "ContentProgress",
    "Enrollment",
    "EnrollmentStatus",
    "LessonProgress",
    "ProgressStatus",
]
