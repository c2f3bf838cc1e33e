"""Content hierarchy store.

Provides:
- Course / Module / Lesson / ContentBlock read models
- Deterministic ordering at every level of the hierarchy
- Locators from lesson and content block ids to their course
"""

from .models import (
    COURSES_TABLES_CQL,
    ContentBlock,
    ContentBlockType,
    Course,
    CourseStatus,
    Lesson,
    Module,
)


__all__ = [
    "COURSES_TABLES_CQL",
    "ContentBlock",
    "ContentBlockType",
    "Course",
    "CourseStatus",
    "Lesson",
    "Module",
]
