"""Pydantic schemas for the content hierarchy (read side)."""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field

from src.courses.models import ContentBlock, ContentBlockType, Course, CourseStatus


class CourseSummary(BaseModel):
    """Course header fields shared by catalog and learner views."""

    id: UUID
    title: str
    description: str | None = None
    thumbnail_url: str | None = None
    status: CourseStatus
    estimated_duration_minutes: int | None = None
    published_at: datetime | None = None

    @classmethod
    def from_entity(cls, course: Course) -> "CourseSummary":
        """Create summary from entity."""
        return cls(
            id=course.id,
            title=course.title,
            description=course.description,
            thumbnail_url=course.thumbnail_url,
            status=CourseStatus(course.status),
            estimated_duration_minutes=course.estimated_duration_minutes,
            published_at=course.published_at,
        )


class ContentBlockOutline(BaseModel):
    """Content block header (no payload) for course outlines."""

    id: UUID
    title: str
    block_type: ContentBlockType
    sort_order: int

    @classmethod
    def from_entity(cls, block: ContentBlock) -> "ContentBlockOutline":
        """Create outline from entity."""
        return cls(
            id=block.id,
            title=block.title,
            block_type=block.block_type,
            sort_order=block.sort_order,
        )


class ContentBlockDetail(ContentBlockOutline):
    """Full content block, payload included."""

    content: dict[str, Any] = Field(default_factory=dict)
    completion_threshold: int | None = Field(
        None, description="Video completion threshold (0-100), default 100"
    )

    @classmethod
    def from_entity(cls, block: ContentBlock) -> "ContentBlockDetail":
        """Create detail from entity."""
        return cls(
            id=block.id,
            title=block.title,
            block_type=block.block_type,
            sort_order=block.sort_order,
            content=block.content,
            completion_threshold=block.completion_threshold,
        )
