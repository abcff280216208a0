"""Response/request shapes shared by the routers.

JSON fields are camelCase on the wire; Python attributes stay snake_case.
"""

from __future__ import annotations

from typing import Generic, TypeVar
from uuid import UUID

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from lms.models.course import Course, Lecture

T = TypeVar("T")


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Envelope(ApiModel, Generic[T]):
    success: bool = True
    message: str | None = None
    data: T | None = None


class LectureSummary(ApiModel):
    id: UUID
    title: str
    position: int
    duration: int
    is_preview: bool

    @classmethod
    def of(cls, lecture: Lecture) -> LectureSummary:
        return cls(
            id=lecture.id,
            title=lecture.title,
            position=lecture.position,
            duration=lecture.duration,
            is_preview=lecture.is_preview,
        )


class LectureOut(LectureSummary):
    description: str
    video_url: str | None

    @classmethod
    def of(cls, lecture: Lecture) -> LectureOut:
        return cls(
            id=lecture.id,
            title=lecture.title,
            position=lecture.position,
            duration=lecture.duration,
            is_preview=lecture.is_preview,
            description=lecture.description,
            video_url=lecture.video_url,
        )


class CourseOut(ApiModel):
    id: UUID
    title: str
    subtitle: str
    description: str
    category: str
    level: str
    price: float
    thumbnail: str | None
    instructor_id: str
    is_published: bool
    created_at: int
    lecture_count: int

    @classmethod
    def of(cls, course: Course) -> CourseOut:
        return cls(
            id=course.id,
            title=course.title,
            subtitle=course.subtitle,
            description=course.description,
            category=course.category,
            level=course.level,
            price=float(course.price),
            thumbnail=course.thumbnail,
            instructor_id=course.instructor_id,
            is_published=course.is_published,
            created_at=course.created_at,
            lecture_count=len(course.lectures),
        )


class CourseDetailOut(CourseOut):
    """Course plus its lecture outline (no video URLs)."""

    lectures: list[LectureSummary]

    @classmethod
    def of(cls, course: Course) -> CourseDetailOut:
        base = CourseOut.of(course).model_dump()
        return cls(**base, lectures=[LectureSummary.of(lec) for lec in course.lectures])
