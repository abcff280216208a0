from __future__ import annotations

from dataclasses import replace
from typing import Protocol
from uuid import UUID

from lms.models.course import Course, CourseSearch, Lecture


class CourseRepo(Protocol):
    async def get(self, course_id: UUID) -> Course | None: ...
    async def add(self, course: Course) -> None: ...
    async def update(self, course: Course) -> None: ...
    async def add_lecture(self, lecture: Lecture) -> None: ...
    async def list_published(self, offset: int, limit: int) -> list[Course]: ...
    async def count_published(self) -> int: ...
    async def search(self, criteria: CourseSearch) -> list[Course]: ...
    async def list_by_instructor(self, instructor_id: str) -> list[Course]: ...
    async def list_by_ids(self, course_ids: list[UUID]) -> list[Course]: ...


class InMemoryCourseRepo:
    def __init__(self) -> None:
        self._by_id: dict[UUID, Course] = {}

    async def get(self, course_id: UUID) -> Course | None:
        return self._by_id.get(course_id)

    async def add(self, course: Course) -> None:
        if course.id in self._by_id:
            raise ValueError("course already exists")
        self._by_id[course.id] = course

    async def update(self, course: Course) -> None:
        current = self._by_id.get(course.id)
        if current is None:
            raise KeyError("course not found")
        # Lectures are only ever changed through add_lecture()
        self._by_id[course.id] = replace(course, lectures=current.lectures)

    async def add_lecture(self, lecture: Lecture) -> None:
        course = self._by_id.get(lecture.course_id)
        if course is None:
            raise KeyError("course not found")
        lectures = sorted((*course.lectures, lecture), key=lambda lec: lec.position)
        self._by_id[course.id] = replace(course, lectures=tuple(lectures))

    async def list_published(self, offset: int, limit: int) -> list[Course]:
        published = [c for c in self._by_id.values() if c.is_published]
        published.sort(key=lambda c: c.created_at, reverse=True)
        return published[offset : offset + limit]

    async def count_published(self) -> int:
        return sum(1 for c in self._by_id.values() if c.is_published)

    async def search(self, criteria: CourseSearch) -> list[Course]:
        return criteria.sort([c for c in self._by_id.values() if criteria.matches(c)])

    async def list_by_instructor(self, instructor_id: str) -> list[Course]:
        return [c for c in self._by_id.values() if c.instructor_id == instructor_id]

    async def list_by_ids(self, course_ids: list[UUID]) -> list[Course]:
        return [self._by_id[cid] for cid in course_ids if cid in self._by_id]
