"""Course catalog: authoring, publishing, browsing, lecture access."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Any
from uuid import UUID

from lms.core.errors import ForbiddenError, NotFoundError, ValidationError
from lms.models.course import COURSE_LEVELS, SORT_OPTIONS, Course, CourseSearch, Lecture
from lms.models.principal import Principal
from lms.repos.course_repo import CourseRepo
from lms.repos.enrollment_repo import EnrollmentRepo

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100

_UPDATABLE_FIELDS = frozenset(
    {"title", "subtitle", "description", "category", "level", "price", "thumbnail"}
)


@dataclass(frozen=True, slots=True)
class Page:
    items: list[Course]
    page: int
    limit: int
    total: int

    @property
    def pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0


@dataclass(frozen=True, slots=True)
class LectureListing:
    lectures: list[Lecture]
    is_enrolled: bool
    is_instructor: bool


def _check_level(level: str | None) -> None:
    if level is not None and level not in COURSE_LEVELS:
        raise ValidationError(f"level must be one of {', '.join(COURSE_LEVELS)}")


def _check_price(price: Decimal | None) -> None:
    if price is not None and price < 0:
        raise ValidationError("price must not be negative")


class CourseService:
    def __init__(self, courses: CourseRepo, enrollments: EnrollmentRepo) -> None:
        self._courses = courses
        self._enrollments = enrollments

    # -- authoring ---------------------------------------------------------

    async def create_course(
        self,
        instructor_id: str,
        *,
        title: str,
        price: Decimal = Decimal("0"),
        subtitle: str = "",
        description: str = "",
        category: str = "",
        level: str = "beginner",
        thumbnail: str | None = None,
    ) -> Course:
        if not title.strip():
            raise ValidationError("title is required")
        _check_level(level)
        _check_price(price)
        course = Course.new(
            title=title.strip(),
            instructor_id=instructor_id,
            price=price,
            subtitle=subtitle,
            description=description,
            category=category,
            level=level,
            thumbnail=thumbnail,
        )
        await self._courses.add(course)
        logger.info(
            "Course created id=%s instructor=%s",
            course.id,
            instructor_id,
            extra={"user_id": instructor_id, "course_id": str(course.id)},
        )
        return course

    async def update_course(
        self, actor: Principal, course_id: UUID, changes: dict[str, Any]
    ) -> Course:
        course = await self._owned_course(actor, course_id)
        unknown = set(changes) - _UPDATABLE_FIELDS
        if unknown:
            raise ValidationError(f"cannot update: {', '.join(sorted(unknown))}")
        if "title" in changes and not str(changes["title"]).strip():
            raise ValidationError("title is required")
        _check_level(changes.get("level"))
        _check_price(changes.get("price"))

        updated = replace(course, **changes)
        await self._courses.update(updated)
        return updated

    async def publish_course(
        self, actor: Principal, course_id: UUID, is_published: bool
    ) -> Course:
        course = await self._owned_course(actor, course_id)
        if is_published and not course.lectures:
            raise ValidationError("Course must have at least one lecture to publish")
        updated = replace(course, is_published=is_published)
        await self._courses.update(updated)
        logger.info(
            "Course %s id=%s",
            "published" if is_published else "unpublished",
            course_id,
            extra={"user_id": actor.user_id, "course_id": str(course_id)},
        )
        return updated

    async def add_lecture(
        self,
        actor: Principal,
        course_id: UUID,
        *,
        title: str,
        description: str = "",
        video_url: str | None = None,
        duration: int = 0,
        is_preview: bool = False,
    ) -> Lecture:
        course = await self._owned_course(actor, course_id)
        if not title.strip():
            raise ValidationError("title is required")
        if duration < 0:
            raise ValidationError("duration must not be negative")
        next_position = max((lec.position for lec in course.lectures), default=0) + 1
        lecture = Lecture.new(
            course_id=course_id,
            title=title.strip(),
            position=next_position,
            description=description,
            video_url=video_url,
            duration=duration,
            is_preview=is_preview,
        )
        await self._courses.add_lecture(lecture)
        return lecture

    # -- browsing ----------------------------------------------------------

    async def get_course(self, course_id: UUID) -> Course:
        course = await self._courses.get(course_id)
        if course is None:
            raise NotFoundError("Course not found")
        return course

    async def list_published(
        self, page: int = 1, limit: int = DEFAULT_PAGE_SIZE
    ) -> Page:
        page = max(page, 1)
        limit = min(max(limit, 1), MAX_PAGE_SIZE)
        items = await self._courses.list_published((page - 1) * limit, limit)
        total = await self._courses.count_published()
        return Page(items=items, page=page, limit=limit, total=total)

    async def search(self, criteria: CourseSearch) -> list[Course]:
        if criteria.sort_by not in SORT_OPTIONS:
            raise ValidationError(f"sortBy must be one of {', '.join(SORT_OPTIONS)}")
        _check_level(criteria.level)
        return await self._courses.search(criteria)

    async def list_by_instructor(self, instructor_id: str) -> list[Course]:
        return await self._courses.list_by_instructor(instructor_id)

    async def list_enrolled_courses(self, user_id: str) -> list[Course]:
        course_ids = await self._enrollments.list_course_ids(user_id)
        return await self._courses.list_by_ids(course_ids)

    async def get_lectures(self, user_id: str, course_id: UUID) -> LectureListing:
        course = await self.get_course(course_id)
        is_instructor = course.instructor_id == user_id
        is_enrolled = await self._enrollments.is_enrolled(user_id, course_id)
        lectures = list(course.lectures)
        if not (is_instructor or is_enrolled):
            lectures = [lec for lec in lectures if lec.is_preview]
        return LectureListing(
            lectures=lectures, is_enrolled=is_enrolled, is_instructor=is_instructor
        )

    async def _owned_course(self, actor: Principal, course_id: UUID) -> Course:
        course = await self.get_course(course_id)
        if not actor.can_manage(course.instructor_id):
            raise ForbiddenError("Only the course instructor can modify this course")
        return course
