from __future__ import annotations

import time
from dataclasses import dataclass, field
from decimal import Decimal
from uuid import UUID, uuid4

COURSE_LEVELS = ("beginner", "intermediate", "advanced")


@dataclass(frozen=True, slots=True)
class Lecture:
    id: UUID
    course_id: UUID
    title: str
    position: int
    description: str = ""
    video_url: str | None = None
    duration: int = 0  # seconds
    is_preview: bool = False

    @staticmethod
    def new(
        *,
        course_id: UUID,
        title: str,
        position: int,
        description: str = "",
        video_url: str | None = None,
        duration: int = 0,
        is_preview: bool = False,
    ) -> Lecture:
        return Lecture(
            id=uuid4(),
            course_id=course_id,
            title=title,
            position=position,
            description=description,
            video_url=video_url,
            duration=duration,
            is_preview=is_preview,
        )


@dataclass(frozen=True, slots=True)
class Course:
    id: UUID
    title: str
    instructor_id: str
    price: Decimal = Decimal("0")
    subtitle: str = ""
    description: str = ""
    category: str = ""
    level: str = "beginner"  # beginner|intermediate|advanced
    thumbnail: str | None = None
    is_published: bool = False
    created_at: int = 0
    lectures: tuple[Lecture, ...] = field(default=())

    @staticmethod
    def new(
        *,
        title: str,
        instructor_id: str,
        price: Decimal = Decimal("0"),
        subtitle: str = "",
        description: str = "",
        category: str = "",
        level: str = "beginner",
        thumbnail: str | None = None,
    ) -> Course:
        return Course(
            id=uuid4(),
            title=title,
            instructor_id=instructor_id,
            price=price,
            subtitle=subtitle,
            description=description,
            category=category,
            level=level,
            thumbnail=thumbnail,
            created_at=int(time.time()),
        )

    @property
    def lecture_ids(self) -> frozenset[UUID]:
        return frozenset(lecture.id for lecture in self.lectures)

    def has_lecture(self, lecture_id: UUID) -> bool:
        return any(lecture.id == lecture_id for lecture in self.lectures)


SORT_OPTIONS = ("newest", "oldest", "price-low", "price-high")


@dataclass(frozen=True, slots=True)
class CourseSearch:
    """Filters for the public catalog search (published courses only)."""

    query: str = ""
    categories: tuple[str, ...] = ()
    level: str | None = None
    min_price: Decimal | None = None
    max_price: Decimal | None = None
    sort_by: str = "newest"  # newest|oldest|price-low|price-high

    def matches(self, course: Course) -> bool:
        if not course.is_published:
            return False
        if self.query:
            needle = self.query.lower()
            haystacks = (course.title, course.subtitle, course.description)
            if not any(needle in h.lower() for h in haystacks):
                return False
        if self.categories and course.category not in self.categories:
            return False
        if self.level and course.level != self.level:
            return False
        if self.min_price is not None and course.price < self.min_price:
            return False
        if self.max_price is not None and course.price > self.max_price:
            return False
        return True

    def sort(self, courses: list[Course]) -> list[Course]:
        if self.sort_by == "price-low":
            return sorted(courses, key=lambda c: c.price)
        if self.sort_by == "price-high":
            return sorted(courses, key=lambda c: c.price, reverse=True)
        if self.sort_by == "oldest":
            return sorted(courses, key=lambda c: c.created_at)
        return sorted(courses, key=lambda c: c.created_at, reverse=True)
