"""PostgreSQL implementation of CourseRepo."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import Select, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from lms.db.tables import CourseRow, LectureRow
from lms.models.course import Course, CourseSearch, Lecture


class PgCourseRepo:
    """Satisfies the CourseRepo Protocol using PostgreSQL via SQLAlchemy."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, course_id: UUID) -> Course | None:
        # Lecture counts drive completion, so never serve a stale identity-map copy
        stmt = (
            select(CourseRow)
            .where(CourseRow.id == course_id)
            .execution_options(populate_existing=True)
        )
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        if row is None:
            return None
        return _row_to_course(row)

    async def add(self, course: Course) -> None:
        row = CourseRow(
            id=course.id,
            title=course.title,
            subtitle=course.subtitle,
            description=course.description,
            category=course.category,
            level=course.level,
            price=course.price,
            thumbnail=course.thumbnail,
            instructor_id=course.instructor_id,
            is_published=course.is_published,
            created_at=course.created_at,
            lectures=[],
        )
        self._session.add(row)
        await self._session.flush()

    async def update(self, course: Course) -> None:
        stmt = (
            update(CourseRow)
            .where(CourseRow.id == course.id)
            .values(
                title=course.title,
                subtitle=course.subtitle,
                description=course.description,
                category=course.category,
                level=course.level,
                price=course.price,
                thumbnail=course.thumbnail,
                is_published=course.is_published,
            )
        )
        await self._session.execute(stmt)

    async def add_lecture(self, lecture: Lecture) -> None:
        row = LectureRow(
            id=lecture.id,
            course_id=lecture.course_id,
            title=lecture.title,
            description=lecture.description,
            video_url=lecture.video_url,
            duration=lecture.duration,
            is_preview=lecture.is_preview,
            position=lecture.position,
        )
        self._session.add(row)
        await self._session.flush()

    async def list_published(self, offset: int, limit: int) -> list[Course]:
        stmt = (
            select(CourseRow)
            .where(CourseRow.is_published.is_(True))
            .order_by(CourseRow.created_at.desc())
            .offset(offset)
            .limit(limit)
        )
        return await self._fetch(stmt)

    async def count_published(self) -> int:
        stmt = select(func.count()).select_from(CourseRow).where(
            CourseRow.is_published.is_(True)
        )
        return (await self._session.execute(stmt)).scalar_one()

    async def search(self, criteria: CourseSearch) -> list[Course]:
        stmt = select(CourseRow).where(CourseRow.is_published.is_(True))
        if criteria.query:
            pattern = f"%{criteria.query}%"
            stmt = stmt.where(
                or_(
                    CourseRow.title.ilike(pattern),
                    CourseRow.subtitle.ilike(pattern),
                    CourseRow.description.ilike(pattern),
                )
            )
        if criteria.categories:
            stmt = stmt.where(CourseRow.category.in_(criteria.categories))
        if criteria.level:
            stmt = stmt.where(CourseRow.level == criteria.level)
        if criteria.min_price is not None:
            stmt = stmt.where(CourseRow.price >= criteria.min_price)
        if criteria.max_price is not None:
            stmt = stmt.where(CourseRow.price <= criteria.max_price)

        order = {
            "price-low": CourseRow.price.asc(),
            "price-high": CourseRow.price.desc(),
            "oldest": CourseRow.created_at.asc(),
        }.get(criteria.sort_by, CourseRow.created_at.desc())
        return await self._fetch(stmt.order_by(order))

    async def list_by_instructor(self, instructor_id: str) -> list[Course]:
        stmt = (
            select(CourseRow)
            .where(CourseRow.instructor_id == instructor_id)
            .order_by(CourseRow.created_at.desc())
        )
        return await self._fetch(stmt)

    async def list_by_ids(self, course_ids: list[UUID]) -> list[Course]:
        if not course_ids:
            return []
        stmt = select(CourseRow).where(CourseRow.id.in_(course_ids))
        return await self._fetch(stmt)

    async def _fetch(self, stmt: Select) -> list[Course]:
        stmt = stmt.execution_options(populate_existing=True)
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_course(row) for row in rows]


def _row_to_lecture(row: LectureRow) -> Lecture:
    return Lecture(
        id=row.id,
        course_id=row.course_id,
        title=row.title,
        position=row.position,
        description=row.description or "",
        video_url=row.video_url,
        duration=row.duration,
        is_preview=row.is_preview,
    )


def _row_to_course(row: CourseRow) -> Course:
    return Course(
        id=row.id,
        title=row.title,
        instructor_id=row.instructor_id,
        price=row.price,
        subtitle=row.subtitle or "",
        description=row.description or "",
        category=row.category or "",
        level=row.level,
        thumbnail=row.thumbnail,
        is_published=row.is_published,
        created_at=row.created_at,
        lectures=tuple(_row_to_lecture(lec) for lec in row.lectures),
    )
