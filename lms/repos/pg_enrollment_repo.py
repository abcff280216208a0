"""PostgreSQL implementation of EnrollmentRepo."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import exists, select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from lms.db.tables import EnrollmentRow


class PgEnrollmentRepo:
    """Satisfies the EnrollmentRepo Protocol using PostgreSQL."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def grant(self, user_id: str, course_id: UUID, enrolled_at: int) -> bool:
        stmt = (
            insert(EnrollmentRow)
            .values(user_id=user_id, course_id=course_id, enrolled_at=enrolled_at)
            .on_conflict_do_nothing(
                index_elements=[EnrollmentRow.user_id, EnrollmentRow.course_id]
            )
        )
        result = await self._session.execute(stmt)
        return result.rowcount > 0

    async def is_enrolled(self, user_id: str, course_id: UUID) -> bool:
        stmt = select(
            exists().where(
                EnrollmentRow.user_id == user_id,
                EnrollmentRow.course_id == course_id,
            )
        )
        return bool((await self._session.execute(stmt)).scalar())

    async def list_course_ids(self, user_id: str) -> list[UUID]:
        stmt = (
            select(EnrollmentRow.course_id)
            .where(EnrollmentRow.user_id == user_id)
            .order_by(EnrollmentRow.enrolled_at)
        )
        return list((await self._session.execute(stmt)).scalars().all())

    async def list_student_ids(self, course_id: UUID) -> list[str]:
        stmt = (
            select(EnrollmentRow.user_id)
            .where(EnrollmentRow.course_id == course_id)
            .order_by(EnrollmentRow.enrolled_at)
        )
        return list((await self._session.execute(stmt)).scalars().all())
