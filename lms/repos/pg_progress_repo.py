"""PostgreSQL implementation of ProgressRepo."""

from __future__ import annotations

import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from lms.db.tables import CourseProgressRow
from lms.models.progress import CourseProgress, LectureProgress


class PgProgressRepo:
    """Satisfies the ProgressRepo Protocol using PostgreSQL."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, user_id: str, course_id: UUID) -> CourseProgress | None:
        stmt = (
            select(CourseProgressRow)
            .where(
                CourseProgressRow.user_id == user_id,
                CourseProgressRow.course_id == course_id,
            )
            .execution_options(populate_existing=True)
        )
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        if row is None:
            return None
        return _row_to_progress(row)

    @asynccontextmanager
    async def locked(
        self, user_id: str, course_id: UUID, *, create: bool = False
    ) -> AsyncIterator[CourseProgress | None]:
        # FOR UPDATE holds the row until the request transaction ends
        if create:
            # An empty row gives the first touch something to lock; a
            # rollback removes it again
            await self._session.execute(
                insert(CourseProgressRow)
                .values(
                    user_id=user_id,
                    course_id=course_id,
                    lecture_progress=[],
                    is_completed=False,
                    updated_at=int(time.time()),
                )
                .on_conflict_do_nothing(
                    index_elements=[CourseProgressRow.user_id, CourseProgressRow.course_id]
                )
            )
        stmt = (
            select(CourseProgressRow)
            .where(
                CourseProgressRow.user_id == user_id,
                CourseProgressRow.course_id == course_id,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        yield None if row is None else _row_to_progress(row)

    async def save(self, progress: CourseProgress) -> None:
        # Callers hold locked() for the row, so the upsert never races
        entries = [
            {"lecture_id": str(lp.lecture_id), "is_completed": lp.is_completed}
            for lp in progress.lecture_progress
        ]
        now = int(time.time())
        stmt = insert(CourseProgressRow).values(
            user_id=progress.user_id,
            course_id=progress.course_id,
            lecture_progress=entries,
            is_completed=progress.is_completed,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[CourseProgressRow.user_id, CourseProgressRow.course_id],
            set_={
                "lecture_progress": stmt.excluded.lecture_progress,
                "is_completed": stmt.excluded.is_completed,
                "updated_at": stmt.excluded.updated_at,
            },
        )
        await self._session.execute(stmt)


def _row_to_progress(row: CourseProgressRow) -> CourseProgress:
    return CourseProgress(
        user_id=row.user_id,
        course_id=row.course_id,
        lecture_progress=tuple(
            LectureProgress(
                lecture_id=UUID(entry["lecture_id"]),
                is_completed=bool(entry["is_completed"]),
            )
            for entry in (row.lecture_progress or [])
        ),
        is_completed=row.is_completed,
    )
