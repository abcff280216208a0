from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from typing import Protocol
from uuid import UUID

from lms.models.progress import CourseProgress


class ProgressRepo(Protocol):
    async def get(self, user_id: str, course_id: UUID) -> CourseProgress | None: ...
    async def save(self, progress: CourseProgress) -> None: ...

    def locked(
        self, user_id: str, course_id: UUID, *, create: bool = False
    ) -> AbstractAsyncContextManager[CourseProgress | None]:
        """Hold the row exclusively for a read-modify-save.

        Yields the current row (None when absent).  Concurrent mutations of
        the same (user, course) wait until the block exits.  ``create`` lets
        an implementation materialize an empty row so there is something to
        lock; the caller must treat an empty row like a missing one.
        """
        ...


class InMemoryProgressRepo:
    def __init__(self) -> None:
        self._store: dict[tuple[str, UUID], CourseProgress] = {}
        self._locks: dict[tuple[str, UUID], asyncio.Lock] = {}

    async def get(self, user_id: str, course_id: UUID) -> CourseProgress | None:
        return self._store.get((user_id, course_id))

    async def save(self, progress: CourseProgress) -> None:
        # Upsert: the (user_id, course_id) key is the row identity
        self._store[(progress.user_id, progress.course_id)] = progress

    @asynccontextmanager
    async def locked(
        self, user_id: str, course_id: UUID, *, create: bool = False
    ) -> AsyncIterator[CourseProgress | None]:
        key = (user_id, course_id)
        async with self._locks.setdefault(key, asyncio.Lock()):
            yield self._store.get(key)

    def clear(self) -> None:
        self._store.clear()
        self._locks.clear()
