from __future__ import annotations

from typing import Protocol
from uuid import UUID

from lms.models.purchase import Enrollment


class EnrollmentRepo(Protocol):
    async def grant(self, user_id: str, course_id: UUID, enrolled_at: int) -> bool: ...
    async def is_enrolled(self, user_id: str, course_id: UUID) -> bool: ...
    async def list_course_ids(self, user_id: str) -> list[UUID]: ...
    async def list_student_ids(self, course_id: UUID) -> list[str]: ...


class InMemoryEnrollmentRepo:
    def __init__(self) -> None:
        self._store: dict[tuple[str, UUID], Enrollment] = {}

    async def grant(self, user_id: str, course_id: UUID, enrolled_at: int) -> bool:
        """Insert if absent.  Returns False when the link already existed."""
        key = (user_id, course_id)
        if key in self._store:
            return False
        self._store[key] = Enrollment(
            user_id=user_id, course_id=course_id, enrolled_at=enrolled_at
        )
        return True

    async def is_enrolled(self, user_id: str, course_id: UUID) -> bool:
        return (user_id, course_id) in self._store

    async def list_course_ids(self, user_id: str) -> list[UUID]:
        return [cid for (uid, cid) in self._store if uid == user_id]

    async def list_student_ids(self, course_id: UUID) -> list[str]:
        return [uid for (uid, cid) in self._store if cid == course_id]
