"""Course progress: reads, lecture completion, full completion, reset.

Every mutation is locked fetch -> pure transform (lms.models.progress) ->
save, so two requests for the same user and course never overwrite each
other's entries.  The service keeps no state between calls.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from uuid import UUID

from lms.core.errors import NotFoundError
from lms.core.metrics import LECTURE_COMPLETIONS
from lms.models import progress as progress_model
from lms.models.course import Course
from lms.models.progress import CourseProgress, LectureProgress
from lms.repos.course_repo import CourseRepo
from lms.repos.progress_repo import ProgressRepo

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ProgressView:
    course: Course
    progress: tuple[LectureProgress, ...]
    is_completed: bool
    completion_percentage: int


class ProgressService:
    def __init__(self, courses: CourseRepo, progress: ProgressRepo) -> None:
        self._courses = courses
        self._progress = progress

    async def get_progress(self, user_id: str, course_id: UUID) -> ProgressView:
        course = await self._require_course(course_id)
        progress = await self._progress.get(user_id, course_id)
        if progress is None:
            # Reads never create the row
            return ProgressView(
                course=course, progress=(), is_completed=False, completion_percentage=0
            )
        return ProgressView(
            course=course,
            progress=progress.lecture_progress,
            is_completed=progress.is_completed,
            completion_percentage=progress_model.completion_percentage(
                progress, course.lecture_ids
            ),
        )

    async def mark_lecture_complete(
        self, user_id: str, course_id: UUID, lecture_id: UUID
    ) -> CourseProgress:
        # Fetched fresh on every call: the lecture set is the completion yardstick
        course = await self._require_course(course_id)
        if not course.has_lecture(lecture_id):
            raise NotFoundError("Lecture not found")

        async with self._progress.locked(user_id, course_id, create=True) as current:
            if current is None:
                current = CourseProgress.new(user_id=user_id, course_id=course_id)
            updated = progress_model.mark_lecture_complete(
                current, lecture_id, course.lecture_ids
            )
            await self._progress.save(updated)
        LECTURE_COMPLETIONS.inc()

        if updated.is_completed and not current.is_completed:
            logger.info(
                "Course completed user=%s course=%s",
                user_id,
                course_id,
                extra={"user_id": user_id, "course_id": str(course_id)},
            )
        return updated

    async def mark_course_completed(
        self, user_id: str, course_id: UUID
    ) -> CourseProgress:
        async with self._progress.locked(user_id, course_id) as current:
            if current is None:
                raise NotFoundError("Course progress not found")
            updated = progress_model.complete_all(current)
            await self._progress.save(updated)
        logger.info(
            "Course marked completed user=%s course=%s",
            user_id,
            course_id,
            extra={"user_id": user_id, "course_id": str(course_id)},
        )
        return updated

    async def reset_progress(self, user_id: str, course_id: UUID) -> CourseProgress:
        async with self._progress.locked(user_id, course_id) as current:
            if current is None:
                raise NotFoundError("Course progress not found")
            updated = progress_model.reset_all(current)
            await self._progress.save(updated)
        logger.info(
            "Course progress reset user=%s course=%s",
            user_id,
            course_id,
            extra={"user_id": user_id, "course_id": str(course_id)},
        )
        return updated

    async def _require_course(self, course_id: UUID) -> Course:
        course = await self._courses.get(course_id)
        if course is None:
            raise NotFoundError("Course not found")
        return course
