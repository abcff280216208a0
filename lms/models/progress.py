"""Per-user course progress and the pure transforms over it.

Services fetch a CourseProgress, pass it through one of the functions
below, and persist whatever comes back.  None of these functions touch
storage, which keeps the idempotence rules testable on their own.
"""

from __future__ import annotations

import math
from collections.abc import Iterable
from dataclasses import dataclass, replace
from uuid import UUID


@dataclass(frozen=True, slots=True)
class LectureProgress:
    lecture_id: UUID
    is_completed: bool = False


@dataclass(frozen=True, slots=True)
class CourseProgress:
    """One row per (user_id, course_id).

    ``lecture_progress`` holds at most one entry per lecture.
    ``is_completed`` is a cached flag; mark_lecture_complete() recomputes
    it, complete_all()/reset_all() set it explicitly.
    """

    user_id: str
    course_id: UUID
    lecture_progress: tuple[LectureProgress, ...] = ()
    is_completed: bool = False

    @staticmethod
    def new(*, user_id: str, course_id: UUID) -> CourseProgress:
        return CourseProgress(user_id=user_id, course_id=course_id)

    def completed_lecture_ids(self) -> frozenset[UUID]:
        return frozenset(
            lp.lecture_id for lp in self.lecture_progress if lp.is_completed
        )


def mark_lecture_complete(
    progress: CourseProgress,
    lecture_id: UUID,
    course_lecture_ids: Iterable[UUID],
) -> CourseProgress:
    """Set one lecture completed (appending an entry if needed) and recompute."""
    entries = list(progress.lecture_progress)
    for i, entry in enumerate(entries):
        if entry.lecture_id == lecture_id:
            if not entry.is_completed:
                entries[i] = replace(entry, is_completed=True)
            break
    else:
        entries.append(LectureProgress(lecture_id=lecture_id, is_completed=True))

    updated = replace(progress, lecture_progress=tuple(entries))
    return replace(
        updated, is_completed=is_course_completed(updated, course_lecture_ids)
    )


def complete_all(progress: CourseProgress) -> CourseProgress:
    """Explicit override: everything completed, regardless of lecture count."""
    return replace(
        progress,
        lecture_progress=tuple(
            replace(lp, is_completed=True) for lp in progress.lecture_progress
        ),
        is_completed=True,
    )


def reset_all(progress: CourseProgress) -> CourseProgress:
    return replace(
        progress,
        lecture_progress=tuple(
            replace(lp, is_completed=False) for lp in progress.lecture_progress
        ),
        is_completed=False,
    )


def is_course_completed(
    progress: CourseProgress, course_lecture_ids: Iterable[UUID]
) -> bool:
    """True iff every lecture of the course has a completed entry.

    A course with no lectures is never considered completed this way.
    """
    lecture_ids = frozenset(course_lecture_ids)
    if not lecture_ids:
        return False
    return lecture_ids <= progress.completed_lecture_ids()


def completion_percentage(
    progress: CourseProgress | None, course_lecture_ids: Iterable[UUID]
) -> int:
    """Whole-number percentage, rounded half up; 0 for a course without lectures.

    Entries for lectures no longer in the course are ignored, so the
    result stays within 0..100.
    """
    lecture_ids = frozenset(course_lecture_ids)
    if progress is None or not lecture_ids:
        return 0
    completed = len(lecture_ids & progress.completed_lecture_ids())
    return math.floor(100 * completed / len(lecture_ids) + 0.5)
