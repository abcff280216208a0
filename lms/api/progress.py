"""Learner progress endpoints (always scoped to the caller)."""

from __future__ import annotations

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends

from lms.api.dependencies import API_PREFIX, CurrentUser, get_progress_service
from lms.api.ratelimit import require_rate_limit
from lms.api.schemas import ApiModel, CourseDetailOut, Envelope
from lms.models.progress import CourseProgress, LectureProgress
from lms.services.progress_service import ProgressService

router = APIRouter(
    prefix=f"{API_PREFIX}/progress",
    tags=["progress"],
    dependencies=[Depends(require_rate_limit())],
)

Service = Annotated[ProgressService, Depends(get_progress_service)]


class LectureProgressOut(ApiModel):
    lecture_id: UUID
    is_completed: bool


class ProgressOut(ApiModel):
    course_details: CourseDetailOut
    progress: list[LectureProgressOut]
    is_completed: bool
    completion_percentage: int


class ProgressUpdateOut(ApiModel):
    progress: list[LectureProgressOut]
    is_completed: bool


def _entries(entries: tuple[LectureProgress, ...]) -> list[LectureProgressOut]:
    return [
        LectureProgressOut(lecture_id=e.lecture_id, is_completed=e.is_completed)
        for e in entries
    ]


def _update_out(progress: CourseProgress) -> ProgressUpdateOut:
    return ProgressUpdateOut(
        progress=_entries(progress.lecture_progress),
        is_completed=progress.is_completed,
    )


@router.get("/{course_id}", response_model=Envelope[ProgressOut])
async def get_course_progress(
    course_id: UUID, principal: CurrentUser, service: Service
) -> Envelope[ProgressOut]:
    view = await service.get_progress(principal.user_id, course_id)
    return Envelope(
        data=ProgressOut(
            course_details=CourseDetailOut.of(view.course),
            progress=_entries(view.progress),
            is_completed=view.is_completed,
            completion_percentage=view.completion_percentage,
        )
    )


@router.patch(
    "/{course_id}/lectures/{lecture_id}",
    response_model=Envelope[ProgressUpdateOut],
)
async def mark_lecture_complete(
    course_id: UUID, lecture_id: UUID, principal: CurrentUser, service: Service
) -> Envelope[ProgressUpdateOut]:
    progress = await service.mark_lecture_complete(
        principal.user_id, course_id, lecture_id
    )
    return Envelope(
        message="Lecture progress updated successfully", data=_update_out(progress)
    )


@router.patch("/{course_id}/complete", response_model=Envelope[ProgressUpdateOut])
async def mark_course_completed(
    course_id: UUID, principal: CurrentUser, service: Service
) -> Envelope[ProgressUpdateOut]:
    progress = await service.mark_course_completed(principal.user_id, course_id)
    return Envelope(message="Course marked as completed", data=_update_out(progress))


@router.patch("/{course_id}/reset", response_model=Envelope[ProgressUpdateOut])
async def reset_course_progress(
    course_id: UUID, principal: CurrentUser, service: Service
) -> Envelope[ProgressUpdateOut]:
    progress = await service.reset_progress(principal.user_id, course_id)
    return Envelope(message="Course progress reset successfully", data=_update_out(progress))
