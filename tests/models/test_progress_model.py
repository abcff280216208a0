"""Pure progress transforms: idempotence, completion, percentage."""

from __future__ import annotations

from uuid import uuid4

from lms.models.progress import (
    CourseProgress,
    LectureProgress,
    complete_all,
    completion_percentage,
    is_course_completed,
    mark_lecture_complete,
    reset_all,
)

L1, L2, L3 = uuid4(), uuid4(), uuid4()
COURSE_LECTURES = frozenset({L1, L2, L3})


def _fresh() -> CourseProgress:
    return CourseProgress.new(user_id="u1", course_id=uuid4())


def test_marking_same_lecture_twice_keeps_one_entry() -> None:
    progress = mark_lecture_complete(_fresh(), L1, COURSE_LECTURES)
    progress = mark_lecture_complete(progress, L1, COURSE_LECTURES)
    assert progress.lecture_progress == (LectureProgress(lecture_id=L1, is_completed=True),)


def test_marking_flips_existing_incomplete_entry() -> None:
    progress = CourseProgress(
        user_id="u1",
        course_id=uuid4(),
        lecture_progress=(LectureProgress(lecture_id=L2, is_completed=False),),
    )
    updated = mark_lecture_complete(progress, L2, COURSE_LECTURES)
    assert updated.lecture_progress == (LectureProgress(lecture_id=L2, is_completed=True),)


def test_all_lectures_in_any_order_completes_course() -> None:
    progress = _fresh()
    for lecture_id in (L3, L1, L2):
        progress = mark_lecture_complete(progress, lecture_id, COURSE_LECTURES)
    assert progress.is_completed is True


def test_two_of_three_is_not_completed_and_67_percent() -> None:
    progress = _fresh()
    for lecture_id in (L1, L3):
        progress = mark_lecture_complete(progress, lecture_id, COURSE_LECTURES)
    assert progress.is_completed is False
    assert completion_percentage(progress, COURSE_LECTURES) == 67


def test_one_of_eight_rounds_half_up() -> None:
    lectures = [uuid4() for _ in range(8)]
    progress = mark_lecture_complete(_fresh(), lectures[0], lectures)
    # 12.5 -> 13
    assert completion_percentage(progress, lectures) == 13


def test_completion_recomputed_against_current_lecture_set() -> None:
    progress = _fresh()
    for lecture_id in (L1, L2):
        progress = mark_lecture_complete(progress, lecture_id, {L1, L2})
    assert progress.is_completed is True
    # A lecture was added since; the next mutation sees the new yardstick
    progress = mark_lecture_complete(progress, L1, COURSE_LECTURES)
    assert progress.is_completed is False


def test_percentage_ignores_entries_for_removed_lectures() -> None:
    removed = uuid4()
    progress = _fresh()
    for lecture_id in (L1, removed):
        progress = mark_lecture_complete(progress, lecture_id, COURSE_LECTURES | {removed})
    assert completion_percentage(progress, COURSE_LECTURES) == 33


def test_percentage_zero_without_progress_or_lectures() -> None:
    assert completion_percentage(None, COURSE_LECTURES) == 0
    assert completion_percentage(_fresh(), ()) == 0


def test_empty_course_is_never_completed_by_recompute() -> None:
    assert is_course_completed(_fresh(), ()) is False


def test_complete_all_overrides_regardless_of_lectures() -> None:
    progress = mark_lecture_complete(_fresh(), L1, COURSE_LECTURES)
    completed = complete_all(progress)
    assert completed.is_completed is True
    assert all(lp.is_completed for lp in completed.lecture_progress)


def test_reset_clears_every_entry_and_flag() -> None:
    progress = _fresh()
    for lecture_id in COURSE_LECTURES:
        progress = mark_lecture_complete(progress, lecture_id, COURSE_LECTURES)
    reset = reset_all(progress)
    assert reset.is_completed is False
    assert len(reset.lecture_progress) == 3
    assert not any(lp.is_completed for lp in reset.lecture_progress)
