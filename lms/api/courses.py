"""Course catalog endpoints: public browsing plus instructor authoring."""

from __future__ import annotations

from decimal import Decimal
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from pydantic import Field

from lms.api.dependencies import API_PREFIX, CurrentUser, Instructor, get_course_service
from lms.api.ratelimit import require_rate_limit
from lms.api.schemas import (
    ApiModel,
    CourseDetailOut,
    CourseOut,
    Envelope,
    LectureOut,
)
from lms.models.course import CourseSearch
from lms.services.course_service import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE, CourseService

router = APIRouter(
    prefix=f"{API_PREFIX}/course",
    tags=["courses"],
    dependencies=[Depends(require_rate_limit())],
)

Service = Annotated[CourseService, Depends(get_course_service)]


class CourseCreateIn(ApiModel):
    title: str = Field(min_length=1, max_length=200)
    subtitle: str = ""
    description: str = ""
    category: str = ""
    level: str = "beginner"
    price: Decimal = Field(default=Decimal("0"), ge=0)
    thumbnail: str | None = None


class CourseUpdateIn(ApiModel):
    title: str | None = Field(default=None, min_length=1, max_length=200)
    subtitle: str | None = None
    description: str | None = None
    category: str | None = None
    level: str | None = None
    price: Decimal | None = Field(default=None, ge=0)
    thumbnail: str | None = None


class PublishIn(ApiModel):
    is_published: bool


class LectureIn(ApiModel):
    title: str = Field(min_length=1, max_length=200)
    description: str = ""
    video_url: str | None = None
    duration: int = Field(default=0, ge=0)
    is_preview: bool = False


class Pagination(ApiModel):
    page: int
    limit: int
    total: int
    pages: int


class CoursePage(ApiModel):
    courses: list[CourseOut]
    pagination: Pagination


class CourseList(ApiModel):
    courses: list[CourseOut]
    total: int


class LectureListOut(ApiModel):
    lectures: list[LectureOut]
    is_enrolled: bool
    is_instructor: bool


# ---------------------------------------------------------------------------
# Public
# ---------------------------------------------------------------------------


@router.get("/published", response_model=Envelope[CoursePage])
async def list_published_courses(
    service: Service,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1)] = DEFAULT_PAGE_SIZE,
) -> Envelope[CoursePage]:
    result = await service.list_published(page=page, limit=min(limit, MAX_PAGE_SIZE))
    return Envelope(
        data=CoursePage(
            courses=[CourseOut.of(c) for c in result.items],
            pagination=Pagination(
                page=result.page,
                limit=result.limit,
                total=result.total,
                pages=result.pages,
            ),
        )
    )


@router.get("/search", response_model=Envelope[CourseList])
async def search_courses(
    service: Service,
    query: str = "",
    categories: Annotated[str, Query(description="comma-separated")] = "",
    level: str | None = None,
    min_price: Annotated[Decimal | None, Query(alias="minPrice", ge=0)] = None,
    max_price: Annotated[Decimal | None, Query(alias="maxPrice", ge=0)] = None,
    sort_by: Annotated[str, Query(alias="sortBy")] = "newest",
) -> Envelope[CourseList]:
    criteria = CourseSearch(
        query=query.strip(),
        categories=tuple(c.strip() for c in categories.split(",") if c.strip()),
        level=level or None,
        min_price=min_price,
        max_price=max_price,
        sort_by=sort_by,
    )
    courses = await service.search(criteria)
    return Envelope(
        data=CourseList(courses=[CourseOut.of(c) for c in courses], total=len(courses))
    )


# ---------------------------------------------------------------------------
# Authenticated
# ---------------------------------------------------------------------------


@router.post(
    "",
    response_model=Envelope[CourseOut],
    status_code=status.HTTP_201_CREATED,
)
async def create_course(
    body: CourseCreateIn, principal: Instructor, service: Service
) -> Envelope[CourseOut]:
    course = await service.create_course(
        principal.user_id,
        title=body.title,
        subtitle=body.subtitle,
        description=body.description,
        category=body.category,
        level=body.level,
        price=body.price,
        thumbnail=body.thumbnail,
    )
    return Envelope(message="Course created successfully", data=CourseOut.of(course))


@router.get("", response_model=Envelope[CourseList])
async def list_my_courses(
    principal: CurrentUser, service: Service
) -> Envelope[CourseList]:
    courses = await service.list_by_instructor(principal.user_id)
    return Envelope(
        data=CourseList(courses=[CourseOut.of(c) for c in courses], total=len(courses))
    )


@router.get("/enrolled", response_model=Envelope[CourseList])
async def list_enrolled_courses(
    principal: CurrentUser, service: Service
) -> Envelope[CourseList]:
    courses = await service.list_enrolled_courses(principal.user_id)
    return Envelope(
        data=CourseList(courses=[CourseOut.of(c) for c in courses], total=len(courses))
    )


@router.get("/c/{course_id}", response_model=Envelope[CourseDetailOut])
async def get_course(
    course_id: UUID, _principal: CurrentUser, service: Service
) -> Envelope[CourseDetailOut]:
    course = await service.get_course(course_id)
    return Envelope(data=CourseDetailOut.of(course))


@router.patch("/c/{course_id}", response_model=Envelope[CourseOut])
async def update_course(
    course_id: UUID, body: CourseUpdateIn, principal: Instructor, service: Service
) -> Envelope[CourseOut]:
    course = await service.update_course(
        principal, course_id, body.model_dump(exclude_none=True)
    )
    return Envelope(message="Course updated successfully", data=CourseOut.of(course))


@router.patch("/c/{course_id}/publish", response_model=Envelope[CourseOut])
async def publish_course(
    course_id: UUID, body: PublishIn, principal: Instructor, service: Service
) -> Envelope[CourseOut]:
    course = await service.publish_course(principal, course_id, body.is_published)
    message = "Course published" if course.is_published else "Course unpublished"
    return Envelope(message=message, data=CourseOut.of(course))


@router.post(
    "/c/{course_id}/lectures",
    response_model=Envelope[LectureOut],
    status_code=status.HTTP_201_CREATED,
)
async def add_lecture(
    course_id: UUID, body: LectureIn, principal: Instructor, service: Service
) -> Envelope[LectureOut]:
    lecture = await service.add_lecture(
        principal,
        course_id,
        title=body.title,
        description=body.description,
        video_url=body.video_url,
        duration=body.duration,
        is_preview=body.is_preview,
    )
    return Envelope(message="Lecture added successfully", data=LectureOut.of(lecture))


@router.get("/c/{course_id}/lectures", response_model=Envelope[LectureListOut])
async def get_course_lectures(
    course_id: UUID, principal: CurrentUser, service: Service
) -> Envelope[LectureListOut]:
    listing = await service.get_lectures(principal.user_id, course_id)
    return Envelope(
        data=LectureListOut(
            lectures=[LectureOut.of(lec) for lec in listing.lectures],
            is_enrolled=listing.is_enrolled,
            is_instructor=listing.is_instructor,
        )
    )
