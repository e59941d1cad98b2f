"""Course Routes — create, read, list, search, status changes, and delete.

Invariants:
    - Static paths (/search, /categories) are registered before /{course_id}
    - Domain failures propagate as CampusError to the global handler
    - Delete goes through the enrollment coordinator so rosters are cleaned first
"""

import logging

from fastapi import APIRouter, Depends, Query, status

from campus.api.dependencies import get_catalog, get_coordinator
from campus.core.course import validate_course
from campus.core.domain_types import CourseStatus
from campus.core.validation import utc_now
from campus.schemas.course import (
    CourseCreate,
    CoursePageResponse,
    CourseResponse,
    CourseStatisticsResponse,
    CourseStatusUpdate,
)
from campus.services.course_catalog import CourseCatalog
from campus.services.enrollment_coordinator import EnrollmentCoordinator

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/courses", tags=["courses"])


@router.post("", response_model=CourseResponse, status_code=status.HTTP_201_CREATED)
async def create_course(
    body: CourseCreate, catalog: CourseCatalog = Depends(get_catalog),
):
    """Create a course; every violated rule is reported at once."""
    course = validate_course(
        id=catalog.new_course_id(),
        created_at=utc_now(),
        **body.model_dump(),
    ).unwrap("Course")
    return CourseResponse.from_course(await catalog.create_course(course))


@router.get("", response_model=CoursePageResponse)
async def list_courses(
    status_filter: CourseStatus | None = Query(None, alias="status"),
    instructor_id: str | None = None,
    enrolled_student_id: str | None = None,
    limit: int | None = Query(None, ge=1),
    cursor: str | None = None,
    catalog: CourseCatalog = Depends(get_catalog),
):
    page = await catalog.list_courses(
        status=status_filter,
        instructor_id=instructor_id,
        enrolled_student_id=enrolled_student_id,
        limit=limit,
        cursor=cursor,
    )
    return CoursePageResponse.from_page(page)


@router.get("/search", response_model=list[CourseResponse])
async def search_courses(
    q: str = Query(..., max_length=200),
    catalog: CourseCatalog = Depends(get_catalog),
):
    return [CourseResponse.from_course(c) for c in await catalog.search_courses(q)]


@router.get("/categories", response_model=list[str])
async def list_categories(catalog: CourseCatalog = Depends(get_catalog)):
    return await catalog.get_course_categories()


@router.get("/{course_id}", response_model=CourseResponse)
async def get_course(course_id: str, catalog: CourseCatalog = Depends(get_catalog)):
    return CourseResponse.from_course(await catalog.get_course(course_id))


@router.get("/{course_id}/statistics", response_model=CourseStatisticsResponse)
async def get_course_statistics(
    course_id: str, coordinator: EnrollmentCoordinator = Depends(get_coordinator),
):
    stats = await coordinator.get_course_statistics(course_id)
    return CourseStatisticsResponse.from_stats(stats)


@router.patch("/{course_id}/status", response_model=CourseResponse)
async def update_course_status(
    course_id: str,
    body: CourseStatusUpdate,
    catalog: CourseCatalog = Depends(get_catalog),
):
    course = await catalog.update_course_status(course_id, body.status)
    return CourseResponse.from_course(course)


@router.delete("/{course_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_course(
    course_id: str, coordinator: EnrollmentCoordinator = Depends(get_coordinator),
):
    """Delete a course after removing it from every enrolled student."""
    await coordinator.delete_course(course_id)
