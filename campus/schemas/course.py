"""Course Schemas — Pydantic models for the course and enrollment API boundary.

Invariants:
    - Request models only shape input; domain rules live in validate_course,
      whose violations come back as a 400 with the full violation list
    - Response models are built from domain values, never from raw documents

Design Decisions:
    - Loose bounds here (ge/le) only where a wrong type would otherwise reach the
      domain layer; exact limits stay in one place, the validator
"""

from datetime import datetime

from pydantic import BaseModel, Field

from campus.core.course import DEFAULT_MAX_ENROLLMENT, Course
from campus.core.course_stats import CourseStatistics
from campus.core.domain_types import CourseStatus
from campus.core.pagination import Page


class CourseCreate(BaseModel):
    """Course creation payload."""
    title: str
    description: str
    instructor_id: str
    image_url: str | None = None
    tags: list[str] = Field(default_factory=list)
    max_enrollment: int = DEFAULT_MAX_ENROLLMENT
    status: CourseStatus = CourseStatus.DRAFT
    category: str | None = None
    duration: int = 0
    prerequisites: str | None = None


class CourseStatusUpdate(BaseModel):
    status: CourseStatus


class CourseResponse(BaseModel):
    """Course response — public-facing course data with derived counts."""
    id: str
    title: str
    description: str
    instructor_id: str
    image_url: str | None
    tags: list[str]
    created_at: datetime
    updated_at: datetime | None
    enrolled_students: list[str]
    enrolled_count: int
    max_enrollment: int
    available_spots: int
    status: CourseStatus
    category: str | None
    duration: int
    formatted_duration: str
    prerequisites: str | None

    @classmethod
    def from_course(cls, course: Course) -> "CourseResponse":
        return cls(
            id=course.id,
            title=course.title,
            description=course.description,
            instructor_id=course.instructor_id,
            image_url=course.image_url,
            tags=list(course.tags),
            created_at=course.created_at,
            updated_at=course.updated_at,
            enrolled_students=list(course.enrolled_students),
            enrolled_count=course.enrolled_count,
            max_enrollment=course.max_enrollment,
            available_spots=course.available_spots,
            status=course.status,
            category=course.category,
            duration=course.duration,
            formatted_duration=course.formatted_duration,
            prerequisites=course.prerequisites,
        )


class CoursePageResponse(BaseModel):
    items: list[CourseResponse]
    next_cursor: str | None = None
    skipped: int = 0

    @classmethod
    def from_page(cls, page: Page[Course]) -> "CoursePageResponse":
        return cls(
            items=[CourseResponse.from_course(c) for c in page.items],
            next_cursor=page.next_cursor,
            skipped=page.skipped,
        )


class CourseStatisticsResponse(BaseModel):
    enrolled_count: int
    max_enrollment: int
    available_spots: int
    enrollment_percentage: int

    @classmethod
    def from_stats(cls, stats: CourseStatistics) -> "CourseStatisticsResponse":
        return cls(**stats.to_dict())


class EnrollmentResponse(BaseModel):
    course_id: str
    student_id: str
    enrolled: bool
