"""Course — validated, immutable course value with roster and status transitions.

Invariants:
    - len(enrolled_students) <= max_enrollment, roster has no duplicates
    - max_enrollment in 1..1000, duration in 0..10000 hours
    - Every status is reachable from every other via explicit transitions;
      enrollment is gated on PUBLISHED by the coordinator, not here
    - Mutators return new values and are no-ops when the change would break an invariant

Design Decisions:
    - Roster as tuple: order of enrollment preserved, value stays hashable-by-content
    - updated_at never precedes created_at even when created_at sits inside clock skew
"""

from dataclasses import dataclass, replace
from datetime import datetime

from campus.core.documents import FieldReader, format_datetime
from campus.core.domain_types import Collection, CourseStatus
from campus.core.validation import (
    ValidationResult,
    as_utc,
    check_not_future,
    check_required_id,
    check_tags,
    check_text_length,
    check_unique,
    strip_optional,
    utc_now,
)

DEFAULT_MAX_ENROLLMENT = 50
MAX_ENROLLMENT_LIMIT = 1000
MAX_DURATION_HOURS = 10_000
MAX_TAGS = 15
NEARLY_FULL_PERCENTAGE = 80.0


@dataclass(frozen=True)
class Course:
    id: str
    title: str
    description: str
    instructor_id: str
    created_at: datetime
    image_url: str | None = None
    tags: tuple[str, ...] = ()
    updated_at: datetime | None = None
    enrolled_students: tuple[str, ...] = ()
    max_enrollment: int = DEFAULT_MAX_ENROLLMENT
    status: CourseStatus = CourseStatus.DRAFT
    category: str | None = None
    duration: int = 0
    prerequisites: str | None = None

    # ─── Derived ─────────────────────────────────────────────────

    @property
    def enrolled_count(self) -> int:
        return len(self.enrolled_students)

    @property
    def is_full(self) -> bool:
        return self.enrolled_count >= self.max_enrollment

    @property
    def has_available_spots(self) -> bool:
        return self.enrolled_count < self.max_enrollment

    @property
    def available_spots(self) -> int:
        return self.max_enrollment - self.enrolled_count

    @property
    def enrollment_percentage(self) -> float:
        return self.enrolled_count / self.max_enrollment * 100

    @property
    def is_nearly_full(self) -> bool:
        return self.enrollment_percentage >= NEARLY_FULL_PERCENTAGE

    @property
    def is_published(self) -> bool:
        return self.status is CourseStatus.PUBLISHED

    @property
    def can_accept_enrollments(self) -> bool:
        return self.is_published and self.has_available_spots

    def is_student_enrolled(self, student_id: str) -> bool:
        return student_id in self.enrolled_students

    def matches_search(self, query: str) -> bool:
        """Case-insensitive substring match over title, description, tags, category."""
        q = query.strip().lower()
        return (
            q in self.title.lower()
            or q in self.description.lower()
            or any(q in tag.lower() for tag in self.tags)
            or (self.category is not None and q in self.category.lower())
        )

    @property
    def formatted_duration(self) -> str:
        if self.duration == 0:
            return "Duration not specified"
        if self.duration == 1:
            return "1 hour"
        if self.duration < 24:
            return f"{self.duration} hours"
        days, hours = divmod(self.duration, 24)
        day_text = "1 day" if days == 1 else f"{days} days"
        if hours == 0:
            return day_text
        hour_text = "1 hour" if hours == 1 else f"{hours} hours"
        return f"{day_text}, {hour_text}"

    @property
    def description_preview(self) -> str:
        if len(self.description) <= 100:
            return self.description
        return self.description[:97] + "..."

    # ─── Mutators ────────────────────────────────────────────────

    def _touched(self, now: datetime | None) -> datetime:
        stamp = as_utc(now or utc_now())
        return max(stamp, self.created_at)

    def enroll_student(self, student_id: str, now: datetime | None = None) -> "Course":
        """Append to roster. No-op if present, full, or blank id."""
        if not student_id.strip() or student_id in self.enrolled_students or self.is_full:
            return self
        return replace(
            self,
            enrolled_students=self.enrolled_students + (student_id,),
            updated_at=self._touched(now),
        )

    def unenroll_student(self, student_id: str, now: datetime | None = None) -> "Course":
        if student_id not in self.enrolled_students:
            return self
        return replace(
            self,
            enrolled_students=tuple(s for s in self.enrolled_students if s != student_id),
            updated_at=self._touched(now),
        )

    def update_status(self, status: CourseStatus, now: datetime | None = None) -> "Course":
        if status is self.status:
            return self
        return replace(self, status=status, updated_at=self._touched(now))

    def publish(self, now: datetime | None = None) -> "Course":
        return self.update_status(CourseStatus.PUBLISHED, now)

    def archive(self, now: datetime | None = None) -> "Course":
        return self.update_status(CourseStatus.ARCHIVED, now)

    def suspend(self, now: datetime | None = None) -> "Course":
        return self.update_status(CourseStatus.SUSPENDED, now)

    def revert_to_draft(self, now: datetime | None = None) -> "Course":
        return self.update_status(CourseStatus.DRAFT, now)


def _coerce_status(errors: list[str], status: CourseStatus | str) -> CourseStatus:
    try:
        return CourseStatus(status)
    except ValueError:
        errors.append(f"Invalid course status: {status}")
        return CourseStatus.DRAFT


def validate_course(
    *,
    id: str,
    title: str,
    description: str,
    instructor_id: str,
    created_at: datetime,
    image_url: str | None = None,
    tags: tuple[str, ...] | list[str] = (),
    updated_at: datetime | None = None,
    enrolled_students: tuple[str, ...] | list[str] = (),
    max_enrollment: int = DEFAULT_MAX_ENROLLMENT,
    status: CourseStatus | str = CourseStatus.DRAFT,
    category: str | None = None,
    duration: int = 0,
    prerequisites: str | None = None,
    now: datetime | None = None,
) -> ValidationResult[Course]:
    """Validate every course rule and return the trimmed Course or all violations."""
    now = now or utc_now()
    errors: list[str] = []

    check_required_id(errors, id, "Course ID")
    check_text_length(errors, title, "Course title", min_length=3, max_length=200)
    check_text_length(
        errors, description, "Course description", min_length=10, max_length=5000,
    )
    check_required_id(errors, instructor_id, "Instructor ID")

    if image_url is not None and not image_url.strip():
        errors.append("Image URL cannot be empty if provided")
    if category is not None and not category.strip():
        errors.append("Category cannot be empty if provided")
    elif category is not None and len(category.strip()) > 100:
        errors.append("Category cannot exceed 100 characters")
    if prerequisites is not None and len(prerequisites.strip()) > 1000:
        errors.append("Prerequisites cannot exceed 1000 characters")

    check_tags(errors, tags, max_tags=MAX_TAGS)

    if max_enrollment <= 0:
        errors.append("Maximum enrollment must be greater than 0")
    elif max_enrollment > MAX_ENROLLMENT_LIMIT:
        errors.append(f"Maximum enrollment cannot exceed {MAX_ENROLLMENT_LIMIT}")
    if len(enrolled_students) > max_enrollment:
        errors.append("Enrolled students count cannot exceed maximum enrollment")

    if duration < 0:
        errors.append("Course duration cannot be negative")
    elif duration > MAX_DURATION_HOURS:
        errors.append(f"Course duration cannot exceed {MAX_DURATION_HOURS} hours")

    check_not_future(errors, created_at, "Course creation date", now)
    if updated_at is not None:
        if as_utc(updated_at) < as_utc(created_at):
            errors.append("Update date cannot be before creation date")
        check_not_future(errors, updated_at, "Update date", now)

    check_unique(
        errors, enrolled_students, "Enrolled students list cannot contain duplicates",
    )
    resolved_status = _coerce_status(errors, status)

    if errors:
        return ValidationResult.failure(errors)

    return ValidationResult.success(Course(
        id=id.strip(),
        title=title.strip(),
        description=description.strip(),
        instructor_id=instructor_id.strip(),
        created_at=as_utc(created_at),
        image_url=strip_optional(image_url),
        tags=tuple(tag.strip() for tag in tags),
        updated_at=as_utc(updated_at) if updated_at is not None else None,
        enrolled_students=tuple(enrolled_students),
        max_enrollment=max_enrollment,
        status=resolved_status,
        category=strip_optional(category),
        duration=duration,
        prerequisites=strip_optional(prerequisites),
    ))


# ─── Document codec ──────────────────────────────────────────────

def course_to_document(course: Course) -> dict:
    """Serialize to the camelCase wire layout (id lives in the key, not the body)."""
    return {
        "title": course.title,
        "description": course.description,
        "instructorId": course.instructor_id,
        "imageUrl": course.image_url,
        "tags": list(course.tags),
        "createdAt": format_datetime(course.created_at),
        "updatedAt": format_datetime(course.updated_at),
        "enrolledStudents": list(course.enrolled_students),
        "maxEnrollment": course.max_enrollment,
        "status": course.status.value,
        "category": course.category,
        "duration": course.duration,
        "prerequisites": course.prerequisites,
    }


def course_from_document(
    document_id: str, data: dict, now: datetime | None = None,
) -> Course:
    """Decode and validate. Raises DocumentDecodeError listing every problem."""
    reader = FieldReader(Collection.COURSES.value, document_id, data)
    fields = dict(
        id=document_id,
        title=reader.string("title"),
        description=reader.string("description"),
        instructor_id=reader.string("instructorId"),
        created_at=reader.timestamp("createdAt"),
        image_url=reader.optional_string("imageUrl"),
        tags=reader.string_list("tags"),
        updated_at=reader.optional_timestamp("updatedAt"),
        enrolled_students=reader.string_list("enrolledStudents"),
        max_enrollment=reader.integer("maxEnrollment", default=DEFAULT_MAX_ENROLLMENT),
        status=reader.enum("status", CourseStatus, default=CourseStatus.DRAFT),
        category=reader.optional_string("category"),
        duration=reader.integer("duration", default=0),
        prerequisites=reader.optional_string("prerequisites"),
    )
    reader.fail_if_problems()
    result = validate_course(**fields, now=now)
    if not result.ok:
        reader.fail_with(result.violations)
    return result.value
