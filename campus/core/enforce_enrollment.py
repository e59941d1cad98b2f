"""Enrollment Rule Enforcement — decides whether a roster change may proceed.

Invariants:
    - All functions are PURE: no IO, no async, no store access
    - Return the error to raise on violation, None on success
    - validate_enrollment chains all checks — first error wins, in this order:
      AlreadyEnrolled, CourseFull, CourseNotAvailable

Design Decisions:
    - Return errors (not raise): the coordinator raises inside the store transaction,
      which aborts it without writes; tests assert on the returned value directly
    - Existence (NotFound) is checked by the coordinator, which owns the snapshot
"""

from campus.core.course import Course
from campus.core.domain_types import CourseStatus
from campus.core.errors import (
    AlreadyEnrolledError,
    CampusError,
    CourseFullError,
    CourseNotAvailableError,
    ErrorContext,
)
from campus.core.user import User


def check_not_enrolled(course: Course, student_id: str) -> CampusError | None:
    """Rule 1: a student appears on a roster at most once."""
    if course.is_student_enrolled(student_id):
        return AlreadyEnrolledError(
            ErrorContext(course_id=course.id, student_id=student_id),
        )
    return None


def check_capacity(course: Course, student_id: str) -> CampusError | None:
    """Rule 2: roster never exceeds max_enrollment."""
    if course.is_full:
        return CourseFullError(
            course.max_enrollment,
            ErrorContext(course_id=course.id, student_id=student_id),
        )
    return None


def check_published(course: Course, student_id: str) -> CampusError | None:
    """Rule 3: only PUBLISHED courses accept enrollments."""
    if course.status is not CourseStatus.PUBLISHED:
        return CourseNotAvailableError(
            course.status.value,
            ErrorContext(course_id=course.id, student_id=student_id),
        )
    return None


def validate_enrollment(course: Course, student_id: str) -> CampusError | None:
    """Chain all enrollment checks. Returns first error or None."""
    return (
        check_not_enrolled(course, student_id)
        or check_capacity(course, student_id)
        or check_published(course, student_id)
    )


def memberships_agree(course: Course, user: User) -> bool:
    """Both sides of the membership say the same thing about this pair."""
    return course.is_student_enrolled(user.id) == user.is_enrolled_in_course(course.id)
