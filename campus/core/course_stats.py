"""Course Stats — pure computation of roster statistics from a Course.

Invariants:
    - All inputs come from Course fields (no IO, no store)
    - enrollment_percentage is an integer 0..100, rounded half-up
    - max_enrollment <= 0 raises InvariantViolationError instead of dividing

Design Decisions:
    - Pure function, not a Course property: statistics are presentation, the
      entity stays the enforcement type
    - Integer arithmetic for rounding: no float half-to-even surprises at .5
"""

from dataclasses import asdict, dataclass

from campus.core.course import Course
from campus.core.errors import ErrorContext, InvariantViolationError


@dataclass(frozen=True)
class CourseStatistics:
    enrolled_count: int
    max_enrollment: int
    available_spots: int
    enrollment_percentage: int

    def to_dict(self) -> dict:
        return asdict(self)


def round_percentage(enrolled: int, maximum: int) -> int:
    """Half-up integer percentage of enrolled / maximum."""
    return (enrolled * 200 + maximum) // (2 * maximum)


def compute_course_statistics(course: Course) -> CourseStatistics:
    """Compute roster statistics. Pure, no IO."""
    if course.max_enrollment <= 0:
        raise InvariantViolationError(
            f"Course '{course.id}' has non-positive max_enrollment "
            f"{course.max_enrollment}",
            ErrorContext(course_id=course.id),
        )
    enrolled = course.enrolled_count
    return CourseStatistics(
        enrolled_count=enrolled,
        max_enrollment=course.max_enrollment,
        available_spots=max(course.max_enrollment - enrolled, 0),
        enrollment_percentage=round_percentage(enrolled, course.max_enrollment),
    )
