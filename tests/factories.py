"""Test data builders — camelCase documents and validated entities at a fixed clock."""

from datetime import datetime, timedelta, timezone

from campus.core.course import Course, validate_course
from campus.core.documents import DocumentKey
from campus.core.domain_types import Collection, CourseStatus, UserRole
from campus.core.user import User, validate_user

NOW = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)
EARLIER = NOW - timedelta(days=30)


def course_doc(**overrides) -> dict:
    doc = {
        "title": "Intro to Python",
        "description": "Learn the basics of Python programming.",
        "instructorId": "instructor-1",
        "imageUrl": None,
        "tags": ["python"],
        "createdAt": EARLIER.isoformat(),
        "updatedAt": None,
        "enrolledStudents": [],
        "maxEnrollment": 30,
        "status": CourseStatus.PUBLISHED.value,
        "category": "Programming",
        "duration": 12,
        "prerequisites": None,
    }
    doc.update(overrides)
    return doc


def user_doc(**overrides) -> dict:
    doc = {
        "email": "ada@example.edu",
        "name": "Ada Student",
        "role": UserRole.STUDENT.value,
        "grade": "10",
        "createdAt": EARLIER.isoformat(),
        "bookmarks": [],
        "likedPosts": [],
        "enrolledCourses": [],
    }
    doc.update(overrides)
    return doc


def make_course(**overrides) -> Course:
    fields = dict(
        id="course-1",
        title="Intro to Python",
        description="Learn the basics of Python programming.",
        instructor_id="instructor-1",
        created_at=EARLIER,
        max_enrollment=30,
        status=CourseStatus.PUBLISHED,
        category="Programming",
        tags=("python",),
    )
    fields.update(overrides)
    return validate_course(**fields, now=NOW).unwrap("Course")


def make_user(**overrides) -> User:
    fields = dict(
        id="student-1",
        email="ada@example.edu",
        name="Ada Student",
        role=UserRole.STUDENT,
        grade="10",
        created_at=EARLIER,
    )
    fields.update(overrides)
    return validate_user(**fields, now=NOW).unwrap("User")


def course_key(course_id: str) -> DocumentKey:
    return DocumentKey.of(Collection.COURSES, course_id)


def user_key(user_id: str) -> DocumentKey:
    return DocumentKey.of(Collection.USERS, user_id)


async def seed_course(store, course_id: str = "course-1", **overrides) -> None:
    await store.put(course_key(course_id), course_doc(**overrides))


async def seed_user(store, user_id: str = "student-1", **overrides) -> None:
    await store.put(user_key(user_id), user_doc(**overrides))


def fixed_clock() -> datetime:
    return NOW
