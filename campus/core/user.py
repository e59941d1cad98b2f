"""User — validated, immutable user value with role-conditional fields.

Invariants:
    - email is RFC-shaped and stored lower-cased; name is 2..100 chars
    - field_of_expertise is required for instructors, grade is required for students
    - bookmarks, liked_posts, enrolled_courses hold no duplicates
    - enrolled_courses mirrors course rosters; only the enrollment coordinator changes it
"""

import re
from dataclasses import dataclass, replace
from datetime import datetime

from campus.core.documents import FieldReader, format_datetime
from campus.core.domain_types import Collection, UserRole
from campus.core.validation import (
    ValidationResult,
    as_utc,
    check_not_future,
    check_required_id,
    check_text_length,
    check_unique,
    strip_optional,
    utc_now,
)

_EMAIL_PATTERN = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")


@dataclass(frozen=True)
class User:
    id: str
    email: str
    name: str
    role: UserRole
    created_at: datetime
    profile_image: str | None = None
    department: str | None = None
    field_of_expertise: str | None = None
    grade: str | None = None
    bookmarks: tuple[str, ...] = ()
    liked_posts: tuple[str, ...] = ()
    enrolled_courses: tuple[str, ...] = ()

    def has_liked_post(self, post_id: str) -> bool:
        return post_id in self.liked_posts

    def has_bookmarked(self, post_id: str) -> bool:
        return post_id in self.bookmarks

    def is_enrolled_in_course(self, course_id: str) -> bool:
        return course_id in self.enrolled_courses

    def matches_search(self, query: str) -> bool:
        """Case-insensitive match over name, email, department and expertise."""
        q = query.strip().lower()
        fields = (self.name, self.email, self.department or "", self.field_of_expertise or "")
        return any(q in field.lower() for field in fields)

    def add_bookmark(self, post_id: str) -> "User":
        if post_id in self.bookmarks:
            return self
        return replace(self, bookmarks=self.bookmarks + (post_id,))

    def remove_bookmark(self, post_id: str) -> "User":
        if post_id not in self.bookmarks:
            return self
        return replace(self, bookmarks=_without(self.bookmarks, post_id))

    def add_liked_post(self, post_id: str) -> "User":
        if post_id in self.liked_posts:
            return self
        return replace(self, liked_posts=self.liked_posts + (post_id,))

    def remove_liked_post(self, post_id: str) -> "User":
        if post_id not in self.liked_posts:
            return self
        return replace(self, liked_posts=_without(self.liked_posts, post_id))

    def enroll_in_course(self, course_id: str) -> "User":
        if course_id in self.enrolled_courses:
            return self
        return replace(self, enrolled_courses=self.enrolled_courses + (course_id,))

    def unenroll_from_course(self, course_id: str) -> "User":
        if course_id not in self.enrolled_courses:
            return self
        return replace(self, enrolled_courses=_without(self.enrolled_courses, course_id))


def _without(values: tuple[str, ...], item: str) -> tuple[str, ...]:
    return tuple(v for v in values if v != item)


def is_valid_email(email: str) -> bool:
    return bool(_EMAIL_PATTERN.match(email.strip()))


def validate_user(
    *,
    id: str,
    email: str,
    name: str,
    role: UserRole | str,
    created_at: datetime,
    profile_image: str | None = None,
    department: str | None = None,
    field_of_expertise: str | None = None,
    grade: str | None = None,
    bookmarks: tuple[str, ...] | list[str] = (),
    liked_posts: tuple[str, ...] | list[str] = (),
    enrolled_courses: tuple[str, ...] | list[str] = (),
    now: datetime | None = None,
) -> ValidationResult[User]:
    now = now or utc_now()
    errors: list[str] = []

    check_required_id(errors, id, "User ID")
    if not email.strip():
        errors.append("Email cannot be empty")
    elif not is_valid_email(email):
        errors.append("Invalid email format")
    check_text_length(errors, name, "Name", min_length=2, max_length=100)

    try:
        resolved_role = UserRole(role)
    except ValueError:
        errors.append(f"Invalid user role: {role}")
        resolved_role = None

    if resolved_role is UserRole.INSTRUCTOR and not (field_of_expertise or "").strip():
        errors.append("Field of expertise is required for instructors")
    if resolved_role is UserRole.STUDENT and not (grade or "").strip():
        errors.append("Grade level is required for students")

    if department is not None and len(department.strip()) > 100:
        errors.append("Department name cannot exceed 100 characters")
    if field_of_expertise is not None and len(field_of_expertise.strip()) > 200:
        errors.append("Field of expertise cannot exceed 200 characters")
    if grade is not None and len(grade.strip()) > 50:
        errors.append("Grade cannot exceed 50 characters")

    check_not_future(errors, created_at, "Account creation date", now)
    check_unique(errors, bookmarks, "Bookmarks cannot contain duplicates")
    check_unique(errors, liked_posts, "Liked posts cannot contain duplicates")
    check_unique(errors, enrolled_courses, "Enrolled courses cannot contain duplicates")

    if errors:
        return ValidationResult.failure(errors)

    return ValidationResult.success(User(
        id=id.strip(),
        email=email.strip().lower(),
        name=name.strip(),
        role=resolved_role,
        created_at=as_utc(created_at),
        profile_image=strip_optional(profile_image),
        department=strip_optional(department),
        field_of_expertise=strip_optional(field_of_expertise),
        grade=strip_optional(grade),
        bookmarks=tuple(bookmarks),
        liked_posts=tuple(liked_posts),
        enrolled_courses=tuple(enrolled_courses),
    ))


def user_to_document(user: User) -> dict:
    return {
        "email": user.email,
        "name": user.name,
        "role": user.role.value,
        "profileImage": user.profile_image,
        "department": user.department,
        "fieldOfExpertise": user.field_of_expertise,
        "grade": user.grade,
        "createdAt": format_datetime(user.created_at),
        "bookmarks": list(user.bookmarks),
        "likedPosts": list(user.liked_posts),
        "enrolledCourses": list(user.enrolled_courses),
    }


def user_from_document(document_id: str, data: dict, now: datetime | None = None) -> User:
    # Older profiles stored the role under roleCode and bookmarks as Bookmarks
    legacy = {}
    if "role" not in data and "roleCode" in data:
        legacy["role"] = data["roleCode"]
    if "bookmarks" not in data and "Bookmarks" in data:
        legacy["bookmarks"] = data["Bookmarks"]
    reader = FieldReader(Collection.USERS.value, document_id, {**data, **legacy})
    fields = dict(
        id=document_id,
        email=reader.string("email"),
        name=reader.string("name"),
        role=reader.enum("role", UserRole),
        created_at=reader.timestamp("createdAt"),
        profile_image=reader.optional_string("profileImage"),
        department=reader.optional_string("department"),
        field_of_expertise=reader.optional_string("fieldOfExpertise"),
        grade=reader.optional_string("grade"),
        bookmarks=reader.string_list("bookmarks"),
        liked_posts=reader.string_list("likedPosts"),
        enrolled_courses=reader.string_list("enrolledCourses"),
    )
    reader.fail_if_problems()
    result = validate_user(**fields, now=now)
    if not result.ok:
        reader.fail_with(result.violations)
    return result.value
