"""Course Catalog — course CRUD, paged listings, search, and roster lookups.

Invariants:
    - The catalog never changes a roster: updates keep the stored enrolled_students,
      only the enrollment coordinator moves students in and out
    - Every listing decodes through decode_documents: a corrupt record is logged
      and skipped, never fatal for the page
    - Paged listings are newest first; the cursor names the last raw document
      seen, so skipped records still advance the page

Design Decisions:
    - Search filters published courses in the store and matches text in Python:
      the store contract only offers equality and array membership
    - Popularity is ranked on the decoded page set, not in the store
"""

import logging
import uuid
from collections.abc import Callable
from dataclasses import asdict, replace
from datetime import datetime
from typing import TypeVar

from campus.core.course import (
    Course,
    course_from_document,
    course_to_document,
    validate_course,
)
from campus.core.documents import StoredDocument
from campus.core.domain_types import Collection, CourseStatus
from campus.core.errors import (
    DocumentDecodeError,
    ErrorContext,
    ResourceNotFoundError,
    WriteConflictError,
)
from campus.core.pagination import Page, PageCursor, clamp_limit
from campus.core.repository_protocols import DocumentStore, Snapshot
from campus.core.user import User, user_from_document
from campus.core.validation import utc_now
from campus.services.enrollment_coordinator import course_key, user_key

logger = logging.getLogger(__name__)

T = TypeVar("T")

SEARCH_LIMIT = 50


def decode_documents(
    documents: list[StoredDocument],
    decoder: Callable[[str, dict, datetime], T],
    now: datetime,
) -> tuple[list[T], int]:
    """Decode each document, logging and skipping the ones that fail."""
    decoded: list[T] = []
    skipped = 0
    for document in documents:
        try:
            decoded.append(decoder(document.key.id, document.data, now))
        except DocumentDecodeError as e:
            skipped += 1
            logger.warning(
                f"Skipping corrupt document {document.key}: {'; '.join(e.reasons)}",
                extra={
                    "collection": document.key.collection,
                    "document_key": str(document.key),
                    "error_code": e.code,
                },
            )
    return decoded, skipped


class CourseCatalog:
    """Query/listing facade over the course collection."""

    def __init__(
        self,
        store: DocumentStore,
        default_page_size: int = 10,
        max_page_size: int = 100,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.default_page_size = default_page_size
        self.max_page_size = max_page_size
        self.clock = clock

    # ─── Writes ──────────────────────────────────────────────────

    async def create_course(self, course: Course) -> Course:
        """Store a new course. Its roster must start empty."""
        if course.enrolled_students:
            course = replace(course, enrolled_students=())
        key = course_key(course.id)

        def insert(snapshot: Snapshot):
            if snapshot[key] is not None:
                raise WriteConflictError(f"Course '{course.id}' already exists")
            return course, {key: course_to_document(course)}

        created = await self.store.transaction([key], insert)
        logger.info(f"Course {course.id} created", extra={"course_id": course.id})
        return created

    @staticmethod
    def new_course_id() -> str:
        return uuid.uuid4().hex

    async def get_course(self, course_id: str) -> Course:
        data = await self.store.get(course_key(course_id))
        if data is None:
            raise ResourceNotFoundError(
                "Course", course_id, ErrorContext(course_id=course_id),
            )
        return course_from_document(course_id, data, self.clock())

    async def update_course(self, course: Course) -> Course:
        """Replace course details, keeping the stored roster."""
        key = course_key(course.id)

        def merge(snapshot: Snapshot):
            now = self.clock()
            stored = self._decode_existing(snapshot, course.id, now)
            fields = asdict(course)
            fields.update(
                enrolled_students=stored.enrolled_students,
                created_at=stored.created_at,
                updated_at=max(now, stored.created_at),
            )
            merged = validate_course(**fields, now=now).unwrap("Course")
            return merged, {key: course_to_document(merged)}

        updated = await self.store.transaction([key], merge)
        logger.info(f"Course {course.id} updated", extra={"course_id": course.id})
        return updated

    async def update_course_status(self, course_id: str, status: CourseStatus) -> Course:
        key = course_key(course_id)

        def transition(snapshot: Snapshot):
            now = self.clock()
            stored = self._decode_existing(snapshot, course_id, now)
            changed = stored.update_status(status, now)
            return changed, {key: course_to_document(changed)}

        updated = await self.store.transaction([key], transition)
        logger.info(
            f"Course {course_id} status set to {status.value}",
            extra={"course_id": course_id},
        )
        return updated

    def _decode_existing(self, snapshot: Snapshot, course_id: str, now: datetime) -> Course:
        data = snapshot[course_key(course_id)]
        if data is None:
            raise ResourceNotFoundError(
                "Course", course_id, ErrorContext(course_id=course_id),
            )
        return course_from_document(course_id, data, now)

    # ─── Listings ────────────────────────────────────────────────

    async def list_courses(
        self,
        *,
        status: CourseStatus | None = None,
        instructor_id: str | None = None,
        enrolled_student_id: str | None = None,
        limit: int | None = None,
        cursor: str | None = None,
    ) -> Page[Course]:
        limit = clamp_limit(limit, self.default_page_size, self.max_page_size)
        equals: dict[str, object] = {}
        if status is not None:
            equals["status"] = status.value
        if instructor_id is not None:
            equals["instructorId"] = instructor_id
        documents = await self.store.query(
            Collection.COURSES.value,
            equals=equals,
            array_contains=(
                ("enrolledStudents", enrolled_student_id)
                if enrolled_student_id is not None else None
            ),
            limit=limit,
            start_after=PageCursor.decode(cursor) if cursor else None,
        )
        courses, skipped = decode_documents(documents, course_from_document, self.clock())
        next_cursor = None
        if len(documents) == limit:
            last = documents[-1]
            next_cursor = PageCursor(last.sort_key, last.key.id).encode()
        return Page(items=tuple(courses), next_cursor=next_cursor, skipped=skipped)

    async def _published(self, **equals: object) -> list[Course]:
        documents = await self.store.query(
            Collection.COURSES.value,
            equals={"status": CourseStatus.PUBLISHED.value, **equals},
        )
        courses, _ = decode_documents(documents, course_from_document, self.clock())
        return courses

    async def search_courses(self, query: str, limit: int = SEARCH_LIMIT) -> list[Course]:
        """Published courses whose title, description, tags, or category match."""
        if not query.strip():
            return []
        matches = [c for c in await self._published() if c.matches_search(query)]
        return matches[:limit]

    async def get_courses_by_category(self, category: str, limit: int | None = None) -> list[Course]:
        courses = await self._published(category=category)
        return courses[:limit] if limit is not None else courses

    async def get_courses_by_status(self, status: CourseStatus) -> list[Course]:
        documents = await self.store.query(
            Collection.COURSES.value, equals={"status": status.value},
        )
        courses, _ = decode_documents(documents, course_from_document, self.clock())
        return courses

    async def get_popular_courses(self, limit: int = 10) -> list[Course]:
        """Published courses ranked by how full they are."""
        courses = await self._published()
        courses.sort(key=lambda c: c.enrollment_percentage, reverse=True)
        return courses[:limit]

    async def get_recent_courses(self, limit: int = 10) -> list[Course]:
        documents = await self.store.query(
            Collection.COURSES.value,
            equals={"status": CourseStatus.PUBLISHED.value},
            limit=limit,
        )
        courses, _ = decode_documents(documents, course_from_document, self.clock())
        return courses

    async def get_course_categories(self) -> list[str]:
        """Sorted distinct categories of published courses."""
        return sorted({c.category for c in await self._published() if c.category})

    async def get_enrolled_students(self, course_id: str) -> list[User]:
        """Decoded profiles of the roster, in roster order; corrupt ones skipped."""
        course = await self.get_course(course_id)
        documents = []
        for student_id in course.enrolled_students:
            key = user_key(student_id)
            data = await self.store.get(key)
            if data is None:
                logger.warning(
                    f"Roster of {course_id} names missing user {student_id}",
                    extra={"course_id": course_id, "student_id": student_id},
                )
                continue
            documents.append(StoredDocument(key, data))
        users, _ = decode_documents(documents, user_from_document, self.clock())
        return users
