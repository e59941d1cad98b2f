"""Enrollment Coordinator — keeps course rosters and user enrollments in agreement.

Invariants:
    - student in course.enrolled_students <=> course in user.enrolled_courses,
      for every committed state of the store
    - Enroll/unenroll read and write the course and the user in ONE store transaction
    - Rule order inside a transaction: NotFound, AlreadyEnrolled, CourseFull,
      CourseNotAvailable; a rule failure aborts the transaction without writes
    - Only write conflicts are retried; exhaustion surfaces as EnrollmentContentionError

Design Decisions:
    - Impureim sandwich per attempt: store snapshot -> pure decision
      (enforce_enrollment + entity mutators) -> store commit
    - Cascade delete edits user documents as raw arrays, so one corrupt user
      profile never blocks removing a course
    - The course document is deleted only by a transaction that proves it is
      unchanged since its roster was cleaned; any change re-runs the cleanup
"""

import logging
from collections.abc import Callable
from datetime import datetime

from campus.core.course import Course, course_from_document, course_to_document
from campus.core.course_stats import CourseStatistics, compute_course_statistics
from campus.core.documents import DocumentKey
from campus.core.domain_types import Collection
from campus.core.enforce_enrollment import memberships_agree, validate_enrollment
from campus.core.errors import (
    CampusError,
    CascadeDeleteError,
    EnrollmentContentionError,
    ErrorContext,
    ErrorSeverity,
    ResourceNotFoundError,
)
from campus.core.repository_protocols import DocumentStore, Snapshot
from campus.core.user import User, user_from_document, user_to_document
from campus.core.validation import utc_now
from campus.infrastructure.retry_policy import RetryPolicy

logger = logging.getLogger(__name__)

_LOG_LEVELS = {
    ErrorSeverity.INFO: logging.INFO,
    ErrorSeverity.WARNING: logging.WARNING,
    ErrorSeverity.ERROR: logging.ERROR,
    ErrorSeverity.CRITICAL: logging.ERROR,
}


def course_key(course_id: str) -> DocumentKey:
    return DocumentKey.of(Collection.COURSES, course_id)


def user_key(user_id: str) -> DocumentKey:
    return DocumentKey.of(Collection.USERS, user_id)


def _raw_list(data: dict | None, name: str) -> list[str]:
    values = (data or {}).get(name)
    if not isinstance(values, list):
        return []
    return [v for v in values if isinstance(v, str)]


def _chunks(values: list[str], size: int) -> list[list[str]]:
    return [values[i:i + size] for i in range(0, len(values), size)]


class EnrollmentCoordinator:
    """Transactional enroll/unenroll, statistics, and cascading course delete."""

    def __init__(
        self,
        store: DocumentStore,
        retry_policy: RetryPolicy | None = None,
        cascade_batch_size: int = 500,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.retry_policy = retry_policy or RetryPolicy()
        self.cascade_batch_size = cascade_batch_size
        self.clock = clock

    # ─── Enrollment ──────────────────────────────────────────────

    async def enroll_student(self, course_id: str, student_id: str) -> None:
        """Add the student to the roster and the course to the student, atomically."""
        keys = (course_key(course_id), user_key(student_id))

        def decide(snapshot: Snapshot):
            now = self.clock()
            course, user = self._load_pair(snapshot, course_id, student_id, now)
            error = validate_enrollment(course, student_id)
            if error is not None:
                raise error
            return None, {
                keys[0]: course_to_document(course.enroll_student(student_id, now)),
                keys[1]: user_to_document(user.enroll_in_course(course_id)),
            }

        await self._run_pair_transaction("enroll", course_id, student_id, keys, decide)
        logger.info(
            f"Student {student_id} enrolled in course {course_id}",
            extra={"course_id": course_id, "student_id": student_id},
        )

    async def unenroll_student(self, course_id: str, student_id: str) -> None:
        """Remove the pair from both sides. Idempotent once both documents exist."""
        keys = (course_key(course_id), user_key(student_id))

        def decide(snapshot: Snapshot):
            now = self.clock()
            course, user = self._load_pair(snapshot, course_id, student_id, now)
            if not memberships_agree(course, user):
                logger.warning(
                    f"Repairing one-sided membership of {student_id} in {course_id}",
                    extra={"course_id": course_id, "student_id": student_id},
                )
            return None, {
                keys[0]: course_to_document(course.unenroll_student(student_id, now)),
                keys[1]: user_to_document(user.unenroll_from_course(course_id)),
            }

        await self._run_pair_transaction("unenroll", course_id, student_id, keys, decide)
        logger.info(
            f"Student {student_id} unenrolled from course {course_id}",
            extra={"course_id": course_id, "student_id": student_id},
        )

    async def _run_pair_transaction(
        self, operation: str, course_id: str, student_id: str,
        keys: tuple[DocumentKey, DocumentKey], decide,
    ) -> None:
        extra = {"course_id": course_id, "student_id": student_id}
        try:
            await self.retry_policy.run(
                lambda: self.store.transaction(keys, decide),
                on_exhausted=lambda attempts: EnrollmentContentionError(
                    attempts, ErrorContext(
                        course_id=course_id, student_id=student_id,
                        retry_after_ms=self.retry_policy.max_delay_ms,
                    ),
                ),
                log_extra=extra,
            )
        except CampusError as e:
            logger.log(
                _LOG_LEVELS[e.severity],
                f"{operation} of {student_id} in {course_id} failed: {e.message}",
                extra={**extra, "error_code": e.code},
            )
            raise

    def _load_pair(
        self, snapshot: Snapshot, course_id: str, student_id: str, now: datetime,
    ) -> tuple[Course, User]:
        course_data = snapshot[course_key(course_id)]
        if course_data is None:
            raise ResourceNotFoundError(
                "Course", course_id, ErrorContext(course_id=course_id, student_id=student_id),
            )
        user_data = snapshot[user_key(student_id)]
        if user_data is None:
            raise ResourceNotFoundError(
                "User", student_id, ErrorContext(course_id=course_id, student_id=student_id),
            )
        return (
            course_from_document(course_id, course_data, now),
            user_from_document(student_id, user_data, now),
        )

    # ─── Reads ───────────────────────────────────────────────────

    async def _get_course(self, course_id: str) -> Course | None:
        data = await self.store.get(course_key(course_id))
        if data is None:
            return None
        return course_from_document(course_id, data, self.clock())

    async def get_course_statistics(self, course_id: str) -> CourseStatistics:
        course = await self._get_course(course_id)
        if course is None:
            raise ResourceNotFoundError(
                "Course", course_id, ErrorContext(course_id=course_id),
            )
        return compute_course_statistics(course)

    async def is_student_enrolled(self, course_id: str, student_id: str) -> bool:
        course = await self._get_course(course_id)
        return course is not None and course.is_student_enrolled(student_id)

    async def is_enrollment_available(self, course_id: str) -> bool:
        course = await self._get_course(course_id)
        if course is None:
            raise ResourceNotFoundError(
                "Course", course_id, ErrorContext(course_id=course_id),
            )
        return course.can_accept_enrollments

    # ─── Cascade delete ──────────────────────────────────────────

    async def delete_course(self, course_id: str) -> None:
        """Remove the course from every enrolled user, then delete it.

        Missing course is a no-op. Safe to call again after CascadeDeleteError:
        removing a course id from a user is idempotent.
        """
        key = course_key(course_id)
        cleaned = 0
        roster: list[str] = []

        for round_number in range(1, self.retry_policy.max_attempts + 1):
            data = await self.store.get(key)
            if data is None:
                logger.info(
                    f"Course {course_id} already absent, nothing to delete",
                    extra={"course_id": course_id},
                )
                return

            roster = _raw_list(data, "enrolledStudents")
            cleaned = 0
            for chunk in _chunks(roster, self.cascade_batch_size):
                await self._clean_chunk(course_id, chunk, cleaned, len(roster))
                cleaned += len(chunk)

            if await self._delete_if_unchanged(course_id, data, cleaned, len(roster)):
                logger.info(
                    f"Course {course_id} deleted, {cleaned} enrollments removed",
                    extra={"course_id": course_id, "attempt": round_number},
                )
                return
            logger.warning(
                f"Course {course_id} changed during cascade, re-running cleanup",
                extra={"course_id": course_id, "attempt": round_number},
            )

        error = CascadeDeleteError(course_id, cleaned, len(roster) - cleaned)
        logger.error(error.message, extra={"course_id": course_id, "error_code": error.code})
        raise error

    async def _clean_chunk(
        self, course_id: str, chunk: list[str], cleaned: int, total: int,
    ) -> None:
        keys = [user_key(student_id) for student_id in chunk]

        def remove_course(snapshot: Snapshot):
            writes = {}
            for key in keys:
                data = snapshot[key]
                courses = _raw_list(data, "enrolledCourses")
                if data is None or course_id not in courses:
                    continue
                writes[key] = {
                    **data,
                    "enrolledCourses": [c for c in courses if c != course_id],
                }
            return len(writes), writes

        await self.retry_policy.run(
            lambda: self.store.transaction(keys, remove_course),
            on_exhausted=lambda attempts: CascadeDeleteError(
                course_id, cleaned, total - cleaned,
                ErrorContext(course_id=course_id, attempt=attempts),
            ),
            log_extra={"course_id": course_id},
        )

    async def _delete_if_unchanged(
        self, course_id: str, seen: dict, cleaned: int, total: int,
    ) -> bool:
        key = course_key(course_id)

        def finalize(snapshot: Snapshot):
            current = snapshot[key]
            if current is None:
                return True, {}
            if current != seen:
                return False, {}
            return True, {key: None}

        return await self.retry_policy.run(
            lambda: self.store.transaction([key], finalize),
            on_exhausted=lambda attempts: CascadeDeleteError(
                course_id, cleaned, total - cleaned,
                ErrorContext(course_id=course_id, attempt=attempts),
            ),
            log_extra={"course_id": course_id},
        )
