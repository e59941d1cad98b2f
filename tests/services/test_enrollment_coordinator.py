"""Enrollment Coordinator — two-sided membership under concurrency.

Invariants:
    - After every operation, roster membership and user enrollments agree
    - Rule failures leave both documents untouched
    - Concurrent enrollments never push a roster past max_enrollment
    - Cascade delete clears every enrolled user, in batches, then the course

Design Decisions:
    - Races are produced by asyncio.gather over the in-memory store, which yields
      between snapshot and commit exactly like a networked store would
"""

import asyncio
import logging

import pytest

from campus.core.course import course_from_document
from campus.core.errors import (
    AlreadyEnrolledError,
    CascadeDeleteError,
    CourseFullError,
    CourseNotAvailableError,
    DocumentDecodeError,
    EnrollmentContentionError,
    ResourceNotFoundError,
    WriteConflictError,
)
from campus.infrastructure.memory_store import InMemoryDocumentStore
from campus.services.enrollment_coordinator import EnrollmentCoordinator
from tests.factories import NOW, course_key, fixed_clock, seed_course, seed_user, user_key


async def _roster(store, course_id="course-1"):
    return (await store.get(course_key(course_id)))["enrolledStudents"]


async def _enrolled(store, user_id="student-1"):
    return (await store.get(user_key(user_id)))["enrolledCourses"]


# ─── Enroll / unenroll ───────────────────────────────────────────

async def test_enroll_updates_both_sides(store, coordinator):
    await seed_course(store)
    await seed_user(store)

    await coordinator.enroll_student("course-1", "student-1")

    assert await _roster(store) == ["student-1"]
    assert await _enrolled(store) == ["course-1"]
    course = await store.get(course_key("course-1"))
    assert course["updatedAt"] == NOW.isoformat()


async def test_missing_course_or_user_is_not_found(store, coordinator):
    await seed_user(store)
    with pytest.raises(ResourceNotFoundError) as exc:
        await coordinator.enroll_student("nope", "student-1")
    assert exc.value.resource_type == "Course"

    await seed_course(store)
    with pytest.raises(ResourceNotFoundError) as exc:
        await coordinator.enroll_student("course-1", "ghost")
    assert exc.value.resource_type == "User"
    assert await _roster(store) == []


async def test_second_enroll_is_already_enrolled(store, coordinator):
    await seed_course(store)
    await seed_user(store)
    await coordinator.enroll_student("course-1", "student-1")

    with pytest.raises(AlreadyEnrolledError):
        await coordinator.enroll_student("course-1", "student-1")
    assert await _roster(store) == ["student-1"]


async def test_full_course_rejects_and_writes_nothing(store, coordinator):
    await seed_course(store, maxEnrollment=1, enrolledStudents=["other"])
    await seed_user(store)

    with pytest.raises(CourseFullError):
        await coordinator.enroll_student("course-1", "student-1")
    assert await _roster(store) == ["other"]
    assert await _enrolled(store) == []


@pytest.mark.parametrize("status", ["draft", "archived", "suspended"])
async def test_unpublished_course_rejects(store, coordinator, status):
    await seed_course(store, status=status)
    await seed_user(store)

    with pytest.raises(CourseNotAvailableError):
        await coordinator.enroll_student("course-1", "student-1")


async def test_corrupt_user_profile_blocks_enrollment(store, coordinator):
    await seed_course(store)
    await seed_user(store, email="not-an-email")

    with pytest.raises(DocumentDecodeError) as exc:
        await coordinator.enroll_student("course-1", "student-1")
    assert exc.value.reasons == ("Invalid email format",)
    assert await _roster(store) == []


async def test_unenroll_removes_both_sides(store, coordinator):
    await seed_course(store)
    await seed_user(store)
    await coordinator.enroll_student("course-1", "student-1")

    await coordinator.unenroll_student("course-1", "student-1")

    assert await _roster(store) == []
    assert await _enrolled(store) == []


async def test_enroll_unenroll_enroll_ends_enrolled(store, coordinator):
    await seed_course(store)
    await seed_user(store)

    await coordinator.enroll_student("course-1", "student-1")
    await coordinator.unenroll_student("course-1", "student-1")
    await coordinator.enroll_student("course-1", "student-1")

    assert await _roster(store) == ["student-1"]
    assert await _enrolled(store) == ["course-1"]
    assert await coordinator.is_student_enrolled("course-1", "student-1")


async def test_unenroll_is_idempotent(store, coordinator):
    await seed_course(store)
    await seed_user(store)
    await coordinator.unenroll_student("course-1", "student-1")
    await coordinator.unenroll_student("course-1", "student-1")
    assert await _roster(store) == []


async def test_unenroll_missing_documents_is_not_found(store, coordinator):
    await seed_course(store)
    with pytest.raises(ResourceNotFoundError):
        await coordinator.unenroll_student("course-1", "ghost")


async def test_unenroll_repairs_one_sided_membership(store, coordinator, caplog):
    await seed_course(store, enrolledStudents=["student-1"])
    await seed_user(store)

    with caplog.at_level(logging.WARNING, logger="campus.services.enrollment_coordinator"):
        await coordinator.unenroll_student("course-1", "student-1")

    assert await _roster(store) == []
    assert "one-sided membership of student-1" in caplog.text


# ─── Concurrency ─────────────────────────────────────────────────

async def test_last_seat_goes_to_exactly_one_student(store, coordinator):
    await seed_course(store, maxEnrollment=1)
    students = [f"s{i}" for i in range(6)]
    for s in students:
        await seed_user(store, s)

    results = await asyncio.gather(
        *(coordinator.enroll_student("course-1", s) for s in students),
        return_exceptions=True,
    )

    winners = [s for s, r in zip(students, results) if r is None]
    assert len(winners) == 1
    assert all(isinstance(r, (CourseFullError, EnrollmentContentionError))
               for r in results if r is not None)
    assert await _roster(store) == winners
    for s in students:
        assert await _enrolled(store, s) == (["course-1"] if s in winners else [])


async def test_concurrent_mixed_operations_keep_sides_in_agreement(store, coordinator):
    await seed_course(store, maxEnrollment=3)
    students = [f"s{i}" for i in range(5)]
    for s in students:
        await seed_user(store, s)
    await coordinator.enroll_student("course-1", "s0")

    await asyncio.gather(
        *(coordinator.enroll_student("course-1", s) for s in students[1:]),
        coordinator.unenroll_student("course-1", "s0"),
        return_exceptions=True,
    )

    roster = await _roster(store)
    assert len(roster) <= 3
    assert len(set(roster)) == len(roster)
    for s in students:
        assert ("course-1" in await _enrolled(store, s)) == (s in roster)


class _AlwaysConflicting(InMemoryDocumentStore):
    async def transaction(self, keys, fn):
        raise WriteConflictError("busy")


async def test_contention_exhausts_retries(fast_retry, sleeps):
    store = _AlwaysConflicting()
    coordinator = EnrollmentCoordinator(store, retry_policy=fast_retry, clock=fixed_clock)

    with pytest.raises(EnrollmentContentionError) as exc:
        await coordinator.enroll_student("course-1", "student-1")

    assert exc.value.attempts == 5
    assert exc.value.http_status == 503
    assert exc.value.context.course_id == "course-1"
    assert exc.value.context.retry_after_ms == 10
    assert len(sleeps) == 4


# ─── Reads ───────────────────────────────────────────────────────

async def test_statistics(store, coordinator):
    await seed_course(store, maxEnrollment=8, enrolledStudents=["a"])
    stats = await coordinator.get_course_statistics("course-1")
    assert stats.enrolled_count == 1
    assert stats.available_spots == 7
    assert stats.enrollment_percentage == 13


async def test_statistics_of_missing_course(coordinator):
    with pytest.raises(ResourceNotFoundError):
        await coordinator.get_course_statistics("nope")


async def test_membership_queries(store, coordinator):
    await seed_course(store, enrolledStudents=["a"])
    await seed_course(store, "course-2", status="draft")
    assert await coordinator.is_student_enrolled("course-1", "a")
    assert not await coordinator.is_student_enrolled("course-1", "b")
    assert not await coordinator.is_student_enrolled("nope", "a")
    assert await coordinator.is_enrollment_available("course-1")
    assert not await coordinator.is_enrollment_available("course-2")
    with pytest.raises(ResourceNotFoundError):
        await coordinator.is_enrollment_available("nope")


# ─── Cascade delete ──────────────────────────────────────────────

async def test_delete_course_cleans_every_user_in_batches(store, coordinator):
    students = [f"s{i}" for i in range(5)]
    await seed_course(store, enrolledStudents=students)
    for s in students:
        await seed_user(store, s, enrolledCourses=["course-1", "course-9"])

    await coordinator.delete_course("course-1")

    assert await store.get(course_key("course-1")) is None
    for s in students:
        assert await _enrolled(store, s) == ["course-9"]


async def test_delete_course_skips_missing_and_corrupt_users(store, coordinator):
    await seed_course(store, enrolledStudents=["gone", "broken", "ok"])
    await seed_user(store, "broken", email=None, enrolledCourses=["course-1"])
    await seed_user(store, "ok", enrolledCourses=["course-1"])

    await coordinator.delete_course("course-1")

    assert await store.get(course_key("course-1")) is None
    assert await _enrolled(store, "broken") == []
    assert await _enrolled(store, "ok") == []
    assert await store.get(user_key("gone")) is None


async def test_delete_missing_course_is_noop(store, coordinator):
    await coordinator.delete_course("nope")


class _RacingStore(InMemoryDocumentStore):
    """Runs race() before each finalize transaction on the course document."""

    def __init__(self, race, times=1):
        super().__init__()
        self.race = race
        self.times = times

    async def transaction(self, keys, fn):
        keys = list(keys)
        if self.times and keys == [course_key("course-1")]:
            self.times -= 1
            await self.race(self)
        return await super().transaction(keys, fn)


async def test_enrollment_during_cascade_is_cleaned_too(fast_retry):
    async def late_enroll(store):
        await EnrollmentCoordinator(store, clock=fixed_clock).enroll_student("course-1", "late")

    store = _RacingStore(late_enroll)
    coordinator = EnrollmentCoordinator(
        store, retry_policy=fast_retry, cascade_batch_size=2, clock=fixed_clock,
    )
    await seed_course(store, enrolledStudents=["s1"])
    await seed_user(store, "s1", enrolledCourses=["course-1"])
    await seed_user(store, "late")

    await coordinator.delete_course("course-1")

    assert await store.get(course_key("course-1")) is None
    assert await _enrolled(store, "s1") == []
    assert await _enrolled(store, "late") == []


async def test_course_that_never_settles_raises_cascade_error(fast_retry):
    async def retitle(store):
        data = await store.get(course_key("course-1"))
        data["title"] = data["title"] + "!"
        await store.put(course_key("course-1"), data)

    store = _RacingStore(retitle, times=100)
    coordinator = EnrollmentCoordinator(store, retry_policy=fast_retry, clock=fixed_clock)
    await seed_course(store, enrolledStudents=["s1"])
    await seed_user(store, "s1", enrolledCourses=["course-1"])

    with pytest.raises(CascadeDeleteError) as exc:
        await coordinator.delete_course("course-1")

    assert exc.value.course_id == "course-1"
    assert exc.value.http_status == 503
    assert await store.get(course_key("course-1")) is not None
    assert await _enrolled(store, "s1") == []
    course = course_from_document("course-1", await store.get(course_key("course-1")), NOW)
    assert course.enrolled_students == ("s1",)
