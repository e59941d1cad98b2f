"""Enrollment Routes — enroll and unenroll a student in a course.

Invariants:
    - Both routes are single coordinator calls: one transaction, bounded retries
    - Rule rejections (409) and contention (503) arrive via the CampusError handler
"""

import logging

from fastapi import APIRouter, Depends, status

from campus.api.dependencies import get_coordinator
from campus.schemas.course import EnrollmentResponse
from campus.services.enrollment_coordinator import EnrollmentCoordinator

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/courses", tags=["enrollment"])


@router.post(
    "/{course_id}/enrollments/{student_id}",
    response_model=EnrollmentResponse,
    status_code=status.HTTP_201_CREATED,
)
async def enroll_student(
    course_id: str,
    student_id: str,
    coordinator: EnrollmentCoordinator = Depends(get_coordinator),
):
    await coordinator.enroll_student(course_id, student_id)
    return EnrollmentResponse(course_id=course_id, student_id=student_id, enrolled=True)


@router.delete(
    "/{course_id}/enrollments/{student_id}", response_model=EnrollmentResponse,
)
async def unenroll_student(
    course_id: str,
    student_id: str,
    coordinator: EnrollmentCoordinator = Depends(get_coordinator),
):
    await coordinator.unenroll_student(course_id, student_id)
    return EnrollmentResponse(course_id=course_id, student_id=student_id, enrolled=False)
