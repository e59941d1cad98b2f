"""Tests for compute_course_statistics — pure stats from a Course, no IO."""

import dataclasses

import pytest

from campus.core.course_stats import compute_course_statistics, round_percentage
from campus.core.errors import InvariantViolationError
from tests.factories import make_course


def test_empty_course_returns_zero_stats():
    stats = compute_course_statistics(make_course(max_enrollment=30))
    assert stats.to_dict() == {
        "enrolled_count": 0,
        "max_enrollment": 30,
        "available_spots": 30,
        "enrollment_percentage": 0,
    }


def test_full_course():
    course = make_course(max_enrollment=2, enrolled_students=("a", "b"))
    stats = compute_course_statistics(course)
    assert stats.available_spots == 0
    assert stats.enrollment_percentage == 100


@pytest.mark.parametrize("enrolled,maximum,expected", [
    (1, 3, 33),
    (2, 3, 67),
    (1, 8, 13),   # 12.5 rounds up
    (1, 200, 1),  # 0.5 rounds up
    (0, 7, 0),
])
def test_percentage_rounds_half_up(enrolled, maximum, expected):
    assert round_percentage(enrolled, maximum) == expected


def test_non_positive_capacity_is_an_invariant_violation():
    broken = dataclasses.replace(make_course(), max_enrollment=0)
    with pytest.raises(InvariantViolationError) as exc:
        compute_course_statistics(broken)
    assert exc.value.context.course_id == "course-1"
