"""Validation Primitives — accumulating result type and shared field rules.

Invariants:
    - A ValidationResult holds EITHER a value OR a non-empty violation tuple, never both
    - Rule helpers append messages to a caller-owned list and never raise
    - "In the future" means strictly later than now + MAX_CLOCK_SKEW

Design Decisions:
    - Violations are plain strings in rule order: callers show them as a correction list
    - Naive datetimes are read as UTC so stored ISO strings without offsets compare sanely
"""

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Generic, TypeVar

from campus.core.errors import EntityValidationError

T = TypeVar("T")

MAX_CLOCK_SKEW = timedelta(minutes=5)


@dataclass(frozen=True)
class ValidationResult(Generic[T]):
    """Outcome of an entity validator."""
    value: T | None = None
    violations: tuple[str, ...] = ()

    @property
    def ok(self) -> bool:
        return not self.violations

    def unwrap(self, entity: str = "Entity") -> T:
        """Return the value or raise EntityValidationError with every violation."""
        if self.violations:
            raise EntityValidationError(entity, self.violations)
        return self.value  # type: ignore[return-value]

    @classmethod
    def success(cls, value: T) -> "ValidationResult[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, violations: Iterable[str]) -> "ValidationResult[T]":
        violations = tuple(violations)
        if not violations:
            raise ValueError("failure() requires at least one violation")
        return cls(violations=violations)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes; convert aware ones."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def is_in_future(value: datetime, now: datetime) -> bool:
    return as_utc(value) > as_utc(now) + MAX_CLOCK_SKEW


def strip_optional(value: str | None) -> str | None:
    return value.strip() if value is not None else None


def check_required_id(errors: list[str], value: str, label: str) -> None:
    if not value.strip():
        errors.append(f"{label} cannot be empty")


def check_text_length(
    errors: list[str], value: str, label: str,
    *, min_length: int = 1, max_length: int,
) -> None:
    """Empty → one message; otherwise length bounds on the trimmed text."""
    stripped = value.strip()
    if not stripped:
        errors.append(f"{label} cannot be empty")
    elif len(stripped) < min_length:
        errors.append(f"{label} must be at least {min_length} characters long")
    elif len(stripped) > max_length:
        errors.append(f"{label} cannot exceed {max_length} characters")


def check_tags(
    errors: list[str], tags: Iterable[str], *, max_tags: int, max_length: int = 50,
) -> None:
    """First broken tag reports once; tag count is checked independently."""
    tags = list(tags)
    for tag in tags:
        if not tag.strip():
            errors.append("Tags cannot be empty")
            break
        if len(tag.strip()) > max_length:
            errors.append(f"Tags cannot exceed {max_length} characters")
            break
    if len(tags) > max_tags:
        errors.append(f"Cannot have more than {max_tags} tags")


def check_not_future(
    errors: list[str], value: datetime | None, label: str, now: datetime,
) -> None:
    if value is not None and is_in_future(value, now):
        errors.append(f"{label} cannot be in the future")


def check_unique(errors: list[str], values: Iterable[str], message: str) -> None:
    values = list(values)
    if len(set(values)) != len(values):
        errors.append(message)
