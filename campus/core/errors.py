"""Error Hierarchy — typed, categorized exceptions for all campus failure modes.

Invariants:
    - Every error has a code (str), category (ErrorCategory), severity (ErrorSeverity)
    - Domain-rule errors (AlreadyEnrolled, CourseFull, CourseNotAvailable) are expected
      and user-facing; infrastructure errors are critical
    - to_response() produces the REST error envelope
    - No internal details leaked in user-facing messages

Design Decisions:
    - Single hierarchy with CampusError base: one FastAPI handler catches all
    - ErrorContext as dataclass: observability fields travel with the error,
      independent of the logging setup
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any
from datetime import datetime, timezone


class ErrorSeverity(str, Enum):
    """Error severity for observability and client handling."""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class ErrorCategory(str, Enum):
    """High-level error categories for routing and handling."""
    VALIDATION = "validation"
    BUSINESS_RULE = "business_rule"
    RESOURCE_NOT_FOUND = "resource_not_found"
    DATABASE = "database"
    INTERNAL = "internal"
    CONFLICT = "conflict"


@dataclass
class ErrorContext:
    """Rich context for error observability and debugging."""
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    course_id: str | None = None
    student_id: str | None = None
    attempt: int | None = None
    user_message: str | None = None
    debug_info: dict[str, Any] | None = None
    retry_after_ms: int | None = None


class CampusError(Exception):
    """Base exception for all campus errors."""

    def __init__(
        self,
        message: str,
        code: str,
        category: ErrorCategory,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        context: ErrorContext | None = None,
        http_status: int = 500,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.category = category
        self.severity = severity
        self.context = context or ErrorContext()
        self.http_status = http_status

    def to_response(self) -> dict:
        """Convert to standardized REST error response."""
        return {
            "error": {
                "code": self.code,
                "message": self.context.user_message or self.message,
                "category": self.category.value,
                "severity": self.severity.value,
                "timestamp": self.context.timestamp.isoformat(),
                "context": {
                    "course_id": self.context.course_id,
                    "student_id": self.context.student_id,
                    "retry_after_ms": self.context.retry_after_ms,
                },
            }
        }


# ─── Validation Errors (400-level) ──────────────────────────────

class EntityValidationError(CampusError):
    """Entity construction rejected; carries every violated rule."""
    def __init__(
        self, entity: str, violations: list[str] | tuple[str, ...],
        context: ErrorContext | None = None,
    ):
        super().__init__(
            f"{entity} validation failed: {', '.join(violations)}",
            "VALIDATION_ERROR", ErrorCategory.VALIDATION,
            ErrorSeverity.ERROR, context, 400,
        )
        self.entity = entity
        self.violations = tuple(violations)

    def to_response(self) -> dict:
        response = super().to_response()
        response["error"]["violations"] = list(self.violations)
        return response


class ResourceNotFoundError(CampusError):
    """Requested resource does not exist."""
    def __init__(
        self, resource_type: str, resource_id: str, context: ErrorContext | None = None,
    ):
        super().__init__(
            f"{resource_type} '{resource_id}' not found",
            "RESOURCE_NOT_FOUND", ErrorCategory.RESOURCE_NOT_FOUND,
            ErrorSeverity.ERROR, context, 404,
        )
        self.resource_type = resource_type
        self.resource_id = resource_id


# ─── Enrollment Rule Errors (409) ───────────────────────────────

class AlreadyEnrolledError(CampusError):
    """Student is already on the course roster."""
    def __init__(self, context: ErrorContext | None = None):
        super().__init__(
            "Student is already enrolled in this course",
            "ALREADY_ENROLLED", ErrorCategory.BUSINESS_RULE,
            ErrorSeverity.INFO, context, 409,
        )


class CourseFullError(CampusError):
    """Roster has reached max_enrollment."""
    def __init__(self, max_enrollment: int, context: ErrorContext | None = None):
        super().__init__(
            f"Course is full ({max_enrollment}/{max_enrollment})",
            "COURSE_FULL", ErrorCategory.BUSINESS_RULE,
            ErrorSeverity.INFO, context, 409,
        )
        self.max_enrollment = max_enrollment


class CourseNotAvailableError(CampusError):
    """Course status does not accept enrollments."""
    def __init__(self, status: str, context: ErrorContext | None = None):
        super().__init__(
            f"Course is not available for enrollment (status: {status})",
            "COURSE_NOT_AVAILABLE", ErrorCategory.BUSINESS_RULE,
            ErrorSeverity.INFO, context, 409,
        )
        self.status = status


# ─── Concurrency Errors ─────────────────────────────────────────

class WriteConflictError(CampusError):
    """A transaction's read set was modified before it committed."""
    def __init__(self, message: str, context: ErrorContext | None = None):
        super().__init__(
            message, "WRITE_CONFLICT", ErrorCategory.CONFLICT,
            ErrorSeverity.WARNING, context, 409,
        )


class EnrollmentContentionError(CampusError):
    """Enrollment transaction kept conflicting until retries ran out."""
    def __init__(self, attempts: int, context: ErrorContext | None = None):
        ctx = context or ErrorContext()
        ctx.attempt = attempts
        ctx.user_message = ctx.user_message or "Enrollment is busy, please try again."
        super().__init__(
            f"Enrollment transaction aborted after {attempts} conflicting attempts",
            "ENROLLMENT_CONTENTION", ErrorCategory.CONFLICT,
            ErrorSeverity.WARNING, ctx, 503,
        )
        self.attempts = attempts


# ─── Infrastructure Errors (500-level) ──────────────────────────

class CascadeDeleteError(CampusError):
    """Course delete cascade stopped part-way; the whole call may be retried."""
    def __init__(
        self, course_id: str, cleaned: int, pending: int,
        context: ErrorContext | None = None,
    ):
        ctx = context or ErrorContext(course_id=course_id)
        super().__init__(
            f"Cascade delete of course '{course_id}' incomplete "
            f"({cleaned} cleaned, {pending} pending)",
            "CASCADE_DELETE_FAILED", ErrorCategory.DATABASE,
            ErrorSeverity.ERROR, ctx, 503,
        )
        self.course_id = course_id
        self.cleaned = cleaned
        self.pending = pending


class DocumentDecodeError(CampusError):
    """Stored document could not be turned into a valid entity."""
    def __init__(
        self, collection: str, document_id: str, reasons: list[str] | tuple[str, ...],
        context: ErrorContext | None = None,
    ):
        super().__init__(
            f"Invalid {collection} document '{document_id}': {'; '.join(reasons)}",
            "DOCUMENT_DECODE_ERROR", ErrorCategory.DATABASE,
            ErrorSeverity.ERROR, context, 500,
        )
        self.collection = collection
        self.document_id = document_id
        self.reasons = tuple(reasons)


class DatabaseError(CampusError):
    """Database operation failed."""
    def __init__(self, message: str, operation: str, context: ErrorContext | None = None):
        super().__init__(
            f"Database {operation} failed: {message}",
            "DATABASE_ERROR", ErrorCategory.DATABASE,
            ErrorSeverity.CRITICAL, context, 503,
        )
        self.operation = operation


class InvariantViolationError(CampusError):
    """A value that validation guarantees turned out not to hold."""
    def __init__(self, message: str, context: ErrorContext | None = None):
        super().__init__(
            message, "INVARIANT_VIOLATION", ErrorCategory.INTERNAL,
            ErrorSeverity.CRITICAL, context, 500,
        )
