"""Error Handlers — map every failure onto the campus error envelope.

Invariants:
    - CampusError → its own to_response() envelope and http_status
    - RequestValidationError → 400 VALIDATION_ERROR with field-level details
    - Exception (catch-all) → 500 INTERNAL_ERROR, never leaks internal details
    - Log level follows error severity: rule rejections are INFO, not ERROR
    - Contention and cascade failures carry Retry-After so clients back off

Design Decisions:
    - One envelope builder for the non-domain handlers: clients parse a single shape
    - Extracted from main.py so the app module only wires things together
"""

import logging
import math

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from campus.core.errors import (
    CampusError,
    CascadeDeleteError,
    EnrollmentContentionError,
    ErrorCategory,
    ErrorSeverity,
)

logger = logging.getLogger(__name__)

_SEVERITY_LEVELS = {
    ErrorSeverity.INFO: logging.INFO,
    ErrorSeverity.WARNING: logging.WARNING,
    ErrorSeverity.ERROR: logging.ERROR,
    ErrorSeverity.CRITICAL: logging.CRITICAL,
}

_RETRYABLE = (EnrollmentContentionError, CascadeDeleteError)
DEFAULT_RETRY_AFTER_SECONDS = 1


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(CampusError, campus_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)


def _envelope(
    code: str, message: str, category: ErrorCategory, severity: ErrorSeverity,
    **details,
) -> dict:
    return {
        "error": {
            "code": code,
            "message": message,
            "category": category.value,
            "severity": severity.value,
            **details,
        },
    }


def _retry_after(exc: CampusError) -> dict[str, str]:
    if not isinstance(exc, _RETRYABLE):
        return {}
    ms = exc.context.retry_after_ms
    seconds = math.ceil(ms / 1000) if ms else DEFAULT_RETRY_AFTER_SECONDS
    return {"Retry-After": str(seconds)}


async def campus_error_handler(request: Request, exc: CampusError) -> JSONResponse:
    logger.log(
        _SEVERITY_LEVELS[exc.severity],
        f"{exc.code} on {request.method} {request.url.path}: {exc.message}",
        extra={
            "error_code": exc.code,
            "course_id": exc.context.course_id,
            "student_id": exc.context.student_id,
            "attempt": exc.context.attempt,
        },
    )
    return JSONResponse(
        status_code=exc.http_status,
        content=exc.to_response(),
        headers=_retry_after(exc),
    )


async def request_validation_handler(
    request: Request, exc: RequestValidationError,
) -> JSONResponse:
    logger.info(f"Rejected request to {request.url.path}: {len(exc.errors())} field errors")
    details = [
        {
            "field": ".".join(str(loc) for loc in e["loc"]),
            "message": e["msg"],
            "type": e["type"],
        }
        for e in exc.errors()
    ]
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=_envelope(
            "VALIDATION_ERROR", "Invalid request data",
            ErrorCategory.VALIDATION, ErrorSeverity.ERROR, details=details,
        ),
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(f"Unhandled exception on {request.url.path}: {exc}", exc_info=True)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=_envelope(
            "INTERNAL_ERROR", "An unexpected error occurred",
            ErrorCategory.INTERNAL, ErrorSeverity.CRITICAL,
        ),
    )
