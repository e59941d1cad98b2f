"""Structured Logging — JSON records carrying enrollment and store context.

Invariants:
    - Every record has timestamp, level, logger, message
    - Context extras (course_id, student_id, error_code, attempt, collection,
      document_key, operation) appear only when set on the record
    - setup_logging is idempotent: calling it again replaces its own handler

Design Decisions:
    - JSONFormatter on stdlib logging: services log with plain `extra=` dicts
      and stay unaware of the output format
    - The record's own creation time is used, not the formatting time
"""

import json
import logging
from datetime import datetime, timezone

EXTRA_FIELDS = (
    "course_id", "student_id", "error_code", "attempt",
    "collection", "document_key", "operation",
)

_HANDLER_NAME = "campus"


class JSONFormatter(logging.Formatter):
    """One JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        log = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        log.update({
            key: record.__dict__[key]
            for key in EXTRA_FIELDS
            if record.__dict__.get(key) is not None
        })
        if record.exc_info:
            log["exception"] = self.formatException(record.exc_info)
        return json.dumps(log, ensure_ascii=False, default=str)


def setup_logging(level: str = "INFO", fmt: str = "json") -> None:
    """Install the campus handler on the root logger ("json" or "text" format)."""
    for existing in [h for h in logging.root.handlers if h.get_name() == _HANDLER_NAME]:
        logging.root.removeHandler(existing)

    handler = logging.StreamHandler()
    handler.set_name(_HANDLER_NAME)
    if fmt == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            "%(asctime)s %(levelname)s %(name)s: %(message)s",
        ))
    logging.root.addHandler(handler)
    logging.root.setLevel(getattr(logging, level.upper(), logging.INFO))
