"""Document Codec Helpers — typed field extraction from raw store documents.

Invariants:
    - Readers never coerce silently: a wrong type is a recorded problem, not a default
    - Absent optional fields decode to None / empty tuple; absent required fields are problems
    - Datetimes are written as ISO-8601 UTC strings and read back aware

Design Decisions:
    - FieldReader accumulates problems like the validators do, so one decode reports
      every malformed field before the entity validator runs
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, NamedTuple

from campus.core.domain_types import Collection
from campus.core.errors import DocumentDecodeError
from campus.core.validation import as_utc


class DocumentKey(NamedTuple):
    """Address of one document: (collection, id)."""
    collection: str
    id: str

    @classmethod
    def of(cls, collection: Collection, document_id: str) -> "DocumentKey":
        return cls(collection.value, document_id)

    def __str__(self) -> str:
        return f"{self.collection}/{self.id}"


@dataclass(frozen=True)
class StoredDocument:
    """A document as returned by a store query, with its paging sort key."""
    key: DocumentKey
    data: dict
    sort_key: str = ""


def format_datetime(value: datetime | None) -> str | None:
    return as_utc(value).isoformat() if value is not None else None


def sort_key_for(data: dict) -> str:
    """Paging sort key: creation time for courses/users/chats, timestamp otherwise."""
    value = data.get("createdAt") or data.get("timestamp") or ""
    return value if isinstance(value, str) else ""


class FieldReader:
    """Reads typed fields out of one raw document, collecting problems."""

    def __init__(self, collection: str, document_id: str, data: dict):
        self.collection = collection
        self.document_id = document_id
        self.data = data
        self.problems: list[str] = []

    def string(self, name: str, *, default: str | None = None) -> str:
        value = self.data.get(name, default)
        if not isinstance(value, str):
            self.problems.append(f"{name} must be a string")
            return ""
        return value

    def optional_string(self, name: str) -> str | None:
        value = self.data.get(name)
        if value is None or isinstance(value, str):
            return value
        self.problems.append(f"{name} must be a string")
        return None

    def integer(self, name: str, *, default: int | None = None) -> int:
        value = self.data.get(name, default)
        if isinstance(value, bool) or not isinstance(value, int):
            self.problems.append(f"{name} must be an integer")
            return 0
        return value

    def optional_integer(self, name: str) -> int | None:
        if self.data.get(name) is None:
            return None
        return self.integer(name)

    def boolean(self, name: str, *, default: bool) -> bool:
        value = self.data.get(name, default)
        if not isinstance(value, bool):
            self.problems.append(f"{name} must be a boolean")
            return default
        return value

    def timestamp(self, name: str) -> datetime:
        if self.data.get(name) is None:
            self.problems.append(f"{name} is required")
            return datetime.min
        value = self.optional_timestamp(name)
        return value if value is not None else datetime.min

    def optional_timestamp(self, name: str) -> datetime | None:
        value = self.data.get(name)
        if value is None:
            return None
        try:
            if isinstance(value, datetime):
                return as_utc(value)
            if isinstance(value, str):
                return as_utc(datetime.fromisoformat(value))
        except (ValueError, OverflowError):
            # parses but cannot be shifted to UTC, e.g. year 1 with a positive offset
            pass
        self.problems.append(f"{name} must be an ISO-8601 datetime")
        return None

    def string_list(self, name: str) -> tuple[str, ...]:
        value = self.data.get(name) or []
        if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
            self.problems.append(f"{name} must be a list of strings")
            return ()
        return tuple(value)

    def int_map(self, name: str) -> dict[str, int]:
        value = self.data.get(name) or {}
        if not isinstance(value, dict) or not all(
            isinstance(v, int) and not isinstance(v, bool) for v in value.values()
        ):
            self.problems.append(f"{name} must map ids to integers")
            return {}
        return dict(value)

    def timestamp_map(self, name: str) -> dict[str, datetime]:
        raw = self.data.get(name) or {}
        if not isinstance(raw, dict):
            self.problems.append(f"{name} must map ids to datetimes")
            return {}
        parsed: dict[str, datetime] = {}
        for key, value in raw.items():
            try:
                parsed[key] = as_utc(datetime.fromisoformat(value))
            except (TypeError, ValueError, OverflowError):
                self.problems.append(f"{name}.{key} must be an ISO-8601 datetime")
        return parsed

    def mapping(self, name: str) -> dict[str, Any]:
        value = self.data.get(name) or {}
        if not isinstance(value, dict):
            self.problems.append(f"{name} must be an object")
            return {}
        return dict(value)

    def enum(self, name: str, enum_type, *, default=None):
        raw = self.data.get(name, default.value if default is not None else None)
        try:
            return enum_type(raw)
        except ValueError:
            self.problems.append(f"{name} has unknown value {raw!r}")
            return default if default is not None else next(iter(enum_type))

    def fail_if_problems(self) -> None:
        if self.problems:
            raise DocumentDecodeError(self.collection, self.document_id, self.problems)

    def fail_with(self, violations: tuple[str, ...]) -> None:
        raise DocumentDecodeError(self.collection, self.document_id, violations)
