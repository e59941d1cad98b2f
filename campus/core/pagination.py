"""Cursor Paging — opaque, stable page cursors over store order.

Invariants:
    - Store order is (sort_key DESC, key DESC): newest first, ties broken by id
    - A cursor names the last document returned, so inserts and deletes elsewhere
      never shift the next page
    - Cursors are url-safe strings; a malformed cursor is a validation error
"""

import base64
import binascii
import json
from dataclasses import dataclass, field
from typing import Generic, TypeVar

from campus.core.errors import EntityValidationError

T = TypeVar("T")


@dataclass(frozen=True, order=True)
class PageCursor:
    """Position after which the next page starts."""
    sort_key: str
    key: str

    def encode(self) -> str:
        raw = json.dumps([self.sort_key, self.key], separators=(",", ":"))
        return base64.urlsafe_b64encode(raw.encode()).decode().rstrip("=")

    @classmethod
    def decode(cls, token: str) -> "PageCursor":
        padded = token + "=" * (-len(token) % 4)
        try:
            sort_key, key = json.loads(base64.urlsafe_b64decode(padded.encode()))
        except (binascii.Error, ValueError, TypeError) as e:
            raise EntityValidationError("Cursor", ("Malformed page cursor",)) from e
        if not isinstance(sort_key, str) or not isinstance(key, str):
            raise EntityValidationError("Cursor", ("Malformed page cursor",))
        return cls(sort_key=sort_key, key=key)


@dataclass(frozen=True)
class Page(Generic[T]):
    items: tuple[T, ...] = ()
    next_cursor: str | None = None
    skipped: int = field(default=0)


def is_after(sort_key: str, key: str, cursor: PageCursor | None) -> bool:
    """True when (sort_key, key) comes strictly after the cursor in DESC order."""
    if cursor is None:
        return True
    return (sort_key, key) < (cursor.sort_key, cursor.key)


def clamp_limit(limit: int | None, default: int, maximum: int) -> int:
    if limit is None or limit <= 0:
        return default
    return min(limit, maximum)
