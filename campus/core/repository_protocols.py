"""Boundary Protocols — contracts between core and shell.

Invariants:
    - Core NEVER imports from shell — dependency arrows point inward only
    - All IO operations accessed through Protocol types
    - A transaction commits every write or none; a concurrent change to any
      read key raises WriteConflictError and the store never retries itself

Design Decisions:
    - Protocol over ABC: structural subtyping, in-memory and SQL stores share no base class
    - Transaction body is a plain function over a snapshot: the pure domain decision
      runs between the store's read and write, and a retry simply calls it again
"""

from collections.abc import Callable, Iterable, Mapping
from typing import Protocol, TypeVar

from campus.core.documents import DocumentKey, StoredDocument
from campus.core.pagination import PageCursor

T = TypeVar("T")

Snapshot = Mapping[DocumentKey, dict | None]
Writes = Mapping[DocumentKey, dict | None]
TransactionBody = Callable[[Snapshot], tuple[T, Writes]]


class DocumentStore(Protocol):
    """Contract for document persistence — implemented by shell."""
    async def get(self, key: DocumentKey) -> dict | None: ...
    async def put(self, key: DocumentKey, document: dict) -> None: ...
    async def delete(self, key: DocumentKey) -> None: ...
    async def transaction(
        self, keys: Iterable[DocumentKey], fn: TransactionBody[T],
    ) -> T: ...
    async def query(
        self,
        collection: str,
        *,
        equals: Mapping[str, object] | None = None,
        array_contains: tuple[str, str] | None = None,
        limit: int | None = None,
        start_after: PageCursor | None = None,
    ) -> list[StoredDocument]: ...
