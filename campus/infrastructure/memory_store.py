"""In-Memory Document Store — versioned dicts with optimistic transactions.

Invariants:
    - Every key carries a monotonically increasing version, kept across deletes
    - A transaction commits only if no key it read changed since its snapshot
    - Callers never share document dicts with the store: reads and writes copy

Design Decisions:
    - asyncio.Lock guards snapshot and commit separately, and the body runs
      between them after yielding to the loop: concurrent coroutines interleave
      exactly where a networked store would, so conflicts are real in tests
"""

import asyncio
import copy
from collections.abc import Iterable, Mapping
from typing import TypeVar

from campus.core.documents import DocumentKey, StoredDocument, sort_key_for
from campus.core.errors import WriteConflictError
from campus.core.pagination import PageCursor, is_after
from campus.core.repository_protocols import TransactionBody


T = TypeVar("T")


class InMemoryDocumentStore:
    """Process-local DocumentStore for tests and local runs."""

    def __init__(self):
        self._documents: dict[DocumentKey, dict] = {}
        self._versions: dict[DocumentKey, int] = {}
        self._lock = asyncio.Lock()

    async def get(self, key: DocumentKey) -> dict | None:
        document = self._documents.get(key)
        return copy.deepcopy(document) if document is not None else None

    async def put(self, key: DocumentKey, document: dict) -> None:
        async with self._lock:
            self._write(key, document)

    async def delete(self, key: DocumentKey) -> None:
        async with self._lock:
            self._write(key, None)

    async def transaction(self, keys: Iterable[DocumentKey], fn: TransactionBody[T]) -> T:
        keys = tuple(dict.fromkeys(keys))
        async with self._lock:
            seen = {key: self._versions.get(key, 0) for key in keys}
            snapshot = {key: copy.deepcopy(self._documents.get(key)) for key in keys}

        await asyncio.sleep(0)
        result, writes = fn(snapshot)
        _check_write_set(writes, seen)

        async with self._lock:
            changed = [str(k) for k in keys if self._versions.get(k, 0) != seen[k]]
            if changed:
                raise WriteConflictError(
                    f"Concurrent modification of {', '.join(changed)}",
                )
            for key, document in writes.items():
                self._write(key, document)
        return result

    async def query(
        self,
        collection: str,
        *,
        equals: Mapping[str, object] | None = None,
        array_contains: tuple[str, str] | None = None,
        limit: int | None = None,
        start_after: PageCursor | None = None,
    ) -> list[StoredDocument]:
        matches = []
        for key, data in self._documents.items():
            if key.collection != collection:
                continue
            if any(data.get(name) != value for name, value in (equals or {}).items()):
                continue
            if array_contains is not None:
                name, value = array_contains
                values = data.get(name)
                if not isinstance(values, list) or value not in values:
                    continue
            sort_key = sort_key_for(data)
            if not is_after(sort_key, key.id, start_after):
                continue
            matches.append(StoredDocument(key, copy.deepcopy(data), sort_key))

        matches.sort(key=lambda d: (d.sort_key, d.key.id), reverse=True)
        return matches[:limit] if limit is not None else matches

    def _write(self, key: DocumentKey, document: dict | None) -> None:
        self._versions[key] = self._versions.get(key, 0) + 1
        if document is None:
            self._documents.pop(key, None)
        else:
            self._documents[key] = copy.deepcopy(document)


def _check_write_set(writes: Mapping[DocumentKey, dict | None], seen: Mapping) -> None:
    unread = [str(k) for k in writes if k not in seen]
    if unread:
        raise ValueError(f"Transaction wrote keys it did not read: {', '.join(unread)}")
