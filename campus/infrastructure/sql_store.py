"""SQL Document Store — DocumentStore over the documents table with optimistic versions.

Invariants:
    - A transaction reads its snapshot in one session and commits in another;
      every commit statement is guarded by the version seen at read time
    - Any guard that matches zero rows, or a duplicate insert, rolls the whole
      commit back and raises WriteConflictError
    - The store never retries; callers decide through RetryPolicy

Design Decisions:
    - Short sessions over held row locks: behaves the same on Postgres and SQLite,
      and a slow transaction body never blocks other writers
    - Writes run before existence checks in the commit session so SQLite takes its
      write lock first instead of upgrading from a shared lock
    - Array membership is filtered in Python: JSON array containment is not portable
      across the supported dialects
"""

from collections.abc import Iterable, Mapping
from datetime import datetime, timezone
from typing import TypeVar

from sqlalchemy import and_, delete, insert, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from campus.core.documents import DocumentKey, StoredDocument, sort_key_for
from campus.core.errors import WriteConflictError
from campus.core.pagination import PageCursor
from campus.core.repository_protocols import TransactionBody
from campus.infrastructure.database import DatabaseSessionManager
from campus.models.document import Document


T = TypeVar("T")

documents = Document.__table__


def _where_key(key: DocumentKey):
    return and_(documents.c.collection == key.collection, documents.c.key == key.id)


def _json_equals(name: str, value: object):
    field = documents.c.body[name]
    if isinstance(value, bool):
        return field.as_boolean() == value
    if isinstance(value, int):
        return field.as_integer() == value
    return field.as_string() == str(value)


class SqlDocumentStore:
    """DocumentStore backed by SQLAlchemy async sessions."""

    def __init__(self, manager: DatabaseSessionManager):
        self._manager = manager

    async def get(self, key: DocumentKey) -> dict | None:
        async with self._manager.session() as s:
            body = await s.scalar(select(documents.c.body).where(_where_key(key)))
        return dict(body) if body is not None else None

    async def put(self, key: DocumentKey, document: dict) -> None:
        async with self._manager.session() as s:
            result = await s.execute(
                update(documents).where(_where_key(key)).values(
                    body=document,
                    version=documents.c.version + 1,
                    sort_key=sort_key_for(document),
                    updated_at=datetime.now(timezone.utc),
                ),
            )
            if result.rowcount == 0:
                await self._insert(s, key, document)
            await s.commit()

    async def delete(self, key: DocumentKey) -> None:
        async with self._manager.session() as s:
            await s.execute(delete(documents).where(_where_key(key)))
            await s.commit()

    async def transaction(self, keys: Iterable[DocumentKey], fn: TransactionBody[T]) -> T:
        keys = tuple(dict.fromkeys(keys))
        seen, snapshot = await self._read_snapshot(keys)

        result, writes = fn(snapshot)
        unread = [str(k) for k in writes if k not in seen]
        if unread:
            raise ValueError(f"Transaction wrote keys it did not read: {', '.join(unread)}")

        async with self._manager.session() as s:
            # rows are always locked in key order
            for key in sorted(seen):
                if key in writes:
                    await self._guarded_write(s, key, seen[key], writes[key])
                else:
                    await self._guard_unchanged(s, key, seen[key])
            await s.commit()
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
        stmt = select(documents.c.key, documents.c.body, documents.c.sort_key).where(
            documents.c.collection == collection,
        )
        for name, value in (equals or {}).items():
            stmt = stmt.where(_json_equals(name, value))
        if start_after is not None:
            stmt = stmt.where(or_(
                documents.c.sort_key < start_after.sort_key,
                and_(
                    documents.c.sort_key == start_after.sort_key,
                    documents.c.key < start_after.key,
                ),
            ))
        stmt = stmt.order_by(documents.c.sort_key.desc(), documents.c.key.desc())
        if limit is not None and array_contains is None:
            stmt = stmt.limit(limit)

        async with self._manager.session() as s:
            rows = (await s.execute(stmt)).all()

        found = [
            StoredDocument(DocumentKey(collection, row.key), dict(row.body), row.sort_key)
            for row in rows
        ]
        if array_contains is not None:
            name, value = array_contains
            found = [
                d for d in found
                if isinstance(d.data.get(name), list) and value in d.data[name]
            ]
            if limit is not None:
                found = found[:limit]
        return found

    # ─── Internals ───────────────────────────────────────────────

    async def _read_snapshot(self, keys: tuple[DocumentKey, ...]):
        seen: dict[DocumentKey, int | None] = {}
        snapshot: dict[DocumentKey, dict | None] = {}
        async with self._manager.session() as s:
            for key in keys:
                row = (await s.execute(
                    select(documents.c.version, documents.c.body).where(_where_key(key)),
                )).first()
                seen[key] = row.version if row is not None else None
                snapshot[key] = dict(row.body) if row is not None else None
        return seen, snapshot

    async def _insert(self, s: AsyncSession, key: DocumentKey, document: dict) -> None:
        try:
            await s.execute(insert(documents).values(
                collection=key.collection,
                key=key.id,
                version=1,
                sort_key=sort_key_for(document),
                body=document,
                updated_at=datetime.now(timezone.utc),
            ))
        except IntegrityError as e:
            raise WriteConflictError(f"Concurrent creation of {key}") from e

    async def _guarded_write(
        self, s: AsyncSession, key: DocumentKey, version: int | None, document: dict | None,
    ) -> None:
        if version is None:
            if document is not None:
                await self._insert(s, key, document)
            else:
                await self._guard_unchanged(s, key, None)
            return

        if document is None:
            stmt = delete(documents).where(_where_key(key), documents.c.version == version)
        else:
            stmt = update(documents).where(
                _where_key(key), documents.c.version == version,
            ).values(
                body=document,
                version=version + 1,
                sort_key=sort_key_for(document),
                updated_at=datetime.now(timezone.utc),
            )
        if (await s.execute(stmt)).rowcount == 0:
            raise WriteConflictError(f"Concurrent modification of {key}")

    async def _guard_unchanged(
        self, s: AsyncSession, key: DocumentKey, version: int | None,
    ) -> None:
        if version is None:
            exists = await s.scalar(select(documents.c.version).where(_where_key(key)))
            if exists is not None:
                raise WriteConflictError(f"Concurrent creation of {key}")
            return
        result = await s.execute(
            update(documents)
            .where(_where_key(key), documents.c.version == version)
            .values(version=documents.c.version),
        )
        if result.rowcount == 0:
            raise WriteConflictError(f"Concurrent modification of {key}")
