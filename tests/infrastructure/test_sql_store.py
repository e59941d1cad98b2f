"""SQL DocumentStore — version-guarded commits over a real SQLite database.

Invariants:
    - Same contract as the in-memory store: all-or-nothing, conflicts on stale reads
    - Versions increase by one per committed write
    - JSON equality filters and cursor paging run in SQL

Design Decisions:
    - File-backed SQLite per test: separate sessions see each other's commits
    - Stale snapshots are produced by writing between the snapshot read and the
      commit, the window a concurrent writer would hit
"""

import pytest
from sqlalchemy import select, text

from campus.core.documents import DocumentKey
from campus.core.errors import DatabaseError, WriteConflictError
from campus.core.pagination import PageCursor
from campus.db.session import create_schema
from campus.infrastructure.database import DatabaseSessionManager
from campus.infrastructure.sql_store import SqlDocumentStore, documents

A = DocumentKey("courses", "a")
B = DocumentKey("users", "b")


@pytest.fixture
async def manager(tmp_path):
    manager = DatabaseSessionManager(f"sqlite+aiosqlite:///{tmp_path / 'campus.db'}")
    await create_schema(manager.engine)
    yield manager
    await manager.dispose()


@pytest.fixture
def sql_store(manager):
    return SqlDocumentStore(manager)


async def _version(manager, key):
    async with manager.session() as s:
        return await s.scalar(
            select(documents.c.version).where(
                documents.c.collection == key.collection, documents.c.key == key.id,
            ),
        )


def _stale_after_snapshot(store, monkeypatch, key, document):
    """Overwrite key right after the transaction reads its snapshot."""
    original = store._read_snapshot

    async def read_then_race(keys):
        seen, snapshot = await original(keys)
        if document is None:
            await store.delete(key)
        else:
            await store.put(key, document)
        return seen, snapshot

    monkeypatch.setattr(store, "_read_snapshot", read_then_race)


async def test_put_then_get(sql_store, manager):
    await sql_store.put(A, {"title": "x", "createdAt": "2026-01"})
    await sql_store.put(A, {"title": "y", "createdAt": "2026-01"})
    assert await sql_store.get(A) == {"title": "y", "createdAt": "2026-01"}
    assert await _version(manager, A) == 2


async def test_missing_document_is_none(sql_store):
    assert await sql_store.get(A) is None


async def test_transaction_inserts_updates_and_deletes(sql_store, manager):
    await sql_store.put(A, {"n": 1})
    await sql_store.put(B, {"m": 1})
    c = DocumentKey("posts", "c")

    def body(snapshot):
        assert snapshot[c] is None
        return "ok", {A: {"n": 2}, B: None, c: {"p": 1}}

    assert await sql_store.transaction([A, B, c], body) == "ok"
    assert await sql_store.get(A) == {"n": 2}
    assert await sql_store.get(B) is None
    assert await sql_store.get(c) == {"p": 1}
    assert await _version(manager, A) == 2


async def test_stale_write_conflicts_and_rolls_back(sql_store, monkeypatch):
    await sql_store.put(A, {"n": 1})
    await sql_store.put(B, {"m": 1})
    _stale_after_snapshot(sql_store, monkeypatch, B, {"m": 99})

    with pytest.raises(WriteConflictError):
        await sql_store.transaction(
            [A, B], lambda snap: (None, {A: {"n": 2}, B: {"m": 2}}),
        )
    assert await sql_store.get(A) == {"n": 1}
    assert await sql_store.get(B) == {"m": 99}


async def test_read_only_key_guards_commit(sql_store, monkeypatch):
    await sql_store.put(A, {"n": 1})
    await sql_store.put(B, {"m": 1})
    _stale_after_snapshot(sql_store, monkeypatch, B, {"m": 2})

    with pytest.raises(WriteConflictError):
        await sql_store.transaction([A, B], lambda snap: (None, {A: {"n": 2}}))
    assert await sql_store.get(A) == {"n": 1}


async def test_concurrent_creation_conflicts(sql_store, monkeypatch):
    _stale_after_snapshot(sql_store, monkeypatch, A, {"first": True})

    with pytest.raises(WriteConflictError):
        await sql_store.transaction([A], lambda snap: (None, {A: {"second": True}}))
    assert await sql_store.get(A) == {"first": True}


async def test_deleted_under_transaction_conflicts(sql_store, monkeypatch):
    await sql_store.put(A, {"n": 1})
    _stale_after_snapshot(sql_store, monkeypatch, A, None)

    with pytest.raises(WriteConflictError):
        await sql_store.transaction([A], lambda snap: (None, {A: {"n": 2}}))
    assert await sql_store.get(A) is None


async def test_unread_write_is_rejected(sql_store):
    with pytest.raises(ValueError):
        await sql_store.transaction([A], lambda snap: (None, {B: {}}))


async def test_query_equality_filters(sql_store):
    await sql_store.put(DocumentKey("courses", "c1"), {
        "createdAt": "2026-01", "status": "published", "maxEnrollment": 30, "open": True,
    })
    await sql_store.put(DocumentKey("courses", "c2"), {
        "createdAt": "2026-02", "status": "draft", "maxEnrollment": 30, "open": False,
    })

    assert [d.key.id for d in await sql_store.query(
        "courses", equals={"status": "published"},
    )] == ["c1"]
    assert [d.key.id for d in await sql_store.query(
        "courses", equals={"maxEnrollment": 30},
    )] == ["c2", "c1"]
    assert [d.key.id for d in await sql_store.query(
        "courses", equals={"open": False},
    )] == ["c2"]


async def test_query_array_contains_respects_limit(sql_store):
    for i, roster in enumerate([["s1"], ["s2"], ["s1", "s2"], ["s1"]]):
        await sql_store.put(
            DocumentKey("courses", f"c{i}"),
            {"createdAt": f"2026-0{i + 1}", "enrolledStudents": roster},
        )
    found = await sql_store.query(
        "courses", array_contains=("enrolledStudents", "s1"), limit=2,
    )
    assert [d.key.id for d in found] == ["c3", "c2"]


async def test_query_cursor_paging_visits_each_document_once(sql_store):
    for i in range(5):
        await sql_store.put(DocumentKey("posts", f"p{i}"), {"timestamp": "2026-01-01"})

    seen, cursor = [], None
    while True:
        page = await sql_store.query("posts", limit=2, start_after=cursor)
        if not page:
            break
        seen.extend(d.key.id for d in page)
        cursor = PageCursor(page[-1].sort_key, page[-1].key.id)

    assert seen == ["p4", "p3", "p2", "p1", "p0"]


async def test_sqlalchemy_failures_surface_as_database_error(manager):
    with pytest.raises(DatabaseError) as exc:
        async with manager.session() as s:
            await s.execute(text("SELECT * FROM no_such_table"))
    assert exc.value.operation == "execute"
    assert exc.value.http_status == 503


async def test_health_check(manager):
    assert await manager.health_check() is True


async def test_commit_touches_rows_in_key_order(sql_store, monkeypatch):
    keys = [DocumentKey("users", "z"), DocumentKey("courses", "m"), DocumentKey("users", "a")]
    for key in keys:
        await sql_store.put(key, {"n": 0})
    touched = []
    write, guard = sql_store._guarded_write, sql_store._guard_unchanged

    async def record_write(s, key, version, document):
        touched.append(key)
        await write(s, key, version, document)

    async def record_guard(s, key, version):
        touched.append(key)
        await guard(s, key, version)

    monkeypatch.setattr(sql_store, "_guarded_write", record_write)
    monkeypatch.setattr(sql_store, "_guard_unchanged", record_guard)

    await sql_store.transaction(
        keys, lambda snap: (None, {keys[0]: {"n": 1}, keys[2]: {"n": 1}}),
    )

    assert touched == sorted(keys)
    assert (await sql_store.get(keys[0]))["n"] == 1
