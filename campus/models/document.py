"""Document ORM — one row per stored document across every logical collection.

Invariants:
    - (collection, key) is the primary key; ids are opaque strings
    - version starts at 1 and increases by exactly 1 on every committed write
    - sort_key mirrors the body's createdAt (or timestamp) for stable paging
    - body is the camelCase document without its id

Design Decisions:
    - Single JSON table over a table per entity: the store contract is document-shaped
      and collections share one optimistic-concurrency mechanism
    - Composite (collection, sort_key, key) index serves newest-first paging
"""

from datetime import datetime, timezone

from sqlalchemy import JSON, DateTime, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from campus.db.base import Base


class Document(Base):
    """Versioned JSON document addressed by (collection, key)."""
    __tablename__ = "documents"

    collection: Mapped[str] = mapped_column(String(64), primary_key=True)
    key: Mapped[str] = mapped_column(String(255), primary_key=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    sort_key: Mapped[str] = mapped_column(String(64), nullable=False, default="")
    body: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        Index("ix_documents_collection_sort", "collection", "sort_key", "key"),
    )
