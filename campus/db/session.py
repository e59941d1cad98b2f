"""Schema Bootstrap — creates the document tables outside of Alembic.

Invariants:
    - Uses the caller's engine; never opens its own pool
    - Meant for test fixtures and the in-process SQLite setup

Design Decisions:
    - Separate from infrastructure/database.py: production schema is owned by
      Alembic, this is a convenience for contexts that run without migrations
"""

from sqlalchemy.ext.asyncio import AsyncEngine

from campus.db.base import Base
import campus.models  # noqa: F401


async def create_schema(engine: AsyncEngine) -> None:
    """Create every table registered on Base.metadata."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def drop_schema(engine: AsyncEngine) -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
