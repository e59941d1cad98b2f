"""Database Session Manager — async engine and rollback-on-failure sessions for the SQL store.

Invariants:
    - Every session auto-rolls-back on exception (no partial commits leak)
    - Connection pool uses pool_pre_ping for stale connection detection
    - SQLAlchemy exceptions escaping a session are mapped to DatabaseError;
      CampusError subclasses raised inside the session pass through unchanged

Design Decisions:
    - Singleton db_manager initialized on startup: FastAPI lifespan manages lifecycle
    - expire_on_commit=False: prevents lazy-load issues in async context
    - SQLite URLs skip pool sizing: aiosqlite uses a static pool in tests
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy import text
from sqlalchemy.exc import DBAPIError, OperationalError, SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine,
)

from campus.core.errors import DatabaseError

logger = logging.getLogger(__name__)


def create_engine_for(
    database_url: str, pool_size: int = 20, max_overflow: int = 10,
) -> AsyncEngine:
    if database_url.startswith("sqlite"):
        return create_async_engine(database_url)
    return create_async_engine(
        database_url,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_pre_ping=True,
        pool_recycle=3600,
    )


# Most specific first: OperationalError and DBAPIError both subclass SQLAlchemyError.
_SQL_FAILURES = (
    (OperationalError, "execute", "Connection or operational error"),
    (DBAPIError, "query", "Database driver error"),
    (SQLAlchemyError, "unknown", "Database operation failed"),
)


def _as_database_error(exc: SQLAlchemyError) -> DatabaseError:
    for kind, operation, message in _SQL_FAILURES:
        if isinstance(exc, kind):
            logger.error(f"{message}: {exc}", extra={"operation": operation})
            return DatabaseError(message, operation)
    raise TypeError(f"not a SQLAlchemy error: {exc!r}")


class DatabaseSessionManager:
    """Owns the engine and hands out sessions that roll back on any failure."""

    def __init__(
        self, database_url: str, pool_size: int = 20, max_overflow: int = 10,
        engine: AsyncEngine | None = None,
    ):
        self.engine = engine or create_engine_for(database_url, pool_size, max_overflow)
        self._session_factory = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        session = self._session_factory()
        try:
            yield session
        except SQLAlchemyError as e:
            await session.rollback()
            raise _as_database_error(e) from e
        except BaseException:
            await session.rollback()
            raise
        finally:
            await session.close()

    async def health_check(self) -> bool:
        """SELECT 1 through a fresh session; False instead of raising."""
        try:
            async with self.session() as db:
                await db.execute(text("SELECT 1"))
        except DatabaseError as e:
            logger.error(f"DB health check failed: {e}")
            return False
        return True

    async def dispose(self) -> None:
        await self.engine.dispose()


# Set by init_db when the SQL backend is selected
db_manager: DatabaseSessionManager | None = None


def init_db(database_url: str, **kwargs) -> DatabaseSessionManager:
    global db_manager
    db_manager = DatabaseSessionManager(database_url, **kwargs)
    return db_manager
