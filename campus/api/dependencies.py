"""API Dependencies — store and service providers for route handlers.

Invariants:
    - One DocumentStore per process, chosen by settings.store_backend at startup
    - Services are cheap per-request wrappers around the shared store

Design Decisions:
    - Module-level store set by lifespan, read through get_store: tests swap the
      backend with app.dependency_overrides[get_store]
"""

from fastapi import Depends

from campus.config import Settings, get_settings
from campus.core.repository_protocols import DocumentStore
from campus.infrastructure.database import init_db
from campus.infrastructure.memory_store import InMemoryDocumentStore
from campus.infrastructure.retry_policy import RetryPolicy
from campus.infrastructure.sql_store import SqlDocumentStore
from campus.services.course_catalog import CourseCatalog
from campus.services.enrollment_coordinator import EnrollmentCoordinator

_store: DocumentStore | None = None


def init_store(settings: Settings) -> DocumentStore:
    global _store
    if settings.store_backend == "memory":
        _store = InMemoryDocumentStore()
    else:
        manager = init_db(
            settings.database_url,
            pool_size=settings.database_pool_size,
            max_overflow=settings.database_max_overflow,
        )
        _store = SqlDocumentStore(manager)
    return _store


def get_store() -> DocumentStore:
    if _store is None:
        raise RuntimeError("Document store not initialized")
    return _store


def get_coordinator(
    store: DocumentStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
) -> EnrollmentCoordinator:
    return EnrollmentCoordinator(
        store,
        RetryPolicy(
            max_attempts=settings.enrollment_max_attempts,
            base_delay_ms=settings.enrollment_base_delay_ms,
            max_delay_ms=settings.enrollment_max_delay_ms,
        ),
        cascade_batch_size=settings.cascade_batch_size,
    )


def get_catalog(
    store: DocumentStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
) -> CourseCatalog:
    return CourseCatalog(
        store,
        default_page_size=settings.default_page_size,
        max_page_size=settings.max_page_size,
    )
