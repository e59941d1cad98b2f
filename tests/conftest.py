"""Root conftest — shared test configuration."""

import os

import pytest

# Tests never reach a real database or read a developer .env
os.environ.setdefault("CAMPUS_STORE_BACKEND", "memory")
os.environ.setdefault("CAMPUS_DATABASE_URL", "sqlite+aiosqlite:///:memory:")

from campus.infrastructure.memory_store import InMemoryDocumentStore  # noqa: E402
from campus.infrastructure.retry_policy import RetryPolicy  # noqa: E402


@pytest.fixture
def store():
    return InMemoryDocumentStore()


@pytest.fixture
def sleeps():
    """Backoff delays requested by retry policies built with fast_retry."""
    return []


@pytest.fixture
def fast_retry(sleeps):
    """RetryPolicy that records delays instead of sleeping."""
    async def record(seconds: float) -> None:
        sleeps.append(seconds)

    return RetryPolicy(max_attempts=5, base_delay_ms=1, max_delay_ms=10, sleeper=record)
