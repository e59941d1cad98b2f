"""API test fixtures — FastAPI app over an in-memory store.

Invariants:
    - Every test gets a fresh InMemoryDocumentStore behind get_store
    - httpx ASGITransport drives the app in-process; lifespan does not run

Design Decisions:
    - get_store overridden rather than init_store called: tests never touch the
      module-level store the lifespan would create
"""

import pytest
from httpx import ASGITransport, AsyncClient

from campus.api.dependencies import get_store
from campus.main import app


@pytest.fixture
async def client(store):
    app.dependency_overrides[get_store] = lambda: store

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test",
    ) as c:
        yield c

    app.dependency_overrides.clear()
