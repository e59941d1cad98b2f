"""Service test fixtures — services over the in-memory store at a fixed clock.

Invariants:
    - Every test gets a fresh InMemoryDocumentStore (root conftest)
    - Services share the recording fast_retry policy, so backoff never sleeps
    - The clock is pinned to factories.NOW so stored timestamps are predictable
"""

import pytest

from campus.services.course_catalog import CourseCatalog
from campus.services.enrollment_coordinator import EnrollmentCoordinator
from campus.services.messaging import Messaging
from campus.services.social_feed import SocialFeed
from tests.factories import fixed_clock


@pytest.fixture
def coordinator(store, fast_retry):
    return EnrollmentCoordinator(
        store, retry_policy=fast_retry, cascade_batch_size=2, clock=fixed_clock,
    )


@pytest.fixture
def catalog(store):
    return CourseCatalog(store, default_page_size=3, max_page_size=5, clock=fixed_clock)


@pytest.fixture
def feed(store, fast_retry):
    return SocialFeed(store, retry_policy=fast_retry, clock=fixed_clock)


@pytest.fixture
def messaging(store, fast_retry):
    return Messaging(store, retry_policy=fast_retry, clock=fixed_clock)
