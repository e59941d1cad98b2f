"""Conflict Retry Policy — bounded re-execution of store transactions.

Invariants:
    - Only WriteConflictError is retried; every other error propagates on first raise
    - At most max_attempts executions; exhaustion raises the caller-supplied error
    - Each retry re-runs the whole operation, so it re-reads fresh state

Design Decisions:
    - Explicit policy object over store-side retry: stores report conflicts and never
      loop, callers decide how hard to try
    - Sleeper injectable: tests run the full retry path without wall-clock waits
"""

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from typing import TypeVar

from campus.core.errors import CampusError, WriteConflictError

logger = logging.getLogger(__name__)

T = TypeVar("T")

Sleeper = Callable[[float], Awaitable[None]]


class RetryPolicy:
    """Exponential backoff with ±25% jitter between conflicting attempts."""

    def __init__(
        self,
        max_attempts: int = 5,
        base_delay_ms: int = 20,
        max_delay_ms: int = 1000,
        sleeper: Sleeper = asyncio.sleep,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.base_delay_ms = base_delay_ms
        self.max_delay_ms = max_delay_ms
        self.sleeper = sleeper

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        *,
        on_exhausted: Callable[[int], CampusError],
        log_extra: dict | None = None,
    ) -> T:
        """Run operation, retrying on write conflicts until attempts run out."""
        for attempt in range(self.max_attempts):
            try:
                return await operation()
            except WriteConflictError as e:
                if attempt + 1 >= self.max_attempts:
                    raise on_exhausted(self.max_attempts) from e
                delay = self._backoff(attempt)
                logger.warning(
                    f"Write conflict, retry after {delay}ms (attempt {attempt + 1})",
                    extra={**(log_extra or {}), "attempt": attempt + 1},
                )
                await self.sleeper(delay / 1000)
        raise AssertionError("unreachable")  # pragma: no cover

    def _backoff(self, attempt: int) -> int:
        """Exponential backoff with ±25% jitter."""
        delay = min(self.max_delay_ms, (2 ** attempt) * self.base_delay_ms)
        return int(delay * random.uniform(0.75, 1.25))  # nosec B311
