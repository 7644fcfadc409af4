"""Submission cooldown shared by all repository tasks.

Forges rate-limit request creation, so submissions across the whole fleet
are serialized and spaced: at most one is in flight, and consecutive ones
start at least the requesting repository's cooldown apart.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from datetime import timedelta

logger = logging.getLogger(__name__)


class SubmissionGate:
    """Mutex plus last-submission timestamp.

    The timestamp starts at construction time, so even the first submission
    waits out its cooldown.

    Parameters
    ----------
    clock:
        Monotonic clock in seconds.  Injectable for tests.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._lock = asyncio.Lock()
        self._last = clock()

    @property
    def last_submission(self) -> float:
        return self._last

    @asynccontextmanager
    async def slot(self, delay: timedelta) -> AsyncIterator[None]:
        """Hold the gate for one submission, waiting out *delay* first."""
        async with self._lock:
            remaining = delay.total_seconds() - (self._clock() - self._last)
            if remaining > 0:
                logger.debug("Cooling down for %.3fs before submitting", remaining)
                await asyncio.sleep(remaining)
            self._last = self._clock()
            yield
