"""Client-side call quota for third-party APIs.

One instance per upstream, constructed at startup and passed to the adapter
that owns the quota.
"""

from __future__ import annotations

import logging
import time
from collections import defaultdict, deque
from typing import Callable

from delaycast.services.base import RateLimited

logger = logging.getLogger(__name__)


class RateLimiter:
    """Sliding-window limiter: at most *max_calls* per *period_seconds* per key."""

    def __init__(
        self,
        name: str,
        max_calls: int,
        period_seconds: float,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_calls < 1 or period_seconds <= 0:
            raise ValueError("max_calls and period_seconds must be positive")
        self.name = name
        self.max_calls = max_calls
        self.period = period_seconds
        self._clock = clock
        self._calls: dict[str, deque[float]] = defaultdict(deque)

    async def acquire(self, key: str = "default") -> None:
        now = self._clock()
        calls = self._calls[key]
        while calls and now - calls[0] >= self.period:
            calls.popleft()
        if len(calls) >= self.max_calls:
            retry_after = self.period - (now - calls[0])
            logger.warning("%s quota exhausted for %s", self.name, key)
            raise RateLimited(self.name, retry_after)
        calls.append(now)

    def remaining(self, key: str = "default") -> int:
        now = self._clock()
        live = [t for t in self._calls.get(key, ()) if now - t < self.period]
        return self.max_calls - len(live)
