from __future__ import annotations

from collections import deque
import logging
from threading import Lock
import time
from typing import Callable


LOGGER = logging.getLogger(__name__)


class InMemoryRateLimiter:
    """Sliding one-minute window per client id.

    Clients idle for a full window are dropped, at most once per window.
    """

    def __init__(
        self, limit_per_minute: int, *, clock: Callable[[], float] = time.monotonic
    ) -> None:
        self.limit_per_minute = max(limit_per_minute, 1)
        self._clock = clock
        self._events: dict[str, deque[float]] = {}
        self._next_sweep = float("-inf")
        self._lock = Lock()

    def allow(self, client_id: str) -> bool:
        now = self._clock()
        window_start = now - 60

        with self._lock:
            if now >= self._next_sweep:
                self._sweep(window_start)
                self._next_sweep = now + 60

            bucket = self._events.setdefault(client_id, deque())
            while bucket and bucket[0] <= window_start:
                bucket.popleft()

            if len(bucket) >= self.limit_per_minute:
                return False

            bucket.append(now)
            return True

    def _sweep(self, window_start: float) -> None:
        stale = [
            client_id
            for client_id, bucket in self._events.items()
            if not bucket or bucket[-1] <= window_start
        ]
        for client_id in stale:
            del self._events[client_id]


def build_rate_limiter(*, limit_per_minute: int, name: str) -> InMemoryRateLimiter | None:
    if limit_per_minute <= 0:
        LOGGER.info("%s rate limiting disabled", name)
        return None
    LOGGER.info("Using in-memory %s rate limiter (%s/min)", name, limit_per_minute)
    return InMemoryRateLimiter(limit_per_minute)
