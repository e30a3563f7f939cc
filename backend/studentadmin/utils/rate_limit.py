"""In-memory rate limiter used to throttle login attempts."""

from __future__ import annotations

import threading
import time
from collections import deque


class InMemoryRateLimiter:
    """Sliding-window limiter per key.

    Each key keeps the timestamps of its hits inside the window; a key
    whose hits have all expired is forgotten. State lives in process
    memory, so limits are per worker. `clock` is injectable for tests.
    """

    def __init__(self, clock=time.monotonic):
        self._hits: dict[str, deque] = {}
        self._lock = threading.Lock()
        self._clock = clock

    def allow(self, key: str, max_requests: int, window_seconds: int) -> tuple[bool, int]:
        """Record a hit for `key`; return ``(allowed, retry_after_seconds)``."""
        now = self._clock()
        with self._lock:
            self._prune(now - window_seconds)
            q = self._hits.get(key)
            if q is not None and len(q) >= max_requests:
                return False, max(1, int(window_seconds - (now - q[0])))
            if q is None:
                q = self._hits[key] = deque()
            q.append(now)
        return True, 0

    def reset(self, key: str) -> None:
        """Forget every recorded hit for `key`."""
        with self._lock:
            self._hits.pop(key, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._hits)

    def _prune(self, cutoff: float) -> None:
        # caller holds the lock
        for key in list(self._hits):
            q = self._hits[key]
            while q and q[0] <= cutoff:
                q.popleft()
            if not q:
                del self._hits[key]
