"""In-memory sliding-window limiter for the public view-tracking endpoint."""

from __future__ import annotations

import threading
import time
from collections import defaultdict, deque
from typing import Callable, Optional


class SlidingWindowLimiter:
    """Allow at most `max_hits` per key within `window_seconds`."""

    def __init__(self, max_hits: int, window_seconds: int = 60, clock: Callable[[], float] = time.monotonic):
        self.max_hits = max_hits
        self.window_seconds = window_seconds
        self._clock = clock
        self._hits: dict[str, deque] = defaultdict(deque)
        self._lock = threading.Lock()

    def hit(self, key: str) -> Optional[int]:
        """Record a hit for `key`.

        Returns None when the hit is allowed, otherwise the number of
        seconds the caller should wait before retrying.
        """
        if self.max_hits <= 0:
            return None
        now = self._clock()
        with self._lock:
            hits = self._hits[key]
            cutoff = now - self.window_seconds
            while hits and hits[0] <= cutoff:
                hits.popleft()
            if len(hits) >= self.max_hits:
                return max(1, int(self.window_seconds - (now - hits[0])))
            hits.append(now)
            return None

    def reset(self) -> None:
        with self._lock:
            self._hits.clear()
