from __future__ import annotations

import threading
import time


class RateLimiter:
    """Thread-safe pacing of page navigations shared by every worker.

    acquire() blocks the calling worker until the next navigation slot,
    so all browsers together stay under `qps` page loads per second.
    A qps of 0 disables pacing."""

    def __init__(self, qps: float = 0.0) -> None:
        self._interval = 1.0 / qps if qps > 0 else 0.0
        self._lock = threading.Lock()
        self._next_allowed = 0.0

    def acquire(self) -> float:
        """Block until the next navigation is permitted; returns seconds waited."""
        if self._interval <= 0:
            return 0.0
        with self._lock:
            now = time.monotonic()
            waited = max(0.0, self._next_allowed - now)
            if waited:
                time.sleep(waited)
            self._next_allowed = max(self._next_allowed, time.monotonic()) + self._interval
        return waited
