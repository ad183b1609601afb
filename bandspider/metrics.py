from __future__ import annotations

import time
from collections import deque
from threading import Lock
from typing import Callable, Deque, Dict, List, Optional, Tuple

from .models import ProcessResult, StatisticSnapshot

TIMEOUT_ERRORS = ("NavigationTimeoutError", "TimeoutError")
RATE_LIMIT_ERRORS = ("RateLimitedError",)


class CrawlMetrics:
    """Thread-safe collector of task outcomes across all workers.

    Keeps lifetime counters (overall and per worker) for the terminal
    summary and the circuit breaker, plus a bounded event log for
    sliding-window snapshots."""

    def __init__(self, clock: Callable[[], float] = time.time, maxlen: int = 10000) -> None:
        self._clock = clock
        self._lock = Lock()
        self._events: Deque[Tuple[float, ProcessResult]] = deque(maxlen=maxlen)
        self._started = clock()
        self._processed = 0
        self._failed = 0
        self._rate_limited = 0
        self._timeouts = 0
        self._latency_total = 0
        self._per_worker: Dict[int, List[int]] = {}

    def record_result(self, result: ProcessResult) -> None:
        with self._lock:
            self._events.append((self._clock(), result))
            counts = self._per_worker.setdefault(result.worker_id, [0, 0])
            self._latency_total += result.latency_ms
            if result.success:
                self._processed += 1
                counts[0] += 1
            else:
                self._failed += 1
                counts[1] += 1
            if result.error_type in TIMEOUT_ERRORS:
                self._timeouts += 1
            if result.error_type in RATE_LIMIT_ERRORS:
                self._rate_limited += 1

    @property
    def processed(self) -> int:
        return self._processed

    @property
    def failed(self) -> int:
        return self._failed

    @property
    def total(self) -> int:
        return self._processed + self._failed

    def worker_counts(self, worker_id: int) -> Tuple[int, int]:
        """(processed, failed) for one worker."""
        with self._lock:
            processed, failed = self._per_worker.get(worker_id, (0, 0))
        return processed, failed

    def should_trip(self, worker_id: int, failure_ratio: float = 1.5, min_samples: int = 20) -> bool:
        """True when a worker's failures exceed `failure_ratio` times its successes."""
        processed, failed = self.worker_counts(worker_id)
        if processed + failed < min_samples:
            return False
        return failed > failure_ratio * processed

    def totals(self) -> StatisticSnapshot:
        """Lifetime statistics since the collector was created."""
        now = self._clock()
        with self._lock:
            processed, failed = self._processed, self._failed
            rate_limited, timeouts = self._rate_limited, self._timeouts
            latency_total = self._latency_total
        return self._build(None, processed, failed, rate_limited, timeouts, latency_total, now - self._started, now)

    def snapshot(self, window_secs: int) -> StatisticSnapshot:
        """Statistics for outcomes within the last window_secs seconds."""
        now = self._clock()
        cutoff = now - window_secs
        with self._lock:
            events: List[ProcessResult] = [e for ts, e in self._events if ts >= cutoff]
        processed = sum(1 for e in events if e.success)
        failed = len(events) - processed
        rate_limited = sum(1 for e in events if e.error_type in RATE_LIMIT_ERRORS)
        timeouts = sum(1 for e in events if e.error_type in TIMEOUT_ERRORS)
        latency_total = sum(e.latency_ms for e in events)
        elapsed = min(float(window_secs), now - self._started)
        return self._build(window_secs, processed, failed, rate_limited, timeouts, latency_total, elapsed, now)

    @staticmethod
    def _build(
        window_secs: Optional[int],
        processed: int,
        failed: int,
        rate_limited: int,
        timeouts: int,
        latency_total: int,
        elapsed: float,
        now: float,
    ) -> StatisticSnapshot:
        total = processed + failed
        return StatisticSnapshot(
            window_secs=window_secs,
            processed=processed,
            failed=failed,
            rate_limited=rate_limited,
            timeouts=timeouts,
            elapsed_secs=round(elapsed, 3),
            throughput_per_min=round(processed / elapsed * 60, 2) if elapsed > 0 else 0.0,
            avg_latency_ms=(latency_total / total) if total else 0.0,
            timestamp=now,
        )
