"""Tests for the CrawlMetrics class."""

import unittest

from bandspider.metrics import CrawlMetrics
from bandspider.models import ProcessResult, UrlType


class FakeClock:
    def __init__(self, now=100.0):
        self.now = now

    def __call__(self):
        return self.now


def _make_result(**overrides) -> ProcessResult:
    """Helper to build a ProcessResult with sensible defaults."""
    defaults = dict(
        worker_id=0,
        url="https://x.bandcamp.com/album/y",
        type=UrlType.ITEM,
        success=True,
        latency_ms=100,
        error_type=None,
    )
    defaults.update(overrides)
    return ProcessResult(**defaults)


class TestCrawlMetrics(unittest.TestCase):
    """Verify outcome counting and snapshot aggregation."""

    def test_empty_snapshot(self):
        """Snapshot with no events should have all zeros."""
        metrics = CrawlMetrics()
        snap = metrics.snapshot(window_secs=30)
        self.assertEqual(snap.processed, 0)
        self.assertEqual(snap.failed, 0)
        self.assertEqual(snap.avg_latency_ms, 0.0)

    def test_counts_failures_by_kind(self):
        """Timeouts and rate limits are counted separately from other failures."""
        metrics = CrawlMetrics()
        metrics.record_result(_make_result())
        metrics.record_result(_make_result(success=False, error_type="NavigationTimeoutError"))
        metrics.record_result(_make_result(success=False, error_type="RateLimitedError"))
        metrics.record_result(_make_result(success=False, error_type="PageNotFoundError"))
        totals = metrics.totals()
        self.assertEqual(totals.processed, 1)
        self.assertEqual(totals.failed, 3)
        self.assertEqual(totals.timeouts, 1)
        self.assertEqual(totals.rate_limited, 1)
        self.assertEqual(metrics.total, 4)

    def test_throughput(self):
        """Throughput is processed tasks per elapsed minute."""
        clock = FakeClock()
        metrics = CrawlMetrics(clock=clock)
        for _ in range(10):
            metrics.record_result(_make_result())
        clock.now += 120
        self.assertAlmostEqual(metrics.totals().throughput_per_min, 5.0)

    def test_snapshot_window(self):
        """Only events inside the window are included."""
        clock = FakeClock()
        metrics = CrawlMetrics(clock=clock)
        metrics.record_result(_make_result(success=False, error_type="RateLimitedError"))
        clock.now += 60
        metrics.record_result(_make_result())
        snap = metrics.snapshot(window_secs=30)
        self.assertEqual((snap.processed, snap.failed, snap.rate_limited), (1, 0, 0))

    def test_average_latency(self):
        """Average latency should be computed correctly."""
        metrics = CrawlMetrics()
        metrics.record_result(_make_result(latency_ms=100))
        metrics.record_result(_make_result(latency_ms=200))
        self.assertAlmostEqual(metrics.snapshot(window_secs=30).avg_latency_ms, 150.0)


class TestCircuitBreaker(unittest.TestCase):
    """Verify the per-worker failure ratio check."""

    def test_needs_minimum_samples(self):
        metrics = CrawlMetrics()
        for _ in range(5):
            metrics.record_result(_make_result(success=False))
        self.assertFalse(metrics.should_trip(0, failure_ratio=1.5, min_samples=20))
        self.assertTrue(metrics.should_trip(0, failure_ratio=1.5, min_samples=5))

    def test_ratio_threshold(self):
        metrics = CrawlMetrics()
        for _ in range(8):
            metrics.record_result(_make_result())
        for _ in range(12):
            metrics.record_result(_make_result(success=False))
        self.assertFalse(metrics.should_trip(0, 1.5, 20))
        metrics.record_result(_make_result(success=False))
        self.assertTrue(metrics.should_trip(0, 1.5, 20))

    def test_counts_are_per_worker(self):
        metrics = CrawlMetrics()
        for _ in range(3):
            metrics.record_result(_make_result(worker_id=1, success=False))
        metrics.record_result(_make_result(worker_id=2))
        self.assertEqual(metrics.worker_counts(1), (0, 3))
        self.assertEqual(metrics.worker_counts(2), (1, 0))
        self.assertFalse(metrics.should_trip(2, min_samples=1))


if __name__ == "__main__":
    unittest.main()
