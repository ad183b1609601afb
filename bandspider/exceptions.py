"""Exceptions raised by the crawler."""
from __future__ import annotations

from typing import Optional


class SpiderError(Exception):
    """Base class for crawler errors."""


class NavigationError(SpiderError):
    """The page for a task could not be loaded."""

    def __init__(self, url: str, message: Optional[str] = None) -> None:
        self.url = url
        super().__init__(message or f"Navigation failed: {url}")


class NavigationTimeoutError(NavigationError):
    def __init__(self, url: str, timeout_ms: int) -> None:
        self.timeout_ms = timeout_ms
        super().__init__(url, f"Navigation timeout of {timeout_ms} ms exceeded: {url}")


class RateLimitedError(NavigationError):
    def __init__(self, url: str, status_code: int = 429) -> None:
        self.status_code = status_code
        super().__init__(url, f"HTTP {status_code} for {url}")


class PageNotFoundError(NavigationError):
    def __init__(self, url: str) -> None:
        super().__init__(url, f"Page did not exist: {url}")


class UnknownUrlError(SpiderError):
    def __init__(self, url: str) -> None:
        self.url = url
        super().__init__(f"URL is neither an account nor an item: {url}")


class CircuitBreakerTripped(SpiderError):
    """Raised by a worker whose failures heavily outnumber its successes."""

    def __init__(self, worker_id: int, processed: int, failed: int) -> None:
        self.worker_id = worker_id
        self.processed = processed
        self.failed = failed
        super().__init__(
            f"Worker {worker_id} aborted: failed={failed} processed={processed}"
        )
