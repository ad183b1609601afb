from __future__ import annotations

import logging
import threading
from collections import deque
from typing import Deque, Iterable, Optional, Set

from .database import Database
from .models import QueueEvent, UrlType
from .urls import original_url, url_type

LOGGER = logging.getLogger(__name__)

DEFAULT_CAPACITY = 500
DEFAULT_MAX_FAILED_COUNT = 3


class ProcessingQueue:
    """In-memory, deduplicated, capacity-bounded frontier of URLs.

    Dequeue is strict FIFO. Workers run as threads, so the pop and the
    membership bookkeeping happen under one lock; the repository lookup
    that turns a URL into a task happens outside it.
    """

    def __init__(
        self,
        database: Database,
        urls: Iterable[str] = (),
        capacity: int = DEFAULT_CAPACITY,
        max_failed_count: int = DEFAULT_MAX_FAILED_COUNT,
    ) -> None:
        self._database = database
        self._capacity = max(1, int(capacity))
        self._max_failed_count = max_failed_count
        self._lock = threading.Lock()
        self._urls: Deque[str] = deque()
        self._members: Set[str] = set()

        # Seeds skip the shape check; malformed ones are cleaned up on dequeue.
        for url in urls:
            url = original_url(url)
            if not url or url in self._members:
                continue
            if len(self._urls) >= self._capacity:
                LOGGER.warning("Queue capacity %d reached, remaining seeds ignored", self._capacity)
                break
            self._urls.append(url)
            self._members.add(url)

    @property
    def size(self) -> int:
        with self._lock:
            return len(self._urls)

    @property
    def capacity(self) -> int:
        return self._capacity

    def __len__(self) -> int:
        return self.size

    def enqueue(self, url: str) -> bool:
        """Add a URL; False when full, already queued, or not an account/item."""
        url = original_url(url)
        if url_type(url) is None:
            return False
        with self._lock:
            if len(self._urls) >= self._capacity or url in self._members:
                return False
            self._urls.append(url)
            self._members.add(url)
        return True

    def enqueue_batch(self, urls: Iterable[str]) -> int:
        """Enqueue each URL, ignoring rejections; returns how many were added."""
        return sum(1 for url in urls if self.enqueue(url))

    def _pop(self) -> Optional[str]:
        with self._lock:
            if not self._urls:
                return None
            url = self._urls.popleft()
            self._members.discard(url)
            return url

    def dequeue(self) -> Optional[QueueEvent]:
        """Pop the next URL and materialize it into an eligible task.

        Returns None when the queue is empty or when the popped URL's task
        is busy, already processed, or has failed too often. The slot is
        consumed either way.
        """
        url = self._pop()
        if not url:
            return None

        kind = url_type(url)
        if kind is None:
            LOGGER.error("Invalid URL dropped from queue: %s", url)
            self._database.account.remove_by_url(url)
            self._database.item.remove_by_url(url)
            return None

        task = self._database.repository(kind).insert_or_get(url).entity
        if task.is_busy or task.last_processing_date is not None or task.failed_count > self._max_failed_count:
            LOGGER.debug(
                "Skipping %s (busy=%s processed=%s failed=%d)",
                url,
                task.is_busy,
                task.last_processing_date is not None,
                task.failed_count,
            )
            return None

        return QueueEvent(id=task.id, url=url, type=kind)

    def refill(self, kind: UrlType, limit: int) -> int:
        """Top the queue up from tasks the repository has not processed yet.

        Rows whose URL is not a ``kind`` URL are deleted as they are found,
        and the repository is asked again, so they cannot hold the refill
        at zero while good rows wait behind them.
        """
        repository = self._database.repository(kind)
        added = 0
        while not added:
            tasks = repository.get_not_processed(limit=limit, failed_below=self._max_failed_count + 1)
            if not tasks:
                break
            removed = 0
            good = []
            for task in tasks:
                if url_type(task.url) is kind:
                    good.append(task.url)
                else:
                    LOGGER.error("Invalid %s URL removed from store: %s", kind.value, task.url)
                    repository.remove_by_url(task.url)
                    removed += 1
            added = self.enqueue_batch(good)
            if not removed:
                break
        if added:
            LOGGER.debug("Refilled queue with %d %s URL(s)", added, kind.value)
        return added
