from __future__ import annotations

import logging
import time
from typing import Callable, Iterable, List, Optional

from playwright.sync_api import Page

from .backoff import BackoffStrategy
from .browser import BrowserSession
from .config import SpiderConfig
from .controller import WorkerPool
from .database import Database
from .exceptions import CircuitBreakerTripped, NavigationError, UnknownUrlError
from .factory import HandlerFactory
from .log import stat_line
from .metrics import CrawlMetrics
from .models import ProcessResult, QueueEvent, StatisticSnapshot, UrlType
from .proxy import ProxyClient
from .queue import ProcessingQueue
from .urls import original_url, require_url_type, url_type as detect_url_type

LOGGER = logging.getLogger(__name__)


class BandSpider:
    """Drives N concurrent worker loops over one kind of task.

    Each worker owns one browser page and repeats: wait out any identity
    rotation, refill the queue when it runs dry, dequeue, claim, process,
    commit. A worker stops when a refill finds nothing left, or aborts
    alone when its failure ratio trips the circuit breaker.
    """

    def __init__(
        self,
        config: SpiderConfig,
        database: Database,
        proxy: Optional[ProxyClient] = None,
        factory: Optional[HandlerFactory] = None,
        metrics: Optional[CrawlMetrics] = None,
        session_factory: Optional[Callable[[int], BrowserSession]] = None,
        backoff: Optional[BackoffStrategy] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._config = config
        self._database = database
        self._proxy = proxy
        self._factory = factory or HandlerFactory(
            database, proxy, navigation_timeout_ms=config.navigation_timeout_ms
        )
        self._metrics = metrics or CrawlMetrics()
        self._session_factory = session_factory or self._default_session
        self._backoff = backoff or BackoffStrategy(base_seconds=0.5, max_seconds=10.0)
        self._sleep = sleep

    @property
    def metrics(self) -> CrawlMetrics:
        return self._metrics

    def _default_session(self, worker_id: int) -> BrowserSession:
        return BrowserSession(self._config, on_rate_limited=self._on_rate_limited)

    def _on_rate_limited(self, url: str) -> None:
        if self._proxy is not None:
            self._proxy.change_identity()

    # -- setup --

    def register_seeds(self, urls: Iterable[str]) -> List[str]:
        """Insert recognised seed URLs as tasks; drop unrecognised ones from storage."""
        accepted: List[str] = []
        for raw in urls:
            url = original_url(raw)
            if not url:
                continue
            try:
                kind = require_url_type(url)
            except UnknownUrlError as exc:
                LOGGER.error("%s, removing it", exc)
                self._database.account.remove_by_url(url)
                self._database.item.remove_by_url(url)
                continue
            self._database.repository(kind).insert_or_get(url)
            accepted.append(url)
        return accepted

    def build_queue(self, url_type: UrlType, seeds: Iterable[str] = ()) -> ProcessingQueue:
        cfg = self._config
        pending = self._database.repository(url_type).get_not_processed(
            limit=cfg.refill_batch, failed_below=cfg.max_failed_count + 1
        )
        urls = [u for u in seeds if detect_url_type(u) == url_type]
        urls.extend(t.url for t in pending)
        return ProcessingQueue(
            self._database,
            urls=urls,
            capacity=cfg.queue_capacity,
            max_failed_count=cfg.max_failed_count,
        )

    # -- run --

    def run(self, url_type: Optional[UrlType] = None, seed_urls: Optional[Iterable[str]] = None) -> StatisticSnapshot:
        kind = url_type or self._config.url_type
        self._database.reset_all_busy()

        seeds = self.register_seeds(seed_urls) if seed_urls else []
        queue = self.build_queue(kind, seeds)
        LOGGER.info("Starting %d %s worker(s), %d URL(s) queued", self._config.workers, kind.value, queue.size)

        pool = WorkerPool(self._config.workers)
        outcomes = pool.run(lambda worker_id: self.worker_loop(worker_id, queue, kind))

        totals = self._metrics.totals()
        aborted = [o.worker_id for o in outcomes if not o.completed]
        LOGGER.info(
            stat_line(
                "summary",
                totals,
                {
                    "url_type": kind.value,
                    "workers": len(outcomes),
                    "aborted_workers": aborted,
                    "tasks": self._database.repository(kind).count_by_state(),
                },
            )
        )
        return totals

    def worker_loop(self, worker_id: int, queue: ProcessingQueue, url_type: UrlType) -> None:
        cfg = self._config
        session = self._session_factory(worker_id)
        handled = 0
        try:
            page = session.open()
            while True:
                self._wait_for_rotation()

                if queue.size == 0:
                    queue.refill(url_type, cfg.refill_batch)
                    if queue.size == 0:
                        LOGGER.info("[%-2d] Nothing left to process", worker_id)
                        return

                event = queue.dequeue()
                if event is None:
                    continue
                if not self._database.repository(event.type).try_claim(event.id):
                    LOGGER.debug("[%-2d] %s claimed by another worker", worker_id, event.url)
                    continue

                result = self.process_event(page, event, worker_id)
                self._metrics.record_result(result)
                handled += 1

                if cfg.log_every and self._metrics.total % cfg.log_every == 0:
                    LOGGER.info(
                        stat_line(
                            "statistics",
                            self._metrics.snapshot(cfg.stats_window_secs),
                            {
                                "worker_id": worker_id,
                                "total_processed": self._metrics.processed,
                                "total_failed": self._metrics.failed,
                            },
                        )
                    )
                if cfg.recycle_every and handled % cfg.recycle_every == 0:
                    LOGGER.debug("[%-2d] Recycling browser page", worker_id)
                    page = session.recycle()

                if self._metrics.should_trip(worker_id, cfg.failure_ratio, cfg.min_samples):
                    processed, failed = self._metrics.worker_counts(worker_id)
                    raise CircuitBreakerTripped(worker_id, processed, failed)
        finally:
            session.close()

    def _wait_for_rotation(self) -> None:
        attempt = 0
        while self._proxy is not None and self._proxy.is_rotating:
            attempt += 1
            self._sleep(self._backoff.get_sleep(attempt))

    def process_event(self, page: Page, event: QueueEvent, worker_id: int = 0) -> ProcessResult:
        """Process a claimed task and commit its outcome; always releases the claim."""
        repo = self._database.repository(event.type)
        start = time.perf_counter()
        try:
            page_result = self._factory.create_handler(event).process(page, event, worker_id)
            repo.update_processing_date(event.id)
            return self._result(worker_id, event, start, statistic=page_result.statistic)
        except NavigationError as exc:
            LOGGER.warning("[%-2d] %s", worker_id, exc)
            repo.update_failed(event.id)
            return self._result(worker_id, event, start, error=exc)
        except Exception as exc:  # noqa: BLE001
            LOGGER.exception("[%-2d] Unexpected error on %s", worker_id, event.url)
            repo.update_failed(event.id)
            return self._result(worker_id, event, start, error=exc)
        finally:
            repo.update_busy(event.id, False)

    @staticmethod
    def _result(
        worker_id: int,
        event: QueueEvent,
        start: float,
        statistic: object = None,
        error: Optional[BaseException] = None,
    ) -> ProcessResult:
        return ProcessResult(
            worker_id=worker_id,
            url=event.url,
            type=event.type,
            success=error is None,
            latency_ms=int((time.perf_counter() - start) * 1000),
            error_type=type(error).__name__ if error is not None else None,
            statistic=statistic,
        )
