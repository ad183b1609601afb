from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Iterable, List, Optional, TypeVar

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import Page
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError

from ..database import Database
from ..exceptions import NavigationTimeoutError, PageNotFoundError, RateLimitedError
from ..models import InsertResult, PageResult, QueueEvent, TabData, TabStatistic, UrlType
from ..proxy import ProxyClient
from ..rate_limiter import RateLimiter

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")

TOO_MANY_REQUESTS = 429


class BasePageHandler(ABC):
    """Common pipeline for reading one page and persisting what it links to.

    process() = navigate -> read -> save. Navigation problems (timeouts,
    HTTP 429, missing pages) raise and fail the task; a section of the page
    that fails to read is kept as a TabData error and only logged.
    """

    url_type: UrlType

    def __init__(
        self,
        database: Database,
        proxy: Optional[ProxyClient] = None,
        rate_limiter: Optional[RateLimiter] = None,
        navigation_timeout_ms: int = 3_500,
    ) -> None:
        self._database = database
        self._proxy = proxy
        self._rate_limiter = rate_limiter
        self._timeout_ms = navigation_timeout_ms

    def process(self, page: Page, event: QueueEvent, worker_id: int = 0) -> PageResult:
        self.navigate(page, event.url)
        data = self.read(page, event.url)
        for error in data.errors:
            LOGGER.warning("[%-2d] Scraping issue on %s: %s", worker_id, event.url, error)

        statistic = self.save(event.id, data)
        LOGGER.info(
            "[%-2d] %s finished: %s %s",
            worker_id,
            self.url_type.value.capitalize(),
            self.describe(statistic),
            event.url,
        )
        return PageResult(event=event, statistic=statistic, errors=list(data.errors))

    def navigate(self, page: Page, url: str) -> Any:
        if self._rate_limiter:
            self._rate_limiter.acquire()
        try:
            response = page.goto(url, timeout=self._timeout_ms, wait_until="domcontentloaded")
        except PlaywrightTimeoutError as exc:
            self.rotate_identity("navigation timeout", url)
            raise NavigationTimeoutError(url, self._timeout_ms) from exc

        if response is not None and response.status == TOO_MANY_REQUESTS:
            self.rotate_identity("HTTP 429", url)
            raise RateLimitedError(url, response.status)
        if self.is_missing_page(page):
            raise PageNotFoundError(url)
        return response

    def rotate_identity(self, reason: str, url: str) -> bool:
        if self._proxy is None:
            return False
        LOGGER.warning("Requesting IP change after %s: %s", reason, url)
        changed = self._proxy.change_identity()
        if not changed:
            LOGGER.debug("IP change declined or failed, continuing")
        return changed

    def is_missing_page(self, page: Page) -> bool:
        return False

    @abstractmethod
    def read(self, page: Page, url: str) -> Any:
        """Read everything this handler needs from the loaded page."""

    @abstractmethod
    def save(self, task_id: int, data: Any) -> Any:
        """Persist page data for the task and return a statistic."""

    @abstractmethod
    def describe(self, statistic: Any) -> str:
        """One-line summary of a statistic for the log."""

    # helpers shared by concrete handlers

    @staticmethod
    def read_tab(fn: Callable[[], TabData[T]]) -> TabData[T]:
        try:
            return fn()
        except (PlaywrightError, ValueError) as exc:
            return TabData(error=exc)

    @staticmethod
    def save_links(
        tab: TabData[List[str]],
        insert: Callable[[str], InsertResult],
        link: Callable[[int], bool],
    ) -> TabStatistic:
        """Insert every URL of a tab and link it; counts new rows and relations."""
        if not tab.data:
            return TabStatistic(total=tab.total, all_scraped=tab.total == 0)

        ids: List[int] = []
        new_records = 0
        for url in tab.data:
            result = insert(url)
            ids.append(result.entity.id)
            if result.is_inserted:
                new_records += 1

        new_relations = sum(1 for entity_id in ids if link(entity_id))
        return TabStatistic(
            total=tab.total,
            new_records=new_records,
            new_relations=new_relations,
            all_scraped=tab.total <= len(tab.data),
        )


def unique(values: Iterable[str]) -> List[str]:
    seen = set()
    out = []
    for value in values:
        if value and value not in seen:
            seen.add(value)
            out.append(value)
    return out


def tab_message(stat: TabStatistic, flag: bool = False) -> str:
    head = f"{stat.new_records:>4}/{stat.total:<4}"
    if flag:
        head += "[y]" if stat.all_scraped else "[n]"
    return f"{head} {stat.new_relations:<4}"
