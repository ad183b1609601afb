"""Per-worker Playwright browser lifecycle."""
from __future__ import annotations

import logging
from typing import Any, Callable, Optional

from playwright.sync_api import Browser, BrowserContext, Page, Playwright, Route, sync_playwright

from .config import SpiderConfig

LOGGER = logging.getLogger(__name__)

LAUNCH_ARGS = [
    "--disable-blink-features=AutomationControlled",
    "--disable-dev-shm-usage",
    "--no-sandbox",
    "--disable-gpu",
]
BLOCKED_RESOURCES = frozenset({"font", "image", "stylesheet", "media"})
USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"
)


class BrowserSession:
    """One Chromium page owned by a single worker thread.

    The sync Playwright API is bound to the thread that started it, so each
    worker opens its own session. With `browser_endpoint` set the session
    attaches to an already running Chromium over CDP instead of launching one.
    """

    def __init__(
        self,
        config: SpiderConfig,
        on_rate_limited: Optional[Callable[[str], Any]] = None,
        playwright_factory: Callable[[], Any] = sync_playwright,
    ) -> None:
        self._config = config
        self._on_rate_limited = on_rate_limited
        self._playwright_factory = playwright_factory
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._context: Optional[BrowserContext] = None
        self._page: Optional[Page] = None

    @property
    def page(self) -> Page:
        if self._page is None:
            return self.open()
        return self._page

    def open(self) -> Page:
        if self._playwright is None:
            self._playwright = self._playwright_factory().start()
        if self._browser is None:
            self._browser = self._launch(self._playwright)
        if self._page is None:
            self._context = self._browser.new_context(user_agent=USER_AGENT)
            self._context.add_init_script(
                "Object.defineProperty(navigator, 'webdriver', {get: () => undefined});"
            )
            page = self._context.new_page()
            page.route("**/*", self._block_heavy_resources)
            page.on("response", self._watch_response)
            self._page = page
        return self._page

    def _launch(self, playwright: Playwright) -> Browser:
        endpoint = self._config.browser_endpoint
        if endpoint:
            LOGGER.info("Connecting to remote browser at %s", endpoint)
            return playwright.chromium.connect_over_cdp(endpoint)
        return playwright.chromium.launch(headless=self._config.headless, args=LAUNCH_ARGS)

    @staticmethod
    def _block_heavy_resources(route: Route) -> None:
        if route.request.resource_type in BLOCKED_RESOURCES:
            route.abort()
        else:
            route.continue_()

    def _watch_response(self, response: Any) -> None:
        if response.status == 429 and self._on_rate_limited is not None:
            LOGGER.warning("HTTP 429 from %s", response.url)
            self._on_rate_limited(response.url)

    def recycle(self) -> Page:
        """Drop the current page and context and open fresh ones."""
        self._close_context()
        return self.open()

    def _close_context(self) -> None:
        if self._context is not None:
            try:
                self._context.close()
            except Exception as exc:
                LOGGER.debug("Ignoring error while closing browser context: %s", exc)
        self._context = None
        self._page = None

    def close(self) -> None:
        self._close_context()
        if self._browser is not None:
            try:
                self._browser.close()
            except Exception as exc:
                LOGGER.debug("Ignoring error while closing browser: %s", exc)
            self._browser = None
        if self._playwright is not None:
            self._playwright.stop()
            self._playwright = None

    def __enter__(self) -> "BrowserSession":
        self.open()
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()
