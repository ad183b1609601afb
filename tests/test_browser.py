"""Tests for BrowserSession wiring against a mocked Playwright."""

import unittest
from unittest import mock

from bandspider.browser import LAUNCH_ARGS, BrowserSession
from bandspider.config import SpiderConfig


def _playwright_factory():
    playwright = mock.MagicMock()
    factory = mock.Mock()
    factory.return_value.start.return_value = playwright
    return factory, playwright


class TestBrowserSession(unittest.TestCase):
    """Verify launch, request blocking, 429 watching and recycling."""

    def test_launches_chromium(self):
        factory, playwright = _playwright_factory()
        session = BrowserSession(SpiderConfig(headless=True), playwright_factory=factory)
        session.open()
        playwright.chromium.launch.assert_called_once_with(headless=True, args=LAUNCH_ARGS)
        page = playwright.chromium.launch.return_value.new_context.return_value.new_page.return_value
        page.route.assert_called_once()
        session.close()
        playwright.stop.assert_called_once_with()

    def test_connects_to_remote_endpoint(self):
        factory, playwright = _playwright_factory()
        session = BrowserSession(SpiderConfig(browser_endpoint="http://chrome:9222"), playwright_factory=factory)
        session.open()
        playwright.chromium.connect_over_cdp.assert_called_once_with("http://chrome:9222")
        playwright.chromium.launch.assert_not_called()

    def test_blocks_heavy_resources(self):
        route = mock.Mock()
        route.request.resource_type = "image"
        BrowserSession._block_heavy_resources(route)
        route.abort.assert_called_once_with()

        route = mock.Mock()
        route.request.resource_type = "document"
        BrowserSession._block_heavy_resources(route)
        route.continue_.assert_called_once_with()

    def test_429_response_calls_back(self):
        callback = mock.Mock()
        session = BrowserSession(SpiderConfig(), on_rate_limited=callback, playwright_factory=mock.Mock())
        session._watch_response(mock.Mock(status=429, url="https://x.bandcamp.com/album/y"))
        session._watch_response(mock.Mock(status=200, url="https://x.bandcamp.com/album/y"))
        callback.assert_called_once_with("https://x.bandcamp.com/album/y")

    def test_recycle_replaces_context(self):
        factory, playwright = _playwright_factory()
        session = BrowserSession(SpiderConfig(), playwright_factory=factory)
        session.open()
        browser = playwright.chromium.launch.return_value
        session.recycle()
        self.assertEqual(browser.new_context.call_count, 2)
        browser.new_context.return_value.close.assert_called_once_with()
        self.assertEqual(playwright.chromium.launch.call_count, 1)


if __name__ == "__main__":
    unittest.main()
