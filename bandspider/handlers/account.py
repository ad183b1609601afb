from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

from playwright.sync_api import ElementHandle, Page
from playwright.sync_api import Error as PlaywrightError

from ..models import AccountPageData, AccountPageStatistic, TabData, UrlType
from ..urls import is_account_url, is_item_url, original_url
from .base import BasePageHandler, tab_message, unique


@dataclass(frozen=True)
class AccountTab:
    name: str
    button: str
    container: str
    link_selector: str
    page_size: int
    sub_button: Optional[str] = None

    @property
    def holds_items(self) -> bool:
        return self.link_selector == "a.item-link"


COLLECTION = AccountTab("collection", '[data-tab="collection"]', "#fan-container", "a.item-link", 20)
WISHLIST = AccountTab("wishlist", '[data-tab="wishlist"]', "#wishlist-items-container", "a.item-link", 20)
FOLLOWERS = AccountTab("followers", '[data-tab="followers"]', "#followers-container", "a.fan-username", 45)
FOLLOWING = AccountTab(
    "following",
    '[data-tab="following"]',
    "#following-fans-container",
    "a.fan-username",
    40,
    sub_button='[data-tab="following-fans"]',
)


class AccountHandler(BasePageHandler):
    """Reads a fan profile: owned items, wishlist, followers and followed fans."""

    url_type = UrlType.ACCOUNT

    scroll_retries = 2
    spinner_timeout_ms = 700

    def read(self, page: Page, url: str) -> AccountPageData:
        return AccountPageData(
            url=url,
            collection=self.read_tab(lambda: self._read_account_tab(page, COLLECTION)),
            wishlist=self.read_tab(lambda: self._read_account_tab(page, WISHLIST)),
            following=self.read_tab(lambda: self._read_account_tab(page, FOLLOWING)),
            followers=self.read_tab(lambda: self._read_account_tab(page, FOLLOWERS)),
        )

    def _read_account_tab(self, page: Page, tab: AccountTab) -> TabData[List[str]]:
        total = self._activate_tab(page, tab)
        if not total or total <= 0:
            return TabData(data=[], total=0)

        container = page.query_selector(tab.container)
        if container is None:
            return TabData(data=[], total=0)

        if total > tab.page_size:
            self._scroll_tab(page, container)

        hrefs = container.eval_on_selector_all(tab.link_selector, "els => els.map(e => e.href)")
        if tab.holds_items:
            urls = [original_url(h) for h in hrefs if is_item_url(h)]
        else:
            urls = [original_url(h) for h in hrefs if is_account_url(h)]
        urls = unique(urls)
        return TabData(data=urls, total=total)

    def _activate_tab(self, page: Page, tab: AccountTab) -> Optional[int]:
        """Click the tab button and return the count it shows."""
        button = page.query_selector(tab.button)
        if button is None:
            return None
        button.click()
        if tab.sub_button:
            button = page.query_selector(tab.sub_button)
            if button is None:
                return None
            button.click()

        count = button.query_selector(".count")
        if count is None:
            return None
        text = (count.text_content() or "").strip().replace(",", "")
        return int(text) if text.isdigit() else None

    def _scroll_tab(self, page: Page, container: ElementHandle) -> None:
        """Load the whole tab by scrolling until its height stops growing."""
        show_more = container.query_selector(".show-more")
        if show_more is not None:
            show_more.click()

        box = container.bounding_box()
        height = box["height"] if box else 0
        retry = 0
        while retry < self.scroll_retries:
            try:
                page.evaluate("h => window.scrollTo(0, h * 10)", height)
                container.wait_for_selector("svg.upload-spinner", timeout=self.spinner_timeout_ms)
                box = container.bounding_box()
                current = box["height"] if box else height
                if current == height:
                    return
                height = current
                retry = 0
            except PlaywrightError:
                retry += 1

    def save(self, task_id: int, data: AccountPageData) -> AccountPageStatistic:
        db = self._database
        return AccountPageStatistic(
            collection=self.save_links(
                data.collection,
                db.item.insert_or_get,
                lambda item_id: db.account.add_item(task_id, item_id, wishlist=False),
            ),
            wishlist=self.save_links(
                data.wishlist,
                db.item.insert_or_get,
                lambda item_id: db.account.add_item(task_id, item_id, wishlist=True),
            ),
            followers=self.save_links(
                data.followers,
                db.account.insert_or_get,
                lambda follower_id: db.account.add_follower(task_id, follower_id),
            ),
            following=self.save_links(
                data.following,
                db.account.insert_or_get,
                lambda followed_id: db.account.add_follower(followed_id, task_id),
            ),
        )

    def describe(self, statistic: AccountPageStatistic) -> str:
        return " ".join(
            tab_message(s, flag=True)
            for s in (statistic.collection, statistic.wishlist, statistic.followers, statistic.following)
        )
