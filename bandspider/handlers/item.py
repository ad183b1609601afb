from __future__ import annotations

import re
from datetime import datetime
from typing import List, Optional
from urllib.parse import urljoin

from playwright.sync_api import Page

from ..models import ItemPageData, ItemPageStatistic, TabData, TabStatistic, UrlType
from ..urls import is_account_url, is_album_url, is_track_url, original_url
from .base import BasePageHandler, tab_message, unique

NOT_FOUND_TITLE = "Sorry, that something isn’t here."
RELEASE_DATE_RE = re.compile(r"(?:released|releases) (\w+ \d{1,2}, \d{4})")
RELEASE_DATE_FORMAT = "%B %d, %Y"


def parse_release_date(text: str) -> Optional[datetime]:
    match = RELEASE_DATE_RE.search(text or "")
    if not match:
        return None
    return datetime.strptime(match.group(1), RELEASE_DATE_FORMAT)


class ItemHandler(BasePageHandler):
    """Reads an album or track page: supporters, tags, release date, album/track links, cover."""

    url_type = UrlType.ITEM

    def is_missing_page(self, page: Page) -> bool:
        heading = page.query_selector("h2")
        if heading is None:
            return False
        return (heading.text_content() or "").strip() == NOT_FOUND_TITLE

    def read(self, page: Page, url: str) -> ItemPageData:
        data = ItemPageData(
            url=url,
            accounts=self.read_tab(lambda: self._read_accounts(page)),
            tags=self.read_tab(lambda: self._read_tags(page)),
            release_date=self.read_tab(lambda: self._read_release_date(page)),
            image_url=self.read_tab(lambda: self._read_image(page)),
        )
        if is_track_url(url):
            data.album = self.read_tab(lambda: self._read_album(page, url))
        if is_album_url(url):
            data.tracks = self.read_tab(lambda: self._read_tracks(page, url))
        return data

    def _read_accounts(self, page: Page) -> TabData[List[str]]:
        hrefs = page.eval_on_selector_all("a.fan.pic", "els => els.map(e => e.href)")
        urls = unique(original_url(h) for h in hrefs if is_account_url(h))
        return TabData(data=urls, total=len(urls))

    def _read_tags(self, page: Page) -> TabData[List[str]]:
        names = page.eval_on_selector_all("a.tag", "els => els.map(e => e.textContent)")
        tags = unique((n or "").strip().lower() for n in names)
        return TabData(data=tags, total=len(tags))

    def _read_release_date(self, page: Page) -> TabData[datetime]:
        credits = page.query_selector(".tralbumData.tralbum-credits")
        if credits is None:
            return TabData()
        date = parse_release_date(credits.text_content() or "")
        return TabData(data=date, total=1 if date else 0)

    def _read_album(self, page: Page, url: str) -> TabData[str]:
        link = page.query_selector("#buyAlbumLink")
        href = link.get_attribute("href") if link is not None else None
        if not href:
            return TabData()
        album = original_url(urljoin(url, href))
        if not is_album_url(album):
            return TabData()
        return TabData(data=album, total=1)

    def _read_tracks(self, page: Page, url: str) -> TabData[List[str]]:
        hrefs = page.eval_on_selector_all(
            "table.track_list#track_table a", "els => els.map(e => e.getAttribute('href'))"
        )
        tracks = unique(original_url(urljoin(url, h)) for h in hrefs if h)
        tracks = [t for t in tracks if is_track_url(t)]
        return TabData(data=tracks, total=len(tracks))

    def _read_image(self, page: Page) -> TabData[str]:
        img = page.query_selector("#tralbumArt img")
        src = img.get_attribute("src") if img is not None else None
        if not src:
            return TabData()
        return TabData(data=src, total=1)

    def save(self, task_id: int, data: ItemPageData) -> ItemPageStatistic:
        db = self._database

        accounts = self.save_links(
            data.accounts,
            db.account.insert_or_get,
            lambda account_id: db.account.add_item(account_id, task_id),
        )
        tags = self.save_links(
            data.tags,
            db.tag.insert_or_get,
            lambda tag_id: db.tag.add_item(tag_id, task_id),
        )
        tracks = self.save_links(
            data.tracks,
            db.item.insert_or_get,
            lambda track_id: db.item.update_track_album(track_id, task_id),
        )

        album = TabStatistic(total=0)
        if data.album.data:
            result = db.item.insert_or_get(data.album.data)
            linked = db.item.update_track_album(task_id, result.entity.id)
            album = TabStatistic(total=1, new_records=int(result.is_inserted), new_relations=int(linked))

        release_date = TabStatistic(total=0)
        if data.release_date.data:
            updated = db.item.update_release_date(task_id, data.release_date.data)
            release_date = TabStatistic(total=1, new_relations=int(updated))

        image = TabStatistic(total=0)
        if data.image_url.data:
            updated = db.item.update_image_url(task_id, data.image_url.data)
            image = TabStatistic(total=1, new_relations=int(updated))

        return ItemPageStatistic(
            accounts=accounts,
            tags=tags,
            release_date=release_date,
            album=album,
            tracks=tracks,
            image=image,
        )

    def describe(self, statistic: ItemPageStatistic) -> str:
        return " ".join(
            [
                tab_message(statistic.accounts),
                tab_message(statistic.tags),
                "date" if statistic.release_date.new_relations else "----",
                tab_message(statistic.album) if statistic.album.total else "",
                tab_message(statistic.tracks) if statistic.tracks.total else "",
            ]
        ).strip()
