"""Tests for data model classes."""

import dataclasses
import unittest

from bandspider.models import AccountPageData, ItemPageData, QueueEvent, TabData, TabStatistic, UrlType


class TestQueueEvent(unittest.TestCase):
    """Verify QueueEvent creation and immutability."""

    def test_event_is_immutable(self):
        """Frozen dataclass should raise on attribute assignment."""
        event = QueueEvent(id=1, url="https://bandcamp.com/somefan", type=UrlType.ACCOUNT)
        with self.assertRaises(dataclasses.FrozenInstanceError):
            event.url = "https://bandcamp.com/other"

    def test_url_type_is_a_string(self):
        self.assertEqual(UrlType("item"), UrlType.ITEM)
        self.assertEqual(UrlType.ACCOUNT.value, "account")


class TestPageData(unittest.TestCase):
    """Verify partial errors are collected from tab data."""

    def test_account_errors(self):
        error = ValueError("bad count")
        data = AccountPageData(
            url="https://bandcamp.com/somefan",
            collection=TabData(data=["https://x.bandcamp.com/album/y"], total=1),
            wishlist=TabData(error=error),
            followers=TabData(),
            following=TabData(),
        )
        self.assertEqual(data.errors, [error])

    def test_item_defaults(self):
        data = ItemPageData(url="https://x.bandcamp.com/album/y", accounts=TabData(), tags=TabData(), release_date=TabData())
        self.assertIsNone(data.album.data)
        self.assertIsNone(data.tracks.data)
        self.assertEqual(data.errors, [])

    def test_tab_statistic_defaults(self):
        stat = TabStatistic()
        self.assertEqual((stat.total, stat.new_records, stat.new_relations), (0, 0, 0))
        self.assertTrue(stat.all_scraped)


if __name__ == "__main__":
    unittest.main()
