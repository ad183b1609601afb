"""Tests for the ProcessingQueue class."""

import unittest

from bandspider.models import UrlType
from bandspider.queue import ProcessingQueue

from fakes import TempDatabase

ALBUM = "https://x.bandcamp.com/album/y"
FAN = "https://bandcamp.com/somefan"


class QueueTestCase(unittest.TestCase):
    def setUp(self):
        self.tmp = TempDatabase()
        self.db = self.tmp.db

    def tearDown(self):
        self.tmp.cleanup()


class TestEnqueue(QueueTestCase):
    """Verify dedup, shape filtering and the capacity bound."""

    def test_enqueue_is_idempotent(self):
        queue = ProcessingQueue(self.db)
        self.assertTrue(queue.enqueue(ALBUM))
        self.assertFalse(queue.enqueue(ALBUM))
        self.assertFalse(queue.enqueue(ALBUM + "?from=search"))
        self.assertEqual(queue.size, 1)

    def test_rejects_unknown_shapes(self):
        queue = ProcessingQueue(self.db)
        self.assertFalse(queue.enqueue("https://example.com/page"))
        self.assertFalse(queue.enqueue("https://bandcamp.com/discover"))
        self.assertFalse(queue.enqueue(""))
        self.assertEqual(queue.size, 0)

    def test_capacity_holds_under_burst(self):
        queue = ProcessingQueue(self.db, capacity=10)
        urls = [f"https://x.bandcamp.com/album/a{i}" for i in range(50)]
        added = queue.enqueue_batch(urls)
        self.assertEqual(added, 10)
        self.assertEqual(queue.size, 10)
        self.assertFalse(queue.enqueue("https://x.bandcamp.com/album/late"))

    def test_seeds_are_capped_and_deduplicated(self):
        seeds = [ALBUM, ALBUM, FAN] + [f"https://x.bandcamp.com/track/t{i}" for i in range(10)]
        queue = ProcessingQueue(self.db, urls=seeds, capacity=5)
        self.assertEqual(queue.size, 5)


class TestDequeue(QueueTestCase):
    """Verify dequeue materialises eligible tasks in FIFO order."""

    def test_fifo_order(self):
        queue = ProcessingQueue(self.db)
        queue.enqueue_batch([ALBUM, FAN])
        first = queue.dequeue()
        second = queue.dequeue()
        self.assertEqual((first.url, first.type), (ALBUM, UrlType.ITEM))
        self.assertEqual((second.url, second.type), (FAN, UrlType.ACCOUNT))
        self.assertIsNone(queue.dequeue())

    def test_dequeue_creates_task(self):
        queue = ProcessingQueue(self.db, urls=[ALBUM])
        event = queue.dequeue()
        self.assertEqual(self.db.item.get_by_url(ALBUM).id, event.id)

    def test_skips_busy_processed_and_failed(self):
        busy = self.db.item.insert_or_get("https://x.bandcamp.com/album/busy").entity
        done = self.db.item.insert_or_get("https://x.bandcamp.com/album/done").entity
        failing = self.db.item.insert_or_get("https://x.bandcamp.com/album/failing").entity
        self.db.item.update_busy(busy.id, True)
        self.db.item.update_processing_date(done.id)
        for _ in range(4):
            self.db.item.update_failed(failing.id)

        queue = ProcessingQueue(self.db, urls=[busy.url, done.url, failing.url], max_failed_count=3)
        self.assertIsNone(queue.dequeue())
        self.assertIsNone(queue.dequeue())
        self.assertIsNone(queue.dequeue())
        self.assertEqual(queue.size, 0)

    def test_failed_at_ceiling_is_still_eligible(self):
        task = self.db.item.insert_or_get(ALBUM).entity
        for _ in range(3):
            self.db.item.update_failed(task.id)
        queue = ProcessingQueue(self.db, urls=[ALBUM], max_failed_count=3)
        self.assertIsNotNone(queue.dequeue())

    def test_unknown_seed_is_removed_from_storage(self):
        bogus = "https://x.bandcamp.com/merch"
        self.db.item.insert_or_get(bogus)
        queue = ProcessingQueue(self.db, urls=[bogus])
        self.assertIsNone(queue.dequeue())
        self.assertIsNone(self.db.item.get_by_url(bogus))


class TestRefill(QueueTestCase):
    """Verify refill pulls only unprocessed tasks of one kind."""

    def test_refill_from_repository(self):
        self.db.item.insert_or_get(ALBUM)
        done = self.db.item.insert_or_get("https://x.bandcamp.com/album/done").entity
        self.db.item.update_processing_date(done.id)
        self.db.account.insert_or_get(FAN)

        queue = ProcessingQueue(self.db)
        self.assertEqual(queue.refill(UrlType.ITEM, limit=400), 1)
        self.assertEqual(queue.dequeue().url, ALBUM)
        self.assertEqual(queue.refill(UrlType.ITEM, limit=400), 1)
        self.assertEqual(queue.size, 1)

    def test_refill_purges_malformed_rows(self):
        """Unrecognised rows are deleted so the good row behind them is queued."""
        bad = [f"https://x.bandcamp.com/album/a{i}/extra" for i in range(5)]
        for url in bad:
            self.db.item.insert_or_get(url)
        self.db.item.insert_or_get("https://x.bandcamp.com/album/good")

        queue = ProcessingQueue(self.db)
        self.assertEqual(queue.refill(UrlType.ITEM, limit=5), 1)
        self.assertEqual(queue.dequeue().url, "https://x.bandcamp.com/album/good")
        for url in bad:
            self.assertIsNone(self.db.item.get_by_url(url))

    def test_refill_removes_rows_of_the_other_kind(self):
        self.db.item.insert_or_get(FAN)
        queue = ProcessingQueue(self.db)
        self.assertEqual(queue.refill(UrlType.ITEM, limit=10), 0)
        self.assertIsNone(self.db.item.get_by_url(FAN))


if __name__ == "__main__":
    unittest.main()
