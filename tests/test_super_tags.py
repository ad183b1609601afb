"""Tests for grouping tags under super tags."""

import unittest

from sqlalchemy import select

from bandspider.entities import TagToSuperTagEntity
from bandspider.super_tags import SuperTagUpdate, normalize_tag_name

from fakes import TempDatabase


class SuperTagTestCase(unittest.TestCase):
    def setUp(self):
        self.tmp = TempDatabase()
        self.db = self.tmp.db

    def tearDown(self):
        self.tmp.cleanup()

    def links(self):
        with self.db._sessions() as session:
            rows = session.scalars(select(TagToSuperTagEntity)).all()
            return {(r.tag_id, r.super_tag_id) for r in rows}


class TestNormalize(unittest.TestCase):
    def test_strips_separators_and_case(self):
        self.assertEqual(normalize_tag_name("Hip_Hop"), "hiphop")
        self.assertEqual(normalize_tag_name("post-rock"), "postrock")
        self.assertEqual(normalize_tag_name(""), "")


class TestSuperTagRepository(SuperTagTestCase):
    """Verify super tag storage and idempotent linking."""

    def test_insert_or_get_lowercases(self):
        first = self.db.super_tag.insert_or_get(" Jazz ")
        second = self.db.super_tag.insert_or_get("jazz")
        self.assertTrue(first.is_inserted)
        self.assertFalse(second.is_inserted)
        self.assertEqual([t.name for t in self.db.super_tag.all()], ["jazz"])

    def test_add_tag_is_idempotent(self):
        super_tag = self.db.super_tag.insert_or_get("jazz").entity
        tag = self.db.tag.insert_or_get("free jazz").entity
        self.assertTrue(self.db.super_tag.add_tag(super_tag.id, tag.id))
        self.assertFalse(self.db.super_tag.add_tag(super_tag.id, tag.id))
        self.assertEqual(self.links(), {(tag.id, super_tag.id)})

    def test_tag_pages_in_id_order(self):
        names = [f"tag{i}" for i in range(5)]
        for name in names:
            self.db.tag.insert_or_get(name)
        pages = [[t.name for t in self.db.tag.get_page(offset, 2)] for offset in (0, 2, 4, 6)]
        self.assertEqual(pages, [names[:2], names[2:4], names[4:], []])


class TestSuperTagUpdate(SuperTagTestCase):
    """Verify fuzzy linking of stored tags."""

    def setUp(self):
        super().setUp()
        self.update = SuperTagUpdate(self.db, page_size=2)
        self.update.load(["electronic", "hip-hop", "jazz", "  "])

    def test_load_skips_existing_and_blank(self):
        self.assertEqual(self.update.load(["Jazz", "ambient"]), 1)
        self.assertEqual(len(self.db.super_tag.all()), 4)

    def test_links_close_matches(self):
        electronica = self.db.tag.insert_or_get("electronica").entity
        hip_hop = self.db.tag.insert_or_get("hip_hop").entity
        self.db.tag.insert_or_get("polka")
        by_name = {t.name: t.id for t in self.db.super_tag.all()}

        summary = self.update.run()

        self.assertEqual(summary.tags, 3)
        self.assertEqual(summary.unmatched, 1)
        links = self.links()
        self.assertIn((electronica.id, by_name["electronic"]), links)
        self.assertIn((hip_hop.id, by_name["hip-hop"]), links)
        self.assertEqual(summary.linked, len(links))

    def test_second_run_links_nothing_new(self):
        self.db.tag.insert_or_get("jazz")
        self.assertEqual(self.update.run().linked, 1)
        self.assertEqual(self.update.run().linked, 0)

    def test_match_keeps_best_first_and_limit(self):
        for name in ("jazzy", "jazz-rock", "jazz_fusion"):
            self.db.super_tag.insert_or_get(name)
        matches = self.update.match("jazz", self.db.super_tag.all())
        self.assertLessEqual(len(matches), 3)
        self.assertEqual(matches[0][0].name, "jazz")
        scores = [score for _, score in matches]
        self.assertEqual(scores, sorted(scores, reverse=True))

    def test_no_super_tags(self):
        self.tmp.cleanup()
        self.tmp = TempDatabase()
        self.db = self.tmp.db
        self.db.tag.insert_or_get("jazz")
        summary = SuperTagUpdate(self.db).run()
        self.assertEqual((summary.tags, summary.linked), (0, 0))


if __name__ == "__main__":
    unittest.main()
