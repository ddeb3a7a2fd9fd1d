"""
Tests for the local key/value storage and the versioned wizard store.
"""

import json
import os
import tempfile
import unittest

from seo_wizard.errors import ConfigurationError, StorageQuotaExceeded
from seo_wizard.schemas import AppSettings, Article, Author, ImageSpec, WordPressConfig
from seo_wizard.storage import (ARTICLES_KEY, AUTHORS_KEY, SCHEMA_VERSION, SETTINGS_KEY, KeyValueStorage,
                                WizardStore)


def make_article(topic="Solar energy in Brazil", image_bytes=0, **fields):
    specs = []
    if image_bytes:
        specs.append(ImageSpec(role="hero", aspect_ratio="16:9", prompt="A solar farm",
                               rendered_url="data:image/png;base64," + "A" * image_bytes))
    return Article(topic=topic, target_keyword="solar energy brazil", image_specs=specs, **fields)


class TestKeyValueStorage(unittest.TestCase):

    def test_capacity_enforced(self):
        storage = KeyValueStorage(capacity_bytes=20)
        storage.set_item("k", "0123456789")
        with self.assertRaises(StorageQuotaExceeded):
            storage.set_item("other", "0123456789abcdef")
        self.assertEqual(storage.get_item("k"), "0123456789")

    def test_replacing_a_value_counts_only_the_new_size(self):
        storage = KeyValueStorage(capacity_bytes=20)
        storage.set_item("k", "0123456789")
        storage.set_item("k", "abcdefghijklmnop")
        self.assertEqual(storage.usage(), 17)

    def test_file_persistence(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "data", "store.json")
            storage = KeyValueStorage(path)
            storage.set_item("k", "v")
            self.assertEqual(KeyValueStorage(path).get_item("k"), "v")
            storage.remove_item("k")
            self.assertIsNone(KeyValueStorage(path).get_item("k"))


class TestWizardStore(unittest.TestCase):

    def setUp(self):
        self.storage = KeyValueStorage()
        self.store = WizardStore(self.storage)

    def test_save_and_get_newest_first(self):
        first = self.store.save_article(make_article("First"))
        second = self.store.save_article(make_article("Second"))
        self.assertEqual([a.id for a in self.store.get_articles()], [second.id, first.id])
        self.assertIsNotNone(first.updated_at)

    def test_save_replaces_existing(self):
        article = self.store.save_article(make_article())
        self.store.save_article(article.model_copy(update={"status": "published"}))
        articles = self.store.get_articles()
        self.assertEqual(len(articles), 1)
        self.assertEqual(articles[0].status, "published")

    def test_records_are_versioned(self):
        self.store.save_article(make_article())
        envelope = json.loads(self.storage.get_item(ARTICLES_KEY))
        self.assertEqual(envelope["schema_version"], SCHEMA_VERSION)
        self.assertEqual(len(envelope["data"]), 1)

    def test_legacy_bare_records_are_read(self):
        article = make_article()
        self.storage.set_item(ARTICLES_KEY, json.dumps([article.model_dump(mode="json")]))
        self.assertEqual(self.store.get_articles()[0].id, article.id)

    def test_newer_schema_version_rejected(self):
        self.storage.set_item(ARTICLES_KEY, json.dumps({"schema_version": SCHEMA_VERSION + 1, "data": []}))
        with self.assertRaises(ConfigurationError):
            self.store.get_articles()

    def test_delete_article(self):
        article = self.store.save_article(make_article())
        self.assertTrue(self.store.delete_article(article.id))
        self.assertFalse(self.store.delete_article(article.id))
        self.assertIsNone(self.store.get_article(article.id))

    def test_default_authors_seeded(self):
        authors = self.store.get_authors()
        self.assertEqual([a.id for a in authors], ["1", "2"])
        self.assertIsNotNone(self.storage.get_item(AUTHORS_KEY))
        self.assertIsNone(self.store.get_author(None))
        self.assertEqual(self.store.get_author("2").name, "Carlos Mendes")

    def test_save_and_delete_author(self):
        self.store.save_author(Author(id="3", name="Rita Lopes", expertise=["Energy"]))
        self.assertEqual(len(self.store.get_authors()), 3)
        self.assertTrue(self.store.delete_author("3"))
        self.assertFalse(self.store.delete_author("3"))

    def test_settings_round_trip(self):
        self.assertEqual(self.store.get_settings(), AppSettings())
        settings = AppSettings(
            default_site_url="https://blog.example.com",
            wordpress=WordPressConfig(endpoint="https://blog.example.com", username="admin",
                                      application_password="abcd efgh"),
        )
        self.store.save_settings(settings)
        self.assertEqual(self.store.get_settings(), settings)
        self.assertIsNotNone(self.storage.get_item(SETTINGS_KEY))

    def test_stats(self):
        self.store.save_article(make_article("A", status="completed", seo_score=95))
        self.store.save_article(make_article("B", status="published", seo_score=95))
        self.store.save_article(make_article("C"))
        self.assertEqual(self.store.stats(), {"total": 3, "completed": 2, "avg_seo": 95, "hours_saved": 8})

    def test_stats_empty(self):
        self.assertEqual(self.store.stats(), {"total": 0, "completed": 0, "avg_seo": 0, "hours_saved": 0})


class TestStorageDegradation(unittest.TestCase):

    def test_images_of_other_articles_dropped_first(self):
        store = WizardStore(KeyValueStorage(capacity_bytes=12000))
        first = store.save_article(make_article("First", image_bytes=7000))
        second = store.save_article(make_article("Second", image_bytes=7000))

        self.assertTrue(second.image_specs[0].rendered_url.startswith("data:"))
        stored = {a.id: a for a in store.get_articles()}
        self.assertEqual(stored[first.id].image_specs[0].rendered_url, "")
        self.assertTrue(stored[second.id].image_specs[0].rendered_url.startswith("data:"))

    def test_oldest_articles_pruned(self):
        storage = KeyValueStorage()
        store = WizardStore(storage)
        saved = [store.save_article(make_article(f"Article {i}")) for i in range(6)]
        storage.capacity_bytes = storage.usage() + 200

        newest = store.save_article(make_article("Newest"))

        ids = [a.id for a in store.get_articles()]
        self.assertEqual(len(ids), 6)
        self.assertEqual(ids[0], newest.id)
        self.assertNotIn(saved[0].id, ids)

    def test_own_images_dropped_last(self):
        storage = KeyValueStorage()
        store = WizardStore(storage)
        for i in range(5):
            store.save_article(make_article(f"Article {i}"))
        storage.capacity_bytes = storage.usage() + 1500

        saved = store.save_article(make_article("With image", image_bytes=3000))

        self.assertEqual(saved.image_specs[0].rendered_url, "")
        self.assertEqual(store.get_article(saved.id).image_specs[0].rendered_url, "")
        self.assertEqual(len(store.get_articles()), 5)

    def test_gives_up_when_nothing_fits(self):
        store = WizardStore(KeyValueStorage(capacity_bytes=100))
        with self.assertRaises(StorageQuotaExceeded):
            store.save_article(make_article())


if __name__ == '__main__':
    unittest.main()
