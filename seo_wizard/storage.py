"""
Local persistence for articles, authors and settings.

KeyValueStorage mimics browser local storage: string keys, string values and a
hard byte capacity. WizardStore keeps versioned JSON records on top of it and
degrades gracefully when an article no longer fits.
"""

import json
import logging
import os
from pathlib import Path
from threading import Lock
from typing import Dict, List, Optional

from pydantic import ValidationError

from .errors import ConfigurationError, StorageQuotaExceeded
from .schemas import AppSettings, Article, Author, utc_now_iso

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1
DEFAULT_CAPACITY_BYTES = 5 * 1024 * 1024
MIN_ARTICLES_KEPT = 5

ARTICLES_KEY = "seo_wizard_articles"
AUTHORS_KEY = "seo_wizard_authors"
SETTINGS_KEY = "seo_wizard_settings"

DEFAULT_AUTHORS = [
    {
        "id": "1",
        "name": "Dr. Ana Silva",
        "bio": "Technology and AI specialist with 10 years of experience.",
        "photo_url": "https://i.pravatar.cc/150?u=a042581f4e29026024d",
        "expertise": ["Tech", "AI"],
    },
    {
        "id": "2",
        "name": "Carlos Mendes",
        "bio": "Senior journalist focused on the digital economy.",
        "photo_url": "https://i.pravatar.cc/150?u=a042581f4e29026704d",
        "expertise": ["Finance", "Crypto"],
    },
]


class KeyValueStorage:
    """String key/value store with a byte capacity, optionally backed by a JSON file."""

    def __init__(self, path: Optional[str] = None, capacity_bytes: int = DEFAULT_CAPACITY_BYTES):
        self.path = Path(path) if path else None
        self.capacity_bytes = capacity_bytes
        self._lock = Lock()
        self._data: Dict[str, str] = {}
        if self.path and self.path.exists():
            with open(self.path, 'r', encoding='utf-8') as f:
                self._data = json.load(f)
            logger.info(f"Loaded storage from {self.path} ({len(self._data)} keys)")

    @staticmethod
    def _entry_size(key: str, value: str) -> int:
        return len(key.encode('utf-8')) + len(value.encode('utf-8'))

    def usage(self) -> int:
        return sum(self._entry_size(k, v) for k, v in self._data.items())

    def get_item(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set_item(self, key: str, value: str):
        with self._lock:
            current = self._entry_size(key, self._data[key]) if key in self._data else 0
            projected = self.usage() - current + self._entry_size(key, value)
            if projected > self.capacity_bytes:
                raise StorageQuotaExceeded(
                    f"Storage capacity exceeded ({projected} > {self.capacity_bytes} bytes)"
                )
            self._data[key] = value
            self._flush()

    def remove_item(self, key: str):
        with self._lock:
            if self._data.pop(key, None) is not None:
                self._flush()

    def keys(self) -> List[str]:
        return list(self._data)

    def _flush(self):
        if not self.path:
            return
        if self.path.parent and not self.path.parent.exists():
            self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        with open(tmp_path, 'w', encoding='utf-8') as f:
            json.dump(self._data, f, ensure_ascii=False)
        os.replace(tmp_path, self.path)


def _strip_data_images(article: Article, only_data_urls: bool = True) -> Article:
    specs = [
        spec.model_copy(update={"rendered_url": ""})
        if spec.rendered_url and (not only_data_urls or spec.rendered_url.startswith("data:"))
        else spec
        for spec in article.image_specs
    ]
    return article.model_copy(update={"image_specs": specs})


class WizardStore:
    """Articles (newest first), authors and settings, wrapped with a schema version."""

    def __init__(self, storage: Optional[KeyValueStorage] = None):
        self.storage = storage or KeyValueStorage()

    # --- envelope helpers ---

    def _read(self, key: str):
        raw = self.storage.get_item(key)
        if raw is None:
            return None
        try:
            payload = json.loads(raw)
        except ValueError as e:
            logger.error(f"Error reading '{key}' from storage: {e}")
            return None

        # Records written before versioning are bare JSON values
        if not isinstance(payload, dict) or "schema_version" not in payload:
            return payload
        version = payload.get("schema_version")
        if not isinstance(version, int) or version > SCHEMA_VERSION:
            raise ConfigurationError(
                f"'{key}' was written by a newer version (schema {version}); upgrade seo-wizard."
            )
        return payload.get("data")

    def _write(self, key: str, data):
        self.storage.set_item(key, json.dumps({"schema_version": SCHEMA_VERSION, "data": data}, ensure_ascii=False))

    # --- articles ---

    def get_articles(self) -> List[Article]:
        articles = []
        for record in self._read(ARTICLES_KEY) or []:
            try:
                articles.append(Article.model_validate(record))
            except ValidationError as e:
                logger.warning(f"Skipping unreadable article record: {e.error_count()} errors")
        return articles

    def get_article(self, article_id: str) -> Optional[Article]:
        return next((a for a in self.get_articles() if a.id == article_id), None)

    def _try_save(self, articles: List[Article]) -> bool:
        try:
            self._write(ARTICLES_KEY, [a.model_dump(mode="json") for a in articles])
            return True
        except StorageQuotaExceeded:
            return False

    def save_article(self, article: Article) -> Article:
        """
        Insert or replace an article, degrading stored data if capacity runs out.

        Order: strip data-URL images from the other articles, prune the oldest
        articles while more than five remain, strip this article's images, give up.

        Returns:
            The article as persisted (images may have been stripped).
        """
        article = article.model_copy(update={"updated_at": utc_now_iso()})
        articles = self.get_articles()
        index = next((i for i, a in enumerate(articles) if a.id == article.id), None)
        if index is None:
            articles.insert(0, article)
        else:
            articles[index] = article

        if self._try_save(articles):
            return article

        logger.warning("⚠️ Storage quota exceeded. Starting cleanup strategy...")

        articles = [a if a.id == article.id else _strip_data_images(a) for a in articles]
        if self._try_save(articles):
            logger.info("Cleanup success: removed embedded images from older articles.")
            return article

        original_length = len(articles)
        while len(articles) > MIN_ARTICLES_KEPT:
            oldest = next(i for i in range(len(articles) - 1, -1, -1) if articles[i].id != article.id)
            articles.pop(oldest)
            if self._try_save(articles):
                logger.info(f"Cleanup success: deleted {original_length - len(articles)} oldest articles.")
                return article

        stripped = _strip_data_images(article, only_data_urls=False)
        articles = [stripped if a.id == article.id else a for a in articles]
        if self._try_save(articles):
            logger.warning(
                "⚠️ Storage limit reached: this article's images were not saved to preserve its text. "
                "Export the images before closing."
            )
            return stripped

        raise StorageQuotaExceeded(
            "Storage is full: the article could not be saved. Delete some articles and try again."
        )

    def delete_article(self, article_id: str) -> bool:
        articles = self.get_articles()
        remaining = [a for a in articles if a.id != article_id]
        if len(remaining) == len(articles):
            return False
        self._write(ARTICLES_KEY, [a.model_dump(mode="json") for a in remaining])
        return True

    # --- authors ---

    def get_authors(self) -> List[Author]:
        records = self._read(AUTHORS_KEY)
        if records is None:
            authors = [Author.model_validate(a) for a in DEFAULT_AUTHORS]
            self._write(AUTHORS_KEY, [a.model_dump(mode="json") for a in authors])
            return authors
        return [Author.model_validate(a) for a in records]

    def get_author(self, author_id: Optional[str]) -> Optional[Author]:
        if not author_id:
            return None
        return next((a for a in self.get_authors() if a.id == author_id), None)

    def save_author(self, author: Author) -> Author:
        authors = self.get_authors()
        index = next((i for i, a in enumerate(authors) if a.id == author.id), None)
        if index is None:
            authors.append(author)
        else:
            authors[index] = author
        self._write(AUTHORS_KEY, [a.model_dump(mode="json") for a in authors])
        return author

    def delete_author(self, author_id: str) -> bool:
        authors = self.get_authors()
        remaining = [a for a in authors if a.id != author_id]
        self._write(AUTHORS_KEY, [a.model_dump(mode="json") for a in remaining])
        return len(remaining) != len(authors)

    # --- settings ---

    def get_settings(self) -> AppSettings:
        record = self._read(SETTINGS_KEY)
        if record is None:
            return AppSettings()
        try:
            return AppSettings.model_validate(record)
        except ValidationError as e:
            logger.error(f"Error reading settings: {e.error_count()} errors, using defaults")
            return AppSettings()

    def save_settings(self, settings: AppSettings):
        self._write(SETTINGS_KEY, settings.model_dump(mode="json"))

    # --- stats ---

    def stats(self) -> Dict:
        articles = self.get_articles()
        completed = [a for a in articles if a.status in ("completed", "published")]
        scores = [a.seo_score or (90 if a.status == "completed" else 0) for a in articles]
        scores = [s for s in scores if s > 0]
        return {
            "total": len(articles),
            "completed": len(completed),
            "avg_seo": round(sum(scores) / len(scores)) if scores else 0,
            "hours_saved": len(completed) * 4,
        }
