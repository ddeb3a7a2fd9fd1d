"""
Post-generation article mutations: image renders and edits, manual video search,
draft saves, deletion and publishing. Every mutation regenerates the technical
SEO payload and re-persists the article.
"""

import logging
from typing import Dict, Optional

from .clients.wordpress import WordPressClient
from .errors import ArticleNotFound, InvalidInputError
from .image_generator import ImageRenderer
from .schemas import Article
from .seo_system import SchemaMarkupGenerator
from .storage import WizardStore
from .utils.html_fragments import inject_video
from .video import VideoResolver

logger = logging.getLogger(__name__)


class ArticleEditor:
    """Lifecycle operations on stored articles."""

    def __init__(
        self,
        store: WizardStore,
        schema: SchemaMarkupGenerator,
        renderer: Optional[ImageRenderer] = None,
        video_resolver: Optional[VideoResolver] = None,
        publisher: Optional[WordPressClient] = None,
    ):
        self.store = store
        self.schema = schema
        self.renderer = renderer
        self.video_resolver = video_resolver
        self.publisher = publisher

    def _load(self, article_id: str) -> Article:
        article = self.store.get_article(article_id)
        if article is None:
            raise ArticleNotFound(f"Article not found: {article_id}")
        return article

    def _spec_index(self, article: Article, index: int) -> int:
        if not 0 <= index < len(article.image_specs):
            raise InvalidInputError(f"Image index {index} out of range (0-{len(article.image_specs) - 1})")
        return index

    def _require(self, component, name: str):
        if component is None:
            raise InvalidInputError(f"{name} is not configured")
        return component

    def save_draft(self, article: Article) -> Article:
        """Regenerate the derived payload and persist."""
        author = self.store.get_author(article.author_id)
        article = article.model_copy(update={"technical_seo": self.schema.build(article, author)})
        return self.store.save_article(article)

    def render_image(self, article_id: str, index: int, model: Optional[str] = None,
                     resolution: Optional[str] = None) -> Article:
        renderer = self._require(self.renderer, "Image rendering")
        article = self._load(article_id)
        index = self._spec_index(article, index)
        spec = article.image_specs[index]

        rendered = renderer.render(
            spec.prompt, spec.aspect_ratio,
            model or article.image_model,
            resolution or article.image_resolution,
        )
        specs = list(article.image_specs)
        specs[index] = spec.model_copy(update={
            "rendered_url": rendered.url,
            "model_used": rendered.model_used,
            "resolution_used": rendered.resolution_used,
        })
        logger.info(f"🖼️ Rendered image {index} ({spec.role}) for article {article_id}")
        return self.save_draft(article.model_copy(update={"image_specs": specs}))

    def edit_image(self, article_id: str, index: int, instruction: str) -> Article:
        renderer = self._require(self.renderer, "Image rendering")
        article = self._load(article_id)
        index = self._spec_index(article, index)
        spec = article.image_specs[index]
        if not spec.rendered_url:
            raise InvalidInputError(f"Image {index} has not been rendered yet")

        specs = list(article.image_specs)
        specs[index] = spec.model_copy(update={"rendered_url": renderer.edit(spec.rendered_url, instruction)})
        logger.info(f"🎨 Edited image {index} ({spec.role}) for article {article_id}")
        return self.save_draft(article.model_copy(update={"image_specs": specs}))

    def search_video(self, article_id: str, query: Optional[str] = None) -> Article:
        """Manual video search: typed query, else the stored query, title, topic or keyword."""
        resolver = self._require(self.video_resolver, "Video search")
        article = self._load(article_id)
        query = (query or "").strip() or article.video_query or article.title or article.topic or article.target_keyword

        video = resolver.resolve(query)
        article = article.model_copy(update={
            "video": video,
            "video_query": query,
            "html_content": inject_video(article.html_content or "", video),
        })
        return self.save_draft(article)

    def delete(self, article_id: str) -> bool:
        deleted = self.store.delete_article(article_id)
        if deleted:
            logger.info(f"🗑️ Deleted article {article_id}")
        return deleted

    def publish(self, article_id: str) -> Dict:
        """Send the article to WordPress as a draft post and mark it published."""
        publisher = self._require(self.publisher, "WordPress publishing")
        article = self._load(article_id)
        if article.technical_seo is None:
            article = self.save_draft(article)

        result = publisher.publish_article(article)
        self.store.save_article(article.model_copy(update={"status": "published"}))
        return result
