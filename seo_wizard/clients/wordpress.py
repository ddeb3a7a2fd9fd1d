import base64
import logging
import requests
from typing import Dict, List, Optional, Tuple

from ..errors import ConfigurationError, PublishAuthError, PublishConnectionError, PublishError
from ..schemas import Article, WordPressConfig
from .gemini import InlineImage

logger = logging.getLogger(__name__)


def normalize_api_base(endpoint: str) -> str:
    """'https://site.com/' -> 'https://site.com/wp-json' (kept as-is when wp-json is present)."""
    base = (endpoint or "").strip().rstrip('/')
    if "wp-json" not in base:
        base = f"{base}/wp-json"
    return base


class WordPressClient:
    """Client for the WordPress REST API (application-password Basic auth)."""

    def __init__(self, endpoint: Optional[str], username: Optional[str], application_password: Optional[str],
                 session: Optional[requests.Session] = None, timeout: int = 30):
        if not all([endpoint, username, application_password]):
            raise ConfigurationError(
                "WordPress configuration incomplete. Set the endpoint, username and application "
                "password in the settings (or WP_URL, WP_USER, WP_APP_PASSWORD)."
            )
        self.api_base = normalize_api_base(endpoint)
        self.session = session or requests.Session()
        self.timeout = timeout

        auth = f"{username}:{application_password}"
        self.token = base64.b64encode(auth.encode()).decode('utf-8')
        self.headers = {
            "Authorization": f"Basic {self.token}"
        }

    @classmethod
    def from_config(cls, config: WordPressConfig, **kwargs) -> "WordPressClient":
        return cls(config.endpoint, config.username, config.application_password, **kwargs)

    def _request(self, method: str, path: str, **kwargs) -> requests.Response:
        url = f"{self.api_base}/{path.lstrip('/')}"
        headers = {**self.headers, **kwargs.pop("headers", {})}
        timeout = kwargs.pop("timeout", self.timeout)
        try:
            response = self.session.request(method, url, headers=headers, timeout=timeout, **kwargs)
        except requests.RequestException as e:
            raise PublishConnectionError(
                f"Connection error: check that the site URL is correct and that the site accepts external requests (CORS). ({e})"
            ) from e

        if response.status_code in (401, 403):
            raise PublishAuthError(
                "Permission error: check your WordPress username and application password.",
                status_code=response.status_code
            )
        if not response.ok:
            try:
                message = response.json().get("message")
            except ValueError:
                message = None
            raise PublishError(message or f"HTTP error: {response.status_code}", status_code=response.status_code)
        return response

    def fetch_terms(self, taxonomy: str = "tags", params: Dict = None) -> List[Dict]:
        params = params or {"per_page": 100}
        return self._request("GET", f"wp/v2/{taxonomy}", params=params, timeout=20).json()

    def create_term(self, name: str, taxonomy: str = "tags") -> Optional[int]:
        try:
            response = self._request("POST", f"wp/v2/{taxonomy}", json={"name": name}, timeout=20)
            return response.json().get('id')
        except PublishError as e:
            if e.status_code != 400:  # 400: term might already exist
                raise
        existing = self.fetch_terms(taxonomy, params={"search": name})
        for term in existing:
            if term.get('name', '').lower() == name.lower():
                return term['id']
        return None

    def ensure_terms(self, names: List[str], taxonomy: str = "tags") -> List[int]:
        """Resolve term names to IDs, creating missing ones."""
        ids = []
        for name in names:
            term_id = self.create_term(name, taxonomy)
            if term_id is not None and term_id not in ids:
                ids.append(term_id)
        return ids

    def upload_media(self, data: bytes, filename: str, mime_type: str = "image/png") -> Tuple[int, Optional[str]]:
        """Upload raw image bytes; returns (attachment ID, source URL)."""
        response = self._request(
            "POST", "wp/v2/media",
            headers={
                "Content-Type": mime_type,
                "Content-Disposition": f'attachment; filename="{filename}"'
            },
            data=data,
            timeout=60
        )
        res_data = response.json()
        logger.info(f"✅ Media uploaded to WordPress (ID: {res_data.get('id')})")
        return res_data.get('id'), res_data.get('source_url')

    def update_media(self, media_id: int, alt_text: str = "", title: str = "", description: str = ""):
        self._request("POST", f"wp/v2/media/{media_id}",
                      json={"alt_text": alt_text, "title": title, "description": description})

    def create_post(self, data: Dict) -> Dict:
        response = self._request("POST", "wp/v2/posts", json=data)
        res_data = response.json()
        return {"id": res_data.get('id'), "link": res_data.get('link')}

    def _upload_hero(self, article: Article) -> Optional[int]:
        hero = next((s for s in article.image_specs if s.role == "hero" and s.rendered_url.startswith("data:")), None)
        if hero is None:
            return None
        try:
            image = InlineImage.from_data_url(hero.rendered_url)
            extension = image.mime_type.split('/')[-1].replace('jpeg', 'jpg')
            filename = f"{hero.filename or f'article-{article.id}-hero'}.{extension}"
            media_id, _ = self.upload_media(image.data, filename, image.mime_type)
            if hero.alt_text:
                self.update_media(media_id, hero.alt_text, hero.title or article.title or "", hero.caption)
            return media_id
        except (ValueError, PublishError) as e:
            # The post is still created without a featured image
            logger.warning(f"Hero image upload failed: {e}")
            return None

    def publish_article(self, article: Article) -> Dict:
        """
        Create a draft post for an article.

        Args:
            article: Completed article with its technical SEO payload

        Returns:
            {'id': post ID, 'link': preview link}
        """
        if article.technical_seo is None:
            raise PublishError("Article has no technical SEO payload; regenerate it before publishing.")

        payload = dict(article.technical_seo.cms_post)
        payload["status"] = "draft"
        payload["title"] = payload.get("title") or article.topic

        tag_names = payload.pop("tags", [])
        if tag_names:
            try:
                payload["tags"] = self.ensure_terms(tag_names, "tags")
            except PublishError as e:
                if isinstance(e, (PublishAuthError, PublishConnectionError)):
                    raise
                logger.warning(f"Tag resolution failed, publishing without tags: {e}")

        media_id = self._upload_hero(article)
        if media_id:
            payload["featured_media"] = media_id

        result = self.create_post(payload)
        logger.info(f"🚀 Draft post created (ID: {result['id']})")
        return result
