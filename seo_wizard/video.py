"""
Video asset resolution.

Only the 11-character video ID is trusted from the model: canonical URL, embed
markup and thumbnail are always rebuilt from it.
"""

import html
import logging
import re
import threading
from typing import Optional

from google.genai import types
from pydantic import ValidationError

from .config import PipelineConfig
from .dispatcher import TextDispatcher
from .errors import InvalidInputError, MalformedOutputError, VideoLookupError
from .schemas import VideoAsset, VideoLookupResponse
from .utils import extract_json_object

logger = logging.getLogger(__name__)

# watch?v=, youtu.be/, /embed/, /v/, /e/, /shorts/ and channel-style paths
VIDEO_ID_RE = re.compile(
    r'(?:youtube(?:-nocookie)?\.com/(?:[^/\s]+/.+/|(?:v|e(?:mbed)?)/|.*[?&]v=)|youtu\.be/|youtube\.com/shorts/)'
    r'([\w-]{11})(?![\w-])'
)
VIDEO_HOST_RE = re.compile(r'^(?:https?://)?(?:www\.|m\.|music\.)?(?:youtube(?:-nocookie)?\.com|youtu\.be)/', re.IGNORECASE)
VIDEO_URL_SCRAPE_RE = re.compile(
    r'https?://(?:www\.|m\.)?(?:youtube\.com/(?:watch\?[^\s"\'<>)\]]+|shorts/[\w-]{11}|embed/[\w-]{11})|youtu\.be/[\w-]{11})'
)

EMBED_HOST = "https://www.youtube-nocookie.com/embed"
THUMBNAIL_HOST = "https://img.youtube.com/vi"


def is_video_host_url(url: str) -> bool:
    return bool(VIDEO_HOST_RE.match((url or "").strip()))


def extract_video_id(url: str) -> Optional[str]:
    """Return the 11-character video ID of a recognised video URL, else None."""
    if not is_video_host_url(url):
        return None
    match = VIDEO_ID_RE.search(url.strip())
    return match.group(1) if match else None


def canonical_watch_url(video_id: str) -> str:
    return f"https://www.youtube.com/watch?v={video_id}"


def thumbnail_url(video_id: str) -> str:
    return f"{THUMBNAIL_HOST}/{video_id}/maxresdefault.jpg"


def build_embed_html(video_id: str, title: str = "") -> str:
    """Privacy-enhanced, sandboxed iframe for a video ID."""
    return (
        f'<iframe width="560" height="315" src="{EMBED_HOST}/{video_id}" '
        f'title="{html.escape(title or "YouTube video", quote=True)}" frameborder="0" '
        'sandbox="allow-scripts allow-same-origin allow-presentation allow-popups" '
        'allow="accelerometer; autoplay; clipboard-write; encrypted-media; gyroscope; picture-in-picture" '
        'referrerpolicy="strict-origin-when-cross-origin" loading="lazy" allowfullscreen></iframe>'
    )


def build_video_asset(query: str, url: str, title: str = "", channel: str = "",
                      caption: str = "", alt_text: str = "") -> VideoAsset:
    """Validate a candidate URL and derive every embeddable field from its ID."""
    if not is_video_host_url(url):
        raise InvalidInputError(f"Not a recognised video URL: {url}")
    video_id = extract_video_id(url)
    if not video_id:
        raise InvalidInputError(f"No video ID found in URL: {url}")

    title = title.strip() or query
    return VideoAsset(
        query=query,
        title=title,
        channel=channel.strip() or "YouTube",
        canonical_url=canonical_watch_url(video_id),
        video_id=video_id,
        embed_html=build_embed_html(video_id, title),
        thumbnail_url=thumbnail_url(video_id),
        caption=caption.strip() or f"Video: {title}",
        alt_text=alt_text.strip() or f"Video about {query}",
    )


class VideoResolver:
    """Find a real, embeddable video for a search query with grounded search."""

    def __init__(self, dispatcher: TextDispatcher, config: Optional[PipelineConfig] = None):
        self.dispatcher = dispatcher
        self.config = config or PipelineConfig()

    @staticmethod
    def build_prompt(query: str) -> str:
        return f"""
Use Google Search to find ONE real, currently available YouTube video for: "{query}".
Prefer authoritative channels (official institutions, recognised media, experts).
Never invent a URL: copy the exact youtube.com/watch or youtu.be link from the search results.

Respond with JSON only:
{{"title": "...", "channel": "...", "url": "https://www.youtube.com/watch?v=...",
  "caption": "one journalistic sentence describing the video",
  "alt_text": "accessibility description of the video"}}
"""

    def resolve(self, query: str, cancel_event: Optional[threading.Event] = None) -> VideoAsset:
        """
        Resolve a query into a VideoAsset.

        Raises:
            VideoLookupError: the answer held no recognisable video URL/ID.
            WizardError: provider failures after backoff and fallback.
        """
        query = (query or "").strip()
        if not query:
            raise InvalidInputError("Video search query is empty")

        logger.info(f"🎬 Searching video for: {query}")
        result = self.dispatcher.generate(
            self.config.model_for("video"),
            self.build_prompt(query),
            {"tools": [types.Tool(google_search=types.GoogleSearch())]},
            cancel_event=cancel_event,
        )

        try:
            answer = VideoLookupResponse.model_validate(extract_json_object(result.text))
        except (MalformedOutputError, ValidationError):
            match = VIDEO_URL_SCRAPE_RE.search(result.text or "")
            if not match:
                raise VideoLookupError(f"No video URL found for '{query}'") from None
            logger.info("Video answer was not JSON, using the first video URL in the text")
            answer = VideoLookupResponse(url=match.group(0))

        try:
            asset = build_video_asset(
                query, answer.url,
                title=answer.title, channel=answer.channel,
                caption=answer.caption, alt_text=answer.alt_text,
            )
        except InvalidInputError as e:
            raise VideoLookupError(str(e)) from e

        logger.info(f"✅ Video found: {asset.title} ({asset.video_id})")
        return asset
