"""
Utility functions for the SEO wizard: structured-output extraction, key
normalisation and text helpers shared by every stage.
"""

import json
import re
import unicodedata
from typing import Any

from ..errors import EmptyResponseError, MalformedOutputError

# ---------------------------------------------------------------------------
# Field alias mapping: common AI-generated key names → canonical snake_case
# field names expected by the Pydantic schemas.
#
# After converting raw AI keys to snake_case we apply these aliases so that,
# e.g., a model that returns "questions" is mapped to "paa_questions".
# ---------------------------------------------------------------------------
FIELD_ALIASES: dict = {
    # competitive analysis
    "questions": "paa_questions",
    "people_also_ask": "paa_questions",
    "gaps": "content_gaps",
    "strategy": "strategy_summary",
    "competitors": "competitor_titles",
    # structure
    "h1": "title",
    "headline": "title",
    "intro": "lead",
    # images
    "alt": "alt_text",
    "image_prompt": "prompt",
    "aspect": "aspect_ratio",
    "ratio": "aspect_ratio",
    # seo metadata
    "wordpress_excerpt": "viral_excerpt",
    "excerpt": "viral_excerpt",
    "meta_desc": "meta_description",
    "seo_description": "meta_description",
    "focus_keyword": "target_keyword",
    "keyword": "target_keyword",
    "featured_snippet": "featured_snippet_hint",
    "google_news": "news_angle",
    "paa": "paa_list",
    # media strategy
    "search_query": "video_search_query",
    "video_query": "video_search_query",
    "images": "image_specs",
    # video lookup
    "channel_name": "channel",
    "video_url": "url",
    "link": "url",
}


def to_snake_case(key: str) -> str:
    # Step 1: split a run of capitals followed by a lower-case letter: "ABCDef" → "ABC_Def"
    s1 = re.sub(r'([A-Z]+)([A-Z][a-z])', r'\1_\2', str(key))
    # Step 2: split lower-case/digit followed by upper-case: "camelCase" → "camel_Case"
    s2 = re.sub(r'([a-z0-9])([A-Z])', r'\1_\2', s1)
    return s2.replace("-", "_").replace(" ", "_").lower()


def normalize_dict_keys(data: Any, aliases: dict = None) -> Any:
    """
    Recursively normalize dictionary keys to snake_case for Pydantic validation,
    then apply :data:`FIELD_ALIASES` to map common AI-generated key names to
    their canonical field names.

    Examples:
        'competitorTitles'   → 'competitor_titles'
        'SEO_TITLE'          → 'seo_title'
        'questions'          → 'paa_questions'   (via alias map)
        'wordpressExcerpt'   → 'viral_excerpt'   (via alias map)

    Lists are walked item by item. Non-dict scalars are returned unchanged.
    An alias never overwrites a key the model already supplied canonically.
    """
    aliases = FIELD_ALIASES if aliases is None else aliases

    if isinstance(data, list):
        return [normalize_dict_keys(item, aliases) for item in data]
    if not isinstance(data, dict):
        return data

    direct_keys = {to_snake_case(key) for key in data}
    normalized = {}
    for key, value in data.items():
        snake_key = to_snake_case(key)
        canonical_key = aliases.get(snake_key, snake_key)
        if canonical_key != snake_key and canonical_key in direct_keys:
            canonical_key = snake_key
        normalized[canonical_key] = normalize_dict_keys(value, aliases)

    return normalized


_FENCE_RE = re.compile(r'```(?:[\w+-]+)?\s*([\s\S]*?)\s*```')


def extract_json(text: str) -> Any:
    """
    Extract a JSON value from free-form model output.

    1. Empty or whitespace-only input → EmptyResponseError.
    2. A fenced code block (with or without a language tag) → only its content.
    3. Otherwise slice from the first '{' or '[' to the last '}' or ']'.
    4. Parse; failure → MalformedOutputError (never a raw parse exception).
    """
    if text is None or not str(text).strip():
        raise EmptyResponseError()

    clean = str(text).strip()
    fenced = _FENCE_RE.search(clean)
    if fenced:
        clean = fenced.group(1).strip()

    starts = [i for i in (clean.find('{'), clean.find('[')) if i != -1]
    ends = [i for i in (clean.rfind('}'), clean.rfind(']')) if i != -1]
    if starts and ends:
        start, end = min(starts), max(ends)
        if end > start:
            clean = clean[start:end + 1]

    try:
        return json.loads(clean)
    except ValueError:
        raise MalformedOutputError() from None


def extract_json_object(text: str) -> dict:
    """extract_json + key normalisation, insisting on a JSON object."""
    data = extract_json(text)
    if not isinstance(data, dict):
        raise MalformedOutputError("model returned a JSON value that is not an object")
    return normalize_dict_keys(data)


def slugify(text: str, max_length: int = 80) -> str:
    """ASCII, lowercase, hyphen-separated slug ("Energia Solar 2025!" → "energia-solar-2025")."""
    text = unicodedata.normalize("NFKD", text or "").encode("ascii", "ignore").decode("ascii")
    text = re.sub(r'[^a-z0-9]+', '-', text.lower()).strip('-')
    text = re.sub(r'-{2,}', '-', text)
    if len(text) > max_length:
        text = text[:max_length].rsplit('-', 1)[0] or text[:max_length]
    return text or "article"


def truncate_text(text: str, limit: int, ellipsis: str = "…") -> str:
    """Cut on a word boundary so the result, ellipsis included, fits in `limit` characters."""
    text = re.sub(r'\s+', ' ', text or "").strip()
    if len(text) <= limit:
        return text
    room = limit - len(ellipsis)
    cut = text[:room + 1]
    if " " in cut:
        cut = cut[:cut.rfind(" ")]
    else:
        cut = text[:room]
    cut = cut.rstrip(" ,;:.-")
    return f"{cut}{ellipsis}"


def word_count(text: str) -> int:
    return len(re.sub(r'<[^>]+>', ' ', text or "").split())
