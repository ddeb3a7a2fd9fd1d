"""
Internal Link Discovery Module.
Finds existing articles on the user's own site with a site-restricted grounded
search and turns them into candidate internal links.
"""

import re
import logging
import random
import threading
from typing import List, Dict, Optional
from urllib.parse import urlparse

from google.genai import types
from pydantic import ValidationError

from ..errors import MalformedOutputError
from ..schemas import InternalLinkResponse
from . import extract_json, normalize_dict_keys

logger = logging.getLogger(__name__)

URL_RE = re.compile(r'https?://(?:www\.)?[-a-zA-Z0-9@:%._+~#=]{1,256}\.[a-zA-Z0-9()]{1,6}\b[-a-zA-Z0-9()@:%_+.~#?&/=]*')

SCRAPED_LINK_TITLE = "See also"


def normalize_domain(site_url: str) -> str:
    """'https://www.Blog.com/' -> 'www.blog.com' (scheme and trailing slash removed)."""
    domain = re.sub(r'^https?://', '', (site_url or '').strip(), flags=re.IGNORECASE)
    return domain.rstrip('/').lower()


def belongs_to_domain(url: str, domain: str) -> bool:
    """True when `url` lives on `domain` (ignoring a leading www.)."""
    host = urlparse(url if '://' in url else f"https://{url}").netloc.lower()
    bare_host = host[4:] if host.startswith('www.') else host
    bare_domain = domain.split('/')[0]
    bare_domain = bare_domain[4:] if bare_domain.startswith('www.') else bare_domain
    return bool(bare_domain) and (bare_host == bare_domain or bare_host.endswith(f".{bare_domain}"))


def build_link_search_prompt(domain: str, keyword: str, limit: int) -> str:
    return f"""
Task: Find exactly {limit} articles published on the website "{domain}".
Priority 1: articles related to "{keyword}".
Priority 2: if nothing relevant exists, ANY {limit} recent or popular articles from "{domain}".

Query: "site:{domain}"

Return a JSON array only: [{{"title": "Article Title", "url": "https://{domain}/..."}}]
Every URL must belong to {domain}. At most {limit} items.
"""


def parse_link_candidates(text: str, domain: str) -> List[Dict[str, str]]:
    """
    Turn a search answer into link dicts.

    JSON arrays (or objects with a `links` list) are used as-is; otherwise URLs on
    the domain are scraped from the raw text.
    """
    try:
        data = normalize_dict_keys(extract_json(text))
        if isinstance(data, dict):
            data = data.get("links") or data.get("articles") or []
        if not isinstance(data, list):
            raise MalformedOutputError("link search did not return a list")
        links = []
        for item in data:
            try:
                link = InternalLinkResponse.model_validate(item)
            except ValidationError as e:
                logger.debug(f"Skipping malformed link candidate {item!r}: {e.error_count()} errors")
                continue
            links.append({"title": (link.title or "").strip(), "url": link.url.strip()})
        return links
    except MalformedOutputError:
        urls = [url.rstrip('.,;)') for url in URL_RE.findall(text or "")]
        logger.info(f"🔗 Link search answer was not JSON, scraped {len(urls)} URLs")
        return [{"title": SCRAPED_LINK_TITLE, "url": url} for url in urls if belongs_to_domain(url, domain)]


def select_links(candidates: List[Dict[str, str]], domain: str, limit: int = 3,
                 rng: Optional[random.Random] = None) -> List[Dict[str, str]]:
    """Keep links on the domain, de-duplicate by URL, shuffle, then truncate to `limit`."""
    unique: Dict[str, Dict[str, str]] = {}
    for link in candidates:
        url = link.get("url", "")
        if not url or not belongs_to_domain(url, domain):
            continue
        unique.setdefault(url.rstrip('/'), {"title": link.get("title") or SCRAPED_LINK_TITLE, "url": url})

    links = list(unique.values())
    (rng or random).shuffle(links)
    return links[:limit]


def discover_internal_links(
    dispatcher,
    site_url: str,
    keyword: str,
    model: str,
    limit: int = 3,
    rng: Optional[random.Random] = None,
    cancel_event: Optional[threading.Event] = None,
) -> List[Dict[str, str]]:
    """
    Find up to `limit` articles on `site_url` to link from a new article.

    Args:
        dispatcher: TextDispatcher used for the grounded search
        site_url: The user's site (scheme optional)
        keyword: Target keyword, used to prefer related articles
        model: Model with search-tool support
        rng: Random source for the shuffle (injected by tests)

    Returns:
        List of {'title', 'url'} dicts, possibly empty.
    """
    domain = normalize_domain(site_url)
    if not domain:
        return []

    logger.info(f"🔗 Searching internal links on {domain}...")
    result = dispatcher.generate(
        model,
        build_link_search_prompt(domain, keyword, limit),
        {"tools": [types.Tool(google_search=types.GoogleSearch())]},
        cancel_event=cancel_event,
    )
    links = select_links(parse_link_candidates(result.text, domain), domain, limit, rng)
    logger.info(f"🔗 Found {len(links)} internal links on {domain}")
    return links
