"""
HTML fragment surgery for model-written article bodies.

The body comes from an untrusted generative source, so everything here is
string/regex based and never assumes well-formed markup. Each injected block
carries a unique marker so it can be found and replaced again:

- video block:          <div id="featured-video-container"> ... <!-- video-end -->
- internal links block: <div class="internal-links-section"> ... <!-- internal-links-end -->

Insertion fallback orders:
- video: after the first </p>, else after the first </h1>, else prepended
- internal links: after the references section, else before the last </article>, else appended
"""

import html
import re
from typing import Iterable, List, Optional

from ..schemas import VideoAsset

VIDEO_CONTAINER_ID = "featured-video-container"
VIDEO_END_MARKER = "<!-- video-end -->"
INTERNAL_LINKS_CLASS = "internal-links-section"
INTERNAL_LINKS_END_MARKER = "<!-- internal-links-end -->"
REFERENCES_CLASS = "authority-references"

VIDEO_BLOCK_RE = re.compile(
    r'\n?<div id="' + VIDEO_CONTAINER_ID + r'"[\s\S]*?' + re.escape(VIDEO_END_MARKER) + r'\n?'
)
INTERNAL_LINKS_BLOCK_RE = re.compile(
    r'\n?<div class="' + INTERNAL_LINKS_CLASS + r'[^"]*"[\s\S]*?' + re.escape(INTERNAL_LINKS_END_MARKER) + r'\n?'
)

PAGE_TAG_RE = re.compile(r'<!DOCTYPE[^>]*>|</?(?:html|body|head)(?:\s[^>]*)?>', re.IGNORECASE)
HTML_FENCE_RE = re.compile(r'```html\s*([\s\S]*?)```', re.IGNORECASE)
ANY_FENCE_RE = re.compile(r'```[\w-]*\s*([\s\S]*?)```')

# Heading text of the references section in the languages the wizard writes in
REFERENCE_HEADINGS = (
    "authority references",
    "references",
    "referências",
    "referencias",
    "fuentes",
    "fontes",
    "sources",
)
HEADING_RE = re.compile(r'<h([2-4])[^>]*>(.*?)</h\1>', re.IGNORECASE | re.DOTALL)


def strip_page_tags(fragment: str) -> str:
    """Remove leaked <html>/<head>/<body>/doctype tags, keeping their content."""
    return PAGE_TAG_RE.sub('', fragment or '')


def extract_html_body(text: str) -> str:
    """Clean a model answer into an HTML fragment: unwrap fences, drop page tags and stray backticks."""
    text = text or ""
    fenced = HTML_FENCE_RE.search(text) or ANY_FENCE_RE.search(text)
    if fenced:
        text = fenced.group(1)
    text = strip_page_tags(text)
    return text.replace('```', '').strip()


def reference_headings(fragment: str) -> List[re.Match]:
    """h2-h4 headings whose whole text (emoji and punctuation aside) names a references section."""
    matches = []
    for match in HEADING_RE.finditer(fragment or ""):
        text = html.unescape(re.sub(r'<[^>]+>', '', match.group(2)))
        text = re.sub(r'^[\W_]+|[\W_]+$', '', text).lower()
        if re.sub(r'\s+', ' ', text) in REFERENCE_HEADINGS:
            matches.append(match)
    return matches


def count_references_sections(fragment: str) -> int:
    """Number of references sections (by wrapper class, else by heading)."""
    fragment = fragment or ""
    by_class = len(re.findall(r'class="[^"]*' + REFERENCES_CLASS, fragment))
    return by_class or len(reference_headings(fragment))


def build_internal_links_block(links: Iterable[dict], heading: str = "Read also") -> str:
    """Render internal links (dicts with `title` and `url`) as one removable block, or '' if none."""
    items = []
    for link in links:
        url = (link.get("url") or "").strip()
        if not url:
            continue
        title = (link.get("title") or url).strip()
        items.append(
            f'    <li><a href="{html.escape(url, quote=True)}">{html.escape(title)}</a></li>'
        )
    if not items:
        return ""
    return (
        f'\n<div class="{INTERNAL_LINKS_CLASS}">\n'
        f'  <h3>{html.escape(heading)}</h3>\n'
        f'  <ul>\n' + "\n".join(items) + '\n  </ul>\n'
        f'</div>{INTERNAL_LINKS_END_MARKER}\n'
    )


def _references_end(fragment: str) -> Optional[int]:
    """
    Index just after the references section, or None when there is none.

    A <section> carrying the references class ends at its own </section>; a
    section found by heading ends at the first list closed after the heading.
    """
    lower = fragment.lower()
    start = lower.find(f'class="{REFERENCES_CLASS}')
    if start != -1:
        opening = lower.rfind('<', 0, start)
        if lower.startswith('<section', opening):
            section_end = lower.find('</section>', start)
            if section_end != -1:
                return section_end + len('</section>')
    else:
        headings = reference_headings(fragment)
        if not headings:
            return None
        start = headings[0].end()

    closes = [i for i in (lower.find('</ol>', start), lower.find('</ul>', start)) if i != -1]
    if not closes:
        return None
    end = min(closes) + len('</ol>')

    section_close = re.match(r'\s*</section>', fragment[end:], re.IGNORECASE)
    if section_close:
        end += section_close.end()
    return end


def splice_internal_links(fragment: str, block: str) -> str:
    """
    Insert the internal-links block exactly once.

    After the references section if present, else before the last </article>, else
    appended. Any block from an earlier run is removed first.
    """
    fragment = INTERNAL_LINKS_BLOCK_RE.sub('', fragment or '')
    if not block:
        return fragment

    position = _references_end(fragment)
    if position is None:
        article_end = fragment.lower().rfind('</article>')
        position = article_end if article_end != -1 else len(fragment)
    return fragment[:position] + block + fragment[position:]


def build_video_block(video: VideoAsset) -> str:
    caption = f'\n  <p class="video-caption">{html.escape(video.caption)}</p>' if video.caption else ''
    return (
        f'\n<div id="{VIDEO_CONTAINER_ID}" class="video-container">\n'
        f'  <h3>Watch: {html.escape(video.title)}</h3>\n'
        f'  <div class="video-embed">\n    {video.embed_html}\n  </div>{caption}\n'
        f'</div>{VIDEO_END_MARKER}\n'
    )


def remove_video(fragment: str) -> str:
    return VIDEO_BLOCK_RE.sub('', fragment or '')


def inject_video(fragment: str, video: Optional[VideoAsset]) -> str:
    """
    Idempotently place the video block in an HTML fragment.

    Unchanged when there is no video or no embed markup. Otherwise any earlier
    block is removed, then the fresh one goes after the first </p>, else after the
    first </h1>, else at the top.
    """
    if video is None or not video.embed_html:
        return fragment
    clean = remove_video(fragment)
    block = build_video_block(video)
    lower = clean.lower()

    for closing in ('</p>', '</h1>'):
        index = lower.find(closing)
        if index != -1:
            position = index + len(closing)
            return clean[:position] + block + clean[position:]
    return block.lstrip('\n') + clean
