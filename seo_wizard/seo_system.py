"""
SEO System for the content generation wizard.

This module provides:
- Stage prompts (SERP analysis, structure, body, media strategy, metadata)
- Deterministic enforcement of title/lead/metadata limits
- Keyword variations used to fill fixed-size synonym and tag lists
- Schema.org JSON-LD graph and WordPress post payload generation
"""

import html
import json
import logging
import re
from typing import Dict, List, Optional, Tuple

from .schemas import (AdvancedOptions, Article, ArticleStructure, Author, CompetitiveAnalysis,
                      IMAGE_ROLES, SeoMetadata, TechnicalSeoPayload)
from .utils import slugify, truncate_text
from .video import EMBED_HOST

logger = logging.getLogger(__name__)

SEO_TITLE_MAX_CHARS = 60
META_DESCRIPTION_MAX_CHARS = 156
META_KEYWORD_SPAN = 100
EXCERPT_MAX_CHARS = 180

REFERENCES_HEADING = "🎓 Authority References"

WIZARD_PERSONA = """
You are a senior technical editor for an SEO publishing team.

OPERATING MODE:
1. You are a DATA GENERATOR. External systems perform every action.
2. Everything you return must be ready to execute as-is.

CRITICAL HTML RULES:
- Clean, semantic HTML.
- Never repeat blocks.
- Exactly ONE <article> element.
- The table of contents appears at most ONCE (never duplicate <nav class="toc">).
- No commented-out JavaScript.
- Never nest <p> inside <p>.

MANDATORY SEO:
- Keyword within the first 50 characters.
- A single H1.
- Keyword density 0.8% - 1.2%.
- Internal and external links.
"""

WORD_COUNT_GUIDANCE = {
    "800": "about 800 words (a focused, scannable article)",
    "1500": "about 1500 words (a complete guide)",
    "3000": "about 3000 words (a pillar article covering every sub-topic)",
}

LANGUAGE_CODES = {
    "english": "en",
    "portuguese": "pt-BR",
    "português": "pt-BR",
    "spanish": "es",
    "español": "es",
    "french": "fr",
    "german": "de",
    "italian": "it",
    "thai": "th",
}


def contains_keyword(text: str, keyword: str) -> bool:
    """The keyword exactly as the user typed it must appear in `text`."""
    keyword = (keyword or "").strip()
    return bool(keyword) and keyword in (text or "")


def with_verbatim_keyword(text: str, keyword: str) -> str:
    """Rewrite the first case-insensitive occurrence of the keyword as typed."""
    keyword = (keyword or "").strip()
    if not keyword or not text:
        return text or ""
    return re.sub(re.escape(keyword), lambda _: keyword, text, count=1, flags=re.IGNORECASE)


class SEOPromptBuilder:
    """Builds the prompt of every generative pipeline stage."""

    def __init__(self, persona: str = WIZARD_PERSONA, title_max_words: int = 7):
        self.persona = persona
        self.title_max_words = title_max_words

    def build_analysis_prompt(self, keyword: str, language: str) -> str:
        return f"""
{self.persona}
TASK: SERP analysis for "{keyword}". Language: {language}.
Use Google Search to look at the pages currently ranking for this keyword.

Return JSON only:
{{"competitor_titles": [], "content_gaps": [], "paa_questions": [], "lsi_keywords": [],
  "strategy_summary": "two sentences on how to outrank them"}}
"""

    def build_structure_prompt(self, topic: str, keyword: str, analysis: CompetitiveAnalysis, language: str) -> str:
        gaps = "; ".join(analysis.content_gaps[:5]) or "none identified"
        return f"""
{self.persona}
TASK: Article structure for "{topic}" (target keyword: "{keyword}"). Language: {language}.
Competitor strategy: {analysis.strategy_summary or "focus on original content"}
Content gaps to cover: {gaps}

Rules:
- title: MAXIMUM {self.title_max_words} words and MUST contain "{keyword}".
- subtitle: one supporting sentence.
- lead: opening paragraph; "{keyword}" must appear in its first sentence.

Return JSON: {{"title": "...", "subtitle": "...", "lead": "..."}}
"""

    def _option_rules(self, options: AdvancedOptions, author: Optional[Author]) -> List[str]:
        rules = []
        if options.include_toc:
            rules.append('Add ONE table of contents as <nav class="toc"> right after the lead. Never repeat it.')
        else:
            rules.append("Do NOT add a table of contents.")
        if options.include_glossary:
            rules.append("Add a short glossary (<dl>) of technical terms before the conclusion.")
        if options.include_tables:
            rules.append("Include at least one comparison <table> with <thead> and <tbody>.")
        if options.include_lists:
            rules.append("Use bulleted or numbered lists where they help scanning.")
        if options.secure_sources:
            rules.append("Prefer official sources (.gov, .edu, recognised institutions) for references.")
        if options.author_credits and author is not None:
            expertise = ", ".join(author.expertise) or "the topic"
            rules.append(
                f'End with an author box <div class="author-box"> crediting {author.name} '
                f'({expertise}). Bio: {author.bio}'
            )
        return rules

    def build_body_prompt(
        self,
        topic: str,
        keyword: str,
        structure: ArticleStructure,
        analysis: CompetitiveAnalysis,
        word_count: str,
        options: AdvancedOptions,
        language: str,
        author: Optional[Author] = None,
    ) -> str:
        option_rules = "\n".join(f"- {rule}" for rule in self._option_rules(options, author))
        paa = "\n".join(f"- {q}" for q in analysis.paa_questions[:6]) or "- (none)"
        lsi = ", ".join(analysis.lsi_keywords[:10]) or keyword
        return f"""
{self.persona}
Write an SEO article about "{topic}" (keyword: "{keyword}"). Language: {language}.
Length: {WORD_COUNT_GUIDANCE.get(word_count, word_count + " words")}.
EXACT H1: "{structure.title}". Lead: "{structure.lead}".
Related terms to use naturally: {lsi}
Questions readers ask (answer them in a FAQ section with <h3> questions and <p> answers):
{paa}

STRICT HTML RULES:
1. Return exactly 1 <article> wrapper.
2. Never nest <p> inside <p>.
3. No markdown in the output, plain HTML only.
{option_rules}

E-E-A-T (MANDATORY EXTERNAL REFERENCES):
Before the conclusion, add ONE section with 3 links to real, high-authority EXTERNAL sites,
in this exact format:
<section class="authority-references">
<h3>{REFERENCES_HEADING}</h3>
<ol>
   <li><strong>Source name</strong>: <a href="REAL_EXTERNAL_URL" target="_blank" rel="noopener nofollow">Title of the cited page</a></li>
</ol>
</section>

Return ONLY HTML.
"""

    def build_media_prompt(self, title: str, keyword: str, language: str) -> str:
        roles = "\n".join(f"- {role} ({ratio})" for role, ratio in IMAGE_ROLES)
        return f"""
Create a media strategy (JSON) for the article "{title}" (keyword: "{keyword}").

Part 1: video. Do NOT access YouTube. Give the ideal search query (in {language}) that
would find an authoritative explanatory video.

Part 2: exactly {len(IMAGE_ROLES)} image specs, one per role, in this order:
{roles}
Each spec: prompt (English, photorealistic, no text in the image), alt_text ({language},
contains "{keyword}"), title, caption ({language}), filename (lowercase, hyphenated, no extension).
"""

    def build_metadata_prompt(self, topic: str, keyword: str, html_content: str, language: str,
                              synonym_count: int = 4, tag_count: int = 10) -> str:
        body_text = re.sub(r'<[^>]+>', ' ', html_content or "")
        body_text = re.sub(r'\s+', ' ', body_text).strip()[:3000]
        return f"""
Generate SEO metadata JSON for "{topic}" (keyword: "{keyword}"). Language: {language}.
- seo_title: max {SEO_TITLE_MAX_CHARS} characters, starts with the keyword.
- meta_description: max {META_DESCRIPTION_MAX_CHARS} characters, informative, keyword within the first {META_KEYWORD_SPAN} characters.
- slug: short, lowercase, hyphenated.
- synonyms: exactly {synonym_count}. tags: exactly {tag_count}.
- viral_excerpt: max {EXCERPT_MAX_CHARS} characters, intriguing, written for a high click-through rate.
- opportunities: featured_snippet_hint, paa_list, news_angle.

Article text:
{body_text}
"""


class KeywordExtractor:
    """Extract and vary keywords for SEO."""

    STOPWORDS = {'a', 'an', 'the', 'is', 'are', 'was', 'were', 'what', 'when', 'where', 'why',
                 'how', 'and', 'or', 'but', 'for', 'of', 'in', 'on', 'to', 'with', 'de', 'da',
                 'do', 'em', 'e', 'o', 'la', 'el', 'y'}

    def significant_words(self, text: str) -> List[str]:
        words = re.findall(r'[\w-]+', (text or "").lower())
        return [w for w in words if w not in self.STOPWORDS and len(w) > 2]

    def generate_variations(self, focus_keyword: str) -> List[str]:
        """Deterministic keyword variations; always more than ten distinct phrases."""
        keyword = focus_keyword.strip().lower()
        variations = []

        words = keyword.split()
        if len(words) == 2:
            variations.append(f"{words[1]} {words[0]}")
        variations.extend([
            f"best {keyword}",
            f"{keyword} guide",
            f"{keyword} tips",
            f"what is {keyword}",
            f"{keyword} explained",
            f"{keyword} benefits",
            f"{keyword} examples",
            f"{keyword} overview",
            f"{keyword} trends",
            f"{keyword} news",
            f"{keyword} strategy",
            f"{keyword} faq",
            f"{keyword} checklist",
        ])
        return variations


def fill_to_count(primary: List[str], count: int, *fallbacks: List[str], exclude: Tuple[str, ...] = ()) -> List[str]:
    """De-duplicate (case-insensitively) and pad `primary` from `fallbacks` to exactly `count` items."""
    seen = {e.strip().lower() for e in exclude if e}
    result = []
    for source in (primary, *fallbacks):
        for item in source or []:
            item = re.sub(r'\s+', ' ', str(item)).strip()
            if not item or item.lower() in seen:
                continue
            seen.add(item.lower())
            result.append(item)
            if len(result) == count:
                return result
    return result


def enforce_title(title: str, keyword: str, max_words: int = 7) -> str:
    """
    At most `max_words` words, always containing the keyword exactly as typed.

    A non-compliant title is rebuilt as "keyword: extra words". A keyword longer
    than the ceiling is returned verbatim.
    """
    keyword = re.sub(r'\s+', ' ', keyword or "").strip()
    title = with_verbatim_keyword(re.sub(r'\s+', ' ', title or "").strip(), keyword)
    if contains_keyword(title, keyword) and len(title.split()) <= max_words:
        return title

    keyword_words = keyword.split()
    if len(keyword_words) >= max_words:
        return keyword

    keyword_tokens = {w.lower().strip(':,.!?') for w in keyword_words}
    extras = [w for w in title.split() if w.lower().strip(':,.!?') not in keyword_tokens]
    extras = extras[:max_words - len(keyword_words)]
    rebuilt = f"{keyword}: {' '.join(extras)}" if extras else keyword
    logger.info(f"Title rebuilt around the keyword: '{title}' -> '{rebuilt}'")
    return rebuilt


def enforce_lead(lead: str, keyword: str, span: int = 100) -> str:
    """Guarantee the keyword appears within the first `span` characters of the lead."""
    keyword = (keyword or "").strip()
    lead = with_verbatim_keyword((lead or "").strip(), keyword)
    if contains_keyword(lead[:span], keyword):
        return lead
    if not lead:
        return f"{keyword}."
    return f"{keyword}: {lead}"


def keyword_led(text: str, keyword: str, limit: int, span: Optional[int] = None,
                prefix_only: bool = False) -> str:
    """
    Fit `text` into `limit` characters with the keyword inside the first `span` characters.

    With `prefix_only` the text must start with the keyword; a later occurrence is
    dropped before the keyword is moved to the front.
    """
    keyword = (keyword or "").strip()
    span = len(keyword) if prefix_only else (span or limit)
    text = with_verbatim_keyword(re.sub(r'\s+', ' ', text or "").strip(), keyword)

    candidate = truncate_text(text, limit)
    if contains_keyword(candidate[:span], keyword):
        return candidate

    if prefix_only and keyword in text:
        text = re.sub(r'\s+', ' ', text.replace(keyword, " ", 1)).strip(' :,;-')
    prefixed = f"{keyword}: {text}" if text else keyword
    candidate = truncate_text(prefixed, limit)
    if contains_keyword(candidate[:span], keyword):
        return candidate
    return truncate_text(keyword, limit)


def default_metadata(keyword: str) -> SeoMetadata:
    """Truncation-safe metadata derived only from the keyword."""
    keyword = keyword.strip()
    return SeoMetadata(
        seo_title=keyword,
        meta_description=f"{keyword}: a complete guide with key facts, practical tips and answers to the most common questions.",
        slug=slugify(keyword),
        target_keyword=keyword,
        viral_excerpt=f"Everything you need to know about {keyword}, explained clearly and backed by reliable sources.",
    )


def enforce_metadata(meta: SeoMetadata, keyword: str, lsi_keywords: Optional[List[str]] = None,
                     synonym_count: int = 4, tag_count: int = 10) -> SeoMetadata:
    """Apply every hard limit and fixed cardinality to model-produced metadata."""
    keyword = keyword.strip()
    extractor = KeywordExtractor()
    variations = extractor.generate_variations(keyword)
    lsi = list(meta.lsi_keywords or []) or list(lsi_keywords or [])

    synonyms = fill_to_count(meta.synonyms, synonym_count, lsi, variations, exclude=(keyword,))
    tags = fill_to_count(
        meta.tags, tag_count,
        [keyword], synonyms, lsi, extractor.significant_words(keyword), variations
    )

    description = keyword_led(meta.meta_description, keyword, META_DESCRIPTION_MAX_CHARS, META_KEYWORD_SPAN)
    excerpt = truncate_text(meta.viral_excerpt or description, EXCERPT_MAX_CHARS)

    return meta.model_copy(update={
        "seo_title": keyword_led(meta.seo_title, keyword, SEO_TITLE_MAX_CHARS, prefix_only=True),
        "meta_description": description,
        "slug": slugify(meta.slug or keyword),
        "target_keyword": keyword,
        "synonyms": synonyms,
        "related_keyphrase": (meta.related_keyphrase or "").strip() or (synonyms[0] if synonyms else keyword),
        "tags": tags,
        "lsi_keywords": lsi,
        "viral_excerpt": excerpt,
    })


class SchemaMarkupGenerator:
    """Generate the Schema.org JSON-LD graph and the WordPress payload of an Article."""

    def __init__(self, site_name: str = "SEO Wizard Publisher", default_site_url: str = "https://example.com"):
        self.site_name = site_name
        self.default_site_url = default_site_url

    def site_url_for(self, article: Article) -> str:
        site_url = (article.site_url or self.default_site_url).strip().rstrip('/')
        if not re.match(r'^https?://', site_url, re.IGNORECASE):
            site_url = f"https://{site_url}"
        return site_url

    def extract_faq_from_content(self, content: str) -> List[Tuple[str, str]]:
        """
        Extract FAQ pairs from article HTML.

        Schema.org microdata questions are preferred; otherwise every <h3> ending in
        "?" followed by a paragraph counts as a question/answer pair.
        """
        def clean(fragment: str) -> str:
            return html.unescape(re.sub(r'\s+', ' ', re.sub(r'<[^>]+>', '', fragment))).strip()

        pattern = (r'<div[^>]*itemtype="https://schema\.org/Question"[^>]*>.*?'
                   r'<h3[^>]*itemprop="name"[^>]*>(.*?)</h3>.*?<p[^>]*itemprop="text"[^>]*>(.*?)</p>')
        matches = re.findall(pattern, content or "", re.DOTALL)
        if not matches:
            matches = re.findall(r'<h3[^>]*>([^<]*\?)\s*</h3>\s*<p[^>]*>(.*?)</p>', content or "", re.DOTALL)

        faqs = []
        for question, answer in matches:
            question, answer = clean(question), clean(answer)
            if question and answer:
                faqs.append((question, answer))
        return faqs

    def build_graph(self, article: Article, author: Optional[Author] = None) -> Dict:
        site_url = self.site_url_for(article)
        seo = article.seo_data or default_metadata(article.target_keyword)
        slug = seo.slug or slugify(article.title or article.target_keyword)
        permalink = f"{site_url}/{slug}"
        organization_id = f"{site_url}/#organization"
        published = article.created_at
        modified = article.updated_at or article.created_at

        hero = article.hero_image()
        image_url = hero.rendered_url if hero and hero.rendered_url.startswith("http") else f"{site_url}/default-image.jpg"

        article_node = {
            "@type": "Article",
            "@id": f"{permalink}/#article",
            "headline": seo.seo_title or article.title,
            "description": seo.meta_description,
            "author": {"@type": "Person", "name": author.name if author else "Editorial Team"},
            "datePublished": published,
            "dateModified": modified,
            "mainEntityOfPage": {"@id": permalink},
            "publisher": {"@id": organization_id},
            "image": {"@id": f"{permalink}/#primaryimage"},
            "keywords": ", ".join([seo.target_keyword or article.target_keyword] + list(seo.synonyms)),
            "wordCount": len(re.sub(r'<[^>]+>', ' ', article.html_content or "").split()),
            "inLanguage": LANGUAGE_CODES.get(article.language.lower(), article.language),
        }
        if author and author.bio:
            article_node["author"]["description"] = author.bio

        graph = [
            {
                "@type": "Organization",
                "@id": organization_id,
                "name": self.site_name,
                "url": site_url,
                "logo": {"@type": "ImageObject", "url": f"{site_url}/logo.png"},
            },
            {
                "@type": "WebSite",
                "@id": f"{site_url}/#website",
                "url": site_url,
                "name": self.site_name,
                "publisher": {"@id": organization_id},
            },
            {
                "@type": "ImageObject",
                "@id": f"{permalink}/#primaryimage",
                "url": image_url,
                "caption": hero.caption if hero else "",
                "width": 1200,
                "height": 675,
            },
            {
                "@type": "BreadcrumbList",
                "@id": f"{permalink}/#breadcrumb",
                "itemListElement": [
                    {"@type": "ListItem", "position": 1, "name": "Home", "item": site_url},
                    {"@type": "ListItem", "position": 2, "name": article.title or seo.seo_title, "item": permalink},
                ],
            },
            article_node,
        ]

        if article.video and article.video.video_id:
            video = article.video
            graph.append({
                "@type": "VideoObject",
                "@id": f"{permalink}/#video",
                "name": video.title,
                "description": video.caption or video.title,
                "thumbnailUrl": video.thumbnail_url,
                "embedUrl": f"{EMBED_HOST}/{video.video_id}",
                "contentUrl": video.canonical_url,
                "uploadDate": published,
            })
            article_node["video"] = {"@id": f"{permalink}/#video"}

        faqs = self.extract_faq_from_content(article.html_content or "")
        if faqs:
            graph.append({
                "@type": "FAQPage",
                "@id": f"{permalink}/#faq",
                "mainEntity": [
                    {"@type": "Question", "name": q, "acceptedAnswer": {"@type": "Answer", "text": a}}
                    for q, a in faqs
                ],
            })

        return {"@context": "https://schema.org", "@graph": graph}

    def build_post_payload(self, article: Article) -> Dict:
        """WordPress post body. Status is always draft; publishing is a human decision."""
        seo = article.seo_data or default_metadata(article.target_keyword)
        hero = article.hero_image()
        meta = {
            "_yoast_wpseo_title": seo.seo_title,
            "_yoast_wpseo_metadesc": seo.meta_description,
            "_yoast_wpseo_focuskw": seo.target_keyword or article.target_keyword,
            "_yoast_wpseo_keywordsynonyms": json.dumps([", ".join(seo.synonyms)], ensure_ascii=False),
            "_yoast_wpseo_opengraph-title": seo.seo_title,
            "_yoast_wpseo_opengraph-description": seo.viral_excerpt or seo.meta_description,
        }
        if hero and hero.rendered_url.startswith("http"):
            meta["_yoast_wpseo_opengraph-image"] = hero.rendered_url

        return {
            "title": article.title,
            "content": article.html_content or "",
            "status": "draft",
            "slug": seo.slug,
            "excerpt": seo.viral_excerpt or seo.meta_description,
            "tags": list(seo.tags),
            "meta": meta,
        }

    def build(self, article: Article, author: Optional[Author] = None) -> TechnicalSeoPayload:
        """Pure function of the Article: no network, no clock, no randomness."""
        return TechnicalSeoPayload(
            structured_data=self.build_graph(article, author),
            cms_post=self.build_post_payload(article),
        )

    def wrap_schema_in_script(self, schema: Dict) -> str:
        """Wrap schema in HTML script tag for injection."""
        return f'<script type="application/ld+json">{json.dumps(schema, indent=2, ensure_ascii=False)}</script>'
