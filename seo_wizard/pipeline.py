"""
Article generation pipeline.

Stages run strictly in order, each one feeding the next:

    analysis -> structure -> body (+ internal links) -> media strategy (+ video)
    -> hero render -> metadata -> assembly -> persist

Advisory stages (analysis, internal links, video lookup, hero render, model
metadata) degrade to empty/default results. Load-bearing stages (structure, body,
media strategy, assembly) abort the run, and nothing is persisted until the end.
"""

import logging
import random
import threading
import time
from typing import Callable, List, Optional, Type

from google.genai import types
from pydantic import BaseModel, ValidationError

from .clients.gemini import GeminiClient
from .config import PipelineConfig
from .dispatcher import TextDispatcher
from .errors import ErrorKind, MalformedOutputError, WizardError
from .image_generator import ImageRenderer
from .rate_limiter import TokenBucketRateLimiter
from .schemas import (Article, ArticleStructure, Author, CompetitiveAnalysis, GenerationRequest,
                      IMAGE_ROLES, ImagePlanResponse, ImageSpec, MediaStrategy, MediaStrategyResponse,
                      SeoMetadata, VideoAsset)
from .seo_system import (SchemaMarkupGenerator, SEOPromptBuilder, default_metadata, enforce_lead,
                         enforce_metadata, enforce_title)
from .storage import WizardStore
from .utils import extract_json_object, slugify
from .utils.html_fragments import (build_internal_links_block, count_references_sections,
                                   extract_html_body, inject_video, splice_internal_links)
from .utils.linking import discover_internal_links
from .video import VideoResolver

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str, int], None]

# Scores reported for a completed article
COMPLETED_SEO_SCORE = 95
COMPLETED_EEAT_SCORE = 88


def _no_progress(step: str, percentage: int):
    pass


def _search_tools() -> List[types.Tool]:
    return [types.Tool(google_search=types.GoogleSearch())]


class ArticlePipeline:
    """Orchestrates one article generation run at a time."""

    def __init__(
        self,
        client: GeminiClient,
        store: Optional[WizardStore] = None,
        config: Optional[PipelineConfig] = None,
        renderer: Optional[ImageRenderer] = None,
        limiter: Optional[TokenBucketRateLimiter] = None,
        sleep: Callable[[float], None] = time.sleep,
        rng: Optional[random.Random] = None,
    ):
        self.config = config or PipelineConfig()
        self.client = client
        self.store = store
        self.rng = rng or random.Random()
        self.dispatcher = TextDispatcher(
            client,
            self.config.text_policy,
            self.config.fallback_policy,
            fallback_model=self.config.model_fallback,
            limiter=limiter or TokenBucketRateLimiter.per_minute(self.config.requests_per_minute),
            sleep=sleep,
        )
        self.renderer = renderer or ImageRenderer(client, config=self.config)
        self.video_resolver = VideoResolver(self.dispatcher, self.config)
        self.prompts = SEOPromptBuilder(title_max_words=self.config.title_max_words)
        self.schema = SchemaMarkupGenerator(self.config.site_name, self.config.default_site_url)

    # --- helpers ---

    def _structured(self, stage: str, prompt: str, response_model: Type[BaseModel],
                    cancel_event: Optional[threading.Event], search: bool = False) -> BaseModel:
        """
        Run a structured-output stage and validate it against `response_model`.

        Search-grounded stages cannot use a response schema, so they rely on the
        prompt and the JSON extractor alone. A malformed answer is re-requested once.
        """
        if search:
            config = {"tools": _search_tools()}
        else:
            config = {
                "response_mime_type": "application/json",
                "response_json_schema": response_model.model_json_schema(),
            }

        attempts = 1 + max(0, self.config.malformed_output_retries)
        for attempt in range(1, attempts + 1):
            result = self.dispatcher.generate(self.config.model_for(stage), prompt, config, cancel_event=cancel_event)
            try:
                return response_model.model_validate(extract_json_object(result.text))
            except (MalformedOutputError, ValidationError) as e:
                if attempt == attempts:
                    if isinstance(e, ValidationError):
                        raise MalformedOutputError(f"{stage}: model output is missing required fields") from e
                    raise
                logger.warning(f"⚠️ {stage}: malformed structured output, requesting it again")

    @staticmethod
    def _is_cancellation(error: WizardError) -> bool:
        return error.kind == ErrorKind.CANCELLED

    # --- stages ---

    def analyze_serp(self, keyword: str, language: str,
                     cancel_event: Optional[threading.Event] = None) -> CompetitiveAnalysis:
        try:
            return self._structured(
                "analysis", self.prompts.build_analysis_prompt(keyword, language),
                CompetitiveAnalysis, cancel_event, search=True
            )
        except WizardError as e:
            if self._is_cancellation(e):
                raise
            logger.warning(f"⚠️ SERP analysis failed ({e.kind.value}), continuing with defaults: {e}")
            return CompetitiveAnalysis.default()

    def generate_structure(self, request: GenerationRequest, analysis: CompetitiveAnalysis,
                           cancel_event: Optional[threading.Event] = None) -> ArticleStructure:
        structure = self._structured(
            "structure",
            self.prompts.build_structure_prompt(request.topic, request.target_keyword, analysis, request.language),
            ArticleStructure, cancel_event
        )
        return structure.model_copy(update={
            "title": enforce_title(structure.title, request.target_keyword, self.config.title_max_words),
            "lead": enforce_lead(structure.lead, request.target_keyword, self.config.lead_keyword_span),
        })

    def find_internal_links(self, request: GenerationRequest,
                            cancel_event: Optional[threading.Event] = None) -> List[dict]:
        if not (request.site_url or "").strip():
            return []
        try:
            return discover_internal_links(
                self.dispatcher, request.site_url, request.target_keyword,
                self.config.model_for("internal_links"),
                limit=self.config.internal_link_count, rng=self.rng, cancel_event=cancel_event
            )
        except WizardError as e:
            if self._is_cancellation(e):
                raise
            logger.warning(f"⚠️ Internal link search failed, continuing without links: {e}")
            return []

    def generate_body(self, request: GenerationRequest, structure: ArticleStructure,
                      analysis: CompetitiveAnalysis, author: Optional[Author] = None,
                      cancel_event: Optional[threading.Event] = None) -> str:
        links = self.find_internal_links(request, cancel_event)

        prompt = self.prompts.build_body_prompt(
            request.topic, request.target_keyword, structure, analysis,
            request.word_count, request.advanced_options, request.language, author
        )
        result = self.dispatcher.generate(
            self.config.model_for("body"),
            prompt,
            {
                "thinking_config": types.ThinkingConfig(thinking_budget=self.config.body_thinking_budget),
                "max_output_tokens": self.config.body_max_output_tokens,
                "tools": _search_tools(),
            },
            cancel_event=cancel_event,
        )
        body = extract_html_body(result.text)
        if not body:
            raise MalformedOutputError("model returned no article HTML")

        references = count_references_sections(body)
        if references != 1:
            logger.warning(f"⚠️ Article body has {references} authority references sections (expected 1)")

        return splice_internal_links(body, build_internal_links_block(links))

    def plan_media(self, request: GenerationRequest, title: str,
                   cancel_event: Optional[threading.Event] = None) -> MediaStrategy:
        """Video search query plus one image spec per fixed role and ratio."""
        strategy = self._structured(
            "media", self.prompts.build_media_prompt(title, request.target_keyword, request.language),
            MediaStrategyResponse, cancel_event
        )
        return MediaStrategy(
            video_search_query=strategy.video_search_query.strip() or title,
            image_specs=self._image_specs(strategy.image_specs, request, title),
        )

    @staticmethod
    def _image_specs(plans: List[ImagePlanResponse], request: GenerationRequest, title: str) -> List[ImageSpec]:
        by_role = {plan.role.strip().lower(): plan for plan in plans if plan.role}
        specs = []
        for index, (role, ratio) in enumerate(IMAGE_ROLES):
            plan = by_role.get(role) or (plans[index] if index < len(plans) else None)
            if plan is None:
                plan = ImagePlanResponse(prompt=f"{title}, {role} composition")
            specs.append(ImageSpec(
                role=role,
                aspect_ratio=ratio,
                prompt=plan.prompt,
                alt_text=plan.alt_text or f"{title} ({request.target_keyword})",
                title=plan.title or title,
                caption=plan.caption,
                filename=slugify(plan.filename or f"{request.target_keyword}-{role}"),
            ))
        return specs

    def find_video(self, query: str, cancel_event: Optional[threading.Event] = None) -> Optional[VideoAsset]:
        try:
            return self.video_resolver.resolve(query, cancel_event)
        except WizardError as e:
            if self._is_cancellation(e):
                raise
            logger.warning(f"⚠️ Automatic video lookup failed, continuing without video: {e}")
            return None

    def render_hero(self, request: GenerationRequest, specs: List[ImageSpec],
                    cancel_event: Optional[threading.Event] = None) -> List[ImageSpec]:
        if not specs:
            return specs
        hero = specs[0]
        try:
            rendered = self.renderer.render(
                hero.prompt, hero.aspect_ratio, request.image_model, request.image_resolution, cancel_event
            )
        except WizardError as e:
            if self._is_cancellation(e):
                raise
            logger.warning(f"⚠️ Hero image render failed, it can be rendered later: {e}")
            return specs

        hero = hero.model_copy(update={
            "rendered_url": rendered.url,
            "model_used": rendered.model_used,
            "resolution_used": rendered.resolution_used,
        })
        return [hero] + specs[1:]

    def generate_metadata(self, request: GenerationRequest, html_content: str, analysis: CompetitiveAnalysis,
                          cancel_event: Optional[threading.Event] = None) -> SeoMetadata:
        try:
            meta = self._structured(
                "metadata",
                self.prompts.build_metadata_prompt(
                    request.topic, request.target_keyword, html_content, request.language,
                    self.config.synonym_count, self.config.tag_count
                ),
                SeoMetadata, cancel_event
            )
        except WizardError as e:
            if self._is_cancellation(e):
                raise
            logger.warning(f"⚠️ Metadata generation failed, using keyword defaults: {e}")
            meta = default_metadata(request.target_keyword)

        return enforce_metadata(
            meta, request.target_keyword, analysis.lsi_keywords,
            self.config.synonym_count, self.config.tag_count
        )

    def assemble(self, article: Article, author: Optional[Author] = None) -> Article:
        """Inject the video and derive the technical SEO payload. No model call."""
        article = article.model_copy(update={"html_content": inject_video(article.html_content or "", article.video)})
        return article.model_copy(update={"technical_seo": self.schema.build(article, author)})

    # --- orchestration ---

    def run(
        self,
        request: GenerationRequest,
        author: Optional[Author] = None,
        cancel_event: Optional[threading.Event] = None,
        progress: Optional[ProgressCallback] = None,
    ) -> Article:
        """
        Generate a complete article.

        Args:
            request: What to write
            author: Author credited in the body and schema (looked up by request.author_id if omitted)
            cancel_event: When set, the run stops before its next network call
            progress: Called with (step description, percentage)

        Returns:
            The completed Article, already persisted when a store is configured.

        Raises:
            WizardError: a load-bearing stage failed or the run was cancelled.
        """
        progress = progress or _no_progress
        if author is None and self.store is not None:
            author = self.store.get_author(request.author_id)

        def step(description: str, percentage: int):
            self.dispatcher.check_cancelled(cancel_event)
            logger.info(f"[{percentage:>3}%] {description}")
            progress(description, percentage)

        article = Article.from_request(request, status="generating")
        keyword = request.target_keyword
        logger.info(f"🚀 Generating article: {request.topic} (keyword: {keyword}, {request.language})")

        try:
            step(f"Analysing SERP ({request.language})...", 10)
            analysis = self.analyze_serp(keyword, request.language, cancel_event)

            step("Building the optimised structure (E-E-A-T)...", 25)
            structure = self.generate_structure(request, analysis, cancel_event)

            step("Writing the content and internal links...", 50)
            body = self.generate_body(request, structure, analysis, author, cancel_event)

            step("Planning media (video and SEO images)...", 75)
            media = self.plan_media(request, structure.title, cancel_event)
            video = self.find_video(media.video_search_query, cancel_event)

            step("Rendering the hero image...", 85)
            specs = self.render_hero(request, media.image_specs, cancel_event)

            step("Generating metadata...", 90)
            seo_data = self.generate_metadata(request, body, analysis, cancel_event)

            step("Assembling schema JSON-LD and the WordPress payload...", 95)
            article = article.model_copy(update={
                "title": structure.title,
                "subtitle": structure.subtitle,
                "lead": structure.lead,
                "html_content": body,
                "competitive_analysis": analysis,
                "seo_data": seo_data,
                "video_query": media.video_search_query,
                "video": video,
                "image_specs": specs,
            })
            article = self.assemble(article, author)
            self.dispatcher.check_cancelled(cancel_event)
        except WizardError as e:
            logger.error(f"❌ Generation aborted ({e.kind.value}): {e}")
            raise

        article = article.model_copy(update={
            "status": "completed",
            "seo_score": COMPLETED_SEO_SCORE,
            "eeat_score": COMPLETED_EEAT_SCORE,
        })
        if self.store is not None:
            article = self.store.save_article(article)

        progress("Done!", 100)
        logger.info(f"✅ Article completed: {article.title} (ID: {article.id})")
        return article
