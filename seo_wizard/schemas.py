"""
Domain records and structured-output schemas.

The Article aggregate is a GenerationRequest plus everything the pipeline derives
from it. Response models (suffix `Response`) describe what a stage asks the model
to return; their JSON schema is sent as `response_json_schema`.
"""

import json
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional, get_args

from pydantic import BaseModel, ConfigDict, Field

AspectRatio = Literal["1:1", "2:3", "3:2", "3:4", "4:3", "9:16", "16:9", "21:9"]
ImageResolution = Literal["1K", "2K", "4K"]
WordCountTarget = Literal["800", "1500", "3000"]
ArticleStatus = Literal["draft", "generating", "completed", "published"]

SUPPORTED_ASPECT_RATIOS = get_args(AspectRatio)
SUPPORTED_RESOLUTIONS = get_args(ImageResolution)

# Fixed media roles: (role, aspect ratio)
IMAGE_ROLES = (
    ("hero", "16:9"),
    ("portrait", "3:4"),
    ("square", "1:1"),
    ("story", "9:16"),
)


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def new_article_id() -> str:
    return uuid.uuid4().hex


class AdvancedOptions(BaseModel):
    include_toc: bool = True
    include_glossary: bool = False
    include_tables: bool = True
    include_lists: bool = True
    secure_sources: bool = True
    author_credits: bool = True


class GenerationRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    topic: str = Field(min_length=1)
    target_keyword: str = Field(min_length=1)
    language: str = "English"
    word_count: WordCountTarget = "1500"
    site_url: Optional[str] = None
    author_id: Optional[str] = None
    advanced_options: AdvancedOptions = Field(default_factory=AdvancedOptions)
    image_model: str = "gemini-2.5-flash-image"
    image_resolution: ImageResolution = "1K"


class CompetitiveAnalysis(BaseModel):
    competitor_titles: List[str] = Field(default_factory=list, description="Titles ranking for the keyword")
    content_gaps: List[str] = Field(default_factory=list, description="Angles competitors miss")
    paa_questions: List[str] = Field(default_factory=list, description="People Also Ask questions")
    lsi_keywords: List[str] = Field(default_factory=list, description="Semantically related keywords")
    strategy_summary: str = Field(default="", description="How to outrank the competitors, in two sentences")

    @classmethod
    def default(cls) -> "CompetitiveAnalysis":
        return cls(strategy_summary="Focus on original content.")


class ArticleStructure(BaseModel):
    title: str = Field(description="H1 title, at most 7 words, containing the target keyword")
    subtitle: str = Field(default="", description="Supporting subtitle")
    lead: str = Field(default="", description="Opening paragraph with the keyword in its first sentence")


class ImageSpec(BaseModel):
    role: str
    aspect_ratio: AspectRatio
    prompt: str
    alt_text: str = ""
    title: str = ""
    caption: str = ""
    filename: str = ""
    rendered_url: str = ""
    model_used: Optional[str] = None
    resolution_used: Optional[ImageResolution] = None


class VideoAsset(BaseModel):
    """Only `video_id` comes from the model; embed and thumbnail are derived from it."""

    query: str
    title: str
    channel: str = "YouTube"
    canonical_url: str
    video_id: str = Field(min_length=11, max_length=11)
    embed_html: str
    thumbnail_url: str
    caption: str = ""
    alt_text: str = ""


class MediaStrategy(BaseModel):
    video_search_query: str = ""
    image_specs: List[ImageSpec] = Field(default_factory=list)


class SeoOpportunities(BaseModel):
    featured_snippet_hint: str = Field(default="", description="How to win the featured snippet")
    paa_list: List[str] = Field(default_factory=list, description="People Also Ask questions to answer")
    news_angle: str = Field(default="", description="Angle for news surfaces")


class SeoMetadata(BaseModel):
    seo_title: str = Field(default="", description="Max 60 characters, starts with the keyword")
    meta_description: str = Field(default="", description="Max 156 characters, keyword in the first 100")
    slug: str = Field(default="", description="URL slug")
    target_keyword: str = ""
    synonyms: List[str] = Field(default_factory=list, description="Exactly 4 keyword synonyms")
    related_keyphrase: str = ""
    tags: List[str] = Field(default_factory=list, description="Exactly 10 tags")
    lsi_keywords: List[str] = Field(default_factory=list)
    opportunities: SeoOpportunities = Field(default_factory=SeoOpportunities)
    viral_excerpt: str = Field(default="", description="Max 180 characters, high-CTR excerpt")


class TechnicalSeoPayload(BaseModel):
    structured_data: Dict[str, Any]
    cms_post: Dict[str, Any]

    def to_json_ld(self) -> str:
        return json.dumps(self.structured_data, indent=2, ensure_ascii=False)

    def to_post_json(self) -> str:
        return json.dumps(self.cms_post, indent=2, ensure_ascii=False)


class Article(GenerationRequest):
    id: str = Field(default_factory=new_article_id)

    title: Optional[str] = None
    subtitle: Optional[str] = None
    lead: Optional[str] = None
    html_content: Optional[str] = None

    competitive_analysis: Optional[CompetitiveAnalysis] = None
    seo_data: Optional[SeoMetadata] = None
    video_query: str = ""
    video: Optional[VideoAsset] = None
    image_specs: List[ImageSpec] = Field(default_factory=list)
    technical_seo: Optional[TechnicalSeoPayload] = None

    seo_score: Optional[int] = None
    eeat_score: Optional[int] = None
    status: ArticleStatus = "draft"
    created_at: str = Field(default_factory=utc_now_iso)
    updated_at: Optional[str] = None

    @classmethod
    def from_request(cls, request: GenerationRequest, **fields) -> "Article":
        return cls(**request.model_dump(), **fields)

    def hero_image(self) -> Optional[ImageSpec]:
        return next((spec for spec in self.image_specs if spec.role == "hero"), None)


class Author(BaseModel):
    id: str = Field(default_factory=new_article_id)
    name: str
    bio: str = ""
    photo_url: str = ""
    expertise: List[str] = Field(default_factory=list)


class AdminProfile(BaseModel):
    name: str = "Administrator"
    role: str = "Editor in Chief"
    photo_url: str = ""
    email: Optional[str] = None
    google_id: Optional[str] = None


class WordPressConfig(BaseModel):
    endpoint: str = ""
    username: str = ""
    application_password: str = ""

    def is_complete(self) -> bool:
        return bool(self.endpoint and self.username and self.application_password)


class AppSettings(BaseModel):
    admin_profile: AdminProfile = Field(default_factory=AdminProfile)
    wordpress: WordPressConfig = Field(default_factory=WordPressConfig)
    default_site_url: str = ""


# --- Structured-output response shapes ---

class ImagePlanResponse(BaseModel):
    role: str = Field(default="", description="hero, portrait, square or story")
    prompt: str = Field(description="English, photorealistic image prompt")
    alt_text: str = ""
    title: str = ""
    caption: str = ""
    filename: str = Field(default="", description="SEO-friendly file name")


class MediaStrategyResponse(BaseModel):
    video_search_query: str = Field(default="", description="Ideal YouTube search query")
    image_specs: List[ImagePlanResponse] = Field(default_factory=list)


class VideoLookupResponse(BaseModel):
    title: str = ""
    channel: str = ""
    url: str
    caption: str = Field(default="", description="Journalistic caption describing the video")
    alt_text: str = Field(default="", description="Accessibility description of the video")


class InternalLinkResponse(BaseModel):
    title: Optional[str] = None
    url: str
