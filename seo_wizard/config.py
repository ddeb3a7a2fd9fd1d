"""
Runtime configuration.

Values come from the environment (a `.env` file is loaded by the CLI entry point).
Model tiers, retry budgets and the failure policy of the optional stages are all
configuration rather than constants baked into the pipeline.
"""

import os
from dataclasses import dataclass, field
from typing import Dict, Optional

from .errors import ConfigurationError
from .retry import BackoffPolicy

MODEL_PRIMARY_TEXT = "gemini-2.5-pro"
MODEL_FALLBACK_TEXT = "gemini-2.5-flash"
MODEL_TOOL_USE = "gemini-2.5-flash"
MODEL_IMAGE = "gemini-2.5-flash-image"
MODEL_IMAGE_PRO = "gemini-3-pro-image-preview"

# Which model tier each stage uses
DEFAULT_STAGE_MODELS = {
    "analysis": "primary",
    "structure": "primary",
    "internal_links": "tools",
    "body": "primary",
    "media": "primary",
    "video": "tools",
    "metadata": "primary",
}


def _env_int(name: str, default: int) -> int:
    value = os.environ.get(name)
    if value is None or value == "":
        return default
    try:
        return int(value)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {value!r}") from None


def _env_float(name: str, default: float) -> float:
    value = os.environ.get(name)
    if value is None or value == "":
        return default
    try:
        return float(value)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got {value!r}") from None


@dataclass
class PipelineConfig:
    gemini_api_key: Optional[str] = None

    model_primary: str = MODEL_PRIMARY_TEXT
    model_fallback: str = MODEL_FALLBACK_TEXT
    model_tools: str = MODEL_TOOL_USE
    model_image: str = MODEL_IMAGE
    model_image_backup: str = MODEL_IMAGE
    stage_models: Dict[str, str] = field(default_factory=lambda: dict(DEFAULT_STAGE_MODELS))

    # Text: a couple of retries, quota waits of at least 30s
    text_policy: BackoffPolicy = BackoffPolicy(retries=2, initial_delay=4.0, factor=2.0, quota_delay_floor=30.0)
    fallback_policy: BackoffPolicy = BackoffPolicy(retries=2, initial_delay=6.0, factor=2.0, quota_delay_floor=30.0)
    # Images: media rate-limit windows are long, so fewer retries and longer delays
    image_policy: BackoffPolicy = BackoffPolicy(retries=1, initial_delay=8.0, factor=2.0)

    requests_per_minute: int = 10
    image_requests_per_minute: int = 5

    title_max_words: int = 7
    lead_keyword_span: int = 100
    internal_link_count: int = 3
    synonym_count: int = 4
    tag_count: int = 10
    body_max_output_tokens: int = 8192
    body_thinking_budget: int = 1024
    # Whole-stage re-requests after malformed structured output
    malformed_output_retries: int = 1

    site_name: str = "SEO Wizard Publisher"
    default_site_url: str = "https://example.com"

    storage_file: Optional[str] = "seo_wizard_data.json"
    storage_capacity_bytes: int = 5 * 1024 * 1024

    def model_for(self, stage: str) -> str:
        tier = self.stage_models.get(stage, "primary")
        return {
            "primary": self.model_primary,
            "fallback": self.model_fallback,
            "tools": self.model_tools,
        }.get(tier, tier)

    def require_api_key(self) -> str:
        if not self.gemini_api_key:
            raise ConfigurationError(
                "Missing Gemini API key. Set GEMINI_API_KEY in your environment or .env file."
            )
        return self.gemini_api_key

    @classmethod
    def from_env(cls) -> "PipelineConfig":
        defaults = cls()
        stage_models = dict(DEFAULT_STAGE_MODELS)
        for stage in stage_models:
            override = os.environ.get(f"SEO_WIZARD_STAGE_{stage.upper()}")
            if override:
                stage_models[stage] = override

        return cls(
            gemini_api_key=os.environ.get("GEMINI_API_KEY"),
            model_primary=os.environ.get("SEO_WIZARD_MODEL_PRIMARY", defaults.model_primary),
            model_fallback=os.environ.get("SEO_WIZARD_MODEL_FALLBACK", defaults.model_fallback),
            model_tools=os.environ.get("SEO_WIZARD_MODEL_TOOLS", defaults.model_tools),
            model_image=os.environ.get("SEO_WIZARD_MODEL_IMAGE", defaults.model_image),
            model_image_backup=os.environ.get("SEO_WIZARD_MODEL_IMAGE_BACKUP", defaults.model_image_backup),
            stage_models=stage_models,
            text_policy=BackoffPolicy(
                retries=_env_int("SEO_WIZARD_TEXT_RETRIES", defaults.text_policy.retries),
                initial_delay=_env_float("SEO_WIZARD_TEXT_DELAY", defaults.text_policy.initial_delay),
                factor=defaults.text_policy.factor,
                quota_delay_floor=defaults.text_policy.quota_delay_floor,
            ),
            fallback_policy=BackoffPolicy(
                retries=_env_int("SEO_WIZARD_FALLBACK_RETRIES", defaults.fallback_policy.retries),
                initial_delay=_env_float("SEO_WIZARD_FALLBACK_DELAY", defaults.fallback_policy.initial_delay),
                factor=defaults.fallback_policy.factor,
                quota_delay_floor=defaults.fallback_policy.quota_delay_floor,
            ),
            image_policy=BackoffPolicy(
                retries=_env_int("SEO_WIZARD_IMAGE_RETRIES", defaults.image_policy.retries),
                initial_delay=_env_float("SEO_WIZARD_IMAGE_DELAY", defaults.image_policy.initial_delay),
                factor=defaults.image_policy.factor,
            ),
            requests_per_minute=_env_int("SEO_WIZARD_REQUESTS_PER_MINUTE", defaults.requests_per_minute),
            image_requests_per_minute=_env_int("SEO_WIZARD_IMAGE_REQUESTS_PER_MINUTE", defaults.image_requests_per_minute),
            title_max_words=_env_int("SEO_WIZARD_TITLE_MAX_WORDS", defaults.title_max_words),
            malformed_output_retries=_env_int("SEO_WIZARD_MALFORMED_RETRIES", defaults.malformed_output_retries),
            site_name=os.environ.get("SITE_NAME", defaults.site_name),
            default_site_url=os.environ.get("SITE_URL", defaults.default_site_url),
            storage_file=os.environ.get("SEO_WIZARD_STORAGE_FILE", defaults.storage_file),
            storage_capacity_bytes=_env_int("SEO_WIZARD_STORAGE_CAPACITY", defaults.storage_capacity_bytes),
        )
