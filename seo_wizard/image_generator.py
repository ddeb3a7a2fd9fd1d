"""
Image rendering module.

Renders article images with Gemini image models and edits already-rendered ones.
- Backoff budget and rate limiter are separate from text generation
- A quota exhaustion trips the session's QuotaCircuitBreaker; from then on every
  render answers with a placeholder without any network request
"""

import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .circuit_breaker import QuotaCircuitBreaker, placeholder_image_url
from .clients.gemini import GeminiClient, InlineImage
from .config import PipelineConfig
from .dispatcher import ModelDispatcher
from .errors import (ErrorKind, ImageQuotaExhausted, InvalidInputError, RETRYABLE_KINDS,
                     FALLBACK_KINDS, WizardError)
from .rate_limiter import TokenBucketRateLimiter
from .schemas import SUPPORTED_ASPECT_RATIOS, SUPPORTED_RESOLUTIONS
from .utils import slugify

logger = logging.getLogger(__name__)

PHOTO_SUFFIX = "Photorealistic, professional photography, natural lighting, high detail, no text overlay"

# Ratios the image models do not accept natively
ASPECT_RATIO_MAP = {
    "2:3": "3:4",
    "3:2": "4:3",
    "21:9": "16:9",
}

# Quota is handled by the breaker, never retried on the image path
IMAGE_RETRYABLE_KINDS = RETRYABLE_KINDS - {ErrorKind.QUOTA}
IMAGE_FALLBACK_KINDS = FALLBACK_KINDS - {ErrorKind.QUOTA}

_EXTENSIONS = {
    "image/png": ".png",
    "image/jpeg": ".jpg",
    "image/webp": ".webp",
}


def is_pro_model(model: str) -> bool:
    return "pro" in (model or "").lower()


def _image_retryable(error: BaseException) -> bool:
    return isinstance(error, WizardError) and error.kind in IMAGE_RETRYABLE_KINDS


@dataclass
class RenderedImage:
    url: str
    model_used: str
    resolution_used: Optional[str] = None
    placeholder: bool = False


class ImageRenderer:
    """Render and edit article images through Gemini."""

    def __init__(
        self,
        client: GeminiClient,
        breaker: Optional[QuotaCircuitBreaker] = None,
        config: Optional[PipelineConfig] = None,
        limiter: Optional[TokenBucketRateLimiter] = None,
        dispatcher: Optional[ModelDispatcher] = None,
    ):
        self.client = client
        self.config = config or PipelineConfig()
        self.breaker = breaker or QuotaCircuitBreaker()
        if limiter is None:
            limiter = TokenBucketRateLimiter.per_minute(self.config.image_requests_per_minute)
        self.dispatcher = dispatcher or ModelDispatcher(
            self.config.image_policy,
            self.config.image_policy,
            limiter=limiter,
            recoverable_kinds=IMAGE_FALLBACK_KINDS,
            retryable=_image_retryable,
            label="Gemini Image",
        )

    def _placeholder(self, prompt: str, aspect_ratio: str, model: str) -> RenderedImage:
        return RenderedImage(
            url=placeholder_image_url(prompt, aspect_ratio),
            model_used=model,
            placeholder=True,
        )

    def render(
        self,
        prompt: str,
        aspect_ratio: str = "16:9",
        model: Optional[str] = None,
        resolution: Optional[str] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> RenderedImage:
        """
        Render one image.

        Args:
            prompt: Image description (English)
            aspect_ratio: One of the supported ratios; others are rejected
            model: Image model (defaults to the configured image model)
            resolution: 1K/2K/4K, only honoured by "pro" models

        Returns:
            RenderedImage with a data URL, or a placeholder URL once quota is exhausted.
        """
        if aspect_ratio not in SUPPORTED_ASPECT_RATIOS:
            raise InvalidInputError(f"Unsupported aspect ratio: {aspect_ratio}")
        if resolution is not None and resolution not in SUPPORTED_RESOLUTIONS:
            raise InvalidInputError(f"Unsupported image resolution: {resolution}")

        model = model or self.config.model_image
        if self.breaker.is_open:
            logger.info("🚫 Image quota exhausted earlier in this session. Returning placeholder.")
            return self._placeholder(prompt, aspect_ratio, model)

        api_ratio = ASPECT_RATIO_MAP.get(aspect_ratio, aspect_ratio)
        full_prompt = f"{prompt.strip().rstrip('.')}. {PHOTO_SUFFIX}."

        def _request(target_model, _config):
            size = (resolution or "1K") if is_pro_model(target_model) else None
            image = self.client.generate_image(target_model, full_prompt, api_ratio, size)
            return image, target_model, size

        try:
            image, used_model, used_size = self.dispatcher.run(
                _request,
                model,
                fallback_model=self.config.model_image_backup,
                cancel_event=cancel_event,
            )
        except WizardError as e:
            if e.kind != ErrorKind.QUOTA:
                raise
            self.breaker.trip(str(e))
            return self._placeholder(prompt, aspect_ratio, model)

        logger.info(f"✅ Image rendered via {used_model} ({api_ratio})")
        return RenderedImage(url=image.to_data_url(), model_used=used_model, resolution_used=used_size)

    def edit(self, image_url: str, instruction: str, model: Optional[str] = None,
             cancel_event: Optional[threading.Event] = None) -> str:
        """Apply a text instruction to a rendered image and return the new data URL."""
        if self.breaker.is_open:
            raise ImageQuotaExhausted()
        if not instruction or not instruction.strip():
            raise InvalidInputError("Edit instruction is empty")
        try:
            source = InlineImage.from_data_url(image_url)
        except ValueError:
            raise InvalidInputError("Only rendered images (data URLs) can be edited") from None

        model = model or self.config.model_image

        def _request(target_model, _config):
            return self.client.edit_image(target_model, source, instruction.strip())

        try:
            edited = self.dispatcher.run(_request, model, cancel_event=cancel_event)
        except WizardError as e:
            if e.kind != ErrorKind.QUOTA:
                raise
            self.breaker.trip(str(e))
            raise ImageQuotaExhausted() from e

        logger.info("✅ Image edited")
        return edited.to_data_url()

    @staticmethod
    def save_image(image_url: str, filename: str, directory: str = "generated_images") -> Path:
        """Write a rendered data-URL image to `directory`; returns the file path."""
        try:
            image = InlineImage.from_data_url(image_url)
        except ValueError:
            raise InvalidInputError(f"{filename}: not a rendered image (placeholder or remote URL)") from None

        images_dir = Path(directory)
        images_dir.mkdir(parents=True, exist_ok=True)
        stem = slugify(Path(filename).stem or filename)
        filepath = images_dir / f"{stem}{_EXTENSIONS.get(image.mime_type, '.png')}"
        with open(filepath, 'wb') as f:
            f.write(image.data)
        logger.info(f"Image saved to: {filepath}")
        return filepath
