import base64
import logging
import os
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx
from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from ..errors import ConfigurationError, ErrorKind, MalformedOutputError, ProviderError

logger = logging.getLogger(__name__)


@dataclass
class GenerationResult:
    text: str
    candidates: List[Any] = field(default_factory=list)


@dataclass
class InlineImage:
    data: bytes
    mime_type: str = "image/png"

    def to_data_url(self) -> str:
        encoded = base64.b64encode(self.data).decode("ascii")
        return f"data:{self.mime_type};base64,{encoded}"

    @classmethod
    def from_data_url(cls, data_url: str) -> "InlineImage":
        match = re.match(r'^data:(image/[\w.+-]+);base64,(.+)$', data_url or "", re.DOTALL)
        if not match:
            raise ValueError("not a base64 image data URL")
        return cls(data=base64.b64decode(match.group(2)), mime_type=match.group(1))


def extract_http_status_code(error: Exception) -> Optional[int]:
    """Extract an HTTP status code from an exception message."""
    error_str = str(error)

    # Google API error format: "{'code': 429, ...}"
    match = re.search(r"'code':\s*(\d+)", error_str)
    if match:
        return int(match.group(1))

    # Status code at the start of the message: "429 RESOURCE_EXHAUSTED"
    match = re.search(r'^(\d{3})\s', error_str)
    if match:
        return int(match.group(1))

    # Any 4xx/5xx mentioned in the message
    match = re.search(r'\b([45]\d{2})\b', error_str)
    if match:
        return int(match.group(1))

    return None


def classify_provider_error(error: Exception) -> ProviderError:
    """
    Translate a raw SDK or transport exception into a typed ProviderError.

    This is the only place where provider errors are recognised by their text.
    """
    if isinstance(error, ProviderError):
        return error

    message = str(error) or error.__class__.__name__
    upper = message.upper()
    status = getattr(error, "code", None) if isinstance(error, genai_errors.APIError) else None
    if not isinstance(status, int):
        status = extract_http_status_code(error)

    if isinstance(error, (httpx.TransportError, ConnectionError, TimeoutError)):
        kind = ErrorKind.TRANSPORT
    elif status == 429 or "RESOURCE_EXHAUSTED" in upper or "QUOTA" in upper:
        kind = ErrorKind.QUOTA
    elif "API KEY NOT VALID" in upper or "API_KEY_INVALID" in upper or "PERMISSION_DENIED" in upper or status in (401, 403):
        kind = ErrorKind.AUTH
    elif status == 404 or "NOT_FOUND" in upper:
        kind = ErrorKind.NOT_FOUND
    elif status in (500, 502, 503, 504) or "UNAVAILABLE" in upper or "OVERLOADED" in upper:
        kind = ErrorKind.UNAVAILABLE
    else:
        kind = ErrorKind.UNKNOWN

    return ProviderError(message, kind, status_code=status)


class GeminiClient:
    """Thin adapter over the google-genai SDK.

    One call, one attempt: retries, fallbacks and throttling live in the
    dispatcher. Every failure leaves this class as a classified ProviderError.
    """

    def __init__(self, api_key: Optional[str] = None, client: Optional[genai.Client] = None):
        self.api_key = api_key or os.environ.get("GEMINI_API_KEY")
        if client is None:
            if not self.api_key:
                raise ConfigurationError(
                    "Missing Gemini API key. Set GEMINI_API_KEY in your environment or .env file."
                )
            logger.info("Initializing Gemini with API key")
            client = genai.Client(api_key=self.api_key)
        self.client = client

    @staticmethod
    def build_config(config: Optional[Dict[str, Any]]) -> Optional[types.GenerateContentConfig]:
        if not config:
            return None
        return types.GenerateContentConfig(**config)

    def generate_content(self, model: str, contents: Any, config: Optional[Dict[str, Any]] = None) -> GenerationResult:
        """Single text/structured generation attempt."""
        logger.info(f"Calling Gemini API (Model: {model})")
        try:
            response = self.client.models.generate_content(
                model=model,
                contents=contents,
                config=self.build_config(config)
            )
        except Exception as e:
            raise classify_provider_error(e) from e

        return GenerationResult(
            text=getattr(response, "text", None) or "",
            candidates=list(getattr(response, "candidates", None) or [])
        )

    def generate_image(self, model: str, prompt: str, aspect_ratio: str, resolution: Optional[str] = None) -> InlineImage:
        """Single image generation attempt; returns the first inline image part."""
        image_config = {"aspect_ratio": aspect_ratio}
        if resolution:
            image_config["image_size"] = resolution

        logger.info(f"🎨 Generating image (Model: {model}, Ratio: {aspect_ratio})")
        try:
            response = self.client.models.generate_content(
                model=model,
                contents=prompt,
                config=types.GenerateContentConfig(image_config=types.ImageConfig(**image_config))
            )
        except Exception as e:
            raise classify_provider_error(e) from e

        return self._first_inline_image(response)

    def edit_image(self, model: str, image: InlineImage, instruction: str) -> InlineImage:
        """Single image edit attempt: the source image plus a text instruction."""
        logger.info(f"🎨 Editing image (Model: {model})")
        try:
            response = self.client.models.generate_content(
                model=model,
                contents=[types.Part.from_bytes(data=image.data, mime_type=image.mime_type), instruction]
            )
        except Exception as e:
            raise classify_provider_error(e) from e

        return self._first_inline_image(response)

    @staticmethod
    def _first_inline_image(response: Any) -> InlineImage:
        for candidate in getattr(response, "candidates", None) or []:
            content = getattr(candidate, "content", None)
            for part in getattr(content, "parts", None) or []:
                inline = getattr(part, "inline_data", None)
                if inline is not None and inline.data:
                    return InlineImage(data=inline.data, mime_type=inline.mime_type or "image/png")
        raise MalformedOutputError("model returned no image data")
