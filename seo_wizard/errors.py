"""
Error taxonomy for the generation wizard.

Every failure that crosses a module boundary is a WizardError carrying an ErrorKind.
Raw SDK/transport exceptions are translated into ProviderError by the Gemini adapter
(clients/gemini.py); nothing else in the package inspects error strings.
"""

import json
import re
from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    QUOTA = "quota"
    UNAVAILABLE = "unavailable"
    NOT_FOUND = "not_found"
    TRANSPORT = "transport"
    EMPTY_RESPONSE = "empty_response"
    AUTH = "auth"
    MALFORMED_OUTPUT = "malformed_output"
    CONFIGURATION = "configuration"
    VALIDATION = "validation"
    CANCELLED = "cancelled"
    UNKNOWN = "unknown"


# Transient failures worth another attempt against the same model
RETRYABLE_KINDS = frozenset({
    ErrorKind.QUOTA,
    ErrorKind.UNAVAILABLE,
    ErrorKind.TRANSPORT,
    ErrorKind.EMPTY_RESPONSE,
})

# Failures after which a text request may move to the fallback model
FALLBACK_KINDS = frozenset({
    ErrorKind.QUOTA,
    ErrorKind.NOT_FOUND,
    ErrorKind.UNAVAILABLE,
    ErrorKind.EMPTY_RESPONSE,
})


class WizardError(Exception):
    """Base class for all typed wizard errors."""

    kind: ErrorKind = ErrorKind.UNKNOWN

    def __init__(self, message: str, kind: Optional[ErrorKind] = None):
        super().__init__(message)
        if kind is not None:
            self.kind = kind

    @property
    def retryable(self) -> bool:
        return self.kind in RETRYABLE_KINDS


class ProviderError(WizardError):
    """A generative API call failed; `kind` is already classified by the adapter."""

    def __init__(self, message: str, kind: ErrorKind, status_code: Optional[int] = None):
        super().__init__(message, kind)
        self.status_code = status_code


class EmptyResponseError(WizardError):
    kind = ErrorKind.EMPTY_RESPONSE

    def __init__(self, message: str = "empty model response"):
        super().__init__(message)


class MalformedOutputError(WizardError):
    kind = ErrorKind.MALFORMED_OUTPUT

    def __init__(self, message: str = "model did not return valid structured data"):
        super().__init__(message)


class ConfigurationError(WizardError):
    kind = ErrorKind.CONFIGURATION


class InvalidInputError(WizardError):
    """Structural contract violation (unknown aspect ratio, foreign video host...)."""

    kind = ErrorKind.VALIDATION


class ArticleNotFound(WizardError):
    kind = ErrorKind.VALIDATION


class VideoLookupError(WizardError):
    kind = ErrorKind.MALFORMED_OUTPUT


class ImageQuotaExhausted(WizardError):
    kind = ErrorKind.QUOTA

    def __init__(self, message: str = "image quota exhausted for this session"):
        super().__init__(message)


class GenerationCancelled(WizardError):
    kind = ErrorKind.CANCELLED

    def __init__(self, message: str = "generation cancelled"):
        super().__init__(message)


class StorageQuotaExceeded(WizardError):
    kind = ErrorKind.QUOTA


class PublishError(WizardError):
    """The CMS answered with a non-2xx status."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class PublishAuthError(PublishError):
    kind = ErrorKind.AUTH


class PublishConnectionError(PublishError):
    kind = ErrorKind.TRANSPORT


def _embedded_provider_message(message: str) -> str:
    """Pull `error.message` out of provider JSON embedded in an exception string."""
    match = re.search(r'\{[\s\S]*\}', message)
    if not match:
        return message
    try:
        payload = json.loads(match.group(0))
    except ValueError:
        return message
    if isinstance(payload, dict) and isinstance(payload.get("error"), dict):
        return payload["error"].get("message") or message
    return message


def friendly_error_message(error: BaseException) -> str:
    """
    Translate any exception into a short message suitable for the user.

    The wording is chosen by error kind only; the message text is shown as-is
    (provider JSON unwrapped) when no kind-specific wording applies.
    """
    message = _embedded_provider_message(str(error) or error.__class__.__name__)
    kind = getattr(error, "kind", None)

    if isinstance(error, PublishAuthError):
        return "Permission error: check your WordPress username and application password."
    if isinstance(error, PublishConnectionError):
        return ("Connection error: check that the site URL is correct and that the site "
                "accepts external requests (CORS).")
    if kind == ErrorKind.QUOTA:
        return "Quota exceeded (429). Wait a few moments or check your API key."
    if kind == ErrorKind.AUTH:
        return "Invalid API key. Check your settings."
    if kind == ErrorKind.CANCELLED:
        return "Generation cancelled."
    return message
