"""
Model fallback dispatcher.

Two tiers only: the preferred model with its own backoff policy, then, on a
recoverable failure and only when the fallback differs, one pass against the
fallback model with its own policy. Worst-case latency is therefore bounded by
(primary retries x primary delay) + (fallback retries x fallback delay).
"""

import logging
import threading
import time
from typing import Any, Callable, Dict, FrozenSet, Iterable, Optional

from .clients.gemini import GeminiClient, GenerationResult
from .errors import EmptyResponseError, FALLBACK_KINDS, GenerationCancelled, WizardError
from .rate_limiter import TokenBucketRateLimiter
from .retry import BackoffPolicy, call_with_backoff, is_retryable

logger = logging.getLogger(__name__)

# Options the fallback tier does not understand
UNSUPPORTED_FALLBACK_KEYS = frozenset({"thinking_config", "response_schema", "response_json_schema"})


def strip_unsupported(config: Optional[Dict[str, Any]], keys: Iterable[str] = UNSUPPORTED_FALLBACK_KEYS) -> Dict[str, Any]:
    keys = set(keys)
    return {k: v for k, v in (config or {}).items() if k not in keys}


class ModelDispatcher:
    """Runs one logical request through backoff and, if needed, the fallback model."""

    def __init__(
        self,
        primary_policy: BackoffPolicy,
        fallback_policy: BackoffPolicy,
        limiter: Optional[TokenBucketRateLimiter] = None,
        recoverable_kinds: FrozenSet = FALLBACK_KINDS,
        retryable: Callable[[BaseException], bool] = is_retryable,
        unsupported_fallback_keys: Iterable[str] = UNSUPPORTED_FALLBACK_KEYS,
        cancel_event: Optional[threading.Event] = None,
        sleep: Callable[[float], None] = time.sleep,
        label: str = "Gemini",
    ):
        self.primary_policy = primary_policy
        self.fallback_policy = fallback_policy
        self.limiter = limiter
        self.recoverable_kinds = recoverable_kinds
        self.retryable = retryable
        self.unsupported_fallback_keys = frozenset(unsupported_fallback_keys)
        self.cancel_event = cancel_event
        self.sleep = sleep
        self.label = label

    def check_cancelled(self, cancel_event: Optional[threading.Event] = None):
        event = cancel_event or self.cancel_event
        if event is not None and event.is_set():
            raise GenerationCancelled()

    def _attempt(self, request: Callable[[str, Dict[str, Any]], Any], model: str, config: Dict[str, Any],
                 cancel_event: Optional[threading.Event]) -> Any:
        self.check_cancelled(cancel_event)
        if self.limiter is not None:
            self.limiter.acquire()
            self.check_cancelled(cancel_event)
        return request(model, config)

    def run(
        self,
        request: Callable[[str, Dict[str, Any]], Any],
        model: str,
        config: Optional[Dict[str, Any]] = None,
        fallback_model: Optional[str] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> Any:
        """
        Execute `request(model, config)` with backoff, falling back once if recoverable.

        Args:
            request: Callable performing one attempt against a given model/config
            model: Preferred model identifier
            config: Request options (schema, tools, budgets)
            fallback_model: Secondary model; None disables the fallback tier
            cancel_event: Checked before every attempt, overrides the dispatcher's own event

        Raises:
            The primary error when it is not recoverable, otherwise the fallback's error.
        """
        config = dict(config or {})
        try:
            return call_with_backoff(
                lambda: self._attempt(request, model, config, cancel_event),
                self.primary_policy,
                retryable=self.retryable,
                sleep=self.sleep,
                label=f"{self.label} {model}",
            )
        except WizardError as e:
            recoverable = e.kind in self.recoverable_kinds
            if not recoverable or not fallback_model or fallback_model == model:
                raise
            logger.warning(f"⚠️ Model {model} failed ({e.kind.value}). Falling back to {fallback_model}...")

        clean_config = strip_unsupported(config, self.unsupported_fallback_keys)
        return call_with_backoff(
            lambda: self._attempt(request, fallback_model, clean_config, cancel_event),
            self.fallback_policy,
            retryable=self.retryable,
            sleep=self.sleep,
            label=f"{self.label} {fallback_model}",
        )


class TextDispatcher(ModelDispatcher):
    """ModelDispatcher bound to a GeminiClient for text/structured requests."""

    def __init__(self, client: GeminiClient, primary_policy: BackoffPolicy, fallback_policy: BackoffPolicy,
                 fallback_model: Optional[str] = None, **kwargs):
        super().__init__(primary_policy, fallback_policy, **kwargs)
        self.client = client
        self.fallback_model = fallback_model

    def generate(self, model: str, contents: Any, config: Optional[Dict[str, Any]] = None,
                 fallback_model: Optional[str] = None, allow_empty: bool = False,
                 cancel_event: Optional[threading.Event] = None) -> GenerationResult:
        """Generate text; a blank body counts as a retryable EMPTY_RESPONSE failure unless allowed."""

        def _request(target_model: str, target_config: Dict[str, Any]) -> GenerationResult:
            result = self.client.generate_content(target_model, contents, target_config)
            if not allow_empty and not (result.text or "").strip():
                raise EmptyResponseError()
            return result

        return self.run(_request, model, config, fallback_model or self.fallback_model, cancel_event=cancel_event)
