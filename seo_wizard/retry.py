"""
Backoff/retry primitive.

Truncated exponential backoff:
    delay(n) = min(initial_delay * factor ^ (n - 1), max_delay)

Quota errors wait at least `quota_delay_floor` seconds, since provider rate-limit
windows are longer than the usual backoff step. Text and image requests use
separate BackoffPolicy instances and never share a retry budget.
"""

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable

from tenacity import Retrying, retry_if_exception, stop_after_attempt

from .errors import ErrorKind, RETRYABLE_KINDS, WizardError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BackoffPolicy:
    retries: int = 2
    initial_delay: float = 4.0
    factor: float = 2.0
    max_delay: float = 120.0
    quota_delay_floor: float = 0.0

    def delay_for(self, attempt_number: int, error: BaseException = None) -> float:
        """Delay after the `attempt_number`-th failed attempt (1-based)."""
        delay = self.initial_delay * (self.factor ** (attempt_number - 1))
        if isinstance(error, WizardError) and error.kind == ErrorKind.QUOTA:
            delay = max(delay, self.quota_delay_floor)
        return min(delay, self.max_delay)


def is_retryable(error: BaseException) -> bool:
    """Default classification: only typed transient failures are retried."""
    return isinstance(error, WizardError) and error.kind in RETRYABLE_KINDS


def call_with_backoff(
    func: Callable[[], Any],
    policy: BackoffPolicy,
    retryable: Callable[[BaseException], bool] = is_retryable,
    sleep: Callable[[float], None] = time.sleep,
    label: str = "request",
) -> Any:
    """
    Execute `func`, retrying transient failures according to `policy`.

    Args:
        func: Zero-argument callable performing one attempt
        policy: Retry count and delay progression
        retryable: Predicate deciding whether an exception earns another attempt
        sleep: Sleep function (injected by tests)
        label: Name used in log lines

    Returns:
        Whatever `func` returns on its first successful attempt.

    Raises:
        The last exception, unchanged, once it is non-retryable or retries run out.
    """

    def _wait(retry_state) -> float:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        return policy.delay_for(retry_state.attempt_number, error)

    def _log_retry(retry_state) -> None:
        error = retry_state.outcome.exception()
        delay = getattr(retry_state.next_action, "sleep", 0.0)
        kind = getattr(error, "kind", None)
        kind_info = kind.value if kind else "error"
        logger.warning(
            f"⚠️ {label}: {kind_info} - Retrying in {delay:.1f}s "
            f"(attempt {retry_state.attempt_number}/{policy.retries + 1})"
        )

    retrying = Retrying(
        stop=stop_after_attempt(policy.retries + 1),
        wait=_wait,
        retry=retry_if_exception(retryable),
        before_sleep=_log_retry,
        sleep=sleep,
        reraise=True,
    )
    return retrying(func)
