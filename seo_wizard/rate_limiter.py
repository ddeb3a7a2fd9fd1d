"""
Token-bucket rate limiter.

Provider rate limits are expressed per minute; the bucket holds `capacity` tokens
and refills continuously at `refill_per_second`. Every outbound generative request
takes one token, so throttling between pipeline stages is a policy of the limiter
rather than sleeps sprinkled through orchestration code.
"""

import logging
import time
from threading import Lock
from typing import Callable, Dict, Optional

logger = logging.getLogger(__name__)


class TokenBucketRateLimiter:
    """Blocking token bucket. Thread-safe so one instance may serve several workers."""

    def __init__(
        self,
        capacity: float,
        refill_per_second: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if capacity <= 0 or refill_per_second <= 0:
            raise ValueError("capacity and refill_per_second must be positive")
        self._capacity = float(capacity)
        self._refill_per_second = float(refill_per_second)
        self._clock = clock
        self._sleep = sleep
        self._lock = Lock()
        self._tokens = float(capacity)
        self._updated_at = clock()
        self._total_wait = 0.0
        self._granted = 0

    @classmethod
    def per_minute(cls, requests_per_minute: int, burst: Optional[int] = None, **kwargs) -> "TokenBucketRateLimiter":
        """Build a limiter from an RPM quota; `burst` defaults to a quarter of the RPM (at least 1)."""
        capacity = burst or max(1, requests_per_minute // 4)
        return cls(capacity=capacity, refill_per_second=requests_per_minute / 60.0, **kwargs)

    def _refill(self):
        now = self._clock()
        elapsed = max(0.0, now - self._updated_at)
        self._tokens = min(self._capacity, self._tokens + elapsed * self._refill_per_second)
        self._updated_at = now

    def try_acquire(self) -> bool:
        """Take a token if one is available right now."""
        with self._lock:
            self._refill()
            if self._tokens >= 1.0:
                self._tokens -= 1.0
                self._granted += 1
                return True
            return False

    def acquire(self) -> float:
        """Take a token, sleeping until one is available. Returns the time waited."""
        waited = 0.0
        while True:
            with self._lock:
                self._refill()
                if self._tokens >= 1.0:
                    self._tokens -= 1.0
                    self._granted += 1
                    self._total_wait += waited
                    return waited
                wait_time = (1.0 - self._tokens) / self._refill_per_second
            logger.info(f"Rate limit proactive throttle: waiting {wait_time:.1f}s")
            self._sleep(wait_time)
            waited += wait_time

    def stats(self) -> Dict:
        with self._lock:
            self._refill()
            return {
                "tokens_available": self._tokens,
                "capacity": self._capacity,
                "refill_per_second": self._refill_per_second,
                "granted": self._granted,
                "total_wait": self._total_wait,
            }
