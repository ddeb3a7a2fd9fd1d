"""
Quota circuit breaker for image generation.

Image quota windows are long compared to a user session, so once one quota
exhaustion is observed every further image request answers with a placeholder
without touching the network. The breaker never resets itself; a new session
(a new instance) starts closed. Text generation does not use it.
"""

import logging
from typing import Optional
from urllib.parse import quote

logger = logging.getLogger(__name__)

PLACEHOLDER_HOST = "https://placehold.co"

# Placeholder pixel sizes per supported aspect ratio
PLACEHOLDER_SIZES = {
    "1:1": (1024, 1024),
    "2:3": (800, 1200),
    "3:2": (1200, 800),
    "3:4": (900, 1200),
    "4:3": (1200, 900),
    "9:16": (675, 1200),
    "16:9": (1200, 675),
    "21:9": (1400, 600),
}


class QuotaCircuitBreaker:
    """Session-scoped flag; inject one instance per session/user."""

    def __init__(self):
        self._open = False
        self._reason: Optional[str] = None

    @property
    def is_open(self) -> bool:
        return self._open

    @property
    def reason(self) -> Optional[str]:
        return self._reason

    def trip(self, reason: str = "quota exhausted"):
        if not self._open:
            logger.warning(f"🚫 Image quota exhausted. Circuit breaker open: {reason}")
        self._open = True
        self._reason = reason

    def reset(self):
        self._open = False
        self._reason = None


def placeholder_image_url(prompt: str, aspect_ratio: str = "1:1") -> str:
    """Deterministic placeholder sized to the aspect ratio and labelled with the prompt."""
    width, height = PLACEHOLDER_SIZES.get(aspect_ratio, PLACEHOLDER_SIZES["1:1"])
    text = quote(prompt[:50].strip(), safe="")
    return f"{PLACEHOLDER_HOST}/{width}x{height}/1e293b/ffffff?text={text}..."
