"""
Blocked / challenge page detection.

A blocked page is not an empty result page: the spider retries it with a
fresh identity instead of treating it as the end of the listing.
"""

from __future__ import annotations

import enum

DEFAULT_MIN_LENGTH = 10_000

BLOCKED_STATUS_CODES = frozenset({403, 429})

BLOCKED_MARKERS = (
    "/_____tmd_____/punish",
    "x5sec",
    "captcha",
    "slide to verify",
    "unusual traffic",
    "verify you are human",
    "access denied",
)


class PageStatus(enum.Enum):
    OK = "ok"
    BLOCKED = "blocked"


def classify_page(body, status: int = 200, min_length: int = DEFAULT_MIN_LENGTH) -> PageStatus:
    if status in BLOCKED_STATUS_CODES:
        return PageStatus.BLOCKED
    if isinstance(body, (bytes, bytearray)):
        body = body.decode("utf-8", errors="ignore")
    elif not isinstance(body, str):
        body = str(body) if body is not None else ""
    # very short html is a challenge shell or placeholder
    if len(body) < min_length:
        return PageStatus.BLOCKED
    low = body.lower()
    if any(marker in low for marker in BLOCKED_MARKERS):
        return PageStatus.BLOCKED
    return PageStatus.OK
