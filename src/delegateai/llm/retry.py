"""Bounded exponential-backoff retry around a single model call."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import TypeVar

from delegateai.llm.client import ModelRequestError

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_ATTEMPTS = 3
RETRYABLE_MARKERS = (
    "rate limit",
    "rate_limit",
    "ratelimit",
    "too many requests",
    "429",
    "timeout",
    "timed out",
    "connection",
)


def is_retryable(error: BaseException) -> bool:
    """Return true for rate limiting, HTTP 429, timeouts and connection failures."""
    message = str(error).lower()
    return any(marker in message for marker in RETRYABLE_MARKERS)


def call_with_retry(
    call: Callable[[], T],
    *,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Run ``call``, sleeping ``2 ** attempt`` seconds between transient failures.

    Non-retryable errors and the error of the final attempt propagate unchanged.
    """
    attempts = max(1, max_attempts)
    for attempt in range(attempts):
        try:
            return call()
        except ModelRequestError as exc:
            if not is_retryable(exc) or attempt >= attempts - 1:
                raise
            delay = float(2**attempt)
            LOGGER.warning(
                "llm_request_retry",
                extra={"attempt": attempt + 1, "max_attempts": attempts, "delay_seconds": delay},
            )
            sleep(delay)
    raise AssertionError("unreachable")
