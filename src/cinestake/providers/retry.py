"""Bounded retry with exponential backoff for provider HTTP calls."""

from __future__ import annotations

import time
from typing import Callable, TypeVar

import httpx
import structlog

log = structlog.get_logger(__name__)

T = TypeVar("T")

RETRYABLE_STATUS = frozenset({429, 500, 502, 503, 504})


def backoff_delay(attempt: int, base_delay: float = 1.0) -> float:
    """Delay in seconds before retry number attempt (0-based). Exponential backoff."""
    return base_delay * (2**attempt)


def is_retryable(exc: BaseException) -> bool:
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code in RETRYABLE_STATUS
    return isinstance(exc, httpx.TransportError)


def with_retry(
    fn: Callable[[], T],
    *,
    max_attempts: int = 3,
    base_delay: float = 1.0,
    label: str = "provider",
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Call fn, retrying timeouts, connection errors, 429 and 5xx. Re-raises the last error."""
    attempt = 0
    while True:
        try:
            return fn()
        except httpx.HTTPError as e:
            attempt += 1
            if attempt >= max_attempts or not is_retryable(e):
                raise
            delay = backoff_delay(attempt - 1, base_delay)
            log.warning("provider_retry", provider=label, attempt=attempt, delay_sec=delay, error=str(e))
            sleep(delay)
