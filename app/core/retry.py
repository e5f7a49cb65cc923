"""
Retry with exponential backoff and jitter for outbound HTTP calls.
"""

import asyncio
import logging
import random
from dataclasses import dataclass
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Awaitable, Callable, Optional

import httpx

logger = logging.getLogger(__name__)

RETRYABLE_STATUS_CODES = frozenset({408, 429, 500, 502, 503, 504})

RETRYABLE_ERROR_PATTERNS = (
    "network",
    "timeout",
    "econnreset",
    "econnrefused",
    "etimedout",
    "socket hang up",
    "fetch failed",
    "aborted",
    "connection reset",
    "connection refused",
)


@dataclass
class RetryConfig:
    max_retries: int = 3
    base_delay_ms: int = 1000
    max_delay_ms: int = 30000
    backoff_multiplier: float = 2.0
    jitter_factor: float = 0.1


class RetryError(Exception):
    """Raised when every attempt failed."""

    def __init__(self, message: str, last_error: BaseException, attempts: int):
        super().__init__(message)
        self.last_error = last_error
        self.attempts = attempts


def calculate_delay(attempt: int, config: RetryConfig, retry_after_ms: Optional[float] = None) -> float:
    """Delay in milliseconds before retry number ``attempt`` (0-based)."""
    if retry_after_ms is not None and retry_after_ms > 0:
        return min(retry_after_ms, config.max_delay_ms)
    delay = config.base_delay_ms * (config.backoff_multiplier ** attempt)
    jitter = delay * config.jitter_factor * (random.random() * 2 - 1)
    return max(0.0, min(delay + jitter, config.max_delay_ms))


def _status_of(error: BaseException) -> Optional[int]:
    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code
    status = getattr(error, "status_code", None)
    return status if isinstance(status, int) else None


def is_retryable_error(error: BaseException) -> bool:
    if isinstance(error, (httpx.TimeoutException, httpx.NetworkError, httpx.RemoteProtocolError)):
        return True
    status = _status_of(error)
    if status is not None:
        return status in RETRYABLE_STATUS_CODES
    message = str(error).lower()
    return any(pattern in message for pattern in RETRYABLE_ERROR_PATTERNS)


def parse_retry_after(value: Optional[str]) -> Optional[float]:
    """Retry-After header (delta seconds or HTTP date) in milliseconds."""
    if not value:
        return None
    value = value.strip()
    if value.isdigit():
        return int(value) * 1000.0
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return max(0.0, (when - datetime.now(timezone.utc)).total_seconds() * 1000)


def extract_retry_after(error: BaseException) -> Optional[float]:
    response = getattr(error, "response", None)
    headers = getattr(response, "headers", None) or getattr(error, "headers", None)
    if not headers:
        return None
    return parse_retry_after(headers.get("retry-after") or headers.get("Retry-After"))


async def with_retry(
    fn: Callable[[], Awaitable[Any]],
    config: Optional[RetryConfig] = None,
    should_retry: Callable[[BaseException], bool] = is_retryable_error,
    on_retry: Optional[Callable[[BaseException, int, float], None]] = None,
    get_retry_after: Callable[[BaseException], Optional[float]] = extract_retry_after,
) -> Any:
    """
    Await ``fn()`` until it succeeds or retries run out.

    Non-retryable errors propagate unchanged on the first failure. When the
    retry budget is exhausted a RetryError wraps the last error.
    """
    config = config or RetryConfig()
    last_error: Optional[BaseException] = None

    for attempt in range(config.max_retries + 1):
        try:
            return await fn()
        except Exception as exc:
            last_error = exc
            if not should_retry(exc):
                raise
            if attempt >= config.max_retries:
                break
            delay_ms = calculate_delay(attempt, config, get_retry_after(exc))
            if on_retry:
                on_retry(exc, attempt + 1, delay_ms)
            await asyncio.sleep(delay_ms / 1000)

    attempts = config.max_retries + 1
    raise RetryError(f"Retry exhausted after {attempts} attempts", last_error, attempts) from last_error
