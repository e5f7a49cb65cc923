"""
Sliding-window rate limiting for API routes.

Built on the ``limits`` package (the engine behind slowapi) with a moving
window strategy. Storage comes from ``settings.rate_limit_storage_uri``:
``memory://`` keeps counters in-process for local development, a
``redis://`` URI shares them across workers in production.
"""

import logging
import math
import re
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from fastapi import Depends, Request, Response
from limits import RateLimitItemPerSecond
from limits.storage import Storage, storage_from_string
from limits.strategies import MovingWindowRateLimiter

from app.config.settings import settings
from app.core.dependencies import get_current_user
from app.core.errors import APIError

logger = logging.getLogger(__name__)

_WINDOW_PATTERN = re.compile(r"^(\d+)(s|m|h|d)$")
_WINDOW_UNITS = {"s": 1, "m": 60, "h": 3600, "d": 86400}

_storage: Optional[Storage] = None


def parse_window(window: str) -> int:
    """Convert a window like "10s", "1m", "5m", "1h" or "1d" into seconds."""
    match = _WINDOW_PATTERN.match(window)
    if not match:
        raise ValueError(f"Invalid window format: {window}")
    value, unit = match.groups()
    return int(value) * _WINDOW_UNITS[unit]


def get_rate_limit_storage() -> Storage:
    global _storage
    if _storage is None:
        _storage = storage_from_string(settings.rate_limit_storage_uri)
        logger.info("Rate limiting using %s storage", get_rate_limit_mode())
    return _storage


def get_rate_limit_mode() -> str:
    """'distributed' when counters live in a shared store, otherwise 'memory'."""
    return "memory" if settings.rate_limit_storage_uri.startswith("memory://") else "distributed"


def reset_rate_limits() -> None:
    """Clear every counter. Used by tests and maintenance scripts."""
    get_rate_limit_storage().reset()


@dataclass
class RateLimitResult:
    success: bool
    limit: int
    remaining: int
    reset_at: float  # unix time when the window frees a slot

    @property
    def reset(self) -> int:
        return int(math.floor(self.reset_at))

    @property
    def retry_after(self) -> int:
        return max(0, math.ceil(self.reset_at - time.time()))

    def headers(self) -> Dict[str, str]:
        return {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(self.reset),
        }


class RateLimiter:
    def __init__(self, limit: int, window: str, prefix: str):
        self.limit = limit
        self.window = window
        self.prefix = prefix
        self.item = RateLimitItemPerSecond(limit, parse_window(window))

    def check(self, identifier: str) -> RateLimitResult:
        strategy = MovingWindowRateLimiter(get_rate_limit_storage())
        allowed = strategy.hit(self.item, self.prefix, identifier)
        reset_time, remaining = strategy.get_window_stats(self.item, self.prefix, identifier)
        return RateLimitResult(
            success=allowed,
            limit=self.limit,
            remaining=max(0, int(remaining)),
            reset_at=float(reset_time),
        )


standard_limiter = RateLimiter(60, "1m", "api")
strict_limiter = RateLimiter(10, "1m", "strict")
query_limiter = RateLimiter(20, "1m", "query")
upload_limiter = RateLimiter(10, "5m", "upload")
auth_limiter = RateLimiter(5, "15m", "auth")


def _first(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    first = value.split(",")[0].strip()
    return first or None


def get_client_identifier(request: Request) -> str:
    """Best-effort client IP behind proxies."""
    headers = request.headers
    ip = (
        _first(headers.get("x-forwarded-for"))
        or (headers.get("x-real-ip") or "").strip()
        or _first(headers.get("x-vercel-forwarded-for"))
    )
    if ip:
        return ip
    if request.client and request.client.host:
        return request.client.host
    return "localhost"


def get_identifier(request: Request, user_id: Optional[str] = None) -> str:
    ip = get_client_identifier(request)
    return f"{user_id}:{ip}" if user_id else ip


class RateLimitExceededError(APIError):
    def __init__(self, result: RateLimitResult):
        retry_after = result.retry_after
        super().__init__(
            status_code=429,
            error="RATE_LIMIT_EXCEEDED",
            message="Too many requests. Please try again later.",
            details={"retryAfter": retry_after},
            headers={**result.headers(), "Retry-After": str(retry_after)},
        )


def enforce(limiter: RateLimiter, identifier: str, response: Optional[Response] = None) -> RateLimitResult:
    result = limiter.check(identifier)
    if not result.success:
        logger.warning("Rate limit '%s' exceeded for %s", limiter.prefix, identifier)
        raise RateLimitExceededError(result)
    if response is not None:
        response.headers.update(result.headers())
    return result


def rate_limit(limiter: RateLimiter) -> Callable:
    """Dependency limiting an authenticated route per user and IP."""
    def dependency(
        request: Request,
        response: Response,
        user: dict = Depends(get_current_user),
    ) -> RateLimitResult:
        return enforce(limiter, get_identifier(request, user["id"]), response)
    return dependency


def ip_rate_limit(limiter: RateLimiter) -> Callable:
    """Dependency limiting a public route per client IP."""
    def dependency(request: Request, response: Response) -> RateLimitResult:
        return enforce(limiter, get_identifier(request), response)
    return dependency
