"""
Fixed-window request limits keyed by (rule, client IP, path).

Counters live in this process, so with several gunicorn workers each one
enforces the limit on its own share of the traffic.
"""
import math
import time
from dataclasses import dataclass
from datetime import timedelta
from typing import Callable

from fastapi import Request, Response

from app.config import settings
from app.exceptions import RateLimited
from app.utils.timeutils import utcnow


@dataclass(frozen=True)
class RateLimitRule:
    name: str
    limit: int
    window_seconds: float


AUTH = RateLimitRule("auth", limit=5, window_seconds=15 * 60)
PUSH = RateLimitRule("push", limit=10, window_seconds=60 * 60)
CALENDAR = RateLimitRule("calendar", limit=50, window_seconds=60 * 60)


@dataclass
class RateLimitResult:
    allowed: bool
    limit: int
    remaining: int
    reset_in: float

    def headers(self) -> dict[str, str]:
        reset_at = utcnow() + timedelta(seconds=self.reset_in)
        return {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": reset_at.isoformat(),
        }


class RateLimiter:
    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._windows: dict[tuple[str, str, str], tuple[float, int]] = {}

    def hit(self, rule: RateLimitRule, client: str, path: str) -> RateLimitResult:
        now = self._clock()
        key = (rule.name, client, path)
        started, count = self._windows.get(key, (now, 0))
        if now - started >= rule.window_seconds:
            started, count = now, 0
        count += 1
        self._windows[key] = (started, count)
        return RateLimitResult(
            allowed=count <= rule.limit,
            limit=rule.limit,
            remaining=max(0, rule.limit - count),
            reset_in=started + rule.window_seconds - now,
        )

    def clear(self) -> None:
        self._windows.clear()


rate_limiter = RateLimiter()


def client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip
    return request.client.host if request.client else "unknown"


def rate_limited(rule: RateLimitRule):
    """Route dependency: count the request and answer 429 once the window is used up."""

    async def check(request: Request, response: Response) -> None:
        if not settings.RATE_LIMIT_ENABLED:
            return
        result = rate_limiter.hit(rule, client_ip(request), request.url.path)
        headers = result.headers()
        if not result.allowed:
            retry_after = max(1, math.ceil(result.reset_in))
            raise RateLimited(
                details={
                    "message": "Rate limit exceeded. Please try again later.",
                    "retryAfter": headers["X-RateLimit-Reset"],
                },
                headers={**headers, "Retry-After": str(retry_after)},
            )
        response.headers.update(headers)

    return check
