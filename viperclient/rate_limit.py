"""Token bucket rate limiting."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from http import HTTPStatus
from typing import Callable

from starlette.middleware import Middleware
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.types import ASGIApp

CLEANUP_EVERY = 600.0


@dataclass
class _Bucket:
    tokens: float
    last_refill: float


class RateLimiter:
    """Per-key token buckets refilled at ``rate`` tokens a second up to ``capacity``."""

    def __init__(
        self,
        rate: int,
        capacity: int,
        *,
        cleanup_every: float = CLEANUP_EVERY,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.rate = rate
        self.capacity = capacity
        self.cleanup_every = cleanup_every
        self._clock = clock
        self._lock = threading.Lock()
        self._buckets: dict[str, _Bucket] = {}
        self._last_cleanup = clock()

    def __len__(self) -> int:
        return len(self._buckets)

    def allow(self, key: str) -> bool:
        """Take a token for ``key`` if one is available."""
        with self._lock:
            now = self._clock()
            if now - self._last_cleanup > self.cleanup_every:
                self._buckets = {
                    k: b
                    for k, b in self._buckets.items()
                    if now - b.last_refill <= self.cleanup_every
                }
                self._last_cleanup = now

            bucket = self._buckets.get(key)
            if bucket is None:
                bucket = _Bucket(float(self.capacity), now)
                self._buckets[key] = bucket
            else:
                elapsed = now - bucket.last_refill
                bucket.tokens = min(float(self.capacity), bucket.tokens + self.rate * elapsed)
                bucket.last_refill = now

            if bucket.tokens >= 1:
                bucket.tokens -= 1
                return True
            return False


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Rejects requests whose key has run out of tokens."""

    def __init__(
        self, app: ASGIApp, limiter: RateLimiter, key_func: Callable[[Request], str]
    ) -> None:
        super().__init__(app)
        self.limiter = limiter
        self.key_func = key_func

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        key = self.key_func(request)
        if not key:
            return JSONResponse(
                {"error": "Cannot identify client for rate limiting"},
                status_code=HTTPStatus.BAD_REQUEST,
            )
        if not self.limiter.allow(key):
            return JSONResponse(
                {"error": "Rate limit exceeded"}, status_code=HTTPStatus.TOO_MANY_REQUESTS
            )
        return await call_next(request)


def client_ip(request: Request) -> str:
    """The client address, preferring X-Forwarded-For and then X-Real-IP."""
    forwarded = request.headers.get("x-forwarded-for", "")
    first = forwarded.split(",")[0].strip()
    if first:
        return first
    real = request.headers.get("x-real-ip", "").strip()
    if real:
        return real
    return request.client.host if request.client else ""


def app_id(request: Request) -> str:
    """The X-App-ID header, or an empty string."""
    return request.headers.get("x-app-id", "")


def ip_rate_limiter(rate: int, capacity: int) -> Middleware:
    """Middleware limiting requests per client IP."""
    return Middleware(RateLimitMiddleware, limiter=RateLimiter(rate, capacity), key_func=client_ip)


def app_rate_limiter(rate: int, capacity: int) -> Middleware:
    """Middleware limiting requests per application identifier."""
    return Middleware(RateLimitMiddleware, limiter=RateLimiter(rate, capacity), key_func=app_id)