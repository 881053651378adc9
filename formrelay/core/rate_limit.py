"""
Submission Rate Limiting
Per-IP sliding window limits for the public contact endpoint, counted in
Redis and falling back to process memory when Redis cannot be reached.
"""

import logging
import math
import time
import uuid
from collections import defaultdict, deque
from dataclasses import dataclass
from typing import Annotated, NamedTuple, Optional, Union

import redis.asyncio as aioredis
from fastapi import Depends, HTTPException, Request, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from formrelay.core.config import settings

logger = logging.getLogger(__name__)

RATE_LIMIT_MESSAGE = "Too many submissions from this IP, please try again later."


# =============================================================================
# Rules and Decisions
# =============================================================================


class RateLimitRule(NamedTuple):
    """At most ``limit`` hits per ``window`` seconds for one client in ``scope``."""

    scope: str
    limit: int
    window: int


def contact_rule() -> RateLimitRule:
    return RateLimitRule(
        scope="contact",
        limit=settings.rate_limit_contact_requests,
        window=settings.rate_limit_contact_window,
    )


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    limit: int
    remaining: int
    retry_after: int
    reset_at: int

    def headers(self) -> dict[str, str]:
        headers = {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(self.reset_at),
        }
        if not self.allowed:
            headers["Retry-After"] = str(self.retry_after)
        return headers


def _decide(rule: RateLimitRule, prior_hits: int, oldest: Optional[float], now: float) -> RateLimitDecision:
    """Decision for a new hit given the hits already inside the window."""
    if prior_hits >= rule.limit and oldest is not None:
        retry_after = max(1, math.ceil(oldest + rule.window - now))
        return RateLimitDecision(
            allowed=False,
            limit=rule.limit,
            remaining=0,
            retry_after=retry_after,
            reset_at=int(now) + retry_after,
        )
    return RateLimitDecision(
        allowed=True,
        limit=rule.limit,
        remaining=max(0, rule.limit - prior_hits - 1),
        retry_after=0,
        reset_at=int(now) + rule.window,
    )


# =============================================================================
# Window Counters
# =============================================================================


class RedisWindowCounter:
    """
    Sliding window counter shared by every worker.

    Each hit is a member of a sorted set scored by its timestamp. Rejected
    hits are removed again so they do not extend the client's lockout.
    """

    def __init__(self, redis_url: str):
        self.redis_url = redis_url
        self._client: Optional[aioredis.Redis] = None

    async def client(self) -> aioredis.Redis:
        if self._client is None:
            self._client = aioredis.from_url(
                self.redis_url,
                decode_responses=True,
                socket_timeout=2.0,
                socket_connect_timeout=2.0,
            )
        return self._client

    async def hit(self, key: str, rule: RateLimitRule) -> RateLimitDecision:
        redis = await self.client()
        now = time.time()
        member = f"{now:.6f}-{uuid.uuid4().hex[:8]}"

        async with redis.pipeline(transaction=True) as pipe:
            pipe.zremrangebyscore(key, 0, now - rule.window)
            pipe.zadd(key, {member: now})
            pipe.zcard(key)
            pipe.zrange(key, 0, 0, withscores=True)
            pipe.expire(key, rule.window)
            _, _, count, oldest, _ = await pipe.execute()

        decision = _decide(rule, count - 1, oldest[0][1] if oldest else None, now)
        if not decision.allowed:
            await redis.zrem(key, member)
        return decision

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None


class MemoryWindowCounter:
    """Sliding window counter local to this process."""

    def __init__(self):
        self._hits: dict[str, deque[float]] = defaultdict(deque)

    async def hit(self, key: str, rule: RateLimitRule) -> RateLimitDecision:
        now = time.time()
        hits = self._hits[key]
        while hits and hits[0] <= now - rule.window:
            hits.popleft()

        decision = _decide(rule, len(hits), hits[0] if hits else None, now)
        if decision.allowed:
            hits.append(now)
        return decision

    def forget_idle(self, window: int) -> None:
        """Drop hits older than ``window`` seconds and every key left empty."""
        horizon = time.time() - window
        for key in list(self._hits):
            hits = self._hits[key]
            while hits and hits[0] <= horizon:
                hits.popleft()
            if not hits:
                del self._hits[key]


WindowCounter = Union[RedisWindowCounter, MemoryWindowCounter]

_redis_counter: Optional[RedisWindowCounter] = None
_memory_counter: Optional[MemoryWindowCounter] = None
_using_fallback = False


async def get_window_counter() -> WindowCounter:
    """The shared Redis-backed counter."""
    global _redis_counter
    if _redis_counter is None:
        _redis_counter = RedisWindowCounter(settings.redis_url)
    return _redis_counter


def get_fallback_counter() -> MemoryWindowCounter:
    global _memory_counter
    if _memory_counter is None:
        _memory_counter = MemoryWindowCounter()
    return _memory_counter


async def close_rate_limiter() -> None:
    global _redis_counter, _memory_counter
    if _redis_counter is not None:
        await _redis_counter.close()
        _redis_counter = None
    _memory_counter = None


async def record_hit(key: str, rule: RateLimitRule) -> RateLimitDecision:
    """Count a hit, using the in-memory counter while Redis is failing."""
    global _using_fallback
    try:
        counter = await get_window_counter()
        decision = await counter.hit(key, rule)
    except Exception as e:
        if not _using_fallback:
            logger.warning(f"Redis rate limiting unavailable, counting in memory: {e}")
            _using_fallback = True
        fallback = get_fallback_counter()
        fallback.forget_idle(rule.window)
        return await fallback.hit(key, rule)

    if _using_fallback:
        logger.info("Redis rate limiting restored")
        _using_fallback = False
    return decision


# =============================================================================
# Request Helpers
# =============================================================================


def client_address(request: Request) -> str:
    """First X-Forwarded-For hop when behind a proxy, else the peer address."""
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


def rate_limit_key(scope: str, address: str) -> str:
    return f"rate_limit:{scope}:ip_{address}"


class RateLimitExceeded(HTTPException):
    def __init__(self, decision: RateLimitDecision):
        super().__init__(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail=RATE_LIMIT_MESSAGE,
            headers=decision.headers(),
        )
        self.decision = decision


# =============================================================================
# Dependency
# =============================================================================


class SubmissionRateLimit:
    """
    FastAPI dependency enforcing a rule per client IP.

    The decision is stored on ``request.state.rate_limit`` so the
    middleware can report it in response headers.
    """

    def __init__(self, rule: Optional[RateLimitRule] = None):
        self.rule = rule

    async def __call__(self, request: Request) -> None:
        if not settings.rate_limit_enabled:
            return

        rule = self.rule or contact_rule()
        key = rate_limit_key(rule.scope, client_address(request))
        decision = await record_hit(key, rule)
        request.state.rate_limit = decision

        if not decision.allowed:
            logger.warning(f"Rate limit exceeded for {key}")
            raise RateLimitExceeded(decision)


RateLimitContact = Annotated[None, Depends(SubmissionRateLimit())]


# =============================================================================
# Middleware and Exception Handler
# =============================================================================


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Adds X-RateLimit-* headers to responses of rate limited routes."""

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        response = await call_next(request)

        decision = getattr(request.state, "rate_limit", None)
        if decision is not None:
            for name, value in decision.headers().items():
                response.headers.setdefault(name, value)

        return response


async def rate_limit_exception_handler(
    request: Request,
    exc: HTTPException,
) -> JSONResponse:
    """429 responses in the API's failure shape, always with Retry-After."""
    headers = dict(exc.headers or {})
    if isinstance(exc, RateLimitExceeded):
        retry_after = exc.decision.retry_after
    else:
        retry_after = int(headers.get("Retry-After", 60))
    headers["Retry-After"] = str(retry_after)

    return JSONResponse(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        content={"success": False, "message": str(exc.detail), "retry_after": retry_after},
        headers=headers,
    )
