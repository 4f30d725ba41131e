"""
Sliding-window rate limiting backed by a Redis sorted set.

Each accepted request adds one member scored by its timestamp under
`ratelimit:<bucket>`. Members older than the window are trimmed before
counting, so the limit applies to any rolling window, not fixed minutes.

Limits:
- Trending cache invalidation webhook: 5 requests / 60 seconds, one shared
  bucket for every caller and every time range
"""
import time
import uuid
from dataclasses import dataclass
from typing import Optional

from redis.asyncio import Redis

from app.core.cache import get_redis_client
from app.core.logging import get_logger
from app.core.metrics import record_rate_limit_hit

logger = get_logger(__name__)

INVALIDATION_BUCKET = "trending_cache_invalidation"
INVALIDATION_LIMIT = 5
INVALIDATION_WINDOW_SECONDS = 60


@dataclass(frozen=True)
class RateLimitResult:
    """Decision for one request."""
    success: bool
    limit: int
    remaining: int
    reset: float  # Unix timestamp (seconds) when a slot frees up


class SlidingWindowRateLimiter:
    """
    Redis sorted-set sliding window limiter.

    Rejected requests are not recorded, so a caller that backs off regains
    budget as soon as the oldest accepted request leaves the window.
    """

    def __init__(
        self,
        limit: int,
        window_seconds: int,
        redis_client: Optional[Redis] = None,
        prefix: str = "ratelimit",
    ):
        self.limit = limit
        self.window_seconds = window_seconds
        self.prefix = prefix
        self._redis_client = redis_client

    @property
    def redis(self) -> Optional[Redis]:
        return self._redis_client if self._redis_client is not None else get_redis_client()

    def _key(self, identifier: str) -> str:
        return f"{self.prefix}:{identifier}"

    async def limit_request(self, identifier: str) -> RateLimitResult:
        """
        Check and consume one slot for identifier.

        Returns:
            RateLimitResult; success=False means the request must be rejected
        """
        client = self.redis
        now = time.time()

        if client is None:
            # Redis not available, allow request (graceful degradation)
            return RateLimitResult(True, self.limit, self.limit, now + self.window_seconds)

        key = self._key(identifier)
        window_start = now - self.window_seconds

        member = f"{now}:{uuid.uuid4().hex}"

        try:
            # Trim, add and count run as one MULTI/EXEC so concurrent callers
            # each see the count including their own request.
            async with client.pipeline(transaction=True) as pipe:
                pipe.zremrangebyscore(key, 0, window_start)
                pipe.zadd(key, {member: now})
                pipe.zcard(key)
                pipe.expire(key, self.window_seconds)
                _, _, count, _ = await pipe.execute()

            if count > self.limit:
                await client.zrem(key, member)
                oldest = await client.zrange(key, 0, 0, withscores=True)
                reset = (oldest[0][1] if oldest else now) + self.window_seconds
                record_rate_limit_hit(identifier)
                logger.warning(
                    "rate_limit_exceeded",
                    bucket=identifier,
                    limit=self.limit,
                    window_seconds=self.window_seconds,
                )
                return RateLimitResult(False, self.limit, 0, reset)

            return RateLimitResult(
                True,
                self.limit,
                max(0, self.limit - count),
                now + self.window_seconds,
            )

        except Exception as e:
            logger.warning(
                "rate_limit_check_failed",
                bucket=identifier,
                error=str(e),
                error_type=type(e).__name__,
            )
            # On error, allow request (fail open)
            return RateLimitResult(True, self.limit, self.limit, now + self.window_seconds)


_invalidation_limiter: Optional[SlidingWindowRateLimiter] = None


def get_invalidation_rate_limiter() -> SlidingWindowRateLimiter:
    """Get the limiter shared by every trending invalidation call."""
    global _invalidation_limiter
    if _invalidation_limiter is None:
        _invalidation_limiter = SlidingWindowRateLimiter(
            limit=INVALIDATION_LIMIT,
            window_seconds=INVALIDATION_WINDOW_SECONDS,
        )
    return _invalidation_limiter
