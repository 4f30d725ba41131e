"""
Trending page cache (TrendingCache).

Key format: `trending:{window}:{limit}:{cursor or 0}`, one entry per requested
page. TTL by window:
- day: 10 minutes
- week: 30 minutes
- month: 1 hour
- all: 3 hours

Shorter windows change composition faster and are cheaper to recompute, so
they expire sooner. A cached page with no entries is treated as a miss.

Invalidation clears a window by prefix (`trending:{window}:`) or everything
(`trending:`), trims the key registry and stamps `trending:last_invalidation`.
"""
from datetime import datetime, timezone
from typing import Dict, Optional, Union

from pydantic import ValidationError

from app.core.cache import CacheClient, get_cache_client
from app.core.logging import get_logger
from app.core.metrics import record_cache_hit, record_cache_miss
from app.models.trending import ALL_RANGES, InvalidationResult, TimeWindow, TrendingPage
from app.services.trending.query import ScoreQuery
from app.services.trending.registry import InvalidationGroup

logger = get_logger(__name__)

KEY_PREFIX = "trending:"
LAST_INVALIDATION_KEY = "trending:last_invalidation"

TRENDING_CACHE_TTL: Dict[TimeWindow, int] = {
    TimeWindow.DAY: 600,
    TimeWindow.WEEK: 1800,
    TimeWindow.MONTH: 3600,
    TimeWindow.ALL: 10800,
}


def generate_trending_cache_key(window: TimeWindow, limit: int, cursor: Optional[int] = None) -> str:
    """Generate cache key for one trending page."""
    return f"{KEY_PREFIX}{TimeWindow(window).value}:{limit}:{cursor or 0}"


def get_trending_cache_ttl(window: TimeWindow) -> int:
    return TRENDING_CACHE_TTL[TimeWindow(window)]


def invalidation_prefix(time_range: Union[TimeWindow, str]) -> str:
    """Key prefix covering one window, or every trending key for all-ranges."""
    if time_range == ALL_RANGES:
        return KEY_PREFIX
    return f"{KEY_PREFIX}{TimeWindow(time_range).value}:"


class TrendingCache:
    """Serves trending pages from cache, computing them on a miss."""

    def __init__(
        self,
        cache: Optional[CacheClient] = None,
        query: Optional[ScoreQuery] = None,
        registry: Optional[InvalidationGroup] = None,
    ):
        self.cache = cache or get_cache_client()
        self.query = query or ScoreQuery()
        self.registry = registry or InvalidationGroup(self.cache)

    async def _get_cached_page(self, key: str) -> Optional[TrendingPage]:
        result = await self.cache.get(key)
        if not result.hit or not isinstance(result.value, dict):
            return None

        try:
            page = TrendingPage.model_validate(result.value)
        except ValidationError as e:
            logger.warning(
                "trending_cache_payload_invalid",
                key=key,
                error=str(e),
                error_type=type(e).__name__,
            )
            await self.cache.delete(key)
            return None

        return page if page.entries else None

    async def get_trending_page(
        self,
        window: TimeWindow,
        limit: int,
        cursor: Optional[int] = None,
    ) -> TrendingPage:
        """
        Get one trending page (cache-aside).

        Raises:
            TrendingQueryError: cache miss and the aggregate query failed
        """
        window = TimeWindow(window)
        key = generate_trending_cache_key(window, limit, cursor)

        cached = await self._get_cached_page(key)
        if cached is not None:
            record_cache_hit("trending")
            logger.debug("trending_cache_hit", key=key, entries=len(cached.entries))
            return cached

        record_cache_miss("trending")
        logger.debug("trending_cache_miss", key=key)

        entries, has_more = await self.query.fetch(window, limit, cursor)
        next_cursor = entries[-1].trending_score if has_more and entries else None
        page = TrendingPage(entries=entries, next_cursor=next_cursor)

        ttl = get_trending_cache_ttl(window)
        if await self.cache.set(key, page.model_dump(mode="json"), ttl):
            logger.debug("trending_cache_set", key=key, ttl=ttl, entries=len(entries))
            await self.registry.register(key)
        else:
            logger.warning("trending_cache_set_failed", key=key)

        return page

    async def reset_trending_cache(self, time_range: Union[TimeWindow, str] = ALL_RANGES) -> InvalidationResult:
        """
        Clear cached pages for one window or for every window.

        Args:
            time_range: A TimeWindow value or "all-ranges"

        Returns:
            InvalidationResult with the number of keys cleared
        """
        if time_range != ALL_RANGES:
            time_range = TimeWindow(time_range).value
        prefix = invalidation_prefix(time_range)

        if time_range == ALL_RANGES:
            # Registered keys go first; the prefix scan then catches anything the registry missed.
            cleared = await self.registry.invalidate()
            cleared += await self.cache.delete_by_prefix(prefix)
            await self.registry.reset()
        else:
            cleared = await self.cache.delete_by_prefix(prefix)
            await self.registry.trim(prefix)

        timestamp = datetime.now(timezone.utc).isoformat()
        await self.cache.set(LAST_INVALIDATION_KEY, timestamp)

        logger.info(
            "trending_cache_reset",
            time_range=time_range,
            prefix=prefix,
            cleared=cleared,
        )
        return InvalidationResult(time_range=time_range, cleared=cleared, timestamp=timestamp)

    async def get_last_invalidation(self) -> Optional[str]:
        result = await self.cache.get(LAST_INVALIDATION_KEY)
        return result.value if isinstance(result.value, str) else None


_trending_cache: Optional[TrendingCache] = None


def get_trending_cache() -> TrendingCache:
    """Get global TrendingCache instance."""
    global _trending_cache
    if _trending_cache is None:
        _trending_cache = TrendingCache()
    return _trending_cache
