"""
View counting with per-viewer de-duplication.

Anonymous views always increment. An identified viewer increments a video's
view_count at most once per 30 minutes; the marker is a Redis key written with
SET NX EX so every instance shares it. If Redis is unavailable the view is
counted (fail open).
"""
from typing import Optional

import asyncpg
from redis.asyncio import Redis

from app.core.cache import get_redis_client
from app.core.database_pool import get_primary_pool
from app.core.logging import get_logger
from app.core.metrics import record_content_view

logger = get_logger(__name__)

VIEW_DEDUP_SECONDS = 30 * 60
VIEW_SEEN_PREFIX = "views:seen"

INCREMENT_VIEW_QUERY = "UPDATE videos SET view_count = view_count + 1 WHERE id = $1"


class ViewCountError(Exception):
    """Raised when the view counter could not be written."""
    pass


def view_seen_key(content_id: str, viewer_id: str) -> str:
    return f"{VIEW_SEEN_PREFIX}:{content_id}:{viewer_id}"


class ViewCounter:
    def __init__(self, pool: Optional[asyncpg.Pool] = None, redis_client: Optional[Redis] = None):
        self._pool = pool
        self._redis_client = redis_client

    @property
    def pool(self) -> Optional[asyncpg.Pool]:
        return self._pool if self._pool is not None else get_primary_pool()

    @property
    def redis(self) -> Optional[Redis]:
        return self._redis_client if self._redis_client is not None else get_redis_client()

    async def _claim(self, content_id: str, viewer_id: str) -> bool:
        """True if this viewer has not been counted for content_id in the window."""
        client = self.redis
        if client is None:
            return True

        try:
            created = await client.set(
                view_seen_key(content_id, viewer_id), "1", ex=VIEW_DEDUP_SECONDS, nx=True
            )
            return bool(created)
        except Exception as e:
            logger.warning(
                "view_dedup_check_failed",
                content_id=content_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return True

    async def _release(self, content_id: str, viewer_id: str) -> None:
        client = self.redis
        if client is None:
            return
        try:
            await client.delete(view_seen_key(content_id, viewer_id))
        except Exception as e:
            logger.warning("view_dedup_release_failed", content_id=content_id, error=str(e))

    async def record_view(self, content_id: str, viewer_id: Optional[str] = None) -> bool:
        """
        Count one view.

        Returns:
            True if view_count was incremented, False for a duplicate view

        Raises:
            ViewCountError: database unavailable or update failed
        """
        if viewer_id and not await self._claim(content_id, viewer_id):
            record_content_view(counted=False)
            logger.debug("view_deduplicated", content_id=content_id)
            return False

        pool = self.pool
        try:
            if pool is None:
                raise ViewCountError("Database pool not initialized")
            await pool.execute(INCREMENT_VIEW_QUERY, content_id)
        except Exception as e:
            if viewer_id:
                await self._release(content_id, viewer_id)
            logger.error(
                "view_count_update_failed",
                content_id=content_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            if isinstance(e, ViewCountError):
                raise
            raise ViewCountError("Failed to update view count") from e

        record_content_view(counted=True)
        return True


_view_counter: Optional[ViewCounter] = None


def get_view_counter() -> ViewCounter:
    global _view_counter
    if _view_counter is None:
        _view_counter = ViewCounter()
    return _view_counter
