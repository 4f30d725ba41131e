"""
Redis cache client wrapper (CacheStore).

Every operation fails open: transport faults are logged and turned into a
conservative default (absent / False / 0) so the cache never becomes a single
point of failure for reads. Values are stored as JSON text; a value that no
longer decodes is deleted on read and the caller gets its default back.

Connection pool settings:
- Max connections: 20
- Connect/socket timeout: 5 seconds
"""
import json
import os
from dataclasses import dataclass
from typing import Any, Generic, List, Optional, TypeVar

import redis.asyncio as aioredis
from redis.asyncio import Redis
from redis.exceptions import RedisError

from app.core.logging import get_logger
from app.core.metrics import record_cache_error, record_cache_corrupted_entry

logger = get_logger(__name__)

T = TypeVar("T")

# Global Redis connection pool
_redis_pool: Optional[Redis] = None


def get_redis_url() -> str:
    """Get Redis URL from environment."""
    return os.getenv("REDIS_URL", "redis://redis:6379")


async def initialize_redis() -> bool:
    """
    Initialize Redis connection pool.

    Returns:
        True if initialization successful, False otherwise
    """
    global _redis_pool

    try:
        redis_url = get_redis_url()
        logger.info("redis_initializing", url=redis_url)

        _redis_pool = aioredis.from_url(
            redis_url,
            max_connections=20,
            socket_connect_timeout=5,
            socket_timeout=5,
            retry_on_timeout=True,
            decode_responses=True,
        )

        await _redis_pool.ping()

        logger.info("redis_initialized")
        return True

    except Exception as e:
        logger.error(
            "redis_initialization_failed",
            error=str(e),
            error_type=type(e).__name__,
            exc_info=True,
        )
        _redis_pool = None
        return False


async def close_redis() -> None:
    """Close Redis connection pool."""
    global _redis_pool

    if _redis_pool:
        try:
            await _redis_pool.aclose()
            logger.info("redis_closed")
        except Exception as e:
            logger.error(
                "redis_close_failed",
                error=str(e),
                exc_info=True,
            )
        finally:
            _redis_pool = None


def get_redis_client() -> Optional[Redis]:
    """Get Redis client (for use in async context)."""
    return _redis_pool


@dataclass(frozen=True)
class CacheResult(Generic[T]):
    """
    Outcome of a cache read.

    `value` is always usable: it holds the decoded entry on a hit and the
    caller's default otherwise. `error` is set when the read degraded because
    of a transport fault or a corrupted entry.
    """
    value: T
    hit: bool = False
    error: Optional[str] = None


def _log_fault(operation: str, e: Exception, **fields: Any) -> None:
    """Record an absorbed cache fault. Transport errors warn, anything else is an error."""
    record_cache_error(operation)
    if isinstance(e, RedisError):
        logger.warning(
            f"cache_{operation}_error",
            error=str(e),
            error_type=type(e).__name__,
            **fields,
        )
    else:
        logger.error(
            f"cache_{operation}_unexpected_error",
            error=str(e),
            error_type=type(e).__name__,
            exc_info=True,
            **fields,
        )


class CacheClient:
    """
    Fail-open Redis cache client.

    The Redis connection can be injected (tests, scripts); otherwise the
    global pool created by initialize_redis() is used.
    """

    def __init__(self, redis_client: Optional[Redis] = None):
        self._redis_client = redis_client

    @property
    def redis(self) -> Optional[Redis]:
        return self._redis_client if self._redis_client is not None else get_redis_client()

    async def get(self, key: str, default: Any = None) -> CacheResult:
        """
        Get and decode a value.

        Returns:
            CacheResult with hit=True and the decoded value, or the default
        """
        client = self.redis
        if client is None:
            return CacheResult(value=default, error="unavailable")

        try:
            raw = await client.get(key)
        except Exception as e:
            _log_fault("get", e, key=key)
            return CacheResult(value=default, error=type(e).__name__)

        if raw is None:
            return CacheResult(value=default)

        try:
            return CacheResult(value=json.loads(raw), hit=True)
        except (TypeError, ValueError) as e:
            record_cache_corrupted_entry()
            logger.warning(
                "cache_entry_corrupted",
                key=key,
                error=str(e),
                error_type=type(e).__name__,
            )
            await self.delete(key)
            return CacheResult(value=default, error="corrupted")

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        """
        Serialize and store a value.

        Args:
            key: Cache key
            value: JSON-serializable value
            ttl: Time to live in seconds; None persists until deleted

        Returns:
            True if stored, False otherwise
        """
        client = self.redis
        if client is None:
            return False

        try:
            serialized = json.dumps(value)
            if ttl:
                await client.set(key, serialized, ex=ttl)
            else:
                await client.set(key, serialized)
            return True
        except Exception as e:
            _log_fault("set", e, key=key)
            return False

    async def set_if_absent(self, key: str, value: Any, ttl: int) -> bool:
        """
        Store a value only when the key does not exist yet.

        Returns:
            True if this call created the key, False if it existed or on error
        """
        client = self.redis
        if client is None:
            return False

        try:
            created = await client.set(key, json.dumps(value), ex=ttl, nx=True)
            return bool(created)
        except Exception as e:
            _log_fault("set_if_absent", e, key=key)
            return False

    async def delete(self, key: str) -> bool:
        """Delete a single key. Returns True if a key was removed."""
        client = self.redis
        if client is None:
            return False

        try:
            return bool(await client.delete(key))
        except Exception as e:
            _log_fault("delete", e, key=key)
            return False

    async def delete_many(self, keys: List[str]) -> int:
        """Delete the given keys in one call. Returns the number removed."""
        client = self.redis
        if client is None or not keys:
            return 0

        try:
            return int(await client.delete(*keys))
        except Exception as e:
            _log_fault("delete_many", e, keys_count=len(keys))
            return 0

    async def delete_by_prefix(self, prefix: str) -> int:
        """
        Delete every key starting with prefix.

        Keys are collected with SCAN and removed in a single DEL.

        Returns:
            Number of keys deleted (0 when nothing matched)
        """
        client = self.redis
        if client is None:
            return 0

        try:
            keys = [key async for key in client.scan_iter(match=f"{prefix}*", count=100)]
            if not keys:
                return 0
            return int(await client.delete(*keys))
        except Exception as e:
            _log_fault("delete_by_prefix", e, prefix=prefix)
            return 0

    async def exists(self, key: str) -> bool:
        """Check if key exists in cache."""
        client = self.redis
        if client is None:
            return False

        try:
            return bool(await client.exists(key))
        except Exception as e:
            _log_fault("exists", e, key=key)
            return False

    async def ping(self) -> bool:
        client = self.redis
        if client is None:
            return False

        try:
            return bool(await client.ping())
        except Exception as e:
            _log_fault("ping", e)
            return False


# Global cache client instance
_cache_client: Optional[CacheClient] = None


def get_cache_client() -> CacheClient:
    """Get global cache client instance."""
    global _cache_client
    if _cache_client is None:
        _cache_client = CacheClient()
    return _cache_client
