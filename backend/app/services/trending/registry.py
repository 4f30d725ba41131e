"""
Invalidation group registry.

A meta key (no TTL) holds the list of cache keys written under a namespace so
the whole group can be dropped without a keyspace scan. The registry is a
hint, not a source of truth: registration is best-effort and unsynchronized,
so it can miss keys or list keys that already expired. Prefix deletion stays
the authoritative way to clear a namespace.
"""
from typing import List

from app.core.cache import CacheClient
from app.core.logging import get_logger

logger = get_logger(__name__)

TRENDING_META_KEY = "meta:trending-keys"


class InvalidationGroup:
    """Registry of cache keys stored under one meta key."""

    def __init__(self, cache: CacheClient, meta_key: str = TRENDING_META_KEY):
        self.cache = cache
        self.meta_key = meta_key

    async def keys(self) -> List[str]:
        result = await self.cache.get(self.meta_key, default=[])
        if not isinstance(result.value, list):
            return []
        return [key for key in result.value if isinstance(key, str)]

    async def register(self, key: str) -> bool:
        """
        Append key to the registry if absent.

        Returns:
            True if the registry already held the key or was updated
        """
        keys = await self.keys()
        if key in keys:
            return True

        keys.append(key)
        stored = await self.cache.set(self.meta_key, keys)
        if not stored:
            logger.warning("invalidation_group_register_failed", meta_key=self.meta_key, key=key)
        return stored

    async def trim(self, prefix: str) -> int:
        """
        Drop registry entries starting with prefix.

        Returns:
            Number of entries removed from the registry
        """
        keys = await self.keys()
        remaining = [key for key in keys if not key.startswith(prefix)]
        removed = len(keys) - len(remaining)
        if removed:
            if not await self.cache.set(self.meta_key, remaining):
                logger.warning("invalidation_group_trim_failed", meta_key=self.meta_key, prefix=prefix)
        return removed

    async def reset(self) -> bool:
        """Empty the registry."""
        return await self.cache.set(self.meta_key, [])

    async def invalidate(self) -> int:
        """
        Delete every registered key, then the meta key itself.

        Returns:
            Number of cache keys actually deleted (meta key excluded)
        """
        keys = await self.keys()
        deleted = await self.cache.delete_many(keys) if keys else 0
        await self.cache.delete(self.meta_key)
        logger.info(
            "invalidation_group_invalidated",
            meta_key=self.meta_key,
            registered=len(keys),
            deleted=deleted,
        )
        return deleted
