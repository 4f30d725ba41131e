"""
Shared test doubles: an in-memory async Redis and a recording asyncpg pool.
"""
import asyncio
import fnmatch
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import pytest

from app.core.cache import CacheClient


class FakeRedis:
    """In-memory subset of redis.asyncio.Redis (decode_responses=True)."""

    def __init__(self):
        self.store: Dict[str, Any] = {}
        self.expiry: Dict[str, float] = {}
        self.published: List[tuple] = []
        self.subscribers = 1
        self.fail_with: Optional[Exception] = None
        self.lock = asyncio.Lock()

    def _check(self):
        if self.fail_with is not None:
            raise self.fail_with

    def _alive(self, key: str) -> bool:
        deadline = self.expiry.get(key)
        if deadline is not None and deadline <= time.time():
            self.store.pop(key, None)
            self.expiry.pop(key, None)
        return key in self.store

    def ttl_of(self, key: str) -> Optional[int]:
        deadline = self.expiry.get(key)
        return None if deadline is None else round(deadline - time.time())

    async def ping(self):
        self._check()
        return True

    async def get(self, key):
        self._check()
        return self.store.get(key) if self._alive(key) else None

    async def set(self, key, value, ex=None, nx=False):
        self._check()
        if nx and self._alive(key):
            return None
        self.store[key] = value
        if ex:
            self.expiry[key] = time.time() + ex
        else:
            self.expiry.pop(key, None)
        return True

    async def delete(self, *keys):
        self._check()
        removed = 0
        for key in keys:
            if self._alive(key):
                removed += 1
            self.store.pop(key, None)
            self.expiry.pop(key, None)
        return removed

    async def exists(self, key):
        self._check()
        return int(self._alive(key))

    async def scan_iter(self, match=None, count=None):
        self._check()
        for key in list(self.store):
            if self._alive(key) and (match is None or fnmatch.fnmatchcase(key, match)):
                yield key

    async def zadd(self, key, mapping):
        self._check()
        self._alive(key)
        zset = self.store.setdefault(key, {})
        zset.update(mapping)
        return len(mapping)

    async def zremrangebyscore(self, key, min_score, max_score):
        self._check()
        zset = self.store.get(key, {})
        stale = [m for m, s in zset.items() if min_score <= s <= max_score]
        for member in stale:
            del zset[member]
        return len(stale)

    async def zrem(self, key, *members):
        self._check()
        zset = self.store.get(key, {})
        removed = [m for m in members if zset.pop(m, None) is not None]
        return len(removed)

    def pipeline(self, transaction=True):
        return FakePipeline(self)

    async def zcard(self, key):
        self._check()
        return len(self.store.get(key, {})) if self._alive(key) else 0

    async def zrange(self, key, start, end, withscores=False):
        self._check()
        items = sorted(self.store.get(key, {}).items(), key=lambda item: item[1])
        end = len(items) if end == -1 else end + 1
        selected = items[start:end]
        return selected if withscores else [member for member, _ in selected]

    async def expire(self, key, seconds):
        self._check()
        if key in self.store:
            self.expiry[key] = time.time() + seconds
            return True
        return False

    async def publish(self, channel, message):
        self._check()
        self.published.append((channel, message))
        return self.subscribers

    async def aclose(self):
        return None


class FakePipeline:
    """Queues commands and applies them together on execute(), like MULTI/EXEC."""

    def __init__(self, redis: FakeRedis):
        self._redis = redis
        self._commands: List[tuple] = []

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        self._commands = []

    def __getattr__(self, name):
        def queue(*args, **kwargs):
            self._commands.append((name, args, kwargs))
            return self
        return queue

    async def execute(self):
        commands, self._commands = self._commands, []
        async with self._redis.lock:
            return [await getattr(self._redis, name)(*args, **kwargs) for name, args, kwargs in commands]


class FakePool:
    """Records fetch/execute calls; returns canned rows or raises."""

    def __init__(self, rows: Optional[List[Dict[str, Any]]] = None, error: Optional[Exception] = None):
        self.rows = rows or []
        self.error = error
        self.fetch_calls: List[tuple] = []
        self.execute_calls: List[tuple] = []

    async def fetch(self, query, *args):
        self.fetch_calls.append((query, args))
        if self.error is not None:
            raise self.error
        return self.rows

    async def execute(self, query, *args):
        self.execute_calls.append((query, args))
        if self.error is not None:
            raise self.error
        return "UPDATE 1"


def make_row(
    content_id: str,
    views: int = 0,
    likes: int = 0,
    comments: int = 0,
    created_at: Optional[datetime] = None,
) -> Dict[str, Any]:
    """One aggregate row shaped like the trending query output."""
    return {
        "id": content_id,
        "title": f"Video {content_id}",
        "thumbnail_url": f"https://img.example.com/{content_id}.jpg",
        "created_at": created_at or datetime(2024, 1, 1, tzinfo=timezone.utc),
        "view_count": views,
        "duration": 120,
        "visibility": "public",
        "user_id": "user-1",
        "category_id": None,
        "comment_count": comments,
        "like_count": likes,
        "trending_score": views + 5 * likes + 10 * comments,
        "creator_id": "user-1",
        "creator_name": "Creator",
        "creator_image_url": None,
    }


def ranked_rows(count: int, top_score: int = 1000) -> List[Dict[str, Any]]:
    """count rows with strictly decreasing scores, newest first on ties."""
    base = datetime(2024, 1, 1, tzinfo=timezone.utc)
    return [
        make_row(f"v{i}", views=top_score - i * 10, created_at=base - timedelta(minutes=i))
        for i in range(count)
    ]


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def cache_client(fake_redis):
    return CacheClient(redis_client=fake_redis)
