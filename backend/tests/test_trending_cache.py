"""
Unit tests for the trending page cache (TrendingCache).
"""
import json
from datetime import datetime, timedelta, timezone

import pytest

from app.core.cache import CacheClient
from app.models.trending import ALL_RANGES, TimeWindow, TrendingPage
from app.services.trending.cache import (
    LAST_INVALIDATION_KEY,
    TRENDING_CACHE_TTL,
    TrendingCache,
    generate_trending_cache_key,
    get_trending_cache_ttl,
    invalidation_prefix,
)
from app.services.trending.query import ScoreQuery
from app.services.trending.registry import TRENDING_META_KEY, InvalidationGroup
from conftest import FakePool, make_row, ranked_rows


class DatasetPool(FakePool):
    """Stands in for the database: filters by cursor, sorts and limits a static dataset."""

    async def fetch(self, query, *args):
        self.fetch_calls.append((query, args))
        _, _, cursor, row_limit = args
        rows = [r for r in self.rows if cursor is None or r["trending_score"] < cursor]
        rows.sort(key=lambda r: (r["trending_score"], r["created_at"]), reverse=True)
        return rows[:row_limit]


def build_cache(cache_client, pool):
    return TrendingCache(
        cache=cache_client,
        query=ScoreQuery(pool=pool),
        registry=InvalidationGroup(cache_client),
    )


def test_cache_key_format():
    assert generate_trending_cache_key(TimeWindow.WEEK, 20) == "trending:week:20:0"
    assert generate_trending_cache_key(TimeWindow.DAY, 10, 350) == "trending:day:10:350"


def test_ttl_increases_with_window_length():
    ttls = [get_trending_cache_ttl(w) for w in (TimeWindow.DAY, TimeWindow.WEEK, TimeWindow.MONTH, TimeWindow.ALL)]
    assert ttls == [600, 1800, 3600, 10800]
    assert ttls == sorted(ttls)


def test_invalidation_prefix():
    assert invalidation_prefix("day") == "trending:day:"
    assert invalidation_prefix(ALL_RANGES) == "trending:"


@pytest.mark.asyncio
async def test_two_page_walk_with_score_cursor(cache_client):
    base = datetime(2024, 1, 1, tzinfo=timezone.utc)
    pool = DatasetPool(rows=[
        make_row("a", views=300, created_at=base),
        make_row("b", views=200, created_at=base),
        make_row("c", views=100, created_at=base),
    ])
    trending = build_cache(cache_client, pool)

    first = await trending.get_trending_page(TimeWindow.WEEK, 2)
    assert [e.trending_score for e in first.entries] == [300, 200]
    assert first.next_cursor == 200

    second = await trending.get_trending_page(TimeWindow.WEEK, 2, first.next_cursor)
    assert [e.trending_score for e in second.entries] == [100]
    assert second.next_cursor is None


@pytest.mark.asyncio
async def test_pagination_terminates_without_duplicates(cache_client):
    trending = build_cache(cache_client, DatasetPool(rows=ranked_rows(11)))

    seen = []
    cursor = None
    for _ in range(20):
        page = await trending.get_trending_page(TimeWindow.MONTH, 3, cursor)
        seen.extend(e.content_id for e in page.entries)
        cursor = page.next_cursor
        if cursor is None:
            break

    assert cursor is None
    assert len(seen) == 11
    assert len(set(seen)) == 11


@pytest.mark.asyncio
async def test_page_keeps_row_order_from_query(cache_client):
    base = datetime(2024, 1, 1, tzinfo=timezone.utc)
    pool = DatasetPool(rows=[
        make_row("old", views=50, created_at=base - timedelta(days=1)),
        make_row("new", views=50, created_at=base),
        make_row("top", views=90, created_at=base - timedelta(days=2)),
    ])
    page = await build_cache(cache_client, pool).get_trending_page(TimeWindow.ALL, 10)

    assert [e.content_id for e in page.entries] == ["top", "new", "old"]


@pytest.mark.asyncio
async def test_second_call_is_served_from_cache_byte_identical(cache_client):
    pool = FakePool(rows=ranked_rows(3))
    trending = build_cache(cache_client, pool)

    first = await trending.get_trending_page(TimeWindow.DAY, 20)
    second = await trending.get_trending_page(TimeWindow.DAY, 20)

    assert len(pool.fetch_calls) == 1
    assert first.model_dump_json() == second.model_dump_json()


@pytest.mark.asyncio
async def test_miss_writes_with_window_ttl_and_registers_key(cache_client, fake_redis):
    trending = build_cache(cache_client, FakePool(rows=ranked_rows(2)))

    await trending.get_trending_page(TimeWindow.WEEK, 20)

    key = "trending:week:20:0"
    assert fake_redis.ttl_of(key) == TRENDING_CACHE_TTL[TimeWindow.WEEK]
    assert json.loads(fake_redis.store[TRENDING_META_KEY]) == [key]


@pytest.mark.asyncio
async def test_empty_cached_page_is_treated_as_miss(cache_client, fake_redis):
    pool = FakePool(rows=ranked_rows(2))
    fake_redis.store["trending:day:20:0"] = json.dumps({"entries": [], "next_cursor": None})

    page = await build_cache(cache_client, pool).get_trending_page(TimeWindow.DAY, 20)

    assert len(pool.fetch_calls) == 1
    assert len(page.entries) == 2


@pytest.mark.asyncio
async def test_malformed_entry_triggers_recompute(cache_client, fake_redis):
    pool = FakePool(rows=ranked_rows(1))
    fake_redis.store["trending:day:20:0"] = "}}garbage"

    page = await build_cache(cache_client, pool).get_trending_page(TimeWindow.DAY, 20)

    assert len(pool.fetch_calls) == 1
    assert page.entries[0].content_id == "v0"
    cached = TrendingPage.model_validate_json(fake_redis.store["trending:day:20:0"])
    assert cached == page


@pytest.mark.asyncio
async def test_wrong_shape_payload_triggers_recompute(cache_client, fake_redis):
    pool = FakePool(rows=ranked_rows(1))
    fake_redis.store["trending:day:20:0"] = json.dumps({"entries": [{"title": "missing fields"}]})

    await build_cache(cache_client, pool).get_trending_page(TimeWindow.DAY, 20)

    assert len(pool.fetch_calls) == 1


@pytest.mark.asyncio
async def test_redis_down_still_serves_from_query(fake_redis):
    from redis.exceptions import ConnectionError as RedisConnectionError

    fake_redis.fail_with = RedisConnectionError("down")
    cache_client = CacheClient(redis_client=fake_redis)
    pool = FakePool(rows=ranked_rows(2))

    page = await build_cache(cache_client, pool).get_trending_page(TimeWindow.DAY, 20)

    assert len(page.entries) == 2


@pytest.mark.asyncio
async def test_reset_single_window_leaves_other_windows(cache_client, fake_redis):
    trending = build_cache(cache_client, FakePool(rows=ranked_rows(2)))
    await trending.get_trending_page(TimeWindow.DAY, 20)
    await trending.get_trending_page(TimeWindow.DAY, 10)
    await trending.get_trending_page(TimeWindow.WEEK, 20)
    week_payload = fake_redis.store["trending:week:20:0"]

    result = await trending.reset_trending_cache("day")

    assert result.time_range == "day"
    assert result.cleared == 2
    assert "trending:day:20:0" not in fake_redis.store
    assert "trending:day:10:0" not in fake_redis.store
    assert fake_redis.store["trending:week:20:0"] == week_payload
    assert await trending.registry.keys() == ["trending:week:20:0"]
    assert await trending.get_last_invalidation() == result.timestamp


@pytest.mark.asyncio
async def test_reset_all_ranges_clears_every_window(cache_client, fake_redis):
    trending = build_cache(cache_client, FakePool(rows=ranked_rows(2)))
    await trending.get_trending_page(TimeWindow.DAY, 20)
    await trending.get_trending_page(TimeWindow.ALL, 20)
    # Written by another instance, never registered here
    fake_redis.store["trending:month:5:0"] = "{}"

    result = await trending.reset_trending_cache(ALL_RANGES)

    assert result.time_range == ALL_RANGES
    assert result.cleared == 3
    assert [k for k in fake_redis.store if k.startswith("trending:") and k != LAST_INVALIDATION_KEY] == []
    assert await trending.registry.keys() == []


@pytest.mark.asyncio
async def test_reset_records_timestamp(cache_client):
    trending = build_cache(cache_client, FakePool())

    result = await trending.reset_trending_cache(TimeWindow.WEEK)

    assert result.cleared == 0
    assert datetime.fromisoformat(result.timestamp).tzinfo is not None
