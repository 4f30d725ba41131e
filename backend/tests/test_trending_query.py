"""
Unit tests for the trending score aggregate (ScoreQuery).
"""
from datetime import timedelta

import pytest

from app.models.trending import TimeWindow
from app.services.trending.query import (
    TRENDING_QUERY,
    ScoreQuery,
    TrendingQueryError,
    compute_trending_score,
    row_to_entry,
)
from conftest import FakePool, make_row, ranked_rows


def test_trending_score_formula():
    assert compute_trending_score(view_count=100, like_count=3, comment_count=2) == 135
    assert compute_trending_score(0, 0, 0) == 0


def test_row_to_entry_maps_creator_and_score():
    entry = row_to_entry(make_row("abc", views=10, likes=2, comments=1))

    assert entry.content_id == "abc"
    assert entry.trending_score == 30
    assert entry.like_count == 2
    assert entry.comment_count == 1
    assert entry.creator.id == "user-1"
    assert entry.creator.name == "Creator"


def test_query_is_parameterized():
    assert "$1" in TRENDING_QUERY
    assert "$3::bigint" in TRENDING_QUERY
    assert "LIMIT $4" in TRENDING_QUERY
    assert "ORDER BY cs.trending_score DESC, cs.created_at DESC" in TRENDING_QUERY


def test_query_filters_visibility_window_and_cursor():
    where = TRENDING_QUERY.split("WHERE", 1)[1].split("GROUP BY", 1)[0]
    having = TRENDING_QUERY.split("HAVING", 1)[1].split(")\nSELECT", 1)[0]

    assert "v.visibility = $1" in where
    assert "v.created_at > NOW() - $2::interval" in where
    assert "< $3::bigint" in having


@pytest.mark.asyncio
async def test_fetch_passes_window_cursor_and_limit_plus_one():
    pool = FakePool(rows=ranked_rows(3))

    await ScoreQuery(pool=pool).fetch(TimeWindow.WEEK, limit=20, cursor=500)

    _, args = pool.fetch_calls[0]
    assert args == ("public", timedelta(days=7), 500, 21)


@pytest.mark.asyncio
async def test_all_window_has_no_interval_and_zero_cursor_means_first_page():
    pool = FakePool(rows=[])

    await ScoreQuery(pool=pool).fetch(TimeWindow.ALL, limit=5, cursor=0)

    _, args = pool.fetch_calls[0]
    assert args == ("public", None, None, 6)


@pytest.mark.asyncio
async def test_fetch_detects_more_rows_and_trims_page():
    pool = FakePool(rows=ranked_rows(4))

    entries, has_more = await ScoreQuery(pool=pool).fetch(TimeWindow.DAY, limit=3)

    assert has_more is True
    assert [e.content_id for e in entries] == ["v0", "v1", "v2"]


@pytest.mark.asyncio
async def test_fetch_without_extra_row_has_no_more():
    pool = FakePool(rows=ranked_rows(2))

    entries, has_more = await ScoreQuery(pool=pool).fetch(TimeWindow.DAY, limit=3)

    assert has_more is False
    assert len(entries) == 2


@pytest.mark.asyncio
@pytest.mark.parametrize("limit", [0, 51])
async def test_fetch_rejects_limit_out_of_range(limit):
    with pytest.raises(ValueError):
        await ScoreQuery(pool=FakePool()).fetch(TimeWindow.DAY, limit=limit)


@pytest.mark.asyncio
async def test_driver_error_is_wrapped():
    pool = FakePool(error=RuntimeError("connection reset"))

    with pytest.raises(TrendingQueryError):
        await ScoreQuery(pool=pool).fetch(TimeWindow.MONTH, limit=10)


@pytest.mark.asyncio
async def test_missing_pool_raises(monkeypatch):
    monkeypatch.setattr("app.services.trending.query.get_read_pool", lambda: None)

    with pytest.raises(TrendingQueryError):
        await ScoreQuery().fetch(TimeWindow.DAY, limit=10)
