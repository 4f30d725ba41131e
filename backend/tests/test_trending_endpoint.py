"""
Integration tests for GET /trending.
"""
import pytest
from fastapi.testclient import TestClient

from app.main import app
from app.services.trending.cache import TrendingCache, get_trending_cache
from app.services.trending.query import ScoreQuery
from app.services.trending.registry import InvalidationGroup
from conftest import FakePool, ranked_rows


def make_client(cache_client, pool):
    trending_cache = TrendingCache(
        cache=cache_client,
        query=ScoreQuery(pool=pool),
        registry=InvalidationGroup(cache_client),
    )
    app.dependency_overrides[get_trending_cache] = lambda: trending_cache
    return TestClient(app)


@pytest.fixture(autouse=True)
def clear_overrides():
    yield
    app.dependency_overrides.clear()


def test_defaults_to_week_window(cache_client):
    pool = FakePool(rows=ranked_rows(3))
    response = make_client(cache_client, pool).get("/trending")

    assert response.status_code == 200
    data = response.json()
    assert len(data["entries"]) == 3
    assert data["next_cursor"] is None
    assert data["entries"][0]["trending_score"] == 1000
    assert data["entries"][0]["creator"]["id"] == "user-1"


def test_next_cursor_is_last_entry_score(cache_client):
    pool = FakePool(rows=ranked_rows(3))
    response = make_client(cache_client, pool).get("/trending", params={"timeRange": "day", "limit": 2})

    data = response.json()
    assert [e["trending_score"] for e in data["entries"]] == [1000, 990]
    assert data["next_cursor"] == 990


def test_cached_response_is_byte_identical(cache_client):
    pool = FakePool(rows=ranked_rows(3))
    client = make_client(cache_client, pool)

    first = client.get("/trending", params={"timeRange": "month", "limit": 5})
    second = client.get("/trending", params={"timeRange": "month", "limit": 5})

    assert first.content == second.content
    assert len(pool.fetch_calls) == 1


@pytest.mark.parametrize("params", [
    {"timeRange": "year"},
    {"limit": 0},
    {"limit": 51},
    {"cursor": -1},
    {"cursor": "abc"},
])
def test_invalid_params_rejected(cache_client, params):
    response = make_client(cache_client, FakePool()).get("/trending", params=params)
    assert response.status_code == 422


def test_query_failure_returns_500(cache_client):
    pool = FakePool(error=RuntimeError("db down"))
    response = make_client(cache_client, pool).get("/trending")

    assert response.status_code == 500
    assert response.json()["detail"] == "Failed to fetch trending content"
