"""
Trending feed endpoint.

GET /trending?timeRange={day|week|month|all}&limit={1-50}&cursor={score}
"""
import time
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from app.core.logging import get_logger
from app.models.trending import TimeWindow, TrendingPage
from app.services.trending.cache import TrendingCache, get_trending_cache
from app.services.trending.query import MAX_LIMIT, MIN_LIMIT, TrendingQueryError

logger = get_logger(__name__)

router = APIRouter()


@router.get("", response_model=TrendingPage)
async def get_trending(
    time_range: TimeWindow = Query(TimeWindow.WEEK, alias="timeRange", description="Ranking window"),
    limit: int = Query(20, ge=MIN_LIMIT, le=MAX_LIMIT, description="Page size"),
    cursor: Optional[int] = Query(None, ge=0, description="Score of the last entry on the previous page"),
    trending_cache: TrendingCache = Depends(get_trending_cache),
):
    """
    Get one page of trending content, ordered by trending score.

    Pages are served from cache when present; pass the returned next_cursor
    to fetch the following page.
    """
    start_time = time.time()

    try:
        page = await trending_cache.get_trending_page(time_range, limit, cursor)
    except TrendingQueryError as e:
        logger.error(
            "trending_request_failed",
            time_range=time_range.value,
            limit=limit,
            cursor=cursor,
            error=str(e),
        )
        raise HTTPException(status_code=500, detail="Failed to fetch trending content")

    logger.info(
        "trending_request_completed",
        time_range=time_range.value,
        limit=limit,
        cursor=cursor,
        results_count=len(page.entries),
        has_more=page.next_cursor is not None,
        latency_ms=int((time.time() - start_time) * 1000),
    )
    return page
