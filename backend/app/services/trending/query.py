"""
Trending score aggregate query (ScoreQuery).

trending_score = view_count + 5 * like_count + 10 * comment_count

The score is computed inside the aggregate, so filtering by cursor, ordering
and limiting all happen in one database pass. Pagination is keyset-based:
the cursor is a score and the next page holds rows with a strictly smaller
score. Rows that tie with the cursor score can be skipped across a page
boundary; the feed accepts that imprecision.
"""
import time
from datetime import timedelta
from typing import Any, Dict, List, Mapping, Optional, Tuple

import asyncpg

from app.core.database_pool import get_read_pool
from app.core.logging import get_logger
from app.core.metrics import record_trending_query
from app.core.tracing import get_tracer, record_exception, set_span_attribute
from app.models.trending import Creator, TimeWindow, TrendingEntry

logger = get_logger(__name__)

LIKE_WEIGHT = 5
COMMENT_WEIGHT = 10

MIN_LIMIT = 1
MAX_LIMIT = 50

PUBLIC_VISIBILITY = "public"

# `created_at > now() - interval`; None means no time filter.
WINDOW_INTERVALS: Dict[TimeWindow, Optional[timedelta]] = {
    TimeWindow.DAY: timedelta(days=1),
    TimeWindow.WEEK: timedelta(days=7),
    TimeWindow.MONTH: timedelta(days=30),
    TimeWindow.ALL: None,
}

_SCORE_EXPRESSION = f"""(
    v.view_count
    + {LIKE_WEIGHT} * COUNT(DISTINCT vl.user_id) FILTER (WHERE vl.is_like)
    + {COMMENT_WEIGHT} * COUNT(DISTINCT c.id)
)"""

# $1 visibility, $2 window interval (NULL = all time), $3 cursor score (NULL = first page),
# $4 row limit (page size + 1)
TRENDING_QUERY = f"""
WITH content_stats AS (
    SELECT
        v.id,
        v.title,
        v.thumbnail_url,
        v.created_at,
        v.view_count,
        v.duration,
        v.visibility,
        v.user_id,
        v.category_id,
        COUNT(DISTINCT c.id) AS comment_count,
        COUNT(DISTINCT vl.user_id) FILTER (WHERE vl.is_like) AS like_count,
        {_SCORE_EXPRESSION} AS trending_score
    FROM videos v
    LEFT JOIN comments c ON c.video_id = v.id
    LEFT JOIN video_likes vl ON vl.video_id = v.id
    WHERE v.visibility = $1
      AND ($2::interval IS NULL OR v.created_at > NOW() - $2::interval)
    GROUP BY v.id
    HAVING ($3::bigint IS NULL OR {_SCORE_EXPRESSION} < $3::bigint)
)
SELECT
    cs.*,
    u.id AS creator_id,
    u.name AS creator_name,
    u.image_url AS creator_image_url
FROM content_stats cs
JOIN users u ON u.id = cs.user_id
ORDER BY cs.trending_score DESC, cs.created_at DESC
LIMIT $4
"""


class TrendingQueryError(Exception):
    """Raised when the trending aggregate cannot be executed."""
    pass


def compute_trending_score(view_count: int, like_count: int, comment_count: int) -> int:
    """Same formula the aggregate query applies."""
    return view_count + LIKE_WEIGHT * like_count + COMMENT_WEIGHT * comment_count


def _optional_str(value: Any) -> Optional[str]:
    return None if value is None else str(value)


def row_to_entry(row: Mapping[str, Any]) -> TrendingEntry:
    """Map one aggregate row (asyncpg Record or dict) to a TrendingEntry."""
    return TrendingEntry(
        content_id=str(row["id"]),
        title=row["title"],
        thumbnail_url=row["thumbnail_url"],
        created_at=row["created_at"],
        view_count=int(row["view_count"] or 0),
        duration=row["duration"],
        visibility=row["visibility"],
        category_id=_optional_str(row["category_id"]),
        comment_count=int(row["comment_count"] or 0),
        like_count=int(row["like_count"] or 0),
        trending_score=int(row["trending_score"] or 0),
        creator=Creator(
            id=str(row["creator_id"]),
            name=row["creator_name"],
            image_url=row["creator_image_url"],
        ),
    )


class ScoreQuery:
    """
    Runs the trending aggregate against the read pool.

    The pool can be injected; otherwise the global read pool is used.
    """

    def __init__(self, pool: Optional[asyncpg.Pool] = None):
        self._pool = pool

    @property
    def pool(self) -> Optional[asyncpg.Pool]:
        return self._pool if self._pool is not None else get_read_pool()

    async def fetch(
        self,
        window: TimeWindow,
        limit: int,
        cursor: Optional[int] = None,
    ) -> Tuple[List[TrendingEntry], bool]:
        """
        Fetch one page of trending entries.

        Args:
            window: Time window to rank within
            limit: Page size, 1-50
            cursor: Score threshold from the previous page (exclusive); falsy
                means the first page

        Returns:
            (entries, has_more) where entries has at most `limit` items

        Raises:
            ValueError: limit out of range
            TrendingQueryError: database unavailable or query failed
        """
        if not MIN_LIMIT <= limit <= MAX_LIMIT:
            raise ValueError(f"limit must be between {MIN_LIMIT} and {MAX_LIMIT}, got {limit}")

        window = TimeWindow(window)
        pool = self.pool
        if pool is None:
            logger.error("trending_query_db_unavailable", window=window.value)
            raise TrendingQueryError("Database pool not initialized")

        tracer = get_tracer()
        with tracer.start_as_current_span("trending.score_query"):
            set_span_attribute("trending.window", window.value)
            set_span_attribute("trending.limit", limit)
            set_span_attribute("trending.has_cursor", bool(cursor))

            start = time.time()
            try:
                rows = await pool.fetch(
                    TRENDING_QUERY,
                    PUBLIC_VISIBILITY,
                    WINDOW_INTERVALS[window],
                    cursor or None,
                    limit + 1,
                )
            except Exception as e:
                duration = time.time() - start
                record_trending_query(window.value, duration, error=True)
                record_exception(e)
                logger.error(
                    "trending_query_failed",
                    window=window.value,
                    limit=limit,
                    cursor=cursor,
                    error=str(e),
                    error_type=type(e).__name__,
                    exc_info=True,
                )
                raise TrendingQueryError("Failed to fetch trending content") from e

            duration = time.time() - start
            record_trending_query(window.value, duration)

            has_more = len(rows) > limit
            entries = [row_to_entry(row) for row in rows[:limit]]
            set_span_attribute("trending.rows", len(entries))

            logger.info(
                "trending_query_completed",
                window=window.value,
                limit=limit,
                cursor=cursor,
                rows=len(entries),
                has_more=has_more,
                latency_ms=int(duration * 1000),
            )
            return entries, has_more
