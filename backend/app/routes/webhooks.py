"""
Inbound webhooks for cache maintenance.

POST /invalidate-trending   body: {"timeRange": "day|week|month|all|all-ranges"}
POST /content-deleted       body: {"contentId": "..."}

Both accept the internal API key or a QStash signature (see app.core.auth) and
answer with plain `{error}` bodies on failure.
"""
import json
from datetime import datetime, timezone
from typing import Any, Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from app.core.auth import WebhookAuthError, authorize_webhook
from app.core.logging import get_logger
from app.core.metrics import record_trending_invalidation
from app.core.rate_limit import (
    INVALIDATION_BUCKET,
    SlidingWindowRateLimiter,
    get_invalidation_rate_limiter,
)
from app.models.trending import ALL_RANGES, TimeWindow
from app.services.trending.cache import TrendingCache, get_trending_cache
from app.services.trending.relay import EventRelay, get_event_relay

logger = get_logger(__name__)

router = APIRouter()

VALID_TIME_RANGES = {window.value for window in TimeWindow} | {ALL_RANGES}


def _parse_json(body: bytes) -> Optional[Any]:
    try:
        return json.loads(body) if body else None
    except ValueError:
        return None


def parse_time_range(body: bytes) -> str:
    """timeRange from the body; missing, unparseable or unknown values mean all-ranges."""
    payload = _parse_json(body)
    if isinstance(payload, dict):
        time_range = payload.get("timeRange")
        if isinstance(time_range, str) and time_range in VALID_TIME_RANGES:
            return time_range
    return ALL_RANGES


def _unauthorized() -> JSONResponse:
    return JSONResponse(status_code=401, content={"error": "Unauthorized"})


@router.post("/invalidate-trending")
async def invalidate_trending(
    request: Request,
    trending_cache: TrendingCache = Depends(get_trending_cache),
    limiter: SlidingWindowRateLimiter = Depends(get_invalidation_rate_limiter),
):
    """
    Clear cached trending pages for one window or all of them.

    Called by the recurring schedules and by one-off triggers.
    """
    try:
        body = await authorize_webhook(request, "invalidate_trending")
    except WebhookAuthError:
        return _unauthorized()

    rate_limit = await limiter.limit_request(INVALIDATION_BUCKET)
    if not rate_limit.success:
        return JSONResponse(
            status_code=429,
            content={
                "error": "Too many requests",
                "limit": rate_limit.limit,
                "remaining": rate_limit.remaining,
                "reset": rate_limit.reset,
            },
        )

    time_range = parse_time_range(body)

    try:
        result = await trending_cache.reset_trending_cache(time_range)
    except Exception as e:
        logger.error(
            "trending_invalidation_failed",
            time_range=time_range,
            error=str(e),
            error_type=type(e).__name__,
            exc_info=True,
        )
        return JSONResponse(status_code=500, content={"error": "Failed to invalidate trending cache"})

    record_trending_invalidation(time_range, result.cleared, source="webhook")
    return {
        "success": True,
        "message": f"Trending cache invalidated for {time_range}",
        "timeRange": result.time_range,
        "cleared": result.cleared,
        "timestamp": result.timestamp,
    }


@router.post("/content-deleted")
async def content_deleted(
    request: Request,
    relay: EventRelay = Depends(get_event_relay),
):
    """
    Fan a content deletion out to realtime clients, the trending cache and
    the backup invalidation queue.

    Responds 200 once the body parses, whatever the individual steps did.
    """
    try:
        body = await authorize_webhook(request, "content_deleted")
    except WebhookAuthError:
        return _unauthorized()

    payload = _parse_json(body)
    content_id = payload.get("contentId") if isinstance(payload, dict) else None
    if not content_id or not isinstance(content_id, str):
        return JSONResponse(status_code=400, content={"error": "contentId is required"})

    steps = await relay.video_deleted(content_id)

    return {
        "success": True,
        "message": f"Content {content_id} deletion processed",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "steps": steps,
    }
