"""
Admin endpoints for trending schedules and cache.

POST   /admin/trending-schedules                 create/overwrite the recurring schedules
GET    /admin/trending-schedules                 list trending schedules
DELETE /admin/trending-schedules?scheduleId=...  remove one schedule
GET    /admin/trending-cache                     registered keys + last invalidation
POST   /admin/trending-cache/reset               clear cache now
POST   /admin/trending-cache/invalidate          enqueue an invalidation through QStash

Every endpoint requires a session bearer token or the internal API key.
"""
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel

from app.core.auth import require_admin
from app.core.logging import get_logger
from app.core.metrics import record_trending_invalidation
from app.models.trending import ALL_RANGES, TimeWindow
from app.services.trending.cache import TrendingCache, get_trending_cache
from app.services.trending.scheduler import Scheduler, get_scheduler

logger = get_logger(__name__)

router = APIRouter()

VALID_TIME_RANGES = {window.value for window in TimeWindow} | {ALL_RANGES}


class CacheActionRequest(BaseModel):
    """Request to reset or invalidate the trending cache."""
    timeRange: str = ALL_RANGES
    reason: Optional[str] = None


def _validated_time_range(time_range: str) -> str:
    if time_range not in VALID_TIME_RANGES:
        raise HTTPException(
            status_code=400,
            detail=f"timeRange must be one of {sorted(VALID_TIME_RANGES)}",
        )
    return time_range


def _scheduler_response(operation: str, result: Dict[str, Any]) -> Dict[str, Any]:
    # Scheduler faults are returned as {"success": false, "error": ...}, not as HTTP errors.
    if not result.get("success"):
        logger.warning("admin_scheduler_operation_failed", operation=operation, error=result.get("error"))
    return result


@router.post("/trending-schedules")
async def setup_trending_schedules(
    principal: Dict[str, Any] = Depends(require_admin),
    scheduler: Scheduler = Depends(get_scheduler),
):
    """Create (or overwrite) the daily, weekly and all-ranges schedules."""
    logger.info("admin_trending_schedules_setup", principal=principal["type"])
    return _scheduler_response("setup", await scheduler.setup_schedules())


@router.get("/trending-schedules")
async def check_trending_schedules(
    principal: Dict[str, Any] = Depends(require_admin),
    scheduler: Scheduler = Depends(get_scheduler),
):
    return _scheduler_response("check", await scheduler.check_schedules())


@router.delete("/trending-schedules")
async def remove_trending_schedule(
    schedule_id: Optional[str] = Query(None, alias="scheduleId"),
    principal: Dict[str, Any] = Depends(require_admin),
    scheduler: Scheduler = Depends(get_scheduler),
):
    if not schedule_id:
        raise HTTPException(status_code=400, detail="Schedule ID is required")

    logger.info("admin_trending_schedule_remove", schedule_id=schedule_id, principal=principal["type"])
    return _scheduler_response("remove", await scheduler.remove_schedule(schedule_id))


@router.get("/trending-cache")
async def trending_cache_status(
    principal: Dict[str, Any] = Depends(require_admin),
    trending_cache: TrendingCache = Depends(get_trending_cache),
):
    """
    Registered page keys and the last invalidation time.

    The key list comes from the registry, so it can lag behind what is
    actually stored in Redis.
    """
    keys = await trending_cache.registry.keys()
    return {
        "registeredKeys": keys,
        "count": len(keys),
        "lastInvalidation": await trending_cache.get_last_invalidation(),
    }


@router.post("/trending-cache/reset")
async def reset_trending_cache(
    request: Optional[CacheActionRequest] = None,
    principal: Dict[str, Any] = Depends(require_admin),
    trending_cache: TrendingCache = Depends(get_trending_cache),
):
    """Clear the trending cache synchronously (no rate limit)."""
    request = request or CacheActionRequest()
    time_range = _validated_time_range(request.timeRange)
    result = await trending_cache.reset_trending_cache(time_range)
    record_trending_invalidation(time_range, result.cleared, source="admin")
    logger.info(
        "admin_trending_cache_reset",
        time_range=time_range,
        cleared=result.cleared,
        principal=principal["type"],
    )
    return {
        "success": True,
        "timeRange": result.time_range,
        "cleared": result.cleared,
        "timestamp": result.timestamp,
    }


@router.post("/trending-cache/invalidate")
async def enqueue_trending_invalidation(
    request: Optional[CacheActionRequest] = None,
    principal: Dict[str, Any] = Depends(require_admin),
    scheduler: Scheduler = Depends(get_scheduler),
):
    """Queue a one-off invalidation; it arrives through the webhook (and its rate limit)."""
    request = request or CacheActionRequest()
    time_range = _validated_time_range(request.timeRange)
    reason = request.reason or f"manual:{principal.get('user_id', principal['type'])}"
    return _scheduler_response("trigger", await scheduler.trigger_invalidation(time_range, reason=reason))
