"""
Health check endpoints.
"""
from fastapi import APIRouter
from fastapi.responses import JSONResponse

from app.core.cache import get_cache_client
from app.core.database_pool import get_primary_pool, get_read_pool
from app.core.logging import get_logger

logger = get_logger(__name__)
router = APIRouter()


@router.get("/")
async def health_check():
    """
    Basic health check endpoint.
    """
    return {
        "status": "ok",
        "message": "API is running"
    }


@router.get("/dependencies")
async def dependencies_health():
    """
    Redis and database availability.

    Redis being down only degrades the service (trending pages are computed
    on every request); the database being down makes cache misses fail.
    """
    redis_ok = await get_cache_client().ping()
    primary_ok = get_primary_pool() is not None
    read_ok = get_read_pool() is not None

    if not (primary_ok and read_ok):
        status = "unavailable"
    elif not redis_ok:
        status = "degraded"
    else:
        status = "ok"

    if status != "ok":
        logger.warning(
            "health_dependencies_degraded",
            redis=redis_ok,
            database_primary=primary_ok,
            database_read=read_ok,
        )

    return JSONResponse(
        status_code=503 if status == "unavailable" else 200,
        content={
            "status": status,
            "redis": redis_ok,
            "database": {"primary": primary_ok, "read": read_ok},
        },
    )
