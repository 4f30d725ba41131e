"""
Prometheus scrape target.

GET /metrics exposes cache hit ratio, trending query latency, invalidation
counts, webhook auth failures and HTTP RED metrics. Unauthenticated; it is
expected to be reachable from inside the cluster only.
"""
from fastapi import APIRouter, Response

from app.core.logging import get_logger
from app.core.metrics import get_metrics, get_metrics_content_type

logger = get_logger(__name__)
router = APIRouter()

SCRAPE_FAILED_BODY = b"# Error collecting metrics\n"


@router.get("")
async def metrics() -> Response:
    payload = SCRAPE_FAILED_BODY
    try:
        payload = get_metrics()
    except Exception as e:
        logger.error("metrics_scrape_failed", error=str(e), error_type=type(e).__name__, exc_info=True)
    return Response(content=payload, media_type=get_metrics_content_type())
