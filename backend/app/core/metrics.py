"""
Prometheus metrics for the trending service.

Metrics Categories:
- RED Metrics: Rate, Errors, Duration of HTTP requests
- Cache Metrics: hits/misses per cache type, cache transport faults
- Trending Metrics: aggregate query latency, invalidations, cleared keys
- Control Plane Metrics: webhook auth failures, rate-limit rejections,
  scheduler calls, event relay step failures

Naming follows Prometheus conventions:
- Counters: _total suffix
- Histograms: _seconds suffix for durations
"""
from prometheus_client import (
    Counter,
    Histogram,
    generate_latest,
    REGISTRY,
    CONTENT_TYPE_LATEST,
)

from app.core.logging import get_logger

logger = get_logger(__name__)

registry = REGISTRY

# ============================================================================
# RED METRICS - Rate, Errors, Duration
# ============================================================================

http_requests_total = Counter(
    "http_requests_total",
    "Total number of HTTP requests",
    ["method", "endpoint", "status"],
    registry=registry,
)

http_errors_total = Counter(
    "http_errors_total",
    "Total number of HTTP errors",
    ["method", "endpoint", "status_code"],
    registry=registry,
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency in seconds",
    ["method", "endpoint"],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
    registry=registry,
)

# ============================================================================
# CACHE METRICS
# ============================================================================

cache_hits_total = Counter(
    "cache_hits_total",
    "Total number of cache hits",
    ["cache_type"],  # e.g., "trending"
    registry=registry,
)

cache_misses_total = Counter(
    "cache_misses_total",
    "Total number of cache misses",
    ["cache_type"],
    registry=registry,
)

cache_errors_total = Counter(
    "cache_errors_total",
    "Total number of absorbed cache transport faults",
    ["operation"],  # get, set, delete, delete_by_prefix, exists
    registry=registry,
)

cache_corrupted_entries_total = Counter(
    "cache_corrupted_entries_total",
    "Total number of cache entries deleted because they failed to decode",
    registry=registry,
)

# ============================================================================
# TRENDING METRICS
# ============================================================================

trending_query_duration_seconds = Histogram(
    "trending_query_duration_seconds",
    "Trending aggregate query latency in seconds",
    ["window"],
    buckets=[0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
    registry=registry,
)

trending_query_errors_total = Counter(
    "trending_query_errors_total",
    "Total number of failed trending aggregate queries",
    ["window"],
    registry=registry,
)

trending_invalidations_total = Counter(
    "trending_invalidations_total",
    "Total number of trending cache invalidations",
    ["time_range", "source"],  # source: webhook, admin
    registry=registry,
)

trending_keys_cleared_total = Counter(
    "trending_keys_cleared_total",
    "Total number of trending cache keys removed by invalidation",
    ["time_range"],
    registry=registry,
)

# ============================================================================
# CONTROL PLANE METRICS
# ============================================================================

webhook_auth_failures_total = Counter(
    "webhook_auth_failures_total",
    "Total number of rejected webhook authentication attempts",
    ["endpoint", "reason"],
    registry=registry,
)

rate_limit_hits_total = Counter(
    "rate_limit_hits_total",
    "Total number of requests rejected by a rate limiter",
    ["bucket"],
    registry=registry,
)

scheduler_operations_total = Counter(
    "scheduler_operations_total",
    "Total number of scheduling/messaging transport calls",
    ["operation", "status"],  # status: success, error
    registry=registry,
)

event_relay_step_failures_total = Counter(
    "event_relay_step_failures_total",
    "Total number of failed event relay fan-out steps",
    ["step"],  # notify, cache, backup
    registry=registry,
)

content_views_total = Counter(
    "content_views_total",
    "Total number of view events received",
    ["counted"],  # "true" when the view incremented the counter
    registry=registry,
)


# ============================================================================
# HELPER FUNCTIONS
# ============================================================================

def normalize_endpoint(path: str) -> str:
    """
    Normalize endpoint path for metrics.

    Replaces dynamic segments with placeholders to avoid high cardinality.

    Examples:
        /videos/abc123/views -> /videos/{content_id}/views
        /trending?timeRange=day -> /trending
    """
    if "?" in path:
        path = path.split("?")[0]

    if path.startswith("/videos/") and path.endswith("/views"):
        return "/videos/{content_id}/views"

    return path


def record_http_request(
    method: str,
    endpoint: str,
    status_code: int,
    duration_seconds: float,
) -> None:
    """Record HTTP request metrics (RED metrics)."""
    normalized_endpoint = normalize_endpoint(endpoint)

    http_requests_total.labels(
        method=method,
        endpoint=normalized_endpoint,
        status=str(status_code),
    ).inc()

    if status_code >= 400:
        http_errors_total.labels(
            method=method,
            endpoint=normalized_endpoint,
            status_code=str(status_code),
        ).inc()

    http_request_duration_seconds.labels(
        method=method,
        endpoint=normalized_endpoint,
    ).observe(duration_seconds)


def record_cache_hit(cache_type: str) -> None:
    cache_hits_total.labels(cache_type=cache_type).inc()


def record_cache_miss(cache_type: str) -> None:
    cache_misses_total.labels(cache_type=cache_type).inc()


def record_cache_error(operation: str) -> None:
    cache_errors_total.labels(operation=operation).inc()


def record_cache_corrupted_entry() -> None:
    cache_corrupted_entries_total.inc()


def record_trending_query(window: str, duration_seconds: float, error: bool = False) -> None:
    """Record a trending aggregate query (latency always, error when failed)."""
    trending_query_duration_seconds.labels(window=window).observe(duration_seconds)
    if error:
        trending_query_errors_total.labels(window=window).inc()


def record_trending_invalidation(time_range: str, cleared: int, source: str) -> None:
    trending_invalidations_total.labels(time_range=time_range, source=source).inc()
    trending_keys_cleared_total.labels(time_range=time_range).inc(cleared)


def record_webhook_auth_failure(endpoint: str, reason: str) -> None:
    webhook_auth_failures_total.labels(endpoint=endpoint, reason=reason).inc()


def record_rate_limit_hit(bucket: str) -> None:
    rate_limit_hits_total.labels(bucket=bucket).inc()


def record_scheduler_operation(operation: str, success: bool) -> None:
    scheduler_operations_total.labels(
        operation=operation,
        status="success" if success else "error",
    ).inc()


def record_event_relay_failure(step: str) -> None:
    event_relay_step_failures_total.labels(step=step).inc()


def record_content_view(counted: bool) -> None:
    content_views_total.labels(counted="true" if counted else "false").inc()


def get_metrics() -> bytes:
    """Get Prometheus metrics in text format."""
    return generate_latest(registry)


def get_metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST
