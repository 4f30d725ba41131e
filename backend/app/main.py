import os

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .core.cache import close_redis, initialize_redis
from .core.database_pool import close_database_pools, initialize_database_pool
from .core.logging import configure_logging, get_logger, get_trace_id
from .core.middleware import TraceIDMiddleware
from .core.tracing import (
    StatusCode,
    configure_tracing,
    get_trace_id_from_context,
    instrument_fastapi,
    record_exception,
    set_span_status,
    shutdown_tracing,
)
from .routes import admin, health, metrics, trending, views, webhooks

# JSON logs in containers, console output with LOG_JSON=false
configure_logging(
    log_level=os.getenv("LOG_LEVEL", "INFO"),
    json_output=os.getenv("LOG_JSON", "true").lower() == "true",
)

logger = get_logger(__name__)

# Spans are exported only when OTEL_EXPORTER_OTLP_ENDPOINT is set
configure_tracing(enable_otlp=bool(os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT")))

app = FastAPI(
    title="Trending API",
    description="Trending ranking, cache and invalidation service",
    version="1.0.0"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Added last so it wraps CORS and sees every response
app.add_middleware(TraceIDMiddleware)

instrument_fastapi(app)


@app.on_event("startup")
async def startup_event():
    """Connect Redis and the database pools. Neither is fatal."""
    logger.info("app_startup_started")

    if not await initialize_redis():
        logger.warning(
            "app_startup_redis_unavailable",
            message="Trending pages will be computed on every request and rate limiting is disabled.",
        )

    if not await initialize_database_pool():
        logger.warning(
            "app_startup_database_pool_unavailable",
            message="Trending cache misses and view counts will fail until the database is reachable.",
        )

    logger.info("app_startup_completed")


@app.on_event("shutdown")
async def shutdown_event():
    logger.info("app_shutdown_started")
    shutdown_tracing()
    await close_redis()
    await close_database_pools()
    logger.info("app_shutdown_completed")


def _error_response(status_code: int, detail, headers=None) -> JSONResponse:
    trace_id = get_trace_id() or get_trace_id_from_context()
    response = JSONResponse(
        status_code=status_code,
        content={
            "detail": detail,
            "status_code": status_code,
            "trace_id": trace_id,
        },
        headers=headers,
    )
    if trace_id:
        response.headers["X-Trace-ID"] = trace_id
    return response


# Error handlers. HTTP metrics are recorded by TraceIDMiddleware.
@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    set_span_status(StatusCode.ERROR if exc.status_code >= 500 else StatusCode.OK, str(exc.detail))
    logger.warning(
        "http_exception",
        status_code=exc.status_code,
        detail=exc.detail,
        path=request.url.path,
        method=request.method,
    )
    return _error_response(exc.status_code, exc.detail, headers=getattr(exc, "headers", None))


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    record_exception(exc)
    logger.error(
        "unhandled_exception",
        error=str(exc),
        error_type=type(exc).__name__,
        path=request.url.path,
        method=request.method,
        exc_info=True,
    )
    return _error_response(500, "Internal server error")


app.include_router(health.router, prefix="/health", tags=["Health"])
app.include_router(trending.router, prefix="/trending", tags=["Trending"])
app.include_router(views.router, prefix="/videos", tags=["Views"])
app.include_router(webhooks.router, tags=["Webhooks"])
app.include_router(metrics.router, prefix="/metrics", tags=["Metrics"])
app.include_router(admin.router, prefix="/admin", tags=["Admin"])
