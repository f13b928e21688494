"""
FastAPI application factory.
"""

import time
import uuid
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from redis.exceptions import RedisError

from dropfeed.api.dependencies import (
    cleanup_dependencies,
    get_status_broadcaster,
    stop_status_broadcaster,
)
from dropfeed.api.middleware.timeout import TimeoutMiddleware
from dropfeed.api.routes import (
    admin,
    engagement,
    feed,
    health,
    ingest,
    preferences,
    sources,
    status,
    tagging,
    ws_status,
)
from dropfeed.api.routes.ws_status import set_broadcaster
from dropfeed.config.settings import get_settings
from dropfeed.errors import (
    ConcurrentRunConflict,
    DropfeedError,
    InvalidURL,
    NoPreferences,
)
from dropfeed.observability.tracing import get_tracer, is_tracing_enabled, setup_tracing

logger = structlog.get_logger(__name__)

VERSION = "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("dropfeed API starting up")

    settings = get_settings()
    if settings.tracing_enabled:
        setup_tracing(
            service_name=settings.otel_service_name,
            otlp_endpoint=settings.otel_exporter_otlp_endpoint,
        )
    if settings.ws_status_enabled:
        try:
            set_broadcaster(await get_status_broadcaster())
            logger.info("Status broadcaster started")
        except (RedisError, OSError) as e:
            logger.warning("Status broadcaster unavailable", error=str(e))

    yield

    logger.info("dropfeed API shutting down")
    set_broadcaster(None)
    await stop_status_broadcaster()
    await cleanup_dependencies()


def _error_response(status_code: int, exc: DropfeedError, error_type: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"detail": exc.message, "error_type": error_type},
    )


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application
    """
    settings = get_settings()

    openapi_tags = [
        {"name": "health", "description": "Service health checks"},
        {"name": "sources", "description": "Source registry, prioritize and run-now"},
        {"name": "ingest", "description": "Manual URL ingestion and queue item polling"},
        {"name": "tagging", "description": "Tagging parameter store"},
        {"name": "feed", "description": "Personalized ranked feed"},
        {"name": "preferences", "description": "User topic and language selection"},
        {"name": "engagement", "description": "Engagement events"},
        {"name": "status", "description": "Pipeline status and coverage"},
        {"name": "admin", "description": "Explicit, audited maintenance actions"},
        {"name": "websocket", "description": "Real-time status events"},
    ]

    app = FastAPI(
        title="dropfeed API",
        description="""
Content ingestion pipeline and personalized ranking.

## Authentication

Requires `X-API-KEY` header for all requests except `/health`.
The status WebSocket takes the key as an `api_key` query parameter.
        """,
        version=VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
        openapi_tags=openapi_tags,
    )

    cors_origins = [o.strip() for o in settings.cors_origins.split(",") if o.strip()]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )

    # Added before the logging middleware so the timeout wraps the whole request.
    if settings.request_timeout_seconds > 0:
        app.add_middleware(
            TimeoutMiddleware,
            timeout_seconds=settings.request_timeout_seconds,
        )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        request_id = (
            request.headers.get("X-Request-ID")
            or request.headers.get("X-Correlation-ID")
            or str(uuid.uuid4())
        )
        structlog.contextvars.bind_contextvars(request_id=request_id)
        start_time = time.perf_counter()

        try:
            if is_tracing_enabled():
                tracer = get_tracer("dropfeed.api")
                with tracer.start_as_current_span(
                    f"{request.method} {request.url.path}",
                    attributes={
                        "http.method": request.method,
                        "http.route": request.url.path,
                        "http.request_id": request_id,
                    },
                ) as span:
                    response = await call_next(request)
                    span.set_attribute("http.status_code", response.status_code)
            else:
                response = await call_next(request)
            duration = time.perf_counter() - start_time

            response.headers["X-Request-ID"] = request_id
            logger.info(
                "HTTP request",
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                duration_ms=round(duration * 1000, 2),
            )
            return response
        finally:
            structlog.contextvars.clear_contextvars()

    if settings.rate_limit_enabled:
        from slowapi import _rate_limit_exceeded_handler
        from slowapi.errors import RateLimitExceeded

        from dropfeed.api.rate_limit import limiter

        app.state.limiter = limiter
        app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    @app.exception_handler(InvalidURL)
    async def invalid_url_handler(request: Request, exc: InvalidURL):
        return _error_response(422, exc, "invalid_url")

    @app.exception_handler(NoPreferences)
    async def no_preferences_handler(request: Request, exc: NoPreferences):
        return _error_response(409, exc, "no_preferences")

    @app.exception_handler(ConcurrentRunConflict)
    async def run_conflict_handler(request: Request, exc: ConcurrentRunConflict):
        return _error_response(409, exc, "concurrent_run_conflict")

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.error("Unhandled exception", error=str(exc), exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error", "error_type": "internal"},
        )

    app.include_router(health.router, tags=["health"])
    app.include_router(sources.router, tags=["sources"])
    app.include_router(ingest.router, tags=["ingest"])
    app.include_router(tagging.router, tags=["tagging"])
    app.include_router(feed.router, tags=["feed"])
    app.include_router(preferences.router, tags=["preferences"])
    app.include_router(engagement.router, tags=["engagement"])
    app.include_router(status.router, tags=["status"])
    app.include_router(admin.router, tags=["admin"])
    app.include_router(ws_status.router, tags=["websocket"])

    @app.get("/", include_in_schema=False)
    async def root():
        return {"service": "dropfeed API", "version": VERSION, "docs": "/docs"}

    return app
