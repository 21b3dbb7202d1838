"""
FastAPI application factory.
"""

import time
import uuid
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from grantsync import __version__
from grantsync.api.dependencies import cleanup_dependencies
from grantsync.api.errors import register_error_handlers
from grantsync.api.middleware.timeout import TimeoutMiddleware
from grantsync.api.routes import cron, health, matching, programs, sync_status
from grantsync.config.settings import get_settings
from grantsync.observability.logging import bind_context, clear_context
from grantsync.observability.tracing import configure_tracing, get_tracer, is_tracing_enabled

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    logger.info("grantsync API starting up")

    if configure_tracing(get_settings()):
        logger.info("Tracing enabled")

    yield

    logger.info("grantsync API shutting down")
    await cleanup_dependencies()


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application
    """
    settings = get_settings()

    openapi_tags = [
        {"name": "health", "description": "Service health checks"},
        {"name": "cron", "description": "Scheduler-triggered catalog sync"},
        {"name": "matching", "description": "Customer/program matching"},
        {"name": "programs", "description": "Program catalog"},
        {"name": "sync", "description": "Per-registry sync status"},
    ]

    app = FastAPI(
        title="grantsync API",
        description="""
Government support program catalog sync and customer matching.

## Authentication

- `GET /cron/sync-programs` requires `Authorization: Bearer <CRON_SECRET>`.
- Matching, catalog and status routes require the `X-API-KEY` header when
  `API_KEYS` is configured.
        """,
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
        openapi_tags=openapi_tags,
    )

    # Add CORS middleware (origins from CORS_ORIGINS env var, comma-separated)
    cors_origins = [o.strip() for o in settings.cors_origins.split(",") if o.strip()]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )

    # Request timeout middleware (added before logging middleware so the
    # timeout wraps the entire request lifecycle)
    if settings.request_timeout_seconds > 0:
        app.add_middleware(
            TimeoutMiddleware,
            timeout_seconds=settings.request_timeout_seconds,
        )

    # Request logging, correlation ID, and tracing middleware
    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        # Correlation ID: use incoming header or generate a new one
        request_id = (
            request.headers.get("X-Request-ID")
            or request.headers.get("X-Correlation-ID")
            or str(uuid.uuid4())
        )

        bind_context(request_id=request_id)

        start_time = time.perf_counter()

        try:
            if is_tracing_enabled():
                tracer = get_tracer("grantsync.api")
                with tracer.start_as_current_span(
                    f"{request.method} {request.url.path}",
                    attributes={
                        "http.method": request.method,
                        "http.url": str(request.url),
                        "http.route": request.url.path,
                        "http.request_id": request_id,
                    },
                ) as span:
                    response = await call_next(request)
                    duration = time.perf_counter() - start_time
                    span.set_attribute("http.status_code", response.status_code)
                    span.set_attribute("http.duration_ms", round(duration * 1000, 2))
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
            clear_context()

    # Rate limiting (opt-in via RATE_LIMIT_ENABLED=true)
    if settings.rate_limit_enabled:
        from slowapi import _rate_limit_exceeded_handler
        from slowapi.errors import RateLimitExceeded
        from slowapi.middleware import SlowAPIMiddleware

        from grantsync.api.rate_limit import limiter

        app.state.limiter = limiter
        # Registers the name only; the route keeps the undecorated function
        limiter.exempt(cron.sync_programs)
        app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
        app.add_middleware(SlowAPIMiddleware)

    register_error_handlers(app)

    # Include routers
    app.include_router(health.router, tags=["health"])
    app.include_router(cron.router, tags=["cron"])
    app.include_router(matching.router, tags=["matching"])
    app.include_router(programs.router, tags=["programs"])
    app.include_router(sync_status.router, tags=["sync"])

    # Root endpoint
    @app.get("/", include_in_schema=False)
    async def root():
        return {
            "service": "grantsync API",
            "version": __version__,
            "docs": "/docs",
        }

    return app
