"""
FastAPI application for querying regulatory sources over HTTP.

Middleware order, outermost first: request context, timeout, CORS. The
timeout therefore covers CORS handling and the route, while the request id
is bound before anything logs.
"""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from regiq import __version__
from regiq.api.dependencies import cleanup_dependencies
from regiq.api.middleware.request_context import RequestContextMiddleware
from regiq.api.middleware.timeout import TimeoutMiddleware
from regiq.api.routes import filter, health, sources
from regiq.config.settings import Settings, get_settings
from regiq.ingestion.schemas import SourceErrorType
from regiq.observability.tracing import setup_tracing, shutdown_tracing

logger = structlog.get_logger(__name__)

API_DESCRIPTION = """
Query regulatory agencies (FDA, USDA, FSIS, WHO) through one normalized schema.

Source failures never surface as HTTP errors: each query returns a
`SourceResult` with `success=false` and an `error` message instead.
Placeholder sources are listed but always return no data.

All endpoints except `/health` require an `X-API-KEY` header.
"""

OPENAPI_TAGS = [
    {"name": "health", "description": "Service health checks"},
    {"name": "sources", "description": "Source discovery, breaker state and direct queries"},
    {"name": "filter", "description": "Multi-source filter queries"},
]


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    owns_tracing = settings.tracing_enabled
    if owns_tracing:
        setup_tracing(settings.otel_service_name, settings.otel_exporter_otlp_endpoint)

    logger.info(
        "API starting",
        environment=settings.environment,
        auth_enabled=bool(settings.api_key_list),
        rate_limit_enabled=settings.rate_limit_enabled,
    )
    try:
        yield
    finally:
        await cleanup_dependencies()
        if owns_tracing:
            shutdown_tracing()
        logger.info("API stopped")


async def unhandled_error(request: Request, exc: Exception) -> JSONResponse:
    """Last-resort handler; the body mirrors a failed SourceResult."""
    logger.error("Unhandled exception", path=request.url.path, exc_info=exc)
    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "data": [],
            "error": "Internal server error",
            "error_type": SourceErrorType.UNKNOWN_ERROR.value,
        },
    )


def _install_middleware(app: FastAPI, settings: Settings) -> None:
    # add_middleware wraps, so the last one added runs first
    origins = [o.strip() for o in settings.cors_origins.split(",") if o.strip()]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )
    if settings.request_timeout_seconds > 0:
        app.add_middleware(TimeoutMiddleware, timeout_seconds=settings.request_timeout_seconds)
    app.add_middleware(RequestContextMiddleware)


def _install_rate_limiting(app: FastAPI) -> None:
    from slowapi import _rate_limit_exceeded_handler
    from slowapi.errors import RateLimitExceeded

    from regiq.api.rate_limit import limiter

    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


def create_app() -> FastAPI:
    settings = get_settings()

    app = FastAPI(
        title="RegIQ Ingestion API",
        description=API_DESCRIPTION,
        version=__version__,
        lifespan=lifespan,
        openapi_tags=OPENAPI_TAGS,
    )

    _install_middleware(app, settings)
    if settings.rate_limit_enabled:
        _install_rate_limiting(app)
    app.add_exception_handler(Exception, unhandled_error)

    app.include_router(health.router, tags=["health"])
    app.include_router(sources.router, tags=["sources"])
    app.include_router(filter.router, tags=["filter"])

    @app.get("/", include_in_schema=False)
    async def root():
        return {"service": "RegIQ Ingestion API", "version": __version__, "docs": "/docs"}

    return app
