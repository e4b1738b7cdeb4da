"""FastAPI application entry point.

Assembles configuration, logging, metrics, the artifact store, the job
registry, the dispatcher and the reaper, and wires them into the routers.
"""

import time
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from multiconvert import __version__
from multiconvert.api import codes, convert, fetch, health, metrics
from multiconvert.core.checks import check_tools
from multiconvert.core.config import (
    Config,
    ConfigService,
    MonitoringConfig,
    SecurityConfig,
    ToolsConfig,
)
from multiconvert.core.errors import APIError, global_exception_handler
from multiconvert.core.logging import (
    REQUEST_ID_HEADER,
    clear_request_id,
    configure_logging,
    set_request_id,
)
from multiconvert.core.metrics import MetricsCollector, initialize_metrics
from multiconvert.core.rate_limiter import configure_rate_limiter
from multiconvert.middleware.auth import configure_auth
from multiconvert.middleware.rate_limit import RateLimitMiddleware
from multiconvert.services.artifact_store import configure_artifact_store, get_artifact_store
from multiconvert.services.dispatcher import configure_dispatcher, get_dispatcher
from multiconvert.services.job_registry import configure_job_registry, get_job_registry
from multiconvert.services.qrcode_service import get_qrcode_service
from multiconvert.services.reaper import ArtifactReaper
from multiconvert.strategies import DEFAULT_TABLE, StrategyContext

logger = structlog.get_logger(__name__)


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Assigns a request id, binds it for logging and echoes it back.

    A client-supplied ``X-Request-ID`` is reused, otherwise one is generated.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = set_request_id(request.headers.get(REQUEST_ID_HEADER))
        try:
            response = await call_next(request)
        finally:
            clear_request_id()
        response.headers[REQUEST_ID_HEADER] = request_id
        return response


class MetricsMiddleware(BaseHTTPMiddleware):
    """Middleware to track HTTP request metrics.

    Records request count and duration for all endpoints,
    using FastAPI route templates to normalize paths.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        """Process request and record metrics."""
        start_time = time.time()
        response = await call_next(request)
        duration = time.time() - start_time

        # Fixed label for unmatched routes to prevent unbounded cardinality
        route = request.scope.get("route")
        endpoint = route.path if route else "/unmatched"

        MetricsCollector.record_request(
            method=request.method,
            endpoint=endpoint,
            status=response.status_code,
            duration=duration,
        )

        return response


# Global service instances
_config: Optional[Config] = None
_reaper: Optional[ArtifactReaper] = None


def get_config() -> Config:
    """Get the loaded application configuration."""
    if _config is None:
        raise RuntimeError("Configuration not loaded")
    return _config


def get_tools_config() -> ToolsConfig:
    return get_config().tools


def get_monitoring_config() -> MonitoringConfig:
    return get_config().monitoring


def get_reaper() -> ArtifactReaper:
    """Get the global reaper instance."""
    if _reaper is None:
        raise RuntimeError("Reaper not configured")
    return _reaper


async def _log_tool_availability(config: Config) -> None:
    results = await check_tools(config.tools)
    for name, result in results.items():
        if result.available:
            logger.info("tool_available", tool=name, version=result.version)
        else:
            logger.warning(
                "tool_unavailable",
                tool=name,
                error=result.error,
                hint="conversion kinds using this tool will fail",
            )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager for startup and shutdown."""
    global _config, _reaper

    # Load configuration
    config = ConfigService().load()
    _config = config

    # Configure logging
    configure_logging(config.logging.level, config.logging.format)

    logger.info("Application starting", version=__version__)

    # Initialize metrics with application version
    initialize_metrics(__version__)

    logger.info(
        "Configuration loaded",
        server_port=config.server.port,
        temp_dir=config.storage.temp_dir,
        cleanup_interval_minutes=config.storage.cleanup_interval_minutes,
    )

    # Configure authentication
    configure_auth(api_keys=config.security.api_keys)

    # Configure rate limiter
    configure_rate_limiter(
        submission_rpm=config.rate_limiting.submission_rpm,
        query_rpm=config.rate_limiting.query_rpm,
        burst_capacity=config.rate_limiting.burst_capacity,
    )

    # Configure artifact store
    store = configure_artifact_store(config.storage)
    logger.info("Artifact store configured", temp_dir=str(store.root))

    # Configure job registry
    registry = configure_job_registry()

    # Configure dispatcher
    context = StrategyContext(
        store=store,
        conversion=config.conversion,
        fetch=config.fetch,
        tools=config.tools,
        timeouts=config.timeouts,
    )
    dispatcher = configure_dispatcher(
        registry=registry,
        store=store,
        table=DEFAULT_TABLE,
        context=context,
    )
    logger.info("Dispatcher configured", kinds=DEFAULT_TABLE.kinds)

    await _log_tool_availability(config)

    # Start reaper
    _reaper = ArtifactReaper(store, interval_seconds=config.storage.retention_seconds)
    _reaper.start()

    logger.info("Application startup complete", version=__version__)

    yield

    # Shutdown
    logger.info("Application shutting down", in_flight=dispatcher.in_flight)

    await dispatcher.shutdown(grace_seconds=config.timeouts.shutdown_grace)
    await _reaper.stop(final_sweep=True)

    logger.info("Application shutdown complete")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Multi-Converter API",
        description="Asynchronous file conversion, video fetching and QR code generation",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # Add CORS middleware with configurable origins
    # Override via APP_SECURITY_CORS_ORIGINS env var
    security_config = SecurityConfig()
    app.add_middleware(
        CORSMiddleware,
        allow_origins=security_config.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=[REQUEST_ID_HEADER],
    )

    # Add metrics middleware (before rate limiting to capture all requests)
    app.add_middleware(MetricsMiddleware)

    # Add rate limiting middleware
    app.add_middleware(RateLimitMiddleware)

    # Outermost, so rate limited and error responses carry the request id
    app.add_middleware(RequestContextMiddleware)

    # Register global exception handlers
    app.add_exception_handler(Exception, global_exception_handler)
    app.add_exception_handler(APIError, global_exception_handler)
    app.add_exception_handler(StarletteHTTPException, global_exception_handler)
    app.add_exception_handler(RequestValidationError, global_exception_handler)

    # Override dependency injection for routers

    # Convert router dependencies
    app.dependency_overrides[convert.get_dispatcher] = get_dispatcher
    app.dependency_overrides[convert.get_job_registry] = get_job_registry
    app.dependency_overrides[convert.get_artifact_store] = get_artifact_store

    # Fetch router dependencies
    app.dependency_overrides[fetch.get_dispatcher] = get_dispatcher
    app.dependency_overrides[fetch.get_job_registry] = get_job_registry
    app.dependency_overrides[fetch.get_artifact_store] = get_artifact_store

    # Codes router dependencies
    app.dependency_overrides[codes.get_qrcode_service] = get_qrcode_service

    # Health and metrics router dependencies
    app.dependency_overrides[health.get_artifact_store] = get_artifact_store
    app.dependency_overrides[health.get_tools_config] = get_tools_config
    app.dependency_overrides[metrics.get_monitoring_config] = get_monitoring_config

    # Register routers
    app.include_router(health.router)
    app.include_router(convert.router)
    app.include_router(fetch.router)
    app.include_router(codes.router)
    app.include_router(metrics.router)

    @app.get("/", tags=["health"])
    async def root() -> dict:
        """Service name, version and endpoint index."""
        return {
            "name": "Multi-Converter API",
            "version": __version__,
            "endpoints": {
                "convert": "/jobs/convert",
                "fetch": "/jobs/fetch",
                "codes": "/codes",
                "health": "/health",
                "readiness": "/readiness",
                "metrics": "/metrics",
                "docs": "/docs",
            },
        }

    return app


# Create the application instance
app = create_app()


def run() -> None:
    """Console entry point: serve the application with uvicorn."""
    import uvicorn

    server = ConfigService().load().server
    uvicorn.run(app, host=server.host, port=server.port)


if __name__ == "__main__":
    run()
