"""
Main FastAPI application entry point.

This module sets up the FastAPI app with middleware, routes, and lifecycle events.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Optional

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .api import hc_router, metrics_router, rta_router
from .config import Settings, get_settings
from .core.audit import AuditLog
from .core.auth_store import AuthStore
from .core.config_loader import ConfigLoader, ConfigReloadService
from .core.exceptions import RtaProxyException
from .core.forwarder import UpstreamForwarder
from .core.metrics import MetricsCollector
from .core.pipeline import ForwardingPipeline
from .middleware import AuditMiddleware


def configure_logging(log_level: str = "INFO") -> None:
    """
    Configure structured logging for the application.

    structlog events are handed to stdlib handlers; the console handler renders
    them for humans, the audit file handler (see core.audit) renders JSON.
    """
    console_handler = logging.StreamHandler()
    console_handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                structlog.dev.ConsoleRenderer(),
            ],
            foreign_pre_chain=[
                structlog.stdlib.add_log_level,
                structlog.processors.TimeStamper(fmt="iso", key="time"),
            ],
        )
    )
    logging.basicConfig(
        handlers=[console_handler],
        level=getattr(logging, log_level.upper()),
        force=True,
    )

    # Silence the verbose watchfiles logger
    logging.getLogger("watchfiles").setLevel(logging.WARNING)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso", key="time"),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def create_lifespan_handler(settings: Settings) -> Any:
    """Create a lifespan handler with access to settings."""
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """
        FastAPI lifespan context manager.

        Loads the allow list before serving, then runs the reload loop and the
        upstream client session until shutdown.
        """
        logger = structlog.get_logger(__name__)
        logger.info("Starting RTA proxy", version=app.version)

        metrics_collector = MetricsCollector()
        app.state.metrics = metrics_collector

        # Allow list: initial load happens before the first request
        auth_store = AuthStore()
        config_loader = ConfigLoader.from_settings(auth_store, settings.auth, metrics_collector)
        config_loader.load()
        app.state.auth_store = auth_store

        reload_service = ConfigReloadService(config_loader, settings.auth.refresh_interval_seconds)
        app.state.reload_service = reload_service
        await reload_service.start()

        audit_log = AuditLog.from_settings(settings.audit)
        app.state.audit_log = audit_log

        forwarder = UpstreamForwarder(settings.upstream)
        app.state.forwarder = forwarder
        await forwarder.start()

        app.state.pipeline = ForwardingPipeline(
            store=auth_store,
            forwarder=forwarder,
            audit=audit_log,
            routes=settings.upstream.routes,
            metrics=metrics_collector,
        )

        try:
            logger.info("RTA proxy started successfully")
            yield
        finally:
            logger.info("Shutting down RTA proxy")

            await reload_service.stop()
            await forwarder.stop()
            audit_log.close()

            logger.info("RTA proxy shutdown complete")

    return lifespan


async def rta_proxy_exception_handler(request: Request, exc: RtaProxyException) -> JSONResponse:
    """Handle RTA proxy exceptions."""
    logger = structlog.get_logger(__name__)
    log = logger.error if exc.status_code >= 500 else logger.warning
    log(
        "Request failed",
        error=str(exc),
        error_code=exc.error_code,
        status_code=exc.status_code,
        path=request.url.path,
        method=request.method,
        details=exc.details,
    )

    return JSONResponse(
        status_code=exc.status_code,
        content={"error": str(exc)},
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Render framework errors (404, 405) in the proxy's error format."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": str(exc.detail).lower()},
        headers=getattr(exc, "headers", None),
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected exceptions."""
    logger = structlog.get_logger(__name__)
    logger.error(
        "Unexpected exception occurred",
        error=str(exc),
        error_type=type(exc).__name__,
        path=request.url.path,
        method=request.method,
        exc_info=True,
    )

    return JSONResponse(
        status_code=500,
        content={"error": "internal server error"},
    )


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    This factory function ensures all configuration is applied
    whether running via uvicorn CLI or direct execution.
    """
    if settings is None:
        settings = get_settings()

    configure_logging(settings.log_level)

    app = FastAPI(
        title="RTA Proxy",
        description="Allow-listed RTA request forwarder",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=create_lifespan_handler(settings),
    )
    app.state.settings = settings

    app.add_middleware(
        AuditMiddleware,
        exempt_paths=settings.audit.exempt_paths,
        trust_forwarded_headers=settings.audit.trust_forwarded_headers,
    )

    app.add_exception_handler(RtaProxyException, rta_proxy_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)

    app.include_router(hc_router, tags=["health"])
    app.include_router(rta_router, tags=["rta"])
    app.include_router(metrics_router, tags=["metrics"])

    return app


# Create the app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "rta_proxy.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
        reload=settings.debug,
        # Relayed upstream responses carry their own Server and Date headers
        server_header=False,
        date_header=False,
    )
