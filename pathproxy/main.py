"""
FastAPI Proxy Application Factory
=================================

Entry point for the path-based reverse proxy service.

Architecture:
    Clients → pathproxy (this service) → backend selected by exact request path
                                       → default backend otherwise

Routes:
    - HEALTH_CHECK_PATH : Health check served by the proxy itself
    - /{anything}       : Forwarded to the matched backend

Environment Variables:
    - PROXY_DEFAULT_HOST: Default backend URL (e.g., "http://backend:8000")
    - PROXY_ROUTES: JSON object of exact path -> backend URL
    - UPSTREAM_TIMEOUT_SECONDS / UPSTREAM_CONNECT_TIMEOUT_SECONDS
    - HEALTH_CHECK_PATH: default "/__proxy/health", empty to disable
    - LOG_LEVEL: Logging level (default: INFO)

Running the Service:
    Development:
        uvicorn pathproxy.main:create_app --factory --reload --port 8080

    Production:
        uvicorn pathproxy.main:create_app --factory --host 0.0.0.0 --port 8080 --workers 4
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import Optional

import httpx
import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from . import __version__
from .config import Settings, get_settings
from .models import ErrorResponse, HealthResponse
from .proxy.handler import ProxyRouter
from .proxy.routes import proxy_router

logger = logging.getLogger(__name__)


def setup_logging(log_level: str = "INFO") -> None:
    """
    Configure structured logging for the application.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format='{"timestamp": "%(asctime)s", "level": "%(levelname)s", "logger": "%(name)s", "message": "%(message)s", "module": "%(module)s", "function": "%(funcName)s"}',
        handlers=[logging.StreamHandler(sys.stdout)]
    )


def build_client(settings: Settings) -> httpx.AsyncClient:
    """Create the shared upstream transport"""
    timeout = httpx.Timeout(
        settings.UPSTREAM_TIMEOUT_SECONDS,
        connect=settings.UPSTREAM_CONNECT_TIMEOUT_SECONDS,
    )
    return httpx.AsyncClient(timeout=timeout, follow_redirects=False)


def create_app(
    settings: Optional[Settings] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> FastAPI:
    """
    Application factory function.

    The route table is built here, so invalid routing configuration fails
    before the server accepts any request.

    Args:
        settings: Settings to use (defaults to get_settings())
        client: Upstream transport. When omitted, one is created from the
                timeout settings and closed on shutdown.

    Returns:
        FastAPI: Configured application instance

    Raises:
        ProxyConfigurationError: If the default host or a route is invalid
    """
    settings = settings or get_settings()
    owns_client = client is None
    client = client or build_client(settings)
    proxy = ProxyRouter.from_settings(settings, client=client)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging(settings.LOG_LEVEL)

        logger.info(
            "Starting proxy service",
            extra={
                "default_target": str(proxy.default_target),
                "route_count": len(proxy.routes),
                "log_level": settings.LOG_LEVEL,
            }
        )

        yield

        logger.info("Shutting down proxy service")
        if owns_client:
            await client.aclose()
            logger.info("Closed upstream client")

    app = FastAPI(
        title="pathproxy",
        description="Reverse proxy routing requests to backends by exact path",
        version=__version__,
        lifespan=lifespan,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )

    app.state.settings = settings
    app.state.proxy = proxy

    if settings.HEALTH_CHECK_PATH:
        @app.get(settings.HEALTH_CHECK_PATH, response_model=HealthResponse, tags=["System"])
        async def health_check(request: Request) -> HealthResponse:
            """Health check with the active routing table"""
            router: ProxyRouter = request.app.state.proxy
            return HealthResponse(
                version=__version__,
                default_target=str(router.default_target),
                routes={path: str(route.target) for path, route in router.routes.items()},
            )

    # Catch-all: must be registered after every route served by the proxy itself
    app.include_router(proxy_router)

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """
        Global exception handler for unhandled errors.

        Logs the error and returns a standardized error response.
        """
        logger.error(
            f"Unhandled exception: {str(exc)}",
            extra={
                "request_path": request.url.path,
                "method": request.method,
                "exception_type": type(exc).__name__
            },
            exc_info=True
        )

        body = ErrorResponse(
            error="internal_server_error",
            message="An unexpected error occurred",
            detail=str(exc) if settings.LOG_LEVEL == "DEBUG" else None,
        )
        return JSONResponse(status_code=500, content=body.model_dump())

    return app


if __name__ == "__main__":
    """
    Direct execution entry point:
        python -m pathproxy.main
    """
    settings = get_settings()
    setup_logging(settings.LOG_LEVEL)

    uvicorn.run(
        create_app(settings),
        host=settings.PROXY_HOST,
        port=settings.PROXY_PORT,
        log_level=settings.LOG_LEVEL.lower()
    )
