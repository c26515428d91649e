import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import PlainTextResponse

from .core.config import ServerConfig
from .errors import RequestTimeoutError
from .routes import RouteTable, default_routes

logger = logging.getLogger(__name__)


def create_app(config: ServerConfig, routes: Optional[RouteTable] = None) -> FastAPI:
    """
    Build the test server application.

    Args:
        config: Server settings; used for the default routes when `routes` is None
        routes: Route table to install instead of the fixed defaults

    Returns:
        FastAPI application with the route table installed and frozen
    """
    table = routes if routes is not None else default_routes(config)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup
        logger.info(f"Static files served from {config.root}")
        for entry in table.entries():
            logger.info(f"  {entry.path} -> {entry.behavior.name}")
        logger.info(
            f"Timeout guard: {config.timeout_seconds}s, stall: {config.stall_seconds}s"
        )

        yield

        # Shutdown
        pending = sum(guard.pending for guard in table.guards.values())
        if pending:
            logger.info(f"Shutting down with {pending} abandoned handler(s) still cancelling")
        logger.info("Shutting down test server")

    # Generated docs would shadow static files named docs/redoc/openapi.json
    app = FastAPI(
        title="Fault-Injection Test Server",
        description="Static files plus forced 404 and timeout routes",
        version="1.0.0",
        lifespan=lifespan,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    app.state.config = config
    app.state.routes = table

    @app.exception_handler(RequestTimeoutError)
    async def request_timeout_handler(request: Request, exc: RequestTimeoutError):
        """Answer for a handler the timeout guard abandoned"""
        logger.warning(f"Request timed out: {request.method} {request.url.path} ({exc})")
        return PlainTextResponse(exc.message, status_code=exc.status_code)

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        logger.debug(f"Incoming request: {request.method} {request.url}")
        try:
            response = await call_next(request)
            logger.debug(f"Response status: {response.status_code}")
            return response
        except Exception as e:
            logger.error(f"Request failed: {request.method} {request.url.path}: {e}")
            raise

    table.install(app)
    return app
