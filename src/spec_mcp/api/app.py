"""FastAPI application factory and lifespan management for the dashboard API."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from spec_mcp.api.envelope import error_response
from spec_mcp.api.routes import health, search, specs, ws
from spec_mcp.config import Config
from spec_mcp.errors import SpecError, ValidationError
from spec_mcp.notifications import NotificationHub
from spec_mcp.search import create_search_service
from spec_mcp.specs import SpecService
from spec_mcp.store import open_store

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Open the store and start the notification hub; close both on shutdown.

    Args:
        app: FastAPI application instance.

    Yields:
        None during application runtime.
    """
    config: Config = app.state.config
    store = open_store(config)
    hub = NotificationHub(
        max_connections=config.ws_max_connections,
        heartbeat_interval=config.heartbeat_interval,
        heartbeat_timeout=config.heartbeat_timeout,
    )

    app.state.store = store
    app.state.hub = hub
    app.state.search = create_search_service(store)
    app.state.specs = SpecService(
        store,
        notifier=hub,
        enforce_version=config.enforce_version,
        max_body_size=config.max_body_size,
    )

    hub.start()
    logger.info("Dashboard API ready (%s storage)", config.storage)
    try:
        yield
    finally:
        await hub.stop()
        store.close()
        logger.info("Dashboard API stopped")


async def _spec_error_handler(request: Request, exc: SpecError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    field = exc.field if isinstance(exc, ValidationError) else None
    return error_response(exc.status_code, str(exc), field)


async def _request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    first = exc.errors()[0]
    field = ".".join(
        str(part) for part in first["loc"] if part not in ("body", "query", "path")
    )
    message = f"{field}: {first['msg']}" if field else first["msg"]
    logger.warning("Rejected %s %s: %s", request.method, request.url.path, message)
    return error_response(400, message, field or None)


async def _unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return error_response(500, "Internal server error")


def create_app(config: Config | None = None) -> FastAPI:
    """Factory function to create the configured dashboard API.

    Args:
        config: Configuration instance. Loaded from the environment if None.

    Returns:
        Configured FastAPI application.
    """
    if config is None:
        config = Config.from_env()

    app = FastAPI(title="specmcp dashboard API", version="0.1.0", lifespan=lifespan)
    app.state.config = config

    app.add_exception_handler(SpecError, _spec_error_handler)
    app.add_exception_handler(RequestValidationError, _request_validation_handler)
    app.add_exception_handler(Exception, _unexpected_error_handler)

    app.include_router(health.router)
    app.include_router(specs.router)
    app.include_router(search.router)
    app.include_router(ws.router)

    return app
