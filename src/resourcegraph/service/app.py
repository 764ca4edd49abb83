"""
Service app factory for resourcegraph.

Creates a pre-configured FastAPI application with:
- CORS middleware
- Lifecycle hooks for store and cache handles
- Logging filter to suppress noisy ping/healthcheck logs
"""

from __future__ import annotations


import inspect
import logging
from contextlib import asynccontextmanager
from typing import Callable

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware


class HealthcheckLogFilter(logging.Filter):
    """Filter out noisy healthcheck and ping endpoint logs."""

    FILTERED_PATHS = ("/ping", "/health")

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        for path in self.FILTERED_PATHS:
            if f'{path} ' in message or f'{path}"' in message:
                return False
        return True


def _setup_logging_filter():
    """Add filter to uvicorn access logger to suppress healthcheck logs."""
    uvicorn_access = logging.getLogger("uvicorn.access")
    if not any(isinstance(f, HealthcheckLogFilter) for f in uvicorn_access.filters):
        uvicorn_access.addFilter(HealthcheckLogFilter())


async def _call_hook(hook: Callable) -> None:
    if inspect.iscoroutinefunction(hook):
        await hook()
    else:
        hook()


def create_service_app(
    service_name: str,
    *,
    on_startup: Callable | None = None,
    on_shutdown: Callable | None = None,
    version: str = "1.0.0",
) -> FastAPI:
    """
    Create a FastAPI app for a resourcegraph service.

    Args:
        service_name: Name of the service (used in title)
        on_startup: Startup hook (sync or async)
        on_shutdown: Shutdown hook (sync or async)
        version: API version shown in the OpenAPI schema

    Returns:
        Configured FastAPI application
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup
        _setup_logging_filter()
        if on_startup:
            await _call_hook(on_startup)

        yield

        # Shutdown
        if on_shutdown:
            await _call_hook(on_shutdown)

    app = FastAPI(
        title=f"{service_name.replace('_', ' ').title()} API",
        version=version,
        lifespan=lifespan,
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    return app
