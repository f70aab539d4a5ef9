"""
Main entrypoint for the Petstore API.

This module assembles the FastAPI application, sets up logging and
includes the versioned routers.  ``create_app`` builds and configures
the app, which is then instantiated at module import time as ``app``::

    uvicorn petstore_api.app.main:app --port 8080

The Redis connection pool is opened on startup and closed on shutdown.
"""

from fastapi import FastAPI

from .api.v2.router import router as v2_router
from .core.config import settings
from .core.kv import close_kv, init_kv
from .core.logging_config import setup_logging


def create_app() -> FastAPI:
    """Create and configure a FastAPI application.

    Returns
    -------
    FastAPI
        A configured FastAPI application instance.
    """
    # Logging first, so that imports and startup hooks below can log.
    setup_logging(settings.log_level, settings.log_file or None)

    app = FastAPI(title=settings.project_name, version=settings.api_version)
    app.include_router(v2_router, prefix="/v2")

    @app.on_event("startup")
    async def startup_event() -> None:
        # Refuse to start without a reachable Redis.
        init_kv()

    @app.on_event("shutdown")
    async def shutdown_event() -> None:
        close_kv()

    return app


app = create_app()
