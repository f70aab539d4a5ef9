"""Entry point for the Petstore API server.

Starts the FastAPI application under Uvicorn.  Host and port come from
``HOST`` and ``PORT`` (the legacy lower-case ``port`` variable is also
honoured); Redis is located through ``REDIS_URI``.  Uvicorn handles
SIGINT and SIGTERM and runs the application's shutdown hook, which
closes the Redis connection pool.

Usage:
    python run.py
"""
import asyncio
import logging

from uvicorn import Config, Server

from petstore_api.app.core.config import settings
from petstore_api.app.main import app


def build_config() -> Config:
    """Return the Uvicorn configuration for the Petstore app."""
    return Config(
        app=app,
        host=settings.host,
        port=settings.port,
        reload=False,
        log_level=settings.log_level.lower(),
        timeout_keep_alive=120,
    )


async def main() -> None:
    server = Server(build_config())
    logging.getLogger(__name__).info("Server is running on http://%s:%d", settings.host, settings.port)
    await server.serve()
    logging.getLogger(__name__).warning("Server is down")


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except (KeyboardInterrupt, SystemExit):
        pass
