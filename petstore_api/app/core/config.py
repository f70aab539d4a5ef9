"""
Simple configuration management.

The ``Settings`` dataclass reads configuration directly from
environment variables.  Defaults are provided for all fields and match
the historical deployment (Redis on ``127.0.0.1:6379``
with a 1.5 second timeout, HTTP on port 8080).  The legacy variable
names ``port`` and ``redisURI`` are still honoured so existing
container definitions keep working.
"""

import os
from dataclasses import dataclass


def _env(*names: str, default: str) -> str:
    """Return the first environment variable set among ``names``."""
    for name in names:
        value = os.getenv(name)
        if value is not None:
            return value
    return default


def _flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() in {"1", "true", "yes"}


@dataclass
class Settings:
    """Application settings loaded from environment variables."""

    project_name: str = os.getenv("PROJECT_NAME", "Petstore API")
    api_version: str = os.getenv("API_VERSION", "2.0.0")
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    log_file: str = os.getenv("LOG_FILE", "")

    host: str = os.getenv("HOST", "0.0.0.0")
    port: int = int(_env("PORT", "port", default="8080"))

    # Either a bare host name (``127.0.0.1``) combined with ``redis_port``
    # or a full ``redis://`` / ``rediss://`` URL.
    redis_uri: str = _env("REDIS_URI", "redisURI", default="127.0.0.1")
    redis_port: int = int(os.getenv("REDIS_PORT", "6379"))
    # Deadline for every Redis call, in seconds.
    redis_timeout: float = float(os.getenv("REDIS_TIMEOUT", "1.5"))

    # How long a write waits for the per-record lock, in seconds.
    lock_timeout: float = float(os.getenv("LOCK_TIMEOUT", "5.0"))
    # Attempts of an optimistic WATCH/MULTI/EXEC sequence before giving up.
    watch_retries: int = int(os.getenv("WATCH_RETRIES", "5"))
    # Whether findByStatus/findByTags collapse records matching several values.
    query_deduplicate: bool = _flag("QUERY_DEDUPLICATE")

    secret_key: str = os.getenv("SECRET_KEY", "change_me")
    access_token_expire_minutes: int = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", str(60 * 24)))
    admin_username: str = os.getenv("ADMIN_USERNAME", "admin")
    admin_password: str = os.getenv("ADMIN_PASSWORD", "admin")


# Instantiate settings once so other modules can import it without
# repeatedly reading environment variables.  Environment variables must
# be set before importing this module.
settings = Settings()
