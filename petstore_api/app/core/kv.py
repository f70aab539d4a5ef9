"""
Redis connection management.

A single ``redis.ConnectionPool`` is created at application start
(``init_kv``) and torn down at shutdown (``close_kv``).  Every store
operation obtains its own client handle from the pool through
``get_client``; no connection object is shared between requests.  The
per-record lock registry, by contrast, is process-wide: all document
stores handed out by ``get_document_store`` share it so that two
requests writing the same record are serialised.

Tests install an in-memory client with ``init_kv(client=...)``.
"""

import logging
from typing import Any, Optional

import redis

from .config import settings
from ..storage import DocumentStore, IndexMaintainer, KeyedLock, QueryEvaluator

logger = logging.getLogger(__name__)

_pool: Optional[redis.ConnectionPool] = None
_client: Optional[Any] = None
_maintainer = IndexMaintainer()
_locks = KeyedLock(timeout=settings.lock_timeout)


def get_redis_url() -> str:
    """Return the Redis URL built from ``settings.redis_uri``.

    A value containing ``://`` is used as is; otherwise it is taken as a
    host name and combined with ``settings.redis_port``.
    """
    uri = settings.redis_uri
    if "://" in uri:
        return uri
    return f"redis://{uri}:{settings.redis_port}/0"


def init_kv(client: Optional[Any] = None) -> None:
    """Create the connection pool and check that Redis answers.

    Passing ``client`` installs that object instead of a pool; every
    subsequent ``get_client`` call returns it.
    """
    global _pool, _client
    if client is not None:
        _client = client
        return
    if _client is not None or _pool is not None:
        return
    url = get_redis_url()
    _pool = redis.ConnectionPool.from_url(
        url,
        decode_responses=True,
        socket_timeout=settings.redis_timeout,
        socket_connect_timeout=settings.redis_timeout,
    )
    try:
        redis.Redis(connection_pool=_pool).ping()
    except redis.exceptions.RedisError as exc:
        logger.error("Connection error to %s: %s", url, exc)
        _pool.disconnect()
        _pool = None
        raise
    logger.info("Connected to Redis at %s", url)


def close_kv() -> None:
    """Disconnect the pool (or drop the installed client)."""
    global _pool, _client
    if _pool is not None:
        _pool.disconnect()
        logger.info("Redis connection pool closed")
    _pool = None
    _client = None


def get_client() -> Any:
    """Return a client handle for one operation."""
    if _client is not None:
        return _client
    if _pool is None:
        init_kv()
    return redis.Redis(connection_pool=_pool)


def get_document_store() -> DocumentStore:
    return DocumentStore(
        get_client(),
        maintainer=_maintainer,
        locks=_locks,
        watch_retries=settings.watch_retries,
    )


def get_query_evaluator() -> QueryEvaluator:
    return QueryEvaluator(get_document_store(), deduplicate=settings.query_deduplicate)
