"""
Mapping of storage exceptions to HTTP responses.

Validation problems are the client's fault (400).  A record that keeps
changing under an optimistic transaction yields 409.  Timeouts,
including waiting for a record lock, are worth retrying (503 with
``Retry-After``).  Other Redis failures are reported as a bad gateway
(502).  Corrupt data and failed rollbacks need an operator (500).
"""

import logging
from contextlib import contextmanager
from typing import Iterator

from fastapi import HTTPException, status

from petstore_api.app.storage import (
    BackendError,
    BackendTimeout,
    ConcurrentModification,
    ConsistencyError,
    StoreError,
    ValidationError,
)

logger = logging.getLogger(__name__)


def http_error(exc: StoreError) -> HTTPException:
    if isinstance(exc, ValidationError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    if isinstance(exc, ConcurrentModification):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    if isinstance(exc, BackendTimeout):
        return HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Storage backend timed out",
            headers={"Retry-After": "1"},
        )
    if isinstance(exc, ConsistencyError):
        return HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Storage left in an inconsistent state",
        )
    if isinstance(exc, BackendError):
        return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Storage backend failure")
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))


@contextmanager
def store_errors() -> Iterator[None]:
    """Re-raise any ``StoreError`` from the block as an ``HTTPException``."""
    try:
        yield
    except StoreError as exc:
        if not isinstance(exc, ValidationError):
            logger.error(
                "Request failed on %s/%s: %s", exc.collection, exc.record_id, exc
            )
        raise http_error(exc) from exc
