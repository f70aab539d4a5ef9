"""
Exception hierarchy for the document store.

Every error raised by the storage layer derives from ``StoreError`` and
carries the collection and record identifier it concerns, so that log
lines and HTTP responses can name the record that needs attention.
Validation errors are raised before any command reaches Redis; backend
errors are raised after Redis refused or failed to answer.  Not-found
is not an exception: ``update`` and ``delete`` return ``False`` and
``find_one`` returns ``None``.
"""

from typing import Optional


class StoreError(Exception):
    """Base class for document store failures."""

    retryable = False

    def __init__(
        self,
        message: str,
        collection: Optional[str] = None,
        record_id: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.collection = collection
        self.record_id = record_id


class ValidationError(StoreError, ValueError):
    """A record or query is malformed.  Nothing was written."""


class CorruptRecordError(StoreError):
    """A primary record could not be deserialized."""


class BackendError(StoreError):
    """Redis returned an error reply or no reply at all.

    ``command`` names the step that failed, e.g. ``"SADD pets:status:sold"``.
    """

    def __init__(
        self,
        message: str,
        collection: Optional[str] = None,
        record_id: Optional[str] = None,
        command: Optional[str] = None,
    ) -> None:
        super().__init__(message, collection, record_id)
        self.command = command


class BackendTimeout(BackendError):
    """A Redis call exceeded its deadline."""

    retryable = True


class LockTimeout(BackendTimeout):
    """The per-record lock could not be acquired in time."""


class ConcurrentModification(BackendError):
    """The record kept changing under an optimistic transaction."""

    retryable = True


class ConsistencyError(BackendError):
    """A write failed halfway and its compensating rollback failed too.

    Indexes and primary data for the record may disagree until the
    collection is repaired with ``DocumentStore.rebuild_indexes``.
    """
