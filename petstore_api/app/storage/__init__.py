"""
Document storage on top of Redis.

Redis offers strings and sets but no documents and no secondary
indexes.  This package emulates both: ``indexes`` derives index set
memberships from records, ``document_store`` keeps primary records,
index sets and membership sets consistent across writes, and ``query``
answers equality queries from the index sets.
"""

from .document_store import DocumentStore  # noqa: F401
from .exceptions import (  # noqa: F401
    BackendError,
    BackendTimeout,
    ConcurrentModification,
    ConsistencyError,
    CorruptRecordError,
    LockTimeout,
    StoreError,
    ValidationError,
)
from .indexes import DEFAULT_SCHEMAS, PETS, USERS, ArrayIndex, CollectionSchema, IndexMaintainer, ScalarIndex  # noqa: F401
from .locking import KeyedLock  # noqa: F401
from .query import Query, QueryEvaluator  # noqa: F401
