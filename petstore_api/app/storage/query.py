"""
Equality queries answered from the index sets.

A query names one indexed field and a list of values, and matches
records whose field equals any of the values (for array indexes: any
element's sub-key).  Values are looked up in the order given and the
results are concatenated.  A record matching several values is
returned once per matching value unless deduplication is enabled, in
which case it keeps the position of its first match.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from .document_store import DocumentStore, backend_errors, ordered_ids
from .exceptions import ValidationError
from .indexes import index_key

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Query:
    field: str
    values: Sequence[str]


class QueryEvaluator:
    """Resolves ``Query`` objects against a ``DocumentStore``."""

    def __init__(self, store: DocumentStore, deduplicate: bool = False) -> None:
        self.store = store
        self.deduplicate = deduplicate

    def find(
        self,
        collection: str,
        field: str,
        values: Sequence[str],
        deduplicate: Optional[bool] = None,
    ) -> List[Dict[str, Any]]:
        return self.evaluate(collection, Query(field, list(values)), deduplicate)

    def evaluate(
        self,
        collection: str,
        query: Query,
        deduplicate: Optional[bool] = None,
    ) -> List[Dict[str, Any]]:
        schema = self.store.maintainer.schema(collection)
        if schema.index_for(query.field) is None:
            raise ValidationError(f"Field '{query.field}' is not indexed", collection)
        for value in query.values:
            if not isinstance(value, str):
                raise ValidationError("Query values must be strings", collection)
        if not query.values:
            return []
        dedup = self.deduplicate if deduplicate is None else deduplicate

        client = self.store.client
        keys = [index_key(collection, query.field, value) for value in query.values]
        with client.pipeline(transaction=False) as pipe:
            for key in keys:
                pipe.smembers(key)
            with backend_errors(collection, None, f"SMEMBERS {collection}:{query.field}:*"):
                member_sets = pipe.execute()

        ids: List[str] = []
        for key, members in zip(keys, member_sets):
            matched = ordered_ids(members)
            logger.debug("%s -> %d ids", key, len(matched))
            ids.extend(matched)
        if dedup:
            ids = list(dict.fromkeys(ids))

        # Load each distinct record once, then expand to the requested order.
        distinct = list(dict.fromkeys(ids))
        loaded = {ident: record for ident, record in self.store.load(collection, distinct)}
        results = [loaded[ident] for ident in ids if loaded.get(ident) is not None]
        logger.info(
            "Query %s.%s in %s matched %d records", collection, query.field, list(query.values), len(results)
        )
        return results
