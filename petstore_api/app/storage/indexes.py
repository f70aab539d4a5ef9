"""
Secondary indexes emulated with Redis sets.

Redis has no notion of documents or secondary indexes, so each indexed
field value gets its own set of record identifiers::

    pets:status:available   -> {"1", "7"}
    pets:tags:dog           -> {"1"}
    users:username:alice    -> {"3"}
    pets                    -> {"1", "7"}      (membership set)
    pets:1                  -> '{"id": 1, "status": "available", ...}'

An index is either a ``ScalarIndex`` (equality on a single string
field) or an ``ArrayIndex`` (one entry per element of an array of
objects, keyed by a sub-field such as a tag's ``name``).  The
``IndexMaintainer`` turns a pair of record generations into the index
keys that must lose or gain the record's identifier.  Insert, update and
delete all go through the same ``plan`` computation; add and remove are
the cases where one side is ``None``.

Incoming records are fully validated before a plan is returned, so a
malformed record never leaves partial index entries behind.  Stored
generations are read leniently, so a record that fails validation can
still be replaced or deleted.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from .exceptions import ValidationError

KEY_SEPARATOR = ":"


def normalise_id(value: Any, collection: Optional[str] = None) -> str:
    """Return the string form of a record identifier used in keys.

    Integers and non-empty strings are accepted.  Booleans are refused
    even though ``bool`` subclasses ``int``.  The separator character is
    refused because it would make primary keys ambiguous with index keys.
    """
    if isinstance(value, bool) or not isinstance(value, (int, str)):
        raise ValidationError("Record 'id' must be an integer or a string", collection)
    ident = str(value)
    if not ident:
        raise ValidationError("Record 'id' must not be empty", collection)
    if KEY_SEPARATOR in ident:
        raise ValidationError(
            f"Record 'id' must not contain {KEY_SEPARATOR!r}", collection, ident
        )
    return ident


def record_key(collection: str, ident: str) -> str:
    return f"{collection}{KEY_SEPARATOR}{ident}"


def index_key(collection: str, field_name: str, value: str) -> str:
    return KEY_SEPARATOR.join((collection, field_name, value))


def membership_key(collection: str) -> str:
    # The bare collection name never contains the separator, so it cannot
    # collide with a primary key or an index key.
    return collection


@dataclass(frozen=True)
class ScalarIndex:
    """Equality index over a string-valued field."""

    field: str
    required: bool = False

    def values(self, record: Mapping[str, Any], collection: str, ident: str) -> List[str]:
        if self.field not in record or record[self.field] is None:
            if self.required:
                raise ValidationError(
                    f"Record is missing required field '{self.field}'", collection, ident
                )
            return []
        value = record[self.field]
        if not isinstance(value, str):
            raise ValidationError(
                f"Field '{self.field}' must be a string", collection, ident
            )
        return [value]

    def present(self, record: Mapping[str, Any]) -> List[str]:
        value = record.get(self.field)
        return [value] if isinstance(value, str) else []


@dataclass(frozen=True)
class ArrayIndex:
    """Membership index over an array of objects keyed by ``member_key``."""

    field: str
    member_key: str = "name"
    required: bool = False

    def values(self, record: Mapping[str, Any], collection: str, ident: str) -> List[str]:
        items = record.get(self.field)
        if items is None:
            if self.required:
                raise ValidationError(
                    f"Record is missing required field '{self.field}'", collection, ident
                )
            return []
        if not isinstance(items, list):
            raise ValidationError(f"Field '{self.field}' must be an array", collection, ident)
        values: List[str] = []
        for position, item in enumerate(items):
            name = item.get(self.member_key) if isinstance(item, Mapping) else None
            if not isinstance(name, str):
                raise ValidationError(
                    f"Element {position} of '{self.field}' has no string '{self.member_key}'",
                    collection,
                    ident,
                )
            values.append(name)
        return values

    def present(self, record: Mapping[str, Any]) -> List[str]:
        items = record.get(self.field)
        if not isinstance(items, list):
            return []
        return [
            item[self.member_key]
            for item in items
            if isinstance(item, Mapping) and isinstance(item.get(self.member_key), str)
        ]


FieldIndex = Union[ScalarIndex, ArrayIndex]


@dataclass(frozen=True)
class CollectionSchema:
    """The indexed fields of one collection."""

    name: str
    indexes: Tuple[FieldIndex, ...] = ()

    def index_for(self, field_name: str) -> Optional[FieldIndex]:
        for index in self.indexes:
            if index.field == field_name:
                return index
        return None


PETS = CollectionSchema(
    "pets",
    (
        ScalarIndex("status", required=True),
        ArrayIndex("tags", member_key="name"),
    ),
)

USERS = CollectionSchema(
    "users",
    (ScalarIndex("username", required=True),),
)

DEFAULT_SCHEMAS: Dict[str, CollectionSchema] = {PETS.name: PETS, USERS.name: USERS}


@dataclass
class IndexPlan:
    """Index keys that must drop and gain one record identifier."""

    ident: str
    removals: List[str] = field(default_factory=list)
    additions: List[str] = field(default_factory=list)

    def __bool__(self) -> bool:
        return bool(self.removals or self.additions)


def _unique(keys: Iterable[str]) -> List[str]:
    seen = set()
    ordered = []
    for key in keys:
        if key not in seen:
            seen.add(key)
            ordered.append(key)
    return ordered


class IndexMaintainer:
    """Computes and queues index set changes for records."""

    def __init__(self, schemas: Optional[Mapping[str, CollectionSchema]] = None) -> None:
        self.schemas: Dict[str, CollectionSchema] = dict(schemas or DEFAULT_SCHEMAS)

    def schema(self, collection: str) -> CollectionSchema:
        try:
            return self.schemas[collection]
        except KeyError:
            raise ValidationError(f"Unknown collection '{collection}'", collection) from None

    def record_id(self, collection: str, record: Mapping[str, Any]) -> str:
        if not isinstance(record, Mapping):
            raise ValidationError("Record must be a JSON object", collection)
        if "id" not in record or record["id"] is None:
            raise ValidationError("Record is missing required field 'id'", collection)
        return normalise_id(record["id"], collection)

    def index_keys(self, collection: str, record: Mapping[str, Any]) -> List[str]:
        """Return every index key ``record`` belongs to, validating it first."""
        schema = self.schema(collection)
        ident = self.record_id(collection, record)
        keys = []
        for index in schema.indexes:
            for value in index.values(record, collection, ident):
                keys.append(index_key(collection, index.field, value))
        return _unique(keys)

    def stored_keys(self, collection: str, record: Mapping[str, Any]) -> List[str]:
        """Index keys of a stored generation, without validating it.

        A stored record may predate the current rules or have been
        skipped by ``rebuild_indexes``; whatever indexed values it does
        hold still map to index keys that must be cleaned up.
        """
        schema = self.schema(collection)
        keys = []
        for index in schema.indexes:
            for value in index.present(record):
                keys.append(index_key(collection, index.field, value))
        return _unique(keys)

    @staticmethod
    def _stored_id(record: Mapping[str, Any]) -> Optional[str]:
        try:
            return normalise_id(record.get("id"))
        except ValidationError:
            return None

    def plan(
        self,
        collection: str,
        old: Optional[Mapping[str, Any]],
        new: Optional[Mapping[str, Any]],
        ident: Optional[str] = None,
        validate: bool = True,
    ) -> IndexPlan:
        """Symmetric difference of the index memberships of two generations.

        Either side may be ``None``: ``plan(c, None, r)`` adds every entry
        of ``r`` and ``plan(c, r, None)`` removes them.

        ``old`` is the stored generation and is not validated.  ``new`` is
        validated unless ``validate`` is false, which is how a rollback
        restores a stored generation.  ``ident`` is the identifier the
        primary key was built from; without it the identifier is taken
        from the records, which must then agree.
        """
        if old is None and new is None:
            raise ValueError("plan() needs at least one record")
        old_keys = self.stored_keys(collection, old) if old is not None else []
        if new is None:
            new_keys = []
        elif validate:
            new_keys = self.index_keys(collection, new)
        else:
            new_keys = self.stored_keys(collection, new)
        if ident is None:
            ident = self.record_id(collection, new if new is not None else old)
            if old is not None and new is not None and self._stored_id(old) not in (None, ident):
                raise ValidationError("Cannot reindex across identifiers", collection, ident)
        elif new is not None and validate and self.record_id(collection, new) != ident:
            raise ValidationError("Cannot reindex across identifiers", collection, ident)
        new_set = set(new_keys)
        old_set = set(old_keys)
        return IndexPlan(
            ident=ident,
            removals=[key for key in old_keys if key not in new_set],
            additions=[key for key in new_keys if key not in old_set],
        )

    @staticmethod
    def apply(pipe: Any, plan: IndexPlan) -> List[str]:
        """Queue the plan's ``SREM``/``SADD`` commands on ``pipe``.

        Returns a description of each queued command in issue order, which
        the caller pairs with the pipeline replies.
        """
        issued = []
        for key in plan.removals:
            pipe.srem(key, plan.ident)
            issued.append(f"SREM {key}")
        for key in plan.additions:
            pipe.sadd(key, plan.ident)
            issued.append(f"SADD {key}")
        return issued

    def add_to_indexes(self, pipe: Any, collection: str, record: Mapping[str, Any]) -> List[str]:
        return self.apply(pipe, self.plan(collection, None, record))

    def remove_from_indexes(self, pipe: Any, collection: str, record: Mapping[str, Any]) -> List[str]:
        return self.apply(pipe, self.plan(collection, record, None))

    def reindex(
        self,
        pipe: Any,
        collection: str,
        old: Optional[Mapping[str, Any]],
        new: Optional[Mapping[str, Any]],
        ident: Optional[str] = None,
        validate: bool = True,
    ) -> List[str]:
        return self.apply(pipe, self.plan(collection, old, new, ident=ident, validate=validate))
