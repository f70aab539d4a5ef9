"""
JSON documents stored in Redis with hand-maintained secondary indexes.

Each record lives as a JSON string under ``<collection>:<id>``.  Its
identifier is also kept in the collection's membership set and in one
index set per indexed field value (see ``indexes``).  Redis cannot
update several keys transactionally in the document sense, so every
write runs as follows:

1. take the per-record lock (in-process mutual exclusion);
2. ``WATCH`` the primary key and read the current generation;
3. queue the index delta, the membership change and the primary write
   inside ``MULTI``;
4. ``EXEC`` and check every reply in issue order.

``WatchError`` means another process changed the record between steps 2
and 4; the sequence is retried a bounded number of times.  An error
reply in step 4 means Redis applied part of the transaction.  The store
then runs a compensating transaction that puts the previous generation
back and re-raises the failure.  If the compensation fails too, the
record needs manual repair and ``ConsistencyError`` is raised.
"""

from __future__ import annotations

import json
import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Tuple

import redis

from .exceptions import (
    BackendError,
    BackendTimeout,
    ConcurrentModification,
    ConsistencyError,
    CorruptRecordError,
    ValidationError,
)
from .indexes import (
    KEY_SEPARATOR,
    IndexMaintainer,
    membership_key,
    normalise_id,
    record_key,
)
from .locking import KeyedLock

logger = logging.getLogger(__name__)

Record = Dict[str, Any]


def ordered_ids(ids: Iterable[Any]) -> List[str]:
    """Sort identifiers returned by ``SMEMBERS``: numbers numerically, then strings."""

    def sort_key(ident: str) -> Tuple[int, int, str]:
        digits = ident[1:] if ident.startswith("-") else ident
        if digits.isdecimal():
            return (0, int(ident), "")
        return (1, 0, ident)

    return sorted((_text(ident) for ident in ids), key=sort_key)


def _text(value: Any) -> Any:
    if isinstance(value, bytes):
        return value.decode("utf-8")
    return value


@contextmanager
def backend_errors(collection: str, record_id: Optional[str], command: str) -> Iterator[None]:
    """Translate redis-py exceptions into store exceptions."""
    try:
        yield
    except redis.exceptions.WatchError:
        raise
    except redis.exceptions.TimeoutError as exc:
        logger.error("%s on %s/%s timed out: %s", command, collection, record_id, exc)
        raise BackendTimeout(
            f"{command} timed out", collection, record_id, command
        ) from exc
    except redis.exceptions.RedisError as exc:
        logger.error("%s on %s/%s failed: %s", command, collection, record_id, exc)
        raise BackendError(
            f"{command} failed: {exc}", collection, record_id, command
        ) from exc


class DocumentStore:
    """Insert, update, delete and read JSON records kept in Redis."""

    def __init__(
        self,
        client: redis.Redis,
        maintainer: Optional[IndexMaintainer] = None,
        locks: Optional[KeyedLock] = None,
        watch_retries: int = 5,
    ) -> None:
        self.client = client
        self.maintainer = maintainer if maintainer is not None else IndexMaintainer()
        # KeyedLock defines __len__, so an empty registry is falsy.
        self.locks = locks if locks is not None else KeyedLock()
        self.watch_retries = max(1, watch_retries)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def insert(self, collection: str, record: Mapping[str, Any]) -> bool:
        """Store ``record``, replacing any record with the same id.

        Index entries of a replaced record that no longer apply are
        removed in the same transaction.
        """
        return self._write(collection, record, must_exist=False)

    def update(self, collection: str, record: Mapping[str, Any]) -> bool:
        """Replace an existing record wholesale.

        Returns ``False`` without writing anything if no record with
        ``record["id"]`` exists.
        """
        return self._write(collection, record, must_exist=True)

    def delete(self, collection: str, record_id: Any) -> bool:
        """Remove a record, its index entries and its membership.

        Returns ``False`` without issuing any mutating command if the
        record does not exist.
        """
        self.maintainer.schema(collection)
        ident = normalise_id(record_id, collection)
        key = record_key(collection, ident)
        with self.locks.hold((collection, ident)):
            for attempt in range(1, self.watch_retries + 1):
                with self.client.pipeline(transaction=True) as pipe:
                    try:
                        old = self._watch(pipe, collection, ident, key)
                        if old is None:
                            logger.warning("Delete of %s/%s: record not found", collection, ident)
                            return False
                        pipe.multi()
                        issued = self.maintainer.reindex(pipe, collection, old, None, ident=ident)
                        pipe.srem(membership_key(collection), ident)
                        issued.append(f"SREM {membership_key(collection)}")
                        pipe.delete(key)
                        issued.append(f"DEL {key}")
                        with backend_errors(collection, ident, "EXEC"):
                            replies = pipe.execute(raise_on_error=False)
                    except redis.exceptions.WatchError:
                        logger.info(
                            "Delete of %s/%s raced with another writer (attempt %d)",
                            collection, ident, attempt,
                        )
                        continue
                failure = self._first_failure(collection, ident, issued, replies)
                if failure is not None:
                    self._compensate(collection, ident, before=old, after=None, failure=failure)
                logger.info("Deleted %s/%s", collection, ident)
                return True
        raise ConcurrentModification(
            f"Gave up after {self.watch_retries} attempts", collection, ident, "EXEC"
        )

    def _write(self, collection: str, record: Mapping[str, Any], must_exist: bool) -> bool:
        # Validates the id, every required field and every tag up front.
        self.maintainer.index_keys(collection, record)
        ident = self.maintainer.record_id(collection, record)
        payload = self._encode(collection, ident, record)
        new = json.loads(payload)
        key = record_key(collection, ident)
        action = "Update" if must_exist else "Insert"
        with self.locks.hold((collection, ident)):
            for attempt in range(1, self.watch_retries + 1):
                with self.client.pipeline(transaction=True) as pipe:
                    try:
                        old = self._watch(pipe, collection, ident, key)
                        if old is None and must_exist:
                            logger.warning("%s of %s/%s: record not found", action, collection, ident)
                            return False
                        pipe.multi()
                        issued = self.maintainer.reindex(pipe, collection, old, new, ident=ident)
                        pipe.sadd(membership_key(collection), ident)
                        issued.append(f"SADD {membership_key(collection)}")
                        pipe.set(key, payload)
                        issued.append(f"SET {key}")
                        with backend_errors(collection, ident, "EXEC"):
                            replies = pipe.execute(raise_on_error=False)
                    except redis.exceptions.WatchError:
                        logger.info(
                            "%s of %s/%s raced with another writer (attempt %d)",
                            action, collection, ident, attempt,
                        )
                        continue
                failure = self._first_failure(collection, ident, issued, replies)
                if failure is not None:
                    self._compensate(collection, ident, before=old, after=new, failure=failure)
                logger.info("%s of %s/%s done", action, collection, ident)
                return True
        raise ConcurrentModification(
            f"Gave up after {self.watch_retries} attempts", collection, ident, "EXEC"
        )

    def _watch(self, pipe: Any, collection: str, ident: str, key: str) -> Optional[Record]:
        with backend_errors(collection, ident, f"GET {key}"):
            pipe.watch(key)
            raw = pipe.get(key)
        return self._decode(collection, ident, raw)

    def _first_failure(
        self,
        collection: str,
        ident: str,
        issued: Sequence[str],
        replies: Sequence[Any],
    ) -> Optional[BackendError]:
        """Return an error for the first failed reply, in issue order.

        Later replies have been drained already and are not looked at.
        """
        if len(replies) != len(issued):
            logger.error(
                "Expected %d replies for %s/%s, got %d",
                len(issued), collection, ident, len(replies),
            )
            return BackendError("Reply count mismatch", collection, ident, "EXEC")
        for step, (command, reply) in enumerate(zip(issued, replies), start=1):
            if isinstance(reply, Exception):
                logger.error(
                    "Step %d/%d (%s) failed for %s/%s: %s",
                    step, len(issued), command, collection, ident, reply,
                )
                return BackendError(f"{command} failed: {reply}", collection, ident, command)
        return None

    def _compensate(
        self,
        collection: str,
        ident: str,
        before: Optional[Record],
        after: Optional[Record],
        failure: BackendError,
    ) -> None:
        """Put the ``before`` generation back after a partially applied write.

        Always raises: the original failure if the rollback succeeded,
        ``ConsistencyError`` otherwise.
        """
        key = record_key(collection, ident)
        members = membership_key(collection)
        try:
            with self.client.pipeline(transaction=True) as pipe:
                issued = self.maintainer.reindex(
                    pipe, collection, after, before, ident=ident, validate=False
                )
                if before is None:
                    pipe.srem(members, ident)
                    issued.append(f"SREM {members}")
                    pipe.delete(key)
                    issued.append(f"DEL {key}")
                else:
                    pipe.sadd(members, ident)
                    issued.append(f"SADD {members}")
                    pipe.set(key, self._encode(collection, ident, before))
                    issued.append(f"SET {key}")
                with backend_errors(collection, ident, "EXEC rollback"):
                    replies = pipe.execute(raise_on_error=False)
        except BackendError as exc:
            rollback_failure: Optional[BackendError] = exc
        else:
            rollback_failure = self._first_failure(collection, ident, issued, replies)
        if rollback_failure is not None:
            logger.critical(
                "Rollback of %s/%s failed after %s; indexes need repair (%s)",
                collection, ident, failure.command, rollback_failure.command,
            )
            raise ConsistencyError(
                f"{failure} and rollback failed: {rollback_failure}",
                collection,
                ident,
                failure.command,
            ) from failure
        logger.warning("Rolled back %s/%s after %s failed", collection, ident, failure.command)
        raise failure

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def find_one(self, collection: str, record_id: Any) -> Optional[Record]:
        self.maintainer.schema(collection)
        ident = normalise_id(record_id, collection)
        key = record_key(collection, ident)
        with backend_errors(collection, ident, f"GET {key}"):
            raw = self.client.get(key)
        return self._decode(collection, ident, raw)

    def find_many(self, collection: str, record_ids: Iterable[Any]) -> List[Record]:
        """Load several records in one pipelined round trip, skipping misses."""
        return [record for _, record in self.load(collection, record_ids) if record is not None]

    def find_all(self, collection: str) -> List[Record]:
        self.maintainer.schema(collection)
        members = membership_key(collection)
        with backend_errors(collection, None, f"SMEMBERS {members}"):
            ids = self.client.smembers(members)
        return self.find_many(collection, ordered_ids(ids))

    def load(self, collection: str, record_ids: Iterable[Any]) -> List[Tuple[str, Optional[Record]]]:
        self.maintainer.schema(collection)
        idents = [normalise_id(_text(record_id), collection) for record_id in record_ids]
        if not idents:
            return []
        with self.client.pipeline(transaction=False) as pipe:
            for ident in idents:
                pipe.get(record_key(collection, ident))
            with backend_errors(collection, None, "GET (pipelined)"):
                replies = pipe.execute(raise_on_error=False)
        loaded = []
        for ident, raw in zip(idents, replies):
            if isinstance(raw, Exception):
                logger.error("GET %s failed: %s", record_key(collection, ident), raw)
                raise BackendError(
                    f"GET failed: {raw}", collection, ident, f"GET {record_key(collection, ident)}"
                )
            record = self._decode(collection, ident, raw)
            if record is None:
                logger.debug("Index entry %s/%s has no primary record", collection, ident)
            loaded.append((ident, record))
        return loaded

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def rebuild_indexes(self, collection: str) -> int:
        """Recompute every index set of ``collection`` from the primary records.

        Primary records missing from the membership set are picked up by
        a key scan; membership entries without a primary record are
        dropped.  Meant to be run while writes to the collection are
        quiesced.  Returns the number of records indexed.
        """
        schema = self.maintainer.schema(collection)
        indexed_fields = {index.field for index in schema.indexes}
        members = membership_key(collection)
        stale_indexes: List[str] = []
        primary_ids = set()
        with backend_errors(collection, None, f"SCAN {collection}:*"):
            for raw_key in self.client.scan_iter(match=f"{collection}{KEY_SEPARATOR}*"):
                parts = _text(raw_key).split(KEY_SEPARATOR)
                if len(parts) == 2:
                    primary_ids.add(parts[1])
                elif parts[1] in indexed_fields:
                    stale_indexes.append(_text(raw_key))
            member_ids = {_text(ident) for ident in self.client.smembers(members)}

        indexed = 0
        with self.client.pipeline(transaction=True) as pipe:
            issued = []
            for key in stale_indexes:
                pipe.delete(key)
                issued.append(f"DEL {key}")
            for ident, record in self.load(collection, ordered_ids(primary_ids | member_ids)):
                if record is None:
                    pipe.srem(members, ident)
                    issued.append(f"SREM {members}")
                    continue
                try:
                    plan = self.maintainer.plan(collection, None, record)
                except ValidationError as exc:
                    logger.warning("Skipping unindexable record %s/%s: %s", collection, ident, exc)
                    continue
                if plan.ident != ident:
                    logger.warning("Record under %s/%s carries id %s", collection, ident, plan.ident)
                    continue
                issued.extend(self.maintainer.apply(pipe, plan))
                pipe.sadd(members, ident)
                issued.append(f"SADD {members}")
                indexed += 1
            with backend_errors(collection, None, "EXEC rebuild"):
                replies = pipe.execute(raise_on_error=False)
        failure = self._first_failure(collection, "*", issued, replies)
        if failure is not None:
            raise failure
        logger.info(
            "Rebuilt indexes of %s: %d records, %d stale index sets dropped",
            collection, indexed, len(stale_indexes),
        )
        return indexed

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    @staticmethod
    def _encode(collection: str, ident: str, record: Mapping[str, Any]) -> str:
        try:
            return json.dumps(record, separators=(",", ":"), ensure_ascii=False)
        except (TypeError, ValueError) as exc:
            raise ValidationError(f"Record is not JSON serializable: {exc}", collection, ident) from exc

    @staticmethod
    def _decode(collection: str, ident: str, raw: Any) -> Optional[Record]:
        raw = _text(raw)
        if not isinstance(raw, str):
            return None
        try:
            record = json.loads(raw)
        except json.JSONDecodeError as exc:
            logger.error("Record %s/%s is corrupt: %s", collection, ident, exc)
            raise CorruptRecordError(f"Stored record is not valid JSON: {exc}", collection, ident) from exc
        if not isinstance(record, dict):
            logger.error("Record %s/%s is corrupt: not a JSON object", collection, ident)
            raise CorruptRecordError("Stored record is not a JSON object", collection, ident)
        return record
