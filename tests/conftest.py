import fnmatch
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

import pytest
from redis.exceptions import ResponseError, WatchError

from petstore_api.app.storage import DocumentStore, KeyedLock, QueryEvaluator

MUTATING = {"SET", "DEL", "SADD", "SREM"}
WRONGTYPE = "WRONGTYPE Operation against a key holding the wrong kind of value"


@dataclass
class Fault:
    """Make the next ``times`` matching commands fail with ``error``.

    ``ResponseError`` instances become error replies (inside pipelines,
    the other commands still apply, as in a Redis transaction).  Any
    other exception is raised before anything is applied, like a
    dropped connection or a socket timeout.
    """

    command: str
    key: Optional[str]
    error: Exception
    times: int = 1

    def matches(self, command: str, key: str) -> bool:
        return self.times > 0 and self.command == command and (self.key is None or self.key == key)


class FakeRedis:
    """In-memory stand-in for the parts of ``redis.Redis`` the store uses.

    Every executed command is appended to ``log`` as ``(COMMAND, key)``.
    """

    def __init__(self) -> None:
        self.strings: Dict[str, str] = {}
        self.sets: Dict[str, Set[str]] = {}
        self.versions: Dict[str, int] = {}
        self.log: List[Tuple[str, str]] = []
        self.faults: List[Fault] = []
        self.before_exec: Optional[Callable[["FakeRedis"], None]] = None
        self.guard = threading.RLock()

    # -- test helpers ---------------------------------------------------

    def fail(self, command: str, key: Optional[str] = None, error: Optional[Exception] = None, times: int = 1) -> None:
        self.faults.append(Fault(command, key, error or ResponseError(WRONGTYPE), times))

    def mutations(self) -> List[Tuple[str, str]]:
        return [entry for entry in self.log if entry[0] in MUTATING]

    def keys(self) -> Set[str]:
        return set(self.strings) | set(self.sets)

    # -- command execution ----------------------------------------------

    def _fault(self, command: str, key: str, transport: bool) -> Optional[Exception]:
        for fault in self.faults:
            if fault.matches(command, key) and isinstance(fault.error, ResponseError) != transport:
                fault.times -= 1
                return fault.error
        return None

    def _bump(self, key: str) -> None:
        self.versions[key] = self.versions.get(key, 0) + 1

    def run(self, command: str, key: str, *args: Any) -> Any:
        """Apply one command; returns the reply or a ``ResponseError`` instance."""
        with self.guard:
            self.log.append((command, key))
            error = self._fault(command, key, transport=False)
            if error is not None:
                return error
            if command == "GET":
                if key in self.sets:
                    return ResponseError(WRONGTYPE)
                return self.strings.get(key)
            if command == "SET":
                if key in self.sets:
                    return ResponseError(WRONGTYPE)
                self.strings[key] = args[0]
                self._bump(key)
                return True
            if command == "DEL":
                removed = int(self.strings.pop(key, None) is not None) + int(self.sets.pop(key, None) is not None)
                if removed:
                    self._bump(key)
                return removed
            if command in ("SADD", "SREM", "SMEMBERS") and key in self.strings:
                return ResponseError(WRONGTYPE)
            if command == "SADD":
                members = self.sets.setdefault(key, set())
                added = args[0] not in members
                members.add(args[0])
                self._bump(key)
                return int(added)
            if command == "SREM":
                members = self.sets.get(key, set())
                removed = args[0] in members
                members.discard(args[0])
                if not members:
                    self.sets.pop(key, None)
                self._bump(key)
                return int(removed)
            if command == "SMEMBERS":
                return set(self.sets.get(key, set()))
            raise AssertionError(f"unsupported command {command}")

    def _immediate(self, command: str, key: str, *args: Any) -> Any:
        error = self._fault(command, key, transport=True)
        if error is not None:
            raise error
        reply = self.run(command, key, *args)
        if isinstance(reply, Exception):
            raise reply
        return reply

    def get(self, key: str) -> Optional[str]:
        return self._immediate("GET", key)

    def set(self, key: str, value: str) -> bool:
        return self._immediate("SET", key, value)

    def delete(self, key: str) -> int:
        return self._immediate("DEL", key)

    def sadd(self, key: str, member: str) -> int:
        return self._immediate("SADD", key, member)

    def srem(self, key: str, member: str) -> int:
        return self._immediate("SREM", key, member)

    def smembers(self, key: str) -> Set[str]:
        return self._immediate("SMEMBERS", key)

    def scan_iter(self, match: str = "*"):
        with self.guard:
            found = sorted(key for key in self.keys() if fnmatch.fnmatchcase(key, match))
        return iter(found)

    def pipeline(self, transaction: bool = True) -> "FakePipeline":
        return FakePipeline(self, transaction)


class FakePipeline:
    """Queues commands and replays them on ``execute`` in issue order."""

    def __init__(self, redis: FakeRedis, transaction: bool) -> None:
        self.redis = redis
        self.transaction = transaction
        self.watching: Dict[str, int] = {}
        self.explicit_multi = False
        self.queue: List[Tuple[str, str, Tuple[Any, ...]]] = []

    def __enter__(self) -> "FakePipeline":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.reset()

    def reset(self) -> None:
        self.watching = {}
        self.explicit_multi = False
        self.queue = []

    def watch(self, *keys: str) -> None:
        for key in keys:
            self.redis.log.append(("WATCH", key))
            self.watching[key] = self.redis.versions.get(key, 0)

    def unwatch(self) -> None:
        self.watching = {}

    def multi(self) -> None:
        self.explicit_multi = True

    def _command(self, command: str, key: str, *args: Any) -> Any:
        if self.watching and not self.explicit_multi:
            return self.redis._immediate(command, key, *args)
        self.queue.append((command, key, args))
        return self

    def get(self, key: str) -> Any:
        return self._command("GET", key)

    def set(self, key: str, value: str) -> Any:
        return self._command("SET", key, value)

    def delete(self, key: str) -> Any:
        return self._command("DEL", key)

    def sadd(self, key: str, member: str) -> Any:
        return self._command("SADD", key, member)

    def srem(self, key: str, member: str) -> Any:
        return self._command("SREM", key, member)

    def smembers(self, key: str) -> Any:
        return self._command("SMEMBERS", key)

    def execute(self, raise_on_error: bool = True) -> List[Any]:
        queued, self.queue = self.queue, []
        if self.redis.before_exec is not None:
            hook, self.redis.before_exec = self.redis.before_exec, None
            hook(self.redis)
        with self.redis.guard:
            for command, key, _ in queued:
                error = self.redis._fault(command, key, transport=True)
                if error is not None:
                    raise error
            for key, version in self.watching.items():
                if self.redis.versions.get(key, 0) != version:
                    self.reset()
                    raise WatchError("Watched variable changed.")
            replies = [self.redis.run(command, key, *args) for command, key, args in queued]
        self.reset()
        if raise_on_error:
            for reply in replies:
                if isinstance(reply, Exception):
                    raise reply
        return replies


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def store(fake_redis: FakeRedis) -> DocumentStore:
    return DocumentStore(fake_redis, locks=KeyedLock(timeout=2.0), watch_retries=3)


@pytest.fixture
def evaluator(store: DocumentStore) -> QueryEvaluator:
    return QueryEvaluator(store)


@pytest.fixture
def api_client(fake_redis: FakeRedis):
    from fastapi.testclient import TestClient

    from petstore_api.app.core import kv
    from petstore_api.app.main import app

    kv.init_kv(client=fake_redis)
    try:
        yield TestClient(app)
    finally:
        kv.close_kv()
