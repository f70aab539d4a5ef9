"""
Per-record mutual exclusion for multi-step write sequences.

``KeyedLock`` hands out one ``threading.Lock`` per key and forgets it as
soon as nobody holds or waits for it, so the registry does not grow
with the number of records ever written.
"""

import threading
from contextlib import contextmanager
from typing import Dict, Hashable, Iterator, Optional

from .exceptions import LockTimeout


class _Entry:
    __slots__ = ("lock", "users")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.users = 0


class KeyedLock:
    """A registry of locks keyed by an arbitrary hashable value."""

    def __init__(self, timeout: Optional[float] = None) -> None:
        self.timeout = timeout
        self._guard = threading.Lock()
        self._entries: Dict[Hashable, _Entry] = {}

    def __len__(self) -> int:
        with self._guard:
            return len(self._entries)

    @contextmanager
    def hold(self, key: Hashable, timeout: Optional[float] = None) -> Iterator[None]:
        """Hold the lock for ``key`` for the duration of the ``with`` block.

        Raises ``LockTimeout`` if it cannot be acquired within ``timeout``
        seconds (default: the registry's timeout; ``None`` waits forever).
        """
        wait = self.timeout if timeout is None else timeout
        with self._guard:
            entry = self._entries.get(key)
            if entry is None:
                entry = self._entries[key] = _Entry()
            entry.users += 1
        acquired = entry.lock.acquire(timeout=-1 if wait is None else wait)
        try:
            if not acquired:
                collection, record_id = key if isinstance(key, tuple) and len(key) == 2 else (None, None)
                raise LockTimeout(
                    f"Timed out after {wait}s waiting for lock on {key!r}",
                    collection,
                    record_id,
                )
            yield
        finally:
            if acquired:
                entry.lock.release()
            with self._guard:
                entry.users -= 1
                if entry.users == 0:
                    del self._entries[key]
