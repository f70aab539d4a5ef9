import threading
import time

import pytest

from petstore_api.app.storage import KeyedLock, LockTimeout


def test_same_key_is_serialised():
    locks = KeyedLock()
    active = []
    overlaps = []

    def worker():
        with locks.hold(("pets", "1")):
            active.append(1)
            if len(active) > 1:
                overlaps.append(True)
            time.sleep(0.01)
            active.pop()

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    assert overlaps == []
    assert len(locks) == 0


def test_different_keys_do_not_block():
    locks = KeyedLock(timeout=0.05)
    with locks.hold(("pets", "1")):
        with locks.hold(("pets", "2")):
            assert len(locks) == 2
    assert len(locks) == 0


def test_timeout_names_the_record():
    locks = KeyedLock(timeout=0.05)
    with locks.hold(("users", "7")):
        with pytest.raises(LockTimeout) as info:
            with locks.hold(("users", "7")):
                pass
    assert info.value.collection == "users"
    assert info.value.record_id == "7"
    assert len(locks) == 0


def test_per_call_timeout_overrides_default():
    locks = KeyedLock()
    with locks.hold("key"):
        with pytest.raises(LockTimeout):
            with locks.hold("key", timeout=0.01):
                pass


def test_lock_is_released_on_error():
    locks = KeyedLock(timeout=0.05)
    with pytest.raises(RuntimeError):
        with locks.hold("key"):
            raise RuntimeError("boom")
    with locks.hold("key"):
        pass
    assert len(locks) == 0
