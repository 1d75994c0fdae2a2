"""Keyed in-process locks.

Serializes read-check-write sections on one key (a stock record, a
fulfillment record) without a global lock. Entries are reference counted
and dropped once no thread holds or waits on them.
"""

import threading
from collections.abc import Hashable, Iterable
from contextlib import contextmanager


class KeyedLock:
    def __init__(self):
        self._guard = threading.Lock()
        self._locks: dict[Hashable, list] = {}  # key -> [lock, refcount]

    def _acquire_entry(self, key: Hashable) -> threading.Lock:
        with self._guard:
            entry = self._locks.get(key)
            if entry is None:
                entry = self._locks[key] = [threading.Lock(), 0]
            entry[1] += 1
            return entry[0]

    def _release_entry(self, key: Hashable) -> None:
        with self._guard:
            entry = self._locks[key]
            entry[1] -= 1
            if entry[1] == 0:
                del self._locks[key]

    @contextmanager
    def hold(self, key: Hashable):
        """Hold the lock for ``key`` for the duration of the block."""
        lock = self._acquire_entry(key)
        lock.acquire()
        try:
            yield
        finally:
            lock.release()
            self._release_entry(key)

    @contextmanager
    def hold_many(self, keys: Iterable[Hashable]):
        """Hold several keys at once, always acquired in sorted order."""
        ordered = sorted(set(keys), key=repr)
        acquired = []
        try:
            for key in ordered:
                lock = self._acquire_entry(key)
                lock.acquire()
                acquired.append((key, lock))
            yield
        finally:
            for key, lock in reversed(acquired):
                lock.release()
                self._release_entry(key)

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)
