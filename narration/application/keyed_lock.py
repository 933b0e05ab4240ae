"""
Keyed Lock

One lock per entity id, so updates to the same job or item are serialized
while unrelated entities proceed in parallel.
"""

import threading
from contextlib import contextmanager
from typing import Dict, Iterator


class _Entry:
    __slots__ = ("lock", "users", "discarded")

    def __init__(self):
        self.lock = threading.RLock()
        # threads holding or waiting for the lock
        self.users = 0
        self.discarded = False


class KeyedLock:
    """
    Lazily created ``threading.RLock`` per key.

    A lock is only forgotten once no thread holds or waits for it, so every
    thread contending for a key always shares the same lock.
    """

    def __init__(self):
        self._locks: Dict[str, _Entry] = {}
        self._guard = threading.Lock()

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        with self._guard:
            entry = self._locks.get(key)
            if entry is None:
                entry = _Entry()
                self._locks[key] = entry
            entry.users += 1
        try:
            with entry.lock:
                yield
        finally:
            with self._guard:
                entry.users -= 1
                if entry.users == 0 and entry.discarded and self._locks.get(key) is entry:
                    del self._locks[key]

    def discard(self, key: str) -> None:
        """
        Forget the lock of a finished entity.

        A lock still in use is dropped when its last user releases it.
        """
        with self._guard:
            entry = self._locks.get(key)
            if entry is None:
                return
            if entry.users:
                entry.discarded = True
            else:
                del self._locks[key]

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)
