"""
KeyedLockRegistry -- one in-process lock per entity id.

Every mutating service call on a rental (or a long-term contract) runs
under the lock for that id, so two threads in the same process never
interleave their read-modify-write of the same ledger.  Cross-process
writers are caught by the optimistic version column instead.
"""

import threading
from contextlib import contextmanager
from typing import Generator, Hashable


class KeyedLockRegistry:
    """Lazily created ``threading.Lock`` per key.

    Guarantees:
        - ``lock_for(k)`` returns the same lock object for equal keys.
        - Locks are never removed, so a holder cannot lose its lock to
          a concurrent re-creation.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[Hashable, threading.Lock] = {}

    def lock_for(self, key: Hashable) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._locks[key] = lock
            return lock

    @contextmanager
    def hold(self, key: Hashable) -> Generator[None, None, None]:
        """Hold the lock for ``key`` for the duration of the block."""
        lock = self.lock_for(key)
        with lock:
            yield

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


# Process-wide registry shared by the rental and long-term services.
default_registry = KeyedLockRegistry()
