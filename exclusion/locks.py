"""
Per-key reader/writer locks.

Mutations on a key hold its write lock for the whole check-then-modify
sequence, which is what keeps two concurrent inserts from both seeing
"no conflict". Readers share the read lock so they only ever observe a key
before or after a mutation, never halfway through one.

Timeouts follow the usual convention: None waits forever, 0 fails at once
(NOWAIT), a positive number bounds the wait in seconds.
"""

import threading
from contextlib import contextmanager
from typing import Any, Hashable, Iterator, Optional

from .errors import LockTimeoutError


class KeyLock:
    """
    Writer-preferring reader/writer lock for one partition key.

    Waiting writers block new readers so a steady stream of queries cannot
    starve a mutation.
    """

    def __init__(self, key: Hashable):
        self.key = key
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    @property
    def write_locked(self) -> bool:
        return self._writer

    def _wait(self, predicate, timeout: Optional[float]) -> bool:
        if timeout is None:
            self._cond.wait_for(predicate)
            return True
        if timeout <= 0:
            return predicate()
        return self._cond.wait_for(predicate, timeout)

    def acquire_write(self, timeout: Optional[float] = None) -> None:
        with self._cond:
            self._writers_waiting += 1
            try:
                acquired = self._wait(lambda: not self._writer and self._readers == 0, timeout)
            finally:
                self._writers_waiting -= 1
            if not acquired:
                # Readers held back by this writer may proceed again
                self._cond.notify_all()
                raise LockTimeoutError(self.key, timeout)
            self._writer = True

    def release_write(self) -> None:
        with self._cond:
            if not self._writer:
                raise RuntimeError(f"Write lock on key {self.key!r} is not held")
            self._writer = False
            self._cond.notify_all()

    def acquire_read(self, timeout: Optional[float] = None) -> None:
        with self._cond:
            if not self._wait(lambda: not self._writer and self._writers_waiting == 0, timeout):
                raise LockTimeoutError(self.key, timeout)
            self._readers += 1

    def try_acquire_read(self) -> bool:
        """Take the read lock only if no writer holds or waits for it (SKIP LOCKED)."""
        with self._cond:
            if self._writer or self._writers_waiting:
                return False
            self._readers += 1
            return True

    def release_read(self) -> None:
        with self._cond:
            if self._readers <= 0:
                raise RuntimeError(f"Read lock on key {self.key!r} is not held")
            self._readers -= 1
            if self._readers == 0:
                self._cond.notify_all()

    @contextmanager
    def writing(self, timeout: Optional[float] = None) -> Iterator[None]:
        self.acquire_write(timeout)
        try:
            yield
        finally:
            self.release_write()

    def __repr__(self):
        return (f"KeyLock(key={self.key!r}, readers={self._readers}, "
                f"writer={self._writer}, writers_waiting={self._writers_waiting})")


class LockTable:
    """Creates and hands out one KeyLock per key."""

    def __init__(self):
        self._locks: dict[Any, KeyLock] = {}
        self._mutex = threading.Lock()

    def get(self, key: Hashable) -> KeyLock:
        with self._mutex:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = KeyLock(key)
            return lock

    def peek(self, key: Hashable) -> Optional[KeyLock]:
        """Existing lock for key, or None if no writer ever touched it."""
        with self._mutex:
            return self._locks.get(key)