"""
The exclusion index: a set of (key, interval) entries in which no two entries
sharing a key may overlap.

Entries are partitioned by key, one augmented AVL tree per key. Every
mutation holds the key's write lock across its conflict check and its
modification, so the check and the write can never be split by another
mutation on the same key. Mutations on different keys run concurrently.
"""

import itertools
import threading
from typing import Any, Hashable, Iterable, Iterator, Optional, Union

from .entry import Entry
from .errors import ConflictError, NotFoundError
from .interval import Interval
from .interval_tree import IntervalNode, IntervalTree
from .locks import LockTable


IntervalLike = Union[Interval, tuple]

_ALL_KEYS = object()


def as_interval(value: IntervalLike) -> Interval:
    """Accept an Interval or a (low, high) pair."""
    if isinstance(value, Interval):
        return value
    low, high = value
    return Interval(low, high)


class OverlapQuery:
    """
    Lazy result of ExclusionIndex.overlapping().

    Nothing is read until iteration starts. Each iteration takes a fresh,
    consistent snapshot of the key, so the same object can be iterated again
    to re-run the query. Entries come out ascending by (low, id).
    """

    def __init__(self, index: 'ExclusionIndex', key: Hashable, interval: Interval,
                 skip_locked: bool = False, timeout: Optional[float] = None):
        self._index = index
        self.key = key
        self.interval = interval
        self.skip_locked = skip_locked
        self.timeout = timeout

    def __iter__(self) -> Iterator[Entry]:
        entries = self._index._read(
            self.key,
            lambda tree: list(tree.iter_matching(self.interval)),
            skip_locked=self.skip_locked,
            timeout=self.timeout,
        )
        return iter(entries)

    def ids(self) -> list[int]:
        return [entry.id for entry in self]

    def __repr__(self):
        return f"OverlapQuery(key={self.key!r}, interval={self.interval})"


class ExclusionIndex:
    """
    In-memory exclusion constraint over (key, interval) pairs.

    Equivalent to a table with EXCLUDE USING gist (key WITH =, interval WITH &&):
    insert() and update() refuse any interval that overlaps a live entry with
    the same key, and report the offending entries in a ConflictError.

    Args:
        lock_timeout: Default bound, in seconds, on waiting for a key lock.
            None waits indefinitely, 0 fails immediately when the key is busy.
            Every mutating call can override it with its own timeout.
    """

    def __init__(self, lock_timeout: Optional[float] = None):
        self.lock_timeout = lock_timeout
        self._trees: dict[Any, IntervalTree] = {}
        self._nodes: dict[int, IntervalNode] = {}
        self._registry = threading.Lock()
        self._clearing = threading.Lock()
        self._locks = LockTable()
        self._ids = itertools.count(1)

    # ==================== Internal Helpers ====================

    def _timeout(self, timeout: Optional[float]) -> Optional[float]:
        return self.lock_timeout if timeout is None else timeout

    def _node(self, entry_id: int) -> Optional[IntervalNode]:
        with self._registry:
            return self._nodes.get(entry_id)

    def _key_of(self, entry_id: int) -> Hashable:
        node = self._node(entry_id)
        if node is None:
            raise NotFoundError(entry_id)
        return node.entry.key

    def _tree(self, key: Hashable) -> Optional[IntervalTree]:
        with self._registry:
            return self._trees.get(key)

    def _read(self, key: Hashable, func, skip_locked: bool = False,
              timeout: Optional[float] = None):
        """Run func(tree) under the key's read lock; an unknown key reads as empty."""
        empty = IntervalTree()
        lock = self._locks.peek(key)
        if lock is None:
            return func(empty)
        if skip_locked:
            if not lock.try_acquire_read():
                return func(empty)
        else:
            lock.acquire_read(timeout)
        try:
            return func(self._tree(key) or empty)
        finally:
            lock.release_read()

    def _commit(self, key: Hashable, tree: IntervalTree, entry: Entry,
                old_node: Optional[IntervalNode] = None) -> None:
        # Caller holds the key's write lock
        if old_node is not None:
            tree.delete(old_node)
        node = tree.insert(entry)
        with self._registry:
            self._trees[key] = tree
            self._nodes[entry.id] = node

    # ==================== Mutations ====================

    def insert(self, key: Hashable, interval: IntervalLike, payload: Any = None,
               timeout: Optional[float] = None) -> int:
        """
        Add an entry and return its new id.

        Raises:
            InvalidIntervalError: interval has low > high
            ConflictError: a live entry with the same key overlaps interval
            LockTimeoutError: the key lock was not obtained within timeout
        """
        interval = as_interval(interval)
        with self._locks.get(key).writing(self._timeout(timeout)):
            tree = self._tree(key) or IntervalTree()
            conflicts = tuple(tree.iter_overlapping(interval))
            if conflicts:
                raise ConflictError(key, interval, conflicts)
            with self._registry:
                entry_id = next(self._ids)
            self._commit(key, tree, Entry(entry_id, key, interval, payload))
        return entry_id

    def remove(self, entry_id: int, timeout: Optional[float] = None) -> None:
        """Delete an entry. Removing an id that is not live raises NotFoundError."""
        key = self._key_of(entry_id)
        with self._locks.get(key).writing(self._timeout(timeout)):
            # Another caller may have removed it while we waited for the lock
            node = self._node(entry_id)
            if node is None:
                raise NotFoundError(entry_id)
            tree = self._tree(key)
            tree.delete(node)
            with self._registry:
                del self._nodes[entry_id]
                if not tree:
                    del self._trees[key]

    def update(self, entry_id: int, interval: IntervalLike,
               timeout: Optional[float] = None) -> None:
        """
        Move an entry to a new interval, keeping its id, key and payload.

        The entry never conflicts with itself. If the new interval overlaps
        any other entry with the same key, ConflictError is raised and the
        entry keeps its old interval.
        """
        interval = as_interval(interval)
        key = self._key_of(entry_id)
        with self._locks.get(key).writing(self._timeout(timeout)):
            node = self._node(entry_id)
            if node is None:
                raise NotFoundError(entry_id)
            tree = self._tree(key)
            conflicts = tuple(e for e in tree.iter_overlapping(interval) if e.id != entry_id)
            if conflicts:
                raise ConflictError(key, interval, conflicts)
            self._commit(key, tree, node.entry.with_interval(interval), old_node=node)

    def clear(self, timeout: Optional[float] = None) -> None:
        """
        Remove every entry.

        The write lock of every key is taken before anything is removed. If
        one of them cannot be obtained, the locks already held are released,
        LockTimeoutError propagates and no entry has been removed.
        """
        timeout = self._timeout(timeout)
        with self._clearing:
            held = []
            try:
                for key in self.keys():
                    lock = self._locks.get(key)
                    lock.acquire_write(timeout)
                    held.append((key, lock))
                with self._registry:
                    for key, _ in held:
                        tree = self._trees.pop(key, None)
                        if tree is not None:
                            for entry in tree:
                                del self._nodes[entry.id]
            finally:
                for _, lock in reversed(held):
                    lock.release_write()

    # ==================== Queries ====================

    def overlapping(self, key: Hashable, interval: IntervalLike, skip_locked: bool = False,
                    timeout: Optional[float] = None) -> OverlapQuery:
        """
        Entries with this key whose interval overlaps interval.

        An empty query interval only matches entries with the identical empty
        interval. With skip_locked=True a key that is being mutated yields
        nothing instead of waiting for the mutation to finish.
        """
        return OverlapQuery(self, key, as_interval(interval), skip_locked, timeout)

    def contains(self, key: Hashable, point: Any, timeout: Optional[float] = None) -> bool:
        """True if some entry with this key has low <= point < high."""
        return self._read(key, lambda tree: any(True for _ in tree.iter_containing(point)),
                          timeout=timeout)

    def conflicts(self, key: Hashable, interval: IntervalLike, exclude: Optional[int] = None,
                  timeout: Optional[float] = None) -> list[Entry]:
        """Entries that would make insert(key, interval) fail, without inserting."""
        interval = as_interval(interval)
        return self._read(
            key,
            lambda tree: [e for e in tree.iter_overlapping(interval) if e.id != exclude],
            timeout=timeout,
        )

    def get(self, entry_id: int) -> Entry:
        node = self._node(entry_id)
        if node is None:
            raise NotFoundError(entry_id)
        return node.entry

    def entries(self, key: Hashable = _ALL_KEYS, timeout: Optional[float] = None) -> list[Entry]:
        """
        Entries ascending by (low, id).

        Without a key argument every key is read in turn; each key is internally
        consistent but the keys are not read at one single instant.
        """
        if key is not _ALL_KEYS:
            return self._read(key, list, timeout=timeout)
        result = []
        for k in self.keys():
            result.extend(self._read(k, list, timeout=timeout))
        return result

    def keys(self) -> list:
        with self._registry:
            return list(self._trees)

    def __len__(self) -> int:
        with self._registry:
            return len(self._nodes)

    def __contains__(self, entry_id: int) -> bool:
        return self._node(entry_id) is not None

    def __repr__(self):
        return f"ExclusionIndex(entries={len(self)}, keys={len(self.keys())})"

    # ==================== Snapshot / Restore ====================

    def snapshot(self) -> list[Entry]:
        """All entries ordered by id; enough to rebuild the index with from_entries()."""
        return sorted(self.entries(), key=lambda e: e.id)

    @classmethod
    def from_entries(cls, entries: Iterable[Entry],
                     lock_timeout: Optional[float] = None) -> 'ExclusionIndex':
        """
        Rebuild an index from a snapshot, keeping the stored ids.

        Raises ConflictError if the entries violate the exclusion invariant and
        ValueError on duplicate ids.
        """
        index = cls(lock_timeout=lock_timeout)
        max_id = 0
        for entry in entries:
            if entry.id in index:
                raise ValueError(f"Duplicate entry id {entry.id} in snapshot")
            tree = index._tree(entry.key) or IntervalTree()
            conflicts = tuple(tree.iter_overlapping(entry.interval))
            if conflicts:
                raise ConflictError(entry.key, entry.interval, conflicts)
            index._locks.get(entry.key)
            index._commit(entry.key, tree, entry)
            max_id = max(max_id, entry.id)
        index._ids = itertools.count(max_id + 1)
        return index

    # ==================== Debug Tool ====================

    def verify_integrity(self) -> None:
        """Raises RuntimeError if any tree is malformed or two same-key entries overlap."""
        for key in self.keys():
            def _check(tree):
                tree.verify_integrity()
                previous = None
                for entry in tree:
                    if entry.interval.is_empty:
                        continue
                    if previous is not None and entry.interval.overlaps(previous.interval):
                        raise RuntimeError(f"Exclusion violation between {previous} and {entry}")
                    if previous is None or entry.interval.high > previous.interval.high:
                        previous = entry
            self._read(key, _check)
