"""
Interval Exclusion

An embeddable exclusion constraint: a set of (key, interval) entries in
which no two entries with the same key overlap, the in-memory counterpart of
PostgreSQL's EXCLUDE USING gist (key WITH =, during WITH &&).

- Half-open intervals with unbounded ends (interval.py)
- Augmented AVL interval tree (interval_tree.py)
- Per-key reader/writer locks with timeouts (locks.py)
- The index itself (index.py)
- Snapshot storage (storage.py)
- Bookings from iCalendar files and feeds (ical.py)
- Configuration parsing (config.py)
"""

from .interval import Interval, NEG_INF, POS_INF
from .entry import Entry
from .errors import (
    ExclusionError,
    InvalidIntervalError,
    ConflictError,
    NotFoundError,
    LockTimeoutError,
)
from .index import ExclusionIndex, OverlapQuery
from .config import Config
from .storage import JsonSnapshotStorage, SnapshotBackend

__all__ = [
    'Interval',
    'NEG_INF',
    'POS_INF',
    'Entry',
    'ExclusionError',
    'InvalidIntervalError',
    'ConflictError',
    'NotFoundError',
    'LockTimeoutError',
    'ExclusionIndex',
    'OverlapQuery',
    'Config',
    'JsonSnapshotStorage',
    'SnapshotBackend',
]
