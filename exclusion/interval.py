"""
Half-open intervals over any totally ordered domain.

An Interval covers [low, high): the lower bound is included, the upper bound
is not, so two intervals that merely touch (a.high == b.low) never overlap.
Unbounded sides are represented by the NEG_INF and POS_INF sentinels, which
compare below/above every other value, including values of foreign types
such as datetime.
"""

from dataclasses import dataclass
from datetime import datetime
from functools import total_ordering
from typing import Any

from .errors import InvalidIntervalError


@total_ordering
class _Unbounded:
    """Sentinel bound that sorts before (sign=-1) or after (sign=1) everything."""
    __slots__ = ['_sign']

    def __init__(self, sign: int):
        self._sign = sign

    def __eq__(self, other):
        return isinstance(other, _Unbounded) and other._sign == self._sign

    def __lt__(self, other):
        if isinstance(other, _Unbounded):
            return self._sign < other._sign
        return self._sign < 0

    def __gt__(self, other):
        if isinstance(other, _Unbounded):
            return self._sign > other._sign
        return self._sign > 0

    def __hash__(self):
        return hash(('_Unbounded', self._sign))

    def __repr__(self):
        return '-infinity' if self._sign < 0 else 'infinity'

    def __reduce__(self):
        return (_unbounded, (self._sign,))


def _unbounded(sign: int) -> _Unbounded:
    return NEG_INF if sign < 0 else POS_INF


NEG_INF = _Unbounded(-1)
POS_INF = _Unbounded(1)


def is_unbounded(value: Any) -> bool:
    return isinstance(value, _Unbounded)


def _orderable(value: Any) -> bool:
    # False for NaN, which compares unordered even with itself
    return value <= value


@dataclass(frozen=True, order=True)
class Interval:
    """
    Half-open interval [low, high).

    Passing None for a bound makes that side unbounded. Construction fails
    with InvalidIntervalError unless low <= high, which also rejects bounds
    that cannot be ordered such as NaN; low == high is the empty interval,
    which overlaps nothing. Intervals sort by (low, high).
    """
    low: Any
    high: Any

    def __post_init__(self):
        if self.low is None:
            object.__setattr__(self, 'low', NEG_INF)
        if self.high is None:
            object.__setattr__(self, 'high', POS_INF)
        if not (_orderable(self.low) and _orderable(self.high) and self.low <= self.high):
            raise InvalidIntervalError(self.low, self.high)

    @classmethod
    def point(cls, value: Any) -> 'Interval':
        """Zero-width interval at value."""
        return cls(value, value)

    @classmethod
    def from_datetimes(cls, start: datetime, end: datetime) -> 'Interval':
        """Build an interval from datetimes, normalising both bounds to UTC."""
        from .timezone_utils import to_utc_datetime
        low = start if start is None else to_utc_datetime(start)
        high = end if end is None else to_utc_datetime(end)
        return cls(low, high)

    @property
    def is_empty(self) -> bool:
        return self.low == self.high

    @property
    def is_bounded(self) -> bool:
        return not (is_unbounded(self.low) or is_unbounded(self.high))

    def overlaps(self, other: 'Interval') -> bool:
        """True if both intervals share at least one point."""
        if self.is_empty or other.is_empty:
            return False
        return self.low < other.high and other.low < self.high

    def contains(self, point: Any) -> bool:
        """True if low <= point < high."""
        return self.low <= point < self.high

    def matches(self, query: 'Interval') -> bool:
        """Overlap test used by queries: empty intervals only match themselves."""
        if self.is_empty or query.is_empty:
            return self.is_empty and query.is_empty and self == query
        return self.low < query.high and query.low < self.high

    def __str__(self):
        return f"[{self.low},{self.high})"
