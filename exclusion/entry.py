"""
Entries stored in an ExclusionIndex.

An Entry is an immutable value: the index hands out the same objects it
stores because nothing about them can be changed in place. Changing an
interval goes through ExclusionIndex.update(), which swaps in a new Entry.
"""

from dataclasses import dataclass, replace
from datetime import datetime, date
from typing import Any, Hashable

from .interval import Interval, NEG_INF, POS_INF, is_unbounded


@dataclass(frozen=True)
class Entry:
    """
    A (id, key, interval, payload) tuple owned by an index.

    Attributes:
        id: Identifier assigned by the index on insert, never reused
        key: Partition value; entries with different keys never conflict
        interval: The half-open range this entry occupies
        payload: Caller data, never interpreted by the index
    """
    id: int
    key: Hashable
    interval: Interval
    payload: Any = None

    @property
    def low(self) -> Any:
        return self.interval.low

    @property
    def high(self) -> Any:
        return self.interval.high

    def with_interval(self, interval: Interval) -> 'Entry':
        return replace(self, interval=interval)

    def to_dict(self) -> dict:
        """Convert to a JSON-compatible dictionary. The payload must already be one."""
        return {
            "id": self.id,
            "key": _encode_value(self.key),
            "low": _encode_value(self.interval.low),
            "high": _encode_value(self.interval.high),
            "payload": self.payload,
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'Entry':
        return cls(
            id=int(data["id"]),
            key=_decode_value(data["key"]),
            interval=Interval(_decode_value(data["low"]), _decode_value(data["high"])),
            payload=data.get("payload"),
        )

    def __str__(self):
        return f"Entry(id={self.id}, key={self.key!r}, interval={self.interval})"


# Bounds and keys are tagged so they survive a JSON round trip with their type.

def _encode_value(value: Any) -> dict:
    if is_unbounded(value):
        return {"type": "-inf" if value == NEG_INF else "+inf"}
    if isinstance(value, bool):
        return {"type": "bool", "value": value}
    if isinstance(value, int):
        return {"type": "int", "value": value}
    if isinstance(value, float):
        return {"type": "float", "value": value}
    if isinstance(value, str):
        return {"type": "str", "value": value}
    # datetime is a subclass of date, so test it first
    if isinstance(value, datetime):
        return {"type": "datetime", "value": value.isoformat()}
    if isinstance(value, date):
        return {"type": "date", "value": value.isoformat()}
    if isinstance(value, tuple):
        return {"type": "tuple", "value": [_encode_value(v) for v in value]}
    raise TypeError(f"Cannot serialize value of type {type(value).__name__}: {value!r}")


def _decode_value(data: dict) -> Any:
    kind = data["type"]
    if kind == "-inf":
        return NEG_INF
    if kind == "+inf":
        return POS_INF
    if kind in ("bool", "int", "float", "str"):
        return data["value"]
    if kind == "datetime":
        return datetime.fromisoformat(data["value"])
    if kind == "date":
        return date.fromisoformat(data["value"])
    if kind == "tuple":
        return tuple(_decode_value(v) for v in data["value"])
    raise ValueError(f"Unknown value type in snapshot: {kind!r}")
