"""Behavioural tests for ExclusionIndex: exclusion rules, updates, queries, snapshots."""

import random
from datetime import datetime

import pytest
import pytz

from exclusion import (
    ConflictError,
    Entry,
    ExclusionIndex,
    Interval,
    InvalidIntervalError,
    LockTimeoutError,
    NotFoundError,
)


def jan(day):
    return datetime(2024, 1, day, tzinfo=pytz.UTC)


@pytest.fixture
def index():
    return ExclusionIndex()


def test_adjacent_intervals_are_accepted(index):
    index.insert("room", Interval(0, 10))
    index.insert("room", Interval(10, 20))
    assert len(index) == 2


def test_overlap_with_same_key_is_rejected(index):
    first = index.insert("room", Interval(0, 10))
    with pytest.raises(ConflictError) as excinfo:
        index.insert("room", Interval(9, 20))
    assert excinfo.value.conflicting_ids == [first]
    assert excinfo.value.key == "room"
    assert excinfo.value.interval == Interval(9, 20)
    assert len(index) == 1


def test_conflict_reports_every_overlapping_entry(index):
    a = index.insert("room", (0, 10))
    b = index.insert("room", (10, 20))
    index.insert("room", (30, 40))
    with pytest.raises(ConflictError) as excinfo:
        index.insert("room", (5, 15))
    assert excinfo.value.conflicting_ids == [a, b]


def test_conflict_message_names_key_and_intervals(index):
    index.insert(1, (0, 10))
    with pytest.raises(ConflictError, match=r"Key \(key, interval\)=\(1, \[5,15\)\) conflicts"):
        index.insert(1, (5, 15))


def test_different_keys_never_conflict(index):
    index.insert("A", (0, 10))
    index.insert("B", (0, 10))
    assert sorted(index.keys()) == ["A", "B"]


def test_zero_width_intervals_are_always_insertable(index):
    index.insert("room", (0, 10))
    empty_id = index.insert("room", (5, 5))
    index.insert("room", (5, 5))
    # the empty entry does not block genuine intervals either
    index.insert("room", (10, 20))
    assert empty_id in index
    assert len(index) == 4


def test_invalid_interval_is_rejected_before_anything_happens(index):
    with pytest.raises(InvalidIntervalError):
        index.insert("room", (10, 0))
    assert len(index) == 0
    assert index.keys() == []


def test_ids_are_unique_and_not_reused(index):
    a = index.insert("room", (0, 1))
    index.remove(a)
    b = index.insert("room", (0, 1))
    assert b != a


def test_remove_twice_raises_not_found(index):
    entry_id = index.insert("room", (0, 10))
    index.remove(entry_id)
    with pytest.raises(NotFoundError):
        index.remove(entry_id)
    assert index.keys() == []


def test_remove_unknown_id(index):
    with pytest.raises(LookupError):
        index.remove(42)


def test_update_moves_entry_and_ignores_itself(index):
    entry_id = index.insert("room", (0, 10), payload={"who": "alice"})
    index.update(entry_id, (5, 15))
    entry = index.get(entry_id)
    assert entry.interval == Interval(5, 15)
    assert entry.payload == {"who": "alice"}
    index.verify_integrity()


def test_failed_update_keeps_original_interval(index):
    a = index.insert("room", (0, 10))
    b = index.insert("room", (20, 30))
    with pytest.raises(ConflictError) as excinfo:
        index.update(a, (5, 25))
    assert excinfo.value.conflicting_ids == [b]
    assert [e.id for e in index.overlapping("room", (0, 10))] == [a]
    assert index.get(a).interval == Interval(0, 10)


def test_update_unknown_id(index):
    with pytest.raises(NotFoundError):
        index.update(7, (0, 1))


def test_overlapping_is_ordered_and_restartable(index):
    c = index.insert("room", (20, 30))
    a = index.insert("room", (0, 10))
    b = index.insert("room", (10, 20))
    query = index.overlapping("room", (5, 25))
    assert query.ids() == [a, b, c]
    index.remove(b)
    # iterating again re-runs the query against the current state
    assert [e.id for e in query] == [a, c]


def test_overlapping_is_lazy(index):
    query = index.overlapping("room", (0, 100))
    entry_id = index.insert("room", (50, 60))
    assert query.ids() == [entry_id]


def test_overlapping_unknown_key_is_empty(index):
    assert list(index.overlapping("nowhere", (0, 10))) == []


def test_overlapping_with_empty_query(index):
    index.insert("room", (0, 10))
    empty_id = index.insert("room", (5, 5))
    assert index.overlapping("room", (5, 5)).ids() == [empty_id]
    assert index.overlapping("room", (6, 6)).ids() == []
    assert empty_id not in index.overlapping("room", (0, 10)).ids()


def test_contains_point(index):
    index.insert("room", (0, 10))
    index.insert("room", (15, 15))
    assert index.contains("room", 0)
    assert index.contains("room", 9.5)
    assert not index.contains("room", 10)
    assert not index.contains("room", 15)
    assert not index.contains("other", 5)


def test_unbounded_entry_blocks_everything_after_it(index):
    index.insert("room", (100, None))
    with pytest.raises(ConflictError):
        index.insert("room", (10 ** 9, 10 ** 9 + 1))
    index.insert("room", (None, 100))
    with pytest.raises(ConflictError):
        index.insert("room", (99, 101))


def test_conflicts_is_a_dry_run(index):
    a = index.insert("room", (0, 10))
    assert [e.id for e in index.conflicts("room", (5, 6))] == [a]
    assert index.conflicts("room", (5, 6), exclude=a) == []
    assert len(index) == 1


def test_clear(index):
    index.insert("A", (0, 1))
    index.insert("B", (0, 1))
    index.clear()
    assert len(index) == 0
    assert index.keys() == []
    index.insert("A", (0, 1))


def test_clear_that_times_out_removes_nothing(index):
    a = index.insert("A", (0, 1))
    b = index.insert("B", (0, 1))
    with index._locks.get("B").writing():
        with pytest.raises(LockTimeoutError):
            index.clear(timeout=0)
    assert sorted(index.keys()) == ["A", "B"]
    assert a in index and b in index
    # the lock on "A" was handed back
    index.insert("A", (5, 6), timeout=0)
    index.clear(timeout=0)
    assert len(index) == 0


def test_none_is_an_ordinary_key(index):
    index.insert(None, (0, 10))
    index.insert("room", (0, 10))
    assert [e.key for e in index.entries(None)] == [None]
    assert len(index.entries()) == 2
    with pytest.raises(ConflictError):
        index.insert(None, (5, 6))


def test_nan_bounds_never_reach_the_index(index):
    nan = float("nan")
    with pytest.raises(InvalidIntervalError):
        index.insert("k", (0, nan))
    with pytest.raises(InvalidIntervalError):
        index.insert("k", (nan, 5))
    assert len(index) == 0


def test_finite_conflicts_are_found_after_rejected_nan_inserts():
    nan = float("nan")
    rng = random.Random(2)
    index = ExclusionIndex()
    for _ in range(300):
        low = rng.randint(0, 100)
        high = nan if rng.random() < 0.1 else low + rng.randint(1, 15)
        try:
            index.insert("k", (low, high))
        except (ConflictError, InvalidIntervalError):
            pass
    index.verify_integrity()
    assert all(e.interval.high == e.interval.high for e in index.entries("k"))
    index.insert("B", (0, 1))
    index.clear()
    assert len(index) == 0
    assert index.keys() == []
    index.insert("A", (0, 1))


def test_snapshot_and_restore_keep_ids(index):
    a = index.insert("A", (0, 10), payload="x")
    b = index.insert("B", (5, 15))
    index.remove(index.insert("A", (20, 30)))

    restored = ExclusionIndex.from_entries(index.snapshot())
    assert [e.id for e in restored.snapshot()] == [a, b]
    assert restored.get(a).payload == "x"
    # new ids continue after the restored ones
    assert restored.insert("A", (10, 20)) > b
    with pytest.raises(ConflictError):
        restored.insert("A", (9, 11))


def test_restore_rejects_overlapping_snapshot():
    entries = [
        Entry(1, "room", Interval(0, 10)),
        Entry(2, "room", Interval(5, 15)),
    ]
    with pytest.raises(ConflictError):
        ExclusionIndex.from_entries(entries)


def test_restore_rejects_duplicate_ids():
    entries = [
        Entry(1, "A", Interval(0, 10)),
        Entry(1, "B", Interval(0, 10)),
    ]
    with pytest.raises(ValueError):
        ExclusionIndex.from_entries(entries)


def test_booking_scenario(index):
    a = index.insert(1, Interval(jan(1), jan(15)))

    with pytest.raises(ConflictError) as excinfo:
        index.insert(1, Interval(jan(10), jan(20)))
    assert excinfo.value.conflicting_ids == [a]

    b = index.insert(1, Interval(jan(15), jan(20)))
    assert index.overlapping(1, Interval(jan(5), jan(12))).ids() == [a]

    index.remove(a)

    with pytest.raises(ConflictError) as excinfo:
        index.insert(1, Interval(jan(1), jan(16)))
    assert excinfo.value.conflicting_ids == [b]

    index.insert(1, Interval(jan(1), jan(15)))
    index.verify_integrity()


def _brute_conflicts(model, key, low, high, exclude=None):
    query = Interval(low, high)
    return sorted(
        entry_id for entry_id, (k, interval) in model.items()
        if k == key and entry_id != exclude and interval.overlaps(query)
    )


def test_random_operations_preserve_exclusion():
    rng = random.Random(20240101)
    index = ExclusionIndex()
    model = {}

    for step in range(3000):
        key = rng.choice("ABC")
        low = rng.randint(0, 200)
        high = low + rng.choice([0, 1, 3, 10, 25])
        op = rng.random()

        if op < 0.5 or not model:
            expected = _brute_conflicts(model, key, low, high)
            try:
                entry_id = index.insert(key, (low, high))
            except ConflictError as e:
                assert sorted(e.conflicting_ids) == expected
            else:
                assert expected == []
                model[entry_id] = (key, Interval(low, high))
        elif op < 0.75:
            entry_id = rng.choice(list(model))
            index.remove(entry_id)
            del model[entry_id]
        else:
            entry_id = rng.choice(list(model))
            entry_key = model[entry_id][0]
            expected = _brute_conflicts(model, entry_key, low, high, exclude=entry_id)
            try:
                index.update(entry_id, (low, high))
            except ConflictError as e:
                assert sorted(e.conflicting_ids) == expected
            else:
                assert expected == []
                model[entry_id] = (entry_key, Interval(low, high))

        if step % 100 == 0:
            index.verify_integrity()
            for k in "ABC":
                q_low = rng.randint(0, 200)
                q_high = q_low + rng.randint(1, 30)
                assert sorted(index.overlapping(k, (q_low, q_high)).ids()) == \
                    _brute_conflicts(model, k, q_low, q_high)

    index.verify_integrity()
    assert len(index) == len(model)
