"""Tests for snapshot persistence and entry serialization."""

from datetime import date, datetime

import pytest
import pytz

from exclusion import ConflictError, Entry, ExclusionIndex, Interval, NEG_INF, POS_INF
from exclusion.storage import JsonSnapshotStorage, create_storage_backend


@pytest.fixture
def storage(tmp_path):
    return create_storage_backend(tmp_path / "snapshots")


def test_entry_dict_keeps_bound_types():
    start = datetime(2024, 1, 1, 9, 0, tzinfo=pytz.UTC)
    entries = [
        Entry(1, "room", Interval(start, None), payload={"uid": "a"}),
        Entry(2, ("site", 3), Interval(date(2024, 1, 1), date(2024, 1, 2))),
        Entry(3, 7, Interval(None, 1.5)),
    ]
    restored = [Entry.from_dict(e.to_dict()) for e in entries]
    assert restored == entries
    assert restored[0].interval.high is POS_INF
    assert restored[2].interval.low is NEG_INF
    assert restored[1].key == ("site", 3)


def test_entry_dict_rejects_unknown_types():
    with pytest.raises(TypeError):
        Entry(1, object(), Interval(0, 1)).to_dict()


def test_save_and_load_index(storage):
    index = ExclusionIndex()
    a = index.insert("room", (0, 10), payload={"who": "alice"})
    b = index.insert("room", (10, 20))

    assert storage.save_index(index, "rooms") == 2
    restored = storage.load_index("rooms")

    assert [e.id for e in restored.snapshot()] == [a, b]
    assert restored.get(a).payload == {"who": "alice"}
    with pytest.raises(ConflictError):
        restored.insert("room", (5, 6))


def test_save_replaces_previous_snapshot(storage):
    storage.save_snapshot("s", [Entry(1, "k", Interval(0, 1))])
    storage.save_snapshot("s", [])
    assert storage.load_snapshot("s") == []
    assert storage.list_snapshots() == ["s"]


def test_snapshot_names_are_made_safe(storage):
    storage.save_snapshot("team:a/b", [])
    assert storage.list_snapshots() == ["team:a/b"]
    assert (storage.storage_dir / "team_a_b.json").exists()


def test_missing_snapshot(storage):
    with pytest.raises(FileNotFoundError):
        storage.load_snapshot("nope")
    with pytest.raises(FileNotFoundError):
        storage.delete_snapshot("nope")


def test_delete_snapshot(storage):
    storage.save_snapshot("s", [])
    storage.delete_snapshot("s")
    assert storage.list_snapshots() == []


def test_no_temporary_files_left_behind(tmp_path):
    storage = JsonSnapshotStorage(tmp_path)
    storage.save_snapshot("s", [Entry(1, "k", Interval(0, 1))])
    assert [p.name for p in tmp_path.iterdir()] == ["s.json"]
