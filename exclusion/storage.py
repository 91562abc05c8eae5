"""
Snapshot storage for exclusion indexes.

The index itself is purely in memory. A snapshot of its entry list is
enough to rebuild it, so persistence is a matter of writing that list
somewhere and reading it back.
"""

import json
import os
import tempfile
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
from typing import Optional

from .debug import debug_print
from .entry import Entry
from .index import ExclusionIndex


class SnapshotBackend(ABC):
    """
    Abstract base class for snapshot storage backends.

    Implementations must handle persistence (JSON, SQLite, etc).
    """

    @abstractmethod
    def save_snapshot(self, name: str, entries: list[Entry]) -> None:
        """Replace the stored snapshot called name."""
        pass

    @abstractmethod
    def load_snapshot(self, name: str) -> list[Entry]:
        """Load a snapshot. Raises FileNotFoundError if it does not exist."""
        pass

    @abstractmethod
    def delete_snapshot(self, name: str) -> None:
        pass

    @abstractmethod
    def list_snapshots(self) -> list[str]:
        pass

    def save_index(self, index: ExclusionIndex, name: str) -> int:
        """Store the entries of index; returns the number of entries written."""
        entries = index.snapshot()
        self.save_snapshot(name, entries)
        return len(entries)

    def load_index(self, name: str, lock_timeout: Optional[float] = None) -> ExclusionIndex:
        """Rebuild an index from a stored snapshot, re-validating every entry."""
        return ExclusionIndex.from_entries(self.load_snapshot(name), lock_timeout=lock_timeout)


class JsonSnapshotStorage(SnapshotBackend):
    """
    JSON file-based snapshot storage.

    Structure:
    - {storage_dir}/{name}.json - one file per snapshot
    """

    def __init__(self, storage_dir: Path):
        self.storage_dir = Path(storage_dir)
        self.storage_dir.mkdir(parents=True, exist_ok=True)
        debug_print("STORAGE", f"Initialized JSON storage at {self.storage_dir}")

    def _name_to_filename(self, name: str) -> str:
        """Convert snapshot name to safe filename."""
        return name.replace(":", "_").replace("/", "_").replace(os.sep, "_") + ".json"

    def _snapshot_file(self, name: str) -> Path:
        return self.storage_dir / self._name_to_filename(name)

    def save_snapshot(self, name: str, entries: list[Entry]) -> None:
        data = {
            "name": name,
            "updated": datetime.now().isoformat(),
            "entries": [e.to_dict() for e in entries],
        }
        # Write to a temporary file first so a crash never leaves half a snapshot
        fd, tmp_path = tempfile.mkstemp(dir=self.storage_dir, prefix=".snapshot-", suffix=".tmp")
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                json.dump(data, f, indent=2, ensure_ascii=False)
            os.replace(tmp_path, self._snapshot_file(name))
        except BaseException:
            os.unlink(tmp_path)
            raise
        debug_print("STORAGE", f"Saved {len(entries)} entries to snapshot {name!r}")

    def load_snapshot(self, name: str) -> list[Entry]:
        file_path = self._snapshot_file(name)
        if not file_path.exists():
            raise FileNotFoundError(f"Snapshot not found: {file_path}")

        with open(file_path, 'r', encoding='utf-8') as f:
            data = json.load(f)

        entries = [Entry.from_dict(item) for item in data.get("entries", [])]
        debug_print("STORAGE", f"Loaded {len(entries)} entries from snapshot {name!r}")
        return entries

    def delete_snapshot(self, name: str) -> None:
        file_path = self._snapshot_file(name)
        if not file_path.exists():
            raise FileNotFoundError(f"Snapshot not found: {file_path}")
        file_path.unlink()

    def list_snapshots(self) -> list[str]:
        names = []
        for f in sorted(self.storage_dir.glob("*.json")):
            with open(f, 'r', encoding='utf-8') as file:
                data = json.load(file)
            names.append(data.get("name", f.stem))
        return names


def create_storage_backend(storage_dir: Path) -> SnapshotBackend:
    """Factory function to create a storage backend."""
    return JsonSnapshotStorage(storage_dir)
