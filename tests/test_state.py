"""Tests for the local state file."""

import json
import stat
from pathlib import Path

import pytest

from weka_operator.kinds import EntityKind
from weka_operator.state import StateFileError, StateStore


class TestStateStore:
    """Tests for StateStore."""

    def test_missing_file_is_empty(self, tmp_path: Path) -> None:
        store = StateStore(tmp_path / "state.json").load()

        assert len(store) == 0

    def test_round_trip(self, tmp_path: Path) -> None:
        path = tmp_path / "state.json"
        store = StateStore(path).load()
        store.put(EntityKind.FILESYSTEM, "fs1", "fs-1", {"name": "fs1", "total_capacity_gb": 4})
        store.put(EntityKind.USER, "alice", "user-1", {"username": "alice"})
        store.save()

        reloaded = StateStore(path).load()

        entry = reloaded.get(EntityKind.FILESYSTEM, "fs1")
        assert entry is not None
        assert entry.identifier == "fs-1"
        assert entry.state["total_capacity_gb"] == 4
        assert [e.name for e in reloaded.entries()] == ["fs1", "alice"]

    def test_owner_only_permissions(self, tmp_path: Path) -> None:
        """Test that the file holding secrets is not world-readable."""
        path = tmp_path / "state.json"
        store = StateStore(path).load()
        store.put(EntityKind.USER, "alice", "user-1", {"password": "secret"})

        store.save()

        assert stat.S_IMODE(path.stat().st_mode) == 0o600
        assert not (tmp_path / "state.json.tmp").exists()

    def test_remove(self, tmp_path: Path) -> None:
        store = StateStore(tmp_path / "state.json").load()
        store.put(EntityKind.USER, "alice", "user-1", {})

        store.remove(EntityKind.USER, "alice")
        store.remove(EntityKind.USER, "nobody")

        assert store.get(EntityKind.USER, "alice") is None

    def test_put_replaces(self, tmp_path: Path) -> None:
        store = StateStore(tmp_path / "state.json").load()
        store.put(EntityKind.OBJECT_STORE_BUCKET, "data", "old-bucket", {})

        store.put(EntityKind.OBJECT_STORE_BUCKET, "data", "new-bucket", {})

        assert len(store) == 1
        assert store.get(EntityKind.OBJECT_STORE_BUCKET, "data").identifier == "new-bucket"

    def test_malformed_file(self, tmp_path: Path) -> None:
        path = tmp_path / "state.json"
        path.write_text("{not json")

        with pytest.raises(StateFileError):
            StateStore(path).load()

    def test_unsupported_version(self, tmp_path: Path) -> None:
        path = tmp_path / "state.json"
        path.write_text(json.dumps({"version": 99, "resources": []}))

        with pytest.raises(StateFileError) as exc_info:
            StateStore(path).load()

        assert "version 99" in str(exc_info.value)
