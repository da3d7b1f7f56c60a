"""Tests for per-file sync state tracking and persistence."""

import json

from pydrivesync.sync.state import FileStateStore, FileSyncState, SyncStateManager


class TestFileStateStore:
    """Tests for the in-memory state store."""

    def test_unknown_path_has_empty_state(self):
        store = FileStateStore()
        state = store.get("missing.md")
        assert state.is_empty
        assert state == FileSyncState()
        assert "missing.md" not in store

    def test_set_merges_fields(self):
        store = FileStateStore()
        store.set("a.md", local_mod_time=10, remote_hash="h1")
        store.set("a.md", remote_mod_time=20)

        state = store.get("a.md")
        assert state.local_mod_time == 10
        assert state.remote_hash == "h1"
        assert state.remote_mod_time == 20

    def test_clear(self):
        store = FileStateStore()
        store.set("a.md", local_mod_time=1)
        store.clear()
        assert len(store) == 0

    def test_dict_uses_camel_case_and_omits_none(self):
        store = FileStateStore()
        store.set("a.md", local_mod_time=1, remote_hash="abc")

        assert store.to_dict() == {"a.md": {"localModTime": 1, "remoteHash": "abc"}}

    def test_from_dict_skips_malformed_entries(self):
        store = FileStateStore.from_dict(
            {"a.md": {"localModTime": 5}, "b.md": "garbage"}
        )
        assert store.paths() == ["a.md"]
        assert store.get("a.md").local_mod_time == 5


class TestSyncStateManager:
    """Tests for persistence inside the settings document."""

    def test_load_missing_document(self, tmp_path):
        manager = SyncStateManager(tmp_path / "settings.json")
        store, last_sync = manager.load_state()
        assert len(store) == 0
        assert last_sync is None

    def test_save_preserves_other_keys(self, tmp_path):
        path = tmp_path / "settings.json"
        path.write_text(json.dumps({"driveFolder": "Vault", "custom": [1, 2]}))
        store = FileStateStore()
        store.set("notes/a.md", local_mod_time=100, remote_hash="h")

        SyncStateManager(path).save_state(store, last_sync_time=999)

        document = json.loads(path.read_text())
        assert document["driveFolder"] == "Vault"
        assert document["custom"] == [1, 2]
        assert document["lastSyncTime"] == 999
        assert document["fileStateCache"]["notes/a.md"]["remoteHash"] == "h"

    def test_round_trip(self, tmp_path):
        manager = SyncStateManager(tmp_path / "settings.json")
        store = FileStateStore()
        store.set("a.md", local_mod_time=1, remote_version_tag="7")
        manager.save_state(store, last_sync_time=42)

        loaded, last_sync = manager.load_state()

        assert loaded.get("a.md") == store.get("a.md")
        assert last_sync == 42

    def test_corrupt_document_loads_empty(self, tmp_path):
        path = tmp_path / "settings.json"
        path.write_text("{not json")

        store, last_sync = SyncStateManager(path).load_state()

        assert len(store) == 0
        assert last_sync is None

    def test_clear_state_keeps_last_sync_time(self, tmp_path):
        manager = SyncStateManager(tmp_path / "settings.json")
        store = FileStateStore()
        store.set("a.md", local_mod_time=1)
        manager.save_state(store, last_sync_time=5)

        manager.clear_state()

        loaded, last_sync = manager.load_state()
        assert len(loaded) == 0
        assert last_sync == 5
