"""State management for tracking per-file sync history.

This module remembers, for every synced vault path, what both sides looked
like right after the last successful transfer. Comparing the current
listing against this record is how local and remote edits are told apart
without hashing local files.
"""

import json
import logging
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Optional

from ..utils import read_json_document, update_json_document

logger = logging.getLogger(__name__)

FILE_STATE_KEY = "fileStateCache"
LAST_SYNC_KEY = "lastSyncTime"


@dataclass(frozen=True)
class FileSyncState:
    """Last-known sync state of one vault path.

    All timestamps are milliseconds since the epoch. A path that was never
    synced has every field set to None.
    """

    local_mod_time: Optional[int] = None
    """Local modification time right after the last transfer"""

    remote_hash: Optional[str] = None
    """Content checksum of the remote object as of the last transfer"""

    remote_mod_time: Optional[int] = None
    """Remote modification time as of the last transfer"""

    last_sync_time: Optional[int] = None
    """When the last transfer of this path finished"""

    remote_version_tag: Optional[str] = None
    """Opaque remote revision marker"""

    _KEYS = {
        "local_mod_time": "localModTime",
        "remote_hash": "remoteHash",
        "remote_mod_time": "remoteModTime",
        "last_sync_time": "lastSyncTime",
        "remote_version_tag": "remoteVersionTag",
    }

    @property
    def is_empty(self) -> bool:
        return all(getattr(self, f.name) is None for f in fields(self))

    def to_dict(self) -> dict[str, Any]:
        """Convert state to dictionary for JSON serialization."""
        return {
            key: getattr(self, attr)
            for attr, key in self._KEYS.items()
            if getattr(self, attr) is not None
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "FileSyncState":
        """Create FileSyncState from dictionary."""
        return cls(**{attr: data.get(key) for attr, key in cls._KEYS.items()})


class FileStateStore:
    """In-memory mapping from vault path to FileSyncState.

    The store does not persist itself. Whoever calls set() is responsible
    for flushing the store afterwards (see SyncStateManager.save_state).
    """

    def __init__(self, entries: Optional[dict[str, FileSyncState]] = None):
        self._entries: dict[str, FileSyncState] = dict(entries or {})

    def get(self, path: str) -> FileSyncState:
        """Return the state of a path, or an all-empty state if unknown."""
        return self._entries.get(path, FileSyncState())

    def set(self, path: str, **changes: Any) -> FileSyncState:
        """Merge fields into the entry of a path, creating it if absent.

        Args:
            path: Vault path of the file
            **changes: FileSyncState fields to overwrite

        Returns:
            The updated state
        """
        state = replace(self.get(path), **changes)
        self._entries[path] = state
        return state

    def clear(self) -> None:
        """Drop every entry."""
        self._entries.clear()

    def paths(self) -> list[str]:
        return sorted(self._entries)

    def __contains__(self, path: object) -> bool:
        return path in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def to_dict(self) -> dict[str, dict[str, Any]]:
        return {path: state.to_dict() for path, state in self._entries.items()}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "FileStateStore":
        entries = {}
        for path, raw in data.items():
            if isinstance(raw, dict):
                entries[path] = FileSyncState.from_dict(raw)
            else:
                logger.warning(f"Ignoring malformed state entry for {path}")
        return cls(entries)


class SyncStateManager:
    """Persists the file state cache inside the settings document.

    Only the fileStateCache and lastSyncTime keys of the document are
    touched; configuration keys written by the config layer are preserved.
    """

    def __init__(self, document_path: Path):
        """Initialize state manager.

        Args:
            document_path: JSON settings document holding the state cache
        """
        self.document_path = document_path

    def load_state(self) -> tuple[FileStateStore, Optional[int]]:
        """Load the state cache and last sync time.

        Returns:
            Tuple of (store, last sync time in ms or None)
        """
        try:
            document = read_json_document(self.document_path)
        except (json.JSONDecodeError, ValueError) as e:
            logger.warning(f"Failed to load sync state: {e}")
            return FileStateStore(), None

        store = FileStateStore.from_dict(document.get(FILE_STATE_KEY) or {})
        last_sync = document.get(LAST_SYNC_KEY) or None
        logger.debug(
            f"Loaded sync state with {len(store)} files from {self.document_path}"
        )
        return store, last_sync

    def save_state(
        self, store: FileStateStore, last_sync_time: Optional[int] = None
    ) -> None:
        """Write the state cache (and optionally the last sync time).

        Args:
            store: File state store to persist
            last_sync_time: Completion time of the last pass, if it changed
        """
        updates: dict[str, Any] = {FILE_STATE_KEY: store.to_dict()}
        if last_sync_time is not None:
            updates[LAST_SYNC_KEY] = last_sync_time
        try:
            update_json_document(self.document_path, updates)
        except OSError as e:
            logger.warning(f"Failed to save sync state: {e}")
            return
        logger.debug(f"Saved sync state with {len(store)} files")

    def clear_state(self) -> None:
        """Reset the persisted cache to empty."""
        update_json_document(self.document_path, {FILE_STATE_KEY: {}})
        logger.debug(f"Cleared sync state at {self.document_path}")
