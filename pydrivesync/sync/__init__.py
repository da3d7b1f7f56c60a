"""Sync engine for PyDriveSync - two-way vault/Drive reconciliation."""

from .comparator import (
    ChangeDetector,
    ChangeKind,
    FileComparator,
    SyncAction,
    SyncDecision,
)
from .conflicts import ConflictPolicy, ConflictResolver
from .engine import (
    SyncEngine,
    SyncOptions,
    SyncOutcome,
    SyncScope,
    SyncStatus,
    build_targets,
)
from .folders import FolderResolver
from .modes import SyncDirection
from .operations import TransferEngine, TransferResult
from .pair import SyncTarget
from .paths import join_folder_chain, relative_path
from .progress import CancellationToken, LogEvent, ProgressEvent
from .protocols import EntryKind, LocalEntry, LocalStore, RemoteStore, TokenProvider
from .scanner import (
    ContentKind,
    DirectoryScanner,
    LocalFile,
    RemoteFile,
    classify_extension,
    is_sync_eligible,
)
from .state import FileStateStore, FileSyncState, SyncStateManager

__all__ = [
    "SyncEngine",
    "SyncOptions",
    "SyncOutcome",
    "SyncScope",
    "SyncStatus",
    "build_targets",
    "SyncDirection",
    "SyncTarget",
    "TransferEngine",
    "TransferResult",
    "FolderResolver",
    "ChangeDetector",
    "ChangeKind",
    "FileComparator",
    "SyncAction",
    "SyncDecision",
    "ConflictPolicy",
    "ConflictResolver",
    "DirectoryScanner",
    "ContentKind",
    "LocalFile",
    "RemoteFile",
    "classify_extension",
    "is_sync_eligible",
    "FileStateStore",
    "FileSyncState",
    "SyncStateManager",
    "CancellationToken",
    "LogEvent",
    "ProgressEvent",
    "EntryKind",
    "LocalEntry",
    "LocalStore",
    "RemoteStore",
    "TokenProvider",
    "join_folder_chain",
    "relative_path",
]
