"""Change detection and per-path sync decisions."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .conflicts import ConflictResolver
from .modes import SyncDirection
from .scanner import LocalFile, RemoteFile
from .state import FileSyncState


class ChangeKind(str, Enum):
    """How a path changed since the last recorded sync."""

    NEW_LOCAL = "new_local"
    NEW_REMOTE = "new_remote"
    UNCHANGED = "unchanged"
    LOCAL_CHANGED = "local_changed"
    REMOTE_CHANGED = "remote_changed"
    BOTH_CHANGED = "both_changed"


class SyncAction(str, Enum):
    """Actions that can be taken during sync."""

    UPLOAD = "upload"
    """Upload local file to remote"""

    DOWNLOAD = "download"
    """Download remote file to local"""

    SKIP = "skip"
    """Skip file (no action needed)"""


@dataclass
class SyncDecision:
    """Represents a decision about how to sync a file."""

    action: SyncAction
    """Action to take"""

    change: ChangeKind
    """Classification the action was derived from"""

    reason: str
    """Human-readable reason for this decision"""

    local_file: Optional[LocalFile]
    remote_file: Optional[RemoteFile]
    relative_path: str

    conflict: bool = False
    """True if the action resolves a both-sides change"""


class ChangeDetector:
    """Classifies a local/remote pair against the last recorded state.

    Local changes are detected by modification-time drift only (no local
    hashing). Remote changes are detected by content-hash drift, with the
    remote modification time as a secondary signal.
    """

    @staticmethod
    def local_changed(local: LocalFile, prior: FileSyncState) -> bool:
        return local.mod_time != prior.local_mod_time

    @staticmethod
    def remote_changed(remote: RemoteFile, prior: FileSyncState) -> bool:
        return (
            remote.content_hash != prior.remote_hash
            or remote.mod_time != prior.remote_mod_time
        )

    def classify(
        self,
        local: Optional[LocalFile],
        remote: Optional[RemoteFile],
        prior: FileSyncState,
        local_exists: bool = False,
    ) -> ChangeKind:
        """Classify one path.

        Args:
            local: Local file, if listed
            remote: Remote file, if listed
            prior: Last recorded state of the path
            local_exists: Whether a file exists at the local path even though
                the listing did not include it

        Returns:
            ChangeKind for this path
        """
        if remote is None:
            if local is None:
                raise ValueError("classify() needs at least one side")
            return ChangeKind.NEW_LOCAL

        if local is None:
            if local_exists and not self.remote_changed(remote, prior):
                # Already downloaded this exact revision
                return ChangeKind.UNCHANGED
            return ChangeKind.NEW_REMOTE

        local_changed = self.local_changed(local, prior)
        remote_changed = self.remote_changed(remote, prior)
        if local_changed and remote_changed:
            return ChangeKind.BOTH_CHANGED
        if local_changed:
            return ChangeKind.LOCAL_CHANGED
        if remote_changed:
            return ChangeKind.REMOTE_CHANGED
        return ChangeKind.UNCHANGED

    def needs_download(
        self,
        remote: RemoteFile,
        local: Optional[LocalFile],
        prior: FileSyncState,
    ) -> bool:
        """Decide whether a remote file should be fetched.

        Remote objects without a checksum are always refreshed. Otherwise a
        download is needed only if the remote changed and the local copy did
        not; if both changed the path is a conflict, never a silent download.
        """
        if remote.content_hash is None:
            return True
        if local is None:
            return self.remote_changed(remote, prior)
        return self.remote_changed(remote, prior) and not self.local_changed(
            local, prior
        )

    def needs_upload(
        self,
        local: LocalFile,
        remote: Optional[RemoteFile],
        prior: FileSyncState,
    ) -> bool:
        """Symmetric counterpart of needs_download()."""
        if remote is None:
            return True
        return self.local_changed(local, prior) and not self.remote_changed(
            remote, prior
        )


class FileComparator:
    """Turns a classified path into a sync action."""

    def __init__(
        self,
        direction: SyncDirection,
        resolver: ConflictResolver,
        detector: Optional[ChangeDetector] = None,
    ):
        """Initialize file comparator.

        Args:
            direction: Which transfers the pass may perform
            resolver: Conflict resolver for both-sides changes
            detector: Change detector (a default one is created if omitted)
        """
        self.direction = direction
        self.resolver = resolver
        self.detector = detector or ChangeDetector()

    def decide(
        self,
        path: str,
        local: Optional[LocalFile],
        remote: Optional[RemoteFile],
        prior: FileSyncState,
        local_exists: bool = False,
    ) -> SyncDecision:
        """Compare a single path and determine the action.

        Args:
            path: Relative path of the file
            local: Local file (if listed)
            remote: Remote file (if listed)
            prior: Last recorded state of the path
            local_exists: Whether an unlisted local file exists at the path

        Returns:
            SyncDecision for this path
        """
        change = self.detector.classify(local, remote, prior, local_exists)

        if change is ChangeKind.NEW_LOCAL:
            return self._upload(path, change, local, remote, "New local file")

        if change is ChangeKind.NEW_REMOTE:
            return self._download(path, change, local, remote, "New remote file")

        if change is ChangeKind.UNCHANGED:
            return self._skip(path, change, local, remote, "No changes detected")

        if change is ChangeKind.LOCAL_CHANGED:
            return self._upload(path, change, local, remote, "Local file changed")

        if local is None or remote is None:
            raise ValueError(f"{change.value} needs both sides of {path}")

        if change is ChangeKind.REMOTE_CHANGED:
            if not self.detector.needs_download(remote, local, prior):
                return self._skip(path, change, local, remote, "Download not needed")
            return self._download(path, change, local, remote, "Remote file changed")

        # BOTH_CHANGED
        if self.resolver.within_tolerance(local.mod_time, remote.mod_time):
            return self._skip(
                path,
                change,
                local,
                remote,
                "Both changed but timestamps agree within tolerance",
            )

        winner = self.resolver.resolve(local.mod_time, remote.mod_time)
        reason = f"Conflict resolved by policy '{self.resolver.policy.value}'"
        if winner == "local":
            decision = self._upload(path, change, local, remote, reason)
        else:
            decision = self._download(path, change, local, remote, reason)
        decision.conflict = decision.action is not SyncAction.SKIP
        return decision

    def _upload(
        self,
        path: str,
        change: ChangeKind,
        local: Optional[LocalFile],
        remote: Optional[RemoteFile],
        reason: str,
    ) -> SyncDecision:
        if not self.direction.allows_upload:
            reason = f"{reason}, but direction {self.direction.value} prevents upload"
            return self._skip(path, change, local, remote, reason)
        return SyncDecision(SyncAction.UPLOAD, change, reason, local, remote, path)

    def _download(
        self,
        path: str,
        change: ChangeKind,
        local: Optional[LocalFile],
        remote: Optional[RemoteFile],
        reason: str,
    ) -> SyncDecision:
        if not self.direction.allows_download:
            reason = (
                f"{reason}, but direction {self.direction.value} prevents download"
            )
            return self._skip(path, change, local, remote, reason)
        return SyncDecision(SyncAction.DOWNLOAD, change, reason, local, remote, path)

    @staticmethod
    def _skip(
        path: str,
        change: ChangeKind,
        local: Optional[LocalFile],
        remote: Optional[RemoteFile],
        reason: str,
    ) -> SyncDecision:
        return SyncDecision(SyncAction.SKIP, change, reason, local, remote, path)
