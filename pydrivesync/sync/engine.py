"""Core sync engine that reconciles a vault with a remote folder tree."""

import asyncio
import logging
import time
from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Union

from ..exceptions import (
    DriveAuthExpiredError,
    DriveAuthRequiredError,
    DriveSyncError,
    SyncAlreadyRunningError,
)
from ..utils import (
    DEFAULT_INLINE_UPLOAD_THRESHOLD,
    DEFAULT_TOLERANCE_MS,
    DEFAULT_YIELD_DELAY,
    now_millis,
)
from .comparator import FileComparator, SyncAction, SyncDecision
from .conflicts import ConflictPolicy, ConflictResolver
from .folders import FolderResolver
from .modes import SyncDirection
from .operations import TransferEngine, TransferResult
from .pair import SyncTarget
from .paths import is_within, join_path, split_parent
from .progress import (
    CancellationToken,
    LogCallback,
    ProgressCallback,
    SyncProgressTracker,
)
from .protocols import LocalStore, RemoteStore
from .scanner import DirectoryScanner, LocalFile, RemoteFile
from .state import FileStateStore, SyncStateManager

logger = logging.getLogger(__name__)


class SyncStatus(str, Enum):
    """Lifecycle of a sync pass."""

    IDLE = "idle"
    COLLECTING = "collecting"
    PROCESSING = "processing"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


@dataclass
class SyncOutcome:
    """Counters accumulated over one pass."""

    uploaded: int = 0
    downloaded: int = 0
    skipped: int = 0
    conflicts_resolved: int = 0
    errors: int = 0
    created_folder_paths: list[str] = field(default_factory=list)
    status: SyncStatus = SyncStatus.IDLE
    error: Optional[str] = None
    """Reason the pass failed"""

    @property
    def processed(self) -> int:
        return (
            self.uploaded
            + self.downloaded
            + self.skipped
            + self.conflicts_resolved
            + self.errors
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "uploaded": self.uploaded,
            "downloaded": self.downloaded,
            "skipped": self.skipped,
            "conflictsResolved": self.conflicts_resolved,
            "errors": self.errors,
            "createdFolderPaths": list(self.created_folder_paths),
            "error": self.error,
        }


@dataclass
class SyncOptions:
    """Per-pass configuration handed to SyncEngine.run_sync()."""

    conflict_policy: ConflictPolicy = ConflictPolicy.NEWER
    tolerance_ms: int = DEFAULT_TOLERANCE_MS
    include_subfolders: bool = True
    auto_create_folders: bool = True
    yield_delay: float = DEFAULT_YIELD_DELAY
    """Pause between two paths, in seconds"""

    inline_threshold: int = DEFAULT_INLINE_UPLOAD_THRESHOLD
    on_progress: Optional[ProgressCallback] = None
    on_log: Optional[LogCallback] = None


@dataclass
class SyncScope:
    """Which part of the vault a pass covers, resolved when the pass starts."""

    drive_folder: str
    scope_paths: Sequence[str] = ()
    whole_vault: bool = True
    parent_id: str = "root"
    """Parent of the sync folder, the Drive root by default"""


@dataclass
class _TargetPlan:
    target: SyncTarget
    decisions: list[SyncDecision]


class SyncEngine:
    """Orchestrates sync passes over one or more sync targets.

    A pass collects both sides of every target, classifies each path and
    performs the resulting transfers one path at a time. Only one pass may
    run at a time; the folder cache and the state store assume exclusive
    access.

    Examples:
        >>> engine = SyncEngine(vault, drive, state, state_manager=manager)
        >>> outcome = await engine.run_sync([SyncTarget("abc123")])
        >>> print(f"Uploaded {outcome.uploaded} file(s)")
    """

    def __init__(
        self,
        local: LocalStore,
        remote: RemoteStore,
        state: Optional[FileStateStore] = None,
        folders: Optional[FolderResolver] = None,
        state_manager: Optional[SyncStateManager] = None,
    ):
        """Initialize sync engine.

        Args:
            local: Local store (the vault)
            remote: Remote store
            state: File state store (an empty one is created if omitted)
            folders: Folder resolver (shared across passes for caching)
            state_manager: Persists the state store after every change
        """
        self.local = local
        self.remote = remote
        self.state = state if state is not None else FileStateStore()
        self.folders = folders or FolderResolver(remote)
        self.state_manager = state_manager
        self.status = SyncStatus.IDLE
        self.last_sync_time: Optional[int] = None
        self._token = CancellationToken()

    @property
    def is_running(self) -> bool:
        return self.status in (SyncStatus.COLLECTING, SyncStatus.PROCESSING)

    def cancel(self) -> None:
        """Request cancellation of the running pass.

        The transfer in progress is allowed to finish; no further path is
        started.
        """
        if self.is_running:
            logger.info("Cancellation requested")
        self._token.cancel()

    def clear_caches(self) -> None:
        """Forget every folder ID and every recorded file state.

        The next pass re-evaluates every path from scratch.
        """
        self.folders.clear()
        self.state.clear()
        self._persist()
        logger.info("Cleared folder cache and file state cache")

    async def run_sync(
        self,
        targets: Union[Sequence[SyncTarget], SyncScope],
        direction: SyncDirection = SyncDirection.BIDIRECTIONAL,
        options: Optional[SyncOptions] = None,
    ) -> SyncOutcome:
        """Run one full pass over the given targets.

        A SyncScope is resolved to targets as part of the pass, so a root
        folder that cannot be found or created fails the pass instead of
        raising, and folders created on the way are reported in the outcome.

        Args:
            targets: Sync targets processed one after another, or a SyncScope
                resolved to targets when the pass starts
            direction: Which transfers are allowed
            options: Pass configuration

        Returns:
            SyncOutcome with the pass counters and final status

        Raises:
            SyncAlreadyRunningError: If another pass is in flight
            DriveAuthRequiredError: If authentication fails while collecting
            DriveAuthExpiredError: If the token is rejected while collecting
        """
        if self.is_running:
            raise SyncAlreadyRunningError("A sync pass is already running")

        options = options or SyncOptions()
        direction = SyncDirection(direction)
        tracker = SyncProgressTracker(options.on_progress, options.on_log)
        outcome = SyncOutcome()
        created_before = len(self.folders.created_paths)
        self._token.reset()
        start_time = time.time()

        self._set_status(SyncStatus.COLLECTING, outcome)
        try:
            try:
                resolved = await self._resolve_targets(targets)
                tracker.log(
                    f"Collecting files for {len(resolved)} sync target(s)..."
                )
                plans = await self._collect_all(resolved, direction, options)
            except (DriveAuthRequiredError, DriveAuthExpiredError) as e:
                outcome.error = str(e)
                self._set_status(SyncStatus.FAILED, outcome)
                tracker.log(f"Authentication failed: {e}", logging.ERROR)
                raise
            except (DriveSyncError, OSError) as e:
                return self._fail(outcome, tracker, e, "collecting")
            except Exception as e:
                logger.exception("Unexpected error while collecting")
                return self._fail(outcome, tracker, e, "collecting")
            finally:
                outcome.created_folder_paths = self.folders.created_paths[
                    created_before:
                ]

            self._set_status(SyncStatus.PROCESSING, outcome)
            try:
                await self._process_all(plans, direction, options, tracker, outcome)
            except Exception as e:
                logger.exception("Unexpected error while processing")
                return self._fail(outcome, tracker, e, "processing")
            finally:
                outcome.created_folder_paths = self.folders.created_paths[
                    created_before:
                ]
        finally:
            if self.is_running:
                # Interrupted by task cancellation or interpreter shutdown
                self._set_status(SyncStatus.CANCELLED, outcome)
                logger.warning("Sync pass interrupted")

        if outcome.status is SyncStatus.CANCELLED:
            tracker.log(f"Sync cancelled after {outcome.processed} file(s)")
            return outcome

        self.last_sync_time = now_millis()
        self._persist(self.last_sync_time)
        self._set_status(SyncStatus.COMPLETED, outcome)
        logger.debug(f"Sync pass took {time.time() - start_time:.2f}s")
        tracker.log(self._summary(outcome))
        return outcome

    async def preview(
        self,
        targets: Union[Sequence[SyncTarget], SyncScope],
        direction: SyncDirection = SyncDirection.BIDIRECTIONAL,
        options: Optional[SyncOptions] = None,
    ) -> list[SyncDecision]:
        """Collect and classify without transferring anything.

        Returns:
            Planned decision for every path of every target
        """
        options = options or SyncOptions()
        resolved = await self._resolve_targets(targets)
        plans = await self._collect_all(resolved, SyncDirection(direction), options)
        return [decision for plan in plans for decision in plan.decisions]

    # =========================
    # Collection
    # =========================

    async def _resolve_targets(
        self, targets: Union[Sequence[SyncTarget], SyncScope]
    ) -> Sequence[SyncTarget]:
        if not isinstance(targets, SyncScope):
            return targets
        resolved = await build_targets(
            self.folders,
            targets.drive_folder,
            targets.scope_paths,
            targets.whole_vault,
            targets.parent_id,
        )
        if not resolved:
            raise DriveSyncError("No folders selected for sync")
        return resolved

    async def _collect_all(
        self,
        targets: Sequence[SyncTarget],
        direction: SyncDirection,
        options: SyncOptions,
    ) -> list[_TargetPlan]:
        scanner = DirectoryScanner(include_subfolders=options.include_subfolders)
        comparator = FileComparator(
            direction,
            ConflictResolver(options.conflict_policy, options.tolerance_ms),
        )
        plans = []
        for target in targets:
            plans.append(await self._collect(target, scanner, comparator))
        return plans

    async def _collect(
        self,
        target: SyncTarget,
        scanner: DirectoryScanner,
        comparator: FileComparator,
    ) -> _TargetPlan:
        local_files = await scanner.scan_local(self.local, target)
        remote_files = await scanner.scan_remote(self.remote, target)
        logger.debug(
            f"Target {target.label}: {len(local_files)} local, "
            f"{len(remote_files)} remote file(s)"
        )

        local_map = {f.relative_path: f for f in local_files}
        remote_map: dict[str, RemoteFile] = {}
        for remote_file in remote_files:
            if remote_file.relative_path in remote_map:
                logger.warning(
                    f"Duplicate remote file {remote_file.relative_path}, "
                    f"ignoring {remote_file.id}"
                )
                continue
            remote_map[remote_file.relative_path] = remote_file

        decisions = []
        for path in sorted(set(local_map) | set(remote_map)):
            local_file = local_map.get(path)
            remote_file = remote_map.get(path)
            vault_path = join_path(target.base_path, path)
            local_exists = False
            if local_file is None:
                local_exists = await self.local.exists(vault_path)
            decisions.append(
                comparator.decide(
                    path,
                    local_file,
                    remote_file,
                    self.state.get(vault_path),
                    local_exists,
                )
            )
        return _TargetPlan(target, decisions)

    # =========================
    # Processing
    # =========================

    async def _process_all(
        self,
        plans: list[_TargetPlan],
        direction: SyncDirection,
        options: SyncOptions,
        tracker: SyncProgressTracker,
        outcome: SyncOutcome,
    ) -> None:
        transfer = TransferEngine(
            self.local,
            self.remote,
            self.state,
            self.folders,
            persist=self._persist,
            inline_threshold=options.inline_threshold,
            auto_create_folders=options.auto_create_folders,
        )
        total = sum(len(plan.decisions) for plan in plans)
        processed = 0

        for plan in plans:
            if self._token.is_cancelled:
                self._set_status(SyncStatus.CANCELLED, outcome)
                return

            failed_folders: set[str] = set()
            if direction.allows_upload:
                uploads = [
                    d.relative_path
                    for d in plan.decisions
                    if d.action is SyncAction.UPLOAD
                ]
                failed_folders = await self.folders.pre_create_all(
                    uploads, plan.target.root_identifier
                )

            for decision in plan.decisions:
                if self._token.is_cancelled:
                    self._set_status(SyncStatus.CANCELLED, outcome)
                    return

                await self._execute(
                    decision, plan.target, transfer, failed_folders, tracker, outcome
                )
                processed += 1
                label = join_path(plan.target.base_path, decision.relative_path)
                tracker.progress(processed, total, label)
                # Let the event loop breathe between paths
                await asyncio.sleep(options.yield_delay)

    async def _execute(
        self,
        decision: SyncDecision,
        target: SyncTarget,
        transfer: TransferEngine,
        failed_folders: set[str],
        tracker: SyncProgressTracker,
        outcome: SyncOutcome,
    ) -> None:
        """Execute a single decision and update the outcome counters."""
        label = join_path(target.base_path, decision.relative_path)
        logger.debug(f"{decision.action.value}: {label} ({decision.reason})")

        if decision.action is SyncAction.SKIP:
            outcome.skipped += 1
            return

        try:
            result = await self._transfer(decision, target, transfer, failed_folders)
        except Exception as e:
            logger.exception(f"Unexpected error syncing {label}")
            result = TransferResult(success=False, path=label, error=e)

        if not result.success:
            outcome.errors += 1
            tracker.log(f"Failed to sync {label}: {result.error}", logging.ERROR)
            return

        if decision.conflict:
            outcome.conflicts_resolved += 1
            tracker.log(f"Conflict on {label}: {decision.action.value}ed")
        elif decision.action is SyncAction.UPLOAD:
            outcome.uploaded += 1
            tracker.log(f"Uploaded {label}", logging.DEBUG)
        else:
            outcome.downloaded += 1
            tracker.log(f"Downloaded {label}", logging.DEBUG)

    async def _transfer(
        self,
        decision: SyncDecision,
        target: SyncTarget,
        transfer: TransferEngine,
        failed_folders: set[str],
    ) -> TransferResult:
        local_file = decision.local_file
        remote_file = decision.remote_file
        if decision.action is SyncAction.UPLOAD and local_file is not None:
            parent, _ = split_parent(decision.relative_path)
            if parent and any(is_within(parent, bad) for bad in failed_folders):
                return TransferResult(
                    success=False,
                    path=local_file.path,
                    error=DriveSyncError(f"Remote folder '{parent}' is unavailable"),
                )
            return await transfer.upload_file(
                local_file, target.root_identifier, remote_file
            )
        if decision.action is SyncAction.DOWNLOAD and remote_file is not None:
            return await transfer.download(remote_file, target.base_path)

        label = join_path(target.base_path, decision.relative_path)
        return TransferResult(
            success=False,
            path=label,
            error=DriveSyncError(f"Nothing to {decision.action.value} for {label}"),
        )

    # =========================
    # Helpers
    # =========================

    def _set_status(self, status: SyncStatus, outcome: SyncOutcome) -> None:
        self.status = status
        outcome.status = status

    def _fail(
        self,
        outcome: SyncOutcome,
        tracker: SyncProgressTracker,
        error: BaseException,
        phase: str,
    ) -> SyncOutcome:
        outcome.error = str(error) or type(error).__name__
        self._set_status(SyncStatus.FAILED, outcome)
        logger.error(f"Sync failed while {phase}: {outcome.error}")
        tracker.log(f"Sync failed: {outcome.error}", logging.ERROR)
        return outcome

    def _persist(self, last_sync_time: Optional[int] = None) -> None:
        if self.state_manager is not None:
            self.state_manager.save_state(self.state, last_sync_time)

    @staticmethod
    def _summary(outcome: SyncOutcome) -> str:
        summary = (
            f"Sync completed: {outcome.uploaded} uploaded, "
            f"{outcome.downloaded} downloaded, {outcome.skipped} skipped"
        )
        if outcome.conflicts_resolved:
            summary += f", {outcome.conflicts_resolved} conflict(s) resolved"
        if outcome.errors:
            summary += f", {outcome.errors} error(s)"
        return summary


async def build_targets(
    folders: FolderResolver,
    drive_folder: str,
    scope_paths: Sequence[str] = (),
    whole_vault: bool = True,
    parent_id: str = "root",
) -> list[SyncTarget]:
    """Build the sync targets for a configuration.

    The remote layout mirrors the vault below the sync folder, so a
    selected folder "notes/daily" is synced against the remote folder
    <drive_folder>/notes/daily.

    Args:
        folders: Folder resolver used to find or create remote folders
        drive_folder: Name of the sync folder under the Drive root
        scope_paths: Selected vault folders (ignored for whole-vault sync)
        whole_vault: Sync the whole vault as a single target
        parent_id: Parent of the sync folder

    Returns:
        List of SyncTarget objects
    """
    root_id = await folders.get_or_create_root(drive_folder, parent_id)
    if whole_vault:
        return [SyncTarget(root_identifier=root_id, base_path="", name="vault")]

    targets = []
    for path in scope_paths:
        base_path = path.strip("/")
        folder_id = await folders.resolve(base_path, root_id)
        targets.append(SyncTarget(root_identifier=folder_id, base_path=base_path))
    return targets
