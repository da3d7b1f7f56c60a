"""Content transfer between the local store and the remote store."""

import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional, Union

from ..exceptions import ClockSyncError, DriveSyncError, LocalWriteError
from ..models import DriveFile
from ..utils import DEFAULT_INLINE_UPLOAD_THRESHOLD, format_iso_timestamp, now_millis
from .folders import FolderResolver
from .paths import folder_prefixes, join_path, split_parent
from .protocols import EntryKind, LocalStore, RemoteStore
from .scanner import ContentKind, LocalFile, RemoteFile, guess_mime_type
from .state import FileStateStore

logger = logging.getLogger(__name__)


@dataclass
class TransferResult:
    """Outcome of a single upload or download."""

    success: bool
    path: str
    remote: Optional[DriveFile] = None
    """Remote descriptor after an upload"""

    error: Optional[Exception] = None


class TransferEngine:
    """Reads, writes and records file content for the reconciler.

    Every successful transfer is immediately written back into the file
    state store, describing exactly the content that was transferred, and
    the optional persist callback is invoked.
    """

    def __init__(
        self,
        local: LocalStore,
        remote: RemoteStore,
        state: FileStateStore,
        folders: FolderResolver,
        persist: Optional[Callable[[], None]] = None,
        inline_threshold: int = DEFAULT_INLINE_UPLOAD_THRESHOLD,
        auto_create_folders: bool = True,
    ):
        """Initialize transfer engine.

        Args:
            local: Local store
            remote: Remote store
            state: File state store updated after each transfer
            folders: Folder resolver for upload destinations
            persist: Called after every state update
            inline_threshold: Binary files smaller than this are uploaded in
                a single multipart request
            auto_create_folders: Create missing local folders on download
        """
        self.local = local
        self.remote = remote
        self.state = state
        self.folders = folders
        self.persist = persist
        self.inline_threshold = inline_threshold
        self.auto_create_folders = auto_create_folders

    # =========================
    # Upload
    # =========================

    async def upload_file(
        self,
        local_file: LocalFile,
        root_id: str,
        existing: Optional[RemoteFile] = None,
    ) -> TransferResult:
        """Upload a file below a target root, resolving its folder first.

        Args:
            local_file: Local file to upload
            root_id: Remote root folder of the sync target
            existing: Remote counterpart from the listing, if any

        Returns:
            TransferResult
        """
        parent, _ = split_parent(local_file.relative_path)
        try:
            folder_id = await self.folders.resolve(parent, root_id)
        except DriveSyncError as e:
            logger.error(f"Cannot upload {local_file.path}: {e}")
            return TransferResult(success=False, path=local_file.path, error=e)
        return await self.upload(local_file, folder_id, existing)

    async def upload(
        self,
        local_file: LocalFile,
        target_folder_id: str,
        existing: Optional[RemoteFile] = None,
    ) -> TransferResult:
        """Upload a local file into a remote folder.

        New files are created; existing files get their content replaced and
        their modification time stamped with the local one.

        Args:
            local_file: Local file to upload
            target_folder_id: Remote folder the file belongs in
            existing: Remote counterpart from the listing, if any

        Returns:
            TransferResult with the remote descriptor after the upload
        """
        start = time.time()
        try:
            descriptor = await self._upload(local_file, target_folder_id, existing)
        except (DriveSyncError, OSError) as e:
            logger.error(f"Upload of {local_file.path} failed: {e}")
            return TransferResult(success=False, path=local_file.path, error=e)

        self.state.set(
            local_file.path,
            local_mod_time=local_file.mod_time,
            remote_hash=descriptor.content_hash,
            remote_mod_time=descriptor.modified_time,
            remote_version_tag=descriptor.version_tag,
            last_sync_time=now_millis(),
        )
        self._persist()
        logger.debug(f"Upload of {local_file.path} took {time.time() - start:.2f}s")
        return TransferResult(success=True, path=local_file.path, remote=descriptor)

    async def _upload(
        self,
        local_file: LocalFile,
        folder_id: str,
        existing: Optional[RemoteFile],
    ) -> DriveFile:
        content, binary = await self._read(local_file)
        mime_type = guess_mime_type(local_file.name)
        metadata = {"modifiedTime": format_iso_timestamp(local_file.mod_time)}

        existing_id: Optional[str] = existing.id if existing else None
        if existing_id is None:
            found = await self.remote.find_child(
                local_file.name, folder_id, kind=EntryKind.FILE
            )
            existing_id = found.id if found else None

        if existing_id is not None:
            logger.debug(f"Updating {local_file.path} ({existing_id})")
            await self.remote.update_file(existing_id, content, None, mime_type)
            return await self.remote.update_file(existing_id, None, metadata)

        logger.debug(f"Uploading new file {local_file.path}")
        if binary and self._size_of(content) >= self.inline_threshold:
            # Two phases: metadata-only create, then the raw bytes. The
            # modification time is stamped only once the bytes are in.
            created = await self.remote.create_file(
                local_file.name, folder_id, None, None, mime_type
            )
            try:
                await self.remote.update_file(created.id, content, None, mime_type)
                return await self.remote.update_file(created.id, None, metadata)
            except DriveSyncError:
                await self._discard(created.id, local_file.path)
                raise

        return await self.remote.create_file(
            local_file.name, folder_id, content, metadata, mime_type
        )

    async def _read(self, local_file: LocalFile) -> tuple[Union[str, bytes], bool]:
        """Read a file for upload, returning its content and whether it is raw."""
        binary = local_file.content_kind is ContentKind.BINARY
        try:
            return await self.local.read(local_file.path, binary=binary), binary
        except UnicodeDecodeError:
            logger.warning(f"{local_file.path} is not valid UTF-8, uploading raw bytes")
            return await self.local.read(local_file.path, binary=True), True

    async def _discard(self, file_id: str, path: str) -> None:
        try:
            await self.remote.delete_file(file_id)
        except DriveSyncError as e:
            logger.warning(
                f"Could not remove partial upload of {path} ({file_id}): {e}"
            )
        else:
            logger.info(f"Removed partial upload of {path}")

    @staticmethod
    def _size_of(content: Union[str, bytes]) -> int:
        if isinstance(content, str):
            return len(content.encode("utf-8"))
        return len(content)

    # =========================
    # Download
    # =========================

    async def download(self, remote_file: RemoteFile, base_path: str) -> TransferResult:
        """Download a remote file into the vault.

        Args:
            remote_file: Remote file to download
            base_path: Local base folder of the sync target

        Returns:
            TransferResult
        """
        start = time.time()
        local_path = join_path(base_path, remote_file.relative_path)
        try:
            await self._ensure_local_folder(split_parent(local_path)[0])
            raw = await self.remote.get_content(remote_file.id)
            await self._write(local_path, raw, remote_file.content_kind)
        except (DriveSyncError, OSError) as e:
            logger.error(f"Download of {local_path} failed: {e}")
            return TransferResult(success=False, path=local_path, error=e)

        local_mod_time = await self._stamp_mod_time(local_path, remote_file.mod_time)

        self.state.set(
            local_path,
            local_mod_time=local_mod_time,
            remote_hash=remote_file.content_hash,
            remote_mod_time=remote_file.mod_time,
            remote_version_tag=remote_file.version_tag,
            last_sync_time=now_millis(),
        )
        self._persist()
        logger.debug(f"Download of {local_path} took {time.time() - start:.2f}s")
        return TransferResult(success=True, path=local_path, remote=remote_file.entry)

    async def _ensure_local_folder(self, folder: str) -> None:
        if not folder or await self.local.exists(folder):
            return
        if not self.auto_create_folders:
            raise LocalWriteError(f"Local folder does not exist: {folder}")

        for prefix in folder_prefixes(folder):
            if await self.local.exists(prefix):
                continue
            try:
                await self.local.create_folder(prefix)
            except FileExistsError:
                # Created by someone else in the meantime
                continue
            logger.debug(f"Created local folder: {prefix}")

    async def _write(self, path: str, raw: bytes, kind: ContentKind) -> None:
        if kind is ContentKind.TEXT:
            try:
                text = raw.decode("utf-8")
            except UnicodeDecodeError:
                logger.warning(f"{path} is not valid UTF-8, writing raw bytes")
            else:
                await self.local.write(path, text, binary=False)
                return
        await self.local.write(path, raw, binary=True)

    async def _stamp_mod_time(
        self, path: str, mod_time: Optional[int]
    ) -> Optional[int]:
        """Best-effort copy of the remote modification time to the local file.

        Returns:
            The local modification time after the write
        """
        if mod_time is not None:
            try:
                if not await self.local.set_mod_time(path, mod_time):
                    raise ClockSyncError(f"Could not set modification time of {path}")
            except (ClockSyncError, OSError) as e:
                logger.warning(f"{e}; keeping the write time")

        entry = await self.local.stat(path)
        if entry is not None and entry.mod_time is not None:
            return entry.mod_time
        return mod_time

    def _persist(self) -> None:
        if self.persist is None:
            return
        try:
            self.persist()
        except OSError as e:
            logger.warning(f"Failed to persist sync state: {e}")
