"""Local vault access on top of the filesystem."""

from __future__ import annotations

import logging
import os
from pathlib import Path

from .exceptions import ClockSyncError, LocalWriteError
from .sync.protocols import EntryKind, LocalEntry
from .utils import to_millis

logger = logging.getLogger(__name__)


class FileSystemLocalStore:
    """LocalStore backed by a directory on disk.

    All paths are vault-relative and use forward slashes. Hidden entries
    (names starting with a dot) are listed like any other entry; filtering
    is left to the scanner.
    """

    def __init__(self, root: Path):
        self.root = Path(root)

    def _resolve(self, path: str) -> Path:
        full = (self.root / path.strip("/")).resolve()
        root = self.root.resolve()
        if full != root and root not in full.parents:
            raise ValueError(f"Path escapes the vault: {path}")
        return full

    def _entry(self, full: Path) -> LocalEntry:
        rel = full.relative_to(self.root.resolve()).as_posix()
        if full.is_dir():
            return LocalEntry(path=rel, kind=EntryKind.FOLDER)
        st = full.stat()
        return LocalEntry(
            path=rel,
            kind=EntryKind.FILE,
            mod_time=to_millis(st.st_mtime),
            size=st.st_size,
        )

    async def list_entries(
        self, folder: str = "", recursive: bool = True
    ) -> list[LocalEntry]:
        """List files and folders below a vault folder.

        Args:
            folder: Vault-relative folder ("" for the vault root)
            recursive: Include the contents of subfolders

        Returns:
            Entries sorted by path; an empty list if the folder is missing
        """
        base = self._resolve(folder)
        if not base.is_dir():
            return []

        entries: list[LocalEntry] = []
        pending = [base]
        while pending:
            current = pending.pop()
            try:
                children = list(current.iterdir())
            except PermissionError as e:
                logger.warning(f"Permission denied: {e}")
                continue
            for child in children:
                if child.is_symlink():
                    continue
                entries.append(self._entry(child))
                if recursive and child.is_dir():
                    pending.append(child)
        return sorted(entries, key=lambda e: e.path)

    async def stat(self, path: str) -> LocalEntry | None:
        full = self._resolve(path)
        if not full.exists():
            return None
        return self._entry(full)

    async def read(self, path: str, binary: bool) -> str | bytes:
        full = self._resolve(path)
        if binary:
            return full.read_bytes()
        # Line endings stay as they are on disk
        return full.read_bytes().decode("utf-8")

    async def write(self, path: str, content: str | bytes, binary: bool) -> None:
        """Create or overwrite a file.

        Raises:
            LocalWriteError: If the file cannot be written
        """
        full = self._resolve(path)
        try:
            if binary:
                data = content if isinstance(content, bytes) else content.encode()
                full.write_bytes(data)
            else:
                text = content if isinstance(content, str) else content.decode("utf-8")
                full.write_bytes(text.encode("utf-8"))
        except OSError as e:
            raise LocalWriteError(f"Failed to write {path}: {e}") from e

    async def create_folder(self, path: str) -> None:
        """Create a folder (parents must exist).

        Raises:
            FileExistsError: If the folder already exists
            LocalWriteError: If a file is in the way or creation fails
        """
        full = self._resolve(path)
        if full.is_file():
            raise LocalWriteError(f"Cannot create folder {path}: a file exists")
        try:
            full.mkdir()
        except FileExistsError:
            raise
        except OSError as e:
            raise LocalWriteError(f"Failed to create folder {path}: {e}") from e

    async def exists(self, path: str) -> bool:
        return self._resolve(path).exists()

    async def set_mod_time(self, path: str, mod_time: int) -> bool:
        """Set the modification time of a file.

        Args:
            path: Vault-relative file path
            mod_time: Modification time in epoch milliseconds

        Returns:
            True if the time was applied
        """
        full = self._resolve(path)
        if not full.is_file():
            return False
        seconds = mod_time / 1000
        try:
            os.utime(full, (seconds, seconds))
        except OSError as e:
            raise ClockSyncError(f"Failed to set mtime of {path}: {e}") from e
        return True
