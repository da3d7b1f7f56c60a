"""Local and remote scanning for sync operations."""

import logging
import mimetypes
import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from ..models import DriveFile
from .pair import SyncTarget
from .paths import relative_path
from .protocols import LocalEntry, LocalStore, RemoteStore

logger = logging.getLogger(__name__)

TEXT_EXTENSIONS = (".md", ".txt", ".json", ".csv", ".html", ".css", ".js")
BINARY_EXTENSIONS = (
    ".pdf",
    ".docx",
    ".pptx",
    ".xlsx",
    ".png",
    ".jpg",
    ".jpeg",
    ".gif",
    ".webp",
)

EXCLUDE_PATTERNS = [
    re.compile(r"^\."),  # hidden files
    re.compile(r"\.tmp$"),
    re.compile(r"\.bak$"),
    re.compile(r"\.lock$"),
]

MIME_TYPES = {
    ".md": "text/markdown",
    ".txt": "text/plain",
    ".json": "application/json",
    ".csv": "text/csv",
    ".html": "text/html",
    ".css": "text/css",
    ".js": "text/javascript",
    ".pdf": "application/pdf",
    ".docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    ".pptx": (
        "application/vnd.openxmlformats-officedocument.presentationml.presentation"
    ),
    ".xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
    ".webp": "image/webp",
}


class ContentKind(str, Enum):
    """How a file's content is read, transferred and written."""

    TEXT = "text"
    BINARY = "binary"


def classify_extension(name: str) -> Optional[ContentKind]:
    """Classify a file name by extension.

    Returns:
        ContentKind.TEXT or ContentKind.BINARY, or None if the extension is
        not synced at all
    """
    lower = name.lower()
    if lower.endswith(TEXT_EXTENSIONS):
        return ContentKind.TEXT
    if lower.endswith(BINARY_EXTENSIONS):
        return ContentKind.BINARY
    return None


def is_sync_eligible(path: str) -> bool:
    """Check whether a file takes part in sync at all.

    Files inside hidden folders (e.g. ".obsidian/") are excluded as well.

    Examples:
        >>> is_sync_eligible("notes/note.md")
        True
        >>> is_sync_eligible(".obsidian/workspace.json")
        False
        >>> is_sync_eligible("archive.zip")
        False
    """
    segments = [s for s in path.split("/") if s]
    if not segments:
        return False
    name = segments[-1]
    if classify_extension(name) is None:
        return False
    if any(s.startswith(".") for s in segments[:-1]):
        return False
    return not any(pattern.search(name) for pattern in EXCLUDE_PATTERNS)


def guess_mime_type(name: str) -> str:
    """Return the upload MIME type for a file name.

    Sync extensions map through a fixed table; anything else goes through
    mimetypes.
    """
    lower = name.lower()
    for extension, mime_type in MIME_TYPES.items():
        if lower.endswith(extension):
            return mime_type
    mime_type, _ = mimetypes.guess_type(lower)
    return mime_type or "application/octet-stream"


@dataclass
class LocalFile:
    """Represents a local file with metadata."""

    path: str
    """Vault path (relative to the local store root)"""

    relative_path: str
    """Path relative to the sync target's base folder"""

    mod_time: int
    """Last modification time in milliseconds"""

    size: int = 0

    @property
    def name(self) -> str:
        return self.path.rsplit("/", 1)[-1]

    @property
    def content_kind(self) -> ContentKind:
        return classify_extension(self.name) or ContentKind.BINARY

    @classmethod
    def from_entry(cls, entry: LocalEntry, base_path: str) -> "LocalFile":
        return cls(
            path=entry.path,
            relative_path=relative_path(entry.path, base_path),
            mod_time=entry.mod_time or 0,
            size=entry.size,
        )


@dataclass
class RemoteFile:
    """Represents a remote file with metadata."""

    entry: DriveFile
    """Remote file resource from the API"""

    relative_path: str
    """Path relative to the sync target's remote root"""

    @property
    def id(self) -> str:
        return self.entry.id

    @property
    def name(self) -> str:
        return self.entry.name

    @property
    def mod_time(self) -> Optional[int]:
        return self.entry.modified_time

    @property
    def content_hash(self) -> Optional[str]:
        return self.entry.content_hash

    @property
    def version_tag(self) -> Optional[str]:
        return self.entry.version_tag

    @property
    def size(self) -> int:
        return self.entry.size

    @property
    def content_kind(self) -> ContentKind:
        return classify_extension(self.name) or ContentKind.BINARY


class DirectoryScanner:
    """Collects the files of one sync target on both sides.

    Examples:
        >>> scanner = DirectoryScanner(include_subfolders=True)
        >>> local_files = await scanner.scan_local(vault, target)
        >>> remote_files = await scanner.scan_remote(drive, target)
    """

    def __init__(self, include_subfolders: bool = True):
        """Initialize directory scanner.

        Args:
            include_subfolders: Whether files in nested folders are collected
        """
        self.include_subfolders = include_subfolders

    async def scan_local(
        self, store: LocalStore, target: SyncTarget
    ) -> list[LocalFile]:
        """List the sync-eligible local files of a target.

        Args:
            store: Local store to list
            target: Sync target whose base folder is scanned

        Returns:
            List of LocalFile objects
        """
        entries = await store.list_entries(
            target.base_path, recursive=self.include_subfolders
        )
        files: list[LocalFile] = []
        for entry in entries:
            if not entry.is_file:
                continue
            if not is_sync_eligible(entry.path):
                logger.debug(f"Ignoring (not eligible): {entry.path}")
                continue
            files.append(LocalFile.from_entry(entry, target.base_path))
        return files

    async def scan_remote(
        self, store: RemoteStore, target: SyncTarget
    ) -> list[RemoteFile]:
        """List the sync-eligible remote files below a target's root folder.

        Args:
            store: Remote store to list
            target: Sync target whose root folder is listed

        Returns:
            List of RemoteFile objects
        """
        entries = await store.list_children(
            target.root_identifier, recursive=self.include_subfolders
        )
        remote_files: list[RemoteFile] = []
        for entry in entries:
            # Only include files, not folders
            if entry.is_folder:
                continue
            if not is_sync_eligible(entry.relative_path):
                continue
            remote_files.append(
                RemoteFile(entry=entry, relative_path=entry.relative_path)
            )
        return remote_files
