"""Collaborator interfaces the sync engine depends on.

The engine never talks to the filesystem or to Google Drive directly. It
works against these protocols so the host application can plug in its own
file-tree API, and tests can use in-memory doubles.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Protocol, Union

from ..models import DriveFile


class EntryKind(str, Enum):
    """Kind of an entry returned by a local listing."""

    FILE = "file"
    FOLDER = "folder"


@dataclass(frozen=True)
class LocalEntry:
    """One entry of the local file tree.

    Paths are relative to the local store root and always use forward
    slashes. Folders carry no size or modification time.
    """

    path: str
    kind: EntryKind
    mod_time: Optional[int] = None
    """Modification time in milliseconds since the epoch"""

    size: int = 0

    @property
    def name(self) -> str:
        return self.path.rsplit("/", 1)[-1]

    @property
    def is_file(self) -> bool:
        return self.kind is EntryKind.FILE


class LocalStore(Protocol):
    """Host file tree (vault) the engine syncs from and to."""

    async def list_entries(
        self, folder: str = "", recursive: bool = True
    ) -> list[LocalEntry]: ...

    async def stat(self, path: str) -> Optional[LocalEntry]: ...

    async def read(self, path: str, binary: bool) -> Union[str, bytes]: ...

    async def write(
        self, path: str, content: Union[str, bytes], binary: bool
    ) -> None: ...

    async def create_folder(self, path: str) -> None: ...

    async def exists(self, path: str) -> bool: ...

    async def set_mod_time(self, path: str, mod_time: int) -> bool: ...


class RemoteStore(Protocol):
    """Remote object store organised as a folder hierarchy."""

    async def list_children(
        self, folder_id: str, recursive: bool = False
    ) -> list[DriveFile]: ...

    async def get_content(self, file_id: str) -> bytes: ...

    async def create_file(
        self,
        name: str,
        parent_id: str,
        content: Union[str, bytes, None],
        metadata: Optional[dict] = None,
        mime_type: str = "text/plain",
    ) -> DriveFile: ...

    async def update_file(
        self,
        file_id: str,
        content: Union[str, bytes, None],
        metadata: Optional[dict] = None,
        mime_type: str = "text/plain",
    ) -> DriveFile: ...

    async def create_folder(self, name: str, parent_id: str) -> DriveFile: ...

    async def find_child(
        self, name: str, parent_id: str, kind: Optional[EntryKind] = None
    ) -> Optional[DriveFile]: ...

    async def delete_file(self, file_id: str) -> None: ...


class TokenProvider(Protocol):
    """Supplies OAuth access tokens to the request layer."""

    async def get_valid_access_token(self, force_refresh: bool = False) -> str: ...
