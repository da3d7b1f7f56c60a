"""Shared fixtures: in-memory local and remote stores."""

import hashlib
import itertools
from collections import Counter
from typing import Optional, Union

import pytest

from pydrivesync.exceptions import DrivePermissionError
from pydrivesync.models import FOLDER_MIME_TYPE, DriveFile
from pydrivesync.sync.protocols import EntryKind, LocalEntry
from pydrivesync.utils import parse_iso_timestamp

ROOT_ID = "root-folder"


class FakeLocalStore:
    """Vault kept in a dict, with controllable modification times."""

    def __init__(self) -> None:
        self.files: dict[str, tuple[Union[str, bytes], int]] = {}
        self.folders: set[str] = set()
        self.clock = 1_000_000
        self.calls: Counter = Counter()
        self.fail_set_mod_time = False

    def add(self, path: str, content: Union[str, bytes], mod_time: int) -> None:
        self.files[path] = (content, mod_time)
        parts = path.split("/")[:-1]
        for i in range(1, len(parts) + 1):
            self.folders.add("/".join(parts[:i]))

    def content(self, path: str) -> Union[str, bytes]:
        return self.files[path][0]

    def mod_time(self, path: str) -> int:
        return self.files[path][1]

    async def list_entries(
        self, folder: str = "", recursive: bool = True
    ) -> list[LocalEntry]:
        self.calls["list_entries"] += 1
        prefix = f"{folder}/" if folder else ""
        entries = []
        for path in sorted(self.folders):
            if path.startswith(prefix):
                rest = path[len(prefix):]
                if recursive or "/" not in rest:
                    entries.append(LocalEntry(path, EntryKind.FOLDER))
        for path, (content, mod_time) in sorted(self.files.items()):
            if path.startswith(prefix):
                rest = path[len(prefix):]
                if recursive or "/" not in rest:
                    entries.append(
                        LocalEntry(path, EntryKind.FILE, mod_time, len(content))
                    )
        return entries

    async def stat(self, path: str) -> Optional[LocalEntry]:
        if path in self.files:
            content, mod_time = self.files[path]
            return LocalEntry(path, EntryKind.FILE, mod_time, len(content))
        if path in self.folders:
            return LocalEntry(path, EntryKind.FOLDER)
        return None

    async def read(self, path: str, binary: bool) -> Union[str, bytes]:
        self.calls["read"] += 1
        content = self.files[path][0]
        if binary and isinstance(content, str):
            return content.encode("utf-8")
        if not binary and isinstance(content, bytes):
            return content.decode("utf-8")
        return content

    async def write(
        self, path: str, content: Union[str, bytes], binary: bool
    ) -> None:
        self.calls["write"] += 1
        self.clock += 1
        self.files[path] = (content, self.clock)

    async def create_folder(self, path: str) -> None:
        self.calls["create_folder"] += 1
        if path in self.folders:
            raise FileExistsError(path)
        self.folders.add(path)

    async def exists(self, path: str) -> bool:
        return path in self.files or path in self.folders

    async def set_mod_time(self, path: str, mod_time: int) -> bool:
        self.calls["set_mod_time"] += 1
        if self.fail_set_mod_time or path not in self.files:
            return False
        self.files[path] = (self.files[path][0], mod_time)
        return True


class FakeRemoteStore:
    """Drive-like folder tree kept in memory."""

    def __init__(self) -> None:
        self._ids = itertools.count(1)
        self.entries: dict[str, DriveFile] = {}
        self.contents: dict[str, bytes] = {}
        self.clock = 5_000_000
        self.calls: Counter = Counter()
        self.fail_folder_names: set[str] = set()
        self.fail_uploads: Optional[Exception] = None

    # Helpers for tests

    def add_folder(self, name: str, parent_id: str = ROOT_ID) -> DriveFile:
        entry = DriveFile(
            id=f"folder-{next(self._ids)}",
            name=name,
            mime_type=FOLDER_MIME_TYPE,
            parent_ids=[parent_id],
        )
        self.entries[entry.id] = entry
        return entry

    def add_file(
        self,
        name: str,
        content: Union[str, bytes],
        parent_id: str = ROOT_ID,
        modified_time: Optional[int] = None,
    ) -> DriveFile:
        raw = content.encode("utf-8") if isinstance(content, str) else content
        entry = DriveFile(
            id=f"file-{next(self._ids)}",
            name=name,
            mime_type="text/markdown",
            parent_ids=[parent_id],
        )
        self.entries[entry.id] = entry
        self._store(entry, raw, modified_time)
        return entry

    def _store(
        self, entry: DriveFile, raw: bytes, modified_time: Optional[int]
    ) -> None:
        self.clock += 1000
        self.contents[entry.id] = raw
        entry.size = len(raw)
        entry.content_hash = hashlib.md5(raw).hexdigest()
        entry.modified_time = (
            modified_time if modified_time is not None else self.clock
        )
        entry.version_tag = str(int(entry.version_tag or 0) + 1)

    def children(self, parent_id: str) -> list[DriveFile]:
        return [e for e in self.entries.values() if parent_id in e.parent_ids]

    def find_by_path(
        self, path: str, root_id: str = ROOT_ID
    ) -> Optional[DriveFile]:
        current = root_id
        entry = None
        for name in path.split("/"):
            matches = [e for e in self.children(current) if e.name == name]
            if not matches:
                return None
            entry = matches[0]
            current = entry.id
        return entry

    @staticmethod
    def _copy(entry: DriveFile, relative_path: str = "") -> DriveFile:
        return DriveFile(
            id=entry.id,
            name=entry.name,
            mime_type=entry.mime_type,
            modified_time=entry.modified_time,
            size=entry.size,
            content_hash=entry.content_hash,
            version_tag=entry.version_tag,
            parent_ids=list(entry.parent_ids),
            relative_path=relative_path or entry.name,
        )

    # RemoteStore protocol

    async def list_children(
        self, folder_id: str, recursive: bool = False
    ) -> list[DriveFile]:
        self.calls["list_children"] += 1
        result = []
        pending = [(folder_id, "")]
        while pending:
            parent, prefix = pending.pop()
            for entry in self.children(parent):
                path = f"{prefix}/{entry.name}" if prefix else entry.name
                result.append(self._copy(entry, path))
                if recursive and entry.is_folder:
                    pending.append((entry.id, path))
        return result

    async def get_content(self, file_id: str) -> bytes:
        self.calls["get_content"] += 1
        return self.contents[file_id]

    async def create_file(
        self,
        name: str,
        parent_id: str,
        content: Union[str, bytes, None],
        metadata: Optional[dict] = None,
        mime_type: str = "text/plain",
    ) -> DriveFile:
        self.calls["create_file"] += 1
        if self.fail_uploads is not None:
            raise self.fail_uploads
        entry = DriveFile(
            id=f"file-{next(self._ids)}",
            name=name,
            mime_type=mime_type,
            parent_ids=[parent_id],
        )
        self.entries[entry.id] = entry
        raw = content.encode("utf-8") if isinstance(content, str) else content
        self._store(entry, raw or b"", self._mod_time(metadata))
        return self._copy(entry)

    async def update_file(
        self,
        file_id: str,
        content: Union[str, bytes, None],
        metadata: Optional[dict] = None,
        mime_type: str = "text/plain",
    ) -> DriveFile:
        self.calls["update_file"] += 1
        if self.fail_uploads is not None:
            raise self.fail_uploads
        entry = self.entries[file_id]
        if content is not None:
            raw = content.encode("utf-8") if isinstance(content, str) else content
            self._store(entry, raw, None)
        mod_time = self._mod_time(metadata)
        if mod_time is not None:
            entry.modified_time = mod_time
        return self._copy(entry)

    async def create_folder(self, name: str, parent_id: str) -> DriveFile:
        self.calls["create_folder"] += 1
        if name in self.fail_folder_names:
            raise DrivePermissionError(f"Cannot create {name}", 403)
        return self._copy(self.add_folder(name, parent_id))

    async def find_child(
        self, name: str, parent_id: str, kind: Optional[EntryKind] = None
    ) -> Optional[DriveFile]:
        self.calls["find_child"] += 1
        for entry in self.children(parent_id):
            if entry.name != name:
                continue
            if kind is EntryKind.FOLDER and not entry.is_folder:
                continue
            if kind is EntryKind.FILE and entry.is_folder:
                continue
            return self._copy(entry)
        return None

    async def delete_file(self, file_id: str) -> None:
        self.calls["delete_file"] += 1
        self.entries.pop(file_id, None)
        self.contents.pop(file_id, None)

    @staticmethod
    def _mod_time(metadata: Optional[dict]) -> Optional[int]:
        if not metadata:
            return None
        return parse_iso_timestamp(metadata.get("modifiedTime"))


@pytest.fixture
def local_store():
    return FakeLocalStore()


@pytest.fixture
def remote_store():
    return FakeRemoteStore()
