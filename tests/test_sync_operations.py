"""Tests for upload and download transfers."""

import hashlib
from unittest.mock import AsyncMock, Mock

import pytest

from pydrivesync.exceptions import (
    DriveQuotaExceededError,
    DriveTransientError,
    LocalWriteError,
)
from pydrivesync.sync.folders import FolderResolver
from pydrivesync.sync.operations import TransferEngine
from pydrivesync.sync.scanner import LocalFile, RemoteFile
from pydrivesync.sync.state import FileStateStore

from conftest import ROOT_ID


@pytest.fixture
def state():
    return FileStateStore()


@pytest.fixture
def persist():
    return Mock()


@pytest.fixture
def transfer(local_store, remote_store, state, persist):
    return TransferEngine(
        local_store,
        remote_store,
        state,
        FolderResolver(remote_store),
        persist=persist,
        inline_threshold=100 * 1024,
    )


async def _local_file(local_store, path: str) -> LocalFile:
    entry = await local_store.stat(path)
    return LocalFile.from_entry(entry, "")


async def _remote_file(remote_store, path: str) -> RemoteFile:
    for entry in await remote_store.list_children(ROOT_ID, recursive=True):
        if entry.relative_path == path:
            return RemoteFile(entry=entry, relative_path=path)
    raise AssertionError(f"{path} not found remotely")


class TestUpload:
    """Tests for TransferEngine.upload_file."""

    @pytest.mark.asyncio
    async def test_new_text_file(
        self, transfer, local_store, remote_store, state, persist
    ):
        local_store.add("notes/a.md", "hello", 1_000_000)

        result = await transfer.upload_file(
            await _local_file(local_store, "notes/a.md"), ROOT_ID
        )

        assert result.success
        remote = remote_store.find_by_path("notes/a.md")
        assert remote_store.contents[remote.id] == b"hello"
        assert remote.modified_time == 1_000_000
        assert remote_store.calls["create_file"] == 1

        recorded = state.get("notes/a.md")
        assert recorded.local_mod_time == 1_000_000
        assert recorded.remote_hash == hashlib.md5(b"hello").hexdigest()
        assert recorded.remote_mod_time == 1_000_000
        assert recorded.last_sync_time is not None
        persist.assert_called_once()

    @pytest.mark.asyncio
    async def test_existing_file_is_updated(self, transfer, local_store, remote_store):
        remote_store.add_file("a.md", "old")
        local_store.add("a.md", "new", 2_000_000)

        result = await transfer.upload_file(
            await _local_file(local_store, "a.md"),
            ROOT_ID,
            await _remote_file(remote_store, "a.md"),
        )

        assert result.success
        assert remote_store.calls["create_file"] == 0
        assert remote_store.calls["update_file"] == 2
        remote = remote_store.find_by_path("a.md")
        assert remote_store.contents[remote.id] == b"new"
        assert remote.modified_time == 2_000_000

    @pytest.mark.asyncio
    async def test_unlisted_remote_duplicate_is_found_by_name(
        self, transfer, local_store, remote_store
    ):
        """A same-named remote file is updated rather than duplicated."""
        remote_store.add_file("a.md", "old")
        local_store.add("a.md", "new", 2_000_000)

        await transfer.upload_file(await _local_file(local_store, "a.md"), ROOT_ID)

        assert remote_store.calls["create_file"] == 0
        assert len(remote_store.children(ROOT_ID)) == 1

    @pytest.mark.asyncio
    async def test_small_binary_single_request(
        self, transfer, local_store, remote_store
    ):
        local_store.add("img.png", b"\x89PNG" * 10, 1_000_000)

        result = await transfer.upload_file(
            await _local_file(local_store, "img.png"), ROOT_ID
        )

        assert result.success
        assert remote_store.calls["create_file"] == 1
        assert remote_store.calls["update_file"] == 0

    @pytest.mark.asyncio
    async def test_large_binary_two_phases(self, transfer, local_store, remote_store):
        payload = bytes(range(256)) * 800
        local_store.add("doc.pdf", payload, 1_000_000)

        result = await transfer.upload_file(
            await _local_file(local_store, "doc.pdf"), ROOT_ID
        )

        assert result.success
        assert remote_store.calls["create_file"] == 1
        assert remote_store.calls["update_file"] == 2
        remote = remote_store.find_by_path("doc.pdf")
        assert remote_store.contents[remote.id] == payload
        assert remote.modified_time == 1_000_000

    @pytest.mark.asyncio
    async def test_two_phase_create_carries_no_mod_time(
        self, transfer, local_store, remote_store
    ):
        local_store.add("img.png", b"\x89PNG" * 50 * 1024, 1_000_000)
        remote_store.create_file = AsyncMock(wraps=remote_store.create_file)

        await transfer.upload_file(await _local_file(local_store, "img.png"), ROOT_ID)

        assert remote_store.create_file.await_args.args[3] is None

    @pytest.mark.asyncio
    async def test_interrupted_two_phase_upload_is_removed(
        self, transfer, local_store, remote_store, state
    ):
        local_store.add("img.png", b"\x89PNG" * 50 * 1024, 1_000_000)
        remote_store.update_file = AsyncMock(
            side_effect=DriveTransientError("unavailable", 503)
        )

        result = await transfer.upload_file(
            await _local_file(local_store, "img.png"), ROOT_ID
        )

        assert not result.success
        assert isinstance(result.error, DriveTransientError)
        assert remote_store.calls["delete_file"] == 1
        assert remote_store.find_by_path("img.png") is None
        assert "img.png" not in state

    @pytest.mark.asyncio
    async def test_invalid_utf8_text_uploaded_as_bytes(
        self, transfer, local_store, remote_store
    ):
        local_store.add("bad.md", b"\xff\xfe# title", 1_000_000)

        result = await transfer.upload_file(
            await _local_file(local_store, "bad.md"), ROOT_ID
        )

        assert result.success
        remote = remote_store.find_by_path("bad.md")
        assert remote_store.contents[remote.id] == b"\xff\xfe# title"

    @pytest.mark.asyncio
    async def test_failure_leaves_state_untouched(
        self, transfer, local_store, remote_store, state, persist
    ):
        remote_store.fail_uploads = DriveQuotaExceededError("quota", 403)
        local_store.add("a.md", "x", 1_000_000)

        result = await transfer.upload_file(
            await _local_file(local_store, "a.md"), ROOT_ID
        )

        assert not result.success
        assert isinstance(result.error, DriveQuotaExceededError)
        assert "a.md" not in state
        persist.assert_not_called()

    @pytest.mark.asyncio
    async def test_folder_failure_is_reported(
        self, transfer, local_store, remote_store
    ):
        remote_store.fail_folder_names.add("notes")
        local_store.add("notes/a.md", "x", 1_000_000)

        result = await transfer.upload_file(
            await _local_file(local_store, "notes/a.md"), ROOT_ID
        )

        assert not result.success
        assert remote_store.calls["create_file"] == 0


class TestDownload:
    """Tests for TransferEngine.download."""

    @pytest.mark.asyncio
    async def test_new_text_file(self, transfer, local_store, remote_store, state):
        folder = remote_store.add_folder("notes")
        remote_store.add_file("x.md", "content", folder.id, modified_time=7_000_000)
        remote = await _remote_file(remote_store, "notes/x.md")

        result = await transfer.download(remote, "")

        assert result.success
        assert local_store.content("notes/x.md") == "content"
        assert "notes" in local_store.folders
        assert local_store.mod_time("notes/x.md") == 7_000_000

        recorded = state.get("notes/x.md")
        assert recorded.local_mod_time == 7_000_000
        assert recorded.remote_hash == remote.content_hash
        assert recorded.remote_mod_time == 7_000_000

    @pytest.mark.asyncio
    async def test_into_base_path(self, transfer, local_store, remote_store, state):
        remote_store.add_file("x.md", "content")
        remote = await _remote_file(remote_store, "x.md")

        await transfer.download(remote, "projects/work")

        assert local_store.content("projects/work/x.md") == "content"
        assert "projects/work/x.md" in state

    @pytest.mark.asyncio
    async def test_mod_time_failure_is_tolerated(
        self, transfer, local_store, remote_store, state
    ):
        local_store.fail_set_mod_time = True
        remote_store.add_file("x.md", "content", modified_time=7_000_000)

        result = await transfer.download(await _remote_file(remote_store, "x.md"), "")

        assert result.success
        write_time = local_store.mod_time("x.md")
        assert write_time != 7_000_000
        assert state.get("x.md").local_mod_time == write_time

    @pytest.mark.asyncio
    async def test_binary_content(self, transfer, local_store, remote_store):
        payload = b"\x00\xff\x10"
        remote_store.add_file("pic.png", payload)

        await transfer.download(await _remote_file(remote_store, "pic.png"), "")

        assert local_store.content("pic.png") == payload

    @pytest.mark.asyncio
    async def test_invalid_utf8_text_written_as_bytes(
        self, transfer, local_store, remote_store
    ):
        remote_store.add_file("bad.md", b"\xff\xfe")

        result = await transfer.download(await _remote_file(remote_store, "bad.md"), "")

        assert result.success
        assert local_store.content("bad.md") == b"\xff\xfe"

    @pytest.mark.asyncio
    async def test_missing_folder_without_auto_create(
        self, local_store, remote_store, state
    ):
        transfer = TransferEngine(
            local_store,
            remote_store,
            state,
            FolderResolver(remote_store),
            auto_create_folders=False,
        )
        folder = remote_store.add_folder("notes")
        remote_store.add_file("x.md", "content", folder.id)

        result = await transfer.download(
            await _remote_file(remote_store, "notes/x.md"), ""
        )

        assert not result.success
        assert isinstance(result.error, LocalWriteError)
        assert "notes/x.md" not in local_store.files
