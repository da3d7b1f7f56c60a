"""Tests for eligibility filtering and directory scanning."""

import pytest

from pydrivesync.sync.pair import SyncTarget
from pydrivesync.sync.scanner import (
    ContentKind,
    DirectoryScanner,
    classify_extension,
    guess_mime_type,
    is_sync_eligible,
)

from conftest import ROOT_ID


class TestEligibility:
    """Tests for the extension allow-list and exclusion patterns."""

    @pytest.mark.parametrize(
        "path", ["a.md", "notes/b.TXT", "data.json", "img/photo.jpeg", "doc.pdf"]
    )
    def test_eligible(self, path):
        assert is_sync_eligible(path)

    @pytest.mark.parametrize(
        "path",
        [
            "archive.zip",
            ".hidden.md",
            ".obsidian/workspace.json",
            "notes/draft.md.tmp",
            "notes/draft.bak",
            "sync.lock",
            "",
        ],
    )
    def test_not_eligible(self, path):
        assert not is_sync_eligible(path)

    def test_classify_extension(self):
        assert classify_extension("a.md") is ContentKind.TEXT
        assert classify_extension("a.PNG") is ContentKind.BINARY
        assert classify_extension("a.exe") is None

    def test_guess_mime_type(self):
        assert guess_mime_type("a.md") == "text/markdown"
        assert guess_mime_type("a.pdf") == "application/pdf"
        assert guess_mime_type("a.bin") == "application/octet-stream"

    def test_guess_mime_type_falls_back_to_registry(self):
        assert guess_mime_type("Archive.ZIP") == "application/zip"
        assert guess_mime_type("drawing.svg") == "image/svg+xml"
        assert guess_mime_type("a.nosuchext") == "application/octet-stream"


class TestDirectoryScanner:
    """Tests for DirectoryScanner on both sides."""

    @pytest.mark.asyncio
    async def test_scan_local_relative_to_base(self, local_store):
        local_store.add("notes/a.md", "A", 1)
        local_store.add("notes/sub/b.md", "B", 2)
        local_store.add("notes/skip.zip", b"z", 3)
        local_store.add("other/c.md", "C", 4)

        files = await DirectoryScanner().scan_local(
            local_store, SyncTarget(ROOT_ID, "notes")
        )

        assert sorted(f.relative_path for f in files) == ["a.md", "sub/b.md"]
        assert {f.path for f in files} == {"notes/a.md", "notes/sub/b.md"}

    @pytest.mark.asyncio
    async def test_scan_local_without_subfolders(self, local_store):
        local_store.add("a.md", "A", 1)
        local_store.add("sub/b.md", "B", 2)

        files = await DirectoryScanner(include_subfolders=False).scan_local(
            local_store, SyncTarget(ROOT_ID)
        )

        assert [f.relative_path for f in files] == ["a.md"]

    @pytest.mark.asyncio
    async def test_scan_remote_skips_folders_and_ineligible(self, remote_store):
        sub = remote_store.add_folder("sub")
        remote_store.add_file("a.md", "A")
        remote_store.add_file("b.md", "B", parent_id=sub.id)
        remote_store.add_file("c.zip", "C")

        files = await DirectoryScanner().scan_remote(remote_store, SyncTarget(ROOT_ID))

        assert sorted(f.relative_path for f in files) == ["a.md", "sub/b.md"]

    @pytest.mark.asyncio
    async def test_scan_remote_without_subfolders(self, remote_store):
        sub = remote_store.add_folder("sub")
        remote_store.add_file("a.md", "A")
        remote_store.add_file("b.md", "B", parent_id=sub.id)

        files = await DirectoryScanner(include_subfolders=False).scan_remote(
            remote_store, SyncTarget(ROOT_ID)
        )

        assert [f.relative_path for f in files] == ["a.md"]
