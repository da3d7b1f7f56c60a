"""Tests for the filesystem-backed local store."""

import os

import pytest

from pydrivesync.exceptions import LocalWriteError
from pydrivesync.local_store import FileSystemLocalStore
from pydrivesync.sync.protocols import EntryKind


@pytest.fixture
def vault(tmp_path):
    root = tmp_path / "vault"
    root.mkdir()
    (root / "notes").mkdir()
    (root / "notes" / "a.md").write_text("alpha", encoding="utf-8")
    (root / "top.md").write_text("top", encoding="utf-8")
    return root


@pytest.fixture
def store(vault):
    return FileSystemLocalStore(vault)


class TestListing:
    """Tests for list_entries and stat."""

    @pytest.mark.asyncio
    async def test_recursive_listing(self, store):
        entries = await store.list_entries()

        assert [e.path for e in entries] == ["notes", "notes/a.md", "top.md"]
        assert entries[0].kind is EntryKind.FOLDER
        assert entries[1].kind is EntryKind.FILE
        assert entries[1].size == 5

    @pytest.mark.asyncio
    async def test_non_recursive_listing(self, store):
        entries = await store.list_entries(recursive=False)
        assert [e.path for e in entries] == ["notes", "top.md"]

    @pytest.mark.asyncio
    async def test_subfolder_listing_keeps_vault_paths(self, store):
        entries = await store.list_entries("notes")
        assert [e.path for e in entries] == ["notes/a.md"]

    @pytest.mark.asyncio
    async def test_missing_folder(self, store):
        assert await store.list_entries("nope") == []

    @pytest.mark.asyncio
    async def test_symlinks_are_skipped(self, store, vault):
        try:
            os.symlink(vault / "top.md", vault / "link.md")
        except (OSError, NotImplementedError):
            pytest.skip("symlinks not supported")

        paths = [e.path for e in await store.list_entries()]
        assert "link.md" not in paths

    @pytest.mark.asyncio
    async def test_stat(self, store, vault):
        os.utime(vault / "top.md", (1_700_000_000.5, 1_700_000_000.5))

        entry = await store.stat("top.md")

        assert entry.mod_time == 1_700_000_000_500
        assert await store.stat("missing.md") is None

    @pytest.mark.asyncio
    async def test_path_escape_rejected(self, store):
        with pytest.raises(ValueError):
            await store.stat("../outside.md")


class TestReadWrite:
    """Tests for read, write and folder creation."""

    @pytest.mark.asyncio
    async def test_text_round_trip(self, store, vault):
        await store.write("notes/b.md", "# Über", binary=False)

        assert (vault / "notes" / "b.md").read_text(encoding="utf-8") == "# Über"
        assert await store.read("notes/b.md", binary=False) == "# Über"

    @pytest.mark.asyncio
    async def test_crlf_text_is_byte_identical(self, store, vault):
        raw = "line one\r\nline two\r\n".encode("utf-8")
        (vault / "crlf.md").write_bytes(raw)

        text = await store.read("crlf.md", binary=False)
        await store.write("copy.md", text, binary=False)

        assert text == "line one\r\nline two\r\n"
        assert (vault / "copy.md").read_bytes() == raw

    @pytest.mark.asyncio
    async def test_write_keeps_lf_line_endings(self, store, vault):
        await store.write("lf.md", "a\nb\n", binary=False)
        assert (vault / "lf.md").read_bytes() == b"a\nb\n"

    @pytest.mark.asyncio
    async def test_invalid_utf8_text_read_raises(self, store, vault):
        (vault / "bad.md").write_bytes(b"\xff\xfe")
        with pytest.raises(UnicodeDecodeError):
            await store.read("bad.md", binary=False)

    @pytest.mark.asyncio
    async def test_binary_write(self, store, vault):
        await store.write("img.png", b"\x89PNG\x00", binary=True)
        assert (vault / "img.png").read_bytes() == b"\x89PNG\x00"

    @pytest.mark.asyncio
    async def test_write_into_missing_folder(self, store):
        with pytest.raises(LocalWriteError):
            await store.write("missing/x.md", "x", binary=False)

    @pytest.mark.asyncio
    async def test_create_folder(self, store, vault):
        await store.create_folder("notes/daily")

        assert (vault / "notes" / "daily").is_dir()
        assert await store.exists("notes/daily")

    @pytest.mark.asyncio
    async def test_create_existing_folder(self, store):
        with pytest.raises(FileExistsError):
            await store.create_folder("notes")

    @pytest.mark.asyncio
    async def test_create_folder_over_file(self, store):
        with pytest.raises(LocalWriteError):
            await store.create_folder("top.md")

    @pytest.mark.asyncio
    async def test_set_mod_time(self, store, vault):
        assert await store.set_mod_time("top.md", 1_600_000_000_000)

        assert (vault / "top.md").stat().st_mtime == pytest.approx(1_600_000_000)
        entry = await store.stat("top.md")
        assert entry.mod_time == 1_600_000_000_000

    @pytest.mark.asyncio
    async def test_set_mod_time_on_folder(self, store):
        assert not await store.set_mod_time("notes", 1_600_000_000_000)
