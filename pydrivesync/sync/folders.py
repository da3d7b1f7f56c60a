"""Remote folder resolution with a process-lifetime identifier cache."""

import logging
from collections.abc import Iterable
from typing import Optional

from ..exceptions import (
    DriveAPIError,
    DriveAuthExpiredError,
    DriveAuthRequiredError,
    FolderResolutionError,
)
from .paths import folder_prefixes, is_within, join_folder_chain, split_parent
from .protocols import EntryKind, RemoteStore

logger = logging.getLogger(__name__)


class FolderResolver:
    """Maps relative folder paths below a root folder to remote folder IDs.

    Missing folders are created on the way. Every prefix that is resolved
    is cached, so files in sibling folders reuse the work already done for
    their common ancestors. The cache is never persisted.

    The resolver is not safe for concurrent use: two tasks resolving the
    same missing folder at once would both create it. Callers resolve all
    folders of a batch up front with pre_create_all() before transferring.
    """

    def __init__(self, remote: RemoteStore):
        """Initialize folder resolver.

        Args:
            remote: Remote store used to look up and create folders
        """
        self.remote = remote
        self._cache: dict[str, str] = {}
        self.created_paths: list[str] = []
        """Relative paths of folders created by this resolver, in order"""

    @staticmethod
    def _cache_key(root_id: str, path: str) -> str:
        return f"{root_id}:{path}"

    def cached(self, relative_folder_path: str, root_id: str) -> Optional[str]:
        """Return the cached identifier for a folder path, if any."""
        path = "/".join(join_folder_chain(relative_folder_path))
        if not path:
            return root_id
        return self._cache.get(self._cache_key(root_id, path))

    async def resolve(self, relative_folder_path: str, root_id: str) -> str:
        """Return the remote ID of a folder, creating missing folders.

        Args:
            relative_folder_path: Folder path relative to the root folder
            root_id: Remote ID of the root folder

        Returns:
            Remote folder ID

        Raises:
            FolderResolutionError: If a folder could not be looked up or created
        """
        segments = join_folder_chain(relative_folder_path)
        if not segments:
            return root_id

        full_key = self._cache_key(root_id, "/".join(segments))
        if full_key in self._cache:
            return self._cache[full_key]

        current_id = root_id
        for depth, name in enumerate(segments):
            prefix = "/".join(segments[: depth + 1])
            key = self._cache_key(root_id, prefix)
            cached_id = self._cache.get(key)
            if cached_id is not None:
                current_id = cached_id
                continue

            current_id = await self._find_or_create(name, current_id, prefix)
            self._cache[key] = current_id

        return current_id

    async def _find_or_create(self, name: str, parent_id: str, prefix: str) -> str:
        try:
            existing = await self.remote.find_child(
                name, parent_id, kind=EntryKind.FOLDER
            )
            if existing is not None:
                logger.debug("Found existing folder: %s (%s)", prefix, existing.id)
                return existing.id

            created = await self.remote.create_folder(name, parent_id)
        except (DriveAuthRequiredError, DriveAuthExpiredError):
            raise
        except DriveAPIError as e:
            raise FolderResolutionError(
                f"Failed to resolve folder '{prefix}': {e}"
            ) from e

        logger.info("Created folder: %s (%s)", prefix, created.id)
        self.created_paths.append(prefix)
        return created.id

    async def pre_create_all(
        self, relative_paths: Iterable[str], root_id: str
    ) -> set[str]:
        """Resolve the folders of a batch of files before any transfer starts.

        Folders are resolved shallowest first, so each one is looked up or
        created exactly once. A failed folder is not retried and its
        descendants are not attempted.

        Args:
            relative_paths: File paths relative to the root folder
            root_id: Remote ID of the root folder

        Returns:
            Set of folder paths that could not be resolved
        """
        folders: set[str] = set()
        for path in relative_paths:
            parent, _ = split_parent(path)
            folders.update(folder_prefixes(parent))

        failed: set[str] = set()
        for folder in sorted(folders, key=lambda p: (p.count("/"), p)):
            if any(is_within(folder, bad) for bad in failed):
                failed.add(folder)
                continue
            try:
                await self.resolve(folder, root_id)
            except FolderResolutionError as e:
                logger.error(str(e))
                failed.add(folder)
        return failed

    async def get_or_create_root(
        self, folder_name: str, parent_id: str = "root"
    ) -> str:
        """Find the top-level sync folder by name, creating it if needed.

        Args:
            folder_name: Name of the sync folder (e.g. "Obsidian-Sync")
            parent_id: Parent of the sync folder ("root" is the Drive root)

        Returns:
            Remote folder ID
        """
        key = self._cache_key(parent_id, folder_name)
        if key not in self._cache:
            self._cache[key] = await self._find_or_create(
                folder_name, parent_id, folder_name
            )
        return self._cache[key]

    def clear(self) -> None:
        """Drop every cached folder identifier."""
        self._cache.clear()
        self.created_paths.clear()

    def __len__(self) -> int:
        return len(self._cache)
