"""Configuration management for PyDriveSync."""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from .exceptions import DriveConfigError
from .sync.conflicts import ConflictPolicy
from .sync.modes import SyncDirection
from .sync.state import FILE_STATE_KEY, LAST_SYNC_KEY
from .utils import (
    DEFAULT_DRIVE_FOLDER,
    DEFAULT_SYNC_INTERVAL_MS,
    read_json_document,
    update_json_document,
)

logger = logging.getLogger(__name__)

CONFIG_DIR_ENV = "PYDRIVESYNC_CONFIG_DIR"
SETTINGS_FILE = "settings.json"


@dataclass
class SyncSettings:
    """Persisted settings document.

    The document is shared with SyncStateManager, which owns the
    fileStateCache and lastSyncTime keys. Keys this class does not know
    are kept in ``extra`` and written back unchanged.
    """

    file_state_cache: dict[str, Any] = field(default_factory=dict)
    last_sync_time: Optional[int] = None
    selected_scopes: list[dict[str, str]] = field(default_factory=list)
    drive_folder: str = DEFAULT_DRIVE_FOLDER
    sync_whole_vault: bool = True
    include_subfolders: bool = True
    conflict_policy: str = ConflictPolicy.NEWER.value
    sync_direction: str = SyncDirection.BIDIRECTIONAL.value
    auto_create_folders: bool = True
    sync_interval: int = DEFAULT_SYNC_INTERVAL_MS
    auto_sync: bool = False
    client_id: Optional[str] = None
    client_secret: Optional[str] = None
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    token_expiry: Optional[int] = None
    extra: dict[str, Any] = field(default_factory=dict)

    _KEYS = {
        "file_state_cache": FILE_STATE_KEY,
        "last_sync_time": LAST_SYNC_KEY,
        "selected_scopes": "selectedScopes",
        "drive_folder": "driveFolder",
        "sync_whole_vault": "syncWholeVault",
        "include_subfolders": "includeSubfolders",
        "conflict_policy": "conflictPolicy",
        "sync_direction": "syncDirection",
        "auto_create_folders": "autoCreateFolders",
        "sync_interval": "syncInterval",
        "auto_sync": "autoSync",
        "client_id": "clientId",
        "client_secret": "clientSecret",
        "access_token": "accessToken",
        "refresh_token": "refreshToken",
        "token_expiry": "tokenExpiry",
    }

    @property
    def scope_paths(self) -> list[str]:
        return [scope["path"] for scope in self.selected_scopes if scope.get("path")]

    def add_scope(self, path: str) -> bool:
        """Add a vault folder to the selected scopes.

        Returns:
            False if the folder was already selected
        """
        path = path.strip("/")
        if path in self.scope_paths:
            return False
        name = path.rsplit("/", 1)[-1] or path
        self.selected_scopes.append({"id": path, "name": name, "path": path})
        return True

    def remove_scope(self, path: str) -> bool:
        path = path.strip("/")
        before = len(self.selected_scopes)
        self.selected_scopes = [
            s for s in self.selected_scopes if s.get("path") != path
        ]
        return len(self.selected_scopes) != before

    def validate(self) -> None:
        """Check enumerated values.

        Raises:
            DriveConfigError: If a value is invalid
        """
        try:
            ConflictPolicy(self.conflict_policy)
            SyncDirection.from_string(self.sync_direction)
        except ValueError as e:
            raise DriveConfigError(str(e)) from e
        if self.sync_interval <= 0:
            raise DriveConfigError("syncInterval must be positive")

    def to_dict(self) -> dict[str, Any]:
        data = dict(self.extra)
        for attr, key in self._KEYS.items():
            value = getattr(self, attr)
            if value is not None:
                data[key] = value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SyncSettings":
        """Create settings from a persisted document.

        A legacy single ``syncFolder`` entry becomes a selected scope.
        """
        known = {key: attr for attr, key in cls._KEYS.items()}
        values: dict[str, Any] = {}
        extra: dict[str, Any] = {}
        for key, value in data.items():
            if key in known:
                values[known[key]] = value
            elif key != "syncFolder":
                extra[key] = value

        settings = cls(**values, extra=extra)
        legacy = data.get("syncFolder")
        if isinstance(legacy, str) and legacy.strip("/"):
            if settings.add_scope(legacy):
                logger.info(f"Migrated legacy syncFolder '{legacy}' to selectedScopes")
                settings.sync_whole_vault = False
        return settings


class Config:
    """Manages the settings file and credential lookup."""

    def __init__(self, config_dir: Optional[Path] = None) -> None:
        self._config_dir = config_dir

    @property
    def config_dir(self) -> Path:
        if self._config_dir is not None:
            return self._config_dir
        env_dir = os.environ.get(CONFIG_DIR_ENV)
        if env_dir:
            return Path(env_dir)
        return Path.home() / ".config" / "pydrivesync"

    def get_config_path(self) -> Path:
        """Return the path of the settings document."""
        return self.config_dir / SETTINGS_FILE

    def load(self) -> SyncSettings:
        """Load settings, returning defaults if nothing was saved yet.

        Raises:
            DriveConfigError: If the document cannot be parsed
        """
        path = self.get_config_path()
        try:
            data = read_json_document(path)
        except ValueError as e:
            raise DriveConfigError(f"Invalid settings file {path}: {e}") from e
        return SyncSettings.from_dict(data)

    def save(self, settings: SyncSettings) -> None:
        """Write every configuration key except the sync state keys.

        The state keys are owned by SyncStateManager and left untouched.
        """
        data = settings.to_dict()
        data.pop(FILE_STATE_KEY, None)
        data.pop(LAST_SYNC_KEY, None)
        update_json_document(self.get_config_path(), data)

    def save_tokens(
        self,
        access_token: str,
        refresh_token: Optional[str] = None,
        expiry: Optional[int] = None,
    ) -> None:
        updates: dict[str, Any] = {"accessToken": access_token, "tokenExpiry": expiry}
        if refresh_token:
            updates["refreshToken"] = refresh_token
        update_json_document(self.get_config_path(), updates)

    def clear_tokens(self) -> bool:
        """Remove the stored access and refresh tokens.

        Client credentials and sync settings are kept.

        Returns:
            True if any token was stored
        """
        settings = self.load()
        if not (settings.access_token or settings.refresh_token):
            return False
        update_json_document(
            self.get_config_path(),
            {"accessToken": None, "refreshToken": None, "tokenExpiry": None},
        )
        return True

    def _credential(self, env_name: str, saved: Optional[str]) -> Optional[str]:
        return os.environ.get(env_name) or saved

    def get_client_id(self, settings: SyncSettings) -> Optional[str]:
        return self._credential("PYDRIVESYNC_CLIENT_ID", settings.client_id)

    def get_client_secret(self, settings: SyncSettings) -> Optional[str]:
        return self._credential("PYDRIVESYNC_CLIENT_SECRET", settings.client_secret)

    def get_access_token(self, settings: SyncSettings) -> Optional[str]:
        return self._credential("PYDRIVESYNC_ACCESS_TOKEN", settings.access_token)

    def get_refresh_token(self, settings: SyncSettings) -> Optional[str]:
        return self._credential("PYDRIVESYNC_REFRESH_TOKEN", settings.refresh_token)

    def is_configured(self, settings: Optional[SyncSettings] = None) -> bool:
        """Check whether some way to authenticate is available."""
        settings = settings or self.load()
        if self.get_access_token(settings):
            return True
        return bool(
            self.get_refresh_token(settings)
            and self.get_client_id(settings)
            and self.get_client_secret(settings)
        )


# Global config instance
config = Config()
