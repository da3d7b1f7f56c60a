"""PyDriveSync - two-way sync between a local vault and Google Drive."""

from .api import DriveClient
from .auth import OAuthTokenProvider, StaticTokenProvider
from .exceptions import (
    ClockSyncError,
    DriveAPIError,
    DriveAuthExpiredError,
    DriveAuthRequiredError,
    DriveConfigError,
    DriveInvalidResponseError,
    DriveNetworkError,
    DriveNotFoundError,
    DrivePermissionError,
    DriveQuotaExceededError,
    DriveRateLimitError,
    DriveSyncError,
    DriveTransientError,
    FolderResolutionError,
    LocalWriteError,
    SyncAlreadyRunningError,
)
from .local_store import FileSystemLocalStore
from .models import DriveFile

__all__ = [
    "DriveClient",
    "DriveFile",
    "FileSystemLocalStore",
    "OAuthTokenProvider",
    "StaticTokenProvider",
    "ClockSyncError",
    "DriveAPIError",
    "DriveAuthExpiredError",
    "DriveAuthRequiredError",
    "DriveConfigError",
    "DriveInvalidResponseError",
    "DriveNetworkError",
    "DriveNotFoundError",
    "DrivePermissionError",
    "DriveQuotaExceededError",
    "DriveRateLimitError",
    "DriveSyncError",
    "DriveTransientError",
    "FolderResolutionError",
    "LocalWriteError",
    "SyncAlreadyRunningError",
]
