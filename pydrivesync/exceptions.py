"""Exceptions raised by PyDriveSync."""


class DriveSyncError(Exception):
    """Base exception for all PyDriveSync errors."""


class DriveConfigError(DriveSyncError):
    """Configuration is missing or invalid."""


class DriveAPIError(DriveSyncError):
    """A request against the Google Drive API failed."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class DriveAuthRequiredError(DriveAPIError):
    """No usable access token and no way to obtain one.

    Raised by token providers when neither a valid access token nor a
    refresh token is available. The user has to authenticate again.
    """


class DriveAuthExpiredError(DriveAPIError):
    """The access token was rejected and refreshing it did not help."""


class DriveTransientError(DriveAPIError):
    """A failure that is expected to go away on retry (5xx, throttling)."""


class DriveRateLimitError(DriveTransientError):
    """The API asked us to slow down (429 or a rate-limit 403)."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        retry_after: float | None = None,
    ):
        super().__init__(message, status_code)
        self.retry_after = retry_after


class DriveNetworkError(DriveTransientError):
    """The request never produced a response (DNS, connect, read timeout)."""


class DriveQuotaExceededError(DriveAPIError):
    """Storage or daily quota exhausted. Never retried."""


class DriveNotFoundError(DriveAPIError):
    """The remote object does not exist (anymore)."""


class DrivePermissionError(DriveAPIError):
    """The token is valid but lacks access to the object."""


class DriveInvalidResponseError(DriveAPIError):
    """The API answered with something we could not parse."""


class FolderResolutionError(DriveSyncError):
    """A remote folder could not be found or created."""


class LocalWriteError(DriveSyncError):
    """Writing to the local file tree failed."""


class ClockSyncError(DriveSyncError):
    """Stamping the local modification time after a download failed."""


class SyncAlreadyRunningError(DriveSyncError):
    """A pass was started while another one is still in flight."""
