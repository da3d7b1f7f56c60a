"""Sync directions."""

from enum import Enum


class SyncDirection(str, Enum):
    """Which way content is allowed to flow during a pass."""

    UPLOAD = "upload"
    """Local changes go to the remote; remote changes are ignored"""

    DOWNLOAD = "download"
    """Remote changes come to the vault; local changes are ignored"""

    BIDIRECTIONAL = "bidirectional"
    """Both sides are reconciled"""

    @property
    def allows_upload(self) -> bool:
        return self in (SyncDirection.UPLOAD, SyncDirection.BIDIRECTIONAL)

    @property
    def allows_download(self) -> bool:
        return self in (SyncDirection.DOWNLOAD, SyncDirection.BIDIRECTIONAL)

    @classmethod
    def from_string(cls, value: str) -> "SyncDirection":
        """Parse a direction name or its abbreviation.

        Examples:
            >>> SyncDirection.from_string("up")
            <SyncDirection.UPLOAD: 'upload'>
            >>> SyncDirection.from_string("both")
            <SyncDirection.BIDIRECTIONAL: 'bidirectional'>
        """
        aliases = {
            "up": cls.UPLOAD,
            "down": cls.DOWNLOAD,
            "both": cls.BIDIRECTIONAL,
            "bi": cls.BIDIRECTIONAL,
        }
        normalized = value.strip().lower()
        if normalized in aliases:
            return aliases[normalized]
        try:
            return cls(normalized)
        except ValueError:
            valid = ", ".join(d.value for d in cls)
            raise ValueError(
                f"Invalid sync direction '{value}'. Valid directions: {valid}"
            ) from None
