"""Data models for Google Drive API responses."""

from dataclasses import dataclass, field
from typing import Any, Optional

from .utils import parse_iso_timestamp

FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"

# Fields requested for every file resource we read back from the API
FILE_FIELDS = (
    "id,name,mimeType,modifiedTime,size,md5Checksum,version,parents,trashed"
)


@dataclass
class DriveFile:
    """A file or folder resource as listed by the Drive API.

    This is the read model the reconciler works with. It is rebuilt from
    the API on every pass and never persisted.
    """

    id: str
    name: str
    mime_type: str = "application/octet-stream"
    modified_time: Optional[int] = None
    """Remote modification time in milliseconds since the epoch"""

    size: int = 0
    content_hash: Optional[str] = None
    """MD5 checksum; absent for Google-native documents and folders"""

    version_tag: Optional[str] = None
    parent_ids: list[str] = field(default_factory=list)
    relative_path: str = ""
    """Path below the listing root, set by recursive listings"""

    @property
    def is_folder(self) -> bool:
        return self.mime_type == FOLDER_MIME_TYPE

    @classmethod
    def from_api_response(
        cls, data: dict[str, Any], relative_path: str = ""
    ) -> "DriveFile":
        """Create a DriveFile from a Drive v3 file resource.

        Args:
            data: File resource dictionary
            relative_path: Path below the listing root

        Returns:
            DriveFile instance
        """
        size_raw = data.get("size")
        version = data.get("version")
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            mime_type=data.get("mimeType", "application/octet-stream"),
            modified_time=parse_iso_timestamp(data.get("modifiedTime")),
            size=int(size_raw) if size_raw is not None else 0,
            content_hash=data.get("md5Checksum"),
            version_tag=str(version) if version is not None else None,
            parent_ids=list(data.get("parents", [])),
            relative_path=relative_path or data.get("name", ""),
        )
