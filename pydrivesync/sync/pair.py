"""Sync target definition."""

from dataclasses import dataclass
from typing import Any, Optional


@dataclass
class SyncTarget:
    """One sync scope: a remote root folder paired with a local base folder.

    Whole-vault sync uses a single target with an empty base path. Folder
    sync uses one target per selected folder. Targets processed in the
    same pass must not overlap.

    Examples:
        >>> target = SyncTarget(root_identifier="abc123", base_path="/notes/")
        >>> target.base_path
        'notes'
    """

    root_identifier: str
    """Remote ID of the folder that mirrors base_path"""

    base_path: str = ""
    """Local folder relative to the vault root ("" for the whole vault)"""

    name: Optional[str] = None
    """Display name used in progress and log messages"""

    def __post_init__(self) -> None:
        if not self.root_identifier:
            raise ValueError("Sync target needs a remote root identifier")
        self.base_path = self.base_path.strip("/")

    @property
    def label(self) -> str:
        return self.name or self.base_path or "vault"

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SyncTarget":
        """Create a SyncTarget from a dictionary.

        Raises:
            ValueError: If rootIdentifier is missing
        """
        if "rootIdentifier" not in data:
            raise ValueError("Missing required fields: rootIdentifier")
        return cls(
            root_identifier=data["rootIdentifier"],
            base_path=data.get("basePath", ""),
            name=data.get("name"),
        )

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "rootIdentifier": self.root_identifier,
            "basePath": self.base_path,
        }
        if self.name:
            result["name"] = self.name
        return result
