"""Utility functions for PyDriveSync."""

import json
import os
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

# =============================================================================
# Constants for sync operations
# =============================================================================

# Binary files below this size are sent inline as base64 in a multipart body
DEFAULT_INLINE_UPLOAD_THRESHOLD: int = 100 * 1024

# Two timestamps closer than this are considered equal (milliseconds)
DEFAULT_TOLERANCE_MS: int = 1000

# Retry configuration for transient errors
DEFAULT_MAX_RETRIES: int = 2
DEFAULT_RETRY_DELAY: float = 1.0  # seconds

# Pause between two paths of a pass so other tasks get a turn (seconds)
DEFAULT_YIELD_DELAY: float = 0.1

# Maximum folder depth followed by recursive remote listings
DEFAULT_MAX_DEPTH: int = 32

# Default interval between automatic passes (milliseconds)
DEFAULT_SYNC_INTERVAL_MS: int = 5 * 60 * 1000

# Name of the folder under the Drive root that holds synced files
DEFAULT_DRIVE_FOLDER: str = "Obsidian-Sync"


# =============================================================================
# Timestamp utilities
# =============================================================================


def now_millis() -> int:
    """Current wall-clock time in milliseconds since the epoch."""
    return int(time.time() * 1000)


def to_millis(seconds: float) -> int:
    """Convert a POSIX timestamp in seconds to integer milliseconds."""
    return int(round(seconds * 1000))


def parse_iso_timestamp(timestamp_str: Optional[str]) -> Optional[int]:
    """Parse an RFC 3339 timestamp from the Drive API.

    Args:
        timestamp_str: Timestamp string (e.g., "2025-01-15T10:30:00.000Z")

    Returns:
        Milliseconds since the epoch, or None if parsing fails
    """
    if not timestamp_str:
        return None

    try:
        # The 'Z' suffix indicates UTC time
        if timestamp_str.endswith("Z"):
            timestamp_str = timestamp_str[:-1] + "+00:00"
        dt = datetime.fromisoformat(timestamp_str)
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        return to_millis(dt.timestamp())
    except (ValueError, AttributeError):
        return None


def format_iso_timestamp(millis: int) -> str:
    """Format milliseconds since the epoch as an RFC 3339 UTC string.

    Examples:
        >>> format_iso_timestamp(0)
        '1970-01-01T00:00:00.000Z'
    """
    dt = datetime.fromtimestamp(millis / 1000, tz=timezone.utc)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{millis % 1000:03d}Z"


# =============================================================================
# Size formatting utilities
# =============================================================================


def format_size(size_bytes: int) -> str:
    """Format file size in human-readable format.

    Args:
        size_bytes: Size in bytes

    Returns:
        Formatted size string (e.g., "1.5 MB", "256 B")
    """
    if size_bytes < 1024:
        return f"{size_bytes} B"
    elif size_bytes < 1024 * 1024:
        return f"{size_bytes / 1024:.1f} KB"
    elif size_bytes < 1024 * 1024 * 1024:
        return f"{size_bytes / 1024 / 1024:.1f} MB"
    else:
        return f"{size_bytes / 1024 / 1024 / 1024:.1f} GB"


# =============================================================================
# JSON document utilities
# =============================================================================


def read_json_document(path: Path) -> dict[str, Any]:
    """Read a JSON object from disk, returning {} if the file is missing."""
    if not path.exists():
        return {}
    with open(path, encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, dict):
        raise ValueError(f"Expected a JSON object in {path}")
    return data


def update_json_document(path: Path, updates: dict[str, Any]) -> None:
    """Merge top-level keys into a JSON document and write it atomically.

    Keys not present in updates are preserved, so several owners can
    share one document as long as they write disjoint keys.
    """
    try:
        document = read_json_document(path)
    except (json.JSONDecodeError, ValueError):
        document = {}
    document.update(updates)

    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    with open(tmp_path, "w", encoding="utf-8") as f:
        json.dump(document, f, indent=2)
    os.replace(tmp_path, path)
