"""Progress reporting and cancellation for sync passes."""

import logging
from dataclasses import dataclass
from typing import Callable, Optional


@dataclass(frozen=True)
class ProgressEvent:
    """Emitted after each path of a pass has been processed."""

    processed: int
    total: int
    label: str


@dataclass(frozen=True)
class LogEvent:
    """A human-readable message about the running pass."""

    message: str
    level: int = logging.INFO


ProgressCallback = Callable[[ProgressEvent], None]
LogCallback = Callable[[LogEvent], None]


class CancellationToken:
    """Cooperative cancellation flag polled between paths.

    Cancelling never interrupts a transfer that is already running; the
    pass stops before it starts the next path.
    """

    def __init__(self) -> None:
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def is_cancelled(self) -> bool:
        return self._cancelled

    def reset(self) -> None:
        self._cancelled = False


class SyncProgressTracker:
    """Fans pass events out to optional callbacks.

    Callback errors are logged and swallowed so a broken display can never
    abort a pass.
    """

    def __init__(
        self,
        on_progress: Optional[ProgressCallback] = None,
        on_log: Optional[LogCallback] = None,
    ):
        self.on_progress = on_progress
        self.on_log = on_log
        self._logger = logging.getLogger(__name__)

    def progress(self, processed: int, total: int, label: str) -> None:
        if self.on_progress is None:
            return
        try:
            self.on_progress(ProgressEvent(processed, total, label))
        except Exception as e:
            self._logger.warning(f"Progress callback failed: {e}")

    def log(self, message: str, level: int = logging.INFO) -> None:
        if self.on_log is None:
            return
        try:
            self.on_log(LogEvent(message, level))
        except Exception as e:
            self._logger.warning(f"Log callback failed: {e}")
