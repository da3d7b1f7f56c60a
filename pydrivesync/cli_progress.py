"""CLI progress display for sync passes.

This module provides a Rich-based progress display fed by the progress
and log callbacks of the sync engine.
"""

import logging
from typing import Optional

from rich.console import Console
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TextColumn,
    TimeElapsedColumn,
)

from .sync.engine import SyncOptions
from .sync.progress import LogEvent, ProgressEvent


class SyncProgressDisplay:
    """Rich-based progress display for sync passes.

    Shows one bar counting processed paths and the label of the last path.
    Warnings and errors forwarded by the engine are printed above the bar.
    """

    def __init__(self, console: Optional[Console] = None) -> None:
        """Initialize the progress display."""
        self._console = console
        self._progress: Optional[Progress] = None
        self._task: Optional[TaskID] = None

    def attach(self, options: SyncOptions) -> SyncOptions:
        """Route the progress and log callbacks of options to this display.

        Returns:
            The same options object
        """
        options.on_progress = self.handle_progress
        options.on_log = self.handle_log
        return options

    def handle_progress(self, event: ProgressEvent) -> None:
        if self._progress is None or self._task is None:
            return
        self._progress.update(
            self._task,
            description="Syncing",
            completed=event.processed,
            total=event.total,
            current=event.label,
        )

    def handle_log(self, event: LogEvent) -> None:
        if self._progress is None or event.level < logging.WARNING:
            return
        style = "red" if event.level >= logging.ERROR else "yellow"
        self._progress.console.print(event.message, style=style, markup=False)

    def __enter__(self) -> "SyncProgressDisplay":
        """Enter context manager - start progress display."""
        self._progress = Progress(
            SpinnerColumn(),
            TextColumn("[bold blue]{task.description}"),
            BarColumn(),
            MofNCompleteColumn(),
            TextColumn("[cyan]{task.fields[current]}"),
            TimeElapsedColumn(),
            console=self._console,
            refresh_per_second=4,
        )
        self._progress.__enter__()
        self._task = self._progress.add_task(
            "Collecting files...", total=None, current=""
        )
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Exit context manager - stop progress display."""
        if self._progress is not None:
            if self._task is not None:
                self._progress.update(
                    self._task, description="Sync finished", current=""
                )
            self._progress.__exit__(exc_type, exc_val, exc_tb)
            self._progress = None
            self._task = None
