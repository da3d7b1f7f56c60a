"""Output formatting for the command line."""

import json
from typing import Any, Optional

from rich.console import Console
from rich.table import Table

from .utils import format_size


class OutputFormatter:
    """Renders user-facing CLI output with rich.

    In JSON mode only output_json() and errors produce output; in quiet mode
    informational messages are suppressed.
    """

    def __init__(
        self,
        json_output: bool = False,
        quiet: bool = False,
        console: Optional[Console] = None,
        err_console: Optional[Console] = None,
    ):
        self.json_output = json_output
        self.quiet = quiet
        self.console = console or Console(highlight=False)
        self.err_console = err_console or Console(stderr=True, highlight=False)

    def _show(self) -> bool:
        return not self.quiet and not self.json_output

    def print(self, message: str = "") -> None:
        if not self.json_output:
            self.console.print(message, markup=False)

    def info(self, message: str) -> None:
        if self._show():
            self.console.print(message, markup=False)

    def success(self, message: str) -> None:
        if self._show():
            self.console.print(message, style="green", markup=False)

    def warning(self, message: str) -> None:
        if not self.json_output:
            self.err_console.print(message, style="yellow", markup=False)

    def error(self, message: str) -> None:
        self.err_console.print(f"Error: {message}", style="bold red", markup=False)

    def progress_message(self, message: str) -> None:
        if self._show():
            self.console.print(message, style="dim", markup=False)

    def output_json(self, data: Any) -> None:
        # Plain print keeps the document machine readable (no wrapping)
        print(json.dumps(data, indent=2, default=str))

    def output_table(
        self,
        rows: list[dict[str, Any]],
        columns: list[str],
        headers: Optional[dict[str, str]] = None,
    ) -> None:
        """Print rows as a table.

        Args:
            rows: Row dictionaries
            columns: Keys to show, in order
            headers: Optional display names for the columns
        """
        if self.json_output:
            self.output_json(rows)
            return
        headers = headers or {}
        table = Table(show_edge=False)
        for column in columns:
            table.add_column(headers.get(column, column))
        for row in rows:
            table.add_row(*(str(row.get(column, "")) for column in columns))
        self.console.print(table)

    def print_summary(self, title: str, items: list[tuple[str, str]]) -> None:
        """Print a titled list of label/value pairs."""
        if not self._show():
            return
        self.console.print()
        self.console.print(title, style="bold", markup=False)
        self.console.print("=" * len(title), markup=False)
        width = max((len(label) for label, _ in items), default=0)
        for label, value in items:
            self.console.print(f"{label.ljust(width)}  {value}", markup=False)

    @staticmethod
    def format_size(size_bytes: int) -> str:
        return format_size(size_bytes)
