"""Console output formatting built on rich."""

import json
from typing import Any, Optional

from rich.console import Console
from rich.table import Table


class OutputFormatter:
    """Formats user facing output for the CLI and the sync engine."""

    def __init__(self, json_output: bool = False, quiet: bool = False):
        """Initialize output formatter.

        Args:
            json_output: Emit machine readable JSON instead of text
            quiet: Suppress non-essential output
        """
        self.json_output = json_output
        self.quiet = quiet
        self.console = Console()
        self.err_console = Console(stderr=True)

    def print(self, message: str = "") -> None:
        if not self.quiet and not self.json_output:
            self.console.print(message, highlight=False)

    def info(self, message: str) -> None:
        if not self.quiet and not self.json_output:
            self.console.print(message, highlight=False)

    def success(self, message: str) -> None:
        if not self.quiet and not self.json_output:
            self.console.print(f"[green]{message}[/green]", highlight=False)

    def warning(self, message: str) -> None:
        if not self.quiet:
            self.err_console.print(f"[yellow]{message}[/yellow]", highlight=False)

    def error(self, message: str) -> None:
        # Errors are shown even in quiet mode
        self.err_console.print(f"[red]{message}[/red]", highlight=False)

    def output_json(self, data: Any) -> None:
        """Print data as JSON on stdout."""
        self.console.print_json(json.dumps(data, default=str))

    def print_summary(
        self, title: str, rows: list[tuple[str, str]], style: Optional[str] = None
    ) -> None:
        """Print a two column summary table.

        Args:
            title: Table title
            rows: (label, value) pairs
            style: Optional rich style for the title
        """
        if self.quiet or self.json_output:
            return
        table = Table(title=title, title_style=style or "bold", show_header=False)
        table.add_column(style="cyan")
        table.add_column()
        for label, value in rows:
            table.add_row(label, value)
        self.console.print(table)
