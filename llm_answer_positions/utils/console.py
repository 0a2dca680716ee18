"""
Rich console utilities for dual-mode CLI output.

Provides terminal output for humans and structured JSON for scripts and
agents. All output functions adapt to the global output_mode setting.

This module provides:
- OutputMode: Output format (text/json) and quiet flag
- Context managers: spinner(), create_progress_bar()
- Output functions: success(), error(), warning(), info()
- Display functions: print_positions_table(), print_batch_summary()

Human Mode (--format text):
    - Rich spinners, progress bars, colored tables
Agent Mode (--format json):
    - One JSON document on stdout, no ANSI codes or spinners

Examples:
    >>> output_mode.format = "text"
    >>> with spinner("Loading..."):
    ...     config = load_config(path)
    >>> success("Config loaded successfully")

    >>> output_mode.format = "json"
    >>> success("Config loaded")  # Buffers to JSON
    >>> output_mode.flush_json()   # Outputs JSON to stdout
"""

from __future__ import annotations

import json
import sys
from contextlib import contextmanager
from typing import Any

from rich import box
from rich.console import Console
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TaskProgressColumn,
    TextColumn,
    TimeRemainingColumn,
)
from rich.table import Table


class OutputMode:
    """
    Output mode configuration for dual-mode CLI.

    Attributes:
        format: Output format - "text" (human) or "json" (agent)
        quiet: If True, suppress non-essential output

    Examples:
        >>> mode = OutputMode()
        >>> mode.is_human()
        True
        >>> mode.format = "json"
        >>> mode.is_agent()
        True
    """

    def __init__(self, format_type: str = "text", quiet: bool = False):
        if format_type not in ["text", "json"]:
            raise ValueError(f"Invalid format: {format_type}. Must be 'text' or 'json'")

        self.format = format_type
        self.quiet = quiet
        self._json_buffer: dict[str, Any] = {}

    def is_human(self) -> bool:
        return self.format == "text"

    def is_agent(self) -> bool:
        return self.format == "json"

    def add_json(self, key: str, value: Any) -> None:
        """
        Add key-value pair to the JSON buffer (agent mode).

        Example:
            >>> mode = OutputMode(format_type="json")
            >>> mode.add_json("status", "success")
            >>> mode.flush_json()
            {"status": "success"}
        """
        self._json_buffer[key] = value

    def flush_json(self) -> None:
        """
        Output buffered JSON to stdout and clear buffer.

        Only outputs in agent mode. In human mode, this is a no-op.
        """
        if self.is_agent() and self._json_buffer:
            json.dump(self._json_buffer, sys.stdout, indent=2, default=str)
            sys.stdout.write("\n")
            sys.stdout.flush()
            self._json_buffer.clear()

    def reset(self) -> None:
        """Back to text mode with an empty buffer (used between CLI invocations)."""
        self.format = "text"
        self.quiet = False
        self._json_buffer.clear()


# Global output mode instance (set by CLI flags)
output_mode = OutputMode()

# Global Rich console instances for human mode
console = Console()  # stdout
console_err = Console(stderr=True)  # stderr


@contextmanager
def spinner(message: str):
    """
    Show a spinner during an operation in human mode; silent otherwise.

    Examples:
        >>> with spinner("Loading config..."):
        ...     config = load_config(path)
    """
    if output_mode.is_human():
        with console.status(f"[bold blue]{message}", spinner="dots") as status:
            yield status
    else:
        yield None


class NoOpProgress:
    """
    No-op progress bar for agent mode.

    Provides the same interface as Rich Progress but does nothing.
    """

    def __enter__(self):
        return self

    def __exit__(self, *args):
        pass

    def add_task(self, _description: str, total: int | None = None) -> int:
        return 0

    def advance(self, _task_id: int, _advance: float = 1.0) -> None:
        pass


def create_progress_bar() -> Progress | NoOpProgress:
    """
    Create a progress bar for tracking a batch.

    Returns a Rich Progress instance in human mode and a NoOpProgress in
    agent mode.

    Examples:
        >>> progress = create_progress_bar()
        >>> with progress:
        ...     task = progress.add_task("Extracting...", total=100)
        ...     progress.advance(task)
    """
    if output_mode.is_human():
        return Progress(
            SpinnerColumn(),
            TextColumn("[bold blue]{task.description}"),
            BarColumn(),
            TaskProgressColumn(),
            TimeRemainingColumn(),
            console=console,
            transient=True,
        )
    return NoOpProgress()


def success(message: str) -> None:
    """
    Print a success message.

    Human mode: Green checkmark with message
    Agent mode: Buffer {"status": "success", "message": ...}
    """
    if output_mode.is_human():
        console.print(f"[green]✓[/green] {message}")
    elif output_mode.is_agent():
        output_mode.add_json("status", "success")
        output_mode.add_json("message", message)


def error(message: str) -> None:
    """
    Print an error message.

    Human mode: Red X with message to stderr
    Agent mode: Buffer {"status": "error", "error": ...}
    """
    if output_mode.is_human():
        console_err.print(f"[red]✗[/red] {message}", style="red")
    elif output_mode.is_agent():
        output_mode.add_json("status", "error")
        output_mode.add_json("error", message)


def warning(message: str) -> None:
    """Print a warning message (buffered as "warning" in agent mode)."""
    if output_mode.is_human():
        console.print(f"[yellow]⚠[/yellow] {message}", style="yellow")
    elif output_mode.is_agent():
        output_mode.add_json("warning", message)


def info(message: str) -> None:
    """Print an info message (human mode only)."""
    if output_mode.is_human() and not output_mode.quiet:
        console.print(f"[blue]ℹ[/blue] {message}")


def _format_positions(positions: list[int] | tuple[int, ...], limit: int = 8) -> str:
    if not positions:
        return "-"
    shown = ", ".join(str(p) for p in positions[:limit])
    if len(positions) > limit:
        shown += f", ... (+{len(positions) - limit})"
    return shown


def print_positions_table(rows: list[dict[str, Any]], title: str = "Positions") -> None:
    """
    Print position rows for one or more answers.

    Human mode: Rich table
    Agent mode: Buffer rows as "positions" JSON array

    Expected dict keys in rows (PositionRecord fields):
    - entity_type, entity_name, first_position, mention_positions,
      product_positions, mention_count, visibility_index, share_of_answer
    """
    if output_mode.is_agent():
        output_mode.add_json("positions", rows)
        return

    if output_mode.quiet:
        return

    table = Table(title=title, box=box.ROUNDED)

    table.add_column("Entity", style="cyan", no_wrap=True)
    table.add_column("Type", style="magenta")
    table.add_column("First", justify="right")
    table.add_column("Mentions", justify="right")
    table.add_column("Positions")
    table.add_column("Products", justify="right")
    table.add_column("Visibility", justify="right", style="green")
    table.add_column("Share %", justify="right", style="green")

    for row in rows:
        share = row.get("share_of_answer")
        first = row.get("first_position")
        table.add_row(
            row.get("entity_name", ""),
            row.get("entity_type", ""),
            str(first) if first is not None else "[dim]-[/dim]",
            str(row.get("mention_count", 0)),
            _format_positions(row.get("mention_positions") or ()),
            str(row.get("product_mention_count", 0)),
            f"{row.get('visibility_index', 0.0):.2f}",
            f"{share:.2f}" if share is not None else "[dim]n/a[/dim]",
        )

    console.print(table)


def print_batch_summary(summary: dict[str, Any]) -> None:
    """
    Print a batch summary with per-answer failures.

    Human mode: Counts plus a failures table
    Agent mode: Buffer the summary under "batch"
    """
    if output_mode.is_agent():
        output_mode.add_json("batch", summary)
        return

    if output_mode.quiet:
        return

    table = Table(title=f"Batch {summary.get('batch_id', '')}", box=box.ROUNDED)
    table.add_column("Selected", justify="right")
    table.add_column("Processed", justify="right", style="green")
    table.add_column("Failed", justify="right", style="red")
    table.add_column("Skipped", justify="right", style="yellow")
    table.add_column("Records", justify="right")
    table.add_row(
        str(summary.get("selected", 0)),
        str(summary.get("processed", 0)),
        str(summary.get("failed", 0)),
        str(summary.get("skipped", 0)),
        str(summary.get("records_written", 0)),
    )
    console.print(table)

    failures = summary.get("failures") or []
    if failures:
        failure_table = Table(title="Failures", box=box.ROUNDED)
        failure_table.add_column("Answer", justify="right", style="cyan")
        failure_table.add_column("Error", style="red")
        failure_table.add_column("Message")
        for failure in failures:
            failure_table.add_row(
                str(failure.get("answer_id", "")),
                failure.get("error_type", ""),
                failure.get("error_message", ""),
            )
        console.print(failure_table)
