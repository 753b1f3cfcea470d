"""Rich progress display for a collection run."""

from __future__ import annotations

import time
from typing import Any

from rich.console import Console, Group
from rich.live import Live
from rich.panel import Panel
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TextColumn,
    TimeElapsedColumn,
)
from rich.text import Text


class CollectionProgress:
    """Live progress panel driven by the orchestrator's progress callback."""

    def __init__(self, console: Console, concurrency: int) -> None:
        """Initialize progress display.

        Args:
            console: Rich console to write to.
            concurrency: Entities processed at once, shown in the footer.
        """
        self.console = console
        self.concurrency = concurrency
        self.started_at = time.time()

        self.processed = 0
        self.total: int | None = None
        self.recorded = 0
        self.is_complete = False
        self.error_message: str | None = None

        self._progress = Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            MofNCompleteColumn(),
            TimeElapsedColumn(),
        )
        self._task = self._progress.add_task("Fetching listing...", total=None)
        self._live: Live | None = None

    def _build_display(self) -> Panel:
        footer = Text()
        footer.append("Recorded: ", style="dim")
        footer.append(str(self.recorded), style="green")
        footer.append("  |  ", style="dim")
        footer.append("Concurrency: ", style="dim")
        footer.append(str(self.concurrency), style="cyan")
        footer.append("  |  ", style="dim")
        footer.append("Elapsed: ", style="dim")
        footer.append(self._format_duration(time.time() - self.started_at), style="cyan")

        if self.is_complete:
            title = "[bold green]Collection Complete[/bold green]"
            border_style = "green"
        elif self.error_message:
            title = "[bold red]Collection Failed[/bold red]"
            border_style = "red"
        else:
            title = "[bold cyan]Collecting dividends...[/bold cyan]"
            border_style = "cyan"

        return Panel(Group(self._progress, Text(""), footer), title=title, border_style=border_style)

    def _format_duration(self, seconds: float) -> str:
        """Format duration as human-readable string."""
        if seconds < 60:
            return f"{seconds:.0f}s"
        minutes = int(seconds // 60)
        secs = int(seconds % 60)
        if minutes < 60:
            return f"{minutes}m {secs}s"
        hours = int(minutes // 60)
        mins = int(minutes % 60)
        return f"{hours}h {mins}m"

    def update(self, processed: int, total: int, recorded: int) -> None:
        """Progress callback: entities processed so far, of total, and records kept."""
        self.processed = processed
        self.total = total
        self.recorded = recorded
        self._progress.update(
            self._task,
            description="Processing entities",
            completed=processed,
            total=total,
        )
        if self._live:
            self._live.update(self._build_display())

    def mark_complete(self) -> None:
        self.is_complete = True
        if self._live:
            self._live.update(self._build_display())

    def mark_error(self, message: str) -> None:
        self.error_message = message
        self._progress.update(self._task, description=f"[red]{message[:50]}[/red]")
        if self._live:
            self._live.update(self._build_display())

    def __enter__(self) -> "CollectionProgress":
        """Start the live display."""
        self._live = Live(
            self._build_display(),
            console=self.console,
            refresh_per_second=4,
            transient=False,
            auto_refresh=True,
            get_renderable=self._build_display,
        )
        self._live.__enter__()
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Stop the live display."""
        if self._live:
            self._live.update(self._build_display())
            self._live.__exit__(exc_type, exc_val, exc_tb)
            self._live = None
