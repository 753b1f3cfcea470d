"""
CLI for the dividend collector.

Commands:
    divscan collect - Collect dividend data for every listed stock
    divscan status - Describe the current checkpoint
    divscan clear-checkpoint - Delete the current checkpoint
    divscan config - Show current configuration
    divscan version - Print version
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Annotated, Optional

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from divscan import __version__
from divscan.checkpoint.store import CheckpointStore
from divscan.config import Settings, clear_settings_cache, get_settings
from divscan.exceptions import ConfigurationError, DivscanError, ListingError
from divscan.logging import setup_logging

app = typer.Typer(
    name="divscan",
    help="Divscan - resilient bulk collection of US dividend stock data",
    no_args_is_help=True,
)

console = Console()
error_console = Console(stderr=True)


def load_settings() -> Settings:
    """Load fresh settings.

    Raises:
        ConfigurationError: If the environment holds invalid values.
    """
    clear_settings_cache()
    try:
        return get_settings()
    except ValidationError as e:
        raise ConfigurationError(
            "Configuration is invalid",
            context={"errors": [err["msg"] for err in e.errors()]},
        ) from e


def _settings_or_exit() -> Settings:
    try:
        return load_settings()
    except ConfigurationError as e:
        error_console.print(f"[red]Error:[/red] {e}")
        error_console.print("Run 'divscan config' after fixing the environment or .env file.")
        raise typer.Exit(1)


@app.command()
def collect(
    concurrency: Annotated[
        Optional[int],
        typer.Option("--concurrency", "-c", min=1, help="Entities processed at once"),
    ] = None,
    output: Annotated[
        Optional[Path],
        typer.Option("--output", "-o", help="Report path (default: DATA_DIR/dividends.json)"),
    ] = None,
    limit: Annotated[
        Optional[int],
        typer.Option("--limit", "-n", min=1, help="Only process the first N listed stocks"),
    ] = None,
    fresh: Annotated[
        bool,
        typer.Option("--fresh", help="Ignore any existing checkpoint and start over"),
    ] = False,
    log_file: Annotated[
        Optional[Path],
        typer.Option("--log-file", help="Write JSON logs to this file"),
    ] = None,
) -> None:
    """Collect dividend data for every listed stock.

    Resumes from a recent checkpoint when one exists. The checkpoint is
    removed once the report has been written.
    """
    from divscan.cli.progress import CollectionProgress
    from divscan.coordinator.run import collect as run_collection

    settings = _settings_or_exit()
    setup_logging(settings.LOG_LEVEL, log_file=log_file)

    effective_concurrency = concurrency if concurrency is not None else settings.CONCURRENCY

    console.print()
    console.print(
        Panel(
            f"[bold]Source:[/bold] {settings.API_BASE_URL}\n"
            f"[bold]Concurrency:[/bold] {effective_concurrency}\n"
            f"[bold]Retries:[/bold] {settings.MAX_RETRIES}\n"
            f"[bold]Checkpoint:[/bold] every {settings.CHECKPOINT_EVERY} stocks\n"
            f"[bold]Limit:[/bold] {limit if limit is not None else 'all'}\n"
            f"[bold]Fresh:[/bold] {fresh}",
            title="[bold cyan]Dividend Collection[/bold cyan]",
            border_style="cyan",
        )
    )

    try:
        with CollectionProgress(console, effective_concurrency) as progress:
            try:
                result = asyncio.run(
                    run_collection(
                        settings,
                        concurrency=effective_concurrency,
                        limit=limit,
                        fresh=fresh,
                        output=output,
                        on_progress=progress.update,
                    )
                )
            except DivscanError as e:
                progress.mark_error(e.message)
                raise
            progress.mark_complete()
    except ListingError as e:
        error_console.print(f"\n[red]Error:[/red] {e}")
        raise typer.Exit(1)
    except DivscanError as e:
        error_console.print(f"\n[red]Error:[/red] {e}")
        error_console.print("[dim]Progress is checkpointed; rerun to resume.[/dim]")
        raise typer.Exit(1)

    report = result.report
    meta = report.metadata
    stats = report.statistics

    table = Table(title="Summary", show_header=True)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green", justify="right")
    table.add_row("Stocks scanned", str(meta.total_scanned))
    table.add_row("Dividend stocks", str(meta.recorded))
    table.add_row("Skipped (no dividend)", str(meta.skipped))
    table.add_row("Failed", str(meta.failed))
    table.add_row("Resumed from checkpoint", str(meta.resumed_entities))
    table.add_row("With growth data", str(stats.with_growth_data))
    table.add_row("Without growth data", str(stats.without_growth_data))
    average = f"{stats.average_yield:.2f}%" if stats.average_yield is not None else "-"
    table.add_row("Average yield", average)
    table.add_row("Requests", str(meta.requests.total))
    table.add_row("Request success rate", f"{meta.requests.success_rate:.1%}")
    table.add_row("Cooldowns", str(meta.requests.cooldowns_scheduled))
    table.add_row("Duration", f"{meta.duration_minutes:.1f} min")
    if meta.resumed_entities:
        table.add_row("Elapsed (incl. downtime)", f"{meta.elapsed_minutes:.1f} min")

    console.print()
    console.print(table)
    console.print(f"\n[bold]Report saved to:[/bold] {result.output_path}")
    console.print()


@app.command()
def status() -> None:
    """Describe the current checkpoint."""
    settings = _settings_or_exit()
    store = CheckpointStore.from_settings(settings)

    info = store.describe()
    console.print()
    if info is None:
        console.print(f"[dim]No checkpoint in[/dim] {store.directory}")
        console.print()
        return

    table = Table(title="Checkpoint", show_header=True)
    table.add_column("Field", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Directory", str(store.directory))
    table.add_row("Started", str(info["started_at"]))
    table.add_row("Saved", str(info["saved_at"]))
    table.add_row("Age (hours)", str(info["age_hours"]))
    table.add_row("Processed", str(info["processed"]))
    table.add_row("Records", str(info["records"]))
    console.print(table)

    if info["stale"]:
        console.print(
            "[yellow]Checkpoint is stale and will be ignored by the next run.[/yellow]"
        )
    console.print()


@app.command("clear-checkpoint")
def clear_checkpoint() -> None:
    """Delete the current checkpoint."""
    settings = _settings_or_exit()
    store = CheckpointStore.from_settings(settings)
    try:
        store.clear()
    except DivscanError as e:
        error_console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)
    console.print(f"Checkpoint cleared: {store.directory}")


@app.command()
def config() -> None:
    """Show current configuration."""
    console.print()
    console.print("[bold]Divscan Configuration[/bold]")
    console.print()

    settings = _settings_or_exit()

    table = Table(title="Settings", show_header=True)
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")

    for key, value in settings.display().items():
        display_value = str(value) if value is not None else "[dim]not set[/dim]"
        table.add_row(key, display_value)

    console.print(table)
    console.print()


@app.command()
def version() -> None:
    """Print the version number."""
    console.print(f"divscan version {__version__}")


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
