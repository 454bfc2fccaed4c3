"""sgfind CLI - typer application entry point."""

from __future__ import annotations

import atexit
from pathlib import Path
from typing import TYPE_CHECKING, Annotated

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.markup import escape
from rich.progress import Progress, SpinnerColumn, TextColumn, TimeElapsedColumn
from rich.table import Table

from sgfind import __version__
from sgfind.config import ConfigError, FinderConfig, load_config
from sgfind.graph.errors import StateGroupError
from sgfind.graph.report import write_unreferenced
from sgfind.observability import close_file_logging, configure_logging, get_logger

if TYPE_CHECKING:
    from sgfind.finder import FindOutcome, LoadResult
    from sgfind.graph.closure import ClosureRound

# Load environment variables from .env file
load_dotenv()

app = typer.Typer(
    name="sgfind",
    help="sgfind: Find state groups that no event references.",
    no_args_is_help=True,
)
console = Console()
log = get_logger(__name__)

# Set once the exit hook closing the JSONL log file is installed
_close_hook_registered = False


@app.callback()
def main(
    verbose: Annotated[
        int,
        typer.Option(
            "-v",
            "--verbose",
            count=True,
            help="Increase verbosity: -v for INFO, -vv for DEBUG.",
        ),
    ] = 0,
    log_file: Annotated[
        Path | None,
        typer.Option(
            "--log-file",
            help="Append all log events to this file as JSON lines.",
        ),
    ] = None,
) -> None:
    """sgfind: Find state groups that no event references."""
    global _close_hook_registered
    configure_logging(verbosity=verbose, log_file=log_file)
    if log_file is not None and not _close_hook_registered:
        atexit.register(close_file_logging)
        _close_hook_registered = True


def _fail(message: str) -> typer.Exit:
    """Print an error line and return the exit to raise."""
    console.print(f"[red]Error:[/red] {escape(message)}")
    return typer.Exit(1)


def _resolve_config(
    config_path: Path | None,
    database_url: str | None,
    room_id: str | None,
    output: Path | None,
    fetch_batch_size: int | None,
    missing_batch_size: int | None,
) -> FinderConfig:
    """Merge config file, environment and CLI flags, highest last."""
    config = load_config(config_path).with_environment()
    return config.with_overrides(
        database_url=database_url,
        room_id=room_id,
        output=output,
        fetch_batch_size=fetch_batch_size,
        missing_batch_size=missing_batch_size,
    )


def _print_loaded(load: LoadResult) -> None:
    console.print(f"Fetched {load.groups} state groups from DB")


def _print_round(closure_round: ClosureRound) -> None:
    console.print(f"Fetching {closure_round.requested} missing state groups from DB")
    console.print(f"Got {closure_round.resolved} from DB")
    if closure_round.dangling:
        console.print(f"[yellow]Failed to find {closure_round.dangling} groups[/yellow]")


def _print_summary(outcome: FindOutcome) -> None:
    report = outcome.report
    table = Table(title="Unreferenced state groups", show_header=False)
    table.add_column("Metric")
    table.add_column("Value", justify="right")
    if report.room_id:
        table.add_row("Room", escape(report.room_id))
    table.add_row("Loaded by bulk fetch", str(report.initial_groups))
    table.add_row("Total state groups", str(report.total_groups))
    table.add_row("Closure rounds", str(report.closure_rounds))
    table.add_row("Marked live by propagation", str(report.marked_live))
    table.add_row("Unreferenced", str(report.unreferenced_count))
    table.add_row("Dangling references", str(report.dangling_count))
    console.print(table)


@app.command()
def version() -> None:
    """Show version information."""
    console.print(f"sgfind v{__version__}")


@app.command()
def find(
    database_url: Annotated[
        str | None,
        typer.Option(
            "--database-url",
            "--postgres-url",
            "-p",
            metavar="URL",
            help="Database to read: a postgresql:// URL or a SQLite file path.",
        ),
    ] = None,
    room_id: Annotated[
        str | None,
        typer.Option("--room-id", "-r", metavar="ROOM_ID", help="The room to process."),
    ] = None,
    output: Annotated[
        Path | None,
        typer.Option(
            "--output", "-o", metavar="FILE", help="File to output unreferenced groups to."
        ),
    ] = None,
    config_path: Annotated[
        Path | None,
        typer.Option(
            "--config",
            "-c",
            help="YAML config file (default: ~/.config/sgfind/config.yaml).",
        ),
    ] = None,
    fetch_batch_size: Annotated[
        int | None,
        typer.Option("--fetch-batch-size", help="Rows per batch during the bulk load."),
    ] = None,
    missing_batch_size: Annotated[
        int | None,
        typer.Option("--missing-batch-size", help="Ids per query when fetching missing groups."),
    ] = None,
) -> None:
    """Find state groups that are not referenced by any event."""
    from sgfind.finder import find_unreferenced
    from sgfind.sources import open_node_source

    try:
        config = _resolve_config(
            config_path, database_url, room_id, output, fetch_batch_size, missing_batch_size
        )
    except ConfigError as e:
        raise _fail(str(e)) from e

    if not config.database_url:
        raise _fail("No database URL. Use --database-url or set SGFIND_DATABASE_URL.")

    try:
        source = open_node_source(
            config.database_url,
            fetch_batch_size=config.fetch_batch_size,
            missing_batch_size=config.missing_batch_size,
        )
    except StateGroupError as e:
        raise _fail(str(e)) from e

    try:
        with Progress(
            SpinnerColumn(),
            TimeElapsedColumn(),
            TextColumn("{task.completed} rows retrieved"),
            console=console,
            transient=True,
        ) as progress:
            task = progress.add_task("load", total=None)

            def on_progress(rows: int) -> None:
                progress.update(task, completed=rows)

            outcome = find_unreferenced(
                source,
                room_id=config.room_id,
                on_progress=on_progress,
                on_loaded=_print_loaded,
                on_round=_print_round,
            )
    except StateGroupError as e:
        log.error("search_failed", error=str(e))
        raise _fail(str(e)) from e
    finally:
        source.close()

    report = outcome.report
    console.print(f"Total state groups: {report.total_groups}")

    if config.output is not None:
        try:
            written = write_unreferenced(outcome.groups, config.output)
        except OSError as e:
            raise _fail(f"Cannot write {config.output}: {e}") from e
        log.info("output_written", path=str(config.output), count=written)

    _print_summary(outcome)
    console.print(f"Found {report.unreferenced_count} unreferenced groups")
    if not report.complete:
        console.print(
            f"[yellow]Warning:[/yellow] {report.dangling_count} referenced state groups "
            "could not be found; results for those branches are incomplete."
        )
