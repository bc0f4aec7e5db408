"""
LeetAnki command line interface.

Commands:
- leetanki due        : Show problems due for review
- leetanki review     : Record a review outcome (again/hard/good/easy)
- leetanki show       : Show one problem's schedule and history
- leetanki ingest     : Ingest completion events from a JSON file
- leetanki stats      : Show tracking statistics
- leetanki recommend  : Suggest problems that were never reviewed
- leetanki sync-reset : Forget the saved sync cursor
"""
from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path
from typing import Any, NoReturn

import typer
from loguru import logger
from rich.console import Console
from rich.panel import Panel
from rich.progress import BarColumn, Progress, SpinnerColumn, TextColumn
from rich.table import Table

from leetanki.config import Settings, get_settings
from leetanki.db.backends import create_backend
from leetanki.exceptions import StorageUnavailable, UnknownOutcome
from leetanki.review.models import Outcome
from leetanki.review.scheduler import SM2Scheduler
from leetanki.review.selector import DueSetSelector
from leetanki.review.state_store import ReviewRecordStore
from leetanki.sync.session import SyncReport, SyncSession, SyncStatus
from leetanki.timeutils import utcnow

console = Console()

app = typer.Typer(
    name="leetanki",
    help="Spaced repetition for solved problems",
    no_args_is_help=True,
)

DIFFICULTY_STYLES = {"easy": "green", "medium": "yellow", "hard": "red"}


# =============================================================================
# Setup
# =============================================================================


def configure_logging(settings: Settings, verbose: bool = False) -> None:
    """Route loguru output to stderr (and the optional log file)."""
    logger.remove()
    logger.add(
        sys.stderr,
        level="DEBUG" if verbose else settings.log_level,
        format="<dim>{time:HH:mm:ss}</dim> | <level>{level: <8}</level> | {message}",
    )
    if settings.log_file:
        logger.add(settings.log_file, level="DEBUG", rotation="10 MB", retention=5)


def open_store(settings: Settings) -> ReviewRecordStore:
    backend = create_backend(settings.database_url)
    return ReviewRecordStore(backend, SM2Scheduler(settings.sm2_config()))


def fail(message: str) -> NoReturn:
    console.print(Panel(f"[bold red]{message}[/bold red]", border_style="red"))
    raise typer.Exit(1)


def style_difficulty(difficulty: str) -> str:
    color = DIFFICULTY_STYLES.get(difficulty.lower())
    return f"[{color}]{difficulty}[/{color}]" if color else difficulty


@app.callback()
def main_callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    configure_logging(get_settings(), verbose=verbose)


# =============================================================================
# Review Commands
# =============================================================================


@app.command()
def due(
    limit: int | None = typer.Option(None, "--limit", "-l", help="Maximum problems to list"),
) -> None:
    """Show problems due for review, most overdue first."""
    settings = get_settings()
    try:
        store = open_store(settings)
    except StorageUnavailable as exc:
        fail(f"Storage unavailable: {exc}")
    selector = DueSetSelector(store, default_limit=settings.due_list_limit)

    result = asyncio.run(selector.query(limit=limit))
    if not result.ok:
        fail(result.error)

    if not result.entries:
        console.print("[green]No problems due for review[/green]")
        return

    table = Table(title=f"Due for review ({len(result.entries)} of {result.due_count})")
    table.add_column("Problem", style="cyan")
    table.add_column("Title")
    table.add_column("Difficulty")
    table.add_column("Ease", justify="right")
    table.add_column("Interval", justify="right")
    table.add_column("Due", style="dim")

    for entry in result.entries:
        table.add_row(
            entry.item_id,
            entry.title,
            style_difficulty(entry.difficulty),
            f"{entry.ease_factor:.2f}",
            f"{entry.interval}d",
            entry.next_review_at.strftime("%Y-%m-%d %H:%M"),
        )

    console.print(table)


@app.command()
def review(
    item_id: str = typer.Argument(..., help="Problem slug"),
    outcome: str = typer.Argument(..., help="again, hard, good or easy"),
) -> None:
    """Record how a review went and reschedule the problem."""
    try:
        parsed = Outcome.parse(outcome)
    except UnknownOutcome:
        raise typer.BadParameter("outcome must be one of: again, hard, good, easy", param_hint="OUTCOME") from None

    try:
        store = open_store(get_settings())
        state = asyncio.run(store.record_outcome(item_id, parsed))
    except StorageUnavailable as exc:
        fail(f"Storage unavailable, review not recorded: {exc}")

    console.print(
        f"[bold]{item_id}[/bold] -> {parsed.value}: next review in "
        f"[cyan]{state.interval}d[/cyan] ({state.next_review_at:%Y-%m-%d}), ease {state.ease_factor:.2f}"
    )


@app.command()
def show(item_id: str = typer.Argument(..., help="Problem slug")) -> None:
    """Show a problem's schedule and recent history."""
    try:
        record = asyncio.run(open_store(get_settings()).get(item_id))
    except StorageUnavailable as exc:
        fail(f"Storage unavailable: {exc}")

    if record is None:
        fail(f"Unknown problem: {item_id}")

    lines = []
    if record.item:
        lines.append(f"[bold]{record.item.title or item_id}[/bold] {style_difficulty(record.item.difficulty)}")
        if record.item.tags:
            lines.append(f"Tags: {', '.join(sorted(record.item.tags))}")
    else:
        lines.append(f"[bold]{item_id}[/bold] [yellow](no metadata)[/yellow]")

    state = record.state
    if state:
        lines.append(
            f"Ease {state.ease_factor:.2f} | interval {state.interval}d | "
            f"streak {state.consecutive_correct} | next {state.next_review_at:%Y-%m-%d %H:%M}"
        )
        for entry in reversed(state.history):
            lines.append(f"  [dim]{entry.timestamp:%Y-%m-%d %H:%M}[/dim] {entry.outcome}")

    console.print(Panel("\n".join(lines), title=item_id, border_style="cyan"))


# =============================================================================
# Sync Commands
# =============================================================================


def _load_events(path: Path) -> list[Any]:
    data = json.loads(path.read_text(encoding="utf-8"))
    if isinstance(data, dict):
        data = data.get("events", [])
    if not isinstance(data, list):
        raise ValueError("expected a JSON list of completion events")
    return data


async def _ingest(store: ReviewRecordStore, settings: Settings, events: list[Any], fresh: bool) -> SyncReport:
    batch_size = max(1, settings.ingest_batch_size)

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TextColumn("{task.completed}/{task.total}"),
        console=console,
    ) as progress:
        task = progress.add_task("Ingesting", total=len(events))
        session = SyncSession(
            store,
            poll_interval=settings.drain_poll_seconds,
            sync_interval_hours=settings.sync_interval_hours,
            on_progress=lambda report: progress.update(task, completed=report.processed),
        )

        cursor = await session.started(total_expected=len(events), fresh=fresh)
        progress.update(task, total=len(events) - cursor.offset)
        for offset in range(cursor.offset, len(events), batch_size):
            batch = events[offset : offset + batch_size]
            session.progress(batch, cursor.model_copy(update={"offset": offset + len(batch)}))

        return await session.complete()


@app.command()
def ingest(
    path: Path = typer.Argument(..., exists=True, dir_okay=False, help="JSON file of completion events"),
    fresh: bool = typer.Option(False, "--fresh", help="Ignore the saved cursor and start over"),
) -> None:
    """Ingest completed problems from a JSON export."""
    settings = get_settings()
    try:
        events = _load_events(path)
    except ValueError as exc:
        fail(f"Cannot read {path}: {exc}")

    try:
        report = asyncio.run(_ingest(open_store(settings), settings, events, fresh))
    except StorageUnavailable as exc:
        fail(f"Storage unavailable: {exc}")

    color = "green" if report.status is SyncStatus.COMPLETE and not report.failed_batches else "yellow"
    console.print(
        Panel(
            f"Events: {report.progress_line}\n"
            f"New problems: {report.newly_initialized}\n"
            f"Skipped: {report.skipped}\n"
            f"Failed batches: {report.failed_batches}",
            title="Sync complete",
            border_style=color,
        )
    )


@app.command("sync-reset")
def sync_reset() -> None:
    """Forget the saved sync cursor so the next ingest starts over."""
    try:
        asyncio.run(open_store(get_settings()).reset_sync_cursor())
    except StorageUnavailable as exc:
        fail(f"Storage unavailable: {exc}")
    console.print("[green]Sync cursor reset[/green]")


# =============================================================================
# Stats
# =============================================================================


@app.command()
def stats() -> None:
    """Show how many problems are tracked, due and reviewed."""
    settings = get_settings()
    try:
        store = open_store(settings)
        summary = asyncio.run(DueSetSelector(store).stats())
    except StorageUnavailable as exc:
        fail(f"Storage unavailable: {exc}")

    table = Table(title="LeetAnki Stats", show_header=False)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")
    table.add_row("Tracked", str(summary.total_tracked))
    table.add_row("Due now", str(summary.due))
    table.add_row("Reviewed", str(summary.reviewed))
    for difficulty, count in sorted(summary.by_difficulty.items()):
        table.add_row(f"  {style_difficulty(difficulty)}", str(count))

    if summary.last_synced_at:
        age = utcnow() - summary.last_synced_at
        table.add_row("Last sync", f"{summary.last_synced_at:%Y-%m-%d %H:%M} ({int(age.total_seconds() // 3600)}h ago)")
    else:
        table.add_row("Last sync", "Never")

    console.print(table)


@app.command()
def recommend(
    limit: int = typer.Option(5, "--limit", "-l", min=0, help="Number of suggestions"),
) -> None:
    """Suggest solved problems that have never been reviewed."""
    try:
        items = asyncio.run(DueSetSelector(open_store(get_settings())).recommend(limit=limit))
    except StorageUnavailable as exc:
        fail(f"Storage unavailable: {exc}")

    if not items:
        console.print("[dim]No recommendations available[/dim]")
        return

    for item in items:
        console.print(f"  [cyan]{item.item_id}[/cyan] {item.title} {style_difficulty(item.difficulty)}")


# =============================================================================
# Entry Point
# =============================================================================


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
