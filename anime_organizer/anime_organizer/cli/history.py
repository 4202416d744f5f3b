"""
History and restore commands for Anime Organizer CLI.
"""
import click
import logging
from typing import Optional

from rich.table import Table
from rich import box
from rich.markup import escape

from .base import console, build_history
from ..config import get_config
from ..renamer import FolderRenamer
from ..history import (
    STATUS_SUCCESS,
    STATUS_FAILED,
    STATUS_RESTORE_SUCCESS,
    STATUS_RESTORE_FAILED,
)

logger = logging.getLogger(__name__)

STATUS_COLORS = {
    STATUS_SUCCESS: "green",
    STATUS_RESTORE_SUCCESS: "green",
    STATUS_FAILED: "red",
    STATUS_RESTORE_FAILED: "red",
}


@click.command()
@click.option("--limit", "-n", type=int, default=None, help="Number of entries to show.")
def history(limit: Optional[int]) -> None:
    """
    Shows recent rename and restore attempts, newest first.
    """
    config = get_config()
    entries = build_history(config).get_recent(limit or config.history.recent_limit)
    if not entries:
        console.print("[dim]No rename history yet.[/dim]")
        return

    table = Table(box=box.SIMPLE, show_header=True, header_style="bold cyan", expand=True)
    table.add_column("ID", justify="right", width=6)
    table.add_column("Time (UTC)", width=20)
    table.add_column("Status", width=15)
    table.add_column("Original", ratio=1, overflow="fold")
    table.add_column("New", ratio=1, overflow="fold")
    table.add_column("Message", ratio=1, overflow="fold")

    for entry in entries:
        color = STATUS_COLORS.get(entry.status, "yellow")
        table.add_row(
            str(entry.id),
            entry.timestamp_utc.strftime("%Y-%m-%d %H:%M:%S"),
            f"[{color}]{entry.status}[/{color}]",
            escape(entry.original_path),
            escape(entry.new_path),
            escape(entry.message),
        )
    console.print(table)


@click.command()
@click.argument("entry_id", type=int)
def restore(entry_id: int) -> None:
    """
    Moves a renamed folder back to its original name (history ENTRY_ID).
    """
    store = build_history()
    entry = store.get(entry_id)
    if entry is None:
        console.print(f"[red]No history entry with id {entry_id}[/red]")
        raise SystemExit(1)
    if entry.status != STATUS_SUCCESS:
        console.print(f"[yellow]Entry {entry_id} is '{entry.status}', only successful renames can be restored.[/yellow]")
        raise SystemExit(1)

    logger.info(f"Restore command started (entry={entry_id})")
    outcome = FolderRenamer(store).restore_entry(entry)
    color = STATUS_COLORS.get(outcome.status, "yellow")
    console.print(f"[{color}]{outcome.status}[/{color}]: {escape(entry.new_path)} -> {escape(entry.original_path)} ({escape(outcome.message)})")
    if outcome.status != STATUS_RESTORE_SUCCESS:
        raise SystemExit(1)
