"""
Scan command for Anime Organizer CLI.

Identifies every sub-folder of the target and saves the result for `rename`.
"""
import click
import logging
from typing import List, Optional

from rich.table import Table
from rich import box
from rich.markup import escape

from .base import console, get_target_root, build_reconciler, run_reconcile_with_progress
from ..config import get_config
from ..models import AnimeFolderInfo, FolderState
from ..scanner import scan_target
from ..renamer import get_target_name, should_rename
from ..cache import save_scan_state, get_state_path
from ..providers import create_provider
from ..ai_api import tracker
from ..logging import AnimeOrganizerError

logger = logging.getLogger(__name__)

STATE_STYLES = {
    FolderState.VERIFIED: "green",
    FolderState.VERIFICATION_FAILED: "yellow",
    FolderState.ALREADY_ORGANIZED: "dim",
    FolderState.PROVISIONAL: "magenta",
    FolderState.UNPROCESSED: "red",
}


def build_results_table(folders: List[AnimeFolderInfo], naming_format: Optional[str]) -> Table:
    table = Table(box=box.SIMPLE, show_header=True, header_style="bold cyan", expand=True)
    table.add_column("Folder", ratio=2, overflow="fold")
    table.add_column("Suggested Name", ratio=2, overflow="fold")
    table.add_column("Year", width=6, justify="right")
    table.add_column("Type", width=8)
    table.add_column("State", width=20)

    for folder in folders:
        style = STATE_STYLES.get(folder.state, "white")
        if folder.state == FolderState.ALREADY_ORGANIZED or not should_rename(folder):
            suggested = "[dim]-[/dim]"
        else:
            suggested = escape(get_target_name(folder, naming_format))
        state = folder.state.value
        if folder.provider_error is not None:
            state = f"{state} ({folder.provider_error.value})"
        table.add_row(
            escape(folder.original_folder_name),
            suggested,
            str(folder.year) if folder.year else "",
            folder.type or "",
            f"[{style}]{state}[/{style}]",
        )
    return table


@click.command()
@click.argument("target", required=False)
@click.option("--no-subshare", is_flag=True, help="Skip cross-referencing the SubShare title database.")
@click.option("--table/--no-table", default=True, help="Show the results table.")
def scan(target: Optional[str], no_subshare: bool, table: bool) -> None:
    """
    Identifies the anime in every sub-folder of TARGET.
    """
    logger.info(f"Scan command started (target={target}, no_subshare={no_subshare})")
    config = get_config()
    root = get_target_root(target)

    try:
        folders = scan_target(root)
        if not folders:
            console.print(f"[yellow]No folders found in {root}[/yellow]")
            return

        provider = create_provider(config.ai)
        try:
            reconciler = build_reconciler(provider, config, use_subshare=not no_subshare)
            report = run_reconcile_with_progress(reconciler, folders)
        finally:
            provider.close()
    except AnimeOrganizerError as e:
        logger.error(f"Scan failed: {e}")
        console.print(f"[red]Error: {e}[/red]")
        raise SystemExit(1)

    if table:
        console.print(build_results_table(folders, config.naming.format))

    console.print(
        f"[bold]{report.processed}/{report.total}[/bold] processed: "
        f"[green]{report.identified} identified[/green], "
        f"[yellow]{report.verification_failed} unverified[/yellow], "
        f"[dim]{report.already_organized} already organized[/dim]"
    )
    if report.failed_batches:
        console.print(f"[red]{report.failed_batches} provider batches failed[/red]")
    if report.provider_errors:
        console.print(f"[red]{report.provider_errors} folders hit a provider error[/red]")
    if report.cancelled:
        console.print("[yellow]Scan was cancelled; remaining folders were left unprocessed.[/yellow]")

    for model, usage in tracker.get_summary().items():
        logger.info(f"Token usage for {model}: {usage}")

    if save_scan_state(root, folders, config.scan.state_file):
        console.print(f"[dim]Scan saved to {get_state_path(root, config.scan.state_file)}. Run 'rename' to apply.[/dim]")
