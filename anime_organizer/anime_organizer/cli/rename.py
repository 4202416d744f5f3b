"""
Rename command for Anime Organizer CLI.

Applies the last saved scan: moves each identified folder to its
suggested name and records every attempt in the history log.
"""
import click
import logging
from typing import Optional

from rich.table import Table
from rich import box
from rich.markup import escape

from .base import console, get_target_root, build_history
from ..config import get_config
from ..cache import load_scan_state, save_scan_state
from ..renamer import generate_rename_plan, FolderRenamer
from ..history import STATUS_SUCCESS, STATUS_FAILED

logger = logging.getLogger(__name__)


@click.command()
@click.argument("target", required=False)
@click.option("--dry-run", is_flag=True, help="Show what would be renamed without touching the filesystem.")
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation.")
def rename(target: Optional[str], dry_run: bool, yes: bool) -> None:
    """
    Renames the folders identified by the last scan of TARGET.
    """
    config = get_config()
    dry_run = dry_run or config.dry_run
    root = get_target_root(target)
    logger.info(f"Rename command started (target={root}, dry_run={dry_run})")

    folders = load_scan_state(root, config.scan.state_file)
    if folders is None:
        console.print("[yellow]No saved scan found. Run 'scan' first.[/yellow]")
        return

    plan = generate_rename_plan(folders, config.naming.format)
    if not plan:
        console.print("[green]Nothing to rename.[/green]")
        return

    table = Table(box=box.SIMPLE, show_header=True, header_style="bold cyan", expand=True)
    table.add_column("Current Name", ratio=1, overflow="fold")
    table.add_column("Target Name", ratio=1, overflow="fold")
    for op in plan:
        table.add_row(escape(op.current_path.name), f"[yellow]{escape(op.target_name)}[/yellow]")
    console.print(table)

    if dry_run:
        console.print(f"[dim]Dry run: {len(plan)} folders would be renamed.[/dim]")
        return

    if not yes and not click.confirm(f"Rename {len(plan)} folders?", default=False):
        console.print("[yellow]Aborted.[/yellow]")
        return

    renamer = FolderRenamer(build_history(config))
    summary = renamer.execute_rename_plan(plan)

    for outcome in summary.outcomes:
        if outcome.status == STATUS_SUCCESS:
            continue
        color = "red" if outcome.status == STATUS_FAILED else "yellow"
        console.print(f"[{color}]{outcome.status}[/{color}] {escape(outcome.op.current_path.name)}: {escape(outcome.message)}")

    console.print(f"[bold green]{summary.succeeded}[/bold green] renamed, [bold red]{summary.failed}[/bold red] not renamed")

    # Renamed folders now live at their new paths
    save_scan_state(root, folders, config.scan.state_file)
