"""
Search and diagnostics commands for Anime Organizer CLI.

Queries the local SubShare title database.
"""
import click
import logging

from rich.table import Table
from rich import box
from rich.markup import escape
from rich.panel import Panel

from .base import console, build_title_search, format_size, run_cancellable

logger = logging.getLogger(__name__)


@click.command()
@click.argument("keyword")
@click.option("--limit", default=20, show_default=True, help="Maximum number of results.")
def search(keyword: str, limit: int) -> None:
    """
    Finds titles in the SubShare database containing KEYWORD.
    """
    logger.info(f"Search command started (keyword={keyword}, limit={limit})")
    service = build_title_search()
    results = run_cancellable(lambda cancel: service.search(keyword, limit=limit, cancel=cancel))

    if not results:
        diagnostics = service.get_diagnostics()
        if diagnostics.last_error:
            console.print(f"[red]Title database could not be loaded: {diagnostics.last_error}[/red]")
        elif diagnostics.record_count == 0:
            console.print("[yellow]Title database is empty or missing. Run 'db update' first.[/yellow]")
        else:
            console.print(f"[dim]No titles match '{escape(keyword)}'.[/dim]")
        return

    table = Table(box=box.SIMPLE, show_header=True, header_style="bold cyan", expand=True)
    table.add_column("Title", ratio=2, overflow="fold")
    table.add_column("Japanese", ratio=2, overflow="fold")
    table.add_column("English", ratio=2, overflow="fold")
    table.add_column("Type", width=8)
    table.add_column("Updated", width=12)

    for record in results:
        table.add_row(
            escape(record.display_title),
            escape(record.name_jp or ""),
            escape(record.name_en or ""),
            record.type or "",
            record.updated_at.strftime("%Y-%m-%d") if record.updated_at else "",
        )
    console.print(table)
    console.print(f"[dim]{len(results)} results[/dim]")


@click.command()
def diagnostics() -> None:
    """
    Shows how the title database was loaded.
    """
    service = build_title_search()
    diag = run_cancellable(lambda cancel: service.get_diagnostics(cancel))

    grid = Table.grid(padding=(0, 2))
    grid.add_column(style="bold cyan")
    grid.add_column()
    grid.add_row("Path:", str(diag.db_path))
    grid.add_row("File size:", format_size(diag.file_size))
    grid.add_row("Fingerprint:", diag.fingerprint or "[red]not loaded[/red]")
    grid.add_row("Raw <subs> tags:", str(diag.raw_subs_tag_count))
    grid.add_row("<subs> elements:", str(diag.subs_element_count))
    grid.add_row("Parsed records:", str(diag.parsed_count))
    grid.add_row("Indexed records:", str(diag.record_count))
    if diag.last_error:
        grid.add_row("Last error:", f"[red]{diag.last_error}[/red]")

    console.print(Panel(grid, title="[bold]Title Database[/bold]", border_style="cyan"))
