"""
Database maintenance commands for Anime Organizer CLI.
"""
import click
import logging

from .base import console, build_db_service, format_size, run_cancellable
from ..models import DbUpdateResult

logger = logging.getLogger(__name__)


def print_result(result: DbUpdateResult) -> None:
    if result.success:
        console.print(f"[green]{result.message}[/green]: {format_size(result.bytes_written)} from {result.source}")
    else:
        console.print(f"[red]{result.message}[/red]")
        raise SystemExit(1)


@click.group()
def db() -> None:
    """Manage the local SubShare title database."""


@db.command()
def status() -> None:
    """Shows whether the database exists, its size and age."""
    info = build_db_service().get_status()
    if not info.exists:
        console.print(f"[yellow]No database at {info.path}. Run 'db update' or 'db import'.[/yellow]")
        return
    modified = info.last_modified.strftime("%Y-%m-%d %H:%M:%S UTC") if info.last_modified else "unknown"
    console.print(f"[bold]{info.path}[/bold]: {format_size(info.size_bytes)}, last modified {modified}")


@db.command(name="import")
@click.argument("source", type=click.Path(exists=True, dir_okay=False))
def import_db(source: str) -> None:
    """Replaces the database with the local file SOURCE."""
    logger.info(f"DB import started (source={source})")
    service = build_db_service()
    print_result(run_cancellable(lambda cancel: service.import_from_file(source, cancel)))


@db.command()
def update() -> None:
    """Downloads the latest database from the SubShare mirrors."""
    logger.info("DB update started")
    service = build_db_service()
    try:
        with console.status("[bold green]Downloading title database..."):
            result = run_cancellable(service.update)
    finally:
        service.close()
    for error in result.errors:
        console.print(f"[dim]{error}[/dim]")
    print_result(result)
