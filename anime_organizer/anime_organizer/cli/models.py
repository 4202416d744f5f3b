"""
Models command for Anime Organizer CLI.

Lists the models offered by the configured provider.
"""
import click
import logging

from .base import console
from ..config import get_provider_config
from ..providers import create_provider, ModelCatalogProvider
from ..logging import AnimeOrganizerError

logger = logging.getLogger(__name__)


@click.command()
@click.option("--refresh", is_flag=True, help="Ignore the cached list and ask the provider again.")
def models(refresh: bool) -> None:
    """
    Lists models available from the configured metadata provider.
    """
    config = get_provider_config()
    try:
        provider = create_provider(config)
    except AnimeOrganizerError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise SystemExit(1)

    try:
        if not isinstance(provider, ModelCatalogProvider):
            console.print(f"[yellow]Provider '{provider.name}' has no model catalog.[/yellow]")
            return
        available = provider.list_models(refresh=refresh)
    finally:
        provider.close()

    if not available:
        console.print("[yellow]No models returned. Check the API key and base URL.[/yellow]")
        return

    current = getattr(provider, "model", None)
    for name in available:
        marker = "[green]*[/green] " if name == current else "  "
        console.print(f"{marker}{name}")
