import logging
import click
from dotenv import load_dotenv, find_dotenv

# Load environment variables immediately
load_dotenv(find_dotenv())

from .config import get_logging_config
from .logging import setup_logging, set_log_level, log_step
from .cli.scan import scan
from .cli.rename import rename
from .cli.history import history, restore
from .cli.search import search, diagnostics
from .cli.db import db
from .cli.models import models

logger = logging.getLogger(__name__)


@click.group()
@click.option("-v", "--verbose", count=True, help="Increase verbosity (-v: INFO, -vv: DEBUG).")
@click.pass_context
def cli(ctx: click.Context, verbose: int) -> None:
    """Identify, verify and rename anime folders."""
    log_config = get_logging_config()
    setup_logging(log_config.log_file)
    set_log_level(log_config.file_level, "file")

    if verbose == 1:
        set_log_level(logging.INFO, "console", clean=True)
    elif verbose >= 2:
        set_log_level(logging.DEBUG, "both")
    else:
        set_log_level(log_config.console_level, "console")

    if ctx.invoked_subcommand:
        log_step(f"anime-organizer {ctx.invoked_subcommand}")


cli.add_command(scan)
cli.add_command(rename)
cli.add_command(history)
cli.add_command(restore)
cli.add_command(search)
cli.add_command(diagnostics)
cli.add_command(db)
cli.add_command(models)


if __name__ == "__main__":
    cli()
