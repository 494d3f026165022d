"""wirecheck CLI - wirecheck command."""

import click

from wirecheck.cli.check import check_command
from wirecheck.cli.orphans import orphans_command
from wirecheck.cli.remap import remap_command
from wirecheck.cli.serve import serve_command
from wirecheck.cli.status import status_command
from wirecheck.core.logging import configure_logging


@click.group()
@click.version_option(version="0.1.0", prog_name="wirecheck")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx: click.Context, verbose: bool) -> None:
    """wirecheck - flag exported code that no production entry point reaches."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    configure_logging(level="DEBUG" if verbose else "WARNING")


cli.add_command(remap_command, name="remap")
cli.add_command(check_command, name="check")
cli.add_command(orphans_command, name="orphans")
cli.add_command(serve_command, name="serve")
cli.add_command(status_command, name="status")


if __name__ == "__main__":
    cli()
