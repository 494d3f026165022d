"""wirecheck serve command - run the change-event daemon."""

import asyncio
from pathlib import Path

import click

from wirecheck.cli.utils import load_cli_config, open_store
from wirecheck.core.logging import configure_logging
from wirecheck.core.progress import status
from wirecheck.daemon.lifecycle import ServerController, run_server


@click.command()
@click.option(
    "--root",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=".",
    help="Directory holding .wirecheck/ (config and database).",
)
@click.option("--port", "-p", type=int, default=None, help="Override the configured port.")
@click.option("--host", default=None, help="Override the configured bind address.")
@click.pass_context
def serve_command(ctx: click.Context, root: Path, port: int | None, host: str | None) -> None:
    """Accept change events over HTTP and analyse them after a quiet window."""
    root = root.resolve()
    config = load_cli_config(root)
    if port is not None:
        config.server.port = port
    if host is not None:
        config.server.host = host

    if ctx.obj and ctx.obj.get("verbose"):
        config.logging.level = "DEBUG"
    configure_logging(config=config.logging)

    if not config.repositories:
        status("No repositories configured; events will be rejected", style="warning")

    controller = ServerController(config=config, store=open_store(root, config))
    status(f"Listening on http://{config.server.host}:{config.server.port}", style="success")
    asyncio.run(run_server(controller))
