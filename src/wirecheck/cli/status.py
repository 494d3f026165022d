"""wirecheck status command - show daemon status."""

import json
from pathlib import Path

import click
import httpx

from wirecheck.cli.utils import load_cli_config


@click.command()
@click.option(
    "--root",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=".",
    help="Directory holding .wirecheck/ (config).",
)
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def status_command(root: Path, as_json: bool) -> None:
    """Show the running daemon's scheduler, snapshots and recent verdicts."""
    config = load_cli_config(root.resolve())
    url = f"http://{config.server.host}:{config.server.port}/status"

    try:
        response = httpx.get(url, timeout=5.0)
        status_data = response.json()
    except (httpx.RequestError, json.JSONDecodeError) as e:
        if as_json:
            click.echo(json.dumps({"running": False, "url": url, "error": str(e)}))
        else:
            click.echo(f"Daemon: not reachable at {url} ({e})")
        raise SystemExit(1) from e

    if as_json:
        click.echo(json.dumps({"running": True, **status_data}))
        return

    click.echo(f"Daemon: running (version {status_data.get('version', 'unknown')})")

    scheduler = status_data.get("scheduler", {})
    click.echo(
        f"Scheduler: {len(scheduler.get('pending', []))} pending, "
        f"{scheduler.get('completed', 0)} completed, "
        f"{scheduler.get('superseded', 0)} superseded"
    )
    for unit in scheduler.get("pending", []):
        click.echo(f"  {unit['unit']}: {unit['state']} @ {unit['ref']}")
    if scheduler.get("last_error"):
        click.echo(f"  Last error: {scheduler['last_error']}")

    for repo in status_data.get("repositories", []):
        if repo.get("snapshot_id") is None:
            click.echo(f"Repository {repo['name']}: not mapped")
        else:
            click.echo(
                f"Repository {repo['name']}: snapshot {repo['snapshot_id']} "
                f"({repo.get('commit') or 'working tree'}), "
                f"{repo.get('functions', 0)} functions, {repo.get('entry_points', 0)} entry points"
            )

    for verdict in status_data.get("recent_verdicts", []):
        click.echo(f"  {verdict['repository']} {verdict['unit']}: {verdict['status']}")
