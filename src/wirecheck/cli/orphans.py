"""wirecheck orphans command - list exported functions nothing reaches."""

import json
from pathlib import Path

import click
from rich.table import Table

from wirecheck.analysis.policy import load_policy
from wirecheck.cli.utils import load_cli_config, open_store
from wirecheck.core.errors import WirecheckError
from wirecheck.core.progress import get_console, status

DEFAULT_THRESHOLD = 3


@click.command()
@click.argument("repository")
@click.option("--module", "module_filter", default=None, help="Module prefix or glob to limit to.")
@click.option(
    "--threshold",
    type=click.IntRange(min=0),
    default=DEFAULT_THRESHOLD,
    show_default=True,
    help="Fail when more unreachable exports than this are found.",
)
@click.option(
    "--root",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=".",
    help="Directory holding .wirecheck/ (config, policy and database).",
)
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def orphans_command(
    repository: str,
    module_filter: str | None,
    threshold: int,
    root: Path,
    as_json: bool,
) -> None:
    """Report exported production functions of REPOSITORY that no entry point reaches.

    Allowed orphans from the policy document under --root are left out.
    """
    root = root.resolve()
    config = load_cli_config(root)
    policy = load_policy(root, config.policy)
    store = open_store(root, config)
    try:
        reports = store.reader().query_all_unreachable(repository, module_filter, policy)
    except WirecheckError as e:
        raise click.ClickException(e.message) from e
    finally:
        store.close()

    total = sum(len(r.functions) for r in reports)

    if as_json:
        click.echo(
            json.dumps(
                {
                    "repository": repository,
                    "total": total,
                    "threshold": threshold,
                    "modules": [
                        {
                            "module": r.module,
                            "functions": [
                                {
                                    "key": fn.key,
                                    "name": fn.name,
                                    "status": fn.status.value,
                                    "test_callers": fn.test_callers,
                                    "production_callers": fn.production_callers,
                                }
                                for fn in r.functions
                            ],
                        }
                        for r in reports
                    ],
                },
                indent=2,
            )
        )
    elif total == 0:
        status("No unreachable exports", style="success")
    else:
        table = Table(show_header=True, header_style="bold")
        table.add_column("Module")
        table.add_column("Function")
        table.add_column("Status")
        table.add_column("Callers")
        for report in reports:
            for fn in report.functions:
                callers = ", ".join(fn.production_callers + fn.test_callers) or "-"
                table.add_row(report.module, fn.name, fn.status.value, callers)
        get_console().print(table)

    if total > threshold:
        if not as_json:
            status(f"{total} unreachable exports (threshold {threshold})", style="error")
        raise SystemExit(1)
