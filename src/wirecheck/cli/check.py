"""wirecheck check command - analyse one change against the published graph."""

import asyncio
import json
from pathlib import Path

import click

from wirecheck.cli.utils import load_cli_config, open_store, resolve_repository
from wirecheck.core.progress import get_console, spinner
from wirecheck.git.checkout import CheckoutProvider, GitCheckoutProvider, WorkingTreeProvider
from wirecheck.parsing.facts import FactsFileParser
from wirecheck.pipeline.change_analysis import ChangeAnalysisPipeline
from wirecheck.pipeline.models import AnalysisStatus, ChangeAction, ChangeEvent
from wirecheck.pipeline.publishers import ConsolePublisher, LoggingPublisher, VerdictPublisher

EXIT_BLOCKING = 1
EXIT_INCONCLUSIVE = 2


@click.command()
@click.argument("repository")
@click.argument("ref")
@click.option("--unit", default="cli", show_default=True, help="Revision stream name.")
@click.option("--source", default=None, help="Clone source (path or URL) if not configured.")
@click.option(
    "--tree",
    "tree",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=None,
    help="Analyse an existing working tree instead of cloning REF.",
)
@click.option(
    "--root",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=".",
    help="Directory holding .wirecheck/ (config and database).",
)
@click.option("--json", "as_json", is_flag=True, help="Output the verdict as JSON")
def check_command(
    repository: str,
    ref: str,
    unit: str,
    source: str | None,
    tree: Path | None,
    root: Path,
    as_json: bool,
) -> None:
    """Check REF of REPOSITORY for newly exported functions nothing reaches.

    Exits 1 when the verdict is blocking and 2 when the analysis was
    inconclusive.
    """
    root = root.resolve()
    config = load_cli_config(root)
    checkouts: CheckoutProvider
    if tree is not None:
        tree = tree.resolve()
        resolve_repository(config, repository, source or str(tree))
        checkouts = WorkingTreeProvider(tree)
    else:
        resolve_repository(config, repository, source)
        workspace = config.pipeline.workspace_dir
        checkouts = GitCheckoutProvider(Path(workspace) if workspace else None)

    publisher: VerdictPublisher = (
        LoggingPublisher() if as_json else ConsolePublisher(get_console())
    )
    event = ChangeEvent(
        repository=repository,
        unit=unit,
        action=ChangeAction.UPDATED,
        head_ref=ref,
    )

    store = open_store(root, config)
    try:
        pipeline = ChangeAnalysisPipeline(
            store.reader(),
            checkouts,
            FactsFileParser(config.parser),
            publisher,
            config,
        )
        with spinner(f"Analysing {repository} @ {ref}"):
            verdict = asyncio.run(pipeline.run(event))
    finally:
        store.close()

    if as_json:
        click.echo(json.dumps(verdict.to_dict(), indent=2))

    if verdict.status is AnalysisStatus.FAILED:
        raise SystemExit(EXIT_BLOCKING)
    if verdict.status is AnalysisStatus.INCONCLUSIVE:
        raise SystemExit(EXIT_INCONCLUSIVE)
