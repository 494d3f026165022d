"""wirecheck remap command - rebuild a repository's published graph."""

import asyncio
from pathlib import Path

import click

from wirecheck.cli.utils import load_cli_config, open_store, resolve_repository
from wirecheck.core.errors import WirecheckError
from wirecheck.core.progress import spinner, status
from wirecheck.git.checkout import GitCheckoutProvider, head_commit
from wirecheck.graph._internal import SnapshotStats
from wirecheck.parsing.facts import FactsFileParser
from wirecheck.pipeline.remap import RemapService


@click.command()
@click.argument("repository")
@click.option("--ref", default=None, help="Ref to map instead of the default branch.")
@click.option("--source", default=None, help="Clone source (path or URL) if not configured.")
@click.option(
    "--tree",
    "tree",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=None,
    help="Map an existing working tree in place instead of cloning.",
)
@click.option(
    "--root",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=".",
    help="Directory holding .wirecheck/ (config and database).",
)
def remap_command(
    repository: str,
    ref: str | None,
    source: str | None,
    tree: Path | None,
    root: Path,
) -> None:
    """Re-map REPOSITORY and publish its graph as the new baseline.

    The previous graph stays current if anything fails.
    """
    root = root.resolve()
    config = load_cli_config(root)
    store = open_store(root, config)
    try:
        remapper = RemapService(
            store,
            GitCheckoutProvider(
                Path(config.pipeline.workspace_dir) if config.pipeline.workspace_dir else None
            ),
            FactsFileParser(config.parser),
            config,
        )
        with spinner(f"Mapping {repository}"):
            stats = _run(remapper, repository, ref, source, tree)
    finally:
        store.close()

    status(
        f"Published snapshot {stats.snapshot_id} for {stats.repository}"
        f" ({stats.commit_sha or 'working tree'})",
        style="success",
    )
    status(
        f"{stats.files} files, {stats.functions} functions, "
        f"{stats.call_edges} call edges, {stats.entry_points} entry points",
        indent=2,
    )


def _run(
    remapper: RemapService,
    repository: str,
    ref: str | None,
    source: str | None,
    tree: Path | None,
) -> SnapshotStats:
    try:
        if tree is not None:
            tree = tree.resolve()
            repo = remapper.config.repository(repository)
            return remapper.remap_tree(
                repository,
                tree,
                default_branch=repo.default_branch if repo else "main",
                commit_sha=head_commit(tree),
            )
        resolve_repository(remapper.config, repository, source)
        return asyncio.run(remapper.remap(repository, ref))
    except WirecheckError as e:
        raise click.ClickException(f"Re-map failed: {e.message}") from e
