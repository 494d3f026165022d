"""CLI utilities."""

from pathlib import Path

import click

from wirecheck.config.loader import get_db_path, load_config
from wirecheck.config.models import RepositoryConfig, WirecheckConfig
from wirecheck.core.errors import ConfigError, WirecheckError
from wirecheck.graph.store import GraphStore


def load_cli_config(root: Path) -> WirecheckConfig:
    """Load config for ``root``, turning config errors into a clean CLI failure."""
    try:
        return load_config(root)
    except ConfigError as e:
        raise click.ClickException(f"Invalid configuration: {e.message}") from e


def open_store(root: Path, config: WirecheckConfig) -> GraphStore:
    """Open the graph store configured for ``root``."""
    try:
        return GraphStore.open(
            get_db_path(root, config),
            retained_snapshots=config.store.retained_snapshots,
            busy_timeout_ms=config.store.busy_timeout_ms,
            max_retries=config.store.max_retries,
            config=config.reachability,
        )
    except WirecheckError as e:
        raise click.ClickException(e.message) from e


def resolve_repository(
    config: WirecheckConfig,
    name: str,
    source: str | None = None,
    default_branch: str | None = None,
) -> RepositoryConfig:
    """Find ``name`` in config, or register it on the fly from ``--source``.

    Raises:
        click.ClickException: If the repository is unknown and no source was given.
    """
    repo = config.repository(name)
    if repo is None:
        if source is None:
            known = ", ".join(r.name for r in config.repositories) or "none"
            raise click.ClickException(
                f"Unknown repository '{name}' (configured: {known}). "
                "Add it to .wirecheck/config.yaml or pass --source."
            )
        repo = RepositoryConfig(name=name, source=source, default_branch=default_branch or "main")
        config.repositories.append(repo)
        return repo

    if source is not None:
        repo.source = source
    if default_branch is not None:
        repo.default_branch = default_branch
    return repo

