"""Full re-map: the only code path that writes the call-graph store.

Check out the default branch in isolation, parse it, detect entry points,
and hand the whole graph to ``GraphStore.replace_repository_subgraph``.
"""

from __future__ import annotations

import time
from concurrent.futures import Executor
from pathlib import Path

import structlog

from wirecheck.analysis.entrypoints import EntryPointDetector
from wirecheck.analysis.policy import FileClassifier, load_policy
from wirecheck.config.models import RepositoryConfig, WirecheckConfig
from wirecheck.core.errors import PipelineError, WirecheckError
from wirecheck.core.logging import clear_analysis_id, set_analysis_id
from wirecheck.git.checkout import Checkout, CheckoutProvider
from wirecheck.git.errors import GitError, RemoteError
from wirecheck.graph._internal import SnapshotStats
from wirecheck.graph.store import GraphStore
from wirecheck.parsing.base import RepositoryParser
from wirecheck.pipeline.concurrency import run_blocking, with_retries

logger = structlog.get_logger()


def checkout_or_raise(provider: CheckoutProvider, source: str, ref: str) -> Checkout:
    """Blocking checkout with git errors mapped to PipelineError."""
    try:
        return provider.checkout(source, ref)
    except RemoteError as e:
        raise PipelineError.checkout_failed(ref, str(e)) from e
    except GitError as e:
        raise PipelineError.checkout_failed(ref, str(e), retryable=False) from e
    except OSError as e:
        raise PipelineError.checkout_failed(ref, str(e)) from e


class RemapService:
    """Rebuilds a repository's persisted graph from its default branch."""

    def __init__(
        self,
        store: GraphStore,
        checkouts: CheckoutProvider,
        parser: RepositoryParser,
        config: WirecheckConfig,
        executor: Executor | None = None,
    ) -> None:
        self.store = store
        self.checkouts = checkouts
        self.parser = parser
        self.config = config
        self.executor = executor

    def remap_tree(
        self,
        repository: str,
        root: Path,
        *,
        default_branch: str = "main",
        commit_sha: str | None = None,
    ) -> SnapshotStats:
        """Parse ``root`` and publish it as the repository's graph (blocking)."""
        result = self.parser.parse(root)
        if commit_sha is not None:
            result.commit_sha = commit_sha
        try:
            policy = load_policy(root, self.config.policy)
            entry_points = EntryPointDetector(FileClassifier(policy)).detect(result)
            return self.store.replace_repository_subgraph(
                repository, result, entry_points, default_branch=default_branch
            )
        finally:
            result.clear()

    async def remap(self, repository: str, ref: str | None = None) -> SnapshotStats:
        """Check out ``ref`` (default branch) of a configured repository and re-map it."""
        repo_config = self._repository(repository)
        target = ref or repo_config.default_branch
        analysis_id = set_analysis_id()
        start = time.monotonic()
        logger.info("remap_started", repository=repository, ref=target, analysis_id=analysis_id)
        try:
            stats = await with_retries(
                lambda: self._remap_once(repo_config, target),
                max_retries=self.config.pipeline.max_retries,
                base_delay=self.config.pipeline.retry_base_delay_sec,
                what="remap",
            )
        except WirecheckError as e:
            logger.error("remap_failed", repository=repository, error=e.error_name, message=e.message)
            raise
        finally:
            clear_analysis_id()
        logger.info(
            "remap_completed",
            repository=repository,
            snapshot_id=stats.snapshot_id,
            duration_sec=round(time.monotonic() - start, 3),
        )
        return stats

    async def _remap_once(self, repo_config: RepositoryConfig, ref: str) -> SnapshotStats:
        checkout = await run_blocking(
            self.executor,
            checkout_or_raise,
            self.checkouts,
            repo_config.source,
            ref,
            on_abandon=self.checkouts.cleanup,
        )
        try:
            return await run_blocking(
                self.executor,
                self._remap_checkout,
                repo_config,
                checkout,
            )
        finally:
            self.checkouts.cleanup(checkout)

    def _remap_checkout(self, repo_config: RepositoryConfig, checkout: Checkout) -> SnapshotStats:
        return self.remap_tree(
            repo_config.name,
            checkout.root,
            default_branch=repo_config.default_branch,
            commit_sha=checkout.commit_sha,
        )

    def _repository(self, name: str) -> RepositoryConfig:
        repo = self.config.repository(name)
        if repo is None:
            raise PipelineError.unknown_repository(name)
        return repo
