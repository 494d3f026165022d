"""Isolated checkouts of a candidate revision.

Each checkout is a fresh clone in its own temporary directory. Nothing is
shared with the mapped repository or with other runs, and ``cleanup``
removes the whole directory.
"""

from __future__ import annotations

import shutil
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

import pygit2
import structlog

from wirecheck.git.errors import (
    AuthenticationError,
    GitError,
    NotARepositoryError,
    RefNotFoundError,
    RemoteError,
)

logger = structlog.get_logger()

FETCHED_REF = "refs/wirecheck/candidate"


@dataclass(frozen=True, slots=True)
class Checkout:
    """A working tree at one commit, owned by one pipeline run."""

    workspace: Path  # temporary directory to remove
    root: Path  # working tree inside the workspace
    ref: str
    commit_sha: str


class CheckoutProvider(Protocol):
    """Blocking checkout capability. Called from a worker thread."""

    def checkout(self, source: str, ref: str) -> Checkout: ...

    def cleanup(self, checkout: Checkout) -> None: ...


def _map_remote_error(source: str, op_name: str, e: pygit2.GitError) -> GitError:
    msg = str(e).lower()
    if "authentication" in msg or "credential" in msg:
        return AuthenticationError(source, op_name)
    return RemoteError(source, f"{op_name} failed: {e}")


class GitCheckoutProvider:
    """Clones ``source`` (path or URL) and checks out ``ref`` detached."""

    def __init__(
        self,
        workspace_dir: Path | None = None,
        callbacks: pygit2.RemoteCallbacks | None = None,
    ) -> None:
        self.workspace_dir = workspace_dir
        self._callbacks = callbacks

    def checkout(self, source: str, ref: str) -> Checkout:
        local = Path(source)
        if local.exists() and pygit2.discover_repository(str(local)) is None:
            raise NotARepositoryError(source)
        if self.workspace_dir is not None:
            self.workspace_dir.mkdir(parents=True, exist_ok=True)
        workspace = Path(tempfile.mkdtemp(prefix="wirecheck-", dir=self.workspace_dir))
        try:
            tree = workspace / "tree"
            try:
                repo = pygit2.clone_repository(source, str(tree), callbacks=self._callbacks)
            except pygit2.GitError as e:
                raise _map_remote_error(source, "clone", e) from e

            commit = self._resolve(repo, source, ref)
            repo.checkout_tree(commit, strategy=pygit2.enums.CheckoutStrategy.FORCE)
            repo.set_head(commit.id)
        except BaseException:
            shutil.rmtree(workspace, ignore_errors=True)
            raise

        logger.debug("checkout_ready", source=source, ref=ref, commit=str(commit.id))
        return Checkout(workspace=workspace, root=tree, ref=ref, commit_sha=str(commit.id))

    def _resolve(self, repo: pygit2.Repository, source: str, ref: str) -> pygit2.Commit:
        for candidate in (ref, f"origin/{ref}", f"refs/remotes/origin/{ref}"):
            commit = self._peel(repo, candidate)
            if commit is not None:
                return commit

        # Refs outside the default refspec (refs/pull/N/head, bare SHAs on hosts
        # that allow it) need an explicit fetch
        try:
            repo.remotes["origin"].fetch([f"+{ref}:{FETCHED_REF}"], callbacks=self._callbacks)
        except pygit2.GitError as e:
            logger.debug("candidate_fetch_failed", source=source, ref=ref, error=str(e))
            raise RefNotFoundError(ref) from e
        commit = self._peel(repo, FETCHED_REF)
        if commit is None:
            raise RefNotFoundError(ref)
        return commit

    @staticmethod
    def _peel(repo: pygit2.Repository, refish: str) -> pygit2.Commit | None:
        try:
            obj, _ = repo.resolve_refish(refish)
        except (pygit2.GitError, KeyError, ValueError):
            return None
        if isinstance(obj, pygit2.Tag):
            obj = obj.peel(pygit2.Commit)
        return obj if isinstance(obj, pygit2.Commit) else None

    def cleanup(self, checkout: Checkout) -> None:
        shutil.rmtree(checkout.workspace, ignore_errors=True)
        logger.debug("checkout_removed", workspace=str(checkout.workspace))


def head_commit(path: Path) -> str | None:
    """Commit sha checked out at ``path``, or None outside a git repository."""
    discovered = pygit2.discover_repository(str(path))
    if discovered is None:
        return None
    repo = pygit2.Repository(discovered)
    if repo.head_is_unborn:
        return None
    return str(repo.head.target)


class WorkingTreeProvider:
    """Uses an existing working tree as the candidate, without cloning.

    For CI jobs that already checked the change out. ``cleanup`` leaves the
    tree alone since the run does not own it.
    """

    def __init__(self, root: Path) -> None:
        self.root = root

    def checkout(self, source: str, ref: str) -> Checkout:  # noqa: ARG002
        commit_sha = head_commit(self.root) or ref
        return Checkout(workspace=self.root, root=self.root, ref=ref, commit_sha=commit_sha)

    def cleanup(self, checkout: Checkout) -> None:
        logger.debug("working_tree_kept", root=str(checkout.root))
