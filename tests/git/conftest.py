"""Test fixtures for git module."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

import pygit2
import pytest

if TYPE_CHECKING:
    from collections.abc import Generator


def _commit(repo: pygit2.Repository, rel: str, text: str, message: str) -> pygit2.Oid:
    target = Path(repo.workdir) / rel
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(text)
    repo.index.add(rel)
    repo.index.write()
    tree = repo.index.write_tree()
    sig = pygit2.Signature("Test User", "test@example.com")
    parents = [] if repo.head_is_unborn else [repo.head.target]
    return repo.create_commit("HEAD", sig, sig, message, tree, parents)


@pytest.fixture
def temp_repo(tmp_path: Path) -> Generator[pygit2.Repository, None, None]:
    """Repository with main, a feature branch and an annotated tag.

    - main: README.md, then src/app.ts
    - feature: branches after README.md and adds src/feature.ts
    - v1: tag on the first commit
    """
    repo_path = tmp_path / "repo"
    repo_path.mkdir()

    repo = pygit2.init_repository(str(repo_path), initial_head="main")
    repo.config["user.name"] = "Test User"
    repo.config["user.email"] = "test@example.com"

    first = _commit(repo, "README.md", "# Test Repo\n", "Initial commit")
    sig = pygit2.Signature("Test User", "test@example.com")
    repo.create_tag("v1", first, pygit2.enums.ObjectType.COMMIT, sig, "release v1")

    repo.branches.local.create("feature", repo.get(first))
    _commit(repo, "src/app.ts", "export function main() {}\n", "Add app")

    repo.checkout("refs/heads/feature")
    _commit(repo, "src/feature.ts", "export function extra() {}\n", "Add feature")
    repo.checkout("refs/heads/main")

    yield repo


@pytest.fixture
def plain_dir(tmp_path: Path) -> Path:
    """Directory that is not a git repository."""
    path = tmp_path / "plain"
    path.mkdir()
    return path
