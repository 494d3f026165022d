"""Production vs. test classification of repository paths.

``is_test_path`` is a pure, total function over a path string. It is
recomputed on every re-map and never stored as a manual override; policy
overrides are layered on top at analysis time by ``FileClassifier``.

Rules (any match => test):
- Filename suffixes: ``.test.<ext>``, ``.spec.<ext>``, ``_test.<ext>``,
  ``_spec.<ext>``, ``test_*.py``
- Story files: ``.stories.<ext>``, ``.story.<ext>``
- Directory segments: ``__tests__``, ``__mocks__``, ``test``, ``tests``,
  ``fixtures``, ``__fixtures__``
"""

from __future__ import annotations

import re
from pathlib import PurePosixPath

TEST_DIR_SEGMENTS: frozenset[str] = frozenset(
    (
        "__tests__",
        "__mocks__",
        "__fixtures__",
        "test",
        "tests",
        "fixtures",
    )
)

_TEST_FILENAME_RE = re.compile(
    r"""
    (
        \.(test|spec|stories|story)\.[^.]+$   # foo.test.ts, Button.stories.tsx
      | _(test|spec)\.[^.]+$                  # foo_test.go, foo_spec.rb
      | ^test_[^/]*\.py$                      # test_foo.py
      | ^conftest\.py$
    )
    """,
    re.VERBOSE,
)

# Type declaration files carry no runtime functions.
_DECLARATION_RE = re.compile(r"\.d\.(ts|mts|cts)$")


def normalize_path(path: str) -> str:
    """Normalize to a forward-slash relative path without leading ``./``."""
    norm = path.replace("\\", "/")
    while norm.startswith("./"):
        norm = norm[2:]
    return norm.lstrip("/")


def is_test_path(path: str) -> bool:
    """Return True if the path belongs to test code.

    Total over any string: empty or odd inputs are production.
    """
    norm = normalize_path(path)
    if not norm:
        return False
    parts = PurePosixPath(norm).parts
    if not parts:
        return False
    if any(part in TEST_DIR_SEGMENTS for part in parts[:-1]):
        return True
    return _TEST_FILENAME_RE.search(parts[-1]) is not None


def is_declaration_path(path: str) -> bool:
    """Return True for type declaration files (``*.d.ts``)."""
    return _DECLARATION_RE.search(normalize_path(path)) is not None


def module_of(path: str) -> str:
    """Module grouping key for a file: its path without extension."""
    norm = normalize_path(path)
    pure = PurePosixPath(norm)
    if pure.suffix:
        return str(pure.with_suffix(""))
    return norm
