"""Policy resolver: allowlists, declared entry points, file reclassification.

The policy document lives at ``.wirecheck/policy.yaml`` in the analysed tree::

    allowed_orphans:
      - src/legacy/shim.ts:*          # whole file
      - src/api/compat.ts:oldHandler  # one function
      - src/generated/**              # glob (function defaults to *)
    entry_points:
      - src/workers/*.ts:run          # pattern:functionName
    not_test:
      - src/testing/harness.ts        # production despite the name
    test:
      - src/devtools/**               # treat as test code

Policy is advisory: a missing or malformed document resolves to an empty
policy and never fails an analysis.
"""

from __future__ import annotations

import fnmatch
from dataclasses import dataclass
from pathlib import Path

import structlog
import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from wirecheck.config.models import PolicyConfig
from wirecheck.core.paths import is_declaration_path, is_test_path, normalize_path

logger = structlog.get_logger()

WILDCARD = "*"


def matches_glob(rel_path: str, pattern: str) -> bool:
    """Check if a path matches a glob pattern, with ** and directory support."""
    if rel_path == pattern or fnmatch.fnmatch(rel_path, pattern):
        return True
    if pattern.startswith("**/") and fnmatch.fnmatch(rel_path, pattern[3:]):
        return True
    return pattern.endswith("/") and rel_path.startswith(pattern)


@dataclass(frozen=True, slots=True)
class FunctionRule:
    """``<path glob>:<function>`` where function may be ``*``."""

    path_pattern: str
    function: str = WILDCARD

    @classmethod
    def parse(cls, raw: str, *, default_path: str = "**") -> FunctionRule:
        text = raw.strip()
        path, sep, function = text.rpartition(":")
        if not sep:
            # No separator: a bare glob for orphans, a bare name for entry points
            if default_path == "**":
                return cls(normalize_path(text), WILDCARD)
            return cls(default_path, text)
        return cls(normalize_path(path) or default_path, function.strip() or WILDCARD)

    def matches(self, path: str, name: str, qualified_name: str | None = None) -> bool:
        if not matches_glob(normalize_path(path), self.path_pattern):
            return False
        if self.function == WILDCARD:
            return True
        return self.function in (name, qualified_name)

    def __str__(self) -> str:
        return f"{self.path_pattern}:{self.function}"


class PolicyDocument(BaseModel):
    """Schema of the policy document. Unknown sections are ignored."""

    model_config = ConfigDict(extra="ignore")

    allowed_orphans: list[str] = Field(default_factory=list)
    entry_points: list[str] = Field(default_factory=list)
    not_test: list[str] = Field(default_factory=list)
    test: list[str] = Field(default_factory=list)


@dataclass(frozen=True)
class Policy:
    """Resolved per-analysis policy rules."""

    allowed_orphans: tuple[FunctionRule, ...] = ()
    entry_points: tuple[FunctionRule, ...] = ()
    not_test: tuple[str, ...] = ()
    test: tuple[str, ...] = ()
    source: str | None = None

    @classmethod
    def empty(cls) -> Policy:
        return cls()

    @classmethod
    def from_document(cls, doc: PolicyDocument, source: str | None = None) -> Policy:
        return cls(
            allowed_orphans=tuple(FunctionRule.parse(p) for p in doc.allowed_orphans if p.strip()),
            entry_points=tuple(
                FunctionRule.parse(p, default_path="*") for p in doc.entry_points if p.strip()
            ),
            not_test=tuple(normalize_path(p) for p in doc.not_test if p.strip()),
            test=tuple(normalize_path(p) for p in doc.test if p.strip()),
            source=source,
        )

    @property
    def is_empty(self) -> bool:
        return not (self.allowed_orphans or self.entry_points or self.not_test or self.test)

    def allowed_orphan_rule(
        self, path: str, name: str, qualified_name: str | None = None
    ) -> FunctionRule | None:
        """First allowed-orphan rule matching the function, if any."""
        for rule in self.allowed_orphans:
            if rule.matches(path, name, qualified_name):
                return rule
        return None

    def is_allowed_orphan(self, path: str, name: str, qualified_name: str | None = None) -> bool:
        return self.allowed_orphan_rule(path, name, qualified_name) is not None

    def is_declared_entry_point(
        self, path: str, name: str, qualified_name: str | None = None
    ) -> bool:
        return any(rule.matches(path, name, qualified_name) for rule in self.entry_points)

    def reclassify(self, path: str) -> bool | None:
        """Forced test classification for ``path``, or None without an override.

        ``not_test`` wins when both sections match.
        """
        norm = normalize_path(path)
        if any(matches_glob(norm, p) for p in self.not_test):
            return False
        if any(matches_glob(norm, p) for p in self.test):
            return True
        return None


def parse_policy(text: str, source: str | None = None) -> Policy:
    """Parse policy YAML. Malformed input yields an empty policy."""
    try:
        raw = yaml.safe_load(text)
    except yaml.YAMLError as e:
        logger.warning("policy_malformed", source=source, error=str(e))
        return Policy.empty()

    if raw is None:
        return Policy(source=source)
    if not isinstance(raw, dict):
        logger.warning("policy_malformed", source=source, error="document is not a mapping")
        return Policy.empty()

    try:
        doc = PolicyDocument.model_validate(raw)
    except ValidationError as e:
        logger.warning("policy_malformed", source=source, error=str(e.errors()[0]["msg"]))
        return Policy.empty()
    return Policy.from_document(doc, source=source)


def load_policy(root: Path, config: PolicyConfig | None = None) -> Policy:
    """Load the policy document under ``root``. Absence is an empty policy."""
    cfg = config or PolicyConfig()
    path = root / cfg.filename
    if not path.is_file():
        logger.debug("policy_absent", path=str(path))
        return Policy.empty()
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        logger.warning("policy_unreadable", path=str(path), error=str(e))
        return Policy.empty()
    policy = parse_policy(text, source=str(path))
    logger.debug(
        "policy_loaded",
        path=str(path),
        allowed_orphans=len(policy.allowed_orphans),
        entry_points=len(policy.entry_points),
    )
    return policy


class FileClassifier:
    """Production/test classification with policy overrides on top."""

    def __init__(self, policy: Policy | None = None) -> None:
        self.policy = policy or Policy.empty()
        self._cache: dict[str, bool] = {}

    def is_test(self, path: str) -> bool:
        cached = self._cache.get(path)
        if cached is not None:
            return cached
        override = self.policy.reclassify(path)
        result = is_test_path(path) if override is None else override
        self._cache[path] = result
        return result

    def is_production(self, path: str) -> bool:
        """Production runtime code: not test, not a type declaration file."""
        return not self.is_test(path) and not is_declaration_path(path)
