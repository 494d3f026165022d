"""Two-layer classification: graph verdict merged with textual corroboration.

The merge is a lookup table, not branching logic, so the precision/recall
tradeoff can be read (and tested) in one place:

    graph verdict             reference found   tier
    reachable / entry_point   any               reachable
    unreachable / test_only   yes               likely-reachable (advisory)
    unreachable / test_only   no                unreachable (blocking)

Allowed orphans (policy) and conventional hook names (skip list) are
filtered out first and reported as ``allowed``.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

from wirecheck.analysis.policy import Policy
from wirecheck.analysis.reachability import ReachabilityEngine, ReachabilityStatus
from wirecheck.analysis.references import ReferenceCorroborator

if TYPE_CHECKING:
    from wirecheck.graph.view import FunctionNode


class Tier(str, Enum):
    REACHABLE = "reachable"
    LIKELY_REACHABLE = "likely-reachable"
    UNREACHABLE = "unreachable"
    ALLOWED = "allowed"

    @property
    def blocking(self) -> bool:
        return self is Tier.UNREACHABLE


MERGE_TABLE: Mapping[tuple[ReachabilityStatus, bool], Tier] = MappingProxyType(
    {
        (ReachabilityStatus.ENTRY_POINT, True): Tier.REACHABLE,
        (ReachabilityStatus.ENTRY_POINT, False): Tier.REACHABLE,
        (ReachabilityStatus.REACHABLE, True): Tier.REACHABLE,
        (ReachabilityStatus.REACHABLE, False): Tier.REACHABLE,
        (ReachabilityStatus.UNREACHABLE, True): Tier.LIKELY_REACHABLE,
        (ReachabilityStatus.UNREACHABLE, False): Tier.UNREACHABLE,
        (ReachabilityStatus.TEST_ONLY, True): Tier.LIKELY_REACHABLE,
        (ReachabilityStatus.TEST_ONLY, False): Tier.UNREACHABLE,
    }
)


def merge(status: ReachabilityStatus, referenced: bool) -> Tier:
    return MERGE_TABLE[(status, referenced)]


@dataclass(frozen=True)
class FunctionVerdict:
    """Final tier for one function plus the evidence behind it."""

    key: str
    name: str
    path: str
    tier: Tier
    status: ReachabilityStatus
    referenced: bool = False
    entry_point: str | None = None
    reach_path: tuple[str, ...] = ()
    references: tuple[str, ...] = ()
    non_qualifying_references: tuple[str, ...] = ()
    allowed_by: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "function": self.key,
            "name": self.name,
            "path": self.path,
            "tier": self.tier.value,
            "graph_status": self.status.value,
            "referenced": self.referenced,
        }
        if self.entry_point is not None:
            data["entry_point"] = self.entry_point
            data["reach_path"] = list(self.reach_path)
        if self.references:
            data["references"] = list(self.references)
        if self.tier is Tier.UNREACHABLE:
            data["non_qualifying_references"] = list(self.non_qualifying_references)
        if self.allowed_by is not None:
            data["allowed_by"] = self.allowed_by
        return data


class TwoLayerClassifier:
    """Combines a ReachabilityEngine with a ReferenceCorroborator."""

    def __init__(
        self,
        engine: ReachabilityEngine,
        corroborator: ReferenceCorroborator,
        files: Mapping[str, str],
        policy: Policy | None = None,
        skip_names: Iterable[str] = (),
    ) -> None:
        self.engine = engine
        self.corroborator = corroborator
        self.files = files
        self.policy = policy or Policy.empty()
        self.skip_names = frozenset(name.lower() for name in skip_names)

    def classify(self, fn: FunctionNode) -> FunctionVerdict:
        result = self.engine.status(fn.key)

        if result.status.is_reachable:
            return FunctionVerdict(
                key=fn.key,
                name=fn.name,
                path=fn.path,
                tier=merge(result.status, False),
                status=result.status,
                entry_point=result.entry_point.label if result.entry_point else None,
                reach_path=result.path,
            )

        allowed_by = self._allowed_by(fn)
        if allowed_by is not None:
            return FunctionVerdict(
                key=fn.key,
                name=fn.name,
                path=fn.path,
                tier=Tier.ALLOWED,
                status=result.status,
                allowed_by=allowed_by,
            )

        report = self.corroborator.corroborate(fn.name, fn.path, self.files)
        return FunctionVerdict(
            key=fn.key,
            name=fn.name,
            path=fn.path,
            tier=merge(result.status, report.found),
            status=result.status,
            referenced=report.found,
            references=report.qualifying,
            non_qualifying_references=report.non_qualifying,
        )

    def classify_many(self, functions: Iterable[FunctionNode]) -> list[FunctionVerdict]:
        return [self.classify(fn) for fn in sorted(functions, key=lambda f: f.key)]

    def _allowed_by(self, fn: FunctionNode) -> str | None:
        rule = self.policy.allowed_orphan_rule(fn.path, fn.name, fn.qualified_name)
        if rule is not None:
            return f"policy:{rule}"
        if fn.name.lower() in self.skip_names:
            return f"skip:{fn.name}"
        return None
