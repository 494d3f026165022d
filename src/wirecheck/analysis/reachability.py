"""Bounded-depth reachability from production entry points.

Traversal is a multi-source BFS over CallEdges and event edges
(emitter -> binding -> handler is one hop), restricted to production
functions at every hop and cut off at ``max_hops``. A visited set keeps
cycles from looping; the first path found is kept as the explanation.
"""

from __future__ import annotations

from collections import deque
from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

import structlog

from wirecheck.analysis.policy import FileClassifier, matches_glob
from wirecheck.config.constants import DEFAULT_MAX_HOPS
from wirecheck.core.paths import module_of
from wirecheck.parsing.models import EntryPointCandidate

if TYPE_CHECKING:
    from wirecheck.graph.view import FunctionNode, GraphView

logger = structlog.get_logger()


class ReachabilityStatus(str, Enum):
    ENTRY_POINT = "entry_point"
    REACHABLE = "reachable"
    TEST_ONLY = "test_only"
    UNREACHABLE = "unreachable"

    @property
    def is_reachable(self) -> bool:
        return self in (ReachabilityStatus.ENTRY_POINT, ReachabilityStatus.REACHABLE)


@dataclass(frozen=True, slots=True)
class ReachabilityResult:
    """Status of one function, with the proving path when reachable."""

    key: str
    status: ReachabilityStatus
    entry_point: EntryPointCandidate | None = None
    path: tuple[str, ...] = ()

    @property
    def hops(self) -> int:
        return max(len(self.path) - 1, 0)

    def to_dict(self) -> dict[str, object]:
        return {
            "function": self.key,
            "status": self.status.value,
            "entry_point": self.entry_point.label if self.entry_point else None,
            "path": list(self.path),
            "hops": self.hops,
        }


@dataclass
class OrphanFunction:
    key: str
    name: str
    qualified_name: str
    path: str
    status: ReachabilityStatus
    test_callers: list[str] = field(default_factory=list)
    production_callers: list[str] = field(default_factory=list)


@dataclass
class OrphanReport:
    """Unreachable exported production functions of one module."""

    module: str
    functions: list[OrphanFunction] = field(default_factory=list)


@dataclass
class _Reach:
    parent: str | None
    entry: int
    depth: int


class ReachabilityEngine:
    """Answers reachability questions over one GraphView."""

    def __init__(
        self,
        view: GraphView,
        entry_points: list[EntryPointCandidate] | None = None,
        classifier: FileClassifier | None = None,
        max_hops: int = DEFAULT_MAX_HOPS,
    ) -> None:
        self.view = view
        self.classifier = classifier or FileClassifier()
        self.max_hops = max_hops
        self.entry_points = [
            ep
            for ep in (view.entry_points if entry_points is None else entry_points)
            if ep.handler in view.functions and self._is_production(ep.handler)
        ]
        self._entry_keys = {ep.handler for ep in self.entry_points}
        self._reached: dict[str, _Reach] | None = None

    def _is_production(self, key: str) -> bool:
        fn = self.view.functions.get(key)
        return fn is not None and self.classifier.is_production(fn.path)

    def _forward(self) -> dict[str, _Reach]:
        if self._reached is not None:
            return self._reached

        reached: dict[str, _Reach] = {}
        queue: deque[str] = deque()
        for index, ep in enumerate(self.entry_points):
            if ep.handler not in reached:
                reached[ep.handler] = _Reach(parent=None, entry=index, depth=0)
                queue.append(ep.handler)

        while queue:
            current = queue.popleft()
            state = reached[current]
            if state.depth >= self.max_hops:
                continue
            for nxt in sorted(self.view.successors(current)):
                if nxt in reached or not self._is_production(nxt):
                    continue
                reached[nxt] = _Reach(parent=current, entry=state.entry, depth=state.depth + 1)
                queue.append(nxt)

        logger.debug(
            "reachability_computed",
            entry_points=len(self.entry_points),
            reached=len(reached),
            functions=len(self.view),
        )
        self._reached = reached
        return reached

    def _path_to(self, key: str) -> tuple[str, ...]:
        reached = self._forward()
        path: list[str] = []
        current: str | None = key
        while current is not None:
            path.append(current)
            current = reached[current].parent
        return tuple(reversed(path))

    def _has_test_ancestor(self, key: str) -> bool:
        """Reverse BFS, bounded by ``max_hops``, looking for a caller in test code."""
        seen = {key}
        frontier = [key]
        for _ in range(self.max_hops):
            nxt: list[str] = []
            for node in frontier:
                for caller in self.view.predecessors(node):
                    if caller in seen:
                        continue
                    seen.add(caller)
                    fn = self.view.functions.get(caller)
                    if fn is not None and self.classifier.is_test(fn.path):
                        return True
                    nxt.append(caller)
            if not nxt:
                break
            frontier = nxt
        return False

    def status(self, key: str) -> ReachabilityResult:
        fn = self.view.functions.get(key)
        if fn is None:
            raise KeyError(key)

        if self.classifier.is_test(fn.path):
            return ReachabilityResult(key, ReachabilityStatus.TEST_ONLY)

        if key in self._entry_keys:
            entry = next(ep for ep in self.entry_points if ep.handler == key)
            return ReachabilityResult(key, ReachabilityStatus.ENTRY_POINT, entry, (key,))

        reach = self._forward().get(key)
        if reach is not None:
            return ReachabilityResult(
                key,
                ReachabilityStatus.REACHABLE,
                self.entry_points[reach.entry],
                self._path_to(key),
            )

        if self._has_test_ancestor(key):
            return ReachabilityResult(key, ReachabilityStatus.TEST_ONLY)
        return ReachabilityResult(key, ReachabilityStatus.UNREACHABLE)

    def query(self, keys: list[str]) -> dict[str, ReachabilityResult]:
        """Statuses for the requested functions. Unknown keys are skipped."""
        results: dict[str, ReachabilityResult] = {}
        for key in keys:
            if key not in self.view.functions:
                logger.debug("reachability_target_unknown", function=key)
                continue
            results[key] = self.status(key)
        return results

    def unreachable_exports(
        self,
        module_filter: str | None = None,
        skip_names: Iterable[str] = (),
    ) -> list[OrphanReport]:
        """Exported production functions not reachable from any entry point.

        Grouped by module and annotated with direct callers split into test
        and production. ``module_filter`` is a glob when it contains a
        wildcard and a prefix otherwise.
        """
        skip = {name.lower() for name in skip_names}
        modules: dict[str, OrphanReport] = {}
        for fn in sorted(self.view.exported(), key=lambda f: f.key):
            if not self.classifier.is_production(fn.path):
                continue
            if fn.name.lower() in skip:
                continue
            module = module_of(fn.path)
            if module_filter and not _module_matches(module, fn.path, module_filter):
                continue
            result = self.status(fn.key)
            if result.status.is_reachable:
                continue
            report = modules.setdefault(module, OrphanReport(module=module))
            report.functions.append(self._annotate(fn, result.status))
        return [modules[m] for m in sorted(modules)]

    def _annotate(self, fn: FunctionNode, status: ReachabilityStatus) -> OrphanFunction:
        test_callers: list[str] = []
        production_callers: list[str] = []
        for caller in sorted(self.view.predecessors(fn.key)):
            caller_fn = self.view.functions.get(caller)
            if caller_fn is None:
                continue
            if self.classifier.is_test(caller_fn.path):
                test_callers.append(caller)
            else:
                production_callers.append(caller)
        return OrphanFunction(
            key=fn.key,
            name=fn.name,
            qualified_name=fn.qualified_name,
            path=fn.path,
            status=status,
            test_callers=test_callers,
            production_callers=production_callers,
        )


def _module_matches(module: str, path: str, module_filter: str) -> bool:
    if any(ch in module_filter for ch in "*?["):
        return matches_glob(module, module_filter) or matches_glob(path, module_filter)
    prefix = module_filter.rstrip("/")
    return module == prefix or module.startswith(prefix + "/") or path.startswith(prefix)
