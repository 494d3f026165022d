"""In-memory adjacency view over one repository graph.

A GraphView is what the reachability engine traverses. It is built either
from a published snapshot (``GraphReader.load_view``) or from a transient
ParseResult (change analysis), so both paths share one traversal.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable, Iterator
from dataclasses import dataclass

from wirecheck.parsing.models import (
    EntryPointCandidate,
    EventPattern,
    ParseResult,
    binding_key,
)


@dataclass(frozen=True, slots=True)
class FunctionNode:
    key: str
    path: str
    name: str
    qualified_name: str
    is_exported: bool = False
    is_async: bool = False
    complexity: int = 1
    line: int = 0


class GraphView:
    """Functions, call edges and event edges keyed by function key."""

    def __init__(self, snapshot_id: int | None = None, commit_sha: str | None = None) -> None:
        self.snapshot_id = snapshot_id
        self.commit_sha = commit_sha
        self.functions: dict[str, FunctionNode] = {}
        self.files: dict[str, str] = {}  # path -> language
        self.file_text: dict[str, str] = {}
        self.entry_points: list[EntryPointCandidate] = []
        self._calls: dict[str, set[str]] = defaultdict(set)
        self._callers: dict[str, set[str]] = defaultdict(set)
        self._emits: dict[str, set[str]] = defaultdict(set)  # fn -> binding keys
        self._emitters: dict[str, set[str]] = defaultdict(set)  # binding -> fns
        self._handles: dict[str, set[str]] = defaultdict(set)  # fn -> binding keys
        self._handlers: dict[str, set[str]] = defaultdict(set)  # binding -> fns

    # =========================================================================
    # Building
    # =========================================================================

    def add_file(self, path: str, language: str = "unknown", text: str | None = None) -> None:
        self.files[path] = language
        if text is not None:
            self.file_text[path] = text

    def add_function(self, node: FunctionNode) -> None:
        self.functions[node.key] = node
        self.files.setdefault(node.path, "unknown")

    def add_call(self, caller: str, callee: str) -> None:
        self._calls[caller].add(callee)
        self._callers[callee].add(caller)

    def add_handler(self, function: str, binding: str) -> None:
        self._handles[function].add(binding)
        self._handlers[binding].add(function)

    def add_emitter(self, function: str, binding: str) -> None:
        self._emits[function].add(binding)
        self._emitters[binding].add(function)

    @classmethod
    def from_parse_result(
        cls,
        result: ParseResult,
        entry_points: Iterable[EntryPointCandidate] = (),
    ) -> GraphView:
        """Build a transient view. Edges to unknown functions are dropped."""
        view = cls(commit_sha=result.commit_sha)
        for f in result.files:
            view.add_file(f.path, f.language, f.text)
        for fn in result.functions:
            view.add_function(
                FunctionNode(
                    key=fn.key,
                    path=fn.path,
                    name=fn.name,
                    qualified_name=fn.qualified_name,
                    is_exported=fn.is_exported,
                    is_async=fn.is_async,
                    complexity=fn.complexity,
                    line=fn.line,
                )
            )
        for call in result.calls:
            if call.caller in view.functions and call.callee in view.functions:
                view.add_call(call.caller, call.callee)
        for reg in result.registrations:
            if reg.handler in view.functions:
                view.add_handler(reg.handler, binding_key(reg.event_name, reg.pattern))
        for emission in result.emissions:
            if emission.emitter in view.functions:
                view.add_emitter(
                    emission.emitter, binding_key(emission.event_name, EventPattern.EMITTER)
                )
        view.entry_points = [ep for ep in entry_points if ep.handler in view.functions]
        return view

    # =========================================================================
    # Traversal helpers
    # =========================================================================

    def successors(self, key: str) -> Iterator[str]:
        """Direct callees plus handlers of every event this function emits.

        emitter -> binding -> handler counts as a single hop.
        """
        yield from self._calls.get(key, ())
        for binding in self._emits.get(key, ()):
            yield from self._handlers.get(binding, ())

    def predecessors(self, key: str) -> Iterator[str]:
        """Inverse of ``successors``."""
        yield from self._callers.get(key, ())
        for binding in self._handles.get(key, ()):
            yield from self._emitters.get(binding, ())

    def callers(self, key: str) -> set[str]:
        """Direct CallEdge callers of ``key``."""
        return set(self._callers.get(key, ()))

    def emitted_events(self) -> set[str]:
        """Binding keys with at least one EMITS_EVENT edge."""
        return {b for b, fns in self._emitters.items() if fns}

    def handlers_of(self, binding: str) -> set[str]:
        return set(self._handlers.get(binding, ()))

    def entry_point_keys(self) -> set[str]:
        return {ep.handler for ep in self.entry_points}

    def exported(self) -> Iterator[FunctionNode]:
        return (fn for fn in self.functions.values() if fn.is_exported)

    @property
    def call_edge_count(self) -> int:
        return sum(len(callees) for callees in self._calls.values())

    def __contains__(self, key: object) -> bool:
        return key in self.functions

    def __len__(self) -> int:
        return len(self.functions)
