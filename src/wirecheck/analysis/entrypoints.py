"""Entry-point detection.

Entry points are functions the hosting environment invokes directly:
HTTP endpoints, cron jobs, and event registrations. Event registrations
come in two families:

- middleware (``app.use(path?, fn)``): always invoked by the framework,
  so every registered handler is an entry point.
- emitter (``bus.on(name, fn)``): the handler is an entry point only when
  some function also emits that event name somewhere in the tree.

Handlers that do not resolve to a known function are logged and dropped.
Handlers defined in test files never act as production entry points.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import TYPE_CHECKING

import structlog

from wirecheck.analysis.policy import FileClassifier, Policy
from wirecheck.parsing.models import (
    EntryPointCandidate,
    EntryPointKind,
    EventPattern,
    ParseResult,
)

if TYPE_CHECKING:
    from wirecheck.graph.view import GraphView

logger = structlog.get_logger()


class EntryPointDetector:
    """Resolves entry-point candidates against a function set."""

    def __init__(self, classifier: FileClassifier | None = None) -> None:
        self.classifier = classifier or FileClassifier()

    def detect(self, result: ParseResult) -> list[EntryPointCandidate]:
        """Resolved production entry points for a parsed tree.

        Output is deduplicated and ordered by handler then label so re-maps
        of an unchanged tree produce identical rows.
        """
        functions = result.function_index()
        emitted = {e.event_name for e in result.emissions}

        candidates: list[EntryPointCandidate] = list(result.entry_points)
        for reg in result.registrations:
            if reg.pattern is EventPattern.EMITTER and reg.event_name not in emitted:
                logger.debug(
                    "event_registration_unpaired", handler=reg.handler, event_name=reg.event_name
                )
                continue
            candidates.append(
                EntryPointCandidate(
                    kind=EntryPointKind.EVENT,
                    handler=reg.handler,
                    event_name=reg.event_name,
                    pattern=reg.pattern,
                )
            )

        resolved: dict[tuple[str, str], EntryPointCandidate] = {}
        for ep in candidates:
            fn = functions.get(ep.handler)
            if fn is None:
                logger.warning("entry_point_unresolved", handler=ep.handler, entry_point=ep.label)
                continue
            if not self.classifier.is_production(fn.path):
                logger.debug("entry_point_in_test_code", handler=ep.handler)
                continue
            resolved.setdefault((ep.handler, ep.label), ep)

        return [resolved[k] for k in sorted(resolved)]

    def declared(self, view: GraphView, policy: Policy) -> list[EntryPointCandidate]:
        """Entry points declared in the policy ``entry_points`` section."""
        if not policy.entry_points:
            return []
        declared = [
            EntryPointCandidate(kind=EntryPointKind.DECLARED, handler=fn.key)
            for fn in sorted(view.functions.values(), key=lambda f: f.key)
            if self.classifier.is_production(fn.path)
            and policy.is_declared_entry_point(fn.path, fn.name, fn.qualified_name)
        ]
        logger.debug("declared_entry_points", count=len(declared))
        return declared

    def merge(
        self,
        view: GraphView,
        *groups: Iterable[EntryPointCandidate],
    ) -> list[EntryPointCandidate]:
        """Union of entry-point groups, restricted to production functions in ``view``."""
        merged: dict[tuple[str, str], EntryPointCandidate] = {}
        for group in groups:
            for ep in group:
                fn = view.functions.get(ep.handler)
                if fn is None:
                    logger.debug("entry_point_not_in_view", handler=ep.handler)
                    continue
                if not self.classifier.is_production(fn.path):
                    continue
                merged.setdefault((ep.handler, ep.label), ep)
        return [merged[k] for k in sorted(merged)]
