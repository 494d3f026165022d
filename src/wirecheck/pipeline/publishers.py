"""Verdict publishers.

A publisher hands a finished Verdict to whatever reports it: the log, the
terminal, or a git host's check API. Publishing is the last stage of a run;
a publisher failure makes the run inconclusive, never blocking.
"""

from __future__ import annotations

from collections import deque
from typing import Protocol

import structlog
from rich.console import Console
from rich.table import Table

from wirecheck.analysis.verdict import Tier
from wirecheck.config.constants import VERDICT_HISTORY_MAX
from wirecheck.pipeline.models import AnalysisStatus, Verdict

logger = structlog.get_logger()

_STATUS_STYLE = {
    AnalysisStatus.PASSED: "green",
    AnalysisStatus.FAILED: "red",
    AnalysisStatus.INCONCLUSIVE: "yellow",
    AnalysisStatus.SKIPPED: "dim",
}

_TIER_STYLE = {
    Tier.REACHABLE: "green",
    Tier.LIKELY_REACHABLE: "yellow",
    Tier.UNREACHABLE: "red",
    Tier.ALLOWED: "dim",
}


class VerdictPublisher(Protocol):
    async def publish(self, verdict: Verdict) -> None: ...


class LoggingPublisher:
    """Emits one structured ``verdict_published`` event per verdict."""

    async def publish(self, verdict: Verdict) -> None:
        log = logger.warning if verdict.is_blocking else logger.info
        log(
            "verdict_published",
            repository=verdict.repository,
            unit=verdict.unit,
            status=verdict.status.value,
            commit=verdict.commit_sha,
            entry_points=verdict.entry_point_count,
            new_exports=verdict.new_export_count,
            blocking=verdict.blocking_count,
            **{f"tier_{k.replace('-', '_')}": v for k, v in verdict.tier_counts.items()},
        )
        for fn in verdict.blocking:
            logger.warning(
                "unwired_function",
                function=fn.key,
                non_qualifying_references=list(fn.non_qualifying_references),
            )


class ConsolePublisher:
    """Renders verdicts as a rich table."""

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()

    async def publish(self, verdict: Verdict) -> None:
        self.render(verdict)

    def render(self, verdict: Verdict) -> None:
        style = _STATUS_STYLE[verdict.status]
        self.console.print(
            f"[bold]{verdict.repository}[/bold] {verdict.unit}: "
            f"[{style}]{verdict.status.value}[/{style}]"
            f"  entry points={verdict.entry_point_count}"
            f"  new exports={verdict.new_export_count}",
            highlight=False,
        )
        if verdict.error:
            self.console.print(f"  [yellow]{verdict.error.get('message', '')}[/yellow]")
        if not verdict.functions:
            return

        table = Table(show_header=True, header_style="bold")
        table.add_column("Function")
        table.add_column("Tier")
        table.add_column("Evidence")
        for fn in verdict.functions:
            tier_style = _TIER_STYLE[fn.tier]
            if fn.entry_point:
                evidence = f"{fn.entry_point} ({len(fn.reach_path) - 1} hops)"
            elif fn.allowed_by:
                evidence = fn.allowed_by
            elif fn.references:
                evidence = "referenced in " + ", ".join(fn.references)
            elif fn.non_qualifying_references:
                evidence = "only in " + ", ".join(fn.non_qualifying_references)
            else:
                evidence = fn.status.value
            table.add_row(fn.key, f"[{tier_style}]{fn.tier.value}[/{tier_style}]", evidence)
        self.console.print(table)


class RecordingPublisher:
    """Keeps the most recent verdicts in memory (daemon ``/status``)."""

    def __init__(self, maxlen: int = VERDICT_HISTORY_MAX) -> None:
        self.verdicts: deque[Verdict] = deque(maxlen=maxlen)

    async def publish(self, verdict: Verdict) -> None:
        self.verdicts.append(verdict)

    def latest(self, limit: int = 10) -> list[Verdict]:
        return list(self.verdicts)[-limit:][::-1]


class CompositePublisher:
    """Fans a verdict out to several publishers in order."""

    def __init__(self, *publishers: VerdictPublisher) -> None:
        self.publishers = list(publishers)

    async def publish(self, verdict: Verdict) -> None:
        for publisher in self.publishers:
            await publisher.publish(verdict)
