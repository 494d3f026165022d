"""Ephemeral per-change analysis.

One run walks ``queued -> cloned -> parsed -> diffed -> classified ->
published -> discarded``:

- cloned: the candidate revision is checked out into a private temp dir.
- parsed: the tree is parsed into transient structures held by the run.
- diffed: production exports that are new (or newly exported) relative to
  the published default-branch graph are selected.
- classified: each selected function goes through reachability, textual
  corroboration, policy and the two-layer merge, over a merged view of
  persisted entry points plus the candidate's own call edges.
- published: the verdict goes to the publisher.
- discarded: checkout and parse state are released. Always runs, including
  on failure, timeout and cancellation.

The pipeline holds a GraphReader only; it has no way to write the store.
Any failure before publication yields an inconclusive verdict, never a
blocking one.
"""

from __future__ import annotations

import asyncio
import time
from concurrent.futures import Executor
from dataclasses import dataclass, field

import structlog

from wirecheck.analysis.entrypoints import EntryPointDetector
from wirecheck.analysis.policy import FileClassifier, Policy, load_policy
from wirecheck.analysis.reachability import ReachabilityEngine
from wirecheck.analysis.references import ReferenceCorroborator
from wirecheck.analysis.verdict import FunctionVerdict, TwoLayerClassifier
from wirecheck.config.models import RepositoryConfig, WirecheckConfig
from wirecheck.core.errors import InternalError, PipelineError, WirecheckError
from wirecheck.core.logging import clear_analysis_id, set_analysis_id
from wirecheck.git.checkout import Checkout, CheckoutProvider
from wirecheck.graph.store import GraphReader
from wirecheck.graph.view import FunctionNode, GraphView
from wirecheck.parsing.base import RepositoryParser
from wirecheck.parsing.models import ParsedFunction, ParseResult
from wirecheck.pipeline.concurrency import run_blocking, with_retries
from wirecheck.pipeline.models import (
    AnalysisStatus,
    ChangeAction,
    ChangeEvent,
    PipelineStage,
    Verdict,
)
from wirecheck.pipeline.publishers import VerdictPublisher
from wirecheck.pipeline.remap import checkout_or_raise

logger = structlog.get_logger()


@dataclass
class _Run:
    """Transient state owned by one pipeline invocation."""

    event: ChangeEvent
    analysis_id: str
    started: float
    stage: PipelineStage = PipelineStage.QUEUED
    checkout: Checkout | None = None
    result: ParseResult | None = None
    view: GraphView | None = None
    stages: list[PipelineStage] = field(default_factory=list)


def new_exports(
    base: GraphView, candidate: ParseResult, classifier: FileClassifier
) -> list[ParsedFunction]:
    """Production exports absent from, or not exported in, the base graph."""
    selected: list[ParsedFunction] = []
    for fn in candidate.functions:
        if not fn.is_exported or not classifier.is_production(fn.path):
            continue
        previous = base.functions.get(fn.key)
        if previous is None or not previous.is_exported:
            selected.append(fn)
    return sorted(selected, key=lambda f: f.key)


class ChangeAnalysisPipeline:
    """Runs change analyses against the read-only published graph."""

    def __init__(
        self,
        reader: GraphReader,
        checkouts: CheckoutProvider,
        parser: RepositoryParser,
        publisher: VerdictPublisher,
        config: WirecheckConfig,
        executor: Executor | None = None,
    ) -> None:
        self.reader = reader
        self.checkouts = checkouts
        self.parser = parser
        self.publisher = publisher
        self.config = config
        self.executor = executor

    async def run(self, event: ChangeEvent) -> Verdict:
        """Analyse one change event and publish its verdict.

        Raises:
            asyncio.CancelledError: when superseded; cleanup has completed.
        """
        analysis_id = set_analysis_id()
        run = _Run(event=event, analysis_id=analysis_id, started=time.monotonic())
        try:
            return await self._run(run)
        finally:
            clear_analysis_id()

    async def _run(self, run: _Run) -> Verdict:
        event = run.event
        self._advance(run, PipelineStage.QUEUED)

        if event.action is ChangeAction.CLOSED:
            self._advance(run, PipelineStage.DISCARDED)
            return self._verdict(run, AnalysisStatus.SKIPPED)

        timeout = self.config.pipeline.timeout_sec
        failure: WirecheckError | None = None
        try:
            async with asyncio.timeout(timeout):
                return await self._analyse(run)
        except asyncio.CancelledError:
            cancelled = PipelineError.cancelled(event.unit_key)
            logger.info(
                "analysis_cancelled",
                unit=event.unit_key,
                stage=run.stage.value,
                error=cancelled.error_name,
            )
            raise
        except TimeoutError:
            failure = PipelineError.timeout(timeout)
        except WirecheckError as e:
            failure = e
        except Exception as e:
            logger.exception("analysis_crashed", unit=event.unit_key, stage=run.stage.value)
            failure = InternalError.unexpected(str(e), stage=run.stage.value)
        finally:
            await self._discard(run)

        assert failure is not None
        logger.warning(
            "analysis_inconclusive",
            unit=event.unit_key,
            stage=run.stages[-2].value if len(run.stages) > 1 else None,
            error=failure.error_name,
            message=failure.message,
        )
        verdict = self._verdict(run, AnalysisStatus.INCONCLUSIVE, error=failure)
        try:
            await self.publisher.publish(verdict)
        except Exception as e:
            logger.error("inconclusive_publish_failed", unit=event.unit_key, error=str(e))
        return verdict

    async def _analyse(self, run: _Run) -> Verdict:
        event = run.event
        repo = self._repository(event.repository)
        retries = self.config.pipeline.max_retries
        delay = self.config.pipeline.retry_base_delay_sec

        base = await with_retries(
            lambda: run_blocking(self.executor, self.reader.load_view, repo.name),
            max_retries=retries,
            base_delay=delay,
            what="load_base_graph",
        )

        run.checkout = await with_retries(
            lambda: run_blocking(
                self.executor,
                checkout_or_raise,
                self.checkouts,
                repo.source,
                event.ref,
                on_abandon=self.checkouts.cleanup,
            ),
            max_retries=retries,
            base_delay=delay,
            what="checkout",
        )
        self._advance(run, PipelineStage.CLONED, commit=run.checkout.commit_sha)

        run.result = await run_blocking(self.executor, self.parser.parse, run.checkout.root)
        run.result.commit_sha = run.checkout.commit_sha
        self._advance(
            run,
            PipelineStage.PARSED,
            files=len(run.result.files),
            functions=len(run.result.functions),
        )

        policy = load_policy(run.checkout.root, self.config.policy)
        classifier = FileClassifier(policy)
        candidates = new_exports(base, run.result, classifier)
        self._advance(run, PipelineStage.DIFFED, new_exports=len(candidates))

        functions, entry_point_count = await run_blocking(
            self.executor, self._classify, run, base, candidates, policy
        )
        self._advance(run, PipelineStage.CLASSIFIED)

        status = (
            AnalysisStatus.FAILED
            if any(fn.tier.blocking for fn in functions)
            else AnalysisStatus.PASSED
        )
        verdict = self._verdict(
            run,
            status,
            base_snapshot_id=base.snapshot_id,
            entry_point_count=entry_point_count,
            functions=functions,
        )
        await self.publisher.publish(verdict)
        self._advance(run, PipelineStage.PUBLISHED, status=status.value)
        return verdict

    def _classify(
        self,
        run: _Run,
        base: GraphView,
        candidates: list[ParsedFunction],
        policy: Policy,
    ) -> tuple[list[FunctionVerdict], int]:
        assert run.result is not None
        classifier = FileClassifier(policy)
        detector = EntryPointDetector(classifier)
        view = GraphView.from_parse_result(run.result)
        run.view = view
        entry_points = detector.merge(
            view,
            base.entry_points,
            detector.detect(run.result),
            detector.declared(view, policy),
        )
        engine = ReachabilityEngine(
            view,
            entry_points=entry_points,
            classifier=classifier,
            max_hops=self.config.reachability.max_hops,
        )
        two_layer = TwoLayerClassifier(
            engine,
            ReferenceCorroborator(self.config.reachability.min_identifier_length, classifier),
            files=view.file_text,
            policy=policy,
            skip_names=self.config.reachability.skip_names,
        )
        nodes: list[FunctionNode] = [view.functions[fn.key] for fn in candidates]
        return two_layer.classify_many(nodes), len(engine.entry_points)

    async def _discard(self, run: _Run) -> None:
        """Release every transient artifact of the run."""
        if run.checkout is not None:
            # Shielded, so a second cancel cannot interrupt the removal
            await run_blocking(self.executor, self.checkouts.cleanup, run.checkout)
            run.checkout = None
        if run.result is not None:
            run.result.clear()
            run.result = None
        run.view = None
        self._advance(run, PipelineStage.DISCARDED)

    def _advance(self, run: _Run, stage: PipelineStage, **context: object) -> None:
        run.stage = stage
        run.stages.append(stage)
        logger.info(
            "pipeline_stage",
            unit=run.event.unit_key,
            stage=stage.value,
            elapsed_sec=round(time.monotonic() - run.started, 3),
            **context,
        )

    def _verdict(
        self,
        run: _Run,
        status: AnalysisStatus,
        *,
        error: WirecheckError | None = None,
        base_snapshot_id: int | None = None,
        entry_point_count: int = 0,
        functions: list[FunctionVerdict] | None = None,
    ) -> Verdict:
        functions = functions or []
        return Verdict(
            repository=run.event.repository,
            unit=run.event.unit,
            status=status,
            ref=run.event.ref,
            commit_sha=run.checkout.commit_sha if run.checkout else None,
            base_snapshot_id=base_snapshot_id,
            entry_point_count=entry_point_count,
            new_export_count=len(functions),
            functions=functions,
            error=error.to_dict() if error else None,
            analysis_id=run.analysis_id,
            duration_sec=time.monotonic() - run.started,
        )

    def _repository(self, name: str) -> RepositoryConfig:
        repo = self.config.repository(name)
        if repo is None:
            raise PipelineError.unknown_repository(name)
        return repo
