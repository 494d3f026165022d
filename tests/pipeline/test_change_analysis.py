"""Tests for the ephemeral change-analysis pipeline."""

from __future__ import annotations

import asyncio
import threading
from collections.abc import Callable
from typing import Any

import pytest

from wirecheck.analysis.policy import FileClassifier
from wirecheck.analysis.verdict import Tier
from wirecheck.config.models import RepositoryConfig, WirecheckConfig
from wirecheck.core.errors import ErrorCode
from wirecheck.git.errors import RefNotFoundError, RemoteError
from wirecheck.graph.store import GraphStore
from wirecheck.graph.view import GraphView
from wirecheck.parsing.models import ParseResult
from wirecheck.pipeline.change_analysis import ChangeAnalysisPipeline, new_exports
from wirecheck.pipeline.models import AnalysisStatus, ChangeAction, ChangeEvent, Verdict
from wirecheck.pipeline.publishers import RecordingPublisher


def _event(action: ChangeAction = ChangeAction.UPDATED, repository: str = "acme") -> ChangeEvent:
    return ChangeEvent(repository=repository, unit="pr-7", action=action, head_ref="feature/tax")


def _pipeline(
    store: GraphStore,
    checkouts: Any,
    parser: Any,
    publisher: Any,
    config: WirecheckConfig,
) -> ChangeAnalysisPipeline:
    return ChangeAnalysisPipeline(store.reader(), checkouts, parser, publisher, config)


class FailingPublisher:
    """Fails to publish completed verdicts, records inconclusive ones."""

    def __init__(self) -> None:
        self.published: list[Verdict] = []

    async def publish(self, verdict: Verdict) -> None:
        if verdict.status is not AnalysisStatus.INCONCLUSIVE:
            raise RuntimeError("check API returned 502")
        self.published.append(verdict)


class TestNewExports:
    """Selection of functions to analyse."""

    def test_new_and_newly_exported_production_functions(
        self, result_builder: Callable[..., ParseResult]
    ) -> None:
        """Added exports and exports that used to be internal are selected."""
        # Given
        base = GraphView.from_parse_result(
            result_builder(
                files={"src/a.ts": ""},
                functions=[("src/a.ts", "kept", True), ("src/a.ts", "opened", False)],
            )
        )
        candidate = result_builder(
            files={"src/a.ts": "", "src/a.test.ts": ""},
            functions=[
                ("src/a.ts", "kept", True),
                ("src/a.ts", "opened", True),
                ("src/a.ts", "added", True),
                ("src/a.ts", "internal", False),
                ("src/a.test.ts", "helper", True),
            ],
        )

        # When
        selected = new_exports(base, candidate, FileClassifier())

        # Then
        assert [fn.key for fn in selected] == ["src/a.ts:added", "src/a.ts:opened"]


class TestChangeAnalysisPipeline:
    """End-to-end runs against the published widget graph."""

    @pytest.mark.asyncio
    async def test_given_unwired_export_when_analysed_then_failed(
        self,
        mapped_store: GraphStore,
        checkouts: Any,
        unwired_parser: Any,
        recorder: RecordingPublisher,
        pipeline_config: WirecheckConfig,
    ) -> None:
        """A new export nothing calls or references blocks the change."""
        # Given
        pipeline = _pipeline(mapped_store, checkouts, unwired_parser, recorder, pipeline_config)
        current = mapped_store.reader().current_snapshot("acme")
        assert current is not None

        # When
        verdict = await pipeline.run(_event())

        # Then
        assert verdict.status is AnalysisStatus.FAILED
        assert verdict.is_blocking
        assert [fn.key for fn in verdict.blocking] == ["src/services/tax.ts:computeTax"]
        assert verdict.commit_sha == "b" * 40
        assert verdict.base_snapshot_id == current.id
        assert verdict.entry_point_count == 4
        assert verdict.analysis_id
        assert recorder.latest() == [verdict]
        assert checkouts.cleaned == checkouts.created
        assert checkouts.leftovers == []

    @pytest.mark.asyncio
    async def test_given_wired_export_when_analysed_then_passed(
        self,
        mapped_store: GraphStore,
        checkouts: Any,
        wired_parser: Any,
        recorder: RecordingPublisher,
        pipeline_config: WirecheckConfig,
    ) -> None:
        """A new export called from an endpoint passes, using the candidate's edges."""
        pipeline = _pipeline(mapped_store, checkouts, wired_parser, recorder, pipeline_config)

        verdict = await pipeline.run(_event())

        assert verdict.status is AnalysisStatus.PASSED
        assert verdict.functions[0].tier is Tier.REACHABLE
        assert verdict.functions[0].entry_point == "POST /widgets"

    @pytest.mark.asyncio
    async def test_checkout_is_removed_off_the_event_loop(
        self,
        mapped_store: GraphStore,
        checkouts: Any,
        wired_parser: Any,
        recorder: RecordingPublisher,
        pipeline_config: WirecheckConfig,
    ) -> None:
        """Deleting a large clone must not stall other units on the loop."""
        pipeline = _pipeline(mapped_store, checkouts, wired_parser, recorder, pipeline_config)

        await pipeline.run(_event())

        assert checkouts.leftovers == []
        assert checkouts.cleanup_threads
        assert threading.get_ident() not in checkouts.cleanup_threads

    @pytest.mark.asyncio
    async def test_analysis_never_writes_the_store(
        self,
        mapped_store: GraphStore,
        checkouts: Any,
        unwired_parser: Any,
        recorder: RecordingPublisher,
        pipeline_config: WirecheckConfig,
    ) -> None:
        """The persisted graph is the same before and after a run."""
        reader = mapped_store.reader()
        before = reader.current_snapshot("acme")

        await _pipeline(mapped_store, checkouts, unwired_parser, recorder, pipeline_config).run(
            _event()
        )

        after = reader.current_snapshot("acme")
        assert before is not None and after is not None
        assert after.id == before.id
        assert "src/services/tax.ts:computeTax" not in reader.load_view("acme")

    @pytest.mark.asyncio
    async def test_repeated_runs_are_idempotent(
        self,
        mapped_store: GraphStore,
        checkouts: Any,
        unwired_parser: Any,
        recorder: RecordingPublisher,
        pipeline_config: WirecheckConfig,
    ) -> None:
        """Same inputs yield the same verdict content."""
        pipeline = _pipeline(mapped_store, checkouts, unwired_parser, recorder, pipeline_config)

        first = (await pipeline.run(_event())).to_dict()
        second = (await pipeline.run(_event())).to_dict()

        for volatile in ("analysis_id", "duration_sec"):
            first.pop(volatile)
            second.pop(volatile)
        assert first == second

    @pytest.mark.asyncio
    async def test_policy_in_candidate_tree_is_honored(
        self,
        mapped_store: GraphStore,
        checkouts: Any,
        unwired_parser: Any,
        recorder: RecordingPublisher,
        pipeline_config: WirecheckConfig,
    ) -> None:
        """An allowed orphan in the checked-out policy does not block."""
        checkouts.files[".wirecheck/policy.yaml"] = (
            "allowed_orphans:\n  - src/services/tax.ts:computeTax\n"
        )
        pipeline = _pipeline(mapped_store, checkouts, unwired_parser, recorder, pipeline_config)

        verdict = await pipeline.run(_event())

        assert verdict.status is AnalysisStatus.PASSED
        assert verdict.functions[0].tier is Tier.ALLOWED

    @pytest.mark.asyncio
    async def test_closed_event_is_skipped_without_checkout(
        self,
        mapped_store: GraphStore,
        checkouts: Any,
        unwired_parser: Any,
        recorder: RecordingPublisher,
        pipeline_config: WirecheckConfig,
    ) -> None:
        """Closing a pull request needs no analysis."""
        pipeline = _pipeline(mapped_store, checkouts, unwired_parser, recorder, pipeline_config)

        verdict = await pipeline.run(_event(ChangeAction.CLOSED))

        assert verdict.status is AnalysisStatus.SKIPPED
        assert checkouts.attempts == 0


class TestFailurePaths:
    """Every failure yields an inconclusive verdict and releases the checkout."""

    @pytest.mark.asyncio
    async def test_given_transient_clone_failure_when_retried_then_completes(
        self,
        mapped_store: GraphStore,
        checkouts: Any,
        unwired_parser: Any,
        recorder: RecordingPublisher,
        pipeline_config: WirecheckConfig,
    ) -> None:
        """One network failure is retried."""
        checkouts.failures.append(RemoteError("origin", "connection reset"))
        pipeline = _pipeline(mapped_store, checkouts, unwired_parser, recorder, pipeline_config)

        verdict = await pipeline.run(_event())

        assert verdict.status is AnalysisStatus.FAILED
        assert checkouts.attempts == 2

    @pytest.mark.asyncio
    async def test_given_persistent_clone_failure_when_retries_exhausted_then_inconclusive(
        self,
        mapped_store: GraphStore,
        checkouts: Any,
        unwired_parser: Any,
        recorder: RecordingPublisher,
        pipeline_config: WirecheckConfig,
    ) -> None:
        """A clone that keeps failing never blocks the change."""
        checkouts.failures.extend(
            [RemoteError("origin", "connection reset"), RemoteError("origin", "timed out")]
        )
        pipeline = _pipeline(mapped_store, checkouts, unwired_parser, recorder, pipeline_config)

        verdict = await pipeline.run(_event())

        assert verdict.status is AnalysisStatus.INCONCLUSIVE
        assert not verdict.is_blocking
        assert verdict.error is not None
        assert verdict.error["code"] == ErrorCode.PIPELINE_CHECKOUT_FAILED.value
        assert verdict.error["retryable"] is True
        assert checkouts.attempts == 2
        assert recorder.latest() == [verdict]

    @pytest.mark.asyncio
    async def test_missing_ref_is_not_retried(
        self,
        mapped_store: GraphStore,
        checkouts: Any,
        unwired_parser: Any,
        recorder: RecordingPublisher,
        pipeline_config: WirecheckConfig,
    ) -> None:
        """Permanent checkout errors fail fast."""
        checkouts.failures.append(RefNotFoundError("feature/tax"))
        pipeline = _pipeline(mapped_store, checkouts, unwired_parser, recorder, pipeline_config)

        verdict = await pipeline.run(_event())

        assert verdict.status is AnalysisStatus.INCONCLUSIVE
        assert checkouts.attempts == 1

    @pytest.mark.asyncio
    async def test_unknown_repository_is_inconclusive(
        self,
        mapped_store: GraphStore,
        checkouts: Any,
        unwired_parser: Any,
        recorder: RecordingPublisher,
        pipeline_config: WirecheckConfig,
    ) -> None:
        """Events for unconfigured repositories do not clone anything."""
        pipeline = _pipeline(mapped_store, checkouts, unwired_parser, recorder, pipeline_config)

        verdict = await pipeline.run(_event(repository="ghost"))

        assert verdict.status is AnalysisStatus.INCONCLUSIVE
        assert verdict.error is not None
        assert verdict.error["error"] == "PIPELINE_UNKNOWN_REPOSITORY"
        assert checkouts.attempts == 0

    @pytest.mark.asyncio
    async def test_unmapped_repository_is_inconclusive(
        self,
        mapped_store: GraphStore,
        checkouts: Any,
        unwired_parser: Any,
        recorder: RecordingPublisher,
        pipeline_config: WirecheckConfig,
    ) -> None:
        """Without a base graph there is nothing to diff against."""
        pipeline_config.repositories.append(RepositoryConfig(name="fresh", source="unused"))
        pipeline = _pipeline(mapped_store, checkouts, unwired_parser, recorder, pipeline_config)

        verdict = await pipeline.run(_event(repository="fresh"))

        assert verdict.status is AnalysisStatus.INCONCLUSIVE
        assert verdict.error is not None
        assert verdict.error["error"] == "STORE_REPOSITORY_NOT_MAPPED"

    @pytest.mark.asyncio
    async def test_given_slow_parse_when_timeout_then_inconclusive_and_cleaned(
        self,
        mapped_store: GraphStore,
        checkouts: Any,
        unwired_parser: Any,
        recorder: RecordingPublisher,
        pipeline_config: WirecheckConfig,
    ) -> None:
        """Exceeding the run timeout is inconclusive and leaves nothing on disk."""
        # Given
        unwired_parser.delay = 0.5
        pipeline_config.pipeline.timeout_sec = 0.1
        pipeline = _pipeline(mapped_store, checkouts, unwired_parser, recorder, pipeline_config)

        # When
        verdict = await pipeline.run(_event())

        # Then
        assert verdict.status is AnalysisStatus.INCONCLUSIVE
        assert verdict.error is not None
        assert verdict.error["error"] == "PIPELINE_TIMEOUT"
        assert checkouts.leftovers == []

    @pytest.mark.asyncio
    async def test_given_parse_error_then_inconclusive(
        self,
        mapped_store: GraphStore,
        checkouts: Any,
        unwired_parser: Any,
        recorder: RecordingPublisher,
        pipeline_config: WirecheckConfig,
    ) -> None:
        """Unexpected parser crashes become internal errors, not blocking verdicts."""
        unwired_parser.error = ValueError("unexpected token")
        pipeline = _pipeline(mapped_store, checkouts, unwired_parser, recorder, pipeline_config)

        verdict = await pipeline.run(_event())

        assert verdict.status is AnalysisStatus.INCONCLUSIVE
        assert verdict.error is not None
        assert verdict.error["error"] == "INTERNAL_ERROR"
        assert checkouts.leftovers == []

    @pytest.mark.asyncio
    async def test_publisher_failure_is_inconclusive(
        self,
        mapped_store: GraphStore,
        checkouts: Any,
        unwired_parser: Any,
        pipeline_config: WirecheckConfig,
    ) -> None:
        """A blocking verdict that cannot be published is reported as inconclusive."""
        publisher = FailingPublisher()
        pipeline = _pipeline(mapped_store, checkouts, unwired_parser, publisher, pipeline_config)

        verdict = await pipeline.run(_event())

        assert verdict.status is AnalysisStatus.INCONCLUSIVE
        assert publisher.published == [verdict]

    @pytest.mark.asyncio
    async def test_given_running_analysis_when_cancelled_then_checkout_removed(
        self,
        mapped_store: GraphStore,
        checkouts: Any,
        unwired_parser: Any,
        recorder: RecordingPublisher,
        pipeline_config: WirecheckConfig,
    ) -> None:
        """Cancellation mid-parse propagates after cleanup and publishes nothing."""
        # Given
        unwired_parser.block = True
        pipeline = _pipeline(mapped_store, checkouts, unwired_parser, recorder, pipeline_config)
        task = asyncio.create_task(pipeline.run(_event()))
        assert await asyncio.to_thread(unwired_parser.entered.wait, 5)

        # When
        task.cancel()
        await asyncio.sleep(0.05)
        unwired_parser.release.set()

        # Then
        with pytest.raises(asyncio.CancelledError):
            await task
        assert len(checkouts.created) == 1
        assert checkouts.leftovers == []
        assert recorder.latest() == []
