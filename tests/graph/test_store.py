"""Tests for the call-graph store: atomic re-maps, snapshots and reads."""

from __future__ import annotations

import threading
from collections.abc import Callable
from pathlib import Path

import pytest
from sqlalchemy.exc import SQLAlchemyError

from wirecheck.analysis.entrypoints import EntryPointDetector
from wirecheck.analysis.policy import parse_policy
from wirecheck.analysis.reachability import ReachabilityStatus
from wirecheck.core.errors import ErrorCode, StoreError
from wirecheck.graph.models import SnapshotStatus
from wirecheck.graph.store import GraphStore
from wirecheck.parsing.models import ParsedFile, ParsedFunction, ParseResult


def _remap(store: GraphStore, result: ParseResult, repository: str = "acme") -> int:
    entry_points = EntryPointDetector().detect(result)
    return store.replace_repository_subgraph(repository, result, entry_points).snapshot_id


class TestReplaceRepositorySubgraph:
    """Whole-repository writes."""

    def test_given_parse_result_when_remapped_then_counts_are_consistent(
        self, store: GraphStore, widgets: ParseResult
    ) -> None:
        """Published counts match what the reader loads back."""
        # Given
        entry_points = EntryPointDetector().detect(widgets)

        # When
        stats = store.replace_repository_subgraph("acme", widgets, entry_points)

        # Then
        view = store.reader().load_view("acme")
        assert stats.functions == len(view) == 10
        assert stats.files == len(view.files)
        assert stats.call_edges == view.call_edge_count == 2
        assert stats.entry_points == len(view.entry_points) == 4
        assert stats.published_at is not None
        assert view.commit_sha == "a" * 40

    def test_event_edges_survive_the_round_trip(self, mapped_store: GraphStore) -> None:
        """Emitter -> handler hops are reconstructed from stored bindings."""
        view = mapped_store.reader().load_view("acme")

        successors = set(view.successors("src/api/widgets.ts:createWidget"))

        assert "src/events/audit.ts:recordAudit" in successors

    def test_entry_point_details_survive_the_round_trip(self, mapped_store: GraphStore) -> None:
        """Route, schedule and event metadata are stored with entry points."""
        labels = {ep.label for ep in mapped_store.reader().query_entry_points("acme")}

        assert labels == {
            "POST /widgets",
            "cron 0 3 * * *",
            "emitter widget.created",
            "middleware /api",
        }

    def test_given_failure_mid_write_when_remapped_then_prior_graph_is_intact(
        self,
        mapped_store: GraphStore,
        widget_factory: Callable[..., ParseResult],
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        """A failed re-map leaves the previous snapshot current."""
        # Given
        before = mapped_store.reader().current_snapshot("acme")
        assert before is not None

        def boom(*_args: object, **_kwargs: object) -> dict[str, int]:
            raise SQLAlchemyError("disk I/O error")

        monkeypatch.setattr(mapped_store._snapshots, "_write_rows", boom)

        # When
        with pytest.raises(StoreError) as exc_info:
            _remap(mapped_store, widget_factory(commit_sha="b" * 40))

        # Then
        assert exc_info.value.code is ErrorCode.STORE_REMAP_FAILED
        after = mapped_store.reader().current_snapshot("acme")
        assert after is not None
        assert after.id == before.id
        assert mapped_store.reader().load_view("acme").commit_sha == "a" * 40

    def test_failed_snapshot_is_collected_on_next_remap(
        self,
        mapped_store: GraphStore,
        widget_factory: Callable[..., ParseResult],
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        """Abandoned snapshots do not accumulate."""
        original = mapped_store._snapshots._write_rows

        def boom(*_args: object, **_kwargs: object) -> dict[str, int]:
            raise SQLAlchemyError("disk I/O error")

        monkeypatch.setattr(mapped_store._snapshots, "_write_rows", boom)
        with pytest.raises(StoreError):
            _remap(mapped_store, widget_factory())
        monkeypatch.setattr(mapped_store._snapshots, "_write_rows", original)

        _remap(mapped_store, widget_factory())

        statuses = [s.status for s in mapped_store.reader().snapshot_history("acme")]
        assert SnapshotStatus.DISCARDED.value not in statuses

    def test_repositories_are_isolated(
        self, mapped_store: GraphStore, result_builder: Callable[..., ParseResult]
    ) -> None:
        """Re-mapping one repository does not touch another."""
        other = result_builder(
            files={"lib/a.ts": "export function onlyOne() {}\n"},
            functions=[("lib/a.ts", "onlyOne", True)],
        )

        _remap(mapped_store, other, repository="other")

        reader = mapped_store.reader()
        assert len(reader.load_view("other")) == 1
        assert len(reader.load_view("acme")) == 10
        assert [r.name for r in reader.repositories()] == ["acme", "other"]

    def test_remap_of_unchanged_tree_is_idempotent(
        self, mapped_store: GraphStore, widget_factory: Callable[..., ParseResult]
    ) -> None:
        """Mapping the same tree twice yields the same graph."""
        first = mapped_store.reader().load_view("acme")

        _remap(mapped_store, widget_factory())
        second = mapped_store.reader().load_view("acme")

        assert second.snapshot_id != first.snapshot_id
        assert set(second.functions) == set(first.functions)
        assert second.call_edge_count == first.call_edge_count
        assert {ep.label for ep in second.entry_points} == {ep.label for ep in first.entry_points}


class TestSnapshots:
    """Snapshot publication, retention and read isolation."""

    def test_given_retention_of_two_when_remapped_thrice_then_oldest_collected(
        self, tmp_path: Path, widget_factory: Callable[..., ParseResult]
    ) -> None:
        """Only the last ``retained_snapshots`` published snapshots remain."""
        # Given
        store = GraphStore.open(tmp_path / "graph.db", retained_snapshots=2)

        # When
        ids = [_remap(store, widget_factory(commit_sha=c * 40)) for c in "abc"]

        # Then
        history = store.reader().snapshot_history("acme")
        assert [s.id for s in history] == [ids[2], ids[1]]
        assert history[0].commit_sha == "c" * 40
        store.close()

    def test_given_staged_snapshot_when_read_then_old_graph_visible(
        self,
        mapped_store: GraphStore,
        result_builder: Callable[..., ParseResult],
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        """Readers never observe a staged but unpublished graph."""
        # Given
        reader = mapped_store.reader()
        seen: list[int] = []
        publish = mapped_store._snapshots.publish

        def observe_then_publish(repository_id: int, snapshot_id: int) -> float:
            view = reader.load_view("acme")
            assert view.snapshot_id is not None
            seen.append(view.snapshot_id)
            seen.append(len(view))
            return publish(repository_id, snapshot_id)

        monkeypatch.setattr(mapped_store._snapshots, "publish", observe_then_publish)
        smaller = result_builder(
            files={"src/a.ts": "export function alone() {}\n"},
            functions=[("src/a.ts", "alone", True)],
        )
        before = reader.current_snapshot("acme")
        assert before is not None

        # When
        new_id = _remap(mapped_store, smaller)

        # Then
        assert seen == [before.id, 10]
        assert reader.load_view("acme").snapshot_id == new_id
        assert len(reader.load_view("acme")) == 1

    def test_concurrent_reads_during_remap_see_whole_graphs(
        self, mapped_store: GraphStore, widget_factory: Callable[..., ParseResult]
    ) -> None:
        """Every read during a stream of re-maps sees a complete graph."""
        reader = mapped_store.reader()
        sizes: list[int] = []
        errors: list[BaseException] = []
        stop = threading.Event()

        def read_loop() -> None:
            while not stop.is_set():
                try:
                    view = reader.load_view("acme")
                    sizes.append(view.call_edge_count * 100 + len(view))
                except StoreError as e:
                    # Lock contention surfaces as retryable, never as a partial graph
                    if not e.retryable:
                        errors.append(e)

        thread = threading.Thread(target=read_loop)
        thread.start()
        try:
            for _ in range(5):
                _remap(mapped_store, widget_factory())
        finally:
            stop.set()
            thread.join()

        assert not errors
        assert set(sizes) <= {2 * 100 + 10}

    def test_reads_leave_pooled_connections_writable(
        self, mapped_store: GraphStore, widget_factory: Callable[..., ParseResult]
    ) -> None:
        """A read switches query_only back off before its connection is pooled."""
        # Given - two idle connections parked in the pool
        engine = mapped_store.db.engine
        first, second = engine.connect(), engine.connect()
        first.close()
        second.close()

        # When
        mapped_store.reader().load_view("acme")

        # Then
        held = [engine.connect(), engine.connect()]
        try:
            flags = [conn.exec_driver_sql("PRAGMA query_only").scalar() for conn in held]
        finally:
            for conn in held:
                conn.close()
        assert flags == [0, 0]
        assert _remap(mapped_store, widget_factory(commit_sha="c" * 40)) > 0

    def test_unmapped_repository_raises(self, store: GraphStore) -> None:
        """Loading a never-mapped repository is an explicit error."""
        with pytest.raises(StoreError) as exc_info:
            store.reader().load_view("nope")
        assert exc_info.value.code is ErrorCode.STORE_REPOSITORY_NOT_MAPPED
        assert store.reader().current_snapshot("nope") is None
        assert store.reader().snapshot_history("nope") == []


class TestReaderQueries:
    """Reachability queries over the published graph."""

    def test_query_reachability_reports_statuses(self, mapped_store: GraphStore) -> None:
        """Targets get entry_point / reachable / unreachable statuses."""
        results = mapped_store.reader().query_reachability(
            "acme",
            [
                "src/api/widgets.ts:createWidget",
                "src/services/validate.ts:validateWidget",
                "src/services/pricing.ts:computeDiscount",
                "src/unknown.ts:ghost",
            ],
        )

        assert results["src/api/widgets.ts:createWidget"].status is ReachabilityStatus.ENTRY_POINT
        assert results["src/services/validate.ts:validateWidget"].status is ReachabilityStatus.REACHABLE
        assert results["src/services/pricing.ts:computeDiscount"].status is ReachabilityStatus.UNREACHABLE
        assert "src/unknown.ts:ghost" not in results

    def test_query_all_unreachable_groups_by_module(self, mapped_store: GraphStore) -> None:
        """Unreachable exports are grouped by module with caller annotations."""
        reports = mapped_store.reader().query_all_unreachable("acme")

        by_module = {r.module: [fn.name for fn in r.functions] for r in reports}
        assert by_module == {
            "src/legacy/shim": ["legacyAdapter"],
            "src/services/format": ["formatPrice"],
            "src/services/pricing": ["applyPricing", "computeDiscount"],
        }
        format_report = next(r for r in reports if r.module == "src/services/format")
        assert format_report.functions[0].test_callers == ["src/services/format.test.ts:formatsTest"]
        assert format_report.functions[0].status is ReachabilityStatus.TEST_ONLY

    def test_query_all_unreachable_respects_policy_and_filter(self, mapped_store: GraphStore) -> None:
        """Allowed orphans are left out and the module filter narrows the report."""
        policy = parse_policy("allowed_orphans:\n  - src/legacy/shim.ts:*\n")

        reports = mapped_store.reader().query_all_unreachable(
            "acme", module_filter="src/services/pricing", policy=policy
        )

        assert [r.module for r in reports] == ["src/services/pricing"]
        assert not mapped_store.reader().query_all_unreachable("acme", "src/legacy", policy)

    def test_policy_declared_entry_point_makes_function_reachable(
        self, mapped_store: GraphStore
    ) -> None:
        """Policy entry points join the stored ones at query time."""
        policy = parse_policy("entry_points:\n  - src/services/pricing.ts:computeDiscount\n")

        results = mapped_store.reader().query_reachability(
            "acme", ["src/services/pricing.ts:computeDiscount"], policy
        )

        assert results["src/services/pricing.ts:computeDiscount"].status is ReachabilityStatus.ENTRY_POINT

    def test_allowed_orphan_rule_matches_qualified_method_names(self, store: GraphStore) -> None:
        """``file:Class.method`` rules filter the report like they filter checks."""
        # Given
        path = "src/models/widget.ts"
        result = ParseResult(
            files=[ParsedFile(path=path, language="typescript", text="class Widget { save() {} }\n")],
            functions=[
                ParsedFunction(path=path, qualified_name="Widget.save", name="save", is_exported=True),
                ParsedFunction(path=path, qualified_name="Widget.load", name="load", is_exported=True),
            ],
        )
        _remap(store, result)
        policy = parse_policy(f"allowed_orphans:\n  - {path}:Widget.save\n")

        # When
        reports = store.reader().query_all_unreachable("acme", policy=policy)

        # Then
        assert [fn.qualified_name for r in reports for fn in r.functions] == ["Widget.load"]
