"""Call-graph store: one writer path, one read-only path.

GraphStore is the only object that mutates the database, and only through
``replace_repository_subgraph`` (a full re-map). At most one re-map per
repository runs at a time. GraphReader exposes queries only; every query
runs inside one read transaction pinned to the published snapshot, so a
concurrent re-map is either fully visible or not at all.

Change analysis receives a GraphReader and never a GraphStore.
"""

from __future__ import annotations

import threading
from collections.abc import Generator
from contextlib import contextmanager
from typing import TYPE_CHECKING

import structlog
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlmodel import Session, col, select

from wirecheck.analysis.entrypoints import EntryPointDetector
from wirecheck.analysis.policy import FileClassifier, Policy
from wirecheck.analysis.reachability import OrphanReport, ReachabilityEngine, ReachabilityResult
from wirecheck.config.models import ReachabilityConfig
from wirecheck.core.errors import StoreError
from wirecheck.graph._internal import Database, SnapshotManager, SnapshotStats
from wirecheck.graph.models import (
    CallEdge,
    EntryPoint,
    EventBinding,
    EventEdge,
    EventEdgeRelation,
    File,
    Function,
    Repository,
    Snapshot,
)
from wirecheck.graph.view import FunctionNode, GraphView
from wirecheck.parsing.models import (
    EntryPointCandidate,
    EntryPointKind,
    EventPattern,
    ParseResult,
    binding_key,
)

if TYPE_CHECKING:
    from pathlib import Path

logger = structlog.get_logger()


def _is_locked(error: OperationalError) -> bool:
    text = str(error).lower()
    return "locked" in text or "busy" in text


class GraphReader:
    """Read-only access to published repository graphs."""

    def __init__(self, db: Database, config: ReachabilityConfig | None = None) -> None:
        self._db = db
        self._config = config or ReachabilityConfig()

    @contextmanager
    def _read(self) -> Generator[Session, None, None]:
        try:
            with self._db.read_transaction() as session:
                yield session
        except OperationalError as e:
            raise StoreError.unavailable(str(e.orig) if e.orig else str(e)) from e

    # =========================================================================
    # Snapshot metadata
    # =========================================================================

    def repositories(self) -> list[Repository]:
        with self._read() as session:
            return list(session.exec(select(Repository).order_by(Repository.name)).all())

    def current_snapshot(self, repository: str) -> Snapshot | None:
        with self._read() as session:
            repo = session.exec(select(Repository).where(Repository.name == repository)).first()
            if repo is None or repo.current_snapshot_id is None:
                return None
            return session.get(Snapshot, repo.current_snapshot_id)

    def snapshot_history(self, repository: str, limit: int = 10) -> list[Snapshot]:
        """Snapshots of a repository, newest first."""
        with self._read() as session:
            repo = session.exec(select(Repository).where(Repository.name == repository)).first()
            if repo is None:
                return []
            stmt = (
                select(Snapshot)
                .where(Snapshot.repository_id == repo.id)
                .order_by(col(Snapshot.id).desc())
                .limit(limit)
            )
            return list(session.exec(stmt).all())

    # =========================================================================
    # Graph load
    # =========================================================================

    def load_view(self, repository: str) -> GraphView:
        """Load the published graph of ``repository`` into memory.

        Raises:
            StoreError: repository_not_mapped if no snapshot was ever published.
        """
        with self._read() as session:
            repo = session.exec(select(Repository).where(Repository.name == repository)).first()
            if repo is None or repo.current_snapshot_id is None:
                raise StoreError.repository_not_mapped(repository)
            sid = repo.current_snapshot_id
            snapshot = session.get(Snapshot, sid)
            view = GraphView(snapshot_id=sid, commit_sha=snapshot.commit_sha if snapshot else None)

            paths: dict[int, str] = {}
            for f in session.exec(select(File).where(File.snapshot_id == sid)).all():
                assert f.id is not None
                paths[f.id] = f.path
                view.add_file(f.path, f.language)

            keys: dict[int, str] = {}
            for fn in session.exec(select(Function).where(Function.snapshot_id == sid)).all():
                assert fn.id is not None
                keys[fn.id] = fn.key
                view.add_function(
                    FunctionNode(
                        key=fn.key,
                        path=paths[fn.file_id],
                        name=fn.name,
                        qualified_name=fn.qualified_name,
                        is_exported=fn.is_exported,
                        is_async=fn.is_async,
                        complexity=fn.complexity,
                        line=fn.line,
                    )
                )

            for edge in session.exec(select(CallEdge).where(CallEdge.snapshot_id == sid)).all():
                view.add_call(keys[edge.caller_id], keys[edge.callee_id])

            bindings: dict[int, EventBinding] = {
                b.id: b
                for b in session.exec(select(EventBinding).where(EventBinding.snapshot_id == sid))
                if b.id is not None
            }
            for ev in session.exec(select(EventEdge).where(EventEdge.snapshot_id == sid)).all():
                b = bindings[ev.binding_id]
                b_key = binding_key(b.event_name, EventPattern(b.pattern))
                if ev.relation == EventEdgeRelation.HANDLES_EVENT.value:
                    view.add_handler(keys[ev.function_id], b_key)
                else:
                    view.add_emitter(keys[ev.function_id], b_key)

            entry_points: list[EntryPointCandidate] = []
            for ep in session.exec(select(EntryPoint).where(EntryPoint.snapshot_id == sid)).all():
                binding = bindings.get(ep.binding_id) if ep.binding_id is not None else None
                entry_points.append(
                    EntryPointCandidate(
                        kind=EntryPointKind(ep.kind),
                        handler=keys[ep.handler_id],
                        method=ep.method,
                        route=ep.route,
                        schedule=ep.schedule,
                        event_name=binding.event_name if binding else None,
                        pattern=EventPattern(binding.pattern) if binding else None,
                    )
                )
            view.entry_points = entry_points

        logger.debug(
            "graph_view_loaded",
            repository=repository,
            snapshot_id=sid,
            functions=len(view),
            entry_points=len(view.entry_points),
        )
        return view

    # =========================================================================
    # Queries
    # =========================================================================

    def engine(self, view: GraphView, policy: Policy | None = None) -> ReachabilityEngine:
        """Reachability engine over ``view`` with policy entry points and overrides."""
        policy = policy or Policy.empty()
        classifier = FileClassifier(policy)
        detector = EntryPointDetector(classifier)
        entry_points = detector.merge(view, view.entry_points, detector.declared(view, policy))
        return ReachabilityEngine(
            view,
            entry_points=entry_points,
            classifier=classifier,
            max_hops=self._config.max_hops,
        )

    def query_entry_points(self, repository: str) -> list[EntryPointCandidate]:
        return self.load_view(repository).entry_points

    def query_reachability(
        self,
        repository: str,
        targets: list[str],
        policy: Policy | None = None,
    ) -> dict[str, ReachabilityResult]:
        """Status of each target function key. Unknown keys are omitted."""
        view = self.load_view(repository)
        return self.engine(view, policy).query(targets)

    def query_all_unreachable(
        self,
        repository: str,
        module_filter: str | None = None,
        policy: Policy | None = None,
    ) -> list[OrphanReport]:
        """Exported production functions no entry point reaches, by module.

        Allowed orphans and skip-list names are left out.
        """
        view = self.load_view(repository)
        policy = policy or Policy.empty()
        reports = self.engine(view, policy).unreachable_exports(
            module_filter=module_filter, skip_names=self._config.skip_names
        )
        for report in reports:
            report.functions = [
                fn
                for fn in report.functions
                if not policy.is_allowed_orphan(fn.path, fn.name, fn.qualified_name)
            ]
        return [r for r in reports if r.functions]


class GraphStore:
    """Sole writer of the call-graph store."""

    def __init__(
        self,
        db: Database,
        retained_snapshots: int = 2,
        config: ReachabilityConfig | None = None,
    ) -> None:
        self.db = db
        self._config = config or ReachabilityConfig()
        self._snapshots = SnapshotManager(db, retained_snapshots=retained_snapshots)
        self._locks: dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    @classmethod
    def open(
        cls,
        db_path: Path,
        *,
        retained_snapshots: int = 2,
        busy_timeout_ms: int = 30000,
        max_retries: int = 3,
        config: ReachabilityConfig | None = None,
    ) -> GraphStore:
        """Open (and create if needed) the store at ``db_path``."""
        db = Database(db_path, max_retries=max_retries, busy_timeout_ms=busy_timeout_ms)
        try:
            db.create_all()
        except OperationalError as e:
            raise StoreError.unavailable(str(e)) from e
        return cls(db, retained_snapshots=retained_snapshots, config=config)

    def reader(self) -> GraphReader:
        return GraphReader(self.db, self._config)

    def _lock_for(self, repository: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(repository)
            if lock is None:
                lock = threading.Lock()
                self._locks[repository] = lock
            return lock

    def replace_repository_subgraph(
        self,
        repository: str,
        result: ParseResult,
        entry_points: list[EntryPointCandidate],
        default_branch: str = "main",
    ) -> SnapshotStats:
        """Atomically replace the repository's graph with ``result``.

        On any failure the previously published snapshot stays current.

        Raises:
            StoreError: remap_failed, or unavailable when the database is locked.
        """
        with self._lock_for(repository):
            try:
                repo_id = self._snapshots.ensure_repository(repository, default_branch)
                stats = self._snapshots.stage(repo_id, repository, result, entry_points)
                stats.published_at = self._snapshots.publish(repo_id, stats.snapshot_id)
            except OperationalError as e:
                if _is_locked(e):
                    raise StoreError.unavailable(str(e)) from e
                raise StoreError.remap_failed(repository, str(e)) from e
            except (SQLAlchemyError, LookupError) as e:
                raise StoreError.remap_failed(repository, str(e)) from e

            try:
                self._snapshots.collect_garbage(repo_id)
            except SQLAlchemyError as e:
                # Old rows are collected on the next re-map
                logger.warning("snapshot_gc_failed", repository=repository, error=str(e))

        logger.info(
            "remap_published",
            repository=repository,
            snapshot_id=stats.snapshot_id,
            commit=stats.commit_sha,
            files=stats.files,
            functions=stats.functions,
            call_edges=stats.call_edges,
            entry_points=stats.entry_points,
        )
        return stats

    def close(self) -> None:
        self.db.dispose()
