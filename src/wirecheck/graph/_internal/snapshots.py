"""Snapshot management for atomic repository re-maps.

A snapshot is one complete copy of a repository's graph. Re-maps never
patch rows in place:

1. Stage: insert every row under a new snapshot id in one bulk transaction.
   Failure rolls the transaction back; nothing is left behind except the
   snapshot header, which is marked discarded.
2. Publish: in one BEGIN IMMEDIATE transaction flip
   ``Repository.current_snapshot_id`` and mark older snapshots outside the
   retention window as discarded.
3. Collect: delete rows of discarded (and abandoned staged) snapshots.

Readers resolve ``current_snapshot_id`` inside their own read transaction,
so they see the old graph or the new one, never a half-written mix.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import structlog
from sqlmodel import col, select

from wirecheck.core.paths import is_test_path
from wirecheck.graph.models import (
    SNAPSHOT_TABLES,
    CallEdge,
    EntryPoint,
    EventBinding,
    EventEdge,
    EventEdgeRelation,
    File,
    Function,
    ImportEdge,
    Repository,
    Snapshot,
    SnapshotStatus,
)
from wirecheck.parsing.models import (
    EntryPointCandidate,
    EntryPointKind,
    EventPattern,
    ParseResult,
    binding_key,
)

if TYPE_CHECKING:
    from wirecheck.graph._internal.database import BulkWriter, Database

logger = structlog.get_logger()


@dataclass
class SnapshotStats:
    """Statistics from a staged or published snapshot."""

    snapshot_id: int
    repository: str
    commit_sha: str | None
    files: int
    functions: int
    call_edges: int
    entry_points: int
    published_at: float | None = None


class SnapshotManager:
    """Stages, publishes and garbage-collects repository snapshots."""

    def __init__(self, db: Database, retained_snapshots: int = 2) -> None:
        self.db = db
        self.retained_snapshots = max(1, retained_snapshots)

    # =========================================================================
    # Repository registry
    # =========================================================================

    def ensure_repository(self, name: str, default_branch: str = "main") -> int:
        """Return the repository id, creating the row on first use."""
        with self.db.immediate_transaction() as session:
            repo = session.exec(select(Repository).where(Repository.name == name)).first()
            if repo is None:
                repo = Repository(name=name, default_branch=default_branch)
                session.add(repo)
                session.flush()
            elif repo.default_branch != default_branch:
                repo.default_branch = default_branch
            assert repo.id is not None
            return repo.id

    # =========================================================================
    # Stage
    # =========================================================================

    def stage(
        self,
        repository_id: int,
        repository: str,
        result: ParseResult,
        entry_points: list[EntryPointCandidate],
    ) -> SnapshotStats:
        """Write a complete graph under a new, not yet visible snapshot."""
        with self.db.session() as session:
            snapshot = Snapshot(
                repository_id=repository_id,
                status=SnapshotStatus.STAGED.value,
                commit_sha=result.commit_sha,
                created_at=time.time(),
            )
            session.add(snapshot)
            session.commit()
            session.refresh(snapshot)
            assert snapshot.id is not None
            snapshot_id = snapshot.id

        try:
            with self.db.bulk_writer() as writer:
                counts = self._write_rows(writer, snapshot_id, result, entry_points)
        except Exception:
            self._mark(snapshot_id, SnapshotStatus.DISCARDED)
            raise

        with self.db.session() as session:
            row = session.get(Snapshot, snapshot_id)
            assert row is not None
            row.file_count = counts["files"]
            row.function_count = counts["functions"]
            row.call_edge_count = counts["call_edges"]
            row.entry_point_count = counts["entry_points"]
            session.add(row)
            session.commit()

        logger.debug("snapshot_staged", snapshot_id=snapshot_id, repository=repository, **counts)
        return SnapshotStats(
            snapshot_id=snapshot_id,
            repository=repository,
            commit_sha=result.commit_sha,
            files=counts["files"],
            functions=counts["functions"],
            call_edges=counts["call_edges"],
            entry_points=counts["entry_points"],
        )

    def _write_rows(
        self,
        writer: BulkWriter,
        snapshot_id: int,
        result: ParseResult,
        entry_points: list[EntryPointCandidate],
    ) -> dict[str, int]:
        scope = {"snapshot_id": snapshot_id}

        file_ids = writer.insert_many_returning_ids(
            File,
            [
                {
                    "snapshot_id": snapshot_id,
                    "path": f.path,
                    "language": f.language,
                    "lines_of_code": f.lines_of_code,
                    "is_test": is_test_path(f.path),
                    "is_active": True,
                }
                for f in result.files
            ],
            key_column="path",
            scope=scope,
        )

        fn_records: list[dict[str, Any]] = []
        seen_keys: set[str] = set()
        for fn in result.functions:
            if fn.key in seen_keys:
                continue
            file_id = file_ids.get(fn.path)
            if file_id is None:
                logger.warning("function_without_file", function=fn.key)
                continue
            seen_keys.add(fn.key)
            fn_records.append(
                {
                    "snapshot_id": snapshot_id,
                    "file_id": file_id,
                    "key": fn.key,
                    "name": fn.name,
                    "qualified_name": fn.qualified_name,
                    "is_exported": fn.is_exported,
                    "is_async": fn.is_async,
                    "complexity": fn.complexity,
                    "line": fn.line,
                }
            )
        fn_ids = writer.insert_many_returning_ids(
            Function, fn_records, key_column="key", scope=scope
        )

        call_pairs = {
            (fn_ids[c.caller], fn_ids[c.callee])
            for c in result.calls
            if c.caller in fn_ids and c.callee in fn_ids
        }
        writer.insert_many(
            CallEdge,
            [
                {"snapshot_id": snapshot_id, "caller_id": caller, "callee_id": callee}
                for caller, callee in sorted(call_pairs)
            ],
        )

        writer.insert_many(
            ImportEdge,
            [
                {
                    "snapshot_id": snapshot_id,
                    "source_file_id": file_ids[i.source],
                    "target_file_id": file_ids[i.target],
                    "symbol": i.symbol,
                    "type_only": i.type_only,
                }
                for i in result.imports
                if i.source in file_ids and i.target in file_ids
            ],
        )

        binding_ids = self._write_bindings(writer, snapshot_id, result, entry_points, fn_ids)

        ep_records: list[dict[str, Any]] = []
        for ep in entry_points:
            handler_id = fn_ids.get(ep.handler)
            if handler_id is None:
                continue
            binding_id = None
            if ep.kind is EntryPointKind.EVENT and ep.event_name is not None:
                binding_id = binding_ids.get(
                    binding_key(ep.event_name, ep.pattern or EventPattern.EMITTER)
                )
            ep_records.append(
                {
                    "snapshot_id": snapshot_id,
                    "kind": ep.kind.value,
                    "handler_id": handler_id,
                    "method": ep.method,
                    "route": ep.route,
                    "schedule": ep.schedule,
                    "binding_id": binding_id,
                }
            )
        writer.insert_many(EntryPoint, ep_records)

        return {
            "files": len(file_ids),
            "functions": len(fn_ids),
            "call_edges": len(call_pairs),
            "entry_points": len(ep_records),
        }

    def _write_bindings(
        self,
        writer: BulkWriter,
        snapshot_id: int,
        result: ParseResult,
        entry_points: list[EntryPointCandidate],
        fn_ids: dict[str, int],
    ) -> dict[str, int]:
        """Insert EventBinding nodes and their HANDLES/EMITS edges."""
        bindings: dict[str, dict[str, Any]] = {}

        def _binding(event_name: str, pattern: EventPattern) -> str:
            key = binding_key(event_name, pattern)
            bindings.setdefault(
                key,
                {
                    "snapshot_id": snapshot_id,
                    "key": key,
                    "event_name": event_name,
                    "pattern": pattern.value,
                },
            )
            return key

        handles = [(r.handler, _binding(r.event_name, r.pattern)) for r in result.registrations]
        emits = [(e.emitter, _binding(e.event_name, EventPattern.EMITTER)) for e in result.emissions]
        for ep in entry_points:
            if ep.kind is EntryPointKind.EVENT and ep.event_name is not None:
                _binding(ep.event_name, ep.pattern or EventPattern.EMITTER)

        if not bindings:
            return {}

        # Insert one at a time through the composite key; binding counts are small
        binding_ids: dict[str, int] = {}
        for key, record in bindings.items():
            row = {k: v for k, v in record.items() if k != "key"}
            ids = writer.insert_many_returning_ids(
                EventBinding,
                [row],
                key_column="event_name",
                scope={"snapshot_id": snapshot_id, "pattern": row["pattern"]},
            )
            binding_ids[key] = ids[row["event_name"]]

        edge_records: list[dict[str, Any]] = []
        for relation, pairs in (
            (EventEdgeRelation.HANDLES_EVENT, handles),
            (EventEdgeRelation.EMITS_EVENT, emits),
        ):
            for fn_key, b_key in sorted(set(pairs)):
                function_id = fn_ids.get(fn_key)
                if function_id is None:
                    logger.debug("event_edge_unresolved", function=fn_key, binding=b_key)
                    continue
                edge_records.append(
                    {
                        "snapshot_id": snapshot_id,
                        "function_id": function_id,
                        "binding_id": binding_ids[b_key],
                        "relation": relation.value,
                    }
                )
        writer.insert_many(EventEdge, edge_records)
        return binding_ids

    # =========================================================================
    # Publish
    # =========================================================================

    def publish(self, repository_id: int, snapshot_id: int) -> float:
        """Atomically make ``snapshot_id`` the repository's visible graph."""
        published_at = time.time()
        with self.db.immediate_transaction() as session:
            repo = session.get(Repository, repository_id)
            snapshot = session.get(Snapshot, snapshot_id)
            if repo is None or snapshot is None:
                raise LookupError(f"snapshot {snapshot_id} or repository {repository_id} missing")
            snapshot.status = SnapshotStatus.PUBLISHED.value
            snapshot.published_at = published_at
            repo.current_snapshot_id = snapshot_id
            session.add(snapshot)
            session.add(repo)

            published = session.exec(
                select(Snapshot)
                .where(Snapshot.repository_id == repository_id)
                .where(Snapshot.status == SnapshotStatus.PUBLISHED.value)
                .where(Snapshot.id != snapshot_id)
                .order_by(col(Snapshot.id).desc())
            ).all()
            # Current snapshot counts toward the retention window
            for stale in published[self.retained_snapshots - 1 :]:
                stale.status = SnapshotStatus.DISCARDED.value
                session.add(stale)

        logger.info("snapshot_published", repository_id=repository_id, snapshot_id=snapshot_id)
        return published_at

    def _mark(self, snapshot_id: int, status: SnapshotStatus) -> None:
        with self.db.session() as session:
            row = session.get(Snapshot, snapshot_id)
            if row is not None:
                row.status = status.value
                session.add(row)
                session.commit()

    # =========================================================================
    # Garbage collection
    # =========================================================================

    def collect_garbage(self, repository_id: int) -> int:
        """Delete rows of discarded and abandoned staged snapshots.

        Must only run while no re-map of this repository is staging.
        Returns the number of snapshots removed.
        """
        with self.db.session() as session:
            repo = session.get(Repository, repository_id)
            current = repo.current_snapshot_id if repo else None
            doomed = [
                s.id
                for s in session.exec(
                    select(Snapshot)
                    .where(Snapshot.repository_id == repository_id)
                    .where(col(Snapshot.status).in_([
                        SnapshotStatus.DISCARDED.value,
                        SnapshotStatus.STAGED.value,
                    ]))
                ).all()
                if s.id is not None and s.id != current
            ]
        if not doomed:
            return 0

        with self.db.bulk_writer() as writer:
            for snapshot_id in doomed:
                params = {"sid": snapshot_id}
                for table in SNAPSHOT_TABLES:
                    writer.delete_where(table, "snapshot_id = :sid", params)
                writer.delete_where(Snapshot, "id = :sid", params)

        logger.debug("snapshots_collected", repository_id=repository_id, count=len(doomed))
        return len(doomed)
