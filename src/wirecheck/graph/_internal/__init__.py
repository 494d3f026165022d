"""Database layer for the call-graph store."""

from wirecheck.graph._internal.database import BulkWriter, Database, chunked
from wirecheck.graph._internal.snapshots import SnapshotManager, SnapshotStats

__all__ = [
    "Database",
    "BulkWriter",
    "chunked",
    "SnapshotManager",
    "SnapshotStats",
]
