"""SQLModel definitions for the persistent call-graph store.

Single source of truth for all table schemas.

Every graph row belongs to exactly one Snapshot. A full re-map writes a new
snapshot for the repository and then flips ``Repository.current_snapshot_id``
in one transaction, so readers always see either the previous or the new
graph, never a mix. Rows of superseded snapshots are garbage-collected once
they fall out of the retention window.

The store only ever reflects a repository's default branch.
"""

from enum import Enum

from sqlalchemy import Column, ForeignKey, Integer, UniqueConstraint
from sqlmodel import Field, SQLModel

# ============================================================================
# ENUMS
# ============================================================================


class SnapshotStatus(str, Enum):
    """Lifecycle of a snapshot's rows."""

    STAGED = "staged"  # rows written, not yet visible to readers
    PUBLISHED = "published"  # current or retained for pinned readers
    DISCARDED = "discarded"  # awaiting garbage collection


class EventEdgeRelation(str, Enum):
    HANDLES_EVENT = "handles_event"
    EMITS_EVENT = "emits_event"


# ============================================================================
# TABLES
# ============================================================================


class Repository(SQLModel, table=True):
    """A repository whose default branch is mapped into the store."""

    __tablename__ = "repositories"

    id: int | None = Field(default=None, primary_key=True)
    name: str = Field(unique=True, index=True)
    default_branch: str = "main"
    current_snapshot_id: int | None = Field(default=None)


class Snapshot(SQLModel, table=True):
    """One full re-map of a repository."""

    __tablename__ = "snapshots"

    id: int | None = Field(default=None, primary_key=True)
    repository_id: int = Field(foreign_key="repositories.id", index=True)
    status: str = Field(default=SnapshotStatus.STAGED.value, index=True)
    commit_sha: str | None = None
    created_at: float
    published_at: float | None = None
    file_count: int = 0
    function_count: int = 0
    call_edge_count: int = 0
    entry_point_count: int = 0


class File(SQLModel, table=True):
    """Source file in a snapshot."""

    __tablename__ = "files"
    __table_args__ = (UniqueConstraint("snapshot_id", "path"),)

    id: int | None = Field(default=None, primary_key=True)
    snapshot_id: int = Field(
        sa_column=Column(Integer, ForeignKey("snapshots.id", ondelete="CASCADE"), index=True)
    )
    path: str = Field(index=True)
    language: str = "unknown"
    lines_of_code: int = 0
    is_test: bool = Field(default=False, index=True)  # derived from path on every re-map
    is_active: bool = True


class Function(SQLModel, table=True):
    """Function defined in exactly one File."""

    __tablename__ = "functions"
    __table_args__ = (UniqueConstraint("snapshot_id", "key"),)

    id: int | None = Field(default=None, primary_key=True)
    snapshot_id: int = Field(
        sa_column=Column(Integer, ForeignKey("snapshots.id", ondelete="CASCADE"), index=True)
    )
    file_id: int = Field(
        sa_column=Column(Integer, ForeignKey("files.id", ondelete="CASCADE"), index=True)
    )
    key: str = Field(index=True)  # "<path>:<qualified_name>"
    name: str = Field(index=True)
    qualified_name: str
    is_exported: bool = Field(default=False, index=True)
    is_async: bool = False
    complexity: int = 1
    line: int = 0


class CallEdge(SQLModel, table=True):
    """Statically observed invocation. Cycles are legal."""

    __tablename__ = "call_edges"

    id: int | None = Field(default=None, primary_key=True)
    snapshot_id: int = Field(
        sa_column=Column(Integer, ForeignKey("snapshots.id", ondelete="CASCADE"), index=True)
    )
    caller_id: int = Field(
        sa_column=Column(Integer, ForeignKey("functions.id", ondelete="CASCADE"), index=True)
    )
    callee_id: int = Field(
        sa_column=Column(Integer, ForeignKey("functions.id", ondelete="CASCADE"), index=True)
    )


class ImportEdge(SQLModel, table=True):
    """File-level import. Type-only imports never establish runtime reachability."""

    __tablename__ = "import_edges"

    id: int | None = Field(default=None, primary_key=True)
    snapshot_id: int = Field(
        sa_column=Column(Integer, ForeignKey("snapshots.id", ondelete="CASCADE"), index=True)
    )
    source_file_id: int = Field(
        sa_column=Column(Integer, ForeignKey("files.id", ondelete="CASCADE"), index=True)
    )
    target_file_id: int = Field(
        sa_column=Column(Integer, ForeignKey("files.id", ondelete="CASCADE"), index=True)
    )
    symbol: str | None = None
    type_only: bool = False


class EventBinding(SQLModel, table=True):
    """One node per (event name, pattern kind)."""

    __tablename__ = "event_bindings"
    __table_args__ = (UniqueConstraint("snapshot_id", "event_name", "pattern"),)

    id: int | None = Field(default=None, primary_key=True)
    snapshot_id: int = Field(
        sa_column=Column(Integer, ForeignKey("snapshots.id", ondelete="CASCADE"), index=True)
    )
    event_name: str = Field(index=True)
    pattern: str  # EventPattern value


class EventEdge(SQLModel, table=True):
    """HANDLES_EVENT (handler -> binding) or EMITS_EVENT (emitter -> binding)."""

    __tablename__ = "event_edges"

    id: int | None = Field(default=None, primary_key=True)
    snapshot_id: int = Field(
        sa_column=Column(Integer, ForeignKey("snapshots.id", ondelete="CASCADE"), index=True)
    )
    function_id: int = Field(
        sa_column=Column(Integer, ForeignKey("functions.id", ondelete="CASCADE"), index=True)
    )
    binding_id: int = Field(
        sa_column=Column(Integer, ForeignKey("event_bindings.id", ondelete="CASCADE"), index=True)
    )
    relation: str  # EventEdgeRelation value


class EntryPoint(SQLModel, table=True):
    """Endpoint, CronJob or EventBinding-backed entry point.

    Only entry points whose handler resolved to a Function are stored.
    """

    __tablename__ = "entry_points"

    id: int | None = Field(default=None, primary_key=True)
    snapshot_id: int = Field(
        sa_column=Column(Integer, ForeignKey("snapshots.id", ondelete="CASCADE"), index=True)
    )
    kind: str = Field(index=True)  # EntryPointKind value
    handler_id: int = Field(
        sa_column=Column(Integer, ForeignKey("functions.id", ondelete="CASCADE"), index=True)
    )
    method: str | None = None
    route: str | None = None
    schedule: str | None = None
    binding_id: int | None = Field(
        default=None,
        sa_column=Column(Integer, ForeignKey("event_bindings.id", ondelete="CASCADE")),
    )


# Delete order for garbage collection (children first)
SNAPSHOT_TABLES: tuple[type[SQLModel], ...] = (
    EntryPoint,
    EventEdge,
    EventBinding,
    CallEdge,
    ImportEdge,
    Function,
    File,
)
