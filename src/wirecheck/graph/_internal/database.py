"""Database engine and bulk writer.

This module provides:
- Database: Connection manager with WAL mode for concurrent access
- BulkWriter: High-volume inserts with id read-back for FK resolution
- Session utilities for serializable writes and snapshot-consistent reads
- Retry logic for SQLite busy timeout handling

The hybrid pattern:
- Use ORM sessions for low-volume operations (repositories, snapshots)
- Use BulkWriter for high-volume operations (files, functions, edges)
- Use immediate_transaction for snapshot publication (prevents races)
- Use read_transaction for graph loads (one consistent WAL snapshot)
"""

from __future__ import annotations

import time
from collections.abc import Generator
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Any

import structlog
from sqlalchemy import event, text
from sqlalchemy.exc import OperationalError
from sqlmodel import Session, SQLModel, create_engine

from wirecheck.config.constants import SQLITE_IN_CHUNK

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = structlog.get_logger()

# Retry configuration for SQLite busy handling
DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_BASE_DELAY = 0.1  # 100ms base
DEFAULT_RETRY_MAX_DELAY = 2.0  # 2s max
DEFAULT_BUSY_TIMEOUT_MS = 30000


def _is_database_locked_error(error: Exception) -> bool:
    """Check if error is a SQLite database locked error."""
    error_str = str(error).lower()
    return "database is locked" in error_str or "database is busy" in error_str


class Database:
    """SQLite connection manager with WAL mode for concurrent access.

    Includes retry logic with exponential backoff for handling
    SQLite busy timeouts during concurrent writes.
    """

    def __init__(
        self,
        db_path: Path,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_base_delay: float = DEFAULT_RETRY_BASE_DELAY,
        retry_max_delay: float = DEFAULT_RETRY_MAX_DELAY,
        busy_timeout_ms: int = DEFAULT_BUSY_TIMEOUT_MS,
    ) -> None:
        self.db_path = db_path
        self._max_retries = max_retries
        self._retry_base_delay = retry_base_delay
        self._retry_max_delay = retry_max_delay
        self._busy_timeout_ms = busy_timeout_ms
        self.engine = self._create_engine()

    def _create_engine(self) -> Engine:
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        engine = create_engine(
            f"sqlite:///{self.db_path}",
            connect_args={"check_same_thread": False},
            pool_pre_ping=True,
        )
        busy_timeout_ms = self._busy_timeout_ms

        def _on_connect(dbapi_conn: Any, _connection_record: Any) -> None:
            _configure_pragmas(dbapi_conn, busy_timeout_ms)

        event.listen(engine, "connect", _on_connect)
        return engine

    def create_all(self) -> None:
        """Create all tables from SQLModel metadata."""
        SQLModel.metadata.create_all(self.engine)

    def dispose(self) -> None:
        """Close pooled connections."""
        self.engine.dispose()

    @contextmanager
    def session(self) -> Generator[Session, None, None]:
        """ORM session for low-volume operations."""
        with Session(self.engine) as session:
            yield session

    @contextmanager
    def read_transaction(self) -> Generator[Session, None, None]:
        """
        Read-only session pinned to one WAL snapshot.

        BEGIN (deferred) takes the read snapshot on the first SELECT; every
        later statement in the session sees the same database state even if
        a writer commits in between. ``query_only`` makes any write attempt
        through this session fail; it is switched off again on the same
        connection before that connection goes back to the pool.
        """
        with Session(self.engine) as session:
            dbapi_conn = session.connection().connection.dbapi_connection
            assert dbapi_conn is not None
            _set_query_only(dbapi_conn, True)
            session.execute(text("BEGIN"))
            try:
                yield session
            finally:
                # Loaded rows stay usable after the snapshot is released
                session.expunge_all()
                _set_query_only(dbapi_conn, False)
                session.rollback()

    @contextmanager
    def immediate_transaction(
        self,
        max_retries: int | None = None,
    ) -> Generator[Session, None, None]:
        """
        Session with BEGIN IMMEDIATE for serializable writes.

        Includes retry logic with exponential backoff for handling
        SQLite busy timeouts.

        BEGIN IMMEDIATE acquires a RESERVED lock immediately,
        blocking other writers but allowing readers.

        The session auto-commits on successful exit and rolls back
        on exception.

        Args:
            max_retries: Override default max retries (default: 3)
        """
        retries = max_retries if max_retries is not None else self._max_retries

        with Session(self.engine) as session:
            self._begin_immediate(session, retries)
            try:
                yield session
                session.commit()
            except Exception:
                session.rollback()
                raise

    def _begin_immediate(self, session: Session, retries: int) -> None:
        """Acquire the RESERVED lock, retrying busy errors with backoff."""
        for attempt in range(retries + 1):  # +1 for initial attempt
            try:
                session.execute(text("BEGIN IMMEDIATE"))
                return
            except OperationalError as e:
                if not _is_database_locked_error(e) or attempt >= retries:
                    raise
                session.rollback()
                delay = min(
                    self._retry_base_delay * (2**attempt),
                    self._retry_max_delay,
                )
                logger.warning(
                    "sqlite_busy_retry",
                    attempt=attempt + 1,
                    max_retries=retries,
                    delay_sec=delay,
                )
                time.sleep(delay)

    @contextmanager
    def bulk_writer(self) -> Generator[BulkWriter, None, None]:
        """
        Bulk writer for high-volume inserts.

        Auto-commits on successful exit, rolls back on exception.
        """
        writer = BulkWriter(self.engine)
        try:
            yield writer
            writer.commit()
        except Exception:
            writer.rollback()
            raise
        finally:
            writer.close()


def _configure_pragmas(dbapi_conn: Any, busy_timeout_ms: int) -> None:
    """Configure SQLite for concurrent access and performance."""
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute(f"PRAGMA busy_timeout={int(busy_timeout_ms)}")
    cursor.execute("PRAGMA synchronous=NORMAL")  # Safe with WAL
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.execute("PRAGMA cache_size=-64000")  # 64MB cache
    cursor.close()


def _set_query_only(dbapi_conn: Any, enabled: bool) -> None:
    cursor = dbapi_conn.cursor()
    cursor.execute(f"PRAGMA query_only = {'ON' if enabled else 'OFF'}")
    cursor.close()


def chunked(values: list[Any], size: int = SQLITE_IN_CHUNK) -> Generator[list[Any], None, None]:
    """Yield successive slices small enough for one IN (...) clause."""
    for start in range(0, len(values), size):
        yield values[start : start + size]


class BulkWriter:
    """High-performance bulk insert using Core SQL, bypassing ORM overhead."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine
        self.conn = engine.connect()
        self.transaction = self.conn.begin()

    def insert_many(self, model_class: type[SQLModel], records: list[dict[str, Any]]) -> int:
        """Bulk insert records into table, returning count inserted."""
        if not records:
            return 0

        table = model_class.__table__  # type: ignore[attr-defined]
        self.conn.execute(table.insert(), records)
        return len(records)

    def insert_many_returning_ids(
        self,
        model_class: type[SQLModel],
        records: list[dict[str, Any]],
        key_column: str,
        scope: dict[str, Any],
    ) -> dict[Any, int]:
        """Bulk insert and map ``key_column`` values to generated IDs.

        ``scope`` restricts the read-back (e.g. ``{"snapshot_id": 7}``) so keys
        only need to be unique within it.
        """
        if not records:
            return {}

        table = model_class.__table__  # type: ignore[attr-defined]
        self.conn.execute(table.insert(), records)

        scope_sql = " AND ".join(f"{col} = :scope_{col}" for col in scope)
        scope_params = {f"scope_{col}": val for col, val in scope.items()}

        ids: dict[Any, int] = {}
        keys = [r[key_column] for r in records]
        for chunk in chunked(keys):
            placeholders = ", ".join(f":k{i}" for i in range(len(chunk)))
            sql = (
                f"SELECT id, {key_column} FROM {table.name} "
                f"WHERE {scope_sql} AND {key_column} IN ({placeholders})"
            )
            params = {**scope_params, **{f"k{i}": k for i, k in enumerate(chunk)}}
            for row in self.conn.execute(text(sql), params):
                ids[row[1]] = row[0]
        return ids

    def delete_where(
        self,
        model_class: type[SQLModel],
        condition: str,
        params: dict[str, Any],
    ) -> int:
        """Bulk delete rows matching condition, returning count affected."""
        table = model_class.__table__  # type: ignore[attr-defined]
        sql = f"DELETE FROM {table.name} WHERE {condition}"
        result = self.conn.execute(text(sql), params)
        return int(result.rowcount)

    def commit(self) -> None:
        """Commit the current transaction."""
        self.transaction.commit()

    def rollback(self) -> None:
        """Rollback the current transaction."""
        self.transaction.rollback()

    def close(self) -> None:
        """Close the connection."""
        self.conn.close()
