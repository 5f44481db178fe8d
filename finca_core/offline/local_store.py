# =============================================================================
# finca_core/offline/local_store.py
# Durable Local Store (SQLite) for the pending-operation log and caches
# =============================================================================
"""
LocalStore - SQLite persistence for offline operation.

Holds two things:
- ``pending_operations``: append-only log of mutations waiting for Supabase,
  indexed by sync status and by enqueue time.
- ``cached_records``: one snapshot per remote collection, keyed by the
  remote entity id.

The schema is created lazily on first use. Each thread gets its own
connection; a collection replace runs in a single transaction so readers
on other connections see either the old or the new snapshot.
"""

from __future__ import annotations
import sqlite3
import threading
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Optional
from contextlib import contextmanager
import logging

import pandas as pd

from finca_core.errors import LocalStoreError, StoreInitializationError
from finca_core.offline.operations import (
    NewOperation,
    OperationKind,
    PendingOperation,
    from_json,
    to_json,
)

logger = logging.getLogger(__name__)


class LocalStore:
    """
    Local SQLite store owning the pending-operation log and cached snapshots.
    """

    SCHEMA = {
        "pending_operations": """
            CREATE TABLE IF NOT EXISTS pending_operations (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                collection TEXT NOT NULL,
                kind TEXT NOT NULL,
                payload_json TEXT NOT NULL,
                enqueued_at TEXT NOT NULL,
                synced INTEGER NOT NULL DEFAULT 0
            )
        """,
        "idx_pending_synced": """
            CREATE INDEX IF NOT EXISTS idx_pending_synced
            ON pending_operations(synced)
        """,
        "idx_pending_enqueued_at": """
            CREATE INDEX IF NOT EXISTS idx_pending_enqueued_at
            ON pending_operations(enqueued_at)
        """,
        "cached_records": """
            CREATE TABLE IF NOT EXISTS cached_records (
                collection TEXT NOT NULL,
                record_id TEXT NOT NULL,
                position INTEGER NOT NULL,
                record_json TEXT NOT NULL,
                PRIMARY KEY (collection, record_id)
            )
        """,
    }

    def __init__(self, db_path: Path):
        """
        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = Path(db_path)
        self._local = threading.local()
        self._connections: List[sqlite3.Connection] = []
        self._init_lock = threading.Lock()
        self._connections_lock = threading.Lock()
        self._initialized = False

    def _get_connection(self) -> sqlite3.Connection:
        """Get thread-local database connection."""
        if getattr(self._local, "connection", None) is None:
            connection = sqlite3.connect(str(self.db_path), timeout=30, check_same_thread=False)
            connection.row_factory = sqlite3.Row
            self._local.connection = connection
            with self._connections_lock:
                self._connections.append(connection)
        return self._local.connection

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Context manager for a write transaction."""
        self.initialize()
        conn = self._get_connection()
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise LocalStoreError(f"Local store write failed: {e}", db_path=str(self.db_path)) from e
        except Exception:
            conn.rollback()
            raise

    def _query(self, sql: str, params: Iterable[Any] = ()) -> List[sqlite3.Row]:
        self.initialize()
        try:
            return self._get_connection().execute(sql, list(params)).fetchall()
        except sqlite3.Error as e:
            raise LocalStoreError(f"Local store read failed: {e}", db_path=str(self.db_path)) from e

    def initialize(self) -> None:
        """Create the schema on first use. Safe to call repeatedly."""
        if self._initialized:
            return

        with self._init_lock:
            if self._initialized:
                return
            try:
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
                conn = self._get_connection()
                for name, statement in self.SCHEMA.items():
                    conn.execute(statement)
                    logger.debug(f"Created/verified: {name}")
                conn.commit()
            except (sqlite3.Error, OSError) as e:
                raise StoreInitializationError(
                    f"Cannot open local store: {e}", db_path=str(self.db_path)
                ) from e
            self._initialized = True

        logger.info(f"Local store initialized at: {self.db_path}")

    # =========================================================================
    # PENDING OPERATION LOG
    # =========================================================================

    def enqueue(self, operation: NewOperation) -> int:
        """
        Append an operation to the log.

        Returns:
            The new, strictly increasing operation id

        Raises:
            LocalStoreError: If the write cannot be persisted
        """
        enqueued_at = datetime.now(timezone.utc).isoformat(timespec="microseconds")
        with self.transaction() as conn:
            cursor = conn.execute(
                """
                INSERT INTO pending_operations (collection, kind, payload_json, enqueued_at, synced)
                VALUES (?, ?, ?, ?, 0)
                """,
                [operation.collection, operation.kind.value, to_json(operation.payload), enqueued_at],
            )
            op_id = cursor.lastrowid

        logger.debug(f"Queued {operation.kind.value} #{op_id} on {operation.collection}")
        return op_id

    def list_pending(self) -> List[PendingOperation]:
        """All unsynced operations, oldest first (ties broken by id)."""
        rows = self._query(
            """
            SELECT id, collection, kind, payload_json, enqueued_at, synced
            FROM pending_operations
            WHERE synced = 0
            ORDER BY enqueued_at ASC, id ASC
            """
        )
        return [self._row_to_operation(row) for row in rows]

    def count_pending(self) -> int:
        rows = self._query("SELECT COUNT(*) AS count FROM pending_operations WHERE synced = 0")
        return rows[0]["count"] if rows else 0

    def get_operation(self, op_id: int) -> Optional[PendingOperation]:
        rows = self._query(
            """
            SELECT id, collection, kind, payload_json, enqueued_at, synced
            FROM pending_operations WHERE id = ?
            """,
            [op_id],
        )
        return self._row_to_operation(rows[0]) if rows else None

    def mark_synced(self, op_id: int) -> None:
        """Flag an operation as applied remotely. No-op if absent or already synced."""
        with self.transaction() as conn:
            conn.execute(
                "UPDATE pending_operations SET synced = 1 WHERE id = ? AND synced = 0",
                [op_id],
            )

    def purge_synced(self) -> int:
        """Delete every synced operation; returns how many were removed."""
        with self.transaction() as conn:
            cursor = conn.execute("DELETE FROM pending_operations WHERE synced = 1")
            removed = cursor.rowcount

        if removed:
            logger.debug(f"Purged {removed} synced operations")
        return removed

    @staticmethod
    def _row_to_operation(row: sqlite3.Row) -> PendingOperation:
        return PendingOperation(
            id=row["id"],
            collection=row["collection"],
            kind=OperationKind(row["kind"]),
            payload=from_json(row["payload_json"]),
            enqueued_at=datetime.fromisoformat(row["enqueued_at"]),
            synced=bool(row["synced"]),
        )

    # =========================================================================
    # COLLECTION CACHES
    # =========================================================================

    @staticmethod
    def _record_key(record: Dict[str, Any]) -> str:
        record_id = record.get("id")
        if record_id is None or record_id == "":
            return f"local-{uuid.uuid4()}"
        return str(record_id)

    def replace_collection(self, name: str, records: List[Dict[str, Any]]) -> None:
        """Atomically discard a collection snapshot and load ``records``."""
        rows = [
            [name, self._record_key(record), position, to_json(record)]
            for position, record in enumerate(records)
        ]
        with self.transaction() as conn:
            conn.execute("DELETE FROM cached_records WHERE collection = ?", [name])
            conn.executemany(
                """
                INSERT OR REPLACE INTO cached_records (collection, record_id, position, record_json)
                VALUES (?, ?, ?, ?)
                """,
                rows,
            )

        logger.debug(f"Replaced cache for {name}: {len(rows)} records")

    def read_collection(self, name: str) -> List[Dict[str, Any]]:
        """Current snapshot of a collection, in insertion order."""
        rows = self._query(
            "SELECT record_json FROM cached_records WHERE collection = ? ORDER BY position ASC",
            [name],
        )
        return [from_json(row["record_json"]) for row in rows]

    def get_cached_record(self, name: str, record_id: Any) -> Optional[Dict[str, Any]]:
        rows = self._query(
            "SELECT record_json FROM cached_records WHERE collection = ? AND record_id = ?",
            [name, str(record_id)],
        )
        return from_json(rows[0]["record_json"]) if rows else None

    def put_cached_record(
        self, name: str, record: Dict[str, Any], create_missing: bool = True
    ) -> Optional[Dict[str, Any]]:
        """
        Add a record to a snapshot, or merge it into the existing one with the
        same id. Returns the stored record, or None when the record is absent
        and ``create_missing`` is False.
        """
        key = self._record_key(record)
        with self.transaction() as conn:
            existing = conn.execute(
                "SELECT position, record_json FROM cached_records WHERE collection = ? AND record_id = ?",
                [name, key],
            ).fetchone()

            if existing:
                merged = {**from_json(existing["record_json"]), **record}
                position = existing["position"]
            elif not create_missing:
                return None
            else:
                merged = dict(record)
                row = conn.execute(
                    "SELECT COALESCE(MAX(position), -1) + 1 AS next FROM cached_records WHERE collection = ?",
                    [name],
                ).fetchone()
                position = row["next"]

            conn.execute(
                """
                INSERT OR REPLACE INTO cached_records (collection, record_id, position, record_json)
                VALUES (?, ?, ?, ?)
                """,
                [name, key, position, to_json(merged)],
            )
        return merged

    def remove_cached_record(self, name: str, record_id: Any) -> bool:
        with self.transaction() as conn:
            cursor = conn.execute(
                "DELETE FROM cached_records WHERE collection = ? AND record_id = ?",
                [name, str(record_id)],
            )
            return cursor.rowcount > 0

    # =========================================================================
    # PANDAS INTEGRATION
    # =========================================================================

    def to_dataframe(self, name: str) -> pd.DataFrame:
        """
        Load a cached collection into a pandas DataFrame.

        Returns an empty DataFrame when nothing is cached.
        """
        records = self.read_collection(name)
        if not records:
            return pd.DataFrame()
        return pd.DataFrame.from_records(records)

    def close(self) -> None:
        """Close every connection this store opened."""
        with self._connections_lock:
            for connection in self._connections:
                try:
                    connection.close()
                except sqlite3.Error as e:
                    logger.warning(f"Error closing local store connection: {e}")
            self._connections.clear()
            self._initialized = False
        self._local = threading.local()
