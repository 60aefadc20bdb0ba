"""
Versioned key-value store using SQLite.

Local stand-in for a global versioned KV service. Every set() appends a
new version for (key, controller); the newest version is the current
value and all older versions form that controller's history.

Writes are isolated per controller: set() only ever touches the caller's
own version chain. Reads see every controller unless filtered.
"""

import logging
import sqlite3
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from .errors import StorageError, StorageUnavailable
from .protocol import Identity, KVResult

logger = logging.getLogger(__name__)


class LocalKVStore:
    """
    SQLite-backed versioned key-value store.

    History is returned newest-first.
    """

    def __init__(self, store_path: Path):
        """
        Args:
            store_path: Path to SQLite database file
        """
        self._db_path = store_path
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = threading.Lock()
        self._init_db()

    def _init_db(self) -> None:
        """Initialize the SQLite database."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(
            str(self._db_path),
            check_same_thread=False,
            timeout=10.0,
            isolation_level=None,  # explicit transactions in set()
        )
        self._conn.row_factory = sqlite3.Row

        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS versions (
                key TEXT NOT NULL,
                controller TEXT NOT NULL,
                version INTEGER NOT NULL,
                value TEXT NOT NULL,
                created_at TEXT NOT NULL,
                PRIMARY KEY (key, controller, version)
            )
        """)

        # Index for all-controller reads of one key
        self._conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_versions_key
            ON versions(key)
        """)

    def _now(self) -> str:
        """Current timestamp in ISO format."""
        return datetime.now(timezone.utc).isoformat()

    # -------------------------------------------------------------------------
    # Write Operations
    # -------------------------------------------------------------------------

    def set(self, key: str, value: str, identity: Identity) -> None:
        """
        Write value as the new current version of key for identity.

        The previous current value (if any) becomes the newest history
        item for this (key, controller) pair.

        Raises:
            StorageUnavailable: database locked or unreachable
            StorageError: any other SQLite failure
        """
        conn = self._require_conn()
        with self._lock:
            try:
                conn.execute("BEGIN IMMEDIATE")
                row = conn.execute("""
                    SELECT COALESCE(MAX(version), 0) FROM versions
                    WHERE key = ? AND controller = ?
                """, (key, identity.controller)).fetchone()
                version = row[0] + 1
                conn.execute("""
                    INSERT INTO versions (key, controller, version, value, created_at)
                    VALUES (?, ?, ?, ?, ?)
                """, (key, identity.controller, version, value, self._now()))
                conn.execute("COMMIT")
            except sqlite3.Error as e:
                if conn.in_transaction:
                    conn.execute("ROLLBACK")
                raise _storage_error(e) from e
        logger.debug("set %s v%d (%s)", key, version, identity.controller[:8])

    # -------------------------------------------------------------------------
    # Read Operations
    # -------------------------------------------------------------------------

    def get(
        self,
        key: str,
        *,
        controller: Optional[str] = None,
        history: bool = False,
    ) -> list[KVResult]:
        """
        Get the current value (and optionally history) of a key.

        Args:
            key: Key to read
            controller: Only this controller's chain (None for all)
            history: Include superseded values

        Returns:
            One KVResult per controller that has written key, ordered by
            controller; empty if nobody has
        """
        conn = self._require_conn()
        sql = """
            SELECT controller, version, value FROM versions
            WHERE key = ?
        """
        params: tuple = (key,)
        if controller is not None:
            sql += " AND controller = ?"
            params = (key, controller)
        sql += " ORDER BY controller, version DESC"

        try:
            rows = conn.execute(sql, params).fetchall()
        except sqlite3.Error as e:
            raise _storage_error(e) from e

        by_controller: dict[str, list[str]] = {}
        for row in rows:
            by_controller.setdefault(row["controller"], []).append(row["value"])

        return [
            KVResult(
                key=key,
                controller=ctrl,
                value=values[0],
                history=tuple(values[1:]) if history else (),
                history_order="newest-first",
            )
            for ctrl, values in by_controller.items()
        ]

    def version_count(self, key: str, controller: str) -> int:
        """Number of stored versions for (key, controller)."""
        conn = self._require_conn()
        cursor = conn.execute("""
            SELECT COUNT(*) FROM versions
            WHERE key = ? AND controller = ?
        """, (key, controller))
        return cursor.fetchone()[0]

    def list_keys(self, controller: Optional[str] = None) -> list[str]:
        """List distinct keys, optionally for one controller."""
        conn = self._require_conn()
        if controller is not None:
            cursor = conn.execute("""
                SELECT DISTINCT key FROM versions
                WHERE controller = ?
                ORDER BY key
            """, (controller,))
        else:
            cursor = conn.execute("""
                SELECT DISTINCT key FROM versions
                ORDER BY key
            """)
        return [row["key"] for row in cursor]

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def _require_conn(self) -> sqlite3.Connection:
        if self._conn is None:
            raise StorageUnavailable(f"Store is closed: {self._db_path}")
        return self._conn

    def close(self) -> None:
        """Close the database connection."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def __del__(self):
        self.close()


def _storage_error(e: sqlite3.Error) -> StorageError:
    """Map a SQLite error to the store's error taxonomy."""
    if isinstance(e, sqlite3.OperationalError):
        return StorageUnavailable(f"Local store unavailable: {e}")
    return StorageError(f"Local store error: {e}")
