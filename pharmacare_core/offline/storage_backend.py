# =============================================================================
# pharmacare_core/offline/storage_backend.py
# Durable Key-Value Storage for Offline Operations
# =============================================================================
"""
Key-value backends behind the Local Store.

The Local Store only needs a synchronous string-keyed interface:

    get(key) -> Optional[str]
    set(key, value)
    remove(key)
    keys() -> List[str]

Two implementations are provided:
- SQLiteKeyValueStore: durable, one file per device profile
- MemoryKeyValueStore: dict-backed, for tests and throwaway sessions
"""

from __future__ import annotations
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Protocol, Union
import logging

from pharmacare_core.errors import LocalStorageError

logger = logging.getLogger(__name__)


class KeyValueStore(Protocol):
    """Synchronous string-keyed storage partition."""

    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...

    def remove(self, key: str) -> None: ...

    def keys(self) -> List[str]: ...

    def close(self) -> None: ...


class MemoryKeyValueStore:
    """In-process key-value store; contents vanish with the process."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> List[str]:
        return list(self._data.keys())

    def close(self) -> None:
        pass


class SQLiteKeyValueStore:
    """
    SQLite-backed key-value store.

    Values are opaque strings (JSON documents in practice). One connection is
    shared by all callers and serialized with a lock; ``close()`` releases it
    and the next call reopens it.
    """

    DEFAULT_DB_PATH = Path("local_data") / "pharmacare.db"

    SCHEMA = """
        CREATE TABLE IF NOT EXISTS kv_store (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL,
            written_at TEXT NOT NULL
        )
    """

    UPSERT = """
        INSERT INTO kv_store (key, value, written_at) VALUES (?, ?, ?)
        ON CONFLICT(key) DO UPDATE SET
            value = excluded.value,
            written_at = excluded.written_at
    """

    def __init__(self, db_path: Optional[Union[str, Path]] = None):
        self.db_path = Path(db_path) if db_path else self.DEFAULT_DB_PATH
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.RLock()
        self._conn: Optional[sqlite3.Connection] = None

        try:
            with self.transaction() as conn:
                conn.execute(self.SCHEMA)
        except sqlite3.Error as e:
            raise LocalStorageError(f"Could not open local storage at {self.db_path}: {e}")
        logger.info(f"Local storage ready at {self.db_path}")

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    def _connection(self) -> sqlite3.Connection:
        # callers hold self._lock
        if self._conn is None:
            self._conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
        return self._conn

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Commit on clean exit, roll back if the block raises."""
        with self._lock:
            conn = self._connection()
            try:
                yield conn
            except BaseException:
                conn.rollback()
                raise
            conn.commit()

    def _write(self, key: str, sql: str, params: tuple) -> None:
        try:
            with self.transaction() as conn:
                conn.execute(sql, params)
        except sqlite3.Error as e:
            raise LocalStorageError(f"Write to local storage failed: {e}", key=key)

    def get(self, key: str) -> Optional[str]:
        try:
            with self._lock:
                cursor = self._connection().execute("SELECT value FROM kv_store WHERE key = ?", (key,))
                found = cursor.fetchone()
        except sqlite3.Error as e:
            logger.error(f"Read of '{key}' from local storage failed: {e}")
            return None
        return found[0] if found else None

    def set(self, key: str, value: str) -> None:
        self._write(key, self.UPSERT, (key, value, datetime.now().isoformat()))

    def remove(self, key: str) -> None:
        self._write(key, "DELETE FROM kv_store WHERE key = ?", (key,))

    def keys(self) -> List[str]:
        with self._lock:
            cursor = self._connection().execute("SELECT key FROM kv_store ORDER BY key")
            return [key for (key,) in cursor.fetchall()]

    def close(self) -> None:
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None
