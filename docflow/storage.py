"""
Storage Backend Module

Persistence for workflow, stage-index, document and activity records. Every
record is a JSON document addressed by (table, id). Two backends ship here:
InMemoryStorage for tests and SQLiteStorage for single-node deployments.

Transactions are exclusive per backend. atomic() keeps the backend lock from
begin to commit; for SQLite it also holds the database write lock, so other
connections to the same file wait instead of interleaving. save_versioned()
builds a compare-and-swap on the record's "version" field on top of that.
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Any, Union
from datetime import datetime, timezone
import sqlite3
import json
import threading
from dataclasses import dataclass, asdict
from pathlib import Path
from contextlib import contextmanager

from .errors import ConflictError


VERSION_FIELD = "version"

_TIMESTAMP_FIELDS = ('created_at', 'updated_at')


@dataclass
class StorageRecord:
    """Common id and timestamps of every persisted record"""
    id: str
    created_at: datetime
    updated_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        for name in _TIMESTAMP_FIELDS:
            data[name] = getattr(self, name).isoformat()
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'StorageRecord':
        """Build the record from its stored form (ISO timestamps parsed back)"""
        for name in _TIMESTAMP_FIELDS:
            if isinstance(data.get(name), str):
                data[name] = datetime.fromisoformat(data[name])
        return cls(**data)


class StorageInterface(ABC):
    """
    Contract the engine and registry persist through.

    Backends store JSON-compatible dicts; callers own serialisation of their
    records. The transaction hooks default to no-ops for backends without
    transactions.
    """

    @abstractmethod
    def save(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        """Insert or replace one record"""
        pass

    @abstractmethod
    def load(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        """One record, or None if the id is unknown"""
        pass

    @abstractmethod
    def load_all(self, table: str) -> List[Dict[str, Any]]:
        pass

    @abstractmethod
    def delete(self, table: str, record_id: str) -> bool:
        """Remove a record; False if it did not exist"""
        pass

    @abstractmethod
    def exists(self, table: str, record_id: str) -> bool:
        pass

    @abstractmethod
    def find(self, table: str, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Records whose top-level keys equal every filter value"""
        pass

    @abstractmethod
    def count(self, table: str) -> int:
        pass

    @abstractmethod
    def clear_table(self, table: str) -> None:
        pass

    @abstractmethod
    def close(self) -> None:
        pass

    def begin_transaction(self) -> None:
        pass

    def commit(self) -> None:
        pass

    def rollback(self) -> None:
        pass

    @contextmanager
    def atomic(self):
        """Run the block as one transaction; any exception rolls it back"""
        self.begin_transaction()
        try:
            yield
        except Exception:
            self.rollback()
            raise
        self.commit()

    def save_versioned(self, table: str, record_id: str, data: Dict[str, Any],
                       expected_version: int) -> int:
        """
        Write a record only if its stored version is still expected_version.

        expected_version 0 means "must not exist yet". The stored copy gets
        expected_version + 1, which is also the return value. The read and
        the write run in one transaction.

        Raises:
            ConflictError: The stored version is not expected_version
        """
        with self.atomic():
            current = self.load(table, record_id)
            if current is None and expected_version != 0:
                raise ConflictError(
                    f"Record {record_id} in {table} no longer exists",
                    record_id, expected_version, None
                )
            found = current.get(VERSION_FIELD, 0) if current else 0
            if found != expected_version:
                raise ConflictError(
                    f"Record {record_id} in {table} was modified concurrently "
                    f"(expected version {expected_version}, found {found})",
                    record_id, expected_version, found
                )

            new_version = expected_version + 1
            self.save(table, record_id, {**data, VERSION_FIELD: new_version})

        return new_version


class InMemoryStorage(StorageInterface):
    """In-memory storage implementation for testing"""

    def __init__(self):
        self._data: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._lock = threading.RLock()
        self._txn_depth = 0
        self._snapshot: Optional[Dict[str, Dict[str, Dict[str, Any]]]] = None

    def _ensure_table(self, table: str) -> None:
        """Ensure table exists"""
        if table not in self._data:
            self._data[table] = {}

    def save(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        """Save a record to memory"""
        with self._lock:
            self._ensure_table(table)
            # Deep copy to prevent external mutation
            self._data[table][record_id] = json.loads(json.dumps(data, default=str))

    def load(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        """Load a record from memory"""
        with self._lock:
            self._ensure_table(table)
            record = self._data[table].get(record_id)
            if record:
                return json.loads(json.dumps(record))
            return None

    def load_all(self, table: str) -> List[Dict[str, Any]]:
        """Load all records from a table"""
        with self._lock:
            self._ensure_table(table)
            return [json.loads(json.dumps(record)) for record in self._data[table].values()]

    def delete(self, table: str, record_id: str) -> bool:
        """Delete a record from memory"""
        with self._lock:
            self._ensure_table(table)
            if record_id in self._data[table]:
                del self._data[table][record_id]
                return True
            return False

    def exists(self, table: str, record_id: str) -> bool:
        """Check if a record exists"""
        with self._lock:
            self._ensure_table(table)
            return record_id in self._data[table]

    def find(self, table: str, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Find records matching filters"""
        with self._lock:
            self._ensure_table(table)
            results = []
            for record in self._data[table].values():
                match = True
                for key, value in filters.items():
                    if key not in record or record[key] != value:
                        match = False
                        break
                if match:
                    results.append(json.loads(json.dumps(record)))
            return results

    def count(self, table: str) -> int:
        """Count records in table"""
        with self._lock:
            self._ensure_table(table)
            return len(self._data[table])

    def clear_table(self, table: str) -> None:
        """Clear all records from a table"""
        with self._lock:
            self._data[table] = {}

    def begin_transaction(self) -> None:
        """Start a transaction; the lock is held until commit or rollback"""
        self._lock.acquire()
        self._txn_depth += 1
        if self._txn_depth == 1:
            self._snapshot = json.loads(json.dumps(self._data))

    def commit(self) -> None:
        """Commit current transaction"""
        if self._txn_depth == 0:
            return
        try:
            self._txn_depth -= 1
            if self._txn_depth == 0:
                self._snapshot = None
        finally:
            self._lock.release()

    def rollback(self) -> None:
        """Rollback current transaction (only the outermost level restores)"""
        if self._txn_depth == 0:
            return
        try:
            self._txn_depth -= 1
            if self._txn_depth == 0 and self._snapshot is not None:
                self._data = self._snapshot
                self._snapshot = None
        finally:
            self._lock.release()

    def close(self) -> None:
        """Close storage (no-op for in-memory)"""
        pass


class SQLiteStorage(StorageInterface):
    """SQLite storage implementation for persistence"""

    def __init__(self, db_path: Union[str, Path] = ":memory:", timeout: float = 5.0):
        self.db_path = str(db_path)
        # DEFERRED isolation enables manual transaction control; timeout is how
        # long to wait for another connection's write lock
        self._connection = sqlite3.connect(
            self.db_path, timeout=timeout, check_same_thread=False, isolation_level='DEFERRED'
        )
        self._connection.row_factory = sqlite3.Row
        self._lock = threading.RLock()
        self._txn_depth = 0
        self._tables: set = set()

        if self.db_path != ":memory:":
            with self._lock:
                self._connection.execute("PRAGMA journal_mode = WAL")
                self._connection.execute("PRAGMA synchronous = NORMAL")
                self._connection.commit()

    @property
    def _in_transaction(self) -> bool:
        return self._txn_depth > 0

    def _ensure_table(self, table: str) -> None:
        """Ensure table exists with proper schema"""
        with self._lock:
            if table in self._tables:
                return
            self._connection.execute(f"""
                CREATE TABLE IF NOT EXISTS {table} (
                    id TEXT PRIMARY KEY,
                    data TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)
            self._connection.execute(f"""
                CREATE INDEX IF NOT EXISTS idx_{table}_created_at
                ON {table}(created_at)
            """)
            if not self._in_transaction:
                self._connection.commit()
            self._tables.add(table)

    def save(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        """Save a record to SQLite"""
        with self._lock:
            self._ensure_table(table)

            now = datetime.now(timezone.utc).isoformat()
            data_json = json.dumps(data, default=str)

            # INSERT OR REPLACE keeps the original created_at on updates
            self._connection.execute(f"""
                INSERT OR REPLACE INTO {table} (id, data, created_at, updated_at)
                VALUES (?, ?,
                    COALESCE((SELECT created_at FROM {table} WHERE id = ?), ?),
                    ?)
            """, (record_id, data_json, record_id, now, now))

            if not self._in_transaction:
                self._connection.commit()

    def load(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        """Load a record from SQLite"""
        with self._lock:
            self._ensure_table(table)
            cursor = self._connection.execute(f"""
                SELECT data FROM {table} WHERE id = ?
            """, (record_id,))
            row = cursor.fetchone()
            if row:
                return json.loads(row['data'])
            return None

    def load_all(self, table: str) -> List[Dict[str, Any]]:
        """Load all records from a table"""
        with self._lock:
            self._ensure_table(table)
            cursor = self._connection.execute(f"""
                SELECT data FROM {table} ORDER BY created_at
            """)
            return [json.loads(row['data']) for row in cursor.fetchall()]

    def delete(self, table: str, record_id: str) -> bool:
        """Delete a record from SQLite"""
        with self._lock:
            self._ensure_table(table)
            cursor = self._connection.execute(f"""
                DELETE FROM {table} WHERE id = ?
            """, (record_id,))

            if not self._in_transaction:
                self._connection.commit()
            return cursor.rowcount > 0

    def exists(self, table: str, record_id: str) -> bool:
        """Check if a record exists"""
        with self._lock:
            self._ensure_table(table)
            cursor = self._connection.execute(f"""
                SELECT 1 FROM {table} WHERE id = ? LIMIT 1
            """, (record_id,))
            return cursor.fetchone() is not None

    def find(self, table: str, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Find records matching filters (simple JSON key matching)"""
        with self._lock:
            self._ensure_table(table)
            cursor = self._connection.execute(f"""
                SELECT data FROM {table} ORDER BY created_at
            """)

            results = []
            for row in cursor.fetchall():
                record = json.loads(row['data'])
                match = True
                for key, value in filters.items():
                    if key not in record or record[key] != value:
                        match = False
                        break
                if match:
                    results.append(record)

            return results

    def count(self, table: str) -> int:
        """Count records in table"""
        with self._lock:
            self._ensure_table(table)
            cursor = self._connection.execute(f"""
                SELECT COUNT(*) as count FROM {table}
            """)
            return cursor.fetchone()['count']

    def clear_table(self, table: str) -> None:
        """Clear all records from a table"""
        with self._lock:
            self._ensure_table(table)
            self._connection.execute(f"DELETE FROM {table}")

            if not self._in_transaction:
                self._connection.commit()

    def begin_transaction(self) -> None:
        """
        Start a transaction. The outermost level issues BEGIN IMMEDIATE so the
        database write lock is held from the first read to commit.
        """
        self._lock.acquire()
        if self._txn_depth == 0:
            try:
                if self._connection.in_transaction:
                    self._connection.commit()
                self._connection.execute("BEGIN IMMEDIATE")
            except Exception:
                self._lock.release()
                raise
        self._txn_depth += 1

    def commit(self) -> None:
        if self._txn_depth == 0:
            return
        try:
            self._txn_depth -= 1
            if self._txn_depth == 0:
                self._connection.commit()
        finally:
            self._lock.release()

    def rollback(self) -> None:
        """Rollback current transaction (only the outermost level rolls back)"""
        if self._txn_depth == 0:
            return
        try:
            self._txn_depth -= 1
            if self._txn_depth == 0:
                self._connection.rollback()
                # Tables created inside the transaction are gone too
                self._tables.clear()
        finally:
            self._lock.release()

    def close(self) -> None:
        """Close SQLite connection"""
        with self._lock:
            if self._connection:
                self._connection.close()
                self._connection = None


def create_storage(database_url: str) -> StorageInterface:
    """
    Build a storage backend from a URL.

    Supported forms: "memory://", "sqlite:///path/to/file.db",
    "sqlite:///:memory:".
    """
    if database_url.startswith("memory://"):
        return InMemoryStorage()
    if database_url.startswith("sqlite:///"):
        return SQLiteStorage(database_url[len("sqlite:///"):] or ":memory:")
    raise ValueError(f"Unsupported database URL: {database_url}")
