"""
Storage Backend Module

Provides the abstract storage interface and implementations for in-memory
(testing), SQLite (single node) and PostgreSQL (production) backends.

Every backend supports atomic units of work through ``atomic()``: all writes
inside the unit are committed together or not at all, and the unit holds the
backend's lock for its whole duration so that a read-modify-write sequence on
an account never interleaves with another one. Monetary values are stored as
Decimal strings.
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Any, Union
from decimal import Decimal
from datetime import datetime
import sqlite3
import json
import threading
from dataclasses import dataclass, asdict, fields
from pathlib import Path
from contextlib import contextmanager


@dataclass
class StorageRecord:
    """Base class for all stored records"""
    id: str
    created_at: datetime
    updated_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for storage"""
        result = asdict(self)
        result['created_at'] = self.created_at.isoformat()
        result['updated_at'] = self.updated_at.isoformat()
        for key, value in result.items():
            if isinstance(value, Decimal):
                result[key] = str(value)
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'StorageRecord':
        """Create instance from dictionary, ignoring unknown columns"""
        known = {f.name for f in fields(cls)}
        data = {k: v for k, v in data.items() if k in known}
        for key in ('created_at', 'updated_at'):
            if isinstance(data.get(key), str):
                data[key] = datetime.fromisoformat(data[key])
        return cls(**data)


class IntegrityViolation(Exception):
    """Raised when a write breaks a uniqueness or reference constraint"""
    pass


def _to_sql_value(value: Any) -> Any:
    """Convert a Python value to something every DB-API driver accepts"""
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    return value


class StorageInterface(ABC):
    """Abstract interface for storage backends"""

    dialect = "memory"

    @abstractmethod
    def save(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        """Insert or update a record"""
        pass

    @abstractmethod
    def load(self, table: str, record_id: str, for_update: bool = False) -> Optional[Dict[str, Any]]:
        """
        Load a record.

        With for_update=True inside an atomic unit the backend locks the row
        until the unit ends.
        """
        pass

    @abstractmethod
    def load_all(self, table: str) -> List[Dict[str, Any]]:
        """Load all records of a table in insertion order"""
        pass

    @abstractmethod
    def find(self, table: str, filters: Dict[str, Any], match_any: bool = False) -> List[Dict[str, Any]]:
        """
        Find records matching filters, in insertion order.

        By default every filter must match; with match_any=True a record
        matching at least one filter is returned.
        """
        pass

    @abstractmethod
    def exists(self, table: str, record_id: str) -> bool:
        """Check if a record exists"""
        pass

    @abstractmethod
    def count(self, table: str) -> int:
        """Count records in table"""
        pass

    @abstractmethod
    def close(self) -> None:
        """Close storage connection"""
        pass

    @abstractmethod
    def begin_transaction(self) -> None:
        """Start an atomic unit, acquiring the backend lock"""
        pass

    @abstractmethod
    def commit(self) -> None:
        """Commit the current unit and release the backend lock"""
        pass

    @abstractmethod
    def rollback(self) -> None:
        """Discard the current unit and release the backend lock"""
        pass

    def execute_script(self, sql: str) -> None:
        """Execute DDL statements (no-op for backends without a schema)"""
        pass

    @contextmanager
    def atomic(self):
        """
        Context manager for atomic operations.

        Nested units join the outermost one; only the outermost commit
        makes the writes durable.
        """
        self.begin_transaction()
        try:
            yield
            self.commit()
        except BaseException:
            self.rollback()
            raise


class InMemoryStorage(StorageInterface):
    """In-memory storage implementation for testing"""

    dialect = "memory"

    def __init__(self):
        self._data: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._lock = threading.RLock()
        self._depth = 0
        self._snapshot: Optional[Dict[str, Dict[str, Dict[str, Any]]]] = None

    @staticmethod
    def _copy(data: Any) -> Any:
        # Deep copy to prevent external mutation
        return json.loads(json.dumps(data, default=str))

    def _table(self, table: str) -> Dict[str, Dict[str, Any]]:
        if table not in self._data:
            self._data[table] = {}
        return self._data[table]

    def save(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        with self._lock:
            self._table(table)[record_id] = self._copy(data)

    def load(self, table: str, record_id: str, for_update: bool = False) -> Optional[Dict[str, Any]]:
        # The unit lock already serializes writers, so for_update needs nothing extra
        with self._lock:
            record = self._table(table).get(record_id)
            if record is not None:
                return self._copy(record)
            return None

    def load_all(self, table: str) -> List[Dict[str, Any]]:
        with self._lock:
            return [self._copy(record) for record in self._table(table).values()]

    def find(self, table: str, filters: Dict[str, Any], match_any: bool = False) -> List[Dict[str, Any]]:
        with self._lock:
            results = []
            for record in self._table(table).values():
                matches = [record.get(key) == value for key, value in filters.items()]
                if (any(matches) if match_any else all(matches)):
                    results.append(self._copy(record))
            return results

    def exists(self, table: str, record_id: str) -> bool:
        with self._lock:
            return record_id in self._table(table)

    def count(self, table: str) -> int:
        with self._lock:
            return len(self._table(table))

    def close(self) -> None:
        """Close storage (no-op for in-memory)"""
        pass

    def begin_transaction(self) -> None:
        self._lock.acquire()
        if self._depth == 0:
            self._snapshot = self._copy(self._data)
        self._depth += 1

    def commit(self) -> None:
        self._depth -= 1
        if self._depth == 0:
            self._snapshot = None
        self._lock.release()

    def rollback(self) -> None:
        self._depth -= 1
        if self._depth == 0:
            self._data = self._snapshot
            self._snapshot = None
        self._lock.release()

    def get_all_data(self) -> Dict[str, Dict[str, Dict[str, Any]]]:
        """Get all data for debugging/inspection"""
        with self._lock:
            return self._copy(self._data)


class SQLiteStorage(StorageInterface):
    """
    SQLite storage implementation for persistence.

    Tables are created by the migration manager. Atomic units use
    BEGIN IMMEDIATE so the write lock is taken before the first read.
    """

    dialect = "sqlite"

    def __init__(self, db_path: Union[str, Path] = ":memory:"):
        self.db_path = str(db_path)
        # Autocommit mode; atomic units issue BEGIN/COMMIT explicitly
        self._connection = sqlite3.connect(self.db_path, check_same_thread=False, isolation_level=None)
        self._connection.row_factory = sqlite3.Row
        self._lock = threading.RLock()
        self._depth = 0

        if self.db_path != ":memory:":
            with self._lock:
                self._connection.execute("PRAGMA journal_mode = WAL")
                self._connection.execute("PRAGMA synchronous = NORMAL")

    def _execute(self, sql: str, params: tuple = ()) -> sqlite3.Cursor:
        with self._lock:
            return self._connection.execute(sql, params)

    @staticmethod
    def _where(filters: Dict[str, Any], match_any: bool) -> tuple:
        conditions = []
        params = []
        for key, value in filters.items():
            if value is None:
                conditions.append(f"{key} IS NULL")
            else:
                conditions.append(f"{key} = ?")
                params.append(_to_sql_value(value))
        joiner = " OR " if match_any else " AND "
        return joiner.join(conditions), tuple(params)

    def save(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        row = {"id": record_id, **data}
        columns = list(row.keys())
        placeholders = ", ".join("?" for _ in columns)
        updates = ", ".join(f"{c} = excluded.{c}" for c in columns if c != "id")
        try:
            self._execute(f"""
                INSERT INTO {table} ({", ".join(columns)})
                VALUES ({placeholders})
                ON CONFLICT(id) DO UPDATE SET {updates}
            """, tuple(_to_sql_value(row[c]) for c in columns))
        except sqlite3.IntegrityError as e:
            raise IntegrityViolation(f"{table}: {e}") from e

    def load(self, table: str, record_id: str, for_update: bool = False) -> Optional[Dict[str, Any]]:
        # BEGIN IMMEDIATE already holds the database write lock inside a unit
        row = self._execute(f"SELECT * FROM {table} WHERE id = ?", (record_id,)).fetchone()
        if row:
            return dict(row)
        return None

    def load_all(self, table: str) -> List[Dict[str, Any]]:
        cursor = self._execute(f"SELECT * FROM {table} ORDER BY rowid")
        return [dict(row) for row in cursor.fetchall()]

    def find(self, table: str, filters: Dict[str, Any], match_any: bool = False) -> List[Dict[str, Any]]:
        if not filters:
            return self.load_all(table)
        where, params = self._where(filters, match_any)
        cursor = self._execute(f"SELECT * FROM {table} WHERE {where} ORDER BY rowid", params)
        return [dict(row) for row in cursor.fetchall()]

    def exists(self, table: str, record_id: str) -> bool:
        cursor = self._execute(f"SELECT 1 FROM {table} WHERE id = ? LIMIT 1", (record_id,))
        return cursor.fetchone() is not None

    def count(self, table: str) -> int:
        return self._execute(f"SELECT COUNT(*) AS count FROM {table}").fetchone()['count']

    def execute_script(self, sql: str) -> None:
        # executescript() would commit an open unit, so run statements one by one
        with self._lock:
            for statement in sql.split(";"):
                if statement.strip():
                    self._connection.execute(statement)

    def begin_transaction(self) -> None:
        self._lock.acquire()
        if self._depth == 0:
            try:
                self._connection.execute("BEGIN IMMEDIATE")
            except sqlite3.Error:
                self._lock.release()
                raise
        self._depth += 1

    def commit(self) -> None:
        if self._depth == 1:
            self._connection.execute("COMMIT")
        self._depth -= 1
        self._lock.release()

    def rollback(self) -> None:
        try:
            if self._depth == 1 and self._connection.in_transaction:
                self._connection.execute("ROLLBACK")
        finally:
            self._depth -= 1
            self._lock.release()

    def close(self) -> None:
        with self._lock:
            if self._connection:
                self._connection.close()
                self._connection = None


class PostgreSQLStorage(StorageInterface):
    """PostgreSQL storage backend with ACID transaction support and row locks"""

    dialect = "postgresql"

    def __init__(self, connection_string: str):
        try:
            import psycopg2
            import psycopg2.extras
            self.psycopg2 = psycopg2
            self.extras = psycopg2.extras
        except ImportError:
            raise ImportError("psycopg2 is required for PostgreSQL storage. Install with: pip install bank-ledger[postgres]")

        self.connection_string = connection_string
        self._lock = threading.RLock()
        self._depth = 0
        self._connection = self.psycopg2.connect(
            self.connection_string,
            cursor_factory=self.extras.RealDictCursor
        )
        self._connection.autocommit = False  # We handle transactions manually

    @staticmethod
    def _row_to_dict(row) -> Dict[str, Any]:
        data = dict(row)
        # Insertion sequence column, not part of any record
        data.pop("seq", None)
        return data

    def _execute(self, sql: str, params: tuple = (), fetch: Optional[str] = None):
        with self._lock:
            cursor = self._connection.cursor()
            try:
                cursor.execute(sql, params)
                if fetch == "one":
                    result = cursor.fetchone()
                elif fetch == "all":
                    result = cursor.fetchall()
                else:
                    result = cursor.rowcount
                # Outside a unit every statement is its own transaction
                if self._depth == 0:
                    self._connection.commit()
                return result
            except Exception:
                if self._depth == 0:
                    self._connection.rollback()
                raise
            finally:
                cursor.close()

    def save(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        row = {"id": record_id, **data}
        columns = list(row.keys())
        placeholders = ", ".join("%s" for _ in columns)
        updates = ", ".join(f"{c} = EXCLUDED.{c}" for c in columns if c != "id")
        try:
            self._execute(f"""
                INSERT INTO {table} ({", ".join(columns)})
                VALUES ({placeholders})
                ON CONFLICT (id) DO UPDATE SET {updates}
            """, tuple(_to_sql_value(row[c]) for c in columns))
        except self.psycopg2.IntegrityError as e:
            raise IntegrityViolation(f"{table}: {e}") from e

    def load(self, table: str, record_id: str, for_update: bool = False) -> Optional[Dict[str, Any]]:
        lock_clause = " FOR UPDATE" if for_update else ""
        row = self._execute(f"SELECT * FROM {table} WHERE id = %s{lock_clause}", (record_id,), fetch="one")
        if row:
            return self._row_to_dict(row)
        return None

    def load_all(self, table: str) -> List[Dict[str, Any]]:
        rows = self._execute(f"SELECT * FROM {table} ORDER BY seq", fetch="all")
        return [self._row_to_dict(row) for row in rows]

    def find(self, table: str, filters: Dict[str, Any], match_any: bool = False) -> List[Dict[str, Any]]:
        if not filters:
            return self.load_all(table)
        conditions = []
        params = []
        for key, value in filters.items():
            if value is None:
                conditions.append(f"{key} IS NULL")
            else:
                conditions.append(f"{key} = %s")
                params.append(_to_sql_value(value))
        where = (" OR " if match_any else " AND ").join(conditions)
        rows = self._execute(f"SELECT * FROM {table} WHERE {where} ORDER BY seq", tuple(params), fetch="all")
        return [self._row_to_dict(row) for row in rows]

    def exists(self, table: str, record_id: str) -> bool:
        row = self._execute(f"SELECT 1 FROM {table} WHERE id = %s LIMIT 1", (record_id,), fetch="one")
        return row is not None

    def count(self, table: str) -> int:
        return self._execute(f"SELECT COUNT(*) AS count FROM {table}", fetch="one")['count']

    def execute_script(self, sql: str) -> None:
        self._execute(sql)

    def begin_transaction(self) -> None:
        # psycopg2 opens the transaction implicitly on the first statement
        self._lock.acquire()
        self._depth += 1

    def commit(self) -> None:
        if self._depth == 1:
            self._connection.commit()
        self._depth -= 1
        self._lock.release()

    def rollback(self) -> None:
        try:
            if self._depth == 1:
                self._connection.rollback()
        finally:
            self._depth -= 1
            self._lock.release()

    def close(self) -> None:
        with self._lock:
            if self._connection:
                self._connection.close()
                self._connection = None


def create_storage(database_url: str) -> StorageInterface:
    """
    Create a storage backend from a database URL.

    Supported forms: ``memory://``, ``sqlite:///path/to.db`` (``sqlite://``
    alone is an in-memory SQLite database) and ``postgresql://...``.
    """
    if database_url in ("memory://", "memory"):
        return InMemoryStorage()
    if database_url.startswith("sqlite://"):
        path = database_url[len("sqlite:///"):] if database_url.startswith("sqlite:///") else ""
        return SQLiteStorage(path or ":memory:")
    if database_url.startswith(("postgresql://", "postgres://")):
        return PostgreSQLStorage(database_url)
    raise ValueError(f"Unsupported database URL: {database_url}")
