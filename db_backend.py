import logging
import os
import re
import sqlite3
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

import psycopg
from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool

logger = logging.getLogger(__name__)

Row = Dict[str, Any]

_INSERT_RE = re.compile(r"^\s*(INSERT|REPLACE)\b", re.IGNORECASE)
_RETURNING_RE = re.compile(r"\bRETURNING\b", re.IGNORECASE)

# Embedded-dialect DDL -> networked-dialect DDL
_DDL_RULES = (
    (re.compile(r"\bINTEGER\s+PRIMARY\s+KEY\s+AUTOINCREMENT\b", re.IGNORECASE), "SERIAL PRIMARY KEY"),
    (re.compile(r"\bBOOLEAN\s+DEFAULT\s+1\b", re.IGNORECASE), "BOOLEAN DEFAULT true"),
    (re.compile(r"\bBOOLEAN\s+DEFAULT\s+0\b", re.IGNORECASE), "BOOLEAN DEFAULT false"),
    (re.compile(r"\bDATETIME\b", re.IGNORECASE), "TIMESTAMP"),
)


class ConnectionMode(Enum):
    EMBEDDED = "sqlite"
    NETWORKED = "postgresql"


class QueryError(Exception):
    """The only error kind raised by the data-access layer."""

    def __init__(self, message, sql=None):
        super().__init__(message)
        self.sql = sql


@dataclass(frozen=True)
class MutationResult:
    inserted_id: Optional[int] = None
    affected_count: int = 0


def _rewrite_placeholders(sql, render):
    """Replace each `?` outside quoted text and comments with render(n), n counting from 1."""
    out = []
    count = 0
    i = 0
    length = len(sql)
    while i < length:
        ch = sql[i]
        if ch in ("'", '"'):
            end = sql.find(ch, i + 1)
            end = length if end == -1 else end + 1
        elif sql.startswith("--", i):
            end = sql.find("\n", i)
            end = length if end == -1 else end + 1
        elif sql.startswith("/*", i):
            end = sql.find("*/", i + 2)
            end = length if end == -1 else end + 2
        elif ch == "?":
            count += 1
            out.append(render(count))
            i += 1
            continue
        else:
            end = i + 1
        out.append(sql[i:end])
        i = end
    return "".join(out), count


def count_placeholders(sql):
    return _rewrite_placeholders(sql, lambda n: "?")[1]


def translate_placeholders(sql):
    """`?` -> `$1..$N` in source order, leaving quoted literals alone."""
    return _rewrite_placeholders(sql, lambda n: f"${n}")[0]


def translate_ddl(sql):
    for pattern, replacement in _DDL_RULES:
        sql = pattern.sub(replacement, sql)
    return sql


def _is_insert(sql):
    return bool(_INSERT_RE.match(sql))


def _bind_params(sql, params):
    if params is None:
        params = ()
    elif isinstance(params, list):
        params = tuple(params)
    elif not isinstance(params, tuple):
        params = tuple(params)

    expected = count_placeholders(sql)
    if expected != len(params):
        raise QueryError(
            f"Query expects {expected} parameter(s) but {len(params)} were given", sql
        )
    return params


def _query_error(err, sql):
    logger.error(f"❌ Query failed: {err} | SQL: {' '.join(sql.split())[:200]}")
    return QueryError(str(err), sql)


def _row_to_dict(row):
    if row is None:
        return None
    if isinstance(row, dict):
        return row
    if hasattr(row, "keys"):
        return {key: row[key] for key in row.keys()}
    return row


class QueryExecutor(ABC):
    """One query interface over either backing store.

    Callers always write `?` placeholders and never branch on `mode`.
    """

    mode: ConnectionMode

    def __init__(self):
        self._closed = False
        self._close_lock = threading.Lock()

    @property
    def closed(self):
        return self._closed

    def _ensure_open(self):
        if self._closed:
            raise QueryError("Database connection is closed")

    @abstractmethod
    def execute(self, sql: str, params: Sequence = None, id_column: Optional[str] = None) -> MutationResult:
        """Run INSERT/UPDATE/DELETE and report affected rows.

        `inserted_id` is only reported for an INSERT when the caller names the
        table's identifier column, e.g. `id_column="id"`; otherwise it is None
        on both stores.
        """

    @abstractmethod
    def fetch_one(self, sql: str, params: Sequence = None) -> Optional[Row]:
        """Return the first row, or None when nothing matches."""

    @abstractmethod
    def fetch_all(self, sql: str, params: Sequence = None) -> List[Row]:
        """Return every row in the order the store produced them."""

    @abstractmethod
    def execute_ddl(self, sql: str) -> None:
        """Run one schema statement written in the embedded dialect."""

    @abstractmethod
    def transaction(self):
        """Context manager yielding a scope whose calls commit or roll back together."""

    @abstractmethod
    def _close(self):
        ...

    def ping(self):
        try:
            row = self.fetch_one("SELECT 1 AS ok")
            return bool(row) and row.get("ok") == 1
        except QueryError:
            return False

    def close(self):
        with self._close_lock:
            if self._closed:
                logger.warning(f"⚠️ {self.mode.value} connection already closed, ignoring")
                return
            self._closed = True
        try:
            self._close()
            logger.info(f"{self.mode.value} connection closed.")
        except Exception as err:
            logger.error(f"❌ Error closing {self.mode.value} connection: {err}")


class _SQLiteScope:
    """Statement helpers bound to one sqlite3 connection."""

    def __init__(self, conn, lock=None):
        self._conn = conn
        self._lock = lock

    @contextmanager
    def _locked(self):
        if self._lock is None:
            yield
            return
        with self._lock:
            yield

    def _run(self, sql, params):
        params = _bind_params(sql, params)
        try:
            return self._conn.execute(sql, params)
        except sqlite3.Error as err:
            raise _query_error(err, sql) from err

    def execute(self, sql, params=None, id_column=None):
        with self._locked():
            cursor = self._run(sql, params)
            try:
                inserted_id = cursor.lastrowid if id_column and _is_insert(sql) else None
                return MutationResult(inserted_id, max(cursor.rowcount, 0))
            finally:
                cursor.close()

    def fetch_one(self, sql, params=None):
        with self._locked():
            cursor = self._run(sql, params)
            try:
                return _row_to_dict(cursor.fetchone())
            except sqlite3.Error as err:
                raise _query_error(err, sql) from err
            finally:
                cursor.close()

    def fetch_all(self, sql, params=None):
        with self._locked():
            cursor = self._run(sql, params)
            try:
                return [_row_to_dict(row) for row in cursor.fetchall()]
            except sqlite3.Error as err:
                raise _query_error(err, sql) from err
            finally:
                cursor.close()


@contextmanager
def _atomic(conn):
    """BEGIN IMMEDIATE on `conn`; commit on clean exit, roll back otherwise."""
    try:
        conn.execute("BEGIN IMMEDIATE")
    except sqlite3.Error as err:
        raise _query_error(err, "BEGIN IMMEDIATE") from err
    try:
        yield _SQLiteScope(conn)
    except BaseException:
        conn.rollback()
        raise
    try:
        conn.commit()
    except sqlite3.Error as err:
        conn.rollback()
        raise _query_error(err, "COMMIT") from err


class SQLiteExecutor(QueryExecutor):
    """Embedded mode: one file-backed writer connection shared by the whole process.

    Reads go through a per-thread connection so they never queue behind a
    writer waiting on the file lock. An in-memory database only exists on the
    writer connection, so there reads share it too.
    """

    mode = ConnectionMode.EMBEDDED

    def __init__(self, path, timeout=5.0):
        super().__init__()
        self.path = path
        self.timeout = timeout
        self.in_memory = path == ":memory:"
        self._ensure_sqlite_db()
        # writes on the shared connection are issued one at a time so that
        # lastrowid/rowcount belong to the caller's own statement
        self._lock = threading.RLock()
        self._conn = self._connect()
        self._scope = _SQLiteScope(self._conn, self._lock)
        self._local = threading.local()
        self._readers = []
        self._readers_lock = threading.Lock()
        logger.info(f"✅ Connected to SQLite database: {self.path}")

    def _ensure_sqlite_db(self):
        if self.in_memory:
            return
        directory = os.path.dirname(os.path.abspath(self.path))
        os.makedirs(directory, exist_ok=True)
        if not os.path.exists(self.path):
            logger.info(f"ℹ️ Creating SQLite database: {self.path}")

    def _connect(self):
        try:
            conn = sqlite3.connect(
                self.path,
                timeout=self.timeout,
                isolation_level=None,
                check_same_thread=False,
            )
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA foreign_keys = ON")
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("PRAGMA synchronous=NORMAL")
            return conn
        except sqlite3.Error as err:
            logger.error(f"❌ Error opening SQLite database {self.path}: {err}")
            raise QueryError(f"Unable to open SQLite database: {err}") from err

    def _reader(self):
        if self.in_memory:
            return self._scope
        scope = getattr(self._local, "scope", None)
        if scope is None:
            conn = self._connect()
            with self._readers_lock:
                self._readers.append(conn)
            scope = self._local.scope = _SQLiteScope(conn)
        return scope

    def execute(self, sql, params=None, id_column=None):
        self._ensure_open()
        return self._scope.execute(sql, params, id_column)

    def fetch_one(self, sql, params=None):
        self._ensure_open()
        return self._reader().fetch_one(sql, params)

    def fetch_all(self, sql, params=None):
        self._ensure_open()
        return self._reader().fetch_all(sql, params)

    def execute_ddl(self, sql):
        self._ensure_open()
        self._scope.execute(sql, (), id_column=None)

    @contextmanager
    def transaction(self):
        """Run a block under BEGIN IMMEDIATE.

        File databases use a dedicated connection; inside the block use only
        the yielded scope, since writes through the shared connection wait on
        the same file lock. In-memory databases run the block on the shared
        connection while holding its lock.
        """
        self._ensure_open()
        if self.in_memory:
            with self._lock:
                with _atomic(self._conn) as scope:
                    yield scope
            return

        conn = self._connect()
        try:
            with _atomic(conn) as scope:
                yield scope
        finally:
            conn.close()

    def _close(self):
        with self._readers_lock:
            readers, self._readers = self._readers, []
        for conn in readers:
            conn.close()
        self._conn.close()


class _PostgresScope:
    """Statement helpers bound to one psycopg connection."""

    def __init__(self, conn):
        self._conn = conn

    def _run(self, cursor, sql, params):
        params = _bind_params(sql, params)
        try:
            cursor.execute(translate_placeholders(sql), params)
        except psycopg.Error as err:
            raise _query_error(err, sql) from err

    def execute(self, sql, params=None, id_column=None):
        wants_id = bool(id_column) and _is_insert(sql)
        if wants_id and not _RETURNING_RE.search(sql):
            sql = f"{sql.rstrip().rstrip(';')} RETURNING {id_column}"
        with self._conn.cursor() as cursor:
            self._run(cursor, sql, params)
            inserted_id = None
            try:
                if wants_id and cursor.description:
                    row = cursor.fetchone()
                    if row:
                        inserted_id = row.get(id_column, next(iter(row.values()), None))
            except psycopg.Error as err:
                raise _query_error(err, sql) from err
            return MutationResult(inserted_id, max(cursor.rowcount, 0))

    def fetch_one(self, sql, params=None):
        with self._conn.cursor() as cursor:
            self._run(cursor, sql, params)
            try:
                return cursor.fetchone()
            except psycopg.Error as err:
                raise _query_error(err, sql) from err

    def fetch_all(self, sql, params=None):
        with self._conn.cursor() as cursor:
            self._run(cursor, sql, params)
            try:
                return cursor.fetchall()
            except psycopg.Error as err:
                raise _query_error(err, sql) from err


class PostgresExecutor(QueryExecutor):
    """Networked mode: bounded psycopg pool, `$n` placeholders bound natively."""

    mode = ConnectionMode.NETWORKED

    def __init__(self, database_url, pool_size=10, pool_timeout=30.0, sslmode=None, pool=None):
        super().__init__()
        self.database_url = database_url
        self.pool_size = max(1, int(pool_size))
        self.pool_timeout = pool_timeout

        if pool is not None:
            self._pool = pool
        else:
            connect_kwargs = {"cursor_factory": psycopg.RawCursor, "row_factory": dict_row}
            if sslmode and "sslmode" not in database_url:
                connect_kwargs["sslmode"] = sslmode
            try:
                self._pool = ConnectionPool(
                    database_url,
                    min_size=1,
                    max_size=self.pool_size,
                    timeout=pool_timeout,
                    kwargs=connect_kwargs,
                    name="crm",
                    open=True,
                )
            except psycopg.Error as err:
                logger.error(f"❌ Error creating PostgreSQL pool: {err}")
                raise QueryError(f"Unable to create PostgreSQL pool: {err}") from err
            logger.info(f"🐘 PostgreSQL pool created (max {self.pool_size} connections)")

    @contextmanager
    def _connection(self):
        self._ensure_open()
        try:
            with self._pool.connection() as conn:
                yield _PostgresScope(conn)
        except QueryError:
            raise
        except psycopg.Error as err:
            logger.error(f"❌ PostgreSQL connection error: {err}")
            raise QueryError(str(err)) from err

    def execute(self, sql, params=None, id_column=None):
        with self._connection() as scope:
            return scope.execute(sql, params, id_column)

    def fetch_one(self, sql, params=None):
        with self._connection() as scope:
            return scope.fetch_one(sql, params)

    def fetch_all(self, sql, params=None):
        with self._connection() as scope:
            return scope.fetch_all(sql, params)

    def execute_ddl(self, sql):
        with self._connection() as scope:
            scope.execute(translate_ddl(sql), (), id_column=None)

    @contextmanager
    def transaction(self):
        # the pool commits on clean exit and rolls back when the block raises
        with self._connection() as scope:
            yield scope

    def _close(self):
        self._pool.close()


def create_executor(config) -> QueryExecutor:
    """Pick the backing store once: PostgreSQL when DATABASE_URL is set, SQLite otherwise."""
    database_url = getattr(config, "DATABASE_URL", None)
    if database_url:
        logger.info("🐘 Connecting to PostgreSQL database...")
        return PostgresExecutor(
            database_url,
            pool_size=getattr(config, "DB_POOL_SIZE", 10),
            pool_timeout=getattr(config, "DB_POOL_TIMEOUT", 30.0),
            sslmode=getattr(config, "DB_SSLMODE", None),
        )

    logger.info("📁 Connecting to SQLite database...")
    return SQLiteExecutor(
        getattr(config, "DB_PATH", os.path.join("data", "crm.db")),
        timeout=getattr(config, "DB_TIMEOUT", 5.0),
    )
