from __future__ import annotations

import logging
import sqlite3
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path

from sqlalchemy.exc import TimeoutError as QueuePoolTimeout
from sqlalchemy.pool import QueuePool

from .errors import PoolClosedError, PoolInitError, PoolTimeoutError, SchemaError

log = logging.getLogger(__name__)

POOL_MAX_SIZE = 25
POOL_MIN_IDLE = 5
POOL_TIMEOUT = 30.0


def _configure_conn(conn: sqlite3.Connection) -> None:
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA synchronous=NORMAL")


def _connect(db_path: Path, timeout: float) -> sqlite3.Connection:
    # isolation_level=None: callers open transactions explicitly with BEGIN
    conn = sqlite3.connect(str(db_path), timeout=timeout, check_same_thread=False, isolation_level=None)
    try:
        _configure_conn(conn)
    except sqlite3.Error:
        conn.close()
        raise
    return conn


@dataclass(frozen=True)
class PoolStats:
    active: int
    idle: int
    total: int
    waiting: int

    def __str__(self) -> str:
        return f"Active: {self.active}, Idle: {self.idle}, Total: {self.total}, Waiting: {self.waiting}"


class ConnectionPool:
    """Bounded pool of SQLite connections shared by the writer and readers.

    Backed by a SQLAlchemy `QueuePool`: `min_idle` connections are kept and
    opened up front, and up to `max_size - min_idle` overflow connections are
    opened on demand and closed again when returned. When all are leased,
    callers wait at most `timeout` seconds. Returned connections are rolled
    back before reuse.
    """

    def __init__(
        self,
        db_path: str | Path,
        max_size: int = POOL_MAX_SIZE,
        min_idle: int = POOL_MIN_IDLE,
        timeout: float = POOL_TIMEOUT,
    ):
        if max_size < 1:
            raise ValueError("max_size must be >= 1")
        self.db_path = Path(db_path)
        self.max_size = max_size
        # QueuePool treats pool_size=0 as unbounded
        self.min_idle = max(1, min(min_idle, max_size))
        self.timeout = timeout

        self._pool = QueuePool(
            lambda: _connect(self.db_path, self.timeout),
            pool_size=self.min_idle,
            max_overflow=self.max_size - self.min_idle,
            timeout=self.timeout,
            reset_on_return="rollback",
        )
        self._lock = threading.Lock()
        self._waiting = 0
        self._closed = False

        opened = []
        try:
            for _ in range(self.min_idle):
                opened.append(self._pool.connect())
        except sqlite3.Error as exc:
            for conn in opened:
                conn.close()
            self._pool.dispose()
            raise PoolInitError(f"cannot open database {self.db_path}: {exc}") from exc
        for conn in opened:
            conn.close()

        log.info("Connection pool ready for %s (max=%d, min_idle=%d)", self.db_path, self.max_size, self.min_idle)

    @property
    def closed(self) -> bool:
        return self._closed

    def get_connection(self):
        """Lease a pooled connection. It proxies `sqlite3.Connection`."""
        if self._closed:
            raise PoolClosedError("connection pool is closed")
        with self._lock:
            self._waiting += 1
        try:
            return self._pool.connect()
        except QueuePoolTimeout as exc:
            raise PoolTimeoutError(
                f"no connection available within {self.timeout:.1f}s (max={self.max_size})"
            ) from exc
        finally:
            with self._lock:
                self._waiting -= 1

    def release(self, conn) -> None:
        if self._closed:
            # returned after close: closed, not pooled
            conn.invalidate()
            self._pool.dispose()
            return
        conn.close()

    @contextmanager
    def connection(self):
        conn = self.get_connection()
        try:
            yield conn
        finally:
            self.release(conn)

    def stats(self) -> PoolStats:
        if self._closed:
            return PoolStats(active=0, idle=0, total=0, waiting=0)
        active = self._pool.checkedout()
        idle = self._pool.checkedin()
        with self._lock:
            waiting = self._waiting
        return PoolStats(active=active, idle=idle, total=active + idle, waiting=waiting)

    pool_stats = stats

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
        idle = self._pool.checkedin()
        self._pool.dispose()
        log.info("Connection pool closed (%d idle connections released)", idle)


# -------------------------
# Schema
# -------------------------

LOGS_DDL = """
CREATE TABLE IF NOT EXISTS logs (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    time INTEGER NOT NULL CHECK (time >= 0),
    playerName VARCHAR(16) NOT NULL,
    action TINYINT NOT NULL,
    detail VARCHAR(255),
    world VARCHAR(50) NOT NULL,
    x INT NOT NULL,
    y SMALLINT NOT NULL,
    z INT NOT NULL,
    amount SMALLINT DEFAULT 1
)
"""

CONTAINER_TRANSACTIONS_DDL = """
CREATE TABLE IF NOT EXISTS container_transactions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    time INTEGER NOT NULL CHECK (time >= 0),
    playerName VARCHAR(16) NOT NULL,
    action TINYINT NOT NULL CHECK (action IN (0, 1)),
    container_type VARCHAR(50) NOT NULL,
    material VARCHAR(100) NOT NULL,
    amount SMALLINT NOT NULL CHECK (amount >= 1),
    world VARCHAR(50) NOT NULL,
    x INT NOT NULL,
    y SMALLINT NOT NULL,
    z INT NOT NULL
)
"""


def ensure_database(db_path: str | Path) -> Path:
    """Create the database file (UTF-8) and its directory if they are missing."""
    path = Path(db_path).expanduser()
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        is_new = not path.exists()
        conn = sqlite3.connect(str(path))
        try:
            if is_new:
                # only effective before the first table is created
                conn.execute("PRAGMA encoding = 'UTF-8'")
                log.info("Created database %s", path)
            conn.execute("PRAGMA journal_mode=WAL")
        finally:
            conn.close()
    except (OSError, sqlite3.Error) as exc:
        raise SchemaError(f"cannot create database {path}: {exc}") from exc
    return path


def init_db(pool: ConnectionPool) -> None:
    """Create both tables and their indexes. Safe to run on every startup."""
    try:
        with pool.connection() as conn:
            conn.execute("BEGIN")
            conn.execute(LOGS_DDL)
            conn.execute(CONTAINER_TRANSACTIONS_DDL)
            conn.execute("CREATE INDEX IF NOT EXISTS idx_time ON logs(time)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_player ON logs(playerName, time)")
            conn.execute("COMMIT")
    except sqlite3.Error as exc:
        raise SchemaError(f"cannot create tables: {exc}") from exc


def table_counts(pool: ConnectionPool) -> dict[str, int]:
    with pool.connection() as conn:
        logs_n = conn.execute("SELECT COUNT(*) c FROM logs").fetchone()["c"]
        tx_n = conn.execute("SELECT COUNT(*) c FROM container_transactions").fetchone()["c"]
    return {"logs": int(logs_n), "container_transactions": int(tx_n)}
