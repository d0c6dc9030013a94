from __future__ import annotations

import sqlite3
import threading

import pytest

from actionlog.db import ConnectionPool, ensure_database, init_db, table_counts
from actionlog.errors import PoolClosedError, PoolInitError, PoolTimeoutError, SchemaError


def test_pool_opens_min_idle(db_path):
    ensure_database(db_path)
    pool = ConnectionPool(db_path, max_size=4, min_idle=2, timeout=1.0)
    try:
        stats = pool.stats()
        assert (stats.active, stats.idle, stats.total, stats.waiting) == (0, 2, 2, 0)
        assert str(stats) == "Active: 0, Idle: 2, Total: 2, Waiting: 0"
    finally:
        pool.close()


def test_lease_and_release_updates_counters(pool):
    with pool.connection() as conn:
        conn.execute("SELECT 1")
        assert pool.stats().active == 1
    stats = pool.pool_stats()
    assert stats.active == 0
    assert stats.idle >= 1


def test_pool_grows_to_max_then_times_out(db_path):
    ensure_database(db_path)
    pool = ConnectionPool(db_path, max_size=2, min_idle=1, timeout=0.2)
    try:
        a = pool.get_connection()
        b = pool.get_connection()
        assert pool.stats().total == 2
        with pytest.raises(PoolTimeoutError):
            pool.get_connection()
        pool.release(a)
        pool.release(b)
        # the overflow connection is closed on return
        stats = pool.stats()
        assert (stats.active, stats.idle) == (0, 1)
    finally:
        pool.close()


def test_waiter_gets_released_connection(db_path):
    ensure_database(db_path)
    pool = ConnectionPool(db_path, max_size=1, min_idle=1, timeout=5.0)
    got = []
    try:
        conn = pool.get_connection()
        raw = conn.dbapi_connection

        def waiter():
            with pool.connection() as c:
                got.append(c.dbapi_connection)

        t = threading.Thread(target=waiter)
        t.start()
        pool.release(conn)
        t.join(timeout=5)
        assert got == [raw]
    finally:
        pool.close()


def test_release_rolls_back_open_transaction(pool):
    conn = pool.get_connection()
    conn.execute("BEGIN")
    conn.execute(
        "INSERT INTO logs (time, playerName, action, detail, world, x, y, z) VALUES (1, 'A', 6, '', 'w', 0, 0, 0)"
    )
    pool.release(conn)
    assert table_counts(pool)["logs"] == 0


def test_close_is_idempotent(db_path):
    ensure_database(db_path)
    pool = ConnectionPool(db_path, max_size=2, min_idle=1)
    leased = pool.get_connection()
    raw = leased.dbapi_connection
    pool.close()
    pool.close()
    assert pool.closed
    with pytest.raises(PoolClosedError):
        pool.get_connection()
    # returned after close: closed, not pooled
    pool.release(leased)
    assert pool.stats().idle == 0
    with pytest.raises(sqlite3.ProgrammingError):
        raw.execute("SELECT 1")


def test_pool_init_error_for_unreachable_store(tmp_path):
    missing = tmp_path / "no" / "such" / "dir" / "x.db"
    with pytest.raises(PoolInitError):
        ConnectionPool(missing, max_size=2, min_idle=1)


def test_ensure_database_fails_on_unwritable_parent(tmp_path):
    blocker = tmp_path / "file"
    blocker.write_text("x")
    with pytest.raises(SchemaError):
        ensure_database(blocker / "sub" / "x.db")


def test_schema_is_idempotent(pool):
    init_db(pool)
    init_db(pool)
    with pool.connection() as conn:
        tables = {r["name"] for r in conn.execute("SELECT name FROM sqlite_master WHERE type='table'")}
        indexes = {r["name"] for r in conn.execute("SELECT name FROM sqlite_master WHERE type='index'")}
        encoding = conn.execute("PRAGMA encoding").fetchone()[0]
    assert {"logs", "container_transactions"} <= tables
    assert {"idx_time", "idx_player"} <= indexes
    assert encoding == "UTF-8"
    assert table_counts(pool) == {"logs": 0, "container_transactions": 0}


def test_schema_enforces_container_domains(pool):
    with pool.connection() as conn:
        with pytest.raises(sqlite3.IntegrityError):
            conn.execute(
                "INSERT INTO container_transactions "
                "(time, playerName, action, container_type, material, amount, world, x, y, z) "
                "VALUES (1, 'A', 2, 'CHEST', 'DIRT', 1, 'w', 0, 0, 0)"
            )


def test_default_pool_limits(db_path):
    ensure_database(db_path)
    pool = ConnectionPool(db_path)
    try:
        assert pool.stats().idle == 5
        leased = [pool.get_connection() for _ in range(25)]
        stats = pool.stats()
        assert (stats.active, stats.idle, stats.total) == (25, 0, 25)
        for conn in leased:
            pool.release(conn)
        assert pool.stats().idle == 5
    finally:
        pool.close()
