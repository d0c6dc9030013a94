from __future__ import annotations

import threading
import time
from datetime import datetime

from actionlog import writer as writer_mod
from actionlog.db import table_counts
from actionlog.models import ContainerTransaction, LogEvent
from actionlog.writer import BATCH_SIZE, BatchWriter


def _rows(pool, sql):
    with pool.connection() as conn:
        return conn.execute(sql).fetchall()


def test_flush_persists_exact_rows(pool, queues, writer):
    ts = datetime(2024, 5, 1, 12, 0, 0)
    queues.add_log(LogEvent("Alice", "Login", "", "world", 10, 64, -5, ts))
    queues.add_log(LogEvent("Bob", "Chat", "hello", timestamp=ts))

    result = writer.flush()
    assert (result.logs, result.containers, result.total) == (2, 0, 2)

    rows = _rows(pool, "SELECT time, playerName, action, detail, world, x, y, z, amount FROM logs ORDER BY id")
    assert [tuple(r) for r in rows] == [
        (int(ts.timestamp()), "Alice", 6, "", "world", 10, 64, -5, 1),
        (int(ts.timestamp()), "Bob", 4, "hello", "unknown", 0, 0, 0, 1),
    ]
    assert queues.logs.size() == 0


def test_flush_persists_container_rows(pool, queues, writer):
    queues.add_container(ContainerTransaction("Alice", 1, "CHEST", "DIAMOND", 3, "world", 1, 2, 3, time=1700000000))
    result = writer.flush()
    assert result.containers == 1
    rows = _rows(pool, "SELECT * FROM container_transactions")
    assert rows[0]["material"] == "DIAMOND"
    assert rows[0]["amount"] == 3
    assert rows[0]["action"] == 1
    assert rows[0]["time"] == 1700000000


def test_flush_caps_batch_size(pool, queues, writer):
    for i in range(BATCH_SIZE + 20):
        queues.add_log(LogEvent("Alice", "Block Placed", f"#{i}"))

    assert writer.flush().logs == BATCH_SIZE
    assert queues.logs.size() == 20
    assert writer.flush().logs == 20
    assert table_counts(pool)["logs"] == BATCH_SIZE + 20

    details = [r["detail"] for r in _rows(pool, "SELECT detail FROM logs ORDER BY id")]
    assert details == [f"#{i}" for i in range(BATCH_SIZE + 20)]


def test_failed_batch_is_dropped_whole(pool, queues, writer, monkeypatch):
    for name in ("A", "B", "C"):
        queues.add_log(LogEvent(name, "Login"))

    real_row = writer_mod._log_row

    def flaky(event, detail_max):
        if event.player_name == "C":
            raise RuntimeError("boom")
        return real_row(event, detail_max)

    monkeypatch.setattr(writer_mod, "_log_row", flaky)
    result = writer.flush()

    assert result.logs == 0
    assert queues.logs.size() == 0
    assert table_counts(pool)["logs"] == 0
    stats = writer.stats()
    assert stats.failed_batches == 1
    assert stats.rows_dropped == 3

    # next cycle is unaffected
    monkeypatch.setattr(writer_mod, "_log_row", real_row)
    queues.add_log(LogEvent("D", "Login"))
    assert writer.flush().logs == 1
    assert writer.stats().rows_written == 1


def test_detail_is_truncated(pool, queues):
    w = BatchWriter(pool, queues, detail_max_length=40)
    queues.add_log(LogEvent("Alice", "Chat", "x" * 300))
    w.flush()
    assert _rows(pool, "SELECT detail FROM logs")[0]["detail"] == "x" * 40


def test_detail_limit_is_clamped(pool, queues):
    assert BatchWriter(pool, queues, detail_max_length=5).detail_max_length == 32
    assert BatchWriter(pool, queues, detail_max_length=5000).detail_max_length == 1024
    assert BatchWriter(pool, queues).detail_max_length == 255


def test_scheduled_tick_flushes(pool, queues, writer):
    writer.start()
    try:
        assert writer.running
        queues.add_log(LogEvent("Alice", "Login"))
        deadline = time.monotonic() + 5
        while time.monotonic() < deadline and table_counts(pool)["logs"] == 0:
            time.sleep(0.02)
    finally:
        writer.stop()
    assert not writer.running
    assert table_counts(pool)["logs"] == 1


def test_shutdown_runs_final_flush(pool, queues):
    w = BatchWriter(pool, queues, interval=60)
    w.start()
    queues.add_log(LogEvent("Alice", "Logout"))
    queues.add_container(ContainerTransaction("Alice", 0, "BARREL", "STONE"))
    result = w.shutdown()
    assert (result.logs, result.containers) == (1, 1)
    assert not w.running
    assert table_counts(pool) == {"logs": 1, "container_transactions": 1}


def test_empty_flush_is_noop(writer):
    result = writer.flush()
    assert result.total == 0
    assert writer.stats().batches_flushed == 0


def test_flush_with_closed_pool_drops_batch(pool, queues, writer):
    queues.add_log(LogEvent("Alice", "Login"))
    pool.close()
    assert writer.flush().logs == 0
    assert writer.stats().rows_dropped == 1


def test_concurrent_flushes_write_each_row_once(pool, queues, writer):
    for i in range(BATCH_SIZE + 50):
        queues.add_log(LogEvent("Alice", "Chat", str(i)))
    queues.add_container(ContainerTransaction("Alice", 0, "CHEST", "DIAMOND"))

    threads = [threading.Thread(target=writer.flush) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert table_counts(pool) == {"logs": BATCH_SIZE + 50, "container_transactions": 1}
    assert writer.stats().rows_dropped == 0


def test_flush_waits_for_running_flush(queues, writer):
    queues.add_log(LogEvent("Alice", "Login"))
    done = threading.Event()
    with writer._flush_lock:
        t = threading.Thread(target=lambda: (writer.flush(), done.set()))
        t.start()
        assert not done.wait(0.2)
    t.join(5)
    assert done.is_set()
    assert writer.stats().rows_written == 1
