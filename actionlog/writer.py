"""Periodic write-behind worker.

One background thread wakes every `interval` seconds and, for each queue,
drains at most `batch_size` entries and inserts them in a single
transaction. A failed batch is rolled back, logged and dropped; it is never
retried or put back on the queue.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Iterable

from .db import ConnectionPool
from .models import ContainerTransaction, LogEvent
from .queue import IngestionQueues
from .util import action_to_code, clamp, to_epoch_seconds, truncate

log = logging.getLogger(__name__)

FLUSH_INTERVAL = 1.0
BATCH_SIZE = 500
DETAIL_MAX_LENGTH = 255
DETAIL_MAX_LENGTH_MIN = 32
DETAIL_MAX_LENGTH_MAX = 1024

INSERT_LOG_SQL = (
    "INSERT INTO logs (time, playerName, action, detail, world, x, y, z, amount) "
    "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)"
)

INSERT_CONTAINER_SQL = (
    "INSERT INTO container_transactions "
    "(time, playerName, action, container_type, material, amount, world, x, y, z) "
    "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)"
)


def _log_row(event: LogEvent, detail_max: int) -> tuple:
    return (
        to_epoch_seconds(event.timestamp),
        event.player_name,
        action_to_code(event.action),
        truncate(event.detail, detail_max),
        event.world,
        int(event.x),
        int(event.y),
        int(event.z),
        1,
    )


def _container_row(tx: ContainerTransaction) -> tuple:
    return (
        tx.time,
        tx.player_name,
        tx.action,
        tx.container_type,
        tx.material,
        tx.amount,
        tx.world,
        int(tx.x),
        int(tx.y),
        int(tx.z),
    )


@dataclass(frozen=True)
class FlushResult:
    logs: int
    containers: int

    @property
    def total(self) -> int:
        return self.logs + self.containers


@dataclass(frozen=True)
class WriterStats:
    batches_flushed: int
    rows_written: int
    failed_batches: int
    rows_dropped: int


class BatchWriter:
    def __init__(
        self,
        pool: ConnectionPool,
        queues: IngestionQueues,
        interval: float = FLUSH_INTERVAL,
        batch_size: int = BATCH_SIZE,
        detail_max_length: int = DETAIL_MAX_LENGTH,
    ):
        self.pool = pool
        self.queues = queues
        self.interval = interval
        self.batch_size = batch_size
        self.detail_max_length = clamp(detail_max_length, DETAIL_MAX_LENGTH_MIN, DETAIL_MAX_LENGTH_MAX)

        self._thread: threading.Thread | None = None
        self._stop_event = threading.Event()
        # scheduled ticks and manual flushes never drain concurrently
        self._flush_lock = threading.Lock()

        self._batches_flushed = 0
        self._rows_written = 0
        self._failed_batches = 0
        self._rows_dropped = 0

    # -------------------------
    # Lifecycle
    # -------------------------

    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name="ActionLogger-Writer", daemon=True)
        self._thread.start()
        log.info("Batch writer started (interval=%.2fs, batch=%d)", self.interval, self.batch_size)

    @property
    def running(self) -> bool:
        return bool(self._thread and self._thread.is_alive())

    def _run(self) -> None:
        while not self._stop_event.wait(self.interval):
            try:
                self.flush()
            except Exception:  # pragma: no cover - keep the ticker alive
                log.exception("Unexpected error in writer tick")

    def stop(self, timeout: float | None = 5.0) -> None:
        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout=timeout)
            self._thread = None

    def shutdown(self, timeout: float | None = 5.0) -> FlushResult:
        """Stop the schedule, then run one last flush. Best effort only."""
        self.stop(timeout=timeout)
        result = self.flush()
        log.info("Batch writer stopped; final flush wrote %d logs, %d container rows", result.logs, result.containers)
        return result

    # -------------------------
    # Flush cycle
    # -------------------------

    def flush(self) -> FlushResult:
        with self._flush_lock:
            logs = self._flush_logs()
            containers = self._flush_containers()
        return FlushResult(logs=logs, containers=containers)

    def _flush_logs(self) -> int:
        batch = self.queues.logs.drain(self.batch_size)
        if not batch:
            return 0
        rows = (_log_row(e, self.detail_max_length) for e in batch)
        return self._persist("logs", INSERT_LOG_SQL, rows, len(batch))

    def _flush_containers(self) -> int:
        batch = self.queues.containers.drain(self.batch_size)
        if not batch:
            return 0
        rows = (_container_row(t) for t in batch)
        return self._persist("container_transactions", INSERT_CONTAINER_SQL, rows, len(batch))

    def _persist(self, table: str, sql: str, rows: Iterable[tuple], count: int) -> int:
        try:
            with self.pool.connection() as conn:
                conn.execute("BEGIN")
                try:
                    conn.executemany(sql, rows)
                    conn.execute("COMMIT")
                except Exception:
                    conn.execute("ROLLBACK")
                    raise
        except Exception:
            self._failed_batches += 1
            self._rows_dropped += count
            log.exception("Dropped batch of %d rows for %s", count, table)
            return 0

        self._batches_flushed += 1
        self._rows_written += count
        log.debug("Flushed %d rows into %s", count, table)
        return count

    def stats(self) -> WriterStats:
        return WriterStats(
            batches_flushed=self._batches_flushed,
            rows_written=self._rows_written,
            failed_batches=self._failed_batches,
            rows_dropped=self._rows_dropped,
        )
