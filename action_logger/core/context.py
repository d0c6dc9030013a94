"""Service wiring: one object owns the pool, queues, writer and readers."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from actionlog.db import ConnectionPool, ensure_database, init_db
from actionlog.errors import ActionLogError
from actionlog.ingest import EventRecorder
from actionlog.queue import IngestionQueues
from actionlog.repository import QueryEngine
from actionlog.writer import BatchWriter, FlushResult

from .config import Settings, get_settings
from .serialize import to_dict

log = logging.getLogger(__name__)


@dataclass
class ServiceContext:
    settings: Settings
    pool: ConnectionPool
    queues: IngestionQueues
    recorder: EventRecorder
    writer: BatchWriter
    engine: QueryEngine
    closed: bool = False

    def flush(self) -> FlushResult:
        return self.writer.flush()

    def stats(self) -> dict:
        return {**to_dict(self.queues.stats()), **to_dict(self.writer.stats())}

    def pool_stats(self) -> dict:
        return to_dict(self.pool.stats())

    def shutdown(self) -> None:
        """Stop the writer, flush what is still queued, then close the pool."""
        if self.closed:
            return
        self.closed = True
        try:
            self.writer.shutdown()
        finally:
            self.pool.close()
        log.info("Action logger stopped")


def start_service(settings: Settings | None = None, start_writer: bool = True) -> ServiceContext:
    """Build the context. Raises PoolInitError or SchemaError if the store is unusable."""
    settings = settings or get_settings()
    db_path = ensure_database(settings.db_path)
    pool = ConnectionPool(
        db_path,
        max_size=settings.pool_max,
        min_idle=settings.pool_min_idle,
        timeout=settings.pool_timeout,
    )
    try:
        init_db(pool)
    except ActionLogError:
        pool.close()
        raise

    queues = IngestionQueues()
    writer = BatchWriter(pool, queues, detail_max_length=settings.detail_max_length)
    ctx = ServiceContext(
        settings=settings,
        pool=pool,
        queues=queues,
        recorder=EventRecorder(queues),
        writer=writer,
        engine=QueryEngine(pool),
    )
    if start_writer:
        writer.start()
    log.info("Action logger started (db=%s)", db_path)
    return ctx
