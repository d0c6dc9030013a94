from __future__ import annotations

import os
import time
from pathlib import Path
import sys

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from actionlog.db import ConnectionPool, ensure_database, init_db
from actionlog.queue import IngestionQueues
from actionlog.repository import QueryEngine
from actionlog.writer import BatchWriter
from action_logger.core.config import Settings
from action_logger.core.context import start_service


@pytest.fixture(autouse=True)
def force_utc_tz(monkeypatch):
    monkeypatch.setenv("TZ", "UTC")
    try:
        time.tzset()
    except AttributeError:
        pass


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for key in list(os.environ):
        if key.startswith("ACTIONLOG_"):
            monkeypatch.delenv(key, raising=False)


@pytest.fixture
def db_path(tmp_path, monkeypatch):
    path = tmp_path / "actionlog.db"
    monkeypatch.setenv("ACTIONLOG_DB", str(path))
    return path


@pytest.fixture
def pool(db_path):
    ensure_database(db_path)
    p = ConnectionPool(db_path, max_size=5, min_idle=1, timeout=2.0)
    init_db(p)
    try:
        yield p
    finally:
        p.close()


@pytest.fixture
def queues():
    return IngestionQueues()


@pytest.fixture
def writer(pool, queues):
    return BatchWriter(pool, queues, interval=0.05)


@pytest.fixture
def engine(pool):
    return QueryEngine(pool)


@pytest.fixture
def settings(db_path):
    return Settings(db_path=db_path, pool_max=5, pool_min_idle=1, pool_timeout=2.0)


@pytest.fixture
def context(settings):
    ctx = start_service(settings, start_writer=False)
    try:
        yield ctx
    finally:
        ctx.shutdown()
