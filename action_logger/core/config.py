from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from actionlog.db import POOL_MAX_SIZE, POOL_MIN_IDLE, POOL_TIMEOUT
from actionlog.util import clamp
from actionlog.writer import DETAIL_MAX_LENGTH, DETAIL_MAX_LENGTH_MAX, DETAIL_MAX_LENGTH_MIN


def get_db_path() -> Path:
    env_path = os.environ.get("ACTIONLOG_DB")
    if env_path:
        return Path(env_path).expanduser().resolve()
    base_dir = Path(__file__).resolve().parents[2]
    return base_dir / "data" / "actionlog.db"


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        return default


@dataclass(frozen=True)
class Settings:
    db_path: Path
    pool_max: int = POOL_MAX_SIZE
    pool_min_idle: int = POOL_MIN_IDLE
    pool_timeout: float = POOL_TIMEOUT
    detail_max_length: int = DETAIL_MAX_LENGTH
    host: str = "127.0.0.1"
    port: int = 8080
    token: str | None = None
    log_level: str = "INFO"


def get_settings() -> Settings:
    token = (os.environ.get("ACTIONLOG_TOKEN") or "").strip() or None
    return Settings(
        db_path=get_db_path(),
        pool_max=max(1, _env_int("ACTIONLOG_POOL_MAX", POOL_MAX_SIZE)),
        pool_min_idle=max(0, _env_int("ACTIONLOG_POOL_MIN_IDLE", POOL_MIN_IDLE)),
        pool_timeout=_env_float("ACTIONLOG_POOL_TIMEOUT", POOL_TIMEOUT),
        detail_max_length=clamp(
            _env_int("ACTIONLOG_DETAIL_MAX", DETAIL_MAX_LENGTH),
            DETAIL_MAX_LENGTH_MIN,
            DETAIL_MAX_LENGTH_MAX,
        ),
        host=os.environ.get("ACTIONLOG_HOST") or "127.0.0.1",
        port=_env_int("ACTIONLOG_PORT", 8080),
        token=token,
        log_level=os.environ.get("ACTIONLOG_LOG_LEVEL") or "INFO",
    )
