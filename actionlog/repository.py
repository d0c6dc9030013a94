from __future__ import annotations

import logging
import sqlite3
import threading
import time

from .db import ConnectionPool
from .errors import PoolError
from .models import ContainerEntry, LogEntry, LogFilter, LogPage
from .util import SQLITE_INT_MAX, action_to_code, clamp, code_to_action, from_epoch_seconds, normalize_sort

log = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 25
RECENT_PLAYERS_TTL = 300.0
RECENT_PLAYERS_LIMIT = 50

LOG_COLUMNS = ("id", "time", "playerName", "action", "detail", "world", "x", "y", "z")

CONTAINER_COLUMNS = (
    "id",
    "time",
    "playerName",
    "action",
    "container_type",
    "material",
    "amount",
    "world",
    "x",
    "y",
    "z",
)


def _like(text: str) -> str:
    escaped = text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None


def _time_bounds(f: LogFilter, where: list[str], params: list[object]) -> None:
    if f.since is not None:
        where.append("time >= ?")
        params.append(clamp(int(f.since), -SQLITE_INT_MAX, SQLITE_INT_MAX))
    if f.until is not None:
        where.append("time <= ?")
        params.append(clamp(int(f.until), -SQLITE_INT_MAX, SQLITE_INT_MAX))


def build_log_query(f: LogFilter | None = None) -> tuple[str, list[object]]:
    f = f or LogFilter()
    where = []
    params: list[object] = []

    player = _clean(f.player)
    if player:
        where.append("playerName = ?")
        params.append(player)

    action = _clean(f.action)
    if action:
        where.append("action = ?")
        params.append(action_to_code(action))

    text = _clean(f.text)
    if text:
        where.append("detail LIKE ? ESCAPE '\\'")
        params.append(_like(text))

    _time_bounds(f, where, params)

    sql = f"SELECT {', '.join(LOG_COLUMNS)} FROM logs"
    if where:
        sql += " WHERE " + " AND ".join(where)
    return sql, params


def build_container_query(f: LogFilter | None = None) -> tuple[str, list[object]]:
    f = f or LogFilter()
    where = []
    params: list[object] = []

    player = _clean(f.player)
    if player:
        where.append("playerName = ?")
        params.append(player)

    container_type = _clean(f.container_type)
    if container_type:
        where.append("container_type = ?")
        params.append(container_type)

    text = _clean(f.text)
    if text:
        where.append("material LIKE ? ESCAPE '\\'")
        params.append(_like(text))

    _time_bounds(f, where, params)

    sql = f"SELECT {', '.join(CONTAINER_COLUMNS)} FROM container_transactions"
    if where:
        sql += " WHERE " + " AND ".join(where)
    return sql, params


def paginate(sql: str, params: list[object], page: int, page_size: int, sort_order: str | None) -> tuple[str, list[object]]:
    order = normalize_sort(sort_order)
    page_size = clamp(int(page_size), 1, SQLITE_INT_MAX)
    # keeps the offset within SQLite INTEGER; such pages are empty anyway
    page = clamp(int(page), 1, SQLITE_INT_MAX // page_size + 1)
    sql += f" ORDER BY time {order}, id {order} LIMIT ? OFFSET ?"
    return sql, [*params, page_size, (page - 1) * page_size]


def _row_to_entry(row) -> LogEntry:
    return LogEntry(
        id=row["id"],
        player_name=row["playerName"],
        action=code_to_action(row["action"]),
        detail=row["detail"] or "",
        world=row["world"],
        x=row["x"],
        y=row["y"],
        z=row["z"],
        timestamp=from_epoch_seconds(row["time"]),
    )


def _row_to_container(row) -> ContainerEntry:
    return ContainerEntry(
        id=row["id"],
        time=row["time"],
        player_name=row["playerName"],
        action=row["action"],
        container_type=row["container_type"],
        material=row["material"],
        amount=row["amount"],
        world=row["world"],
        x=row["x"],
        y=row["y"],
        z=row["z"],
    )


class QueryEngine:
    """Read path over the two log tables.

    Every public method swallows store and pool failures: it logs them and
    returns an empty result so that a dashboard request never crashes.
    """

    def __init__(self, pool: ConnectionPool, recent_players_ttl: float = RECENT_PLAYERS_TTL):
        self.pool = pool
        self.recent_players_ttl = recent_players_ttl
        self._recent_lock = threading.Lock()
        self._recent_cache: list[str] | None = None
        self._recent_cached_limit = 0
        self._recent_cached_at = 0.0

    def _fetch(self, sql: str, params: list[object]) -> list[sqlite3.Row]:
        with self.pool.connection() as conn:
            return conn.execute(sql, params).fetchall()

    def _try_fetch(self, what: str, sql: str, params: list[object]) -> tuple[list[sqlite3.Row], str | None]:
        try:
            return self._fetch(sql, params), None
        except (sqlite3.Error, PoolError, OverflowError) as exc:
            log.error("Failed to %s: %s", what, exc)
            return [], str(exc)

    def _try_count(self, what: str, sql: str, params: list[object]) -> tuple[int, str | None]:
        rows, error = self._try_fetch(what, "SELECT COUNT(*) c FROM (" + sql + ")", params)
        if error or not rows:
            return 0, error
        return int(rows[0]["c"]), None

    # -------------------------
    # logs
    # -------------------------

    def list_logs(
        self,
        f: LogFilter | None = None,
        page: int = 1,
        page_size: int = DEFAULT_PAGE_SIZE,
        sort_order: str | None = "DESC",
    ) -> list[LogEntry]:
        sql, params = paginate(*build_log_query(f), page, page_size, sort_order)
        rows, _ = self._try_fetch("fetch logs", sql, params)
        return [_row_to_entry(r) for r in rows]

    def count_logs(self, f: LogFilter | None = None) -> int:
        sql, params = build_log_query(f)
        count, _ = self._try_count("count logs", sql, params)
        return count

    def log_page(
        self,
        f: LogFilter | None = None,
        page: int = 1,
        page_size: int = DEFAULT_PAGE_SIZE,
        sort_order: str | None = "DESC",
    ) -> LogPage:
        base_sql, base_params = build_log_query(f)
        sql, params = paginate(base_sql, base_params, page, page_size, sort_order)
        rows, list_error = self._try_fetch("fetch logs", sql, params)
        total, count_error = self._try_count("count logs", base_sql, base_params)
        return LogPage(
            logs=[_row_to_entry(r) for r in rows],
            total=total,
            error=list_error or count_error,
        )

    def list_distinct_players(self) -> list[str]:
        rows, _ = self._try_fetch(
            "fetch players",
            "SELECT DISTINCT playerName FROM logs WHERE playerName IS NOT NULL",
            [],
        )
        return [r["playerName"] for r in rows]

    def list_distinct_actions(self) -> list[str]:
        rows, _ = self._try_fetch(
            "fetch actions",
            "SELECT DISTINCT action FROM logs WHERE action IS NOT NULL",
            [],
        )
        labels: list[str] = []
        for r in rows:
            label = code_to_action(r["action"])
            if label not in labels:
                labels.append(label)
        return labels

    def count_by_action(self, player: str | None = None, since: int | None = None, until: int | None = None) -> dict[str, int]:
        sql, params = build_log_query(LogFilter(player=player, since=since, until=until))
        rows, _ = self._try_fetch(
            "count actions",
            "SELECT action, COUNT(*) c FROM (" + sql + ") GROUP BY action ORDER BY action",
            params,
        )
        counts: dict[str, int] = {}
        for r in rows:
            label = code_to_action(r["action"])
            counts[label] = counts.get(label, 0) + int(r["c"])
        return counts

    def recent_players(self, limit: int = RECENT_PLAYERS_LIMIT) -> list[str]:
        """Most recently active players, newest first. Cached for the TTL."""
        now = time.monotonic()
        with self._recent_lock:
            cached = self._recent_cache
            fresh = cached is not None and now - self._recent_cached_at < self.recent_players_ttl
            if fresh and limit <= self._recent_cached_limit:
                return cached[:limit]

        fetch_limit = max(limit, RECENT_PLAYERS_LIMIT)
        rows, error = self._try_fetch(
            "fetch recent players",
            "SELECT playerName, MAX(time) t FROM logs GROUP BY playerName ORDER BY t DESC LIMIT ?",
            [fetch_limit],
        )
        players = [r["playerName"] for r in rows]
        if error is None:
            with self._recent_lock:
                self._recent_cache = players
                self._recent_cached_limit = fetch_limit
                self._recent_cached_at = now
        return players[:limit]

    def invalidate_recent_players(self) -> None:
        with self._recent_lock:
            self._recent_cache = None

    # -------------------------
    # container transactions
    # -------------------------

    def list_containers(
        self,
        f: LogFilter | None = None,
        page: int = 1,
        page_size: int = DEFAULT_PAGE_SIZE,
        sort_order: str | None = "DESC",
    ) -> list[ContainerEntry]:
        sql, params = paginate(*build_container_query(f), page, page_size, sort_order)
        rows, _ = self._try_fetch("fetch container transactions", sql, params)
        return [_row_to_container(r) for r in rows]

    def count_containers(self, f: LogFilter | None = None) -> int:
        sql, params = build_container_query(f)
        count, _ = self._try_count("count container transactions", sql, params)
        return count
