from __future__ import annotations

from typing import Any

from actionlog.db import table_counts
from actionlog.models import LogFilter
from actionlog.util import SQLITE_INT_MAX, clamp, epoch_now, normalize_sort, parse_int

from .context import ServiceContext
from .serialize import container_payload, log_entry_payload

DEFAULT_PAGE = 1
DEFAULT_PAGE_SIZE = 25
MAX_PAGE_SIZE = 200
SUMMARY_LAST_MINUTES = 60
SUMMARY_MAX_MINUTES = 1440


def stats(ctx: ServiceContext) -> dict[str, Any]:
    return ctx.stats()


def flush(ctx: ServiceContext) -> dict[str, Any]:
    result = ctx.flush()
    return {"logs": result.logs, "containers": result.containers, "total": result.total}


def pool(ctx: ServiceContext) -> dict[str, Any]:
    return ctx.pool_stats()


def status(ctx: ServiceContext) -> dict[str, Any]:
    counts = table_counts(ctx.pool)
    return {
        "tables": counts,
        "actions": ctx.engine.count_by_action(),
        "queues": ctx.stats(),
        "pool": ctx.pool_stats(),
    }


def logs(
    ctx: ServiceContext,
    f: LogFilter,
    page: int = DEFAULT_PAGE,
    size: int = DEFAULT_PAGE_SIZE,
    sort: str | None = "DESC",
) -> dict[str, Any]:
    result = ctx.engine.log_page(f, page, size, sort)
    data: dict[str, Any] = {
        "logs": [log_entry_payload(e) for e in result.logs],
        "total": result.total,
    }
    if result.error:
        data["error"] = result.error
    return data


def containers(
    ctx: ServiceContext,
    f: LogFilter,
    page: int = DEFAULT_PAGE,
    size: int = DEFAULT_PAGE_SIZE,
    sort: str | None = "DESC",
) -> dict[str, Any]:
    rows = ctx.engine.list_containers(f, page, size, sort)
    return {
        "transactions": [container_payload(r) for r in rows],
        "total": ctx.engine.count_containers(f),
    }


def players(ctx: ServiceContext) -> list[str]:
    return ctx.engine.list_distinct_players()


def actions(ctx: ServiceContext) -> list[str]:
    return ctx.engine.list_distinct_actions()


def recent_players(ctx: ServiceContext, limit: int) -> list[str]:
    return ctx.engine.recent_players(limit)


def summary_window(
    since: int | None,
    until: int | None,
    last_minutes: int | None = None,
) -> tuple[int, int]:
    """Resolve the summary window. Defaults to the last hour ending now."""
    minutes = clamp(last_minutes or SUMMARY_LAST_MINUTES, 1, SUMMARY_MAX_MINUTES)
    end = until if until is not None else epoch_now()
    start = since if since is not None else max(0, end - minutes * 60)
    return start, end


def summary(ctx: ServiceContext, player: str | None, since: int, until: int) -> dict[str, Any]:
    counts = ctx.engine.count_by_action(player=player, since=since, until=until)
    return {
        "player": player,
        "total": sum(counts.values()),
        "from": since,
        "to": until,
        "counts": counts,
    }


def page_params(page: Any, size: Any, sort: Any) -> tuple[int, int, str]:
    s = clamp(parse_int(size, DEFAULT_PAGE_SIZE), 1, MAX_PAGE_SIZE)
    p = clamp(parse_int(page, DEFAULT_PAGE), 1, SQLITE_INT_MAX // s + 1)
    return p, s, normalize_sort(sort)
