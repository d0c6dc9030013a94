from __future__ import annotations

import logging
import sqlite3
import time
from typing import Any, Callable

from actionlog.errors import PoolError
from actionlog.models import LogFilter
from actionlog.util import SQLITE_INT_MAX, clamp, parse_int

from . import commands as core_commands
from .context import ServiceContext
from .response import ErrorItem, WarningItem, build_response

log = logging.getLogger(__name__)

ADMIN_COMMANDS = ("stats", "flush", "pool")


def _error(
    command: str,
    params: dict[str, Any],
    code: str,
    message: str,
    hint: str,
    details: str | None = None,
    db_path: str | None = None,
):
    return build_response(
        command=command,
        params=params,
        data=None,
        warnings=[WarningItem(code=code, message=message, count=1)],
        ok=False,
        error=ErrorItem(code=code, message=message, hint=hint, details=details),
        db_path=db_path,
    )


def _optional_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _time_param(value: Any) -> int | None:
    parsed = parse_int(value)
    if parsed is None:
        return None
    return clamp(parsed, -SQLITE_INT_MAX, SQLITE_INT_MAX)


def build_filter(params: dict[str, Any]) -> LogFilter:
    return LogFilter(
        player=_optional_str(params.get("player") or params.get("name")),
        action=_optional_str(params.get("action")),
        text=_optional_str(params.get("text") or params.get("itemContainer") or params.get("material")),
        since=_time_param(params.get("from") if params.get("from") is not None else params.get("since")),
        until=_time_param(params.get("to") if params.get("to") is not None else params.get("until")),
        container_type=_optional_str(params.get("container") or params.get("container_type")),
    )


def _filter_params(f: LogFilter) -> dict[str, Any]:
    out = {
        "player": f.player,
        "action": f.action,
        "text": f.text,
        "from": f.since,
        "to": f.until,
        "container": f.container_type,
    }
    return {k: v for k, v in out.items() if v is not None}


def _run_with_retry(command: str, params: dict[str, Any], func: Callable[[], dict[str, Any]], db_path: str):
    for attempt in range(3):
        try:
            return func()
        except sqlite3.OperationalError as exc:
            msg = str(exc).lower()
            if "locked" in msg or "busy" in msg:
                if attempt < 2:
                    time.sleep(0.2 * (2**attempt))
                    continue
                return _error(
                    command,
                    params,
                    "SQLITE_BUSY",
                    "SQLite is busy. Please retry.",
                    "Wait a moment and retry the command.",
                    details=str(exc),
                    db_path=db_path,
                )
            return _error(command, params, "INTERNAL", "Database error.", "Check logs.", details=str(exc), db_path=db_path)
        except PoolError as exc:
            return _error(
                command,
                params,
                "POOL",
                "No database connection available.",
                "Check pool stats and retry.",
                details=str(exc),
                db_path=db_path,
            )
        except Exception as exc:  # pragma: no cover - safety net
            log.exception("Command %s failed", command)
            return _error(command, params, "INTERNAL", "Command failed.", "Check logs.", details=str(exc), db_path=db_path)


def run_command(command: str, params: dict[str, Any] | None, context: ServiceContext) -> dict[str, Any]:
    params = params or {}
    cmd = (command or "").strip().lower()
    db_path = str(context.settings.db_path)

    def _ok(name: str, used: dict[str, Any], data: Any) -> dict[str, Any]:
        return build_response(name, used, data, db_path=db_path)

    def _execute() -> dict[str, Any]:
        if cmd == "stats":
            return _ok("stats", {}, core_commands.stats(context))

        if cmd == "flush":
            return _ok("flush", {}, core_commands.flush(context))

        if cmd == "pool":
            return _ok("pool", {}, core_commands.pool(context))

        if cmd == "status":
            return _ok("status", {}, core_commands.status(context))

        if cmd in ("logs", "containers"):
            f = build_filter(params)
            page, size, sort = core_commands.page_params(params.get("page"), params.get("size"), params.get("sort"))
            used = {**_filter_params(f), "page": page, "size": size, "sort": sort}
            if cmd == "logs":
                data = core_commands.logs(context, f, page, size, sort)
            else:
                data = core_commands.containers(context, f, page, size, sort)
            if data.get("error"):
                return _error(
                    cmd,
                    used,
                    "READ_FAILED",
                    "Could not read logs.",
                    "Check the database and retry.",
                    details=data["error"],
                    db_path=db_path,
                )
            return _ok(cmd, used, data)

        if cmd == "players":
            limit = parse_int(params.get("recent"))
            if limit:
                return _ok("players", {"recent": limit}, {"players": core_commands.recent_players(context, limit)})
            return _ok("players", {}, {"players": core_commands.players(context)})

        if cmd == "actions":
            return _ok("actions", {}, {"actions": core_commands.actions(context)})

        if cmd == "summary":
            player = _optional_str(params.get("player"))
            since, until = core_commands.summary_window(
                parse_int(params.get("from")),
                parse_int(params.get("to")),
                parse_int(params.get("last")),
            )
            data = core_commands.summary(context, player, since, until)
            return _ok("summary", {"player": player, "from": since, "to": until}, data)

        return _error(
            "unknown",
            params,
            "VALIDATION",
            f"Unknown command: {command}",
            "Check --help for commands.",
            db_path=db_path,
        )

    return _run_with_retry(cmd, params, _execute, db_path)
