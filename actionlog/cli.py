import json
import sys

from rich.console import Console
from rich.panel import Panel

from .db import ConnectionPool, ensure_database, init_db
from .errors import ActionLogError
from .logging_config import configure_logging
from .render import render_containers, render_logs, render_names, render_summary
from .status import show_status
from .util import parse_int
from action_logger.core import commands as core_commands
from action_logger.core.config import get_settings
from action_logger.core.context import start_service
from action_logger.core.response import build_error, build_response
from action_logger.core.runner import build_filter, run_command

console = Console()

HELP_TEXT = """Action Logger

Commands:

help
  Show this help

init
  Create the database file and tables (safe to repeat)

serve [host=127.0.0.1] [port=8080]
  Start the writer and the dashboard API (http://127.0.0.1:8080)

logs [player=NAME] [action=LABEL] [text=...] [from=EPOCH] [to=EPOCH]
     [page=1] [size=25] [sort=ASC|DESC]
  Examples:
    logs player=Alice
    logs action=Login sort=ASC
    logs Bob

containers [player=NAME] [container=TYPE] [material=...] [page=1] [size=25]
  Container take/put history

players [recent=N]
  Distinct player names, or the N most recently active

actions
  Distinct action labels present in the store

summary [player=NAME] [last=60] [from=EPOCH] [to=EPOCH]
  Per-action counts for a window (default: last hour)

status
  Show row counts per table and logs by action

Options:
  --format pretty|json (default: pretty)

Examples:
  logs player=Alice --format json
  summary last=1440
"""


def _parse_kv_args(args: list[str]) -> dict:
    out = {}
    for a in args:
        if "=" in a:
            k, v = a.split("=", 1)
            out[k.strip()] = v.strip().strip('"')
    return out


def _positional(args: list[str]) -> list[str]:
    return [a for a in args if "=" not in a]


def main(argv=None):
    if argv is None:
        argv = sys.argv[1:]
    argv = list(argv)

    output_format = "pretty"
    if "--format" in argv:
        idx = argv.index("--format")
        if idx + 1 < len(argv):
            output_format = argv[idx + 1]
            argv = argv[:idx] + argv[idx + 2 :]
    else:
        for i, arg in enumerate(list(argv)):
            if arg.startswith("--format="):
                output_format = arg.split("=", 1)[1]
                argv.pop(i)
                break

    if not argv or argv[0] in ("help", "-h", "--help"):
        console.print(Panel(HELP_TEXT.strip(), title="HELP"))
        return 0

    cmd, *args = argv
    kv = _parse_kv_args(args)
    settings = get_settings()
    db_path = str(settings.db_path)

    def emit_response(payload: dict) -> int:
        print(json.dumps(payload, ensure_ascii=False))
        return 0 if payload.get("ok") else 1

    def emit_error(command: str, params: dict, message: str, code: str = "VALIDATION", hint: str = "Check usage.", details=None):
        response = build_error(command=command, params=params, message=message, code=code, hint=hint, details=details, db_path=db_path)
        print(json.dumps(response, ensure_ascii=False))
        return 1

    if cmd == "init":
        try:
            path = ensure_database(settings.db_path)
            pool = ConnectionPool(path, max_size=1, min_idle=1, timeout=settings.pool_timeout)
            try:
                init_db(pool)
            finally:
                pool.close()
        except ActionLogError as exc:
            if output_format == "json":
                return emit_error("init", {}, "Cannot initialize database.", code="STARTUP", hint="Check ACTIONLOG_DB.", details=str(exc))
            console.print(f"[red]Cannot initialize database:[/red] {exc}")
            return 1
        if output_format == "json":
            return emit_response(build_response("init", {}, {"db_path": str(path)}, db_path=db_path))
        console.print(Panel(f"Database ready: {path}", title="INIT"))
        return 0

    if cmd == "serve":
        import uvicorn

        from action_logger.api.server import create_app

        configure_logging(settings.log_level)
        host = kv.get("host") or settings.host
        port = parse_int(kv.get("port"), settings.port)
        try:
            ctx = start_service(settings)
        except ActionLogError as exc:
            console.print(f"[red]Action logger failed to start:[/red] {exc}")
            return 1
        try:
            uvicorn.run(create_app(ctx), host=host, port=port)
        finally:
            ctx.shutdown()
        return 0

    known = ("logs", "containers", "players", "actions", "summary", "status")
    if cmd not in known:
        if output_format == "json":
            return emit_error("unknown", {}, f"Unknown command: {cmd}", hint="Check --help for commands.")
        console.print(f"[red]Unknown command:[/red] {cmd}")
        console.print("Run [bold]help[/bold] for usage.")
        return 1

    try:
        ctx = start_service(settings, start_writer=False)
    except ActionLogError as exc:
        if output_format == "json":
            return emit_error(cmd, kv, "Cannot open database.", code="STARTUP", hint="Run init or check ACTIONLOG_DB.", details=str(exc))
        console.print(f"[red]Cannot open database:[/red] {exc}")
        return 1

    try:
        if cmd in ("logs", "containers") and "player" not in kv:
            rest = _positional(args)
            if rest:
                kv["player"] = rest[0]

        if output_format == "json":
            return emit_response(run_command(cmd, kv, ctx))

        if cmd == "logs":
            f = build_filter(kv)
            page, size, sort = core_commands.page_params(kv.get("page"), kv.get("size"), kv.get("sort"))
            render_logs(ctx.engine.log_page(f, page, size, sort), page, size, kv)
            return 0

        if cmd == "containers":
            f = build_filter(kv)
            page, size, sort = core_commands.page_params(kv.get("page"), kv.get("size"), kv.get("sort"))
            rows = ctx.engine.list_containers(f, page, size, sort)
            render_containers(rows, ctx.engine.count_containers(f), page, size, kv)
            return 0

        if cmd == "players":
            recent = parse_int(kv.get("recent"))
            if recent:
                render_names("RECENT PLAYERS", ctx.engine.recent_players(recent))
            else:
                render_names("PLAYERS", ctx.engine.list_distinct_players())
            return 0

        if cmd == "actions":
            render_names("ACTIONS", ctx.engine.list_distinct_actions())
            return 0

        if cmd == "summary":
            since, until = core_commands.summary_window(
                parse_int(kv.get("from")),
                parse_int(kv.get("to")),
                parse_int(kv.get("last")),
            )
            player = (kv.get("player") or "").strip() or None
            render_summary(core_commands.summary(ctx, player, since, until))
            return 0

        show_status(ctx.pool, ctx.engine)
        return 0
    finally:
        ctx.shutdown()


if __name__ == "__main__":
    raise SystemExit(main())
