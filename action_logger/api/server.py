from __future__ import annotations

import hmac
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from actionlog.util import parse_int
from action_logger.core import commands as core_commands
from action_logger.core.context import ServiceContext, start_service
from action_logger.core.response import ErrorItem, build_response
from action_logger.core.runner import ADMIN_COMMANDS, build_filter, run_command

log = logging.getLogger(__name__)


def _format_validation_details(exc: RequestValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", []))
        msg = err.get("msg", "Invalid input")
        parts.append(f"{loc}: {msg}")
    return "; ".join(parts) or "Validation error"


def _api_error(request: Request, code: str, message: str, hint: str, details: str | None = None, status: int = 400):
    params = {
        "path": request.url.path,
        "method": request.method,
        "query": {k: v for k, v in request.query_params.items() if k != "token"},
    }
    ctx = getattr(request.app.state, "context", None)
    payload = build_response(
        command="api",
        params=params,
        data=None,
        warnings=[],
        ok=False,
        error=ErrorItem(code=code, message=message, hint=hint, details=details),
        db_path=str(ctx.settings.db_path) if ctx else None,
    )
    return JSONResponse(payload, status_code=status)


def get_context(request: Request) -> ServiceContext:
    ctx = getattr(request.app.state, "context", None)
    if ctx is None:
        raise HTTPException(status_code=503, detail="Service is not started.")
    return ctx


def require_token(request: Request, token: Optional[str] = None) -> None:
    ctx = get_context(request)
    expected = ctx.settings.token
    if not expected:
        return
    if not token or not hmac.compare_digest(token, expected):
        raise HTTPException(status_code=401, detail="Missing or invalid token.")


def create_app(context: ServiceContext | None = None) -> FastAPI:
    """Build the dashboard API.

    With an explicit context the caller owns its lifecycle. Without one the
    app starts the service on startup and shuts it down on exit.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = None
        if app.state.context is None:
            owned = start_service()
            app.state.context = owned
        try:
            yield
        finally:
            if owned is not None:
                owned.shutdown()
                app.state.context = None

    app = FastAPI(title="Action Logger Dashboard API", lifespan=lifespan)
    app.state.context = context

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://127.0.0.1:8080", "http://localhost:8080"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        details = _format_validation_details(exc)
        return _api_error(request, "VALIDATION", "Validation error.", "Check required fields and retry.", details, status=422)

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        if exc.status_code == 401:
            return _api_error(request, "UNAUTHORIZED", "Unauthorized.", "Pass a valid token= parameter.", str(exc.detail), status=401)
        return _api_error(request, "INTERNAL", "Request failed.", "Check inputs and retry.", str(exc.detail), status=exc.status_code)

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        log.exception("Unhandled error on %s", request.url.path)
        return _api_error(request, "INTERNAL", "Unexpected server error.", "Check server logs and retry.", str(exc), status=500)

    @app.get("/health")
    async def health():
        return {"ok": True}

    guarded = [Depends(require_token)]

    @app.get("/logs", dependencies=guarded)
    def logs(
        request: Request,
        player: Optional[str] = None,
        action: Optional[str] = None,
        item_container: Optional[str] = Query(default=None, alias="itemContainer"),
        page: Optional[str] = None,
        size: Optional[str] = None,
        sort: Optional[str] = None,
        from_ts: Optional[str] = Query(default=None, alias="from"),
        to_ts: Optional[str] = Query(default=None, alias="to"),
    ):
        ctx = get_context(request)
        f = build_filter(
            {"player": player, "action": action, "itemContainer": item_container, "from": from_ts, "to": to_ts}
        )
        p, s, order = core_commands.page_params(page, size, sort)
        return core_commands.logs(ctx, f, p, s, order)

    @app.get("/players", dependencies=guarded)
    def players(request: Request):
        return core_commands.players(get_context(request))

    @app.get("/actions", dependencies=guarded)
    def actions(request: Request):
        return core_commands.actions(get_context(request))

    @app.get("/containers", dependencies=guarded)
    def containers(
        request: Request,
        player: Optional[str] = None,
        container: Optional[str] = None,
        material: Optional[str] = None,
        page: Optional[str] = None,
        size: Optional[str] = None,
        sort: Optional[str] = None,
        from_ts: Optional[str] = Query(default=None, alias="from"),
        to_ts: Optional[str] = Query(default=None, alias="to"),
    ):
        ctx = get_context(request)
        f = build_filter(
            {"player": player, "container": container, "material": material, "from": from_ts, "to": to_ts}
        )
        p, s, order = core_commands.page_params(page, size, sort)
        return core_commands.containers(ctx, f, p, s, order)

    @app.get("/summary", dependencies=guarded)
    def summary(
        request: Request,
        player: Optional[str] = None,
        from_ts: Optional[str] = Query(default=None, alias="from"),
        to_ts: Optional[str] = Query(default=None, alias="to"),
        last: Optional[str] = None,
    ):
        ctx = get_context(request)
        since, until = core_commands.summary_window(parse_int(from_ts), parse_int(to_ts), parse_int(last))
        return core_commands.summary(ctx, (player or "").strip() or None, since, until)

    @app.get("/stats", dependencies=guarded)
    def stats(request: Request):
        ctx = get_context(request)
        return {**ctx.stats(), "pool": ctx.pool_stats()}

    @app.get("/admin/{command}", dependencies=guarded)
    def admin(command: str, request: Request):
        if command not in ADMIN_COMMANDS or command == "flush":
            raise HTTPException(status_code=404, detail=f"Unknown admin command: {command}")
        return run_command(command, {}, get_context(request))

    @app.post("/admin/flush", dependencies=guarded)
    def admin_flush(request: Request):
        return run_command("flush", {}, get_context(request))

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    from action_logger.core.config import get_settings

    settings = get_settings()
    uvicorn.run("action_logger.api.server:app", host=settings.host, port=settings.port)
