"""FastAPI application exposing the cron jobs and the catalog read interface.

Serve with ``uvicorn --factory craftcatalog.api.app:create_app``.
"""

import hmac
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any

import structlog
from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse

from ..main import VERSION, ApplicationContext
from ..models.game import format_timestamp
from ..services.errors import AppError, handle_error
from ..services.ranking import sort_entries

log = structlog.stdlib.get_logger()


def _unauthorized() -> JSONResponse:
    return JSONResponse(status_code=401, content={"error": "Unauthorized"})


def is_authorized(request: Request, secret: str | None) -> bool:
    """Bearer check against the cron secret. Without a secret every caller is let through."""
    if not secret:
        return True
    provided = request.headers.get("authorization", "")
    return hmac.compare_digest(provided.encode(), f"Bearer {secret}".encode())


def _now_iso() -> str:
    return format_timestamp(datetime.now(timezone.utc))


def _failure(message: str, error: Exception, operation: str, started: float) -> JSONResponse:
    report = handle_error(error, operation=operation, component="cron")
    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "message": message,
            "error": report.message if isinstance(error, AppError) else str(error),
            "elapsedSeconds": round(time.monotonic() - started, 3),
        },
    )


def _parse_ids(raw: str) -> list[int]:
    ids: list[int] = []
    for part in raw.split(","):
        part = part.strip()
        if not part:
            continue
        try:
            ids.append(int(part))
        except ValueError:
            raise HTTPException(status_code=400, detail=f"Invalid game id: {part}") from None
    return ids


def create_app(context: ApplicationContext | None = None) -> FastAPI:
    """Build the app around ``context`` (a fresh one from the environment when omitted)."""
    ctx = context or ApplicationContext()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        yield
        await ctx.cleanup()

    app = FastAPI(title="craftcatalog", version=VERSION, lifespan=lifespan)
    app.state.context = ctx

    @app.get("/api/cron/collect-data")
    async def collect_data(request: Request) -> Any:
        if not is_authorized(request, ctx.credentials.cron_secret):
            log.warning("Rejected cron call", endpoint="collect-data")
            return _unauthorized()

        started = time.monotonic()
        try:
            summary = await ctx.collection_job().run(
                write_store=True,
                time_budget=ctx.config.collect_time_budget,
            )
        except Exception as e:
            return _failure("Data collection failed", e, "collect_data", started)

        ctx.cache.clear()
        return {
            "success": True,
            "message": "Data collection completed",
            "stats": summary.to_dict(),
            "timestamp": _now_iso(),
        }

    @app.get("/api/cron/update-data")
    async def update_data(request: Request) -> Any:
        if not is_authorized(request, ctx.credentials.cron_secret):
            log.warning("Rejected cron call", endpoint="update-data")
            return _unauthorized()

        started = time.monotonic()
        try:
            summary = await ctx.incremental_updater().run(time_budget=ctx.config.update_time_budget)
        except Exception as e:
            return _failure("Incremental update failed", e, "update_data", started)

        ctx.cache.clear()
        return {
            "success": True,
            "message": "Incremental update completed",
            "stats": summary.to_dict(),
            "timestamp": _now_iso(),
        }

    @app.get("/api/games")
    async def list_games(
        ids: str | None = Query(default=None),
        search: str | None = Query(default=None),
        sort: str | None = Query(default=None),
    ) -> Any:
        if ids is not None:
            entries = await ctx.cache.get_by_ids(_parse_ids(ids))
        elif search is not None:
            entries = await ctx.cache.search(search)
        else:
            entries = await ctx.cache.get_all()

        if sort:
            entries = sort_entries(entries, sort)

        return {"games": [entry.to_dict() for entry in entries], "count": len(entries)}

    @app.get("/api/games/on-sale")
    async def games_on_sale() -> Any:
        entries = await ctx.cache.get_on_sale()
        return {"games": [entry.to_dict() for entry in entries], "count": len(entries)}

    @app.get("/api/games/{appid}")
    async def get_game(appid: int) -> Any:
        entry = await ctx.cache.get_by_id(appid)
        if entry is None:
            raise HTTPException(status_code=404, detail="Game not found")
        return entry.to_dict()

    @app.get("/api/cache-info")
    async def cache_info() -> Any:
        info = await ctx.cache.get_cache_info()
        return {
            "source": info.source,
            "gameCount": info.entry_count,
            "updatedAt": format_timestamp(info.updated_at) if info.updated_at else None,
            "stale": await ctx.cache.is_stale(),
        }

    return app
