"""HTTP server entrypoint.

Responsibilities (and nothing more):
- Configure structlog
- Create AppState in the Starlette lifespan
- Map routes to handlers and ChordTierError to JSON error responses
- Run uvicorn
"""

from __future__ import annotations

import logging
import sys
from contextlib import asynccontextmanager
from datetime import timedelta
from pathlib import Path
from typing import TYPE_CHECKING

import aiosqlite
import structlog
import uvicorn
from starlette.applications import Starlette
from starlette.responses import JSONResponse
from starlette.routing import Route

import chordtier.handlers.artist_songs as h_artist_songs
import chordtier.handlers.artists as h_artists
import chordtier.handlers.chord_sheet as h_chord_sheet
import chordtier.handlers.saved as h_saved
import chordtier.handlers.search as h_search
from chordtier import __version__
from chordtier.artists import ArtistDirectory
from chordtier.config import Settings
from chordtier.errors import ChordTierError, invalid_input
from chordtier.orchestrator import Orchestrator
from chordtier.record_store import RecordStore
from chordtier.remote_tier import RemoteTier
from chordtier.schedulers import run_startup_maintenance
from chordtier.scraper import HttpPageSource, ScraperClient, build_http_client
from chordtier.search_cache import SearchCache
from chordtier.state import AppState

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator, Awaitable, Callable

    from starlette.requests import Request

log = structlog.get_logger()


# ---------------------------------------------------------------------------
# Logging setup
# ---------------------------------------------------------------------------


def _setup_logging(settings: Settings) -> None:
    """Configure structlog. Called once at startup before any log statements."""
    log_level = logging.getLevelNamesMapping()[settings.logging.level]

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if settings.logging.format == "json":
        processors = [*shared_processors, structlog.processors.JSONRenderer()]
    else:
        processors = [*shared_processors, structlog.dev.ConsoleRenderer()]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


# ---------------------------------------------------------------------------
# State construction
# ---------------------------------------------------------------------------


async def build_state(settings: Settings, db: aiosqlite.Connection) -> AppState:
    """Wire every tier onto one database connection and one HTTP client."""
    http_client = build_http_client()

    record_store = RecordStore(
        db,
        cache_ttl=timedelta(days=settings.store.cache_ttl_days),
        grace_period=timedelta(days=settings.store.grace_period_days),
    )
    search_cache = SearchCache(
        db,
        max_items=settings.search_cache.max_items,
        ttl=timedelta(hours=settings.search_cache.ttl_hours),
    )
    directory = ArtistDirectory(db)
    await record_store.init_db()
    await search_cache.init_db()
    await directory.init_db()

    remote = RemoteTier(
        http_client,
        base_url=settings.remote.base_url,
        prefix=settings.remote.prefix,
        timeout_seconds=settings.remote.timeout_seconds,
    )
    scraper = ScraperClient(
        HttpPageSource(http_client, settings.scraper.service_url),
        site_url=settings.scraper.site_url,
        site_name=settings.scraper.site_name,
        timeout_seconds=settings.scraper.timeout_seconds,
    )
    orchestrator = Orchestrator(
        record_store=record_store,
        search_cache=search_cache,
        remote=remote,
        scraper=scraper,
        directory=directory,
    )
    return AppState(
        settings=settings,
        orchestrator=orchestrator,
        record_store=record_store,
        search_cache=search_cache,
        remote=remote,
        scraper=scraper,
        directory=directory,
        http_client=http_client,
        db=db,
    )


@asynccontextmanager
async def lifespan(app: Starlette) -> AsyncGenerator[None, None]:
    """Create and tear down all shared resources for the server's lifetime."""
    settings: Settings = app.state.settings
    log.info("server_starting", version=__version__, remote_enabled=bool(settings.remote.base_url))

    db_path = Path(settings.store.db_path).expanduser()
    db_path.parent.mkdir(parents=True, exist_ok=True)
    db = await aiosqlite.connect(str(db_path))

    state = await build_state(settings, db)
    await run_startup_maintenance(state)
    app.state.chordtier = state

    log.info("server_started", version=__version__, db_path=str(db_path))
    try:
        yield
    finally:
        await state.record_store.wait_for_purges()
        if state.http_client is not None:
            await state.http_client.aclose()
        await db.close()
        log.info("server_stopping")


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------


async def _respond(route: str, call: Callable[[], Awaitable[object]]) -> JSONResponse:
    """Run a handler and serialise its result or its ChordTierError."""
    try:
        return JSONResponse(await call())
    except ChordTierError as exc:
        log.warning(
            "route_error",
            route=route,
            code=exc.code,
            message=exc.message,
            recoverable=exc.recoverable,
        )
        return JSONResponse(exc.to_dict(), status_code=exc.http_status)
    except Exception:
        log.error("route_unexpected_error", route=route, exc_info=True)
        return JSONResponse({"error": "Internal Server Error"}, status_code=500)


def _state(request: Request) -> AppState:
    return request.app.state.chordtier


async def artist_songs(request: Request) -> JSONResponse:
    artist_path = request.query_params.get("artistPath")
    return await _respond(
        "artist_songs", lambda: h_artist_songs.handle(artist_path, _state(request))
    )


async def artists(request: Request) -> JSONResponse:
    artist = request.query_params.get("artist")
    return await _respond("artists", lambda: h_artists.handle(artist, _state(request)))


async def search(request: Request) -> JSONResponse:
    artist = request.query_params.get("artist")
    song = request.query_params.get("song")
    return await _respond("search", lambda: h_search.handle(artist, song, _state(request)))


async def chord_sheet(request: Request) -> JSONResponse:
    path = request.query_params.get("path")
    return await _respond("chord_sheet", lambda: h_chord_sheet.handle(path, _state(request)))


async def _json_body(request: Request, message: str) -> object:
    try:
        return await request.json()
    except ValueError as exc:
        raise invalid_input(message, details="Body is not valid JSON") from exc


async def upload_chord_sheet(request: Request) -> JSONResponse:
    async def call() -> dict:
        payload = await _json_body(request, "Invalid chord sheet")
        return await h_saved.upload(payload, _state(request))

    return await _respond("upload", call)


async def edit_chord_sheet(request: Request) -> JSONResponse:
    path = request.query_params.get("path")

    async def call() -> dict:
        payload = await _json_body(request, "Invalid chord sheet")
        return await h_chord_sheet.edit(path, payload, _state(request))

    return await _respond("chord_sheet_edit", call)


async def delete_chord_sheet(request: Request) -> JSONResponse:
    path = request.query_params.get("path")
    return await _respond(
        "chord_sheet_delete", lambda: h_chord_sheet.delete(path, _state(request))
    )


async def import_saved(request: Request) -> JSONResponse:
    async def call() -> dict:
        payload = await _json_body(request, "Invalid import")
        return await h_saved.import_sheets(payload, _state(request))

    return await _respond("saved_import", call)


async def saved(request: Request) -> JSONResponse:
    state = _state(request)
    if request.method == "GET":
        query = request.query_params.get("q")
        return await _respond("saved", lambda: h_saved.list_saved(query, state))

    path = request.query_params.get("path")
    mark_saved = request.method == "PUT"
    return await _respond("saved", lambda: h_saved.set_saved(path, mark_saved, state))


async def health(request: Request) -> JSONResponse:
    """Liveness plus the reachability of the remote artist-list store."""
    remote = _state(request).remote
    if not remote.enabled:
        remote_status = "disabled"
    elif await remote.check_connection():
        remote_status = "ok"
    else:
        remote_status = "unreachable"
    return JSONResponse({"status": "ok", "version": __version__, "remote": remote_status})


def create_app(settings: Settings | None = None) -> Starlette:
    """Build the Starlette app. The lifespan reads ``app.state.settings``."""
    app = Starlette(
        routes=[
            Route("/artist-songs", artist_songs, methods=["GET"]),
            Route("/artists", artists, methods=["GET"]),
            Route("/search", search, methods=["GET"]),
            Route("/chord-sheet", chord_sheet, methods=["GET"]),
            Route("/chord-sheet", upload_chord_sheet, methods=["POST"]),
            Route("/chord-sheet", edit_chord_sheet, methods=["PATCH"]),
            Route("/chord-sheet", delete_chord_sheet, methods=["DELETE"]),
            Route("/saved", saved, methods=["GET", "PUT", "DELETE"]),
            Route("/saved/import", import_saved, methods=["POST"]),
            Route("/health", health, methods=["GET"]),
        ],
        lifespan=lifespan,
    )
    app.state.settings = settings or Settings()
    return app


# ---------------------------------------------------------------------------
# Entrypoint
# ---------------------------------------------------------------------------


def main() -> None:
    settings = Settings()
    _setup_logging(settings)

    uvicorn.run(
        create_app(settings),
        host=settings.server.host,
        port=settings.server.port,
        log_config=None,  # Disable uvicorn's default logging; structlog handles it
    )


if __name__ == "__main__":
    main()
