"""FastAPI application serving compiled markdown and search."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, List

from fastapi import APIRouter, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse, Response
from fastapi.staticfiles import StaticFiles

from mdserve import __version__
from mdserve.config import AppConfig
from mdserve.errors import CompilationError, DocumentNotFound, InvalidRequest, QueryError
from mdserve.index.builder import IndexBuilder
from mdserve.index.scheduler import RebuildScheduler
from mdserve.index.search import QueryEngine
from mdserve.index.storage import SQLiteIndexStore
from mdserve.models import PageOptions
from mdserve.render.compiler import highlight_css
from mdserve.render.stream import LazyContentStream
from mdserve.utils.files import clean_request_path, resolve_document
from mdserve.web.content import serve_content
from mdserve.web.listing import router as listing_router

LOGGER = logging.getLogger(__name__)

STATIC_DIR = Path(__file__).parent / "static"

api_router = APIRouter(prefix="/api")
asset_router = APIRouter()
document_router = APIRouter()


def _ensure_index_parent(index_path: Path) -> None:
    index_path.parent.mkdir(parents=True, exist_ok=True)


@api_router.get("/search")
async def search_documents(request: Request, term: str = "") -> List[str]:
    engine: QueryEngine = request.app.state.engine
    try:
        hits = await asyncio.to_thread(engine.query, term)
    except QueryError as exc:
        LOGGER.error("Search for %r failed: %s", term, exc)
        return JSONResponse(status_code=502, content={"err": "search failed"})
    return hits


@asset_router.get("/css/highlight-{theme}.css")
async def highlight_stylesheet(theme: str) -> Response:
    try:
        css = highlight_css(theme)
    except KeyError:
        raise HTTPException(status_code=404, detail="Not Found")
    return Response(content=css, media_type="text/css")


@document_router.api_route("/{doc_path:path}", methods=["GET", "HEAD"])
async def serve_document(request: Request) -> Response:
    config: AppConfig = request.app.state.config

    try:
        url_path = clean_request_path(request.scope["path"])
    except InvalidRequest:
        raise HTTPException(status_code=400, detail="invalid URL path")

    if not url_path.endswith(config.suffix):
        static_files: StaticFiles = request.app.state.static_files
        return await static_files.get_response(url_path.lstrip("/"), request.scope)

    file_path = resolve_document(config.root_dir, url_path)
    options = PageOptions(theme=config.theme)
    try:
        stream = await asyncio.to_thread(LazyContentStream.open, file_path, options)
        return await asyncio.to_thread(serve_content, request.method, request.headers, stream)
    except DocumentNotFound:
        raise HTTPException(status_code=404, detail="Not Found")
    except (OSError, CompilationError) as exc:
        LOGGER.error("Could not serve %s: %s", file_path, exc)
        raise HTTPException(status_code=500, detail="Internal Server Error") from exc


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    scheduler: RebuildScheduler = app.state.scheduler
    if app.state.schedule_rebuilds:
        scheduler.start()
    try:
        yield
    finally:
        await scheduler.stop()
        if app.state.owns_store:
            app.state.store.close()


def create_app(
    config: AppConfig,
    *,
    store: SQLiteIndexStore | None = None,
    schedule_rebuilds: bool = True,
) -> FastAPI:
    """Wire the store, builder, query engine and scheduler into an app.

    When ``store`` is not given one is opened at the configured index path
    and closed again on shutdown.
    """
    owns_store = store is None
    if store is None:
        index_path = config.resolve_index_path(Path.cwd())
        _ensure_index_parent(index_path)
        store = SQLiteIndexStore(index_path)

    builder = IndexBuilder(
        store,
        config.root_dir,
        suffix=config.suffix,
        max_file_size=config.max_file_size,
    )

    app = FastAPI(title="mdserve", version=__version__, lifespan=lifespan)
    app.state.config = config
    app.state.store = store
    app.state.owns_store = owns_store
    app.state.builder = builder
    app.state.engine = QueryEngine(store)
    app.state.scheduler = RebuildScheduler(builder, interval=config.rebuild_interval)
    app.state.schedule_rebuilds = schedule_rebuilds
    app.state.static_files = StaticFiles(directory=STATIC_DIR)

    @app.middleware("http")
    async def frame_options(request: Request, call_next):
        response = await call_next(request)
        if not request.url.path.startswith("/api/"):
            response.headers["X-Frame-Options"] = "SAMEORIGIN"
        return response

    app.include_router(api_router)
    app.include_router(listing_router)
    app.include_router(asset_router)
    app.include_router(document_router)
    return app
