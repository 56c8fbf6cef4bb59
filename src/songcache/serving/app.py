"""
HTTP delivery layer.

FastAPI application exposing committed songs with byte-range support, an
endpoint to prepare (download) songs, and search.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse, Response, StreamingResponse

from songcache import __version__
from songcache.backends.backend import Backend
from songcache.backends.registry import load_backends
from songcache.config import Settings, get_settings
from songcache.exceptions import (
    AuthError,
    InvalidContentID,
    NetworkError,
    SongCacheError,
    UpstreamStatusError,
)
from songcache.logging import get_logger
from songcache.serving.content_server import ContentRequest, ContentResponse

logger = get_logger(__name__)


def _status_for(error: SongCacheError) -> int:
    if isinstance(error, InvalidContentID):
        return 400
    if isinstance(error, (AuthError, UpstreamStatusError)):
        return 502
    if isinstance(error, NetworkError):
        return 504
    return 500


def _to_http_response(content: ContentResponse) -> Response:
    """Copy a core response onto a Starlette response."""
    if content.streams_file:
        return StreamingResponse(
            content.iter_body(),
            status_code=content.status,
            headers=content.headers,
        )
    return Response(content=content.body, status_code=content.status, headers=content.headers)


def create_app(
    backends: dict[str, Backend] | None = None,
    settings: Settings | None = None,
) -> FastAPI:
    """Build the HTTP application.

    Args:
        backends: Ready backends to serve. When omitted, backends are loaded
            from settings at startup and closed at shutdown.
        settings: Settings used when backends are loaded at startup.
    """
    owns_backends = backends is None

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if owns_backends:
            app.state.backends = await load_backends(settings or get_settings())
        yield
        if owns_backends:
            for backend in app.state.backends.values():
                await backend.close()

    app = FastAPI(title="Song Cache", version=__version__, lifespan=lifespan)
    app.state.backends = backends or {}

    def get_backend(request: Request, name: str) -> Backend:
        backend = request.app.state.backends.get(name)
        if backend is None:
            raise HTTPException(status_code=404, detail=f"Unknown backend '{name}'")
        return backend

    @app.exception_handler(SongCacheError)
    async def song_cache_error_handler(request: Request, exc: SongCacheError) -> JSONResponse:
        status = _status_for(exc)
        if status >= 500:
            logger.error("Request failed", path=request.url.path, error=str(exc))
        return JSONResponse(status_code=status, content={"detail": exc.message})

    @app.get("/health")
    async def health(request: Request) -> dict[str, object]:
        return {
            "status": "ok",
            "version": __version__,
            "backends": sorted(request.app.state.backends),
        }

    @app.api_route("/song/{backend}/{file_name}", methods=["GET", "HEAD"])
    async def get_song(request: Request, backend: str, file_name: str) -> Response:
        """Serve a committed song; honours the Range header."""
        content = get_backend(request, backend).server.handle(
            ContentRequest(
                file_name=file_name,
                range_header=request.headers.get("range"),
                method=request.method,
            )
        )
        return _to_http_response(content)

    @app.post("/song/{backend}/{content_id}/prepare")
    async def prepare_song(request: Request, backend: str, content_id: str) -> dict[str, str]:
        """Download a song into the cache if needed; returns once it is servable."""
        path = await get_backend(request, backend).ensure_song(content_id)
        return {"status": "ready", "id": content_id, "file": path.name}

    @app.get("/search")
    async def search(
        request: Request,
        q: str = Query(..., min_length=1),
        backend: str | None = None,
    ) -> dict[str, object]:
        """Search one backend, or all of them."""
        if backend is not None:
            selected = [get_backend(request, backend)]
        else:
            selected = list(request.app.state.backends.values())

        songs = []
        for b in selected:
            songs.extend(song.to_dict() for song in await b.search(q))
        return {"songs": songs}

    return app
