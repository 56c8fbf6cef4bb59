"""
Backend: one streaming service namespace wired to its own cache.

A backend bundles the streaming service client with the cache store,
fetcher, request coordinator and content server of its namespace.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import httpx

from songcache.cache.store import CacheStore
from songcache.config import Settings
from songcache.download.coordinator import FailureHandler, RequestCoordinator, SuccessHandler
from songcache.download.fetcher import DEFAULT_MAX_REDIRECTS, DEFAULT_RETRY_DELAY, Fetcher
from songcache.exceptions import InvalidContentID
from songcache.logging import get_logger, log_context
from songcache.serving.content_server import ContentServer
from songcache.types import CacheState, Song, validate_content_id
from songcache.upstream.base import StreamingServiceClient

logger = get_logger(__name__)

# Search entry type for single tracks (albums and artists use other codes)
TRACK_ENTRY_TYPE = "1"


class Backend:
    """One streaming service namespace and its cache."""

    def __init__(
        self,
        name: str,
        client: StreamingServiceClient,
        cache_root: str | Path,
        extension: str = "mp3",
        retry_delay: float = DEFAULT_RETRY_DELAY,
        max_attempts: int | None = None,
        max_redirects: int | None = DEFAULT_MAX_REDIRECTS,
        search_result_count: int = 10,
        timeout: float = 30.0,
        fetch_transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.name = name
        self.client = client
        self.search_result_count = search_result_count
        self.store = CacheStore(cache_root, name, extension)
        self.fetcher = Fetcher(
            client,
            self.store,
            retry_delay=retry_delay,
            max_attempts=max_attempts,
            max_redirects=max_redirects,
            timeout=timeout,
            transport=fetch_transport,
        )
        self.coordinator = RequestCoordinator(self.store, self.fetcher)
        self.server = ContentServer(self.store)

    @classmethod
    def from_settings(
        cls, name: str, client: StreamingServiceClient, settings: Settings
    ) -> Backend:
        """Create a backend with the values configured in settings."""
        return cls(
            name,
            client,
            settings.song_cache_path,
            extension=settings.AUDIO_FORMAT,
            retry_delay=settings.RETRY_DELAY_SECONDS,
            max_attempts=settings.MAX_FETCH_ATTEMPTS,
            max_redirects=settings.MAX_REDIRECTS,
            search_result_count=settings.SEARCH_RESULT_COUNT,
            timeout=settings.UPSTREAM_TIMEOUT,
        )

    async def init(self) -> None:
        """Create the cache directories and connect to the streaming service."""
        with log_context(backend=self.name):
            self.store.init()
            await self.client.connect()

    async def close(self) -> None:
        """Stop in-flight downloads and close connections."""
        await self.coordinator.cancel_all()
        await self.fetcher.close()
        await self.client.close()

    async def prepare_song(
        self, content_id: str, on_success: SuccessHandler, on_failure: FailureHandler
    ) -> None:
        """Cache a song; exactly one handler is called when it is ready or failed."""
        await self.coordinator.prepare(content_id, on_success, on_failure)

    async def ensure_song(self, content_id: str) -> Path:
        """Cache a song and return its committed path."""
        return await self.coordinator.ensure(content_id)

    def song_state(self, content_id: str) -> CacheState:
        """Get the cache state of a song."""
        return self.store.state(content_id)

    async def search(self, terms: str) -> list[Song]:
        """Search the streaming service for songs.

        Entries are ranked by score, albums and artists are dropped.

        Args:
            terms: Free-text search terms.

        Returns:
            At most search_result_count songs.
        """
        with log_context(backend=self.name):
            entries = await self.client.search(terms, self.search_result_count + 1)

        ranked = sorted(entries, key=_entry_score, reverse=True)
        songs: list[Song] = []
        for entry in ranked:
            if str(entry.get("type")) != TRACK_ENTRY_TYPE:
                continue
            song = self._song_from_track(entry.get("track") or {})
            if song is not None:
                songs.append(song)

        logger.debug("Search finished", backend=self.name, terms=terms, results=len(songs))
        return songs[: self.search_result_count]

    def _song_from_track(self, track: dict[str, Any]) -> Song | None:
        content_id = track.get("nid") or track.get("id")
        try:
            validate_content_id(content_id)
        except InvalidContentID:
            return None

        duration = track.get("durationMillis")
        try:
            duration_ms = int(duration) if duration is not None else None
        except (TypeError, ValueError):
            duration_ms = None

        return Song(
            id=content_id,
            backend=self.name,
            title=str(track.get("title") or ""),
            artist=str(track.get("artist") or ""),
            album=track.get("album"),
            duration=duration_ms,
            format=self.store.extension,
        )


def _entry_score(entry: dict[str, Any]) -> float:
    try:
        return float(entry.get("score") or 0.0)
    except (TypeError, ValueError):
        return 0.0
