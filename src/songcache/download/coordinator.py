"""
Request coordinator.

The single point that deduplicates concurrent song requests: the first
request for a missing song starts one fetch; later requests for the same
song join its waiter list; everybody gets the one outcome, in registration
order.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from pathlib import Path
from typing import Awaitable, Callable, Protocol

from songcache.cache.store import CacheStore
from songcache.exceptions import SongCacheError
from songcache.logging import get_logger, log_context
from songcache.types import validate_content_id

logger = get_logger(__name__)

SuccessHandler = Callable[[Path], None]
FailureHandler = Callable[[SongCacheError], None]


class SongFetcher(Protocol):
    """Anything that can download one song into the store."""

    def fetch(self, content_id: str) -> Awaitable[Path]: ...


@dataclass
class PendingRequest:
    """In-flight bookkeeping for one content ID."""

    content_id: str
    waiters: list[tuple[SuccessHandler, FailureHandler]] = field(default_factory=list)
    task: asyncio.Task[None] | None = None


class RequestCoordinator:
    """Deduplicates downloads and fans the outcome out to all waiters.

    Owns the pending table; entries are created on the first miss and
    destroyed when the fetch concludes so a later request starts a fresh
    fetch cycle.
    """

    def __init__(self, store: CacheStore, fetcher: SongFetcher) -> None:
        self.store = store
        self.fetcher = fetcher
        self._pending: dict[str, PendingRequest] = {}
        self._lock = asyncio.Lock()
        self._closing = False

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def is_pending(self, content_id: str) -> bool:
        return content_id in self._pending

    async def prepare(
        self,
        content_id: str,
        on_success: SuccessHandler,
        on_failure: FailureHandler,
    ) -> None:
        """Make sure a song is cached, then call exactly one of the handlers.

        Returns as soon as the request is registered; the handlers run when
        the song is ready (immediately on a cache hit).

        Args:
            content_id: Song to prepare.
            on_success: Called with the committed path.
            on_failure: Called with the terminal error.

        Raises:
            InvalidContentID: Synchronously, before any I/O.
        """
        validate_content_id(content_id)

        refused = False
        async with self._lock:
            pending = self._pending.get(content_id)
            if pending is not None:
                pending.waiters.append((on_success, on_failure))
                logger.debug(
                    "Song already downloading, joined waiters",
                    content_id=content_id,
                    waiters=len(pending.waiters),
                )
                return

            hit = self.store.exists(content_id)
            if not hit and self._closing:
                refused = True
            elif not hit:
                pending = PendingRequest(content_id, [(on_success, on_failure)])
                self._pending[content_id] = pending
                pending.task = asyncio.create_task(
                    self._run_fetch(content_id), name=f"fetch-{content_id}"
                )

        if hit:
            logger.debug("Song found from cache", content_id=content_id)
            self._call(on_success, self.store.committed_path(content_id), content_id)
        elif refused:
            logger.warning("Refusing download while shutting down", content_id=content_id)
            error = SongCacheError("Shutting down", context={"content_id": content_id})
            self._call(on_failure, error, content_id)

    async def ensure(self, content_id: str) -> Path:
        """Awaitable form of prepare().

        Returns:
            Path of the committed song.

        Raises:
            SongCacheError: The terminal error of the fetch.
        """
        loop = asyncio.get_running_loop()
        future: asyncio.Future[Path] = loop.create_future()

        def on_success(path: Path) -> None:
            if not future.done():
                future.set_result(path)

        def on_failure(error: SongCacheError) -> None:
            if not future.done():
                future.set_exception(error)

        await self.prepare(content_id, on_success, on_failure)
        return await future

    async def wait_idle(self) -> None:
        """Wait until every in-flight fetch has concluded."""
        while self._pending:
            tasks = [p.task for p in list(self._pending.values()) if p.task is not None]
            if not tasks:
                return
            await asyncio.gather(*tasks, return_exceptions=True)

    async def cancel_all(self) -> None:
        """Cancel in-flight fetches; their waiters receive a failure. Used at shutdown.

        Once called, misses are refused instead of starting new fetches.
        """
        async with self._lock:
            self._closing = True
            tasks = [p.task for p in list(self._pending.values()) if p.task is not None]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

        # Tasks cancelled before their first step never reach _run_fetch.
        async with self._lock:
            leftover = list(self._pending.values())
            self._pending.clear()
        for pending in leftover:
            error = SongCacheError(
                "Download cancelled", context={"content_id": pending.content_id}
            )
            for _, on_failure in pending.waiters:
                self._call(on_failure, error, pending.content_id)

    async def _run_fetch(self, content_id: str) -> None:
        path: Path | None = None
        error: SongCacheError | None = None
        cancelled = False

        with log_context(backend=self.store.backend, content_id=content_id):
            try:
                path = await self.fetcher.fetch(content_id)
            except SongCacheError as e:
                logger.error("Song download failed", error=str(e))
                error = e
            except asyncio.CancelledError:
                logger.warning("Song download cancelled")
                error = SongCacheError("Download cancelled", context={"content_id": content_id})
                cancelled = True
            except Exception as e:
                logger.exception("Unexpected error while downloading song")
                error = SongCacheError(
                    "Unexpected error while downloading song",
                    context={"content_id": content_id, "error": repr(e)},
                )

            async with self._lock:
                pending = self._pending.pop(content_id, None)

            # None when cancel_all already failed the waiters
            waiters = pending.waiters if pending is not None else []

            for on_success, on_failure in waiters:
                if error is None:
                    self._call(on_success, path, content_id)
                else:
                    self._call(on_failure, error, content_id)

        if cancelled:
            raise asyncio.CancelledError

    @staticmethod
    def _call(handler: Callable[[object], None], arg: object, content_id: str) -> None:
        """Invoke one waiter; a failing waiter must not starve the others."""
        try:
            handler(arg)
        except Exception:
            logger.exception("Waiter raised while handling outcome", content_id=content_id)
