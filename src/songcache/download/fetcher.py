"""
Song fetcher.

Streams a song from the upstream service into the cache store:
- Redirects discard the staged bytes and restart from the redirect target
- 200 commits the staged file
- Any other status discards the staged file and fails with UpstreamStatusError
- Transport failures discard the staged file, wait a fixed delay,
  re-authenticate, resolve a brand new stream location and start over

The transport retry favours availability: by default it never gives up and
never backs off. MAX_FETCH_ATTEMPTS bounds it when that is not acceptable.
"""

from __future__ import annotations

import asyncio
from pathlib import Path

import httpx
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    stop_never,
    wait_fixed,
)

from songcache.cache.store import CacheStore, StagingWriter
from songcache.exceptions import (
    AuthError,
    FilesystemError,
    NetworkError,
    RedirectLimitError,
    UpstreamStatusError,
    is_terminal,
)
from songcache.logging import get_logger
from songcache.types import StreamLocation, validate_content_id
from songcache.upstream.base import StreamingServiceClient

logger = get_logger(__name__)

REDIRECT_STATUSES = frozenset({301, 302, 303, 307, 308})

DEFAULT_RETRY_DELAY = 5.0
DEFAULT_MAX_REDIRECTS = 10
DEFAULT_CHUNK_SIZE = 64 * 1024
DOWNLOAD_TIMEOUT = 30.0


async def _retry_sleep(seconds: float) -> None:
    await asyncio.sleep(seconds)


class Fetcher:
    """Populates one cache entry at a time from the streaming service.

    Callers must serialize fetches per content ID (RequestCoordinator does).
    """

    def __init__(
        self,
        client: StreamingServiceClient,
        store: CacheStore,
        retry_delay: float = DEFAULT_RETRY_DELAY,
        max_attempts: int | None = None,
        max_redirects: int | None = DEFAULT_MAX_REDIRECTS,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        timeout: float = DOWNLOAD_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the fetcher.

        Args:
            client: Streaming service client issuing stream locations.
            store: Cache store receiving the bytes.
            retry_delay: Fixed delay in seconds before retrying after a transport failure.
            max_attempts: Maximum download attempts; None retries forever.
            max_redirects: Maximum redirects followed per attempt; None is unbounded.
            chunk_size: Size of the chunks written to the staging file.
            timeout: Timeout in seconds for the byte download.
            transport: Optional httpx transport (used by tests).
        """
        self.client = client
        self.store = store
        self.retry_delay = retry_delay
        self.max_attempts = max_attempts
        self.max_redirects = max_redirects
        self.chunk_size = chunk_size
        self.timeout = timeout
        self._transport = transport
        self._http: httpx.AsyncClient | None = None

    async def _get_http(self) -> httpx.AsyncClient:
        """Get or create the HTTP client used for song bytes."""
        if self._http is None:
            self._http = httpx.AsyncClient(
                timeout=self.timeout,
                follow_redirects=False,
                transport=self._transport,
            )
        return self._http

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._http:
            await self._http.aclose()
            self._http = None

    async def resolve_stream_location(
        self, content_id: str, reauthenticate: bool = False
    ) -> StreamLocation:
        """Get a fresh stream location from the streaming service.

        A rejected credential triggers one re-authentication. If that
        re-authentication is itself rejected the AuthError is terminal.

        Args:
            content_id: Song to resolve.
            reauthenticate: Reconnect before asking (used after a failure).

        Raises:
            AuthError: Credentials rejected after re-authentication.
            NetworkError: Transport failure talking to the service.
        """
        if reauthenticate:
            await self.client.reconnect()
            logger.info("Reconnected to streaming service", content_id=content_id)
        try:
            return await self.client.resolve_stream_location(content_id)
        except AuthError:
            if reauthenticate:
                raise
            logger.warning("Credential rejected, re-authenticating", content_id=content_id)
            await self.client.reconnect()
            return await self.client.resolve_stream_location(content_id)

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            retry=retry_if_exception(lambda e: not is_terminal(e)),
            wait=wait_fixed(self.retry_delay),
            sleep=_retry_sleep,
            stop=stop_after_attempt(self.max_attempts) if self.max_attempts else stop_never,
            before_sleep=self._log_retry,
            reraise=True,
        )

    def _log_retry(self, retry_state: RetryCallState) -> None:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(
            f"Error while fetching, reconnecting in {self.retry_delay:g}s",
            attempt=retry_state.attempt_number,
            error=str(error),
        )

    async def fetch(self, content_id: str, location: StreamLocation | None = None) -> Path:
        """Download a song into the cache and commit it.

        Args:
            content_id: Song to download.
            location: Stream location to start from; resolved when omitted.

        Returns:
            Path of the committed file.

        Raises:
            AuthError: Credentials rejected and re-authentication failed.
            UpstreamStatusError: Terminal non-success status (or too many redirects).
            FilesystemError: Staging or commit failed.
            NetworkError: Only when max_attempts is set and exhausted.
        """
        validate_content_id(content_id)

        async for attempt in self._retrying():
            with attempt:
                if attempt.retry_state.attempt_number > 1:
                    location = await self.resolve_stream_location(content_id, reauthenticate=True)
                elif location is None:
                    location = await self.resolve_stream_location(content_id)
                return await self._download(location)

        raise AssertionError("unreachable: retry loop exited without outcome")

    async def _download(self, location: StreamLocation) -> Path:
        """Run one attempt: follow redirects until a terminal response."""
        content_id = location.content_id
        redirects = 0

        while True:
            logger.info("Downloading song", content_id=content_id)
            writer = self.store.open_staging_writer(content_id)
            try:
                redirect_url = await self._stream_into(location, writer)
            except BaseException:
                self._discard_staging(content_id)
                raise

            if redirect_url is None:
                try:
                    path = self.store.commit(content_id)
                except FilesystemError:
                    self._discard_staging(content_id)
                    raise
                logger.info(
                    "Download finished",
                    content_id=content_id,
                    size=writer.bytes_written,
                )
                return path

            self.store.discard(content_id)
            redirects += 1
            if self.max_redirects is not None and redirects > self.max_redirects:
                raise RedirectLimitError(
                    302,
                    "Too many redirects",
                    context={"content_id": content_id, "redirects": redirects},
                )
            logger.info("Redirected, retrying with new location", content_id=content_id)
            location = location.redirected(redirect_url)

    async def _stream_into(self, location: StreamLocation, writer: StagingWriter) -> str | None:
        """Stream one response into the staging writer.

        Returns:
            The absolute redirect target, or None when the body was written.
        """
        http = await self._get_http()
        try:
            async with http.stream("GET", location.url) as response:
                status = response.status_code

                if status in REDIRECT_STATUSES:
                    target = response.headers.get("location")
                    if not target:
                        raise UpstreamStatusError(
                            status,
                            "Redirect without Location header",
                            context={"content_id": location.content_id},
                        )
                    return str(response.url.join(target))

                if status != 200:
                    logger.error(
                        "Unknown status code",
                        content_id=location.content_id,
                        status_code=status,
                    )
                    raise UpstreamStatusError(
                        status, context={"content_id": location.content_id}
                    )

                async for chunk in response.aiter_bytes(self.chunk_size):
                    writer.write(chunk)
        except httpx.HTTPError as e:
            raise NetworkError(
                f"Transport failure while streaming: {e.__class__.__name__}",
                context={"content_id": location.content_id, "error": str(e)},
            ) from e

        return None

    def _discard_staging(self, content_id: str) -> None:
        """Best-effort removal of a staging file after a failure."""
        try:
            self.store.discard(content_id)
        except FilesystemError as e:
            logger.error("Failed to clean up staging file", content_id=content_id, error=str(e))
