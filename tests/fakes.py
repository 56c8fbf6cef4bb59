"""
Test doubles for the streaming service and the song byte transport.
"""

from __future__ import annotations

from typing import Any, AsyncIterator, Callable

import httpx

from songcache.types import StreamLocation
from songcache.upstream.base import StreamingServiceClient

CDN = "https://cdn.test"


class FakeStreamingClient(StreamingServiceClient):
    """Streaming service double that hands out numbered CDN URLs.

    resolve_errors are raised, in order, by the next resolve calls.
    """

    def __init__(self) -> None:
        self.connect_calls = 0
        self.reconnect_calls = 0
        self.resolve_calls: list[str] = []
        self.resolve_errors: list[Exception] = []
        self.connect_error: Exception | None = None
        self.reconnect_error: Exception | None = None
        self.search_entries: list[dict[str, Any]] = []
        self.closed = False

    async def connect(self) -> None:
        self.connect_calls += 1
        if self.connect_error is not None:
            raise self.connect_error

    async def reconnect(self) -> None:
        self.reconnect_calls += 1
        if self.reconnect_error is not None:
            raise self.reconnect_error

    async def resolve_stream_location(self, content_id: str) -> StreamLocation:
        self.resolve_calls.append(content_id)
        if self.resolve_errors:
            raise self.resolve_errors.pop(0)
        return StreamLocation(
            url=f"{CDN}/{content_id}?attempt={len(self.resolve_calls)}",
            content_id=content_id,
        )

    async def search(self, terms: str, limit: int) -> list[dict[str, Any]]:
        return self.search_entries[:limit]

    async def close(self) -> None:
        self.closed = True


class FailingStream(httpx.AsyncByteStream):
    """Response body that yields some bytes, then drops the connection."""

    def __init__(self, head: bytes) -> None:
        self.head = head

    async def __aiter__(self) -> AsyncIterator[bytes]:
        yield self.head
        raise httpx.ReadError("connection reset by peer")


class RecordingTransport(httpx.MockTransport):
    """MockTransport that remembers every requested URL."""

    def __init__(self, handler: Callable[[httpx.Request], httpx.Response]) -> None:
        self.requests: list[str] = []

        def recording(request: httpx.Request) -> httpx.Response:
            self.requests.append(str(request.url))
            return handler(request)

        super().__init__(recording)
