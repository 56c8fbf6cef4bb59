"""
Base class for streaming service clients.

A streaming service client hands out short-lived stream locations for songs
and can re-authenticate on demand. Failures surface as AuthError (credentials
rejected) or NetworkError (transport failure).
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from songcache.types import StreamLocation


class StreamingServiceClient(ABC):
    """Abstract interface for streaming service clients."""

    @abstractmethod
    async def connect(self) -> None:
        """Authenticate with the service."""
        ...

    async def reconnect(self) -> None:
        """Drop the current credential and authenticate again."""
        await self.connect()

    @abstractmethod
    async def resolve_stream_location(self, content_id: str) -> StreamLocation:
        """Ask the service for a fresh stream URL for a song."""
        ...

    @abstractmethod
    async def search(self, terms: str, limit: int) -> list[dict[str, Any]]:
        """Return raw search entries for the given terms."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Close any open connections."""
        ...
