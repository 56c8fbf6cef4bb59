"""
Core types for the song cache.

This module defines the fundamental data structures used throughout the system:
- Content ID validation (IDs become path segments)
- CacheState enum for the on-disk life cycle of a song
- Frozen dataclasses for StreamLocation and Song
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from songcache.exceptions import InvalidContentID

# Letters, digits, underscore and dash only; no dots so ".." can never appear.
CONTENT_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,128}$")


def validate_content_id(content_id: Any) -> str:
    """Check that a content ID is safe to use as a single path segment.

    Args:
        content_id: The externally supplied identifier.

    Returns:
        The identifier, unchanged.

    Raises:
        InvalidContentID: If the ID is empty, too long or contains anything
            other than letters, digits, '_' and '-'.
    """
    if not isinstance(content_id, str) or not CONTENT_ID_PATTERN.match(content_id):
        raise InvalidContentID(
            "Invalid content ID",
            context={"content_id": str(content_id)[:64]},
        )
    return content_id


def utc_now() -> datetime:
    """Get current UTC time with timezone info."""
    return datetime.now(timezone.utc)


class CacheState(str, Enum):
    """State of a song's cache entry on disk."""

    ABSENT = "absent"  # No file
    STAGING = "staging"  # Partial download under incomplete/
    COMMITTED = "committed"  # Complete, immutable, servable


@dataclass(frozen=True)
class StreamLocation:
    """Short-lived URL granting access to a song's bytes for one fetch attempt.

    Never persisted.
    """

    url: str
    content_id: str
    issued_at: datetime = field(default_factory=utc_now)

    def redirected(self, url: str) -> StreamLocation:
        """Return the location a redirect points to."""
        return StreamLocation(url=url, content_id=self.content_id)


@dataclass(frozen=True)
class Song:
    """A song as returned by backend search."""

    id: str
    backend: str
    title: str
    artist: str
    album: str | None = None
    duration: int | None = None  # milliseconds
    format: str = "mp3"

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "backend": self.backend,
            "title": self.title,
            "artist": self.artist,
            "album": self.album,
            "duration": self.duration,
            "format": self.format,
        }
