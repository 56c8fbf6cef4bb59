"""
Range-aware delivery of committed songs.

The content server only reads committed files. It never starts a fetch and
never consults the request coordinator: a miss here is the caller's error.
Range semantics are computed here; the HTTP layer only copies status,
headers and body onto the wire.
"""

from __future__ import annotations

import json
import mimetypes
from dataclasses import dataclass, field
from email.utils import formatdate
from pathlib import Path
from typing import Iterator

from songcache.cache.store import CacheStore
from songcache.exceptions import InvalidContentID
from songcache.logging import get_logger
from songcache.serving.ranges import (
    UNSATISFIABLE,
    ByteRange,
    parse_range,
    unsatisfied_content_range,
)
from songcache.types import validate_content_id

logger = get_logger(__name__)

READ_CHUNK_SIZE = 64 * 1024

AUDIO_CONTENT_TYPES = {
    "mp3": "audio/mpeg",
    "m4a": "audio/mp4",
    "aac": "audio/aac",
    "ogg": "audio/ogg",
    "opus": "audio/ogg",
    "flac": "audio/flac",
    "wav": "audio/wav",
    "webm": "audio/webm",
}


def content_type_for(extension: str) -> str:
    """Get the MIME type served for a file suffix."""
    ext = extension.lower().lstrip(".")
    if ext in AUDIO_CONTENT_TYPES:
        return AUDIO_CONTENT_TYPES[ext]
    guessed, _ = mimetypes.guess_type(f"file.{ext}")
    return guessed or "application/octet-stream"


@dataclass(frozen=True)
class ContentRequest:
    """What the core needs from an incoming HTTP request."""

    file_name: str  # "<content_id>.<ext>" or bare "<content_id>"
    range_header: str | None = None
    method: str = "GET"


@dataclass
class ContentResponse:
    """Status, headers and body source for the HTTP layer to write out."""

    status: int
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    path: Path | None = None
    offset: int = 0
    length: int = 0

    @property
    def streams_file(self) -> bool:
        return self.path is not None and self.length > 0

    def iter_body(self, chunk_size: int = READ_CHUNK_SIZE) -> Iterator[bytes]:
        """Yield the body; file-backed bodies are read lazily in chunks."""
        if self.path is None or self.length <= 0:
            if self.body:
                yield self.body
            return

        remaining = self.length
        with open(self.path, "rb") as f:
            f.seek(self.offset)
            while remaining > 0:
                chunk = f.read(min(chunk_size, remaining))
                if not chunk:
                    break
                remaining -= len(chunk)
                yield chunk

    def read(self) -> bytes:
        """Read the whole body into memory."""
        return b"".join(self.iter_body())


def _error(status: int, detail: str, extra_headers: dict[str, str] | None = None) -> ContentResponse:
    body = json.dumps({"detail": detail}).encode()
    headers = {
        "Content-Type": "application/json",
        "Content-Length": str(len(body)),
    }
    if extra_headers:
        headers.update(extra_headers)
    return ContentResponse(status=status, headers=headers, body=body)


class ContentServer:
    """Serves committed cache files of one backend with byte-range support."""

    def __init__(self, store: CacheStore) -> None:
        self.store = store
        self.content_type = content_type_for(store.extension)

    def _content_id_from(self, file_name: str) -> str:
        suffix = f".{self.store.extension}"
        content_id = file_name[: -len(suffix)] if file_name.endswith(suffix) else file_name
        return validate_content_id(content_id)

    def handle(self, request: ContentRequest) -> ContentResponse:
        """Answer one request for a committed song.

        Returns:
            200 with the full content, 206 with one range, 416 for an
            unsatisfiable range, 400 for a malformed ID, 404 when the song is
            not committed, 405 for methods other than GET/HEAD.
        """
        method = request.method.upper()
        if method not in ("GET", "HEAD"):
            return _error(405, "Method not allowed", {"Allow": "GET, HEAD"})

        try:
            content_id = self._content_id_from(request.file_name)
        except InvalidContentID:
            logger.warning("Rejected malformed song request", file_name=request.file_name[:64])
            return _error(400, "Invalid song identifier")

        path = self.store.committed_path(content_id)
        try:
            stat = path.stat()
        except FileNotFoundError:
            return _error(404, "Song not found")

        size = stat.st_size
        headers = {
            "Accept-Ranges": "bytes",
            "Content-Type": self.content_type,
            "Last-Modified": formatdate(stat.st_mtime, usegmt=True),
            "Cache-Control": "public, max-age=0",
        }

        byte_range = parse_range(request.range_header, size)

        if byte_range is UNSATISFIABLE:
            return _error(
                416,
                "Range not satisfiable",
                {"Accept-Ranges": "bytes", "Content-Range": unsatisfied_content_range(size)},
            )

        if isinstance(byte_range, ByteRange):
            status = 206
            offset, length = byte_range.start, byte_range.length
            headers["Content-Range"] = byte_range.content_range(size)
        else:
            status = 200
            offset, length = 0, size

        headers["Content-Length"] = str(length)

        if method == "HEAD":
            return ContentResponse(status=status, headers=headers)
        return ContentResponse(
            status=status, headers=headers, path=path, offset=offset, length=length
        )
