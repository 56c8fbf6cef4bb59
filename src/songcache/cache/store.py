"""
On-disk song cache with atomic staging -> commit.

Layout per backend namespace:
    <cache_root>/<backend>/<content_id>.<ext>             committed
    <cache_root>/<backend>/incomplete/<content_id>.<ext>  staging

Staging files live in their own directory so a crash mid-download can never
be mistaken for a valid cache entry. Committed files are immutable and trusted
without re-verification.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import BinaryIO

from songcache.exceptions import FilesystemError
from songcache.logging import get_logger
from songcache.types import CacheState, validate_content_id

logger = get_logger(__name__)

STAGING_DIRNAME = "incomplete"


class StagingWriter:
    """Exclusive write handle on one staging file."""

    def __init__(self, content_id: str, path: Path, handle: BinaryIO) -> None:
        self.content_id = content_id
        self.path = path
        self._handle = handle
        self.bytes_written = 0

    @property
    def closed(self) -> bool:
        return self._handle.closed

    def write(self, chunk: bytes) -> None:
        """Append a chunk to the staging file.

        Raises:
            FilesystemError: If the write fails (disk full, I/O error).
        """
        try:
            self._handle.write(chunk)
        except OSError as e:
            raise FilesystemError(
                "Failed to write staging file",
                context={"content_id": self.content_id, "path": str(self.path), "error": str(e)},
            ) from e
        self.bytes_written += len(chunk)

    def close(self) -> None:
        """Flush and close the handle. Safe to call twice."""
        if self._handle.closed:
            return
        try:
            self._handle.flush()
            os.fsync(self._handle.fileno())
        except OSError as e:
            raise FilesystemError(
                "Failed to flush staging file",
                context={"content_id": self.content_id, "path": str(self.path), "error": str(e)},
            ) from e
        finally:
            self._handle.close()


class CacheStore:
    """Durable, atomic file placement for one backend namespace.

    The caller (the fetcher, serialized per content ID by the request
    coordinator) is the only writer of a given staging file.
    """

    def __init__(self, cache_root: str | Path, backend: str, extension: str = "mp3") -> None:
        """Initialize the store.

        Args:
            cache_root: Root directory shared by all backends.
            backend: Backend namespace; becomes a subdirectory of cache_root.
            extension: Fixed content-type suffix of cached files.
        """
        self.cache_root = Path(cache_root)
        self.backend = backend
        self.extension = extension.lstrip(".")
        self.backend_dir = self.cache_root / backend
        self.staging_dir = self.backend_dir / STAGING_DIRNAME
        self._writers: dict[str, StagingWriter] = {}

    def init(self) -> None:
        """Create the cache directories and clear staging leftovers from a previous run."""
        self.staging_dir.mkdir(parents=True, exist_ok=True)
        leftovers = list(self.staging_dir.glob(f"*.{self.extension}"))
        for path in leftovers:
            path.unlink(missing_ok=True)
        if leftovers:
            logger.warning(
                "Removed incomplete downloads from previous run",
                backend=self.backend,
                count=len(leftovers),
            )
        logger.debug("Cache store initialized", backend_dir=str(self.backend_dir))

    def committed_path(self, content_id: str) -> Path:
        """Get the committed path for a content ID."""
        validate_content_id(content_id)
        return self.backend_dir / f"{content_id}.{self.extension}"

    def staging_path(self, content_id: str) -> Path:
        """Get the staging path for a content ID."""
        validate_content_id(content_id)
        return self.staging_dir / f"{content_id}.{self.extension}"

    def exists(self, content_id: str) -> bool:
        """Return True iff the committed file exists."""
        return self.committed_path(content_id).is_file()

    def state(self, content_id: str) -> CacheState:
        """Get the cache state of a content ID."""
        if self.exists(content_id):
            return CacheState.COMMITTED
        if self.staging_path(content_id).exists():
            return CacheState.STAGING
        return CacheState.ABSENT

    def open_staging_writer(self, content_id: str) -> StagingWriter:
        """Create or truncate the staging file for exclusive write.

        Raises:
            FilesystemError: If the staging file cannot be opened.
        """
        path = self.staging_path(content_id)

        previous = self._writers.pop(content_id, None)
        if previous is not None and not previous.closed:
            previous.close()

        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            handle = open(path, "wb")
        except OSError as e:
            raise FilesystemError(
                "Failed to open staging file",
                context={"content_id": content_id, "path": str(path), "error": str(e)},
            ) from e

        writer = StagingWriter(content_id, path, handle)
        self._writers[content_id] = writer
        return writer

    def commit(self, content_id: str) -> Path:
        """Close the staging writer and atomically rename staging -> committed.

        A committed entry never transitions again: committing an ID that is
        already committed drops any new staging file and leaves the existing
        file untouched.

        Returns:
            The committed path.

        Raises:
            FilesystemError: If closing or renaming fails. The staging file is
                left in place for discard().
        """
        staging = self.staging_path(content_id)
        committed = self.committed_path(content_id)

        writer = self._writers.pop(content_id, None)
        if writer is not None:
            writer.close()

        if committed.is_file():
            if staging.exists():
                logger.warning("Song already committed; dropping new download", content_id=content_id)
                self.discard(content_id)
            return committed

        if not staging.exists():
            raise FilesystemError(
                "Nothing staged to commit",
                context={"content_id": content_id, "path": str(staging)},
            )

        try:
            os.replace(staging, committed)
        except OSError as e:
            raise FilesystemError(
                "Failed to commit staging file",
                context={"content_id": content_id, "path": str(committed), "error": str(e)},
            ) from e

        logger.debug("Committed song", content_id=content_id, path=str(committed))
        return committed

    def discard(self, content_id: str) -> None:
        """Remove the staging file if present. Idempotent.

        Raises:
            FilesystemError: If the file exists but cannot be removed.
        """
        staging = self.staging_path(content_id)

        writer = self._writers.pop(content_id, None)
        if writer is not None and not writer.closed:
            try:
                writer.close()
            except FilesystemError as e:
                # The file is removed below either way.
                logger.debug("Ignoring flush failure on discard", error=str(e))

        try:
            staging.unlink(missing_ok=True)
        except OSError as e:
            raise FilesystemError(
                "Failed to remove staging file",
                context={"content_id": content_id, "path": str(staging), "error": str(e)},
            ) from e
