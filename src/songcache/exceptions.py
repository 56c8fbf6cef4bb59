"""
Custom exception hierarchy for the song cache.

All exceptions inherit from SongCacheError, which provides optional context
for structured error handling and logging.
"""

from __future__ import annotations

from typing import Any


class SongCacheError(Exception):
    """Base exception for all song cache errors.

    Attributes:
        message: Human-readable error message.
        context: Optional structured context for logging/debugging.
    """

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        if self.context:
            ctx_str = ", ".join(f"{k}={v!r}" for k, v in self.context.items())
            return f"{self.message} ({ctx_str})"
        return self.message

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, context={self.context!r})"


class ConfigurationError(SongCacheError):
    """Raised when configuration is invalid or missing."""

    pass


class InvalidContentID(SongCacheError, ValueError):
    """Raised when a content ID is not a safe path segment.

    Rejected before any filesystem or network access.
    """

    pass


class NetworkError(SongCacheError):
    """Raised on a transient transport failure (reset, timeout, DNS).

    Handled by the fetcher's retry loop.
    """

    pass


class AuthError(SongCacheError):
    """Raised when the streaming service rejects our credentials."""

    pass


class UpstreamStatusError(SongCacheError):
    """Raised when the upstream answers with a non-success, non-redirect status.

    Attributes:
        status: The HTTP status code received.
    """

    def __init__(
        self,
        status: int,
        message: str | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message or f"Unexpected upstream status {status}", context)
        self.status = status


class RedirectLimitError(UpstreamStatusError):
    """Raised when an attempt follows more redirects than allowed."""

    pass


class FilesystemError(SongCacheError):
    """Raised when a staging or commit operation fails.

    Context should include:
        - content_id: The song being cached
        - path: The path involved
        - error: The underlying OS error
    """

    pass


class BackendNotFoundError(SongCacheError):
    """Raised when a configured backend name has no implementation."""

    pass


def is_terminal(error: BaseException) -> bool:
    """Return True if the error ends a fetch instead of triggering a retry."""
    return not isinstance(error, NetworkError)
