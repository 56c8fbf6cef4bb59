"""
Configuration management using pydantic-settings.

Loads configuration from environment variables and .env files.
Validates fields and provides typed access to settings. The cache core never
reads settings directly; backend wiring passes plain values down.
"""

from __future__ import annotations

import re
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from songcache.exceptions import ConfigurationError

_SUFFIX_RE = re.compile(r"^[A-Za-z0-9]{1,16}$")


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Optional:
        SONG_CACHE_PATH: Root directory of the song cache
        BACKENDS: Comma-separated list of enabled backends
        AUDIO_FORMAT: File suffix of committed songs
        UPSTREAM_BASE_URL: Base URL of the streaming service API
        UPSTREAM_CREDENTIALS_FILE: JSON file with streaming service credentials
        UPSTREAM_TIMEOUT: Timeout for upstream requests in seconds
        RETRY_DELAY_SECONDS: Fixed delay before a fetch is retried after a network error
        MAX_FETCH_ATTEMPTS: Bound on fetch attempts (unset means retry forever)
        MAX_REDIRECTS: Bound on followed redirects per attempt (unset means unbounded)
        SEARCH_RESULT_COUNT: Number of songs returned by search
        HOST / PORT: Bind address of the HTTP server
        LOG_LEVEL / LOG_FILE: Logging configuration
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Cache layout
    SONG_CACHE_PATH: Path = Field(
        default=Path.home() / ".songcache" / "songs",
        description="Root directory of the song cache",
    )
    BACKENDS: str = Field(default="stream", description="Enabled backends")
    AUDIO_FORMAT: str = Field(default="mp3", description="Suffix of cached songs")

    # Upstream streaming service
    UPSTREAM_BASE_URL: str = Field(
        default="http://127.0.0.1:8700/api",
        description="Base URL of the streaming service API",
    )
    UPSTREAM_CREDENTIALS_FILE: Path = Field(
        default=Path.home() / ".songcache-creds.json",
        description="JSON file with streaming service credentials",
    )
    UPSTREAM_TIMEOUT: float = Field(
        default=30.0, gt=0.0, description="Upstream request timeout in seconds"
    )

    # Fetch behaviour
    RETRY_DELAY_SECONDS: float = Field(
        default=5.0, ge=0.0, description="Delay before retrying a failed fetch"
    )
    MAX_FETCH_ATTEMPTS: int | None = Field(
        default=None, ge=1, description="Maximum fetch attempts (None = unbounded)"
    )
    MAX_REDIRECTS: int | None = Field(
        default=10, ge=0, description="Maximum redirects per attempt (None = unbounded)"
    )

    SEARCH_RESULT_COUNT: int = Field(
        default=10, ge=1, le=100, description="Number of songs returned by search"
    )

    # HTTP server
    HOST: str = Field(default="127.0.0.1", description="Server bind host")
    PORT: int = Field(default=8080, ge=1, le=65535, description="Server bind port")

    # Logging
    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Logging level"
    )
    LOG_FILE: Path | None = Field(default=None, description="JSON lines log file")

    @property
    def backend_names(self) -> list[str]:
        """Get enabled backend names, in configured order."""
        names: list[str] = []
        for raw in self.BACKENDS.split(","):
            name = raw.strip().lower()
            if name and name not in names:
                names.append(name)
        return names

    @property
    def song_cache_path(self) -> Path:
        """Get the cache root with ~ expanded."""
        return self.SONG_CACHE_PATH.expanduser()

    @field_validator("AUDIO_FORMAT")
    @classmethod
    def validate_audio_format(cls, v: str) -> str:
        """Validate that AUDIO_FORMAT is a bare file suffix."""
        v = v.strip().lstrip(".").lower()
        if not _SUFFIX_RE.match(v):
            raise ValueError("AUDIO_FORMAT must be a short alphanumeric file suffix")
        return v

    @field_validator("BACKENDS")
    @classmethod
    def validate_backends(cls, v: str) -> str:
        """Ensure at least one backend is enabled."""
        if not any(part.strip() for part in v.split(",")):
            raise ValueError("BACKENDS must name at least one backend")
        return v

    @field_validator("UPSTREAM_BASE_URL")
    @classmethod
    def validate_upstream_base_url(cls, v: str) -> str:
        """Validate that UPSTREAM_BASE_URL is an http(s) URL."""
        if not v.startswith(("http://", "https://")):
            raise ValueError("UPSTREAM_BASE_URL must start with http:// or https://")
        return v.rstrip("/")

    def ensure_directories(self) -> None:
        """Create the cache root if it doesn't exist.

        Raises:
            ConfigurationError: If SONG_CACHE_PATH cannot be created.
        """
        try:
            self.song_cache_path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ConfigurationError(
                "SONG_CACHE_PATH cannot be created",
                context={"path": str(self.song_cache_path), "error": str(e)},
            ) from e

    def redacted_display(self) -> dict[str, str | int | float | None]:
        """Return settings for display. Credentials live in a file and are never shown."""
        return {
            "SONG_CACHE_PATH": str(self.song_cache_path),
            "BACKENDS": ", ".join(self.backend_names),
            "AUDIO_FORMAT": self.AUDIO_FORMAT,
            "UPSTREAM_BASE_URL": self.UPSTREAM_BASE_URL,
            "UPSTREAM_CREDENTIALS_FILE": str(self.UPSTREAM_CREDENTIALS_FILE),
            "UPSTREAM_TIMEOUT": self.UPSTREAM_TIMEOUT,
            "RETRY_DELAY_SECONDS": self.RETRY_DELAY_SECONDS,
            "MAX_FETCH_ATTEMPTS": self.MAX_FETCH_ATTEMPTS,
            "MAX_REDIRECTS": self.MAX_REDIRECTS,
            "SEARCH_RESULT_COUNT": self.SEARCH_RESULT_COUNT,
            "HOST": self.HOST,
            "PORT": self.PORT,
            "LOG_LEVEL": self.LOG_LEVEL,
            "LOG_FILE": str(self.LOG_FILE) if self.LOG_FILE else None,
        }


@lru_cache
def get_settings() -> Settings:
    """Get cached settings singleton.

    Returns:
        Settings instance loaded from environment.

    Raises:
        ValidationError: If settings are invalid.
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache (useful for testing)."""
    get_settings.cache_clear()
