"""
Tests for configuration module.
"""

from __future__ import annotations

import os
from pathlib import Path
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from songcache.config import Settings, clear_settings_cache, get_settings
from songcache.exceptions import ConfigurationError


class TestSettingsValidation:
    """Tests for Settings validation."""

    def test_settings_loads_from_env(self, mock_env_vars: dict[str, str]) -> None:
        """Test that settings correctly loads from environment variables."""
        settings = get_settings()

        assert settings.song_cache_path == Path(mock_env_vars["SONG_CACHE_PATH"])
        assert settings.UPSTREAM_BASE_URL == "https://music.test/api"
        assert settings.RETRY_DELAY_SECONDS == 0.0
        assert settings.MAX_REDIRECTS == 5
        assert settings.MAX_FETCH_ATTEMPTS is None
        assert settings.SEARCH_RESULT_COUNT == 3
        assert settings.LOG_LEVEL == "DEBUG"

    def test_defaults(self) -> None:
        """Test defaults when nothing is configured."""
        with patch.dict(os.environ, {}, clear=True):
            settings = Settings(_env_file=None)

        assert settings.backend_names == ["stream"]
        assert settings.AUDIO_FORMAT == "mp3"
        assert settings.RETRY_DELAY_SECONDS == 5.0
        assert settings.MAX_REDIRECTS == 10
        assert settings.MAX_FETCH_ATTEMPTS is None

    def test_backends_comma_separated(self) -> None:
        """Test that BACKENDS is split, normalized and de-duplicated."""
        with patch.dict(os.environ, {"BACKENDS": " Stream, local ,stream,"}, clear=True):
            settings = Settings(_env_file=None)

        assert settings.backend_names == ["stream", "local"]

    def test_backends_must_not_be_empty(self) -> None:
        """Test that an empty BACKENDS value is rejected."""
        with patch.dict(os.environ, {"BACKENDS": " , "}, clear=True):
            with pytest.raises(ValidationError) as exc_info:
                Settings(_env_file=None)

        assert "BACKENDS" in str(exc_info.value)

    def test_audio_format_is_normalized(self) -> None:
        """Test that a leading dot and upper case are accepted."""
        with patch.dict(os.environ, {"AUDIO_FORMAT": ".MP3"}, clear=True):
            settings = Settings(_env_file=None)

        assert settings.AUDIO_FORMAT == "mp3"

    @pytest.mark.parametrize("value", ["mp3/../x", "", "m p3"])
    def test_audio_format_rejects_non_suffix(self, value: str) -> None:
        """Test that AUDIO_FORMAT cannot smuggle path components."""
        with patch.dict(os.environ, {"AUDIO_FORMAT": value}, clear=True):
            with pytest.raises(ValidationError):
                Settings(_env_file=None)

    def test_upstream_base_url_requires_http(self) -> None:
        """Test that UPSTREAM_BASE_URL must be http(s)."""
        with patch.dict(os.environ, {"UPSTREAM_BASE_URL": "ftp://music.test"}, clear=True):
            with pytest.raises(ValidationError):
                Settings(_env_file=None)

    def test_upstream_base_url_trailing_slash_stripped(self) -> None:
        """Test that a trailing slash is removed from UPSTREAM_BASE_URL."""
        with patch.dict(os.environ, {"UPSTREAM_BASE_URL": "https://music.test/api/"}, clear=True):
            settings = Settings(_env_file=None)

        assert settings.UPSTREAM_BASE_URL == "https://music.test/api"

    def test_max_fetch_attempts_must_be_positive(self) -> None:
        """Test that MAX_FETCH_ATTEMPTS rejects zero."""
        with patch.dict(os.environ, {"MAX_FETCH_ATTEMPTS": "0"}, clear=True):
            with pytest.raises(ValidationError):
                Settings(_env_file=None)


class TestSettingsHelpers:
    """Tests for Settings helper methods."""

    def test_ensure_directories(self, mock_env_vars: dict[str, str]) -> None:
        """Test that ensure_directories creates the cache root."""
        settings = get_settings()
        assert not settings.song_cache_path.exists()

        settings.ensure_directories()

        assert settings.song_cache_path.is_dir()

    def test_ensure_directories_blocked_by_file(self, mock_env_vars: dict[str, str]) -> None:
        """Test that an unusable cache root is a configuration error."""
        blocker = Path(mock_env_vars["SONG_CACHE_PATH"])
        blocker.write_text("not a directory")

        with pytest.raises(ConfigurationError) as exc_info:
            get_settings().ensure_directories()

        assert exc_info.value.context["path"] == str(blocker)

    def test_redacted_display(self, mock_env_vars: dict[str, str]) -> None:
        """Test display dict contents."""
        display = get_settings().redacted_display()

        assert display["BACKENDS"] == "stream"
        assert display["MAX_FETCH_ATTEMPTS"] is None
        assert display["UPSTREAM_CREDENTIALS_FILE"] == mock_env_vars["UPSTREAM_CREDENTIALS_FILE"]

    def test_settings_are_cached(self, mock_env_vars: dict[str, str]) -> None:
        """Test that get_settings returns the same instance until cleared."""
        first = get_settings()
        assert get_settings() is first

        clear_settings_cache()
        assert get_settings() is not first
