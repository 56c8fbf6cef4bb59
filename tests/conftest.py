"""
Pytest configuration and fixtures for song cache tests.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Generator
from unittest.mock import patch

import pytest

from songcache.cache.store import CacheStore
from songcache.config import Settings, clear_settings_cache
from tests.fakes import FakeStreamingClient


@pytest.fixture
def temp_dir(tmp_path: Path) -> Path:
    """Provide a temporary directory for test outputs."""
    return tmp_path


@pytest.fixture
def mock_env_vars(temp_dir: Path) -> Generator[dict[str, str], None, None]:
    """Provide mock environment variables for testing."""
    env_vars = {
        "SONG_CACHE_PATH": str(temp_dir / "songs"),
        "BACKENDS": "stream",
        "AUDIO_FORMAT": "mp3",
        "UPSTREAM_BASE_URL": "https://music.test/api",
        "UPSTREAM_CREDENTIALS_FILE": str(temp_dir / "creds.json"),
        "RETRY_DELAY_SECONDS": "0",
        "MAX_REDIRECTS": "5",
        "SEARCH_RESULT_COUNT": "3",
        "LOG_LEVEL": "DEBUG",
    }

    with patch.dict(os.environ, env_vars, clear=False):
        clear_settings_cache()
        yield env_vars


@pytest.fixture
def mock_settings(mock_env_vars: dict[str, str]) -> Generator[Settings, None, None]:
    """Provide a Settings instance with mock configuration."""
    from songcache.config import get_settings

    settings = get_settings()
    settings.ensure_directories()
    yield settings
    clear_settings_cache()


@pytest.fixture
def store(temp_dir: Path) -> CacheStore:
    """Provide an initialized cache store for the 'stream' backend."""
    cache_store = CacheStore(temp_dir / "songs", "stream", "mp3")
    cache_store.init()
    return cache_store


@pytest.fixture
def fake_client() -> FakeStreamingClient:
    """Provide a fake streaming service client."""
    return FakeStreamingClient()


@pytest.fixture(autouse=True)
def reset_settings_cache() -> Generator[None, None, None]:
    """Automatically reset settings cache before and after each test."""
    clear_settings_cache()
    yield
    clear_settings_cache()
