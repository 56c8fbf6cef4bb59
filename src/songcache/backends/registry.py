"""
Static backend registry.

Backends are selected by name from the BACKENDS setting; every
implementation is part of this package, nothing is installed at runtime.
"""

from __future__ import annotations

import asyncio
from typing import Callable

from songcache.backends.backend import Backend
from songcache.config import Settings
from songcache.exceptions import BackendNotFoundError, SongCacheError
from songcache.logging import get_logger, log_context
from songcache.upstream.http_client import HttpStreamingClient

logger = get_logger(__name__)

BackendFactory = Callable[[str, Settings], Backend]


def _http_stream_backend(name: str, settings: Settings) -> Backend:
    client = HttpStreamingClient(
        settings.UPSTREAM_BASE_URL,
        settings.UPSTREAM_CREDENTIALS_FILE,
        timeout=settings.UPSTREAM_TIMEOUT,
    )
    return Backend.from_settings(name, client, settings)


BACKEND_FACTORIES: dict[str, BackendFactory] = {
    "stream": _http_stream_backend,
}


def create_backend(name: str, settings: Settings) -> Backend:
    """Build a backend by name.

    Raises:
        BackendNotFoundError: If no implementation is registered under name.
    """
    factory = BACKEND_FACTORIES.get(name)
    if factory is None:
        raise BackendNotFoundError(
            f"Unknown backend: {name}",
            context={"available": sorted(BACKEND_FACTORIES)},
        )
    return factory(name, settings)


async def _init_backend(backend: Backend) -> bool:
    with log_context(backend=backend.name):
        try:
            await backend.init()
        except SongCacheError as e:
            logger.error("Backend failed to initialize", error=str(e))
            await backend.close()
            return False
        except OSError as e:
            logger.error("Backend failed to create cache directories", error=str(e))
            await backend.close()
            return False
        logger.info("Backend initialized")
        return True


async def load_backends(settings: Settings) -> dict[str, Backend]:
    """Create and initialize every enabled backend, in parallel.

    A backend that fails to initialize is logged and left out.

    Raises:
        BackendNotFoundError: If a configured name has no implementation.
    """
    backends = [create_backend(name, settings) for name in settings.backend_names]
    results = await asyncio.gather(*(_init_backend(b) for b in backends))

    loaded = {b.name: b for b, ok in zip(backends, results) if ok}
    logger.info("All backends initialized", loaded=list(loaded), configured=len(backends))
    return loaded
