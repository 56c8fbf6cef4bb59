"""
HTTP client for a JSON streaming service API.

Endpoints (relative to the configured base URL):
    POST /auth                  credentials -> {"access_token": "..."}
    GET  /tracks/{id}/stream    -> {"url": "..."}
    GET  /search?q=...&limit=N  -> {"entries": [...]}

Credentials are read from a JSON file (e.g. {"email": ..., "password": ...})
and posted as-is to /auth.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import httpx

from songcache.exceptions import AuthError, NetworkError, UpstreamStatusError
from songcache.logging import get_logger
from songcache.types import StreamLocation, validate_content_id
from songcache.upstream.base import StreamingServiceClient

logger = get_logger(__name__)

USER_AGENT = "songcache/0.1"

REQUEST_TIMEOUT = 30.0


class HttpStreamingClient(StreamingServiceClient):
    """Streaming service client speaking JSON over HTTP.

    Authenticates lazily: the first call that needs a credential connects.
    """

    def __init__(
        self,
        base_url: str,
        credentials_file: str | Path,
        timeout: float = REQUEST_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            base_url: Base URL of the service API.
            credentials_file: JSON file holding the account credentials.
            timeout: Request timeout in seconds.
            transport: Optional httpx transport (used by tests).
        """
        self.base_url = base_url.rstrip("/")
        self.credentials_file = Path(credentials_file).expanduser()
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._token: str | None = None

    @property
    def connected(self) -> bool:
        return self._token is not None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client with proper headers."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers={"User-Agent": USER_AGENT, "Accept": "application/json"},
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None
        self._token = None

    def _load_credentials(self) -> dict[str, Any]:
        try:
            data = json.loads(self.credentials_file.read_text(encoding="utf-8"))
        except FileNotFoundError as e:
            raise AuthError(
                "Credentials file not found",
                context={"path": str(self.credentials_file)},
            ) from e
        except (OSError, json.JSONDecodeError) as e:
            raise AuthError(
                "Credentials file is unreadable",
                context={"path": str(self.credentials_file), "error": str(e)},
            ) from e
        if not isinstance(data, dict):
            raise AuthError(
                "Credentials file must hold a JSON object",
                context={"path": str(self.credentials_file)},
            )
        return data

    async def _request(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        """Send a request and decode the JSON body.

        Raises:
            AuthError: On 401/403.
            NetworkError: On transport failure.
            UpstreamStatusError: On any other non-2xx status.
        """
        client = await self._get_client()
        try:
            response = await client.request(method, path, **kwargs)
        except httpx.TransportError as e:
            raise NetworkError(
                f"Request to streaming service failed: {e.__class__.__name__}",
                context={"path": path, "error": str(e)},
            ) from e

        if response.status_code in (401, 403):
            raise AuthError(
                "Streaming service rejected credentials",
                context={"path": path, "status_code": response.status_code},
            )
        if not response.is_success:
            raise UpstreamStatusError(
                response.status_code,
                context={"path": path},
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise UpstreamStatusError(
                response.status_code,
                "Streaming service returned invalid JSON",
                context={"path": path},
            ) from e
        if not isinstance(payload, dict):
            raise UpstreamStatusError(
                response.status_code,
                "Streaming service returned unexpected JSON",
                context={"path": path},
            )
        return payload

    def _auth_headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self._token}"}

    async def connect(self) -> None:
        """Authenticate and store a fresh access token.

        Raises:
            AuthError: If the credentials are missing or rejected.
            NetworkError: If the service is unreachable.
        """
        credentials = self._load_credentials()
        payload = await self._request("POST", "/auth", json=credentials)

        token = payload.get("access_token")
        if not token:
            raise AuthError("Streaming service returned no access token")

        self._token = str(token)
        logger.info("Connected to streaming service", base_url=self.base_url)

    async def reconnect(self) -> None:
        """Drop the current token and authenticate again."""
        self._token = None
        await self.connect()

    async def resolve_stream_location(self, content_id: str) -> StreamLocation:
        """Ask the service for a fresh stream URL.

        Args:
            content_id: Song to stream.

        Returns:
            A StreamLocation valid for one fetch attempt.
        """
        validate_content_id(content_id)
        if not self.connected:
            await self.connect()

        payload = await self._request(
            "GET", f"/tracks/{content_id}/stream", headers=self._auth_headers()
        )
        url = payload.get("url")
        if not url:
            raise UpstreamStatusError(
                200,
                "Streaming service returned no stream URL",
                context={"content_id": content_id},
            )

        logger.debug("Resolved stream location", content_id=content_id)
        return StreamLocation(url=str(url), content_id=content_id)

    async def search(self, terms: str, limit: int) -> list[dict[str, Any]]:
        """Search the service catalogue.

        Args:
            terms: Free-text search terms.
            limit: Maximum number of entries requested.

        Returns:
            Raw entries as returned by the service.
        """
        if not self.connected:
            await self.connect()

        payload = await self._request(
            "GET",
            "/search",
            params={"q": terms, "limit": limit},
            headers=self._auth_headers(),
        )
        entries = payload.get("entries") or []
        return [entry for entry in entries if isinstance(entry, dict)]
