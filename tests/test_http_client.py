"""
Tests for the streaming service HTTP client.
"""

from __future__ import annotations

import json
from pathlib import Path

import httpx
import pytest

from songcache.exceptions import (
    AuthError,
    InvalidContentID,
    NetworkError,
    UpstreamStatusError,
)
from songcache.upstream.http_client import HttpStreamingClient

BASE_URL = "https://music.test/api"


@pytest.fixture
def credentials_file(temp_dir: Path) -> Path:
    path = temp_dir / "creds.json"
    path.write_text(json.dumps({"email": "user@example.com", "password": "hunter2"}))
    return path


class FakeService:
    """Handler emulating the streaming service API."""

    def __init__(self) -> None:
        self.tokens_issued = 0
        self.valid_token: str | None = None
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if path == "/api/auth":
            body = json.loads(request.content)
            if body.get("password") != "hunter2":
                return httpx.Response(401, json={"error": "bad credentials"})
            self.tokens_issued += 1
            self.valid_token = f"token-{self.tokens_issued}"
            return httpx.Response(200, json={"access_token": self.valid_token})

        if request.headers.get("authorization") != f"Bearer {self.valid_token}":
            return httpx.Response(401)

        if path == "/api/tracks/abc123/stream":
            return httpx.Response(200, json={"url": "https://cdn.test/abc123?sig=1"})
        if path == "/api/search":
            return httpx.Response(
                200,
                json={"entries": [{"type": "1", "track": {"nid": "abc123"}}, "junk"]},
            )
        return httpx.Response(404)


def make_client(credentials_file: Path, handler) -> HttpStreamingClient:
    return HttpStreamingClient(
        BASE_URL, credentials_file, transport=httpx.MockTransport(handler)
    )


class TestHttpStreamingClient:
    """Tests for HttpStreamingClient."""

    @pytest.mark.asyncio
    async def test_connect_posts_credentials(self, credentials_file: Path) -> None:
        """Test authentication stores the token."""
        service = FakeService()
        client = make_client(credentials_file, service)

        await client.connect()
        await client.close()

        assert service.tokens_issued == 1
        assert json.loads(service.requests[0].content)["email"] == "user@example.com"

    @pytest.mark.asyncio
    async def test_resolve_connects_lazily(self, credentials_file: Path) -> None:
        """Test that resolving a location authenticates first."""
        service = FakeService()
        client = make_client(credentials_file, service)

        location = await client.resolve_stream_location("abc123")

        assert client.connected
        assert location.url == "https://cdn.test/abc123?sig=1"
        assert location.content_id == "abc123"

    @pytest.mark.asyncio
    async def test_expired_token_is_auth_error(self, credentials_file: Path) -> None:
        """Test that a rejected token surfaces as AuthError."""
        service = FakeService()
        client = make_client(credentials_file, service)
        await client.connect()
        service.valid_token = "rotated"

        with pytest.raises(AuthError):
            await client.resolve_stream_location("abc123")

        await client.reconnect()
        location = await client.resolve_stream_location("abc123")
        assert location.url.startswith("https://cdn.test/")

    @pytest.mark.asyncio
    async def test_unknown_track_is_status_error(self, credentials_file: Path) -> None:
        """Test a 404 from the service."""
        client = make_client(credentials_file, FakeService())

        with pytest.raises(UpstreamStatusError) as exc_info:
            await client.resolve_stream_location("zzz999")

        assert exc_info.value.status == 404

    @pytest.mark.asyncio
    async def test_invalid_id_makes_no_request(self, credentials_file: Path) -> None:
        """Test that IDs are validated before any I/O."""
        service = FakeService()
        client = make_client(credentials_file, service)

        with pytest.raises(InvalidContentID):
            await client.resolve_stream_location("../etc")

        assert service.requests == []

    @pytest.mark.asyncio
    async def test_search_returns_entries(self, credentials_file: Path) -> None:
        """Test that search passes terms and drops malformed entries."""
        service = FakeService()
        client = make_client(credentials_file, service)

        entries = await client.search("never gonna", 11)

        assert entries == [{"type": "1", "track": {"nid": "abc123"}}]
        assert service.requests[-1].url.params["q"] == "never gonna"
        assert service.requests[-1].url.params["limit"] == "11"

    @pytest.mark.asyncio
    async def test_transport_error_is_network_error(self, credentials_file: Path) -> None:
        """Test that connection failures are mapped to NetworkError."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        client = make_client(credentials_file, handler)

        with pytest.raises(NetworkError):
            await client.connect()

    @pytest.mark.asyncio
    async def test_missing_credentials_file(self, temp_dir: Path) -> None:
        """Test that a missing credentials file is an AuthError."""
        client = make_client(temp_dir / "absent.json", FakeService())

        with pytest.raises(AuthError) as exc_info:
            await client.connect()

        assert "not found" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_wrong_password(self, temp_dir: Path) -> None:
        """Test that rejected credentials are an AuthError."""
        path = temp_dir / "creds.json"
        path.write_text(json.dumps({"email": "user@example.com", "password": "wrong"}))
        client = make_client(path, FakeService())

        with pytest.raises(AuthError):
            await client.connect()

        assert not client.connected
