"""
Tests for range-aware delivery of committed songs.
"""

from __future__ import annotations

import pytest

from songcache.cache.store import CacheStore
from songcache.serving.content_server import (
    ContentRequest,
    ContentResponse,
    ContentServer,
    content_type_for,
)

BODY = bytes(i % 251 for i in range(1000))


@pytest.fixture
def server(store: CacheStore) -> ContentServer:
    """Provide a content server with one committed 1000-byte song."""
    store.open_staging_writer("abc123").write(BODY)
    store.commit("abc123")
    return ContentServer(store)


class TestContentServer:
    """Tests for ContentServer.handle."""

    def test_full_content(self, server: ContentServer) -> None:
        """Test a request without Range."""
        response = server.handle(ContentRequest("abc123.mp3"))

        assert response.status == 200
        assert response.headers["Content-Length"] == "1000"
        assert response.headers["Content-Type"] == "audio/mpeg"
        assert response.headers["Accept-Ranges"] == "bytes"
        assert "Last-Modified" in response.headers
        assert response.read() == BODY

    def test_bare_id_is_accepted(self, server: ContentServer) -> None:
        """Test that the extension may be omitted."""
        assert server.handle(ContentRequest("abc123")).status == 200

    def test_partial_content(self, server: ContentServer) -> None:
        """Test a satisfiable single range."""
        response = server.handle(ContentRequest("abc123.mp3", "bytes=0-99"))

        assert response.status == 206
        assert response.headers["Content-Range"] == "bytes 0-99/1000"
        assert response.headers["Content-Length"] == "100"
        assert response.read() == BODY[:100]

    def test_suffix_range(self, server: ContentServer) -> None:
        """Test the last N bytes."""
        response = server.handle(ContentRequest("abc123.mp3", "bytes=-10"))

        assert response.status == 206
        assert response.headers["Content-Range"] == "bytes 990-999/1000"
        assert response.read() == BODY[-10:]

    def test_chunked_read(self, server: ContentServer) -> None:
        """Test that lazily read chunks add up to the range."""
        response = server.handle(ContentRequest("abc123.mp3", "bytes=10-509"))

        chunks = list(response.iter_body(chunk_size=64))

        assert all(len(chunk) <= 64 for chunk in chunks)
        assert b"".join(chunks) == BODY[10:510]

    def test_iter_body_without_file(self, server: ContentServer) -> None:
        """Test that in-memory and empty bodies never touch the file."""
        path = server.store.committed_path("abc123")

        assert list(ContentResponse(400, body=b"bad").iter_body()) == [b"bad"]
        assert list(ContentResponse(200, path=path, length=0).iter_body()) == []
        assert list(ContentResponse(404).iter_body()) == []

    def test_unsatisfiable_range(self, server: ContentServer) -> None:
        """Test a range beyond the end of the file."""
        response = server.handle(ContentRequest("abc123.mp3", "bytes=2000-2099"))

        assert response.status == 416
        assert response.headers["Content-Range"] == "bytes */1000"
        assert not response.streams_file

    def test_malformed_range_serves_everything(self, server: ContentServer) -> None:
        """Test that a malformed Range header is ignored."""
        response = server.handle(ContentRequest("abc123.mp3", "bytes=oops"))

        assert response.status == 200
        assert response.read() == BODY

    def test_head(self, server: ContentServer) -> None:
        """Test that HEAD returns headers only."""
        response = server.handle(ContentRequest("abc123.mp3", "bytes=0-99", method="HEAD"))

        assert response.status == 206
        assert response.headers["Content-Length"] == "100"
        assert response.read() == b""

    @pytest.mark.parametrize("file_name", ["..", "../abc123.mp3", "a b.mp3", ".mp3"])
    def test_invalid_id(self, server: ContentServer, file_name: str) -> None:
        """Test that unsafe names are rejected."""
        assert server.handle(ContentRequest(file_name)).status == 400

    def test_missing_song(self, server: ContentServer) -> None:
        """Test a song that is not committed."""
        response = server.handle(ContentRequest("zzz999.mp3"))

        assert response.status == 404
        assert b"Song not found" in response.read()

    def test_staging_file_is_not_served(self, server: ContentServer, store: CacheStore) -> None:
        """Test that a partial download is invisible."""
        store.open_staging_writer("def456").write(b"HEL")

        assert server.handle(ContentRequest("def456.mp3")).status == 404

    def test_method_not_allowed(self, server: ContentServer) -> None:
        """Test methods other than GET and HEAD."""
        response = server.handle(ContentRequest("abc123.mp3", method="DELETE"))

        assert response.status == 405
        assert response.headers["Allow"] == "GET, HEAD"


class TestContentType:
    """Tests for content_type_for."""

    @pytest.mark.parametrize(
        "extension,expected",
        [
            ("mp3", "audio/mpeg"),
            (".M4A", "audio/mp4"),
            ("flac", "audio/flac"),
            ("zzz", "application/octet-stream"),
        ],
    )
    def test_content_type_for(self, extension: str, expected: str) -> None:
        """Test MIME type selection."""
        assert content_type_for(extension) == expected
