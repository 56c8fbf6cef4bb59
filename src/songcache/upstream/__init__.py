"""
Streaming service clients.

The upstream service issues short-lived stream URLs for songs; the fetcher
downloads the bytes from those URLs.
"""

from songcache.upstream.base import StreamingServiceClient
from songcache.upstream.http_client import HttpStreamingClient

__all__ = ["HttpStreamingClient", "StreamingServiceClient"]
