"""
Download package.

- fetcher.py: streams one song from the upstream service into the cache
- coordinator.py: deduplicates concurrent requests for the same song
"""

from songcache.download.coordinator import PendingRequest, RequestCoordinator
from songcache.download.fetcher import Fetcher

__all__ = ["Fetcher", "PendingRequest", "RequestCoordinator"]
