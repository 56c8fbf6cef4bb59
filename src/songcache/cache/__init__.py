"""
Cache package for song persistence.

- store.py: on-disk placement of songs with atomic staging -> commit
"""

from songcache.cache.store import CacheStore, StagingWriter

__all__ = ["CacheStore", "StagingWriter"]
