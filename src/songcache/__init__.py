"""
Song content cache.

Fetches audio content from a streaming service exactly once per song,
commits it atomically to local storage and serves it with byte ranges.
"""

__version__ = "0.1.0"
