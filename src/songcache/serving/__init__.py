"""
Serving package.

- ranges.py: byte-range parsing
- content_server.py: range-aware delivery of committed songs
- app.py: FastAPI HTTP delivery layer
"""

from songcache.serving.content_server import ContentRequest, ContentResponse, ContentServer
from songcache.serving.ranges import UNSATISFIABLE, ByteRange, parse_range

__all__ = [
    "UNSATISFIABLE",
    "ByteRange",
    "ContentRequest",
    "ContentResponse",
    "ContentServer",
    "parse_range",
]
