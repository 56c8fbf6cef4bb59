"""
HTTP byte-range parsing (single-range semantics).

parse_range() classifies a Range header against a file size:
- None: no usable header (absent, malformed, other unit, several disjoint
  ranges); serve the full content
- UNSATISFIABLE: no requested range overlaps the file; answer 416
- ByteRange: one range (overlapping ranges are combined); answer 206
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Final


@dataclass(frozen=True)
class ByteRange:
    """Inclusive byte range within a file."""

    start: int
    end: int

    @property
    def length(self) -> int:
        return self.end - self.start + 1

    def content_range(self, size: int) -> str:
        """Value of the Content-Range header for this range."""
        return f"bytes {self.start}-{self.end}/{size}"


class _Unsatisfiable:
    def __repr__(self) -> str:
        return "UNSATISFIABLE"


UNSATISFIABLE: Final = _Unsatisfiable()


def unsatisfied_content_range(size: int) -> str:
    """Value of the Content-Range header on a 416 response."""
    return f"bytes */{size}"


def _parse_spec(spec: str, size: int) -> ByteRange | None:
    """Parse one 'a-b' / 'a-' / '-n' spec.

    Returns None if the spec is syntactically valid but not satisfiable.

    Raises:
        ValueError: If the spec is malformed.
    """
    first, sep, last = spec.strip().partition("-")
    if not sep:
        raise ValueError(spec)
    first, last = first.strip(), last.strip()

    if first == "":
        # Suffix range: the last N bytes
        if not last.isdigit():
            raise ValueError(spec)
        start = size - int(last)
        end = size - 1
        start = max(start, 0)
    else:
        if not first.isdigit() or (last and not last.isdigit()):
            raise ValueError(spec)
        start = int(first)
        end = int(last) if last else size - 1
        if end < start:
            raise ValueError(spec)
        end = min(end, size - 1)

    if start > end:
        return None
    return ByteRange(start, end)


def _combine(ranges: list[ByteRange]) -> list[ByteRange]:
    merged: list[ByteRange] = []
    for r in sorted(ranges, key=lambda r: r.start):
        if merged and r.start <= merged[-1].end + 1:
            last = merged[-1]
            merged[-1] = ByteRange(last.start, max(last.end, r.end))
        else:
            merged.append(r)
    return merged


def parse_range(header: str | None, size: int) -> ByteRange | _Unsatisfiable | None:
    """Parse a Range header for a file of the given size.

    Args:
        header: Raw Range header value, or None.
        size: File size in bytes.

    Returns:
        A ByteRange, UNSATISFIABLE, or None to serve the full content.
    """
    if not header:
        return None

    unit, sep, specs = header.partition("=")
    if not sep or unit.strip().lower() != "bytes":
        return None

    parts = [spec for spec in specs.split(",") if spec.strip()]
    if not parts:
        return None

    ranges: list[ByteRange] = []
    try:
        for spec in parts:
            r = _parse_spec(spec, size)
            if r is not None:
                ranges.append(r)
    except ValueError:
        return None

    if not ranges:
        return UNSATISFIABLE

    combined = _combine(ranges)
    if len(combined) != 1:
        return None
    return combined[0]
