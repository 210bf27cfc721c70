"""
HTTP byte-range module for the container registry.

Parses ``Range`` request headers and resolves them against a concrete
resource size (RFC 9110 section 14). Only single-range requests are served
as partial content; a multi-range request falls back to the full body.
"""

from dataclasses import dataclass
from typing import List, Optional

from .errors import MalformedRange, RangeNotSatisfiable

RANGE_UNIT_PREFIX = "bytes="


@dataclass(frozen=True)
class ByteRange:
    """Concrete inclusive byte window [first, last] within a resource."""

    first: int
    last: int

    @property
    def length(self) -> int:
        return self.last - self.first + 1

    def content_range(self, size: int) -> str:
        """Value of the Content-Range response header for a resource of the given size."""
        return f"bytes {self.first}-{self.last}/{size}"


@dataclass(frozen=True)
class RangeSpec:
    """
    Parsed byte-range spec.

    Attributes:
        first: First position, or None for a suffix range ("-10")
        last: Last position (or suffix length when first is None), or None for
            an open-ended range ("42-")
    """

    first: Optional[int]
    last: Optional[int]

    @property
    def is_suffix(self) -> bool:
        return self.first is None

    def resolve(self, size: int) -> ByteRange:
        """
        Resolve the spec against a resource size.

        Args:
            size: Resource size in bytes

        Returns:
            Concrete ByteRange inside [0, size)

        Raises:
            RangeNotSatisfiable: If the spec does not overlap the resource,
                or is a zero-length suffix

        Examples:
            >>> RangeSpec(3, 10).resolve(256)
            ByteRange(first=3, last=10)
            >>> RangeSpec(None, 10).resolve(256)
            ByteRange(first=246, last=255)
        """
        if self.first is None:
            if self.last == 0:
                raise RangeNotSatisfiable(
                    f"Range '{self}' is not satisfiable, suffix length must not be 0", size
                )
            if size == 0:
                raise RangeNotSatisfiable(f"Range '{self}' is not satisfiable for an empty resource", size)
            return ByteRange(max(0, size - self.last), size - 1)
        if self.first >= size:
            raise RangeNotSatisfiable(
                f"Range '{self}' is not satisfiable, first position must be less than {size}", size
            )
        last = size - 1 if self.last is None else min(size - 1, self.last)
        return ByteRange(self.first, last)

    def __str__(self):
        first = "" if self.first is None else str(self.first)
        last = "" if self.last is None else str(self.last)
        return f"{first}-{last}"


def _parse_position(value: str, spec: str) -> Optional[int]:
    value = value.strip()
    if not value:
        return None
    if not (value.isascii() and value.isdigit()):
        raise MalformedRange(f"'{spec}' is not a valid range spec, '{value}' is not a position")
    return int(value)


def parse_range_spec(spec: str) -> RangeSpec:
    """
    Parse a single byte-range spec such as "3-10", "42-" or "-10".

    Raises:
        MalformedRange: If the spec does not contain exactly one '-', has a
            non-numeric bound, has neither bound, or has last < first
    """
    parts = spec.split("-")
    if len(parts) != 2:
        raise MalformedRange(f"'{spec}' is not a valid range spec, it must contain exactly 1 '-' character")
    first = _parse_position(parts[0], spec)
    last = _parse_position(parts[1], spec)
    if first is None and last is None:
        raise MalformedRange(
            f"'{spec}' is not a valid range spec, it must contain a start position or a suffix length"
        )
    if first is not None and last is not None and last < first:
        raise MalformedRange(
            f"'{spec}' is not a valid range spec, last position must not be less than first position"
        )
    return RangeSpec(first, last)


def parse_range_specs(value: str) -> List[RangeSpec]:
    """Parse a comma separated list of range specs (the part after "bytes=")."""
    return [parse_range_spec(spec) for spec in value.split(",")]


def parse_range_header(header: Optional[str]) -> Optional[List[RangeSpec]]:
    """
    Parse a Range request header.

    Returns:
        List of specs, or None if the header is absent or uses a unit other
        than bytes (such headers are ignored and the full body is served)

    Raises:
        MalformedRange: If a byte range spec is invalid
    """
    if not header or not header.startswith(RANGE_UNIT_PREFIX):
        return None
    return parse_range_specs(header[len(RANGE_UNIT_PREFIX):])


def parse_content_range(value: str) -> ByteRange:
    """
    Parse the Content-Range header of a chunked upload ("<first>-<last>").

    OCI chunked uploads use this non-standard form without unit or size.

    Raises:
        MalformedRange: If the value is not two non-negative positions with
            first <= last
    """
    parts = value.split("-")
    if len(parts) != 2:
        raise MalformedRange(f"'{value}' is not a valid content range, it must contain exactly 1 '-' character")
    first = _parse_position(parts[0], value)
    last = _parse_position(parts[1], value)
    if first is None or last is None:
        raise MalformedRange(f"'{value}' is not a valid content range, both positions are required")
    if last < first:
        raise MalformedRange(
            f"'{value}' is not a valid content range, last position must not be less than first position"
        )
    return ByteRange(first, last)
