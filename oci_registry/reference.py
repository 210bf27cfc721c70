"""Manifest references: either a mutable tag or an immutable digest."""

from dataclasses import dataclass
from typing import Union

from .digest import Digest, parse_digest


@dataclass(frozen=True)
class Tag:
    name: str

    def __str__(self):
        return self.name


Reference = Union[Tag, Digest]


def parse_reference(value: str) -> Reference:
    """
    Parse a manifest reference.

    A reference containing ':' is a digest, anything else is a tag.

    Raises:
        MalformedDigest: If the reference looks like a digest but is invalid
    """
    if ":" in value:
        return parse_digest(value)
    return Tag(value)
