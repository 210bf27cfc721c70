"""
Input validation module for the container registry.

Provides validation functions for repository names, tags, digests, and
references taken from request paths and query parameters.
"""

import logging
import re
from typing import Optional

from flask import abort

from .config import config
from .digest import Digest, is_supported, parse_digest
from .errors import MalformedDigest
from .reference import Reference, Tag, parse_reference

logger = logging.getLogger(__name__)

REPOSITORY_NAME_PATTERN = re.compile(
    r"^[a-z0-9]+(?:(?:\.|_|__|-+)[a-z0-9]+)*(?:/[a-z0-9]+(?:(?:\.|_|__|-+)[a-z0-9]+)*)*$"
)
TAG_PATTERN = re.compile(r"^[a-zA-Z0-9_][a-zA-Z0-9._-]*$")


def validate_repository_name(name: str) -> None:
    """
    Validate repository name.

    Args:
        name: Repository name (e.g., "library/alpine")

    Raises:
        HTTPException: 400 Bad Request if name is invalid

    Validation Rules:
        - Must be 1-{MAX_REPOSITORY_NAME_LENGTH} characters (configurable)
        - Slash separated components of lowercase alphanumerics, joined by
          single dots, single or double underscores, or runs of hyphens
        - No empty components, so names can never escape the storage directory

    Examples:
        >>> validate_repository_name("library/alpine")  # OK
        >>> validate_repository_name("../etc")  # Raises 400
    """
    if not name or len(name) > config.MAX_REPOSITORY_NAME_LENGTH:
        logger.warning(f"Invalid repository name length: {len(name)}")
        abort(400, f"Invalid repository name: must be 1-{config.MAX_REPOSITORY_NAME_LENGTH} characters")

    if not REPOSITORY_NAME_PATTERN.match(name):
        logger.warning(f"Invalid repository name format: {name}")
        abort(400, "Invalid repository name: lowercase path components separated by '/' required")

    logger.debug(f"Repository name validated: {name}")


def validate_tag(tag: str) -> None:
    """
    Validate image tag.

    Args:
        tag: Tag name to validate

    Raises:
        HTTPException: 400 Bad Request if tag is invalid

    Validation Rules:
        - Must be 1-{MAX_TAG_LENGTH} characters (configurable)
        - Only alphanumeric characters, dots (.), hyphens (-), and underscores (_)
        - Must not start with a dot or hyphen
    """
    if not tag or len(tag) > config.MAX_TAG_LENGTH:
        logger.warning(f"Invalid tag length: {len(tag)}")
        abort(400, f"Invalid tag: must be 1-{config.MAX_TAG_LENGTH} characters")

    if not TAG_PATTERN.match(tag):
        logger.warning(f"Invalid tag format: {tag}")
        abort(400, "Invalid tag: only alphanumeric, dots, hyphens, and underscores allowed")

    logger.debug(f"Tag validated: {tag}")


def parse_digest_param(value: Optional[str], require_supported: bool = False) -> Digest:
    """
    Parse a digest from a request path or query parameter.

    Args:
        value: Raw digest string
        require_supported: Reject digests whose algorithm the registry cannot
            compute. Used wherever the registry has to verify content.

    Raises:
        HTTPException: 400 Bad Request if the digest is missing, malformed,
            or (with require_supported) uses an unsupported algorithm
    """
    if not value:
        logger.warning("Missing digest")
        abort(400, "Missing digest")
    try:
        digest = parse_digest(value)
    except MalformedDigest as e:
        logger.warning(f"Invalid digest format: {value}")
        abort(400, f"Invalid digest: {e}")
    if require_supported and not is_supported(digest.algorithm):
        logger.warning(f"Unsupported digest algorithm: {value}")
        abort(400, f"Unsupported digest algorithm: {digest.algorithm.id}")

    logger.debug(f"Digest validated: {digest}")
    return digest


def parse_reference_param(value: str) -> Reference:
    """Parse a manifest reference (tag or digest) from the request path."""
    try:
        reference = parse_reference(value)
    except MalformedDigest as e:
        logger.warning(f"Invalid digest reference: {value}")
        abort(400, f"Invalid digest: {e}")
    if isinstance(reference, Tag):
        validate_tag(reference.name)
    return reference
