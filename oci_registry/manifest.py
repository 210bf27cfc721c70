"""
Manifest media types and shallow manifest validation.

Only the structure the registry depends on is checked: the media type, and
that every referenced blob (image manifests) or child manifest (indexes) is
already present in the repository. Full schema validation is left to clients.
"""

import json
import logging
from typing import Optional

from .digest import parse_digest
from .errors import MalformedDigest, ManifestBlobUnknown, ManifestInvalid

logger = logging.getLogger(__name__)

OCI_IMAGE_INDEX_MEDIA_TYPE = "application/vnd.oci.image.index.v1+json"
OCI_IMAGE_MANIFEST_MEDIA_TYPE = "application/vnd.oci.image.manifest.v1+json"
DOCKER_MANIFEST_LIST_MEDIA_TYPE = "application/vnd.docker.distribution.manifest.list.v2+json"
DOCKER_MANIFEST_MEDIA_TYPE = "application/vnd.docker.distribution.manifest.v2+json"

INDEX_MEDIA_TYPES = (OCI_IMAGE_INDEX_MEDIA_TYPE, DOCKER_MANIFEST_LIST_MEDIA_TYPE)
IMAGE_MANIFEST_MEDIA_TYPES = (OCI_IMAGE_MANIFEST_MEDIA_TYPE, DOCKER_MANIFEST_MEDIA_TYPE)


def _load(data: bytes) -> dict:
    try:
        document = json.loads(data.decode("utf-8"))
    except ValueError as e:
        raise ManifestInvalid(f"Manifest is not valid JSON: {e}")
    if not isinstance(document, dict):
        raise ManifestInvalid("Manifest must be a JSON object")
    return document


def manifest_media_type(data: bytes) -> Optional[str]:
    """Return the mediaType field of stored manifest content, or None if absent."""
    try:
        media_type = _load(data).get("mediaType")
    except ManifestInvalid:
        return None
    return media_type if isinstance(media_type, str) else None


def _referenced_digest(descriptor, field: str):
    if not isinstance(descriptor, dict) or not isinstance(descriptor.get("digest"), str):
        raise ManifestInvalid(f"Manifest {field} entry must be an object with a digest")
    try:
        return parse_digest(descriptor["digest"])
    except MalformedDigest as e:
        raise ManifestInvalid(f"Manifest {field} entry has an invalid digest: {e}")


def _check_image_manifest(storage, repository: str, document: dict) -> None:
    layers = document.get("layers")
    if not isinstance(layers, list):
        raise ManifestInvalid("Image manifest must contain a layers array")
    descriptors = [("config", document.get("config"))] + [("layers", layer) for layer in layers]
    for field, descriptor in descriptors:
        digest = _referenced_digest(descriptor, field)
        if storage.get_blob(repository, digest) is None:
            raise ManifestBlobUnknown(f"Manifest references unknown blob {digest}")


def _check_index(storage, repository: str, document: dict) -> None:
    manifests = document.get("manifests")
    if not isinstance(manifests, list):
        raise ManifestInvalid("Image index must contain a manifests array")
    for descriptor in manifests:
        digest = _referenced_digest(descriptor, "manifests")
        if storage.get_manifest(repository, digest) is None:
            raise ManifestBlobUnknown(f"Index references unknown manifest {digest}")


def validate_manifest(storage, repository: str, data: bytes, content_type: Optional[str] = None) -> str:
    """
    Check a pushed manifest before it is stored.

    Args:
        storage: RegistryStorage used for the blob/manifest presence checks
        repository: Repository the manifest is pushed to
        data: Raw manifest bytes
        content_type: Content-Type request header, if any

    Returns:
        The manifest media type

    Raises:
        ManifestInvalid: If the JSON, media type, or descriptors are invalid
        ManifestBlobUnknown: If a referenced blob or manifest is missing
    """
    document = _load(data)
    media_type = document.get("mediaType")
    if not isinstance(media_type, str):
        raise ManifestInvalid("Manifest must contain a mediaType string")
    if content_type and content_type != media_type:
        raise ManifestInvalid(f"Content-Type '{content_type}' does not match mediaType '{media_type}'")

    if media_type in INDEX_MEDIA_TYPES:
        _check_index(storage, repository, document)
    elif media_type in IMAGE_MANIFEST_MEDIA_TYPES:
        _check_image_manifest(storage, repository, document)
    else:
        raise ManifestInvalid(f"Unsupported manifest media type: {media_type}")

    logger.debug(f"Manifest validated: {repository}, mediaType={media_type}")
    return media_type
