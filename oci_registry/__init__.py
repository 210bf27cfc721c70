"""
OCI-compliant container registry backed by a local filesystem.

This registry implements the OCI Distribution Specification v1.0 with backward
compatibility for Docker Registry v2 API. Blobs and manifests are stored
content-addressed in one shared pool; repositories reference them through
link files, using the same directory layout as the reference distribution
registry.

Features:
    - OCI Distribution Specification compliant push and pull
    - Content-addressed, deduplicated, write-once blob storage
    - Atomic writes (temporary file + rename) safe under concurrent pushes
    - Resumable chunked uploads with incremental digest verification
    - Cross-repository blob mounts
    - HTTP byte-range requests for blobs
    - Configurable via environment variables
"""

__version__ = "0.1.0"

# Import key components for convenience
from .config import Config
from .digest import Digest, compute_digest, parse_digest
from .errors import RegistryError
from .http_range import ByteRange, RangeSpec, parse_range_header
from .reference import Tag, parse_reference
from .storage import DistributionRegistryStorage, Manifest, RegistryStorage

__all__ = [
    "Config",
    "Digest",
    "compute_digest",
    "parse_digest",
    "RegistryError",
    "ByteRange",
    "RangeSpec",
    "parse_range_header",
    "Tag",
    "parse_reference",
    "DistributionRegistryStorage",
    "Manifest",
    "RegistryStorage",
]
