"""
Registry error classes.

Provides the taxonomy of errors raised by the storage engine and the upload
protocol. The HTTP layer maps each class to a status code; anything outside
this hierarchy (for example an unexpected ``OSError``) propagates and fails
only the current request.
"""
from __future__ import annotations


class RegistryError(Exception):
    """
    Base class for all registry errors.

    Attributes:
        status_code: HTTP status the protocol handler answers with
        code: OCI error code reported in the JSON error body
    """

    status_code = 500
    code = "UNKNOWN"


class NotFound(RegistryError):
    """
    Reference, digest, or upload id could not be resolved.

    Storage lookups report a miss as ``None``; this exception is only raised
    where an operation cannot return a value, such as appending to an upload.
    """

    status_code = 404
    code = "NAME_UNKNOWN"


class BlobUploadUnknown(NotFound):
    """Upload id does not exist in the repository."""

    code = "BLOB_UPLOAD_UNKNOWN"


class MalformedDigest(RegistryError, ValueError):
    """Digest string fails the ``algorithm:hash`` grammar."""

    status_code = 400
    code = "DIGEST_INVALID"


class UnsupportedAlgorithm(RegistryError):
    """
    The server was asked to compute a digest with an algorithm it cannot run.

    Digests under unknown algorithms can still be parsed, stored, and compared.
    """

    status_code = 400
    code = "DIGEST_INVALID"


class MalformedRange(RegistryError, ValueError):
    """Range header fails the byte-range grammar."""

    status_code = 400
    code = "RANGE_INVALID"


class RangeNotSatisfiable(RegistryError):
    """A syntactically valid range does not overlap the resource."""

    status_code = 416
    code = "RANGE_INVALID"

    def __init__(self, message: str, size: int | None = None):
        super().__init__(message)
        self.size = size


class UploadConflict(RegistryError):
    """
    Upload offset does not match the upload's current length.

    Raised when:
    - the supplied offset differs from the partial file length
    - another request is currently writing to the same upload id

    The client must query the current offset and resume from there.
    """

    status_code = 416
    code = "BLOB_UPLOAD_INVALID"

    def __init__(self, message: str, size: int | None = None):
        super().__init__(message)
        self.size = size


class DigestMismatch(RegistryError):
    """
    Content digest verification failed.

    Raised when the digest computed over uploaded content differs from the
    digest claimed by the client. The upload session is left intact.
    """

    status_code = 400
    code = "DIGEST_INVALID"

    def __init__(self, message: str, expected: str | None = None, actual: str | None = None):
        super().__init__(message)
        self.expected = expected
        self.actual = actual


class ManifestInvalid(RegistryError):
    """Manifest body is not valid JSON, lacks a media type, or disagrees with the request."""

    status_code = 400
    code = "MANIFEST_INVALID"


class ManifestBlobUnknown(ManifestInvalid):
    """Manifest references a blob or child manifest not present in the repository."""

    code = "MANIFEST_BLOB_UNKNOWN"


__all__ = [
    "RegistryError",
    "NotFound",
    "BlobUploadUnknown",
    "MalformedDigest",
    "UnsupportedAlgorithm",
    "MalformedRange",
    "RangeNotSatisfiable",
    "UploadConflict",
    "DigestMismatch",
    "ManifestInvalid",
    "ManifestBlobUnknown",
]
