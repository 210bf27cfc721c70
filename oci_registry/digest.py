"""
Content digest module for the container registry.

Parses, validates, formats, and computes OCI content digests of the form
``algorithm:encoded-hash``.

Algorithms:
    - Known algorithms (sha256, sha512) are backed by hashlib. Their encoded
      hash must be lowercase hex of the exact digest length.
    - Any other syntactically valid algorithm is kept as an opaque value so
      the registry can store, compare, and forward digests it cannot verify.
      Asking the server to compute such a digest raises UnsupportedAlgorithm.
"""

import hashlib
import re
from dataclasses import dataclass
from typing import Union

from .errors import MalformedDigest, UnsupportedAlgorithm

ALGORITHM_PATTERN = re.compile(r"^[a-z0-9]+(?:[.+_-][a-z0-9]+)*$")
HEX_PATTERN = re.compile(r"^[0-9a-f]+$")
OPAQUE_HASH_PATTERN = re.compile(r"^[a-zA-Z0-9=_-]+$")


@dataclass(frozen=True)
class KnownAlgorithm:
    """
    Digest algorithm the registry can compute.

    Attributes:
        id: Algorithm identifier as it appears in digests (e.g. "sha256")
        hash_length: Length of the raw hash in bytes
    """

    id: str
    hash_length: int

    supported = True

    def new_hasher(self):
        """Return a fresh incremental hashlib object for this algorithm."""
        return hashlib.new(self.id)

    def validate_hash(self, raw: bytes) -> bytes:
        """
        Check the raw hash has exactly the length produced by this algorithm.

        Raises:
            MalformedDigest: If the length is wrong
        """
        if len(raw) != self.hash_length:
            raise MalformedDigest(
                f"{self.id} hash must be {self.hash_length} bytes, got {len(raw)}"
            )
        return raw

    def decode_hash(self, encoded: str) -> str:
        if len(encoded) != self.hash_length * 2 or not HEX_PATTERN.match(encoded):
            raise MalformedDigest(
                f"{self.id} hash must be {self.hash_length * 2} lowercase hex characters: '{encoded}'"
            )
        return encoded

    def __str__(self):
        return self.id


@dataclass(frozen=True)
class OpaqueAlgorithm:
    """Syntactically valid algorithm the registry cannot compute (validate-only)."""

    id: str

    supported = False

    def new_hasher(self):
        raise UnsupportedAlgorithm(f"Digest algorithm '{self.id}' is not supported")

    def decode_hash(self, encoded: str) -> str:
        if not OPAQUE_HASH_PATTERN.match(encoded):
            raise MalformedDigest(f"Invalid encoded hash for algorithm '{self.id}': '{encoded}'")
        return encoded

    def __str__(self):
        return self.id


DigestAlgorithm = Union[KnownAlgorithm, OpaqueAlgorithm]

SHA256 = KnownAlgorithm("sha256", 32)
SHA512 = KnownAlgorithm("sha512", 64)

KNOWN_ALGORITHMS = {algorithm.id: algorithm for algorithm in (SHA256, SHA512)}


def get_algorithm(algorithm_id: str) -> DigestAlgorithm:
    """
    Look up a digest algorithm by identifier.

    Args:
        algorithm_id: Identifier such as "sha256" or "multihash+base58"

    Returns:
        The KnownAlgorithm for sha256/sha512, an OpaqueAlgorithm otherwise

    Raises:
        MalformedDigest: If the identifier does not match the algorithm grammar
    """
    known = KNOWN_ALGORITHMS.get(algorithm_id)
    if known is not None:
        return known
    if not ALGORITHM_PATTERN.match(algorithm_id):
        raise MalformedDigest(f"Invalid digest algorithm: '{algorithm_id}'")
    return OpaqueAlgorithm(algorithm_id)


def is_supported(algorithm: DigestAlgorithm) -> bool:
    """Return True if the registry can compute digests with this algorithm."""
    return algorithm.supported


@dataclass(frozen=True)
class Digest:
    """
    Immutable content digest with structural equality.

    Attributes:
        algorithm: KnownAlgorithm or OpaqueAlgorithm
        encoded_hash: Encoded hash (lowercase hex for known algorithms)
    """

    algorithm: DigestAlgorithm
    encoded_hash: str

    @property
    def hash(self) -> bytes:
        """Raw hash bytes; only defined for known algorithms."""
        if not self.algorithm.supported:
            raise UnsupportedAlgorithm(f"Digest algorithm '{self.algorithm.id}' is not supported")
        return bytes.fromhex(self.encoded_hash)

    @classmethod
    def from_hash(cls, algorithm: KnownAlgorithm, raw: bytes) -> "Digest":
        return cls(algorithm, algorithm.validate_hash(raw).hex())

    @classmethod
    def from_hasher(cls, algorithm: KnownAlgorithm, hasher) -> "Digest":
        """Finish an incremental hasher and wrap the result."""
        return cls.from_hash(algorithm, hasher.digest())

    def encode(self) -> str:
        return f"{self.algorithm.id}:{self.encoded_hash}"

    def __str__(self):
        return self.encode()


def parse_digest(value: str) -> Digest:
    """
    Parse a digest string.

    Args:
        value: String in format "<algorithm>:<encoded hash>"

    Returns:
        Parsed Digest

    Raises:
        MalformedDigest: If the separator is missing or either part is invalid

    Examples:
        >>> parse_digest("sha256:" + "0" * 64).algorithm
        KnownAlgorithm(id='sha256', hash_length=32)
        >>> parse_digest("foo+bar:abc_DEF=").algorithm
        OpaqueAlgorithm(id='foo+bar')
    """
    algorithm_id, separator, encoded = value.partition(":")
    if not separator:
        raise MalformedDigest(f"Missing ':' in digest '{value}'")
    algorithm = get_algorithm(algorithm_id)
    return Digest(algorithm, algorithm.decode_hash(encoded))


def compute_digest(data: bytes, algorithm: DigestAlgorithm = SHA256) -> Digest:
    """
    Compute the digest of in-memory content.

    Raises:
        UnsupportedAlgorithm: If the algorithm cannot be computed by the registry

    Example:
        >>> str(compute_digest(b"hello"))
        'sha256:2cf24dba5fb0a30e26e83b2ac5b9e29e1b161e5c1fa7425e73043362938b9824'
    """
    hasher = algorithm.new_hasher()
    hasher.update(data)
    return Digest.from_hasher(algorithm, hasher)
