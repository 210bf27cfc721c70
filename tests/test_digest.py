"""
Tests for digest parsing, formatting, and computation.
"""

import hashlib

import pytest

from oci_registry.digest import (
    SHA256,
    SHA512,
    Digest,
    KnownAlgorithm,
    OpaqueAlgorithm,
    compute_digest,
    get_algorithm,
    is_supported,
    parse_digest,
)
from oci_registry.errors import MalformedDigest, UnsupportedAlgorithm
from oci_registry.reference import Tag, parse_reference

HASH_64 = "0123456789012345678901234567890123456789012345678901234567890123"


def test_parse_sha256():
    digest = parse_digest(f"sha256:{HASH_64}")
    assert digest.algorithm == SHA256
    assert digest.encoded_hash == HASH_64
    assert digest.hash == bytes.fromhex(HASH_64)


def test_parse_unknown_algorithm():
    digest = parse_digest("foo+bar.wab_47-11:abcdefghijklmnopqrstuvwxyz_ABCDEFGHIJKLMNOPQRSTUVWXYZ-0123456789=")
    assert isinstance(digest.algorithm, OpaqueAlgorithm)
    assert digest.algorithm.id == "foo+bar.wab_47-11"
    assert digest.encoded_hash == "abcdefghijklmnopqrstuvwxyz_ABCDEFGHIJKLMNOPQRSTUVWXYZ-0123456789="
    assert not is_supported(digest.algorithm)


@pytest.mark.parametrize(
    "value",
    [
        f"sha256-{HASH_64}",
        f"sha256:{HASH_64.upper()}",
        f"sha256:{HASH_64[:-1]}",
        f"sha256:{HASH_64}0",
        f"sha512:{HASH_64}",
        f"SHA256:{HASH_64}",
        f"foo..bar:{HASH_64}",
        "foo:abc/def",
        "foo:",
        f":{HASH_64}",
    ],
)
def test_parse_invalid_digest_raises(value):
    with pytest.raises(MalformedDigest):
        parse_digest(value)


def test_round_trip():
    for value in [f"sha256:{HASH_64}", f"sha512:{'ab' * 64}", "multihash+base58:QmRZxt2b1FVZPNqd8hsiykDL3TdBDeTSPX9Kv46HmX4Gx8"]:
        digest = parse_digest(value)
        assert str(digest) == value
        assert parse_digest(digest.encode()) == digest


def test_structural_equality():
    assert parse_digest(f"sha256:{HASH_64}") == parse_digest(f"sha256:{HASH_64}")
    assert hash(parse_digest(f"sha256:{HASH_64}")) == hash(Digest(SHA256, HASH_64))
    assert parse_digest(f"sha256:{'0' * 64}") != parse_digest(f"sha256:{HASH_64}")


def test_compute_digest_known_value():
    assert str(compute_digest(b"hello")) == (
        "sha256:2cf24dba5fb0a30e26e83b2ac5b9e29e1b161e5c1fa7425e73043362938b9824"
    )


def test_compute_digest_is_deterministic():
    data = bytes(range(256)) * 3
    for algorithm in (SHA256, SHA512):
        assert compute_digest(data, algorithm) == compute_digest(data, algorithm)


def test_compute_sha512():
    digest = compute_digest(b"content", SHA512)
    assert digest.encoded_hash == hashlib.sha512(b"content").hexdigest()
    assert len(digest.hash) == 64


def test_compute_digest_unknown_algorithm_raises():
    algorithm = get_algorithm("blake3")
    assert isinstance(algorithm, OpaqueAlgorithm)
    with pytest.raises(UnsupportedAlgorithm):
        compute_digest(b"content", algorithm)
    with pytest.raises(UnsupportedAlgorithm):
        algorithm.new_hasher()


def test_opaque_digest_has_no_raw_hash():
    digest = parse_digest("blake3:abcdef")
    with pytest.raises(UnsupportedAlgorithm):
        digest.hash


def test_validate_hash_length():
    assert SHA256.validate_hash(b"\0" * 32) == b"\0" * 32
    with pytest.raises(MalformedDigest):
        SHA256.validate_hash(b"\0" * 31)
    with pytest.raises(MalformedDigest):
        Digest.from_hash(SHA512, b"\0" * 32)


def test_get_algorithm_known():
    assert isinstance(get_algorithm("sha256"), KnownAlgorithm)
    assert get_algorithm("sha512") is SHA512


def test_parse_reference():
    assert parse_reference("latest") == Tag("latest")
    assert parse_reference(f"sha256:{HASH_64}") == Digest(SHA256, HASH_64)
    with pytest.raises(MalformedDigest):
        parse_reference("sha256:nothex")
