"""
Tests for the blob pool and the atomic write primitives.
"""

import os
from concurrent.futures import ThreadPoolExecutor

import pytest

from conftest import sha256_digest
from oci_registry import fileutil
from oci_registry.blobs import BlobStore
from oci_registry.fileutil import write_atomically, write_atomically_if_not_exists


@pytest.fixture
def blobs(storage_dir):
    return BlobStore(storage_dir)


def test_put_and_get(blobs, storage_dir):
    data = b"layer content"
    digest = sha256_digest(data)
    blobs.put(digest, data)

    encoded = digest.encoded_hash
    path = storage_dir / "blobs" / "sha256" / encoded[:2] / encoded / "data"
    assert path.read_bytes() == data
    assert blobs.path_for(digest) == path
    assert blobs.get(digest) == data
    assert blobs.exists(digest)
    # no temporary siblings are left behind
    assert os.listdir(path.parent) == ["data"]


def test_put_is_idempotent_without_revalidation(blobs):
    digest = sha256_digest(b"original")
    blobs.put(digest, b"original")
    blobs.put(digest, b"something else")
    assert blobs.get(digest) == b"original"


def test_get_missing(blobs):
    digest = sha256_digest(b"missing")
    assert blobs.get(digest) is None
    assert blobs.stat(digest) is None
    assert not blobs.exists(digest)


def test_stat_and_iter_bytes(blobs):
    data = bytes(range(256))
    digest = sha256_digest(data)
    blobs.put(digest, data)

    blob = blobs.stat(digest)
    assert blob.size == 256
    assert blob.digest == digest
    assert b"".join(blob.iter_bytes(chunk_size=7)) == data
    assert b"".join(blob.iter_bytes(3, 8, chunk_size=3)) == data[3:11]


def test_put_file_moves_source(blobs):
    data = b"uploaded"
    digest = sha256_digest(data)
    source = blobs.path_for(digest).parent.parent / "upload"
    source.parent.mkdir(parents=True)
    source.write_bytes(data)

    assert blobs.put_file(digest, source)
    assert not source.exists()
    assert blobs.get(digest) == data


def test_put_file_discards_duplicate(blobs):
    data = b"uploaded"
    digest = sha256_digest(data)
    blobs.put(digest, data)
    source = blobs.path_for(digest).parent / "duplicate"
    source.write_bytes(data)

    assert not blobs.put_file(digest, source)
    assert not source.exists()
    assert blobs.get(digest) == data


def test_concurrent_put_converges(blobs):
    data = os.urandom(64 * 1024)
    digest = sha256_digest(data)

    with ThreadPoolExecutor(max_workers=16) as executor:
        list(executor.map(lambda _: blobs.put(digest, data), range(64)))

    path = blobs.path_for(digest)
    assert path.read_bytes() == data
    assert os.listdir(path.parent) == ["data"]


def test_concurrent_write_once_has_single_winner(tmp_path):
    target = tmp_path / "links" / "link"

    with ThreadPoolExecutor(max_workers=16) as executor:
        results = list(executor.map(lambda i: write_atomically_if_not_exists(target, f"{i}".encode()), range(64)))

    assert results.count(True) == 1
    winner = results.index(True)
    assert target.read_bytes() == f"{winner}".encode()
    assert os.listdir(target.parent) == ["link"]


def test_write_atomically_replaces(tmp_path):
    target = tmp_path / "current" / "link"
    write_atomically(target, b"first")
    write_atomically(target, b"second")
    assert target.read_bytes() == b"second"
    assert os.listdir(target.parent) == ["link"]


def test_write_atomically_if_not_exists_keeps_existing(tmp_path):
    target = tmp_path / "link"
    assert write_atomically_if_not_exists(target, b"first")
    assert not write_atomically_if_not_exists(target, b"second")
    assert target.read_bytes() == b"first"


def test_failed_write_removes_temporary_file(tmp_path, monkeypatch):
    def failing_replace(src, dst):
        raise OSError("disk full")

    monkeypatch.setattr(fileutil.os, "replace", failing_replace)
    target = tmp_path / "link"
    with pytest.raises(OSError, match="disk full"):
        write_atomically(target, b"data")
    assert os.listdir(tmp_path) == []


def test_unrecoverable_error_propagates(tmp_path):
    # parent of the target is a regular file
    (tmp_path / "blocker").write_bytes(b"")
    with pytest.raises(OSError):
        write_atomically_if_not_exists(tmp_path / "blocker" / "link", b"data")
