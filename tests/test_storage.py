"""
Tests for the registry storage facade: manifests, tags, blob links, and mounts.
"""

from conftest import sha256_digest
from oci_registry.reference import Tag

MANIFEST = b'{"schemaVersion":2,"mediaType":"application/vnd.oci.image.manifest.v1+json","layers":[]}'


def push_blob(storage, repository, data):
    digest = sha256_digest(data)
    upload_id = storage.create_blob_upload(repository)
    storage.finish_blob_upload(repository, upload_id, [data], 0, digest)
    return digest


def test_manifest_by_tag_and_digest(storage):
    digest = sha256_digest(MANIFEST)
    storage.put_manifest("r", digest, MANIFEST)
    storage.tag_manifest("r", digest, Tag("latest"))

    by_tag = storage.get_manifest("r", Tag("latest"))
    assert by_tag.data == MANIFEST
    assert by_tag.digest == digest
    assert storage.get_manifest("r", digest).data == MANIFEST
    assert storage.get_manifest("other", digest) is None
    assert storage.get_manifest("r", Tag("missing")) is None


def test_manifest_link_layout(storage, storage_dir):
    digest = sha256_digest(MANIFEST)
    storage.put_manifest("library/app", digest, MANIFEST)
    storage.tag_manifest("library/app", digest, Tag("v1"))

    manifests = storage_dir / "repositories" / "library" / "app" / "_manifests"
    revision = manifests / "revisions" / "sha256" / digest.encoded_hash / "link"
    assert revision.read_text() == str(digest)
    assert (manifests / "tags" / "v1" / "current" / "link").read_text() == str(digest)
    assert (manifests / "tags" / "v1" / "index" / "sha256" / digest.encoded_hash / "link").read_text() == str(digest)


def test_put_manifest_is_idempotent(storage):
    digest = sha256_digest(MANIFEST)
    storage.put_manifest("r", digest, MANIFEST)
    storage.put_manifest("r", digest, MANIFEST)
    assert storage.get_manifest("r", digest).data == MANIFEST


def test_retag_moves_binding(storage, storage_dir):
    first = b'{"mediaType":"application/vnd.oci.image.manifest.v1+json","layers":[],"n":1}'
    second = b'{"mediaType":"application/vnd.oci.image.manifest.v1+json","layers":[],"n":2}'
    first_digest = sha256_digest(first)
    second_digest = sha256_digest(second)
    storage.put_manifest("r", first_digest, first)
    storage.put_manifest("r", second_digest, second)

    storage.tag_manifest("r", first_digest, Tag("latest"))
    storage.tag_manifest("r", second_digest, Tag("latest"))

    assert storage.get_manifest("r", Tag("latest")).data == second
    index = storage_dir / "repositories" / "r" / "_manifests" / "tags" / "latest" / "index" / "sha256"
    assert sorted(p.name for p in index.iterdir()) == sorted([first_digest.encoded_hash, second_digest.encoded_hash])


def test_link_to_missing_content_is_not_found(storage):
    digest = sha256_digest(MANIFEST)
    storage.put_manifest("r", digest, MANIFEST)
    storage.blobs.path_for(digest).unlink()

    assert storage.get_manifest("r", digest) is None
    assert storage.links.resolve_manifest("r", digest) == digest


def test_malformed_link_is_not_found(storage):
    digest = sha256_digest(MANIFEST)
    storage.put_manifest("r", digest, MANIFEST)
    storage.links.tag_current_link_path("r", "broken").parent.mkdir(parents=True)
    storage.links.tag_current_link_path("r", "broken").write_text("not a digest")

    assert storage.get_manifest("r", Tag("broken")) is None


def test_blob_visibility_is_per_repository(storage):
    digest = push_blob(storage, "source", b"layer")

    blob = storage.get_blob("source", digest)
    assert blob.size == 5
    assert blob.path.read_bytes() == b"layer"
    # the content exists in the shared pool, but is not linked into "target"
    assert storage.blobs.exists(digest)
    assert storage.get_blob("target", digest) is None


def test_mount_blob(storage):
    digest = push_blob(storage, "source", b"shared layer")

    assert storage.mount_blob("target", digest, "source")
    assert storage.get_blob("target", digest).path.read_bytes() == b"shared layer"
    # mounting again is a no-op success
    assert storage.mount_blob("target", digest, "source")


def test_mount_blob_without_source_link_fails(storage):
    digest = push_blob(storage, "source", b"layer")

    assert not storage.mount_blob("target", digest, "elsewhere")
    assert storage.get_blob("target", digest) is None


def test_mount_blob_with_missing_content_fails(storage):
    digest = push_blob(storage, "source", b"layer")
    storage.blobs.path_for(digest).unlink()

    assert not storage.mount_blob("target", digest, "source")
    assert storage.links.resolve_blob("target", digest) is None
    assert storage.get_blob("source", digest) is None
