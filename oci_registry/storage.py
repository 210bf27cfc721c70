"""
Registry storage facade.

Combines the blob pool, the per-repository reference index, and upload
sessions into the operation set consumed by the HTTP handler. The only
implementation is DistributionRegistryStorage, which keeps the on-disk
layout of the reference distribution registry so existing storage
directories can be served as-is.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional

from .blobs import BlobStore, StoredBlob
from .digest import Digest
from .links import ReferenceIndex
from .reference import Reference, Tag
from .uploads import UploadSessions

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Manifest:
    """Manifest content together with the digest it is stored under."""

    digest: Digest
    data: bytes


class RegistryStorage(ABC):
    """Storage operations backing the OCI distribution endpoints."""

    @abstractmethod
    def get_manifest(self, repository: str, reference: Reference) -> Optional[Manifest]:
        pass

    @abstractmethod
    def put_manifest(self, repository: str, digest: Digest, data: bytes) -> None:
        pass

    @abstractmethod
    def tag_manifest(self, repository: str, digest: Digest, tag: Tag) -> None:
        pass

    @abstractmethod
    def get_blob(self, repository: str, digest: Digest) -> Optional[StoredBlob]:
        pass

    @abstractmethod
    def mount_blob(self, repository: str, digest: Digest, from_repository: str) -> bool:
        pass

    @abstractmethod
    def create_blob_upload(self, repository: str) -> str:
        pass

    @abstractmethod
    def get_blob_upload_size(self, repository: str, upload_id: str) -> Optional[int]:
        pass

    @abstractmethod
    def progress_blob_upload(
        self, repository: str, upload_id: str, chunks: Iterable[bytes], offset: Optional[int]
    ) -> int:
        pass

    @abstractmethod
    def finish_blob_upload(
        self, repository: str, upload_id: str, chunks: Iterable[bytes], offset: Optional[int], digest: Digest
    ) -> Digest:
        pass

    @abstractmethod
    def cancel_blob_upload(self, repository: str, upload_id: str) -> bool:
        pass


class DistributionRegistryStorage(RegistryStorage):
    """
    Filesystem storage using the distribution registry directory layout.

    Args:
        directory: Storage root containing blobs/ and repositories/
        chunk_size: Block size for re-reading partial uploads

    Example:
        >>> storage = DistributionRegistryStorage("/var/lib/registry")
        >>> upload_id = storage.create_blob_upload("library/alpine")
        >>> digest = compute_digest(b"data")
        >>> storage.finish_blob_upload("library/alpine", upload_id, [b"data"], 0, digest) == digest
        True
    """

    def __init__(self, directory, chunk_size: int = 8192):
        self.directory = Path(directory)
        self.blobs = BlobStore(self.directory)
        self.links = ReferenceIndex(self.directory)
        self.uploads = UploadSessions(self.blobs, self.links, chunk_size=chunk_size)

    def _linked_blob(self, linked: Optional[Digest], repository: str) -> Optional[StoredBlob]:
        if linked is None:
            return None
        blob = self.blobs.stat(linked)
        if blob is None:
            # The link exists but its content is gone from the pool. This is
            # reported as not found; the warning is the only trace of it.
            logger.warning(f"Link in {repository} points to missing blob {linked}")
        return blob

    def get_manifest(self, repository: str, reference: Reference) -> Optional[Manifest]:
        """
        Resolve a tag or digest to manifest content in a repository.

        Returns:
            Manifest, or None if the reference is not linked into the
            repository or its content is missing
        """
        if isinstance(reference, Tag):
            linked = self.links.resolve_tag(repository, reference.name)
        else:
            linked = self.links.resolve_manifest(repository, reference)
        blob = self._linked_blob(linked, repository)
        if blob is None:
            logger.debug(f"Manifest not found: {repository}@{reference}")
            return None
        data = self.blobs.get(blob.digest)
        if data is None:
            return None
        return Manifest(blob.digest, data)

    def put_manifest(self, repository: str, digest: Digest, data: bytes) -> None:
        self.blobs.put(digest, data)
        self.links.link_manifest(repository, digest)
        logger.info(f"Stored manifest {repository}@{digest}")

    def tag_manifest(self, repository: str, digest: Digest, tag: Tag) -> None:
        self.links.tag_manifest(repository, digest, tag.name)

    def get_blob(self, repository: str, digest: Digest) -> Optional[StoredBlob]:
        """Return a handle to a blob linked into the repository, or None."""
        return self._linked_blob(self.links.resolve_blob(repository, digest), repository)

    def mount_blob(self, repository: str, digest: Digest, from_repository: str) -> bool:
        """
        Link a blob of another repository into this repository without re-upload.

        Returns:
            True if the source repository links the blob and its content still
            exists; False otherwise, in which case the client falls back to a
            regular upload
        """
        linked = self.links.resolve_blob(from_repository, digest)
        if linked is None or not self.blobs.exists(linked):
            logger.info(f"Cannot mount {digest} from {from_repository} into {repository}")
            return False
        self.links.link_blob(repository, linked)
        logger.info(f"Mounted {digest} from {from_repository} into {repository}")
        return True

    def create_blob_upload(self, repository: str) -> str:
        return self.uploads.create(repository)

    def get_blob_upload_size(self, repository: str, upload_id: str) -> Optional[int]:
        return self.uploads.size(repository, upload_id)

    def progress_blob_upload(
        self, repository: str, upload_id: str, chunks: Iterable[bytes], offset: Optional[int]
    ) -> int:
        return self.uploads.append(repository, upload_id, chunks, offset)

    def finish_blob_upload(
        self, repository: str, upload_id: str, chunks: Iterable[bytes], offset: Optional[int], digest: Digest
    ) -> Digest:
        return self.uploads.finish(repository, upload_id, chunks, offset, digest)

    def cancel_blob_upload(self, repository: str, upload_id: str) -> bool:
        return self.uploads.cancel(repository, upload_id)
