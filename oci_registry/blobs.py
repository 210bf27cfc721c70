"""
Content-addressed blob pool.

Blobs are stored once under their digest, shared by all repositories:

    blobs/<algorithm>/<first two hash characters>/<hash>/data

A blob file is write-once. Concurrent writers of the same digest converge on
whichever file was published first; the others discard their data.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Optional

from .digest import Digest
from .fileutil import create_parent_directories, move_if_not_exists, write_atomically_if_not_exists

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StoredBlob:
    """
    Handle to a blob in the pool, used for streaming and range reads.

    Attributes:
        digest: Digest the blob is stored under
        path: Path of the blob data file
        size: Size in bytes
    """

    digest: Digest
    path: Path
    size: int

    def open(self):
        return self.path.open("rb")

    def iter_bytes(self, first: int = 0, length: Optional[int] = None, chunk_size: int = 8192) -> Iterator[bytes]:
        """
        Yield the blob content in chunks, starting at first.

        Args:
            first: Start offset
            length: Number of bytes to yield; None reads to the end
            chunk_size: Maximum size of each chunk
        """
        remaining = self.size - first if length is None else length
        with self.open() as f:
            f.seek(first)
            while remaining > 0:
                chunk = f.read(min(chunk_size, remaining))
                if not chunk:
                    break
                remaining -= len(chunk)
                yield chunk


class BlobStore:
    """Digest-keyed physical storage of blob and manifest content."""

    def __init__(self, directory: Path):
        self.directory = Path(directory) / "blobs"

    def path_for(self, digest: Digest) -> Path:
        encoded = digest.encoded_hash
        return self.directory / digest.algorithm.id / encoded[:2] / encoded / "data"

    def exists(self, digest: Digest) -> bool:
        return self.path_for(digest).is_file()

    def put(self, digest: Digest, data: bytes) -> None:
        """
        Store data under digest.

        Idempotent: if content already exists under the digest the call is a
        no-op. Existing content is not re-validated; identical digests imply
        identical bytes.
        """
        if write_atomically_if_not_exists(self.path_for(digest), data):
            logger.info(f"Stored blob {digest} ({len(data)} bytes)")
        else:
            logger.debug(f"Blob already stored: {digest}")

    def put_file(self, digest: Digest, source: Path) -> bool:
        """
        Move an already written file into the pool under digest.

        If a blob with this digest already exists the move is abandoned and
        the source file is deleted instead.

        Returns:
            True if the source became the stored blob, False if it was discarded
        """
        target = create_parent_directories(self.path_for(digest))
        try:
            moved = not target.exists() and move_if_not_exists(source, target)
        finally:
            source.unlink(missing_ok=True)
        if moved:
            logger.info(f"Committed blob {digest} ({target.stat().st_size} bytes)")
        else:
            logger.debug(f"Blob already stored, discarded duplicate upload data: {digest}")
        return moved

    def get(self, digest: Digest) -> Optional[bytes]:
        """Return the content stored under digest, or None if it does not exist."""
        try:
            return self.path_for(digest).read_bytes()
        except FileNotFoundError:
            return None

    def stat(self, digest: Digest) -> Optional[StoredBlob]:
        path = self.path_for(digest)
        try:
            size = path.stat().st_size
        except FileNotFoundError:
            return None
        return StoredBlob(digest, path, size)
