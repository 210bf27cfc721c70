"""
Resumable blob upload sessions.

An upload session is a partial data file under

    repositories/<name>/_uploads/<id>/data

whose length is the current upload offset; there is no separate metadata
file. Appends must arrive in contiguous offset order. Writes to one upload id
are serialized by an in-process exclusive lock, and a writer that finds the
lock taken is rejected with UploadConflict instead of waiting.

Lifecycle:
    create -> append* -> finish (verified, moved into the blob pool, linked)
                      -> cancel / abandon (no externally visible effect)
"""

import logging
import re
import shutil
import threading
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Iterable, Optional

from .blobs import BlobStore
from .digest import Digest
from .errors import BlobUploadUnknown, DigestMismatch, UploadConflict
from .links import ReferenceIndex

logger = logging.getLogger(__name__)

UPLOAD_ID_PATTERN = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$")


class UploadLocks:
    """Non-blocking exclusive locks keyed by (repository, upload id)."""

    def __init__(self):
        self._guard = threading.Lock()
        self._active = set()

    @contextmanager
    def exclusive(self, repository: str, upload_id: str):
        key = (repository, upload_id)
        with self._guard:
            if key in self._active:
                raise UploadConflict(f"Upload {upload_id} is being written by another request")
            self._active.add(key)
        try:
            yield
        finally:
            with self._guard:
                self._active.discard(key)


class UploadSessions:
    """
    Upload state machine backed by partial files.

    Args:
        blobs: Blob pool that finished uploads are committed into
        links: Reference index receiving the blob link of finished uploads
        chunk_size: Block size used when re-reading partial data for hashing
    """

    def __init__(self, blobs: BlobStore, links: ReferenceIndex, chunk_size: int = 8192):
        self.links = links
        self.blobs = blobs
        self.chunk_size = chunk_size
        self._locks = UploadLocks()

    def upload_path(self, repository: str, upload_id: str) -> Path:
        return self.links.repository_path(repository) / "_uploads" / upload_id

    def data_path(self, repository: str, upload_id: str) -> Path:
        return self.upload_path(repository, upload_id) / "data"

    def create(self, repository: str) -> str:
        """Allocate a new upload id with an empty partial file."""
        upload_id = str(uuid.uuid4())
        path = self.data_path(repository, upload_id)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.touch(exist_ok=False)
        logger.info(f"Created upload {upload_id} in {repository}")
        return upload_id

    def size(self, repository: str, upload_id: str) -> Optional[int]:
        """Return the current offset of the upload, or None if it does not exist."""
        if not UPLOAD_ID_PATTERN.match(upload_id):
            return None
        try:
            return self.data_path(repository, upload_id).stat().st_size
        except (FileNotFoundError, NotADirectoryError):
            return None

    def _start_offset(self, repository: str, upload_id: str, offset: Optional[int]) -> int:
        current = self.size(repository, upload_id)
        if current is None:
            raise BlobUploadUnknown(f"Upload {upload_id} not found in {repository}")
        if offset is None or offset < 0:
            return current
        if offset != current:
            logger.warning(
                f"Upload {upload_id} offset mismatch in {repository}: expected {current}, got {offset}"
            )
            raise UploadConflict(f"Upload {upload_id} is at offset {current}, not {offset}", current)
        return current

    def _write(
        self,
        path: Path,
        chunks: Iterable[bytes],
        position: int,
        on_chunk: Optional[Callable[[bytes], None]] = None,
    ) -> int:
        # On failure the file is cut back to the last fully written chunk so
        # the client can resume from the reported offset.
        with path.open("r+b") as f:
            f.seek(position)
            try:
                for chunk in chunks:
                    if not chunk:
                        continue
                    f.write(chunk)
                    if on_chunk is not None:
                        on_chunk(chunk)
                    position += len(chunk)
            except BaseException:
                f.truncate(position)
                logger.warning(f"Upload write interrupted at offset {position}: {path}")
                raise
        return position

    def _hash_file(self, path: Path, hasher, size: Optional[int] = None) -> None:
        remaining = size
        with path.open("rb") as f:
            while remaining is None or remaining > 0:
                block = f.read(self.chunk_size if remaining is None else min(self.chunk_size, remaining))
                if not block:
                    if remaining is None:
                        return
                    raise UploadConflict(f"Upload data ended {remaining} bytes early: {path}")
                hasher.update(block)
                if remaining is not None:
                    remaining -= len(block)

    def append(self, repository: str, upload_id: str, chunks: Iterable[bytes], offset: Optional[int] = None) -> int:
        """
        Append a contiguous range of bytes to an upload.

        Args:
            repository: Repository name
            upload_id: Upload id returned by create()
            chunks: Iterable of byte chunks (e.g. a request body stream)
            offset: Offset the chunks start at; None or -1 appends at the
                current end without checking

        Returns:
            New upload offset

        Raises:
            BlobUploadUnknown: If the upload does not exist
            UploadConflict: If offset differs from the current length, or the
                upload is being written by another request
        """
        with self._locks.exclusive(repository, upload_id):
            start = self._start_offset(repository, upload_id, offset)
            written = self._write(self.data_path(repository, upload_id), chunks, start)
        logger.debug(f"Upload {upload_id} in {repository}: {start} -> {written}")
        return written

    def finish(
        self,
        repository: str,
        upload_id: str,
        chunks: Iterable[bytes],
        offset: Optional[int],
        digest: Digest,
    ) -> Digest:
        """
        Append trailing bytes, verify the digest, and commit the upload.

        The digest is computed while streaming when the write starts at
        offset 0. Otherwise the hasher is first seeded by re-reading the
        existing partial data from disk.

        Returns:
            The committed digest

        Raises:
            BlobUploadUnknown: If the upload does not exist
            UploadConflict: On offset mismatch or concurrent writer
            UnsupportedAlgorithm: If the digest algorithm cannot be computed
            DigestMismatch: If the content does not match digest; the partial
                upload is kept and nothing is committed
        """
        algorithm = digest.algorithm
        with self._locks.exclusive(repository, upload_id):
            start = self._start_offset(repository, upload_id, offset)
            path = self.data_path(repository, upload_id)
            hasher = algorithm.new_hasher()
            if start > 0:
                self._hash_file(path, hasher, start)
            written = self._write(path, chunks, start, hasher.update)
            if written != path.stat().st_size:
                hasher = algorithm.new_hasher()
                self._hash_file(path, hasher)
            actual = Digest.from_hasher(algorithm, hasher)
            if actual != digest:
                logger.warning(f"Upload {upload_id} in {repository}: digest mismatch, claimed {digest}, actual {actual}")
                raise DigestMismatch(
                    f"Uploaded content has digest {actual}, not {digest}",
                    expected=str(digest),
                    actual=str(actual),
                )
            self._commit(repository, upload_id, digest)
        return digest

    def _commit(self, repository: str, upload_id: str, digest: Digest) -> None:
        upload_path = self.upload_path(repository, upload_id)
        self.blobs.put_file(digest, upload_path / "data")
        upload_path.rmdir()
        self.links.link_blob(repository, digest)
        logger.info(f"Finished upload {upload_id} in {repository}: {digest}")

    def cancel(self, repository: str, upload_id: str) -> bool:
        """
        Delete an upload's partial state.

        Returns:
            True if the upload existed, False otherwise
        """
        with self._locks.exclusive(repository, upload_id):
            if self.size(repository, upload_id) is None:
                return False
            shutil.rmtree(self.upload_path(repository, upload_id))
        logger.info(f"Cancelled upload {upload_id} in {repository}")
        return True
