"""
Repository-scoped link files.

A link records that a digest is reachable from a repository. Link files
contain the UTF-8 text "algorithm:hash" and live under:

    repositories/<name>/_manifests/revisions/<algorithm>/<hash>/link
    repositories/<name>/_manifests/tags/<tag>/current/link
    repositories/<name>/_manifests/tags/<tag>/index/<algorithm>/<hash>/link
    repositories/<name>/_layers/<algorithm>/<hash>/link

Tag bindings (current/link) are mutable; every digest-keyed link is write-once.
"""

import logging
from pathlib import Path
from typing import Optional

from .digest import Digest, parse_digest
from .errors import MalformedDigest
from .fileutil import write_atomically, write_atomically_if_not_exists

logger = logging.getLogger(__name__)


class ReferenceIndex:
    """
    Per-repository indirection from references to digests.

    Resolving answers "is this digest linked into this repository", which is a
    separate question from "does this content exist in the blob pool". Every
    resolve miss is reported as None.
    """

    def __init__(self, directory: Path):
        self.directory = Path(directory) / "repositories"

    def repository_path(self, repository: str) -> Path:
        return self.directory / repository

    def _digest_link_path(self, base: Path, digest: Digest) -> Path:
        return base / digest.algorithm.id / digest.encoded_hash / "link"

    def manifest_link_path(self, repository: str, digest: Digest) -> Path:
        return self._digest_link_path(self.repository_path(repository) / "_manifests" / "revisions", digest)

    def tag_path(self, repository: str, tag: str) -> Path:
        return self.repository_path(repository) / "_manifests" / "tags" / tag

    def tag_current_link_path(self, repository: str, tag: str) -> Path:
        return self.tag_path(repository, tag) / "current" / "link"

    def tag_index_link_path(self, repository: str, tag: str, digest: Digest) -> Path:
        return self._digest_link_path(self.tag_path(repository, tag) / "index", digest)

    def blob_link_path(self, repository: str, digest: Digest) -> Path:
        return self._digest_link_path(self.repository_path(repository) / "_layers", digest)

    def _read_link(self, path: Path) -> Optional[Digest]:
        try:
            text = path.read_text(encoding="utf-8")
        except (FileNotFoundError, NotADirectoryError):
            return None
        try:
            return parse_digest(text.strip())
        except MalformedDigest:
            logger.warning(f"Ignoring link with malformed content: {path}")
            return None

    def _write_link_once(self, path: Path, digest: Digest) -> None:
        if write_atomically_if_not_exists(path, str(digest).encode("utf-8")):
            logger.debug(f"Created link {path} -> {digest}")

    def resolve_tag(self, repository: str, tag: str) -> Optional[Digest]:
        """Return the digest the tag currently points to in the repository."""
        return self._read_link(self.tag_current_link_path(repository, tag))

    def resolve_manifest(self, repository: str, digest: Digest) -> Optional[Digest]:
        """Return the manifest digest if it is linked into the repository."""
        return self._read_link(self.manifest_link_path(repository, digest))

    def resolve_blob(self, repository: str, digest: Digest) -> Optional[Digest]:
        """Return the blob digest if it is linked into the repository."""
        return self._read_link(self.blob_link_path(repository, digest))

    def link_manifest(self, repository: str, digest: Digest) -> None:
        self._write_link_once(self.manifest_link_path(repository, digest), digest)

    def tag_manifest(self, repository: str, digest: Digest, tag: str) -> None:
        """
        Point tag at digest, replacing any previous binding.

        Also records a write-once (tag, digest) index entry, kept for
        interoperability with the distribution on-disk layout.
        """
        write_atomically(self.tag_current_link_path(repository, tag), str(digest).encode("utf-8"))
        self._write_link_once(self.tag_index_link_path(repository, tag, digest), digest)
        logger.info(f"Tagged {repository}:{tag} -> {digest}")

    def link_blob(self, repository: str, digest: Digest) -> None:
        self._write_link_once(self.blob_link_path(repository, digest), digest)
