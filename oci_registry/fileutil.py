"""
Atomic file write primitives.

Every write goes to a uniquely named temporary sibling first and is then
published onto the final path in one filesystem operation, so readers never
observe a half-written file. The temporary file is removed on every exit path.
"""

import logging
import os
import tempfile
from pathlib import Path

logger = logging.getLogger(__name__)


def create_parent_directories(path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    return path


def _write_temp_sibling(path: Path, data: bytes) -> Path:
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f"{path.name}.", suffix=".tmp")
    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise
    return tmp_path


def write_atomically(path: Path, data: bytes) -> None:
    """
    Write data to path, replacing any existing file (last writer wins).

    Args:
        path: Final file path; parent directories are created if missing
        data: Complete file content
    """
    create_parent_directories(path)
    tmp_path = _write_temp_sibling(path, data)
    try:
        os.replace(tmp_path, path)
    finally:
        tmp_path.unlink(missing_ok=True)


def write_atomically_if_not_exists(path: Path, data: bytes) -> bool:
    """
    Write data to path unless a file already exists there (first writer wins).

    The final step is a hard link of the temporary file onto the target,
    which fails with FileExistsError instead of clobbering a file published
    by a concurrent writer. Losing that race counts as success.

    Args:
        path: Final file path; parent directories are created if missing
        data: Complete file content

    Returns:
        True if this call created the file, False if it already existed

    Raises:
        OSError: For any failure other than the target already existing
    """
    if path.exists():
        return False
    create_parent_directories(path)
    tmp_path = _write_temp_sibling(path, data)
    try:
        return move_if_not_exists(tmp_path, path)
    finally:
        tmp_path.unlink(missing_ok=True)


def move_if_not_exists(source: Path, target: Path) -> bool:
    """
    Move source onto target without overwriting an existing target.

    Both paths must be on the same filesystem; the content is never copied.
    If target already exists the source is left in place for the caller to
    discard.

    Returns:
        True if source now lives at target, False if target already existed
    """
    try:
        os.link(source, target)
    except FileExistsError:
        logger.debug(f"Target already exists, keeping existing file: {target}")
        return False
    source.unlink()
    return True
