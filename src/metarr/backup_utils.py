"""Backup copies and checksum-verified file moves.

Backups live beside the original as ``<name>_metarrbackup<ext>``. Moves
compare SHA-256 digests of source and destination before the source is
released.
"""

import hashlib
import logging
import os
import shutil
from pathlib import Path

from metarr.exceptions import HashMismatchError

logger = logging.getLogger(__name__)

BACKUP_TAG = "_metarrbackup"
COPY_BUFFER_SIZE = 4 * 1024 * 1024


def get_backup_path(file_path: Path) -> Path:
    """Return ``name_metarrbackup.ext`` beside ``file_path``."""
    return file_path.with_name(f"{file_path.stem}{BACKUP_TAG}{file_path.suffix}")


def rename_to_backup(file_path: Path) -> Path:
    """Rename a file to its backup name.

    Args:
        file_path: File to rename

    Returns:
        The backup path
    """
    backup_path = get_backup_path(file_path)
    file_path.rename(backup_path)
    logger.info(f"Renamed {file_path.name} to backup {backup_path.name}")
    return backup_path


def backup_file(file_path: Path) -> Path:
    """Copy current contents of a file to its backup path.

    Args:
        file_path: File to back up

    Returns:
        The backup path
    """
    backup_path = get_backup_path(file_path)
    with file_path.open("rb") as src, backup_path.open("wb") as dst:
        shutil.copyfileobj(src, dst, COPY_BUFFER_SIZE)
        dst.flush()
        os.fsync(dst.fileno())
    logger.debug(f"Backed up {file_path} to {backup_path}")
    return backup_path


def sha256_file(file_path: Path) -> str:
    """Return the hex SHA-256 digest of a file."""
    digest = hashlib.sha256()
    with file_path.open("rb") as f:
        for chunk in iter(lambda: f.read(COPY_BUFFER_SIZE), b""):
            digest.update(chunk)
    return digest.hexdigest()


def _copy_with_fsync(src: Path, dst: Path) -> None:
    with src.open("rb") as fsrc, dst.open("wb") as fdst:
        shutil.copyfileobj(fsrc, fdst, COPY_BUFFER_SIZE)
        fdst.flush()
        os.fsync(fdst.fileno())
    try:
        shutil.copymode(src, dst)
    except OSError as e:
        # Remote destinations often refuse chmod
        logger.warning(f"Could not copy permissions to {dst}: {e}")


def move_or_copy_file(src: Path, dst: Path) -> None:
    """Move a file, verifying its checksum, falling back to copy.

    A rename is tried first; when it fails (e.g. across devices) the file is
    copied and fsync'd, and the source is only deleted once the copy
    verifies. A destination that does not hash to the source digest is
    removed before the error is raised.

    Args:
        src: File to move
        dst: Destination path

    Raises:
        HashMismatchError: If the copied file does not match the source
    """
    if src.resolve() == dst.resolve():
        logger.debug(f"Source and destination are the same file, skipping: {src}")
        return

    source_hash: str | None
    try:
        source_hash = sha256_file(src)
    except OSError as e:
        logger.warning(f"Could not hash {src}, moving without verification: {e}")
        source_hash = None

    dst.parent.mkdir(parents=True, exist_ok=True)

    try:
        src.rename(dst)
    except OSError as e:
        logger.debug(f"Rename {src} -> {dst} failed ({e}), copying instead")
    else:
        if source_hash is None or sha256_file(dst) == source_hash:
            return
        dst.unlink(missing_ok=True)
        raise HashMismatchError(f"Checksum mismatch after renaming {src} to {dst}")

    _copy_with_fsync(src, dst)
    if source_hash is not None and sha256_file(dst) != source_hash:
        dst.unlink(missing_ok=True)
        raise HashMismatchError(f"Checksum mismatch copying {src} to {dst}")
    src.unlink()
