"""Per-path sidecar locks and the truncate-then-write discipline."""

import logging
import os
import threading
from pathlib import Path
from typing import BinaryIO

from metarr.backup_utils import backup_file, get_backup_path
from metarr.exceptions import Cancelled, SidecarIOError

logger = logging.getLogger(__name__)

_registry_lock = threading.Lock()
_file_locks: dict[Path, threading.RLock] = {}


def lock_for(path: Path) -> threading.RLock:
    """Return the process-wide lock for a sidecar, creating it on first use.

    Locks are re-entrant so a worker holding the lock for a whole
    decode-edit-write cycle can still call the writers, which lock again.
    """
    key = path.resolve()
    with _registry_lock:
        lock = _file_locks.get(key)
        if lock is None:
            lock = threading.RLock()
            _file_locks[key] = lock
        return lock


def write_buffer(
    handle: BinaryIO,
    data: bytes,
    path: Path,
    no_file_overwrite: bool = False,
    cancel_event: threading.Event | None = None,
) -> None:
    """Replace the contents of an open sidecar with ``data``.

    Args:
        handle: File opened in ``r+b`` mode
        data: Serialized sidecar
        path: Path of the sidecar (for locking, backups and messages)
        no_file_overwrite: Write a verified backup copy first
        cancel_event: Abort before touching the file when set

    Raises:
        Cancelled: If cancellation was requested before the write began
        SidecarIOError: If any step fails
    """
    with lock_for(path):
        if cancel_event is not None and cancel_event.is_set():
            raise Cancelled(f"Cancelled before writing {path.name}")

        position = handle.tell()
        try:
            if no_file_overwrite and not get_backup_path(path).exists():
                backup_file(path)
            handle.seek(0)
            handle.truncate()
            handle.write(data)
            handle.flush()
            os.fsync(handle.fileno())
        except OSError as e:
            try:
                handle.seek(position)
            except OSError:
                logger.debug(f"Could not restore seek position in {path}")
            raise SidecarIOError(f"Failed to write {path}: {e}") from e
    logger.debug(f"Wrote {len(data)} bytes to {path}")
