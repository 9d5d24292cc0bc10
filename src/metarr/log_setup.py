"""Console and rotating file logging."""

import gzip
import logging
import os
import shutil
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

LOG_FILENAME = "metarr.log"
LOG_MAX_BYTES = 1024 * 1024
LOG_BACKUP_COUNT = 3

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def _gzip_namer(name: str) -> str:
    return f"{name}.gz"


def _gzip_rotator(source: str, dest: str) -> None:
    with open(source, "rb") as src, gzip.open(dest, "wb") as dst:
        shutil.copyfileobj(src, dst)
    os.remove(source)


def setup_logging(debug_level: int = 0, log_dir: Path | None = None) -> logging.Logger:
    """Configure the ``metarr`` logger.

    Args:
        debug_level: 0 logs INFO to the console, anything higher logs DEBUG
        log_dir: Directory receiving ``metarr.log`` (None disables file logging)

    Returns:
        The configured package logger
    """
    log = logging.getLogger("metarr")
    log.setLevel(logging.DEBUG)
    for handler in log.handlers[:]:
        log.removeHandler(handler)
        handler.close()

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(logging.DEBUG if debug_level > 0 else logging.INFO)
    console_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    log.addHandler(console_handler)

    if log_dir is not None:
        try:
            log_dir.mkdir(parents=True, exist_ok=True)
            file_handler = RotatingFileHandler(
                log_dir / LOG_FILENAME,
                maxBytes=LOG_MAX_BYTES,
                backupCount=LOG_BACKUP_COUNT,
                encoding="utf-8",
            )
            file_handler.namer = _gzip_namer
            file_handler.rotator = _gzip_rotator
            file_handler.setLevel(logging.DEBUG)
            file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
            log.addHandler(file_handler)
        except OSError as e:
            log.warning(f"Failed to configure file logging in {log_dir}: {e}")

    return log
