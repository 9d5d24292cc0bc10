"""Error kinds raised by metarr."""

from pathlib import Path


class MetarrError(Exception):
    """Base class for application-specific errors."""


class ConfigError(MetarrError):
    """Bad flag value or invalid input path."""


class PairingError(MetarrError):
    """No sidecar could be matched to any video in a batch."""


class SidecarIOError(MetarrError):
    """Sidecar open, decode or write failure."""


class TemplateError(MetarrError):
    """Unresolvable template tag or unbalanced delimiters."""


class FFprobeError(MetarrError):
    """FFprobe failed or returned malformed JSON."""


class FFmpegError(MetarrError):
    """FFmpeg exited with a non-zero status."""

    def __init__(self, message: str, returncode: int | None = None):
        super().__init__(message)
        self.returncode = returncode


class HashMismatchError(MetarrError):
    """Checksum verification failed after a move or copy."""


class Cancelled(MetarrError):
    """Cooperative cancellation was requested."""


class ProcessingError(MetarrError):
    """Failure while processing a single file.

    The underlying error is available as ``__cause__`` and ``error``.
    """

    def __init__(self, file_path: Path, error: Exception):
        super().__init__(f"{file_path.name}: {error}")
        self.file_path = file_path
        self.error = error
