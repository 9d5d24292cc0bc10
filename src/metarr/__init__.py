"""Metarr.

Batch processor that pairs videos with JSON or NFO sidecar files, edits and
completes the sidecar metadata, and embeds it into the video container with
FFmpeg.
"""

try:
    from ._version import __version__
except ImportError:
    # Fallback for development installations without version file
    __version__ = "0.0.0+unknown"
