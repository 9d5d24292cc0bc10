"""Thumbnail download and conversion for embedding as cover art."""

import logging
import os
import tempfile
from io import BytesIO
from pathlib import Path

import httpx
from PIL import Image, UnidentifiedImageError

from metarr.file_utils import TEMP_PREFIX
from metarr.retry_utils import retry

logger = logging.getLogger(__name__)

THUMBNAIL_SUFFIX = "_thumb.jpg"


def thumbnail_path_for(video_path: Path) -> Path:
    """Return the temporary cover-art path beside a video."""
    return video_path.with_name(f"{TEMP_PREFIX}{video_path.stem}{THUMBNAIL_SUFFIX}")


def to_jpeg(raw_bytes: bytes) -> bytes:
    """Re-encode any Pillow-readable image as RGB JPEG.

    Raises:
        ValueError: If the bytes are not an image
    """
    try:
        with Image.open(BytesIO(raw_bytes)) as img:
            output = BytesIO()
            img.convert("RGB").save(output, format="JPEG", quality=95)
            return output.getvalue()
    except (UnidentifiedImageError, OSError) as e:
        raise ValueError(f"not a readable image: {e}") from e


def write_atomic(data: bytes, dst: Path) -> None:
    """Write ``data`` to ``dst`` through a temp file and ``os.replace``."""
    dst.parent.mkdir(parents=True, exist_ok=True)
    fd, temp_path = tempfile.mkstemp(dir=dst.parent, prefix=".tmp_", suffix=dst.suffix)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
        os.replace(temp_path, dst)
    except OSError:
        Path(temp_path).unlink(missing_ok=True)
        raise


class ThumbnailFetcher:
    """Downloads thumbnails with httpx and stores them as JPEG."""

    def __init__(self, timeout: float = 30.0, client: httpx.Client | None = None):
        self.http_client = client or httpx.Client(
            timeout=timeout, follow_redirects=True
        )

    def fetch(self, url: str, video_path: Path) -> Path | None:
        """Download ``url`` for ``video_path``.

        Returns:
            Path of the JPEG written beside the video, or None on failure
        """

        @retry(timeout=30.0, interval=1.0, exceptions=(httpx.TransportError,))
        def download() -> bytes:
            response = self.http_client.get(url)
            response.raise_for_status()
            return response.content

        try:
            jpeg = to_jpeg(download())
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"Could not fetch thumbnail {url}: {e}")
            return None

        dst = thumbnail_path_for(video_path)
        try:
            write_atomic(jpeg, dst)
        except OSError as e:
            logger.warning(f"Could not write thumbnail {dst}: {e}")
            return None
        logger.debug(f"Saved thumbnail for {video_path.name} to {dst.name}")
        return dst

    def close(self) -> None:
        """Close HTTP client."""
        self.http_client.close()
