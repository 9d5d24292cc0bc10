"""FFprobe pre-check: does the video already carry the intended metadata?"""

import json
import logging
import subprocess  # nosec B404 - required for ffprobe invocation
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from metarr.container_tags import (
    COMPARE_KEYS,
    DATE_ONLY_KEYS,
    container_key,
    intended_tags,
)
from metarr.dates import date_part
from metarr.exceptions import FFprobeError
from metarr.models import FileData

logger = logging.getLogger(__name__)

FFPROBE = "ffprobe"


@dataclass
class ProbeResult:
    """The parts of ffprobe output the pipeline uses."""

    tags: dict[str, str] = field(default_factory=dict)
    has_embedded_thumbnail: bool = False
    video_codec: str = ""
    audio_codec: str = ""


def parse_probe_output(data: dict[str, Any]) -> ProbeResult:
    """Reduce ffprobe JSON to tags, codecs and the attached-picture flag."""
    result = ProbeResult()
    tags = data.get("format", {}).get("tags", {}) or {}
    result.tags = {str(k): str(v) for k, v in tags.items()}

    for stream in data.get("streams", []):
        codec_type = stream.get("codec_type")
        disposition = stream.get("disposition", {}) or {}
        if codec_type == "video" and disposition.get("attached_pic") == 1:
            result.has_embedded_thumbnail = True
            continue
        if codec_type == "video" and not result.video_codec:
            result.video_codec = stream.get("codec_name", "")
        elif codec_type == "audio" and not result.audio_codec:
            result.audio_codec = stream.get("codec_name", "")
    return result


def probe(path: Path, timeout: float | None = None) -> ProbeResult:
    """Run ffprobe against ``path``.

    Args:
        path: Video to inspect
        timeout: Deadline in seconds (None waits indefinitely)

    Raises:
        FFprobeError: If ffprobe fails, times out or prints malformed JSON
    """
    cmd = [
        FFPROBE,
        "-v",
        "quiet",
        "-print_format",
        "json",
        "-show_format",
        "-show_streams",
        str(path),
    ]
    try:
        completed = subprocess.run(  # nosec B603 - fixed argv
            cmd,
            capture_output=True,
            text=True,
            errors="replace",
            check=True,
            timeout=timeout,
        )
        data = json.loads(completed.stdout)
    except subprocess.TimeoutExpired as e:
        raise FFprobeError(f"ffprobe timed out for {path} after {e.timeout}s") from e
    except subprocess.CalledProcessError as e:
        raise FFprobeError(f"ffprobe failed for {path}: {e.stderr or e}") from e
    except json.JSONDecodeError as e:
        raise FFprobeError(f"Invalid ffprobe output for {path}: {e}") from e
    except OSError as e:
        raise FFprobeError(f"Could not run ffprobe: {e}") from e

    if not isinstance(data, dict):
        raise FFprobeError(f"Unexpected ffprobe output for {path}")
    return parse_probe_output(data)


def _lookup_tag(tags: dict[str, str], key: str) -> str | None:
    for candidate in (key, key.lower(), key.upper(), key.title()):
        if candidate in tags:
            return tags[candidate]
    return None


def thumbnail_matches(
    fd: FileData,
    has_thumbnail: bool,
    strip_thumbnails: bool = False,
    force_write_thumbnails: bool = False,
) -> bool:
    if force_write_thumbnails:
        return False
    if strip_thumbnails:
        return not has_thumbnail
    if fd.web.thumbnail and not has_thumbnail:
        return False
    return True


def metadata_matches(
    fd: FileData,
    result: ProbeResult,
    ext: str,
    strip_thumbnails: bool = False,
    force_write_thumbnails: bool = False,
) -> bool:
    """Compare a probe result with the tags FileData intends to write.

    Args:
        fd: Populated record
        result: Probe of the current video
        ext: Output container extension
        strip_thumbnails: Attached pictures are to be removed
        force_write_thumbnails: Always rewrite the thumbnail

    Returns:
        True when nothing would change
    """
    if not thumbnail_matches(
        fd, result.has_embedded_thumbnail, strip_thumbnails, force_write_thumbnails
    ):
        logger.debug(f"Thumbnail state differs for {fd.video_path.name}")
        return False

    compare_keys = COMPARE_KEYS.get(ext.lower())
    if compare_keys is None:
        logger.debug(f"Tags of {ext} files cannot be compared, re-encoding")
        return False

    intended = intended_tags(fd)
    for key in compare_keys:
        want = intended.get(key, "")
        if not want:
            continue
        tag_name = container_key(ext, key) or key
        have = _lookup_tag(result.tags, tag_name)
        if have is None:
            logger.debug(f"{fd.video_path.name} is missing tag {tag_name}")
            return False
        have = have.strip()
        if key in DATE_ONLY_KEYS:
            have, want = date_part(have), date_part(want)
        if have != want:
            logger.debug(f"{fd.video_path.name}: {tag_name} is {have!r}, want {want!r}")
            return False
    return True
