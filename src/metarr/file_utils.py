"""Filename rules for videos and sidecars.

Centralizes known extensions, compound sidecar suffixes and the name
normalization used to pair videos with their sidecars.
"""

import logging
import re
from pathlib import Path

from metarr.backup_utils import BACKUP_TAG
from metarr.models import SidecarKind

logger = logging.getLogger(__name__)

# Supported video extensions (lowercase with leading dot)
VIDEO_EXTENSIONS: frozenset[str] = frozenset(
    {
        ".3gp",
        ".3g2",
        ".asf",
        ".avi",
        ".f4v",
        ".flv",
        ".m4v",
        ".mkv",
        ".mov",
        ".mp4",
        ".mpeg",
        ".mpg",
        ".mts",
        ".ogm",
        ".ogv",
        ".rm",
        ".rmvb",
        ".ts",
        ".vob",
        ".webm",
        ".wmv",
    }
)

SIDECAR_EXTENSIONS: dict[str, SidecarKind] = {
    ".json": SidecarKind.JSON,
    ".nfo": SidecarKind.NFO,
}

# Multi-segment sidecar suffixes peeled before name matching
COMPOUND_SUFFIXES: tuple[str, ...] = (
    ".manifest.cdm.json",
    ".info.json",
    ".metadata.json",
    ".model.json",
    ".movie.nfo",
    ".tvshow.nfo",
    ".episode.nfo",
    ".disc.nfo",
    ".release.nfo",
    ".bdinfo.nfo",
    ".mediainfo.nfo",
)

TEMP_PREFIX = "tmp_"

_SPECIAL_CHARS = re.compile(r"[^\w\s-]")
_EXTRA_SPACES = re.compile(r"\s+")


def normalize_name(name: str) -> str:
    """Lowercase, drop special characters and collapse whitespace."""
    normalized = _SPECIAL_CHARS.sub("", name.lower())
    return _EXTRA_SPACES.sub(" ", normalized).strip()


def sidecar_kind(path: Path) -> SidecarKind | None:
    """Return the sidecar kind for a path, or None if it is not a sidecar."""
    return SIDECAR_EXTENSIONS.get(path.suffix.lower())


def is_video_file(path: Path, allowed_exts: list[str] | None = None) -> bool:
    """Check if a path has a video extension (restricted to ``allowed_exts``)."""
    suffix = path.suffix.lower()
    if allowed_exts:
        return suffix in allowed_exts
    return suffix in VIDEO_EXTENSIONS


def is_backup_file(path: Path) -> bool:
    """Return True for files carrying the backup tag."""
    return BACKUP_TAG in path.stem


def is_temp_file(path: Path) -> bool:
    return path.name.startswith(TEMP_PREFIX)


def sidecar_base(sidecar_name: str, video_base: str) -> str:
    """Strip the sidecar extension, peeling a compound suffix when appropriate.

    A compound suffix such as ``.info.json`` is removed whole unless the
    video's own base name also ends with its leading part (``.info``), in
    which case only the final extension is removed.

    Args:
        sidecar_name: Sidecar filename (with extension)
        video_base: Video filename without extension

    Returns:
        Sidecar base name to compare against the video base
    """
    lowered = sidecar_name.lower()
    for suffix in COMPOUND_SUFFIXES:
        if lowered.endswith(suffix):
            inner = suffix[: suffix.rfind(".")]
            if video_base.lower().endswith(inner):
                break
            return sidecar_name[: -len(suffix)]
    return Path(sidecar_name).stem


def matches(video: Path, sidecar: Path) -> bool:
    """Return True when the sidecar belongs to the video."""
    video_base = video.stem
    return normalize_name(video_base) == normalize_name(
        sidecar_base(sidecar.name, video_base)
    )


def passes_filters(
    path: Path,
    prefixes: list[str] | None = None,
    contains: list[str] | None = None,
    omit: list[str] | None = None,
) -> bool:
    """Apply the user's prefix/contains/omit filename filters."""
    name = path.name
    if prefixes and not any(name.startswith(prefix) for prefix in prefixes):
        return False
    if contains and not any(part in name for part in contains):
        return False
    if omit and any(part in name for part in omit):
        return False
    return True


def list_videos(
    directory: Path,
    allowed_exts: list[str] | None = None,
    prefixes: list[str] | None = None,
    contains: list[str] | None = None,
    omit: list[str] | None = None,
) -> list[Path]:
    """List candidate videos in a directory (non-recursive, sorted)."""
    results: list[Path] = []
    for path in sorted(directory.iterdir()):
        if not path.is_file() or is_backup_file(path) or is_temp_file(path):
            continue
        if is_video_file(path, allowed_exts) and passes_filters(
            path, prefixes, contains, omit
        ):
            results.append(path)
    return results


def list_sidecars(directory: Path) -> list[Path]:
    """List JSON and NFO sidecars in a directory (non-recursive, sorted)."""
    return [
        path
        for path in sorted(directory.iterdir())
        if path.is_file()
        and sidecar_kind(path) is not None
        and not is_backup_file(path)
    ]


def match_videos_to_sidecars(
    videos: list[Path], sidecars: list[Path]
) -> list[tuple[Path, Path]]:
    """Pair each video with the first sidecar whose normalized base matches.

    Args:
        videos: Candidate video files
        sidecars: Candidate sidecar files

    Returns:
        List of (video, sidecar) pairs in video order
    """
    pairs: list[tuple[Path, Path]] = []
    for video in videos:
        for sidecar in sidecars:
            if matches(video, sidecar):
                pairs.append((video, sidecar))
                break
        else:
            logger.debug(f"No sidecar found for {video.name}")
    return pairs


def temp_output_path(video_path: Path, output_ext: str) -> Path:
    """Return ``<dir>/tmp_<base><in_ext><out_ext>`` for a video."""
    out_ext = output_ext or video_path.suffix
    return video_path.with_name(
        f"{TEMP_PREFIX}{video_path.stem}{video_path.suffix}{out_ext}"
    )
