"""Runs FFmpeg for one video and swaps the result into place."""

import logging
import subprocess  # nosec B404 - required for FFmpeg invocation
import threading
from pathlib import Path

from metarr.backup_utils import rename_to_backup
from metarr.config import Settings
from metarr.exceptions import Cancelled, FFmpegError, FFprobeError
from metarr.ffmpeg_builder import FFMPEG, MP4_FAMILY, FFmpegCommandBuilder
from metarr.ffprobe import ProbeResult, metadata_matches, probe
from metarr.file_utils import temp_output_path
from metarr.models import FileData, VideoProcessResult
from metarr.thumbnails import ThumbnailFetcher

logger = logging.getLogger(__name__)

# Containers a downloaded thumbnail can be embedded into
THUMBNAIL_CONTAINERS: frozenset[str] = MP4_FAMILY | {".mkv"}


class VideoExecutor:
    """Embeds FileData metadata into a video with FFmpeg."""

    def __init__(
        self,
        settings: Settings,
        builder: FFmpegCommandBuilder | None = None,
        thumbnails: ThumbnailFetcher | None = None,
        cancel_event: threading.Event | None = None,
    ):
        self.settings = settings
        self.builder = builder or FFmpegCommandBuilder(settings)
        self.thumbnails = thumbnails
        self.cancel_event = cancel_event

    def _check_cancelled(self, stage: str) -> None:
        if self.cancel_event is not None and self.cancel_event.is_set():
            raise Cancelled(f"Cancelled {stage}")

    def _probe(self, path: Path) -> ProbeResult | None:
        try:
            return probe(path, self.settings.ffprobe_timeout)
        except FFprobeError as e:
            logger.warning(f"{e}; treating metadata as out of date")
            return None

    def _fetch_thumbnail(self, fd: FileData, out_ext: str) -> Path | None:
        if (
            self.thumbnails is None
            or self.settings.strip_thumbnails
            or not fd.web.thumbnail
            or out_ext not in THUMBNAIL_CONTAINERS
        ):
            return None
        return self.thumbnails.fetch(fd.web.thumbnail, fd.video_path)

    def _swap(self, fd: FileData, temp_path: Path, final_path: Path) -> None:
        input_path = fd.video_path
        if input_path.suffix.lower() == final_path.suffix.lower():
            if self.settings.no_file_overwrite and input_path == final_path:
                rename_to_backup(input_path)
            temp_path.replace(final_path)
            return
        temp_path.replace(final_path)
        input_path.unlink(missing_ok=True)
        logger.debug(f"Removed original {input_path.name}")

    def execute(self, fd: FileData) -> VideoProcessResult:
        """Write metadata into ``fd.video_path``.

        The original stays untouched until FFmpeg succeeds. The temp output
        is removed on every exit path that leaves it behind.

        Raises:
            Cancelled: If cancellation is requested before or after FFmpeg
            FFmpegError: If FFmpeg cannot be started or exits non-zero
        """
        input_path = fd.video_path
        in_ext = input_path.suffix.lower()
        out_ext = self.settings.output_ext or in_ext
        temp_path = temp_output_path(input_path, out_ext)
        final_path = input_path.with_suffix(out_ext)
        fd.temp_output_path = temp_path
        fd.final_output_path = final_path

        probe_result = self._probe(input_path)
        if probe_result is not None:
            fd.has_embedded_thumbnail = probe_result.has_embedded_thumbnail
            if out_ext == in_ext and metadata_matches(
                fd,
                probe_result,
                out_ext,
                self.settings.strip_thumbnails,
                self.settings.force_write_thumbnails,
            ):
                fd.meta_already_exists = True
                logger.info(f"Metadata already present in {input_path.name}")
                return VideoProcessResult(
                    success=True,
                    file_path=input_path,
                    message="Metadata already present",
                    meta_already_exists=True,
                    final_path=input_path,
                )

        self._check_cancelled(f"before encoding {input_path.name}")
        thumbnail = self._fetch_thumbnail(fd, out_ext)
        try:
            args = self.builder.build(
                fd, input_path, temp_path, probe_result, thumbnail
            )
            cmd = [FFMPEG, *args]
            logger.info(f"Running FFmpeg for {input_path.name}")
            try:
                # stdout/stderr are inherited so FFmpeg's output reaches the user
                completed = subprocess.run(cmd, check=False)  # nosec B603
            except OSError as e:
                raise FFmpegError(f"Could not run FFmpeg: {e}") from e
            if completed.returncode != 0:
                raise FFmpegError(
                    f"FFmpeg exited with status {completed.returncode} "
                    f"for {input_path.name}",
                    returncode=completed.returncode,
                )

            self._check_cancelled(f"after encoding {input_path.name}")
            self._swap(fd, temp_path, final_path)
        finally:
            if temp_path.exists():
                temp_path.unlink()
                logger.debug(f"Cleaned up {temp_path.name}")
            if thumbnail is not None:
                thumbnail.unlink(missing_ok=True)

        logger.info(f"Wrote metadata into {final_path.name}")
        return VideoProcessResult(
            success=True,
            file_path=input_path,
            message="Metadata written",
            file_modified=True,
            ffmpeg_ran=True,
            final_path=final_path,
        )
