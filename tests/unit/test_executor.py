"""Unit tests for the FFmpeg executor."""

import threading
from pathlib import Path
from typing import Any
from unittest.mock import Mock, patch

import pytest

from metarr.exceptions import Cancelled, FFmpegError, FFprobeError
from metarr.executor import VideoExecutor
from metarr.ffmpeg_builder import EncoderCache, FFmpegCommandBuilder
from metarr.ffprobe import ProbeResult
from metarr.models import FileData
from tests.conftest import create_test_settings, make_file_data


def _executor(
    tmp_path: Path,
    cancel_event: threading.Event | None = None,
    thumbnails: Any = None,
    **settings: Any,
) -> VideoExecutor:
    config = create_test_settings(tmp_path, **settings)
    encoders = Mock(spec=EncoderCache)
    encoders.has.return_value = True
    return VideoExecutor(
        config, FFmpegCommandBuilder(config, encoders), thumbnails, cancel_event
    )


def _fake_ffmpeg(returncode: int = 0, on_run: Any = None) -> Mock:
    """subprocess.run replacement that writes the output file FFmpeg would."""

    def run(cmd: list[str], check: bool = False) -> Mock:
        Path(cmd[-1]).write_bytes(b"encoded")
        if on_run is not None:
            on_run()
        return Mock(returncode=returncode)

    return Mock(side_effect=run)


@pytest.fixture
def video(tmp_path: Path) -> Path:
    path = tmp_path / "clip.mp4"
    path.write_bytes(b"original")
    return path


def _fd(video: Path) -> FileData:
    fd = make_file_data(video)
    fd.titles.title = "Hello"
    return fd


class TestExecute:
    """Test the probe, encode and swap sequence."""

    def test_matching_metadata_skips_ffmpeg(self, tmp_path: Path, video: Path) -> None:
        run = _fake_ffmpeg()
        with (
            patch(
                "metarr.executor.probe",
                return_value=ProbeResult(tags={"title": "Hello"}),
            ),
            patch("metarr.executor.subprocess.run", run),
        ):
            result = _executor(tmp_path).execute(_fd(video))

        assert result.meta_already_exists
        assert not result.ffmpeg_ran
        run.assert_not_called()
        assert video.read_bytes() == b"original"

    def test_same_extension_replaced_in_place(
        self, tmp_path: Path, video: Path
    ) -> None:
        run = _fake_ffmpeg()
        with (
            patch("metarr.executor.probe", return_value=ProbeResult()),
            patch("metarr.executor.subprocess.run", run),
        ):
            result = _executor(tmp_path).execute(_fd(video))

        assert result.ffmpeg_ran
        assert result.final_path == video
        assert video.read_bytes() == b"encoded"
        assert not (tmp_path / "tmp_clip.mp4.mp4").exists()
        assert run.call_args.args[0][0] == "ffmpeg"

    def test_container_change_removes_original(self, tmp_path: Path) -> None:
        webm = tmp_path / "clip.webm"
        webm.write_bytes(b"original")
        with (
            patch("metarr.executor.probe", return_value=ProbeResult()),
            patch("metarr.executor.subprocess.run", _fake_ffmpeg()),
        ):
            result = _executor(tmp_path, output_ext="mp4").execute(_fd(webm))

        assert result.final_path == tmp_path / "clip.mp4"
        assert not webm.exists()
        assert (tmp_path / "clip.mp4").read_bytes() == b"encoded"
        assert not (tmp_path / "tmp_clip.webm.mp4").exists()

    def test_ffmpeg_failure_keeps_original(self, tmp_path: Path, video: Path) -> None:
        with (
            patch("metarr.executor.probe", return_value=ProbeResult()),
            patch("metarr.executor.subprocess.run", _fake_ffmpeg(returncode=1)),
        ):
            with pytest.raises(FFmpegError) as exc_info:
                _executor(tmp_path).execute(_fd(video))

        assert exc_info.value.returncode == 1
        assert video.read_bytes() == b"original"
        assert not (tmp_path / "tmp_clip.mp4.mp4").exists()

    def test_missing_ffmpeg_binary(self, tmp_path: Path, video: Path) -> None:
        with (
            patch("metarr.executor.probe", return_value=ProbeResult()),
            patch("metarr.executor.subprocess.run", side_effect=FileNotFoundError),
        ):
            with pytest.raises(FFmpegError, match="Could not run FFmpeg"):
                _executor(tmp_path).execute(_fd(video))

    def test_probe_failure_still_encodes(self, tmp_path: Path, video: Path) -> None:
        run = _fake_ffmpeg()
        with (
            patch("metarr.executor.probe", side_effect=FFprobeError("broken")),
            patch("metarr.executor.subprocess.run", run),
        ):
            result = _executor(tmp_path).execute(_fd(video))

        assert result.ffmpeg_ran
        run.assert_called_once()

    def test_cancel_after_encoding_keeps_original(
        self, tmp_path: Path, video: Path
    ) -> None:
        cancel_event = threading.Event()
        with (
            patch("metarr.executor.probe", return_value=ProbeResult()),
            patch(
                "metarr.executor.subprocess.run",
                _fake_ffmpeg(on_run=cancel_event.set),
            ),
        ):
            with pytest.raises(Cancelled):
                _executor(tmp_path, cancel_event).execute(_fd(video))

        assert video.read_bytes() == b"original"
        assert not (tmp_path / "tmp_clip.mp4.mp4").exists()

    def test_no_file_overwrite_keeps_backup(self, tmp_path: Path, video: Path) -> None:
        with (
            patch("metarr.executor.probe", return_value=ProbeResult()),
            patch("metarr.executor.subprocess.run", _fake_ffmpeg()),
        ):
            _executor(tmp_path, no_file_overwrite=True).execute(_fd(video))

        assert (tmp_path / "clip_metarrbackup.mp4").read_bytes() == b"original"
        assert video.read_bytes() == b"encoded"

    def test_downloaded_thumbnail_embedded_and_removed(
        self, tmp_path: Path, video: Path
    ) -> None:
        thumb = tmp_path / "clip_thumb.jpg"
        thumb.write_bytes(b"jpeg")
        thumbnails = Mock()
        thumbnails.fetch.return_value = thumb
        fd = _fd(video)
        fd.web.thumbnail = "https://ex/t.jpg"
        run = _fake_ffmpeg()

        with (
            patch("metarr.executor.probe", return_value=ProbeResult()),
            patch("metarr.executor.subprocess.run", run),
        ):
            _executor(tmp_path, thumbnails=thumbnails).execute(fd)

        thumbnails.fetch.assert_called_once_with("https://ex/t.jpg", video)
        assert str(thumb) in run.call_args.args[0]
        assert not thumb.exists()
