"""Unit tests for FFmpeg argument construction."""

from pathlib import Path
from typing import Any
from unittest.mock import Mock, patch

import pytest

from metarr.ffmpeg_builder import (
    COPY,
    H264,
    VIDEO_COPY_AAC,
    WEBM,
    EncoderCache,
    FFmpegCommandBuilder,
    normalize_codec,
    select_preset,
)
from metarr.ffprobe import ProbeResult
from metarr.models import FileData
from tests.conftest import create_test_settings, make_file_data


def _encoders(*missing: str) -> Mock:
    encoders = Mock(spec=EncoderCache)
    encoders.has.side_effect = lambda name: name not in missing
    return encoders


def _builder(tmp_path: Path, *missing: str, **settings: Any) -> FFmpegCommandBuilder:
    return FFmpegCommandBuilder(
        create_test_settings(tmp_path, **settings), _encoders(*missing)
    )


def _fd(path: Path) -> FileData:
    fd = make_file_data(path)
    fd.titles.title = "Hello"
    fd.dates.date = "2023-01-01"
    fd.dates.creation_time = "2023-01-01T00:00:00Z"
    fd.dates.year = "2023"
    fd.dates.release_date = "2023-01-01"
    return fd


def _pairs(args: list[str], flag: str) -> list[str]:
    return [args[i + 1] for i, arg in enumerate(args) if arg == flag]


class TestPresets:
    """Test preset selection and codec names."""

    @pytest.mark.parametrize(
        "in_ext,out_ext,expected",
        [
            (".mp4", ".mp4", COPY),
            (".mp4", "", COPY),
            (".webm", ".mp4", WEBM),
            (".mkv", ".mp4", VIDEO_COPY_AAC),
            (".flv", ".mp4", H264),
            (".MP4", ".webm", COPY),
            (".mp4", ".xyz", COPY),
        ],
    )
    def test_select_preset(self, in_ext: str, out_ext: str, expected: Any) -> None:
        assert select_preset(in_ext, out_ext) is expected

    def test_normalize_codec(self) -> None:
        assert normalize_codec("H.264") == "h264"
        assert normalize_codec("x265") == "hevc"
        assert normalize_codec(" AV1 ") == "av1"


class TestBuild:
    """Test complete argument vectors."""

    def test_stream_copy_with_metadata(self, tmp_path: Path) -> None:
        builder = _builder(tmp_path)
        video = Path("/v/clip.mp4")

        args = builder.build(_fd(video), video, Path("/v/tmp_clip.mp4.mp4"))

        assert args == [
            "-y",
            "-i",
            "/v/clip.mp4",
            "-codec",
            "copy",
            "-metadata",
            "title=Hello",
            "-metadata",
            "date=2023-01-01",
            "-metadata",
            "creation_time=2023-01-01T00:00:00Z",
            "-metadata",
            "year=2023",
            "/v/tmp_clip.mp4.mp4",
        ]

    def test_mkv_uses_matroska_names(self, tmp_path: Path) -> None:
        builder = _builder(tmp_path)
        fd = make_file_data(Path("/v/clip.mkv"))
        fd.titles.title = "Foo"

        args = builder.build(fd, Path("/v/clip.mkv"), Path("/v/tmp_clip.mkv.mkv"))

        assert _pairs(args, "-metadata") == ["TITLE=Foo"]

    def test_webm_to_mp4_uses_webm_preset(self, tmp_path: Path) -> None:
        builder = _builder(tmp_path)
        fd = make_file_data(Path("/v/clip.webm"))

        args = builder.build(fd, Path("/v/clip.webm"), Path("/v/tmp_clip.webm.mp4"))

        assert args[args.index("-c:v") + 1] == "libx264"
        assert args[args.index("-g") + 1] == "50"
        assert args[args.index("-c:a") + 1] == "aac"
        assert _pairs(args, "-c:s") == ["mov_text"]
        assert args[-1] == "/v/tmp_clip.webm.mp4"

    def test_unsafe_gpu_codec_falls_back_to_software(self, tmp_path: Path) -> None:
        builder = _builder(tmp_path, use_gpu="vaapi", transcode_video_codec="av1")
        fd = make_file_data(Path("/v/clip.mp4"))

        args = builder.build(
            fd,
            Path("/v/clip.mp4"),
            Path("/v/tmp_clip.mp4.mp4"),
            probe=ProbeResult(video_codec="h264", audio_codec="aac"),
        )

        assert "-hwaccel" not in args
        assert args[args.index("-c:v") + 1] == "libsvtav1"
        assert args[:3] == ["-y", "-i", "/v/clip.mp4"]

    def test_nvidia_encoding(self, tmp_path: Path) -> None:
        builder = _builder(
            tmp_path,
            use_gpu="nvidia",
            transcode_video_codec="hevc",
            transcode_device_dir="/dev/nvidia1",
            transcode_quality="28",
        )
        fd = make_file_data(Path("/v/clip.mp4"))

        args = builder.build(
            fd,
            Path("/v/clip.mp4"),
            Path("/v/tmp_clip.mp4.mp4"),
            probe=ProbeResult(video_codec="h264"),
        )

        assert args[:6] == [
            "-hwaccel",
            "nvidia",
            "-hwaccel_output_format",
            "nvidia",
            "-hwaccel_device",
            "1",
        ]
        assert args[args.index("-c:v") + 1] == "hevc_nvenc"
        assert args[args.index("-vf") + 1] == "hwdownload,format=nv12,hwupload_cuda"
        assert args[args.index("-cq") + 1] == "28"

    def test_missing_gpu_encoder_uses_software(self, tmp_path: Path) -> None:
        builder = _builder(
            tmp_path, "hevc_qsv", use_gpu="qsv", transcode_video_codec="hevc"
        )
        fd = make_file_data(Path("/v/clip.mkv"))

        args = builder.build(fd, Path("/v/clip.mkv"), Path("/v/tmp_clip.mkv.mkv"))

        assert args[args.index("-c:v") + 1] == "libx265"
        assert "-hwaccel" not in args

    def test_same_codec_is_copied(self, tmp_path: Path) -> None:
        builder = _builder(tmp_path, transcode_video_codec="h264")
        fd = make_file_data(Path("/v/clip.mp4"))

        args = builder.build(
            fd,
            Path("/v/clip.mp4"),
            Path("/v/tmp_clip.mp4.mp4"),
            probe=ProbeResult(video_codec="h264"),
        )

        assert _pairs(args, "-c:v") == ["copy"]

    def test_resampled_audio_codec(self, tmp_path: Path) -> None:
        builder = _builder(tmp_path, transcode_audio_codec="ac3")
        fd = make_file_data(Path("/v/clip.mkv"))

        args = builder.build(fd, Path("/v/clip.mkv"), Path("/v/tmp_clip.mkv.mkv"))

        assert args[args.index("-c:a") + 1] == "ac3"
        assert args[args.index("-ar") + 1] == "48000"

    def test_thumbnail_embedded_in_mp4(self, tmp_path: Path) -> None:
        builder = _builder(tmp_path)
        fd = make_file_data(Path("/v/clip.webm"))

        args = builder.build(
            fd,
            Path("/v/clip.webm"),
            Path("/v/tmp_clip.webm.mp4"),
            thumbnail=Path("/v/thumb.jpg"),
        )

        assert _pairs(args, "-i") == ["/v/clip.webm", "/v/thumb.jpg"]
        assert "1" in _pairs(args, "-map")
        assert args.index("-c:v:1") > args.index("-c:v")
        assert args[args.index("-disposition:v:1") + 1] == "attached_pic"

    def test_thumbnail_attached_to_mkv(self, tmp_path: Path) -> None:
        builder = _builder(tmp_path)
        fd = make_file_data(Path("/v/clip.mp4"))

        args = builder.build(
            fd,
            Path("/v/clip.mp4"),
            Path("/v/tmp_clip.mp4.mkv"),
            thumbnail=Path("/v/thumb.jpg"),
        )

        assert args[args.index("-attach") + 1] == "/v/thumb.jpg"

    def test_strip_thumbnails_maps_main_streams(self, tmp_path: Path) -> None:
        builder = _builder(tmp_path, strip_thumbnails=True)
        fd = make_file_data(Path("/v/clip.mp4"))

        args = builder.build(fd, Path("/v/clip.mp4"), Path("/v/tmp_clip.mp4.mp4"))

        assert _pairs(args, "-map") == ["0:V", "0:a?", "0:s?"]

    def test_extra_args_precede_output(self, tmp_path: Path) -> None:
        builder = _builder(tmp_path, extra_ffmpeg_args="-movflags +faststart")
        fd = make_file_data(Path("/v/clip.mp4"))

        args = builder.build(fd, Path("/v/clip.mp4"), Path("/v/tmp_clip.mp4.mp4"))

        assert args[-3:] == ["-movflags", "+faststart", "/v/tmp_clip.mp4.mp4"]


class TestEncoderCache:
    """Test the lazily loaded encoder listing."""

    @patch("metarr.ffmpeg_builder.subprocess.run")
    def test_listing_loaded_once(self, mock_run: Mock) -> None:
        mock_run.return_value = Mock(stdout=" V..... libx264  H.264\n")
        cache = EncoderCache()

        assert cache.has("libx264")
        assert not cache.has("hevc_nvenc")
        assert mock_run.call_count == 1

    @patch("metarr.ffmpeg_builder.subprocess.run", side_effect=FileNotFoundError)
    def test_missing_ffmpeg_reports_nothing(self, mock_run: Mock) -> None:
        assert not EncoderCache().has("libx264")
