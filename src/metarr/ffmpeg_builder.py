"""FFmpeg argument construction.

The builder picks a format preset from the input/output extensions,
negotiates video and audio encoders against the local FFmpeg build, adds
hardware acceleration when it is safe, and emits container-specific
``-metadata`` pairs.
"""

import logging
import re
import subprocess  # nosec B404 - required for the encoder listing
import threading
from dataclasses import dataclass
from pathlib import Path

from metarr.config import Settings
from metarr.container_tags import container_key, intended_tags
from metarr.ffprobe import ProbeResult
from metarr.models import AccelType, FileData

logger = logging.getLogger(__name__)

FFMPEG = "ffmpeg"

H264_VIDEO: tuple[str, ...] = ("-c:v", "libx264", "-crf", "23", "-profile:v", "main")
AAC_AUDIO: tuple[str, ...] = ("-c:a", "aac", "-b:a", "256k")


@dataclass(frozen=True)
class Preset:
    """Named bundle of video and audio arguments."""

    name: str
    video_args: tuple[str, ...]
    audio_args: tuple[str, ...] = ()


COPY = Preset("copy", ("-codec", "copy"))
H264 = Preset("h264", H264_VIDEO, AAC_AUDIO)
VIDEO_COPY_AAC = Preset("videoCopyAAC", ("-c:v", "copy"), AAC_AUDIO)
WEBM = Preset("webm", H264_VIDEO + ("-g", "50", "-keyint_min", "30"), AAC_AUDIO)

# Output extension -> input extension ("*" as default) -> preset
FORMAT_MAP: dict[str, dict[str, Preset]] = {
    ".avi": {
        ".avi": COPY,
        ".mp4": VIDEO_COPY_AAC,
        ".m4v": VIDEO_COPY_AAC,
        ".mov": VIDEO_COPY_AAC,
        ".rm": WEBM,
        ".rmvb": WEBM,
        "*": H264,
    },
    ".mp4": {
        ".mp4": COPY,
        ".mkv": VIDEO_COPY_AAC,
        ".webm": WEBM,
        "*": H264,
    },
    ".mkv": {
        ".mkv": COPY,
        ".mp4": VIDEO_COPY_AAC,
        ".m4v": VIDEO_COPY_AAC,
        "*": H264,
    },
    ".webm": {
        ".webm": COPY,
        ".mp4": COPY,
        "*": WEBM,
    },
}

VIDEO_CODEC_ALIASES: dict[str, str] = {
    "h265": "hevc",
    "x265": "hevc",
    "avc": "h264",
    "x264": "h264",
    "mpeg2video": "mpeg2",
}

VIDEO_ENCODERS: dict[str, str] = {
    "hevc": "libx265",
    "av1": "libsvtav1",
    "h264": "libx264",
    "vp8": "libvpx",
    "vp9": "libvpx-vp9",
    "mpeg2": "mpeg2video",
}

AUDIO_ENCODERS: dict[str, str] = {
    "aac": "aac",
    "alac": "alac",
    "flac": "flac",
    "mp2": "mp2",
    "mp3": "mp3",
    "opus": "opus",
    "pcm": "pcm_s16le",
    "wav": "pcm_s16le",
    "vorbis": "vorbis",
    "truehd": "truehd",
    "ac3": "ac3",
    "eac3": "eac3",
    "dts": "dts",
}

# Audio codecs that need an explicit sample rate
RESAMPLED_AUDIO: frozenset[str] = frozenset({"ac3", "eac3", "dts"})

GPU_CODEC_SUFFIX: dict[AccelType, str] = {
    AccelType.NVIDIA: "nvenc",
    AccelType.QSV: "qsv",
    AccelType.VAAPI: "vaapi",
    AccelType.AMF: "amf",
}

HWACCEL_ARGS: dict[AccelType, tuple[str, ...]] = {
    AccelType.AUTO: ("-hwaccel", "auto"),
    AccelType.NVIDIA: ("-hwaccel", "nvidia", "-hwaccel_output_format", "nvidia"),
    AccelType.QSV: ("-hwaccel", "qsv", "-hwaccel_output_format", "qsv"),
    AccelType.VAAPI: ("-hwaccel", "vaapi", "-hwaccel_output_format", "vaapi"),
    AccelType.AMF: (),
}

HW_FILTERS: dict[AccelType, str] = {
    AccelType.NVIDIA: "hwdownload,format=nv12,hwupload_cuda",
    AccelType.VAAPI: "format=nv12,hwupload",
}

# Codecs the accelerator cannot be trusted with
UNSAFE_HW_CODECS: dict[AccelType, frozenset[str]] = {
    AccelType.VAAPI: frozenset({"vp8", "vp9", "av1"}),
    AccelType.QSV: frozenset({"vp8", "vp9", "av1"}),
}

# Codecs a container cannot hold
INCOMPATIBLE_CODECS: dict[str, frozenset[str]] = {
    ".webm": frozenset({"h264", "hevc", "mpeg2"}),
    ".mp4": frozenset({"vp8", "vp9", "mpeg2"}),
    ".m4v": frozenset({"vp8", "vp9", "mpeg2"}),
    ".mov": frozenset({"vp8", "vp9", "mpeg2"}),
    ".avi": frozenset({"hevc", "av1", "vp8", "vp9"}),
}

MP4_FAMILY: frozenset[str] = frozenset({".mp4", ".m4v", ".mov"})

_DEVICE_NUMBER = re.compile(r"(\d+)$")


def normalize_codec(codec: str) -> str:
    """Lowercase and drop spaces and dots (``H.264`` -> ``h264``)."""
    normalized = codec.strip().lower().replace(" ", "").replace(".", "")
    return VIDEO_CODEC_ALIASES.get(normalized, normalized)


def select_preset(in_ext: str, out_ext: str) -> Preset:
    """Return the preset for converting ``in_ext`` into ``out_ext``."""
    in_ext, out_ext = in_ext.lower(), out_ext.lower()
    if not out_ext or in_ext == out_ext:
        return COPY
    mapping = FORMAT_MAP.get(out_ext)
    if mapping is None:
        return COPY
    return mapping.get(in_ext, mapping.get("*", COPY))


class EncoderCache:
    """Lazily captured ``ffmpeg -encoders`` listing."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._listing: str | None = None

    def listing(self) -> str:
        with self._lock:
            if self._listing is None:
                self._listing = self._load()
            return self._listing

    def _load(self) -> str:
        try:
            completed = subprocess.run(  # nosec B603 - fixed argv
                [FFMPEG, "-hide_banner", "-encoders"],
                capture_output=True,
                text=True,
                errors="replace",
                check=True,
            )
        except (OSError, subprocess.CalledProcessError) as e:
            logger.warning(f"Could not list FFmpeg encoders: {e}")
            return ""
        return completed.stdout

    def has(self, encoder: str) -> bool:
        return encoder in self.listing()


@dataclass
class VideoPlan:
    """Video portion of the command."""

    codec_args: list[str]
    hwaccel_args: list[str]
    device_args: list[str]
    filter: str = ""
    accel: AccelType | None = None
    encoding: bool = False


class FFmpegCommandBuilder:
    """Builds the FFmpeg argument vector for one video."""

    def __init__(self, settings: Settings, encoders: EncoderCache | None = None):
        self.settings = settings
        self.encoders = encoders or EncoderCache()

    def _software_video(self, codec: str) -> list[str]:
        encoder = VIDEO_ENCODERS.get(codec, codec)
        if not self.encoders.has(encoder):
            logger.warning(f"Encoder {encoder} is not available, copying video")
            return ["-c:v", "copy"]
        return ["-c:v", encoder]

    def _device_args(self, accel: AccelType) -> list[str]:
        device = self.settings.transcode_device_dir
        if not device:
            return []
        if accel is AccelType.NVIDIA:
            match = _DEVICE_NUMBER.search(device)
            if match is None:
                logger.warning(f"Cannot read a device number from {device}")
                return []
            return ["-hwaccel_device", match.group(1)]
        if accel is AccelType.QSV:
            return ["-qsv_device", device]
        if accel is AccelType.VAAPI:
            return ["-vaapi_device", device]
        return []

    def plan_video(self, preset: Preset, out_ext: str, current_codec: str) -> VideoPlan:
        """Decide the video codec, acceleration and filters.

        Hardware acceleration is skipped for stream copies, for codecs the
        accelerator handles badly and for unknown hardware encoders.
        """
        codec = normalize_codec(self.settings.transcode_video_codec)
        accel = AccelType(self.settings.use_gpu) if self.settings.use_gpu else None

        if not codec:
            if accel is not None and accel is not AccelType.AUTO:
                logger.warning(
                    f"GPU {accel.value} requested without a video codec, "
                    f"using software settings"
                )
            args = list(preset.video_args)
            encoding = preset is not COPY and "copy" not in args
            return VideoPlan(args, [], [], encoding=encoding)

        current = normalize_codec(current_codec)
        if codec == "copy" or codec == current:
            return VideoPlan(["-c:v", "copy"], [], [])

        if codec in INCOMPATIBLE_CODECS.get(out_ext, frozenset()):
            logger.warning(
                f"{codec} cannot be stored in {out_ext}, using the "
                f"{preset.name} preset instead"
            )
            args = list(preset.video_args)
            return VideoPlan(args, [], [], encoding="copy" not in args)

        unsafe = UNSAFE_HW_CODECS.get(accel, frozenset()) if accel else frozenset()
        if accel is not None and (codec in unsafe or current in unsafe):
            logger.warning(
                f"{accel.value} acceleration is unreliable with {codec or current}, "
                f"falling back to software encoding"
            )
            accel = None

        if accel is None or accel is AccelType.AUTO:
            args = self._software_video(codec)
            encoding = args[-1] != "copy"
            hwaccel = list(HWACCEL_ARGS[AccelType.AUTO]) if accel and encoding else []
            return VideoPlan(args, hwaccel, [], accel=accel, encoding=encoding)

        encoder = f"{codec}_{GPU_CODEC_SUFFIX[accel]}"
        if not self.encoders.has(encoder):
            logger.warning(f"Encoder {encoder} is not available, using software")
            args = self._software_video(codec)
            return VideoPlan(args, [], [], encoding=args[-1] != "copy")

        return VideoPlan(
            ["-c:v", encoder],
            list(HWACCEL_ARGS[accel]),
            self._device_args(accel),
            filter=HW_FILTERS.get(accel, ""),
            accel=accel,
            encoding=True,
        )

    def audio_args(self, preset: Preset, current_codec: str) -> list[str]:
        codec = normalize_codec(self.settings.transcode_audio_codec)
        if not codec:
            return list(preset.audio_args) or ["-c:a", "copy"]
        if codec == "copy" or codec == normalize_codec(current_codec):
            return ["-c:a", "copy"]

        encoder = AUDIO_ENCODERS.get(codec, codec)
        if not self.encoders.has(encoder):
            logger.warning(f"Audio encoder {encoder} is not available, copying audio")
            return ["-c:a", "copy"]
        args = ["-c:a", encoder]
        if codec in RESAMPLED_AUDIO:
            args += ["-ar", "48000"]
        return args

    def quality_args(self, accel: AccelType | None) -> list[str]:
        quality = self.settings.transcode_quality.strip()
        if not quality:
            return []
        if not quality.isdigit():
            logger.warning(f"Ignoring non-numeric transcode quality {quality!r}")
            return []
        if accel is AccelType.AMF:
            return ["-qp_p", quality]
        if accel is AccelType.NVIDIA:
            return ["-rc", "vbr", "-cq", quality]
        if accel is AccelType.QSV:
            return ["-global_quality", quality]
        if accel is AccelType.VAAPI:
            return ["-qp", quality]
        return ["-crf", quality]

    def thumbnail_args(
        self, fd: FileData, out_ext: str, thumbnail: Path | None
    ) -> tuple[list[str], list[str], list[str]]:
        """Return (extra inputs, stream maps, output options) for thumbnails."""
        if self.settings.strip_thumbnails:
            return [], ["-map", "0:V", "-map", "0:a?", "-map", "0:s?"], []

        if thumbnail is not None and out_ext in MP4_FAMILY:
            maps = ["-map", "0:V", "-map", "0:a?", "-map", "0:s?", "-map", "0:d?"]
            return (
                ["-i", str(thumbnail)],
                maps + ["-map", "1"],
                ["-c:v:1", "mjpeg", "-disposition:v:1", "attached_pic"],
            )

        if thumbnail is not None and out_ext == ".mkv":
            return (
                [],
                [],
                ["-attach", str(thumbnail), "-metadata:s:t", "mimetype=image/jpeg"],
            )

        if fd.has_embedded_thumbnail and out_ext in MP4_FAMILY:
            copy_cover = ["-c:v:1", "copy", "-disposition:v:1", "attached_pic"]
            return [], ["-map", "0"], copy_cover
        return [], [], []

    def metadata_args(self, fd: FileData, out_ext: str) -> list[str]:
        args: list[str] = []
        for key, value in intended_tags(fd).items():
            name = container_key(out_ext, key)
            if name is None:
                logger.debug(f"No {out_ext} tag for '{key}', skipping")
                continue
            args += ["-metadata", f"{name}={value}"]
        return args

    def stream_copy_args(self, in_ext: str, out_ext: str) -> list[str]:
        if out_ext == ".mkv" or out_ext == in_ext:
            return ["-c:s", "copy", "-c:d", "copy", "-c:t", "copy"]
        if out_ext in MP4_FAMILY:
            return ["-c:s", "mov_text"]
        return []

    def build(
        self,
        fd: FileData,
        input_path: Path,
        output_path: Path,
        probe: ProbeResult | None = None,
        thumbnail: Path | None = None,
    ) -> list[str]:
        """Build the argument vector (without the ``ffmpeg`` binary).

        Args:
            fd: Populated record
            input_path: Source video
            output_path: Temporary output path
            probe: Probe of the source, used for current codecs
            thumbnail: Downloaded thumbnail to embed

        Returns:
            FFmpeg arguments
        """
        in_ext = input_path.suffix.lower()
        out_ext = output_path.suffix.lower()
        preset = select_preset(in_ext, out_ext)
        current_video = probe.video_codec if probe else ""
        current_audio = probe.audio_codec if probe else ""

        whole_copy = (
            preset is COPY
            and not self.settings.transcode_video_codec
            and not self.settings.transcode_audio_codec
        )

        thumb_inputs, thumb_maps, thumb_outputs = self.thumbnail_args(
            fd, out_ext, thumbnail
        )

        args: list[str] = []
        filters: list[str] = []
        if whole_copy:
            video = VideoPlan(list(COPY.video_args), [], [])
            audio: list[str] = []
            stream_copy: list[str] = []
        else:
            video = self.plan_video(preset, out_ext, current_video)
            audio = self.audio_args(preset, current_audio)
            stream_copy = self.stream_copy_args(in_ext, out_ext)
            if video.encoding:
                if video.filter:
                    filters.append(video.filter)
                if self.settings.transcode_video_filter:
                    filters.append(self.settings.transcode_video_filter)

        args += video.hwaccel_args + video.device_args
        args += ["-y", "-i", str(input_path)]
        args += thumb_inputs + thumb_maps
        if filters:
            args += ["-vf", ",".join(filters)]
        args += video.codec_args + audio + thumb_outputs + stream_copy
        if video.encoding:
            args += self.quality_args(video.accel)
        args += self.metadata_args(fd, out_ext)
        args += self.settings.extra_ffmpeg_args.split()
        args.append(str(output_path))

        logger.debug(f"FFmpeg arguments for {input_path.name}: {args}")
        return args
