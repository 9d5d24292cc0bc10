"""Configuration management using Pydantic Settings."""

import os
from pathlib import Path
from typing import Any

from pydantic import Field, ValidationError, field_validator, model_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from metarr import op_parsing
from metarr.exceptions import ConfigError
from metarr.models import AccelType

ENV_PREFIX = "METARR_"

# Fields read from the environment as comma-separated strings (not JSON)
LIST_FIELDS: frozenset[str] = frozenset(
    {
        "video_dirs",
        "meta_dirs",
        "video_files",
        "meta_files",
        "input_exts",
        "filter_prefixes",
        "filter_contains",
        "filter_omit",
        "meta_add_field",
        "meta_trim_prefix",
        "meta_trim_suffix",
        "meta_append",
        "meta_prefix",
        "meta_replace",
        "meta_copy_to",
        "meta_paste_from",
        "meta_date_tag",
        "meta_delete_date_tag",
        "meta_override",
        "filename_prefix",
        "filename_append",
        "filename_replace",
        "filename_replace_prefix",
        "filename_replace_suffix",
        "metadata_filename_prefix",
    }
)

PURGE_CHOICES = ("all", "json", "nfo", "none")
RENAME_STYLES = ("spaces", "underscores", "fixes-only", "skip")


class CommaListEnvSettings(PydanticBaseSettingsSource):
    """Environment settings source that splits list fields on commas."""

    def get_field_value(self, field: Any, field_name: str) -> tuple[Any, str, bool]:
        env_name = f"{ENV_PREFIX}{field_name.upper()}"
        return os.getenv(env_name), env_name, False

    def prepare_field_value(
        self, field_name: str, field: Any, value: Any, value_is_complex: bool
    ) -> Any:
        if field_name in LIST_FIELDS and isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        return value

    def __call__(self) -> dict[str, Any]:
        d: dict[str, Any] = {}
        for field_name, field_info in self.settings_cls.model_fields.items():
            field_value, _, value_is_complex = self.get_field_value(
                field_info, field_name
            )
            if field_value is not None:
                d[field_name] = self.prepare_field_value(
                    field_name, field_info, field_value, value_is_complex
                )
        return d


def _reject_colon(path: Path) -> Path:
    # FFmpeg treats "proto:" prefixes specially, so colons break its argument parsing
    if ":" in str(path):
        raise ValueError(f"path must not contain ':' ({path})")
    return path


class Settings(BaseSettings):
    """Run configuration assembled from CLI options and the environment."""

    model_config = SettingsConfigDict(
        env_prefix=ENV_PREFIX,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (
            init_settings,
            CommaListEnvSettings(settings_cls),
            dotenv_settings,
            file_secret_settings,
        )

    # Inputs
    video_dirs: list[Path] = Field(default_factory=list)
    meta_dirs: list[Path] = Field(default_factory=list)
    video_files: list[Path] = Field(default_factory=list)
    meta_files: list[Path] = Field(default_factory=list)
    input_exts: list[str] = Field(
        default_factory=list,
        description="Video extensions to process (empty means all known)",
    )
    filter_prefixes: list[str] = Field(default_factory=list)
    filter_contains: list[str] = Field(default_factory=list)
    filter_omit: list[str] = Field(default_factory=list)

    # Workers and resource gate
    concurrency: int = Field(default=5, description="Worker pool size")
    max_cpu: float = Field(
        default=101.0, description="Block workers above this CPU percentage"
    )
    min_free_mem_mb: int = Field(
        default=0, description="Block workers below this much available RAM (MiB)"
    )

    # Transcoding
    use_gpu: str = ""
    transcode_video_codec: str = ""
    transcode_audio_codec: str = ""
    transcode_quality: str = ""
    transcode_device_dir: str = ""
    transcode_video_filter: str = ""
    extra_ffmpeg_args: str = ""
    output_ext: str = ""
    output_dir: Path | None = None
    ffprobe_timeout: float | None = Field(
        default=None, description="FFprobe deadline in seconds (None inherits)"
    )

    # Metadata edits (raw "field:value" strings, parsed by op_parsing)
    meta_add_field: list[str] = Field(default_factory=list)
    meta_trim_prefix: list[str] = Field(default_factory=list)
    meta_trim_suffix: list[str] = Field(default_factory=list)
    meta_append: list[str] = Field(default_factory=list)
    meta_prefix: list[str] = Field(default_factory=list)
    meta_replace: list[str] = Field(default_factory=list)
    meta_copy_to: list[str] = Field(default_factory=list)
    meta_paste_from: list[str] = Field(default_factory=list)
    meta_date_tag: list[str] = Field(default_factory=list)
    meta_delete_date_tag: list[str] = Field(default_factory=list)
    meta_override: list[str] = Field(default_factory=list)
    meta_overwrite: bool = False
    meta_preserve: bool = False
    meta_purge: str = "none"
    desc_date_prefix: bool = False
    desc_date_suffix: bool = False

    # Filename edits
    filename_date_tag: str = ""
    filename_delete_date_tag: str = ""
    filename_set: str = ""
    filename_prefix: list[str] = Field(default_factory=list)
    filename_append: list[str] = Field(default_factory=list)
    filename_replace: list[str] = Field(default_factory=list)
    filename_replace_prefix: list[str] = Field(default_factory=list)
    filename_replace_suffix: list[str] = Field(default_factory=list)
    metadata_filename_prefix: list[str] = Field(default_factory=list)
    rename_style: str = "skip"

    # File handling
    no_file_overwrite: bool = False
    skip_videos: bool = False
    strip_thumbnails: bool = False
    force_write_thumbnails: bool = False

    # Scraping
    cookie_path: Path | None = None
    cache_dir: Path = Field(
        default=Path.home() / ".cache" / "metarr",
        description="Directory for cached scraped pages",
    )
    cache_duration_hours: int = Field(
        default=24, description="How long to cache scraped pages (hours)"
    )
    scrape_timeout: float = 30.0

    debug_level: int = 0

    @field_validator("video_dirs", "meta_dirs", "video_files", "meta_files")
    @classmethod
    def validate_paths(cls, v: list[Path]) -> list[Path]:
        """Reject input paths FFmpeg cannot address."""
        return [_reject_colon(path) for path in v]

    @field_validator("output_dir")
    @classmethod
    def validate_output_dir(cls, v: Path | None) -> Path | None:
        return _reject_colon(v) if v is not None else None

    @field_validator("input_exts")
    @classmethod
    def normalize_input_exts(cls, v: list[str]) -> list[str]:
        return [op_parsing.normalize_ext(ext) for ext in v if ext.strip()]

    @field_validator("output_ext")
    @classmethod
    def normalize_output_ext(cls, v: str) -> str:
        return op_parsing.normalize_ext(v) if v.strip() else ""

    @field_validator("concurrency")
    @classmethod
    def validate_concurrency(cls, v: int) -> int:
        # Zero or negative still yields a usable pool of one worker
        return max(v, 1)

    @field_validator("max_cpu")
    @classmethod
    def validate_max_cpu(cls, v: float) -> float:
        if v == 101.0:
            return v
        if not 0 <= v <= 100:
            raise ValueError("max_cpu must be between 0 and 100")
        return v

    @field_validator("min_free_mem_mb")
    @classmethod
    def validate_min_free_mem(cls, v: int) -> int:
        if v < 0:
            raise ValueError("min_free_mem_mb cannot be negative")
        return v

    @field_validator("use_gpu")
    @classmethod
    def validate_use_gpu(cls, v: str) -> str:
        v = v.strip().lower()
        if v and v not in {accel.value for accel in AccelType}:
            choices = ", ".join(accel.value for accel in AccelType)
            raise ValueError(f"use_gpu must be one of: {choices}")
        return v

    @field_validator("meta_purge")
    @classmethod
    def validate_meta_purge(cls, v: str) -> str:
        v = v.strip().lower() or "none"
        if v not in PURGE_CHOICES:
            raise ValueError(f"meta_purge must be one of: {', '.join(PURGE_CHOICES)}")
        return v

    @field_validator("rename_style")
    @classmethod
    def validate_rename_style(cls, v: str) -> str:
        v = v.strip().lower() or "skip"
        if v not in RENAME_STYLES:
            raise ValueError(
                f"rename_style must be one of: {', '.join(RENAME_STYLES)}"
            )
        return v

    @model_validator(mode="after")
    def validate_operations(self) -> "Settings":
        """Parse every edit option once so malformed input fails at startup."""
        if self.meta_overwrite and self.meta_preserve:
            raise ValueError("meta_overwrite and meta_preserve are mutually exclusive")
        op_parsing.build_meta_ops(self)
        op_parsing.build_filename_ops(self)
        op_parsing.build_override_maps(self)
        return self


def get_settings(**overrides: Any) -> Settings:
    """Get application settings.

    Args:
        **overrides: Values taking precedence over the environment (CLI options)

    Returns:
        Validated settings

    Raises:
        ConfigError: If any value fails validation
    """
    try:
        return Settings(**overrides)
    except ValidationError as e:
        raise ConfigError(f"Configuration error: {e}") from e
