"""Shared test configuration and fixtures."""

import json
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

from metarr.config import Settings
from metarr.models import FileData, ProcessResult, SidecarKind

# Inline test data constants
SAMPLE_INFO_JSON: dict[str, Any] = {
    "title": "Hello",
    "upload_date": "20230101",
    "webpage_url": "https://ex/video/1",
}

SAMPLE_MOVIE_NFO = """<?xml version="1.0" encoding="UTF-8"?>
<movie>
  <title>The Journey</title>
  <plot>Emperor penguins cross a treacherous frozen sea.</plot>
  <premiered>2013-02-11</premiered>
  <year>2013</year>
  <director>John Downer</director>
  <studio>BBC</studio>
  <actor>
    <name>David Attenborough</name>
    <role>Narrator</role>
  </actor>
  <rating>8.2</rating>
</movie>
"""

SAMPLE_INVALID_NFO = """<?xml version="1.0" encoding="UTF-8"?>
<movie>
  <title>Broken XML Test</title>
  <genre>Test
</movie>
"""


def create_test_settings(tmp_path: Path, **kwargs: Any) -> Settings:
    """Create test settings with safe defaults and custom overrides.

    Args:
        tmp_path: Temporary test directory path
        **kwargs: Settings overrides (e.g., concurrency=2)

    Returns:
        Settings object with safe test defaults and any custom overrides
    """
    params: dict[str, Any] = {"cache_dir": tmp_path / "cache"}
    params.update(kwargs)
    return Settings(**params)


@pytest.fixture
def test_settings(tmp_path: Path) -> Settings:
    """Standard test settings using the temporary directory."""
    return create_test_settings(tmp_path)


@pytest.fixture
def write_json() -> Callable[[Path, dict[str, Any]], Path]:
    """Factory writing a JSON sidecar."""

    def _write(path: Path, data: dict[str, Any]) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(data, indent=2), encoding="utf-8")
        return path

    return _write


def make_file_data(
    video_path: Path, sidecar_path: Path | None = None, **kwargs: Any
) -> FileData:
    """Build a FileData for a video with a JSON sidecar beside it."""
    sidecar = sidecar_path or video_path.with_suffix(".info.json")
    kind = SidecarKind.NFO if sidecar.suffix == ".nfo" else SidecarKind.JSON
    return FileData(
        video_path=video_path, sidecar_path=sidecar, sidecar_kind=kind, **kwargs
    )


def assert_process_result(
    result: ProcessResult,
    expected_success: bool,
    expected_file_modified: bool | None = None,
    expected_message_contains: str | None = None,
) -> None:
    """Shared assertion helper for ProcessResult validation."""
    assert result.success == expected_success

    if expected_file_modified is not None:
        assert result.file_modified == expected_file_modified

    if expected_message_contains is not None:
        assert expected_message_contains in result.message
