"""Unit tests for edit option parsing."""

from pathlib import Path

import pytest

from metarr import op_parsing
from metarr.config import Settings
from metarr.models import (
    DateFormat,
    DateTagLocation,
    MetaReplace,
    MetaReplacePrefix,
    MetaSet,
    OverrideCategory,
    TextReplace,
)


class TestEscapedSplit:
    """Test backslash-aware splitting."""

    def test_plain_split(self) -> None:
        assert op_parsing.escaped_split("a:b:c") == ["a", "b", "c"]

    def test_escaped_separator_kept(self) -> None:
        assert op_parsing.escaped_split(r"title:10\:30") == ["title", "10:30"]

    def test_maxsplit(self) -> None:
        assert op_parsing.escaped_split("a:b:c", ":", 1) == ["a", "b:c"]

    def test_trailing_backslash_kept(self) -> None:
        assert op_parsing.escaped_split("a\\") == ["a\\"]


def test_normalize_ext() -> None:
    """Test extension normalization."""
    assert op_parsing.normalize_ext("MP4") == ".mp4"
    assert op_parsing.normalize_ext(" .mkv ") == ".mkv"


class TestBuildMetaOps:
    """Test construction of MetaOps from settings."""

    def test_all_operation_kinds(self, tmp_path: Path) -> None:
        settings = Settings(
            cache_dir=tmp_path,
            meta_add_field=["title:New: Title"],
            meta_copy_to=["title:fulltitle"],
            meta_paste_from=["synopsis:description"],
            meta_replace=["title:_: "],
            meta_trim_prefix=["title:[Old] "],
            meta_trim_suffix=["title: - Clip:!"],
            meta_prefix=["description:Intro. "],
            meta_append=["description: (end)"],
            meta_date_tag=["title:prefix:Ymd"],
            meta_delete_date_tag=["description:all:ymd"],
        )
        ops = op_parsing.build_meta_ops(settings)

        assert ops.set_fields == [MetaSet("title", "New: Title")]
        assert ops.copy_to[0].dest == "fulltitle"
        assert ops.paste_from[0].origin == "description"
        assert ops.replaces == [MetaReplace("title", "_", " ")]
        assert ops.replace_prefixes == [MetaReplacePrefix("title", "[Old] ", "")]
        assert ops.replace_suffixes[0].suffix == " - Clip"
        assert ops.replace_suffixes[0].replacement == "!"
        assert ops.prefixes[0].prefix == "Intro. "
        assert ops.appends[0].suffix == " (end)"
        assert ops.date_tags["title"].location is DateTagLocation.PREFIX
        assert ops.date_tags["title"].format is DateFormat.YYYY_MM_DD
        assert ops.delete_date_tags["description"].location is DateTagLocation.ALL
        assert ops.delete_date_tags["description"].format is DateFormat.YY_MM_DD
        assert ops.has_primary_edits()

    def test_empty_settings_have_no_edits(self, tmp_path: Path) -> None:
        ops = op_parsing.build_meta_ops(Settings(cache_dir=tmp_path))
        assert not ops.has_primary_edits()
        assert ops.date_tags == {}

    def test_date_tag_rejects_all_location(self, tmp_path: Path) -> None:
        settings = Settings.model_construct(meta_date_tag=["title:all:Ymd"])
        with pytest.raises(ValueError, match="only valid for deletion"):
            op_parsing.build_meta_ops(settings)


class TestBuildFilenameOps:
    """Test construction of FilenameOps from settings."""

    def test_filename_operations(self, tmp_path: Path) -> None:
        settings = Settings(
            cache_dir=tmp_path,
            filename_date_tag="suffix:Ymd",
            filename_delete_date_tag="all:Ymd",
            filename_set="{{title}}",
            filename_prefix=["[{{uploader}}] "],
            filename_append=[" (remux)"],
            filename_replace=["_: "],
            filename_replace_prefix=["tmp:"],
            metadata_filename_prefix=["uploader", "year"],
        )
        ops = op_parsing.build_filename_ops(settings)

        assert ops.date_tag is not None
        assert ops.date_tag.location is DateTagLocation.SUFFIX
        assert ops.delete_date_tag is not None
        assert ops.delete_date_tag.location is DateTagLocation.ALL
        assert ops.set_name == "{{title}}"
        assert ops.prefixes == ["[{{uploader}}] "]
        assert ops.appends == [" (remux)"]
        assert ops.replaces == [TextReplace("_", " ")]
        assert ops.replace_prefixes == [TextReplace("tmp", "")]
        assert ops.metadata_prefix_fields == ["uploader", "year"]
        assert not ops.is_empty()

    def test_default_is_empty(self, tmp_path: Path) -> None:
        assert op_parsing.build_filename_ops(Settings(cache_dir=tmp_path)).is_empty()


class TestBuildOverrideMaps:
    """Test credits override parsing."""

    def test_set_replace_append(self, tmp_path: Path) -> None:
        settings = Settings(
            cache_dir=tmp_path,
            meta_override=[
                "credits:set:Jane",
                "credits:replace:Jon:John",
                "credits:append: (uploader)",
            ],
        )
        overrides = op_parsing.build_override_maps(settings)

        assert overrides.set[OverrideCategory.CREDITS] == "Jane"
        assert overrides.replace[OverrideCategory.CREDITS] == TextReplace("Jon", "John")
        assert overrides.append[OverrideCategory.CREDITS] == " (uploader)"

    def test_unknown_category(self) -> None:
        settings = Settings.model_construct(meta_override=["titles:set:x"])
        with pytest.raises(ValueError, match="unknown override category"):
            op_parsing.build_override_maps(settings)

    def test_unknown_operation(self) -> None:
        settings = Settings.model_construct(meta_override=["credits:drop:x"])
        with pytest.raises(ValueError, match="unknown override operation"):
            op_parsing.build_override_maps(settings)
