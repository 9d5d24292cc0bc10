"""Unit tests for template expansion."""

from pathlib import Path

import pytest

from metarr.exceptions import TemplateError
from metarr.templates import fill_template, is_template
from tests.conftest import make_file_data


class TestFillTemplate:
    """Test {{tag}} substitution."""

    def test_plain_text_returned_unchanged(self) -> None:
        assert not is_template("Hello")
        assert fill_template("Hello", {}) == "Hello"

    def test_sidecar_fields_resolve(self) -> None:
        fields = {"title": "A", "uploader": "B"}
        result = fill_template("{{title}} - {{ uploader }}", fields)
        assert result == "A - B"

    def test_filedata_tags_resolve(self, tmp_path: Path) -> None:
        fd = make_file_data(tmp_path / "clip.mp4")
        fd.credits.author = "Bob"
        fd.dates.year = "2023"
        fd.web.domain = "example.com"

        result = fill_template("{{author}} ({{year}}) via {{domain}}", {}, fd)

        assert result == "Bob (2023) via example.com"

    def test_sidecar_field_wins_over_fixed_tag(self, tmp_path: Path) -> None:
        fd = make_file_data(tmp_path / "clip.mp4")
        fd.dates.year = "2023"
        assert fill_template("{{year}}", {"year": "1999"}, fd) == "1999"

    def test_nested_values_expand(self) -> None:
        fields = {"a": "{{b}}!", "b": "x"}
        assert fill_template("{{a}}", fields) == "x!"

    def test_unresolvable_tag_raises(self) -> None:
        with pytest.raises(TemplateError, match="could not be resolved"):
            fill_template("{{missing}}", {})

    def test_unbalanced_delimiters_raise(self) -> None:
        with pytest.raises(TemplateError, match="Unbalanced"):
            fill_template("{{title", {"title": "A"})

    def test_self_reference_does_not_loop_forever(self) -> None:
        with pytest.raises(TemplateError, match="did not settle"):
            fill_template("{{a}}", {"a": "{{a}}"})
