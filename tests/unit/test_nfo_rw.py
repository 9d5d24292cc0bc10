"""Unit tests for the NFO sidecar reader/writer."""

from pathlib import Path

import pytest

from metarr.exceptions import SidecarIOError
from metarr.nfo_rw import NfoRw, ensure_structure, parse_nfo
from metarr.sidecars import open_sidecar
from tests.conftest import SAMPLE_INVALID_NFO, SAMPLE_MOVIE_NFO


@pytest.fixture
def nfo(tmp_path: Path) -> Path:
    path = tmp_path / "journey.nfo"
    path.write_text(SAMPLE_MOVIE_NFO, encoding="utf-8")
    return path


class TestParse:
    """Test the typed NFO view."""

    def test_parse_movie(self) -> None:
        data = parse_nfo(SAMPLE_MOVIE_NFO)
        assert data.title.plain_text == "The Journey"
        assert data.plot.startswith("Emperor penguins")
        assert data.premiered == "2013-02-11"
        assert data.year == "2013"
        assert data.directors == ["John Downer"]
        assert data.studios == ["BBC"]
        assert [actor.name for actor in data.actors] == ["David Attenborough"]
        assert data.actors[0].role == "Narrator"

    def test_nested_title(self) -> None:
        data = parse_nfo(
            "<movie><title><main>Main</main><sub>Sub</sub></title></movie>"
        )
        assert data.title.main == "Main"
        assert data.title.sub == "Sub"

    def test_cast_actors_and_web(self) -> None:
        data = parse_nfo(
            "<movie><cast><actor><name>Ann</name></actor></cast>"
            "<web><url>https://ex/a</url><thumb>https://ex/a.jpg</thumb></web>"
            "</movie>"
        )
        assert [actor.name for actor in data.actors] == ["Ann"]
        assert data.web_url == "https://ex/a"
        assert data.thumb == "https://ex/a.jpg"


class TestEnsureStructure:
    """Test preamble and root repair."""

    def test_adds_preamble_and_root(self) -> None:
        fixed = ensure_structure("<title>A</title>")
        assert fixed.startswith('<?xml version="1.0" encoding="UTF-8"?>')
        assert "<movie>\n<title>A</title>\n</movie>" in fixed

    def test_keeps_valid_document(self) -> None:
        fixed = ensure_structure(SAMPLE_MOVIE_NFO)
        assert fixed.count("<movie>") == 1
        assert fixed.count("<?xml") == 1


class TestNfoRw:
    """Test reading and editing NFO sidecars."""

    def test_get_and_string_fields(self, nfo: Path) -> None:
        with NfoRw(nfo) as rw:
            rw.decode()
            assert rw.get("title") == "The Journey"
            assert rw.get("missing") is None
            fields = rw.string_fields()
        assert fields["premiered"] == "2013-02-11"
        assert fields["name"] == "David Attenborough"

    def test_set_existing_preserves_unknown_elements(self, nfo: Path) -> None:
        with NfoRw(nfo) as rw:
            rw.decode()
            rw.set("title", "A & B")
            rw.write()
        text = nfo.read_text()
        assert "<title>A &amp; B</title>" in text
        assert "<rating>8.2</rating>" in text
        with NfoRw(nfo) as rw:
            assert rw.decode().title.plain_text == "A & B"

    def test_set_new_element_before_root_close(self, nfo: Path) -> None:
        with NfoRw(nfo) as rw:
            rw.decode()
            rw.set("genre", "Nature")
            rw.write()
        text = nfo.read_text()
        assert "  <genre>Nature</genre>\n</movie>" in text

    def test_write_fields_skips_present_values(self, nfo: Path) -> None:
        with NfoRw(nfo) as rw:
            rw.decode()
            changed = rw.write_fields({"title": "Other", "genre": "Nature"})
            assert changed
            assert rw.get("title") == "The Journey"
            assert rw.get("genre") == "Nature"

    def test_invalid_document_raises(self, tmp_path: Path) -> None:
        path = tmp_path / "broken.nfo"
        path.write_text(SAMPLE_INVALID_NFO)
        with NfoRw(path) as rw:
            with pytest.raises(SidecarIOError, match="Failed to decode"):
                rw.decode()

    def test_open_sidecar_returns_nfo_variant(self, nfo: Path) -> None:
        assert isinstance(open_sidecar(nfo), NfoRw)

    def test_set_nested_title_rewrites_main(self, tmp_path: Path) -> None:
        path = tmp_path / "nested.nfo"
        path.write_text(
            "<movie><title><main>Old</main><sub>Part 1</sub></title></movie>"
        )
        with NfoRw(path) as rw:
            rw.decode()
            assert rw.get("title") == "Old"
            rw.set("title", "New")
            rw.write()
            assert rw.model.title.main == "New"
        text = path.read_text()
        assert text.count("<title>") == 1
        assert "<main>New</main><sub>Part 1</sub>" in text

    def test_set_nested_without_main_replaces_body(self, tmp_path: Path) -> None:
        path = tmp_path / "nested.nfo"
        path.write_text("<movie><studio><name>Old</name></studio></movie>")
        with NfoRw(path) as rw:
            rw.decode()
            rw.set("studio", "New")
            rw.write()
        assert "<studio>New</studio>" in path.read_text()

    def test_write_fields_leaves_nested_elements(self, nfo: Path) -> None:
        before = nfo.read_text()
        with NfoRw(nfo) as rw:
            rw.decode()
            assert not rw.write_fields({"actor": "Someone"})
        assert nfo.read_text() == before
