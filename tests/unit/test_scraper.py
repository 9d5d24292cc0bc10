"""Unit tests for web scraping."""

from collections.abc import Callable, Generator
from pathlib import Path

import httpx
import pytest
from diskcache import Cache  # type: ignore[import-untyped]

from metarr.models import WebClass
from metarr.scraper import HttpScraper, NullScraper, extract_value, load_cookie_jar
from tests.conftest import create_test_settings

PAGE = """
<html><head>
<meta property="og:title" content="Meta Title">
<meta name="description" content="Meta description">
</head><body>
<span class="uploader"> Jane </span>
<time datetime="2021-03-05T10:00:00Z">March 5, 2021</time>
</body></html>
"""

COOKIES = (
    "# Netscape HTTP Cookie File\n"
    ".example.com\tTRUE\t/\tFALSE\t0\tsid\tabc\n"
)


class TestExtractValue:
    """Test value extraction from HTML."""

    def test_class_match(self) -> None:
        assert extract_value(PAGE, WebClass.CREDITS) == "Jane"

    def test_meta_fallback(self) -> None:
        assert extract_value(PAGE, WebClass.TITLE) == "Meta Title"
        assert extract_value(PAGE, WebClass.DESCRIPTION) == "Meta description"

    def test_time_element_for_dates(self) -> None:
        assert extract_value(PAGE, WebClass.DATE) == "2021-03-05T10:00:00Z"

    def test_datetime_attribute_on_class(self) -> None:
        page = '<p class="upload-date" datetime="2020-01-02">Jan 2</p>'
        assert extract_value(page, WebClass.DATE) == "2020-01-02"

    def test_nothing_found(self) -> None:
        assert extract_value("<html></html>", WebClass.CREDITS) == ""


@pytest.fixture
def cache(tmp_path: Path) -> Generator[Cache, None, None]:
    cache = Cache(str(tmp_path / "cache"))
    yield cache
    cache.close()


def _scraper(
    tmp_path: Path, cache: Cache, handler: Callable[[httpx.Request], httpx.Response]
) -> HttpScraper:
    scraper = HttpScraper(create_test_settings(tmp_path), cache)
    scraper.client.close()
    scraper.client = httpx.Client(transport=httpx.MockTransport(handler))
    return scraper


class TestHttpScraper:
    """Test fetching candidate pages."""

    def test_first_url_with_value_wins(self, tmp_path: Path, cache: Cache) -> None:
        requested: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requested.append(str(request.url))
            if request.url.path == "/empty":
                return httpx.Response(200, text="<html></html>")
            return httpx.Response(200, text=PAGE)

        scraper = _scraper(tmp_path, cache, handler)
        value = scraper.fetch(
            ["https://ex.com/empty", "https://ex.com/page"], WebClass.CREDITS
        )

        assert value == "Jane"
        assert requested == ["https://ex.com/empty", "https://ex.com/page"]
        scraper.close()

    def test_pages_are_cached(self, tmp_path: Path, cache: Cache) -> None:
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            return httpx.Response(200, text=PAGE)

        scraper = _scraper(tmp_path, cache, handler)
        scraper.fetch(["https://ex.com/page"], WebClass.CREDITS)
        scraper.fetch(["https://ex.com/page"], WebClass.TITLE)

        assert calls == 1
        scraper.close()

    def test_failed_url_not_retried(self, tmp_path: Path, cache: Cache) -> None:
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            return httpx.Response(404)

        scraper = _scraper(tmp_path, cache, handler)
        value = scraper.fetch(
            ["https://ex.com/gone", "https://ex.com/gone"], WebClass.TITLE
        )

        assert value == ""
        assert calls == 1
        scraper.close()


class TestCookies:
    """Test cookie file loading."""

    def test_load_and_match_domain(self, tmp_path: Path, cache: Cache) -> None:
        cookie_file = tmp_path / "cookies.txt"
        cookie_file.write_text(COOKIES)
        settings = create_test_settings(tmp_path, cookie_path=cookie_file)

        scraper = HttpScraper(settings, cache)

        assert [c.name for c in scraper.get_cookies("https://www.example.com/v")] == [
            "sid"
        ]
        assert scraper.get_cookies("https://other.org/") == []
        scraper.close()

    def test_missing_file_gives_empty_jar(self, tmp_path: Path) -> None:
        assert len(load_cookie_jar(str(tmp_path / "missing.txt"))) == 0
        assert len(load_cookie_jar(None)) == 0


def test_null_scraper_finds_nothing() -> None:
    """Test the no-op scraper."""
    assert NullScraper().fetch(["https://ex.com"], WebClass.TITLE) == ""
    assert NullScraper().get_cookies("https://ex.com") == []
