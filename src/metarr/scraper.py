"""Web page scraping used to supplement missing sidecar fields."""

import logging
from http.cookiejar import Cookie, CookieJar, LoadError, MozillaCookieJar
from typing import Protocol
from urllib.parse import urlparse

import httpx
from bs4 import BeautifulSoup
from diskcache import Cache  # type: ignore[import-untyped]

from metarr.config import Settings
from metarr.models import WebClass

logger = logging.getLogger(__name__)

# HTML class names searched for each kind of value, in order
WEB_CLASS_TAGS: dict[WebClass, tuple[str, ...]] = {
    WebClass.DATE: ("release-date", "upload-date", "date", "date-text", "text-date"),
    WebClass.DESCRIPTION: (
        "description",
        "longdescription",
        "long-description",
        "summary",
        "synopsis",
    ),
    WebClass.CREDITS: (
        "creator",
        "uploader",
        "uploaded-by",
        "uploaded_by",
        "channel-name",
        "claim-preview__title",
    ),
    WebClass.TITLE: ("video-title", "video-name"),
}

# <meta property=...> fallbacks when no class matches
META_FALLBACKS: dict[WebClass, tuple[str, ...]] = {
    WebClass.TITLE: ("og:title", "twitter:title"),
    WebClass.DESCRIPTION: ("og:description", "description"),
    WebClass.DATE: ("article:published_time", "og:video:release_date"),
    WebClass.CREDITS: ("author", "og:video:director"),
}

USER_AGENT = "Mozilla/5.0 (X11; Linux x86_64; rv:128.0) Gecko/20100101 Firefox/128.0"


class Scraper(Protocol):
    """Fetches a single value of a given kind from candidate pages."""

    def fetch(self, try_urls: list[str], web_class: WebClass) -> str: ...

    def get_cookies(self, url: str) -> list[Cookie]: ...


class NullScraper:
    """Scraper that never finds anything."""

    def fetch(self, try_urls: list[str], web_class: WebClass) -> str:
        return ""

    def get_cookies(self, url: str) -> list[Cookie]:
        return []


def load_cookie_jar(path: str | None) -> CookieJar:
    """Load a Netscape-format cookie file, or return an empty jar."""
    if not path:
        return CookieJar()
    jar = MozillaCookieJar(path)
    try:
        jar.load(ignore_discard=True, ignore_expires=True)
    except (OSError, LoadError) as e:
        logger.warning(f"Could not load cookies from {path}: {e}")
        return CookieJar()
    logger.info(f"Loaded {len(jar)} cookies from {path}")
    return jar


def extract_value(html_text: str, web_class: WebClass) -> str:
    """Pull the first non-empty value of ``web_class`` out of a page."""
    soup = BeautifulSoup(html_text, "html.parser")

    for class_name in WEB_CLASS_TAGS[web_class]:
        element = soup.find(class_=class_name)
        if element is None:
            continue
        if web_class is WebClass.DATE and element.get("datetime"):
            return str(element["datetime"]).strip()
        text = element.get_text(" ", strip=True)
        if text:
            return text

    if web_class is WebClass.DATE:
        time_element = soup.find("time")
        if time_element is not None:
            value = time_element.get("datetime") or time_element.get_text(strip=True)
            if value:
                return str(value).strip()

    for name in META_FALLBACKS[web_class]:
        meta = soup.find("meta", attrs={"property": name}) or soup.find(
            "meta", attrs={"name": name}
        )
        if meta is not None and meta.get("content"):
            return str(meta["content"]).strip()
    return ""


class HttpScraper:
    """Scraper backed by httpx, BeautifulSoup and a disk cache of pages."""

    def __init__(self, settings: Settings, cache: Cache):
        self.settings = settings
        self.cache = cache
        self.cache_expire_seconds = settings.cache_duration_hours * 3600
        cookie_path = str(settings.cookie_path) if settings.cookie_path else None
        self.cookie_jar = load_cookie_jar(cookie_path)
        self.client = httpx.Client(
            headers={"User-Agent": USER_AGENT},
            cookies=self.cookie_jar,
            timeout=settings.scrape_timeout,
            follow_redirects=True,
        )

    def _get_page(self, url: str) -> str:
        cache_key = f"page:{url}"
        if cache_key in self.cache:
            return self.cache[cache_key]

        response = self.client.get(url)
        response.raise_for_status()
        page = response.text
        self.cache.set(cache_key, page, expire=self.cache_expire_seconds)
        return page

    def fetch(self, try_urls: list[str], web_class: WebClass) -> str:
        """Try each URL in order until one yields a value.

        Args:
            try_urls: Candidate page URLs (duplicates allowed)
            web_class: Kind of value wanted

        Returns:
            The scraped text, or "" when nothing was found
        """
        failed: set[str] = set()
        for url in try_urls:
            if not url or url in failed:
                continue
            try:
                page = self._get_page(url)
            except httpx.HTTPError as e:
                logger.warning(f"Failed to fetch {url}: {e}")
                failed.add(url)
                continue

            value = extract_value(page, web_class)
            if value:
                logger.info(f"Scraped {web_class.value} from {url}")
                return value
        logger.debug(f"No {web_class.value} found in {len(try_urls)} candidate pages")
        return ""

    def get_cookies(self, url: str) -> list[Cookie]:
        """Return cookies from the loaded jar whose domain matches ``url``."""
        host = urlparse(url).hostname or ""
        return [
            cookie
            for cookie in self.cookie_jar
            if host == cookie.domain.lstrip(".") or host.endswith(cookie.domain)
        ]

    def close(self) -> None:
        self.client.close()
