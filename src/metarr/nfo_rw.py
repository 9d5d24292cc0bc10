"""NFO (Kodi XML) sidecar reader/writer.

Edits operate on the raw text of the document, so elements the typed
``NfoData`` view does not know about are preserved verbatim.
"""

import html
import logging
import re
import threading
import xml.etree.ElementTree as ET
from pathlib import Path
from typing import BinaryIO

from metarr.exceptions import SidecarIOError
from metarr.models import NfoData, NfoPerson, NfoShowInfo, NfoTitle, SidecarKind
from metarr.retry_utils import retry
from metarr.sidecar_io import lock_for, write_buffer

logger = logging.getLogger(__name__)

XML_PREAMBLE = '<?xml version="1.0" encoding="UTF-8"?>'
ROOT_TAG = "movie"

_SIMPLE_ELEMENT = re.compile(r"<([A-Za-z_][\w.-]*)(?:\s[^>]*)?>([^<]*)</\1>")
_MAIN_CHILD = re.compile(r"(<main(?:\s[^>]*)?>)([^<]*)(</main>)")


def ensure_structure(content: str) -> str:
    """Insert the XML preamble and ``<movie>`` root when missing."""
    body = content.strip()
    if body.startswith("<?xml"):
        end = body.find("?>")
        preamble, body = body[: end + 2], body[end + 2 :].strip()
    else:
        preamble = XML_PREAMBLE
    if not re.match(rf"<{ROOT_TAG}[\s>]", body):
        inner = f"{body}\n" if body else ""
        body = f"<{ROOT_TAG}>\n{inner}</{ROOT_TAG}>"
    return f"{preamble}\n{body}\n"


def _text(element: ET.Element | None) -> str:
    if element is None or element.text is None:
        return ""
    return element.text.strip()


def parse_nfo(content: str) -> NfoData:
    """Parse NFO text into the typed view.

    Raises:
        ET.ParseError: If the document is not well-formed
    """
    root = ET.fromstring(content.encode("utf-8"))
    data = NfoData()

    title_element = root.find("title")
    if title_element is not None:
        if len(title_element):
            data.title = NfoTitle(
                main=_text(title_element.find("main")),
                original=_text(title_element.find("original")),
                sort=_text(title_element.find("sort")),
                sub=_text(title_element.find("sub")),
            )
        else:
            data.title = NfoTitle(plain_text=_text(title_element))

    data.plot = _text(root.find("plot"))
    data.description = _text(root.find("description"))

    # Actors appear either under <cast> or directly under the root
    for actor in root.findall("cast/actor") + root.findall("actor"):
        name = _text(actor.find("name")) or _text(actor)
        if name:
            data.actors.append(NfoPerson(name=name, role=_text(actor.find("role"))))

    data.directors = [_text(e) for e in root.findall("director") if _text(e)]
    data.producers = [_text(e) for e in root.findall("producer") if _text(e)]
    data.publishers = [_text(e) for e in root.findall("publisher") if _text(e)]
    data.writers = [_text(e) for e in root.findall("writer") if _text(e)]
    data.studios = [_text(e) for e in root.findall("studio") if _text(e)]

    data.year = _text(root.find("year"))
    data.premiered = _text(root.find("premiered"))
    data.release_date = _text(root.find("releasedate"))
    data.aired = _text(root.find("aired"))

    data.web_url = _text(root.find("web/url"))
    data.thumb = _text(root.find("web/thumb")) or _text(root.find("thumb"))

    data.show_info = NfoShowInfo(
        show=_text(root.find("showinfo/show")),
        season_number=_text(root.find("showinfo/season/number")),
        episode_id=_text(root.find("showinfo/episode/number")),
        episode_title=_text(root.find("showinfo/episode/title")),
    )
    return data


class NfoRw:
    """Load, mutate and persist an NFO sidecar."""

    kind = SidecarKind.NFO

    def __init__(
        self,
        path: Path,
        no_file_overwrite: bool = False,
        cancel_event: threading.Event | None = None,
        decode_timeout: float = 3.0,
    ):
        self.path = path
        self.no_file_overwrite = no_file_overwrite
        self.cancel_event = cancel_event
        self.decode_timeout = decode_timeout
        self.content = ""
        self.model = NfoData()
        self._handle: BinaryIO | None = None

    def __enter__(self) -> "NfoRw":
        self.open()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def open(self) -> None:
        if self._handle is None:
            try:
                self._handle = self.path.open("r+b")
            except OSError as e:
                raise SidecarIOError(f"Failed to open {self.path}: {e}") from e

    def close(self) -> None:
        if self._handle is not None:
            self._handle.close()
            self._handle = None

    def decode(self) -> NfoData:
        """Read the document, repair its structure and parse it.

        Raises:
            SidecarIOError: If the file cannot be read or parsed
        """
        self.open()

        @retry(
            timeout=self.decode_timeout,
            interval=0.5,
            log_interval=2.0,
            exceptions=(OSError,),
            cancel_event=self.cancel_event,
        )
        def read_file() -> tuple[str, NfoData]:
            assert self._handle is not None
            self._handle.seek(0)
            text = ensure_structure(self._handle.read().decode("utf-8"))
            return text, parse_nfo(text)

        with lock_for(self.path):
            try:
                self.content, self.model = read_file()
            except (ET.ParseError, OSError, UnicodeDecodeError) as e:
                raise SidecarIOError(f"Failed to decode {self.path}: {e}") from e
        return self.model

    def refresh(self) -> NfoData:
        return self.decode()

    def _element_pattern(self, field: str) -> re.Pattern[str]:
        tag = re.escape(field)
        return re.compile(rf"(<{tag}(?:\s[^>]*)?>)([^<]*)(</{tag}>)")

    def _nested_pattern(self, field: str) -> re.Pattern[str]:
        tag = re.escape(field)
        return re.compile(rf"(<{tag}(?:\s[^>]*)?>)(.*?)(</{tag}>)", re.DOTALL)

    def get(self, field: str) -> str | None:
        """Return the text of the first ``<field>`` element.

        Nested elements such as ``<title><main>..</main></title>`` yield the
        text of their ``<main>`` child.
        """
        match = self._element_pattern(field).search(self.content)
        if match is not None:
            return html.unescape(match.group(2)).strip()
        nested = self._nested_pattern(field).search(self.content)
        if nested is None:
            return None
        main = _MAIN_CHILD.search(nested.group(2))
        if main is None:
            return None
        return html.unescape(main.group(2)).strip()

    def has(self, field: str) -> bool:
        return self._nested_pattern(field).search(self.content) is not None

    def set(self, field: str, value: str) -> None:
        """Replace the first ``<field>`` text, or add it before ``</movie>``.

        For a nested element the ``<main>`` child is rewritten, or the whole
        body replaced when there is none.
        """
        escaped = html.escape(value, quote=False)
        pattern = self._element_pattern(field)
        if pattern.search(self.content):
            self.content = pattern.sub(
                lambda m: f"{m.group(1)}{escaped}{m.group(3)}", self.content, count=1
            )
            return

        nested = self._nested_pattern(field).search(self.content)
        if nested is not None:
            inner = nested.group(2)
            if _MAIN_CHILD.search(inner):
                inner = _MAIN_CHILD.sub(
                    lambda m: f"{m.group(1)}{escaped}{m.group(3)}", inner, count=1
                )
            else:
                inner = escaped
            start, end = nested.span(2)
            self.content = f"{self.content[:start]}{inner}{self.content[end:]}"
            return

        closing = f"</{ROOT_TAG}>"
        index = self.content.rfind(closing)
        if index == -1:
            raise SidecarIOError(f"{self.path} is missing its </{ROOT_TAG}> tag")
        element = f"  <{field}>{escaped}</{field}>\n"
        self.content = f"{self.content[:index]}{element}{self.content[index:]}"

    def string_fields(self) -> dict[str, str]:
        """Return the text of every simple element (first occurrence wins)."""
        fields: dict[str, str] = {}
        for match in _SIMPLE_ELEMENT.finditer(self.content):
            value = html.unescape(match.group(2)).strip()
            if value and match.group(1) not in fields:
                fields[match.group(1)] = value
        return fields

    def write(self) -> None:
        """Write the text back and refresh the typed view.

        Raises:
            SidecarIOError: If the edited text no longer parses or cannot be written
        """
        try:
            model = parse_nfo(self.content)
        except ET.ParseError as e:
            raise SidecarIOError(f"Edited NFO {self.path} is not valid XML: {e}") from e
        self.open()
        assert self._handle is not None
        write_buffer(
            self._handle,
            self.content.encode("utf-8"),
            self.path,
            no_file_overwrite=self.no_file_overwrite,
            cancel_event=self.cancel_event,
        )
        self.model = model

    def write_fields(self, values: dict[str, str]) -> bool:
        """Add elements for absent or empty fields, then write.

        Nested elements without a ``<main>`` child are left alone.
        """
        changed = False
        for key, value in values.items():
            current = self.get(key)
            if not value or current or (current is None and self.has(key)):
                continue
            self.set(key, value)
            changed = True
        if changed:
            self.write()
        return changed
