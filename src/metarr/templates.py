"""Expansion of ``{{tag}}`` tokens inside edit-op strings."""

import re

from metarr.exceptions import TemplateError
from metarr.models import FileData

OPEN = "{{"
CLOSE = "}}"
MAX_DEPTH = 8

_TOKEN = re.compile(r"\{\{\s*([^{}]+?)\s*\}\}")


def is_template(text: str) -> bool:
    return OPEN in text or CLOSE in text


def filedata_tags(fd: FileData | None) -> dict[str, str]:
    """Fixed tags resolved from the FileData record."""
    if fd is None:
        return {}
    return {
        "year": fd.dates.year,
        "author": fd.credits.author,
        "director": fd.credits.director,
        "domain": fd.web.domain,
        "video_title": fd.titles.title,
        "video_url": fd.web.video_url or fd.web.webpage_url,
    }


def fill_template(
    text: str, fields: dict[str, str], fd: FileData | None = None
) -> str:
    """Replace every ``{{tag}}`` until no token remains.

    Tags resolve first against the sidecar's string fields, then against
    the fixed FileData tags.

    Args:
        text: String that may contain tokens
        fields: Sidecar key/value map (non-empty strings)
        fd: Record providing the fixed tags

    Returns:
        The expanded string

    Raises:
        TemplateError: On unbalanced delimiters or an unresolvable tag
    """
    if not is_template(text):
        return text
    if text.count(OPEN) != text.count(CLOSE):
        raise TemplateError(f"Unbalanced template delimiters in {text!r}")

    fixed = filedata_tags(fd)

    def resolve(match: re.Match[str]) -> str:
        tag = match.group(1)
        value = fields.get(tag) or fixed.get(tag)
        if not value:
            raise TemplateError(f"Template tag {tag!r} could not be resolved")
        return value

    result = text
    for _ in range(MAX_DEPTH):
        if not _TOKEN.search(result):
            return result
        result = _TOKEN.sub(resolve, result)
    if _TOKEN.search(result):
        raise TemplateError(
            f"Template {text!r} did not settle after {MAX_DEPTH} passes"
        )
    return result
