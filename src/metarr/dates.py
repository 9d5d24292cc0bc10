"""Date normalization, date tags and human-readable dates."""

import logging
import re

from dateutil import parser as date_parser

from metarr.models import DateFormat, DateTagLocation, FileData

logger = logging.getLogger(__name__)

TIME_SUFFIX = "T00:00:00Z"

# Sidecar keys searched for a date when building a tag, in order
DATE_TAG_SOURCE_KEYS: tuple[str, ...] = (
    "release_date",
    "releasedate",
    "released_on",
    "originally_available_at",
    "originally_available",
    "originallyavailable",
    "date",
    "upload_date",
    "uploaddate",
    "uploaded_on",
    "creation_time",  # last resort, may be an encode date
    "created_at",
)

MONTHS = (
    "Jan", "Feb", "Mar", "Apr", "May", "Jun",
    "Jul", "Aug", "Sep", "Oct", "Nov", "Dec",
)

_WHITESPACE = re.compile(r"\s+")


def ymd_from_meta(date: str) -> tuple[str, bool]:
    """Hyphenate compact ``YYYYMMDD``/``YYMMDD`` dates, keeping any ``T`` suffix.

    Returns:
        Tuple of (formatted date, whether it was formatted)
    """
    t_index = date.find("T")
    time_part = date[t_index:] if t_index != -1 else ""
    digits = (date[:t_index] if t_index != -1 else date).replace("-", "")
    if not digits.isdigit():
        return date, False

    if len(digits) >= 8:
        return f"{digits[:4]}-{digits[4:6]}-{digits[6:8]}{time_part}", True
    if len(digits) >= 6:
        return f"{digits[:2]}-{digits[2:4]}-{digits[4:6]}{time_part}", True
    return date, False


def date_part(value: str) -> str:
    """Return everything before the ``T`` of a timestamp."""
    return value.split("T", 1)[0]


def with_time_suffix(date: str) -> str:
    return f"{date_part(date)}{TIME_SUFFIX}"


def parse_date_components(date: str, fmt: DateFormat) -> tuple[str, str, str]:
    """Split a ``YYYY-MM-DD``/``YYYYMMDD``/``YYMMDD`` date into parts.

    Short-year formats keep the last two digits of a four digit year.

    Raises:
        ValueError: If the date is too short or the parts are out of range
    """
    digits = date_part(date).replace("-", "").strip()
    if len(digits) >= 8:
        year, month, day = digits[:4], digits[4:6], digits[6:8]
        if fmt.short_year:
            year = year[2:]
    elif len(digits) >= 6:
        year, month, day = digits[:2], digits[2:4], digits[4:6]
    else:
        raise ValueError(f"date {date!r} is too short")

    if not (year.isdigit() and month.isdigit() and day.isdigit()):
        raise ValueError(f"date {date!r} is not numeric")
    if not 1 <= int(month) <= 12 or not 1 <= int(day) <= 31:
        raise ValueError(f"date {date!r} has an invalid month or day")
    return year, month, day


def format_date_string(year: str, month: str, day: str, fmt: DateFormat) -> str:
    """Join date parts in the order ``fmt`` requests."""
    if fmt in (DateFormat.YYYY_MM_DD, DateFormat.YY_MM_DD):
        parts = (year, month, day)
    elif fmt in (DateFormat.YYYY_DD_MM, DateFormat.YY_DD_MM):
        parts = (year, day, month)
    elif fmt in (DateFormat.DD_MM_YYYY, DateFormat.DD_MM_YY):
        parts = (day, month, year)
    elif fmt in (DateFormat.MM_DD_YYYY, DateFormat.MM_DD_YY):
        parts = (month, day, year)
    else:
        return ""
    return "-".join(part for part in parts if part)


def date_from_fields(fields: dict[str, str]) -> str:
    """Return the first usable date in a sidecar map (date part only)."""
    for key in DATE_TAG_SOURCE_KEYS:
        value = fields.get(key, "")
        if len(value) > 4:
            return date_part(value)
    return ""


def make_date_tag(fields: dict[str, str], fd: FileData | None, fmt: DateFormat) -> str:
    """Build a ``[date]`` tag from FileData or the sidecar.

    Args:
        fields: Sidecar string fields
        fd: Record whose ``formatted_date`` takes precedence
        fmt: Component order (``SKIP`` yields an empty tag)

    Returns:
        The bracketed tag, or "" when no date is available
    """
    if fmt is DateFormat.SKIP:
        return ""

    date = fd.dates.formatted_date if fd is not None else ""
    if not date:
        date = date_from_fields(fields)
    if not date:
        logger.warning("No date found for date tag")
        return ""

    try:
        year, month, day = parse_date_components(date, fmt)
    except ValueError as e:
        logger.warning(f"Could not build date tag: {e}")
        return ""
    date_str = format_date_string(year, month, day, fmt)
    return f"[{date_str}]" if date_str else ""


def collapse_whitespace(value: str) -> str:
    return _WHITESPACE.sub(" ", value).strip()


def add_date_tag(value: str, tag: str, location: DateTagLocation) -> str:
    """Prefix or suffix ``tag`` unless it already occurs in ``value``."""
    if not tag or tag in value:
        return value
    if location is DateTagLocation.PREFIX:
        return collapse_whitespace(f"{tag} {value}")
    return collapse_whitespace(f"{value} {tag}")


def _date_tag_body(fmt: DateFormat) -> str:
    """Regex matching a date rendered in ``fmt``."""
    year = r"\d{2}" if fmt.short_year else r"\d{4}"
    parts = {"yyyy": year, "yy": year, "mm": r"\d{2}", "dd": r"\d{2}"}
    return "-".join(parts[part] for part in fmt.value.split("-"))


def strip_date_tags(value: str, location: DateTagLocation, fmt: DateFormat) -> str:
    """Remove date tags rendered in ``fmt`` at the given location.

    Tags may be bracketed (``[2023-04-05]``) or bare dates separated from
    the rest of the value by whitespace.
    """
    if fmt is DateFormat.SKIP:
        return value

    body = _date_tag_body(fmt)
    tag = rf"(?:\[{body}\]|(?<!\S){body}(?!\S))"
    if location is DateTagLocation.PREFIX:
        pattern = re.compile(rf"^\s*{tag}")
    elif location is DateTagLocation.SUFFIX:
        pattern = re.compile(rf"{tag}\s*$")
    else:
        pattern = re.compile(tag)

    stripped, count = pattern.subn("", value)
    if not count:
        return value
    if location is DateTagLocation.PREFIX:
        return stripped.lstrip()
    if location is DateTagLocation.SUFFIX:
        return stripped.rstrip()
    return collapse_whitespace(stripped)


def _ordinal(day: int) -> str:
    if 10 < day < 20:
        return f"{day}th"
    suffix = {1: "st", 2: "nd", 3: "rd"}.get(day % 10, "th")
    return f"{day}{suffix}"


def string_date(formatted_date: str) -> str:
    """Render ``YYYY-MM-DD`` as ``Jan 1st, 2023``; "" if unparseable."""
    parts = date_part(formatted_date).split("-")
    if len(parts) != 3 or not all(part.isdigit() for part in parts):
        return ""
    year, month, day = parts
    if not 1 <= int(month) <= 12:
        return ""
    return f"{MONTHS[int(month) - 1]} {_ordinal(int(day))}, {year}"


def parse_word_date(text: str) -> str:
    """Parse free-form dates such as ``March 5, 2021`` into ``YYYY-MM-DD``.

    Raises:
        ValueError: If the text holds no recognisable date
    """
    try:
        parsed = date_parser.parse(text, fuzzy=True)
    except (ValueError, OverflowError) as e:
        raise ValueError(f"unable to parse date {text!r}") from e
    return parsed.strftime("%Y-%m-%d")
