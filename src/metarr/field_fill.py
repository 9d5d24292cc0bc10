"""Population of FileData metadata groups from a sidecar.

Each group is read from the sidecar, missing fields are inferred from
related fields by priority, and the scraper is consulted when a group is
still empty. Values the sidecar did not have are returned so they can be
written back.
"""

import logging
from typing import Any
from urllib.parse import urlparse

from metarr import dates
from metarr.json_rw import JsonRw
from metarr.models import (
    CREDIT_FIELDS,
    CreditFields,
    DateFields,
    FileData,
    NfoData,
    OtherFields,
    OverrideCategory,
    OverrideMaps,
    ShowFields,
    SidecarKind,
    TitleFields,
    WebClass,
    WebFields,
)
from metarr.scraper import NullScraper, Scraper
from metarr.sidecars import Sidecar

logger = logging.getLogger(__name__)

# Sidecar key -> TitleFields attribute
TITLE_KEYS: dict[str, str] = {
    "title": "title",
    "fulltitle": "fulltitle",
    "subtitle": "subtitle",
}

# Sidecar key -> TitleFields attribute, in inference priority order
DESCRIPTION_KEYS: dict[str, str] = {
    "long-description": "long_description",
    "long_description": "long_underscore_description",
    "description": "description",
    "synopsis": "synopsis",
    "summary": "summary",
    "comment": "comment",
}

# Sidecar key -> DateFields attribute, in priority order
DATE_KEYS: dict[str, str] = {
    "release_date": "release_date",
    "originally_available_at": "originally_available_at",
    "date": "date",
    "upload_date": "upload_date",
    "release_year": "year",
    "year": "year",
    "creation_time": "creation_time",
}

# Sidecar key -> WebFields attribute; URL-valued keys also feed try_urls
WEB_KEYS: tuple[tuple[str, str, bool], ...] = (
    ("webpage_url", "webpage_url", True),
    ("url", "video_url", True),
    ("referer", "referer", True),
    ("webpage_url_domain", "domain", False),
    ("domain", "domain", False),
    ("thumbnail", "thumbnail", False),
)

SHOW_KEYS: dict[str, str] = {
    "show": "show",
    "series": "show",
    "episode_id": "episode_id",
    "episode_sort": "episode_sort",
    "season_number": "season_number",
    "season_title": "season_title",
}

OTHER_KEYS: dict[str, str] = {
    "language": "language",
    "genre": "genre",
    "hd_video": "hd_video",
}


def _string(values: dict[str, Any], key: str) -> str:
    value = values.get(key)
    return value.strip() if isinstance(value, str) else ""


def nfo_values(model: NfoData) -> dict[str, Any]:
    """Flatten the typed NFO view into sidecar-style keys.

    ``plot`` and ``description`` feed description, synopsis and summary
    alike.
    """
    plot = model.plot or model.description
    values: dict[str, Any] = {
        "title": model.title.main or model.title.plain_text,
        "fulltitle": model.title.original,
        "subtitle": model.title.sub,
        "description": model.description or model.plot,
        "synopsis": plot,
        "summary": plot,
        "year": model.year,
        "release_date": model.release_date or model.premiered,
        "originally_available_at": model.aired or model.premiered,
        "webpage_url": model.web_url,
        "thumbnail": model.thumb,
        "show": model.show_info.show,
        "season_number": model.show_info.season_number,
        "episode_id": model.show_info.episode_id,
        "actors": [person.name for person in model.actors],
        "directors": model.directors,
        "producers": model.producers,
        "publishers": model.publishers,
        "writers": model.writers,
        "studios": model.studios,
    }
    return {key: value for key, value in values.items() if value}


def sidecar_values(rw: Sidecar) -> dict[str, Any]:
    """Return the sidecar as a sidecar-keyed value map."""
    if isinstance(rw, JsonRw):
        return dict(rw.data)
    # Plain elements win over values derived from the typed view
    values: dict[str, Any] = nfo_values(rw.model)
    values.update(rw.string_fields())
    return values


def fill_web(fd: FileData, values: dict[str, Any]) -> dict[str, str]:
    """Copy web fields and collect scrape candidates.

    Every URL-valued entry is appended to ``try_urls`` even when it repeats
    an earlier one.
    """
    web = fd.web
    for key, attr, is_url in WEB_KEYS:
        value = _string(values, key)
        if not value:
            continue
        if not getattr(web, attr):
            setattr(web, attr, value)
        if is_url:
            web.try_urls.append(value)

    if not web.domain and web.webpage_url:
        web.domain = urlparse(web.webpage_url).hostname or ""
    return {}


def fill_titles(
    fd: FileData, values: dict[str, Any], scraper: Scraper
) -> dict[str, str]:
    t = fd.titles
    for key, attr in TITLE_KEYS.items():
        value = _string(values, key)
        if value:
            setattr(t, attr, value)

    if not t.title and t.fulltitle:
        t.title = t.fulltitle
    if not t.fulltitle and t.title:
        t.fulltitle = t.title

    if not t.title and fd.web.try_urls:
        scraped = scraper.fetch(fd.web.try_urls, WebClass.TITLE)
        if scraped:
            t.title = scraped
            if not t.fulltitle:
                t.fulltitle = scraped

    return {key: getattr(t, attr) for key, attr in TITLE_KEYS.items()}


def _apply_credit_overrides(credits: CreditFields, overrides: OverrideMaps) -> None:
    category = OverrideCategory.CREDITS
    replace = overrides.replace.get(category)
    if replace is not None:
        for name in CREDIT_FIELDS:
            value = getattr(credits, name)
            if value:
                setattr(credits, name, value.replace(replace.find, replace.replacement))
        for name, entries in credits.lists.items():
            credits.lists[name] = [
                entry.replace(replace.find, replace.replacement) for entry in entries
            ]

    if category in overrides.set:
        for name in CREDIT_FIELDS:
            setattr(credits, name, overrides.set[category])
        # A set value replaces list-valued credits too
        credits.lists.clear()

    append = overrides.append.get(category)
    if append:
        for name in CREDIT_FIELDS:
            value = getattr(credits, name)
            if value and not value.endswith(append):
                setattr(credits, name, f"{value}{append}")
        for name, entries in credits.lists.items():
            credits.lists[name] = [
                entry if entry.endswith(append) else f"{entry}{append}"
                for entry in entries
            ]


def fill_credits(
    fd: FileData,
    values: dict[str, Any],
    scraper: Scraper,
    overrides: OverrideMaps | None = None,
) -> dict[str, str]:
    """Populate credits, inferring empty fields from the highest priority one."""
    c = fd.credits
    for name in CREDIT_FIELDS:
        value = _string(values, name)
        if value:
            setattr(c, name, value)
        listed = values.get(f"{name}s")
        if isinstance(listed, list):
            entries = [v.strip() for v in listed if isinstance(v, str) and v.strip()]
            if entries:
                c.lists[name] = entries
                if not getattr(c, name):
                    setattr(c, name, entries[0])

    if overrides is not None:
        _apply_credit_overrides(c, overrides)

    filled = [getattr(c, name) for name in CREDIT_FIELDS]
    if not all(filled):
        fill_value = next((value for value in filled if value), "")
        if not fill_value and fd.web.try_urls:
            fill_value = scraper.fetch(fd.web.try_urls, WebClass.CREDITS)
        if fill_value:
            for name in CREDIT_FIELDS:
                if not getattr(c, name):
                    setattr(c, name, fill_value)

    return {name: getattr(c, name) for name in CREDIT_FIELDS}


def _process_date_field(date: str, d: DateFields) -> str:
    formatted, ok = dates.ymd_from_meta(date)
    if not ok:
        return date
    d.formatted_date = dates.date_part(formatted)
    return formatted


def fill_empty_timestamps(d: DateFields) -> bool:
    """Infer missing date fields from the ones present.

    Returns:
        True if any usable date was present
    """
    got_date = False

    for source in (d.originally_available_at, d.release_date, d.date, d.upload_date):
        if len(source) < 6:
            continue
        if source is not d.upload_date:
            got_date = True
        if "T" not in d.creation_time:
            d.creation_time = dates.with_time_suffix(_process_date_field(source, d))
        if not d.originally_available_at:
            d.originally_available_at = _process_date_field(source, d)

    if not d.date:
        if d.release_date:
            d.date = d.release_date
            d.originally_available_at = d.release_date
        elif d.upload_date:
            d.date = d.upload_date
            d.originally_available_at = d.upload_date
        elif d.formatted_date:
            d.date = d.formatted_date

    if not d.release_date and d.date:
        d.release_date = dates.date_part(d.date)

    if not d.year:
        for source in (d.date, d.upload_date, d.formatted_date):
            if len(source) >= 4:
                d.year = source[:4]
                break
    d.year = d.year[:4]

    if (
        len(d.year) == 4
        and len(d.creation_time) >= 4
        and not d.creation_time.startswith(d.year)
    ):
        logger.debug("Creation time does not match year, looking for a better date")
        for candidate in (
            d.originally_available_at,
            d.release_date,
            d.date,
            d.formatted_date,
        ):
            if candidate.startswith(d.year):
                formatted, _ = dates.ymd_from_meta(candidate)
                d.creation_time = dates.with_time_suffix(formatted)
                break
        else:
            d.creation_time = d.year + d.creation_time[4:]

    return got_date or bool(d.upload_date and len(d.upload_date) >= 6)


def format_all_dates(d: DateFields) -> str:
    """Set ``formatted_date`` from the first formattable date field."""
    for source in (
        d.originally_available_at,
        d.release_date,
        d.date,
        d.upload_date,
        d.creation_time,
    ):
        if not source:
            continue
        formatted, ok = dates.ymd_from_meta(source)
        if ok:
            d.formatted_date = dates.date_part(formatted)
            return d.formatted_date
    return ""


def _fill_from_scraped_date(d: DateFields, date: str) -> None:
    for attr in ("release_date", "date", "upload_date", "originally_available_at"):
        if not getattr(d, attr):
            setattr(d, attr, date)
    if "T" not in d.creation_time:
        d.creation_time = dates.with_time_suffix(date)
    if not d.formatted_date:
        d.formatted_date = date
    d.year = date[:4]


def fill_dates(
    fd: FileData, values: dict[str, Any], scraper: Scraper
) -> dict[str, str]:
    """Populate dates, normalizing compact forms and inferring the rest."""
    d = fd.dates
    got_date = False
    for key, attr in DATE_KEYS.items():
        value = _string(values, key)
        if not value:
            continue
        if len(value) >= 6:
            value, _ = dates.ymd_from_meta(value)
        setattr(d, attr, value)
        got_date = True

    if fill_empty_timestamps(d):
        got_date = True

    if not got_date and fd.web.try_urls:
        scraped = scraper.fetch(fd.web.try_urls, WebClass.DATE)
        if scraped:
            try:
                _fill_from_scraped_date(d, dates.parse_word_date(scraped))
                got_date = True
            except ValueError as e:
                logger.warning(f"Failed to parse scraped date {scraped!r}: {e}")

    if got_date:
        if not d.formatted_date:
            format_all_dates(d)
        d.string_date = dates.string_date(d.formatted_date)

    return {
        "release_date": d.release_date,
        "originally_available_at": d.originally_available_at,
        "date": d.date,
        "year": d.year,
        "creation_time": d.creation_time,
        "formatted_date": d.formatted_date,
    }


def fill_descriptions(
    fd: FileData,
    values: dict[str, Any],
    scraper: Scraper,
    date_prefix: bool = False,
    date_suffix: bool = False,
) -> dict[str, str]:
    """Populate description fields and optionally stamp them with the date."""
    t = fd.titles
    for key, attr in DESCRIPTION_KEYS.items():
        value = _string(values, key)
        if value:
            setattr(t, attr, value)

    attrs = list(DESCRIPTION_KEYS.values())
    fill_value = next((getattr(t, attr) for attr in attrs if getattr(t, attr)), "")
    if not fill_value and fd.web.try_urls:
        fill_value = scraper.fetch(fd.web.try_urls, WebClass.DESCRIPTION)
    if fill_value:
        for attr in attrs:
            if not getattr(t, attr):
                setattr(t, attr, fill_value)

    write_back = {key: getattr(t, attr) for key, attr in DESCRIPTION_KEYS.items()}

    stamp = fd.dates.string_date
    if stamp and (date_prefix or date_suffix):
        for attr in attrs:
            value = getattr(t, attr)
            if not value:
                continue
            if date_prefix and not value.startswith(stamp):
                value = f"{stamp}\n\n{value}"
            if date_suffix and not value.endswith(stamp):
                value = f"{value}\n\n{stamp}"
            setattr(t, attr, value)

    return write_back


def fill_show(fd: FileData, values: dict[str, Any]) -> dict[str, str]:
    for key, attr in SHOW_KEYS.items():
        value = _string(values, key)
        if value and not getattr(fd.show, attr):
            setattr(fd.show, attr, value)
    return {}


def fill_other(fd: FileData, values: dict[str, Any]) -> dict[str, str]:
    for key, attr in OTHER_KEYS.items():
        value = _string(values, key)
        if value:
            setattr(fd.other, attr, value)
    return {}


class FieldFiller:
    """Runs every fill phase for one sidecar."""

    def __init__(
        self,
        scraper: Scraper | None = None,
        overrides: OverrideMaps | None = None,
        desc_date_prefix: bool = False,
        desc_date_suffix: bool = False,
    ):
        self.scraper = scraper or NullScraper()
        self.overrides = overrides or OverrideMaps()
        self.desc_date_prefix = desc_date_prefix
        self.desc_date_suffix = desc_date_suffix

    def fill(self, fd: FileData, rw: Sidecar, write_back: bool = True) -> bool:
        """Populate all groups of ``fd`` from ``rw``.

        Groups are rebuilt from scratch so the fill can run again after the
        sidecar was edited.

        Args:
            fd: Record to populate
            rw: Decoded sidecar
            write_back: Add inferred values the JSON sidecar lacks

        Returns:
            True if the sidecar was written
        """
        values = sidecar_values(rw)
        scraper: Scraper = self.scraper if write_back else NullScraper()

        fd.titles = TitleFields()
        fd.credits = CreditFields()
        fd.dates = DateFields()
        fd.web = WebFields()
        fd.show = ShowFields()
        fd.other = OtherFields()

        additions: dict[str, str] = {}
        additions.update(fill_web(fd, values))
        additions.update(fill_titles(fd, values, scraper))
        additions.update(fill_credits(fd, values, scraper, self.overrides))
        additions.update(fill_dates(fd, values, scraper))
        additions.update(
            fill_descriptions(
                fd, values, scraper, self.desc_date_prefix, self.desc_date_suffix
            )
        )
        additions.update(fill_show(fd, values))
        additions.update(fill_other(fd, values))

        # NFO documents keep their own element names, only JSON gets new keys
        if not write_back or rw.kind is not SidecarKind.JSON:
            return False
        return rw.write_fields(additions)
