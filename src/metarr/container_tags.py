"""Container-specific metadata key names.

Each container family stores tags under its own keys (lowercase for MP4,
Matroska names for MKV, RIFF codes for AVI ...). Keys without a mapping
are not written for that container.
"""

from metarr.models import FileData

MP4_KEYS: dict[str, str] = {
    "artist": "artist",
    "comment": "comment",
    "composer": "composer",
    "creation_time": "creation_time",
    "date": "date",
    "description": "description",
    "synopsis": "synopsis",
    "title": "title",
    "year": "year",
}

MATROSKA_KEYS: dict[str, str] = {
    "artist": "ARTIST",
    "composer": "COMPOSER",
    "creation_time": "DATE_ENCODED",
    "release_date": "DATE_RELEASED",
    "description": "DESCRIPTION",
    "director": "DIRECTOR",
    "actor": "LEAD_PERFORMER",
    "performer": "PERFORMER",
    "producer": "PRODUCER",
    "subtitle": "SUBJECT",
    "summary": "SUMMARY",
    "synopsis": "SYNOPSIS",
    "title": "TITLE",
}

ASF_KEYS: dict[str, str] = {
    "artist": "WM/AlbumArtist",
    "composer": "WM/Composer",
    "director": "WM/Director",
    "producer": "WM/Producer",
    "subtitle": "WM/SubTitle",
    "description": "WM/SubTitleDescription",
    "date": "WM/EncodingTime",
    "title": "Title",
    "year": "WM/Year",
}

AVI_KEYS: dict[str, str] = {
    "long_description": "COMM",
    "actor": "STAR",
    "artist": "IART",
    "description": "ICMT",
    "release_date": "ICRD",
    "producer": "IENG",
    "synopsis": "ISBJ",
    "title": "INAM",
    "year": "YEAR",
}

FLV_KEYS: dict[str, str] = {
    "date": "creationdate",
}

TS_KEYS: dict[str, str] = {
    "artist": "service_provider",
    "title": "service_name",
}

OGG_KEYS: dict[str, str] = {
    "artist": "ARTIST",
    "composer": "COMPOSER",
    "date": "DATE",
    "description": "DESCRIPTION",
    "performer": "PERFORMER",
    "summary": "SUMMARY",
    "title": "TITLE",
}

REALMEDIA_KEYS: dict[str, str] = {
    "author": "Author",
    "description": "Comment",
    "title": "Title",
}

CONTAINER_KEYS: dict[str, dict[str, str]] = {
    ".mp4": MP4_KEYS,
    ".m4v": MP4_KEYS,
    ".mov": MP4_KEYS,
    ".3gp": MP4_KEYS,
    ".3g2": MP4_KEYS,
    ".f4v": MP4_KEYS,
    ".mkv": MATROSKA_KEYS,
    ".webm": MATROSKA_KEYS,
    ".asf": ASF_KEYS,
    ".wmv": ASF_KEYS,
    ".avi": AVI_KEYS,
    ".flv": FLV_KEYS,
    ".ts": TS_KEYS,
    ".mts": TS_KEYS,
    ".ogm": OGG_KEYS,
    ".ogv": OGG_KEYS,
    ".rm": REALMEDIA_KEYS,
    ".rmvb": REALMEDIA_KEYS,
}

# Tags ffprobe reports back reliably, compared before re-encoding
COMPARE_KEYS: dict[str, tuple[str, ...]] = {
    ".mp4": (
        "title",
        "description",
        "synopsis",
        "artist",
        "composer",
        "creation_time",
        "date",
    ),
    ".mkv": (
        "title",
        "description",
        "summary",
        "synopsis",
        "artist",
        "actor",
        "composer",
        "release_date",
    ),
}
COMPARE_KEYS[".m4v"] = COMPARE_KEYS[".mp4"]
COMPARE_KEYS[".mov"] = COMPARE_KEYS[".mp4"]
COMPARE_KEYS[".webm"] = COMPARE_KEYS[".mkv"]

# Keys compared on the part before "T" only
DATE_ONLY_KEYS: frozenset[str] = frozenset({"creation_time", "date", "release_date"})

TITLE_EMIT_ORDER: tuple[str, ...] = (
    "title",
    "subtitle",
    "description",
    "long_description",
    "summary",
    "synopsis",
    "comment",
)

DATE_EMIT_ORDER: tuple[str, ...] = (
    "date",
    "creation_time",
    "year",
    "release_date",
    "originally_available_at",
    "upload_date",
)


def container_key(ext: str, key: str) -> str | None:
    """Return the container's name for a generic key, or None if unsupported."""
    return CONTAINER_KEYS.get(ext.lower(), MP4_KEYS).get(key)


def intended_tags(fd: FileData) -> dict[str, str]:
    """Generic tag name -> value FileData wants written, in emission order.

    Credit lists replace the matching singular value with ``"; "``-joined
    entries.
    """
    t = fd.titles
    tags: dict[str, str] = {}

    title_values = {
        "title": t.title,
        "subtitle": t.subtitle,
        "description": t.description,
        "long_description": t.long_description or t.long_underscore_description,
        "summary": t.summary,
        "synopsis": t.synopsis,
        "comment": t.comment,
    }
    for key in TITLE_EMIT_ORDER:
        tags[key] = title_values[key]

    credits = fd.credits
    for key, value in vars(credits).items():
        if key == "lists":
            continue
        listed = credits.lists.get(key)
        tags[key] = "; ".join(listed) if listed else value

    for key in DATE_EMIT_ORDER:
        tags[key] = getattr(fd.dates, key)

    for key, value in vars(fd.show).items():
        tags[key] = value
    for key, value in vars(fd.other).items():
        tags[key] = value

    return {key: value.strip() for key, value in tags.items() if value.strip()}
