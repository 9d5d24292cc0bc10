"""Parsing of colon-separated edit options into edit-op records.

Multi-value options use ``:`` as separator; a backslash escapes the next
character, so ``title:prefix:10\\:30 `` keeps the colon inside the value.
"""

from typing import TYPE_CHECKING

from metarr.models import (
    CopyToField,
    DateFormat,
    DateTagLocation,
    FilenameOps,
    MetaAppend,
    MetaDateTag,
    MetaDeleteDateTag,
    MetaOps,
    MetaPrefix,
    MetaReplace,
    MetaReplacePrefix,
    MetaReplaceSuffix,
    MetaSet,
    OverrideCategory,
    OverrideMaps,
    PasteFromField,
    TextReplace,
)

if TYPE_CHECKING:
    from metarr.config import Settings


def escaped_split(value: str, sep: str = ":", maxsplit: int = -1) -> list[str]:
    """Split on ``sep`` honouring backslash escapes.

    Args:
        value: Raw option string
        sep: Single character separator
        maxsplit: Maximum number of splits (-1 for unlimited)

    Returns:
        List of unescaped parts
    """
    parts: list[str] = []
    current: list[str] = []
    escaped = False
    for char in value:
        if escaped:
            current.append(char)
            escaped = False
        elif char == "\\":
            escaped = True
        elif char == sep and (maxsplit < 0 or len(parts) < maxsplit):
            parts.append("".join(current))
            current = []
        else:
            current.append(char)
    if escaped:
        current.append("\\")
    parts.append("".join(current))
    return parts


def normalize_ext(ext: str) -> str:
    """Return a lowercase extension with a single leading dot."""
    ext = ext.strip().lower()
    return ext if ext.startswith(".") else f".{ext}"


def _require(raw: str, option: str, count: int, maxsplit: int) -> list[str]:
    parts = escaped_split(raw, ":", maxsplit)
    if len(parts) < count or not parts[0]:
        raise ValueError(f"malformed {option} entry {raw!r}")
    return parts


def parse_location(value: str, allow_all: bool = False) -> DateTagLocation:
    try:
        location = DateTagLocation(value.strip().lower())
    except ValueError:
        raise ValueError(f"unknown date tag location {value!r}") from None
    if location is DateTagLocation.ALL and not allow_all:
        raise ValueError("date tag location 'all' is only valid for deletion")
    return location


def build_meta_ops(settings: "Settings") -> MetaOps:
    """Build sidecar edit operations from settings.

    Raises:
        ValueError: On the first malformed entry
    """
    ops = MetaOps()
    for raw in settings.meta_add_field:
        field, value = _require(raw, "meta-add-field", 2, 1)
        ops.set_fields.append(MetaSet(field, value))
    for raw in settings.meta_copy_to:
        field, dest = _require(raw, "meta-copy-to", 2, 1)
        ops.copy_to.append(CopyToField(field, dest))
    for raw in settings.meta_paste_from:
        field, origin = _require(raw, "meta-paste-from", 2, 1)
        ops.paste_from.append(PasteFromField(field, origin))
    for raw in settings.meta_replace:
        field, find, replacement = _require(raw, "meta-replace", 3, 2)
        if not find:
            raise ValueError(f"meta-replace entry {raw!r} has nothing to find")
        ops.replaces.append(MetaReplace(field, find, replacement))
    for raw in settings.meta_trim_prefix:
        parts = _require(raw, "meta-trim-prefix", 2, 2)
        replacement = parts[2] if len(parts) > 2 else ""
        ops.replace_prefixes.append(MetaReplacePrefix(parts[0], parts[1], replacement))
    for raw in settings.meta_trim_suffix:
        parts = _require(raw, "meta-trim-suffix", 2, 2)
        replacement = parts[2] if len(parts) > 2 else ""
        ops.replace_suffixes.append(MetaReplaceSuffix(parts[0], parts[1], replacement))
    for raw in settings.meta_prefix:
        field, prefix = _require(raw, "meta-prefix", 2, 1)
        ops.prefixes.append(MetaPrefix(field, prefix))
    for raw in settings.meta_append:
        field, suffix = _require(raw, "meta-append", 2, 1)
        ops.appends.append(MetaAppend(field, suffix))
    for raw in settings.meta_date_tag:
        field, location, fmt = _require(raw, "meta-date-tag", 3, 2)
        ops.date_tags[field] = MetaDateTag(
            parse_location(location), DateFormat.parse(fmt)
        )
    for raw in settings.meta_delete_date_tag:
        field, location, fmt = _require(raw, "meta-delete-date-tag", 3, 2)
        ops.delete_date_tags[field] = MetaDeleteDateTag(
            parse_location(location, allow_all=True), DateFormat.parse(fmt)
        )
    return ops


def _parse_filename_date_tag(
    raw: str, option: str, allow_all: bool
) -> tuple[DateTagLocation, DateFormat]:
    parts = escaped_split(raw, ":", 1)
    if len(parts) != 2:
        raise ValueError(f"malformed {option} entry {raw!r} (expected location:format)")
    return parse_location(parts[0], allow_all), DateFormat.parse(parts[1])


def _text_replaces(values: list[str], option: str) -> list[TextReplace]:
    replaces = []
    for raw in values:
        parts = escaped_split(raw, ":", 1)
        if len(parts) != 2 or not parts[0]:
            raise ValueError(
                f"malformed {option} entry {raw!r} (expected find:replacement)"
            )
        replaces.append(TextReplace(parts[0], parts[1]))
    return replaces


def build_filename_ops(settings: "Settings") -> FilenameOps:
    """Build filename transformations from settings."""
    ops = FilenameOps(
        set_name=settings.filename_set,
        prefixes=[escaped_split(v, ":", 0)[0] for v in settings.filename_prefix],
        appends=[escaped_split(v, ":", 0)[0] for v in settings.filename_append],
        replaces=_text_replaces(settings.filename_replace, "filename-replace"),
        replace_prefixes=_text_replaces(
            settings.filename_replace_prefix, "filename-replace-prefix"
        ),
        replace_suffixes=_text_replaces(
            settings.filename_replace_suffix, "filename-replace-suffix"
        ),
        metadata_prefix_fields=list(settings.metadata_filename_prefix),
    )
    if settings.filename_date_tag:
        location, fmt = _parse_filename_date_tag(
            settings.filename_date_tag, "filename-date-tag", allow_all=False
        )
        ops.date_tag = MetaDateTag(location, fmt)
    if settings.filename_delete_date_tag:
        location, fmt = _parse_filename_date_tag(
            settings.filename_delete_date_tag,
            "filename-delete-date-tag",
            allow_all=True,
        )
        ops.delete_date_tag = MetaDeleteDateTag(location, fmt)
    return ops


def build_override_maps(settings: "Settings") -> OverrideMaps:
    """Build category overrides such as ``credits:set:Jane``."""
    overrides = OverrideMaps()
    for raw in settings.meta_override:
        parts = _require(raw, "meta-override", 3, 3)
        try:
            category = OverrideCategory(parts[0].lower())
        except ValueError:
            raise ValueError(f"unknown override category {parts[0]!r}") from None
        operation = parts[1].lower()
        if operation == "set":
            overrides.set[category] = ":".join(parts[2:])
        elif operation == "append":
            overrides.append[category] = ":".join(parts[2:])
        elif operation == "replace":
            if len(parts) != 4 or not parts[2]:
                raise ValueError(f"malformed meta-override replace entry {raw!r}")
            overrides.replace[category] = TextReplace(parts[2], parts[3])
        else:
            raise ValueError(f"unknown override operation {parts[1]!r}")
    return overrides
