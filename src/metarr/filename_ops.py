"""Renaming, relocation and purging once a video has been processed."""

import logging
import re
import threading
from pathlib import Path

from metarr import dates
from metarr.backup_utils import move_or_copy_file
from metarr.config import Settings
from metarr.exceptions import TemplateError
from metarr.file_utils import sidecar_base, sidecar_kind
from metarr.models import DateFormat, DateTagLocation, FileData, FilenameOps
from metarr.templates import fill_template

logger = logging.getLogger(__name__)

# Contractions mangled by restrict-filenames downloads, keyed in spaced form
CONTRACTIONS: dict[str, str] = {
    "aren t": "aren't",
    "can t": "can't",
    "couldn t": "couldn't",
    "didn t": "didn't",
    "doesn t": "doesn't",
    "don t": "don't",
    "hadn t": "hadn't",
    "hasn t": "hasn't",
    "haven t": "haven't",
    "i ll": "i'll",
    "i m": "i'm",
    "i ve": "i've",
    "isn t": "isn't",
    "it s": "it's",
    "let s": "let's",
    "shouldn t": "shouldn't",
    "that s": "that's",
    "there s": "there's",
    "they re": "they're",
    "wasn t": "wasn't",
    "we re": "we're",
    "weren t": "weren't",
    "what s": "what's",
    "won t": "won't",
    "wouldn t": "wouldn't",
    "you re": "you're",
    "you ve": "you've",
}

# A lone "s" split off by a mangled apostrophe, followed by punctuation or the end
_LONE_S = {
    "spaces": re.compile(r" s(?=[\s.\[\]()\-_,!'&=;#@$%+{}]|$)"),
    "underscores": re.compile(r"_s(?=[\s.\[\]()\-_,!'&=;#@$%+{}]|$)"),
}

_SEPARATOR_RUNS = re.compile(r"([ _])\1+")

_name_lock = threading.Lock()
_reserved_names: set[Path] = set()


def apply_rename_style(name: str, style: str) -> str:
    if style == "spaces":
        return name.replace("_", " ")
    if style == "underscores":
        return name.replace(" ", "_")
    return name


def _match_case(original: str, replacement: str) -> str:
    return "".join(
        char.upper() if i < len(original) and original[i].isupper() else char
        for i, char in enumerate(replacement)
    )


def fix_contractions(name: str, style: str) -> str:
    """Repair ``don t``/``don_t`` style contractions and lone ``s`` suffixes."""
    if style == "skip":
        return name

    separators = {"spaces": (" ",), "underscores": ("_",)}.get(style, (" ", "_"))
    for sep in separators:
        pattern = _LONE_S["spaces" if sep == " " else "underscores"]
        name = pattern.sub("s", name)
        for contraction, replacement in CONTRACTIONS.items():
            word = re.compile(
                rf"(?<![^\W_]){re.escape(contraction.replace(' ', sep))}(?![^\W_])",
                re.IGNORECASE,
            )
            name = word.sub(lambda m: _match_case(m.group(0), replacement), name)
    return _SEPARATOR_RUNS.sub(r"\1", name).strip()


def metadata_prefix_tag(fields: dict[str, str], names: list[str]) -> str:
    """Build ``[v1_v2]`` from the sidecar values of ``names``."""
    values = [fields[name].strip() for name in names if fields.get(name, "").strip()]
    return f"[{'_'.join(values)}]" if values else ""


def unique_stem(directory: Path, stem: str, ext: str, current: Path | None) -> str:
    """Return ``stem`` or ``stem (n)`` so no other file is overwritten.

    Names handed out are reserved for the rest of the run so two workers
    cannot pick the same target.
    """
    with _name_lock:
        candidate = stem
        counter = 0
        while True:
            target = directory / f"{candidate}{ext}"
            if target == current or (
                not target.exists() and target not in _reserved_names
            ):
                _reserved_names.add(target)
                return candidate
            counter += 1
            candidate = f"{stem} ({counter})"


class FileRenamer:
    """Applies filename operations, output relocation and sidecar purging."""

    def __init__(self, settings: Settings, ops: FilenameOps):
        self.settings = settings
        self.ops = ops

    def _expand(self, text: str, fields: dict[str, str], fd: FileData) -> str | None:
        try:
            return fill_template(text, fields, fd)
        except TemplateError as e:
            logger.warning(f"Skipping filename operation for {fd.video_path.name}: {e}")
            return None

    def construct_name(self, base: str, fd: FileData, fields: dict[str, str]) -> str:
        """Return the new base name (without extension) for ``base``."""
        ops = self.ops
        style = self.settings.rename_style
        name = base

        delete_tag = ops.delete_date_tag
        if delete_tag is not None and delete_tag.format is not DateFormat.SKIP:
            name = dates.strip_date_tags(
                name, delete_tag.location, delete_tag.format
            )

        if ops.set_name:
            value = self._expand(ops.set_name, fields, fd)
            if value:
                name = value

        for rep in ops.replaces:
            replacement = self._expand(rep.replacement, fields, fd)
            if replacement is not None:
                name = name.replace(rep.find, replacement)

        for rep in ops.replace_prefixes:
            replacement = self._expand(rep.replacement, fields, fd)
            if replacement is not None and name.startswith(rep.find):
                name = replacement + name[len(rep.find) :]
                break

        for rep in ops.replace_suffixes:
            replacement = self._expand(rep.replacement, fields, fd)
            if replacement is not None and name.endswith(rep.find):
                name = name[: -len(rep.find)] + replacement
                break

        name = apply_rename_style(name, style)

        for prefix in ops.prefixes:
            value = self._expand(prefix, fields, fd)
            if value is not None:
                name = value + name
        for suffix in ops.appends:
            value = self._expand(suffix, fields, fd)
            if value is not None:
                name = name + value

        if ops.metadata_prefix_fields:
            tag = metadata_prefix_tag(fields, ops.metadata_prefix_fields)
            if tag and not name.startswith(tag):
                name = f"{tag} {name}"

        if ops.date_tag is not None:
            tag = dates.make_date_tag(fields, fd, ops.date_tag.format)
            if tag and tag not in name:
                if ops.date_tag.location is DateTagLocation.PREFIX:
                    name = f"{tag} {name}"
                else:
                    name = f"{name} {tag}"

        return fix_contractions(name, style).strip() or base

    def _should_purge(self, sidecar_path: Path) -> bool:
        purge = self.settings.meta_purge
        if purge == "none":
            return False
        kind = sidecar_kind(sidecar_path)
        return purge == "all" or (kind is not None and kind.value == purge)

    def finalize(
        self,
        fd: FileData,
        video_path: Path | None,
        sidecar_path: Path,
        fields: dict[str, str],
    ) -> tuple[Path | None, Path | None]:
        """Rename, purge and relocate a processed pair.

        Args:
            fd: Populated record
            video_path: Processed video (None in metadata-only runs)
            sidecar_path: Its sidecar
            fields: Sidecar string fields for templates and prefix tags

        Returns:
            Final (video, sidecar) paths; the sidecar is None once purged

        Raises:
            HashMismatchError: If relocating a file fails verification
            OSError: If a rename or delete fails
        """
        rename = not self.ops.is_empty() or self.settings.rename_style != "skip"

        final_video = video_path
        final_sidecar: Path | None = sidecar_path
        if rename:
            meta_base = sidecar_base(
                sidecar_path.name, video_path.stem if video_path is not None else ""
            )
            source_base = video_path.stem if video_path is not None else meta_base
            new_base = self.construct_name(source_base, fd, fields)

            if video_path is not None:
                new_base = unique_stem(
                    video_path.parent, new_base, video_path.suffix, video_path
                )
                final_video = video_path.with_name(f"{new_base}{video_path.suffix}")
                if final_video != video_path:
                    video_path.rename(final_video)
                    logger.info(f"Renamed {video_path.name} to {final_video.name}")

            sidecar_suffix = sidecar_path.name[len(meta_base) :]
            final_sidecar = sidecar_path.with_name(f"{new_base}{sidecar_suffix}")
            if final_sidecar != sidecar_path:
                sidecar_path.rename(final_sidecar)
                logger.info(f"Renamed {sidecar_path.name} to {final_sidecar.name}")

        fd.renamed_video_path = final_video
        fd.renamed_sidecar_path = final_sidecar

        if final_sidecar is not None and self._should_purge(final_sidecar):
            final_sidecar.unlink()
            logger.info(f"Purged sidecar {final_sidecar.name}")
            final_sidecar = None

        output_dir = self.settings.output_dir
        if output_dir is not None:
            output_dir.mkdir(parents=True, exist_ok=True)
            if final_video is not None:
                target = output_dir / final_video.name
                move_or_copy_file(final_video, target)
                final_video = target
            if final_sidecar is not None:
                target = output_dir / final_sidecar.name
                move_or_copy_file(final_sidecar, target)
                final_sidecar = target
            logger.info(f"Moved results for {fd.video_path.name} to {output_dir}")

        return final_video, final_sidecar
