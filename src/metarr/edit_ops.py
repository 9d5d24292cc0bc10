"""Ordered sidecar edits and the date-tag phase.

Primary edits run as set, copy-to, paste-from, replace, replace-prefix,
replace-suffix, prefix, append. Only string values are touched. Prefix and
append are not idempotent: running them twice adds the text twice.
"""

import logging

from metarr import dates
from metarr.exceptions import TemplateError
from metarr.models import FileData, MetaOps
from metarr.prompt import OverwritePrompter, OverwriteState
from metarr.sidecar_io import lock_for
from metarr.sidecars import Sidecar
from metarr.templates import fill_template

logger = logging.getLogger(__name__)


class MetaEditor:
    """Applies a file's MetaOps to its sidecar."""

    def __init__(self, prompter: OverwritePrompter | None = None):
        self.prompter = prompter or OverwritePrompter(OverwriteState())

    def _expand(self, text: str, rw: Sidecar, fd: FileData, field: str) -> str | None:
        try:
            return fill_template(text, rw.string_fields(), fd)
        except TemplateError as e:
            logger.warning(f"Skipping edit of '{field}' in {rw.path.name}: {e}")
            return None

    def _set_fields(self, ops: MetaOps, rw: Sidecar, fd: FileData) -> bool:
        changed = False
        for op in ops.set_fields:
            value = self._expand(op.value, rw, fd, op.field)
            if value is None:
                continue
            current = rw.get(op.field)
            if current == value:
                continue
            if current and not self.prompter.should_overwrite(
                rw.path.name, op.field, current, value
            ):
                logger.debug(f"Keeping existing '{op.field}' in {rw.path.name}")
                continue
            rw.set(op.field, value)
            changed = True
        return changed

    def _copy_fields(self, ops: MetaOps, rw: Sidecar) -> bool:
        changed = False
        for op in ops.copy_to:
            value = rw.get(op.field)
            if value is None:
                logger.debug(f"Nothing to copy from '{op.field}' in {rw.path.name}")
                continue
            if rw.get(op.dest) != value:
                rw.set(op.dest, value)
                changed = True
        for op in ops.paste_from:
            value = rw.get(op.origin)
            if value is None:
                logger.debug(f"Nothing to paste from '{op.origin}' in {rw.path.name}")
                continue
            if rw.get(op.field) != value:
                rw.set(op.field, value)
                changed = True
        return changed

    def _rewrite(self, rw: Sidecar, field: str, new: str, old: str) -> bool:
        if new == old:
            return False
        rw.set(field, new)
        return True

    def _text_edits(self, ops: MetaOps, rw: Sidecar, fd: FileData) -> bool:
        changed = False

        for op in ops.replaces:
            current = rw.get(op.field)
            replacement = self._expand(op.replacement, rw, fd, op.field)
            if not current or replacement is None:
                continue
            changed |= self._rewrite(
                rw, op.field, current.replace(op.find, replacement), current
            )

        for op in ops.replace_prefixes:
            current = rw.get(op.field)
            prefix = self._expand(op.prefix, rw, fd, op.field)
            replacement = self._expand(op.replacement, rw, fd, op.field)
            if not current or prefix is None or replacement is None:
                continue
            if prefix and current.startswith(prefix):
                new = replacement + current[len(prefix) :]
                changed |= self._rewrite(rw, op.field, new, current)

        for op in ops.replace_suffixes:
            current = rw.get(op.field)
            suffix = self._expand(op.suffix, rw, fd, op.field)
            replacement = self._expand(op.replacement, rw, fd, op.field)
            if not current or suffix is None or replacement is None:
                continue
            if suffix and current.endswith(suffix):
                new = current[: -len(suffix)] + replacement
                changed |= self._rewrite(rw, op.field, new, current)

        for op in ops.prefixes:
            current = rw.get(op.field)
            prefix = self._expand(op.prefix, rw, fd, op.field)
            if current is None or prefix is None:
                continue
            changed |= self._rewrite(rw, op.field, prefix + current, current)

        for op in ops.appends:
            current = rw.get(op.field)
            suffix = self._expand(op.suffix, rw, fd, op.field)
            if current is None or suffix is None:
                continue
            changed |= self._rewrite(rw, op.field, current + suffix, current)

        return changed

    def apply_meta_edits(self, fd: FileData, rw: Sidecar) -> bool:
        """Run the primary edit sequence and write the sidecar if it changed.

        The sidecar lock is held from the re-read until the write completes.

        Returns:
            True if the sidecar was rewritten

        Raises:
            Cancelled: If cancellation arrives before the write
            SidecarIOError: If the sidecar cannot be read or written
        """
        ops = fd.meta_ops
        if not ops.has_primary_edits():
            return False

        with lock_for(rw.path):
            rw.refresh()
            changed = self._set_fields(ops, rw, fd)
            changed |= self._copy_fields(ops, rw)
            changed |= self._text_edits(ops, rw, fd)
            if changed:
                rw.write()
                logger.info(f"Applied metadata edits to {rw.path.name}")
        return changed

    def apply_date_tags(self, fd: FileData, rw: Sidecar) -> bool:
        """Delete then add date tags on the configured fields.

        Runs after the primary edits and re-reads the sidecar first so it
        sees their result.

        Returns:
            True if the sidecar was rewritten
        """
        ops = fd.meta_ops
        if not ops.date_tags and not ops.delete_date_tags:
            return False

        with lock_for(rw.path):
            rw.refresh()
            changed = False

            for field, delete_op in ops.delete_date_tags.items():
                current = rw.get(field)
                if not current:
                    continue
                new = dates.strip_date_tags(
                    current, delete_op.location, delete_op.format
                )
                changed |= self._rewrite(rw, field, new, current)

            fields = rw.string_fields()
            for field, tag_op in ops.date_tags.items():
                current = rw.get(field)
                if current is None:
                    logger.debug(f"No '{field}' in {rw.path.name} to date tag")
                    continue
                tag = dates.make_date_tag(fields, fd, tag_op.format)
                if not tag:
                    continue
                new = dates.add_date_tag(current, tag, tag_op.location)
                changed |= self._rewrite(rw, field, new, current)

            if changed:
                rw.write()
                logger.info(f"Updated date tags in {rw.path.name}")
        return changed
