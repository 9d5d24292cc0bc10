"""Sidecar variants and their construction."""

import threading
from pathlib import Path

from metarr.exceptions import SidecarIOError
from metarr.file_utils import sidecar_kind
from metarr.json_rw import JsonRw
from metarr.models import SidecarKind
from metarr.nfo_rw import NfoRw

Sidecar = JsonRw | NfoRw


def open_sidecar(
    path: Path,
    no_file_overwrite: bool = False,
    cancel_event: threading.Event | None = None,
) -> Sidecar:
    """Create the reader/writer matching a sidecar's extension.

    Raises:
        SidecarIOError: If the extension is not a known sidecar format
    """
    kind = sidecar_kind(path)
    if kind is SidecarKind.JSON:
        return JsonRw(path, no_file_overwrite, cancel_event)
    if kind is SidecarKind.NFO:
        return NfoRw(path, no_file_overwrite, cancel_event)
    raise SidecarIOError(f"Unsupported sidecar format: {path.name}")
