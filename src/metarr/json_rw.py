"""JSON sidecar reader/writer.

Only string values are read or produced by the metadata pipeline; values of
any other type are carried through a decode/write cycle untouched.
"""

import json
import logging
import threading
from pathlib import Path
from typing import Any, BinaryIO

from metarr.exceptions import SidecarIOError
from metarr.models import SidecarKind
from metarr.retry_utils import retry
from metarr.sidecar_io import lock_for, write_buffer

logger = logging.getLogger(__name__)


class JsonRw:
    """Load, mutate and persist a JSON sidecar."""

    kind = SidecarKind.JSON

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
        self.data: dict[str, Any] = {}
        self._handle: BinaryIO | None = None

    def __enter__(self) -> "JsonRw":
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

    def decode(self) -> dict[str, Any]:
        """Read and parse the sidecar, retrying transient read failures.

        Returns:
            The decoded key/value map

        Raises:
            SidecarIOError: If the file cannot be read or is not a JSON object
        """
        self.open()

        @retry(
            timeout=self.decode_timeout,
            interval=0.5,
            log_interval=2.0,
            exceptions=(OSError,),
            cancel_event=self.cancel_event,
        )
        def read_file() -> Any:
            assert self._handle is not None
            self._handle.seek(0)
            raw = self._handle.read()
            return json.loads(raw.decode("utf-8")) if raw.strip() else {}

        with lock_for(self.path):
            try:
                decoded = read_file()
            except (json.JSONDecodeError, OSError, UnicodeDecodeError) as e:
                raise SidecarIOError(f"Failed to decode {self.path}: {e}") from e

        if not isinstance(decoded, dict):
            raise SidecarIOError(f"{self.path} does not contain a JSON object")
        self.data = decoded
        logger.debug(f"Decoded {len(self.data)} keys from {self.path.name}")
        return self.data

    def refresh(self) -> dict[str, Any]:
        """Reload the map from disk after another writer may have changed it."""
        return self.decode()

    def get(self, field: str) -> str | None:
        """Return a string value, or None when absent or not a string."""
        value = self.data.get(field)
        return value if isinstance(value, str) else None

    def has(self, field: str) -> bool:
        return field in self.data

    def set(self, field: str, value: str) -> None:
        self.data[field] = value

    def string_fields(self) -> dict[str, str]:
        """Return every non-empty string value (template lookup table)."""
        return {k: v for k, v in self.data.items() if isinstance(v, str) and v}

    def serialize(self) -> bytes:
        return (json.dumps(self.data, indent=2, ensure_ascii=False) + "\n").encode(
            "utf-8"
        )

    def write(self) -> None:
        """Serialize the current map and replace the file contents."""
        self.open()
        assert self._handle is not None
        write_buffer(
            self._handle,
            self.serialize(),
            self.path,
            no_file_overwrite=self.no_file_overwrite,
            cancel_event=self.cancel_event,
        )

    def write_fields(self, values: dict[str, str]) -> bool:
        """Add non-empty values for keys that are absent or empty, then write.

        Args:
            values: Candidate key/value pairs

        Returns:
            True if anything was written
        """
        changed = False
        for key, value in values.items():
            if not value:
                continue
            current = self.data.get(key)
            if current is None or current == "":
                self.data[key] = value
                changed = True
        if changed:
            self.write()
        return changed
