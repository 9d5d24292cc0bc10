"""System resource gate consulted before each file is processed."""

import logging
import threading

import psutil

from metarr.exceptions import Cancelled

logger = logging.getLogger(__name__)

BACKOFF_START = 1.0
BACKOFF_CAP = 10.0
NEVER_BLOCK_CPU = 101.0

_MIB = 1024 * 1024


class ResourceGate:
    """Blocks workers while free memory or CPU headroom is too low.

    Args:
        min_free_mem_mb: Required available RAM in MiB (0 disables the check)
        max_cpu: Highest acceptable CPU percentage (101 never blocks)
        cancel_event: Ends the wait with Cancelled when set
    """

    def __init__(
        self,
        min_free_mem_mb: int = 0,
        max_cpu: float = NEVER_BLOCK_CPU,
        cancel_event: threading.Event | None = None,
    ):
        self.min_free_bytes = min_free_mem_mb * _MIB
        self.max_cpu = max_cpu
        self.cancel_event = cancel_event or threading.Event()

    def _available(self) -> tuple[bool, str]:
        if self.min_free_bytes > 0:
            available = psutil.virtual_memory().available
            if available < self.min_free_bytes:
                return False, (
                    f"{available // _MIB} MiB free, "
                    f"need {self.min_free_bytes // _MIB} MiB"
                )
        if self.max_cpu < NEVER_BLOCK_CPU:
            cpu = psutil.cpu_percent(interval=None)
            if cpu > self.max_cpu:
                return False, f"CPU at {cpu:.0f}%, limit {self.max_cpu:.0f}%"
        return True, ""

    def wait(self, name: str = "") -> None:
        """Return once resources are available.

        Raises:
            Cancelled: If cancellation is requested while waiting
        """
        delay = BACKOFF_START
        logged = False
        while True:
            if self.cancel_event.is_set():
                message = f"Cancelled while waiting for resources {name}"
                raise Cancelled(message.rstrip())
            ok, reason = self._available()
            if ok:
                if logged:
                    logger.info(f"Resources available again, resuming {name}".rstrip())
                return
            if not logged:
                logger.info(f"Waiting for resources ({reason}) {name}".rstrip())
                logged = True
            self.cancel_event.wait(delay)
            delay = min(delay * 2, BACKOFF_CAP)
