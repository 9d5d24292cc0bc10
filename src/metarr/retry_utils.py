"""Retry helper for transient I/O failures.

Used for sidecar reads that can race with another writer and for thumbnail
downloads. Parse errors are never retried; a malformed sidecar fails at once.
"""

import functools
import logging
import threading
import time
from collections.abc import Callable
from typing import ParamSpec, TypeVar

from metarr.exceptions import Cancelled

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")


def retry(
    timeout: float = 3.0,
    interval: float = 0.5,
    log_interval: float = 2.0,
    exceptions: tuple[type[Exception], ...] = (OSError,),
    cancel_event: threading.Event | None = None,
) -> Callable[[Callable[P, T]], Callable[P, T]]:
    """Retry the decorated call on ``exceptions`` until ``timeout`` elapses.

    Args:
        timeout: Seconds to keep retrying
        interval: Pause between attempts
        log_interval: Minimum seconds between progress log lines
        exceptions: Exception types treated as transient
        cancel_event: Stops retrying once set; waits also wake on it

    Returns:
        Decorator

    Raises:
        Cancelled: If ``cancel_event`` is set while retrying
    """

    def decorator(func: Callable[P, T]) -> Callable[P, T]:
        @functools.wraps(func)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            deadline = time.monotonic() + timeout
            next_log = time.monotonic() + log_interval
            attempt = 0

            while True:
                attempt += 1
                try:
                    result = func(*args, **kwargs)
                except exceptions as e:
                    now = time.monotonic()
                    if now >= deadline:
                        logger.debug(f"Giving up after {attempt} attempts: {e}")
                        raise
                    if now >= next_log:
                        logger.info(f"Retrying (attempt {attempt}): {e}")
                        next_log = now + log_interval
                    if cancel_event is None:
                        time.sleep(interval)
                    elif cancel_event.wait(interval):
                        raise Cancelled("Cancelled while retrying") from e
                    continue

                if attempt > 1:
                    logger.debug(f"Retry succeeded on attempt {attempt}")
                return result

        return wrapper

    return decorator
