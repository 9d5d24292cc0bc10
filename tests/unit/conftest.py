"""Unit test specific configuration and fixtures."""

import os
import threading
import time
from collections.abc import Callable, Generator
from typing import Any
from unittest.mock import patch

import pytest

import metarr.thumbnails
from metarr import filename_ops
from metarr.json_rw import JsonRw
from metarr.nfo_rw import NfoRw


@pytest.fixture(autouse=True)
def patch_time_sleep() -> Generator[None, None, None]:
    """Patch time.sleep to be instant for retry logic, but preserve test timing.

    This speeds up retry logic while allowing tests that need real timing to work.
    """
    original_sleep = time.sleep

    def selective_sleep(duration: float) -> None:
        # Allow short sleeps used in test timing logic
        if duration >= 0.05:  # 50ms or more, likely test timing
            return original_sleep(duration)
        # Make very short sleeps (retry intervals) instant
        return None

    with patch.object(time, "sleep", side_effect=selective_sleep):
        yield


@pytest.fixture(autouse=True)
def patch_decode_timeout() -> Generator[None, None, None]:
    """Shorten sidecar decode retries so failure cases finish quickly."""
    with (
        patch.object(JsonRw.__init__, "__defaults__", (False, None, 0.1)),
        patch.object(NfoRw.__init__, "__defaults__", (False, None, 0.1)),
    ):
        yield


@pytest.fixture(autouse=True)
def patch_thumbnail_retry() -> Generator[None, None, None]:
    """Patch retry decorator in the thumbnail fetcher to use a minimal timeout."""
    original_retry = metarr.thumbnails.retry

    def fast_retry(
        timeout: float = 15.0,
        interval: float = 0.5,
        log_interval: float = 2.0,
        exceptions: tuple[type[Exception], ...] = (OSError,),
        cancel_event: threading.Event | None = None,
    ) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
        """Fast retry for tests with minimal timeout."""
        return original_retry(
            timeout=0.1,
            interval=0.01,
            log_interval=0.05,
            exceptions=exceptions,
            cancel_event=cancel_event,
        )

    with patch.object(metarr.thumbnails, "retry", fast_retry):
        yield


@pytest.fixture(autouse=True)
def reset_reserved_names() -> Generator[None, None, None]:
    """Forget filenames handed out by earlier tests."""
    filename_ops._reserved_names.clear()
    yield
    filename_ops._reserved_names.clear()


@pytest.fixture(autouse=True)
def clean_environment() -> Generator[None, None, None]:
    """Keep METARR_* variables from the host out of Settings."""
    env = {k: v for k, v in os.environ.items() if not k.startswith("METARR_")}
    with patch.dict(os.environ, env, clear=True):
        yield
