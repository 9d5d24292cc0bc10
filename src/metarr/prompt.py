"""Interactive overwrite decisions for existing sidecar fields."""

import logging
import threading
from collections.abc import Callable

import click

from metarr.exceptions import Cancelled

logger = logging.getLogger(__name__)

ANSWERS = ("y", "Y", "n", "N")


def click_prompt(text: str) -> str:
    return click.prompt(
        text, type=click.Choice(ANSWERS, case_sensitive=True), show_choices=True
    )


class OverwriteState:
    """Run-wide overwrite/preserve decision.

    Starts from the configured flags and is updated when the user answers
    ``Y`` or ``N`` at a prompt.
    """

    def __init__(self, overwrite: bool = False, preserve: bool = False):
        self._lock = threading.Lock()
        self._overwrite = overwrite
        self._preserve = preserve

    @property
    def overwrite(self) -> bool:
        with self._lock:
            return self._overwrite

    @property
    def preserve(self) -> bool:
        with self._lock:
            return self._preserve

    def set_overwrite(self) -> None:
        with self._lock:
            self._overwrite = True
            self._preserve = False

    def set_preserve(self) -> None:
        with self._lock:
            self._preserve = True
            self._overwrite = False


class OverwritePrompter:
    """Asks whether an existing field value should be replaced.

    Only one prompt is shown at a time; workers queue on the prompt lock and
    re-check the global state once they get it, so a ``Y``/``N`` answer
    from another worker is honoured without asking again.
    """

    def __init__(
        self,
        state: OverwriteState,
        cancel_event: threading.Event | None = None,
        prompt_func: Callable[[str], str] | None = None,
    ):
        self.state = state
        self.cancel_event = cancel_event
        self.prompt_func = prompt_func or click_prompt
        self._prompt_lock = threading.Lock()

    def _check_cancelled(self) -> None:
        if self.cancel_event is not None and self.cancel_event.is_set():
            raise Cancelled("Cancelled while waiting for an overwrite decision")

    def should_overwrite(
        self, file_name: str, field: str, current: str, new: str
    ) -> bool:
        """Decide whether ``field`` in ``file_name`` gets the new value.

        Raises:
            Cancelled: If cancellation is requested or the prompt is aborted
        """
        if self.state.overwrite:
            return True
        if self.state.preserve:
            return False

        with self._prompt_lock:
            if self.state.overwrite:
                return True
            if self.state.preserve:
                return False
            self._check_cancelled()

            question = (
                f"{file_name}: field '{field}' already contains {current!r}. "
                f"Overwrite with {new!r}? (y = yes, Y = yes to all, "
                f"n = no, N = no to all)"
            )
            while True:
                try:
                    answer = self.prompt_func(question).strip()
                except (click.Abort, EOFError, KeyboardInterrupt) as e:
                    raise Cancelled("Overwrite prompt aborted") from e
                self._check_cancelled()

                if answer == "y":
                    return True
                if answer == "Y":
                    logger.info("Overwriting existing fields for the rest of the run")
                    self.state.set_overwrite()
                    return True
                if answer == "n":
                    return False
                if answer == "N":
                    logger.info("Preserving existing fields for the rest of the run")
                    self.state.set_preserve()
                    return False
                logger.warning(f"Unrecognised answer {answer!r}, expected y/Y/n/N")
