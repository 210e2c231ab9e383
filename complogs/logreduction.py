"""Suppression of identical consecutive log messages."""

from __future__ import annotations

import threading
import time
from datetime import timedelta
from typing import Callable


class LogReduction:
    """Prints a message no more than once per interval for each parent.

    A different message for the same parent resets the interval.
    """

    def __init__(
        self,
        identical_error_delay: float | timedelta,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if isinstance(identical_error_delay, timedelta):
            identical_error_delay = identical_error_delay.total_seconds()
        self._delay = float(identical_error_delay)
        self._clock = clock
        self._last_error: dict[str, str] = {}
        self._error_printed: dict[str, float] = {}
        self._lock = threading.Lock()

    def _cleanup_error_timeouts(self) -> None:
        now = self._clock()
        expired = [
            name for name, printed in self._error_printed.items()
            if now - printed >= self._delay
        ]
        for name in expired:
            del self._error_printed[name]
            self._last_error.pop(name, None)

    def should_message_be_printed(self, message: str, parent_id: str) -> bool:
        """Return True if ``message`` for ``parent_id`` should be printed now."""
        with self._lock:
            self._cleanup_error_timeouts()
            if (
                parent_id not in self._last_error
                or parent_id not in self._error_printed
                or message != self._last_error[parent_id]
                or self._clock() - self._error_printed[parent_id] >= self._delay
            ):
                self._error_printed[parent_id] = self._clock()
                self._last_error[parent_id] = message
                return True
            return False

    def clear_id(self, parent_id: str) -> None:
        """Forget everything recorded for ``parent_id``."""
        with self._lock:
            self._last_error.pop(parent_id, None)
            self._error_printed.pop(parent_id, None)