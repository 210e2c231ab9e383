"""Registry of the supported log formats."""

from __future__ import annotations

import sys
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from .config import DEFAULT_LOG_FORMAT, JSON_LOG_FORMAT
from .features import LOGGING_BETA_OPTIONS, LOGGING_STABLE_OPTIONS, feature_gates


@dataclass
class RuntimeControl:
    """Operations on a logger that the logger itself does not offer.

    Either may be None.
    """

    flush: Optional[Callable[[], None]] = None
    set_verbosity_level: Optional[Callable[[int], None]] = None


@dataclass
class LoggingOptions:
    """Output streams for the loggers that factories create."""

    error_stream: Any = field(default_factory=lambda: sys.stderr)
    info_stream: Any = field(default_factory=lambda: sys.stdout)


@dataclass(frozen=True)
class LogFormat:
    """A factory for a log format and the feature that gates it."""

    factory: Any
    feature: str


class LogFormatRegistry:
    """Stores the factories of all supported log formats; "text" is always present."""

    def __init__(self) -> None:
        from .text import TextFactory

        self._lock = threading.Lock()
        self._formats: dict[str, LogFormat] = {}
        self._frozen = False
        self.register(DEFAULT_LOG_FORMAT, LogFormat(TextFactory(), LOGGING_STABLE_OPTIONS))

    def register(self, name: str, log_format: LogFormat) -> None:
        """Add a new log format; existing ones cannot be changed."""
        with self._lock:
            if self._frozen:
                raise ValueError(f"log format registry is frozen, unable to register log format {name}")
            if name in self._formats:
                raise ValueError(f"log format: {name} already exists")
            if log_format.feature not in feature_gates() and log_format.feature != LOGGING_STABLE_OPTIONS:
                raise ValueError(f"log format {name}: unsupported feature gate {log_format.feature}")
            self._formats[name] = log_format

    def get(self, name: str) -> LogFormat:
        with self._lock:
            try:
                return self._formats[name]
            except KeyError:
                raise ValueError(f"log format: {name} does not exists") from None

    def list(self) -> str:
        """Return the sorted, quoted format names with their gates."""
        with self._lock:
            items = []
            for name, log_format in self._formats.items():
                item = f'"{name}"'
                if log_format.feature != LOGGING_STABLE_OPTIONS:
                    item += f" (gated by {log_format.feature})"
                items.append(item)
        return ", ".join(sorted(items))

    def freeze(self) -> None:
        """Prevent further registrations."""
        with self._lock:
            self._frozen = True


_default_lock = threading.Lock()
_default: Optional[LogFormatRegistry] = None


def default_registry() -> LogFormatRegistry:
    """Return the process-wide registry."""
    global _default
    with _default_lock:
        if _default is None:
            _default = LogFormatRegistry()
        return _default


def register_log_format(name: str, factory: Any, feature: str) -> None:
    """Register a new format in the process-wide registry."""
    default_registry().register(name, LogFormat(factory, feature))


def register_json_format() -> None:
    """Make the JSON format available in the process-wide registry."""
    from .jsonlog import JSONFactory

    registry = default_registry()
    try:
        existing = registry.get(JSON_LOG_FORMAT)
    except ValueError:
        registry.register(JSON_LOG_FORMAT, LogFormat(JSONFactory(), LOGGING_BETA_OPTIONS))
        return
    if not isinstance(existing.factory, JSONFactory):
        raise ValueError(f"log format: {JSON_LOG_FORMAT} already exists")