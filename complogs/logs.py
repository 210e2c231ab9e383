"""Logging setup for commands: flags, standard library bridging and runtime verbosity."""

from __future__ import annotations

import argparse
import json
import logging
from typing import Any, Callable, Optional

from . import klog
from .config import parse_duration
from .options import LOG_FLUSH_FREQ_DEFAULT, LOG_FLUSH_FREQ_FLAG_NAME

_VMODULE_USAGE = " (only works for the default text log format)"
_MAX_UINT32 = 2**32 - 1
_MAX_INT32 = 2**31 - 1

# Maximum time between log flushes in nanoseconds, set through add_flags.
_log_flush_frequency = LOG_FLUSH_FREQ_DEFAULT


def _quote(text: str) -> str:
    return json.dumps(text, ensure_ascii=False)


class KlogWriter:
    """A writable stream that sends everything written to it to the klog logger."""

    def write(self, data: Any) -> int:
        if isinstance(data, (bytes, bytearray)):
            text = bytes(data).decode("utf-8", errors="replace")
        else:
            text = str(data)
        klog.background().info(text.rstrip("\n"))
        return len(data)

    def flush(self) -> None:
        """Write out whatever the klog logger still holds."""
        klog.flush()


class _KlogHandler(logging.Handler):
    """Forwards standard library log records to the klog logger."""

    def __init__(self, prefix: str = "") -> None:
        super().__init__(logging.NOTSET)
        self._prefix = prefix
        self._writer = KlogWriter()

    def emit(self, record: logging.LogRecord) -> None:
        try:
            self._writer.write(self._prefix + self.format(record))
        except Exception:
            self.handleError(record)


class _FlagAction(argparse.Action):
    """Applies a parsed option value through a setter."""

    def __init__(self, option_strings, dest, setter, **kwargs):
        super().__init__(option_strings, dest, **kwargs)
        self._setter = setter

    def __call__(self, parser, namespace, values, option_string=None):
        try:
            result = self._setter(values)
        except ValueError as exc:
            raise argparse.ArgumentError(self, str(exc)) from None
        setattr(namespace, self.dest, result)


def _set_verbosity(value: str) -> Any:
    klog.set_verbosity(value)
    return klog.get_verbosity()


def _set_vmodule(value: str) -> Any:
    klog.set_vmodule(value)
    return klog.get_vmodule()


def _set_flush_frequency(value: str) -> int:
    global _log_flush_frequency
    _log_flush_frequency = parse_duration(value)
    return _log_flush_frequency


def _add_flag(
    parser: argparse.ArgumentParser,
    names: tuple[str, ...],
    dest: str,
    setter: Callable[[str], Any],
    metavar: str,
    usage: str,
) -> None:
    try:
        parser.add_argument(
            *names, dest=dest, action=_FlagAction, setter=setter,
            default=argparse.SUPPRESS, metavar=metavar, help=usage,
        )
    except argparse.ArgumentError:
        # Already present, e.g. when called more than once.
        pass


def add_flags(parser: argparse.ArgumentParser, skip_logging_configuration_flags: bool = False) -> None:
    """Add the logging flags -v, --vmodule and --log-flush-frequency to ``parser``.

    With ``skip_logging_configuration_flags`` the flags that a logging
    configuration also covers are left out. May be called more than once.
    """
    if skip_logging_configuration_flags:
        # Every flag of this module is covered by the logging configuration.
        return
    _add_flag(parser, ("-v", "--v"), "v", _set_verbosity, "Level",
              "number for the log level verbosity")
    _add_flag(parser, ("--vmodule",), "vmodule", _set_vmodule, "pattern=N,...",
              "comma-separated list of pattern=N settings for file-filtered logging" + _VMODULE_USAGE)
    _add_flag(parser, (f"--{LOG_FLUSH_FREQ_FLAG_NAME}",), "log_flush_frequency",
              _set_flush_frequency, "duration",
              "Maximum number of seconds between log flushes (default 5s)")


def init_logs() -> None:
    """Route standard library logging into klog and start periodic flushing.

    Contextual logging is disabled; applying a logging configuration
    afterwards decides about it again.
    """
    root = logging.getLogger()
    for handler in list(root.handlers):
        if isinstance(handler, _KlogHandler):
            root.removeHandler(handler)
    root.addHandler(_KlogHandler())
    klog.start_flush_daemon(_log_flush_frequency / 1e9)
    klog.enable_contextual_logging(False)


def flush_logs() -> None:
    """Write out all pending log messages."""
    klog.flush()


def new_logger(prefix: str = "") -> logging.Logger:
    """Return a standard library logger whose records go to klog, each prefixed."""
    logger = logging.Logger(f"klog{'.' + prefix if prefix else ''}", logging.DEBUG)
    logger.propagate = False
    logger.addHandler(_KlogHandler(prefix))
    return logger


def _parse_uint32(value: str) -> int:
    if not value or not value.isascii() or not value.isdigit():
        raise ValueError(f"strconv.ParseUint: parsing {_quote(value)}: invalid syntax")
    level = int(value)
    if level > _MAX_UINT32:
        raise ValueError(f"strconv.ParseUint: parsing {_quote(value)}: value out of range")
    return level


def glog_setter(value: str) -> str:
    """Change the verbosity threshold of the whole program at runtime."""
    level = _parse_uint32(value)
    if level > _MAX_INT32:
        raise ValueError(
            f"failed set klog.logging.verbosity {value}: "
            f"strconv.ParseInt: parsing {_quote(value)}: value out of range"
        )
    try:
        klog.set_verbosity(value)
    except ValueError as exc:
        raise ValueError(f"failed set klog.logging.verbosity {value}: {exc}") from exc
    for callback in klog.verbosity_callbacks():
        callback(level)
    return f"successfully set klog.logging.verbosity to {value}"