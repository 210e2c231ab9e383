"""Process-wide logging state: verbosity, vmodule, the global logger and the text sink."""

from __future__ import annotations

import argparse
import dataclasses
import fnmatch
import inspect
import json
import os
import re
import sys
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Iterable, Optional

_PACKAGE_DIR = os.path.dirname(os.path.abspath(__file__)) + os.sep
_INT32_MIN = -(2**31)
_INT32_MAX = 2**31 - 1
_VMODULE_SYNTAX = "syntax error: expect comma-separated list of filename=N"
_INTEGER = re.compile(r"[+-]?[0-9]+")

VModule = tuple[tuple[str, int], ...]


def _parse_level(value: Any) -> int:
    if isinstance(value, bool):
        raise ValueError(f"invalid verbosity {value!r}")
    if isinstance(value, int):
        level = value
    else:
        text = str(value)
        if not _INTEGER.fullmatch(text):
            raise ValueError(f"invalid verbosity {text!r}")
        level = int(text)
    if not _INT32_MIN <= level <= _INT32_MAX:
        raise ValueError(f"verbosity {value!r} is out of range")
    return level


def _parse_vmodule(spec: str) -> VModule:
    items = []
    for pattern in spec.split(","):
        if not pattern:
            continue
        parts = pattern.split("=")
        if len(parts) != 2 or not parts[0] or not parts[1]:
            raise ValueError(_VMODULE_SYNTAX)
        try:
            level = _parse_level(parts[1])
        except ValueError:
            raise ValueError(_VMODULE_SYNTAX) from None
        items.append((parts[0], level))
    return tuple(items)


def _format_vmodule(vmodule: VModule) -> str:
    return ",".join(f"{pattern}={level}" for pattern, level in vmodule)


def _caller() -> tuple[str, int]:
    """Return file and line of the first frame outside this package."""
    frame = inspect.currentframe()
    while frame is not None and os.path.abspath(frame.f_code.co_filename).startswith(_PACKAGE_DIR):
        frame = frame.f_back
    if frame is None:
        return "???", 0
    return frame.f_code.co_filename, frame.f_lineno


def _vmodule_level(vmodule: VModule, filename: str) -> Optional[int]:
    base = filename[:-3] if filename.endswith(".py") else filename
    for pattern, level in vmodule:
        target = base if "/" in pattern else os.path.basename(base)
        if fnmatch.fnmatchcase(target, pattern):
            return level
    return None


@dataclass
class _State:
    verbosity: int = 0
    vmodule: VModule = ()
    logger: Optional["Logger"] = None
    flush: Optional[Callable[[], None]] = None
    contextual_logger: bool = True
    contextual_enabled: bool = True


_lock = threading.RLock()
_state = _State()


def _format_value(value: Any) -> str:
    if value is None:
        return "<nil>"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, str):
        return json.dumps(value, ensure_ascii=False)
    return json.dumps(str(value), ensure_ascii=False)


def _format_pairs(key_values: Iterable[Any]) -> str:
    items = list(key_values)
    if len(items) % 2:
        items.append("(MISSING)")
    return "".join(
        f" {key}={_format_value(value)}" for key, value in zip(items[::2], items[1::2])
    )


class TextSink:
    """Writes log entries in the traditional text format.

    A verbosity or vmodule of None follows the process-wide setting; an
    output of None writes to the current ``sys.stderr``.
    """

    def __init__(self, verbosity: Any = None, vmodule: Optional[str] = None, output: Any = None) -> None:
        self._verbosity = None if verbosity is None else _parse_level(verbosity)
        self._vmodule = None if vmodule is None else _parse_vmodule(vmodule)
        self._output = output
        self._write_lock = threading.Lock()

    def enabled(self, level: int) -> bool:
        with _lock:
            verbosity = _state.verbosity if self._verbosity is None else self._verbosity
            vmodule = _state.vmodule if self._vmodule is None else self._vmodule
        if vmodule:
            override = _vmodule_level(vmodule, _caller()[0])
            if override is not None:
                return level <= override
        return level <= verbosity

    def info(self, level: int, msg: str, names: Iterable[str] = (), key_values: Iterable[Any] = ()) -> None:
        self._emit("I", msg, tuple(names), tuple(key_values))

    def error(self, err: Any, msg: str, names: Iterable[str] = (), key_values: Iterable[Any] = ()) -> None:
        prefix = () if err is None else ("err", err)
        self._emit("E", msg, tuple(names), prefix + tuple(key_values))

    def set_verbosity(self, level: Any) -> None:
        self._verbosity = _parse_level(level)

    def _emit(self, severity: str, msg: str, names: tuple[str, ...], key_values: tuple) -> None:
        filename, line = _caller()
        now = datetime.now()
        header = (
            f"{severity}{now:%m%d %H:%M:%S}.{now.microsecond:06d} "
            f"{os.getpid():7d} {os.path.basename(filename)}:{line}]"
        )
        if names:
            key_values = ("logger", "/".join(names)) + key_values
        text = f"{header} {json.dumps(msg, ensure_ascii=False)}{_format_pairs(key_values)}\n"
        output = self._output if self._output is not None else sys.stderr
        with self._write_lock:
            output.write(text)


@dataclass(frozen=True)
class Logger:
    """An immutable handle on a sink, with names, values and a V level."""

    sink: Any
    names: tuple[str, ...] = ()
    values: tuple = ()
    level: int = 0

    def v(self, level: int) -> "Logger":
        return dataclasses.replace(self, level=self.level + max(level, 0))

    def enabled(self) -> bool:
        return self.sink.enabled(self.level)

    def info(self, msg: str, *args: Any) -> None:
        if self.sink.enabled(self.level):
            self.sink.info(self.level, msg, self.names, self.values + args)

    def error(self, err: Any, msg: str, *args: Any) -> None:
        self.sink.error(err, msg, self.names, self.values + args)

    def with_name(self, name: str) -> "Logger":
        return dataclasses.replace(self, names=self.names + (name,))

    def with_values(self, *args: Any) -> "Logger":
        return dataclasses.replace(self, values=self.values + args)


_DEFAULT_TEXT = TextSink()


class _KlogSink:
    """Routes through the process-wide logger, or the text sink when none is set."""

    def enabled(self, level: int) -> bool:
        return _DEFAULT_TEXT.enabled(level)

    def info(self, level: int, msg: str, names: Iterable[str], key_values: Iterable[Any]) -> None:
        with _lock:
            target = _state.logger
        if target is None:
            _DEFAULT_TEXT.info(level, msg, names, key_values)
            return
        effective = target.level + level
        if target.sink.enabled(effective):
            target.sink.info(effective, msg, target.names + tuple(names), target.values + tuple(key_values))

    def error(self, err: Any, msg: str, names: Iterable[str], key_values: Iterable[Any]) -> None:
        with _lock:
            target = _state.logger
        if target is None:
            _DEFAULT_TEXT.error(err, msg, names, key_values)
            return
        target.sink.error(err, msg, target.names + tuple(names), target.values + tuple(key_values))

    def set_verbosity(self, level: Any) -> None:
        set_verbosity(level)


_KLOGR = Logger(_KlogSink())


@dataclass(frozen=True)
class KlogState:
    """A snapshot of the process-wide logging state."""

    state: _State = field(default_factory=_State)

    def restore(self) -> None:
        with _lock:
            for f in dataclasses.fields(_State):
                setattr(_state, f.name, getattr(self.state, f.name))


def capture_state() -> KlogState:
    """Return a snapshot that can later be restored."""
    with _lock:
        return KlogState(dataclasses.replace(_state))


def set_verbosity(level: Any) -> None:
    """Set the process-wide verbosity threshold."""
    parsed = _parse_level(level)
    with _lock:
        _state.verbosity = parsed


def get_verbosity() -> int:
    with _lock:
        return _state.verbosity


def set_vmodule(spec: str) -> None:
    """Set per-file verbosity from a comma-separated ``pattern=N`` list."""
    parsed = _parse_vmodule(spec)
    with _lock:
        _state.vmodule = parsed


def get_vmodule() -> str:
    with _lock:
        return _format_vmodule(_state.vmodule)


def set_logger(logger: Logger, flush: Optional[Callable[[], None]] = None, contextual: bool = True) -> None:
    """Install ``logger`` as the process-wide logger."""
    with _lock:
        _state.logger = logger
        _state.flush = flush
        _state.contextual_logger = contextual


def clear_logger() -> None:
    """Return to writing through the text sink."""
    with _lock:
        _state.logger = None
        _state.flush = None
        _state.contextual_logger = True


def background() -> Logger:
    """Return the logger to use when no other is at hand."""
    with _lock:
        if _state.logger is not None and _state.contextual_logger:
            return _state.logger
    return _KLOGR


def flush() -> None:
    """Write out anything buffered by the current logger and stderr."""
    with _lock:
        flush_fn = _state.flush
    if flush_fn is not None:
        flush_fn()
    try:
        sys.stderr.flush()
    except (AttributeError, ValueError, OSError):
        pass


_daemon_lock = threading.Lock()
_daemon: Optional[tuple[threading.Thread, threading.Event]] = None


def start_flush_daemon(interval: float | timedelta) -> None:
    """Flush periodically in a background thread, replacing any running one."""
    global _daemon
    if isinstance(interval, timedelta):
        interval = interval.total_seconds()
    stop_flush_daemon()
    if interval <= 0:
        return
    stop = threading.Event()

    def loop() -> None:
        while not stop.wait(interval):
            flush()

    thread = threading.Thread(target=loop, name="log-flush", daemon=True)
    with _daemon_lock:
        _daemon = (thread, stop)
    thread.start()


def stop_flush_daemon() -> None:
    global _daemon
    with _daemon_lock:
        daemon, _daemon = _daemon, None
    if daemon is not None:
        thread, stop = daemon
        stop.set()
        if thread is not threading.current_thread():
            thread.join()


def enable_contextual_logging(enabled: bool) -> None:
    with _lock:
        _state.contextual_enabled = bool(enabled)


def contextual_logging_enabled() -> bool:
    with _lock:
        return _state.contextual_enabled


_callbacks_lock = threading.Lock()
_callbacks: list[Callable[[int], None]] = []


def add_verbosity_callback(callback: Callable[[int], None]) -> None:
    """Register a callback invoked when verbosity is changed at runtime."""
    with _callbacks_lock:
        _callbacks.append(callback)


def verbosity_callbacks() -> list[Callable[[int], None]]:
    with _callbacks_lock:
        return list(_callbacks)


class _VerbosityAction(argparse.Action):
    def __call__(self, parser, namespace, values, option_string=None):
        try:
            set_verbosity(values)
        except ValueError as exc:
            raise argparse.ArgumentError(self, str(exc)) from None
        setattr(namespace, self.dest, get_verbosity())


class _VModuleAction(argparse.Action):
    def __call__(self, parser, namespace, values, option_string=None):
        try:
            set_vmodule(values)
        except ValueError as exc:
            raise argparse.ArgumentError(self, str(exc)) from None
        setattr(namespace, self.dest, get_vmodule())


def init_flags(parser: argparse.ArgumentParser) -> None:
    """Add the supported -v and --vmodule options to ``parser``."""
    parser.add_argument(
        "-v", "--v", dest="v", action=_VerbosityAction, metavar="Level",
        default=argparse.SUPPRESS, help="number for the log level verbosity",
    )
    parser.add_argument(
        "--vmodule", dest="vmodule", action=_VModuleAction, metavar="pattern=N,...",
        default=argparse.SUPPRESS,
        help="comma-separated list of pattern=N settings for file-filtered logging",
    )