"""JSON log format."""

from __future__ import annotations

import dataclasses
import json
import math
import os
import threading
import time
from collections.abc import Mapping
from datetime import timedelta
from decimal import Decimal
from typing import Any, Callable, Iterable, Optional

from .config import LoggingConfiguration, format_duration
from .features import LOGGING_BETA_OPTIONS
from .klog import Logger, _caller
from .registry import LoggingOptions, RuntimeControl
from .text import MAX_BUFFER_SIZE, BufferedWriter

_INVALID_KEY_MSG = "non-string key argument passed to logging, ignoring all later arguments"
_ODD_MSG = "odd number of arguments passed as key-value pairs for logging"


def _quote(text: str) -> str:
    return json.dumps(text, ensure_ascii=False)


def _format_float(value: float) -> str:
    if math.isnan(value):
        return '"NaN"'
    if math.isinf(value):
        return '"+Inf"' if value > 0 else '"-Inf"'
    text = repr(float(value))
    if "e" in text or "E" in text:
        text = format(Decimal(text), "f")
    if text.endswith(".0"):
        text = text[:-2]
    return text


def _encode(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        return _format_float(value)
    if isinstance(value, str):
        return _quote(value)
    if isinstance(value, timedelta):
        return _quote(format_duration(value // timedelta(microseconds=1) * 1000))
    if isinstance(value, BaseException):
        return _quote(str(value))
    marshal = getattr(value, "marshal_log", None)
    if callable(marshal):
        return _encode(marshal())
    if isinstance(value, Mapping):
        return "{" + ",".join(f"{_quote(str(k))}:{_encode(v)}" for k, v in value.items()) + "}"
    if isinstance(value, (list, tuple)):
        return "[" + ",".join(_encode(item) for item in value) + "]"
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return _encode({f.name: getattr(value, f.name) for f in dataclasses.fields(value)})
    return _quote(str(value))


def _split_pairs(key_values: Iterable[Any]) -> tuple[list[tuple[str, Any]], Optional[tuple[str, str, Any]]]:
    """Pair up keys and values; report the first problem that ends the list."""
    pairs: list[tuple[str, Any]] = []
    items = iter(key_values)
    for key in items:
        try:
            value = next(items)
        except StopIteration:
            return pairs, (_ODD_MSG, "ignored key", key)
        if not isinstance(key, str):
            return pairs, (_INVALID_KEY_MSG, "invalid key", key)
        pairs.append((key, value))
    return pairs, None


def _short_caller() -> str:
    filename, line = _caller()
    parts = filename.replace(os.sep, "/").split("/")
    return f"{'/'.join(parts[-2:])}:{line}"


class JSONSink:
    """Writes one JSON object per log entry.

    Errors go to the error stream when one is given, everything else to the
    info stream. A stream of None discards what would be written to it.
    """

    def __init__(
        self,
        verbosity: int = 0,
        info_stream: Any = None,
        error_stream: Any = None,
        clock: Optional[Callable[[], int]] = None,
    ) -> None:
        self._verbosity = int(verbosity)
        self._info = info_stream
        self._error = error_stream
        self._clock = clock if clock is not None else time.time_ns
        self._lock = threading.Lock()

    def enabled(self, level: int) -> bool:
        return level <= self._verbosity

    def set_verbosity(self, level: int) -> None:
        self._verbosity = int(level)

    def info(self, level: int, msg: str, names: Iterable[str] = (), key_values: Iterable[Any] = ()) -> None:
        names = tuple(names)
        caller = _short_caller()
        pairs, problem = _split_pairs(key_values)
        self._report(problem, caller, names)
        self._write(False, self._entry(caller, names, msg, [("v", level), *pairs]))

    def error(self, err: Any, msg: str, names: Iterable[str] = (), key_values: Iterable[Any] = ()) -> None:
        names = tuple(names)
        caller = _short_caller()
        pairs, problem = _split_pairs(key_values)
        self._report(problem, caller, names)
        if err is not None:
            pairs.append(("err", err))
        self._write(True, self._entry(caller, names, msg, pairs))

    def flush(self) -> None:
        for stream in (self._info, self._error):
            flush = getattr(stream, "flush", None)
            if callable(flush):
                flush()

    def _report(self, problem: Optional[tuple[str, str, Any]], caller: str, names: tuple[str, ...]) -> None:
        if problem is not None:
            msg, key, value = problem
            self._write(True, self._entry(caller, names, msg, [(key, value)]))

    def _entry(self, caller: str, names: tuple[str, ...], msg: str, fields: Iterable[tuple[str, Any]]) -> str:
        parts = [f'"ts":{_format_float(self._clock() / 1e6)}']
        if names:
            parts.append(f'"logger":{_quote(".".join(names))}')
        parts.append(f'"caller":{_quote(caller)}')
        parts.append(f'"msg":{_quote(msg)}')
        parts.extend(f"{_quote(key)}:{_encode(value)}" for key, value in fields)
        return "{" + ",".join(parts) + "}\n"

    def _write(self, high_priority: bool, text: str) -> None:
        stream = self._error if high_priority and self._error is not None else self._info
        if stream is None:
            return
        with self._lock:
            stream.write(text)


def new_json_logger(
    verbosity: int,
    info_stream: Any,
    error_stream: Any = None,
    clock: Optional[Callable[[], int]] = None,
) -> tuple[Logger, RuntimeControl]:
    """Return a JSON logger and the control for it.

    The clock returns nanoseconds since the epoch.
    """
    sink = JSONSink(verbosity, info_stream, error_stream, clock)
    return Logger(sink), RuntimeControl(flush=sink.flush, set_verbosity_level=sink.set_verbosity)


class JSONFactory:
    """Produces JSON logger instances."""

    def feature(self) -> str:
        return LOGGING_BETA_OPTIONS

    def create(self, config: LoggingConfiguration, options: LoggingOptions) -> tuple[Logger, RuntimeControl]:
        stderr = options.error_stream
        routing = config.options.json
        if routing.split_stream:
            stdout = options.info_stream
            size = routing.info_buffer_size.value()
            if size > 0:
                stdout = BufferedWriter(stdout, min(size, MAX_BUFFER_SIZE))
            return new_json_logger(config.verbosity, stdout, stderr)
        # Everything goes to stderr so that it does not mix with program output.
        return new_json_logger(config.verbosity, stderr, None)