"""Text log format: stream routing, info buffering and the text logger factory."""

from __future__ import annotations

import threading
from typing import Any

from .config import LoggingConfiguration
from .features import LOGGING_STABLE_OPTIONS
from .klog import Logger, TextSink
from .pflags import format_vmodule
from .registry import LoggingOptions, RuntimeControl

# Buffer sizes are capped to keep them within a signed 32 bit range.
MAX_BUFFER_SIZE = 2 * 1024 * 1024 * 1024
_DEFAULT_BUFFER_SIZE = 4096


class KlogMsgRouter:
    """Sends info messages to one stream and everything else to another.

    The type of a text message is given by its first character.
    """

    def __init__(self, info: Any, error: Any) -> None:
        self.info = info
        self.error = error

    def write(self, data: Any) -> int:
        if not data:
            return 0
        if data[:1] in ("I", b"I"):
            return self.info.write(data)
        return self.error.write(data)


class BufferedWriter:
    """Collects writes in memory and passes them on when full or flushed.

    A write never gets split: if it does not fit, the buffer is flushed
    first, and if it still does not fit it goes straight to the output.
    """

    def __init__(self, out: Any, size: int) -> None:
        self._out = out
        self._size = size if size > 0 else _DEFAULT_BUFFER_SIZE
        self._chunks: list[Any] = []
        self._buffered = 0
        self._lock = threading.Lock()

    def _available(self) -> int:
        return self._size - self._buffered

    def _flush_locked(self) -> None:
        if not self._chunks:
            return
        joined = self._chunks[0][:0].join(self._chunks)
        self._out.write(joined)
        self._chunks.clear()
        self._buffered = 0

    def write(self, data: Any) -> int:
        with self._lock:
            if len(data) > self._available() and self._chunks:
                self._flush_locked()
            if len(data) > self._available():
                return self._out.write(data)
            self._chunks.append(data)
            self._buffered += len(data)
            return len(data)

    def flush(self) -> None:
        with self._lock:
            try:
                self._flush_locked()
            except OSError:
                pass


class TextFactory:
    """Produces loggers for the traditional text format."""

    def feature(self) -> str:
        return LOGGING_STABLE_OPTIONS

    def create(self, config: LoggingConfiguration, options: LoggingOptions) -> tuple[Logger, RuntimeControl]:
        output: Any = options.error_stream
        flush = None
        routing = config.options.text
        if routing.split_stream:
            router = KlogMsgRouter(options.info_stream, options.error_stream)
            size = routing.info_buffer_size.value()
            if size > 0:
                info = BufferedWriter(router.info, min(size, MAX_BUFFER_SIZE))
                flush = info.flush
                router.info = info
            output = router
        sink = TextSink(
            verbosity=config.verbosity,
            vmodule=format_vmodule(config.vmodule),
            output=output,
        )
        return Logger(sink), RuntimeControl(flush=flush, set_verbosity_level=sink.set_verbosity)