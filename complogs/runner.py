"""Run a command with its output sent to a log file, forwarding termination signals."""

from __future__ import annotations

import logging
import os
import shutil
import signal
import subprocess
import sys
import threading
from contextlib import contextmanager
from typing import Any, Iterable, Iterator, Optional, Sequence

_log = logging.getLogger(__name__)

_TRUE = {"1", "t", "T", "TRUE", "true", "True"}
_FALSE = {"0", "f", "F", "FALSE", "false", "False"}

_USAGE = """Usage: log-runner [flags] command [args...]
  -also-stdout
    \tuseful with log-file, log to standard output as well as the log file
  -log-file string
    \tIf non-empty, save stdout to this file
  -redirect-stderr
    \ttreat stderr same as stdout (default true)"""


def _parse_bool(value: str) -> bool:
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    raise ValueError(f'strconv.ParseBool: parsing "{value}": invalid syntax')


def cmd_info(
    log_file: Optional[str],
    also_stdout: bool,
    redirect_stderr: bool,
    cwd: str,
    path: str,
    args: Sequence[str],
) -> str:
    """Describe the command that is about to run."""
    return (
        f"Command env: (log-file={log_file or ''}, also-stdout={str(bool(also_stdout)).lower()}, "
        f"redirect-stderr={str(bool(redirect_stderr)).lower()})\n"
        f"Run from directory: {cwd}\n"
        f"Executable path: {path}\n"
        f"Args (comma-delimited): {','.join(args)}"
    )


def _write_stdout(chunk: bytes) -> None:
    buffer = getattr(sys.stdout, "buffer", None)
    if buffer is not None:
        sys.stdout.flush()
        buffer.write(chunk)
        buffer.flush()
    else:
        sys.stdout.write(chunk.decode("utf-8", errors="replace"))
        sys.stdout.flush()


def _pump(source: Any, log_file: Any) -> None:
    read = getattr(source, "read1", source.read)
    while True:
        chunk = read(65536)
        if not chunk:
            break
        _write_stdout(chunk)
        log_file.write(chunk)
        log_file.flush()


@contextmanager
def _forward_signals(process: subprocess.Popen) -> Iterator[None]:
    """Pass termination signals on to ``process`` while the block runs."""
    if threading.current_thread() is not threading.main_thread():
        yield
        return

    def handler(signum: int, frame: Any) -> None:
        _log.info("Got signal: %s. Sending down to process (PID: %s)",
                  signal.Signals(signum).name, process.pid)
        try:
            process.send_signal(signum)
        except OSError as exc:
            _log.critical("Failed to signal process: %s", exc)
            raise SystemExit(1) from exc
        _log.info("Signalled process %s successfully.", process.pid)

    previous = {}
    for name in ("SIGHUP", "SIGINT", "SIGTERM", "SIGQUIT"):
        signum = getattr(signal, name, None)
        if signum is not None:
            previous[signum] = signal.signal(signum, handler)
    _log.info("Now listening for interrupts")
    try:
        yield
    finally:
        for signum, old in previous.items():
            signal.signal(signum, old)


def _describe_exit(code: int) -> str:
    if code < 0:
        name = signal.strsignal(-code) or str(-code)
        return f"signal: {name.lower()}"
    return f"exit status {code}"


def _run(
    log: Any,
    log_file: Optional[str],
    also_stdout: bool,
    redirect_stderr: bool,
    args: list[str],
) -> None:
    if log is None:
        stdout: Any = None
    elif also_stdout:
        stdout = subprocess.PIPE
    else:
        stdout = log
    stderr = subprocess.STDOUT if redirect_stderr else None

    path = shutil.which(args[0]) or args[0]
    _log.info("Running command:\n%s", cmd_info(log_file, also_stdout, redirect_stderr, "", path, args))
    try:
        process = subprocess.Popen(args, stdout=stdout, stderr=stderr)
    except OSError as exc:
        raise RuntimeError(f"starting command: {exc}") from exc

    pump = None
    if stdout is subprocess.PIPE:
        pump = threading.Thread(target=_pump, args=(process.stdout, log), daemon=True)
        pump.start()
    with _forward_signals(process):
        code = process.wait()
    if pump is not None:
        pump.join()
        process.stdout.close()
    if code != 0:
        raise RuntimeError(f"running command: {_describe_exit(code)}")


def configure_and_run(
    log_file: Optional[str] = None,
    also_stdout: bool = False,
    redirect_stderr: bool = True,
    args: Iterable[str] = (),
) -> None:
    """Run ``args`` as a command with its output routed as configured.

    Raises ValueError without a command and RuntimeError when the log file
    cannot be opened or the command fails to start or exits unsuccessfully.
    """
    args = list(args)
    if not args:
        raise ValueError("not enough arguments to run")
    log = None
    if log_file:
        try:
            fd = os.open(log_file, os.O_APPEND | os.O_CREAT | os.O_WRONLY, 0o644)
            log = os.fdopen(fd, "ab")
        except OSError as exc:
            raise RuntimeError(f"failed to create log file {log_file}: {exc}") from exc
    try:
        _run(log, log_file, also_stdout, redirect_stderr, args)
    finally:
        if log is not None:
            log.close()


class _HelpRequested(Exception):
    pass


def _parse_args(argv: Sequence[str]) -> tuple[dict[str, Any], list[str]]:
    """Parse flags up to the first argument that is not one."""
    opts: dict[str, Any] = {"log-file": "", "also-stdout": False, "redirect-stderr": True}
    index = 0
    while index < len(argv):
        arg = argv[index]
        if arg == "--":
            index += 1
            break
        if not arg.startswith("-") or arg == "-":
            break
        name = arg[2:] if arg.startswith("--") else arg[1:]
        if not name or name.startswith("-") or name.startswith("="):
            raise ValueError(f"bad flag syntax: {arg}")
        name, sep, value = name.partition("=")
        index += 1
        if name in ("h", "help"):
            raise _HelpRequested()
        if name not in opts:
            raise ValueError(f"flag provided but not defined: -{name}")
        if name == "log-file":
            if not sep:
                if index >= len(argv):
                    raise ValueError(f"flag needs an argument: -{name}")
                value = argv[index]
                index += 1
            opts[name] = value
        else:
            try:
                opts[name] = _parse_bool(value) if sep else True
            except ValueError as exc:
                raise ValueError(f'invalid boolean value "{value}" for -{name}: {exc}') from None
    return opts, list(argv[index:])


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Command entry point; returns the exit code."""
    logging.basicConfig(format="%(asctime)s %(message)s", datefmt="%Y/%m/%d %H:%M:%S", level=logging.INFO)
    if argv is None:
        argv = sys.argv[1:]
    try:
        opts, args = _parse_args(argv)
    except _HelpRequested:
        print(_USAGE, file=sys.stderr)
        return 0
    except ValueError as exc:
        print(exc, file=sys.stderr)
        print(_USAGE, file=sys.stderr)
        return 2
    try:
        configure_and_run(opts["log-file"], opts["also-stdout"], opts["redirect-stderr"], args)
    except (ValueError, RuntimeError) as exc:
        _log.critical("%s", exc)
        print(exc, file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())