"""Example command that shows logging through the configured logger."""

from __future__ import annotations

import argparse
import sys
from datetime import timedelta
from typing import Any, Optional, Sequence

from . import klog
from .features import feature_gates
from .logs import flush_logs, init_logs
from .options import ValidationError, add_flags, new_logging_configuration, validate_and_apply
from .registry import register_json_format

_TRUE = {"1", "t", "T", "TRUE", "true", "True"}
_FALSE = {"0", "f", "F", "FALSE", "false", "False"}


def _with_name(logger: Any, name: str) -> Any:
    if klog.contextual_logging_enabled():
        return logger.with_name(name)
    return logger


def _with_values(logger: Any, *args: Any) -> Any:
    if klog.contextual_logging_enabled():
        return logger.with_values(*args)
    return logger


def run(logger: Any) -> None:
    """Produce some output through stdout, stderr, the global and the given logger."""
    print("This is normal output via stdout.")
    print("This is other output via stderr.", file=sys.stderr)
    default = klog.background()
    key = "value"
    default.info(f"Log using Infof, key: {key}")
    default.info("Log using InfoS", "key", key)
    err = Exception("fail")
    default.error(None, f"Log using Errorf, err: {err}")
    default.error(err, "Log using ErrorS")
    default.v(1).info("Log less important message")

    # Fallback when no logger is passed in; a passed logger is better.
    default.info("Now the default logger is set, but using the one from the context is still better.")

    logger.v(5).info("Log less important message at V=5 through context")

    # The same key is used more than once on purpose.
    hour, minute = timedelta(hours=1), timedelta(minutes=1)
    _with_values(_with_name(logger, "myname"), "duration", hour).info("runtime", "duration", minute)
    logger.info("another runtime", "duration", hour, "duration", minute)


def _parse_bool(value: str) -> bool:
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    raise ValueError(f'strconv.ParseBool: parsing "{value}": invalid syntax')


class _FeatureGateAction(argparse.Action):
    """Parses ``Name=bool,...`` into the feature gate mapping."""

    def __init__(self, option_strings, dest, gates, **kwargs):
        super().__init__(option_strings, dest, **kwargs)
        self._gates = gates

    def __call__(self, parser, namespace, values, option_string=None):
        for item in values.split(","):
            item = item.strip()
            if not item:
                continue
            name, sep, value = item.partition("=")
            name = name.strip()
            if not sep:
                raise argparse.ArgumentError(self, f"missing bool value for {name}")
            if name not in self._gates:
                raise argparse.ArgumentError(self, f"unrecognized feature gate: {name}")
            try:
                self._gates[name] = _parse_bool(value.strip())
            except ValueError as exc:
                raise argparse.ArgumentError(self, f"invalid value of {name}={value}, err: {exc}") from None
        setattr(namespace, self.dest, dict(self._gates))


def _known_features() -> str:
    return "\n".join(
        f"{name}=true|false ({spec.pre_release.value} - default={'true' if spec.default else 'false'})"
        for name, spec in sorted(feature_gates().items())
    )


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Command entry point; returns the exit code."""
    register_json_format()
    gates = {name: spec.default for name, spec in feature_gates().items()}
    config = new_logging_configuration()
    parser = argparse.ArgumentParser(
        prog="logger-example", description="Show log output in the configured format."
    )
    parser.add_argument(
        "--feature-gates", action=_FeatureGateAction, gates=gates, metavar="mapStringBool",
        default=argparse.SUPPRESS,
        help="A set of key=value pairs that describe feature gates for alpha/experimental features. "
             "Options are: " + "; ".join(_known_features().splitlines()),
    )
    add_flags(config, parser)
    parser.add_argument("args", nargs="*", help=argparse.SUPPRESS)
    namespace = parser.parse_args(argv)

    init_logs()
    try:
        try:
            validate_and_apply(config, gates)
        except (ValidationError, RuntimeError) as exc:
            print(exc, file=sys.stderr)
            return 1
        if namespace.args:
            print(
                "Unexpected additional command line arguments:\n    " + "\n    ".join(namespace.args),
                file=sys.stderr,
            )
            return 1
        logger = _with_values(_with_name(klog.background(), "example"), "foo", "bar")
        run(logger)
        return 0
    finally:
        flush_logs()


if __name__ == "__main__":
    sys.exit(main())